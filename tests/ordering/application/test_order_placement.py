"""Application tests for order placement."""

import json

import pytest
from protean import current_domain

from wholesale.audit.audit_record import AuditAction
from wholesale.catalogue.product import ProductStatus
from wholesale.identity.user import Role, User, UserStatus
from wholesale.inventory.engine import InventoryOperation
from wholesale.notifications.notification import NotificationType, role_key
from wholesale.ordering.order import Order, OrderStatus
from wholesale.ordering.placement import OrderPlacement, PlaceOrder
from wholesale.shared.errors import (
    InsufficientInventoryError,
    MutationTimeoutError,
    ProductNotFoundError,
    ProductNotOrderableError,
    UnauthorizedActorError,
    ValidationFailedError,
)

ADDRESS = {
    "recipient_name": "Kim Lee",
    "phone": "010-1234-5678",
    "address": "12 Market Street",
    "zip_code": "04524",
}


@pytest.fixture()
def placement(engine, dispatcher):
    return OrderPlacement(engine=engine, dispatcher=dispatcher)


class TestPlaceOrder:
    def test_takes_stock_and_stores_pending_order(self, placement, make_product, reload_product, buyer):
        chair = make_product(inventory=20, base_price=100.0)
        lamp = make_product(inventory=5, base_price=40.0)

        result = placement.place_order(
            buyer,
            [{"product_id": chair.id, "quantity": 10}, {"product_id": lamp.id, "quantity": 2}],
            ADDRESS,
        )

        assert result.status == OrderStatus.PENDING.value
        # 10 x (100 * 0.95 * 0.98) + 2 x (40 * 0.98)
        assert result.total_amount == 1009.4
        assert reload_product(chair.id).inventory == 10
        assert reload_product(lamp.id).inventory == 3

        order = current_domain.repository_for(Order).get(result.order_id)
        assert order.user_id == buyer.id
        assert order.order_number == result.order_number
        assert [item.unit_price for item in order.items] == [93.1, 39.2]

    def test_audits_order_and_stock(self, placement, make_product, buyer, audit_records):
        product = make_product(inventory=5)

        result = placement.place_order(buyer, [{"product_id": product.id, "quantity": 2}], ADDRESS)

        (order_record,) = audit_records(AuditAction.ORDER_CREATE)
        assert order_record.entity_id == result.order_id
        assert order_record.actor_id == buyer.id
        assert order_record.details["lines"] == [{"product_id": product.id, "quantity": 2}]

        (stock_record,) = audit_records(AuditAction.INVENTORY_UPDATE)
        assert stock_record.details["buyer_id"] == buyer.id
        assert stock_record.details["reason"] == "order placed"

    def test_notifies_administrators(self, placement, make_product, buyer, memory_store):
        product = make_product(inventory=50)

        result = placement.place_order(buyer, [{"product_id": product.id, "quantity": 1}], ADDRESS)

        for role in (Role.MASTER_ADMIN, Role.BRAND_ADMIN):
            (record,) = memory_store.records(role_key(role))
            assert record.notification_type == NotificationType.NEW_ORDER.value
            assert record.order_id == result.order_id

    def test_low_stock_alert_after_placement(self, placement, make_product, buyer, memory_store):
        product = make_product(inventory=11, low_stock_threshold=10)

        placement.place_order(buyer, [{"product_id": product.id, "quantity": 2}], ADDRESS)

        types = {r.notification_type for r in memory_store.records(role_key(Role.MASTER_ADMIN))}
        assert types == {NotificationType.NEW_ORDER.value, NotificationType.INVENTORY_ALERT.value}


class TestRejections:
    def test_empty_order(self, placement, buyer):
        with pytest.raises(ValidationFailedError):
            placement.place_order(buyer, [], ADDRESS)

    @pytest.mark.parametrize("quantity", [0, -1, "2", 1.5])
    def test_bad_quantity(self, placement, make_product, buyer, quantity):
        product = make_product()
        with pytest.raises(ValidationFailedError):
            placement.place_order(buyer, [{"product_id": product.id, "quantity": quantity}], ADDRESS)

    def test_unknown_product(self, placement, buyer):
        with pytest.raises(ProductNotFoundError):
            placement.place_order(buyer, [{"product_id": "missing", "quantity": 1}], ADDRESS)

    def test_inactive_product(self, placement, make_product, buyer):
        product = make_product(status=ProductStatus.INACTIVE.value)
        with pytest.raises(ProductNotOrderableError):
            placement.place_order(buyer, [{"product_id": product.id, "quantity": 1}], ADDRESS)

    def test_not_enough_stock(self, placement, make_product, reload_product, buyer):
        product = make_product(inventory=2)
        with pytest.raises(ProductNotOrderableError):
            placement.place_order(buyer, [{"product_id": product.id, "quantity": 3}], ADDRESS)
        assert reload_product(product.id).inventory == 2

    def test_suspended_buyer(self, placement, make_product):
        product = make_product()
        suspended = User(id="buyer-009", role=Role.BUYER.value, status=UserStatus.SUSPENDED.value)
        with pytest.raises(UnauthorizedActorError):
            placement.place_order(suspended, [{"product_id": product.id, "quantity": 1}], ADDRESS)


class TestCompensation:
    def test_taken_stock_is_returned_when_a_later_line_fails(
        self, placement, make_product, reload_product, buyer, engine, monkeypatch, audit_records
    ):
        first = make_product(inventory=5)
        second = make_product(inventory=5)

        original = engine.apply_inventory_change

        def fail_on_second(product_id, operation, quantity, **kwargs):
            if product_id == second.id and InventoryOperation.parse(operation) == InventoryOperation.DECREMENT:
                raise InsufficientInventoryError(product_id, 5, quantity)
            return original(product_id, operation, quantity, **kwargs)

        monkeypatch.setattr(engine, "apply_inventory_change", fail_on_second)

        with pytest.raises(InsufficientInventoryError):
            placement.place_order(
                buyer,
                [{"product_id": first.id, "quantity": 2}, {"product_id": second.id, "quantity": 2}],
                ADDRESS,
            )

        assert reload_product(first.id).inventory == 5
        assert reload_product(second.id).inventory == 5
        assert current_domain.repository_for(Order)._dao.query.all().items == []
        reasons = [r.details["reason"] for r in audit_records(AuditAction.INVENTORY_UPDATE)]
        assert sorted(reasons) == ["order placed", "order placement rolled back"]

    def test_failed_restore_does_not_hide_the_placement_failure(
        self, placement, make_product, reload_product, buyer, engine, monkeypatch
    ):
        first = make_product(inventory=5)
        second = make_product(inventory=5)
        third = make_product(inventory=5)

        original = engine.apply_inventory_change

        def flaky(product_id, operation, quantity, **kwargs):
            operation = InventoryOperation.parse(operation)
            if product_id == third.id and operation == InventoryOperation.DECREMENT:
                raise InsufficientInventoryError(product_id, 5, quantity)
            if product_id == second.id and operation == InventoryOperation.INCREMENT:
                raise MutationTimeoutError(product_id=product_id)
            return original(product_id, operation, quantity, **kwargs)

        monkeypatch.setattr(engine, "apply_inventory_change", flaky)

        with pytest.raises(InsufficientInventoryError):
            placement.place_order(
                buyer,
                [
                    {"product_id": first.id, "quantity": 2},
                    {"product_id": second.id, "quantity": 3},
                    {"product_id": third.id, "quantity": 1},
                ],
                ADDRESS,
            )

        # The line after the failed restore is still put back
        assert reload_product(first.id).inventory == 5
        assert reload_product(second.id).inventory == 2
        assert current_domain.repository_for(Order)._dao.query.all().items == []

    def test_compensate_reports_unrestored_lines(self, placement, make_product, engine, monkeypatch):
        product = make_product(inventory=5)

        def always_times_out(product_id, operation, quantity, **kwargs):
            raise MutationTimeoutError(product_id=product_id)

        monkeypatch.setattr(engine, "apply_inventory_change", always_times_out)

        assert placement._compensate([(product.id, 2)], origin=None) == [product.id]


class TestPlaceOrderCommand:
    def test_process_command(self, make_product, reload_product, dispatcher):
        product = make_product(inventory=5, base_price=10.0)

        result = current_domain.process(
            PlaceOrder(
                actor_id="buyer-001",
                actor_role=Role.BUYER.value,
                items=json.dumps([{"product_id": product.id, "quantity": 1}]),
                shipping_address=json.dumps(ADDRESS),
            ),
            asynchronous=False,
        )

        assert result.total_amount == 9.8
        assert reload_product(product.id).inventory == 4
