"""Application tests for the inventory mutation engine."""

import pytest
from protean.exceptions import ExpectedVersionError

from wholesale.audit.audit_record import AuditAction, AuditEntityType
from wholesale.catalogue.product import ProductStatus
from wholesale.identity.user import system_actor
from wholesale.inventory.engine import InventoryMutationEngine, InventoryOperation
from wholesale.shared.concurrency import RowLockRegistry
from wholesale.shared.errors import (
    InsufficientInventoryError,
    MutationTimeoutError,
    NegativeInventoryError,
    ProductNotFoundError,
    TransientConflictError,
    UnauthorizedActorError,
    ValidationFailedError,
)


class TestOperations:
    def test_decrement_then_reject_overdraw(self, engine, make_product, reload_product, master_admin):
        product = make_product(inventory=5)

        result = engine.apply_inventory_change(product.id, "DECREMENT", 3, actor=master_admin)
        assert result.previous_inventory == 5
        assert result.new_inventory == 2

        with pytest.raises(InsufficientInventoryError) as exc:
            engine.apply_inventory_change(product.id, "DECREMENT", 5, actor=master_admin)

        assert exc.value.details == {"product_id": product.id, "current_inventory": 2, "requested_decrease": 5}
        assert reload_product(product.id).inventory == 2

    def test_set(self, engine, make_product, reload_product, master_admin):
        product = make_product(inventory=5)
        engine.apply_inventory_change(product.id, InventoryOperation.SET, 40, actor=master_admin)
        assert reload_product(product.id).inventory == 40

    def test_increment(self, engine, make_product, reload_product, master_admin):
        product = make_product(inventory=5)
        engine.apply_inventory_change(product.id, "INCREMENT", 4, actor=master_admin)
        assert reload_product(product.id).inventory == 9

    def test_negative_set(self, engine, make_product, reload_product, master_admin):
        product = make_product(inventory=5)
        with pytest.raises(NegativeInventoryError):
            engine.apply_inventory_change(product.id, "SET", -1, actor=master_admin)
        assert reload_product(product.id).inventory == 5

    def test_negative_increment_is_invalid_input(self, engine, make_product, master_admin):
        product = make_product(inventory=5)
        with pytest.raises(ValidationFailedError):
            engine.apply_inventory_change(product.id, "INCREMENT", -2, actor=master_admin)

    def test_non_integer_quantity(self, engine, make_product, master_admin):
        product = make_product(inventory=5)
        with pytest.raises(ValidationFailedError):
            engine.apply_inventory_change(product.id, "SET", 2.5, actor=master_admin)
        with pytest.raises(ValidationFailedError):
            engine.apply_inventory_change(product.id, "SET", True, actor=master_admin)

    def test_unknown_product(self, engine, master_admin):
        with pytest.raises(ProductNotFoundError) as exc:
            engine.apply_inventory_change("missing", "SET", 1, actor=master_admin)
        assert exc.value.details["product_id"] == "missing"


class TestStatusRecommendation:
    def test_running_out_persists_out_of_stock(self, engine, make_product, reload_product, master_admin):
        product = make_product(inventory=3)

        result = engine.apply_inventory_change(product.id, "DECREMENT", 3, actor=master_admin)

        assert result.new_status == ProductStatus.OUT_OF_STOCK.value
        assert result.status_changed
        assert reload_product(product.id).status == ProductStatus.OUT_OF_STOCK.value

    def test_restock_reactivates(self, engine, make_product, reload_product, master_admin):
        product = make_product(inventory=0, status=ProductStatus.OUT_OF_STOCK.value)
        engine.apply_inventory_change(product.id, "INCREMENT", 2, actor=master_admin)
        assert reload_product(product.id).status == ProductStatus.ACTIVE.value

    def test_inactive_product_stays_inactive(self, engine, make_product, reload_product, master_admin):
        product = make_product(inventory=3, status=ProductStatus.INACTIVE.value)
        result = engine.apply_inventory_change(product.id, "SET", 0, actor=master_admin)
        assert not result.status_changed
        assert reload_product(product.id).status == ProductStatus.INACTIVE.value


class TestAuthorization:
    def test_brand_admin_of_owning_brand(self, engine, make_product, brand_admin):
        product = make_product(brand_id="brand-a")
        assert engine.apply_inventory_change(product.id, "INCREMENT", 1, actor=brand_admin).new_inventory == 11

    def test_brand_admin_of_other_brand(self, engine, make_product, reload_product, other_brand_admin, audit_records):
        product = make_product(brand_id="brand-a")
        with pytest.raises(UnauthorizedActorError):
            engine.apply_inventory_change(product.id, "INCREMENT", 1, actor=other_brand_admin)

        assert reload_product(product.id).inventory == 10
        assert audit_records() == []

    def test_buyer(self, engine, make_product, buyer):
        product = make_product()
        with pytest.raises(UnauthorizedActorError):
            engine.apply_inventory_change(product.id, "SET", 1, actor=buyer)

    def test_system_actor(self, engine, make_product):
        product = make_product(brand_id="brand-z")
        assert engine.apply_inventory_change(product.id, "SET", 1, actor=system_actor()).new_inventory == 1


class TestAudit:
    def test_one_record_per_change(self, engine, make_product, master_admin, audit_records):
        product = make_product(inventory=5)

        engine.apply_inventory_change(
            product.id, "DECREMENT", 5, actor=master_admin, reason="damaged", origin="10.0.0.7"
        )

        records = audit_records(AuditAction.INVENTORY_UPDATE)
        assert len(records) == 1
        record = records[0]
        assert record.actor_id == master_admin.id
        assert record.actor_role == master_admin.role
        assert record.entity_type == AuditEntityType.PRODUCT.value
        assert record.entity_id == product.id
        assert record.origin == "10.0.0.7"
        assert record.details == {
            "sku": product.sku,
            "operation": "DECREMENT",
            "quantity": 5,
            "reason": "damaged",
            "previous_inventory": 5,
            "new_inventory": 0,
            "previous_status": "ACTIVE",
            "new_status": "OUT_OF_STOCK",
            "status_changed": True,
        }

    def test_rejected_change_is_not_audited(self, engine, make_product, master_admin, audit_records):
        product = make_product(inventory=1)
        with pytest.raises(InsufficientInventoryError):
            engine.apply_inventory_change(product.id, "DECREMENT", 2, actor=master_admin)
        assert audit_records() == []

    def test_context_is_merged_into_payload(self, engine, make_product, master_admin, audit_records):
        product = make_product()
        engine.apply_inventory_change(
            product.id,
            "INCREMENT",
            2,
            actor=master_admin,
            audit_action=AuditAction.INVENTORY_RESTORE_FOR_CANCELLATION,
            context={"order_id": "ord-1", "restored_quantity": 2},
        )

        (record,) = audit_records(AuditAction.INVENTORY_RESTORE_FOR_CANCELLATION)
        assert record.details["order_id"] == "ord-1"
        assert record.details["restored_quantity"] == 2


class TestRetry:
    def test_transient_conflict_is_retried(self, make_product, master_admin, monkeypatch):
        sleeps = []
        engine = InventoryMutationEngine(max_attempts=3, backoff=0.01, sleep=sleeps.append)
        product = make_product(inventory=5)

        original = engine._apply_once
        calls = {"n": 0}

        def flaky(*args, **kwargs):
            calls["n"] += 1
            if calls["n"] == 1:
                raise ExpectedVersionError("stale version")
            return original(*args, **kwargs)

        monkeypatch.setattr(engine, "_apply_once", flaky)

        result = engine.apply_inventory_change(product.id, "DECREMENT", 1, actor=master_admin)
        assert result.new_inventory == 4
        assert calls["n"] == 2
        assert sleeps == [0.01]

    def test_exhausted_retries(self, make_product, master_admin, monkeypatch):
        sleeps = []
        engine = InventoryMutationEngine(max_attempts=3, backoff=0.01, sleep=sleeps.append)
        product = make_product(inventory=5)

        def always_conflicting(*args, **kwargs):
            raise ExpectedVersionError("stale version")

        monkeypatch.setattr(engine, "_apply_once", always_conflicting)

        with pytest.raises(TransientConflictError) as exc:
            engine.apply_inventory_change(product.id, "DECREMENT", 1, actor=master_admin)

        assert exc.value.retryable
        assert exc.value.details["attempts"] == 3
        assert sleeps == [0.01, 0.02]

    def test_business_rejections_are_not_retried(self, make_product, master_admin, monkeypatch):
        engine = InventoryMutationEngine(max_attempts=3, sleep=lambda _: None)
        product = make_product(inventory=1)
        calls = {"n": 0}
        original = engine._apply_once

        def counting(*args, **kwargs):
            calls["n"] += 1
            return original(*args, **kwargs)

        monkeypatch.setattr(engine, "_apply_once", counting)

        with pytest.raises(InsufficientInventoryError):
            engine.apply_inventory_change(product.id, "DECREMENT", 2, actor=master_admin)
        assert calls["n"] == 1


class TestTimeout:
    def test_waiting_on_a_held_row_times_out(self, make_product, reload_product, master_admin):
        locks = RowLockRegistry()
        engine = InventoryMutationEngine(locks=locks, sleep=lambda _: None)
        product = make_product(inventory=5)

        with locks.hold(f"product:{product.id}"):
            with pytest.raises(MutationTimeoutError):
                engine.apply_inventory_change(product.id, "DECREMENT", 1, actor=master_admin, timeout=0.05)

        assert reload_product(product.id).inventory == 5
