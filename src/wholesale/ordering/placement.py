"""Order placement: reserve stock line by line, then store a PENDING order.

Stock is taken through the inventory engine (one audited DECREMENT per
line). When a later line or the order write fails, the lines already taken
are put back with a compensating INCREMENT before the failure propagates.
Administrators are told about the new order once it is stored.
"""

import json
from dataclasses import dataclass

import structlog
from protean import handle
from protean.core.unit_of_work import UnitOfWork
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from wholesale.audit.audit_record import AuditAction, AuditEntityType, AuditRecord
from wholesale.catalogue.product import Product
from wholesale.domain import wholesale
from wholesale.identity.user import build_actor, system_actor
from wholesale.inventory.alerts import LowStockPolicy
from wholesale.inventory.engine import InventoryMutationEngine, InventoryOperation, get_inventory_engine
from wholesale.notifications.dispatcher import NotificationDispatcher, get_dispatcher
from wholesale.ordering.order import Order, OrderItem
from wholesale.shared.errors import (
    ProductNotFoundError,
    ProductNotOrderableError,
    UnauthorizedActorError,
    ValidationFailedError,
    WholesaleError,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class OrderPlacementResult:
    order_id: str
    order_number: str
    status: str
    total_amount: float


class OrderPlacement:
    def __init__(
        self,
        engine: InventoryMutationEngine | None = None,
        dispatcher: NotificationDispatcher | None = None,
        low_stock_policy: LowStockPolicy | None = None,
    ) -> None:
        self._engine = engine
        self._dispatcher = dispatcher
        self._low_stock_policy = low_stock_policy

    @property
    def engine(self) -> InventoryMutationEngine:
        return self._engine or get_inventory_engine()

    @property
    def dispatcher(self) -> NotificationDispatcher:
        return self._dispatcher or get_dispatcher()

    @property
    def low_stock_policy(self) -> LowStockPolicy:
        return self._low_stock_policy or LowStockPolicy(dispatcher=self._dispatcher)

    def _price_lines(self, actor, lines) -> list[dict]:
        repo = current_domain.repository_for(Product)
        priced = []
        for line in lines:
            product_id = line["product_id"]
            quantity = line["quantity"]
            try:
                product = repo.get(product_id)
            except ObjectNotFoundError:
                raise ProductNotFoundError(product_id) from None
            if not product.is_orderable(quantity):
                raise ProductNotOrderableError(product_id, product.status, product.inventory, quantity)
            priced.append(
                {
                    "product_id": product_id,
                    "quantity": quantity,
                    "unit_price": product.calculate_price(quantity, actor.role),
                    "variant": line.get("variant"),
                }
            )
        return priced

    def _compensate(self, taken, origin) -> list[str]:
        """Put back every line already taken. Returns the product ids that could not be restored."""
        unrestored = []
        for product_id, quantity in reversed(taken):
            try:
                self.engine.apply_inventory_change(
                    product_id,
                    InventoryOperation.INCREMENT,
                    quantity,
                    actor=system_actor(),
                    reason="order placement rolled back",
                    origin=origin,
                )
            except WholesaleError as exc:
                # The remaining lines are still put back; this one needs manual reconciliation.
                logger.error(
                    "placement_compensation_failed",
                    product_id=product_id,
                    quantity=quantity,
                    error_kind=exc.kind.value,
                    error=exc.message,
                )
                unrestored.append(product_id)
        return unrestored

    def place_order(self, actor, lines, shipping_address, origin=None, timeout=None) -> OrderPlacementResult:
        if not actor.can_place_order():
            raise UnauthorizedActorError(
                "Actor may not place orders",
                actor_id=actor.id,
                actor_role=actor.role,
            )
        if not lines:
            raise ValidationFailedError("An order needs at least one line", field="items")
        for line in lines:
            quantity = line.get("quantity")
            if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
                raise ValidationFailedError(
                    "Line quantity must be a positive integer",
                    product_id=line.get("product_id"),
                    quantity=quantity,
                )

        priced = self._price_lines(actor, lines)

        taken = []
        results = []
        try:
            for line in priced:
                results.append(
                    self.engine.apply_inventory_change(
                        line["product_id"],
                        InventoryOperation.DECREMENT,
                        line["quantity"],
                        actor=system_actor(),
                        reason="order placed",
                        origin=origin,
                        timeout=timeout,
                        context={"buyer_id": str(actor.id)},
                    )
                )
                taken.append((line["product_id"], line["quantity"]))

            with UnitOfWork():
                order = Order.create(
                    user_id=actor.id,
                    items=[OrderItem(**line) for line in priced],
                    shipping_address=shipping_address,
                )
                current_domain.repository_for(Order).add(order)
                current_domain.repository_for(AuditRecord).add(
                    AuditRecord.record(
                        actor=actor,
                        action=AuditAction.ORDER_CREATE,
                        entity_type=AuditEntityType.ORDER,
                        entity_id=order.id,
                        payload={
                            "order_number": order.order_number,
                            "total_amount": order.total_amount,
                            "lines": [{"product_id": p, "quantity": q} for p, q in taken],
                        },
                        origin=origin,
                    )
                )
        except Exception:
            logger.warning("order_placement_failed", buyer_id=actor.id, lines_taken=len(taken))
            unrestored = self._compensate(taken, origin)
            if unrestored:
                logger.error("order_placement_left_stock_taken", buyer_id=actor.id, product_ids=unrestored)
            raise

        logger.info(
            "order_placed",
            order_id=order.id,
            order_number=order.order_number,
            buyer_id=actor.id,
            total_amount=order.total_amount,
        )

        for result in results:
            self.low_stock_policy.evaluate(result)
        self.dispatcher.notify_new_order(order.id, actor.id, order.total_amount)

        return OrderPlacementResult(
            order_id=str(order.id),
            order_number=order.order_number,
            status=order.status,
            total_amount=order.total_amount,
        )


# ---------------------------------------------------------------------------
# Command
# ---------------------------------------------------------------------------
@wholesale.command(part_of="Order")
class PlaceOrder:
    actor_id = String(required=True)
    actor_role = String(required=True)
    actor_brand_id = Identifier()
    items = Text(required=True)  # JSON: list of {product_id, quantity, variant}
    shipping_address = Text(required=True)  # JSON: address dict
    origin = String(max_length=255)


@wholesale.command_handler(part_of=Order)
class OrderPlacementHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        items = json.loads(command.items) if isinstance(command.items, str) else command.items
        shipping_address = (
            json.loads(command.shipping_address)
            if isinstance(command.shipping_address, str)
            else command.shipping_address
        )
        actor = build_actor(command.actor_id, command.actor_role, command.actor_brand_id)
        return OrderPlacement().place_order(actor, items, shipping_address, origin=command.origin)
