"""Order lifecycle controller: validated, authorised, audited status transitions.

    row lock -> unit of work -> load -> transition check -> authorise ->
    persist status + audit record -> commit -> restock (on cancel) -> notify

Notifications and cancellation restocks run only after the transition is
committed. Restocks go through the inventory engine, one audited INCREMENT
per order line, on behalf of the system actor.
"""

import json
import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace

import structlog
from protean import handle
from protean.core.unit_of_work import UnitOfWork
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from wholesale.audit.audit_record import AuditAction, AuditEntityType, AuditRecord
from wholesale.catalogue.product import Product
from wholesale.config import get_settings
from wholesale.domain import wholesale
from wholesale.identity.user import Role, build_actor, system_actor
from wholesale.inventory.engine import InventoryMutationEngine, InventoryOperation, get_inventory_engine
from wholesale.notifications.dispatcher import NotificationDispatcher, get_dispatcher
from wholesale.ordering.order import Order, OrderStatus
from wholesale.shared.concurrency import Deadline, RowLockRegistry, get_row_locks, run_with_retry
from wholesale.shared.errors import (
    InvalidTransitionError,
    OrderNotFoundError,
    UnauthorizedActorError,
    ValidationFailedError,
    WholesaleError,
)

logger = structlog.get_logger(__name__)

RESTOCK_REASON = "order cancelled"


@dataclass(frozen=True)
class OrderTransitionResult:
    order_id: str
    previous_status: str
    new_status: str
    requires_refund: bool
    tracking_number: str | None = None
    restocked: tuple[str, ...] = field(default_factory=tuple)


class OrderLifecycleController:
    def __init__(
        self,
        locks: RowLockRegistry | None = None,
        engine: InventoryMutationEngine | None = None,
        dispatcher: NotificationDispatcher | None = None,
        max_attempts: int | None = None,
        backoff: float | None = None,
        default_timeout: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        settings = get_settings()
        self.locks = locks or get_row_locks()
        self._engine = engine
        self._dispatcher = dispatcher
        self.max_attempts = max_attempts if max_attempts is not None else settings.max_mutation_attempts
        self.backoff = backoff if backoff is not None else settings.retry_backoff_seconds
        self.default_timeout = default_timeout if default_timeout is not None else settings.mutation_timeout_seconds
        self._sleep = sleep

    @property
    def engine(self) -> InventoryMutationEngine:
        return self._engine or get_inventory_engine()

    @property
    def dispatcher(self) -> NotificationDispatcher:
        return self._dispatcher or get_dispatcher()

    # ------------------------------------------------------------------
    # Authorisation
    # ------------------------------------------------------------------
    def _brands_of(self, order) -> set:
        repo = current_domain.repository_for(Product)
        brands = set()
        for product_id in order.product_ids():
            try:
                brands.add(repo.get(product_id).brand_id)
            except ObjectNotFoundError:
                continue
        return brands

    def _authorize(self, actor, order, target: OrderStatus) -> None:
        if actor.is_system or actor.role == Role.MASTER_ADMIN.value:
            return

        if actor.role == Role.BRAND_ADMIN.value:
            if any(actor.can_manage_brand(brand_id) for brand_id in self._brands_of(order)):
                return
            raise UnauthorizedActorError(
                "Cannot update orders of other brands",
                order_id=order.id,
                actor_role=actor.role,
                required_role="BRAND_ADMIN of a brand in this order",
            )

        if actor.role == Role.BUYER.value:
            if target == OrderStatus.CANCELLED and str(order.user_id) == str(actor.id) and order.can_be_cancelled():
                return
            raise UnauthorizedActorError(
                "Buyers may only cancel their own orders",
                order_id=order.id,
                actor_role=actor.role,
                requested_status=target.value,
                required_role="MASTER_ADMIN",
            )

        raise UnauthorizedActorError(
            "Unknown role",
            order_id=order.id,
            actor_role=actor.role,
        )

    # ------------------------------------------------------------------
    # Transition
    # ------------------------------------------------------------------
    def transition_order(
        self,
        order_id,
        target_status,
        actor,
        metadata=None,
        origin=None,
        timeout=None,
    ) -> OrderTransitionResult:
        metadata = dict(metadata or {})
        deadline = Deadline(timeout if timeout is not None else self.default_timeout)

        result, order_lines, buyer_id = run_with_retry(
            lambda: self._transition_once(order_id, target_status, actor, metadata, origin, deadline),
            operation="order.transition",
            max_attempts=self.max_attempts,
            backoff=self.backoff,
            sleep=self._sleep,
        )

        logger.info(
            "order_status_changed",
            order_id=result.order_id,
            previous_status=result.previous_status,
            new_status=result.new_status,
            requires_refund=result.requires_refund,
            actor_id=actor.id,
            actor_role=actor.role,
        )

        if result.new_status == OrderStatus.CANCELLED.value:
            result = replace(result, restocked=self._restock(result.order_id, order_lines, origin))

        self.dispatcher.notify_order_status_change(
            buyer_id=buyer_id,
            order_id=result.order_id,
            status=result.new_status,
            previous_status=result.previous_status,
            tracking_number=result.tracking_number,
        )
        return result

    def _transition_once(self, order_id, target_status, actor, metadata, origin, deadline):
        with self.locks.hold(f"order:{order_id}", timeout=deadline.remaining()):
            with UnitOfWork():
                order_repo = current_domain.repository_for(Order)
                try:
                    order = order_repo.get(order_id)
                except ObjectNotFoundError:
                    raise OrderNotFoundError(order_id) from None

                previous_status = order.status
                if not order.can_transition_to(target_status):
                    raise InvalidTransitionError(
                        previous_status,
                        getattr(target_status, "value", str(target_status)),
                        order.allowed_transitions(),
                    )
                target = OrderStatus(getattr(target_status, "value", target_status))

                self._authorize(actor, order, target)

                tracking_number = metadata.get("tracking_number")
                if target == OrderStatus.SHIPPED and not tracking_number:
                    raise ValidationFailedError(
                        "Tracking number is required for SHIPPED status",
                        field="tracking_number",
                    )

                requires_refund = target == OrderStatus.CANCELLED and order.requires_refund()
                deadline.check(f"transition of order {order_id}")

                order.transition_to(target, changed_by=str(actor.id), tracking_number=tracking_number)
                order_repo.add(order)

                current_domain.repository_for(AuditRecord).add(
                    AuditRecord.record(
                        actor=actor,
                        action=AuditAction.ORDER_STATUS_UPDATE,
                        entity_type=AuditEntityType.ORDER,
                        entity_id=order.id,
                        payload={
                            "order_number": order.order_number,
                            "previous_status": previous_status,
                            "new_status": order.status,
                            "requires_refund": requires_refund,
                            "metadata": metadata,
                        },
                        origin=origin,
                    )
                )

                lines = [(str(item.product_id), item.quantity) for item in order.items]
                result = OrderTransitionResult(
                    order_id=str(order.id),
                    previous_status=previous_status,
                    new_status=order.status,
                    requires_refund=requires_refund,
                    tracking_number=order.tracking_number,
                )
                return result, lines, str(order.user_id)

    def _restock(self, order_id, lines, origin) -> tuple[str, ...]:
        restocked = []
        for product_id, quantity in lines:
            try:
                self.engine.apply_inventory_change(
                    product_id,
                    InventoryOperation.INCREMENT,
                    quantity,
                    actor=system_actor(),
                    reason=RESTOCK_REASON,
                    origin=origin,
                    audit_action=AuditAction.INVENTORY_RESTORE_FOR_CANCELLATION,
                    context={"order_id": order_id, "restored_quantity": quantity},
                )
            except WholesaleError as exc:
                # The cancellation is committed; a line that cannot be restocked
                # is reported for manual reconciliation.
                logger.error(
                    "cancellation_restock_failed",
                    order_id=order_id,
                    product_id=product_id,
                    quantity=quantity,
                    error_kind=exc.kind.value,
                    error=exc.message,
                )
                continue
            restocked.append(product_id)
        return tuple(restocked)


_controller: OrderLifecycleController | None = None


def get_lifecycle_controller() -> OrderLifecycleController:
    global _controller
    if _controller is None:
        _controller = OrderLifecycleController()
    return _controller


def set_lifecycle_controller(controller: OrderLifecycleController) -> None:
    """Override the active controller (useful for tests)."""
    global _controller
    _controller = controller


def reset_lifecycle_controller() -> None:
    global _controller
    _controller = None


# ---------------------------------------------------------------------------
# Command
# ---------------------------------------------------------------------------
@wholesale.command(part_of="Order")
class TransitionOrder:
    """Move an order to a new lifecycle status."""

    order_id = Identifier(required=True)
    target_status = String(required=True, choices=OrderStatus)
    actor_id = String(required=True)
    actor_role = String(required=True)
    actor_brand_id = Identifier()
    metadata = Text()  # JSON: tracking_number, reason, ...
    origin = String(max_length=255)


@wholesale.command_handler(part_of=Order)
class OrderLifecycleHandler:
    @handle(TransitionOrder)
    def transition_order(self, command):
        metadata = json.loads(command.metadata) if command.metadata else {}
        actor = build_actor(command.actor_id, command.actor_role, command.actor_brand_id)
        return get_lifecycle_controller().transition_order(
            command.order_id,
            command.target_status,
            actor,
            metadata=metadata,
            origin=command.origin,
        )
