"""Inventory mutation engine.

Applies one SET / INCREMENT / DECREMENT to a product's stock:

    row lock -> unit of work -> read -> authorise -> compute -> reject or
    write inventory + status recommendation + audit record -> commit

Every check runs before anything is written, so a rejected or timed-out
call leaves no trace. Transient storage conflicts are retried with
exponential backoff; business rejections propagate immediately.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

import structlog
from protean.core.unit_of_work import UnitOfWork
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from wholesale.audit.audit_record import AuditAction, AuditEntityType, AuditRecord
from wholesale.catalogue.product import Product
from wholesale.config import get_settings
from wholesale.shared.concurrency import Deadline, RowLockRegistry, get_row_locks, run_with_retry
from wholesale.shared.errors import (
    InsufficientInventoryError,
    NegativeInventoryError,
    ProductNotFoundError,
    UnauthorizedActorError,
    ValidationFailedError,
)

logger = structlog.get_logger(__name__)


class InventoryOperation(Enum):
    SET = "SET"
    INCREMENT = "INCREMENT"
    DECREMENT = "DECREMENT"

    @classmethod
    def parse(cls, value) -> "InventoryOperation":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            raise ValidationFailedError(
                f"Unknown inventory operation {value!r}",
                operation=value,
                allowed_operations=[op.value for op in cls],
            ) from None


@dataclass(frozen=True)
class InventoryChangeResult:
    product_id: str
    sku: str
    brand_id: str
    operation: str
    quantity: int
    previous_inventory: int
    new_inventory: int
    previous_status: str
    new_status: str
    low_stock_threshold: int | None = None
    name: str | None = None

    @property
    def status_changed(self) -> bool:
        return self.previous_status != self.new_status


def compute_new_inventory(operation: InventoryOperation, current: int, quantity: int) -> int:
    if operation == InventoryOperation.SET:
        return quantity
    if operation == InventoryOperation.INCREMENT:
        return current + quantity
    return current - quantity


class InventoryMutationEngine:
    """Serialised, audited stock mutations for a single product row."""

    def __init__(
        self,
        locks: RowLockRegistry | None = None,
        max_attempts: int | None = None,
        backoff: float | None = None,
        default_timeout: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        settings = get_settings()
        self.locks = locks or get_row_locks()
        self.max_attempts = max_attempts if max_attempts is not None else settings.max_mutation_attempts
        self.backoff = backoff if backoff is not None else settings.retry_backoff_seconds
        self.default_timeout = default_timeout if default_timeout is not None else settings.mutation_timeout_seconds
        self._sleep = sleep

    def apply_inventory_change(
        self,
        product_id,
        operation,
        quantity,
        *,
        actor,
        reason=None,
        origin=None,
        timeout=None,
        audit_action=AuditAction.INVENTORY_UPDATE,
        context=None,
    ) -> InventoryChangeResult:
        operation = InventoryOperation.parse(operation)
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise ValidationFailedError("Quantity must be an integer", quantity=quantity)
        if quantity < 0 and operation != InventoryOperation.SET:
            raise ValidationFailedError(
                "Quantity must not be negative",
                operation=operation.value,
                quantity=quantity,
            )

        deadline = Deadline(timeout if timeout is not None else self.default_timeout)

        result = run_with_retry(
            lambda: self._apply_once(
                product_id,
                operation,
                quantity,
                actor=actor,
                reason=reason,
                origin=origin,
                deadline=deadline,
                audit_action=audit_action,
                context=context,
            ),
            operation=f"inventory.{operation.value.lower()}",
            max_attempts=self.max_attempts,
            backoff=self.backoff,
            sleep=self._sleep,
        )

        logger.info(
            "inventory_changed",
            product_id=result.product_id,
            operation=result.operation,
            quantity=result.quantity,
            previous_inventory=result.previous_inventory,
            new_inventory=result.new_inventory,
            previous_status=result.previous_status,
            new_status=result.new_status,
            actor_id=actor.id,
        )
        return result

    def _apply_once(
        self,
        product_id,
        operation,
        quantity,
        *,
        actor,
        reason,
        origin,
        deadline,
        audit_action,
        context,
    ) -> InventoryChangeResult:
        with self.locks.hold(f"product:{product_id}", timeout=deadline.remaining()):
            with UnitOfWork():
                product_repo = current_domain.repository_for(Product)
                try:
                    product = product_repo.get(product_id)
                except ObjectNotFoundError:
                    raise ProductNotFoundError(product_id) from None

                if not (actor.is_system or actor.can_manage_brand(product.brand_id)):
                    logger.warning(
                        "inventory_change_unauthorized",
                        product_id=product_id,
                        actor_id=actor.id,
                        actor_role=actor.role,
                    )
                    raise UnauthorizedActorError(
                        "Actor may not change inventory of this product",
                        product_id=product_id,
                        brand_id=product.brand_id,
                        actor_role=actor.role,
                        required_role="MASTER_ADMIN or BRAND_ADMIN of the owning brand",
                    )

                previous_inventory = product.inventory
                previous_status = product.status
                new_inventory = compute_new_inventory(operation, previous_inventory, quantity)

                if operation == InventoryOperation.DECREMENT and new_inventory < 0:
                    raise InsufficientInventoryError(product_id, previous_inventory, quantity)
                if new_inventory < 0:
                    raise NegativeInventoryError(product_id, new_inventory)

                deadline.check(f"inventory change on {product_id}")

                product.record_inventory_change(
                    new_inventory,
                    operation=operation.value,
                    quantity=quantity,
                    changed_by=actor.id,
                    reason=reason,
                )
                product_repo.add(product)

                payload = {
                    "sku": product.sku,
                    "operation": operation.value,
                    "quantity": quantity,
                    "reason": reason,
                    "previous_inventory": previous_inventory,
                    "new_inventory": product.inventory,
                    "previous_status": previous_status,
                    "new_status": product.status,
                    "status_changed": previous_status != product.status,
                }
                if context:
                    payload.update(context)
                current_domain.repository_for(AuditRecord).add(
                    AuditRecord.record(
                        actor=actor,
                        action=audit_action,
                        entity_type=AuditEntityType.PRODUCT,
                        entity_id=product.id,
                        payload=payload,
                        origin=origin,
                    )
                )

                return InventoryChangeResult(
                    product_id=product.id,
                    sku=product.sku,
                    brand_id=product.brand_id,
                    operation=operation.value,
                    quantity=quantity,
                    previous_inventory=previous_inventory,
                    new_inventory=product.inventory,
                    previous_status=previous_status,
                    new_status=product.status,
                    low_stock_threshold=product.low_stock_threshold,
                    name=product.name,
                )


_engine: InventoryMutationEngine | None = None


def get_inventory_engine() -> InventoryMutationEngine:
    global _engine
    if _engine is None:
        _engine = InventoryMutationEngine()
    return _engine


def set_inventory_engine(engine: InventoryMutationEngine) -> None:
    """Override the active engine (useful for tests)."""
    global _engine
    _engine = engine


def reset_inventory_engine() -> None:
    global _engine
    _engine = None
