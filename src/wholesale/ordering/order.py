"""Order aggregate: a buyer's order and its lifecycle.

State Machine:
    PENDING -> PAID -> PREPARING -> SHIPPED -> DELIVERED
    PENDING / PAID / PREPARING -> CANCELLED
    DELIVERED and CANCELLED are terminal.

The total is fixed when the order is placed and never recomputed.
"""

from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from uuid import uuid4

from protean.fields import (
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    ValueObject,
)

from wholesale.domain import wholesale
from wholesale.shared.errors import InvalidTransitionError


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    PREPARING = "PREPARING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


# State machine transition map
_VALID_TRANSITIONS = {
    OrderStatus.PENDING: (OrderStatus.PAID, OrderStatus.CANCELLED),
    OrderStatus.PAID: (OrderStatus.PREPARING, OrderStatus.CANCELLED),
    OrderStatus.PREPARING: (OrderStatus.SHIPPED, OrderStatus.CANCELLED),
    OrderStatus.SHIPPED: (OrderStatus.DELIVERED,),
    OrderStatus.DELIVERED: (),  # Terminal
    OrderStatus.CANCELLED: (),  # Terminal
}

_CANCELLABLE_STATES = {OrderStatus.PENDING, OrderStatus.PAID, OrderStatus.PREPARING}

# Payment captured, goods not yet shipped
_REFUNDABLE_STATES = {OrderStatus.PAID, OrderStatus.PREPARING}

_CENTS = Decimal("0.01")


def _as_status(value) -> OrderStatus | None:
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(value)
    except ValueError:
        return None


def valid_transitions(status) -> list[str]:
    current = _as_status(status)
    if current is None:
        return []
    return [s.value for s in _VALID_TRANSITIONS[current]]


def _money(amount: Decimal) -> float:
    return float(amount.quantize(_CENTS, rounding=ROUND_HALF_UP))


def _generate_order_number(now: datetime) -> str:
    return f"ORD-{now:%Y%m%d}-{uuid4().hex[:6].upper()}"


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@wholesale.value_object(part_of="Order")
class ShippingAddress:
    """Where the order goes, captured when it is placed."""

    recipient_name = String(required=True, max_length=100)
    phone = String(required=True, max_length=30)
    address = String(required=True, max_length=255)
    address_detail = String(max_length=255)
    zip_code = String(required=True, max_length=20)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@wholesale.entity(part_of="Order")
class OrderItem:
    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)
    variant = String(max_length=100)

    @property
    def line_total(self) -> Decimal:
        return Decimal(str(self.unit_price)) * self.quantity


# ---------------------------------------------------------------------------
# Aggregate
# ---------------------------------------------------------------------------
@wholesale.aggregate
class Order:
    """A buyer's order of one or more product lines."""

    user_id = Identifier(required=True)
    order_number = String(max_length=50)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    items = HasMany(OrderItem)
    total_amount = Float(default=0.0)
    shipping_address = ValueObject(ShippingAddress)
    tracking_number = String(max_length=100)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def create(cls, user_id, items, shipping_address=None):
        """Place a PENDING order. ``items`` are OrderItems or dicts of their fields."""
        from wholesale.ordering.events import OrderPlaced

        order_items = [item if isinstance(item, OrderItem) else OrderItem(**item) for item in items]
        if isinstance(shipping_address, dict):
            shipping_address = ShippingAddress(**shipping_address)

        now = datetime.now(UTC)
        order = cls(
            user_id=user_id,
            order_number=_generate_order_number(now),
            status=OrderStatus.PENDING.value,
            items=order_items,
            shipping_address=shipping_address,
            created_at=now,
            updated_at=now,
        )
        order.total_amount = order.calculate_total()

        order.raise_(
            OrderPlaced(
                order_id=order.id,
                order_number=order.order_number,
                user_id=user_id,
                item_count=len(order_items),
                total_amount=order.total_amount,
                placed_at=now,
            )
        )
        return order

    def calculate_total(self) -> float:
        return _money(sum((item.line_total for item in self.items), Decimal("0")))

    def can_transition_to(self, new_status) -> bool:
        current = _as_status(self.status)
        target = _as_status(new_status)
        if current is None or target is None:
            return False
        return target in _VALID_TRANSITIONS[current]

    def allowed_transitions(self) -> list[str]:
        return valid_transitions(self.status)

    def can_be_cancelled(self) -> bool:
        return _as_status(self.status) in _CANCELLABLE_STATES

    def requires_refund(self) -> bool:
        return _as_status(self.status) in _REFUNDABLE_STATES

    def product_ids(self) -> list[str]:
        return [str(item.product_id) for item in self.items]

    def transition_to(self, new_status, changed_by, tracking_number=None) -> None:
        from wholesale.ordering.events import OrderStatusChanged

        target = _as_status(new_status)
        if not self.can_transition_to(new_status):
            raise InvalidTransitionError(
                self.status,
                target.value if target else str(new_status),
                self.allowed_transitions(),
            )

        previous_status = self.status
        self.status = target.value
        if tracking_number:
            self.tracking_number = tracking_number
        self.updated_at = datetime.now(UTC)

        self.raise_(
            OrderStatusChanged(
                order_id=self.id,
                user_id=self.user_id,
                previous_status=previous_status,
                new_status=self.status,
                tracking_number=self.tracking_number,
                changed_by=changed_by,
                changed_at=self.updated_at,
            )
        )
