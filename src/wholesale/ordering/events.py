"""Domain events for the Order aggregate."""

from protean.fields import DateTime, Float, Identifier, Integer, String

from wholesale.domain import wholesale


@wholesale.event(part_of="Order")
class OrderPlaced:
    """A buyer placed a new order, which starts out PENDING."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    user_id = Identifier(required=True)
    item_count = Integer(required=True)
    total_amount = Float(required=True)
    placed_at = DateTime(required=True)


@wholesale.event(part_of="Order")
class OrderStatusChanged:
    """An order moved along its lifecycle."""

    __version__ = 1

    order_id = Identifier(required=True)
    user_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    tracking_number = String()
    changed_by = String(required=True)
    changed_at = DateTime(required=True)
