"""New order template: tells administrators that an order came in."""

from wholesale.notifications.notification import NotificationDraft, NotificationType


class NewOrderTemplate:
    notification_type = NotificationType.NEW_ORDER.value

    @staticmethod
    def render(context: dict) -> NotificationDraft:
        order_id = context["order_id"]
        order_number = context.get("order_number") or order_id
        return NotificationDraft(
            notification_type=NewOrderTemplate.notification_type,
            title="New order",
            message=f"A new order was placed (order #{order_number}).",
            order_id=order_id,
            data={
                "buyer_id": context.get("buyer_id"),
                "total_amount": context.get("total_amount"),
            },
        )
