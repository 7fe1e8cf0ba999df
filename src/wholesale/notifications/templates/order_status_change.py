"""Order status change template: tells the buyer where their order is."""

from wholesale.notifications.notification import NotificationDraft, NotificationType

STATUS_LABELS = {
    "PENDING": "awaiting payment",
    "PAID": "paid",
    "PREPARING": "being prepared",
    "SHIPPED": "shipped",
    "DELIVERED": "delivered",
    "CANCELLED": "cancelled",
}


def status_label(status: str) -> str:
    return STATUS_LABELS.get(status, status)


class OrderStatusChangeTemplate:
    notification_type = NotificationType.ORDER_STATUS_CHANGE.value

    @staticmethod
    def render(context: dict) -> NotificationDraft:
        order_id = context["order_id"]
        order_number = context.get("order_number") or order_id
        status = context["status"]
        message = f"Order #{order_number} is now {status_label(status)}."
        if context.get("tracking_number"):
            message += f" Tracking number: {context['tracking_number']}."
        data = {"status": status, "previous_status": context.get("previous_status")}
        if context.get("tracking_number"):
            data["tracking_number"] = context["tracking_number"]
        return NotificationDraft(
            notification_type=OrderStatusChangeTemplate.notification_type,
            title="Order status changed",
            message=message,
            order_id=order_id,
            data=data,
        )
