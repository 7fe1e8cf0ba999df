"""Inventory alert template: stock of a product fell to its low-stock threshold."""

from wholesale.notifications.notification import NotificationDraft, NotificationType


class InventoryAlertTemplate:
    notification_type = NotificationType.INVENTORY_ALERT.value

    @staticmethod
    def render(context: dict) -> NotificationDraft:
        product_id = context["product_id"]
        product_name = context.get("product_name") or context.get("sku") or product_id
        current_stock = context.get("current_stock", 0)
        threshold = context.get("threshold", 0)
        return NotificationDraft(
            notification_type=InventoryAlertTemplate.notification_type,
            title="Low stock",
            message=f"{product_name} is running low (current: {current_stock}, threshold: {threshold}).",
            product_id=product_id,
            data={
                "product_name": product_name,
                "current_stock": current_stock,
                "threshold": threshold,
            },
        )
