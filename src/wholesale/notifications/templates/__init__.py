"""Template registry: maps NotificationType to template classes.

Each template renders a ``NotificationDraft`` from event context data.
"""

from wholesale.notifications.notification import NotificationDraft, NotificationType
from wholesale.notifications.templates.inventory_alert import InventoryAlertTemplate
from wholesale.notifications.templates.new_order import NewOrderTemplate
from wholesale.notifications.templates.order_status_change import OrderStatusChangeTemplate

TEMPLATE_REGISTRY: dict[str, type] = {
    NotificationType.ORDER_STATUS_CHANGE.value: OrderStatusChangeTemplate,
    NotificationType.NEW_ORDER.value: NewOrderTemplate,
    NotificationType.INVENTORY_ALERT.value: InventoryAlertTemplate,
}


def get_template(notification_type: str):
    """Look up a template class by notification type string."""
    template_cls = TEMPLATE_REGISTRY.get(notification_type)
    if template_cls is None:
        raise ValueError(f"No template registered for notification type: {notification_type}")
    return template_cls


def render(notification_type: str, context: dict) -> NotificationDraft:
    return get_template(notification_type).render(context)
