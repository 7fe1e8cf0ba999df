"""Low-stock alert policy.

Compares stock before and after a mutation and alerts administrators when
the level crosses down to (or below) the product's threshold. Repeated
mutations below the threshold do not alert again.
"""

import structlog

from wholesale.config import get_settings
from wholesale.inventory.engine import InventoryChangeResult
from wholesale.notifications.dispatcher import NotificationDispatcher, get_dispatcher

logger = structlog.get_logger(__name__)


class LowStockPolicy:
    def __init__(self, dispatcher: NotificationDispatcher | None = None, default_threshold: int | None = None) -> None:
        self._dispatcher = dispatcher
        self.default_threshold = (
            default_threshold if default_threshold is not None else get_settings().low_stock_threshold
        )

    @property
    def dispatcher(self) -> NotificationDispatcher:
        return self._dispatcher or get_dispatcher()

    def threshold_for(self, result: InventoryChangeResult) -> int:
        if result.low_stock_threshold is not None:
            return result.low_stock_threshold
        return self.default_threshold

    def crossed(self, result: InventoryChangeResult) -> bool:
        threshold = self.threshold_for(result)
        return result.previous_inventory > threshold >= result.new_inventory

    def evaluate(self, result: InventoryChangeResult) -> bool:
        """Dispatch an INVENTORY_ALERT if ``result`` crossed the threshold."""
        if not self.crossed(result):
            return False

        threshold = self.threshold_for(result)
        self.dispatcher.notify_inventory_alert(
            product_id=result.product_id,
            product_name=result.name or result.sku,
            current_stock=result.new_inventory,
            threshold=threshold,
        )
        logger.info(
            "low_stock_alert",
            product_id=result.product_id,
            sku=result.sku,
            new_inventory=result.new_inventory,
            threshold=threshold,
        )
        return True
