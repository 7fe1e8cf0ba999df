"""Product aggregate: sellable item of one brand with a single stock level.

Stock is only mutated through the inventory engine, which persists the
availability status recommendation together with every inventory write.
"""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from protean.fields import DateTime, Float, Identifier, Integer, String

from wholesale.domain import wholesale
from wholesale.identity.user import Role


class ProductStatus(Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    OUT_OF_STOCK = "OUT_OF_STOCK"


# (minimum quantity, multiplier), highest tier first; only the first match applies
_VOLUME_TIERS = (
    (100, Decimal("0.85")),
    (50, Decimal("0.90")),
    (10, Decimal("0.95")),
)
_BUYER_MULTIPLIER = Decimal("0.98")
_CENTS = Decimal("0.01")


@wholesale.aggregate
class Product:
    """Product aggregate root."""

    sku: String(required=True, max_length=100)
    brand_id: Identifier(required=True)
    name: String(required=True, max_length=255)
    inventory: Integer(default=0, min_value=0)
    status: String(choices=ProductStatus, default=ProductStatus.ACTIVE.value)
    base_price: Float(required=True, min_value=0.01)
    low_stock_threshold: Integer(min_value=0)
    created_at: DateTime(default=datetime.now)
    updated_at: DateTime(default=datetime.now)

    @classmethod
    def create(
        cls,
        sku,
        brand_id,
        name,
        base_price,
        inventory=0,
        status=None,
        low_stock_threshold=None,
    ):
        from wholesale.catalogue.events import ProductAdded

        now = datetime.now()
        product = cls(
            sku=sku,
            brand_id=brand_id,
            name=name,
            base_price=base_price,
            inventory=inventory,
            status=status or ProductStatus.ACTIVE.value,
            low_stock_threshold=low_stock_threshold,
            created_at=now,
            updated_at=now,
        )
        product.raise_(
            ProductAdded(
                product_id=product.id,
                sku=sku,
                brand_id=brand_id,
                inventory=product.inventory,
                status=product.status,
                added_at=now,
            )
        )
        return product

    def is_orderable(self, quantity) -> bool:
        return self.status == ProductStatus.ACTIVE.value and self.inventory >= quantity

    def calculate_price(self, quantity, role) -> float:
        """Unit price for ``quantity`` units bought by someone holding ``role``.

        The highest applicable volume tier is applied first, then the buyer
        discount. The result is rounded half-up to cents.
        """
        price = Decimal(str(self.base_price))
        for minimum, multiplier in _VOLUME_TIERS:
            if quantity >= minimum:
                price *= multiplier
                break

        role_value = role.value if isinstance(role, Role) else role
        if role_value == Role.BUYER.value:
            price *= _BUYER_MULTIPLIER

        return float(price.quantize(_CENTS, rounding=ROUND_HALF_UP))

    def should_update_status(self) -> str:
        if self.inventory == 0 and self.status == ProductStatus.ACTIVE.value:
            return ProductStatus.OUT_OF_STOCK.value
        if self.inventory > 0 and self.status == ProductStatus.OUT_OF_STOCK.value:
            return ProductStatus.ACTIVE.value
        return self.status

    def record_inventory_change(self, new_inventory, operation, quantity, changed_by, reason=None):
        """Apply an already-validated stock level and the status it implies."""
        from wholesale.catalogue.events import InventoryChanged

        previous_inventory = self.inventory
        previous_status = self.status

        self.inventory = new_inventory
        self.status = self.should_update_status()
        self.updated_at = datetime.now()

        self.raise_(
            InventoryChanged(
                product_id=self.id,
                sku=self.sku,
                brand_id=self.brand_id,
                operation=operation,
                quantity=quantity,
                previous_inventory=previous_inventory,
                new_inventory=self.inventory,
                previous_status=previous_status,
                new_status=self.status,
                reason=reason,
                changed_by=changed_by,
                changed_at=self.updated_at,
            )
        )
