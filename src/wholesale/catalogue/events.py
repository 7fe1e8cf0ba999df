"""Domain events for the Product aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from wholesale.domain import wholesale


@wholesale.event(part_of="Product")
class ProductAdded:
    """A product was put into the catalogue with its opening stock."""

    __version__ = 1

    product_id: Identifier(required=True)
    sku: String(required=True)
    brand_id: Identifier(required=True)
    inventory: Integer(required=True)
    status: String(required=True)
    added_at: DateTime(required=True)


@wholesale.event(part_of="Product")
class InventoryChanged:
    """Stock level of a product changed through the inventory engine."""

    __version__ = 1

    product_id: Identifier(required=True)
    sku: String(required=True)
    brand_id: Identifier(required=True)
    operation: String(required=True)
    quantity: Integer(required=True)
    previous_inventory: Integer(required=True)
    new_inventory: Integer(required=True)
    previous_status: String(required=True)
    new_status: String(required=True)
    reason: String()
    changed_by: String(required=True)
    changed_at: DateTime(required=True)
