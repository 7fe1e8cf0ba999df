"""Inventory change: command and handler."""

from protean import handle
from protean.fields import Identifier, Integer, String

from wholesale.catalogue.product import Product
from wholesale.domain import wholesale
from wholesale.identity.user import build_actor
from wholesale.inventory.alerts import LowStockPolicy
from wholesale.inventory.engine import InventoryOperation, get_inventory_engine


@wholesale.command(part_of="Product")
class ChangeInventory:
    """Set, increase or decrease a product's stock level."""

    product_id = Identifier(required=True)
    operation = String(required=True, choices=InventoryOperation)
    quantity = Integer(required=True)
    reason = String(max_length=500)
    actor_id = String(required=True)
    actor_role = String(required=True)
    actor_brand_id = Identifier()
    origin = String(max_length=255)


@wholesale.command_handler(part_of=Product)
class InventoryChangeHandler:
    @handle(ChangeInventory)
    def change_inventory(self, command):
        actor = build_actor(command.actor_id, command.actor_role, command.actor_brand_id)
        result = get_inventory_engine().apply_inventory_change(
            command.product_id,
            command.operation,
            command.quantity,
            actor=actor,
            reason=command.reason,
            origin=command.origin,
        )
        LowStockPolicy().evaluate(result)
        return result
