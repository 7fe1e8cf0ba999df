"""AuditRecord aggregate: append-only trail of successful mutations.

One record is written in the same unit of work as the mutation it
describes. Records are never updated or deleted.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean.fields import DateTime, Identifier, String, Text

from wholesale.domain import wholesale


class AuditAction(Enum):
    INVENTORY_UPDATE = "INVENTORY_UPDATE"
    INVENTORY_RESTORE_FOR_CANCELLATION = "INVENTORY_RESTORE_FOR_CANCELLATION"
    ORDER_CREATE = "ORDER_CREATE"
    ORDER_STATUS_UPDATE = "ORDER_STATUS_UPDATE"


class AuditEntityType(Enum):
    PRODUCT = "Product"
    ORDER = "Order"


@wholesale.aggregate
class AuditRecord:
    actor_id = String(required=True, max_length=255)
    actor_role = String(required=True, max_length=50)
    action = String(required=True, choices=AuditAction)
    entity_type = String(required=True, choices=AuditEntityType)
    entity_id = Identifier(required=True)
    payload = Text()  # JSON
    origin = String(max_length=255)
    occurred_at = DateTime(required=True)

    @classmethod
    def record(cls, actor, action, entity_type, entity_id, payload=None, origin=None):
        return cls(
            actor_id=actor.id,
            actor_role=actor.role,
            action=action.value if isinstance(action, AuditAction) else action,
            entity_type=entity_type.value if isinstance(entity_type, AuditEntityType) else entity_type,
            entity_id=entity_id,
            payload=json.dumps(payload or {}, default=str),
            origin=origin,
            occurred_at=datetime.now(UTC),
        )

    @property
    def details(self) -> dict:
        return json.loads(self.payload) if self.payload else {}
