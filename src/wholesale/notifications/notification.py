"""Notifications: short-lived, user- or role-addressed messages for polling clients.

``NotificationRecord`` is the immutable value the dispatcher and stores hand
around; the ``Notification`` aggregate is its durable form when notifications
are kept in a repository. Only the read flag ever changes after creation.
"""

import json
from dataclasses import asdict, dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum

from protean.fields import Boolean, DateTime, Identifier, String, Text

from wholesale.domain import wholesale

ROLE_KEY_PREFIX = "role:"


class NotificationType(Enum):
    ORDER_STATUS_CHANGE = "ORDER_STATUS_CHANGE"
    NEW_ORDER = "NEW_ORDER"
    INVENTORY_ALERT = "INVENTORY_ALERT"
    SYSTEM = "SYSTEM"


def role_key(role) -> str:
    value = role.value if isinstance(role, Enum) else role
    return f"{ROLE_KEY_PREFIX}{value}"


def is_role_key(key: str) -> bool:
    return key.startswith(ROLE_KEY_PREFIX)


@dataclass(frozen=True)
class NotificationDraft:
    """What to say, before it is addressed to anyone."""

    notification_type: str
    title: str
    message: str
    order_id: str | None = None
    product_id: str | None = None
    data: dict = field(default_factory=dict)


@dataclass(frozen=True)
class NotificationRecord:
    id: str
    recipient_key: str
    notification_type: str
    title: str
    message: str
    created_at: datetime
    read: bool = False
    order_id: str | None = None
    product_id: str | None = None
    data: dict = field(default_factory=dict)

    @property
    def dedup_key(self) -> tuple[str, str]:
        """Identity of the underlying event: a repeat of it is shown once."""
        return (self.notification_type, self.order_id or self.product_id or self.message)

    def mark_read(self) -> "NotificationRecord":
        return self if self.read else replace(self, read=True)

    def to_dict(self) -> dict:
        payload = asdict(self)
        payload["created_at"] = self.created_at.isoformat()
        return payload


@wholesale.aggregate
class Notification:
    """Durable notification addressed to a user id or a ``role:<ROLE>`` key."""

    recipient_key = String(required=True, max_length=255)
    notification_type = String(required=True, choices=NotificationType)
    title = String(required=True, max_length=255)
    message = Text(required=True)
    created_at = DateTime(required=True)
    read = Boolean(default=False)
    order_id = Identifier()
    product_id = Identifier()
    data = Text()  # JSON

    @classmethod
    def from_record(cls, record: NotificationRecord) -> "Notification":
        return cls(
            id=record.id,
            recipient_key=record.recipient_key,
            notification_type=record.notification_type,
            title=record.title,
            message=record.message,
            created_at=record.created_at,
            read=record.read,
            order_id=record.order_id,
            product_id=record.product_id,
            data=json.dumps(record.data, default=str),
        )

    def to_record(self) -> NotificationRecord:
        created_at = self.created_at
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=UTC)
        return NotificationRecord(
            id=str(self.id),
            recipient_key=self.recipient_key,
            notification_type=self.notification_type,
            title=self.title,
            message=self.message,
            created_at=created_at,
            read=bool(self.read),
            order_id=str(self.order_id) if self.order_id else None,
            product_id=str(self.product_id) if self.product_id else None,
            data=json.loads(self.data) if self.data else {},
        )

    def mark_read(self) -> None:
        self.read = True
