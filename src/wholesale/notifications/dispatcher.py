"""Notification dispatcher.

Write side: address a ``NotificationDraft`` to users or roles and store one
record per recipient key. Role records live under ``role:<ROLE>`` and are
visible to every holder of the role at read time.

Read side: polling clients ask for their own records merged with their
role's records, newest first, de-duplicated and optionally limited to what
arrived after ``since``. Delivery is pull-based and at-most-once within the
retention window.
"""

from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from uuid import uuid4

import structlog

from wholesale.identity.directory import RoleDirectory, UserRoleDirectory
from wholesale.identity.user import ADMIN_ROLES
from wholesale.notifications.notification import NotificationDraft, NotificationRecord, role_key
from wholesale.notifications.store import NotificationStore, get_notification_store
from wholesale.notifications.templates import render

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class NotificationDispatcher:
    def __init__(
        self,
        store: NotificationStore | None = None,
        role_directory: RoleDirectory | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store or get_notification_store()
        self.role_directory = role_directory
        self.clock = clock

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------
    def _store(self, key: str, draft: NotificationDraft) -> NotificationRecord:
        record = NotificationRecord(
            id=str(uuid4()),
            recipient_key=key,
            notification_type=draft.notification_type,
            title=draft.title,
            message=draft.message,
            created_at=self.clock(),
            order_id=draft.order_id,
            product_id=draft.product_id,
            data=dict(draft.data),
        )
        self.store.append(record)
        logger.debug(
            "notification_stored",
            recipient_key=key,
            notification_type=draft.notification_type,
            notification_id=record.id,
        )
        return record

    def add_for_user(self, user_id: str, draft: NotificationDraft) -> NotificationRecord:
        return self._store(str(user_id), draft)

    def add_for_users(self, user_ids: Iterable[str], draft: NotificationDraft) -> list[NotificationRecord]:
        return [self.add_for_user(user_id, draft) for user_id in user_ids]

    def add_for_roles(self, roles: Iterable, draft: NotificationDraft) -> list[NotificationRecord]:
        return [self._store(role_key(role), draft) for role in roles]

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------
    def _resolve_role(self, user_id: str, user_role: str | None) -> str | None:
        if user_role is None and self.role_directory is not None:
            return self.role_directory.role_of(user_id)
        return user_role

    def get_notifications(self, user_id: str, user_role=None, since: datetime | None = None) -> list[NotificationRecord]:
        user_role = self._resolve_role(str(user_id), user_role)

        merged = list(self.store.records(str(user_id)))
        if user_role:
            merged.extend(self.store.records(role_key(user_role)))
        merged.sort(key=lambda r: r.created_at, reverse=True)

        if since is not None:
            if since.tzinfo is None:
                since = since.replace(tzinfo=UTC)
            merged = [r for r in merged if r.created_at > since]

        seen = set()
        unique = []
        for record in merged:
            if record.dedup_key in seen:
                continue
            seen.add(record.dedup_key)
            unique.append(record)
        return unique

    def get_unread_count(self, user_id: str, user_role=None) -> int:
        return sum(1 for r in self.get_notifications(user_id, user_role) if not r.read)

    def mark_as_read(self, recipient_key: str, notification_id: str) -> None:
        if self.store.mark_read(str(recipient_key), notification_id):
            return
        key = self.store.find_role_key(notification_id)
        if key is not None:
            self.store.mark_read(key, notification_id)

    def mark_all_as_read(self, recipient_key: str, role=None) -> None:
        self.store.mark_all_read(str(recipient_key))
        role = self._resolve_role(str(recipient_key), role)
        if role:
            self.store.mark_all_read(role_key(role))

    def clear_user_notifications(self, recipient_key: str) -> None:
        self.store.clear(str(recipient_key))

    def poll(self, user_id: str, user_role=None, since: datetime | None = None) -> dict:
        """One polling round: what is new since ``since`` and how much is unread."""
        notifications = self.get_notifications(user_id, user_role, since)
        return {
            "notifications": [n.to_dict() for n in notifications],
            "unread_count": self.get_unread_count(user_id, user_role),
            "timestamp": self.clock().isoformat(),
        }

    # ------------------------------------------------------------------
    # Helpers for the domain's own notifications
    # ------------------------------------------------------------------
    def notify_order_status_change(
        self, buyer_id, order_id, status, previous_status=None, tracking_number=None
    ) -> NotificationRecord:
        draft = render(
            "ORDER_STATUS_CHANGE",
            {
                "order_id": str(order_id),
                "status": status,
                "previous_status": previous_status,
                "tracking_number": tracking_number,
            },
        )
        return self.add_for_user(buyer_id, draft)

    def notify_new_order(self, order_id, buyer_id, total_amount=None) -> list[NotificationRecord]:
        draft = render(
            "NEW_ORDER",
            {"order_id": str(order_id), "buyer_id": str(buyer_id), "total_amount": total_amount},
        )
        return self.add_for_roles(ADMIN_ROLES, draft)

    def notify_inventory_alert(
        self, product_id, product_name, current_stock, threshold
    ) -> list[NotificationRecord]:
        draft = render(
            "INVENTORY_ALERT",
            {
                "product_id": str(product_id),
                "product_name": product_name,
                "current_stock": current_stock,
                "threshold": threshold,
            },
        )
        return self.add_for_roles(ADMIN_ROLES, draft)


_dispatcher: NotificationDispatcher | None = None


def get_dispatcher() -> NotificationDispatcher:
    """Return the current dispatcher, built over the current store on first use."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = NotificationDispatcher(role_directory=UserRoleDirectory())
    return _dispatcher


def set_dispatcher(dispatcher: NotificationDispatcher) -> None:
    """Override the active dispatcher (useful for tests)."""
    global _dispatcher
    _dispatcher = dispatcher


def reset_dispatcher() -> None:
    global _dispatcher
    _dispatcher = None
