"""Notification stores: recipient key -> notifications, newest first.

Each key holds at most ``cap`` records (oldest evicted first). Records older
than the retention window are dropped whenever that key is accessed.

Provides get_notification_store() / set_notification_store() to swap
implementations:
- InMemoryNotificationStore for development and testing
- RepositoryNotificationStore for durable storage through the domain's
  repositories

The store is selected with the ``NOTIFICATION_STORE`` environment variable
(``memory`` or ``repository``).
"""

import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import structlog
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from wholesale.config import get_settings
from wholesale.notifications.notification import Notification, NotificationRecord, is_role_key

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class NotificationStore(ABC):
    """Port for keeping notification records per recipient key."""

    def __init__(
        self,
        cap: int = 100,
        ttl: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.cap = cap
        self.ttl = ttl
        self.clock = clock

    def _is_live(self, record: NotificationRecord, now: datetime) -> bool:
        return now - record.created_at < self.ttl

    @abstractmethod
    def append(self, record: NotificationRecord) -> NotificationRecord:
        """Store ``record`` under its recipient key."""

    @abstractmethod
    def records(self, key: str) -> tuple[NotificationRecord, ...]:
        """Live records for ``key``, newest first."""

    @abstractmethod
    def mark_read(self, key: str, notification_id: str) -> bool:
        """Mark one record read. Returns False when ``key`` has no such record."""

    @abstractmethod
    def mark_all_read(self, key: str) -> int:
        """Mark every record of ``key`` read. Returns how many changed."""

    @abstractmethod
    def find_role_key(self, notification_id: str) -> str | None:
        """Role key holding ``notification_id``, if any."""

    @abstractmethod
    def clear(self, key: str) -> None:
        """Forget every record of ``key``."""


class InMemoryNotificationStore(NotificationStore):
    """Process-local store.

    Each key maps to an immutable tuple. Writers build a new tuple and swap it
    in under a lock; readers take the current tuple without locking.
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._snapshots: dict[str, tuple[NotificationRecord, ...]] = {}
        self._write_lock = threading.Lock()

    def append(self, record: NotificationRecord) -> NotificationRecord:
        now = self.clock()
        with self._write_lock:
            current = self._snapshots.get(record.recipient_key, ())
            live = tuple(r for r in current if self._is_live(r, now))
            self._snapshots[record.recipient_key] = ((record,) + live)[: self.cap]
        return record

    def records(self, key: str) -> tuple[NotificationRecord, ...]:
        snapshot = self._snapshots.get(key, ())
        now = self.clock()
        live = tuple(r for r in snapshot if self._is_live(r, now))
        if len(live) != len(snapshot):
            with self._write_lock:
                current = tuple(r for r in self._snapshots.get(key, ()) if self._is_live(r, now))
                if current:
                    self._snapshots[key] = current
                else:
                    self._snapshots.pop(key, None)
        return live

    def _replace(self, key: str, update: Callable[[NotificationRecord], NotificationRecord]) -> int:
        changed = 0
        with self._write_lock:
            current = self._snapshots.get(key)
            if not current:
                return 0
            updated = []
            for record in current:
                new = update(record)
                if new is not record:
                    changed += 1
                updated.append(new)
            if changed:
                self._snapshots[key] = tuple(updated)
        return changed

    def mark_read(self, key: str, notification_id: str) -> bool:
        if not any(r.id == notification_id for r in self._snapshots.get(key, ())):
            return False
        self._replace(key, lambda r: r.mark_read() if r.id == notification_id else r)
        return True

    def mark_all_read(self, key: str) -> int:
        return self._replace(key, lambda r: r.mark_read())

    def find_role_key(self, notification_id: str) -> str | None:
        for key, snapshot in list(self._snapshots.items()):
            if is_role_key(key) and any(r.id == notification_id for r in snapshot):
                return key
        return None

    def clear(self, key: str) -> None:
        with self._write_lock:
            self._snapshots.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._snapshots)


class RepositoryNotificationStore(NotificationStore):
    """Durable store backed by the Notification aggregate's repository."""

    def _records_for(self, key: str) -> list[Notification]:
        repo = current_domain.repository_for(Notification)
        return (
            repo._dao.query.filter(recipient_key=key)
            .order_by("-created_at")
            .limit(self.cap + 1)
            .all()
            .items
        )

    def append(self, record: NotificationRecord) -> NotificationRecord:
        repo = current_domain.repository_for(Notification)
        repo.add(Notification.from_record(record))
        self._prune(record.recipient_key)
        return record

    def _prune(self, key: str) -> list[Notification]:
        repo = current_domain.repository_for(Notification)
        now = self.clock()
        kept = []
        for notification in self._records_for(key):
            if len(kept) < self.cap and self._is_live(notification.to_record(), now):
                kept.append(notification)
            else:
                repo._dao.delete(notification)
        return kept

    def records(self, key: str) -> tuple[NotificationRecord, ...]:
        return tuple(n.to_record() for n in self._prune(key))

    def mark_read(self, key: str, notification_id: str) -> bool:
        repo = current_domain.repository_for(Notification)
        try:
            notification = repo.get(notification_id)
        except ObjectNotFoundError:
            return False
        if notification.recipient_key != key:
            return False
        if not notification.read:
            notification.mark_read()
            repo.add(notification)
        return True

    def mark_all_read(self, key: str) -> int:
        repo = current_domain.repository_for(Notification)
        changed = 0
        for notification in self._prune(key):
            if not notification.read:
                notification.mark_read()
                repo.add(notification)
                changed += 1
        return changed

    def find_role_key(self, notification_id: str) -> str | None:
        repo = current_domain.repository_for(Notification)
        try:
            notification = repo.get(notification_id)
        except ObjectNotFoundError:
            return None
        return notification.recipient_key if is_role_key(notification.recipient_key) else None

    def clear(self, key: str) -> None:
        repo = current_domain.repository_for(Notification)
        for notification in self._records_for(key):
            repo._dao.delete(notification)


_current_store: NotificationStore | None = None


def build_notification_store(kind: str | None = None) -> NotificationStore:
    settings = get_settings()
    kind = (kind or settings.notification_store).lower()
    options = {"cap": settings.notification_cap, "ttl": timedelta(hours=settings.notification_ttl_hours)}
    if kind == "memory":
        return InMemoryNotificationStore(**options)
    if kind == "repository":
        return RepositoryNotificationStore(**options)
    raise ValueError(f"Unknown notification store: {kind!r} (expected 'memory' or 'repository')")


def get_notification_store() -> NotificationStore:
    """Return the current notification store. Defaults to NOTIFICATION_STORE."""
    global _current_store
    if _current_store is None:
        _current_store = build_notification_store()
        logger.info("notification_store_selected", store=type(_current_store).__name__)
    return _current_store


def set_notification_store(store: NotificationStore) -> None:
    """Override the active notification store (useful for tests)."""
    global _current_store
    _current_store = store


def reset_notification_store() -> None:
    """Reset to the default store."""
    global _current_store
    _current_store = None
