"""Row isolation, deadlines and bounded retries for mutations.

Same-row mutations serialise on a per-key lock; different rows never block
each other. Locks are created on demand and discarded once the last holder
releases them.
"""

import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import TypeVar

import structlog
from protean.exceptions import ExpectedVersionError
from sqlalchemy.exc import OperationalError

from wholesale.shared.errors import MutationTimeoutError, TransientConflictError

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Storage failures worth another attempt with a fresh read
TRANSIENT_ERRORS: tuple[type[Exception], ...] = (ExpectedVersionError, OperationalError)


class _Entry:
    __slots__ = ("lock", "holders")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.holders = 0


class RowLockRegistry:
    """Registry of per-row locks keyed by ``"<entity>:<id>"``."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[str, _Entry] = {}

    @contextmanager
    def hold(self, key: str, timeout: float | None = None) -> Iterator[None]:
        with self._guard:
            entry = self._entries.setdefault(key, _Entry())
            entry.holders += 1

        acquired = entry.lock.acquire(timeout=-1 if timeout is None else max(timeout, 0))
        try:
            if not acquired:
                logger.warning("row_lock_timeout", key=key, timeout=timeout)
                raise MutationTimeoutError(
                    f"Timed out waiting for {key}",
                    key=key,
                    timeout=timeout,
                )
            yield
        finally:
            if acquired:
                entry.lock.release()
            with self._guard:
                entry.holders -= 1
                if entry.holders == 0:
                    self._entries.pop(key, None)

    def active_keys(self) -> list[str]:
        with self._guard:
            return list(self._entries)


class Deadline:
    """Monotonic deadline for one mutation. ``None`` means no limit."""

    def __init__(self, timeout: float | None, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self.timeout = timeout
        self._expires_at = None if timeout is None else clock() + timeout

    def remaining(self) -> float | None:
        if self._expires_at is None:
            return None
        return max(self._expires_at - self._clock(), 0.0)

    @property
    def expired(self) -> bool:
        return self._expires_at is not None and self._clock() >= self._expires_at

    def check(self, operation: str) -> None:
        """Raise ``MutationTimeoutError`` if the deadline has passed."""
        if self.expired:
            raise MutationTimeoutError(
                f"{operation} exceeded its {self.timeout}s deadline",
                operation=operation,
                timeout=self.timeout,
            )


def run_with_retry(
    attempt: Callable[[], T],
    *,
    operation: str,
    max_attempts: int = 3,
    backoff: float = 0.05,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run ``attempt`` until it succeeds, retrying transient storage errors.

    Backoff doubles between attempts. Anything that is not a transient
    storage error propagates on the first occurrence.
    """
    for number in range(1, max_attempts + 1):
        try:
            return attempt()
        except TRANSIENT_ERRORS as exc:
            logger.warning(
                "transient_conflict",
                operation=operation,
                attempt=number,
                max_attempts=max_attempts,
                error=str(exc),
            )
            if number == max_attempts:
                raise TransientConflictError(
                    f"{operation} failed after {max_attempts} attempts",
                    operation=operation,
                    attempts=max_attempts,
                ) from exc
            sleep(backoff * (2 ** (number - 1)))

    # max_attempts < 1
    raise TransientConflictError(f"{operation} was not attempted", operation=operation, attempts=0)


_locks: RowLockRegistry | None = None


def get_row_locks() -> RowLockRegistry:
    """Return the process-wide row lock registry."""
    global _locks
    if _locks is None:
        _locks = RowLockRegistry()
    return _locks


def reset_row_locks() -> None:
    global _locks
    _locks = None
