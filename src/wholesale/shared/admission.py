"""Admission guard: sliding-window throttling of mutation callers.

Runs before the core touches storage. The default policy allows 10 requests
per caller identifier within any 10 second window.
"""

import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

import structlog

from wholesale.config import get_settings
from wholesale.shared.errors import RateLimitedError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AdmissionDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float


class AdmissionGuard:
    """In-process sliding-window limiter keyed by caller identifier."""

    def __init__(
        self,
        limit: int = 10,
        window_seconds: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._hits: dict[str, deque[float]] = {}
        self._last_sweep = clock()

    def _sweep(self, now: float) -> None:
        # Caller must hold self._lock
        horizon = now - self.window_seconds
        for identifier in [key for key, hits in self._hits.items() if not hits or hits[-1] <= horizon]:
            del self._hits[identifier]
        self._last_sweep = now

    def evaluate(self, identifier: str) -> AdmissionDecision:
        now = self._clock()
        with self._lock:
            if now - self._last_sweep >= self.window_seconds:
                self._sweep(now)
            hits = self._hits.setdefault(identifier, deque())
            while hits and hits[0] <= now - self.window_seconds:
                hits.popleft()

            if len(hits) >= self.limit:
                return AdmissionDecision(
                    allowed=False,
                    limit=self.limit,
                    remaining=0,
                    reset_at=hits[0] + self.window_seconds,
                )

            hits.append(now)
            return AdmissionDecision(
                allowed=True,
                limit=self.limit,
                remaining=self.limit - len(hits),
                reset_at=hits[0] + self.window_seconds,
            )

    def check(self, identifier: str) -> AdmissionDecision:
        """Admit one request for ``identifier`` or raise ``RateLimitedError``."""
        decision = self.evaluate(identifier)
        if not decision.allowed:
            retry_after = max(decision.reset_at - self._clock(), 0.0)
            logger.info("admission_rejected", identifier=identifier, retry_after=retry_after)
            raise RateLimitedError(
                identifier=identifier,
                limit=decision.limit,
                retry_after=round(retry_after, 3),
            )
        return decision

    def tracked_identifiers(self) -> list[str]:
        with self._lock:
            return sorted(self._hits)


def identifier_from_headers(headers) -> str:
    """Derive the caller identifier from proxy headers."""
    forwarded_for = headers.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first
    return headers.get("x-real-ip") or headers.get("cf-connecting-ip") or "anonymous"


_guard: AdmissionGuard | None = None


def get_admission_guard() -> AdmissionGuard:
    """Return the current admission guard, built from settings on first use."""
    global _guard
    if _guard is None:
        settings = get_settings()
        _guard = AdmissionGuard(limit=settings.rate_limit, window_seconds=settings.rate_window_seconds)
    return _guard


def set_admission_guard(guard: AdmissionGuard) -> None:
    """Override the active admission guard (useful for tests)."""
    global _guard
    _guard = guard


def reset_admission_guard() -> None:
    global _guard
    _guard = None
