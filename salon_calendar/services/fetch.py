# salon_calendar/services/fetch.py
"""
Stale-response protection for slot/availability fetches.

Each fetch runs under a CancellationToken. Issuing a new fetch through a
LatestFetchGate cancels the ones still in flight, and a cancelled fetch's
result is discarded even if it arrives later. A failed fetch leaves the
previously applied value in place and records the error for the UI.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Generic, List, Optional, TypeVar

from salon_calendar.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class CancellationToken:
    def __init__(self, label: str = ""):
        self.label = label
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


@dataclass
class FetchOutcome(Generic[T]):
    value: Optional[T] = None
    error: Optional[Exception] = None
    discarded: bool = False

    @property
    def ok(self) -> bool:
        return not self.discarded and self.error is None


class LatestFetchGate:
    """Only the most recently issued, still un-cancelled fetch may apply."""

    def __init__(self, name: str):
        self.name = name
        self._outstanding: List[CancellationToken] = []

    def issue(self, label: str = "") -> CancellationToken:
        self.cancel_all()
        token = CancellationToken(label)
        self._outstanding.append(token)
        return token

    def cancel_all(self) -> None:
        for token in self._outstanding:
            token.cancel()
        self._outstanding.clear()

    @property
    def in_flight(self) -> int:
        return len(self._outstanding)

    async def run(self, token: CancellationToken, fetch: Awaitable[T]) -> FetchOutcome[T]:
        try:
            value = await fetch
        except Exception as e:
            if token.cancelled:
                logger.debug("fetch_discarded", gate=self.name, label=token.label, failed=True)
                return FetchOutcome(discarded=True)
            logger.error("fetch_failed", gate=self.name, label=token.label,
                         error=str(e), error_type=type(e).__name__)
            return FetchOutcome(error=e)
        finally:
            if token in self._outstanding:
                self._outstanding.remove(token)

        if token.cancelled:
            logger.debug("fetch_discarded", gate=self.name, label=token.label)
            return FetchOutcome(discarded=True)
        return FetchOutcome(value=value)


@dataclass
class FetchedValue(Generic[T]):
    """Last good value of a fetched dataset; errors never blank it."""
    value: Optional[T] = None
    fetched_at: Optional[datetime] = None
    last_error: Optional[str] = None
    notifications: List[str] = field(default_factory=list)

    def apply(self, outcome: FetchOutcome[T], now: Optional[datetime] = None) -> bool:
        if outcome.discarded:
            return False
        if outcome.error is not None:
            self.last_error = str(outcome.error)
            self.notifications.append(self.last_error)
            return False
        self.value = outcome.value
        self.fetched_at = now or datetime.now(timezone.utc)
        self.last_error = None
        return True
