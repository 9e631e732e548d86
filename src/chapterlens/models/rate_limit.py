"""Client-side rate limiting for free-tier LLM endpoints.

``RateLimitGate`` keeps a time-ordered history of completed calls per
endpoint name and admits a new call only while the trailing minute, hour
and day windows are each below their ceiling. History older than a day
is pruned on every read and write.

The gate is an ordinary object: construct one per process (or per
credential) and pass it to whatever issues requests. Async callers hold
``admission`` from the check until the record, so concurrent requests
cannot claim the same last slot in a window.
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass
from pathlib import Path

from chapterlens.config import RateLimitConfig

logger = logging.getLogger(__name__)

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS
WAIT_MARGIN_MS = 100


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class RateLimitRecord:
    timestamp: int  # epoch milliseconds
    endpoint: str


@dataclass(frozen=True)
class WindowUsage:
    used: int
    max: int

    @property
    def remaining(self) -> int:
        return self.max - self.used

    def to_dict(self) -> dict:
        return {"used": self.used, "max": self.max, "remaining": self.remaining}


@dataclass(frozen=True)
class LimitsInfo:
    minute: WindowUsage
    hour: WindowUsage
    day: WindowUsage

    def to_dict(self) -> dict:
        return {
            "minute_limit": self.minute.to_dict(),
            "hour_limit": self.hour.to_dict(),
            "day_limit": self.day.to_dict(),
        }


class RateLimitGate:
    """Per-endpoint minute/hour/day call ceilings over a shared history."""

    def __init__(
        self,
        max_calls_per_minute: int = 5,
        max_calls_per_hour: int = 30,
        max_calls_per_day: int = 100,
        max_retries: int = 5,
        *,
        clock: Callable[[], int] | None = None,
        state_path: Path | None = None,
    ):
        self.max_calls_per_minute = max_calls_per_minute
        self.max_calls_per_hour = max_calls_per_hour
        self.max_calls_per_day = max_calls_per_day
        self.max_retries = max_retries
        self._clock = clock or _wall_clock_ms
        self._state_path = state_path
        self._lock = threading.Lock()
        self._admission = asyncio.Lock()
        self._calls: list[RateLimitRecord] = []
        self._load()

    @classmethod
    def from_config(
        cls,
        config: RateLimitConfig,
        *,
        clock: Callable[[], int] | None = None,
    ) -> RateLimitGate:
        return cls(
            max_calls_per_minute=config.max_calls_per_minute,
            max_calls_per_hour=config.max_calls_per_hour,
            max_calls_per_day=config.max_calls_per_day,
            max_retries=config.max_retries,
            clock=clock,
            state_path=config.resolved_state_path,
        )

    # -- persistence ---------------------------------------------------

    def _load(self) -> None:
        if self._state_path is None or not self._state_path.exists():
            return
        try:
            raw = json.loads(self._state_path.read_text(encoding="utf-8"))
            records = [
                RateLimitRecord(timestamp=int(item["timestamp"]), endpoint=str(item["endpoint"]))
                for item in raw
            ]
        except (OSError, ValueError, TypeError, KeyError) as e:
            logger.error("Error loading rate limit state from %s: %s", self._state_path, e)
            return
        cutoff = self._clock() - DAY_MS
        self._calls = sorted(
            (r for r in records if r.timestamp > cutoff),
            key=lambda r: r.timestamp,
        )

    def _save(self) -> None:
        if self._state_path is None:
            return
        try:
            self._state_path.parent.mkdir(parents=True, exist_ok=True)
            self._state_path.write_text(
                json.dumps([asdict(r) for r in self._calls]),
                encoding="utf-8",
            )
        except OSError as e:
            logger.error("Error saving rate limit state to %s: %s", self._state_path, e)

    # -- history -------------------------------------------------------

    def _prune(self, now: int) -> None:
        cutoff = now - DAY_MS
        if self._calls and self._calls[0].timestamp <= cutoff:
            self._calls = [r for r in self._calls if r.timestamp > cutoff]
            self._save()

    def _count_since(self, endpoint: str, since: int) -> int:
        return sum(
            1 for r in self._calls if r.timestamp > since and r.endpoint == endpoint
        )

    def _admits(self, endpoint: str, now: int) -> bool:
        return (
            self._count_since(endpoint, now - MINUTE_MS) < self.max_calls_per_minute
            and self._count_since(endpoint, now - HOUR_MS) < self.max_calls_per_hour
            and self._count_since(endpoint, now - DAY_MS) < self.max_calls_per_day
        )

    def history(self, endpoint: str | None = None) -> list[RateLimitRecord]:
        with self._lock:
            self._prune(self._clock())
            return [r for r in self._calls if endpoint is None or r.endpoint == endpoint]

    # -- public API ----------------------------------------------------

    def record_call(self, endpoint: str = "default") -> None:
        """Record a call that was actually made."""
        with self._lock:
            now = self._clock()
            self._prune(now)
            self._calls.append(RateLimitRecord(timestamp=now, endpoint=endpoint))
            self._save()

    def can_call(self, endpoint: str = "default") -> bool:
        """True iff every window for ``endpoint`` is below its ceiling."""
        with self._lock:
            now = self._clock()
            self._prune(now)
            return self._admits(endpoint, now)

    def time_to_wait(self, endpoint: str = "default") -> int:
        """Milliseconds until the per-minute window has room again.

        Returns 0 when a call would be admitted now. Hour and day ceilings
        never produce a wait; callers blocked only by those get 0 and must
        re-check ``can_call``.
        """
        with self._lock:
            now = self._clock()
            self._prune(now)
            if self._admits(endpoint, now):
                return 0
            recent = sorted(
                r.timestamp
                for r in self._calls
                if r.timestamp > now - MINUTE_MS and r.endpoint == endpoint
            )
            if len(recent) >= self.max_calls_per_minute:
                return recent[0] + MINUTE_MS - now + WAIT_MARGIN_MS
            return 0

    def time_until_admitted(self, endpoint: str = "default") -> int:
        """Milliseconds until every window for ``endpoint`` has room."""
        with self._lock:
            now = self._clock()
            self._prune(now)
            wait = 0
            for span, ceiling in (
                (MINUTE_MS, self.max_calls_per_minute),
                (HOUR_MS, self.max_calls_per_hour),
                (DAY_MS, self.max_calls_per_day),
            ):
                recent = sorted(
                    r.timestamp
                    for r in self._calls
                    if r.timestamp > now - span and r.endpoint == endpoint
                )
                if len(recent) >= ceiling:
                    # The window has room once enough of its oldest calls age out.
                    expires = recent[len(recent) - ceiling] + span - now + WAIT_MARGIN_MS
                    wait = max(wait, expires)
            return wait

    @property
    def admission(self) -> asyncio.Lock:
        """Held from the admission check until the call is recorded."""
        return self._admission

    def limits_info(self, endpoint: str = "default") -> LimitsInfo:
        with self._lock:
            now = self._clock()
            self._prune(now)
            return LimitsInfo(
                minute=WindowUsage(
                    self._count_since(endpoint, now - MINUTE_MS), self.max_calls_per_minute,
                ),
                hour=WindowUsage(
                    self._count_since(endpoint, now - HOUR_MS), self.max_calls_per_hour,
                ),
                day=WindowUsage(
                    self._count_since(endpoint, now - DAY_MS), self.max_calls_per_day,
                ),
            )
