"""Rate-limited invocation with retry on upstream throttling."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from typing import TypeVar

from chapterlens.exceptions import MaxRetriesError, RateLimitExceededError, ThrottledError
from chapterlens.models.rate_limit import RateLimitGate

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def call_with_rate_limit(
    invoke: Callable[[], Awaitable[T]],
    *,
    gate: RateLimitGate,
    endpoint: str = "default",
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    on_throttled: Callable[[int, ThrottledError], None] | None = None,
) -> T:
    """Invoke an async call once the gate admits it, retrying on HTTP 429.

    Each attempt first waits until the per-minute window has room, then
    invokes.
    If the hour or day window is still full after that wait, the call is
    refused with ``RateLimitExceededError`` instead of being sent.
    Successful calls are recorded on the gate. A ``ThrottledError`` waits
    exactly its ``retry_after`` seconds and goes round again, at most
    ``gate.max_retries`` times. Every other error propagates at once.

    The gate's ``admission`` lock is held from the first check until the
    call is recorded, so concurrent callers queue behind each other.
    """
    if gate.max_retries < 0:
        raise ValueError(f"max_retries must be >= 0, got {gate.max_retries}")
    retries = deque(range(gate.max_retries + 1))

    async with gate.admission:
        while retries:
            retry = retries.popleft()
            wait_ms = gate.time_to_wait(endpoint)
            while wait_ms > 0:
                logger.info(
                    "Rate limit window full for %s; waiting %.1fs", endpoint, wait_ms / 1000,
                )
                await sleep(wait_ms / 1000)
                wait_ms = gate.time_to_wait(endpoint)

            if not gate.can_call(endpoint):
                blocked_ms = gate.time_until_admitted(endpoint)
                logger.warning(
                    "Hourly or daily limit reached for %s; refusing call for %.0fs",
                    endpoint, blocked_ms / 1000,
                )
                raise RateLimitExceededError(blocked_ms)

            try:
                result = await invoke()
            except ThrottledError as e:
                if on_throttled is not None:
                    on_throttled(retry, e)
                if not retries:
                    raise MaxRetriesError(attempts=retry + 1) from e
                logger.warning(
                    "Throttled by %s (retry %d/%d); retrying in %ss",
                    endpoint, retry + 1, gate.max_retries, e.retry_after,
                )
                await sleep(e.retry_after)
                continue

            gate.record_call(endpoint)
            return result

    raise MaxRetriesError(attempts=0)
