"""
Advisory request pacing per plugin.

Before each dispatched call the limiter:

1. honours the plugin's self-reported quota (``remaining <= 0`` with a
   ``retry_after`` suspends the caller for that many seconds);
2. keeps at least the plugin's minimum delay between consecutive requests;
3. records the new request time.

This is pacing, not a token bucket: a 429 from the service is still
surfaced to the caller as an error.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Awaitable, Callable, Dict, Mapping, Optional

if TYPE_CHECKING:
    from .plugins.base import SourcePlugin

logger = logging.getLogger(__name__)

DEFAULT_MIN_DELAYS: Dict[str, float] = {
    "ads": 0.05,  # 5000/day, generous
    "arxiv": 3.0,  # asks for 3s between requests
    "inspire": 0.35,  # 15 requests per 5s
}
DEFAULT_DELAY = 0.1

Clock = Callable[[], float]
Sleeper = Callable[[float], Awaitable[None]]


class RateLimiter:
    """Per-plugin minimum spacing plus quota back-off.

    State is keyed by plugin id. The next request slot is reserved before the
    caller suspends, so concurrent callers aimed at the same plugin are
    spaced out rather than all waking at once. Issue order between such
    callers is not guaranteed.
    """

    def __init__(
        self,
        min_delays: Optional[Mapping[str, float]] = None,
        default_delay: float = DEFAULT_DELAY,
        clock: Clock = time.monotonic,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._min_delays: Dict[str, float] = dict(DEFAULT_MIN_DELAYS)
        if min_delays:
            self._min_delays.update(min_delays)
        self._default_delay = default_delay
        self._clock = clock
        self._sleep = sleep
        self._last_request: Dict[str, float] = {}

    def min_delay(self, plugin_id: str) -> float:
        return self._min_delays.get(plugin_id, self._default_delay)

    def last_request_time(self, plugin_id: str) -> Optional[float]:
        return self._last_request.get(plugin_id)

    def forget(self, plugin_id: str) -> None:
        self._last_request.pop(plugin_id, None)

    def reset(self) -> None:
        self._last_request.clear()

    async def acquire(self, plugin: "SourcePlugin") -> float:
        """Suspend until ``plugin`` may be called; returns the seconds waited."""
        waited = 0.0
        plugin_id = plugin.id

        status = plugin.get_rate_limit_status()
        if status is not None and status.remaining <= 0 and status.retry_after:
            logger.info("Rate limited by %s, waiting %.1fs", plugin_id, status.retry_after)
            await self._sleep(status.retry_after)
            waited += status.retry_after

        now = self._clock()
        last = self._last_request.get(plugin_id)
        delay = 0.0
        if last is not None:
            delay = max(0.0, last + self.min_delay(plugin_id) - now)

        # reserve the slot before suspending; no await between read and write
        self._last_request[plugin_id] = now + delay

        if delay > 0:
            logger.debug("%s: pacing request, waiting %.3fs", plugin_id, delay)
            await self._sleep(delay)
            waited += delay
        return waited


__all__ = ["RateLimiter", "DEFAULT_MIN_DELAYS", "DEFAULT_DELAY"]
