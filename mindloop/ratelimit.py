"""Client-side rate limiting for model calls.

Three rules, checked in order:

1. Cooldown: after a provider rate-limit signal no calls are allowed
   until ``cooldown_until``.
2. Window cap: at most ``max_calls`` per ``window`` seconds. The window
   resets once ``window`` seconds have passed since it opened.
3. Spacing: consecutive calls are at least ``min_interval`` apart.
   ``acquire()`` waits out the remaining spacing instead of refusing.

Refusals return False; the limiter never raises.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class RateLimitWindow:
    window_start: float
    call_count: int = 0
    cooldown_until: float = 0.0
    last_call_at: Optional[float] = None


class RateLimiter:
    def __init__(
        self,
        max_calls: int = 20,
        window: float = 60.0,
        min_interval: float = 2.0,
        cooldown: float = 120.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._max_calls = max_calls
        self._window = window
        self._min_interval = min_interval
        self._cooldown = cooldown
        self._clock = clock
        self._sleep = sleep
        self._state = RateLimitWindow(window_start=clock())

    @property
    def window(self) -> RateLimitWindow:
        return self._state

    def _roll_window(self, now: float) -> None:
        if now - self._state.window_start >= self._window:
            self._state.window_start = now
            self._state.call_count = 0

    def is_throttled(self) -> bool:
        now = self._clock()
        self._roll_window(now)
        return now < self._state.cooldown_until or self._state.call_count >= self._max_calls

    async def acquire(self) -> bool:
        """Reserve one call slot. Returns False while throttled."""
        if self.is_throttled():
            logger.debug("Rate limiter refused call: %s", self.status())
            return False

        if self._state.last_call_at is not None and self._min_interval > 0:
            wait = self._min_interval - (self._clock() - self._state.last_call_at)
            if wait > 0:
                await self._sleep(wait)
                if self.is_throttled():
                    return False

        self._state.call_count += 1
        self._state.last_call_at = self._clock()
        return True

    def signal_rate_limited(self) -> None:
        """Provider said we are rate limited: hold off for the cooldown."""
        self._state.cooldown_until = self._clock() + self._cooldown
        logger.warning(f"Provider rate limit hit, cooling down for {self._cooldown:.0f}s")

    def status(self) -> Dict[str, Any]:
        now = self._clock()
        self._roll_window(now)
        return {
            "call_count": self._state.call_count,
            "calls_remaining": max(0, self._max_calls - self._state.call_count),
            "time_until_reset": max(0.0, self._state.window_start + self._window - now),
            "cooldown_remaining": max(0.0, self._state.cooldown_until - now),
            "is_throttled": now < self._state.cooldown_until
            or self._state.call_count >= self._max_calls,
        }

    def reset(self) -> None:
        """Clear counters and any cooldown."""
        self._state = RateLimitWindow(window_start=self._clock())
