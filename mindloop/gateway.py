"""Gateway: the single path from components to the model.

Order per call: response cache, then rate limiter, then invoker. Only
successful responses are cached; a RATE_LIMITED result puts the limiter
into cooldown.
"""

import logging
from typing import Dict, Optional

from mindloop.cache import ResponseCache
from mindloop.invoker import ExternalInvoker, InvocationRequest
from mindloop.ratelimit import RateLimiter
from mindloop.result import ErrorKind, Result

logger = logging.getLogger(__name__)


class Gateway:
    def __init__(
        self,
        cache: ResponseCache,
        limiter: RateLimiter,
        invoker: ExternalInvoker,
        ttls: Optional[Dict[str, float]] = None,
    ):
        self.cache = cache
        self.limiter = limiter
        self.invoker = invoker
        self._ttls = ttls or {}

    def ttl_for(self, call_class: str) -> Optional[float]:
        """TTL for a call class; None means the cache default."""
        return self._ttls.get(call_class, self._ttls.get("default"))

    async def call(
        self,
        request: InvocationRequest,
        call_class: str = "default",
        use_cache: bool = True,
    ) -> Result[str]:
        key = self.cache.make_key(call_class, request.to_payload())
        if use_cache:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug(f"Cache hit for {call_class} call")
                return Result.ok(cached)

        if not await self.limiter.acquire():
            return Result.fail(ErrorKind.RATE_LIMITED, "client-side rate limit")

        result = await self.invoker.invoke(request)
        if result.is_ok:
            self.cache.set(key, result.value, ttl=self.ttl_for(call_class))
        elif result.error == ErrorKind.RATE_LIMITED:
            self.limiter.signal_rate_limited()
        return result
