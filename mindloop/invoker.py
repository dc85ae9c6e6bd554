"""ExternalInvoker: bounded, retrying calls into the language model.

Model providers are synchronous, so each attempt runs in a worker thread
under ``asyncio.wait_for``. Provider errors are mapped from their
``error_class`` onto ErrorKind:

- rate_limit  -> RATE_LIMITED, returned immediately so the caller can cool down
- auth        -> AUTH, returned immediately
- timeout     -> TIMEOUT, retried
- server / unknown / anything else -> TRANSIENT, retried

After ``max_retries`` retries (with a fixed ``retry_delay`` between
attempts) the last failure is returned. ``invoke`` never raises.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from mindloop.protocols import ModelMessage, ModelProtocol
from mindloop.result import ErrorKind, Result

logger = logging.getLogger(__name__)

_ERROR_KINDS: Dict[str, ErrorKind] = {
    "rate_limit": ErrorKind.RATE_LIMITED,
    "auth": ErrorKind.AUTH,
    "timeout": ErrorKind.TIMEOUT,
    "server": ErrorKind.TRANSIENT,
}

# Failures that retrying cannot fix
_NOT_RETRIED = frozenset({ErrorKind.RATE_LIMITED, ErrorKind.AUTH})


@dataclass(frozen=True)
class InvocationRequest:
    """One prompt for the model; also the cache fingerprint payload."""

    prompt: str
    system: Optional[str] = None
    response_schema: Optional[Dict[str, Any]] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None

    def to_payload(self) -> Dict[str, Any]:
        return asdict(self)


class ExternalInvoker:
    """Calls a ModelProtocol with timeout and retry bounds."""

    def __init__(
        self,
        model: Optional[ModelProtocol],
        timeout: float = 30.0,
        max_retries: int = 2,
        retry_delay: float = 5.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._model = model
        self._timeout = timeout
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._sleep = sleep

    @property
    def model_id(self) -> Optional[str]:
        return self._model.model_id if self._model is not None else None

    def _generate(self, request: InvocationRequest) -> str:
        response = self._model.generate(
            [ModelMessage(role="user", content=request.prompt)],
            system=request.system,
            temperature=request.temperature,
            max_tokens=request.max_tokens,
            response_schema=request.response_schema,
        )
        return response.content

    async def invoke(self, request: InvocationRequest) -> Result[str]:
        if self._model is None:
            return Result.fail(ErrorKind.AUTH, "no model configured")

        last: Result[str] = Result.fail(ErrorKind.TRANSIENT, "not attempted")
        for attempt in range(self._max_retries + 1):
            if attempt:
                await self._sleep(self._retry_delay)
            try:
                content = await asyncio.wait_for(
                    asyncio.to_thread(self._generate, request), timeout=self._timeout
                )
                return Result.ok(content)
            except asyncio.TimeoutError:
                last = Result.fail(ErrorKind.TIMEOUT, f"no response within {self._timeout}s")
            except Exception as exc:
                error_class = getattr(exc, "error_class", "unknown")
                kind = _ERROR_KINDS.get(error_class, ErrorKind.TRANSIENT)
                last = Result.fail(kind, str(exc))
                if kind in _NOT_RETRIED:
                    logger.warning(f"Model call failed ({kind.value}), not retrying: {exc}")
                    return last

            logger.warning(
                f"Model call attempt {attempt + 1}/{self._max_retries + 1} failed: "
                f"{last.describe()}"
            )

        return last
