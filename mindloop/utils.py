"""Utility helpers shared across mindloop components."""

import asyncio
import logging
import os
import re
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar

from mindloop.protocols import StorageError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Maximum characters kept in AgentState.last_thought
THOUGHT_MAX_CHARS = 200

_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


def get_mindloop_home() -> Path:
    """Return the data directory (``$MINDLOOP_DATA_DIR`` or ``~/.mindloop``)."""
    env = os.environ.get("MINDLOOP_DATA_DIR")
    if env:
        return Path(env).expanduser()
    return Path.home() / ".mindloop"


def clamp(value, low, high):
    """Clamp ``value`` into ``[low, high]``."""
    return max(low, min(high, value))


def truncate(text: str, limit: int = THOUGHT_MAX_CHARS) -> str:
    if text is None:
        return ""
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def strip_code_fence(text: str) -> str:
    """Strip surrounding whitespace and a markdown code fence, if present."""
    raw = (text or "").strip()
    fenced = _FENCE.match(raw)
    return fenced.group(1) if fenced else raw


async def offload(
    fn: Callable[..., T],
    *args: Any,
    timeout: Optional[float] = None,
    **kwargs: Any,
) -> T:
    """Run a blocking storage call in a worker thread with a timeout.

    Raises:
        StorageError: if the call fails or exceeds ``timeout`` seconds.
    """
    try:
        return await asyncio.wait_for(asyncio.to_thread(fn, *args, **kwargs), timeout=timeout)
    except asyncio.TimeoutError as exc:
        name = getattr(fn, "__name__", repr(fn))
        raise StorageError(f"{name} timed out after {timeout}s") from exc
    except StorageError:
        raise
    except Exception as exc:
        name = getattr(fn, "__name__", repr(fn))
        raise StorageError(f"{name} failed: {exc}") from exc
