"""
Pytest fixtures and test configuration for mindloop tests.
"""

import json
import logging
from typing import Any, List, Optional

import pytest

from mindloop.cache import ResponseCache
from mindloop.config import get_settings
from mindloop.gateway import Gateway
from mindloop.invoker import ExternalInvoker
from mindloop.protocols import ModelCapabilities, ModelError, ModelResponse
from mindloop.ratelimit import RateLimiter
from mindloop.storage import SQLiteStorage


class FakeClock:
    """Manually advanced monotonic clock; ``sleep`` advances it instantly."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.now += seconds


class FakeModel:
    """ModelProtocol stand-in that replays scripted responses.

    Each item is returned as the response content, or raised if it is an
    exception. Once the script runs out the last item repeats.
    """

    def __init__(self, *responses: Any):
        self.responses: List[Any] = list(responses) or ["ok"]
        self.calls: List[dict] = []

    @property
    def model_id(self) -> str:
        return "fake-model"

    @property
    def capabilities(self) -> ModelCapabilities:
        return ModelCapabilities(model_id="fake-model", provider="fake", context_window=8192)

    def generate(self, messages, *, system=None, temperature=None, max_tokens=None,
                 response_schema=None) -> ModelResponse:
        self.calls.append(
            {
                "prompt": messages[-1].content,
                "system": system,
                "response_schema": response_schema,
            }
        )
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, BaseException):
            raise item
        return ModelResponse(content=item, model_id="fake-model")


def decision_json(kind: str = "reflect", action: str = "think about learning", **extra) -> str:
    payload = {"decision_type": kind, "reasoning": f"I want to {action}", "action": action}
    payload.update(extra)
    return json.dumps(payload)


def timeout_error() -> ModelError:
    return ModelError("timeout", "provider timed out")


def make_gateway(
    model: Optional[FakeModel],
    clock: Optional[FakeClock] = None,
    max_calls: int = 20,
    max_retries: int = 2,
    cache_entries: int = 1000,
) -> Gateway:
    clock = clock or FakeClock()
    cache = ResponseCache(max_entries=cache_entries, default_ttl=3600, clock=clock)
    limiter = RateLimiter(
        max_calls=max_calls, window=60, min_interval=0, cooldown=120, clock=clock, sleep=clock.sleep
    )
    invoker = ExternalInvoker(
        model, timeout=5, max_retries=max_retries, retry_delay=5, sleep=clock.sleep
    )
    return Gateway(cache, limiter, invoker, ttls={"default": 3600, "state": 3600, "creative": 86400})


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keep log files and default databases inside the test's tmp dir."""
    home = tmp_path / "mindloop-home"
    monkeypatch.setenv("MINDLOOP_DATA_DIR", str(home))
    get_settings.cache_clear()
    yield home
    get_settings.cache_clear()

    # setup_mindloop_logging attaches handlers to the package logger
    package_logger = logging.getLogger("mindloop")
    for handler in package_logger.handlers[:]:
        handler.close()
        package_logger.removeHandler(handler)
    package_logger.setLevel(logging.NOTSET)


@pytest.fixture
def storage(tmp_path):
    return SQLiteStorage(tmp_path / "test.db")


@pytest.fixture
def clock():
    return FakeClock()
