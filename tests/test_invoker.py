"""Tests for ExternalInvoker retry and error mapping."""

import time

import pytest

from mindloop.invoker import ExternalInvoker, InvocationRequest
from mindloop.protocols import ModelError
from mindloop.result import ErrorKind

from .conftest import FakeModel, timeout_error


def make_invoker(model, clock, max_retries=2, timeout=5):
    return ExternalInvoker(
        model, timeout=timeout, max_retries=max_retries, retry_delay=5, sleep=clock.sleep
    )


class TestInvoke:
    @pytest.mark.asyncio
    async def test_success(self, clock):
        model = FakeModel("hello")
        result = await make_invoker(model, clock).invoke(InvocationRequest(prompt="hi"))
        assert result.is_ok
        assert result.value == "hello"
        assert model.calls[0]["prompt"] == "hi"

    @pytest.mark.asyncio
    async def test_passes_schema_through(self, clock):
        model = FakeModel("{}")
        schema = {"type": "object"}
        await make_invoker(model, clock).invoke(
            InvocationRequest(prompt="hi", response_schema=schema)
        )
        assert model.calls[0]["response_schema"] == schema

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, clock):
        model = FakeModel(timeout_error(), "recovered")
        result = await make_invoker(model, clock).invoke(InvocationRequest(prompt="hi"))
        assert result.value == "recovered"
        assert len(model.calls) == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_retry_bound(self, clock):
        model = FakeModel(timeout_error())
        start = clock.now
        result = await make_invoker(model, clock).invoke(InvocationRequest(prompt="hi"))
        assert result.error == ErrorKind.TIMEOUT
        assert len(model.calls) == 3
        # fixed backoff between attempts
        assert clock.now - start == pytest.approx(10)

    @pytest.mark.asyncio
    async def test_rate_limit_not_retried(self, clock):
        model = FakeModel(ModelError("rate_limit", "slow down"))
        result = await make_invoker(model, clock).invoke(InvocationRequest(prompt="hi"))
        assert result.error == ErrorKind.RATE_LIMITED
        assert len(model.calls) == 1

    @pytest.mark.asyncio
    async def test_auth_not_retried(self, clock):
        model = FakeModel(ModelError("auth", "bad key"))
        result = await make_invoker(model, clock).invoke(InvocationRequest(prompt="hi"))
        assert result.error == ErrorKind.AUTH
        assert len(model.calls) == 1

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_transient(self, clock):
        model = FakeModel(RuntimeError("boom"))
        result = await make_invoker(model, clock, max_retries=0).invoke(
            InvocationRequest(prompt="hi")
        )
        assert result.error == ErrorKind.TRANSIENT
        assert "boom" in result.detail

    @pytest.mark.asyncio
    async def test_no_model_configured(self, clock):
        result = await make_invoker(None, clock).invoke(InvocationRequest(prompt="hi"))
        assert result.error == ErrorKind.AUTH

    @pytest.mark.asyncio
    async def test_wall_clock_timeout(self, clock):
        class SlowModel(FakeModel):
            def generate(self, messages, **kwargs):
                time.sleep(0.3)
                return super().generate(messages, **kwargs)

        invoker = make_invoker(SlowModel("late"), clock, max_retries=0, timeout=0.05)
        result = await invoker.invoke(InvocationRequest(prompt="hi"))
        assert result.error == ErrorKind.TIMEOUT
