"""Tests for the cache -> limiter -> invoker gateway."""

import pytest

from mindloop.invoker import InvocationRequest
from mindloop.protocols import ModelError
from mindloop.result import ErrorKind

from .conftest import FakeModel, make_gateway, timeout_error


class TestGateway:
    @pytest.mark.asyncio
    async def test_second_identical_call_served_from_cache(self, clock):
        model = FakeModel("answer")
        gateway = make_gateway(model, clock)
        request = InvocationRequest(prompt="same")
        first = await gateway.call(request, call_class="state")
        second = await gateway.call(request, call_class="state")
        assert first.value == second.value == "answer"
        assert len(model.calls) == 1

    @pytest.mark.asyncio
    async def test_bypass_cache(self, clock):
        model = FakeModel("a", "b")
        gateway = make_gateway(model, clock)
        request = InvocationRequest(prompt="same")
        await gateway.call(request)
        result = await gateway.call(request, use_cache=False)
        assert result.value == "b"
        assert len(model.calls) == 2

    @pytest.mark.asyncio
    async def test_state_entries_expire_before_creative(self, clock):
        model = FakeModel("x")
        gateway = make_gateway(model, clock)
        await gateway.call(InvocationRequest(prompt="s"), call_class="state")
        await gateway.call(InvocationRequest(prompt="c"), call_class="creative")
        clock.advance(2 * 3600)
        await gateway.call(InvocationRequest(prompt="s"), call_class="state")
        await gateway.call(InvocationRequest(prompt="c"), call_class="creative")
        assert [c["prompt"] for c in model.calls] == ["s", "c", "s"]

    @pytest.mark.asyncio
    async def test_throttled_call_does_not_invoke(self, clock):
        model = FakeModel("x")
        gateway = make_gateway(model, clock, max_calls=2)
        for i in range(2):
            assert (await gateway.call(InvocationRequest(prompt=str(i)))).is_ok
        result = await gateway.call(InvocationRequest(prompt="third"))
        assert result.error == ErrorKind.RATE_LIMITED
        assert len(model.calls) == 2

    @pytest.mark.asyncio
    async def test_provider_rate_limit_starts_cooldown(self, clock):
        model = FakeModel(ModelError("rate_limit", "429"), "fine")
        gateway = make_gateway(model, clock)
        result = await gateway.call(InvocationRequest(prompt="a"))
        assert result.error == ErrorKind.RATE_LIMITED
        assert gateway.limiter.status()["cooldown_remaining"] > 0
        assert (await gateway.call(InvocationRequest(prompt="b"))).error == ErrorKind.RATE_LIMITED
        assert len(model.calls) == 1

    @pytest.mark.asyncio
    async def test_failures_are_not_cached(self, clock):
        model = FakeModel(timeout_error(), timeout_error(), timeout_error(), "ok")
        gateway = make_gateway(model, clock)
        request = InvocationRequest(prompt="a")
        assert not (await gateway.call(request)).is_ok
        assert (await gateway.call(request)).value == "ok"
