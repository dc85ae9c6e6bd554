"""Tests for the Scheduler autonomy loop."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from mindloop.consolidation import MemoryConsolidator
from mindloop.contact import ContactGate, ProactiveMessenger
from mindloop.decision import DecisionEngine
from mindloop.resources import ResourceMonitor
from mindloop.scheduler import Scheduler
from mindloop.state import StateMachine
from mindloop.tasks import TaskQueue
from mindloop.types import AgentMode, SelfQuestion, TaskStatus

from .conftest import FakeModel, decision_json, make_gateway, timeout_error


def build_scheduler(storage, model, clock, pressure=0.1, channel=None, **kwargs):
    gateway = make_gateway(model, clock)
    messenger = ProactiveMessenger(storage, channel) if channel is not None else None
    return Scheduler(
        StateMachine(storage),
        DecisionEngine(gateway, storage),
        TaskQueue(storage, gateway),
        ContactGate(storage),
        MemoryConsolidator(storage),
        ResourceMonitor(gateway.cache, pressure_fn=lambda: pressure),
        messenger=messenger,
        gateway=gateway,
        **kwargs,
    )


class TestRunCycle:
    @pytest.mark.asyncio
    async def test_full_cycle(self, storage, clock):
        model = FakeModel(decision_json("reflect", "reflect on growth"), "I grew a little.")
        scheduler = build_scheduler(storage, model, clock)

        report = await scheduler.run_cycle()

        assert report.decision == "reflect"
        assert report.task == TaskStatus.COMPLETED.value
        assert report.contact == "none"
        assert not report.fallback
        assert storage.get_recent_reflections(1)[0].content == "I grew a little."
        assert storage.get_agent_state().last_thought == "I want to reflect on growth"
        assert scheduler.state.cycles_run == 1
        assert scheduler.state.last_decision_kind == "reflect"

    @pytest.mark.asyncio
    async def test_change_state_to_sleep(self, storage, clock):
        model = FakeModel(decision_json("change_state", "go to sleep"))
        scheduler = build_scheduler(storage, model, clock)
        report = await scheduler.run_cycle()
        assert report.mode == AgentMode.SLEEPING.value
        assert report.task is None
        assert storage.get_agent_state().mode == AgentMode.SLEEPING

    @pytest.mark.asyncio
    async def test_model_timeouts_fall_back(self, storage, clock):
        scheduler = build_scheduler(storage, FakeModel(timeout_error()), clock)
        report = await scheduler.run_cycle()
        assert report.fallback
        assert report.decision == "integrate_knowledge"
        # the fallback task itself also timed out
        assert report.task == TaskStatus.ABANDONED.value
        assert storage.get_recent_decisions()[0].is_fallback

    @pytest.mark.asyncio
    async def test_contact_delivered(self, storage, clock):
        storage.save_question(SelfQuestion(question="Do you dream?", priority=9))
        channel = MagicMock()
        channel.send = AsyncMock(return_value=True)
        scheduler = build_scheduler(
            storage, FakeModel(decision_json("rest", "rest")), clock, channel=channel
        )
        report = await scheduler.run_cycle()
        assert report.contact == "sent"
        assert "Do you dream?" in channel.send.await_args.args[0].content

    @pytest.mark.asyncio
    async def test_memory_pressure_skips_and_reclaims(self, storage, clock):
        model = FakeModel(decision_json())
        scheduler = build_scheduler(storage, model, clock, pressure=0.95)
        report = await scheduler.run_cycle()
        assert report.skipped == "resource_pressure"
        assert "collected" in report.reclaim
        assert model.calls == []
        assert scheduler.state.skipped_pressure == 1
        assert scheduler.state.cycles_run == 0

    @pytest.mark.asyncio
    async def test_overlapping_cycle_refused(self, storage, clock):
        scheduler = build_scheduler(storage, FakeModel(decision_json("rest", "rest")), clock)
        release = asyncio.Event()
        original_read = scheduler._state_machine.read

        async def slow_read():
            await release.wait()
            return await original_read()

        scheduler._state_machine.read = slow_read
        first = asyncio.create_task(scheduler.run_cycle())
        await asyncio.sleep(0)
        assert scheduler.status()["is_running"]

        assert await scheduler.run_cycle() is None
        assert scheduler.state.skipped_busy == 1

        release.set()
        assert (await first).decision == "rest"
        assert scheduler.state.cycles_run == 1

    @pytest.mark.asyncio
    async def test_exception_is_contained(self, storage, clock):
        scheduler = build_scheduler(storage, FakeModel(decision_json("rest", "rest")), clock)
        scheduler._tasks.execute_one = AsyncMock(side_effect=RuntimeError("boom"))

        assert await scheduler.run_cycle() is None
        assert scheduler.state.cycles_failed == 1
        assert scheduler.state.last_error == "boom"
        assert not scheduler.state.is_running

        scheduler._tasks.execute_one = AsyncMock(return_value=None)
        assert await scheduler.run_cycle() is not None


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_runs_cycles_and_stop_cancels(self, storage, clock):
        scheduler = build_scheduler(
            storage,
            FakeModel(decision_json("rest", "rest")),
            clock,
            cycle_interval=0.05,
            initial_delay=0,
            consolidation_interval=3600,
        )
        scheduler.start()
        scheduler.start()
        assert scheduler.status()["is_started"]

        for _ in range(100):
            await asyncio.sleep(0.02)
            if scheduler.state.cycles_run:
                break
        await scheduler.stop()
        await scheduler.wait_idle()

        assert scheduler.state.cycles_run >= 1
        assert not scheduler.status()["is_started"]
        runs = scheduler.state.cycles_run
        await asyncio.sleep(0.1)
        assert scheduler.state.cycles_run == runs

    @pytest.mark.asyncio
    async def test_stop_clears_guard_held_by_stuck_cycle(self, storage, clock):
        scheduler = build_scheduler(
            storage,
            FakeModel(decision_json("rest", "rest")),
            clock,
            cycle_interval=3600,
            initial_delay=0,
            consolidation_interval=3600,
        )
        original_read = scheduler._state_machine.read
        never = asyncio.Event()

        async def stuck_read():
            await never.wait()
            return await original_read()

        scheduler._state_machine.read = stuck_read
        scheduler.start()
        for _ in range(100):
            await asyncio.sleep(0.01)
            if scheduler.state.is_running:
                break
        assert scheduler.state.is_running

        await scheduler.stop()

        assert not scheduler.state.is_running
        assert not scheduler._lock.locked()
        stuck = list(scheduler._in_flight)
        assert len(stuck) == 1 and not stuck[0].done()

        scheduler._state_machine.read = original_read
        assert await scheduler.run_cycle() is not None
        assert not scheduler.state.is_running

        never.set()
        await scheduler.wait_idle()
        assert scheduler.state.cycles_run == 2
        assert not scheduler.state.is_running

    @pytest.mark.asyncio
    async def test_status_reports_metrics(self, storage, clock):
        scheduler = build_scheduler(storage, FakeModel(decision_json("rest", "rest")), clock)
        await scheduler.run_cycle()
        status = scheduler.status()
        assert status["last_cycle_at"] is not None
        metrics = status["metrics"]
        assert metrics["cycles_run"] == 1
        assert metrics["memory_pressure"] == 0.1
        assert metrics["cache"]["misses"] == 1
        assert metrics["rate_limit"]["call_count"] == 1

    @pytest.mark.asyncio
    async def test_consolidate(self, storage, clock):
        scheduler = build_scheduler(storage, FakeModel(), clock)
        result = await scheduler.consolidate()
        assert result["report"]["errors"] == {}
        assert "concepts" in result["limits"]
        assert scheduler.status()["metrics"]["last_consolidation_at"] is not None

    @pytest.mark.asyncio
    async def test_consolidate_never_raises(self, storage, clock):
        scheduler = build_scheduler(storage, FakeModel(), clock)
        scheduler._consolidator.run = AsyncMock(side_effect=RuntimeError("disk"))
        assert await scheduler.consolidate() is None
