"""Tests for the agent StateMachine."""

from unittest.mock import MagicMock

import pytest

from mindloop.state import REST_THOUGHT, StateMachine, parse_mode
from mindloop.types import AgentMode, Decision, DecisionKind


def decision(kind, action="", reasoning="because"):
    return Decision(kind=kind, reasoning=reasoning, action=action)


class TestParseMode:
    @pytest.mark.parametrize(
        "action,expected",
        [
            ("go to sleep", AgentMode.SLEEPING),
            ("take a rest", AgentMode.SLEEPING),
            ("think harder", AgentMode.THINKING),
            ("reflect on the day", AgentMode.REFLECTING),
            ("Explore new ideas", AgentMode.EXPLORING),
            ("stay awake", AgentMode.AWAKE),
            ("dance", None),
        ],
    )
    def test_keywords(self, action, expected):
        assert parse_mode(action) == expected


class TestRead:
    @pytest.mark.asyncio
    async def test_first_boot_initializes(self, storage):
        machine = StateMachine(storage)
        state = await machine.read()
        assert state.mode == AgentMode.AWAKE
        assert state.motivation == "curiosity"
        assert state.motivation_intensity == 7
        assert state.autonomy_level == 8
        assert storage.get_agent_state() is not None

    @pytest.mark.asyncio
    async def test_store_failure_returns_degraded_default(self):
        broken = MagicMock()
        broken.get_agent_state.side_effect = RuntimeError("disk gone")
        state = await StateMachine(broken).read()
        assert state.mode == AgentMode.THINKING
        assert state.motivation_intensity == 5
        assert state.autonomy_level == 5
        assert "recover" in state.last_thought.lower()


class TestUpdate:
    @pytest.mark.asyncio
    async def test_partial_merge(self, storage):
        machine = StateMachine(storage)
        await machine.read()
        state = await machine.update(motivation="wonder")
        assert state.motivation == "wonder"
        assert state.mode == AgentMode.AWAKE
        assert state.motivation_intensity == 7
        assert storage.get_agent_state().motivation == "wonder"

    @pytest.mark.asyncio
    async def test_values_are_clamped(self, storage):
        machine = StateMachine(storage)
        state = await machine.update(motivation_intensity=42, autonomy_level=-3)
        assert state.motivation_intensity == 10
        assert state.autonomy_level == 1

    @pytest.mark.asyncio
    async def test_unknown_field_rejected(self, storage):
        with pytest.raises(ValueError):
            await StateMachine(storage).update(mood="grumpy")

    @pytest.mark.asyncio
    async def test_write_failure_keeps_memory_copy(self, storage):
        machine = StateMachine(storage)
        await machine.read()
        storage.save_agent_state = MagicMock(side_effect=RuntimeError("read-only"))
        state = await machine.update(motivation="stubborn")
        assert state.motivation == "stubborn"
        assert machine.current.motivation == "stubborn"


class TestApplyDecision:
    @pytest.mark.asyncio
    async def test_change_state_to_sleep(self, storage):
        machine = StateMachine(storage)
        await machine.read()
        state = await machine.apply_decision(decision(DecisionKind.CHANGE_STATE, "sleep"))
        assert state.mode == AgentMode.SLEEPING
        assert storage.get_agent_state().mode == AgentMode.SLEEPING

    @pytest.mark.asyncio
    async def test_change_state_without_keyword_keeps_mode(self, storage):
        machine = StateMachine(storage)
        await machine.read()
        state = await machine.apply_decision(decision(DecisionKind.CHANGE_STATE, "juggle"))
        assert state.mode == AgentMode.AWAKE

    @pytest.mark.asyncio
    async def test_rest_forces_sleep(self, storage):
        machine = StateMachine(storage)
        state = await machine.apply_decision(decision(DecisionKind.REST, "whatever"))
        assert state.mode == AgentMode.SLEEPING
        assert state.last_thought == REST_THOUGHT

    @pytest.mark.asyncio
    async def test_other_kinds_record_truncated_reasoning(self, storage):
        machine = StateMachine(storage)
        state = await machine.apply_decision(
            decision(DecisionKind.REFLECT, "reflect", reasoning="x" * 500)
        )
        assert state.mode == AgentMode.AWAKE
        assert len(state.last_thought) <= 200
