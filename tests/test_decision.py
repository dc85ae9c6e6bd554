"""Tests for DecisionEngine schema validation and fallbacks."""

from unittest.mock import MagicMock

import pytest

from mindloop.decision import DecisionEngine, fallback_decision, parse_decision
from mindloop.result import ErrorKind
from mindloop.types import AgentState, ConceptNode, DecisionKind, SelfQuestion, Urgency

from .conftest import FakeModel, decision_json, make_gateway, timeout_error


class TestParseDecision:
    def test_valid_payload(self):
        result = parse_decision(decision_json("explore_concept", "explore entropy"))
        assert result.is_ok
        assert result.value.kind == DecisionKind.EXPLORE_CONCEPT
        assert result.value.action == "explore entropy"

    def test_code_fence_is_stripped(self):
        result = parse_decision("```json\n" + decision_json() + "\n```")
        assert result.is_ok

    def test_alias_maps_to_integrate_knowledge(self):
        result = parse_decision(decision_json("continue_learning"))
        assert result.value.kind == DecisionKind.INTEGRATE_KNOWLEDGE

    def test_urgency_and_contact_flag(self):
        result = parse_decision(
            decision_json("initiate_contact", should_contact_user=True, urgency="high")
        )
        assert result.value.should_contact_user is True
        assert result.value.urgency == Urgency.HIGH

    @pytest.mark.parametrize(
        "raw",
        [
            "not json at all",
            "[1, 2, 3]",
            '{"decision_type": "dance", "reasoning": "r", "action": "a"}',
            '{"decision_type": "reflect", "reasoning": "", "action": "a"}',
            '{"decision_type": "reflect", "reasoning": "r"}',
            '{"decision_type": "reflect", "reasoning": "r", "action": "a", "extra": 1}',
        ],
    )
    def test_invalid_payloads_are_parse_errors(self, raw):
        result = parse_decision(raw)
        assert result.error == ErrorKind.PARSE

    def test_fallback_shape(self):
        decision = fallback_decision(ErrorKind.TIMEOUT)
        assert decision.kind == DecisionKind.INTEGRATE_KNOWLEDGE
        assert decision.is_fallback
        assert decision.reasoning.startswith("fallback: timeout")


class TestDecide:
    @pytest.mark.asyncio
    async def test_model_decision_is_audited(self, storage, clock):
        model = FakeModel(decision_json("reflect", "reflect on growth"))
        engine = DecisionEngine(make_gateway(model, clock), storage)
        decision = await engine.decide(AgentState.initial())
        assert decision.kind == DecisionKind.REFLECT
        assert not decision.is_fallback
        records = storage.get_recent_decisions()
        assert len(records) == 1
        assert records[0].action == "reflect on growth"

    @pytest.mark.asyncio
    async def test_context_includes_concepts_and_questions(self, storage, clock):
        storage.save_concept(ConceptNode(name="entropy"))
        storage.save_question(SelfQuestion(question="Why is there something?", priority=9))
        model = FakeModel(decision_json())
        engine = DecisionEngine(make_gateway(model, clock), storage)
        await engine.decide(AgentState.initial())
        prompt = model.calls[0]["prompt"]
        assert "entropy" in prompt
        assert "Why is there something?" in prompt
        assert model.calls[0]["response_schema"]["type"] == "object"

    @pytest.mark.asyncio
    async def test_timeouts_yield_fallback(self, storage, clock):
        model = FakeModel(timeout_error())
        engine = DecisionEngine(make_gateway(model, clock), storage)
        decision = await engine.decide(AgentState.initial())
        assert decision.is_fallback
        assert decision.kind == DecisionKind.INTEGRATE_KNOWLEDGE
        assert "timeout" in decision.reasoning
        assert storage.get_recent_decisions()[0].is_fallback

    @pytest.mark.asyncio
    async def test_garbage_yields_fallback(self, storage, clock):
        engine = DecisionEngine(make_gateway(FakeModel("I think I'll nap"), clock), storage)
        decision = await engine.decide(AgentState.initial())
        assert decision.is_fallback
        assert "parse" in decision.reasoning

    @pytest.mark.asyncio
    async def test_audit_failure_does_not_change_decision(self, storage, clock):
        storage.save_decision = MagicMock(side_effect=RuntimeError("locked"))
        model = FakeModel(decision_json("rest", "rest now"))
        engine = DecisionEngine(make_gateway(model, clock), storage)
        decision = await engine.decide(AgentState.initial())
        assert decision.kind == DecisionKind.REST

    @pytest.mark.asyncio
    async def test_context_read_failure_still_decides(self, clock):
        broken = MagicMock()
        broken.get_recent_concepts.side_effect = RuntimeError("no table")
        broken.get_pending_questions.return_value = []
        broken.get_recent_reflections.return_value = []
        model = FakeModel(decision_json("reflect"))
        engine = DecisionEngine(make_gateway(model, clock), broken)
        decision = await engine.decide(AgentState.initial())
        assert decision.kind == DecisionKind.REFLECT
