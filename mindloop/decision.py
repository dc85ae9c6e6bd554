"""DecisionEngine: asks the model what the agent should do next.

The model's reply must be a JSON object matching ``DecisionPayload``;
anything else is a PARSE failure. Every failure mode (timeout, throttling,
bad output, missing model) produces the same fallback decision, so a
cycle always has something to act on. Each decision is appended to the
audit trail before it is returned.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from mindloop.gateway import Gateway
from mindloop.invoker import InvocationRequest
from mindloop.protocols import StorageError
from mindloop.result import ErrorKind, Result
from mindloop.types import (
    AgentState,
    ConceptNode,
    Decision,
    DecisionKind,
    DecisionRecord,
    Reflection,
    SelfQuestion,
    Urgency,
)
from mindloop.utils import offload, strip_code_fence

logger = logging.getLogger(__name__)

# Older prompts used these names for decision kinds
KIND_ALIASES = {
    "continue_learning": DecisionKind.INTEGRATE_KNOWLEDGE.value,
    "explore": DecisionKind.EXPLORE_CONCEPT.value,
    "question": DecisionKind.ASK_QUESTION.value,
    "contact_user": DecisionKind.INITIATE_CONTACT.value,
}

FALLBACK_ACTION = "continue_learning"

SYSTEM_PROMPT = (
    "You are the autonomous reasoning core of a curious conversational agent. "
    "Between conversations you decide what to think about next. Choose one "
    "decision for this cycle based on your current state and knowledge."
)


class DecisionPayload(BaseModel):
    """Schema the model's decision must satisfy."""

    model_config = ConfigDict(extra="forbid")

    decision_type: DecisionKind
    reasoning: str = Field(min_length=1)
    action: str = Field(min_length=1)
    should_contact_user: bool = False
    urgency: Urgency = Urgency.LOW

    @field_validator("decision_type", mode="before")
    @classmethod
    def _resolve_alias(cls, v):
        if isinstance(v, str):
            key = v.strip().lower()
            return KIND_ALIASES.get(key, key)
        return v

    def to_decision(self) -> Decision:
        return Decision(
            kind=self.decision_type,
            reasoning=self.reasoning.strip(),
            action=self.action.strip(),
            should_contact_user=self.should_contact_user,
            urgency=self.urgency,
        )


DECISION_SCHEMA = DecisionPayload.model_json_schema()


def parse_decision(text: str) -> Result[Decision]:
    """Validate raw model output against the decision schema."""
    raw = strip_code_fence(text)
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        return Result.fail(ErrorKind.PARSE, f"invalid JSON: {e.msg}")
    if not isinstance(data, dict):
        return Result.fail(ErrorKind.PARSE, "decision must be a JSON object")
    try:
        payload = DecisionPayload.model_validate(data)
    except ValidationError as e:
        return Result.fail(ErrorKind.PARSE, f"schema mismatch: {e.error_count()} error(s)")
    return Result.ok(payload.to_decision())


def fallback_decision(error: ErrorKind, detail: str = "") -> Decision:
    reasoning = f"fallback: {error.value}"
    if detail:
        reasoning = f"{reasoning} ({detail})"
    return Decision(
        kind=DecisionKind.INTEGRATE_KNOWLEDGE,
        reasoning=reasoning,
        action=FALLBACK_ACTION,
        is_fallback=True,
    )


@dataclass
class DecisionContext:
    """What the model sees when deciding."""

    state: AgentState
    concepts: List[ConceptNode] = field(default_factory=list)
    questions: List[SelfQuestion] = field(default_factory=list)
    reflections: List[Reflection] = field(default_factory=list)

    def summary(self) -> str:
        concepts = ", ".join(c.name for c in self.concepts) or "none yet"
        lines = [
            f"Mode: {self.state.mode.value}",
            f"Motivation: {self.state.motivation} "
            f"(intensity {self.state.motivation_intensity}/10)",
            f"Autonomy level: {self.state.autonomy_level}/10",
            f"Last thought: {self.state.last_thought}",
            f"Recent concepts: {concepts}",
        ]
        if self.questions:
            lines.append("Open questions:")
            lines.extend(f"- [{q.priority}] {q.question}" for q in self.questions)
        if self.reflections:
            lines.append("Recent reflections:")
            lines.extend(f"- {r.content[:200]}" for r in self.reflections)
        return "\n".join(lines)

    def prompt(self) -> str:
        kinds = ", ".join(k.value for k in DecisionKind)
        return (
            f"{self.summary()}\n\n"
            f"Decide what to do next. decision_type must be one of: {kinds}. "
            "For change_state, name the target mode in the action "
            "(thinking, reflecting, exploring, sleeping, awake). "
            "Set should_contact_user only if something is worth telling the user now."
        )


class DecisionEngine:
    def __init__(
        self,
        gateway: Gateway,
        storage,
        concept_limit: int = 10,
        question_limit: int = 5,
        reflection_limit: int = 3,
        store_timeout: Optional[float] = None,
    ):
        self._gateway = gateway
        self._storage = storage
        self._concept_limit = concept_limit
        self._question_limit = question_limit
        self._reflection_limit = reflection_limit
        self._store_timeout = store_timeout

    async def _load(self, fn, limit: int) -> list:
        try:
            return await offload(fn, limit, timeout=self._store_timeout)
        except StorageError as e:
            logger.warning(f"Decision context incomplete: {e}")
            return []

    async def build_context(self, state: AgentState) -> DecisionContext:
        return DecisionContext(
            state=state,
            concepts=await self._load(self._storage.get_recent_concepts, self._concept_limit),
            questions=await self._load(self._storage.get_pending_questions, self._question_limit),
            reflections=await self._load(
                self._storage.get_recent_reflections, self._reflection_limit
            ),
        )

    async def decide(self, state: AgentState, use_cache: bool = True) -> Decision:
        context = await self.build_context(state)
        request = InvocationRequest(
            prompt=context.prompt(),
            system=SYSTEM_PROMPT,
            response_schema=DECISION_SCHEMA,
            temperature=0.7,
        )
        result = await self._gateway.call(request, call_class="state", use_cache=use_cache)
        if result.is_ok:
            result = parse_decision(result.value)
            if not result.is_ok:
                logger.warning(f"Model decision rejected: {result.describe()}")

        if result.is_ok:
            decision = result.value
        else:
            decision = fallback_decision(result.error, result.detail)

        await self._audit(decision, context)
        return decision

    async def _audit(self, decision: Decision, context: DecisionContext) -> None:
        record = DecisionRecord(
            kind=decision.kind,
            context=context.summary(),
            reasoning=decision.reasoning,
            action=decision.action,
            is_fallback=decision.is_fallback,
        )
        try:
            await offload(self._storage.save_decision, record, timeout=self._store_timeout)
        except StorageError as e:
            logger.warning(f"Decision audit write failed: {e}")
