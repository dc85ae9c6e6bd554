"""TrustScorer: relationship events, trust levels and learned patterns.

Each event moves trust by ``trust_impact * damping`` (damping 0.5 by
default), clamped to [1, 10]. The event, the new level and a history
entry are written together.
"""

import json
import logging
from datetime import timedelta
from typing import List, Optional

from pydantic import BaseModel, Field, ValidationError

from mindloop.gateway import Gateway
from mindloop.invoker import InvocationRequest
from mindloop.logging_config import log_trust_change
from mindloop.types import (
    RelationshipEvent,
    RelationshipEventKind,
    RelationshipPattern,
    TrustHistoryEntry,
    TrustMetric,
    format_datetime,
    utc_now,
)
from mindloop.utils import clamp, offload, strip_code_fence

logger = logging.getLogger(__name__)

IMPACT_RANGE = (-10, 10)
MIN_EVENTS_FOR_PATTERNS = 3
PATTERN_WINDOW = 10
HEALING_AGE = timedelta(hours=1)


class PatternPayload(BaseModel):
    pattern: str = Field(min_length=1)
    confidence: int = Field(ge=1, le=10)
    evidence: str = ""


class PatternReply(BaseModel):
    patterns: List[PatternPayload]


PATTERN_SCHEMA = PatternReply.model_json_schema()


class TrustScorer:
    def __init__(
        self,
        storage,
        gateway: Optional[Gateway] = None,
        damping: float = 0.5,
        store_timeout: Optional[float] = None,
        agent_id: str = "default",
    ):
        self._storage = storage
        self._gateway = gateway
        self._damping = damping
        self._store_timeout = store_timeout
        self._agent_id = agent_id

    async def _store(self, fn, *args):
        return await offload(fn, *args, timeout=self._store_timeout)

    async def record_event(
        self,
        subject: str,
        kind: RelationshipEventKind,
        trust_impact: int,
        description: str,
        emotional_response: Optional[str] = None,
    ) -> float:
        """Record an event and return the new trust level.

        Raises:
            StorageError: if the event could not be written.
        """
        low, high = IMPACT_RANGE
        event = RelationshipEvent(
            subject=subject,
            kind=RelationshipEventKind(kind),
            trust_impact=int(clamp(int(trust_impact), low, high)),
            description=description,
            emotional_response=emotional_response,
        )
        metric, entry = await self._store(self._storage.apply_trust_event, event, self._damping)
        logger.info(
            f"Trust for {subject}: {metric.trust_level - entry.change:.1f} -> "
            f"{metric.trust_level:.1f} ({event.kind.value}, impact {event.trust_impact})"
        )
        log_trust_change(
            self._agent_id,
            subject=subject,
            before=round(metric.trust_level - entry.change, 2),
            after=round(metric.trust_level, 2),
            event=event.kind.value,
        )
        return metric.trust_level

    async def get_metric(self, subject: str) -> TrustMetric:
        metric = await self._store(self._storage.get_trust_metric, subject)
        return metric or TrustMetric(subject=subject)

    async def history(self, subject: str, limit: int = 20) -> List[TrustHistoryEntry]:
        return await self._store(self._storage.get_trust_history, subject, limit)

    async def resolve_event(self, event_id: str) -> bool:
        return await self._store(self._storage.resolve_event, event_id)

    async def needs_healing(self, subject: str, min_age: timedelta = HEALING_AGE) -> bool:
        """True if an unresolved event older than ``min_age`` exists."""
        cutoff = format_datetime(utc_now() - min_age)
        events = await self._store(self._storage.get_unresolved_events, subject, cutoff)
        return bool(events)

    async def learn_patterns(self, subject: str) -> List[RelationshipPattern]:
        """Ask the model for recurring dynamics in recent events.

        Needs at least three events. The reply is ``{"patterns": [...]}`` or a
        bare list, optionally inside a markdown code fence; anything else
        yields no patterns.
        """
        events = await self._store(self._storage.get_recent_events, subject, PATTERN_WINDOW)
        if len(events) < MIN_EVENTS_FOR_PATTERNS or self._gateway is None:
            return []

        lines = "\n".join(
            f"- {e.kind.value} (impact {e.trust_impact}): {e.description}" for e in events
        )
        result = await self._gateway.call(
            InvocationRequest(
                prompt=(
                    f"Here are recent events in my relationship with {subject}:\n{lines}\n\n"
                    'Identify recurring patterns. Reply with a JSON object {"patterns": [...]} '
                    'whose items have keys "pattern", "confidence" (1-10) and "evidence".'
                ),
                temperature=0.3,
                response_schema=PATTERN_SCHEMA,
            ),
            call_class="default",
        )
        if not result.is_ok:
            logger.info(f"Pattern learning skipped for {subject}: {result.describe()}")
            return []

        try:
            data = json.loads(strip_code_fence(result.value))
            if isinstance(data, list):
                data = {"patterns": data}
            payloads = PatternReply.model_validate(data).patterns
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Unusable pattern response for {subject}: {e}")
            return []

        learned = []
        for p in payloads:
            pattern = RelationshipPattern(
                subject=subject, pattern=p.pattern.strip(), confidence=p.confidence
            )
            learned.append(await self._store(self._storage.upsert_relationship_pattern, pattern))
        return learned
