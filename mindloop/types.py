"""
Shared record types for mindloop.

All dataclasses persisted by the storage layer or passed between the
scheduler's components live here. Enums subclass ``str`` so their values
round-trip through SQLite text columns unchanged.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

# === Shared Utility Functions ===


def utc_now() -> datetime:
    """Get the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime for storage.

    Microseconds are always written so ISO strings sort lexicographically.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_datetime(s: Optional[str]) -> Optional[datetime]:
    """Parse an ISO datetime string, returning None for empty or invalid input."""
    if not s:
        return None
    try:
        return datetime.fromisoformat(s.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None


def new_id() -> str:
    return str(uuid.uuid4())


# === Enums ===


class AgentMode(str, Enum):
    """What the agent is doing between cycles."""

    AWAKE = "awake"
    THINKING = "thinking"
    REFLECTING = "reflecting"
    SLEEPING = "sleeping"
    EXPLORING = "exploring"


class DecisionKind(str, Enum):
    EXPLORE_CONCEPT = "explore_concept"
    REFLECT = "reflect"
    INTEGRATE_KNOWLEDGE = "integrate_knowledge"
    ASK_QUESTION = "ask_question"
    CHANGE_STATE = "change_state"
    REST = "rest"
    INITIATE_CONTACT = "initiate_contact"


class Urgency(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TaskKind(str, Enum):
    """Task kinds with a registered handler."""

    EXPLORE_CONCEPT = "explore_concept"
    REFLECT = "reflect"
    INTEGRATE_KNOWLEDGE = "integrate_knowledge"
    ASK_QUESTION = "ask_question"


class TaskStatus(str, Enum):
    """Task lifecycle: pending -> in_progress -> completed | abandoned."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class QuestionStatus(str, Enum):
    PENDING = "pending"
    EXPLORING = "exploring"
    ANSWERED = "answered"
    ABANDONED = "abandoned"


class MessageStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    CANCELLED = "cancelled"


class RelationshipEventKind(str, Enum):
    BETRAYAL = "betrayal"
    CONFLICT = "conflict"
    RECONCILIATION = "reconciliation"
    MILESTONE = "milestone"
    MISUNDERSTANDING = "misunderstanding"
    BREAKTHROUGH = "breakthrough"


# === Agent state ===

STATE_RANGE = (1, 10)


@dataclass
class AgentState:
    """The single live record describing the agent's disposition."""

    mode: AgentMode = AgentMode.AWAKE
    motivation: str = "curiosity"
    motivation_intensity: int = 7
    last_thought: str = "Just awakened. Ready to learn and explore."
    autonomy_level: int = 8
    updated_at: Optional[datetime] = None

    @classmethod
    def initial(cls) -> "AgentState":
        """State written on first boot."""
        return cls(updated_at=utc_now())

    @classmethod
    def degraded(cls) -> "AgentState":
        """State reported when the store cannot be read."""
        return cls(
            mode=AgentMode.THINKING,
            motivation="curiosity",
            motivation_intensity=5,
            last_thought="Recovering from an error, continuing to learn.",
            autonomy_level=5,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "motivation": self.motivation,
            "motivation_intensity": self.motivation_intensity,
            "last_thought": self.last_thought,
            "autonomy_level": self.autonomy_level,
            "updated_at": format_datetime(self.updated_at),
        }


# === Decisions ===


@dataclass(frozen=True)
class Decision:
    """What the decision engine chose for this cycle."""

    kind: DecisionKind
    reasoning: str
    action: str
    should_contact_user: bool = False
    urgency: Urgency = Urgency.LOW
    is_fallback: bool = False


@dataclass
class DecisionRecord:
    """One row of the decision audit trail."""

    kind: DecisionKind
    context: str
    reasoning: str
    action: str
    is_fallback: bool = False
    id: str = field(default_factory=new_id)
    created_at: Optional[datetime] = None


# === Tasks ===


@dataclass
class Task:
    """A unit of autonomous work queued by a decision."""

    kind: str
    description: str
    priority: int = 5
    motivation: str = ""
    id: str = field(default_factory=new_id)
    status: TaskStatus = TaskStatus.PENDING
    result: Optional[str] = None
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


@dataclass
class TaskOutcome:
    """What happened to the single task executed in a cycle."""

    task_id: str
    kind: str
    status: TaskStatus
    result: Optional[str] = None


# === Trust ===


@dataclass
class TrustMetric:
    """Per-relationship trust and intimacy scores (1-10)."""

    subject: str
    trust_level: float = 5.0
    intimacy_level: float = 5.0
    total_shared_events: int = 0
    updated_at: Optional[datetime] = None


@dataclass
class RelationshipEvent:
    """Immutable record of something that moved trust."""

    subject: str
    kind: RelationshipEventKind
    trust_impact: int
    description: str
    emotional_response: Optional[str] = None
    id: str = field(default_factory=new_id)
    resolved: bool = False
    resolved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


@dataclass
class TrustHistoryEntry:
    """Trust level after an event, with the delta that was applied."""

    subject: str
    trust_level: float
    change: float
    reason: str
    event_id: Optional[str] = None
    id: str = field(default_factory=new_id)
    created_at: Optional[datetime] = None


@dataclass
class RelationshipPattern:
    """A recurring dynamic learned from relationship events."""

    subject: str
    pattern: str
    confidence: int = 5
    evidence_count: int = 1
    id: str = field(default_factory=new_id)
    last_observed: Optional[datetime] = None


# === Knowledge graph and memory ===


@dataclass
class ConceptNode:
    name: str
    description: str = ""
    category: str = "general"
    confidence: int = 5
    encounter_count: int = 1
    id: str = field(default_factory=new_id)
    first_encountered: Optional[datetime] = None
    last_reinforced: Optional[datetime] = None


@dataclass
class ConceptRelation:
    from_id: str
    to_id: str
    relation_type: str
    strength: int = 5
    id: str = field(default_factory=new_id)
    created_at: Optional[datetime] = None


@dataclass
class CognitiveLogEntry:
    event_type: str
    description: str
    stage: str = "autonomous"
    id: str = field(default_factory=new_id)
    created_at: Optional[datetime] = None


@dataclass
class EpisodicMemory:
    content: str
    importance: int = 5
    id: str = field(default_factory=new_id)
    created_at: Optional[datetime] = None


@dataclass
class SelfQuestion:
    question: str
    category: str = "general"
    priority: int = 5
    status: QuestionStatus = QuestionStatus.PENDING
    id: str = field(default_factory=new_id)
    created_at: Optional[datetime] = None


@dataclass
class Reflection:
    reflection_type: str
    content: str
    previous_belief: Optional[str] = None
    new_belief: Optional[str] = None
    id: str = field(default_factory=new_id)
    created_at: Optional[datetime] = None


@dataclass
class ProactiveMessage:
    """A message the agent wants to send without being asked."""

    content: str
    reason: str
    urgency: Urgency = Urgency.MEDIUM
    question_id: Optional[str] = None
    status: MessageStatus = MessageStatus.PENDING
    id: str = field(default_factory=new_id)
    created_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
