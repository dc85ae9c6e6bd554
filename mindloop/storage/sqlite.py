"""SQLite storage backend for mindloop.

Every public method opens its own connection through ``_connect()`` and
runs as a single transaction, so callers may invoke them from worker
threads (the async components use ``mindloop.utils.offload``).
"""

import contextlib
import logging
import sqlite3
from pathlib import Path
from typing import List, Optional, Tuple

from mindloop.types import (
    AgentState,
    CognitiveLogEntry,
    ConceptNode,
    ConceptRelation,
    DecisionRecord,
    EpisodicMemory,
    MessageStatus,
    ProactiveMessage,
    QuestionStatus,
    Reflection,
    RelationshipEvent,
    RelationshipPattern,
    SelfQuestion,
    Task,
    TaskStatus,
    TrustHistoryEntry,
    TrustMetric,
)
from mindloop.utils import get_mindloop_home

from . import knowledge_crud, memory_ops, messages_crud, state_crud, tasks_crud, trust_crud
from .schema import init_db

logger = logging.getLogger(__name__)


class SQLiteStorage:
    """Durable store for the autonomy loop's tables."""

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = Path(db_path) if db_path else get_mindloop_home() / "mindloop.db"
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self) -> None:
        with self._connect() as conn:
            init_db(conn)

    def _get_conn(self) -> sqlite3.Connection:
        """Open a connection. Prefer ``_connect()``, which also commits and closes."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout=5000")
        return conn

    @contextlib.contextmanager
    def _connect(self):
        """Context manager that handles transactions AND closes connection.

        - Transaction commit on success
        - Transaction rollback on exception
        - Connection close in all cases
        """
        conn = self._get_conn()
        try:
            yield conn
            conn.commit()
        except Exception as e:
            logger.debug(f"Transaction failed, rolling back: {e}")
            conn.rollback()
            raise
        finally:
            conn.close()

    def close(self):
        """Connections are per-operation; kept for API symmetry."""
        pass

    # === Agent state and decisions ===

    def get_agent_state(self) -> Optional[AgentState]:
        return state_crud.get_agent_state(self._connect)

    def save_agent_state(self, state: AgentState) -> AgentState:
        return state_crud.save_agent_state(self._connect, state)

    def save_decision(self, record: DecisionRecord) -> str:
        return state_crud.save_decision(self._connect, record)

    def get_recent_decisions(self, limit: int = 20) -> List[DecisionRecord]:
        return state_crud.get_recent_decisions(self._connect, limit)

    # === Tasks ===

    def save_task(self, task: Task) -> str:
        return tasks_crud.save_task(self._connect, task)

    def get_task(self, task_id: str) -> Optional[Task]:
        return tasks_crud.get_task(self._connect, task_id)

    def get_next_pending_task(self) -> Optional[Task]:
        return tasks_crud.get_next_pending_task(self._connect)

    def transition_task(
        self,
        task_id: str,
        from_status: TaskStatus,
        to_status: TaskStatus,
        result: Optional[str] = None,
    ) -> bool:
        return tasks_crud.transition_task(self._connect, task_id, from_status, to_status, result)

    def list_tasks(self, status: Optional[TaskStatus] = None, limit: int = 50) -> List[Task]:
        return tasks_crud.list_tasks(self._connect, status, limit)

    # === Trust ===

    def get_trust_metric(self, subject: str) -> Optional[TrustMetric]:
        return trust_crud.get_trust_metric(self._connect, subject)

    def apply_trust_event(
        self, event: RelationshipEvent, damping: float
    ) -> Tuple[TrustMetric, TrustHistoryEntry]:
        return trust_crud.apply_trust_event(self._connect, event, damping)

    def get_relationship_event(self, event_id: str) -> Optional[RelationshipEvent]:
        return trust_crud.get_relationship_event(self._connect, event_id)

    def get_recent_events(self, subject: str, limit: int = 10) -> List[RelationshipEvent]:
        return trust_crud.get_recent_events(self._connect, subject, limit)

    def get_unresolved_events(self, subject: str, created_before: str) -> List[RelationshipEvent]:
        return trust_crud.get_unresolved_events(self._connect, subject, created_before)

    def resolve_event(self, event_id: str) -> bool:
        return trust_crud.resolve_event(self._connect, event_id)

    def get_trust_history(self, subject: str, limit: int = 20) -> List[TrustHistoryEntry]:
        return trust_crud.get_trust_history(self._connect, subject, limit)

    def upsert_relationship_pattern(self, pattern: RelationshipPattern) -> RelationshipPattern:
        return trust_crud.upsert_relationship_pattern(self._connect, pattern)

    def get_relationship_patterns(self, subject: str) -> List[RelationshipPattern]:
        return trust_crud.get_relationship_patterns(self._connect, subject)

    # === Knowledge ===

    def save_concept(self, concept: ConceptNode) -> str:
        return knowledge_crud.save_concept(self._connect, concept)

    def reinforce_concept(
        self, name: str, description: str = "", category: str = "general"
    ) -> ConceptNode:
        return knowledge_crud.reinforce_concept(self._connect, name, description, category)

    def get_concept_by_name(self, name: str) -> Optional[ConceptNode]:
        return knowledge_crud.get_concept_by_name(self._connect, name)

    def get_recent_concepts(self, limit: int = 10) -> List[ConceptNode]:
        return knowledge_crud.get_recent_concepts(self._connect, limit)

    def get_all_concepts(self) -> List[ConceptNode]:
        return knowledge_crud.get_all_concepts(self._connect)

    def save_relation(self, relation: ConceptRelation) -> str:
        return knowledge_crud.save_relation(self._connect, relation)

    def get_relations(self, concept_id: Optional[str] = None) -> List[ConceptRelation]:
        return knowledge_crud.get_relations(self._connect, concept_id)

    def save_question(self, question: SelfQuestion) -> str:
        return knowledge_crud.save_question(self._connect, question)

    def get_pending_questions(self, limit: int = 5, min_priority: int = 1) -> List[SelfQuestion]:
        return knowledge_crud.get_pending_questions(self._connect, limit, min_priority)

    def update_question_status(self, question_id: str, status: QuestionStatus) -> bool:
        return knowledge_crud.update_question_status(self._connect, question_id, status)

    def save_reflection(self, reflection: Reflection) -> str:
        return knowledge_crud.save_reflection(self._connect, reflection)

    def get_recent_reflections(self, limit: int = 3) -> List[Reflection]:
        return knowledge_crud.get_recent_reflections(self._connect, limit)

    # === Memory logs and consolidation ===

    def save_log_entry(self, entry: CognitiveLogEntry) -> str:
        return memory_ops.save_log_entry(self._connect, entry)

    def get_recent_log_entries(self, limit: int = 20) -> List[CognitiveLogEntry]:
        return memory_ops.get_recent_log_entries(self._connect, limit)

    def save_episode(self, episode: EpisodicMemory) -> str:
        return memory_ops.save_episode(self._connect, episode)

    def delete_logs_before(self, cutoff: str) -> int:
        return memory_ops.delete_logs_before(self._connect, cutoff)

    def delete_episodes_before(self, cutoff: str) -> int:
        return memory_ops.delete_episodes_before(self._connect, cutoff)

    def delete_weak_relations(self, floor: int) -> int:
        return memory_ops.delete_weak_relations(self._connect, floor)

    def merge_duplicate_concepts(self) -> int:
        return memory_ops.merge_duplicate_concepts(self._connect)

    def delete_orphan_relations(self) -> int:
        return memory_ops.delete_orphan_relations(self._connect)

    def trim_table(self, table: str, limit: int) -> int:
        return memory_ops.trim_table(self._connect, table, limit)

    def count_rows(self, table: str) -> int:
        return memory_ops.count_rows(self._connect, table)

    # === Proactive messages ===

    def save_message(self, message: ProactiveMessage) -> str:
        return messages_crud.save_message(self._connect, message)

    def get_oldest_pending_message(self) -> Optional[ProactiveMessage]:
        return messages_crud.get_oldest_pending_message(self._connect)

    def mark_message_sent(self, message_id: str) -> bool:
        return messages_crud.mark_message_sent(self._connect, message_id)

    def list_messages(
        self, status: Optional[MessageStatus] = None, limit: int = 20
    ) -> List[ProactiveMessage]:
        return messages_crud.list_messages(self._connect, status, limit)
