"""Knowledge graph, self-question and reflection CRUD operations."""

import logging
import sqlite3
from typing import Callable, List, Optional

from mindloop.types import (
    ConceptNode,
    ConceptRelation,
    QuestionStatus,
    Reflection,
    SelfQuestion,
    format_datetime,
    parse_datetime,
    utc_now,
)

logger = logging.getLogger(__name__)


# === Concepts ===


def _row_to_concept(row: sqlite3.Row) -> ConceptNode:
    return ConceptNode(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        category=row["category"],
        confidence=row["confidence"],
        encounter_count=row["encounter_count"],
        first_encountered=parse_datetime(row["first_encountered"]),
        last_reinforced=parse_datetime(row["last_reinforced"]),
    )


def save_concept(connect_fn: Callable, concept: ConceptNode) -> str:
    """Insert a concept. Returns the concept ID."""
    now = utc_now()
    concept.first_encountered = concept.first_encountered or now
    concept.last_reinforced = concept.last_reinforced or now
    with connect_fn() as conn:
        conn.execute(
            "INSERT INTO concepts "
            "(id, name, description, category, confidence, encounter_count, "
            "first_encountered, last_reinforced) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                concept.id,
                concept.name,
                concept.description,
                concept.category,
                concept.confidence,
                concept.encounter_count,
                format_datetime(concept.first_encountered),
                format_datetime(concept.last_reinforced),
            ),
        )
    return concept.id


def reinforce_concept(
    connect_fn: Callable,
    name: str,
    description: str = "",
    category: str = "general",
) -> ConceptNode:
    """Bump an existing concept's encounter count and confidence (max 10), or create it."""
    now = utc_now()
    with connect_fn() as conn:
        row = conn.execute("SELECT * FROM concepts WHERE name = ?", (name,)).fetchone()
        if row:
            conn.execute(
                "UPDATE concepts SET encounter_count = encounter_count + 1, "
                "confidence = MIN(10, confidence + 1), last_reinforced = ?, "
                "description = CASE WHEN ? != '' THEN ? ELSE description END "
                "WHERE id = ?",
                (format_datetime(now), description, description, row["id"]),
            )
            concept = _row_to_concept(row)
            concept.encounter_count += 1
            concept.confidence = min(10, concept.confidence + 1)
            concept.last_reinforced = now
            if description:
                concept.description = description
            return concept

        concept = ConceptNode(
            name=name,
            description=description,
            category=category,
            first_encountered=now,
            last_reinforced=now,
        )
        conn.execute(
            "INSERT INTO concepts "
            "(id, name, description, category, confidence, encounter_count, "
            "first_encountered, last_reinforced) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                concept.id,
                concept.name,
                concept.description,
                concept.category,
                concept.confidence,
                concept.encounter_count,
                format_datetime(now),
                format_datetime(now),
            ),
        )
        return concept


def get_concept_by_name(connect_fn: Callable, name: str) -> Optional[ConceptNode]:
    with connect_fn() as conn:
        row = conn.execute("SELECT * FROM concepts WHERE name = ?", (name,)).fetchone()
        return _row_to_concept(row) if row else None


def get_recent_concepts(connect_fn: Callable, limit: int = 10) -> List[ConceptNode]:
    """Most recently reinforced concepts first."""
    with connect_fn() as conn:
        rows = conn.execute(
            "SELECT * FROM concepts ORDER BY last_reinforced DESC LIMIT ?", (limit,)
        ).fetchall()
        return [_row_to_concept(r) for r in rows]


def get_all_concepts(connect_fn: Callable) -> List[ConceptNode]:
    with connect_fn() as conn:
        rows = conn.execute("SELECT * FROM concepts ORDER BY rowid").fetchall()
        return [_row_to_concept(r) for r in rows]


# === Relations ===


def save_relation(connect_fn: Callable, relation: ConceptRelation) -> str:
    relation.created_at = relation.created_at or utc_now()
    with connect_fn() as conn:
        conn.execute(
            "INSERT INTO concept_relations "
            "(id, from_id, to_id, relation_type, strength, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                relation.id,
                relation.from_id,
                relation.to_id,
                relation.relation_type,
                relation.strength,
                format_datetime(relation.created_at),
            ),
        )
    return relation.id


def get_relations(connect_fn: Callable, concept_id: Optional[str] = None) -> List[ConceptRelation]:
    with connect_fn() as conn:
        if concept_id is None:
            rows = conn.execute("SELECT * FROM concept_relations ORDER BY created_at").fetchall()
        else:
            rows = conn.execute(
                "SELECT * FROM concept_relations WHERE from_id = ? OR to_id = ? "
                "ORDER BY created_at",
                (concept_id, concept_id),
            ).fetchall()
        return [
            ConceptRelation(
                id=r["id"],
                from_id=r["from_id"],
                to_id=r["to_id"],
                relation_type=r["relation_type"],
                strength=r["strength"],
                created_at=parse_datetime(r["created_at"]),
            )
            for r in rows
        ]


# === Self-questions ===


def _row_to_question(row: sqlite3.Row) -> SelfQuestion:
    return SelfQuestion(
        id=row["id"],
        question=row["question"],
        category=row["category"],
        priority=row["priority"],
        status=QuestionStatus(row["status"]),
        created_at=parse_datetime(row["created_at"]),
    )


def save_question(connect_fn: Callable, question: SelfQuestion) -> str:
    question.created_at = question.created_at or utc_now()
    with connect_fn() as conn:
        conn.execute(
            "INSERT INTO self_questions (id, question, category, priority, status, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                question.id,
                question.question,
                question.category,
                question.priority,
                question.status.value,
                format_datetime(question.created_at),
            ),
        )
    return question.id


def get_pending_questions(
    connect_fn: Callable,
    limit: int = 5,
    min_priority: int = 1,
) -> List[SelfQuestion]:
    """Pending questions, highest priority first, oldest first among equals."""
    with connect_fn() as conn:
        rows = conn.execute(
            "SELECT * FROM self_questions WHERE status = ? AND priority >= ? "
            "ORDER BY priority DESC, created_at ASC LIMIT ?",
            (QuestionStatus.PENDING.value, min_priority, limit),
        ).fetchall()
        return [_row_to_question(r) for r in rows]


def update_question_status(connect_fn: Callable, question_id: str, status: QuestionStatus) -> bool:
    with connect_fn() as conn:
        result = conn.execute(
            "UPDATE self_questions SET status = ? WHERE id = ?", (status.value, question_id)
        )
        return result.rowcount > 0


# === Reflections ===


def save_reflection(connect_fn: Callable, reflection: Reflection) -> str:
    reflection.created_at = reflection.created_at or utc_now()
    with connect_fn() as conn:
        conn.execute(
            "INSERT INTO reflections "
            "(id, reflection_type, content, previous_belief, new_belief, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                reflection.id,
                reflection.reflection_type,
                reflection.content,
                reflection.previous_belief,
                reflection.new_belief,
                format_datetime(reflection.created_at),
            ),
        )
    return reflection.id


def get_recent_reflections(connect_fn: Callable, limit: int = 3) -> List[Reflection]:
    with connect_fn() as conn:
        rows = conn.execute(
            "SELECT * FROM reflections ORDER BY created_at DESC LIMIT ?", (limit,)
        ).fetchall()
        return [
            Reflection(
                id=r["id"],
                reflection_type=r["reflection_type"],
                content=r["content"],
                previous_belief=r["previous_belief"],
                new_belief=r["new_belief"],
                created_at=parse_datetime(r["created_at"]),
            )
            for r in rows
        ]
