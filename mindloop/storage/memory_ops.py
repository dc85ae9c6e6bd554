"""Cognitive log, episodic memory and consolidation operations.

The deletion helpers here are only called by the memory consolidator;
every function is a single transaction.
"""

import logging
from typing import Callable, Dict, List

from mindloop.types import (
    CognitiveLogEntry,
    EpisodicMemory,
    format_datetime,
    parse_datetime,
    utc_now,
)

from .schema import validate_table_name

logger = logging.getLogger(__name__)

# Eviction order per table when enforcing a row ceiling (first rows go first)
TRIM_ORDER: Dict[str, str] = {
    "concepts": "last_reinforced ASC, rowid ASC",
    "concept_relations": "strength ASC, created_at ASC, rowid ASC",
    "cognitive_log": "created_at ASC, rowid ASC",
    "episodic_memories": "created_at ASC, rowid ASC",
}


# === Logs and episodes ===


def save_log_entry(connect_fn: Callable, entry: CognitiveLogEntry) -> str:
    entry.created_at = entry.created_at or utc_now()
    with connect_fn() as conn:
        conn.execute(
            "INSERT INTO cognitive_log (id, stage, event_type, description, created_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (
                entry.id,
                entry.stage,
                entry.event_type,
                entry.description,
                format_datetime(entry.created_at),
            ),
        )
    return entry.id


def get_recent_log_entries(connect_fn: Callable, limit: int = 20) -> List[CognitiveLogEntry]:
    with connect_fn() as conn:
        rows = conn.execute(
            "SELECT * FROM cognitive_log ORDER BY created_at DESC LIMIT ?", (limit,)
        ).fetchall()
        return [
            CognitiveLogEntry(
                id=r["id"],
                stage=r["stage"],
                event_type=r["event_type"],
                description=r["description"],
                created_at=parse_datetime(r["created_at"]),
            )
            for r in rows
        ]


def save_episode(connect_fn: Callable, episode: EpisodicMemory) -> str:
    episode.created_at = episode.created_at or utc_now()
    with connect_fn() as conn:
        conn.execute(
            "INSERT INTO episodic_memories (id, content, importance, created_at) "
            "VALUES (?, ?, ?, ?)",
            (
                episode.id,
                episode.content,
                episode.importance,
                format_datetime(episode.created_at),
            ),
        )
    return episode.id


# === Consolidation ===


def delete_logs_before(connect_fn: Callable, cutoff: str) -> int:
    with connect_fn() as conn:
        return conn.execute("DELETE FROM cognitive_log WHERE created_at < ?", (cutoff,)).rowcount


def delete_episodes_before(connect_fn: Callable, cutoff: str) -> int:
    with connect_fn() as conn:
        return conn.execute(
            "DELETE FROM episodic_memories WHERE created_at < ?", (cutoff,)
        ).rowcount


def delete_weak_relations(connect_fn: Callable, floor: int) -> int:
    """Delete relations with strength strictly below ``floor``."""
    with connect_fn() as conn:
        return conn.execute(
            "DELETE FROM concept_relations WHERE strength < ?", (floor,)
        ).rowcount


def merge_duplicate_concepts(connect_fn: Callable) -> int:
    """Merge concepts whose names match ignoring case and surrounding whitespace.

    The survivor has the highest confidence (then most encounters, then
    earliest first_encountered). Duplicates' encounter counts are folded
    into it and their relations are re-pointed to it. Re-pointing can leave
    self-loops, which are dropped, and parallel edges of the same type,
    which collapse to the strongest one. Returns the number of concepts
    removed.
    """
    removed = 0
    with connect_fn() as conn:
        groups = conn.execute(
            "SELECT lower(trim(name)) AS norm FROM concepts "
            "GROUP BY lower(trim(name)) HAVING COUNT(*) > 1"
        ).fetchall()
        for group in groups:
            rows = conn.execute(
                "SELECT id, encounter_count FROM concepts WHERE lower(trim(name)) = ? "
                "ORDER BY confidence DESC, encounter_count DESC, first_encountered ASC, rowid ASC",
                (group["norm"],),
            ).fetchall()
            keeper, duplicates = rows[0], rows[1:]
            extra = sum(r["encounter_count"] for r in duplicates)
            for dup in duplicates:
                conn.execute(
                    "UPDATE concept_relations SET from_id = ? WHERE from_id = ?",
                    (keeper["id"], dup["id"]),
                )
                conn.execute(
                    "UPDATE concept_relations SET to_id = ? WHERE to_id = ?",
                    (keeper["id"], dup["id"]),
                )
                conn.execute("DELETE FROM concepts WHERE id = ?", (dup["id"],))
                removed += 1
            conn.execute(
                "UPDATE concepts SET encounter_count = encounter_count + ? WHERE id = ?",
                (extra, keeper["id"]),
            )
        if removed:
            conn.execute("DELETE FROM concept_relations WHERE from_id = to_id")
            conn.execute(
                "DELETE FROM concept_relations WHERE EXISTS ("
                "SELECT 1 FROM concept_relations AS other "
                "WHERE other.from_id = concept_relations.from_id "
                "AND other.to_id = concept_relations.to_id "
                "AND other.relation_type = concept_relations.relation_type "
                "AND (other.strength > concept_relations.strength "
                "OR (other.strength = concept_relations.strength "
                "AND other.rowid < concept_relations.rowid)))"
            )
    return removed


def delete_orphan_relations(connect_fn: Callable) -> int:
    """Delete relations whose endpoints no longer exist."""
    with connect_fn() as conn:
        return conn.execute(
            "DELETE FROM concept_relations "
            "WHERE from_id NOT IN (SELECT id FROM concepts) "
            "OR to_id NOT IN (SELECT id FROM concepts)"
        ).rowcount


def trim_table(connect_fn: Callable, table: str, limit: int) -> int:
    """Delete rows beyond ``limit`` in the table's eviction order.

    Returns the number of rows deleted; the table holds exactly ``limit``
    rows afterwards when it was over the ceiling.
    """
    table = validate_table_name(table)
    order_by = TRIM_ORDER[table]
    with connect_fn() as conn:
        count = conn.execute(f"SELECT COUNT(*) AS n FROM {table}").fetchone()["n"]
        excess = count - limit
        if excess <= 0:
            return 0
        return conn.execute(
            f"DELETE FROM {table} WHERE rowid IN "
            f"(SELECT rowid FROM {table} ORDER BY {order_by} LIMIT ?)",
            (excess,),
        ).rowcount


def count_rows(connect_fn: Callable, table: str) -> int:
    table = validate_table_name(table)
    with connect_fn() as conn:
        return conn.execute(f"SELECT COUNT(*) AS n FROM {table}").fetchone()["n"]
