"""Agent state and decision audit CRUD operations.

All functions receive the connection factory explicitly so they can be
tested independently of SQLiteStorage.
"""

import logging
import sqlite3
from typing import Callable, List, Optional

from mindloop.types import (
    AgentMode,
    AgentState,
    DecisionKind,
    DecisionRecord,
    format_datetime,
    parse_datetime,
    utc_now,
)

logger = logging.getLogger(__name__)


def _row_to_agent_state(row: sqlite3.Row) -> AgentState:
    return AgentState(
        mode=AgentMode(row["mode"]),
        motivation=row["motivation"],
        motivation_intensity=row["motivation_intensity"],
        last_thought=row["last_thought"],
        autonomy_level=row["autonomy_level"],
        updated_at=parse_datetime(row["updated_at"]),
    )


def get_agent_state(connect_fn: Callable) -> Optional[AgentState]:
    """Return the singleton state row, or None before first boot."""
    with connect_fn() as conn:
        row = conn.execute("SELECT * FROM agent_state WHERE id = 1").fetchone()
        return _row_to_agent_state(row) if row else None


def save_agent_state(connect_fn: Callable, state: AgentState) -> AgentState:
    """Insert or replace the singleton state row."""
    updated_at = state.updated_at or utc_now()
    with connect_fn() as conn:
        conn.execute(
            "INSERT INTO agent_state "
            "(id, mode, motivation, motivation_intensity, last_thought, autonomy_level, updated_at) "
            "VALUES (1, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(id) DO UPDATE SET mode = excluded.mode, "
            "motivation = excluded.motivation, "
            "motivation_intensity = excluded.motivation_intensity, "
            "last_thought = excluded.last_thought, "
            "autonomy_level = excluded.autonomy_level, "
            "updated_at = excluded.updated_at",
            (
                state.mode.value,
                state.motivation,
                state.motivation_intensity,
                state.last_thought,
                state.autonomy_level,
                format_datetime(updated_at),
            ),
        )
    state.updated_at = updated_at
    return state


def save_decision(connect_fn: Callable, record: DecisionRecord) -> str:
    """Append a decision to the audit trail. Returns the record ID."""
    created_at = record.created_at or utc_now()
    with connect_fn() as conn:
        conn.execute(
            "INSERT INTO decisions (id, kind, context, reasoning, action, is_fallback, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                record.id,
                record.kind.value,
                record.context,
                record.reasoning,
                record.action,
                1 if record.is_fallback else 0,
                format_datetime(created_at),
            ),
        )
    return record.id


def get_recent_decisions(connect_fn: Callable, limit: int = 20) -> List[DecisionRecord]:
    with connect_fn() as conn:
        rows = conn.execute(
            "SELECT * FROM decisions ORDER BY created_at DESC LIMIT ?", (limit,)
        ).fetchall()
        return [
            DecisionRecord(
                id=r["id"],
                kind=DecisionKind(r["kind"]),
                context=r["context"],
                reasoning=r["reasoning"],
                action=r["action"],
                is_fallback=bool(r["is_fallback"]),
                created_at=parse_datetime(r["created_at"]),
            )
            for r in rows
        ]
