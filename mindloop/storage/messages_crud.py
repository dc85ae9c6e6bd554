"""Proactive message CRUD operations."""

import logging
import sqlite3
from typing import Callable, List, Optional

from mindloop.types import (
    MessageStatus,
    ProactiveMessage,
    Urgency,
    format_datetime,
    parse_datetime,
    utc_now,
)

logger = logging.getLogger(__name__)


def _row_to_message(row: sqlite3.Row) -> ProactiveMessage:
    return ProactiveMessage(
        id=row["id"],
        content=row["content"],
        reason=row["reason"],
        urgency=Urgency(row["urgency"]),
        question_id=row["question_id"],
        status=MessageStatus(row["status"]),
        created_at=parse_datetime(row["created_at"]),
        sent_at=parse_datetime(row["sent_at"]),
    )


def save_message(connect_fn: Callable, message: ProactiveMessage) -> str:
    message.created_at = message.created_at or utc_now()
    with connect_fn() as conn:
        conn.execute(
            "INSERT INTO proactive_messages "
            "(id, content, reason, urgency, question_id, status, created_at, sent_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                message.id,
                message.content,
                message.reason,
                message.urgency.value,
                message.question_id,
                message.status.value,
                format_datetime(message.created_at),
                format_datetime(message.sent_at),
            ),
        )
    return message.id


def get_oldest_pending_message(connect_fn: Callable) -> Optional[ProactiveMessage]:
    with connect_fn() as conn:
        row = conn.execute(
            "SELECT * FROM proactive_messages WHERE status = ? "
            "ORDER BY created_at ASC, rowid ASC LIMIT 1",
            (MessageStatus.PENDING.value,),
        ).fetchone()
        return _row_to_message(row) if row else None


def mark_message_sent(connect_fn: Callable, message_id: str) -> bool:
    with connect_fn() as conn:
        result = conn.execute(
            "UPDATE proactive_messages SET status = ?, sent_at = ? WHERE id = ? AND status = ?",
            (
                MessageStatus.SENT.value,
                format_datetime(utc_now()),
                message_id,
                MessageStatus.PENDING.value,
            ),
        )
        return result.rowcount > 0


def list_messages(
    connect_fn: Callable, status: Optional[MessageStatus] = None, limit: int = 20
) -> List[ProactiveMessage]:
    with connect_fn() as conn:
        if status is None:
            rows = conn.execute(
                "SELECT * FROM proactive_messages ORDER BY created_at DESC LIMIT ?", (limit,)
            ).fetchall()
        else:
            rows = conn.execute(
                "SELECT * FROM proactive_messages WHERE status = ? "
                "ORDER BY created_at DESC LIMIT ?",
                (status.value, limit),
            ).fetchall()
        return [_row_to_message(r) for r in rows]
