"""Trust and relationship CRUD operations.

``apply_trust_event`` performs the event insert, the trust update and the
history append in one transaction so a crash cannot leave a trust level
without the event that explains it.
"""

import logging
import sqlite3
from typing import Callable, List, Optional, Tuple

from mindloop.types import (
    RelationshipEvent,
    RelationshipEventKind,
    RelationshipPattern,
    TrustHistoryEntry,
    TrustMetric,
    format_datetime,
    parse_datetime,
    utc_now,
)
from mindloop.utils import clamp

logger = logging.getLogger(__name__)

TRUST_MIN = 1.0
TRUST_MAX = 10.0
NEUTRAL_TRUST = 5.0

# Event kinds that deepen intimacy when their impact is positive
INTIMACY_EVENTS = frozenset(
    {
        RelationshipEventKind.MILESTONE,
        RelationshipEventKind.BREAKTHROUGH,
        RelationshipEventKind.RECONCILIATION,
    }
)


def _row_to_metric(row: sqlite3.Row) -> TrustMetric:
    return TrustMetric(
        subject=row["subject"],
        trust_level=row["trust_level"],
        intimacy_level=row["intimacy_level"],
        total_shared_events=row["total_shared_events"],
        updated_at=parse_datetime(row["updated_at"]),
    )


def _row_to_event(row: sqlite3.Row) -> RelationshipEvent:
    return RelationshipEvent(
        id=row["id"],
        subject=row["subject"],
        kind=RelationshipEventKind(row["kind"]),
        trust_impact=row["trust_impact"],
        description=row["description"],
        emotional_response=row["emotional_response"],
        resolved=bool(row["resolved"]),
        resolved_at=parse_datetime(row["resolved_at"]),
        created_at=parse_datetime(row["created_at"]),
    )


def get_trust_metric(connect_fn: Callable, subject: str) -> Optional[TrustMetric]:
    with connect_fn() as conn:
        row = conn.execute("SELECT * FROM trust_metrics WHERE subject = ?", (subject,)).fetchone()
        return _row_to_metric(row) if row else None


def apply_trust_event(
    connect_fn: Callable,
    event: RelationshipEvent,
    damping: float,
) -> Tuple[TrustMetric, TrustHistoryEntry]:
    """Record ``event`` and move trust by ``trust_impact * damping``.

    A missing metric starts at the neutral default. Trust and intimacy
    are clamped to [1, 10]. Returns the updated metric and the history
    entry that was written.
    """
    now = utc_now()
    event.created_at = event.created_at or now
    now_s = format_datetime(now)
    with connect_fn() as conn:
        conn.execute(
            "INSERT INTO relationship_events "
            "(id, subject, kind, trust_impact, description, emotional_response, "
            "resolved, resolved_at, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                event.id,
                event.subject,
                event.kind.value,
                event.trust_impact,
                event.description,
                event.emotional_response,
                1 if event.resolved else 0,
                format_datetime(event.resolved_at),
                format_datetime(event.created_at),
            ),
        )

        row = conn.execute(
            "SELECT * FROM trust_metrics WHERE subject = ?", (event.subject,)
        ).fetchone()
        metric = (
            _row_to_metric(row)
            if row
            else TrustMetric(subject=event.subject, trust_level=NEUTRAL_TRUST)
        )

        before = metric.trust_level
        metric.trust_level = clamp(before + event.trust_impact * damping, TRUST_MIN, TRUST_MAX)
        if event.kind in INTIMACY_EVENTS and event.trust_impact > 0:
            metric.intimacy_level = clamp(
                metric.intimacy_level + event.trust_impact / 4, TRUST_MIN, TRUST_MAX
            )
        metric.total_shared_events += 1
        metric.updated_at = now

        conn.execute(
            "INSERT INTO trust_metrics "
            "(subject, trust_level, intimacy_level, total_shared_events, updated_at) "
            "VALUES (?, ?, ?, ?, ?) "
            "ON CONFLICT(subject) DO UPDATE SET trust_level = excluded.trust_level, "
            "intimacy_level = excluded.intimacy_level, "
            "total_shared_events = excluded.total_shared_events, "
            "updated_at = excluded.updated_at",
            (
                metric.subject,
                metric.trust_level,
                metric.intimacy_level,
                metric.total_shared_events,
                now_s,
            ),
        )

        entry = TrustHistoryEntry(
            subject=event.subject,
            trust_level=metric.trust_level,
            change=metric.trust_level - before,
            reason=f"{event.kind.value}: {event.description}",
            event_id=event.id,
            created_at=now,
        )
        conn.execute(
            "INSERT INTO trust_history "
            "(id, subject, trust_level, change, reason, event_id, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                entry.id,
                entry.subject,
                entry.trust_level,
                entry.change,
                entry.reason,
                entry.event_id,
                now_s,
            ),
        )
    return metric, entry


def get_relationship_event(connect_fn: Callable, event_id: str) -> Optional[RelationshipEvent]:
    with connect_fn() as conn:
        row = conn.execute(
            "SELECT * FROM relationship_events WHERE id = ?", (event_id,)
        ).fetchone()
        return _row_to_event(row) if row else None


def get_recent_events(
    connect_fn: Callable, subject: str, limit: int = 10
) -> List[RelationshipEvent]:
    """Most recent events for a subject, newest first."""
    with connect_fn() as conn:
        rows = conn.execute(
            "SELECT * FROM relationship_events WHERE subject = ? "
            "ORDER BY created_at DESC, rowid DESC LIMIT ?",
            (subject, limit),
        ).fetchall()
        return [_row_to_event(r) for r in rows]


def get_unresolved_events(
    connect_fn: Callable, subject: str, created_before: str
) -> List[RelationshipEvent]:
    """Unresolved events older than the ``created_before`` timestamp."""
    with connect_fn() as conn:
        rows = conn.execute(
            "SELECT * FROM relationship_events "
            "WHERE subject = ? AND resolved = 0 AND created_at < ? ORDER BY created_at",
            (subject, created_before),
        ).fetchall()
        return [_row_to_event(r) for r in rows]


def resolve_event(connect_fn: Callable, event_id: str) -> bool:
    """Mark an event resolved. Returns False if missing or already resolved."""
    with connect_fn() as conn:
        result = conn.execute(
            "UPDATE relationship_events SET resolved = 1, resolved_at = ? "
            "WHERE id = ? AND resolved = 0",
            (format_datetime(utc_now()), event_id),
        )
        return result.rowcount > 0


def get_trust_history(
    connect_fn: Callable, subject: str, limit: int = 20
) -> List[TrustHistoryEntry]:
    with connect_fn() as conn:
        rows = conn.execute(
            "SELECT * FROM trust_history WHERE subject = ? "
            "ORDER BY created_at DESC, rowid DESC LIMIT ?",
            (subject, limit),
        ).fetchall()
        return [
            TrustHistoryEntry(
                id=r["id"],
                subject=r["subject"],
                trust_level=r["trust_level"],
                change=r["change"],
                reason=r["reason"],
                event_id=r["event_id"],
                created_at=parse_datetime(r["created_at"]),
            )
            for r in rows
        ]


def upsert_relationship_pattern(
    connect_fn: Callable, pattern: RelationshipPattern
) -> RelationshipPattern:
    """Insert a pattern, or bump evidence on an existing (subject, pattern) row."""
    now = utc_now()
    now_s = format_datetime(now)
    with connect_fn() as conn:
        existing = conn.execute(
            "SELECT * FROM relationship_patterns WHERE subject = ? AND pattern = ?",
            (pattern.subject, pattern.pattern),
        ).fetchone()
        if existing:
            conn.execute(
                "UPDATE relationship_patterns SET evidence_count = evidence_count + 1, "
                "confidence = ?, last_observed = ? WHERE id = ?",
                (pattern.confidence, now_s, existing["id"]),
            )
            pattern.id = existing["id"]
            pattern.evidence_count = existing["evidence_count"] + 1
        else:
            conn.execute(
                "INSERT INTO relationship_patterns "
                "(id, subject, pattern, confidence, evidence_count, last_observed) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    pattern.id,
                    pattern.subject,
                    pattern.pattern,
                    pattern.confidence,
                    pattern.evidence_count,
                    now_s,
                ),
            )
    pattern.last_observed = now
    return pattern


def get_relationship_patterns(connect_fn: Callable, subject: str) -> List[RelationshipPattern]:
    with connect_fn() as conn:
        rows = conn.execute(
            "SELECT * FROM relationship_patterns WHERE subject = ? "
            "ORDER BY confidence DESC, evidence_count DESC",
            (subject,),
        ).fetchall()
        return [
            RelationshipPattern(
                id=r["id"],
                subject=r["subject"],
                pattern=r["pattern"],
                confidence=r["confidence"],
                evidence_count=r["evidence_count"],
                last_observed=parse_datetime(r["last_observed"]),
            )
            for r in rows
        ]
