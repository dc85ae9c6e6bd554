"""Task queue CRUD operations."""

import logging
import sqlite3
from typing import Callable, List, Optional

from mindloop.types import Task, TaskStatus, format_datetime, parse_datetime, utc_now

logger = logging.getLogger(__name__)


def _row_to_task(row: sqlite3.Row) -> Task:
    return Task(
        id=row["id"],
        kind=row["kind"],
        description=row["description"],
        priority=row["priority"],
        status=TaskStatus(row["status"]),
        motivation=row["motivation"],
        result=row["result"],
        created_at=parse_datetime(row["created_at"]),
        started_at=parse_datetime(row["started_at"]),
        completed_at=parse_datetime(row["completed_at"]),
    )


def save_task(connect_fn: Callable, task: Task) -> str:
    """Insert a new task. Returns the task ID."""
    task.created_at = task.created_at or utc_now()
    with connect_fn() as conn:
        conn.execute(
            "INSERT INTO tasks "
            "(id, kind, description, priority, status, motivation, result, "
            "created_at, started_at, completed_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                task.id,
                task.kind,
                task.description,
                task.priority,
                task.status.value,
                task.motivation,
                task.result,
                format_datetime(task.created_at),
                format_datetime(task.started_at),
                format_datetime(task.completed_at),
            ),
        )
    return task.id


def get_task(connect_fn: Callable, task_id: str) -> Optional[Task]:
    with connect_fn() as conn:
        row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        return _row_to_task(row) if row else None


def get_next_pending_task(connect_fn: Callable) -> Optional[Task]:
    """Oldest pending task (insertion order)."""
    with connect_fn() as conn:
        row = conn.execute(
            "SELECT * FROM tasks WHERE status = ? "
            "ORDER BY created_at ASC, rowid ASC LIMIT 1",
            (TaskStatus.PENDING.value,),
        ).fetchone()
        return _row_to_task(row) if row else None


def transition_task(
    connect_fn: Callable,
    task_id: str,
    from_status: TaskStatus,
    to_status: TaskStatus,
    result: Optional[str] = None,
) -> bool:
    """Move a task between statuses if it is still in ``from_status``.

    Sets ``started_at`` when entering in_progress and ``completed_at`` when
    entering a terminal status. Returns False if the task was not in
    ``from_status`` (already claimed or finished).
    """
    now = format_datetime(utc_now())
    if to_status == TaskStatus.IN_PROGRESS:
        sql = "UPDATE tasks SET status = ?, started_at = ? WHERE id = ? AND status = ?"
        params = (to_status.value, now, task_id, from_status.value)
    else:
        sql = (
            "UPDATE tasks SET status = ?, result = ?, completed_at = ? "
            "WHERE id = ? AND status = ?"
        )
        params = (to_status.value, result, now, task_id, from_status.value)
    with connect_fn() as conn:
        return conn.execute(sql, params).rowcount > 0


def list_tasks(
    connect_fn: Callable,
    status: Optional[TaskStatus] = None,
    limit: int = 50,
) -> List[Task]:
    with connect_fn() as conn:
        if status is None:
            rows = conn.execute(
                "SELECT * FROM tasks ORDER BY created_at DESC LIMIT ?", (limit,)
            ).fetchall()
        else:
            rows = conn.execute(
                "SELECT * FROM tasks WHERE status = ? ORDER BY created_at DESC LIMIT ?",
                (status.value, limit),
            ).fetchall()
        return [_row_to_task(r) for r in rows]
