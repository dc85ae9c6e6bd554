"""MemoryConsolidator: keeps the knowledge graph and memory logs bounded.

``run()`` applies the retention rules in a fixed order; each step runs on
its own so one failing step is reported without blocking the rest.
``enforce_limits()`` then cuts each table down to its ceiling, evicting
the oldest (or, for relations, weakest) rows first.

Both are idempotent: a second run with no new data deletes nothing.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from mindloop.protocols import StorageError
from mindloop.types import format_datetime, utc_now
from mindloop.utils import offload

logger = logging.getLogger(__name__)


@dataclass
class ConsolidationReport:
    logs_deleted: int = 0
    episodes_deleted: int = 0
    relations_deleted: int = 0
    concepts_merged: int = 0
    errors: Dict[str, str] = field(default_factory=dict)
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "logs_deleted": self.logs_deleted,
            "episodes_deleted": self.episodes_deleted,
            "relations_deleted": self.relations_deleted,
            "concepts_merged": self.concepts_merged,
            "errors": dict(self.errors),
            "duration_ms": self.duration_ms,
        }


class MemoryConsolidator:
    def __init__(
        self,
        storage,
        log_retention: timedelta = timedelta(days=7),
        episode_retention: timedelta = timedelta(days=30),
        relation_floor: int = 3,
        max_concepts: int = 500,
        max_relations: int = 1000,
        max_logs: int = 1000,
        max_episodes: int = 200,
        store_timeout: Optional[float] = None,
        now_fn: Callable[[], datetime] = utc_now,
    ):
        self._storage = storage
        self._log_retention = log_retention
        self._episode_retention = episode_retention
        self._relation_floor = relation_floor
        self._limits = {
            "concepts": max_concepts,
            "concept_relations": max_relations,
            "cognitive_log": max_logs,
            "episodic_memories": max_episodes,
        }
        self._store_timeout = store_timeout
        self._now = now_fn

    async def _store(self, fn, *args):
        return await offload(fn, *args, timeout=self._store_timeout)

    async def run(self) -> ConsolidationReport:
        started = time.monotonic()
        report = ConsolidationReport()
        now = self._now()

        steps = (
            (
                "logs",
                "logs_deleted",
                self._storage.delete_logs_before,
                (format_datetime(now - self._log_retention),),
            ),
            (
                "episodes",
                "episodes_deleted",
                self._storage.delete_episodes_before,
                (format_datetime(now - self._episode_retention),),
            ),
            (
                "relations",
                "relations_deleted",
                self._storage.delete_weak_relations,
                (self._relation_floor,),
            ),
            ("concepts", "concepts_merged", self._storage.merge_duplicate_concepts, ()),
        )
        for name, attr, fn, args in steps:
            try:
                setattr(report, attr, await self._store(fn, *args))
            except StorageError as e:
                logger.warning(f"Consolidation step '{name}' failed: {e}")
                report.errors[name] = str(e)

        report.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            f"Consolidation: {report.logs_deleted} logs, {report.episodes_deleted} episodes, "
            f"{report.relations_deleted} weak relations removed, "
            f"{report.concepts_merged} duplicate concepts merged"
        )
        return report

    async def enforce_limits(self) -> Dict[str, int]:
        """Trim each table to its ceiling. Returns rows deleted per table.

        Relations left dangling by concept eviction are removed before the
        relation ceiling is applied. A failing table is reported as -1.
        """
        deleted: Dict[str, int] = {}
        for table, limit in self._limits.items():
            try:
                deleted[table] = await self._store(self._storage.trim_table, table, limit)
                if table == "concepts" and deleted[table]:
                    deleted["orphan_relations"] = await self._store(
                        self._storage.delete_orphan_relations
                    )
            except StorageError as e:
                logger.warning(f"Could not enforce limit on {table}: {e}")
                deleted[table] = -1
        total = sum(v for v in deleted.values() if v > 0)
        if total:
            logger.info(f"Enforced memory limits, deleted {total} rows: {deleted}")
        return deleted

    async def stats(self) -> Dict[str, Dict[str, Any]]:
        """Row count, ceiling and utilization per bounded table."""
        result: Dict[str, Dict[str, Any]] = {}
        for table, limit in self._limits.items():
            count = await self._store(self._storage.count_rows, table)
            result[table] = {
                "count": count,
                "limit": limit,
                "utilization": round(count / limit, 3),
            }
        return result
