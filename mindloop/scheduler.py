"""Scheduler: the autonomy loop.

Owns two asyncio tickers. The cycle ticker fires every ``cycle_interval``
(first after ``initial_delay``) and launches a cycle; the consolidation
ticker runs memory consolidation every ``consolidation_interval``.

Cycles are single-flight: a tick that arrives while a cycle is still
running is refused and counted. Before each cycle the resource monitor is
consulted; above ``pressure_high_water`` the cycle is skipped and memory
is reclaimed instead. Exceptions inside a cycle are logged and counted
and never stop the ticker.

One cycle:
    read state -> decide -> enqueue task -> execute one task
    -> contact check (+ delivery) -> apply decision to state
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Set

from mindloop.consolidation import MemoryConsolidator
from mindloop.contact import ContactGate, ProactiveMessenger
from mindloop.decision import DecisionEngine
from mindloop.logging_config import log_consolidation, log_cycle, log_decision
from mindloop.resources import ResourceMonitor
from mindloop.state import StateMachine
from mindloop.tasks import TaskQueue
from mindloop.types import format_datetime, utc_now

logger = logging.getLogger(__name__)


@dataclass
class SchedulerState:
    """Counters and flags exposed through ``Scheduler.status()``."""

    is_started: bool = False
    is_running: bool = False
    last_cycle_at: Optional[datetime] = None
    last_consolidation_at: Optional[datetime] = None
    cycles_run: int = 0
    cycles_failed: int = 0
    skipped_busy: int = 0
    skipped_pressure: int = 0
    last_decision_kind: Optional[str] = None
    last_error: Optional[str] = None


@dataclass
class CycleReport:
    skipped: Optional[str] = None  # "resource_pressure" when the cycle did not run
    mode: Optional[str] = None
    decision: Optional[str] = None
    fallback: bool = False
    task: Optional[str] = None
    contact: Optional[str] = None
    duration_ms: int = 0
    reclaim: Dict[str, int] = field(default_factory=dict)


class Scheduler:
    def __init__(
        self,
        state_machine: StateMachine,
        decision_engine: DecisionEngine,
        task_queue: TaskQueue,
        contact_gate: ContactGate,
        consolidator: MemoryConsolidator,
        monitor: ResourceMonitor,
        messenger: Optional[ProactiveMessenger] = None,
        gateway=None,
        cycle_interval: float = 900.0,
        initial_delay: float = 5.0,
        consolidation_interval: float = 1800.0,
        pressure_high_water: float = 0.85,
        agent_id: str = "default",
    ):
        self._state_machine = state_machine
        self._decisions = decision_engine
        self._tasks = task_queue
        self._gate = contact_gate
        self._consolidator = consolidator
        self._monitor = monitor
        self._messenger = messenger
        self._gateway = gateway
        self._cycle_interval = cycle_interval
        self._initial_delay = initial_delay
        self._consolidation_interval = consolidation_interval
        self._high_water = pressure_high_water
        self._agent_id = agent_id

        self.state = SchedulerState()
        self._lock = asyncio.Lock()
        self._ticker: Optional[asyncio.Task] = None
        self._consolidation_ticker: Optional[asyncio.Task] = None
        self._in_flight: Set[asyncio.Task] = set()

    # ---- Lifecycle ----

    def start(self) -> None:
        """Start both tickers. Must be called from a running event loop."""
        if self.state.is_started:
            logger.debug("Scheduler already started")
            return
        self.state.is_started = True
        self._ticker = asyncio.create_task(self._cycle_loop(), name="mindloop-cycle-ticker")
        self._consolidation_ticker = asyncio.create_task(
            self._consolidation_loop(), name="mindloop-consolidation-ticker"
        )
        logger.info(
            f"Scheduler started: cycle every {self._cycle_interval:.0f}s "
            f"(first in {self._initial_delay:.0f}s), "
            f"consolidation every {self._consolidation_interval:.0f}s"
        )

    async def stop(self) -> None:
        """Cancel the tickers and clear the single-flight state.

        A cycle already in flight is left to finish under the lock it holds;
        cycles run after this call take a fresh lock and do not wait on it.
        """
        tickers = [t for t in (self._ticker, self._consolidation_ticker) if t is not None]
        for task in tickers:
            task.cancel()
        for task in tickers:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._ticker = None
        self._consolidation_ticker = None
        self.state.is_started = False
        self._lock = asyncio.Lock()
        self.state.is_running = False
        logger.info("Scheduler stopped")

    async def wait_idle(self) -> None:
        """Wait for cycles launched by the ticker to finish."""
        if self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

    async def _cycle_loop(self) -> None:
        await asyncio.sleep(self._initial_delay)
        while True:
            task = asyncio.create_task(self.run_cycle())
            self._in_flight.add(task)
            task.add_done_callback(self._in_flight.discard)
            await asyncio.sleep(self._cycle_interval)

    async def _consolidation_loop(self) -> None:
        while True:
            await asyncio.sleep(self._consolidation_interval)
            await self.consolidate()

    # ---- Operations ----

    def status(self) -> Dict[str, Any]:
        s = self.state
        metrics: Dict[str, Any] = {
            "cycles_run": s.cycles_run,
            "cycles_failed": s.cycles_failed,
            "skipped_busy": s.skipped_busy,
            "skipped_pressure": s.skipped_pressure,
            "last_decision_kind": s.last_decision_kind,
            "last_error": s.last_error,
            "last_consolidation_at": format_datetime(s.last_consolidation_at),
            "memory_pressure": round(self._monitor.pressure(), 3),
        }
        if self._gateway is not None:
            metrics["cache"] = self._gateway.cache.stats().to_dict()
            metrics["rate_limit"] = self._gateway.limiter.status()
        return {
            "is_started": s.is_started,
            "is_running": s.is_running,
            "last_cycle_at": format_datetime(s.last_cycle_at),
            "metrics": metrics,
        }

    def force_reclaim(self) -> Dict[str, int]:
        return self._monitor.force_reclaim()

    async def run_cycle(self) -> Optional[CycleReport]:
        """Run one cycle now. Returns None if another cycle is in flight."""
        if self._lock.locked():
            self.state.skipped_busy += 1
            logger.info("Cycle refused: previous cycle still running")
            return None

        lock = self._lock
        async with lock:
            self.state.is_running = True
            try:
                pressure = self._monitor.pressure()
                if pressure > self._high_water:
                    self.state.skipped_pressure += 1
                    logger.warning(
                        f"Memory pressure {pressure:.0%} above {self._high_water:.0%}, "
                        "skipping cycle"
                    )
                    return CycleReport(
                        skipped="resource_pressure", reclaim=self.force_reclaim()
                    )
                report = await self._cycle()
                self.state.cycles_run += 1
                return report
            except Exception as e:
                self.state.cycles_failed += 1
                self.state.last_error = str(e)
                logger.exception(f"Cycle failed: {e}")
                return None
            finally:
                # stop() may have handed the guard to a newer cycle
                if lock is self._lock:
                    self.state.is_running = False
                self.state.last_cycle_at = utc_now()

    async def _cycle(self) -> CycleReport:
        started = time.monotonic()

        state = await self._state_machine.read()
        decision = await self._decisions.decide(state)
        self.state.last_decision_kind = decision.kind.value
        log_decision(
            self._agent_id,
            kind=decision.kind.value,
            action=decision.action,
            fallback=decision.is_fallback,
        )

        await self._tasks.enqueue_for_decision(decision)
        outcome = await self._tasks.execute_one()

        contact = await self._gate.should_contact(state)
        contact_outcome = "none"
        if contact.should:
            contact_outcome = "eligible"
            if self._messenger is not None:
                message = await self._messenger.deliver(contact)
                contact_outcome = message.status.value if message is not None else "failed"

        state = await self._state_machine.apply_decision(decision)

        report = CycleReport(
            mode=state.mode.value,
            decision=decision.kind.value,
            fallback=decision.is_fallback,
            task=outcome.status.value if outcome is not None else None,
            contact=contact_outcome,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        logger.info(
            f"Cycle complete: mode={report.mode} decision={report.decision} "
            f"fallback={report.fallback} task={report.task} contact={report.contact} "
            f"duration_ms={report.duration_ms}"
        )
        log_cycle(
            self._agent_id,
            mode=report.mode,
            decision=report.decision,
            task=report.task,
            contact=report.contact,
            duration_ms=report.duration_ms,
        )
        return report

    async def consolidate(self) -> Optional[Dict[str, Any]]:
        """Run consolidation then limit enforcement. Never raises."""
        try:
            report = await self._consolidator.run()
            limits = await self._consolidator.enforce_limits()
        except Exception as e:
            logger.exception(f"Consolidation failed: {e}")
            return None
        self.state.last_consolidation_at = utc_now()
        log_consolidation(
            self._agent_id,
            logs=report.logs_deleted,
            episodes=report.episodes_deleted,
            relations=report.relations_deleted,
            merged=report.concepts_merged,
            trimmed=sum(v for v in limits.values() if v > 0),
        )
        return {"report": report.to_dict(), "limits": limits}
