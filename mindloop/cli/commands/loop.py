"""Loop commands: run, tick, status."""

import asyncio
import json
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mindloop.runtime import Runtime


async def _run_forever(runtime: "Runtime") -> None:
    scheduler = runtime.scheduler
    scheduler.start()
    try:
        await asyncio.Event().wait()
    finally:
        await scheduler.stop()


def cmd_run(args, runtime: "Runtime"):
    """Run the loop until interrupted."""
    s = runtime.settings
    print(f"mindloop running for agent '{s.agent_id}' (cycle every {s.cycle_interval:.0f}s).")
    print("Press Ctrl-C to stop.")
    try:
        asyncio.run(_run_forever(runtime))
    except KeyboardInterrupt:
        print("Stopped.")


def cmd_tick(args, runtime: "Runtime"):
    """Run exactly one cycle and print what happened."""
    report = asyncio.run(runtime.scheduler.run_cycle())
    if report is None:
        print("Cycle did not complete; see the log for details.")
        return

    if getattr(args, "json", False):
        print(json.dumps(vars(report), indent=2, default=str))
        return

    if report.skipped:
        print(f"Cycle skipped: {report.skipped}")
        return
    fallback = " (fallback)" if report.fallback else ""
    print(f"Decision: {report.decision}{fallback}")
    print(f"Mode:     {report.mode}")
    print(f"Task:     {report.task or 'none'}")
    print(f"Contact:  {report.contact}")
    print(f"Took {report.duration_ms} ms")


async def _gather_status(runtime: "Runtime") -> dict:
    state = await runtime.state_machine.read()
    return {
        "agent": state.to_dict(),
        "scheduler": runtime.scheduler.status(),
        "memory": await runtime.consolidator.stats(),
    }


def cmd_status(args, runtime: "Runtime"):
    """Show agent state, loop metrics and memory utilization."""
    status = asyncio.run(_gather_status(runtime))

    if getattr(args, "json", False):
        print(json.dumps(status, indent=2, default=str))
        return

    agent = status["agent"]
    print(f"Agent: {runtime.settings.agent_id}")
    print(f"  Mode:       {agent['mode']}")
    print(f"  Motivation: {agent['motivation']} ({agent['motivation_intensity']}/10)")
    print(f"  Autonomy:   {agent['autonomy_level']}/10")
    print(f"  Thought:    {agent['last_thought']}")
    print()
    metrics = status["scheduler"]["metrics"]
    print("Loop:")
    print(f"  Memory pressure: {metrics['memory_pressure']:.0%}")
    rate = metrics.get("rate_limit")
    if rate:
        print(f"  Model calls:     {rate['call_count']} this window, {rate['calls_remaining']} left")
    print()
    print("Memory:")
    for table, info in status["memory"].items():
        pct = int(info["utilization"] * 100)
        bar = "█" * min(10, pct // 10) + "░" * (10 - min(10, pct // 10))
        print(f"  {table:<18} [{bar}] {info['count']}/{info['limit']}")
