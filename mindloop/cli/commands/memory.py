"""Memory maintenance commands."""

import asyncio
import json
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mindloop.runtime import Runtime


def cmd_consolidate(args, runtime: "Runtime"):
    """Run consolidation and limit enforcement once."""
    result = asyncio.run(runtime.scheduler.consolidate())
    if result is None:
        print("Consolidation failed; see the log for details.")
        return

    if getattr(args, "json", False):
        print(json.dumps(result, indent=2))
        return

    report = result["report"]
    print("Consolidation complete:")
    print(f"  Old log entries removed:   {report['logs_deleted']}")
    print(f"  Old episodes removed:      {report['episodes_deleted']}")
    print(f"  Weak relations removed:    {report['relations_deleted']}")
    print(f"  Duplicate concepts merged: {report['concepts_merged']}")
    for step, error in report["errors"].items():
        print(f"  ! {step} failed: {error}")

    trimmed = {t: n for t, n in result["limits"].items() if n}
    if trimmed:
        print("Trimmed to limits:")
        for table, count in trimmed.items():
            print(f"  {table}: {'failed' if count < 0 else count}")
