"""CLI command modules for mindloop.

Each handler takes the parsed args and a built Runtime.
"""

from mindloop.cli.commands.loop import cmd_run, cmd_status, cmd_tick
from mindloop.cli.commands.memory import cmd_consolidate
from mindloop.cli.commands.trust import cmd_trust

__all__ = ["cmd_consolidate", "cmd_run", "cmd_status", "cmd_tick", "cmd_trust"]
