"""
mindloop CLI - run and inspect the autonomy loop.

Usage:
    mindloop run
    mindloop tick [--json]
    mindloop status [--json]
    mindloop consolidate [--json]
    mindloop trust record SUBJECT KIND IMPACT DESCRIPTION [--emotion E]
    mindloop trust show SUBJECT
    mindloop trust history SUBJECT [--limit N]
    mindloop trust patterns SUBJECT [--learn]
    mindloop trust resolve EVENT_ID
"""

import argparse
import logging
import re
import sys
from pathlib import Path

from mindloop.cli.commands import cmd_consolidate, cmd_run, cmd_status, cmd_tick, cmd_trust
from mindloop.config import Settings
from mindloop.logging_config import setup_mindloop_logging
from mindloop.runtime import build_runtime
from mindloop.types import RelationshipEventKind

# Set up logging
logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)


def validate_input(value: str, field_name: str, max_length: int = 1000) -> str:
    """Validate and sanitize CLI inputs."""
    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be a string")

    if len(value) > max_length:
        raise ValueError(f"{field_name} too long (max {max_length} characters)")

    # Remove null bytes and control characters except newlines
    return re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]", "", value)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mindloop",
        description="Autonomous cognition scheduler",
    )
    parser.add_argument("--agent", "-a", help="Agent ID", default=None)
    parser.add_argument("--db", help="Path to the SQLite database", default=None)
    parser.add_argument("--log-level", dest="log_level", default=None, help="Log level")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("run", help="Run the loop until interrupted")

    p_tick = subparsers.add_parser("tick", help="Run exactly one cycle")
    p_tick.add_argument("--json", "-j", action="store_true")

    p_status = subparsers.add_parser("status", help="Show agent state and loop metrics")
    p_status.add_argument("--json", "-j", action="store_true")

    p_consolidate = subparsers.add_parser("consolidate", help="Run memory consolidation now")
    p_consolidate.add_argument("--json", "-j", action="store_true")

    p_trust = subparsers.add_parser("trust", help="Relationship trust")
    trust_sub = p_trust.add_subparsers(dest="trust_action", required=True)

    t_record = trust_sub.add_parser("record", help="Record a relationship event")
    t_record.add_argument("subject", help="Who the relationship is with")
    t_record.add_argument("kind", choices=[k.value for k in RelationshipEventKind])
    t_record.add_argument("impact", type=int, help="Trust impact (-10 to 10)")
    t_record.add_argument("description", help="What happened")
    t_record.add_argument("--emotion", "-e", help="Emotional response")

    t_show = trust_sub.add_parser("show", help="Show trust metrics")
    t_show.add_argument("subject")

    t_history = trust_sub.add_parser("history", help="Show trust history")
    t_history.add_argument("subject")
    t_history.add_argument("--limit", "-l", type=int, default=20)

    t_patterns = trust_sub.add_parser("patterns", help="Show learned relationship patterns")
    t_patterns.add_argument("subject")
    t_patterns.add_argument(
        "--learn", action="store_true", help="Learn new patterns from recent events first"
    )

    t_resolve = trust_sub.add_parser("resolve", help="Mark an event resolved")
    t_resolve.add_argument("event_id")

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        overrides = {}
        if args.agent:
            overrides["agent_id"] = validate_input(args.agent, "agent_id", 100)
        if args.db:
            overrides["db_path"] = Path(args.db)
        if args.log_level:
            overrides["log_level"] = args.log_level
        settings = Settings(**overrides)
        setup_mindloop_logging(agent_id=settings.agent_id, level=settings.log_level)
        runtime = build_runtime(settings)
    except (ValueError, TypeError) as e:
        logger.error(f"Failed to initialize mindloop: {e}")
        sys.exit(1)

    try:
        if args.command == "run":
            cmd_run(args, runtime)
        elif args.command == "tick":
            cmd_tick(args, runtime)
        elif args.command == "status":
            cmd_status(args, runtime)
        elif args.command == "consolidate":
            cmd_consolidate(args, runtime)
        elif args.command == "trust":
            cmd_trust(args, runtime)
    except (ValueError, TypeError) as e:
        logger.error(f"Input validation error: {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Command failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
