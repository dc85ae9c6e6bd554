"""Logging setup for mindloop.

``setup_mindloop_logging`` installs a daily file handler on the package
logger. The ``log_*`` helpers append one ``key=value`` line per loop event
to a separate ``cycle-events-<date>.log`` file so a run can be audited
without digging through debug output.
"""

import logging
import sys
from datetime import datetime
from typing import Any, Optional

from mindloop.utils import get_mindloop_home

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def _log_dir():
    path = get_mindloop_home() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


def setup_mindloop_logging(agent_id: str = "default", level: str = "INFO") -> logging.Logger:
    """Configure the ``mindloop`` logger.

    Args:
        agent_id: Agent identifier, recorded in the startup line.
        level: Level name (case-insensitive). Unknown names fall back to INFO.

    Returns:
        The configured ``mindloop`` logger. Calling this twice does not
        add duplicate handlers.
    """
    logger = logging.getLogger("mindloop")
    resolved = getattr(logging, str(level).upper(), None)
    if not isinstance(resolved, int):
        resolved = logging.INFO
    logger.setLevel(resolved)

    if not any(isinstance(h, logging.FileHandler) for h in logger.handlers):
        date = datetime.now().strftime("%Y-%m-%d")
        handler = logging.FileHandler(_log_dir() / f"local-{date}.log", encoding="utf-8")
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    has_console = any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        for h in logger.handlers
    )
    if resolved <= logging.DEBUG and not has_console:
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(console)

    logger.debug("Logging configured for agent=%s level=%s", agent_id, logging.getLevelName(resolved))
    return logger


def log_cycle_event(event_type: str, details: str, agent_id: str = "default") -> None:
    """Append one event line: ``<time> | <event> | agent=<id> | <details>``."""
    date = datetime.now().strftime("%Y-%m-%d")
    path = _log_dir() / f"cycle-events-{date}.log"
    stamp = datetime.now().isoformat(timespec="seconds")
    with open(path, "a", encoding="utf-8") as f:
        f.write(f"{stamp} | {event_type} | agent={agent_id} | {details}\n")


def _fmt(**fields: Any) -> str:
    return ", ".join(f"{k}={v}" for k, v in fields.items())


def log_cycle(
    agent_id: str,
    *,
    mode: str,
    decision: Optional[str],
    task: Optional[str],
    contact: Optional[str],
    duration_ms: int,
) -> None:
    log_cycle_event(
        "cycle",
        _fmt(mode=mode, decision=decision, task=task, contact=contact, duration_ms=duration_ms),
        agent_id=agent_id,
    )


def log_decision(agent_id: str, *, kind: str, action: str, fallback: bool = False) -> None:
    log_cycle_event("decision", _fmt(kind=kind, action=action[:80], fallback=fallback), agent_id)


def log_consolidation(agent_id: str, **counts: Any) -> None:
    log_cycle_event("consolidation", _fmt(**counts), agent_id)


def log_trust_change(agent_id: str, *, subject: str, before: float, after: float, event: str) -> None:
    log_cycle_event(
        "trust", _fmt(subject=subject, before=before, after=after, event=event), agent_id
    )
