"""
mindloop - an autonomous cognition scheduler.

A background loop that reads the agent's state, asks a language model
what to do next, runs one unit of work, decides whether to contact the
user, and keeps its memory tables bounded.
"""

from mindloop.config import Settings, get_settings
from mindloop.result import ErrorKind, Result
from mindloop.runtime import Runtime, build_runtime
from mindloop.scheduler import Scheduler

__version__ = "0.1.0"
__all__ = [
    "ErrorKind",
    "Result",
    "Runtime",
    "Scheduler",
    "Settings",
    "build_runtime",
    "get_settings",
]
