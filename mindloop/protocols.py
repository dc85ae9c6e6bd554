"""
mindloop Protocol Definitions
=============================

Interface contracts between the autonomy loop and the outside world.

Components and their roles:
- Model:    The thinking engine behind ExternalInvoker. Interchangeable.
- Channel:  Where proactive messages go (log, webhook, ...).
- Storage:  Durable tables for state, tasks, knowledge and trust
            (see mindloop.storage).

Error handling philosophy:
- Components raise MindloopError subclasses internally
- Component boundaries convert failures into Result values (mindloop.result)
- Model providers raise ModelError carrying an ``error_class`` string
  ("rate_limit", "auth", "timeout", "server", "unknown")
- Nothing raised inside a cycle stops the scheduler
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, runtime_checkable

from mindloop.types import ProactiveMessage

# =============================================================================
# ERRORS
# =============================================================================


class MindloopError(Exception):
    """Base for all mindloop errors."""

    pass


class StorageError(MindloopError):
    """Raised when the persistent store fails or times out."""

    pass


class ConfigurationError(MindloopError):
    """Raised when a component is built with invalid settings."""

    pass


class ModelError(MindloopError):
    """Raised when a model provider reports an error.

    ``error_class`` is one of "rate_limit", "auth", "timeout", "server"
    or "unknown" and drives retry behaviour in the invoker.
    """

    def __init__(self, error_class: str, message: str) -> None:
        super().__init__(message)
        self.error_class = error_class


# =============================================================================
# MODEL TYPES
# =============================================================================


@dataclass
class ModelCapabilities:
    """What a model implementation can do."""

    model_id: str
    provider: str  # "anthropic", "openai", "ollama"
    context_window: int
    max_output_tokens: int = 4096
    supports_json_schema: bool = False


@dataclass
class ModelMessage:
    """A message in a conversation."""

    role: str  # "system", "user", "assistant"
    content: str


@dataclass
class ModelResponse:
    """Complete response from a model."""

    content: str
    usage: dict[str, int] = field(default_factory=dict)
    stop_reason: Optional[str] = None
    model_id: Optional[str] = None


@runtime_checkable
class ModelProtocol(Protocol):
    """Interface for the thinking engine.

    Implementations: AnthropicModel, OpenAIModel, OllamaModel.
    ``generate`` is synchronous; the invoker runs it in a worker thread.
    """

    @property
    def model_id(self) -> str:
        """Identifier (e.g., 'claude-haiku-4-5-20251001', 'llama3.2:latest')."""
        ...

    @property
    def capabilities(self) -> ModelCapabilities:
        """What this model can do."""
        ...

    def generate(
        self,
        messages: list[ModelMessage],
        *,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        response_schema: Optional[dict[str, Any]] = None,
    ) -> ModelResponse:
        """Generate a complete response.

        When ``response_schema`` is given the provider is asked for a JSON
        object matching it. Callers still validate the result.

        Raises:
            ModelError: with ``error_class`` set on provider failures.
        """
        ...


# =============================================================================
# NOTIFICATION CHANNEL
# =============================================================================


@runtime_checkable
class NotificationChannel(Protocol):
    """Delivers a proactive message to the user.

    Returns True when the message was accepted for delivery. A False
    return (or an exception) leaves the message pending for a later cycle.
    """

    async def send(self, message: ProactiveMessage) -> bool: ...
