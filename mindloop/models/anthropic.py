"""AnthropicModel: ModelProtocol implementation for Anthropic's API.

Wraps the ``anthropic`` Python SDK. The SDK is imported lazily so that
the module can be imported without having ``anthropic`` installed (the
import fails only when the class is instantiated).
"""

from __future__ import annotations

import json
import os
from typing import Any, Optional

from mindloop.protocols import (
    ModelCapabilities,
    ModelError,
    ModelMessage,
    ModelResponse,
)


class AnthropicModelError(ModelError):
    """Raised when the Anthropic SDK reports an error."""


class AnthropicModel:
    """ModelProtocol implementation backed by the Anthropic API.

    Requires the ``anthropic`` package::

        pip install mindloop[anthropic]

    The messages API has no JSON-schema response mode, so a requested
    schema is appended to the system prompt; the caller validates.
    """

    def __init__(
        self,
        model_id: str = "claude-haiku-4-5-20251001",
        *,
        api_key: Optional[str] = None,
        max_tokens: int = 2048,
    ) -> None:
        try:
            import anthropic  # noqa: F811
        except ImportError:
            raise ImportError(
                "The 'anthropic' package is required for AnthropicModel. "
                "Install it with: pip install anthropic"
            ) from None

        resolved_key = (
            api_key or os.environ.get("CLAUDE_API_KEY") or os.environ.get("ANTHROPIC_API_KEY")
        )
        if not resolved_key:
            raise ValueError(
                "An API key is required. Pass api_key= or set CLAUDE_API_KEY / ANTHROPIC_API_KEY."
            )

        self._model_id = model_id
        self._max_tokens = max_tokens
        self._client = anthropic.Anthropic(api_key=resolved_key)

    @property
    def model_id(self) -> str:
        return self._model_id

    @property
    def capabilities(self) -> ModelCapabilities:
        return ModelCapabilities(
            model_id=self._model_id,
            provider="anthropic",
            context_window=200_000,
            max_output_tokens=self._max_tokens,
            supports_json_schema=False,
        )

    def generate(
        self,
        messages: list[ModelMessage],
        *,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        response_schema: Optional[dict[str, Any]] = None,
    ) -> ModelResponse:
        """Generate a complete response via the Anthropic messages API."""
        api_messages, extracted_system = self._prepare_messages(messages, system)
        if response_schema is not None:
            instruction = (
                "Respond with a single JSON object matching this JSON schema and nothing else:\n"
                + json.dumps(response_schema)
            )
            extracted_system = (
                f"{extracted_system}\n\n{instruction}" if extracted_system else instruction
            )

        kwargs: dict[str, Any] = {
            "model": self._model_id,
            "messages": api_messages,
            "max_tokens": max_tokens or self._max_tokens,
        }
        if extracted_system:
            kwargs["system"] = extracted_system
        if temperature is not None:
            kwargs["temperature"] = temperature

        try:
            response = self._client.messages.create(**kwargs)
        except Exception as exc:
            raise self._classify_error(exc, "Anthropic API error") from exc

        return self._parse_response(response)

    def _prepare_messages(
        self,
        messages: list[ModelMessage],
        system: Optional[str],
    ) -> tuple[list[dict[str, Any]], Optional[str]]:
        """Convert ModelMessages to Anthropic format, extracting system messages."""
        extracted_system = system
        api_messages: list[dict[str, Any]] = []

        for msg in messages:
            if msg.role == "system":
                # Anthropic API uses a top-level system param, not a system role
                if extracted_system:
                    extracted_system = f"{extracted_system}\n\n{msg.content}"
                else:
                    extracted_system = msg.content
                continue
            api_messages.append({"role": msg.role, "content": msg.content})

        return api_messages, extracted_system

    @staticmethod
    def _classify_error(exc: Exception, prefix: str) -> AnthropicModelError:
        """Classify an Anthropic SDK exception into an error class.

        Uses attribute lookups so this works when the anthropic package
        is mocked or partially available.
        """
        import anthropic as _anthropic

        _checks: list[tuple[str, str, str]] = [
            ("RateLimitError", "rate_limit", "rate limited"),
            ("AuthenticationError", "auth", "auth failed"),
            ("APITimeoutError", "timeout", "timeout"),
        ]
        for attr, cls, label in _checks:
            exc_type = getattr(_anthropic, attr, None)
            if exc_type is not None and isinstance(exc, exc_type):
                return AnthropicModelError(cls, f"{prefix}: {label}: {exc}")

        api_status = getattr(_anthropic, "APIStatusError", None)
        if api_status is not None and isinstance(exc, api_status):
            code = getattr(exc, "status_code", "?")
            return AnthropicModelError("server", f"{prefix}: API error ({code}): {exc}")

        return AnthropicModelError("unknown", f"{prefix}: {exc}")

    def _parse_response(self, response: Any) -> ModelResponse:
        text = "".join(block.text for block in response.content if block.type == "text")

        usage = {}
        if response.usage:
            usage = {
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
            }

        return ModelResponse(
            content=text,
            usage=usage,
            stop_reason=response.stop_reason,
            model_id=response.model,
        )
