"""OpenAIModel: ModelProtocol implementation for OpenAI's API.

Wraps the ``openai`` Python SDK. The SDK is imported lazily so that
the module can be imported without having ``openai`` installed.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Optional

from mindloop.protocols import (
    ModelCapabilities,
    ModelError,
    ModelMessage,
    ModelResponse,
)

logger = logging.getLogger(__name__)


class OpenAIModelError(ModelError):
    """Raised when the OpenAI SDK reports an error."""


class OpenAIModel:
    """ModelProtocol implementation backed by the OpenAI API.

    Requires the ``openai`` package::

        pip install mindloop[openai]

    Usage::

        model = OpenAIModel()  # uses OPENAI_API_KEY env var
        response = model.generate([ModelMessage(role="user", content="Hello")])
    """

    def __init__(
        self,
        model_id: str = "gpt-4o-mini",
        *,
        api_key: Optional[str] = None,
        max_tokens: int = 2048,
    ) -> None:
        try:
            import openai as _openai  # noqa: F811
        except ImportError:
            raise ImportError(
                "The 'openai' package is required for OpenAIModel. "
                "Install it with: pip install openai"
            ) from None

        resolved_key = api_key or os.environ.get("OPENAI_API_KEY")
        if not resolved_key:
            raise ValueError("An API key is required. Pass api_key= or set OPENAI_API_KEY.")

        self._model_id = model_id
        self._max_tokens = max_tokens
        self._client = _openai.OpenAI(api_key=resolved_key)

    @property
    def model_id(self) -> str:
        return self._model_id

    @property
    def capabilities(self) -> ModelCapabilities:
        return ModelCapabilities(
            model_id=self._model_id,
            provider="openai",
            context_window=128_000,
            max_output_tokens=self._max_tokens,
            supports_json_schema=True,
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
        """Generate a complete response via the chat completions API."""
        api_messages: list[dict[str, Any]] = []
        if system:
            api_messages.append({"role": "system", "content": system})
        api_messages.extend({"role": m.role, "content": m.content} for m in messages)

        kwargs: dict[str, Any] = {
            "model": self._model_id,
            "messages": api_messages,
            "max_tokens": max_tokens or self._max_tokens,
        }
        if temperature is not None:
            kwargs["temperature"] = temperature
        if response_schema is not None:
            kwargs["response_format"] = {
                "type": "json_schema",
                "json_schema": {"name": "response", "schema": response_schema},
            }

        try:
            response = self._client.chat.completions.create(**kwargs)
        except Exception as exc:
            raise self._classify_error(exc, "OpenAI API error") from exc

        return self._parse_response(response)

    def _parse_response(self, response: Any) -> ModelResponse:
        choice = response.choices[0]

        usage = {}
        if response.usage:
            usage = {
                "input_tokens": response.usage.prompt_tokens,
                "output_tokens": response.usage.completion_tokens,
            }

        return ModelResponse(
            content=choice.message.content or "",
            usage=usage,
            stop_reason=choice.finish_reason,
            model_id=response.model,
        )

    @staticmethod
    def _classify_error(exc: Exception, prefix: str) -> OpenAIModelError:
        """Classify an OpenAI SDK exception into an error class."""
        try:
            import openai as _openai
        except (ImportError, ModuleNotFoundError):
            return OpenAIModelError("unknown", f"{prefix}: {exc}")

        _checks: list[tuple[str, str, str]] = [
            ("RateLimitError", "rate_limit", "rate limited"),
            ("AuthenticationError", "auth", "auth failed"),
            ("APITimeoutError", "timeout", "timeout"),
        ]
        for attr, cls, label in _checks:
            exc_type = getattr(_openai, attr, None)
            if exc_type is not None and isinstance(exc, exc_type):
                return OpenAIModelError(cls, f"{prefix}: {label}: {exc}")

        api_status = getattr(_openai, "APIStatusError", None)
        if api_status is not None and isinstance(exc, api_status):
            code = getattr(exc, "status_code", "?")
            return OpenAIModelError("server", f"{prefix}: API error ({code}): {exc}")

        return OpenAIModelError("unknown", f"{prefix}: {exc}")
