"""OllamaModel: ModelProtocol implementation for local Ollama instances.

Uses HTTP requests to the Ollama REST API via ``requests``.
"""

from __future__ import annotations

from typing import Any, Optional

from mindloop.protocols import (
    ModelCapabilities,
    ModelError,
    ModelMessage,
    ModelResponse,
)


class OllamaModelError(ModelError):
    """Raised when the Ollama API reports an error or is unreachable."""


class OllamaModel:
    """ModelProtocol implementation backed by a local Ollama instance.

    Requires a running Ollama server (default: ``http://localhost:11434``)
    and the ``requests`` library::

        pip install mindloop[ollama]
    """

    def __init__(
        self,
        model_id: str = "llama3.2:latest",
        *,
        base_url: str = "http://localhost:11434",
        context_window: int = 8192,
        timeout: int = 120,
    ) -> None:
        try:
            import requests as _requests  # noqa: F811
        except ImportError:
            raise ImportError(
                "The 'requests' package is required for OllamaModel. "
                "Install it with: pip install requests"
            ) from None

        self._requests = _requests
        self._model_id = model_id
        self._base_url = base_url.rstrip("/")
        self._context_window = context_window
        self._timeout = timeout

    @property
    def model_id(self) -> str:
        return self._model_id

    @property
    def capabilities(self) -> ModelCapabilities:
        return ModelCapabilities(
            model_id=self._model_id,
            provider="ollama",
            context_window=self._context_window,
            max_output_tokens=self._context_window,
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
        """Generate a complete response via the Ollama chat API."""
        api_messages: list[dict[str, Any]] = []
        if system:
            api_messages.append({"role": "system", "content": system})
        api_messages.extend({"role": m.role, "content": m.content} for m in messages)

        payload: dict[str, Any] = {
            "model": self._model_id,
            "messages": api_messages,
            "stream": False,
        }
        if response_schema is not None:
            payload["format"] = response_schema
        if temperature is not None:
            payload.setdefault("options", {})["temperature"] = temperature
        if max_tokens is not None:
            payload.setdefault("options", {})["num_predict"] = max_tokens

        data = self._post("/api/chat", payload)
        message = data.get("message", {})
        return ModelResponse(
            content=message.get("content", ""),
            usage=self._extract_usage(data),
            stop_reason="stop",
            model_id=data.get("model", self._model_id),
        )

    def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        """POST to the Ollama API and return parsed JSON."""
        url = f"{self._base_url}{path}"
        try:
            resp = self._requests.post(url, json=payload, timeout=self._timeout)
        except self._requests.ConnectionError as exc:
            raise OllamaModelError(
                "server", f"Cannot connect to Ollama at {self._base_url}: {exc}"
            ) from exc
        except self._requests.Timeout as exc:
            raise OllamaModelError(
                "timeout", f"Ollama request timed out after {self._timeout}s: {exc}"
            ) from exc

        if resp.status_code != 200:
            error_class = self._classify_http_status(resp.status_code)
            raise OllamaModelError(
                error_class, f"Ollama returned HTTP {resp.status_code}: {resp.text}"
            )

        return resp.json()

    @staticmethod
    def _classify_http_status(status_code: int) -> str:
        """Map HTTP status codes to error classes."""
        if status_code == 401:
            return "auth"
        if status_code == 429:
            return "rate_limit"
        if status_code >= 500:
            return "server"
        return "unknown"

    def _extract_usage(self, data: dict[str, Any]) -> dict[str, int]:
        usage: dict[str, int] = {}
        if "prompt_eval_count" in data:
            usage["input_tokens"] = data["prompt_eval_count"]
        if "eval_count" in data:
            usage["output_tokens"] = data["eval_count"]
        return usage
