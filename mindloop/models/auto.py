"""Build a model from settings and environment variables."""

from __future__ import annotations

import logging
import os
from typing import Optional

logger = logging.getLogger(__name__)

# Default models, cheap and fast since the loop calls them often
_PROVIDER_DEFAULTS = {
    "anthropic": "claude-haiku-4-5-20251001",
    "openai": "gpt-4o-mini",
    "ollama": "llama3.2:latest",
}


def auto_configure_model(
    provider: Optional[str] = None,
    model: Optional[str] = None,
) -> Optional[object]:
    """Auto-detect and create a model.

    Detection priority (when ``provider`` is not given):
    1. ``CLAUDE_API_KEY`` or ``ANTHROPIC_API_KEY`` → Anthropic
    2. ``OPENAI_API_KEY`` → OpenAI
    3. No key → ``None``; the loop then runs on fallback decisions only

    Args:
        provider: Force a provider (anthropic, openai, ollama). Usually
            ``Settings.model_provider``.
        model: Override the provider's default model name.

    Returns:
        A ModelProtocol instance, or None if nothing is configured.
    """
    forced_provider = (provider or "").lower().strip()
    model_override = (model or "").strip() or None

    if forced_provider:
        chosen = forced_provider
    elif os.environ.get("ANTHROPIC_API_KEY") or os.environ.get("CLAUDE_API_KEY"):
        chosen = "anthropic"
    elif os.environ.get("OPENAI_API_KEY"):
        chosen = "openai"
    else:
        return None

    model_id = model_override or _PROVIDER_DEFAULTS.get(chosen)

    if chosen == "anthropic":
        from mindloop.models.anthropic import AnthropicModel

        instance = AnthropicModel(model_id=model_id)
        logger.info("Auto-configured AnthropicModel (model=%s)", model_id)
        return instance

    if chosen == "openai":
        from mindloop.models.openai import OpenAIModel

        instance = OpenAIModel(model_id=model_id)
        logger.info("Auto-configured OpenAIModel (model=%s)", model_id)
        return instance

    if chosen == "ollama":
        from mindloop.models.ollama import OllamaModel

        instance = OllamaModel(model_id=model_id)
        logger.info("Auto-configured OllamaModel (model=%s)", model_id)
        return instance

    logger.warning("Unknown model provider '%s', skipping auto-configuration", chosen)
    return None
