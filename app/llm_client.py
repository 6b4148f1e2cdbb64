"""LLM client factory for Anthropic and OpenRouter."""
from __future__ import annotations

from app.config import settings


def get_client():
    """Get an AsyncAnthropic client pointed at OpenRouter or Anthropic.

    OpenRouter wins when both an OpenRouter model and key are configured.
    """
    import anthropic

    if settings.openrouter_model and settings.openrouter_api_key:
        return anthropic.AsyncAnthropic(
            api_key=settings.openrouter_api_key,
            base_url=settings.openrouter_base_url,
        )
    if not settings.anthropic_api_key:
        raise RuntimeError("ANTHROPIC_API_KEY is not configured")
    return anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key)


def get_model() -> str:
    """Model used by the browsing agent."""
    if settings.openrouter_model and settings.openrouter_api_key:
        return settings.openrouter_model
    return settings.default_model


def get_classifier_model() -> str:
    """Model used for media classification, falling back to the agent model."""
    override = settings.classifier_model.strip()
    return override or get_model()


# Singleton
_client = None


def client():
    """Get or create the LLM client."""
    global _client
    if _client is None:
        _client = get_client()
    return _client
