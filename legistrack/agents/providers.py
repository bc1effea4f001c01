"""
LLM provider keys.

pydantic_ai providers read their API keys from the process environment,
while our settings may come from .env. Agents are only built for models
whose key is configured.
"""
import os

from legistrack.config import settings


def export_provider_keys() -> None:
    """Copy configured keys into os.environ for the provider SDKs."""
    if settings.OPENAI_API_KEY:
        os.environ.setdefault("OPENAI_API_KEY", settings.OPENAI_API_KEY)
    if settings.GEMINI_API_KEY:
        os.environ.setdefault("GEMINI_API_KEY", settings.GEMINI_API_KEY)
        os.environ.setdefault("GOOGLE_API_KEY", settings.GEMINI_API_KEY)


def model_has_key(model_name: str) -> bool:
    """
    Is the API key for this pydantic_ai model string configured?

    Examples:
        model_has_key("openai:gpt-4o")                -> bool(OPENAI_API_KEY)
        model_has_key("google-gla:gemini-2.0-flash")  -> bool(GEMINI_API_KEY)
    """
    if model_name.startswith("openai:"):
        return bool(settings.OPENAI_API_KEY)
    if model_name.startswith(("google-gla:", "google:", "gemini")):
        return bool(settings.GEMINI_API_KEY)
    return False
