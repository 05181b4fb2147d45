"""Chat model providers used for listing copy."""

from podflow.config import Settings
from podflow.llm.anthropic_provider import AnthropicProvider
from podflow.llm.base import LLMProvider, parse_json_reply
from podflow.llm.openai_provider import OpenAIProvider


def provider_from_settings(settings: Settings) -> LLMProvider:
    """Build the provider named by ``POD_LLM_PROVIDER`` ('openai' or 'anthropic').

    Raises ``ValueError`` when its API key is missing.
    """
    name = settings.pod_llm_provider.lower()
    if name == "anthropic":
        if not settings.anthropic_api_key:
            raise ValueError("ANTHROPIC_API_KEY is not configured.")
        return AnthropicProvider(
            api_key=settings.anthropic_api_key,
            model=settings.pod_anthropic_model,
            timeout=settings.pod_http_timeout,
        )
    if name != "openai":
        raise ValueError(f"Unknown POD_LLM_PROVIDER '{settings.pod_llm_provider}'.")
    if not settings.openai_api_key:
        raise ValueError("OPENAI_API_KEY is not configured.")
    return OpenAIProvider(
        api_key=settings.openai_api_key,
        model=settings.pod_openai_model,
        timeout=settings.pod_http_timeout,
    )


__all__ = ["AnthropicProvider", "LLMProvider", "OpenAIProvider", "parse_json_reply", "provider_from_settings"]
