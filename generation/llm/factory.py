"""
LLM Factory
Build a provider adapter from settings
"""
from typing import Optional

from utils.exceptions import ConfigurationError

from .base import BaseLLM
from .openai_llm import OpenAILLM
from .gemini_llm import GeminiLLM


SUPPORTED_PROVIDERS = ("openai", "gemini")


def get_llm(
    provider: Optional[str] = None,
    model: Optional[str] = None,
    **kwargs,
) -> BaseLLM:
    """
    Get an LLM instance.

    Reads keys and defaults from settings; explicit arguments win.

    Args:
        provider: openai or gemini (default from LLM_PROVIDER)
        model: model name (default per provider from settings)
        **kwargs: temperature, max_tokens, timeout, api_key

    Returns:
        BaseLLM instance

    Example:
        llm = get_llm()
        llm = get_llm(provider="gemini")
        llm = get_llm(provider="openai", model="gpt-4o")
    """
    from config import get_llm_settings

    settings = get_llm_settings()

    provider = (provider or settings.provider or "openai").lower()

    default_models = {
        "openai": settings.openai_model,
        "gemini": settings.gemini_model,
    }
    model = model or default_models.get(provider)

    api_keys = {
        "openai": settings.openai_api_key,
        "gemini": settings.gemini_api_key,
    }
    api_key = kwargs.pop("api_key", None) or api_keys.get(provider)
    if provider in api_keys and not api_key:
        raise ConfigurationError(f"LLM_{provider.upper()}_API_KEY is not set", {"provider": provider})

    default_params = {
        "temperature": settings.temperature,
        "max_tokens": settings.max_tokens,
        "timeout": settings.timeout_seconds,
    }
    for key, value in default_params.items():
        if key not in kwargs:
            kwargs[key] = value

    if provider == "openai":
        return OpenAILLM(
            model=model,
            api_key=api_key,
            base_url=kwargs.pop("base_url", None),
            **kwargs,
        )
    elif provider == "gemini":
        return GeminiLLM(
            model=model,
            api_key=api_key,
            **kwargs,
        )
    else:
        raise ConfigurationError(f"Unsupported LLM provider: {provider} (supported: {SUPPORTED_PROVIDERS})")
