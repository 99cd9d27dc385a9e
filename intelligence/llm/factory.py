"""
LLM Factory
Build a backend for a provider tag from settings
"""
from typing import Dict, Optional, Type
import logging

from utils.exceptions import UnsupportedProviderError
from .base import BaseLLM
from .openai_llm import OpenAILLM
from .deepseek_llm import DeepSeekLLM
from .grok_llm import GrokLLM


logger = logging.getLogger(__name__)


PROVIDER_BACKENDS: Dict[str, Type[OpenAILLM]] = {
    "deepseek": DeepSeekLLM,
    "grok": GrokLLM,
    "openai": OpenAILLM,
}

SUPPORTED_PROVIDERS = tuple(PROVIDER_BACKENDS)


def get_llm(
    provider: Optional[str] = None,
    model: Optional[str] = None,
    settings=None,
    **kwargs,
) -> BaseLLM:
    """
    Build an LLM backend.

    Args:
        provider: deepseek, grok or openai (defaults to the configured default provider)
        model: model name (defaults to the provider's configured or built-in model)
        settings: LLMSettings override, mainly for tests
        **kwargs: temperature, max_tokens, api_key, base_url, timeout

    Raises:
        UnsupportedProviderError: the tag has no registered backend

    Example:
        llm = get_llm(provider="deepseek")
        text = await llm.achat("hello")
    """
    if settings is None:
        from config import get_llm_settings
        settings = get_llm_settings()

    tag = str(provider or settings.default_provider or "").strip().lower()
    backend = PROVIDER_BACKENDS.get(tag)
    if backend is None:
        raise UnsupportedProviderError(f"Unsupported LLM provider: {tag or '<empty>'}", provider=tag)

    api_key = kwargs.pop("api_key", None) or getattr(settings, f"{tag}_api_key", None)
    base_url = kwargs.pop("base_url", None) or getattr(settings, f"{tag}_base_url", None)
    model = model or getattr(settings, f"{tag}_model", None)

    default_params = {
        "temperature": settings.temperature,
        "max_tokens": settings.max_tokens,
        "timeout": settings.request_timeout,
    }
    for key, value in default_params.items():
        if key not in kwargs:
            kwargs[key] = value

    logger.debug("llm_backend provider=%s model=%s", tag, model or backend.DEFAULT_MODEL)
    return backend(model=model, api_key=api_key, base_url=base_url, **kwargs)
