from __future__ import annotations

import pytest

from config import LLMSettings
from intelligence.llm import SUPPORTED_PROVIDERS, DeepSeekLLM, GrokLLM, OpenAILLM, get_llm
from utils.exceptions import UnsupportedProviderError


def _settings(**overrides) -> LLMSettings:
    values = {"deepseek_api_key": "sk-d", "grok_api_key": "xai-g", "openai_api_key": None}
    values.update(overrides)
    return LLMSettings(**values)


def test_supported_tags() -> None:
    assert set(SUPPORTED_PROVIDERS) == {"deepseek", "grok", "openai"}


def test_deepseek_defaults() -> None:
    llm = get_llm(provider="deepseek", settings=_settings())
    assert isinstance(llm, DeepSeekLLM)
    assert llm.provider == "deepseek"
    assert llm.model == "deepseek-chat"
    assert llm.base_url == "https://api.deepseek.com/v1"
    assert llm.api_key == "sk-d"


def test_grok_defaults_and_overrides() -> None:
    llm = get_llm(provider="grok", settings=_settings(grok_model="grok-beta"))
    assert isinstance(llm, GrokLLM)
    assert llm.base_url == "https://api.x.ai/v1"
    assert llm.model == "grok-beta"

    custom = get_llm(provider="grok", settings=_settings(), base_url="http://localhost:9000/v1", temperature=0.0)
    assert custom.base_url == "http://localhost:9000/v1"
    assert custom.temperature == 0.0


def test_default_provider_and_openai() -> None:
    assert isinstance(get_llm(settings=_settings(default_provider="openai")), OpenAILLM)


def test_unsupported_tag_raises() -> None:
    with pytest.raises(UnsupportedProviderError) as excinfo:
        get_llm(provider="mystery", settings=_settings())
    assert excinfo.value.provider == "mystery"
