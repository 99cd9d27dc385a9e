from __future__ import annotations

from core import LLMRoutingConfig
from intelligence.llm import (
    LLM_CONFIG_KEY,
    ProviderPolicy,
    get_provider_to_use,
    load_routing_config,
    provider_credentials,
    resolve_provider,
    save_routing_config,
)
from utils.exceptions import StoreError


def test_explicit_request_wins() -> None:
    config = LLMRoutingConfig(default_provider="deepseek", provider_order=["deepseek", "grok"])
    assert resolve_provider("grok", config, {"deepseek": True}) == "grok"
    assert resolve_provider(" GROK ", config, {}) == "grok"


def test_first_credentialed_in_order() -> None:
    config = LLMRoutingConfig(default_provider="deepseek", provider_order=["deepseek", "grok"])
    assert resolve_provider(None, config, {"deepseek": False, "grok": True}) == "grok"


def test_default_when_nothing_is_credentialed() -> None:
    config = LLMRoutingConfig(default_provider="openai", provider_order=["deepseek", "grok"])
    assert resolve_provider("", config, {"deepseek": False, "grok": False}) == "openai"


def test_credentials_from_settings(settings) -> None:
    creds = provider_credentials(settings.llm)
    assert creds["deepseek"] is True
    assert creds["grok"] is False
    assert get_provider_to_use(settings=settings.llm) == "deepseek"


def test_stored_override_replaces_settings(settings, digest_store) -> None:
    save_routing_config(digest_store, LLMRoutingConfig(default_provider="grok", provider_order=["grok"]))
    policy = ProviderPolicy(settings=settings.llm, digest_store=digest_store)

    assert policy.routing_config().provider_order == ["grok"]
    # grok has no credential, so the default decides
    assert policy.resolve() == "grok"
    assert policy.resolve("openai") == "openai"


def test_camel_case_stored_config(settings, digest_store) -> None:
    digest_store.set_config(LLM_CONFIG_KEY, {"defaultProvider": "grok", "useProviderOrder": ["grok", "deepseek"]})
    config = load_routing_config(digest_store, settings.llm)
    assert config.default_provider == "grok"
    assert config.provider_order == ["grok", "deepseek"]


def test_invalid_stored_config_falls_back(settings, digest_store) -> None:
    digest_store.set_config(LLM_CONFIG_KEY, {"default_provider": ["not", "a", "string"]})
    config = load_routing_config(digest_store, settings.llm)
    assert config.default_provider == "deepseek"
    assert config.provider_order == ["deepseek", "grok"]


def test_store_read_failure_falls_back(settings) -> None:
    class _BrokenStore:
        def get_config(self, key):
            raise StoreError("disk gone", operation="get_config")

    config = load_routing_config(_BrokenStore(), settings.llm)
    assert config.default_provider == "deepseek"
