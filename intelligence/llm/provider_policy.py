"""
Provider Policy
Decide which summarization provider a job uses
"""
from typing import Any, Dict, Mapping, Optional
import logging

from pydantic import ValidationError

from core import LLMRoutingConfig
from utils.exceptions import StoreError
from .factory import SUPPORTED_PROVIDERS


logger = logging.getLogger(__name__)


LLM_CONFIG_KEY = "llm_config"


def provider_credentials(settings) -> Dict[str, bool]:
    """Credential presence per supported provider tag."""
    return {
        tag: bool(str(getattr(settings, f"{tag}_api_key", None) or "").strip())
        for tag in SUPPORTED_PROVIDERS
    }


def routing_config_from_settings(settings) -> LLMRoutingConfig:
    return LLMRoutingConfig(
        default_provider=settings.default_provider,
        provider_order=list(settings.provider_order or []),
    )


def resolve_provider(
    preferred: Optional[str],
    config: LLMRoutingConfig,
    credentials: Mapping[str, bool],
) -> str:
    """
    Resolve the provider to actually use.

    An explicit request always wins. Otherwise the first provider in the
    configured order with a credential present is used, and the configured
    default when none has one.
    """
    explicit = str(preferred or "").strip().lower()
    if explicit:
        return explicit

    for tag in config.provider_order:
        if credentials.get(tag):
            return tag

    return str(config.default_provider or "").strip().lower()


def load_routing_config(digest_store, settings) -> LLMRoutingConfig:
    """Stored override from system config, else the settings-derived config."""
    fallback = routing_config_from_settings(settings)
    if digest_store is None:
        return fallback
    try:
        stored = digest_store.get_config(LLM_CONFIG_KEY)
    except StoreError as exc:
        logger.warning("llm_config_read_failed error=%s", exc)
        return fallback
    if not stored:
        return fallback
    try:
        return LLMRoutingConfig(**_routing_payload(stored))
    except (TypeError, ValidationError) as exc:
        logger.warning("llm_config_invalid error=%s", exc)
        return fallback


def save_routing_config(digest_store, config: LLMRoutingConfig) -> LLMRoutingConfig:
    """Persist the routing override. Raises StoreError on write failure."""
    digest_store.set_config(LLM_CONFIG_KEY, config.model_dump())
    logger.info(
        "llm_config_saved default=%s order=%s",
        config.default_provider,
        ",".join(config.provider_order),
    )
    return config


def _routing_payload(stored: Any) -> Dict[str, Any]:
    # Accepts the camelCase shape (defaultProvider/useProviderOrder) as well.
    payload = dict(stored)
    if "defaultProvider" in payload and "default_provider" not in payload:
        payload["default_provider"] = payload.pop("defaultProvider")
    for key in ("useProviderOrder", "providerOrder"):
        if key in payload and "provider_order" not in payload:
            payload["provider_order"] = payload.pop(key)
    return {k: v for k, v in payload.items() if k in {"default_provider", "provider_order"}}


class ProviderPolicy:
    """Bundles routing config lookup with credential checks for one resolution."""

    def __init__(self, settings=None, digest_store=None):
        if settings is None:
            from config import get_llm_settings
            settings = get_llm_settings()
        self.settings = settings
        self.digest_store = digest_store

    def routing_config(self) -> LLMRoutingConfig:
        return load_routing_config(self.digest_store, self.settings)

    def resolve(self, preferred: Optional[str] = None) -> str:
        config = self.routing_config()
        provider = resolve_provider(preferred, config, provider_credentials(self.settings))
        logger.info("provider_resolved preferred=%s provider=%s", preferred or "-", provider)
        return provider


def get_provider_to_use(preferred: Optional[str] = None, routing_config: Optional[LLMRoutingConfig] = None, settings=None) -> str:
    """Settings-only resolution, ignoring any stored override."""
    if settings is None:
        from config import get_llm_settings
        settings = get_llm_settings()
    config = routing_config or routing_config_from_settings(settings)
    return resolve_provider(preferred, config, provider_credentials(settings))
