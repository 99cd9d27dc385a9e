"""
LLM Module
Provider backends, factory and routing policy
"""
from .base import BaseLLM, LLMResponse, Message, MessageRole
from .openai_llm import OpenAILLM
from .deepseek_llm import DeepSeekLLM
from .grok_llm import GrokLLM
from .factory import PROVIDER_BACKENDS, SUPPORTED_PROVIDERS, get_llm
from .provider_policy import (
    LLM_CONFIG_KEY,
    ProviderPolicy,
    get_provider_to_use,
    load_routing_config,
    provider_credentials,
    resolve_provider,
    routing_config_from_settings,
    save_routing_config,
)

__all__ = [
    "BaseLLM",
    "LLMResponse",
    "Message",
    "MessageRole",
    "OpenAILLM",
    "DeepSeekLLM",
    "GrokLLM",
    "PROVIDER_BACKENDS",
    "SUPPORTED_PROVIDERS",
    "get_llm",
    "LLM_CONFIG_KEY",
    "ProviderPolicy",
    "get_provider_to_use",
    "load_routing_config",
    "provider_credentials",
    "resolve_provider",
    "routing_config_from_settings",
    "save_routing_config",
]
