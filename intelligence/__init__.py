"""
Intelligence Module
LLM abstraction and per-item news enrichment
"""
from .llm import (
    BaseLLM,
    DeepSeekLLM,
    GrokLLM,
    OpenAILLM,
    ProviderPolicy,
    get_llm,
    resolve_provider,
)
from .summarizer import (
    OUTLINE_FAILED_PLACEHOLDER,
    SUMMARY_FAILED_PLACEHOLDER,
    NewsSummarizer,
    ParsedSummary,
    ParseFailed,
    SummaryOutcome,
    parse_summary_response,
)

__all__ = [
    # LLM
    "BaseLLM",
    "DeepSeekLLM",
    "GrokLLM",
    "OpenAILLM",
    "ProviderPolicy",
    "get_llm",
    "resolve_provider",
    # Enrichment
    "OUTLINE_FAILED_PLACEHOLDER",
    "SUMMARY_FAILED_PLACEHOLDER",
    "NewsSummarizer",
    "ParsedSummary",
    "ParseFailed",
    "SummaryOutcome",
    "parse_summary_response",
]
