"""
Utils Module
Logging and exception helpers
"""
from .logger import setup_logger, setup_app_logging
from .exceptions import (
    FeedDigestError,
    ConfigurationError,
    StoreError,
    SourceFetchError,
    LLMError,
    UnsupportedProviderError,
    EnrichmentTimeoutError,
    StepError,
    PreconditionError,
    EmptyBatchError,
    DispatchError,
)

__all__ = [
    "setup_logger",
    "setup_app_logging",
    "FeedDigestError",
    "ConfigurationError",
    "StoreError",
    "SourceFetchError",
    "LLMError",
    "UnsupportedProviderError",
    "EnrichmentTimeoutError",
    "StepError",
    "PreconditionError",
    "EmptyBatchError",
    "DispatchError",
]
