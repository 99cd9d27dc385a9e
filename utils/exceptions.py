"""
Custom Exceptions
Error taxonomy for the feed digest task engine
"""


class FeedDigestError(Exception):
    """Base class for every error raised by the digest engine."""

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self):
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(FeedDigestError):
    """Invalid or missing configuration."""
    pass


class StoreError(FeedDigestError):
    """A durable write or read against the task/digest store failed."""

    def __init__(self, message: str, operation: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.operation = operation


class SourceFetchError(FeedDigestError):
    """A single source could not be fetched or parsed."""

    def __init__(self, message: str, source: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.source = source


class LLMError(FeedDigestError):
    """LLM call-out failure."""

    def __init__(self, message: str, provider: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.provider = provider


class UnsupportedProviderError(LLMError):
    """No backend is registered for the requested provider tag."""
    pass


class EnrichmentTimeoutError(LLMError):
    """The caller-side timer won the race against the LLM call."""
    pass


class StepError(FeedDigestError):
    """A step could not complete; fatal to the job."""

    def __init__(self, message: str, step: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.step = step


class PreconditionError(StepError):
    """State entering a step lacks a field that step requires."""
    pass


class EmptyBatchError(StepError):
    """Nothing to process: no items fetched, or none new after dedup."""
    pass


class DispatchError(FeedDigestError):
    """The successor step message could not be handed to the queue."""
    pass
