"""Core contracts and shared types for the digest engine."""

from .contracts import (
    STATUS_TEXT,
    LLMRoutingConfig,
    NewsSource,
    ProcessedNewsItem,
    ProcessingState,
    ProcessingStep,
    RawNewsItem,
    SourceKind,
    SummaryRecord,
    Task,
    TaskParams,
    TaskProgress,
    TaskResult,
    TaskStatus,
    TaskType,
    normalize_source_kind,
    utcnow,
)

__all__ = [
    "STATUS_TEXT",
    "LLMRoutingConfig",
    "NewsSource",
    "ProcessedNewsItem",
    "ProcessingState",
    "ProcessingStep",
    "RawNewsItem",
    "SourceKind",
    "SummaryRecord",
    "Task",
    "TaskParams",
    "TaskProgress",
    "TaskResult",
    "TaskStatus",
    "TaskType",
    "normalize_source_kind",
    "utcnow",
]
