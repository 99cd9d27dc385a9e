"""Canonical data contracts for the task queue, step engine and digest records."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _CamelModel(BaseModel):
    """Accepts both snake_case and camelCase keys (external re-drivers post camelCase)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TaskType(str, Enum):
    """Kinds of queued job."""

    NEWS_COLLECTION = "news_collection"


class TaskStatus(str, Enum):
    """Job lifecycle: pending -> processing -> completed | failed."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in {TaskStatus.COMPLETED, TaskStatus.FAILED}


STATUS_TEXT = {
    TaskStatus.PENDING: "waiting",
    TaskStatus.PROCESSING: "processing",
    TaskStatus.COMPLETED: "completed",
    TaskStatus.FAILED: "failed",
}


class ProcessingStep(str, Enum):
    """Fixed step order; declaration order is the default forward transition."""

    FETCH_NEWS = "fetch_news"
    FILTER_NEWS = "filter_news"
    CREATE_SUMMARY_RECORD = "create_summary_record"
    PROCESS_NEWS = "process_news"
    SAVE_PROCESSED_NEWS = "save_processed_news"
    COMPLETE = "complete"

    def successor(self) -> "ProcessingStep":
        members = list(ProcessingStep)
        idx = members.index(self)
        return members[min(idx + 1, len(members) - 1)]


class SourceKind(str, Enum):
    """Configured source kinds. Only RSS feeds produce candidates today."""

    RSS = "rss"
    API = "api"
    BLOG = "blog"


def normalize_source_kind(value: Any) -> str:
    """Enum members pass through; "feed" and "atom" (or nothing) mean rss."""
    if isinstance(value, SourceKind):
        return value.value
    text = str(value or "").strip().lower()
    if text in {"", "feed", "atom"}:
        return SourceKind.RSS.value
    return text


class TaskParams(BaseModel):
    """Immutable creation-time arguments."""

    provider: Optional[str] = None

    @field_validator("provider", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> Optional[str]:
        text = str(value or "").strip().lower()
        return text or None


class TaskProgress(BaseModel):
    """Advisory progress projection of the step state."""

    step: str
    percent: int = 0
    details: Optional[Dict[str, Any]] = None

    @field_validator("percent", mode="before")
    @classmethod
    def _clamp_percent(cls, value: Any) -> int:
        return max(0, min(100, int(value or 0)))


class TaskResult(BaseModel):
    """Terminal payload of a successful job."""

    success: bool = True
    count: int = 0
    message: str = ""
    record_id: Optional[str] = None


class Task(BaseModel):
    """Durable job record owned by the task store."""

    id: str
    task_type: TaskType = TaskType.NEWS_COLLECTION
    status: TaskStatus = TaskStatus.PENDING
    params: TaskParams = Field(default_factory=TaskParams)
    progress: Optional[TaskProgress] = None
    result: Optional[TaskResult] = None
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _terminal_payload_invariant(self) -> "Task":
        if self.result is not None and self.error is not None:
            raise ValueError("result and error are mutually exclusive")
        if not self.status.is_terminal and (self.result is not None or self.error is not None):
            raise ValueError("result/error may only be set on a terminal task")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def status_text(self) -> str:
        return STATUS_TEXT.get(self.status, "unknown")


class NewsSource(BaseModel):
    """Configured external source."""

    id: str
    name: str
    url: str
    kind: SourceKind = SourceKind.RSS
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("kind", mode="before")
    @classmethod
    def _feed_alias(cls, value: Any) -> Any:
        return normalize_source_kind(value)

    @field_validator("name", "url", mode="before")
    @classmethod
    def _non_empty_text(cls, value: Any) -> str:
        text = str(value or "").strip()
        if not text:
            raise ValueError("value is required")
        return text


class RawNewsItem(_CamelModel):
    """Candidate item as fetched from a source; identity is ``link``."""

    title: str = ""
    link: str = ""
    pub_date: str = Field(default_factory=lambda: utcnow().isoformat())
    content: str = ""
    content_snippet: str = ""
    guid: Optional[str] = None
    source_id: str = ""

    @property
    def text(self) -> str:
        return self.content or self.content_snippet or ""


class ProcessedNewsItem(_CamelModel):
    """Candidate enriched with a generated summary and outline."""

    id: str
    title: str
    original_link: str
    pub_date: str
    source_id: str
    summary: str
    outline: str
    enrichment_status: str = "ok"
    created_at: str = Field(default_factory=lambda: utcnow().isoformat())
    source_name: Optional[str] = None


class SummaryRecord(BaseModel):
    """Grouping record aggregating the enriched items of one job run."""

    id: str
    title: str
    items_count: int = 0
    task_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class LLMRoutingConfig(BaseModel):
    """Provider routing: explicit request, then credentialed order, then default."""

    default_provider: str = "deepseek"
    provider_order: List[str] = Field(default_factory=lambda: ["deepseek", "grok"])

    @field_validator("provider_order", mode="before")
    @classmethod
    def _normalize_order(cls, value: Any) -> List[str]:
        if isinstance(value, str):
            value = value.split(",")
        seen: List[str] = []
        for item in list(value or []):
            token = str(item or "").strip().lower()
            if token and token not in seen:
                seen.append(token)
        return seen


class ProcessingState(_CamelModel):
    """Step state threaded by value from one step invocation to the next."""

    step: ProcessingStep
    task_id: str
    provider: Optional[str] = None
    latest_news: Optional[List[RawNewsItem]] = None
    news_to_process: Optional[List[RawNewsItem]] = None
    record_id: Optional[str] = None
    processed_items: Optional[List[ProcessedNewsItem]] = None
    current_news_index: Optional[int] = None
    total_news_count: Optional[int] = None
    processed_news_count: Optional[int] = None
    error: Optional[str] = None

    @field_validator("task_id", mode="before")
    @classmethod
    def _required_task_id(cls, value: Any) -> str:
        text = str(value or "").strip()
        if not text:
            raise ValueError("task_id is required")
        return text

    def advance(self, **changes: Any) -> "ProcessingState":
        """Return a successor copy; the receiver is never mutated."""
        return self.model_copy(update=changes, deep=True)

    def message_key(self) -> str:
        """Identity of an in-flight step message, used to collapse duplicate triggers."""
        index = "" if self.current_news_index is None else str(self.current_news_index)
        return f"{self.task_id}:{self.step.value}:{index}"
