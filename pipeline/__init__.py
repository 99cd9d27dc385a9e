"""Step pipeline: dedup filter, step engine and the runtime that drives chains."""

from .dedup import DedupResult, cap_per_source, filter_unprocessed, select_news_to_process
from .runtime import StepOutcome, StepRuntime
from .task_processor import (
    NO_ITEMS_FOUND,
    NO_NEW_ITEMS,
    TaskProcessor,
    is_chain_finished,
    processed_item_id,
    progress_percent,
    summary_record_id,
)

__all__ = [
    "DedupResult",
    "cap_per_source",
    "filter_unprocessed",
    "select_news_to_process",
    "StepOutcome",
    "StepRuntime",
    "NO_ITEMS_FOUND",
    "NO_NEW_ITEMS",
    "TaskProcessor",
    "is_chain_finished",
    "processed_item_id",
    "progress_percent",
    "summary_record_id",
]
