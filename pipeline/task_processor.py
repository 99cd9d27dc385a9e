"""Step engine: executes exactly one step of a news collection job per call."""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Awaitable, Callable, Dict, Optional
from uuid import NAMESPACE_URL, uuid5

from core import ProcessedNewsItem, ProcessingState, ProcessingStep, RawNewsItem, TaskProgress, TaskResult
from intelligence.llm import ProviderPolicy
from intelligence.summarizer import NewsSummarizer
from orchestrator.store import BaseTaskStore
from sources import FeedSourceAdapter
from storage import BaseDigestStore
from utils.exceptions import EmptyBatchError, PreconditionError, StepError, StoreError
from .dedup import MAX_NEWS_PER_SOURCE, select_news_to_process


logger = logging.getLogger(__name__)

NO_ITEMS_FOUND = "no items found"
NO_NEW_ITEMS = "no new items"
UNKNOWN_STEP_ERROR = "unknown error while processing step"

StepHandler = Callable[[ProcessingState], Awaitable[ProcessingState]]

_PRECONDITIONS: Dict[ProcessingStep, tuple] = {
    ProcessingStep.FETCH_NEWS: (),
    ProcessingStep.FILTER_NEWS: ("latest_news",),
    ProcessingStep.CREATE_SUMMARY_RECORD: ("news_to_process",),
    ProcessingStep.PROCESS_NEWS: ("news_to_process", "processed_items", "current_news_index"),
    ProcessingStep.SAVE_PROCESSED_NEWS: ("processed_items", "record_id"),
    ProcessingStep.COMPLETE: ("processed_items",),
}


def progress_percent(state: ProcessingState) -> int:
    """Advisory percent for a state: 10/20/30, 30..80 while processing, 90, 100."""
    step = state.step
    if step == ProcessingStep.FETCH_NEWS:
        return 10
    if step == ProcessingStep.FILTER_NEWS:
        return 20
    if step == ProcessingStep.CREATE_SUMMARY_RECORD:
        return 30
    if step == ProcessingStep.PROCESS_NEWS:
        total = state.total_news_count or 0
        if state.current_news_index is None or total <= 0:
            return 30
        index = min(state.current_news_index, total)
        return 30 + (50 * index) // total
    if step == ProcessingStep.SAVE_PROCESSED_NEWS:
        return 90
    if step == ProcessingStep.COMPLETE:
        return 100
    return 0


def is_chain_finished(executed_step: ProcessingStep, result: ProcessingState) -> bool:
    """The chain ends once COMPLETE has executed, or as soon as any step errors."""
    return bool(result.error) or executed_step == ProcessingStep.COMPLETE


def summary_record_id(task_id: str) -> str:
    return f"summary_{task_id}"


def processed_item_id(task_id: str, link: str) -> str:
    return str(uuid5(NAMESPACE_URL, f"{task_id}:{link}"))


def summary_record_title(now: Optional[datetime] = None) -> str:
    stamp = (now or datetime.now()).strftime("%Y-%m-%d %H:%M")
    return f"AI News Digest - {stamp}"


class TaskProcessor:
    """
    Runs one step of the state machine and returns the successor state.

    ``process_step`` never raises. Success persists the job's progress and
    returns the next state; any failure marks the job failed (best effort) and
    returns the input state with ``error`` set.
    """

    def __init__(
        self,
        *,
        task_store: BaseTaskStore,
        digest_store: BaseDigestStore,
        source_adapter: Optional[FeedSourceAdapter] = None,
        summarizer: Optional[NewsSummarizer] = None,
        provider_policy: Optional[ProviderPolicy] = None,
        max_news_per_source: int = MAX_NEWS_PER_SOURCE,
    ) -> None:
        self._task_store = task_store
        self._digest_store = digest_store
        self._source_adapter = source_adapter or FeedSourceAdapter(digest_store)
        self._summarizer = summarizer or NewsSummarizer()
        self._provider_policy = provider_policy or ProviderPolicy(digest_store=digest_store)
        self._max_news_per_source = max(1, int(max_news_per_source))
        self._handlers: Dict[ProcessingStep, StepHandler] = {
            ProcessingStep.FETCH_NEWS: self._fetch_news,
            ProcessingStep.FILTER_NEWS: self._filter_news,
            ProcessingStep.CREATE_SUMMARY_RECORD: self._create_summary_record,
            ProcessingStep.PROCESS_NEWS: self._process_news,
            ProcessingStep.SAVE_PROCESSED_NEWS: self._save_processed_news,
            ProcessingStep.COMPLETE: self._complete,
        }

    async def process_step(self, state: ProcessingState) -> ProcessingState:
        logger.info(
            "step_start task_id=%s step=%s index=%s",
            state.task_id,
            state.step.value,
            state.current_news_index,
        )
        try:
            self._check_preconditions(state)
            result = await self._handlers[state.step](state)
            self._task_store.set_progress(
                state.task_id,
                TaskProgress(
                    step=state.step.value,
                    percent=progress_percent(_as_step(result, state.step)),
                    details={
                        "current_news_index": result.current_news_index,
                        "total_news_count": result.total_news_count,
                        "processed_news_count": result.processed_news_count,
                    },
                ),
            )
        except Exception as exc:
            return self._fail(state, exc)

        logger.info("step_done task_id=%s step=%s next=%s", state.task_id, state.step.value, result.step.value)
        return result

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _fetch_news(self, state: ProcessingState) -> ProcessingState:
        latest = await self._source_adapter.fetch_latest()
        if not latest:
            raise EmptyBatchError(NO_ITEMS_FOUND, step=state.step.value)
        provider = state.provider or self._provider_policy.resolve(None)
        logger.info("fetch_done task_id=%s candidates=%d provider=%s", state.task_id, len(latest), provider)
        return state.advance(
            latest_news=latest,
            provider=provider,
            step=ProcessingStep.FILTER_NEWS,
        )

    async def _filter_news(self, state: ProcessingState) -> ProcessingState:
        processed_links = self._digest_store.get_processed_links()
        selection = select_news_to_process(
            state.latest_news or [],
            processed_links,
            max_per_source=self._max_news_per_source,
        )
        if not selection.selected:
            raise EmptyBatchError(NO_NEW_ITEMS, step=state.step.value)
        return state.advance(
            news_to_process=selection.selected,
            total_news_count=len(selection.selected),
            processed_news_count=0,
            step=ProcessingStep.CREATE_SUMMARY_RECORD,
        )

    async def _create_summary_record(self, state: ProcessingState) -> ProcessingState:
        news = state.news_to_process or []
        record = self._digest_store.create_summary_record(
            summary_record_title(),
            len(news),
            record_id=summary_record_id(state.task_id),
            task_id=state.task_id,
        )
        return state.advance(
            record_id=record.id,
            processed_items=[],
            current_news_index=0,
            total_news_count=state.total_news_count if state.total_news_count is not None else len(news),
            step=ProcessingStep.PROCESS_NEWS,
        )

    async def _process_news(self, state: ProcessingState) -> ProcessingState:
        news = state.news_to_process or []
        total = len(news)
        index = int(state.current_news_index or 0)
        if index >= total:
            return state.advance(step=ProcessingStep.SAVE_PROCESSED_NEWS)

        item = news[index]
        provider = state.provider or self._provider_policy.resolve(None)
        logger.info("process_item task_id=%s item=%d/%d title=%r", state.task_id, index + 1, total, item.title[:80])
        outcome = await self._summarizer.generate(provider, item.title, item.text)

        processed = list(state.processed_items or [])
        processed.append(self._enriched_item(state.task_id, item, outcome.summary, outcome.outline, outcome.status))
        next_index = index + 1
        return state.advance(
            provider=provider,
            processed_items=processed,
            current_news_index=next_index,
            processed_news_count=(state.processed_news_count or 0) + 1,
            step=ProcessingStep.SAVE_PROCESSED_NEWS if next_index >= total else ProcessingStep.PROCESS_NEWS,
        )

    async def _save_processed_news(self, state: ProcessingState) -> ProcessingState:
        items = state.processed_items or []
        inserted = self._digest_store.save_processed_items(state.record_id, items)
        logger.info("save_done task_id=%s record_id=%s items=%d inserted=%d", state.task_id, state.record_id, len(items), inserted)
        return state.advance(step=ProcessingStep.COMPLETE)

    async def _complete(self, state: ProcessingState) -> ProcessingState:
        count = len(state.processed_items or [])
        result = TaskResult(
            success=True,
            count=count,
            message=f"processed {count} news items",
            record_id=state.record_id,
        )
        if not self._task_store.mark_completed(state.task_id, result):
            logger.warning("complete_rejected task_id=%s (missing or already terminal)", state.task_id)
        return state.advance()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _check_preconditions(state: ProcessingState) -> None:
        for field_name in _PRECONDITIONS.get(state.step, ()):
            if getattr(state, field_name) is None:
                raise PreconditionError(f"missing precondition: {field_name}", step=state.step.value)

    @staticmethod
    def _enriched_item(task_id: str, item: RawNewsItem, summary: str, outline: str, status: str) -> ProcessedNewsItem:
        return ProcessedNewsItem(
            id=processed_item_id(task_id, item.link),
            title=item.title,
            original_link=item.link,
            pub_date=item.pub_date,
            source_id=item.source_id,
            summary=summary,
            outline=outline,
            enrichment_status=status,
        )

    def _fail(self, state: ProcessingState, exc: Exception) -> ProcessingState:
        message = _error_message(exc)
        if isinstance(exc, (StepError, StoreError)):
            logger.error("step_failed task_id=%s step=%s error=%s", state.task_id, state.step.value, message)
        else:
            logger.exception("step_failed task_id=%s step=%s error=%s", state.task_id, state.step.value, message)
        try:
            self._task_store.mark_failed(state.task_id, message)
        except Exception as write_exc:
            logger.error("mark_failed_write_failed task_id=%s error=%s", state.task_id, write_exc)
        return state.advance(error=message)


def _as_step(state: ProcessingState, step: ProcessingStep) -> ProcessingState:
    # Percent is reported for the step that just ran, using the result's counters.
    return state.model_copy(update={"step": step})


def _error_message(exc: Exception) -> str:
    return str(getattr(exc, "message", None) or exc) or UNKNOWN_STEP_ERROR
