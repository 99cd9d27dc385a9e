"""Application context shared by the web and CLI entrypoints."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Optional

from config import Settings, get_settings
from intelligence.llm import ProviderPolicy, get_llm
from intelligence.summarizer import LLMFactory, NewsSummarizer
from orchestrator import (
    BaseTaskStore,
    InMemoryStepQueue,
    InMemoryTaskStore,
    SqliteTaskStore,
    TaskOrchestrator,
    TaskScheduler,
)
from pipeline import StepRuntime, TaskProcessor
from sources import FeedSourceAdapter
from sources.feeds import FeedFetcher
from storage import BaseDigestStore, InMemoryDigestStore, SqliteDigestStore
from utils.exceptions import ConfigurationError


logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """
    Everything a process needs, built once at startup and passed explicitly.

    ``startup`` starts the step workers (and the scheduler when enabled);
    ``shutdown`` stops both. Neither touches jobs already recorded in the store.
    """

    settings: Settings
    task_store: BaseTaskStore
    digest_store: BaseDigestStore
    queue: InMemoryStepQueue
    processor: TaskProcessor
    runtime: StepRuntime
    orchestrator: TaskOrchestrator
    scheduler: TaskScheduler
    provider_policy: ProviderPolicy

    async def startup(self, *, start_workers: bool = True, start_scheduler: Optional[bool] = None) -> None:
        if start_workers:
            self.runtime.start(self.settings.scheduler.worker_count)
        if start_scheduler is None:
            start_scheduler = self.settings.scheduler.enabled
        if start_scheduler:
            await self.scheduler.start()
        logger.info("app_context_started workers=%s scheduler=%s", start_workers, bool(start_scheduler))

    async def shutdown(self) -> None:
        await self.scheduler.stop()
        await self.runtime.stop()
        logger.info("app_context_stopped")


def _build_stores(settings: Settings):
    backend = str(settings.storage.backend or "").strip().lower()
    if backend == "memory":
        return InMemoryTaskStore(), InMemoryDigestStore()
    if backend == "sqlite":
        path = settings.storage.database_path
        return SqliteTaskStore(path), SqliteDigestStore(path)
    raise ConfigurationError(f"Unknown storage backend: {backend or '<empty>'}", {"backend": backend})


def build_context(
    settings: Optional[Settings] = None,
    *,
    task_store: Optional[BaseTaskStore] = None,
    digest_store: Optional[BaseDigestStore] = None,
    fetcher: Optional[FeedFetcher] = None,
    llm_factory: Optional[LLMFactory] = None,
) -> AppContext:
    """Wire stores, step engine, runtime, dispatcher and scheduler from settings."""
    settings = settings or get_settings()
    if task_store is None or digest_store is None:
        default_tasks, default_digest = _build_stores(settings)
        task_store = task_store or default_tasks
        digest_store = digest_store or default_digest

    provider_policy = ProviderPolicy(settings=settings.llm, digest_store=digest_store)
    summarizer = NewsSummarizer(
        llm_factory=llm_factory or (lambda provider: get_llm(provider=provider, settings=settings.llm)),
        call_timeout=settings.llm.call_timeout,
        max_attempts=settings.llm.max_attempts,
        max_content_chars=settings.pipeline.max_content_chars,
    )
    processor = TaskProcessor(
        task_store=task_store,
        digest_store=digest_store,
        source_adapter=FeedSourceAdapter(
            digest_store,
            per_source_cap=settings.pipeline.fetch_limit_per_source,
            fetcher=fetcher,
        ),
        summarizer=summarizer,
        provider_policy=provider_policy,
        max_news_per_source=settings.pipeline.max_news_per_source,
    )
    queue = InMemoryStepQueue()
    runtime = StepRuntime(processor=processor, queue=queue)
    orchestrator = TaskOrchestrator(store=task_store, dispatch=runtime.dispatch)
    scheduler = TaskScheduler(
        orchestrator,
        interval_seconds=settings.scheduler.poll_interval_seconds,
        collection_interval_seconds=settings.scheduler.collection_interval_seconds,
        provider=settings.scheduler.provider,
    )
    return AppContext(
        settings=settings,
        task_store=task_store,
        digest_store=digest_store,
        queue=queue,
        processor=processor,
        runtime=runtime,
        orchestrator=orchestrator,
        scheduler=scheduler,
        provider_policy=provider_policy,
    )
