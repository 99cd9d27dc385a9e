from __future__ import annotations

import pytest

from config import LLMSettings, PipelineSettings, SchedulerSettings, Settings, StorageSettings
from orchestrator import InMemoryTaskStore
from storage import InMemoryDigestStore


@pytest.fixture
def settings() -> Settings:
    return Settings(
        llm=LLMSettings(
            default_provider="deepseek",
            provider_order=["deepseek", "grok"],
            deepseek_api_key="sk-test",
            grok_api_key=None,
            openai_api_key=None,
            call_timeout=1.0,
            max_attempts=1,
        ),
        pipeline=PipelineSettings(fetch_limit_per_source=20, max_news_per_source=5, max_content_chars=6000),
        scheduler=SchedulerSettings(enabled=False, poll_interval_seconds=0.05, collection_interval_seconds=0, worker_count=1),
        storage=StorageSettings(backend="memory"),
    )


@pytest.fixture
def task_store() -> InMemoryTaskStore:
    return InMemoryTaskStore()


@pytest.fixture
def digest_store() -> InMemoryDigestStore:
    return InMemoryDigestStore()
