from __future__ import annotations

import pytest

from core import TaskParams, TaskProgress, TaskResult, TaskStatus, TaskType
from orchestrator.store import InMemoryTaskStore, SqliteTaskStore
from utils.exceptions import StoreError


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryTaskStore()
    return SqliteTaskStore(tmp_path / "tasks.db")


def test_create_starts_pending_with_params(store) -> None:
    task_id = store.create(TaskType.NEWS_COLLECTION, {"provider": "Grok"})
    task = store.get(task_id)

    assert task is not None
    assert task.id.startswith("task_")
    assert task.status == TaskStatus.PENDING
    assert task.params == TaskParams(provider="grok")
    assert task.result is None and task.error is None and task.completed_at is None


def test_next_pending_is_fifo(store) -> None:
    first = store.create(TaskType.NEWS_COLLECTION)
    second = store.create(TaskType.NEWS_COLLECTION)

    assert store.next_pending().id == first
    assert store.claim(first)
    assert store.next_pending().id == second


def test_claim_is_atomic_compare_and_set(store) -> None:
    task_id = store.create(TaskType.NEWS_COLLECTION)

    assert store.claim(task_id) is True
    assert store.claim(task_id) is False
    assert store.get(task_id).status == TaskStatus.PROCESSING
    assert store.claim("task_missing") is False


def test_claim_next_pending_returns_processing_record(store) -> None:
    assert store.claim_next_pending() is None
    task_id = store.create(TaskType.NEWS_COLLECTION)

    claimed = store.claim_next_pending()
    assert claimed is not None
    assert claimed.id == task_id
    assert claimed.status == TaskStatus.PROCESSING
    assert store.claim_next_pending() is None


def test_terminal_transition_happens_once(store) -> None:
    task_id = store.create(TaskType.NEWS_COLLECTION)
    store.claim(task_id)

    assert store.mark_completed(task_id, TaskResult(count=2, message="done", record_id="summary_x"))
    assert not store.mark_failed(task_id, "late failure")
    assert not store.mark_processing(task_id)

    task = store.get(task_id)
    assert task.status == TaskStatus.COMPLETED
    assert task.result.count == 2
    assert task.result.record_id == "summary_x"
    assert task.error is None
    assert task.completed_at is not None


def test_mark_failed_records_error(store) -> None:
    task_id = store.create(TaskType.NEWS_COLLECTION)
    store.mark_processing(task_id)

    assert store.mark_failed(task_id, "no items found")
    task = store.get(task_id)
    assert task.status == TaskStatus.FAILED
    assert task.error == "no items found"
    assert task.result is None


def test_progress_overwrites_projection(store) -> None:
    task_id = store.create(TaskType.NEWS_COLLECTION)
    store.set_progress(task_id, TaskProgress(step="fetch_news", percent=10))
    store.set_progress(task_id, TaskProgress(step="filter_news", percent=20, details={"total_news_count": 4}))

    progress = store.get(task_id).progress
    assert progress.step == "filter_news"
    assert progress.percent == 20
    assert progress.details == {"total_news_count": 4}


def test_updates_on_missing_record_return_false(store) -> None:
    assert store.get("task_missing") is None
    assert store.mark_processing("task_missing") is False
    assert store.mark_completed("task_missing", TaskResult()) is False
    assert store.mark_failed("task_missing", "x") is False
    assert store.set_progress("task_missing", TaskProgress(step="fetch_news", percent=10)) is False


def test_list_tasks_filters_by_status_newest_first(store) -> None:
    older = store.create(TaskType.NEWS_COLLECTION)
    newer = store.create(TaskType.NEWS_COLLECTION)
    store.claim(older)

    assert [task.id for task in store.list_tasks()] == [newer, older]
    assert [task.id for task in store.list_tasks(status=TaskStatus.PROCESSING)] == [older]
    assert len(store.list_tasks(limit=1)) == 1


def test_sqlite_store_is_durable_across_instances(tmp_path) -> None:
    path = tmp_path / "durable.db"
    task_id = SqliteTaskStore(path).create(TaskType.NEWS_COLLECTION, {"provider": "deepseek"})

    reopened = SqliteTaskStore(path)
    assert reopened.get(task_id).params.provider == "deepseek"


def test_sqlite_write_failure_raises_store_error(tmp_path) -> None:
    store = SqliteTaskStore(tmp_path / "tasks.db")
    store.db_path = tmp_path / "missing-dir" / "tasks.db"

    with pytest.raises(StoreError):
        store.create(TaskType.NEWS_COLLECTION)
