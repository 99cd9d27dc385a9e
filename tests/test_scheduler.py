from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from core import TaskStatus
from orchestrator import TaskOrchestrator, TaskScheduler


def _orchestrator(task_store):
    dispatched = []

    def _dispatch(state):
        dispatched.append(state)
        return True

    return TaskOrchestrator(store=task_store, dispatch=_dispatch), dispatched


def test_tick_without_collection_interval_only_starts_pending(task_store) -> None:
    orchestrator, dispatched = _orchestrator(task_store)
    scheduler = TaskScheduler(orchestrator, interval_seconds=1, collection_interval_seconds=0)

    assert scheduler.tick().reason == "no pending tasks"

    task_id = orchestrator.create_task()
    result = scheduler.tick()
    assert result.started and result.task_id == task_id
    assert [state.task_id for state in dispatched] == [task_id]


def test_tick_creates_collection_when_due(task_store) -> None:
    orchestrator, dispatched = _orchestrator(task_store)
    scheduler = TaskScheduler(orchestrator, collection_interval_seconds=60, provider="grok")
    now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    first = scheduler.tick(now)
    assert first.started
    assert task_store.get(first.task_id).params.provider == "grok"
    assert dispatched[0].provider == "grok"

    assert scheduler.collection_due(now + timedelta(seconds=30)) is False
    assert scheduler.tick(now + timedelta(seconds=30)).started is False
    assert scheduler.collection_due(now + timedelta(seconds=60)) is True

    status = scheduler.status()
    assert status.running is False
    assert status.last_collection_at == now
    assert status.to_dict()["last_run"] == (now + timedelta(seconds=30)).isoformat()
    assert len(task_store.list_tasks(status=TaskStatus.PROCESSING)) == 1


@pytest.mark.asyncio
async def test_start_and_stop(task_store) -> None:
    orchestrator, dispatched = _orchestrator(task_store)
    task_id = orchestrator.create_task()
    scheduler = TaskScheduler(orchestrator, interval_seconds=0.05)

    assert await scheduler.stop() is False
    status = await scheduler.start(interval_seconds=0.02, params={"provider": "deepseek"})
    assert status.running is True
    assert status.interval_seconds == 0.02
    assert status.provider == "deepseek"
    await asyncio.sleep(0.05)

    restarted = await scheduler.start()
    assert restarted.running is True

    assert await scheduler.stop() is True
    assert scheduler.running is False
    assert scheduler.status().next_run is None
    assert task_store.get(task_id).status == TaskStatus.PROCESSING
    assert [state.task_id for state in dispatched] == [task_id]
