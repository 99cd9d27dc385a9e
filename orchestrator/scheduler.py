"""Recurring dispatcher tick owned by the application context."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Dict, Optional

from core import TaskParams
from .service import StartResult, TaskOrchestrator


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SchedulerStatus:
    running: bool
    interval_seconds: Optional[float] = None
    collection_interval_seconds: Optional[float] = None
    provider: Optional[str] = None
    next_run: Optional[datetime] = None
    last_run: Optional[datetime] = None
    last_collection_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "running": self.running,
            "interval_seconds": self.interval_seconds,
            "collection_interval_seconds": self.collection_interval_seconds,
            "provider": self.provider,
            "next_run": self.next_run.isoformat() if self.next_run else None,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "last_collection_at": self.last_collection_at.isoformat() if self.last_collection_at else None,
        }


class TaskScheduler:
    """
    Periodically starts the next pending job, creating a collection job when one is due.

    ``stop`` only prevents future ticks; chains already dispatched keep running.
    """

    def __init__(
        self,
        orchestrator: TaskOrchestrator,
        *,
        interval_seconds: float = 30.0,
        collection_interval_seconds: float = 0.0,
        provider: Optional[str] = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._interval = max(0.01, float(interval_seconds))
        self._collection_interval = max(0.0, float(collection_interval_seconds))
        self._params = TaskParams(provider=provider)
        self._task: Optional[asyncio.Task] = None
        self._next_run: Optional[datetime] = None
        self._last_run: Optional[datetime] = None
        self._last_collection: Optional[datetime] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(
        self,
        interval_seconds: Optional[float] = None,
        params: Optional[TaskParams | Dict[str, Any]] = None,
    ) -> SchedulerStatus:
        """Start ticking on the running loop; an already running schedule is replaced."""
        if self.running:
            await self.stop()
        if interval_seconds is not None:
            self._interval = max(0.01, float(interval_seconds))
        if params is not None:
            self._params = params if isinstance(params, TaskParams) else TaskParams(**dict(params))
        self._next_run = _utcnow()
        self._task = asyncio.create_task(self._loop(), name="task-scheduler")
        logger.info("scheduler_started interval=%s provider=%s", self._interval, self._params.provider or "-")
        return self.status()

    async def stop(self) -> bool:
        """Stop future ticks. Returns False when nothing was running."""
        task, self._task = self._task, None
        self._next_run = None
        if task is None or task.done():
            return False
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        logger.info("scheduler_stopped")
        return True

    def status(self) -> SchedulerStatus:
        running = self.running
        return SchedulerStatus(
            running=running,
            interval_seconds=self._interval,
            collection_interval_seconds=self._collection_interval,
            provider=self._params.provider,
            next_run=self._next_run if running else None,
            last_run=self._last_run,
            last_collection_at=self._last_collection,
        )

    def collection_due(self, now: Optional[datetime] = None) -> bool:
        if self._collection_interval <= 0:
            return False
        if self._last_collection is None:
            return True
        now = now or _utcnow()
        return now - self._last_collection >= timedelta(seconds=self._collection_interval)

    def tick(self, now: Optional[datetime] = None) -> StartResult:
        """One dispatcher pass: create a collection job when due, then start the next pending one."""
        now = now or _utcnow()
        self._last_run = now
        if self.collection_due(now):
            task_id = self._orchestrator.create_task(self._params.provider)
            self._last_collection = now
            logger.info("scheduled_collection_created task_id=%s", task_id)
        return self._orchestrator.start_task()

    async def _loop(self) -> None:
        while True:
            try:
                result = self.tick()
                if result.started:
                    logger.info("scheduler_tick_started task_id=%s", result.task_id)
            except Exception:
                logger.exception("scheduler_tick_failed")
            self._next_run = _utcnow() + timedelta(seconds=self._interval)
            await asyncio.sleep(self._interval)
