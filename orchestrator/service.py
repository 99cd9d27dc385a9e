"""Orchestrator service layer: job creation, status queries and chain start."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Callable, List, Optional

from core import ProcessingState, ProcessingStep, Task, TaskParams, TaskStatus, TaskType
from .store import BaseTaskStore, InMemoryTaskStore


logger = logging.getLogger(__name__)

Dispatch = Callable[[ProcessingState], bool]


@dataclass
class StartResult:
    started: bool
    task_id: Optional[str] = None
    reason: str = ""
    dispatched: bool = False
    state: Optional[ProcessingState] = None


class TaskOrchestrator:
    """Dispatcher for queued jobs: claims a pending job and hands its first step to the runtime."""

    def __init__(
        self,
        *,
        store: Optional[BaseTaskStore] = None,
        dispatch: Optional[Dispatch] = None,
    ) -> None:
        self._store = store or InMemoryTaskStore()
        self._dispatch = dispatch

    @property
    def store(self) -> BaseTaskStore:
        return self._store

    def create_task(self, provider: Optional[str] = None) -> str:
        """Queue a news collection job. Returns its id."""
        task_id = self._store.create(TaskType.NEWS_COLLECTION, TaskParams(provider=provider))
        logger.info("task_created task_id=%s provider=%s", task_id, provider or "-")
        return task_id

    def get_task_status(self, task_id: str) -> Optional[Task]:
        return self._store.get(task_id)

    def list_tasks(self, status: Optional[TaskStatus] = None, limit: int = 50) -> List[Task]:
        return self._store.list_tasks(status=status, limit=limit)

    def claim_next_pending(self) -> Optional[Task]:
        return self._store.claim_next_pending()

    def claim_task(self, task_id: str) -> Optional[Task]:
        """Claim one specific job; None when it is missing or no longer pending."""
        if not self._store.claim(task_id):
            return None
        return self._store.get(task_id)

    @staticmethod
    def initial_state(task: Task, provider: Optional[str] = None) -> ProcessingState:
        return ProcessingState(
            step=ProcessingStep.FETCH_NEWS,
            task_id=task.id,
            provider=provider or task.params.provider,
        )

    def start_task(self, task_id: Optional[str] = None) -> StartResult:
        """
        Claim a job and dispatch its first step.

        With ``task_id`` only that job is considered; otherwise the oldest
        pending job. The call returns as soon as the first message is queued.
        """
        if task_id:
            task = self.claim_task(task_id)
            if task is None:
                existing = self._store.get(task_id)
                reason = "task not found" if existing is None else f"task is {existing.status.value}"
                logger.info("task_start_skipped task_id=%s reason=%s", task_id, reason)
                return StartResult(started=False, task_id=task_id, reason=reason)
        else:
            task = self.claim_next_pending()
            if task is None:
                return StartResult(started=False, reason="no pending tasks")

        state = self.initial_state(task)
        dispatched = self._dispatch(state) if self._dispatch is not None else False
        if not dispatched:
            logger.error("task_dispatch_failed task_id=%s (stays processing until re-driven)", task.id)
        logger.info("task_started task_id=%s dispatched=%s", task.id, dispatched)
        return StartResult(
            started=True,
            task_id=task.id,
            reason="" if dispatched else "dispatch failed",
            dispatched=dispatched,
            state=state,
        )

    def restart_state(self, task_id: str, provider: Optional[str] = None) -> Optional[ProcessingState]:
        """FETCH state for a job already in ``processing``; None for any other status."""
        task = self._store.get(task_id)
        if task is None or task.status != TaskStatus.PROCESSING:
            return None
        return self.initial_state(task, provider=provider)
