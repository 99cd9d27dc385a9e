"""Step runtime: the single consumer of step messages and driver of every chain."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
from typing import List, Optional

from core import ProcessingState, ProcessingStep
from orchestrator.queue import InMemoryStepQueue
from utils.exceptions import DispatchError
from .task_processor import TaskProcessor, is_chain_finished


logger = logging.getLogger(__name__)


@dataclass
class StepOutcome:
    executed_step: ProcessingStep
    state: ProcessingState
    dispatched: bool
    finished: bool

    @property
    def failed(self) -> bool:
        return bool(self.state.error)


class StepRuntime:
    """
    Runs one step per message and enqueues the successor.

    Dispatch is fire-and-forget: the step that produced a successor state never
    waits on it, and a failed enqueue is only logged, leaving the job in
    ``processing`` until someone re-drives it through ``advance``.
    """

    def __init__(
        self,
        *,
        processor: TaskProcessor,
        queue: Optional[InMemoryStepQueue] = None,
        poll_interval: float = 0.2,
    ) -> None:
        self._processor = processor
        self._queue = queue or InMemoryStepQueue()
        self._poll_interval = max(0.01, float(poll_interval))
        self._workers: List[asyncio.Task] = []

    @property
    def queue(self) -> InMemoryStepQueue:
        return self._queue

    @property
    def running(self) -> bool:
        return any(not worker.done() for worker in self._workers)

    def dispatch(self, state: ProcessingState) -> bool:
        """Hand a step message to the queue. Never raises."""
        try:
            queued = self._queue.enqueue(state)
        except Exception as exc:
            err = DispatchError(
                f"could not dispatch step {state.step.value}: {exc}",
                {"task_id": state.task_id, "step": state.step.value},
            )
            logger.error("dispatch_failed task_id=%s step=%s error=%s", state.task_id, state.step.value, err)
            return False
        if not queued:
            logger.info("dispatch_duplicate task_id=%s key=%s", state.task_id, state.message_key())
        return True

    async def advance(self, state: ProcessingState) -> StepOutcome:
        """Run one step now and dispatch its successor when the chain continues."""
        executed = state.step
        result = await self._processor.process_step(state)
        finished = is_chain_finished(executed, result)
        dispatched = False
        if not finished:
            dispatched = self.dispatch(result)
        elif result.error:
            logger.info("chain_failed task_id=%s step=%s error=%s", state.task_id, executed.value, result.error)
        else:
            logger.info("chain_completed task_id=%s record_id=%s", state.task_id, result.record_id)
        return StepOutcome(executed_step=executed, state=result, dispatched=dispatched, finished=finished)

    async def run_next_step(self) -> Optional[StepOutcome]:
        """Consume one queued message, or return None when the queue is empty."""
        state = self._queue.dequeue()
        if state is None:
            return None
        return await self.advance(state)

    async def drain(self, max_steps: Optional[int] = None) -> List[StepOutcome]:
        """Consume messages until the queue is empty or ``max_steps`` ran."""
        outcomes: List[StepOutcome] = []
        while max_steps is None or len(outcomes) < max_steps:
            outcome = await self.run_next_step()
            if outcome is None:
                break
            outcomes.append(outcome)
        return outcomes

    def start(self, worker_count: int = 1) -> None:
        """Spawn polling workers on the running event loop."""
        if self.running:
            return
        count = max(1, int(worker_count))
        self._workers = [
            asyncio.create_task(self._worker_loop(index), name=f"step-worker-{index}")
            for index in range(count)
        ]
        logger.info("step_workers_started count=%d", count)

    async def stop(self) -> None:
        workers, self._workers = self._workers, []
        for worker in workers:
            worker.cancel()
        if workers:
            await asyncio.gather(*workers, return_exceptions=True)
            logger.info("step_workers_stopped count=%d", len(workers))

    async def _worker_loop(self, index: int) -> None:
        while True:
            try:
                outcome = await self.run_next_step()
            except Exception:
                logger.exception("step_worker_error worker=%d", index)
                outcome = None
            if outcome is None:
                await asyncio.sleep(self._poll_interval)
