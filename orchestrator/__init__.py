"""Job queue primitives: task store, step queue, dispatcher and scheduler."""

from .queue import InMemoryStepQueue
from .scheduler import SchedulerStatus, TaskScheduler
from .service import StartResult, TaskOrchestrator
from .store import BaseTaskStore, InMemoryTaskStore, SqliteTaskStore

__all__ = [
    "InMemoryStepQueue",
    "SchedulerStatus",
    "TaskScheduler",
    "StartResult",
    "TaskOrchestrator",
    "BaseTaskStore",
    "InMemoryTaskStore",
    "SqliteTaskStore",
]
