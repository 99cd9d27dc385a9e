"""Task store: durable job records, status transitions and progress."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from itertools import count
import logging
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional
from uuid import uuid4

from core import Task, TaskParams, TaskProgress, TaskResult, TaskStatus, TaskType
from storage.sqlite import connect, dump_json, ensure_parent, from_iso, load_json, to_iso


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_task_id() -> str:
    return f"task_{_utcnow().strftime('%Y%m%d_%H%M%S')}_{uuid4().hex[:8]}"


class BaseTaskStore(ABC):
    """
    Persistence contract for job records.

    Every operation is a single-record read or partial update. Write failures
    raise ``StoreError``; the store never retries on its own. Updates against a
    missing record return ``False``.
    """

    @abstractmethod
    def create(self, task_type: TaskType | str, params: TaskParams | Dict[str, Any] | None = None) -> str:
        """Insert a pending record and return its id."""

    @abstractmethod
    def get(self, task_id: str) -> Optional[Task]:
        """Fetch one record."""

    @abstractmethod
    def next_pending(self) -> Optional[Task]:
        """Oldest pending record by creation time, or None."""

    @abstractmethod
    def claim(self, task_id: str) -> bool:
        """Atomically move pending -> processing. False when the record was not pending."""

    @abstractmethod
    def mark_processing(self, task_id: str) -> bool:
        """Set status processing unless the record is already terminal."""

    @abstractmethod
    def mark_completed(self, task_id: str, result: TaskResult) -> bool:
        """Terminal transition with a result; rejected if already terminal."""

    @abstractmethod
    def mark_failed(self, task_id: str, error: str) -> bool:
        """Terminal transition with an error; rejected if already terminal."""

    @abstractmethod
    def set_progress(self, task_id: str, progress: TaskProgress) -> bool:
        """Overwrite the advisory progress projection."""

    @abstractmethod
    def list_tasks(self, status: Optional[TaskStatus] = None, limit: int = 50) -> List[Task]:
        """Most recent records first."""

    def claim_next_pending(self) -> Optional[Task]:
        """Claim the oldest pending record; skips records another dispatcher won."""
        while True:
            task = self.next_pending()
            if task is None:
                return None
            if self.claim(task.id):
                return self.get(task.id)
            logger.info("claim_lost task_id=%s", task.id)

    @staticmethod
    def _coerce_params(params: TaskParams | Dict[str, Any] | None) -> TaskParams:
        if isinstance(params, TaskParams):
            return params
        return TaskParams(**dict(params or {}))


class InMemoryTaskStore(BaseTaskStore):
    """Thread-safe in-process store; durable only for the life of the process."""

    def __init__(self) -> None:
        self._tasks: Dict[str, Task] = {}
        self._order: Dict[str, int] = {}
        self._seq = count()
        self._lock = Lock()

    def create(self, task_type: TaskType | str, params: TaskParams | Dict[str, Any] | None = None) -> str:
        with self._lock:
            task_id = _new_task_id()
            now = _utcnow()
            self._tasks[task_id] = Task(
                id=task_id,
                task_type=TaskType(task_type),
                status=TaskStatus.PENDING,
                params=self._coerce_params(params),
                created_at=now,
                updated_at=now,
            )
            self._order[task_id] = next(self._seq)
            return task_id

    def get(self, task_id: str) -> Optional[Task]:
        with self._lock:
            task = self._tasks.get(task_id)
            return task.model_copy(deep=True) if task else None

    def next_pending(self) -> Optional[Task]:
        with self._lock:
            pending = [task for task in self._tasks.values() if task.status == TaskStatus.PENDING]
            if not pending:
                return None
            oldest = min(pending, key=lambda task: (task.created_at, self._order[task.id]))
            return oldest.model_copy(deep=True)

    def claim(self, task_id: str) -> bool:
        with self._lock:
            task = self._tasks.get(task_id)
            if not task or task.status != TaskStatus.PENDING:
                return False
            task.status = TaskStatus.PROCESSING
            task.updated_at = _utcnow()
            return True

    def mark_processing(self, task_id: str) -> bool:
        with self._lock:
            task = self._tasks.get(task_id)
            if not task or task.is_terminal:
                return False
            task.status = TaskStatus.PROCESSING
            task.updated_at = _utcnow()
            return True

    def mark_completed(self, task_id: str, result: TaskResult) -> bool:
        with self._lock:
            task = self._tasks.get(task_id)
            if not task or task.is_terminal:
                return False
            now = _utcnow()
            task.status = TaskStatus.COMPLETED
            task.result = result.model_copy(deep=True)
            task.updated_at = now
            task.completed_at = now
            return True

    def mark_failed(self, task_id: str, error: str) -> bool:
        with self._lock:
            task = self._tasks.get(task_id)
            if not task or task.is_terminal:
                return False
            now = _utcnow()
            task.status = TaskStatus.FAILED
            task.error = str(error or "unknown error")
            task.updated_at = now
            task.completed_at = now
            return True

    def set_progress(self, task_id: str, progress: TaskProgress) -> bool:
        with self._lock:
            task = self._tasks.get(task_id)
            if not task:
                return False
            task.progress = progress.model_copy(deep=True)
            task.updated_at = _utcnow()
            return True

    def list_tasks(self, status: Optional[TaskStatus] = None, limit: int = 50) -> List[Task]:
        with self._lock:
            tasks = [task for task in self._tasks.values() if status is None or task.status == status]
            tasks.sort(key=lambda task: (task.created_at, self._order[task.id]), reverse=True)
            return [task.model_copy(deep=True) for task in tasks[: max(1, int(limit))]]


_TASK_COLUMNS = "id, task_type, status, params, progress, result, error, created_at, updated_at, completed_at"


class SqliteTaskStore(BaseTaskStore):
    """SQLite-backed store: one append-friendly ``task_queue`` table keyed by id."""

    def __init__(self, db_path: str | Path = "./data/feed_digest.db") -> None:
        self.db_path = ensure_parent(db_path)
        self._init_database()

    def _init_database(self) -> None:
        with connect(self.db_path, operation="init_task_queue") as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS task_queue (
                    id TEXT PRIMARY KEY,
                    task_type TEXT NOT NULL,
                    status TEXT NOT NULL,
                    params TEXT,
                    progress TEXT,
                    result TEXT,
                    error TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    completed_at TEXT
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_task_queue_status ON task_queue(status, created_at)")
        logger.info("task_store_ready path=%s", self.db_path)

    def create(self, task_type: TaskType | str, params: TaskParams | Dict[str, Any] | None = None) -> str:
        task_id = _new_task_id()
        now = to_iso(_utcnow())
        with connect(self.db_path, operation="create_task") as conn:
            conn.execute(
                f"INSERT INTO task_queue ({_TASK_COLUMNS}) VALUES (?, ?, ?, ?, NULL, NULL, NULL, ?, ?, NULL)",
                (
                    task_id,
                    TaskType(task_type).value,
                    TaskStatus.PENDING.value,
                    dump_json(self._coerce_params(params)),
                    now,
                    now,
                ),
            )
        return task_id

    def get(self, task_id: str) -> Optional[Task]:
        with connect(self.db_path, operation="get_task") as conn:
            row = conn.execute(f"SELECT {_TASK_COLUMNS} FROM task_queue WHERE id = ?", (task_id,)).fetchone()
        return self._row_to_task(row) if row else None

    def next_pending(self) -> Optional[Task]:
        with connect(self.db_path, operation="next_pending") as conn:
            row = conn.execute(
                f"SELECT {_TASK_COLUMNS} FROM task_queue WHERE status = ? ORDER BY created_at ASC, rowid ASC LIMIT 1",
                (TaskStatus.PENDING.value,),
            ).fetchone()
        return self._row_to_task(row) if row else None

    def claim(self, task_id: str) -> bool:
        with connect(self.db_path, operation="claim_task") as conn:
            cursor = conn.execute(
                "UPDATE task_queue SET status = ?, updated_at = ? WHERE id = ? AND status = ?",
                (TaskStatus.PROCESSING.value, to_iso(_utcnow()), task_id, TaskStatus.PENDING.value),
            )
            return cursor.rowcount == 1

    def mark_processing(self, task_id: str) -> bool:
        with connect(self.db_path, operation="mark_processing") as conn:
            cursor = conn.execute(
                "UPDATE task_queue SET status = ?, updated_at = ? WHERE id = ? AND status IN (?, ?)",
                (
                    TaskStatus.PROCESSING.value,
                    to_iso(_utcnow()),
                    task_id,
                    TaskStatus.PENDING.value,
                    TaskStatus.PROCESSING.value,
                ),
            )
            return cursor.rowcount == 1

    def mark_completed(self, task_id: str, result: TaskResult) -> bool:
        return self._terminal_update(task_id, TaskStatus.COMPLETED, result=dump_json(result), error=None)

    def mark_failed(self, task_id: str, error: str) -> bool:
        return self._terminal_update(task_id, TaskStatus.FAILED, result=None, error=str(error or "unknown error"))

    def _terminal_update(self, task_id: str, status: TaskStatus, *, result: Optional[str], error: Optional[str]) -> bool:
        now = to_iso(_utcnow())
        with connect(self.db_path, operation=f"mark_{status.value}") as conn:
            cursor = conn.execute(
                """
                UPDATE task_queue
                SET status = ?, result = ?, error = ?, updated_at = ?, completed_at = ?
                WHERE id = ? AND status IN (?, ?)
                """,
                (
                    status.value,
                    result,
                    error,
                    now,
                    now,
                    task_id,
                    TaskStatus.PENDING.value,
                    TaskStatus.PROCESSING.value,
                ),
            )
            return cursor.rowcount == 1

    def set_progress(self, task_id: str, progress: TaskProgress) -> bool:
        with connect(self.db_path, operation="set_progress") as conn:
            cursor = conn.execute(
                "UPDATE task_queue SET progress = ?, updated_at = ? WHERE id = ?",
                (dump_json(progress), to_iso(_utcnow()), task_id),
            )
            return cursor.rowcount == 1

    def list_tasks(self, status: Optional[TaskStatus] = None, limit: int = 50) -> List[Task]:
        query = f"SELECT {_TASK_COLUMNS} FROM task_queue"
        args: tuple = ()
        if status is not None:
            query += " WHERE status = ?"
            args = (TaskStatus(status).value,)
        query += " ORDER BY created_at DESC, rowid DESC LIMIT ?"
        with connect(self.db_path, operation="list_tasks") as conn:
            rows = conn.execute(query, args + (max(1, int(limit)),)).fetchall()
        return [self._row_to_task(row) for row in rows]

    @staticmethod
    def _row_to_task(row) -> Task:
        progress = load_json(row["progress"])
        result = load_json(row["result"])
        return Task(
            id=row["id"],
            task_type=TaskType(row["task_type"]),
            status=TaskStatus(row["status"]),
            params=TaskParams(**(load_json(row["params"]) or {})),
            progress=TaskProgress(**progress) if progress else None,
            result=TaskResult(**result) if result else None,
            error=row["error"],
            created_at=from_iso(row["created_at"]),
            updated_at=from_iso(row["updated_at"]),
            completed_at=from_iso(row["completed_at"]),
        )
