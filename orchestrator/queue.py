"""In-memory FIFO of step messages, collapsing duplicate pending triggers."""

from __future__ import annotations

from collections import deque
from threading import Lock
from typing import Deque, Optional, Set

from core import ProcessingState


class InMemoryStepQueue:
    """Best-effort queue of ``ProcessingState`` payloads awaiting execution."""

    def __init__(self, max_size: Optional[int] = None) -> None:
        self._queue: Deque[ProcessingState] = deque()
        self._enqueued: Set[str] = set()
        self._max_size = max_size
        self._lock = Lock()

    def enqueue(self, state: ProcessingState) -> bool:
        """Queue a step message once. Returns True when newly enqueued."""
        key = state.message_key()
        with self._lock:
            if key in self._enqueued:
                return False
            if self._max_size is not None and len(self._queue) >= self._max_size:
                raise OverflowError(f"step queue full ({self._max_size})")
            self._queue.append(state.model_copy(deep=True))
            self._enqueued.add(key)
            return True

    def dequeue(self) -> Optional[ProcessingState]:
        """Pop next message, or None when empty."""
        with self._lock:
            if not self._queue:
                return None
            state = self._queue.popleft()
            self._enqueued.discard(state.message_key())
            return state

    def clear(self) -> None:
        with self._lock:
            self._queue.clear()
            self._enqueued.clear()

    def size(self) -> int:
        with self._lock:
            return len(self._queue)
