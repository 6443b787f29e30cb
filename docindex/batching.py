"""Bounded buffer of index records awaiting bulk submission."""

from __future__ import annotations

import threading
from typing import Optional

from .models import IndexRecord
from .utils import BATCH_SIZE


class BatchAccumulator:
    """Collects records until ``threshold`` is reached.

    Back-pressure is cooperative: ``add`` never flushes by itself, the caller
    is expected to call :meth:`flush_if_full` after each add. All operations
    share one lock so extraction workers may add concurrently.
    """

    def __init__(self, threshold: int = BATCH_SIZE) -> None:
        if threshold < 1:
            raise ValueError("threshold must be >= 1")
        self.threshold = threshold
        self._buffer: list[IndexRecord] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)

    @property
    def is_full(self) -> bool:
        with self._lock:
            return len(self._buffer) >= self.threshold

    def add(self, record: IndexRecord) -> None:
        with self._lock:
            self._buffer.append(record)

    def _detach(self) -> list[IndexRecord]:
        batch = self._buffer
        self._buffer = []
        return batch

    def flush_if_full(self) -> Optional[list[IndexRecord]]:
        """Detach and return the buffer when it has reached the threshold."""
        with self._lock:
            if len(self._buffer) < self.threshold:
                return None
            return self._detach()

    def flush_remainder(self) -> Optional[list[IndexRecord]]:
        """Detach whatever is buffered; ``None`` when empty."""
        with self._lock:
            if not self._buffer:
                return None
            return self._detach()
