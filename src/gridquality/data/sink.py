"""
UI notification sinks.

The scheduler pushes every finished cell evaluation to a sink. Sinks are
called from worker threads; marshaling onto a UI thread is the sink's job.
"""

import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, Tuple

from ..quality.result import ValidationResult

CellKey = Tuple[int, str]


class NotificationSink(ABC):
    """Receives per-cell validation outcomes."""

    @abstractmethod
    def report_cell_validation(self, row: int, column: str, result: ValidationResult) -> None:
        """Called once per completed cell evaluation."""


class CallbackSink(NotificationSink):
    """Adapts a plain function ``(row, column, result)`` to a sink."""

    def __init__(self, callback: Callable[[int, str, ValidationResult], None]):
        self._callback = callback

    def report_cell_validation(self, row, column, result):
        self._callback(row, column, result)


class CollectingSink(NotificationSink):
    """Thread-safe sink that keeps every report, and the latest per cell."""

    def __init__(self):
        self._lock = threading.Lock()
        self._history: List[Tuple[int, str, ValidationResult]] = []
        self._latest: Dict[CellKey, ValidationResult] = {}

    def report_cell_validation(self, row, column, result):
        with self._lock:
            self._history.append((row, column, result))
            self._latest[(row, column)] = result

    @property
    def history(self) -> List[Tuple[int, str, ValidationResult]]:
        with self._lock:
            return list(self._history)

    @property
    def latest(self) -> Dict[CellKey, ValidationResult]:
        with self._lock:
            return dict(self._latest)

    def result_for(self, row: int, column: str) -> Optional[ValidationResult]:
        with self._lock:
            return self._latest.get((row, column))

    def count_for(self, row: int, column: str) -> int:
        with self._lock:
            return sum(1 for r, c, _ in self._history if (r, c) == (row, column))

    def __len__(self) -> int:
        with self._lock:
            return len(self._history)

    def clear(self) -> None:
        with self._lock:
            self._history.clear()
            self._latest.clear()
