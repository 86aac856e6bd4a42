"""
Append-only recorder for stage timings and debug data.
"""

import time
from contextlib import contextmanager
from types import MappingProxyType
from typing import Mapping, Optional


class Timing:
    """Handed out by Benchmark.timer(); set `task` to have the span recorded."""

    def __init__(self, task: str = ""):
        self.task = task


class Benchmark:
    """Records `(label, elapsed, task)` times and `(label, data)` entries."""

    def __init__(self):
        self._times: dict[str, dict] = {}
        self._data: dict[str, dict] = {}

    @property
    def times(self) -> Mapping[str, dict]:
        return MappingProxyType(self._times)

    @property
    def data(self) -> Mapping[str, dict]:
        return MappingProxyType(self._data)

    def add_time(self, label: str, start_time: float, task: str) -> None:
        """Record the time elapsed since `start_time` (a time.time() value)."""
        label, task = label.strip(), task.strip()
        if not label or not task or start_time <= 0:
            return
        elapsed = f"{time.time() - start_time:.5f}"
        self._times[label] = {"function": label, "time": elapsed, "task": task}

    def add_data(self, label: str, data: dict) -> None:
        label = label.strip()
        if not label or not data:
            return
        self._data[label] = {"function": label, "data": data}

    def clear(self) -> None:
        self._times.clear()
        self._data.clear()

    @contextmanager
    def timer(self, label: str, enabled: bool = True, task: Optional[str] = None):
        """
        Time a block. The span is recorded on every exit path, exceptions
        included, as long as it is enabled and a task description is set.
        """
        timing = Timing(task or "")
        start = time.time()
        try:
            yield timing
        finally:
            if enabled and timing.task:
                self.add_time(label, start, timing.task)
