"""Progress reporting for job attempts.

Every queue backend hands the orchestrator a ProgressReporter. The
orchestrator wraps it in MonotonicProgress so that, within one attempt,
reported values never decrease even though tool-level estimates are
heuristic.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Optional

from src.workflow.config import StageBand

logger = logging.getLogger(__name__)


class ProgressReporter(ABC):
    """Receives integer completion percentages (0-100) for one attempt."""

    @abstractmethod
    def report(self, percent: int) -> None:
        """Record a new progress value."""
        pass


class CallbackReporter(ProgressReporter):
    """Adapts a plain callable to the ProgressReporter interface."""

    def __init__(self, callback: Callable[[int], None]):
        self._callback = callback

    def report(self, percent: int) -> None:
        self._callback(percent)


class NullReporter(ProgressReporter):
    """Discards progress."""

    def report(self, percent: int) -> None:
        pass


class MonotonicProgress(ProgressReporter):
    """Forwards only values that move progress forward.

    Values are clamped to [0, 100]. Safe to call from the threads that
    drain tool output.
    """

    def __init__(self, reporter: ProgressReporter, start: int = 0):
        self._reporter = reporter
        self._current = start
        self._lock = threading.Lock()

    @property
    def current(self) -> int:
        return self._current

    def report(self, percent: int) -> None:
        value = min(max(int(round(percent)), 0), 100)
        with self._lock:
            if value <= self._current:
                return
            self._current = value
        self._reporter.report(value)

    def band_callback(self, band: StageBand) -> Callable[[float], None]:
        """Return a callback mapping a stage-local fraction into `band`."""

        def on_progress(fraction: float) -> None:
            self.report(band.interpolate(fraction))

        return on_progress

    def complete(self, band: Optional[StageBand]) -> None:
        """Jump to the end of a stage band."""
        if band is not None:
            self.report(band.end)
