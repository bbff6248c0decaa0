"""Advisory progress reporting for batch and file processing."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal, TypeAlias

from .logging_setup import get_logger

_logger = get_logger("cashflow_import.progress")

ProgressUnit: TypeAlias = Literal["batch", "file"]


@dataclass(frozen=True, slots=True)
class Progress:
    unit: ProgressUnit
    number: int
    total: int
    completed: int
    percentage: float
    success: bool
    elapsed_ms: float
    estimated_remaining_ms: float


ProgressCallback: TypeAlias = Callable[[Progress], None]


class ProgressMonitor:
    """Emit a :class:`Progress` snapshot each time a unit of work completes.

    Remaining time is extrapolated from the average time per completed unit.
    Observer failures are logged and otherwise ignored; they never affect the
    work being observed.
    """

    def __init__(
        self,
        unit: ProgressUnit = "batch",
        on_progress: ProgressCallback | None = None,
        *,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.unit = unit
        self._on_progress = on_progress
        self._clock = clock
        self._total = 0
        self._completed = 0
        self._started = clock()

    def start(self, total: int) -> None:
        self._total = total
        self._completed = 0
        self._started = self._clock()

    def _elapsed_ms(self) -> float:
        return (self._clock() - self._started) * 1000.0

    def _remaining_ms(self, elapsed_ms: float) -> float:
        if self._completed == 0:
            return 0.0
        return (self._total - self._completed) * (elapsed_ms / self._completed)

    def completed(self, number: int, success: bool) -> Progress:
        self._completed += 1
        elapsed = self._elapsed_ms()
        snapshot = Progress(
            unit=self.unit,
            number=number,
            total=self._total,
            completed=self._completed,
            percentage=(self._completed / self._total * 100.0) if self._total else 100.0,
            success=success,
            elapsed_ms=elapsed,
            estimated_remaining_ms=self._remaining_ms(elapsed),
        )
        if self._on_progress is not None:
            try:
                self._on_progress(snapshot)
            except Exception as e:  # noqa: BLE001
                _logger.warning(
                    "progress:observer_failed unit=%s number=%d error=%s",
                    self.unit,
                    number,
                    e.__class__.__name__,
                )
        return snapshot


__all__ = ["ProgressUnit", "Progress", "ProgressCallback", "ProgressMonitor"]
