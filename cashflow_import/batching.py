"""Batch dispatcher: drive a dataset's movements through an async ``submit``.

Batches are contiguous slices submitted strictly one after another, so the
submission callback (typically a rate-limited network call) never sees more
than one in-flight batch. A failed batch is retried with a fixed delay up to
``max_retries`` times; residual failures are counted and reported but never
abort the run.
"""

from __future__ import annotations

import asyncio
import math
import os
import time
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, TypeAlias

from pydantic import ValidationError

from .logging_setup import get_logger
from .models import (
    APIMovement,
    BatchConfig,
    BatchInfo,
    BatchProcessingResult,
    ProcessedDataset,
    ValidationResult,
)
from .progress import ProgressCallback, ProgressMonitor
from .transform import movements_to_api

_logger = get_logger("cashflow_import.batching")

SubmitBatch: TypeAlias = Callable[[BatchInfo], Awaitable[None]]

# ---- Tunables (private) ----
_DEFAULT_BATCH_SIZE = 1000
_LARGE_BATCH_WARNING = 10_000
_BATCH_SIZE_ENV_VAR = "CASHFLOW_IMPORT_BATCH_SIZE"


def create_batches(movements: Sequence[APIMovement], batch_size: int = _DEFAULT_BATCH_SIZE) -> list[BatchInfo]:
    """Partition ``movements`` into contiguous batches (last may be smaller)."""

    if batch_size <= 0:
        raise ValueError("batch_size must be > 0")
    batches: list[BatchInfo] = []
    for number, start in enumerate(range(0, len(movements), batch_size), start=1):
        chunk = list(movements[start : start + batch_size])
        batches.append(
            BatchInfo(
                batch_number=number,
                movements=chunk,
                size=len(chunk),
                start_index=start,
                end_index=start + len(chunk) - 1,
            )
        )
    return batches


def calculate_optimal_batch_size(total_movements: int) -> int:
    """Step function: everything at once up to 100, then 100/500/1000."""

    if total_movements <= 100:
        return max(1, total_movements)
    if total_movements <= 1000:
        return 100
    if total_movements <= 10_000:
        return 500
    return 1000


def resolve_batch_size(total_movements: int) -> int:
    """Batch size from ``CASHFLOW_IMPORT_BATCH_SIZE`` when valid, else the optimal size."""

    raw = os.getenv(_BATCH_SIZE_ENV_VAR)
    try:
        size = int(raw) if raw else None
    except ValueError:
        size = None
    if size is not None and size > 0:
        return size
    return calculate_optimal_batch_size(total_movements)


@dataclass(frozen=True, slots=True)
class BatchTimeEstimate:
    total_batches: int
    estimated_ms: float

    @property
    def estimated_minutes(self) -> int:
        return math.ceil(self.estimated_ms / 60_000)


def estimate_batch_processing_time(
    total_movements: int,
    batch_size: int,
    delay_between_batches: float = 1.0,
    seconds_per_batch: float = 2.0,
) -> BatchTimeEstimate:
    """Rough wall-clock estimate; delays and per-batch time are in seconds."""

    total_batches = math.ceil(total_movements / batch_size) if batch_size > 0 else 0
    seconds = total_batches * seconds_per_batch + max(0, total_batches - 1) * delay_between_batches
    return BatchTimeEstimate(total_batches=total_batches, estimated_ms=seconds * 1000.0)


def validate_batch_config(config: BatchConfig | Mapping[str, Any]) -> ValidationResult:
    """Report config problems as strings instead of raising.

    Field constraints come from :class:`BatchConfig`; very large batches only
    produce a warning.
    """

    result = ValidationResult()
    if isinstance(config, BatchConfig):
        cfg = config
    else:
        try:
            cfg = BatchConfig.model_validate(dict(config))
        except ValidationError as e:
            for err in e.errors():
                loc = ".".join(str(p) for p in err["loc"])
                result.errors.append(f"{loc}: {err['msg']}")
            return result
    if cfg.batch_size > _LARGE_BATCH_WARNING:
        result.warnings.append("Very large batch size, it may cause memory problems")
    return result


async def _submit_with_retries(
    batch: BatchInfo,
    submit: SubmitBatch,
    config: BatchConfig,
    errors: list[str],
) -> bool:
    try:
        await submit(batch)
        return True
    except Exception as e:  # noqa: BLE001
        message = f"Batch {batch.batch_number}: {e}"
        errors.append(message)
        _logger.warning(
            "batching:batch_failed batch=%d size=%d error=%s",
            batch.batch_number,
            batch.size,
            e.__class__.__name__,
        )

    for attempt in range(1, config.max_retries + 1):
        await asyncio.sleep(config.retry_delay)
        try:
            await submit(batch)
        except Exception as e:  # noqa: BLE001
            _logger.warning(
                "batching:batch_retry batch=%d attempt=%d max_retries=%d error=%s",
                batch.batch_number,
                attempt,
                config.max_retries,
                e.__class__.__name__,
            )
            continue
        errors.remove(message)
        _logger.info("batching:batch_recovered batch=%d attempt=%d", batch.batch_number, attempt)
        return True

    _logger.error("batching:batch_failed_terminal batch=%d size=%d", batch.batch_number, batch.size)
    return False


async def process_dataset_in_batches(
    dataset: ProcessedDataset,
    config: BatchConfig,
    submit: SubmitBatch,
    *,
    on_progress: ProgressCallback | None = None,
    source: str | None = None,
) -> BatchProcessingResult:
    """Submit every batch of ``dataset`` sequentially and aggregate the outcome.

    Parameters
    ----------
    dataset:
        The dataset whose movements are dispatched.
    config:
        Batch size, inter-batch delay and retry policy (delays in seconds).
    submit:
        Async callable performing the actual persistence; raising signals a
        failed attempt.
    on_progress:
        Optional observer called after each batch completes.
    source:
        Optional tag copied onto every :class:`APIMovement`.

    Returns
    -------
    BatchProcessingResult
        ``success`` is true exactly when no batch failed after retries.
    """

    t0 = time.perf_counter()
    errors: list[str] = []
    warnings: list[str] = []
    batches = create_batches(movements_to_api(dataset.movements, source), config.batch_size)
    monitor = ProgressMonitor("batch", on_progress)
    monitor.start(len(batches))
    _logger.info(
        "batching:start dataset=%s batches=%d batch_size=%d movements=%d",
        dataset.dataset_name,
        len(batches),
        config.batch_size,
        len(dataset.movements),
    )

    successful = 0
    failed = 0
    processed = 0
    for i, batch in enumerate(batches):
        ok = await _submit_with_retries(batch, submit, config, errors)
        if ok:
            successful += 1
            processed += batch.size
        else:
            failed += 1
        monitor.completed(batch.batch_number, ok)
        if config.delay_between_batches > 0 and i < len(batches) - 1:
            await asyncio.sleep(config.delay_between_batches)

    elapsed_ms = (time.perf_counter() - t0) * 1000.0
    _logger.info(
        "batching:done dataset=%s ok=%d failed=%d processed=%d latency_ms=%.2f",
        dataset.dataset_name,
        successful,
        failed,
        processed,
        elapsed_ms,
    )
    return BatchProcessingResult(
        success=failed == 0,
        total_batches=len(batches),
        successful_batches=successful,
        failed_batches=failed,
        total_movements=len(dataset.movements),
        processed_movements=processed,
        errors=errors,
        warnings=warnings,
        processing_time_ms=elapsed_ms,
    )


__all__ = [
    "SubmitBatch",
    "create_batches",
    "calculate_optimal_batch_size",
    "resolve_batch_size",
    "BatchTimeEstimate",
    "estimate_batch_processing_time",
    "validate_batch_config",
    "process_dataset_in_batches",
]
