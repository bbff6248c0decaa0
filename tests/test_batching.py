from __future__ import annotations

import asyncio
import math
from decimal import Decimal

import pytest

from cashflow_import.batching import (
    calculate_optimal_batch_size,
    create_batches,
    estimate_batch_processing_time,
    process_dataset_in_batches,
    resolve_batch_size,
    validate_batch_config,
)
from cashflow_import.models import (
    APIMovement,
    BatchConfig,
    BatchInfo,
    Category,
    Movement,
    ProcessedDataset,
)
from cashflow_import.progress import Progress, ProgressMonitor


def _movement(i: int) -> Movement:
    return Movement(f"{(i % 28) + 1:02d}/01/2024", Category("Cat"), "egreso", Decimal(i + 1))


def _dataset(n: int) -> ProcessedDataset:
    movements = [_movement(i) for i in range(n)]
    return ProcessedDataset(
        dataset_name="ds",
        original_file_name="ds.csv",
        currency="ARS",
        dataset_type="cashflow",
        movements=movements,
    )


def _api(n: int) -> list[APIMovement]:
    return [APIMovement.from_movement(_movement(i)) for i in range(n)]


@pytest.mark.parametrize(("total", "size"), [(0, 3), (1, 3), (7, 3), (9, 3), (10, 1)])
def test_create_batches_partitions_contiguously(total: int, size: int) -> None:
    movements = _api(total)
    batches = create_batches(movements, size)
    assert len(batches) == math.ceil(total / size)
    assert sum(b.size for b in batches) == total
    assert [m for b in batches for m in b.movements] == movements
    for number, b in enumerate(batches, start=1):
        assert b.batch_number == number
        assert b.start_index == (number - 1) * size
        assert b.end_index == b.start_index + b.size - 1


def test_create_batches_rejects_non_positive_size() -> None:
    with pytest.raises(ValueError):
        create_batches(_api(2), 0)


@pytest.mark.parametrize(
    ("total", "expected"),
    [(0, 1), (50, 50), (100, 100), (101, 100), (1000, 100), (1001, 500), (10_000, 500), (10_001, 1000)],
)
def test_calculate_optimal_batch_size(total: int, expected: int) -> None:
    assert calculate_optimal_batch_size(total) == expected


def test_resolve_batch_size_env_override(monkeypatch: pytest.MonkeyPatch) -> None:
    assert resolve_batch_size(500) == 100
    monkeypatch.setenv("CASHFLOW_IMPORT_BATCH_SIZE", "25")
    assert resolve_batch_size(500) == 25
    monkeypatch.setenv("CASHFLOW_IMPORT_BATCH_SIZE", "nope")
    assert resolve_batch_size(500) == 100
    monkeypatch.setenv("CASHFLOW_IMPORT_BATCH_SIZE", "-4")
    assert resolve_batch_size(500) == 100


def test_estimate_batch_processing_time() -> None:
    est = estimate_batch_processing_time(250, 100, delay_between_batches=1.0)
    assert est.total_batches == 3
    assert est.estimated_ms == 8000.0
    assert est.estimated_minutes == 1


def test_validate_batch_config() -> None:
    assert validate_batch_config(BatchConfig(batch_size=10)).is_valid
    bad = validate_batch_config({"batch_size": 0, "max_retries": -1})
    assert any(e.startswith("batch_size:") for e in bad.errors)
    assert any(e.startswith("max_retries:") for e in bad.errors)
    big = validate_batch_config({"batch_size": 20_000})
    assert big.is_valid
    assert big.warnings == ["Very large batch size, it may cause memory problems"]


def test_process_dataset_in_batches_submits_sequentially() -> None:
    seen: list[BatchInfo] = []
    in_flight = 0

    async def submit(batch: BatchInfo) -> None:
        nonlocal in_flight
        in_flight += 1
        assert in_flight == 1
        await asyncio.sleep(0)
        seen.append(batch)
        in_flight -= 1

    result = asyncio.run(
        process_dataset_in_batches(_dataset(5), BatchConfig(batch_size=2), submit, source="csv")
    )
    assert [b.batch_number for b in seen] == [1, 2, 3]
    assert seen[0].movements[0].source == "csv"
    assert result.success
    assert (result.total_batches, result.successful_batches, result.failed_batches) == (3, 3, 0)
    assert result.processed_movements == 5
    assert result.errors == []


def test_failed_batch_is_counted_and_run_continues() -> None:
    async def submit(batch: BatchInfo) -> None:
        if batch.batch_number == 2:
            raise RuntimeError("boom")

    config = BatchConfig(batch_size=2, max_retries=2, retry_delay=0)
    result = asyncio.run(process_dataset_in_batches(_dataset(6), config, submit))
    assert not result.success
    assert result.failed_batches == 1
    assert result.successful_batches == 2
    assert result.processed_movements == 4
    assert result.errors == ["Batch 2: boom"]


def test_retry_recovers_and_clears_error() -> None:
    attempts: dict[int, int] = {}

    async def submit(batch: BatchInfo) -> None:
        attempts[batch.batch_number] = attempts.get(batch.batch_number, 0) + 1
        if attempts[batch.batch_number] < 3:
            raise RuntimeError("flaky")

    config = BatchConfig(batch_size=10, max_retries=2, retry_delay=0)
    result = asyncio.run(process_dataset_in_batches(_dataset(3), config, submit))
    assert attempts == {1: 3}
    assert result.success
    assert result.errors == []


def test_progress_callback_and_failing_observer() -> None:
    snapshots: list[Progress] = []

    async def submit(batch: BatchInfo) -> None:
        return None

    asyncio.run(
        process_dataset_in_batches(_dataset(3), BatchConfig(batch_size=1), submit, on_progress=snapshots.append)
    )
    assert [p.completed for p in snapshots] == [1, 2, 3]
    assert snapshots[-1].percentage == 100.0
    assert all(p.unit == "batch" and p.total == 3 for p in snapshots)

    def explode(_: Progress) -> None:
        raise RuntimeError("observer")

    result = asyncio.run(
        process_dataset_in_batches(_dataset(2), BatchConfig(batch_size=1), submit, on_progress=explode)
    )
    assert result.success


def test_progress_monitor_extrapolates_remaining_time() -> None:
    ticks = iter([0.0, 0.0, 1.0, 2.0])
    monitor = ProgressMonitor("file", clock=lambda: next(ticks))
    monitor.start(4)
    first = monitor.completed(1, True)
    assert first.elapsed_ms == 1000.0
    assert first.estimated_remaining_ms == 3000.0
    second = monitor.completed(2, False)
    assert second.percentage == 50.0
    assert second.estimated_remaining_ms == 2000.0
