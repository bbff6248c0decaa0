"""Publish a dataset to a persistence sink, batch by batch.

A sink first registers the dataset and returns its identifier, then receives
the movements in contiguous batches through the Batch Dispatcher. The
transport behind a sink is opaque to this module; :class:`JsonLinesSink` is a
local implementation writing one ``.jsonl`` file per dataset.
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, ConfigDict

from .batching import process_dataset_in_batches, resolve_batch_size
from .errors import CSVFileError
from .logging_setup import get_logger
from .models import APIMovement, BatchConfig, BatchInfo, BatchProcessingResult, ProcessedDataset
from .progress import ProgressCallback

_logger = get_logger("cashflow_import.publish")

_UNSAFE_NAME_RE = re.compile(r"[^A-Za-z0-9_.-]+")


class DatasetSink(Protocol):
    async def create_dataset(self, dataset: ProcessedDataset) -> str: ...

    async def add_movements(self, dataset_id: str, movements: Sequence[APIMovement]) -> None: ...


class DatasetRecord(BaseModel):
    """Dataset metadata as stored next to its movements."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    dataset_name: str
    original_file_name: str
    imported_by: str | None = None
    currency: str
    dataset_type: str
    period_start: str | None = None
    period_end: str | None = None
    movement_count: int

    @classmethod
    def from_dataset(cls, dataset: ProcessedDataset) -> DatasetRecord:
        return cls(
            dataset_name=dataset.dataset_name,
            original_file_name=dataset.original_file_name,
            imported_by=dataset.imported_by,
            currency=dataset.currency,
            dataset_type=dataset.dataset_type,
            period_start=dataset.period_start,
            period_end=dataset.period_end,
            movement_count=len(dataset.movements),
        )


@dataclass(frozen=True, slots=True)
class PublishResult:
    dataset_id: str
    batches: BatchProcessingResult

    @property
    def success(self) -> bool:
        return self.batches.success


async def publish_dataset(
    dataset: ProcessedDataset,
    sink: DatasetSink,
    config: BatchConfig | None = None,
    *,
    on_progress: ProgressCallback | None = None,
    source: str | None = None,
) -> PublishResult:
    """Register ``dataset`` with ``sink`` and push its movements in batches.

    Failures to create the dataset propagate to the caller; failures while
    adding movements are retried and aggregated in the returned
    :class:`BatchProcessingResult`.
    """

    cfg = config or BatchConfig(batch_size=resolve_batch_size(len(dataset.movements)))
    dataset_id = await sink.create_dataset(dataset)
    _logger.info("publish:dataset_created id=%s movements=%d", dataset_id, len(dataset.movements))

    async def _submit(batch: BatchInfo) -> None:
        await sink.add_movements(dataset_id, batch.movements)

    result = await process_dataset_in_batches(dataset, cfg, _submit, on_progress=on_progress, source=source)
    return PublishResult(dataset_id=dataset_id, batches=result)


def _safe_name(name: str) -> str:
    return _UNSAFE_NAME_RE.sub("_", name).strip("._") or "dataset"


class JsonLinesSink:
    """Write each dataset to ``<out_dir>/<dataset id>.jsonl``.

    The first line holds the :class:`DatasetRecord`; every following line is
    one :class:`APIMovement`. Creating a dataset whose file already exists
    truncates it.
    """

    def __init__(self, out_dir: str | Path) -> None:
        self.out_dir = Path(out_dir)

    def path_for(self, dataset_id: str) -> Path:
        return self.out_dir / f"{dataset_id}.jsonl"

    def _write_header(self, dataset_id: str, record: DatasetRecord) -> None:
        self.out_dir.mkdir(parents=True, exist_ok=True)
        with self.path_for(dataset_id).open("w", encoding="utf-8") as f:
            f.write(record.model_dump_json() + "\n")

    def _append(self, dataset_id: str, movements: Sequence[APIMovement]) -> None:
        path = self.path_for(dataset_id)
        if not path.exists():
            raise CSVFileError(f"Unknown dataset: {dataset_id}", file_name=path.name)
        with path.open("a", encoding="utf-8") as f:
            for m in movements:
                f.write(m.model_dump_json() + "\n")

    async def create_dataset(self, dataset: ProcessedDataset) -> str:
        dataset_id = _safe_name(dataset.dataset_name)
        await asyncio.to_thread(self._write_header, dataset_id, DatasetRecord.from_dataset(dataset))
        return dataset_id

    async def add_movements(self, dataset_id: str, movements: Sequence[APIMovement]) -> None:
        await asyncio.to_thread(self._append, dataset_id, movements)


def read_json_lines(path: str | Path) -> tuple[DatasetRecord, list[APIMovement]]:
    """Load a file written by :class:`JsonLinesSink`."""

    lines = [ln for ln in Path(path).read_text(encoding="utf-8").splitlines() if ln.strip()]
    if not lines:
        raise CSVFileError(f"Empty dataset file: {path}", file_name=Path(path).name)
    record = DatasetRecord.model_validate_json(lines[0])
    return record, [APIMovement.model_validate_json(ln) for ln in lines[1:]]


__all__ = [
    "DatasetSink",
    "DatasetRecord",
    "PublishResult",
    "publish_dataset",
    "JsonLinesSink",
    "read_json_lines",
]
