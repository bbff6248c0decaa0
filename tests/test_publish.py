from __future__ import annotations

import asyncio
from collections.abc import Sequence
from pathlib import Path

import pytest

from cashflow_import.api import parse_csv_text
from cashflow_import.errors import CSVFileError
from cashflow_import.models import APIMovement, BatchConfig, ProcessedDataset
from cashflow_import.publish import JsonLinesSink, publish_dataset, read_json_lines


class FlakySink:
    """In-memory sink whose first ``add_movements`` call fails."""

    def __init__(self) -> None:
        self.calls = 0
        self.stored: dict[str, list[APIMovement]] = {}

    async def create_dataset(self, dataset: ProcessedDataset) -> str:
        self.stored["ds-1"] = []
        return "ds-1"

    async def add_movements(self, dataset_id: str, movements: Sequence[APIMovement]) -> None:
        self.calls += 1
        if self.calls == 1:
            raise TimeoutError("slow")
        self.stored[dataset_id].extend(movements)


def test_json_lines_round_trip(tmp_path: Path, mmex_content: str) -> None:
    dataset = parse_csv_text(mmex_content, "mmex.csv", dataset_name="Mi extracto/2024", imported_by="u1")
    sink = JsonLinesSink(tmp_path / "out")

    result = asyncio.run(publish_dataset(dataset, sink, BatchConfig(batch_size=2), source="csv"))
    assert result.success
    assert result.dataset_id == "Mi_extracto_2024"
    assert result.batches.total_batches == 2

    record, movements = read_json_lines(sink.path_for(result.dataset_id))
    assert record.dataset_name == "Mi extracto/2024"
    assert record.imported_by == "u1"
    assert record.movement_count == 3
    assert (record.period_start, record.period_end) == ("01/01/2024", "03/02/2024")
    assert [m.fecha for m in movements] == [m.fecha for m in dataset.movements]
    assert [float(m.monto) for m in movements] == [250.0, 1000.5, 20.0]
    assert movements[0].categoria.subgrupo == "Super"
    assert all(m.source == "csv" for m in movements)


def test_create_dataset_truncates_existing_file(tmp_path: Path, mmex_content: str) -> None:
    dataset = parse_csv_text(mmex_content, "mmex.csv")
    sink = JsonLinesSink(tmp_path)
    asyncio.run(publish_dataset(dataset, sink))
    asyncio.run(publish_dataset(dataset, sink))
    _, movements = read_json_lines(tmp_path / "mmex.jsonl")
    assert len(movements) == 3


def test_unknown_dataset_id_fails(tmp_path: Path) -> None:
    with pytest.raises(CSVFileError):
        asyncio.run(JsonLinesSink(tmp_path).add_movements("nope", []))


def test_read_json_lines_empty_file(tmp_path: Path) -> None:
    path = tmp_path / "empty.jsonl"
    path.write_text("", encoding="utf-8")
    with pytest.raises(CSVFileError):
        read_json_lines(path)


def test_publish_retries_failed_batches(mmex_content: str) -> None:
    sink = FlakySink()
    dataset = parse_csv_text(mmex_content, "mmex.csv")
    config = BatchConfig(batch_size=10, max_retries=1, retry_delay=0)
    result = asyncio.run(publish_dataset(dataset, sink, config))
    assert result.success
    assert sink.calls == 2
    assert len(sink.stored["ds-1"]) == 3
