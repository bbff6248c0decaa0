"""End-to-end orchestration: files -> rows -> dataset -> (optional) batches.

:class:`CSVProcessor` ties the stages together for one processing run. Files
are read concurrently; their texts are then parsed one after another, in the
order given, and every surviving row feeds a single dataset. A file that
cannot be read or yields no rows is reported and skipped; the remaining files
still contribute.
"""

from __future__ import annotations

import math
import time
from collections.abc import Sequence
from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .batching import (
    BatchTimeEstimate,
    SubmitBatch,
    estimate_batch_processing_time,
    process_dataset_in_batches,
    resolve_batch_size,
)
from .datasets import build_dataset_from_rows
from .errors import CSVFileError, EmptyDatasetError
from .files import (
    FileInfo,
    FileReaderConfig,
    FilesValidation,
    PathLike,
    file_info,
    read_csv_files,
    validate_files_for_upload,
)
from .logging_setup import get_logger
from .models import (
    DEFAULT_DATASET_TYPE,
    BatchConfig,
    BatchProcessingResult,
    ColumnDefinition,
    ColumnMapping,
    CSVRow,
    ParseResult,
    ProcessedDataset,
)
from .parsers import parse_content, parse_content_with_mapping
from .normalizers import normalize_csv_row
from .progress import ProgressCallback
from .validators import validate_csv_content, validate_csv_row

_logger = get_logger("cashflow_import.processor")

NO_ROWS_FROM_ANY_FILE = "No valid rows could be processed from any file"

# ---- Tunables (private) ----
_READ_BYTES_PER_SECOND = 1024 * 1024
_BYTES_PER_MOVEMENT = 100


class ProcessorConfig(BaseModel):
    """Settings for one :class:`CSVProcessor`.

    ``column_mapping`` is only consulted when ``use_mapping`` is set; otherwise
    rows are parsed positionally, guided by ``column_definitions`` when given.
    With ``use_batching`` and no ``batch_config`` the batch size is resolved
    from the dataset size (see :func:`~cashflow_import.batching.resolve_batch_size`).
    """

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True, frozen=True)

    column_definitions: tuple[ColumnDefinition, ...] | None = None
    column_mapping: ColumnMapping | None = None
    use_mapping: bool = False
    dataset_name: str | None = None
    imported_by: str | None = None
    dataset_type: str = Field(default=DEFAULT_DATASET_TYPE, min_length=1)
    batch_config: BatchConfig | None = None
    use_batching: bool = False
    reader_config: FileReaderConfig = Field(default_factory=FileReaderConfig.strict)
    source: str | None = None

    @model_validator(mode="after")
    def _mapping_when_requested(self) -> ProcessorConfig:
        if self.use_mapping and self.column_mapping is None:
            raise ValueError("use_mapping requires column_mapping")
        return self


@dataclass(frozen=True, slots=True)
class SourceText:
    """Decoded text of one input, tagged with the name it came from."""

    file_name: str
    content: str


@dataclass(slots=True)
class ProcessingStatistics:
    total_files: int = 0
    successful_files: int = 0
    failed_files: int = 0
    total_rows: int = 0
    valid_rows: int = 0
    invalid_rows: int = 0
    total_movements: int = 0
    processing_time_ms: float = 0.0


@dataclass(slots=True)
class ProcessingResult:
    """Outcome of a processing run.

    ``errors`` holds file-level and structural failures; row-level problems
    reported by the parsers are kept in ``warnings`` prefixed with the file
    name, and the full per-file reports are in ``parse_results``.
    """

    success: bool = False
    dataset: ProcessedDataset | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    statistics: ProcessingStatistics = field(default_factory=ProcessingStatistics)
    batch_result: BatchProcessingResult | None = None
    parse_results: dict[str, ParseResult] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ProcessingEstimate:
    total_size: int
    estimated_read_ms: float
    batches: BatchTimeEstimate | None = None

    @property
    def estimated_read_seconds(self) -> int:
        return math.ceil(self.estimated_read_ms / 1000)


class CSVProcessor:
    """Run the ingestion pipeline with a fixed :class:`ProcessorConfig`."""

    def __init__(self, config: ProcessorConfig | None = None) -> None:
        self.config = config or ProcessorConfig()

    def parse_content(self, content: str, file_name: str = "") -> ParseResult:
        """Parse one text with the mapping parser or the positional parser.

        Structural and per-row validation problems are appended to the
        result warnings; they never drop rows on their own.
        """

        cfg = self.config
        preflight = validate_csv_content(content)
        if cfg.use_mapping and cfg.column_mapping is not None:
            result = parse_content_with_mapping(content, cfg.column_mapping)
            parser = "mapping"
        else:
            result = parse_content(content, cfg.column_definitions)
            parser = "positional"
        result.warnings.extend(preflight.errors)
        result.warnings.extend(preflight.warnings)
        for i, row in enumerate(result.rows, start=1):
            checked = validate_csv_row(normalize_csv_row(row))
            result.warnings.extend(f"Parsed row {i}: {e}" for e in checked.errors)
        _logger.info(
            "processor:parsed file=%s parser=%s rows=%d errors=%d warnings=%d",
            file_name,
            parser,
            len(result.rows),
            len(result.errors),
            len(result.warnings),
        )
        return result

    def _batch_config_for(self, dataset: ProcessedDataset) -> BatchConfig:
        if self.config.batch_config is not None:
            return self.config.batch_config
        return BatchConfig(batch_size=resolve_batch_size(len(dataset.movements)))

    async def _run(
        self,
        sources: Sequence[SourceText],
        out: ProcessingResult,
        t0: float,
        submit: SubmitBatch | None,
        on_progress: ProgressCallback | None,
    ) -> ProcessingResult:
        cfg = self.config
        stats = out.statistics
        all_rows: list[CSVRow] = []

        for src in sources:
            parsed = self.parse_content(src.content, src.file_name)
            out.parse_results[src.file_name] = parsed
            stats.total_rows += parsed.metadata.valid_rows + parsed.metadata.invalid_rows
            stats.invalid_rows += parsed.metadata.invalid_rows
            if not parsed.rows:
                stats.failed_files += 1
                detail = "; ".join(parsed.errors) or "unknown error"
                out.errors.append(f"{src.file_name}: no valid rows could be parsed ({detail})")
                continue
            stats.successful_files += 1
            stats.valid_rows += len(parsed.rows)
            all_rows.extend(parsed.rows)
            out.warnings.extend(f"{src.file_name}: {w}" for w in parsed.warnings)
            out.warnings.extend(f"{src.file_name}: {e}" for e in parsed.errors)

        if not all_rows:
            out.errors.append(NO_ROWS_FROM_ANY_FILE)
            return self._finish(out, t0)

        file_name = sources[0].file_name if len(sources) == 1 else f"{len(sources)}_files"
        try:
            dataset = build_dataset_from_rows(
                all_rows,
                file_name,
                cfg.dataset_name,
                cfg.imported_by,
                cfg.dataset_type,
            )
        except EmptyDatasetError as e:
            out.errors.append(str(e))
            return self._finish(out, t0)
        out.dataset = dataset
        stats.total_movements = len(dataset.movements)

        if cfg.use_batching:
            if submit is None:
                out.warnings.append("Batching is enabled but no submit callback was given; skipped")
            else:
                out.batch_result = await process_dataset_in_batches(
                    dataset,
                    self._batch_config_for(dataset),
                    submit,
                    on_progress=on_progress,
                    source=cfg.source,
                )
                out.errors.extend(out.batch_result.errors)
                out.warnings.extend(out.batch_result.warnings)

        out.success = stats.failed_files == 0 and (out.batch_result is None or out.batch_result.success)
        return self._finish(out, t0)

    @staticmethod
    def _finish(out: ProcessingResult, t0: float) -> ProcessingResult:
        out.statistics.processing_time_ms = (time.perf_counter() - t0) * 1000.0
        _logger.info(
            "processor:done success=%s files=%d failed_files=%d rows=%d movements=%d latency_ms=%.2f",
            out.success,
            out.statistics.total_files,
            out.statistics.failed_files,
            out.statistics.valid_rows,
            out.statistics.total_movements,
            out.statistics.processing_time_ms,
        )
        return out

    async def process_contents(
        self,
        sources: Sequence[SourceText],
        submit: SubmitBatch | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ProcessingResult:
        """Parse already-decoded texts and build one dataset from all of them.

        Parameters
        ----------
        sources:
            Texts in the order they should contribute rows.
        submit:
            Async persistence callback; only used when batching is enabled.
        on_progress:
            Observer for batch progress.

        Returns
        -------
        ProcessingResult
            ``success`` is false when any source failed, when no row
            survived, or when a batch failed after retries.
        """

        t0 = time.perf_counter()
        out = ProcessingResult()
        out.statistics.total_files = len(sources)
        return await self._run(sources, out, t0, submit, on_progress)

    async def process_files(
        self,
        paths: Sequence[PathLike],
        submit: SubmitBatch | None = None,
        on_progress: ProgressCallback | None = None,
        *,
        on_file_progress: ProgressCallback | None = None,
    ) -> ProcessingResult:
        """Read ``paths`` concurrently, then process their texts in order."""

        t0 = time.perf_counter()
        out = ProcessingResult()
        out.statistics.total_files = len(paths)
        try:
            reads = await read_csv_files(paths, self.config.reader_config, on_progress=on_file_progress)
        except CSVFileError as e:
            out.errors.append(str(e))
            out.statistics.failed_files = len(paths)
            return self._finish(out, t0)

        sources: list[SourceText] = []
        for read in reads:
            out.warnings.extend(f"{read.file_name}: {w}" for w in read.warnings)
            if read.success and read.content is not None:
                sources.append(SourceText(read.file_name, read.content))
            else:
                out.statistics.failed_files += 1
                out.errors.extend(f"{read.file_name}: {e}" for e in read.errors)

        if not sources:
            out.errors.append(NO_ROWS_FROM_ANY_FILE)
            return self._finish(out, t0)
        return await self._run(sources, out, t0, submit, on_progress)

    async def process_file(
        self,
        path: PathLike,
        submit: SubmitBatch | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ProcessingResult:
        return await self.process_files([path], submit, on_progress)

    def validate_files(self, paths: Sequence[PathLike]) -> FilesValidation:
        return validate_files_for_upload(paths, self.config.reader_config)

    def file_info(self, paths: Sequence[PathLike]) -> list[FileInfo]:
        return [file_info(p) for p in paths]

    def estimate_processing_time(self, paths: Sequence[PathLike]) -> ProcessingEstimate:
        """Rough read time (about 1 MB/s) plus batch time when batching is on.

        The movement count is approximated from the byte size.
        """

        total_size = sum(file_info(p).size for p in paths)
        batches: BatchTimeEstimate | None = None
        if self.config.use_batching:
            movements = total_size // _BYTES_PER_MOVEMENT
            bc = self.config.batch_config
            batches = estimate_batch_processing_time(
                movements,
                bc.batch_size if bc else resolve_batch_size(movements),
                bc.delay_between_batches if bc else 0.0,
            )
        return ProcessingEstimate(
            total_size=total_size,
            estimated_read_ms=total_size / _READ_BYTES_PER_SECOND * 1000.0,
            batches=batches,
        )


__all__ = [
    "NO_ROWS_FROM_ANY_FILE",
    "ProcessorConfig",
    "SourceText",
    "ProcessingStatistics",
    "ProcessingResult",
    "ProcessingEstimate",
    "CSVProcessor",
]
