"""Public entry points for common ingestion setups.

Each ``process_csv_files_*`` helper builds a :class:`~cashflow_import.processor.CSVProcessor`
with a preset file policy and runs it over a list of paths. For text that is
already in memory, :func:`parse_csv_text` goes from CSV text to a
:class:`~cashflow_import.models.ProcessedDataset` in one call.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from .batching import SubmitBatch
from .datasets import build_dataset_from_rows
from .errors import EMPTY_FILE, NO_VALID_ROWS, ColumnMappingError, CSVFormatError, CSVValidationError
from .files import FileReaderConfig, PathLike
from .models import DEFAULT_DATASET_TYPE, BatchConfig, ColumnDefinition, ColumnMapping, ProcessedDataset
from .parsers import split_lines, validate_column_mapping
from .parsers.headers import header_tokens
from .processor import CSVProcessor, ProcessingResult, ProcessorConfig
from .progress import ProgressCallback
from .validators import validate_csv_content


async def process_csv_files_strict(
    paths: Sequence[PathLike],
    *,
    dataset_name: str | None = None,
    imported_by: str | None = None,
) -> ProcessingResult:
    """Single small ``.csv`` file, validated before reading."""

    config = ProcessorConfig(
        reader_config=FileReaderConfig.strict(),
        dataset_name=dataset_name,
        imported_by=imported_by,
    )
    return await CSVProcessor(config).process_files(paths)


async def process_csv_files_permissive(
    paths: Sequence[PathLike],
    *,
    dataset_name: str | None = None,
    imported_by: str | None = None,
) -> ProcessingResult:
    """Up to ten ``.csv``/``.txt`` files of up to 50 MB each."""

    config = ProcessorConfig(
        reader_config=FileReaderConfig.permissive(),
        dataset_name=dataset_name,
        imported_by=imported_by,
    )
    return await CSVProcessor(config).process_files(paths)


async def process_csv_files_with_mapping(
    paths: Sequence[PathLike],
    column_mapping: ColumnMapping | Mapping[str, str],
    *,
    dataset_name: str | None = None,
    imported_by: str | None = None,
) -> ProcessingResult:
    """Strict file policy; fields are read through ``column_mapping``."""

    if not isinstance(column_mapping, ColumnMapping):
        column_mapping = ColumnMapping.from_mapping(column_mapping)
    config = ProcessorConfig(
        reader_config=FileReaderConfig.strict(),
        use_mapping=True,
        column_mapping=column_mapping,
        dataset_name=dataset_name,
        imported_by=imported_by,
    )
    return await CSVProcessor(config).process_files(paths)


async def process_csv_files_with_batching(
    paths: Sequence[PathLike],
    batch_config: BatchConfig,
    submit: SubmitBatch,
    *,
    dataset_name: str | None = None,
    imported_by: str | None = None,
    on_progress: ProgressCallback | None = None,
) -> ProcessingResult:
    """Permissive file policy, then dispatch the dataset through ``submit``."""

    config = ProcessorConfig(
        reader_config=FileReaderConfig.permissive(),
        use_batching=True,
        batch_config=batch_config,
        dataset_name=dataset_name,
        imported_by=imported_by,
    )
    return await CSVProcessor(config).process_files(paths, submit, on_progress)


def parse_csv_text(
    content: str,
    file_name: str = "data.csv",
    *,
    column_definitions: Sequence[ColumnDefinition] | None = None,
    column_mapping: ColumnMapping | Mapping[str, str] | None = None,
    dataset_name: str | None = None,
    imported_by: str | None = None,
    dataset_type: str = DEFAULT_DATASET_TYPE,
) -> ProcessedDataset:
    """Parse ``content`` and build its dataset.

    Uses the mapping parser when ``column_mapping`` is given, the positional
    parser otherwise.

    Raises
    ------
    CSVFormatError
        When the text is empty or holds a single line.
    ColumnMappingError
        When ``column_mapping`` does not fit the header row; ``errors``
        lists every violation.
    CSVValidationError
        When no row could be parsed; ``value`` carries the parser errors.
    EmptyDatasetError
        When rows were parsed but none became a movement.
    """

    structure = validate_csv_content(content)
    if not structure.is_valid:
        raise CSVFormatError(
            structure.errors[0],
            expected_format="header line followed by data lines",
            actual_format="empty" if structure.errors[0] == EMPTY_FILE else "single line",
        )
    if column_mapping is not None:
        if not isinstance(column_mapping, ColumnMapping):
            column_mapping = ColumnMapping.from_mapping(column_mapping)
        headers = header_tokens(split_lines(content)[0])
        checked = validate_column_mapping(column_mapping, headers)
        if not checked.is_valid:
            raise ColumnMappingError("Invalid column mapping", errors=checked.errors)
    processor = CSVProcessor(
        ProcessorConfig(
            column_definitions=tuple(column_definitions) if column_definitions else None,
            column_mapping=column_mapping,
            use_mapping=column_mapping is not None,
        )
    )
    parsed = processor.parse_content(content, file_name)
    if not parsed.rows:
        raise CSVValidationError(NO_VALID_ROWS, field="rows", value=parsed.errors)
    return build_dataset_from_rows(parsed.rows, file_name, dataset_name, imported_by, dataset_type)


__all__ = [
    "process_csv_files_strict",
    "process_csv_files_permissive",
    "process_csv_files_with_mapping",
    "process_csv_files_with_batching",
    "parse_csv_text",
]
