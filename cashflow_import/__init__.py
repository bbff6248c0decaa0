"""Public interface for the ``cashflow_import`` package.

This module exposes the package's entry points and public models/types as the
stable import surface. There is no runtime logic here, only symbol re-exports.
"""

from .api import (
    parse_csv_text,
    process_csv_files_permissive,
    process_csv_files_strict,
    process_csv_files_with_batching,
    process_csv_files_with_mapping,
)
from .batching import create_batches, process_dataset_in_batches
from .datasets import (
    EnrichedDataset,
    build_dataset_from_rows,
    calculate_dataset_statistics,
    enrich_dataset,
    filter_dataset,
    merge_datasets,
)
from .errors import (
    ColumnMappingError,
    CSVFileError,
    CSVFormatError,
    CSVImportError,
    CSVParseError,
    CSVValidationError,
    EmptyDatasetError,
)
from .models import (
    APIMovement,
    BatchConfig,
    BatchInfo,
    BatchProcessingResult,
    Category,
    ColumnCommasConfig,
    ColumnDefinition,
    ColumnMapping,
    CSVRow,
    DatasetFilter,
    Direction,
    Movement,
    ParseResult,
    ProcessedDataset,
)
from .normalizers import csv_row_to_movement
from .parsers import parse_content, parse_content_with_mapping
from .processor import CSVProcessor, ProcessingResult, ProcessorConfig, SourceText
from .tokenizer import tokenize, tokenize_smart

__all__ = [
    # API
    "parse_csv_text",
    "process_csv_files_strict",
    "process_csv_files_permissive",
    "process_csv_files_with_mapping",
    "process_csv_files_with_batching",
    "CSVProcessor",
    "ProcessorConfig",
    "ProcessingResult",
    "SourceText",
    # Pipeline stages
    "tokenize",
    "tokenize_smart",
    "parse_content",
    "parse_content_with_mapping",
    "csv_row_to_movement",
    "build_dataset_from_rows",
    "merge_datasets",
    "enrich_dataset",
    "EnrichedDataset",
    "filter_dataset",
    "calculate_dataset_statistics",
    "create_batches",
    "process_dataset_in_batches",
    # Models / types
    "Direction",
    "ColumnCommasConfig",
    "ColumnDefinition",
    "ColumnMapping",
    "CSVRow",
    "Category",
    "Movement",
    "APIMovement",
    "ProcessedDataset",
    "ParseResult",
    "DatasetFilter",
    "BatchConfig",
    "BatchInfo",
    "BatchProcessingResult",
    # Errors
    "CSVImportError",
    "CSVParseError",
    "CSVValidationError",
    "CSVFormatError",
    "ColumnMappingError",
    "CSVFileError",
    "EmptyDatasetError",
]
