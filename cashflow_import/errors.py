"""Exception types raised by the CSV ingestion pipeline.

Per-line problems are reported as strings inside parse results; these types
are reserved for structural failures (unusable files, invalid mappings, empty
datasets) and for callers that prefer exceptions over result objects.
"""

from __future__ import annotations

from typing import Any

EMPTY_FILE = "The CSV file is empty"
NO_ROWS = "The CSV file has no rows"
NO_VALID_ROWS = "No valid rows found after parsing"
NO_VALID_MOVEMENTS = "No valid movements could be created from the CSV rows"


class CSVImportError(Exception):
    """Base class for all ``cashflow_import`` errors."""


class CSVParseError(CSVImportError, ValueError):
    def __init__(
        self,
        message: str,
        *,
        line_number: int | None = None,
        original_line: str | None = None,
    ) -> None:
        super().__init__(message)
        self.line_number = line_number
        self.original_line = original_line


class CSVValidationError(CSVImportError, ValueError):
    def __init__(self, message: str, *, field: str | None = None, value: Any = None) -> None:
        super().__init__(message)
        self.field = field
        self.value = value


class CSVFormatError(CSVImportError, ValueError):
    def __init__(
        self,
        message: str,
        *,
        expected_format: str | None = None,
        actual_format: str | None = None,
    ) -> None:
        super().__init__(message)
        self.expected_format = expected_format
        self.actual_format = actual_format


class ColumnMappingError(CSVImportError, ValueError):
    def __init__(self, message: str, *, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = list(errors or [])


class CSVFileError(CSVImportError, OSError):
    def __init__(self, message: str, *, file_name: str | None = None) -> None:
        super().__init__(message)
        self.file_name = file_name


class EmptyDatasetError(CSVValidationError):
    """No valid movement survived the row -> movement transformation."""


__all__ = [
    "EMPTY_FILE",
    "NO_ROWS",
    "NO_VALID_ROWS",
    "NO_VALID_MOVEMENTS",
    "CSVImportError",
    "CSVParseError",
    "CSVValidationError",
    "CSVFormatError",
    "ColumnMappingError",
    "CSVFileError",
    "EmptyDatasetError",
]
