"""File acquisition: validate and read CSV files from disk.

Reads are blocking file I/O and run on worker threads; multi-file reads are
issued together and awaited jointly, with results returned in the order the
paths were given regardless of completion order.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TypeAlias

from pydantic import BaseModel, ConfigDict, Field

from .errors import CSVFileError
from .logging_setup import get_logger
from .models import ValidationResult
from .normalizers import normalize_content
from .progress import ProgressCallback, ProgressMonitor

_logger = get_logger("cashflow_import.files")

PathLike: TypeAlias = str | os.PathLike[str]

# ---- Tunables (private) ----
_DEFAULT_MAX_FILE_MB = 10.0
_MAX_FILE_MB_ENV_VAR = "CASHFLOW_IMPORT_MAX_FILE_MB"
_SIZE_UNITS = ("Bytes", "KB", "MB", "GB")


def _resolve_max_file_mb() -> float:
    """Default size limit, overridable through ``CASHFLOW_IMPORT_MAX_FILE_MB``."""

    raw = os.getenv(_MAX_FILE_MB_ENV_VAR)
    try:
        value = float(raw) if raw else None
    except ValueError:
        value = None
    if value is not None and value > 0:
        return value
    return _DEFAULT_MAX_FILE_MB


class FileReaderConfig(BaseModel):
    """How files are vetted and decoded before parsing.

    ``max_file_size_mb`` falls back to :func:`_resolve_max_file_mb` when left
    unset. ``validate_file`` controls the extension and emptiness checks; the
    size limit always applies.
    """

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True, frozen=True)

    encoding: str = "utf-8"
    max_file_size_mb: float | None = Field(default=None, gt=0)
    max_files: int | None = Field(default=None, gt=0)
    allowed_extensions: tuple[str, ...] = ("csv",)
    validate_file: bool = True
    normalize_content: bool = True

    @property
    def max_file_size_bytes(self) -> int:
        mb = self.max_file_size_mb if self.max_file_size_mb is not None else _resolve_max_file_mb()
        return int(mb * 1024 * 1024)

    @classmethod
    def strict(cls) -> FileReaderConfig:
        """Single small ``.csv`` file."""

        return cls(max_files=1, max_file_size_mb=5)

    @classmethod
    def permissive(cls) -> FileReaderConfig:
        """Many large files, ``.csv`` or ``.txt``, no pre-validation."""

        return cls(
            max_files=10,
            max_file_size_mb=50,
            allowed_extensions=("csv", "txt"),
            validate_file=False,
        )

    @classmethod
    def multiple(cls) -> FileReaderConfig:
        return cls(max_files=5, max_file_size_mb=20)


@dataclass(slots=True)
class FileReadResult:
    file_name: str
    success: bool = False
    content: str | None = None
    file_size: int = 0
    encoding: str | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def require_content(self) -> str:
        """Return the decoded text or raise :class:`CSVFileError`."""

        if not self.success or self.content is None:
            detail = "; ".join(self.errors) or "no content"
            raise CSVFileError(f"Could not read {self.file_name}: {detail}", file_name=self.file_name)
        return self.content


@dataclass(frozen=True, slots=True)
class FileInfo:
    name: str
    size: int
    size_formatted: str
    last_modified: datetime
    extension: str


def format_file_size(num_bytes: int) -> str:
    """Human readable size with 1024 steps, e.g. ``"1.5 KB"``."""

    if num_bytes <= 0:
        return "0 Bytes"
    i = 0
    while num_bytes >= 1024 ** (i + 1) and i < len(_SIZE_UNITS) - 1:
        i += 1
    text = f"{num_bytes / 1024**i:.2f}".rstrip("0").rstrip(".")
    return f"{text} {_SIZE_UNITS[i]}"


def _extension(path: Path) -> str:
    return path.suffix.lstrip(".").lower()


def file_info(path: PathLike) -> FileInfo:
    p = Path(path)
    st = p.stat()
    return FileInfo(
        name=p.name,
        size=st.st_size,
        size_formatted=format_file_size(st.st_size),
        last_modified=datetime.fromtimestamp(st.st_mtime),
        extension=_extension(p),
    )


def validate_file_for_upload(path: PathLike, config: FileReaderConfig | None = None) -> ValidationResult:
    """Check extension, existence, size and emptiness without reading the file."""

    cfg = config or FileReaderConfig()
    p = Path(path)
    result = ValidationResult()

    if cfg.validate_file and _extension(p) not in cfg.allowed_extensions:
        allowed = ", ".join(cfg.allowed_extensions)
        result.errors.append(f"File extension not allowed. Allowed extensions: {allowed}")

    try:
        size = p.stat().st_size
    except FileNotFoundError:
        result.errors.append(f"File not found: {p}")
        return result
    except OSError as e:
        result.errors.append(f"Could not access file {p}: {e.strerror or e}")
        return result

    if not p.is_file():
        result.errors.append(f"Not a regular file: {p}")
        return result
    if size > cfg.max_file_size_bytes:
        limit = format_file_size(cfg.max_file_size_bytes)
        result.errors.append(f"The file is too large ({format_file_size(size)}, maximum {limit})")
    if cfg.validate_file and size == 0:
        result.errors.append("The file is empty")
    return result


@dataclass(frozen=True, slots=True)
class FilesValidation:
    valid: list[Path]
    invalid: list[tuple[Path, list[str]]]
    errors: list[str]
    warnings: list[str]

    @property
    def is_valid(self) -> bool:
        return not self.errors and not self.invalid


def validate_files_for_upload(
    paths: Sequence[PathLike], config: FileReaderConfig | None = None
) -> FilesValidation:
    """Validate each path and the file-count limit."""

    cfg = config or FileReaderConfig()
    errors: list[str] = []
    warnings: list[str] = []
    if cfg.max_files is not None and len(paths) > cfg.max_files:
        errors.append(f"Too many files. Maximum allowed: {cfg.max_files}")

    valid: list[Path] = []
    invalid: list[tuple[Path, list[str]]] = []
    for raw in paths:
        p = Path(raw)
        check = validate_file_for_upload(p, cfg)
        warnings.extend(check.warnings)
        if check.is_valid:
            valid.append(p)
        else:
            invalid.append((p, check.errors))
    return FilesValidation(valid=valid, invalid=invalid, errors=errors, warnings=warnings)


def read_csv_file(path: PathLike, config: FileReaderConfig | None = None) -> FileReadResult:
    """Validate and decode one file.

    Never raises for I/O or decoding problems; they are reported in
    ``errors`` with ``success=False``. Use :meth:`FileReadResult.require_content`
    for exception-style handling.
    """

    cfg = config or FileReaderConfig()
    p = Path(path)
    result = FileReadResult(file_name=p.name, encoding=cfg.encoding)

    check = validate_file_for_upload(p, cfg)
    result.warnings.extend(check.warnings)
    if not check.is_valid:
        result.errors.extend(check.errors)
        _logger.warning("files:rejected file=%s errors=%d", p.name, len(check.errors))
        return result

    try:
        raw = p.read_bytes()
    except OSError as e:
        result.errors.append(f"Error reading the file: {e.strerror or e}")
        _logger.warning("files:read_failed file=%s error=%s", p.name, e.__class__.__name__)
        return result
    result.file_size = len(raw)

    try:
        content = raw.decode(cfg.encoding)
    except (UnicodeDecodeError, LookupError) as e:
        result.errors.append(f"Could not decode the file as {cfg.encoding}: {e}")
        _logger.warning("files:decode_failed file=%s encoding=%s", p.name, cfg.encoding)
        return result

    if content.startswith("\ufeff"):
        content = content[1:]
    if not content:
        result.errors.append("Could not read the file content")
        return result

    result.content = normalize_content(content) if cfg.normalize_content else content
    result.success = True
    _logger.debug("files:read file=%s bytes=%d", p.name, result.file_size)
    return result


async def read_csv_files(
    paths: Sequence[PathLike],
    config: FileReaderConfig | None = None,
    *,
    on_progress: ProgressCallback | None = None,
) -> list[FileReadResult]:
    """Read every path concurrently; results follow the order of ``paths``.

    Raises
    ------
    CSVFileError
        When more paths are given than ``config.max_files`` allows.
    """

    cfg = config or FileReaderConfig()
    if cfg.max_files is not None and len(paths) > cfg.max_files:
        raise CSVFileError(f"Too many files. Maximum allowed: {cfg.max_files}")

    monitor = ProgressMonitor("file", on_progress)
    monitor.start(len(paths))

    async def _read_one(number: int, path: PathLike) -> FileReadResult:
        result = await asyncio.to_thread(read_csv_file, path, cfg)
        monitor.completed(number, result.success)
        return result

    results = await asyncio.gather(*(_read_one(i, p) for i, p in enumerate(paths, start=1)))
    _logger.info(
        "files:read_all files=%d ok=%d failed=%d",
        len(results),
        sum(1 for r in results if r.success),
        sum(1 for r in results if not r.success),
    )
    return list(results)


__all__ = [
    "PathLike",
    "FileReaderConfig",
    "FileReadResult",
    "FileInfo",
    "FilesValidation",
    "format_file_size",
    "file_info",
    "validate_file_for_upload",
    "validate_files_for_upload",
    "read_csv_file",
    "read_csv_files",
]
