"""Data models and type aliases for ``cashflow_import``.

Two kinds of models live here:

- Domain records produced by the pipeline (``CSVRow``, ``Category``,
  ``Movement``, ``ProcessedDataset``, ``BatchInfo`` ...) are frozen
  dataclasses. They are created fresh per processing run and handed forward
  from stage to stage; no stage mutates another stage's output.
- Configuration and wire DTOs (``ColumnDefinition``, ``ColumnMapping``,
  ``BatchConfig``, ``DatasetFilter``, ``APIMovement``) are pydantic models,
  validated once at the pipeline entry so downstream code can trust them.

Field names of the movement records (``fecha``, ``categoria``, ``tipo``,
``monto`` ...) are the data contract shared with the persistence layer and are
kept verbatim.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Literal, TypeAlias

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

Direction = Literal["ingreso", "egreso"]
"""Movement polarity: ``ingreso`` (inflow) or ``egreso`` (outflow)."""

DIRECTIONS: tuple[Direction, ...] = ("ingreso", "egreso")

ColumnCommasConfig: TypeAlias = dict[int, int]
"""Column index (0-based) -> maximum number of extra commas embedded in it."""

DEFAULT_CURRENCY = "ARS"
DEFAULT_DATASET_TYPE = "cashflow"


# ---------------------------------------------------------------------------
# Configuration models (validated at the entry point)
# ---------------------------------------------------------------------------


class ColumnDefinition(BaseModel):
    """Declared position of a named column when no header mapping is used."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True, frozen=True)

    name: str = Field(min_length=1)
    order: int = Field(ge=1)
    max_commas: int | None = Field(default=None, ge=0)


MAPPING_FIELDS: tuple[str, ...] = (
    "fecha",
    "categoria",
    "subcategoria",
    "importe",
    "egreso",
    "ingreso",
    "identificador",
    "estado",
    "tipo",
    "cuenta",
    "beneficiario",
    "divisa",
    "numero",
    "nota",
)
REQUIRED_MAPPING_FIELDS: tuple[str, ...] = ("fecha", "categoria")
AMOUNT_MAPPING_FIELDS: tuple[str, ...] = ("importe", "egreso", "ingreso")


class ColumnMapping(BaseModel):
    """Logical field name -> literal header text in the source file.

    Every field is optional at the type level; completeness against a concrete
    header row is checked by the mapping parser so that each violation can be
    reported individually.
    """

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True, frozen=True)

    fecha: str | None = None
    categoria: str | None = None
    subcategoria: str | None = None
    importe: str | None = None
    egreso: str | None = None
    ingreso: str | None = None
    identificador: str | None = None
    estado: str | None = None
    tipo: str | None = None
    cuenta: str | None = None
    beneficiario: str | None = None
    divisa: str | None = None
    numero: str | None = None
    nota: str | None = None

    @field_validator("*", mode="after")
    @classmethod
    def _blank_is_unmapped(cls, v: str | None) -> str | None:
        return v or None

    def get(self, field_name: str) -> str | None:
        if field_name not in MAPPING_FIELDS:
            return None
        return getattr(self, field_name)

    def items(self) -> Iterator[tuple[str, str]]:
        """Yield ``(field, header)`` pairs for mapped fields only."""

        for name in MAPPING_FIELDS:
            header = getattr(self, name)
            if header:
                yield name, header

    def required_fields_missing(self) -> list[str]:
        missing = [f for f in REQUIRED_MAPPING_FIELDS if not self.get(f)]
        if not any(self.get(f) for f in AMOUNT_MAPPING_FIELDS):
            missing.append("importe/egreso/ingreso")
        return missing

    @classmethod
    def from_mapping(cls, data: Mapping[str, str]) -> ColumnMapping:
        return cls.model_validate(dict(data))


class BatchConfig(BaseModel):
    """Batch dispatch policy. Delays are expressed in seconds."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    batch_size: int = Field(gt=0)
    delay_between_batches: float = Field(default=0.0, ge=0)
    max_retries: int = Field(default=0, ge=0)
    retry_delay: float = Field(default=1.0, ge=0)


class DatasetFilter(BaseModel):
    """Predicates for :func:`cashflow_import.datasets.filter_dataset`.

    All supplied predicates must hold for a movement to be kept.
    ``date_range`` bounds are inclusive literal ``DD/MM/YYYY`` strings.
    """

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True, frozen=True)

    date_range: tuple[str, str] | None = None
    min_amount: Decimal | None = None
    max_amount: Decimal | None = None
    types: tuple[Direction, ...] | None = None
    categories: tuple[str, ...] | None = None


# ---------------------------------------------------------------------------
# Pipeline records
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CSVRow:
    """A parsed, not-yet-normalized source row.

    ``importe`` keeps the sign found in the file; direction is derived from it
    later when no explicit ``tipo`` is given.
    """

    identificador: str = ""
    fecha: str = ""
    estado: str = ""
    tipo: str = ""
    cuenta: str = ""
    beneficiario: str = ""
    categoria: str = ""
    importe: Decimal = Decimal(0)
    divisa: str = ""
    numero: str = ""
    notas: str = ""


@dataclass(frozen=True, slots=True)
class Category:
    grupo: str
    subgrupo: str | None = None

    @property
    def key(self) -> str:
        return f"{self.grupo}:{self.subgrupo}" if self.subgrupo else self.grupo


@dataclass(frozen=True, slots=True)
class Movement:
    """A normalized financial transaction.

    ``fecha`` is the literal ``DD/MM/YYYY`` string (never a date object) and
    ``monto`` is always strictly positive; ``tipo`` carries the polarity.
    """

    fecha: str
    categoria: Category
    tipo: Direction
    monto: Decimal
    nota: str | None = None
    identificador: str | None = None
    saldo: Decimal | None = None

    def __post_init__(self) -> None:
        if self.monto <= 0:
            raise ValueError("Movement.monto must be strictly positive")
        if self.tipo not in DIRECTIONS:
            raise ValueError(f"Movement.tipo must be one of {DIRECTIONS}, got {self.tipo!r}")


class APIMovement(BaseModel):
    """Wire shape of a movement at the persistence boundary."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    fecha: str
    categoria: Category
    tipo: Direction
    monto: Decimal
    saldo: Decimal | None = None
    nota: str | None = None
    identificador: str | None = None
    source: str | None = None

    @field_serializer("monto", "saldo", when_used="json")
    def _decimal_as_number(self, v: Decimal | None) -> float | None:
        return float(v) if v is not None else None

    @classmethod
    def from_movement(cls, movement: Movement, *, source: str | None = None) -> APIMovement:
        return cls(
            fecha=movement.fecha,
            categoria=movement.categoria,
            tipo=movement.tipo,
            monto=movement.monto,
            saldo=movement.saldo,
            nota=movement.nota,
            identificador=movement.identificador,
            source=source,
        )


@dataclass(frozen=True, slots=True)
class ProcessedDataset:
    dataset_name: str
    original_file_name: str
    currency: str
    dataset_type: str
    movements: list[Movement]
    period_start: str | None = None
    period_end: str | None = None
    imported_by: str | None = None


@dataclass(frozen=True, slots=True)
class DatasetStatistics:
    total_movements: int
    total_amount: Decimal
    average_amount: Decimal
    ingresos_count: int
    egresos_count: int
    total_ingresos: Decimal
    total_egresos: Decimal
    balance: Decimal


# ---------------------------------------------------------------------------
# Parse results and diagnostics
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TraceEvent:
    """A structured record of one tokenizer/parser decision."""

    kind: str
    message: str = ""
    line_number: int | None = None
    data: Mapping[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ParseMetadata:
    total_lines: int = 0
    valid_rows: int = 0
    invalid_rows: int = 0
    expected_columns: int = 0


@dataclass(slots=True)
class ParseResult:
    rows: list[CSVRow] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    metadata: ParseMetadata = field(default_factory=ParseMetadata)
    diagnostics: list[TraceEvent] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Validation reports
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class ValidationResult:
    """Outcome of a non-raising validation: errors block, warnings inform."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


# ---------------------------------------------------------------------------
# Batching
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class BatchInfo:
    """A contiguous slice of a dataset's movements.

    ``batch_number`` is 1-based; ``end_index`` is inclusive.
    """

    batch_number: int
    movements: list[APIMovement]
    size: int
    start_index: int
    end_index: int


@dataclass(frozen=True, slots=True)
class BatchProcessingResult:
    success: bool
    total_batches: int
    successful_batches: int
    failed_batches: int
    total_movements: int
    processed_movements: int
    errors: list[str]
    warnings: list[str]
    processing_time_ms: float


__all__ = [
    "Direction",
    "DIRECTIONS",
    "ColumnCommasConfig",
    "DEFAULT_CURRENCY",
    "DEFAULT_DATASET_TYPE",
    "ColumnDefinition",
    "ColumnMapping",
    "MAPPING_FIELDS",
    "REQUIRED_MAPPING_FIELDS",
    "AMOUNT_MAPPING_FIELDS",
    "BatchConfig",
    "DatasetFilter",
    "CSVRow",
    "Category",
    "Movement",
    "APIMovement",
    "ProcessedDataset",
    "DatasetStatistics",
    "TraceEvent",
    "ParseMetadata",
    "ParseResult",
    "ValidationResult",
    "BatchInfo",
    "BatchProcessingResult",
]
