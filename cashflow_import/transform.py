"""Row -> movement transformation and movement-level aggregations."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import TypeAlias

from .logging_setup import get_logger
from .models import DIRECTIONS, APIMovement, CSVRow, Movement, ValidationResult
from .normalizers import csv_row_to_movement, sort_movements_by_date

_logger = get_logger("cashflow_import.transform")


@dataclass(slots=True)
class TransformResult:
    movements: list[Movement] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def transform_rows_to_movements(rows: Sequence[CSVRow]) -> TransformResult:
    """Convert rows, dropping those that fail the mandatory-field gates.

    Errors are reported as ``"Row N: ..."`` with ``N`` the 1-based position in
    ``rows``. Surviving movements are returned sorted by date.
    """

    out = TransformResult()
    for i, row in enumerate(rows, start=1):
        movement = csv_row_to_movement(row)
        if movement is None:
            out.errors.append(f"Row {i}: could not be transformed into a movement")
            continue
        out.movements.append(movement)
    out.movements = sort_movements_by_date(out.movements)
    if out.errors:
        _logger.info(
            "transform:rows_dropped rows=%d movements=%d dropped=%d",
            len(rows),
            len(out.movements),
            len(out.errors),
        )
    return out


def movements_to_api(movements: Iterable[Movement], source: str | None = None) -> list[APIMovement]:
    return [APIMovement.from_movement(m, source=source) for m in movements]


def validate_movement(movement: Movement) -> ValidationResult:
    result = ValidationResult()
    if not movement.fecha:
        result.errors.append("Missing date")
    if not movement.categoria.grupo:
        result.errors.append("Missing category group")
    if movement.tipo not in DIRECTIONS:
        result.errors.append("Invalid movement type")
    if movement.monto <= 0:
        result.errors.append("Invalid or missing amount")
    return result


@dataclass(frozen=True, slots=True)
class MovementValidationSummary:
    valid: list[Movement]
    invalid: list[tuple[Movement, list[str]]]

    @property
    def total(self) -> int:
        return len(self.valid) + len(self.invalid)

    @property
    def valid_percentage(self) -> float:
        return (len(self.valid) / self.total * 100) if self.total else 0.0


def filter_valid_movements(movements: Iterable[Movement]) -> MovementValidationSummary:
    valid: list[Movement] = []
    invalid: list[tuple[Movement, list[str]]] = []
    for m in movements:
        check = validate_movement(m)
        if check.is_valid:
            valid.append(m)
        else:
            invalid.append((m, check.errors))
    return MovementValidationSummary(valid=valid, invalid=invalid)


@dataclass(frozen=True, slots=True)
class DirectionGroups:
    ingresos: list[Movement]
    egresos: list[Movement]

    @property
    def total_ingresos(self) -> Decimal:
        return sum((m.monto for m in self.ingresos), Decimal(0))

    @property
    def total_egresos(self) -> Decimal:
        return sum((m.monto for m in self.egresos), Decimal(0))

    @property
    def balance(self) -> Decimal:
        return self.total_ingresos - self.total_egresos


def group_movements_by_type(movements: Iterable[Movement]) -> DirectionGroups:
    items = list(movements)
    return DirectionGroups(
        ingresos=[m for m in items if m.tipo == "ingreso"],
        egresos=[m for m in items if m.tipo == "egreso"],
    )


@dataclass(slots=True)
class CategoryGroup:
    grupo: str
    subgrupo: str | None
    movements: list[Movement] = field(default_factory=list)
    total_amount: Decimal = Decimal(0)

    @property
    def count(self) -> int:
        return len(self.movements)

    @property
    def average_amount(self) -> Decimal:
        return self.total_amount / self.count if self.movements else Decimal(0)


def group_movements_by_category(movements: Iterable[Movement]) -> dict[str, CategoryGroup]:
    """Group by ``"Group:Subgroup"`` key (``"Group"`` when no subgroup)."""

    grouped: dict[str, CategoryGroup] = {}
    for m in movements:
        key = m.categoria.key
        group = grouped.get(key)
        if group is None:
            group = grouped[key] = CategoryGroup(grupo=m.categoria.grupo, subgrupo=m.categoria.subgrupo)
        group.movements.append(m)
        group.total_amount += m.monto
    return grouped


@dataclass(frozen=True, slots=True)
class MovementStatistics:
    total_movements: int
    total_amount: Decimal
    average_amount: Decimal
    date_start: str
    date_end: str
    by_category: dict[str, CategoryGroup]


def calculate_movement_statistics(movements: Sequence[Movement]) -> MovementStatistics:
    if not movements:
        return MovementStatistics(0, Decimal(0), Decimal(0), "", "", {})
    total = sum((m.monto for m in movements), Decimal(0))
    ordered = sort_movements_by_date(movements)
    return MovementStatistics(
        total_movements=len(movements),
        total_amount=total,
        average_amount=total / len(movements),
        date_start=ordered[0].fecha,
        date_end=ordered[-1].fecha,
        by_category=group_movements_by_category(movements),
    )


Enricher: TypeAlias = Callable[[Movement, int], Decimal | None]


def enrich_movements(movements: Sequence[Movement], saldo_for: Enricher | None = None) -> list[Movement]:
    """Return copies carrying the running balance computed by ``saldo_for``.

    Without a callback the balance is the cumulative sum of signed amounts in
    the given order (``ingreso`` adds, ``egreso`` subtracts).
    """

    if saldo_for is None:
        running = Decimal(0)
        out: list[Movement] = []
        for m in movements:
            running += m.monto if m.tipo == "ingreso" else -m.monto
            out.append(replace(m, saldo=running))
        return out
    return [replace(m, saldo=saldo_for(m, i)) for i, m in enumerate(movements)]


__all__ = [
    "TransformResult",
    "transform_rows_to_movements",
    "movements_to_api",
    "validate_movement",
    "MovementValidationSummary",
    "filter_valid_movements",
    "DirectionGroups",
    "group_movements_by_type",
    "CategoryGroup",
    "group_movements_by_category",
    "MovementStatistics",
    "calculate_movement_statistics",
    "Enricher",
    "enrich_movements",
]
