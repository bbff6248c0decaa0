"""Dataset builder: aggregate movements into a ``ProcessedDataset``.

Period bounds are computed with :func:`~cashflow_import.normalizers.sortable_date_key`
over the literal ``DD/MM/YYYY`` strings, never by parsing dates.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from pathlib import PurePath

from .errors import NO_VALID_MOVEMENTS, CSVValidationError, EmptyDatasetError
from .logging_setup import get_logger
from .models import (
    DEFAULT_CURRENCY,
    DEFAULT_DATASET_TYPE,
    CSVRow,
    DatasetFilter,
    DatasetStatistics,
    Movement,
    ProcessedDataset,
    ValidationResult,
)
from .normalizers import sort_movements_by_date, sortable_date_key
from .transform import CategoryGroup, group_movements_by_category, transform_rows_to_movements

_logger = get_logger("cashflow_import.datasets")


def calculate_dataset_period(movements: Sequence[Movement]) -> tuple[str | None, str | None]:
    """Earliest and latest ``fecha`` under the sortable key."""

    if not movements:
        return None, None
    keyed = sorted(movements, key=lambda m: sortable_date_key(m.fecha))
    return keyed[0].fecha, keyed[-1].fecha


def determine_dataset_currency(rows: Sequence[CSVRow]) -> str:
    for row in rows:
        code = row.divisa.strip()
        if code:
            return code.upper()
    return DEFAULT_CURRENCY


def generate_dataset_name(
    custom_name: str | None = None,
    file_name: str | None = None,
    *,
    today: date | None = None,
) -> str:
    """Explicit name, else the file name without extension, else ``Dataset_<date>``."""

    if custom_name and custom_name.strip():
        return custom_name.strip()
    if file_name:
        stem = PurePath(file_name).stem if "." in file_name else file_name
        if stem:
            return stem
    return f"Dataset_{(today or date.today()).isoformat()}"


def build_dataset_from_rows(
    rows: Sequence[CSVRow],
    file_name: str,
    dataset_name: str | None = None,
    imported_by: str | None = None,
    dataset_type: str = DEFAULT_DATASET_TYPE,
) -> ProcessedDataset:
    """Transform ``rows`` and wrap the surviving movements in a dataset.

    Raises
    ------
    EmptyDatasetError
        When no row survives the transformation. This is the only hard
        failure of the builder; per-row problems are logged and dropped.
    """

    transformed = transform_rows_to_movements(rows)
    if not transformed.movements:
        raise EmptyDatasetError(NO_VALID_MOVEMENTS, field="movements", value=transformed.errors)

    start, end = calculate_dataset_period(transformed.movements)
    dataset = ProcessedDataset(
        dataset_name=generate_dataset_name(dataset_name, file_name),
        original_file_name=file_name,
        imported_by=imported_by,
        currency=determine_dataset_currency(rows),
        dataset_type=dataset_type,
        movements=transformed.movements,
        period_start=start,
        period_end=end,
    )
    _logger.info(
        "datasets:built name=%s movements=%d period=%s..%s currency=%s dropped=%d",
        dataset.dataset_name,
        len(dataset.movements),
        start,
        end,
        dataset.currency,
        len(transformed.errors),
    )
    return dataset


def merge_datasets(
    datasets: Sequence[ProcessedDataset], merged_name: str | None = None
) -> ProcessedDataset:
    """Concatenate datasets; a single dataset is returned as-is.

    The first currency other than the default, and the first dataset type
    other than the default, win.
    """

    if not datasets:
        raise CSVValidationError("No datasets to merge", field="datasets")
    if len(datasets) == 1:
        return datasets[0]

    movements: list[Movement] = []
    currency = DEFAULT_CURRENCY
    dataset_type = DEFAULT_DATASET_TYPE
    imported_by: str | None = None
    for ds in datasets:
        movements.extend(ds.movements)
        if currency == DEFAULT_CURRENCY and ds.currency != DEFAULT_CURRENCY:
            currency = ds.currency
        if dataset_type == DEFAULT_DATASET_TYPE and ds.dataset_type != DEFAULT_DATASET_TYPE:
            dataset_type = ds.dataset_type
        if imported_by is None:
            imported_by = ds.imported_by

    ordered = sort_movements_by_date(movements)
    start, end = calculate_dataset_period(ordered)
    return ProcessedDataset(
        dataset_name=merged_name or f"Merged_Dataset_{len(datasets)}_files",
        original_file_name=", ".join(ds.original_file_name for ds in datasets),
        imported_by=imported_by,
        currency=currency,
        dataset_type=dataset_type,
        movements=ordered,
        period_start=start,
        period_end=end,
    )


def filter_dataset(dataset: ProcessedDataset, filters: DatasetFilter) -> ProcessedDataset:
    """New dataset keeping movements that satisfy every supplied predicate.

    ``categories`` matches either the category group or the full
    ``"Group:Subgroup"`` key.
    """

    kept = list(dataset.movements)
    if filters.date_range is not None:
        lo, hi = (sortable_date_key(d) for d in filters.date_range)
        kept = [m for m in kept if lo <= sortable_date_key(m.fecha) <= hi]
    if filters.min_amount is not None:
        kept = [m for m in kept if m.monto >= filters.min_amount]
    if filters.max_amount is not None:
        kept = [m for m in kept if m.monto <= filters.max_amount]
    if filters.types:
        kept = [m for m in kept if m.tipo in filters.types]
    if filters.categories:
        wanted = set(filters.categories)
        kept = [m for m in kept if m.categoria.grupo in wanted or m.categoria.key in wanted]

    start, end = calculate_dataset_period(kept)
    return replace(dataset, movements=kept, period_start=start, period_end=end)


def calculate_dataset_statistics(dataset: ProcessedDataset) -> DatasetStatistics:
    movements = dataset.movements
    total = sum((m.monto for m in movements), Decimal(0))
    ingresos = [m.monto for m in movements if m.tipo == "ingreso"]
    egresos = [m.monto for m in movements if m.tipo == "egreso"]
    total_ingresos = sum(ingresos, Decimal(0))
    total_egresos = sum(egresos, Decimal(0))
    return DatasetStatistics(
        total_movements=len(movements),
        total_amount=total,
        average_amount=total / len(movements) if movements else Decimal(0),
        ingresos_count=len(ingresos),
        egresos_count=len(egresos),
        total_ingresos=total_ingresos,
        total_egresos=total_egresos,
        balance=total_ingresos - total_egresos,
    )


@dataclass(frozen=True, slots=True)
class PeriodSummary:
    """Totals for one ``MM/YYYY`` month."""

    period: str
    count: int
    total_ingresos: Decimal
    total_egresos: Decimal

    @property
    def balance(self) -> Decimal:
        return self.total_ingresos - self.total_egresos


@dataclass(frozen=True, slots=True)
class EnrichedDataset:
    dataset: ProcessedDataset
    statistics: DatasetStatistics
    by_category: dict[str, CategoryGroup]
    by_period: dict[str, PeriodSummary]
    description: str | None = None
    tags: tuple[str, ...] = ()
    metadata: dict[str, object] = field(default_factory=dict)


def summarize_by_period(movements: Sequence[Movement]) -> dict[str, PeriodSummary]:
    """Monthly totals keyed ``MM/YYYY``, in chronological order.

    Movements whose ``fecha`` is not ``DD/MM/YYYY`` are left out.
    """

    buckets: dict[str, list[Movement]] = {}
    for m in sort_movements_by_date(movements):
        parts = m.fecha.split("/")
        if len(parts) != 3 or not all(parts):
            continue
        buckets.setdefault(f"{parts[1]}/{parts[2]}", []).append(m)
    return {
        period: PeriodSummary(
            period=period,
            count=len(ms),
            total_ingresos=sum((m.monto for m in ms if m.tipo == "ingreso"), Decimal(0)),
            total_egresos=sum((m.monto for m in ms if m.tipo == "egreso"), Decimal(0)),
        )
        for period, ms in buckets.items()
    }


def enrich_dataset(
    dataset: ProcessedDataset,
    *,
    description: str | None = None,
    tags: Sequence[str] = (),
    metadata: Mapping[str, object] | None = None,
    statistics: DatasetStatistics | None = None,
) -> EnrichedDataset:
    """Attach descriptive info and summaries to ``dataset``.

    ``statistics`` is computed with :func:`calculate_dataset_statistics`
    unless supplied. Category summaries are keyed like
    :func:`~cashflow_import.transform.group_movements_by_category`.
    """

    return EnrichedDataset(
        dataset=dataset,
        statistics=statistics or calculate_dataset_statistics(dataset),
        by_category=group_movements_by_category(dataset.movements),
        by_period=summarize_by_period(dataset.movements),
        description=description,
        tags=tuple(tags),
        metadata=dict(metadata or {}),
    )


def validate_dataset(dataset: ProcessedDataset) -> ValidationResult:
    result = ValidationResult()
    if not dataset.dataset_name.strip():
        result.errors.append("Missing dataset name")
    if not dataset.original_file_name.strip():
        result.errors.append("Missing original file name")
    if not dataset.dataset_type.strip():
        result.warnings.append("Dataset type not specified")
    if not dataset.currency.strip():
        result.warnings.append(f"Currency not specified, {DEFAULT_CURRENCY} will be used")

    if not dataset.movements:
        result.errors.append("Dataset has no movements")
    else:
        invalid = [m for m in dataset.movements if not m.fecha or not m.categoria.grupo or m.monto <= 0]
        if invalid:
            result.errors.append(f"{len(invalid)} invalid movements found")

    if dataset.period_start and dataset.period_end:
        if sortable_date_key(dataset.period_start) > sortable_date_key(dataset.period_end):
            result.errors.append("Period start is after period end")
    return result


__all__ = [
    "calculate_dataset_period",
    "determine_dataset_currency",
    "generate_dataset_name",
    "build_dataset_from_rows",
    "merge_datasets",
    "filter_dataset",
    "calculate_dataset_statistics",
    "PeriodSummary",
    "EnrichedDataset",
    "summarize_by_period",
    "enrich_dataset",
    "validate_dataset",
]
