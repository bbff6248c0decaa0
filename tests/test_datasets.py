from __future__ import annotations

from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from cashflow_import.datasets import (
    build_dataset_from_rows,
    calculate_dataset_period,
    calculate_dataset_statistics,
    determine_dataset_currency,
    enrich_dataset,
    filter_dataset,
    generate_dataset_name,
    merge_datasets,
    validate_dataset,
)
from cashflow_import.errors import CSVValidationError, EmptyDatasetError
from cashflow_import.models import Category, CSVRow, DatasetFilter, Movement
from cashflow_import.normalizers import sortable_date_key
from cashflow_import.parsers import parse_content
from cashflow_import.transform import (
    calculate_movement_statistics,
    enrich_movements,
    filter_valid_movements,
    group_movements_by_category,
    group_movements_by_type,
    movements_to_api,
    transform_rows_to_movements,
)


def _row(fecha: str, categoria: str, importe: str, divisa: str = "") -> CSVRow:
    return CSVRow(fecha=fecha, categoria=categoria, importe=Decimal(importe), divisa=divisa)


@pytest.fixture
def rows() -> list[CSVRow]:
    return [
        _row("15/01/24", "Sueldo", "1000.50", ""),
        _row("01/01/24", "Comida:Super", "-250", "usd"),
        _row("03/02/24", "Comida:Snacks", "-20", "ARS"),
    ]


def test_build_dataset_from_rows(rows: list[CSVRow]) -> None:
    ds = build_dataset_from_rows(rows, "extracto_enero.csv", imported_by="u1")
    assert ds.dataset_name == "extracto_enero"
    assert ds.original_file_name == "extracto_enero.csv"
    assert ds.imported_by == "u1"
    assert ds.currency == "USD"
    assert ds.dataset_type == "cashflow"
    assert [m.fecha for m in ds.movements] == ["01/01/2024", "15/01/2024", "03/02/2024"]
    assert (ds.period_start, ds.period_end) == ("01/01/2024", "03/02/2024")


def test_end_to_end_dataset(mmex_content: str) -> None:
    ds = build_dataset_from_rows(parse_content(mmex_content).rows, "mmex.csv")
    first = ds.movements[0]
    assert first.fecha == "01/01/2024"
    assert first.categoria == Category("Comida", "Super")
    assert first.tipo == "egreso"
    assert first.monto == Decimal("250")
    assert first.nota == "Compra semanal"
    assert all(m.monto > 0 for m in ds.movements)


def test_period_invariant(rows: list[CSVRow]) -> None:
    ds = build_dataset_from_rows(rows, "x.csv")
    assert sortable_date_key(ds.period_start) <= sortable_date_key(ds.period_end)
    dates = {m.fecha for m in ds.movements}
    assert ds.period_start in dates
    assert ds.period_end in dates


def test_zero_movements_raise() -> None:
    with pytest.raises(EmptyDatasetError) as excinfo:
        build_dataset_from_rows([_row("", "A", "1"), _row("01/01/24", "A", "0")], "x.csv")
    assert excinfo.value.field == "movements"
    assert len(excinfo.value.value) == 2


def test_invalid_rows_are_dropped_not_fatal(rows: list[CSVRow]) -> None:
    ds = build_dataset_from_rows([*rows, _row("", "A", "5")], "x.csv")
    assert len(ds.movements) == 3


def test_generate_dataset_name() -> None:
    assert generate_dataset_name("  Mi dataset ", "a.csv") == "Mi dataset"
    assert generate_dataset_name(None, "dir/export.2024.csv") == "export.2024"
    assert generate_dataset_name(None, "noext") == "noext"
    assert generate_dataset_name(None, None, today=date(2024, 3, 5)) == "Dataset_2024-03-05"


def test_determine_dataset_currency_defaults() -> None:
    assert determine_dataset_currency([_row("1/1/24", "A", "1")]) == "ARS"
    assert determine_dataset_currency([_row("1/1/24", "A", "1", " eur ")]) == "EUR"


def test_calculate_dataset_period_empty() -> None:
    assert calculate_dataset_period([]) == (None, None)


def test_merge_single_dataset_is_identity(rows: list[CSVRow]) -> None:
    ds = build_dataset_from_rows(rows, "x.csv")
    assert merge_datasets([ds]) is ds


def test_merge_two_datasets(rows: list[CSVRow]) -> None:
    d1 = build_dataset_from_rows(rows[:1], "a.csv", imported_by="u1")
    d2 = build_dataset_from_rows(rows[1:], "b.csv")
    merged = merge_datasets([d1, d2])
    assert len(merged.movements) == len(d1.movements) + len(d2.movements)
    assert merged.dataset_name == "Merged_Dataset_2_files"
    assert merged.original_file_name == "a.csv, b.csv"
    assert merged.currency == "USD"
    assert merged.imported_by == "u1"
    assert merged.period_start == "01/01/2024"
    assert merge_datasets([d1, d2], "Todo").dataset_name == "Todo"


def test_merge_nothing_raises() -> None:
    with pytest.raises(CSVValidationError):
        merge_datasets([])


def test_filter_dataset(rows: list[CSVRow]) -> None:
    ds = build_dataset_from_rows(rows, "x.csv")
    only_food = filter_dataset(ds, DatasetFilter(categories=("Comida",)))
    assert len(only_food.movements) == 2
    exact = filter_dataset(ds, DatasetFilter(categories=("Comida:Snacks",)))
    assert [m.monto for m in exact.movements] == [Decimal("20")]
    expenses = filter_dataset(ds, DatasetFilter(types=("egreso",), min_amount=Decimal("100")))
    assert [m.monto for m in expenses.movements] == [Decimal("250")]
    january = filter_dataset(ds, DatasetFilter(date_range=("01/01/2024", "31/01/2024")))
    assert len(january.movements) == 2
    assert january.period_end == "15/01/2024"
    assert len(ds.movements) == 3


def test_calculate_dataset_statistics(rows: list[CSVRow]) -> None:
    stats = calculate_dataset_statistics(build_dataset_from_rows(rows, "x.csv"))
    assert stats.total_movements == 3
    assert stats.total_amount == Decimal("1270.50")
    assert stats.ingresos_count == 1
    assert stats.egresos_count == 2
    assert stats.total_egresos == Decimal("270")
    assert stats.balance == Decimal("730.50")
    assert stats.average_amount == Decimal("1270.50") / 3


def test_validate_dataset(rows: list[CSVRow]) -> None:
    ds = build_dataset_from_rows(rows, "x.csv")
    assert validate_dataset(ds).is_valid
    broken = replace(ds, dataset_name=" ", period_start="01/01/2025")
    assert validate_dataset(broken).errors == ["Missing dataset name", "Period start is after period end"]


def test_transform_rows_reports_dropped_rows(rows: list[CSVRow]) -> None:
    out = transform_rows_to_movements([_row("", "A", "1"), *rows])
    assert out.errors == ["Row 1: could not be transformed into a movement"]
    assert len(out.movements) == 3


def test_movement_groupings(rows: list[CSVRow]) -> None:
    movements = transform_rows_to_movements(rows).movements
    by_type = group_movements_by_type(movements)
    assert by_type.total_ingresos == Decimal("1000.50")
    assert by_type.balance == Decimal("730.50")

    by_cat = group_movements_by_category(movements)
    assert set(by_cat) == {"Sueldo", "Comida:Super", "Comida:Snacks"}
    assert by_cat["Comida:Super"].count == 1

    stats = calculate_movement_statistics(movements)
    assert (stats.date_start, stats.date_end) == ("01/01/2024", "03/02/2024")


def test_filter_valid_movements() -> None:
    good = Movement("01/01/2024", Category("A"), "egreso", Decimal(1))
    bad = Movement("", Category(""), "ingreso", Decimal(1))
    summary = filter_valid_movements([good, bad])
    assert summary.valid == [good]
    assert summary.invalid[0][1] == ["Missing date", "Missing category group"]
    assert summary.valid_percentage == 50.0


def test_enrich_movements_running_balance(rows: list[CSVRow]) -> None:
    movements = transform_rows_to_movements(rows).movements
    enriched = enrich_movements(movements)
    assert [m.saldo for m in enriched] == [Decimal("-250"), Decimal("750.50"), Decimal("730.50")]
    custom = enrich_movements(movements, lambda m, i: Decimal(i))
    assert [m.saldo for m in custom] == [Decimal(0), Decimal(1), Decimal(2)]


def test_movements_to_api_serializes_amounts_as_numbers(rows: list[CSVRow]) -> None:
    api = movements_to_api(transform_rows_to_movements(rows).movements, source="csv")
    dumped = api[0].model_dump(mode="json")
    assert dumped["monto"] == 250.0
    assert dumped["categoria"] == {"grupo": "Comida", "subgrupo": "Super"}
    assert dumped["source"] == "csv"


def test_enrich_dataset_summaries(rows: list[CSVRow]) -> None:
    ds = build_dataset_from_rows(rows, "x.csv")
    enriched = enrich_dataset(ds, description="Extracto", tags=["banco"], metadata={"origen": "csv"})
    assert enriched.dataset is ds
    assert (enriched.description, enriched.tags, enriched.metadata) == ("Extracto", ("banco",), {"origen": "csv"})
    assert enriched.statistics == calculate_dataset_statistics(ds)
    assert set(enriched.by_category) == {"Sueldo", "Comida:Super", "Comida:Snacks"}
    assert enriched.by_category["Comida:Super"].total_amount == Decimal("250")

    assert list(enriched.by_period) == ["01/2024", "02/2024"]
    enero = enriched.by_period["01/2024"]
    assert (enero.count, enero.total_ingresos, enero.total_egresos) == (2, Decimal("1000.50"), Decimal("250"))
    assert enero.balance == Decimal("750.50")
    assert enriched.by_period["02/2024"].balance == Decimal("-20")


def test_enrich_dataset_keeps_supplied_statistics(rows: list[CSVRow]) -> None:
    ds = build_dataset_from_rows(rows, "x.csv")
    other = calculate_dataset_statistics(replace(ds, movements=ds.movements[:1]))
    assert enrich_dataset(ds, statistics=other).statistics is other
