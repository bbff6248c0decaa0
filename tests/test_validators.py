from __future__ import annotations

from decimal import Decimal

import pytest

from cashflow_import.errors import EMPTY_FILE
from cashflow_import.models import ColumnDefinition, CSVRow
from cashflow_import.validators import (
    validate_amount,
    validate_category,
    validate_column_definitions,
    validate_csv_content,
    validate_csv_row,
    validate_currency_code,
    validate_date_format,
    validate_movement_type,
)


@pytest.mark.parametrize(
    ("value", "ok"),
    [
        ("01/01/2024", True),
        ("29/2/2023", True),  # February always allows 29
        ("30/02/2024", False),
        ("31/04/2024", False),
        ("1/13/2024", False),
        ("01/01/24", False),
        ("01/01/1899", False),
        ("2024-01-01", False),
        ("", False),
        (None, False),
    ],
)
def test_validate_date_format(value: str | None, ok: bool) -> None:
    assert validate_date_format(value) is ok


def test_scalar_validators() -> None:
    assert validate_currency_code("usd")
    assert not validate_currency_code("GBP")
    assert not validate_currency_code(None)
    assert validate_amount("-1.5")
    assert validate_amount(Decimal("3"))
    assert not validate_amount("abc")
    assert not validate_amount(None)
    assert validate_movement_type(" Ingreso ")
    assert not validate_movement_type("transfer")
    assert validate_category("Comida:Super")
    assert not validate_category("  ")
    assert not validate_category("---")


def test_validate_csv_row_collects_every_problem() -> None:
    row = CSVRow(fecha="99/99/2024", categoria="", importe=Decimal(0), divisa="XXX", tipo="otro")
    result = validate_csv_row(row)
    assert result.errors == [
        "Invalid or missing date",
        "Invalid or missing category",
        "Invalid currency code",
        "Invalid movement type",
    ]


def test_validate_csv_row_ok() -> None:
    row = CSVRow(fecha="01/01/2024", categoria="A", importe=Decimal("-5"), divisa="ARS")
    assert validate_csv_row(row).is_valid


def test_validate_column_definitions_reports_duplicates_and_bad_entries() -> None:
    result = validate_column_definitions(
        [
            ColumnDefinition(name="Fecha", order=1),
            {"name": "Fecha", "order": 1},
            {"name": "", "order": 0},
        ]
    )
    assert "Duplicate column name: Fecha" in result.errors
    assert "Duplicate order: 1" in result.errors
    assert any(e.startswith("Column definition 3: name:") for e in result.errors)
    assert any(e.startswith("Column definition 3: order:") for e in result.errors)


def test_validate_column_definitions_requires_one() -> None:
    assert validate_column_definitions([]).errors == ["At least one column definition is required"]


def test_validate_csv_content() -> None:
    assert validate_csv_content("").errors == [EMPTY_FILE]
    assert not validate_csv_content("Fecha,Importe").is_valid
    assert validate_csv_content("Fecha,Importe\n01/01/2024,5").is_valid
