from __future__ import annotations

from decimal import Decimal

import pytest

from cashflow_import.errors import NO_ROWS, NO_VALID_ROWS, CSVParseError
from cashflow_import.models import ColumnDefinition, CSVRow
from cashflow_import.parsers import (
    is_csv_header,
    parse_content,
    parse_header,
    split_lines,
    validate_row_required_fields,
)
from cashflow_import.parsers.headers import fold
from cashflow_import.parsers.row_parser import tokens_to_row

HEADER = "Identificador,Fecha,Estado,Tipo,Cuenta,Beneficiario,Categoria,Importe,Divisa,Numero,Notas"


def test_split_lines_accepts_crlf_and_skips_blanks() -> None:
    assert split_lines("a\r\nb\n\n  \nc") == ["a", "b", "c"]


def test_header_detection_matches_keyword_substrings() -> None:
    assert is_csv_header(["FECHA", "x"])
    assert is_csv_header(["Categoría"])
    assert is_csv_header(["Fecha_valor", "Monto"])
    assert is_csv_header(["FechaOperacion"])
    assert not is_csv_header(["1", "01/01/24", "Comida", "-10"])


def test_fold_strips_accents() -> None:
    assert fold(" Categoría ") == "categoria"
    assert fold("Número") == "numero"


def test_parse_header() -> None:
    info = parse_header(HEADER)
    assert info.is_valid
    assert info.expected_columns == 11
    assert info.headers[6] == "categoria"


def test_end_to_end_row(mmex_content: str) -> None:
    result = parse_content(mmex_content)
    assert result.errors == []
    assert len(result.rows) == 3
    row = result.rows[0]
    assert row == CSVRow(
        identificador="1",
        fecha="01/01/24",
        estado="ok",
        tipo="",
        cuenta="Cuenta1",
        beneficiario="Juan",
        categoria="Comida:Super",
        importe=Decimal("-250"),
        divisa="ARS",
        numero="",
        notas="Compra semanal",
    )
    assert result.rows[2].numero == "7"
    assert result.metadata.total_lines == 4
    assert result.metadata.valid_rows == 3
    assert result.metadata.invalid_rows == 0
    assert result.metadata.expected_columns == 11


def test_category_spans_tokens_between_payee_and_amount() -> None:
    content = HEADER + "\n1,01/01/24,ok,,C1,Juan,Food: Groceries, extra,-10,ARS,,nota"
    result = parse_content(content)
    assert result.rows[0].categoria == "Food: Groceries, extra"
    assert result.rows[0].importe == Decimal("-10")
    assert result.rows[0].notas == "nota"


def test_notes_keep_embedded_commas() -> None:
    content = HEADER + "\n1,01/01/24,ok,,C1,Juan,Comida,-10,ARS,5,primera parte,segunda"
    row = parse_content(content).rows[0]
    assert row.numero == "5"
    assert row.notas == "primera parte, segunda"


def test_short_rows_become_warnings() -> None:
    content = HEADER + "\n1,01/01/24,ok\n2,02/01/24,ok,,C1,Juan,Comida,-10,ARS,,"
    result = parse_content(content)
    assert result.warnings == ["Row 2: insufficient tokens (3 < 8)"]
    assert len(result.rows) == 1
    assert result.metadata.invalid_rows == 1


def test_row_without_amount_is_an_error() -> None:
    content = HEADER + "\n1,01/01/24,ok,,C1,Juan,Comida,sin monto,ARS,,x"
    result = parse_content(content)
    assert result.rows == []
    assert result.errors[0] == "Row 2: amount not found"
    assert result.errors[-1] == NO_VALID_ROWS


def test_zero_amount_and_missing_fields_are_dropped() -> None:
    content = HEADER + "\n1,,ok,,C1,Juan,Comida,0,ARS,,x"
    result = parse_content(content)
    assert result.rows == []
    assert result.errors[0] == "Row 2: missing required fields: fecha, importe"


def test_empty_content_reports_error_without_raising() -> None:
    result = parse_content("  \n\n")
    assert result.rows == []
    assert result.errors == [NO_ROWS]


def test_headerless_content_parses_first_line() -> None:
    content = "1,01/01/24,ok,,C1,Juan,Comida,-10,ARS,,x"
    result = parse_content(content)
    assert len(result.rows) == 1
    assert result.rows[0].identificador == "1"


def test_declared_columns_locate_fields_and_configure_commas() -> None:
    content = "\n".join(
        [
            "Fecha,Categoría,Importe,Notas",
            "01/01/24,Food: Groceries, extra,-10,super",
        ]
    )
    defs = [
        ColumnDefinition(name="Fecha", order=1),
        ColumnDefinition(name="Categoria", order=2, max_commas=2),
        ColumnDefinition(name="Importe", order=3),
        ColumnDefinition(name="Notas", order=4),
    ]
    result = parse_content(content, defs)
    # Four tokens after merging the category, below the eight-token minimum.
    assert result.rows == []
    assert result.warnings == ["Row 2: insufficient tokens (4 < 8)"]
    header_events = [e for e in result.diagnostics if e.kind == "row_parser:header"]
    assert header_events[0].data["comma_config"] == {1: 2}


def test_tokens_to_row_with_declared_columns() -> None:
    defs = [
        ColumnDefinition(name="Fecha", order=1),
        ColumnDefinition(name="Categoría", order=2),
        ColumnDefinition(name="Importe", order=3),
        ColumnDefinition(name="Divisa", order=4),
        ColumnDefinition(name="Notas", order=5),
    ]
    row = tokens_to_row(["01/01/24", "Comida:Super", "-12.5", "usd", "algo"], defs, line_number=3)
    assert row.fecha == "01/01/24"
    assert row.categoria == "Comida:Super"
    assert row.importe == Decimal("-12.5")
    assert row.divisa == "usd"
    assert row.notas == "algo"


def test_tokens_to_row_missing_declared_amount_column_raises() -> None:
    defs = [ColumnDefinition(name="Importe", order=9)]
    with pytest.raises(CSVParseError) as excinfo:
        tokens_to_row(["a", "b"], defs, line_number=4)
    assert excinfo.value.line_number == 4


def test_validate_row_required_fields() -> None:
    assert validate_row_required_fields(CSVRow(fecha="x", categoria="y", importe=Decimal(1))) == []
    assert validate_row_required_fields(CSVRow()) == ["fecha", "categoria", "importe"]


def test_diagnostics_trace_decisions(mmex_content: str) -> None:
    result = parse_content(mmex_content)
    kinds = {e.kind for e in result.diagnostics}
    assert {"row_parser:header", "row_parser:amount", "row_parser:category", "row_parser:notes"} <= kinds


def test_empty_declared_category_drops_the_row() -> None:
    names = ["Fecha", "Descripcion", "Categoría", "Importe", "Divisa", "Numero", "Notas", "Cuenta"]
    defs = [ColumnDefinition(name=n, order=i) for i, n in enumerate(names, start=1)]
    content = "\n".join(
        [
            "Fecha,Descripcion,Categoria,Importe,Divisa,Numero,Notas,Cuenta",
            "01/01/24,Pago luz,,-50,ARS,,nota larga aqui,Banco",
            "02/01/24,Garrafa,Hogar,-30,ARS,,otra nota,Banco",
        ]
    )
    result = parse_content(content, defs)
    assert [r.categoria for r in result.rows] == ["Hogar"]
    assert result.errors == ["Row 2: missing required fields: categoria"]
