"""Row parser for movement exports without an explicit column mapping.

Fields are located either by declared ``ColumnDefinition.order`` or, when no
definitions are given, by the fixed export layout::

    Identificador, Fecha, Estado, Tipo, Cuenta, Beneficiario, <category...>,
    Importe, Divisa, Numero, <notes...>

The amount is the declared ``Importe`` column, else the first plain number
after the payee. The category is the declared ``Categoría`` column, else
every token between payee and amount. Notes come from a declared ``Notas``
column or from the tokens trailing the amount.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from ..diagnostics import Diagnostics
from ..errors import NO_ROWS, NO_VALID_ROWS, CSVParseError
from ..logging_setup import get_logger
from ..models import DEFAULT_CURRENCY, ColumnCommasConfig, ColumnDefinition, CSVRow, ParseResult
from ..normalizers import parse_number
from ..tokenizer import DEFAULT_CLASSIFIER, TokenClassifier, tokenize_smart
from .headers import fold, header_tokens, is_csv_header, split_lines

_logger = get_logger("cashflow_import.parsers.row_parser")

# ---- Tunables (private) ----
_MIN_ROW_TOKENS = 8
_NOTE_MIN_LENGTH = 10

# 0-based positions of the leading fields when no definitions are declared.
_POSITIONAL_FIELDS: Mapping[str, int] = {
    "identificador": 0,
    "fecha": 1,
    "estado": 2,
    "tipo": 3,
    "cuenta": 4,
    "beneficiario": 5,
}


class _FieldLocator:
    """Resolve a field name to a token index, by declaration or by position."""

    def __init__(self, column_defs: Sequence[ColumnDefinition] | None) -> None:
        self._declared: dict[str, int] | None = None
        if column_defs:
            self._declared = {fold(d.name): d.order - 1 for d in column_defs}

    @property
    def positional(self) -> bool:
        return self._declared is None

    def index(self, name: str) -> int | None:
        if self._declared is None:
            return _POSITIONAL_FIELDS.get(name)
        return self._declared.get(name)

    def value(self, tokens: Sequence[str], name: str) -> str:
        idx = self.index(name)
        if idx is None or idx >= len(tokens):
            return ""
        return tokens[idx]


@dataclass(frozen=True, slots=True)
class HeaderInfo:
    is_valid: bool
    headers: list[str]
    expected_columns: int


def parse_header(first_line: str) -> HeaderInfo:
    headers = [h.lower() for h in header_tokens(first_line)]
    return HeaderInfo(is_valid=is_csv_header(headers), headers=headers, expected_columns=len(headers))


def validate_row_required_fields(row: CSVRow) -> list[str]:
    """Names of mandatory fields that are empty (``importe`` when zero)."""

    missing: list[str] = []
    if not row.fecha.strip():
        missing.append("fecha")
    if not row.categoria.strip():
        missing.append("categoria")
    if row.importe == 0:
        missing.append("importe")
    return missing


def _comma_config_from_defs(
    headers: Sequence[str] | None, column_defs: Sequence[ColumnDefinition]
) -> ColumnCommasConfig:
    config: ColumnCommasConfig = {}
    folded_headers = [fold(h) for h in headers] if headers is not None else None
    for d in column_defs:
        if d.max_commas is None:
            continue
        if folded_headers is None:
            config[d.order - 1] = d.max_commas
            continue
        name = fold(d.name)
        idx = next((i for i, h in enumerate(folded_headers) if name in h), None)
        if idx is not None:
            config[idx] = d.max_commas
    return config


def _notes_from_tokens(tokens: Sequence[str], amount_idx: int, numero: str, divisa: str) -> tuple[str, int]:
    """Assemble notes from the tokens after the amount; returns (notes, strategy)."""

    after_numero = amount_idx + 3
    if len(tokens) > after_numero:
        picked, strategy = tokens[after_numero:], 1
    elif len(tokens) > amount_idx + 2 and not numero:
        picked, strategy = tokens[amount_idx + 2 :], 2
    elif len(tokens) > amount_idx + 1 and not divisa:
        picked, strategy = tokens[amount_idx + 1 :], 3
    else:
        picked, strategy = [], 4
        for k in range(amount_idx + 1, len(tokens)):
            tok = tokens[k]
            if len(tok) > _NOTE_MIN_LENGTH and " " in tok:
                picked = tokens[k:]
                break
    return ", ".join(t for t in picked if t).strip(), strategy


def tokens_to_row(
    tokens: Sequence[str],
    column_defs: Sequence[ColumnDefinition] | None = None,
    *,
    line_number: int | None = None,
    classifier: TokenClassifier = DEFAULT_CLASSIFIER,
    diagnostics: Diagnostics | None = None,
) -> CSVRow:
    """Build a :class:`CSVRow` from one tokenized line.

    Raises
    ------
    CSVParseError
        When no amount column can be located.
    """

    diag = diagnostics if diagnostics is not None else Diagnostics()
    locator = _FieldLocator(column_defs)
    label = f"Row {line_number}" if line_number is not None else "Row"

    payee_idx = locator.index("beneficiario")
    amount_idx = locator.index("importe")
    if amount_idx is not None:
        if amount_idx >= len(tokens):
            raise CSVParseError(
                f"{label}: declared amount column {amount_idx + 1} is missing",
                line_number=line_number,
            )
        diag.record("row_parser:amount", "declared", line_number=line_number, index=amount_idx)
    else:
        start = payee_idx + 1 if payee_idx is not None else 0
        amount_idx = next(
            (i for i in range(start, len(tokens)) if classifier.looks_numeric(tokens[i])),
            None,
        )
        if amount_idx is None:
            raise CSVParseError(f"{label}: amount not found", line_number=line_number)
        diag.record("row_parser:amount", "scanned", line_number=line_number, index=amount_idx)

    if locator.index("categoria") is not None:
        # An empty declared cell stays empty so the row is dropped.
        categoria = locator.value(tokens, "categoria")
        diag.record("row_parser:category", "declared", line_number=line_number)
    else:
        span_start = payee_idx + 1 if payee_idx is not None else 0
        categoria = ", ".join(tokens[span_start:amount_idx]).strip()
        diag.record(
            "row_parser:category",
            "assembled",
            line_number=line_number,
            start=span_start,
            end=amount_idx,
            value=categoria,
        )

    divisa_raw = locator.value(tokens, "divisa") if not locator.positional else ""
    if not divisa_raw and amount_idx + 1 < len(tokens):
        divisa_raw = tokens[amount_idx + 1]
    numero = locator.value(tokens, "numero") if not locator.positional else ""
    if not numero and amount_idx + 2 < len(tokens):
        numero = tokens[amount_idx + 2]

    notas = locator.value(tokens, "notas")
    if notas:
        diag.record("row_parser:notes", "declared", line_number=line_number)
    else:
        notas, strategy = _notes_from_tokens(tokens, amount_idx, numero, divisa_raw)
        diag.record("row_parser:notes", "assembled", line_number=line_number, strategy=strategy)

    return CSVRow(
        identificador=locator.value(tokens, "identificador"),
        fecha=locator.value(tokens, "fecha"),
        estado=locator.value(tokens, "estado"),
        tipo=locator.value(tokens, "tipo"),
        cuenta=locator.value(tokens, "cuenta"),
        beneficiario=locator.value(tokens, "beneficiario"),
        categoria=categoria,
        importe=parse_number(tokens[amount_idx]),
        divisa=divisa_raw or DEFAULT_CURRENCY,
        numero=numero,
        notas=notas,
    )


def parse_content(
    content: str,
    column_defs: Sequence[ColumnDefinition] | None = None,
    *,
    classifier: TokenClassifier = DEFAULT_CLASSIFIER,
) -> ParseResult:
    """Parse a whole CSV text into :class:`CSVRow` records.

    Parameters
    ----------
    content:
        Decoded file text; CRLF and LF line endings are both accepted.
    column_defs:
        Optional declared schema. Each ``max_commas`` is matched against the
        header text (accent- and case-insensitive) to build the comma config
        for smart tokenization; ``order`` locates the named fields.
    classifier:
        Numeric/text heuristic shared with the tokenizer.

    Returns
    -------
    ParseResult
        Rows plus warnings (short lines), errors (unusable rows) and the
        trace of tokenizer/parser decisions. A text yielding no rows carries
        an explanatory error instead of raising.
    """

    diag = Diagnostics()
    result = ParseResult()
    lines = split_lines(content)
    if not lines:
        result.errors.append(NO_ROWS)
        return result

    header = parse_header(lines[0])
    expected = header.expected_columns
    comma_config: ColumnCommasConfig = {}
    if column_defs:
        comma_config = _comma_config_from_defs(header.headers if header.is_valid else None, column_defs)
    diag.record(
        "row_parser:header",
        "detected" if header.is_valid else "absent",
        line_number=1,
        expected_columns=expected,
        comma_config=dict(comma_config),
    )

    start = 1 if header.is_valid else 0
    rows: list[CSVRow] = []
    for number, raw in enumerate(lines[start:], start=start + 1):
        line = raw.strip()
        tokens = tokenize_smart(
            line,
            expected,
            comma_config,
            classifier=classifier,
            diagnostics=diag,
            line_number=number,
        )
        if len(tokens) < _MIN_ROW_TOKENS:
            result.warnings.append(
                f"Row {number}: insufficient tokens ({len(tokens)} < {_MIN_ROW_TOKENS})"
            )
            diag.record("row_parser:skipped", "insufficient tokens", line_number=number, tokens=len(tokens))
            continue
        try:
            row = tokens_to_row(
                tokens,
                column_defs,
                line_number=number,
                classifier=classifier,
                diagnostics=diag,
            )
        except CSVParseError as e:
            result.errors.append(str(e))
            continue
        missing = validate_row_required_fields(row)
        if missing:
            result.errors.append(f"Row {number}: missing required fields: {', '.join(missing)}")
            continue
        rows.append(row)

    if not rows:
        result.errors.append(NO_VALID_ROWS)

    data_lines = len(lines) - start
    result.rows = rows
    result.metadata.total_lines = len(lines)
    result.metadata.valid_rows = len(rows)
    result.metadata.invalid_rows = data_lines - len(rows)
    result.metadata.expected_columns = expected
    result.diagnostics = diag.events
    _logger.debug(
        "row_parser:done lines=%d rows=%d errors=%d warnings=%d",
        len(lines),
        len(rows),
        len(result.errors),
        len(result.warnings),
    )
    return result


__all__ = [
    "HeaderInfo",
    "parse_header",
    "validate_row_required_fields",
    "tokens_to_row",
    "parse_content",
]
