"""Row parser driven by an explicit field -> header-text mapping.

The first line is always the header. Each logical field is read through
``mapping[field] -> header text -> column index``; unmapped fields read as
empty. Direction comes from the sign of a mapped ``importe`` column, or from
separate ``egreso``/``ingreso`` columns where the larger magnitude wins
(``egreso`` on ties).
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from decimal import Decimal

from ..diagnostics import Diagnostics
from ..errors import NO_ROWS, NO_VALID_ROWS
from ..logging_setup import get_logger
from ..models import (
    AMOUNT_MAPPING_FIELDS,
    DEFAULT_CURRENCY,
    REQUIRED_MAPPING_FIELDS,
    ColumnMapping,
    CSVRow,
    Direction,
    ParseResult,
    ValidationResult,
)
from ..normalizers import parse_number
from ..tokenizer import DEFAULT_CLASSIFIER, TokenClassifier, tokenize_smart
from .headers import column_index_map, header_tokens, split_lines
from .row_parser import validate_row_required_fields

_logger = get_logger("cashflow_import.parsers.mapping_parser")

_MIN_ROW_TOKENS = 3

# Keyword lists for automatic mapping, in priority order per field.
_AUTO_MAPPING_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("fecha", ("fecha", "date")),
    ("categoria", ("categoria", "category", "categoría")),
    ("importe", ("importe", "amount", "monto")),
    ("egreso", ("egreso", "expense", "gasto")),
    ("ingreso", ("ingreso", "income", "entrada")),
    ("identificador", ("identificador", "id", "identifier")),
    ("estado", ("estado", "status", "state")),
    ("tipo", ("tipo", "type")),
    ("cuenta", ("cuenta", "account")),
    ("beneficiario", ("beneficiario", "beneficiary", "payee")),
    ("divisa", ("divisa", "currency", "moneda")),
    ("numero", ("numero", "number", "número")),
    ("nota", ("nota", "note", "description", "descripcion")),
)


# ---------------------------------------------------------------------------
# Mapping validation and suggestion
# ---------------------------------------------------------------------------


def validate_column_mapping(mapping: ColumnMapping, headers: Sequence[str]) -> ValidationResult:
    """Check ``mapping`` against the header row; one error per violation."""

    result = ValidationResult()
    available = {h.strip().lower() for h in headers}

    def exists(field: str) -> bool:
        header = mapping.get(field)
        return bool(header) and header.lower() in available

    for field in REQUIRED_MAPPING_FIELDS:
        header = mapping.get(field)
        if not header:
            result.errors.append(f"Missing required field: {field}")
        elif not exists(field):
            result.errors.append(f"Column mapped for '{field}' does not exist in the CSV: {header}")

    if not any(exists(f) for f in AMOUNT_MAPPING_FIELDS):
        result.errors.append("At least one egreso, ingreso or importe column is required")

    for field, header in mapping.items():
        if field in REQUIRED_MAPPING_FIELDS:
            continue
        if not exists(field):
            result.errors.append(f"Column mapped for '{field}' does not exist in the CSV: {header}")

    return result


def validate_required_mapping_fields(mapping: ColumnMapping) -> list[str]:
    """Required fields the mapping leaves unset (independent of any header)."""

    return mapping.required_fields_missing()


def create_automatic_column_mapping(headers: Sequence[str]) -> ColumnMapping:
    """Guess a mapping from header keywords (substring, case-insensitive)."""

    found: dict[str, str] = {}
    for field, keywords in _AUTO_MAPPING_KEYWORDS:
        for keyword in keywords:
            header = next((h for h in headers if keyword in h.lower()), None)
            if header is not None:
                found[field] = header
                break
    return ColumnMapping.model_validate(found)


def suggest_column_mapping(headers: Sequence[str], target_fields: Sequence[str]) -> dict[str, str]:
    """First header that contains, or is contained in, each target field name."""

    suggestions: dict[str, str] = {}
    for target in target_fields:
        t = target.lower()
        match = next((h for h in headers if t in h.lower() or h.lower() in t), None)
        if match is not None:
            suggestions[target] = match
    return suggestions


# ---------------------------------------------------------------------------
# Row construction
# ---------------------------------------------------------------------------


def _amount_and_direction(value_of: Callable[[str], str]) -> tuple[Decimal, Direction | None]:
    importe_raw = value_of("importe")
    if importe_raw:
        signed = parse_number(importe_raw)
        return abs(signed), ("ingreso" if signed >= 0 else "egreso")

    egreso = abs(parse_number(value_of("egreso")))
    ingreso = abs(parse_number(value_of("ingreso")))
    if egreso > 0 and egreso >= ingreso:
        return egreso, "egreso"
    if ingreso > 0:
        return ingreso, "ingreso"
    return Decimal(0), None


def tokens_to_row_with_mapping(
    tokens: Sequence[str],
    mapping: ColumnMapping,
    index_map: Mapping[str, int],
) -> CSVRow:
    def value_of(field: str) -> str:
        header = mapping.get(field)
        if not header:
            return ""
        idx = index_map.get(header.lower())
        if idx is None or idx >= len(tokens):
            return ""
        return tokens[idx]

    importe, tipo = _amount_and_direction(value_of)
    categoria = value_of("categoria")
    subcategoria = value_of("subcategoria")
    if subcategoria and ":" not in categoria:
        categoria = f"{categoria}:{subcategoria}"

    return CSVRow(
        identificador=value_of("identificador"),
        fecha=value_of("fecha"),
        estado=value_of("estado"),
        tipo=tipo or "",
        cuenta=value_of("cuenta"),
        beneficiario=value_of("beneficiario"),
        categoria=categoria,
        importe=importe,
        divisa=value_of("divisa") or DEFAULT_CURRENCY,
        numero=value_of("numero"),
        notas=value_of("nota"),
    )


def parse_content_with_mapping(
    content: str,
    mapping: ColumnMapping | Mapping[str, str],
    *,
    classifier: TokenClassifier = DEFAULT_CLASSIFIER,
) -> ParseResult:
    """Parse ``content`` reading fields through ``mapping``.

    An invalid mapping short-circuits with zero rows and one error per
    violation; no partial parse is attempted.
    """

    if not isinstance(mapping, ColumnMapping):
        mapping = ColumnMapping.from_mapping(mapping)

    diag = Diagnostics()
    result = ParseResult()
    lines = split_lines(content)
    if not lines:
        result.errors.append(NO_ROWS)
        return result

    headers = header_tokens(lines[0])
    expected = len(headers)
    result.metadata.total_lines = len(lines)
    result.metadata.expected_columns = expected

    validation = validate_column_mapping(mapping, headers)
    if not validation.is_valid:
        result.errors.extend(validation.errors)
        result.metadata.invalid_rows = len(lines) - 1
        diag.record("mapping_parser:invalid_mapping", errors=len(validation.errors))
        result.diagnostics = diag.events
        return result

    index_map = column_index_map(headers)
    diag.record("mapping_parser:header", line_number=1, expected_columns=expected)

    rows: list[CSVRow] = []
    for number, raw in enumerate(lines[1:], start=2):
        tokens = tokenize_smart(
            raw.strip(),
            expected,
            None,
            classifier=classifier,
            diagnostics=diag,
            line_number=number,
        )
        if len(tokens) < _MIN_ROW_TOKENS:
            result.warnings.append(
                f"Row {number}: insufficient tokens ({len(tokens)} < {_MIN_ROW_TOKENS})"
            )
            diag.record("mapping_parser:skipped", "insufficient tokens", line_number=number)
            continue
        row = tokens_to_row_with_mapping(tokens, mapping, index_map)
        missing = validate_row_required_fields(row)
        if missing:
            result.errors.append(f"Row {number}: missing required fields: {', '.join(missing)}")
            continue
        rows.append(row)

    if not rows:
        result.errors.append(NO_VALID_ROWS)

    result.rows = rows
    result.metadata.valid_rows = len(rows)
    result.metadata.invalid_rows = len(lines) - 1 - len(rows)
    result.diagnostics = diag.events
    _logger.debug(
        "mapping_parser:done lines=%d rows=%d errors=%d", len(lines), len(rows), len(result.errors)
    )
    return result


__all__ = [
    "validate_column_mapping",
    "validate_required_mapping_fields",
    "create_automatic_column_mapping",
    "suggest_column_mapping",
    "tokens_to_row_with_mapping",
    "parse_content_with_mapping",
]
