"""Standalone field and structure validators.

Unlike the normalizers these are strict predicates: they answer "is this
value acceptable as-is?" and are used for pre-flight checks and reporting,
never to rewrite data.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from decimal import Decimal
from typing import Any

from pydantic import ValidationError

from .errors import EMPTY_FILE
from .models import ColumnDefinition, CSVRow, ValidationResult
from .normalizers import VALID_CURRENCIES, parse_number

_DATE_RE = re.compile(r"(\d{1,2})/(\d{1,2})/(\d{2,4})", re.ASCII)
_ALNUM_RE = re.compile(r"[a-zA-Z0-9]")
_DIGIT_RE = re.compile(r"\d", re.ASCII)
# Simplified calendar: February always allows 29.
_DAYS_IN_MONTH = (31, 29, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31)
_MIN_YEAR = 1900
_MAX_YEAR = 2100


def validate_date_format(value: str | None) -> bool:
    """``D/M/YY`` or ``D/M/YYYY`` with plausible day, month and year.

    The year range check applies to the digits as written, so two-digit
    years never pass; normalize first when short years are expected.
    """

    if not value or not value.strip():
        return False
    m = _DATE_RE.fullmatch(value.strip())
    if m is None:
        return False
    day, month, year = (int(g) for g in m.groups())
    if not 1 <= month <= 12:
        return False
    if not 1 <= day <= _DAYS_IN_MONTH[month - 1]:
        return False
    return _MIN_YEAR <= year <= _MAX_YEAR


def validate_currency_code(value: str | None) -> bool:
    return bool(value) and value.strip().upper() in VALID_CURRENCIES


def validate_amount(value: str | int | float | Decimal | None) -> bool:
    if value is None:
        return False
    if isinstance(value, int | float | Decimal):
        return Decimal(str(value)).is_finite()
    return _DIGIT_RE.search(value) is not None and parse_number(value).is_finite()


def validate_movement_type(value: str | None) -> bool:
    return (value or "").strip().lower() in ("ingreso", "egreso")


def validate_category(value: str | None) -> bool:
    """Non-blank and containing at least one ASCII letter or digit."""

    return bool(value) and _ALNUM_RE.search(value.strip()) is not None


def validate_csv_row(row: CSVRow) -> ValidationResult:
    result = ValidationResult()
    if not validate_date_format(row.fecha):
        result.errors.append("Invalid or missing date")
    if not validate_category(row.categoria):
        result.errors.append("Invalid or missing category")
    if not validate_amount(row.importe):
        result.errors.append("Invalid or missing amount")
    if row.divisa and not validate_currency_code(row.divisa):
        result.errors.append("Invalid currency code")
    if row.tipo and not validate_movement_type(row.tipo):
        result.errors.append("Invalid movement type")
    return result


def validate_column_definitions(
    definitions: Sequence[ColumnDefinition | Mapping[str, Any]],
) -> ValidationResult:
    """Field-level checks via :class:`ColumnDefinition` plus uniqueness.

    Raw mappings are validated through the model so each bad definition
    yields a readable error instead of an exception.
    """

    result = ValidationResult()
    if not definitions:
        result.errors.append("At least one column definition is required")
        return result

    names: set[str] = set()
    orders: set[int] = set()
    for position, raw in enumerate(definitions, start=1):
        if isinstance(raw, ColumnDefinition):
            d = raw
        else:
            try:
                d = ColumnDefinition.model_validate(dict(raw))
            except ValidationError as e:
                for err in e.errors():
                    loc = ".".join(str(p) for p in err["loc"])
                    result.errors.append(f"Column definition {position}: {loc}: {err['msg']}")
                continue
        if d.name in names:
            result.errors.append(f"Duplicate column name: {d.name}")
        names.add(d.name)
        if d.order in orders:
            result.errors.append(f"Duplicate order: {d.order}")
        orders.add(d.order)
    return result


def validate_csv_content(content: str | None) -> ValidationResult:
    """Reject empty text and header-only files."""

    result = ValidationResult()
    trimmed = (content or "").strip()
    if not trimmed:
        result.errors.append(EMPTY_FILE)
        return result
    lines = [ln for ln in (x.strip() for x in trimmed.split("\n")) if ln]
    if len(lines) == 1:
        result.errors.append("The CSV file has a single line (probably only the header)")
    return result


__all__ = [
    "validate_date_format",
    "validate_currency_code",
    "validate_amount",
    "validate_movement_type",
    "validate_category",
    "validate_csv_row",
    "validate_column_definitions",
    "validate_csv_content",
]
