"""Field normalizers turning parsed CSV values into movement fields.

Every function here is total: malformed input degrades to a neutral value
(``""``, ``0``, ``None`` or the default currency) instead of raising. Dates
stay literal ``DD/MM/YYYY`` strings; ordering uses :func:`sortable_date_key`
so no locale or timezone ever enters the picture.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from decimal import Decimal, InvalidOperation

from .models import DEFAULT_CURRENCY, CSVRow, Category, Direction, Movement

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

VALID_CURRENCIES: tuple[str, ...] = ("ARS", "USD", "EUR", "BRL", "CLP", "COP", "MXN")

_DATE_RE = re.compile(r"(\d{1,2})/(\d{1,2})/(\d{2,4})", re.ASCII)
_NOT_NUMBER_CHARS_RE = re.compile(r"[^\d.-]", re.ASCII)
# Longest numeric prefix, the way JavaScript's parseFloat reads it.
_NUMBER_PREFIX_RE = re.compile(r"[-+]?(?:\d+(?:\.\d*)?|\.\d+)", re.ASCII)


# ---------------------------------------------------------------------------
# Scalars
# ---------------------------------------------------------------------------


def parse_number(value: str | int | float | Decimal | None) -> Decimal:
    """Parse a signed amount, keeping only digits, ``.`` and ``-``.

    The longest leading numeric prefix of the cleaned text is used, so
    ``"1.234.5"`` reads as ``1.234`` and ``"12-3"`` as ``12``. Anything
    without such a prefix is ``0``.
    """

    if value is None:
        return Decimal(0)
    if isinstance(value, int | float | Decimal):
        d = value if isinstance(value, Decimal) else Decimal(str(value))
        return d if d.is_finite() else Decimal(0)
    cleaned = _NOT_NUMBER_CHARS_RE.sub("", value)
    m = _NUMBER_PREFIX_RE.match(cleaned)
    if m is None:
        return Decimal(0)
    try:
        return Decimal(m.group(0))
    except InvalidOperation:
        return Decimal(0)


def normalize_date(value: str | None) -> str:
    """Zero-pad ``D/M/YY`` or ``D/M/YYYY`` to ``DD/MM/YYYY``.

    Two-digit years are prefixed with ``20``. Text that does not match is
    returned trimmed but otherwise untouched; no date is ever invented.
    """

    if not value:
        return ""
    trimmed = value.strip()
    m = _DATE_RE.fullmatch(trimmed)
    if m is None:
        return trimmed
    day, month, year = m.groups()
    if len(year) == 2:
        year = f"20{year}"
    return f"{day.zfill(2)}/{month.zfill(2)}/{year}"


def normalize_category(value: str | None) -> Category:
    if not value or not value.strip():
        return Category(grupo="", subgrupo=None)
    grupo, sep, rest = value.strip().partition(":")
    if not sep:
        return Category(grupo=grupo.strip(), subgrupo=None)
    return Category(grupo=grupo.strip(), subgrupo=rest.strip() or None)


def normalize_amount(value: str | int | float | Decimal | None) -> Decimal:
    """Absolute value of :func:`parse_number`."""

    return abs(parse_number(value))


def normalize_currency(value: str | None) -> str:
    code = (value or "").strip().upper()
    return code if code in VALID_CURRENCIES else DEFAULT_CURRENCY


def normalize_movement_type(amount: Decimal | int | float, type_str: str | None = None) -> Direction:
    """Explicit ``ingreso``/``egreso`` wins; otherwise the sign decides."""

    explicit = (type_str or "").strip().lower()
    if explicit == "ingreso":
        return "ingreso"
    if explicit == "egreso":
        return "egreso"
    return "ingreso" if amount >= 0 else "egreso"


def normalize_note(value: str | None) -> str | None:
    return (value or "").strip() or None


def normalize_external_id(value: str | None) -> str | None:
    return (value or "").strip() or None


def normalize_content(content: str | None) -> str:
    """Unify line endings to ``\\n`` and trim the whole text."""

    if not content:
        return ""
    return content.replace("\r\n", "\n").replace("\r", "\n").strip()


# ---------------------------------------------------------------------------
# Dates as sort keys
# ---------------------------------------------------------------------------


def sortable_date_key(value: str) -> str:
    """``DD/MM/YYYY`` -> ``YYYYMMDD`` (``YYMMDD`` for two-digit years).

    Strings that do not split into three non-empty ``/`` parts are returned
    unchanged.
    """

    parts = (value or "").split("/")
    if len(parts) != 3 or not all(parts):
        return value
    dd, mm, yy = parts
    return f"{yy.zfill(2)}{mm.zfill(2)}{dd.zfill(2)}"


def sort_movements_by_date(movements: Iterable[Movement]) -> list[Movement]:
    """Return a new list ordered by :func:`sortable_date_key` (stable)."""

    return sorted(movements, key=lambda m: sortable_date_key(m.fecha))


# ---------------------------------------------------------------------------
# Rows
# ---------------------------------------------------------------------------


def normalize_csv_row(row: CSVRow) -> CSVRow:
    """Canonicalize the date, amount and currency of a row.

    The amount keeps its sign so direction can still be derived from it.
    """

    return CSVRow(
        identificador=row.identificador.strip(),
        fecha=normalize_date(row.fecha),
        estado=row.estado.strip(),
        tipo=row.tipo.strip(),
        cuenta=row.cuenta.strip(),
        beneficiario=row.beneficiario.strip(),
        categoria=row.categoria.strip(),
        importe=parse_number(row.importe),
        divisa=normalize_currency(row.divisa),
        numero=row.numero.strip(),
        notas=row.notas.strip(),
    )


def csv_row_to_movement(row: CSVRow) -> Movement | None:
    """Compose the normalizers; ``None`` when date, group or amount is empty."""

    fecha = normalize_date(row.fecha)
    if not fecha:
        return None
    categoria = normalize_category(row.categoria)
    if not categoria.grupo:
        return None
    signed = parse_number(row.importe)
    monto = abs(signed)
    if monto == 0:
        return None
    return Movement(
        fecha=fecha,
        categoria=categoria,
        tipo=normalize_movement_type(signed, row.tipo),
        monto=monto,
        nota=normalize_note(row.notas),
        identificador=normalize_external_id(row.identificador),
    )


__all__ = [
    "VALID_CURRENCIES",
    "parse_number",
    "normalize_date",
    "normalize_category",
    "normalize_amount",
    "normalize_currency",
    "normalize_movement_type",
    "normalize_note",
    "normalize_external_id",
    "normalize_content",
    "sortable_date_key",
    "sort_movements_by_date",
    "normalize_csv_row",
    "csv_row_to_movement",
]
