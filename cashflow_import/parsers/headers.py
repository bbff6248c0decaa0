"""Line splitting and header helpers shared by both row parsers."""

from __future__ import annotations

import unicodedata
from collections.abc import Sequence

from ..tokenizer import tokenize

HEADER_KEYWORDS: tuple[str, ...] = (
    "identificador",
    "fecha",
    "estado",
    "tipo",
    "cuenta",
    "beneficiario",
    "categoría",
    "categoria",
    "importe",
    "divisa",
    "número",
    "numero",
    "notas",
)


def split_lines(content: str) -> list[str]:
    """Return the non-blank lines of ``content`` (CRLF and LF accepted)."""

    return [ln.rstrip("\r") for ln in content.split("\n") if ln.strip()]


def fold(text: str) -> str:
    """Lower-case and strip accents so ``"Categoría"`` equals ``"categoria"``."""

    decomposed = unicodedata.normalize("NFKD", text.strip().lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


_FOLDED_KEYWORDS: tuple[str, ...] = tuple(dict.fromkeys(fold(k) for k in HEADER_KEYWORDS))


def is_csv_header(tokens: Sequence[str]) -> bool:
    """True when any token contains a known header keyword (accent- and case-insensitive)."""

    folded = [fold(tok) for tok in tokens]
    return any(k in tok for tok in folded for k in _FOLDED_KEYWORDS)


def column_index_map(headers: Sequence[str]) -> dict[str, int]:
    """Map lower-cased header text to its column index (last one wins)."""

    return {h.strip().lower(): i for i, h in enumerate(headers)}


def header_tokens(first_line: str) -> list[str]:
    return [tok.strip() for tok in tokenize(first_line)]


__all__ = [
    "HEADER_KEYWORDS",
    "split_lines",
    "fold",
    "is_csv_header",
    "column_index_map",
    "header_tokens",
]
