"""Line tokenizer for the loosely quoted CSV dialect used by movement exports.

Exports produced by personal-finance tools frequently write free-text columns
(categories such as ``"Food: Groceries, extra"``, notes) without quoting, so a
single physical line may carry more commas than the schema has separators.
``tokenize_smart`` reconciles the observed comma count with the expected
column count and folds the excess back into one column, either a configured
one (``ColumnCommasConfig``) or the first ``Group:Subgroup`` token.

Token classification ("does this look like an amount?", "can this token be
part of the text column?") is isolated behind :class:`TokenClassifier` so a
different heuristic can be swapped in without touching the control flow.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Protocol

from .diagnostics import Diagnostics
from .errors import CSVParseError
from .logging_setup import get_logger

_logger = get_logger("cashflow_import.tokenizer")

# ---- Classification (pluggable) ----

_NUMERIC_RE = re.compile(r"-?\d+(?:\.\d+)?", re.ASCII)
_TEXT_RE = re.compile(r"[a-zA-Z\s,áéíóúÁÉÍÓÚñÑ]+")


class TokenClassifier(Protocol):
    def looks_numeric(self, token: str) -> bool: ...

    def can_absorb(self, token: str) -> bool: ...


@dataclass(frozen=True, slots=True)
class RegexTokenClassifier:
    """Default heuristic.

    A token is numeric when it is a plain signed decimal (``-250``,
    ``150.50``); it may be absorbed into a text column when it contains a
    category separator ``:`` or consists only of letters (Spanish accents
    included), whitespace and commas.
    """

    numeric_pattern: re.Pattern[str] = _NUMERIC_RE
    text_pattern: re.Pattern[str] = _TEXT_RE

    def looks_numeric(self, token: str) -> bool:
        return self.numeric_pattern.fullmatch(token.strip()) is not None

    def can_absorb(self, token: str) -> bool:
        return ":" in token or self.text_pattern.fullmatch(token) is not None


DEFAULT_CLASSIFIER: TokenClassifier = RegexTokenClassifier()


# ---- Plain tokenization ----


def count_commas(line: str) -> int:
    return line.count(",")


def tokenize(line: str) -> list[str]:
    """Split ``line`` on commas outside double quotes.

    A backslash escapes the following character (also inside quotes), quote
    characters toggle quoting and are dropped, and every field is trimmed.
    Unbalanced quotes never raise; the remainder of the line is simply
    treated as quoted.
    """

    values: list[str] = []
    current: list[str] = []
    in_quotes = False
    escape_next = False

    for ch in line:
        if escape_next:
            current.append(ch)
            escape_next = False
            continue
        if ch == "\\":
            escape_next = True
            continue
        if ch == '"':
            in_quotes = not in_quotes
            continue
        if ch == "," and not in_quotes:
            values.append("".join(current).strip())
            current = []
            continue
        current.append(ch)

    values.append("".join(current).strip())
    return values


def tokenize_with_correction(
    line: str,
    expected_columns: int,
    *,
    classifier: TokenClassifier = DEFAULT_CLASSIFIER,
) -> list[str]:
    """Collapse overflow before the first numeric token into a single field.

    Used as the fallback when no target column can be resolved: everything
    preceding the first amount-looking token is assumed to be one leading
    free-text column.
    """

    tokens = tokenize(line)
    if len(tokens) <= expected_columns:
        return tokens

    first_numeric = next(
        (i for i, tok in enumerate(tokens) if classifier.looks_numeric(tok)),
        -1,
    )
    if first_numeric > 0:
        return [",".join(tokens[:first_numeric]), *tokens[first_numeric:]]
    return tokens


# ---- Smart tokenization ----


def _configured_target(
    column_commas_config: Mapping[int, int], token_count: int
) -> tuple[int, int] | None:
    for index in sorted(column_commas_config):
        max_commas = column_commas_config[index]
        if max_commas > 0 and index < token_count:
            return index, max_commas
    return None


def _absorb(
    tokens: list[str],
    target: int,
    extra: int,
    classifier: TokenClassifier,
    diagnostics: Diagnostics | None,
    line_number: int | None,
) -> list[str]:
    take = 1
    for step in range(1, extra + 1):
        pos = target + step
        if pos >= len(tokens):
            break
        candidate = tokens[pos]
        if classifier.looks_numeric(candidate):
            if diagnostics is not None:
                diagnostics.record(
                    "tokenizer:absorb_stop",
                    "numeric token ends the text column",
                    line_number=line_number,
                    position=pos,
                    token=candidate,
                )
            break
        if not classifier.can_absorb(candidate):
            if diagnostics is not None:
                diagnostics.record(
                    "tokenizer:absorb_stop",
                    "token does not look like text",
                    line_number=line_number,
                    position=pos,
                    token=candidate,
                )
            break
        take += 1

    merged = ", ".join(tokens[target : target + take])
    if diagnostics is not None:
        diagnostics.record(
            "tokenizer:merged",
            line_number=line_number,
            column=target,
            absorbed=take - 1,
            value=merged,
        )
    return [*tokens[:target], merged, *tokens[target + take :]]


def tokenize_smart(
    line: str,
    expected_columns: int,
    column_commas_config: Mapping[int, int] | None = None,
    *,
    classifier: TokenClassifier = DEFAULT_CLASSIFIER,
    diagnostics: Diagnostics | None = None,
    line_number: int | None = None,
) -> list[str]:
    """Tokenize ``line`` reconciling its comma count with ``expected_columns``.

    Parameters
    ----------
    line:
        One raw CSV line.
    expected_columns:
        Number of columns the schema declares (header width).
    column_commas_config:
        Optional ``{column_index: max_extra_commas}``. When given, the lowest
        configured index that exists in the line and allows extra commas is
        the merge target; when the overflow exceeds its allowance the line
        falls back to :func:`tokenize_with_correction`. When absent or empty,
        the first token containing ``:`` is the target.
    classifier:
        Numeric/text heuristic used to stop absorption.
    diagnostics:
        Optional collector receiving one event per decision.

    Returns
    -------
    list[str]
        The token list. Lines with fewer commas than expected are returned as
        plainly tokenized; the caller decides whether they are usable.
    """

    total_commas = count_commas(line)
    separators = expected_columns - 1

    if total_commas <= separators:
        if total_commas < separators and diagnostics is not None:
            diagnostics.record(
                "tokenizer:comma_deficit",
                line_number=line_number,
                commas=total_commas,
                expected=separators,
            )
        return tokenize(line)

    tokens = tokenize(line)
    if len(tokens) <= expected_columns:
        # The surplus commas sat inside quoted fields.
        if diagnostics is not None:
            diagnostics.record(
                "tokenizer:quoted_commas",
                line_number=line_number,
                tokens=len(tokens),
                expected=expected_columns,
            )
        return tokens

    extra = min(total_commas - separators, len(tokens) - expected_columns)
    if diagnostics is not None:
        diagnostics.record(
            "tokenizer:comma_overflow",
            line_number=line_number,
            commas=total_commas,
            expected=separators,
            extra=extra,
        )

    if column_commas_config:
        resolved = _configured_target(column_commas_config, len(tokens))
        if resolved is None:
            if diagnostics is not None:
                diagnostics.record(
                    "tokenizer:fallback",
                    "no configured column can take extra commas",
                    line_number=line_number,
                )
            return tokenize_with_correction(line, expected_columns, classifier=classifier)
        target, max_commas = resolved
        if extra > max_commas:
            if diagnostics is not None:
                diagnostics.record(
                    "tokenizer:fallback",
                    "extra commas exceed the configured maximum",
                    line_number=line_number,
                    column=target,
                    extra=extra,
                    max_commas=max_commas,
                )
            return tokenize_with_correction(line, expected_columns, classifier=classifier)
        if diagnostics is not None:
            diagnostics.record(
                "tokenizer:target",
                "configured",
                line_number=line_number,
                column=target,
                max_commas=max_commas,
            )
    else:
        detected = next((i for i, tok in enumerate(tokens) if ":" in tok), None)
        if detected is None:
            if diagnostics is not None:
                diagnostics.record(
                    "tokenizer:fallback",
                    "no category-like token found",
                    line_number=line_number,
                )
            return tokenize_with_correction(line, expected_columns, classifier=classifier)
        target = detected
        if diagnostics is not None:
            diagnostics.record(
                "tokenizer:target", "detected", line_number=line_number, column=target
            )

    return _absorb(tokens, target, extra, classifier, diagnostics, line_number)


# ---- Multi-line helpers ----


@dataclass(frozen=True, slots=True)
class LineDebugInfo:
    line_number: int
    original_line: str
    tokens_raw: list[str]
    tokens_processed: list[str]
    expected_columns: int
    extra_commas: int

    @property
    def has_extra_commas(self) -> bool:
        return self.extra_commas > 0


def line_debug_info(
    line: str, tokens: Sequence[str], expected_columns: int, line_number: int
) -> LineDebugInfo:
    return LineDebugInfo(
        line_number=line_number,
        original_line=line,
        tokens_raw=tokenize(line),
        tokens_processed=list(tokens),
        expected_columns=expected_columns,
        extra_commas=max(0, count_commas(line) - (expected_columns - 1)),
    )


def validate_line_columns(tokens: Sequence[str], expected_columns: int, line_number: int) -> bool:
    if len(tokens) < expected_columns:
        _logger.warning(
            "tokenizer:short_line line=%d tokens=%d expected=%d",
            line_number,
            len(tokens),
            expected_columns,
        )
        return False
    return True


@dataclass(slots=True)
class TokenizedLines:
    tokens: list[list[str]] = field(default_factory=list)
    line_numbers: list[int] = field(default_factory=list)
    errors: list[CSVParseError] = field(default_factory=list)


def tokenize_lines(
    lines: Iterable[str],
    expected_columns: int,
    column_commas_config: Mapping[int, int] | None = None,
    *,
    classifier: TokenClassifier = DEFAULT_CLASSIFIER,
) -> TokenizedLines:
    """Tokenize many lines, skipping blanks and flagging short ones.

    Line numbers are 1-based positions in ``lines``. Lines that still have
    fewer tokens than ``expected_columns`` after smart tokenization are kept
    out of ``tokens`` and reported as :class:`CSVParseError` values.
    """

    out = TokenizedLines()
    for number, raw in enumerate(lines, start=1):
        line = raw.strip()
        if not line:
            continue
        toks = tokenize_smart(line, expected_columns, column_commas_config, classifier=classifier)
        if not validate_line_columns(toks, expected_columns, number):
            out.errors.append(
                CSVParseError(
                    f"Line {number}: insufficient tokens ({len(toks)} < {expected_columns})",
                    line_number=number,
                    original_line=line,
                )
            )
            continue
        out.tokens.append(toks)
        out.line_numbers.append(number)
    return out


__all__ = [
    "TokenClassifier",
    "RegexTokenClassifier",
    "DEFAULT_CLASSIFIER",
    "count_commas",
    "tokenize",
    "tokenize_with_correction",
    "tokenize_smart",
    "LineDebugInfo",
    "line_debug_info",
    "validate_line_columns",
    "TokenizedLines",
    "tokenize_lines",
]
