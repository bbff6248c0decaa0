"""Presets and helpers for ``ColumnCommasConfig`` values.

A comma config tells :func:`cashflow_import.tokenizer.tokenize_smart` which
column may legitimately contain unquoted commas and how many. Presets cover
the common export shapes; :func:`detect_comma_columns` derives a config from a
sample of lines when nothing better is known.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

from .models import ColumnCommasConfig, ColumnDefinition, ValidationResult
from .tokenizer import DEFAULT_CLASSIFIER, TokenClassifier, count_commas


@dataclass(frozen=True, slots=True)
class CommaConfigPreset:
    name: str
    columns: tuple[tuple[int, int], ...]
    description: str

    @property
    def config(self) -> ColumnCommasConfig:
        return dict(self.columns)


MMEX_STANDARD = CommaConfigPreset(
    name="MMEX_STANDARD",
    columns=((2, 2),),
    description='MMEX exports with categories like "Food:Groceries" or "Company, Inc."',
)
MULTI_TEXT_FIELDS = CommaConfigPreset(
    name="MULTI_TEXT_FIELDS",
    columns=((1, 1), (2, 2), (5, 1)),
    description="Files where several text fields may contain commas",
)
CONSERVATIVE = CommaConfigPreset(
    name="CONSERVATIVE",
    columns=((2, 1),),
    description="Conservative setting for simple files (category only, one extra comma)",
)
AUTO_DETECT = CommaConfigPreset(
    name="AUTO_DETECT",
    columns=(),
    description="Automatic detection from content patterns",
)

PRESETS: dict[str, CommaConfigPreset] = {
    p.name: p for p in (MMEX_STANDARD, MULTI_TEXT_FIELDS, CONSERVATIVE, AUTO_DETECT)
}

_RECOMMEND_SAMPLE_LINES = 5


def create_comma_config(column_index: int, max_commas: int) -> ColumnCommasConfig:
    return {column_index: max_commas}


def combine_comma_configs(*configs: Mapping[int, int]) -> ColumnCommasConfig:
    """Merge configs keeping the highest allowance per column."""

    combined: ColumnCommasConfig = {}
    for config in configs:
        for index, max_commas in config.items():
            combined[index] = max(combined.get(index, max_commas), max_commas)
    return combined


def column_definitions_with_commas(
    column_names: Sequence[str], config: Mapping[int, int]
) -> list[ColumnDefinition]:
    """Build 1-based column definitions carrying each column's allowance."""

    return [
        ColumnDefinition(name=name, order=index + 1, max_commas=config.get(index, 0))
        for index, name in enumerate(column_names)
    ]


def detect_comma_columns(
    sample_lines: Iterable[str],
    expected_columns: int,
    *,
    classifier: TokenClassifier = DEFAULT_CLASSIFIER,
) -> ColumnCommasConfig:
    """Guess which columns carry embedded commas from overflowing lines.

    Only lines with more commas than ``expected_columns - 1`` are inspected.
    On such a line a ``Group:Subgroup`` token gets the full overflow as its
    allowance and any other purely textual token gets at least one.
    """

    config: ColumnCommasConfig = {}
    for line in sample_lines:
        extra = count_commas(line) - (expected_columns - 1)
        if extra <= 0:
            continue
        for index, raw in enumerate(line.split(",")):
            token = raw.strip()
            if ":" in token:
                config[index] = max(config.get(index, 0), extra)
            elif token and classifier.can_absorb(token) and not classifier.looks_numeric(token):
                config[index] = max(config.get(index, 0), 1)
    return config


def validate_comma_config(content: str, config: Mapping[int, int]) -> ValidationResult:
    """Check a config against ``content``, whose first line is the header.

    A configured column outside the header width is an error. A data line
    whose comma overflow exceeds the largest configured allowance is an
    error; one within it is reported as a warning.
    """

    result = ValidationResult()
    lines = [ln for ln in content.split("\n") if ln.strip()]
    if not lines:
        return result
    expected = count_commas(lines[0]) + 1
    for index in sorted(config):
        if index >= expected:
            result.errors.append(f"Column {index} does not exist (header has {expected} columns)")

    allowance = max((v for i, v in config.items() if i < expected), default=0)
    for number, line in enumerate(lines[1:], start=2):
        extra = count_commas(line) - (expected - 1)
        if extra <= 0:
            continue
        if extra > allowance:
            result.errors.append(
                f"Line {number}: {extra} extra commas, maximum allowed: {allowance}"
            )
        else:
            result.warnings.append(f"Line {number}: {extra} extra commas")
    return result


@dataclass(frozen=True, slots=True)
class CommaRecommendation:
    config: ColumnCommasConfig
    preset: str
    description: str


def recommended_comma_config(
    file_name: str, sample_content: str | None = None
) -> CommaRecommendation:
    """Pick a comma config from the file name, then the content, then a default."""

    lowered = file_name.lower()
    if "mmex" in lowered or "money" in lowered:
        return CommaRecommendation(
            MMEX_STANDARD.config, MMEX_STANDARD.name, MMEX_STANDARD.description
        )

    if sample_content:
        lines = sample_content.split("\n")[:_RECOMMEND_SAMPLE_LINES]
        expected = len(lines[0].split(",")) if lines and lines[0] else 0
        if expected > 0:
            detected = detect_comma_columns(lines, expected)
            if detected:
                return CommaRecommendation(
                    detected,
                    AUTO_DETECT.name,
                    "Configuration detected automatically from the content",
                )

    return CommaRecommendation(CONSERVATIVE.config, CONSERVATIVE.name, CONSERVATIVE.description)


__all__ = [
    "CommaConfigPreset",
    "MMEX_STANDARD",
    "MULTI_TEXT_FIELDS",
    "CONSERVATIVE",
    "AUTO_DETECT",
    "PRESETS",
    "create_comma_config",
    "combine_comma_configs",
    "column_definitions_with_commas",
    "detect_comma_columns",
    "validate_comma_config",
    "CommaRecommendation",
    "recommended_comma_config",
]
