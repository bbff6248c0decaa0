"""Row construction from tokenized CSV lines (positional and mapping-driven)."""

from .headers import HEADER_KEYWORDS, column_index_map, is_csv_header, split_lines
from .mapping_parser import (
    create_automatic_column_mapping,
    parse_content_with_mapping,
    suggest_column_mapping,
    validate_column_mapping,
    validate_required_mapping_fields,
)
from .row_parser import HeaderInfo, parse_content, parse_header, validate_row_required_fields

__all__ = [
    "HEADER_KEYWORDS",
    "column_index_map",
    "is_csv_header",
    "split_lines",
    "parse_content",
    "parse_header",
    "HeaderInfo",
    "validate_row_required_fields",
    "parse_content_with_mapping",
    "validate_column_mapping",
    "validate_required_mapping_fields",
    "create_automatic_column_mapping",
    "suggest_column_mapping",
]
