"""Structured trace channel for tokenizer and parser decisions.

Parsers append :class:`~cashflow_import.models.TraceEvent` records to a
``Diagnostics`` collector that travels with the call and is returned inside
``ParseResult.diagnostics``. Each event is mirrored to the package logger at
DEBUG level so a configured CLI run can show the same trail.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Any

from .logging_setup import get_logger
from .models import TraceEvent

_logger = get_logger("cashflow_import.diagnostics")


class Diagnostics:
    """Append-only list of :class:`TraceEvent` values."""

    def __init__(self) -> None:
        self._events: list[TraceEvent] = []

    def record(
        self,
        kind: str,
        message: str = "",
        *,
        line_number: int | None = None,
        **data: Any,
    ) -> TraceEvent:
        event = TraceEvent(kind=kind, message=message, line_number=line_number, data=data)
        self._events.append(event)
        if _logger.isEnabledFor(logging.DEBUG):
            _logger.debug(
                "%s line=%s %s%s",
                kind,
                line_number if line_number is not None else "-",
                message,
                "".join(f" {k}={v!r}" for k, v in data.items()),
            )
        return event

    def of_kind(self, kind: str) -> list[TraceEvent]:
        return [e for e in self._events if e.kind == kind]

    @property
    def events(self) -> list[TraceEvent]:
        return list(self._events)

    def __iter__(self) -> Iterator[TraceEvent]:
        return iter(self._events)

    def __len__(self) -> int:
        return len(self._events)


__all__ = ["Diagnostics"]
