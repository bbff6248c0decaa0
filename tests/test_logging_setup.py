from __future__ import annotations

import logging

import pytest

from cashflow_import import logging_setup
from cashflow_import.logging_setup import configure_logging, get_logger


@pytest.fixture
def pkg_logger(monkeypatch: pytest.MonkeyPatch):
    logger = logging.getLogger("cashflow_import")
    saved = (list(logger.handlers), logger.level, logger.propagate)
    monkeypatch.setattr(logging_setup, "_handler", None)
    logger.handlers = []
    yield logger
    logger.handlers, level, logger.propagate = saved
    logger.setLevel(level)


def test_records_name_the_pipeline_stage(pkg_logger, capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging("INFO")
    get_logger("cashflow_import.parsers.row_parser").info("row_parser:done rows=%d", 3)
    get_logger("cashflow_import.processor").debug("processor:hidden")
    err = capsys.readouterr().err
    assert "INFO [parsers.row_parser] row_parser:done rows=3" in err
    assert "processor:hidden" not in err


def test_format_override(pkg_logger, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    monkeypatch.setenv("CASHFLOW_IMPORT_LOG_FORMAT", "%(stage)s|%(message)s")
    configure_logging()
    get_logger("cashflow_import.files").warning("files:rejected file=%s", "a.csv")
    assert capsys.readouterr().err == "files|files:rejected file=a.csv\n"


def test_level_from_environment(pkg_logger, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CASHFLOW_IMPORT_LOG_LEVEL", "debug")
    assert configure_logging() == logging.DEBUG
    monkeypatch.setenv("CASHFLOW_IMPORT_LOG_LEVEL", "loud")
    assert configure_logging() == logging.INFO
    assert configure_logging("30") == logging.WARNING


def test_reconfiguring_keeps_a_single_handler(pkg_logger) -> None:
    configure_logging("WARNING")
    configure_logging("DEBUG")
    assert len(pkg_logger.handlers) == 1
    assert pkg_logger.level == logging.DEBUG
    assert pkg_logger.propagate is False


def test_unconfigured_package_logger_is_silent(pkg_logger) -> None:
    get_logger("cashflow_import.batching")
    assert [type(h) for h in pkg_logger.handlers] == [logging.NullHandler]
