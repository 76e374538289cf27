import logging
import sys

import pytest

from infra_audit.core.logging_config import AuditFormatter, resolve_level, setup_logging


def test_resolve_level_prefers_explicit_value(monkeypatch) -> None:
    monkeypatch.setenv("INFRA_AUDIT_LOG_LEVEL", "ERROR")

    assert resolve_level("info") == logging.INFO
    assert resolve_level(None) == logging.ERROR


def test_resolve_level_defaults_to_warning(monkeypatch) -> None:
    monkeypatch.delenv("INFRA_AUDIT_LOG_LEVEL", raising=False)

    assert resolve_level(None) == logging.WARNING
    with pytest.raises(ValueError):
        resolve_level("verbose")


def test_setup_logging_writes_single_line_records_to_stderr(capsys) -> None:
    logger = setup_logging("INFO")
    setup_logging("INFO")
    try:
        logging.getLogger("infra_audit.core.guard").info("working tree restored")
        captured = capsys.readouterr()
    finally:
        logger.handlers.clear()
        logger.setLevel(logging.NOTSET)
        logger.propagate = True

    assert captured.out == ""
    lines = captured.err.splitlines()
    assert len(lines) == 1
    assert "INFO" in lines[0]
    assert "[infra_audit.core.guard] working tree restored" in lines[0]


def test_formatter_appends_exception() -> None:
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = logging.LogRecord("infra_audit", logging.ERROR, __file__, 1, "failed", None, sys.exc_info())

    text = AuditFormatter().format(record)

    assert text.startswith("[")
    assert "failed" in text
    assert "RuntimeError: boom" in text
