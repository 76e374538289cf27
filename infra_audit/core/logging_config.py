from __future__ import annotations

import logging
import os
import sys
from datetime import datetime


LOG_LEVEL_ENV = "INFRA_AUDIT_LOG_LEVEL"
DEFAULT_LEVEL = "WARNING"


class AuditFormatter(logging.Formatter):
    """``[HH:MM:SS.mmm] LEVEL [logger] message`` on a single line."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]
        parts = [f"[{timestamp}]", f"{record.levelname:8}", f"[{record.name}]", record.getMessage()]
        if record.exc_info:
            parts.append(self.formatException(record.exc_info))
        return " ".join(parts)


def resolve_level(level: str | None) -> int:
    """Pick the effective level: explicit value, then environment, then default."""
    name = (level or os.environ.get(LOG_LEVEL_ENV) or DEFAULT_LEVEL).upper()
    value = logging.getLevelName(name)
    if not isinstance(value, int):
        raise ValueError(f"Unsupported log level: {name}")
    return value


def setup_logging(level: str | None = None) -> logging.Logger:
    """Attach a stderr handler to the ``infra_audit`` logger.

    stdout is reserved for JSON artifacts, so log lines never go there.
    Calling this again replaces the handler rather than stacking a second one.
    """
    logger = logging.getLogger("infra_audit")
    logger.setLevel(resolve_level(level))
    logger.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(AuditFormatter())
    logger.addHandler(handler)
    logger.propagate = False
    return logger
