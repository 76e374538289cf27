from __future__ import annotations

import re


_PATTERNS = [
    (re.compile(r"(Authorization\s*:\s*Bearer\s+)[^\s]+", re.IGNORECASE), r"\1[REDACTED]"),
    (re.compile(r"((?:api[_-]?key|token|secret|password)\s*[:=])\s*[^\s,]+", re.IGNORECASE), r"\1 [REDACTED]"),
    (re.compile(r"\bgh[pousr]_[A-Za-z0-9]{20,}\b"), "[REDACTED]"),
    (re.compile(r"\bAKIA[0-9A-Z]{16}\b"), "[REDACTED]"),
    (re.compile(r"(://[^\s:/@]+:)[^\s@/]+@"), r"\1[REDACTED]@"),
]


def redact_text(value: str) -> str:
    """Redact common credential patterns from captured tool output.

    Notes:
        Test failures routinely echo environment values and fixture
        settings; the report is handed to other systems as-is.
    """
    redacted = value
    for pattern, repl in _PATTERNS:
        redacted = pattern.sub(repl, redacted)
    return redacted
