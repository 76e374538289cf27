from __future__ import annotations

import re

from infra_audit.core.redaction import redact_text


TRUNCATION_MARKER = "... (truncated)"
DEFAULT_LINE_BUDGET = 30

_PERCENT = re.compile(r"^(\d+(?:\.\d+)?)%$")


def normalize_output(raw: str, line_budget: int = DEFAULT_LINE_BUDGET, from_head: bool = True) -> str:
    """Bound and scrub captured tool output.

    Args:
        raw (str): Merged stdout/stderr of one tool.
        line_budget (int): Maximum number of output lines kept.
        from_head (bool): Keep the first lines (collection-style tools, whose
            early lines carry the error) instead of the last ones.

    Returns:
        str: At most ``line_budget`` lines plus one marker line.
    """
    return redact_text(truncate_lines(raw, line_budget, from_head))


def truncate_lines(text: str, line_budget: int, from_head: bool = True) -> str:
    lines = text.rstrip("\n").splitlines()
    if len(lines) <= line_budget:
        return "\n".join(lines)
    if from_head:
        return "\n".join(lines[:line_budget] + [TRUNCATION_MARKER])
    kept = lines[-line_budget:] if line_budget > 0 else []
    return "\n".join([TRUNCATION_MARKER] + kept)


def extract_coverage(text: str) -> int | None:
    """Read the total coverage percentage from a coverage summary table.

    Notes:
        The last line mentioning ``TOTAL`` with a percentage wins, since coverage reports are
        printed after the test summary. Fractional percentages are floored.
        Output without such a line yields None.
    """
    for line in reversed(text.splitlines()):
        if "TOTAL" not in line:
            continue
        for token in reversed(line.split()):
            match = _PERCENT.match(token)
            if match:
                return int(float(match.group(1)))
    return None
