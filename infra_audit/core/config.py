from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from pathlib import Path

import yaml

from infra_audit.core.models import (
    AREA_KEYS,
    FORMAT,
    HOOK_RUNNER,
    LINT,
    TEST_COLLECT,
    TEST_EXECUTE,
    TYPE_CHECK,
)
from infra_audit.core.output import DEFAULT_LINE_BUDGET


DEFAULT_TIMEOUTS_S = {
    LINT: 120.0,
    FORMAT: 120.0,
    TYPE_CHECK: 300.0,
    HOOK_RUNNER: 300.0,
    TEST_COLLECT: 120.0,
    TEST_EXECUTE: 120.0,
}


@dataclass(frozen=True)
class VerifyConfig:
    """Tunables for a verification run.

    ``timeouts`` is keyed by classification or by tool name; a tool name
    entry wins over its classification.
    """
    timeouts: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_TIMEOUTS_S))
    output_line_budget: int = DEFAULT_LINE_BUDGET
    max_workers: int | None = None
    scope: frozenset[str] | None = None
    venv_dir: str = ".venv"

    def timeout_for(self, tool_name: str, classification: str) -> float:
        if tool_name in self.timeouts:
            return float(self.timeouts[tool_name])
        return float(self.timeouts.get(classification, DEFAULT_TIMEOUTS_S[classification]))

    def with_scope(self, scope: frozenset[str] | None) -> "VerifyConfig":
        return replace(self, scope=scope)

    @staticmethod
    def from_file(path: str) -> "VerifyConfig":
        ext = Path(path).suffix.lower()
        with open(path, "r", encoding="utf-8") as handle:
            if ext in {".yaml", ".yml"}:
                data = yaml.safe_load(handle) or {}
            elif ext == ".json":
                data = json.load(handle)
            else:
                raise ValueError(f"Unsupported config file extension: {ext}")
        if not isinstance(data, dict):
            raise ValueError(f"Config file must contain a mapping: {path}")
        return VerifyConfig.from_dict(data)

    @staticmethod
    def from_dict(data: dict) -> "VerifyConfig":
        timeouts = dict(DEFAULT_TIMEOUTS_S)
        for key, value in (data.get("timeouts") or {}).items():
            seconds = float(value)
            if seconds <= 0:
                raise ValueError(f"Timeout for {key} must be positive")
            timeouts[str(key)] = seconds

        budget = int(data.get("output_line_budget", DEFAULT_LINE_BUDGET))
        if budget < 1:
            raise ValueError("output_line_budget must be at least 1")

        max_workers = data.get("max_workers")
        return VerifyConfig(
            timeouts=timeouts,
            output_line_budget=budget,
            max_workers=int(max_workers) if max_workers is not None else None,
            scope=parse_scope(data.get("scope")),
            venv_dir=str(data.get("venv_dir", ".venv")),
        )


def parse_scope(value: str | list[str] | None) -> frozenset[str] | None:
    """Parse a scope filter; None or ``all`` means every detected area.

    Raises:
        ValueError: If an unknown area name is given.
    """
    if value is None:
        return None
    if isinstance(value, str):
        items = [item.strip() for item in value.split(",") if item.strip()]
    else:
        items = [str(item).strip() for item in value if str(item).strip()]
    if not items or "all" in items:
        return None
    invalid = set(items) - set(AREA_KEYS)
    if invalid:
        raise ValueError(f"Unsupported scope area(s): {', '.join(sorted(invalid))}")
    return frozenset(items)
