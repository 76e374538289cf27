from __future__ import annotations

import tomllib
from functools import lru_cache
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path


DIST_NAME = "infra-audit"
UNKNOWN_VERSION = "0+unknown"

_SOURCE_PYPROJECT = Path(__file__).resolve().parents[2] / "pyproject.toml"


@lru_cache(maxsize=1)
def get_infra_audit_version() -> str:
    """Version reported by ``infra-audit --version``.

    Installed distribution metadata wins. A source checkout that was never
    installed falls back to ``[project].version`` in its own pyproject.toml.
    """
    try:
        return version(DIST_NAME)
    except PackageNotFoundError:
        return _version_from_pyproject(_SOURCE_PYPROJECT) or UNKNOWN_VERSION


def _version_from_pyproject(path: Path) -> str | None:
    try:
        with path.open("rb") as handle:
            data = tomllib.load(handle)
    except (OSError, tomllib.TOMLDecodeError):
        return None
    project = data.get("project")
    if not isinstance(project, dict) or project.get("name") != DIST_NAME:
        return None
    value = project.get("version")
    return value if isinstance(value, str) and value else None
