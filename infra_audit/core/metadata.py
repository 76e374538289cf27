from __future__ import annotations

import logging
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


logger = logging.getLogger(__name__)

_NAME_SPLIT = re.compile(r"[\[<>=!~;@\s]")


@dataclass
class ProjectMetadata:
    """Facts read from pyproject.toml. Absent facts stay None/empty."""
    name: str | None = None
    requires_python: str | None = None
    dependency_names: set[str] = field(default_factory=set)
    tool: dict[str, Any] = field(default_factory=dict)
    parsed: bool = False

    def has_tool_config(self, name: str) -> bool:
        return name in self.tool

    @property
    def pytest_addopts(self) -> str:
        options = self.tool.get("pytest", {}).get("ini_options", {})
        addopts = options.get("addopts", "") if isinstance(options, dict) else ""
        if isinstance(addopts, list):
            return " ".join(str(item) for item in addopts)
        return str(addopts)


def load_project_metadata(path: Path) -> ProjectMetadata:
    """Parse the project metadata file.

    Args:
        path (Path): Location of pyproject.toml.

    Returns:
        ProjectMetadata: Parsed facts; an empty, unparsed instance when the
            file is missing, unreadable, or not valid TOML.
    """
    try:
        with path.open("rb") as handle:
            data = tomllib.load(handle)
    except (OSError, tomllib.TOMLDecodeError, UnicodeDecodeError) as exc:
        logger.debug("project metadata unavailable at %s: %s", path, exc)
        return ProjectMetadata()

    project = data.get("project", {})
    if not isinstance(project, dict):
        project = {}
    tool = data.get("tool", {})
    if not isinstance(tool, dict):
        tool = {}

    name = project.get("name")
    requires_python = project.get("requires-python")
    return ProjectMetadata(
        name=name if isinstance(name, str) and name else None,
        requires_python=requires_python if isinstance(requires_python, str) else None,
        dependency_names=_dependency_names(data),
        tool=tool,
        parsed=True,
    )


def normalize_requirement_name(requirement: str) -> str:
    """Reduce a PEP 508 requirement string to its lowercase distribution name."""
    return _NAME_SPLIT.split(requirement.strip(), maxsplit=1)[0].strip().lower()


def _dependency_names(data: dict[str, Any]) -> set[str]:
    project = data.get("project", {})
    requirements: list[Any] = []
    if isinstance(project, dict):
        requirements.extend(project.get("dependencies", []) or [])
        optional = project.get("optional-dependencies", {}) or {}
        if isinstance(optional, dict):
            for group in optional.values():
                requirements.extend(group or [])

    # PEP 735 groups may also hold {include-group = "..."} tables.
    groups = data.get("dependency-groups", {}) or {}
    if isinstance(groups, dict):
        for group in groups.values():
            requirements.extend(group or [])

    names: set[str] = set()
    for item in requirements:
        if not isinstance(item, str):
            continue
        name = normalize_requirement_name(item)
        if name:
            names.add(name)
    return names
