from __future__ import annotations

import logging
import os
import re
import subprocess
import sys

from dataclasses import dataclass
from pathlib import Path


logger = logging.getLogger(__name__)

# Tool name -> executable name inside the local tool environment.
KNOWN_TOOLS = {
    "python": "python",
    "ruff": "ruff",
    "pytest": "pytest",
    "pre_commit": "pre-commit",
    "pyright": "pyright",
}

# Project-local installs outside the venv, checked after it.
_NODE_FALLBACK_TOOLS = {"pyright"}

_VERSION_TOKEN = re.compile(r"\d+(?:\.\d+)+[^\s,)]*")

DEFAULT_PROBE_TIMEOUT_S = 30.0


class ToolResolutionError(RuntimeError):
    """Raised when a tool has no runnable executable in the project."""


@dataclass(frozen=True)
class ResolvedTool:
    tool_name: str
    path: str
    source: str


def venv_bin_dir(root: Path, venv_dir: str = ".venv") -> Path:
    if sys.platform.startswith("win"):
        return root / venv_dir / "Scripts"
    return root / venv_dir / "bin"


def has_local_environment(root: Path, venv_dir: str = ".venv") -> bool:
    """True when the project carries its own interpreter environment."""
    return _is_runnable(venv_bin_dir(root, venv_dir) / _binary_name("python"))


def resolve_tool_path(root: Path, tool_name: str, venv_dir: str = ".venv") -> ResolvedTool:
    """Resolve a tool executable inside the project's local environment.

    Resolution order:
    1. The project virtualenv (``<venv_dir>/bin``)
    2. Project-local ``node_modules/.bin`` for node-distributed tools

    A system-wide install is never considered.
    """
    if tool_name not in KNOWN_TOOLS:
        raise ValueError(f"Unsupported tool: {tool_name}")

    binary_name = _binary_name(KNOWN_TOOLS[tool_name])
    searched: list[Path] = []

    candidate = venv_bin_dir(root, venv_dir) / binary_name
    searched.append(candidate)
    if _is_runnable(candidate):
        return ResolvedTool(tool_name=tool_name, path=str(candidate.absolute()), source="venv")

    if tool_name in _NODE_FALLBACK_TOOLS:
        candidate = root / "node_modules" / ".bin" / binary_name
        searched.append(candidate)
        if _is_runnable(candidate):
            return ResolvedTool(tool_name=tool_name, path=str(candidate.absolute()), source="node_modules")

    searched_str = ", ".join(str(item) for item in searched)
    raise ToolResolutionError(f"Unable to locate tool. tool={tool_name} searched=[{searched_str}]")


def probe_version(tool: ResolvedTool, timeout_s: float = DEFAULT_PROBE_TIMEOUT_S) -> str | None:
    """Run ``<tool> --version`` and return the first dotted version token.

    Notes:
        Some tools print their banner to stderr, so both streams are read.
        Any failure yields None rather than an exception.
    """
    try:
        proc = subprocess.run(
            [tool.path, "--version"],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
            timeout=timeout_s,
            check=False,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        logger.debug("version probe failed for %s: %s", tool.tool_name, exc)
        return None
    if proc.returncode != 0:
        logger.debug("version probe for %s exited %s", tool.tool_name, proc.returncode)
        return None
    return parse_version_output(proc.stdout)


def parse_version_output(text: str) -> str | None:
    for line in text.splitlines():
        match = _VERSION_TOKEN.search(line)
        if match:
            return match.group(0)
    return None


def _binary_name(name: str) -> str:
    if sys.platform.startswith("win"):
        return f"{name}.exe"
    return name


def _is_runnable(path: Path) -> bool:
    if not path.exists() or not path.is_file():
        return False
    if sys.platform.startswith("win"):
        return True
    return os.access(path, os.X_OK)
