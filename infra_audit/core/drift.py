from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING

from infra_audit.core.models import (
    LOCAL_VS_CI,
    LOCAL_VS_HOOK_CONFIG,
    RUNTIME_LOCAL_VS_CI,
    FactSheet,
    VersionMismatch,
)

if TYPE_CHECKING:
    from infra_audit.ports.working_tree import WorkingTree


logger = logging.getLogger(__name__)

# Tool -> pre-commit hook repository that pins it.
HOOK_REPOS = {
    "ruff": "astral-sh/ruff-pre-commit",
    "pyright": "RobertCraigie/pyright-python",
}

_CI_PYTHON = re.compile(r"python-version:\s*[\"']?([0-9]+\.[0-9]+)")


def extract_hook_pin(text: str, tool: str) -> str | None:
    """Find the ``rev`` pinned for a tool's hook repository.

    Notes:
        Only the ``repo:``/``rev:`` pair is needed, so this is a targeted
        pattern match rather than a YAML parse of the whole hook config.
    """
    repo = HOOK_REPOS.get(tool)
    if repo is None:
        return None
    pattern = re.compile(
        r"repo:\s*[\"']?https://github\.com/" + re.escape(repo) + r"(?:\.git)?[\"']?\s*\n"
        r"\s*rev:\s*[\"']?v?([^\s\"']+)"
    )
    match = pattern.search(text)
    return match.group(1) if match else None


def extract_ci_pin(text: str, tool: str) -> str | None:
    """Find a pinned tool version such as ``ruff==0.5.0`` or ``ruff@v0.5.0``."""
    pattern = re.compile(r"(?<![\w-])" + re.escape(tool) + r"(?:==|=|@)v?([0-9]+\.[0-9]+\.[0-9]+)")
    match = pattern.search(text)
    return match.group(1) if match else None


def extract_ci_python(text: str) -> str | None:
    match = _CI_PYTHON.search(text)
    return match.group(1) if match else None


def major_minor(version: str) -> str:
    return ".".join(version.split(".")[:2])


def find_version_mismatches(
    facts: FactSheet,
    hook_config: str | None,
    ci_sources: list[str],
) -> list[VersionMismatch]:
    """Compare local tool versions against pinned versions elsewhere.

    Args:
        facts (FactSheet): Source of local versions.
        hook_config (str | None): Commit-hook config text, if any.
        ci_sources (list[str]): CI definition texts in Fact Sheet order.

    Returns:
        list[VersionMismatch]: One entry per disagreeing pair. Tools without
            a local version, or without a pin on the other side, produce none.
    """
    mismatches: list[VersionMismatch] = []
    for tool in HOOK_REPOS:
        local = facts.tool_versions.get(tool)
        if not local:
            continue
        if hook_config is not None:
            pinned = extract_hook_pin(hook_config, tool)
            if pinned and pinned != local:
                mismatches.append(VersionMismatch(tool, LOCAL_VS_HOOK_CONFIG, local, pinned))
        ci_pin = _first(ci_sources, lambda text: extract_ci_pin(text, tool))
        if ci_pin and ci_pin != local:
            mismatches.append(VersionMismatch(tool, LOCAL_VS_CI, local, ci_pin))

    # Runtime drift is judged at major.minor; patch releases are not drift.
    local_python = facts.tool_versions.get("python")
    ci_python = _first(ci_sources, extract_ci_python)
    if local_python and ci_python:
        local_minor = major_minor(local_python)
        if local_minor != ci_python:
            mismatches.append(VersionMismatch("python", RUNTIME_LOCAL_VS_CI, local_minor, ci_python))
    return mismatches


def read_sources(facts: FactSheet) -> tuple[str | None, list[str]]:
    """Read the hook config and CI definitions recorded in the Fact Sheet."""
    root = Path(facts.root)
    hook_config = None
    if facts.has("pre_commit") and facts.hook_config_path:
        hook_config = _read(root / facts.hook_config_path)
    ci_sources = []
    for rel in facts.ci_workflow_paths:
        text = _read(root / rel)
        if text is not None:
            ci_sources.append(text)
    return hook_config, ci_sources


def _first(texts: list[str], extract) -> str | None:
    for text in texts:
        value = extract(text)
        if value:
            return value
    return None


def _read(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        logger.debug("unable to read %s: %s", path, exc)
        return None


def hooks_registered(facts: FactSheet, tree: WorkingTree | None) -> bool:
    """True when commit hooks are configured and actually wired into git."""
    if tree is None or not (facts.has("pre_commit") and facts.has("git")):
        return False
    if tree.config_value("core.hooksPath"):
        return True
    return tree.has_hook("pre-commit")
