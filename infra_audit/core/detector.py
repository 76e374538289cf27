from __future__ import annotations

import logging
from fnmatch import fnmatch
from pathlib import Path

from infra_audit.core.metadata import ProjectMetadata, load_project_metadata
from infra_audit.core.models import PROBED_TOOLS, EnvConfig, FactSheet, TestConfig
from infra_audit.core.tool_resolver import (
    DEFAULT_PROBE_TIMEOUT_S,
    ToolResolutionError,
    has_local_environment,
    probe_version,
    resolve_tool_path,
)


logger = logging.getLogger(__name__)

RUFF_CONFIG_FILES = ("ruff.toml", ".ruff.toml")
PYRIGHT_CONFIG_FILES = ("pyrightconfig.json",)
HOOK_CONFIG_FILES = (".pre-commit-config.yaml", ".pre-commit-config.yml")
TASK_RUNNER_FILES = ("Makefile", "GNUmakefile", "makefile")
MIGRATION_FILES = ("alembic.ini",)
COMPOSE_FILES = ("compose.yml", "compose.yaml", "docker-compose.yml", "docker-compose.yaml")
RENOVATE_FILES = ("renovate.json", ".renovaterc", ".renovaterc.json", ".github/renovate.json")
EXTRA_CI_FILES = (".gitlab-ci.yml", ".circleci/config.yml")
TEST_FILE_PATTERNS = ("test_*.py", "*_test.py", "*/test_*.py", "*/*_test.py")
ENV_FILES = (".env", "config.json", "config.yaml", "config.toml", "settings.json", "settings.yaml")
TEMPLATE_SUFFIXES = (".example", ".sample", ".template")
DOC_FILE_NAMES = ("CLAUDE.md", "AGENTS.md")
SKIPPED_DIRS = {".git", ".venv", "node_modules", "__pycache__", ".tox"}
SNAPSHOT_IMPORT = "from inline_snapshot import snapshot"


def detect_project(
    root: str | Path,
    venv_dir: str = ".venv",
    probe_timeout_s: float = DEFAULT_PROBE_TIMEOUT_S,
) -> FactSheet:
    """Inspect a project root and assemble its Fact Sheet.

    Args:
        root (str | Path): Project root directory.
        venv_dir (str): Name of the local tool environment directory.
        probe_timeout_s (float): Timeout for each ``--version`` probe.

    Returns:
        FactSheet: Immutable detection facts.

    Notes:
        Detection never raises for project content problems. Unreadable or
        malformed files degrade the matching fact to its absent value.
    """
    base = Path(root).absolute()
    metadata = ProjectMetadata()
    pyproject = base / "pyproject.toml"
    if pyproject.is_file():
        metadata = load_project_metadata(pyproject)

    ci_paths = _ci_workflow_paths(base)
    env_files = _env_files(base)
    doc_files = _doc_files(base)
    hook_config = _first_existing(base, HOOK_CONFIG_FILES)
    has_venv = has_local_environment(base, venv_dir)

    areas = {
        "git": (base / ".git").exists(),
        "gitignore": (base / ".gitignore").is_file(),
        "pyproject": pyproject.is_file(),
        "venv": has_venv,
        "ruff": _any_file(base, RUFF_CONFIG_FILES) or metadata.has_tool_config("ruff"),
        "pyright": _any_file(base, PYRIGHT_CONFIG_FILES) or metadata.has_tool_config("pyright"),
        "pre_commit": hook_config is not None,
        "ci": bool(ci_paths),
        "makefile": _any_file(base, TASK_RUNNER_FILES),
        "alembic": _any_file(base, MIGRATION_FILES),
        "docker": _has_container_config(base),
        "uv": (base / "uv.lock").is_file() or _glob_any(base, "*/uv.lock"),
        "renovate": _any_file(base, RENOVATE_FILES),
        "tests": _has_tests(base),
        "env": bool(env_files),
        "docs": bool(doc_files),
    }

    tool_versions: dict[str, str | None] = {name: None for name in PROBED_TOOLS}
    tool_paths: dict[str, str] = {}
    if has_venv:
        for name in PROBED_TOOLS:
            try:
                resolved = resolve_tool_path(base, name, venv_dir)
            except ToolResolutionError as exc:
                logger.debug("%s", exc)
                continue
            tool_paths[name] = resolved.path
            tool_versions[name] = probe_version(resolved, probe_timeout_s)
    else:
        logger.debug("no local tool environment under %s", base / venv_dir)

    return FactSheet(
        root=str(base),
        areas=areas,
        tool_versions=tool_versions,
        tool_paths=tool_paths,
        project_name=metadata.name or base.name,
        min_language_version=metadata.requires_python,
        ci_workflow_paths=tuple(ci_paths),
        doc_files=tuple(doc_files),
        hook_config_path=hook_config,
        env_config=_env_config(base, env_files),
        test_config=_test_config(base, metadata, areas["tests"]),
    )


def is_ignored(rel_path: str, patterns: list[str]) -> bool:
    """Evaluate .gitignore-style patterns against a root-relative path.

    Later patterns win and ``!`` re-includes, matching git's precedence.
    Patterns without a slash match the basename at any depth.
    """
    name = rel_path.rsplit("/", 1)[-1]
    ignored = False
    for raw in patterns:
        pattern = raw.strip()
        if not pattern or pattern.startswith("#"):
            continue
        negate = pattern.startswith("!")
        if negate:
            pattern = pattern[1:]
        pattern = pattern.rstrip("/")
        if "/" in pattern:
            matched = fnmatch(rel_path, pattern.lstrip("/"))
        else:
            matched = fnmatch(name, pattern) or fnmatch(rel_path, pattern)
        if matched:
            ignored = not negate
    return ignored


def _first_existing(base: Path, candidates: tuple[str, ...]) -> str | None:
    for name in candidates:
        if (base / name).is_file():
            return name
    return None


def _any_file(base: Path, candidates: tuple[str, ...]) -> bool:
    return _first_existing(base, candidates) is not None


def _glob_any(base: Path, pattern: str) -> bool:
    return any(item.is_file() for item in base.glob(pattern))


def _ci_workflow_paths(base: Path) -> list[str]:
    paths: list[str] = []
    workflows = base / ".github" / "workflows"
    if workflows.is_dir():
        for pattern in ("*.yml", "*.yaml"):
            for item in sorted(workflows.glob(pattern)):
                if item.is_file():
                    paths.append(item.relative_to(base).as_posix())
    for name in EXTRA_CI_FILES:
        if (base / name).is_file():
            paths.append(name)
    return paths


def _has_container_config(base: Path) -> bool:
    return _glob_any(base, "Dockerfile*") or _any_file(base, COMPOSE_FILES)


def _has_tests(base: Path) -> bool:
    if (base / "tests").is_dir():
        return True
    return any(_glob_any(base, pattern) for pattern in TEST_FILE_PATTERNS)


def _env_files(base: Path) -> list[str]:
    found = [name for name in ENV_FILES if (base / name).is_file()]
    for item in sorted(base.glob(".env.*")):
        if not item.is_file() or item.name.endswith(TEMPLATE_SUFFIXES):
            continue
        found.append(item.name)
    return found


def _env_config(base: Path, env_files: list[str]) -> EnvConfig:
    if not env_files:
        return EnvConfig()

    gitignored = False
    ignore_file = base / ".gitignore"
    if ignore_file.is_file():
        try:
            patterns = ignore_file.read_text(encoding="utf-8", errors="replace").splitlines()
        except OSError as exc:
            logger.debug("unable to read %s: %s", ignore_file, exc)
            patterns = []
        gitignored = any(is_ignored(name, patterns) for name in env_files)

    has_example = False
    for name in env_files:
        bare = name.lstrip(".")
        candidates = (f"example.{bare}", f"{name}.example", f"{bare}.example")
        if any((base / candidate).is_file() for candidate in candidates):
            has_example = True
            break

    return EnvConfig(config_files=tuple(env_files), gitignored=gitignored, has_example=has_example)


def _test_config(base: Path, metadata: ProjectMetadata, has_tests: bool) -> TestConfig:
    deps = metadata.dependency_names
    has_pytest_cov = "pytest-cov" in deps
    cov_in_addopts = "--cov" in metadata.pytest_addopts
    has_coverage_config = (
        metadata.has_tool_config("coverage")
        or cov_in_addopts
        or has_pytest_cov
        or (base / ".coveragerc").is_file()
    )
    return TestConfig(
        has_tests=has_tests,
        has_coverage_config=has_coverage_config,
        cov_in_addopts=cov_in_addopts,
        has_pytest_cov=has_pytest_cov,
        has_inline_snapshot="inline-snapshot" in deps,
        has_dirty_equals="dirty-equals" in deps,
        has_pydantic="pydantic" in deps,
        uses_inline_snapshot=has_tests and _uses_inline_snapshot(base),
    )


def _uses_inline_snapshot(base: Path) -> bool:
    candidates: list[Path] = []
    tests_dir = base / "tests"
    if tests_dir.is_dir():
        candidates.extend(tests_dir.rglob("test_*.py"))
        candidates.extend(tests_dir.rglob("*_test.py"))
    candidates.extend(base.glob("test_*.py"))
    candidates.extend(base.glob("*_test.py"))
    for path in candidates:
        try:
            if SNAPSHOT_IMPORT in path.read_text(encoding="utf-8", errors="replace"):
                return True
        except OSError:
            continue
    return False


def _doc_files(base: Path) -> list[str]:
    found: list[str] = []
    for name in DOC_FILE_NAMES:
        if (base / name).is_file():
            found.append(name)
    for name in DOC_FILE_NAMES:
        if (base / ".claude" / name).is_file():
            found.append(f".claude/{name}")
    try:
        entries = sorted(base.iterdir())
    except OSError as exc:
        logger.debug("unable to list %s: %s", base, exc)
        return found
    for entry in entries:
        if not entry.is_dir() or entry.name in SKIPPED_DIRS or entry.name == ".claude":
            continue
        for name in DOC_FILE_NAMES:
            if (entry / name).is_file():
                found.append(f"{entry.name}/{name}")
    return found
