from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping


AREA_KEYS = (
    "git",
    "gitignore",
    "pyproject",
    "venv",
    "ruff",
    "pyright",
    "pre_commit",
    "ci",
    "makefile",
    "alembic",
    "docker",
    "uv",
    "renovate",
    "tests",
    "env",
    "docs",
)

PROBED_TOOLS = ("python", "ruff", "pytest", "pre_commit", "pyright")

STATUS_PASS = "pass"
STATUS_FAIL = "fail"
STATUS_TIMEOUT = "timeout"
STATUS_SKIP = "skip"
STATUSES = (STATUS_PASS, STATUS_FAIL, STATUS_TIMEOUT, STATUS_SKIP)

LINT = "lint"
FORMAT = "format"
TYPE_CHECK = "type-check"
HOOK_RUNNER = "hook-runner"
TEST_COLLECT = "test-collect"
TEST_EXECUTE = "test-execute"
CLASSIFICATIONS = (LINT, FORMAT, TYPE_CHECK, HOOK_RUNNER, TEST_COLLECT, TEST_EXECUTE)

LOCAL_VS_HOOK_CONFIG = "local_vs_hook_config"
LOCAL_VS_CI = "local_vs_ci"
RUNTIME_LOCAL_VS_CI = "runtime_local_vs_ci"

# Same sentinel coreutils `timeout` uses. A tool may exit 124 or 127 on its own;
# `status` tells the cases apart, the exit code alone does not.
TIMEOUT_EXIT_CODE = 124
LAUNCH_FAILURE_EXIT_CODE = 127


@dataclass(frozen=True)
class EnvConfig:
    """Secret-bearing configuration files and how they are protected."""
    config_files: tuple[str, ...] = ()
    gitignored: bool = False
    has_example: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "configFiles": list(self.config_files),
            "gitignored": self.gitignored,
            "hasExample": self.has_example,
        }

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> "EnvConfig":
        return EnvConfig(
            config_files=tuple(data.get("configFiles", [])),
            gitignored=bool(data.get("gitignored", False)),
            has_example=bool(data.get("hasExample", False)),
        )


@dataclass(frozen=True)
class TestConfig:
    """Test suite and coverage facts gathered during detection."""
    __test__ = False

    has_tests: bool = False
    has_coverage_config: bool = False
    cov_in_addopts: bool = False
    has_pytest_cov: bool = False
    has_inline_snapshot: bool = False
    has_dirty_equals: bool = False
    has_pydantic: bool = False
    uses_inline_snapshot: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "hasTests": self.has_tests,
            "hasCoverageConfig": self.has_coverage_config,
            "covInAddopts": self.cov_in_addopts,
            "hasPytestCov": self.has_pytest_cov,
            "hasInlineSnapshot": self.has_inline_snapshot,
            "hasDirtyEquals": self.has_dirty_equals,
            "hasPydantic": self.has_pydantic,
            "usesInlineSnapshot": self.uses_inline_snapshot,
        }

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> "TestConfig":
        return TestConfig(
            has_tests=bool(data.get("hasTests", False)),
            has_coverage_config=bool(data.get("hasCoverageConfig", False)),
            cov_in_addopts=bool(data.get("covInAddopts", False)),
            has_pytest_cov=bool(data.get("hasPytestCov", False)),
            has_inline_snapshot=bool(data.get("hasInlineSnapshot", False)),
            has_dirty_equals=bool(data.get("hasDirtyEquals", False)),
            has_pydantic=bool(data.get("hasPydantic", False)),
            uses_inline_snapshot=bool(data.get("usesInlineSnapshot", False)),
        )


@dataclass(frozen=True)
class FactSheet:
    """Immutable output of project detection.

    Mappings are wrapped in read-only proxies so nothing downstream can
    amend a fact after detection has finished.
    """
    root: str
    areas: Mapping[str, bool]
    tool_versions: Mapping[str, str | None]
    tool_paths: Mapping[str, str]
    project_name: str
    min_language_version: str | None = None
    ci_workflow_paths: tuple[str, ...] = ()
    doc_files: tuple[str, ...] = ()
    hook_config_path: str | None = None
    env_config: EnvConfig = field(default_factory=EnvConfig)
    test_config: TestConfig = field(default_factory=TestConfig)

    def __post_init__(self) -> None:
        areas = {key: bool(self.areas.get(key, False)) for key in AREA_KEYS}
        object.__setattr__(self, "areas", MappingProxyType(areas))
        object.__setattr__(self, "tool_versions", MappingProxyType(dict(self.tool_versions)))
        object.__setattr__(self, "tool_paths", MappingProxyType(dict(self.tool_paths)))
        object.__setattr__(self, "ci_workflow_paths", tuple(self.ci_workflow_paths))
        object.__setattr__(self, "doc_files", tuple(self.doc_files))

    def has(self, area: str) -> bool:
        return self.areas.get(area, False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "root": self.root,
            "areas": dict(self.areas),
            "toolVersions": dict(self.tool_versions),
            "toolPaths": dict(self.tool_paths),
            "projectName": self.project_name,
            "minLanguageVersion": self.min_language_version,
            "ciWorkflowPaths": list(self.ci_workflow_paths),
            "docFiles": list(self.doc_files),
            "hookConfigPath": self.hook_config_path,
            "envConfig": self.env_config.to_dict(),
            "testConfig": self.test_config.to_dict(),
        }

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> "FactSheet":
        return FactSheet(
            root=str(data["root"]),
            areas=data.get("areas", {}),
            tool_versions=data.get("toolVersions", {}),
            tool_paths=data.get("toolPaths", {}),
            project_name=str(data["projectName"]),
            min_language_version=data.get("minLanguageVersion"),
            ci_workflow_paths=tuple(data.get("ciWorkflowPaths", [])),
            doc_files=tuple(data.get("docFiles", [])),
            hook_config_path=data.get("hookConfigPath"),
            env_config=EnvConfig.from_dict(data.get("envConfig", {})),
            test_config=TestConfig.from_dict(data.get("testConfig", {})),
        )


@dataclass(frozen=True)
class ToolInvocation:
    """One applicable tool, ready to run."""
    name: str
    area: str
    classification: str
    command: tuple[str, ...]
    mutates: bool = False
    timeout_s: float = 120.0

    @property
    def truncate_from_head(self) -> bool:
        """Execution output keeps its tail, where the summary lives."""
        return self.classification != TEST_EXECUTE


@dataclass(frozen=True)
class ToolResult:
    """Normalized outcome of one tool invocation."""
    tool_name: str
    classification: str
    status: str
    exit_code: int | None
    output: str = ""
    coverage_percent: int | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "status": self.status,
            "exitCode": self.exit_code,
            "output": self.output,
        }
        if self.classification == TEST_EXECUTE:
            payload["coveragePercent"] = self.coverage_percent
        return payload


@dataclass(frozen=True)
class VersionMismatch:
    """A version disagreement between two configuration surfaces."""
    tool: str
    comparison_kind: str
    local: str
    reference: str

    def to_dict(self) -> dict[str, str]:
        return {
            "tool": self.tool,
            "comparisonKind": self.comparison_kind,
            "local": self.local,
            "reference": self.reference,
        }


@dataclass(frozen=True)
class VerificationReport:
    """Terminal artifact of a verification run."""
    skipped: bool
    reason: str | None = None
    results: tuple[ToolResult, ...] = ()
    version_mismatches: tuple[VersionMismatch, ...] = ()
    hooks_registered: bool = False
    tree_guarded: bool = False

    def result(self, tool_name: str) -> ToolResult | None:
        for item in self.results:
            if item.tool_name == tool_name:
                return item
        return None

    def to_dict(self) -> dict[str, Any]:
        if self.skipped:
            return {"skipped": True, "reason": self.reason}
        payload: dict[str, Any] = {"skipped": False}
        for item in self.results:
            payload[item.tool_name] = item.to_dict()
        payload["versionMismatches"] = [item.to_dict() for item in self.version_mismatches]
        payload["hooksRegistered"] = self.hooks_registered
        payload["treeGuarded"] = self.tree_guarded
        return payload
