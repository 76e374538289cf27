from __future__ import annotations

from dataclasses import dataclass, replace

from infra_audit.core.config import VerifyConfig
from infra_audit.core.models import (
    FORMAT,
    HOOK_RUNNER,
    LINT,
    TEST_COLLECT,
    TEST_EXECUTE,
    TYPE_CHECK,
    FactSheet,
    ToolInvocation,
)


@dataclass(frozen=True)
class ToolSpec:
    name: str
    executable: str
    area: str
    classification: str
    args: tuple[str, ...]
    mutates: bool = False


# Report order. Only the hook runner is known to rewrite files.
STATIC_CHECKS = (
    ToolSpec("ruff_check", "ruff", "ruff", LINT, ("check", ".")),
    ToolSpec("ruff_format", "ruff", "ruff", FORMAT, ("format", "--check", ".")),
    ToolSpec("pyright", "pyright", "pyright", TYPE_CHECK, ()),
    ToolSpec("pre_commit", "pre_commit", "pre_commit", HOOK_RUNNER, ("run", "--all-files"), mutates=True),
)
TEST_COLLECT_SPEC = ToolSpec("test_collect", "pytest", "tests", TEST_COLLECT, ("--collect-only", "-q"))
TEST_EXECUTE_SPEC = ToolSpec("pytest", "pytest", "tests", TEST_EXECUTE, ("-q", "--tb=short"))


@dataclass(frozen=True)
class VerificationPlan:
    """Invocations partitioned into independently schedulable groups.

    ``static_checks`` have no ordering between them. ``test_pipeline`` is
    empty or a (collect, execute) pair that must run in that order.
    """
    static_checks: tuple[ToolInvocation, ...] = ()
    test_pipeline: tuple[ToolInvocation, ...] = ()

    @property
    def invocations(self) -> tuple[ToolInvocation, ...]:
        return self.static_checks + self.test_pipeline


def in_scope(area: str, scope: frozenset[str] | None) -> bool:
    return scope is None or area in scope


def build_plan(facts: FactSheet, config: VerifyConfig) -> VerificationPlan:
    """Select applicable, available tools for a Fact Sheet.

    Args:
        facts (FactSheet): Detection facts; the only source of tool paths.
        config (VerifyConfig): Timeouts and the optional area scope filter.

    Returns:
        VerificationPlan: One invocation per tool whose area is detected and
            in scope and whose executable was found in the local environment.
    """
    static_checks = tuple(
        _invocation(spec, facts, config)
        for spec in STATIC_CHECKS
        if _applicable(spec, facts, config)
    )

    test_pipeline: tuple[ToolInvocation, ...] = ()
    if _applicable(TEST_EXECUTE_SPEC, facts, config):
        execute = _invocation(TEST_EXECUTE_SPEC, facts, config)
        tests = facts.test_config
        if tests.has_pytest_cov and not tests.cov_in_addopts:
            execute = replace(execute, command=execute.command + ("--cov",))
        test_pipeline = (_invocation(TEST_COLLECT_SPEC, facts, config), execute)

    return VerificationPlan(static_checks=static_checks, test_pipeline=test_pipeline)


def _applicable(spec: ToolSpec, facts: FactSheet, config: VerifyConfig) -> bool:
    return (
        facts.has(spec.area)
        and in_scope(spec.area, config.scope)
        and spec.executable in facts.tool_paths
    )


def _invocation(spec: ToolSpec, facts: FactSheet, config: VerifyConfig) -> ToolInvocation:
    return ToolInvocation(
        name=spec.name,
        area=spec.area,
        classification=spec.classification,
        command=(facts.tool_paths[spec.executable],) + spec.args,
        mutates=spec.mutates,
        timeout_s=config.timeout_for(spec.name, spec.classification),
    )
