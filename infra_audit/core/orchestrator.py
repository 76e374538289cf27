from __future__ import annotations

import logging
import os
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass

from infra_audit.core.config import VerifyConfig
from infra_audit.core.drift import find_version_mismatches, hooks_registered, read_sources
from infra_audit.core.guard import TreeGuard, sigterm_as_exit
from infra_audit.core.models import (
    STATUS_PASS,
    STATUS_SKIP,
    FactSheet,
    ToolInvocation,
    ToolResult,
    VerificationReport,
    VersionMismatch,
)
from infra_audit.core.plan import VerificationPlan, build_plan
from infra_audit.ports.tool_runner import ToolRunner
from infra_audit.ports.working_tree import WorkingTree


logger = logging.getLogger(__name__)

IDLE = "idle"
GUARDING = "guarding"
RUNNING = "running"
RESTORING = "restoring"
DONE = "done"

NO_LOCAL_ENVIRONMENT = "no local tool environment"


@dataclass(frozen=True)
class CrossReference:
    version_mismatches: tuple[VersionMismatch, ...]
    hooks_registered: bool


class VerificationOrchestrator:
    """Run every applicable tool once and leave the working tree untouched.

    Phases advance ``idle -> guarding -> running -> restoring -> done``.
    Restoring is entered from every exit path of ``running``, including
    exceptions and SIGTERM.
    """
    def __init__(
        self,
        tool_runner: ToolRunner,
        working_tree: WorkingTree | None,
        config: VerifyConfig | None = None,
    ) -> None:
        self.tool_runner = tool_runner
        self.working_tree = working_tree
        self.config = config or VerifyConfig()
        self.phase = IDLE

    def run(self, facts: FactSheet) -> VerificationReport:
        """Verify a project described by its Fact Sheet.

        Args:
            facts (FactSheet): Detection output; never re-derived here.

        Returns:
            VerificationReport: Tool outcomes, version drift and hook
                registration. Failing or timed-out tools are data, not errors.

        Raises:
            GuardError: If the snapshot or restore step fails. The report
                would not be trustworthy, so none is returned.
        """
        if not facts.has("venv"):
            logger.info("skipping verification: %s", NO_LOCAL_ENVIRONMENT)
            self.phase = DONE
            return VerificationReport(skipped=True, reason=NO_LOCAL_ENVIRONMENT)

        plan = build_plan(facts, self.config)
        logger.info(
            "verifying %s with %d tool(s): %s",
            facts.project_name,
            len(plan.invocations),
            ", ".join(item.name for item in plan.invocations) or "none",
        )

        tree = self.working_tree if facts.has("git") else None
        guard = TreeGuard(tree, label=f"infra-audit-verify-{os.getpid()}")
        with sigterm_as_exit():
            self.phase = GUARDING
            with guard:
                self.phase = RUNNING
                try:
                    results, xref = self._execute(facts, plan, tree)
                finally:
                    self.phase = RESTORING
        self.phase = DONE

        return VerificationReport(
            skipped=False,
            results=tuple(results),
            version_mismatches=xref.version_mismatches,
            hooks_registered=xref.hooks_registered,
            tree_guarded=guard.guarded,
        )

    def _execute(
        self,
        facts: FactSheet,
        plan: VerificationPlan,
        tree: WorkingTree | None,
    ) -> tuple[list[ToolResult], CrossReference]:
        units = len(plan.static_checks) + (1 if plan.test_pipeline else 0) + 1
        workers = self.config.max_workers or units
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="infra-audit")
        try:
            static: list[Future[ToolResult]] = [
                executor.submit(self.tool_runner.run, invocation) for invocation in plan.static_checks
            ]
            tests: Future[list[ToolResult]] | None = None
            if plan.test_pipeline:
                tests = executor.submit(self._run_test_pipeline, plan.test_pipeline)
            xref = executor.submit(self._cross_reference, facts, tree)

            # Join every unit before assembling anything.
            results = [future.result() for future in static]
            if tests is not None:
                results.extend(tests.result())
            cross_reference = xref.result()
        except BaseException:
            self.tool_runner.terminate()
            executor.shutdown(wait=True, cancel_futures=True)
            raise
        executor.shutdown(wait=True)
        return results, cross_reference

    def _run_test_pipeline(self, pipeline: tuple[ToolInvocation, ...]) -> list[ToolResult]:
        collect, execute = pipeline
        collected = self.tool_runner.run(collect)
        if collected.status != STATUS_PASS:
            logger.info("%s did not pass (%s); skipping %s", collect.name, collected.status, execute.name)
            return [collected, _skipped(execute, f"skipped: {collect.name} status={collected.status}")]
        return [collected, self.tool_runner.run(execute)]

    def _cross_reference(self, facts: FactSheet, tree: WorkingTree | None) -> CrossReference:
        """Group C: version drift and hook registration.

        Drift sources are plain file reads. Hook registration asks the
        working-tree port, which for git starts short ``git config`` and
        ``git rev-parse`` subprocesses alongside the tool processes.
        """
        hook_config, ci_sources = read_sources(facts)
        mismatches = find_version_mismatches(facts, hook_config, ci_sources)
        for item in mismatches:
            logger.info(
                "version drift for %s (%s): local=%s reference=%s",
                item.tool,
                item.comparison_kind,
                item.local,
                item.reference,
            )
        return CrossReference(
            version_mismatches=tuple(mismatches),
            hooks_registered=hooks_registered(facts, tree),
        )


def _skipped(invocation: ToolInvocation, reason: str) -> ToolResult:
    return ToolResult(
        tool_name=invocation.name,
        classification=invocation.classification,
        status=STATUS_SKIP,
        exit_code=None,
        output=reason,
    )
