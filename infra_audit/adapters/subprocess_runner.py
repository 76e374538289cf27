from __future__ import annotations

import logging
import os
import signal
import subprocess
import threading
import time

from infra_audit.core.models import (
    LAUNCH_FAILURE_EXIT_CODE,
    STATUS_FAIL,
    STATUS_PASS,
    STATUS_SKIP,
    STATUS_TIMEOUT,
    TEST_EXECUTE,
    TIMEOUT_EXIT_CODE,
    ToolInvocation,
    ToolResult,
)
from infra_audit.core.output import DEFAULT_LINE_BUDGET, extract_coverage, normalize_output


logger = logging.getLogger(__name__)

# Grace period for collecting output after a timed-out process is killed.
_DRAIN_TIMEOUT_S = 5.0


class SubprocessToolRunner:
    """Run tool invocations as OS subprocesses in the project root.

    Each process gets its own pipe (stdout and stderr merged) and its own
    process group, so concurrent tools never interleave output and a timeout
    kills the tool together with anything it spawned.
    """
    def __init__(self, cwd: str, line_budget: int = DEFAULT_LINE_BUDGET) -> None:
        self.cwd = cwd
        self.line_budget = line_budget
        self._live: dict[int, subprocess.Popen] = {}
        self._lock = threading.Lock()
        self._closed = False

    def run(self, invocation: ToolInvocation) -> ToolResult:
        """Execute one tool and classify its outcome.

        Args:
            invocation (ToolInvocation): Command line, timeout and
                classification of the tool.

        Returns:
            ToolResult: ``pass`` on exit 0, ``timeout`` (exit code 124) when
                the deadline elapsed, ``fail`` otherwise, and ``skip`` once
                ``terminate`` has been called.

        Notes:
            This method does not raise; launch errors become a ``fail`` result
            with exit code 127 so sibling tools keep running. ``status`` is
            authoritative: a tool that itself exits 124 or 127 is still ``fail``.
        """
        start = time.time()
        with self._lock:
            if self._closed:
                logger.info("%s not started: runner was terminated", invocation.name)
                return ToolResult(
                    tool_name=invocation.name,
                    classification=invocation.classification,
                    status=STATUS_SKIP,
                    exit_code=None,
                    output="skipped: run terminated",
                )
            try:
                proc = subprocess.Popen(
                    list(invocation.command),
                    cwd=self.cwd,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    start_new_session=os.name == "posix",
                )
            except OSError as exc:
                logger.warning("%s could not be started: %s", invocation.name, exc)
                return ToolResult(
                    tool_name=invocation.name,
                    classification=invocation.classification,
                    status=STATUS_FAIL,
                    exit_code=LAUNCH_FAILURE_EXIT_CODE,
                    output=normalize_output(str(exc), self.line_budget),
                )
            self._live[proc.pid] = proc

        timed_out = False
        try:
            try:
                raw, _ = proc.communicate(timeout=invocation.timeout_s)
            except subprocess.TimeoutExpired:
                timed_out = True
                logger.warning("%s exceeded its %ss timeout", invocation.name, invocation.timeout_s)
                _kill(proc)
                raw = _drain(proc)
        finally:
            with self._lock:
                self._live.pop(proc.pid, None)

        text = (raw or b"").decode("utf-8", errors="replace")
        if timed_out:
            status, exit_code = STATUS_TIMEOUT, TIMEOUT_EXIT_CODE
        elif proc.returncode == 0:
            status, exit_code = STATUS_PASS, 0
        else:
            status, exit_code = STATUS_FAIL, proc.returncode

        coverage = None
        if invocation.classification == TEST_EXECUTE and not timed_out:
            coverage = extract_coverage(text)

        logger.debug(
            "%s finished status=%s exit=%s duration_ms=%d",
            invocation.name,
            status,
            exit_code,
            int((time.time() - start) * 1000),
        )
        return ToolResult(
            tool_name=invocation.name,
            classification=invocation.classification,
            status=status,
            exit_code=exit_code,
            output=normalize_output(text, self.line_budget, invocation.truncate_from_head),
            coverage_percent=coverage,
        )

    def terminate(self) -> None:
        with self._lock:
            self._closed = True
            live = list(self._live.values())
        for proc in live:
            logger.warning("terminating pid %s", proc.pid)
            _kill(proc)


def _kill(proc: subprocess.Popen) -> None:
    if proc.poll() is not None:
        return
    try:
        if os.name == "posix":
            os.killpg(proc.pid, signal.SIGKILL)
        else:
            proc.kill()
    except ProcessLookupError:
        pass


def _drain(proc: subprocess.Popen) -> bytes:
    try:
        raw, _ = proc.communicate(timeout=_DRAIN_TIMEOUT_S)
    except subprocess.TimeoutExpired:
        # A descendant escaped the process group and still holds the pipe.
        proc.kill()
        proc.wait()
        return b""
    return raw or b""
