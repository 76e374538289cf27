import time
from pathlib import Path

from infra_audit.adapters.subprocess_runner import SubprocessToolRunner
from infra_audit.core.models import ToolInvocation
from infra_audit.core.output import TRUNCATION_MARKER


def _script(path: Path, body: str) -> str:
    path.write_text(f"#!/bin/sh\n{body}", encoding="utf-8")
    path.chmod(0o755)
    return str(path)


def _invocation(command: str, classification: str = "lint", timeout_s: float = 10.0) -> ToolInvocation:
    return ToolInvocation(
        name="tool",
        area="ruff",
        classification=classification,
        command=(command,),
        timeout_s=timeout_s,
    )


def test_zero_exit_is_pass(tmp_path) -> None:
    command = _script(tmp_path / "ok", "echo 'All checks passed!'\n")

    result = SubprocessToolRunner(str(tmp_path)).run(_invocation(command))

    assert result.status == "pass"
    assert result.exit_code == 0
    assert result.output == "All checks passed!"


def test_nonzero_exit_is_fail_with_merged_output(tmp_path) -> None:
    command = _script(tmp_path / "bad", "echo 'app.py:1:1: F401 unused import'\necho 'Found 1 error.' >&2\nexit 3\n")

    result = SubprocessToolRunner(str(tmp_path)).run(_invocation(command))

    assert result.status == "fail"
    assert result.exit_code == 3
    assert "F401" in result.output
    assert "Found 1 error." in result.output


def test_timeout_kills_tool_and_reports_sentinel(tmp_path) -> None:
    command = _script(tmp_path / "slow", "echo started\nsleep 30\n")

    start = time.monotonic()
    result = SubprocessToolRunner(str(tmp_path)).run(_invocation(command, timeout_s=0.5))

    assert time.monotonic() - start < 10
    assert result.status == "timeout"
    assert result.exit_code == 124
    assert "started" in result.output


def test_launch_failure_is_fail_with_127(tmp_path) -> None:
    result = SubprocessToolRunner(str(tmp_path)).run(_invocation(str(tmp_path / "missing")))

    assert result.status == "fail"
    assert result.exit_code == 127
    assert result.output


def test_tool_exiting_124_itself_is_fail_not_timeout(tmp_path) -> None:
    command = _script(tmp_path / "own124", "echo 'gave up'\nexit 124\n")

    result = SubprocessToolRunner(str(tmp_path)).run(_invocation(command, timeout_s=10.0))

    assert result.status == "fail"
    assert result.exit_code == 124
    assert result.output == "gave up"


def test_no_launch_after_terminate(tmp_path) -> None:
    marker = tmp_path / "started"
    command = _script(tmp_path / "tool", f"touch '{marker}'\n")
    runner = SubprocessToolRunner(str(tmp_path))

    runner.terminate()
    result = runner.run(_invocation(command, classification="test_execute"))

    assert result.status == "skip"
    assert result.exit_code is None
    assert not marker.exists()


def test_runs_in_project_root(tmp_path) -> None:
    project = tmp_path / "project"
    project.mkdir()
    command = _script(tmp_path / "where", "pwd\n")

    result = SubprocessToolRunner(str(project)).run(_invocation(command))

    assert Path(result.output).resolve() == project.resolve()


def test_output_respects_line_budget(tmp_path) -> None:
    command = _script(tmp_path / "noisy", "i=0\nwhile [ $i -lt 100 ]; do echo \"line $i\"; i=$((i+1)); done\nexit 1\n")
    runner = SubprocessToolRunner(str(tmp_path), line_budget=30)

    collect = runner.run(_invocation(command, classification="test-collect"))
    execute = runner.run(_invocation(command, classification="test-execute"))

    assert len(collect.output.splitlines()) == 31
    assert collect.output.splitlines()[0] == "line 0"
    assert collect.output.splitlines()[-1] == TRUNCATION_MARKER
    assert len(execute.output.splitlines()) == 31
    assert execute.output.splitlines()[0] == TRUNCATION_MARKER
    assert execute.output.splitlines()[-1] == "line 99"


def test_coverage_is_read_from_full_execution_output(tmp_path) -> None:
    body = (
        "echo 'Name    Stmts   Miss  Cover'\n"
        "echo 'TOTAL     200     25    87.5%'\n"
        "i=0\nwhile [ $i -lt 50 ]; do echo \"summary $i\"; i=$((i+1)); done\n"
    )
    command = _script(tmp_path / "pytest", body)

    result = SubprocessToolRunner(str(tmp_path), line_budget=5).run(_invocation(command, classification="test-execute"))

    assert result.coverage_percent == 87
    assert "TOTAL" not in result.output
    assert result.to_dict()["coveragePercent"] == 87


def test_coverage_absent_without_summary(tmp_path) -> None:
    command = _script(tmp_path / "pytest", "echo '3 passed in 0.01s'\n")

    result = SubprocessToolRunner(str(tmp_path)).run(_invocation(command, classification="test-execute"))

    assert result.coverage_percent is None
    assert result.to_dict() == {"status": "pass", "exitCode": 0, "output": "3 passed in 0.01s", "coveragePercent": None}


def test_output_is_redacted(tmp_path) -> None:
    command = _script(tmp_path / "leaky", "echo 'DATABASE_PASSWORD=hunter2'\nexit 1\n")

    result = SubprocessToolRunner(str(tmp_path)).run(_invocation(command))

    assert "hunter2" not in result.output
