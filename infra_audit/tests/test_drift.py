from pathlib import Path

from infra_audit.core import drift
from infra_audit.core.models import (
    LOCAL_VS_CI,
    LOCAL_VS_HOOK_CONFIG,
    RUNTIME_LOCAL_VS_CI,
    FactSheet,
    VersionMismatch,
)


HOOK_CONFIG = """\
repos:
  - repo: https://github.com/astral-sh/ruff-pre-commit
    rev: v0.5.0
    hooks:
      - id: ruff
  - repo: https://github.com/RobertCraigie/pyright-python
    rev: v1.1.380
    hooks:
      - id: pyright
"""

CI_WORKFLOW = """\
jobs:
  test:
    steps:
      - uses: actions/setup-python@v5
        with:
          python-version: "3.11"
      - run: pip install ruff==0.6.9 pyright==1.1.380
"""


def _facts(root: Path, **overrides) -> FactSheet:
    values = {
        "root": str(root),
        "areas": {"git": True, "pre_commit": True, "ci": True, "venv": True},
        "tool_versions": {"python": "3.12.4", "ruff": "0.6.9", "pyright": "1.1.380"},
        "tool_paths": {},
        "project_name": "demo",
        "ci_workflow_paths": (".github/workflows/ci.yml",),
        "hook_config_path": ".pre-commit-config.yaml",
    }
    values.update(overrides)
    return FactSheet(**values)


class FakeTree:
    def __init__(self, hooks_path: str | None = None, hook_file: bool = False) -> None:
        self.hooks_path = hooks_path
        self.hook_file = hook_file

    def config_value(self, key: str) -> str | None:
        return self.hooks_path if key == "core.hooksPath" else None

    def has_hook(self, name: str) -> bool:
        return self.hook_file and name == "pre-commit"


def test_extract_hook_pin_reads_repo_rev_pairs() -> None:
    assert drift.extract_hook_pin(HOOK_CONFIG, "ruff") == "0.5.0"
    assert drift.extract_hook_pin(HOOK_CONFIG, "pyright") == "1.1.380"
    assert drift.extract_hook_pin("repos: []\n", "ruff") is None
    assert drift.extract_hook_pin(HOOK_CONFIG, "pytest") is None


def test_extract_ci_pin_supports_pip_and_action_forms() -> None:
    assert drift.extract_ci_pin("pip install ruff==0.6.9", "ruff") == "0.6.9"
    assert drift.extract_ci_pin("uses: astral-sh/ruff-action@v1\n  with: {version: x}\n  ruff@v0.4.1", "ruff") == "0.4.1"
    assert drift.extract_ci_pin("conda install ruff=0.3.0", "ruff") == "0.3.0"
    assert drift.extract_ci_pin("pip install ruff", "ruff") is None
    assert drift.extract_ci_pin("pip install basedpyright==1.2.0", "pyright") is None


def test_find_version_mismatches_reports_each_disagreeing_pair(tmp_path) -> None:
    mismatches = drift.find_version_mismatches(_facts(tmp_path), HOOK_CONFIG, [CI_WORKFLOW])

    assert mismatches == [
        VersionMismatch("ruff", LOCAL_VS_HOOK_CONFIG, "0.6.9", "0.5.0"),
        VersionMismatch("python", RUNTIME_LOCAL_VS_CI, "3.12", "3.11"),
    ]


def test_version_mismatch_is_symmetric_in_content(tmp_path) -> None:
    local_newer = _facts(tmp_path, tool_versions={"ruff": "0.6.9"})
    local_older = _facts(tmp_path, tool_versions={"ruff": "0.5.0"})
    newer_ci = "pip install ruff==0.6.9"
    older_ci = "pip install ruff==0.5.0"

    first = drift.find_version_mismatches(local_newer, None, [older_ci])
    second = drift.find_version_mismatches(local_older, None, [newer_ci])

    assert len(first) == len(second) == 1
    assert {first[0].local, first[0].reference} == {second[0].local, second[0].reference}
    assert first[0].comparison_kind == second[0].comparison_kind == LOCAL_VS_CI


def test_runtime_patch_difference_is_not_drift(tmp_path) -> None:
    facts = _facts(tmp_path, tool_versions={"python": "3.11.9"})

    assert drift.find_version_mismatches(facts, None, [CI_WORKFLOW]) == []


def test_first_ci_file_with_pin_wins(tmp_path) -> None:
    facts = _facts(tmp_path, tool_versions={"ruff": "0.6.9"})

    mismatches = drift.find_version_mismatches(
        facts, None, ["name: docs\n", "pip install ruff==0.4.0", "pip install ruff==0.6.9"]
    )

    assert mismatches == [VersionMismatch("ruff", LOCAL_VS_CI, "0.6.9", "0.4.0")]


def test_missing_local_version_produces_no_mismatch(tmp_path) -> None:
    facts = _facts(tmp_path, tool_versions={"python": None, "ruff": None, "pyright": None})

    assert drift.find_version_mismatches(facts, HOOK_CONFIG, [CI_WORKFLOW]) == []


def test_read_sources_uses_recorded_paths(tmp_path) -> None:
    (tmp_path / ".pre-commit-config.yaml").write_text(HOOK_CONFIG, encoding="utf-8")
    workflows = tmp_path / ".github" / "workflows"
    workflows.mkdir(parents=True)
    (workflows / "ci.yml").write_text(CI_WORKFLOW, encoding="utf-8")

    hook_config, ci_sources = drift.read_sources(_facts(tmp_path))

    assert hook_config == HOOK_CONFIG
    assert ci_sources == [CI_WORKFLOW]


def test_read_sources_skips_unreadable_files(tmp_path) -> None:
    hook_config, ci_sources = drift.read_sources(_facts(tmp_path))

    assert hook_config is None
    assert ci_sources == []


def test_hooks_registered_via_hook_file_or_hooks_path(tmp_path) -> None:
    facts = _facts(tmp_path)

    assert drift.hooks_registered(facts, FakeTree(hook_file=True))
    assert drift.hooks_registered(facts, FakeTree(hooks_path=".githooks"))
    assert not drift.hooks_registered(facts, FakeTree())
    assert not drift.hooks_registered(facts, None)


def test_hooks_not_registered_without_hook_config(tmp_path) -> None:
    facts = _facts(tmp_path, areas={"git": True})

    assert not drift.hooks_registered(facts, FakeTree(hook_file=True))


def test_hook_pin_without_ci_pin_yields_single_hook_mismatch(tmp_path) -> None:
    facts = _facts(tmp_path, tool_versions={"ruff": "1.2.0"})
    hook_config = "repos:\n  - repo: https://github.com/astral-sh/ruff-pre-commit\n    rev: v1.3.0\n"

    mismatches = drift.find_version_mismatches(facts, hook_config, ["steps:\n  - run: make test\n"])

    assert [item.comparison_kind for item in mismatches] == [LOCAL_VS_HOOK_CONFIG]
    assert (mismatches[0].local, mismatches[0].reference) == ("1.2.0", "1.3.0")
