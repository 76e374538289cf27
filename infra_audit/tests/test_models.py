from importlib.metadata import PackageNotFoundError

from infra_audit.core import version as version_module
from infra_audit.core.models import AREA_KEYS, FactSheet, ToolResult, VerificationReport
from infra_audit.core.version import get_infra_audit_version


def test_fact_sheet_fills_every_area_key() -> None:
    facts = FactSheet(root="/p", areas={"git": True, "unknown": True}, tool_versions={}, tool_paths={}, project_name="p")

    assert tuple(facts.areas) == AREA_KEYS
    assert facts.has("git")
    assert not facts.has("unknown")


def test_report_lookup_and_serialization_order() -> None:
    report = VerificationReport(
        skipped=False,
        results=(
            ToolResult("ruff_check", "lint", "pass", 0, ""),
            ToolResult("pytest", "test-execute", "pass", 0, "1 passed", coverage_percent=91),
        ),
        tree_guarded=True,
    )

    payload = report.to_dict()

    assert report.result("pytest").coverage_percent == 91
    assert report.result("pyright") is None
    assert list(payload) == ["skipped", "ruff_check", "pytest", "versionMismatches", "hooksRegistered", "treeGuarded"]


def test_version_is_never_empty() -> None:
    assert get_infra_audit_version()


def _not_installed(name: str) -> str:
    raise PackageNotFoundError(name)


def test_version_falls_back_to_source_pyproject(monkeypatch) -> None:
    monkeypatch.setattr(version_module, "version", _not_installed)
    get_infra_audit_version.cache_clear()
    try:
        assert get_infra_audit_version() == "0.1.0"
    finally:
        get_infra_audit_version.cache_clear()


def test_version_ignores_foreign_pyproject(tmp_path, monkeypatch) -> None:
    pyproject = tmp_path / "pyproject.toml"
    pyproject.write_text('[project]\nname = "other"\nversion = "9.9"\n', encoding="utf-8")
    monkeypatch.setattr(version_module, "version", _not_installed)
    monkeypatch.setattr(version_module, "_SOURCE_PYPROJECT", pyproject)
    get_infra_audit_version.cache_clear()
    try:
        assert get_infra_audit_version() == version_module.UNKNOWN_VERSION
    finally:
        get_infra_audit_version.cache_clear()
