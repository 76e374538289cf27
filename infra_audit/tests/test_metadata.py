from infra_audit.core.metadata import load_project_metadata, normalize_requirement_name


def test_load_project_metadata_reads_project_table(tmp_path) -> None:
    path = tmp_path / "pyproject.toml"
    path.write_text(
        '[project]\nname = "billing"\nrequires-python = ">=3.12"\ndependencies = ["httpx[http2]>=0.27"]\n'
        '[tool.pyright]\nstrict = ["src"]\n',
        encoding="utf-8",
    )

    metadata = load_project_metadata(path)

    assert metadata.parsed
    assert metadata.name == "billing"
    assert metadata.requires_python == ">=3.12"
    assert metadata.dependency_names == {"httpx"}
    assert metadata.has_tool_config("pyright")
    assert not metadata.has_tool_config("ruff")


def test_load_project_metadata_tolerates_missing_and_invalid_files(tmp_path) -> None:
    missing = load_project_metadata(tmp_path / "pyproject.toml")
    broken_path = tmp_path / "broken.toml"
    broken_path.write_text("name = [", encoding="utf-8")
    broken = load_project_metadata(broken_path)

    assert not missing.parsed
    assert not broken.parsed
    assert broken.name is None
    assert broken.dependency_names == set()


def test_pytest_addopts_accepts_string_form(tmp_path) -> None:
    path = tmp_path / "pyproject.toml"
    path.write_text('[tool.pytest.ini_options]\naddopts = "-q --cov=app"\n', encoding="utf-8")

    assert "--cov" in load_project_metadata(path).pytest_addopts


def test_normalize_requirement_name() -> None:
    assert normalize_requirement_name("Pytest-Cov>=5.0") == "pytest-cov"
    assert normalize_requirement_name("pydantic[email] ; python_version>'3.9'") == "pydantic"
    assert normalize_requirement_name("pkg @ https://example.test/pkg.whl") == "pkg"
    assert normalize_requirement_name("  ruff  ") == "ruff"
