from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any

from jsonschema import Draft202012Validator

from infra_audit.core.models import FactSheet, VerificationReport


FACT_SHEET_SCHEMA = "fact_sheet.schema.json"
VERIFICATION_REPORT_SCHEMA = "verification_report.schema.json"
CONTRACTS_DIR = Path(__file__).resolve().parent.parent / "contracts"


class ContractError(ValueError):
    """Raised when a document does not match its published JSON schema."""


@lru_cache(maxsize=None)
def load_schema(name: str) -> dict[str, Any]:
    resource = CONTRACTS_DIR / name
    return json.loads(resource.read_text(encoding="utf-8"))


def validate_document(document: Any, schema_name: str) -> None:
    """Validate a decoded JSON document against a bundled schema.

    Raises:
        ContractError: Listing every violation, each prefixed with its JSON path.
    """
    validator = Draft202012Validator(load_schema(schema_name))
    errors = sorted(validator.iter_errors(document), key=lambda err: list(err.absolute_path))
    if errors:
        lines = [f"{err.json_path}: {err.message}" for err in errors]
        raise ContractError(f"{schema_name} violation(s):\n" + "\n".join(lines))


def fact_sheet_from_json(data: Any) -> FactSheet:
    validate_document(data, FACT_SHEET_SCHEMA)
    return FactSheet.from_dict(data)


def load_fact_sheet(path: str) -> FactSheet:
    """Read a Fact Sheet written by ``detect``.

    Args:
        path (str): JSON file path.

    Returns:
        FactSheet: The validated, immutable facts.

    Raises:
        ContractError: If the file is not valid JSON or violates the schema.
    """
    with open(path, "r", encoding="utf-8") as handle:
        try:
            data = json.load(handle)
        except json.JSONDecodeError as exc:
            raise ContractError(f"{path} is not valid JSON: {exc}") from exc
    return fact_sheet_from_json(data)


def report_to_json(report: VerificationReport) -> dict[str, Any]:
    payload = report.to_dict()
    validate_document(payload, VERIFICATION_REPORT_SCHEMA)
    return payload
