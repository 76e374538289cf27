from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys
from pathlib import Path

from infra_audit.adapters.git_tree import GitWorkingTree
from infra_audit.adapters.subprocess_runner import SubprocessToolRunner
from infra_audit.core.config import VerifyConfig, parse_scope
from infra_audit.core.contracts import load_fact_sheet, report_to_json
from infra_audit.core.detector import detect_project
from infra_audit.core.guard import GuardError
from infra_audit.core.logging_config import setup_logging
from infra_audit.core.models import FactSheet
from infra_audit.core.orchestrator import VerificationOrchestrator
from infra_audit.core.version import get_infra_audit_version


logger = logging.getLogger("infra_audit.cli")

EXIT_OK = 0
EXIT_USAGE = 2
EXIT_GUARD = 3


def _write_json(payload: dict, out: str | None) -> None:
    """Write a JSON document to ``out`` or stdout."""
    text = json.dumps(payload, indent=2) + "\n"
    if out is None:
        sys.stdout.write(text)
        return
    path = Path(out)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    logger.info("wrote %s", path)


def _load_config(args: argparse.Namespace) -> VerifyConfig:
    """Config file first, then the ``--scope`` flag on top of it."""
    config = VerifyConfig.from_file(args.config) if args.config else VerifyConfig()
    if args.scope is not None:
        config = config.with_scope(parse_scope(args.scope))
    return config


def _verify(facts: FactSheet, config: VerifyConfig, out: str | None) -> int:
    root = Path(facts.root)
    orchestrator = VerificationOrchestrator(
        SubprocessToolRunner(str(root), line_budget=config.output_line_budget),
        GitWorkingTree(root),
        config,
    )
    try:
        report = orchestrator.run(facts)
    except GuardError as exc:
        print(f"working tree guard failed: {exc}", file=sys.stderr)
        return EXIT_GUARD
    _write_json(report_to_json(report), out)
    return EXIT_OK


def detect_command(args: argparse.Namespace) -> int:
    """Detect project facts and emit the Fact Sheet."""
    facts = detect_project(args.root)
    _write_json(facts.to_dict(), args.out)
    return EXIT_OK


def verify_command(args: argparse.Namespace) -> int:
    """Verify a project from a previously written Fact Sheet."""
    config = _load_config(args)
    facts = load_fact_sheet(args.facts)
    if args.root is not None:
        facts = dataclasses.replace(facts, root=str(Path(args.root).absolute()))
    return _verify(facts, config, args.out)


def run_command(args: argparse.Namespace) -> int:
    """Detect and verify in a single process."""
    config = _load_config(args)
    facts = detect_project(args.root, venv_dir=config.venv_dir)
    return _verify(facts, config, args.out)


def _add_verify_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--scope", default=None, help="Comma-separated areas to verify (default: all)")
    parser.add_argument("--config", default=None, help="Path to a YAML or JSON verify config")
    parser.add_argument("--out", default=None, help="Write the report to a file instead of stdout")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="infra-audit")
    parser.add_argument("--version", action="version", version=f"%(prog)s {get_infra_audit_version()}")
    parser.add_argument(
        "--log-level",
        default=None,
        help="DEBUG, INFO, WARNING or ERROR (default: $INFRA_AUDIT_LOG_LEVEL or WARNING)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    detect_parser = subparsers.add_parser("detect", help="Detect project facts")
    detect_parser.add_argument("--root", default=".", help="Project root directory")
    detect_parser.add_argument("--out", default=None, help="Write the Fact Sheet to a file instead of stdout")
    detect_parser.set_defaults(func=detect_command)

    verify_parser = subparsers.add_parser("verify", help="Run tools against a detected project")
    verify_parser.add_argument("--facts", required=True, help="Path to a Fact Sheet JSON file")
    verify_parser.add_argument("--root", default=None, help="Override the project root recorded in the facts")
    _add_verify_options(verify_parser)
    verify_parser.set_defaults(func=verify_command)

    run_parser = subparsers.add_parser("run", help="Detect then verify")
    run_parser.add_argument("--root", default=".", help="Project root directory")
    _add_verify_options(run_parser)
    run_parser.set_defaults(func=run_command)
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint and command registration."""
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        setup_logging(args.log_level)
    except ValueError as exc:
        parser.error(str(exc))
    try:
        return args.func(args)
    except (OSError, ValueError) as exc:
        # ContractError is a ValueError.
        print(f"infra-audit: {exc}", file=sys.stderr)
        return EXIT_USAGE


if __name__ == "__main__":
    raise SystemExit(main())
