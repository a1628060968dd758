# mypy: ignore-errors
"""
Versioning CLI tool for APItize.

This tool runs the offline parts of the versioning server:
- compare: Compatibility report between two specification files
- classify: Major/minor/patch classification of two version strings
- plan: Steps and rollback plan a migration strategy would produce

Usage:
    apitize-versioning compare --old openapi.v1.json --new openapi.v2.json
    apitize-versioning classify 1.4.2 2.0.0
    apitize-versioning plan --strategy canary

Invariants:
    - Breaking changes cause non-zero exit code
    - JSON output is deterministic (sorted keys)

How to change safely:
    - Add new commands, don't modify existing ones
    - Keep output format stable for CI parsing
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any

from .. import semantic
from ..compat import CompatibilityReport, compare_specifications
from ..config import PlannerConfig
from ..errors import InvalidMigrationStrategy
from ..migration import MigrationStrategy, build_rollback_plan, generate_steps
from ..models import ApiSpecification

logger = logging.getLogger(__name__)


class VersioningCLI:
    """CLI tool for offline version checks.

    Example:
        >>> cli = VersioningCLI()
        >>> report = cli.compare("v1.json", "v2.json")
        >>> cli.classify("1.0.0", "1.1.0")
        'minor'
    """

    def __init__(self, planner_config: PlannerConfig | None = None) -> None:
        self.planner_config = planner_config or PlannerConfig()

    def load_specification(self, path: str) -> ApiSpecification:
        """Read a JSON specification file.

        Accepts either a bare OpenAPI document or a version payload
        carrying it under ``specification``.
        """
        with open(path) as f:
            data = json.load(f)
        if "specification" in data:
            data = data["specification"]
        return ApiSpecification.from_dict(data)

    def compare(self, old_path: str, new_path: str) -> CompatibilityReport:
        """Compare two specification files.

        Args:
            old_path: Path to the baseline specification
            new_path: Path to the candidate specification

        Returns:
            CompatibilityReport for old -> new
        """
        old = self.load_specification(old_path)
        new = self.load_specification(new_path)
        return compare_specifications(
            old,
            new,
            version1=old.info.version,
            version2=new.info.version,
        )

    def classify(self, previous: str, current: str) -> str:
        """Classify ``current`` relative to ``previous``.

        Raises:
            ValueError: If either string is not a semantic version
        """
        return semantic.classify_change(previous, current)

    def plan(self, strategy: str) -> dict[str, Any]:
        """Steps and rollback plan for a strategy.

        Raises:
            InvalidMigrationStrategy: If the strategy is unknown
        """
        steps = generate_steps(strategy)
        rollback = build_rollback_plan(self.planner_config)
        return {
            "strategy": strategy,
            "steps": [step.to_dict() for step in steps],
            "rollback_plan": rollback.to_dict(),
        }


def _print_report(report: CompatibilityReport) -> None:
    if report.compatible:
        print(f"Compatible (score {report.score})")
    else:
        print(
            f"Found {len(report.breaking_changes)} breaking change(s) "
            f"(score {report.score}):"
        )
        for change in report.breaking_changes:
            print(f"  - {change}")
    for warning in report.warnings:
        print(f"  [WARN] {warning.type}: {warning.description}")


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the versioning tool."""
    parser = argparse.ArgumentParser(description="APItize version management tool")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # compare command
    compare_parser = subparsers.add_parser("compare", help="Compare two specification files")
    compare_parser.add_argument("--old", required=True, help="Path to baseline specification JSON")
    compare_parser.add_argument("--new", required=True, help="Path to candidate specification JSON")
    compare_parser.add_argument(
        "--format", choices=["text", "json"], default="text", help="Output format"
    )

    # classify command
    classify_parser = subparsers.add_parser("classify", help="Classify a version bump")
    classify_parser.add_argument("previous", help="Previous version")
    classify_parser.add_argument("current", help="New version")

    # plan command
    plan_parser = subparsers.add_parser("plan", help="Show a migration strategy's steps")
    plan_parser.add_argument(
        "--strategy",
        "-s",
        default=MigrationStrategy.BLUE_GREEN.value,
        help=f"One of: {', '.join(MigrationStrategy.values())}",
    )
    plan_parser.add_argument(
        "--format", choices=["text", "json"], default="text", help="Output format"
    )

    args = parser.parse_args(argv)
    cli = VersioningCLI()

    if args.command == "compare":
        try:
            report = cli.compare(args.old, args.new)
        except ValueError as e:
            print(f"Invalid specification: {e}", file=sys.stderr)
            sys.exit(2)

        if args.format == "json":
            print(json.dumps(report.to_dict(), indent=2, sort_keys=True))
        else:
            _print_report(report)

        # Exit with error if breaking changes
        sys.exit(0 if report.compatible else 1)

    elif args.command == "classify":
        try:
            print(cli.classify(args.previous, args.current))
        except ValueError as e:
            print(f"Invalid version: {e}", file=sys.stderr)
            sys.exit(2)

    elif args.command == "plan":
        try:
            plan = cli.plan(args.strategy)
        except InvalidMigrationStrategy as e:
            print(str(e), file=sys.stderr)
            sys.exit(2)

        if args.format == "json":
            print(json.dumps(plan, indent=2, sort_keys=True))
        else:
            print(f"Strategy: {plan['strategy']}")
            for step in plan["steps"]:
                after = ", ".join(step["dependencies"]) or "-"
                print(f"  {step['id']:<10} {step['type']:<8} {step['name']} (after: {after})")
            print("Rollback triggers:")
            for condition in plan["rollback_plan"]["conditions"]:
                print(f"  - {condition}")


if __name__ == "__main__":
    main()
