#!/usr/bin/env python3
"""Build a household-disaggregated WiNDC table from a state table and raw inputs."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from windc_household.builder import build_household_table
from windc_household.config import load_household_config
from windc_household.core.tables import AccountingTable
from windc_household.data.raw import load_raw_data
from windc_household.enums import NonOptimalPolicy
from windc_household.errors import HouseholdError
from windc_household.io import read_table, write_table
from windc_household.qa.reporting import format_report_summary


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--config", type=Path, required=True, help="Household YAML config")
    parser.add_argument("--state-table", type=Path, default=None, help="Overrides data.state_table")
    parser.add_argument("--year", type=int, default=None, help="Calibration year (required when the table holds several)")
    parser.add_argument("--output", type=Path, default=Path("output/household_table"))
    parser.add_argument("--format", choices=["csv", "excel"], default=None)
    parser.add_argument(
        "--on-nonoptimal",
        choices=[policy.value for policy in NonOptimalPolicy],
        default=None,
        help="What to do when a calibration does not reach an optimum",
    )
    parser.add_argument("--solver", default=None, help="Overrides solver.name (ipopt, cyipopt, scipy or any Pyomo solver)")
    parser.add_argument(
        "--save-report",
        type=Path,
        default=Path("output/household_report.json"),
    )
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    _setup_logging(args.verbose)

    if not args.config.exists():
        print(f"Config file not found: {args.config}")
        return 1

    config = load_household_config(args.config)
    updates = {}
    if args.year is not None:
        updates["year"] = args.year
    solver_updates = {}
    if args.solver is not None:
        solver_updates["name"] = args.solver
    if args.on_nonoptimal is not None:
        solver_updates["on_nonoptimal"] = NonOptimalPolicy.from_alias(args.on_nonoptimal)
    if solver_updates:
        updates["solver"] = config.solver.model_copy(update=solver_updates)
    if updates:
        config = config.model_copy(update=updates)

    state_table_path = args.state_table or config.data.require("state_table")
    state_table = read_table(state_table_path, cls=AccountingTable)
    raw = load_raw_data(config, state_table)

    try:
        build = build_household_table(state_table, raw, config)
    except HouseholdError as exc:
        print(f"Household build failed: {exc}")
        return 1

    summary = write_table(build.table, args.output, fmt=args.format)
    print(f"Wrote {summary['rows']['data']} rows to {summary['path']} ({summary['format']})")
    for name, report in build.qa.items():
        print(f"{name}: {format_report_summary(report)}")
        for check in report.checks:
            if not check.passed:
                print(f"  - {check.code} [{check.category}] {check.title}: failures={check.failures}")

    args.save_report.parent.mkdir(parents=True, exist_ok=True)
    args.save_report.write_text(json.dumps(build.report(), indent=2, default=str))
    print(f"Report saved: {args.save_report}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
