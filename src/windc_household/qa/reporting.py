"""Reports for the identities checked on a calibration solution.

One :class:`CalibrationQAReport` is written per solved model. It records
the solver outcome next to the identity checks, since a solution that
satisfies every identity at an iteration-limited point still needs a
second look.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    from windc_household.calibration.base import SolverReport

Severity = Literal["error", "warning"]

SCHEMA_VERSION = "1.1"


@dataclass
class CalibrationQACheckResult:
    """Outcome of one identity over the solution.

    Attributes:
        code: Contract code (``INC001``, ``CON002``, ...)
        keys: Index columns the identity is evaluated over, e.g.
            ``["region", "hh"]``; empty for a national total
        evaluated: Number of index rows compared
        failures: Rows outside tolerance
        max_abs_delta: Largest absolute gap among failures
        max_rel_delta: Largest relative gap among failures
        samples: Worst failing rows with their ``lhs``/``rhs`` values
    """

    code: str
    title: str
    category: str
    description: str
    severity: Severity
    passed: bool
    evaluated: int
    failures: int
    max_abs_delta: float
    max_rel_delta: float
    abs_tol: float
    rel_tol: float
    keys: list[str] = field(default_factory=list)
    samples: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def solver_outcome(report: SolverReport) -> dict[str, Any]:
    """The parts of a solver report worth keeping next to the checks."""
    return {
        "solver": report.solver,
        "status": report.status,
        "termination": report.termination,
        "termination_class": report.termination_class.value,
        "objective_value": report.objective_value,
        "iterations": report.iterations,
        "solve_time": report.solve_time,
    }


@dataclass
class CalibrationQAReport:
    """Identity checks for one solved calibration model.

    The report passes when no error-severity check fails. Warning checks
    (share normalization) are counted but never fail the report.
    """

    schema_version: str
    model_name: str
    year: int
    passed: bool
    evaluated_checks: int
    failed_checks: int
    failed_error_checks: int
    failed_warning_checks: int
    checks: list[CalibrationQACheckResult]
    solver: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_checks(
        cls,
        report: SolverReport,
        year: int,
        checks: list[CalibrationQACheckResult],
        metadata: dict[str, Any] | None = None,
    ) -> CalibrationQAReport:
        failed = [c for c in checks if not c.passed]
        failed_errors = [c for c in failed if c.severity == "error"]
        return cls(
            schema_version=SCHEMA_VERSION,
            model_name=report.model_name,
            year=int(year),
            passed=not failed_errors,
            evaluated_checks=len(checks),
            failed_checks=len(failed),
            failed_error_checks=len(failed_errors),
            failed_warning_checks=len(failed) - len(failed_errors),
            checks=checks,
            solver=solver_outcome(report),
            metadata=dict(metadata or {}),
        )

    def check(self, code: str) -> CalibrationQACheckResult:
        for result in self.checks:
            if result.code == code:
                return result
        raise KeyError(f"No QA check with code '{code}' in {self.model_name}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": self.schema_version,
            "model_name": self.model_name,
            "year": self.year,
            "passed": self.passed,
            "evaluated_checks": self.evaluated_checks,
            "failed_checks": self.failed_checks,
            "failed_error_checks": self.failed_error_checks,
            "failed_warning_checks": self.failed_warning_checks,
            "solver": self.solver,
            "checks": [check.to_dict() for check in self.checks],
            "metadata": self.metadata,
        }

    def save_json(self, path: Path | str) -> None:
        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(json.dumps(self.to_dict(), indent=2, default=str))


def format_report_summary(report: CalibrationQAReport) -> str:
    status = "PASS" if report.passed else "FAIL"
    termination = report.solver.get("termination", "unknown")
    return (
        f"{report.model_name} {report.year} QA {status} | termination={termination} "
        f"checks={report.evaluated_checks} failed={report.failed_checks} "
        f"errors={report.failed_error_checks} warnings={report.failed_warning_checks}"
    )
