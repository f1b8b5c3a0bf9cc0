"""Exception hierarchy for the household disaggregation pipeline."""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from windc_household.calibration.base import SolverReport


class HouseholdError(Exception):
    """Base class for all errors raised by windc_household."""


class RegularityError(HouseholdError):
    """Raised when a table references elements that no set declares.

    Attributes:
        column: Fact-table column holding the undeclared values
        values: The undeclared values (sorted)
        step: Pipeline step that produced the table, if known
    """

    def __init__(self, column: str, values: Iterable[str], step: str | None = None) -> None:
        self.column = column
        self.values = sorted(str(v) for v in values)
        self.step = step
        preview = ", ".join(self.values[:10])
        if len(self.values) > 10:
            preview += f", ... ({len(self.values) - 10} more)"
        prefix = f"{step}: " if step else ""
        msg = (
            f"{prefix}regularity check failed, undeclared element(s) {preview} "
            f"in column '{column}' (no set with domain '{column}' lists them)"
        )
        super().__init__(msg)


class CalibrationError(HouseholdError, RuntimeError):
    """Raised when a calibration model terminates in an unusable state."""

    def __init__(self, model_name: str, report: SolverReport | None = None, detail: str = "") -> None:
        self.model_name = model_name
        self.report = report
        msg = f"Calibration model '{model_name}' failed"
        if report is not None:
            msg += f" (status={report.status}, termination={report.termination})"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class PipelineStepError(HouseholdError, RuntimeError):
    """Raised by the table builder when a named step fails.

    The original exception is chained as ``__cause__``.
    """

    def __init__(self, step: str, cause: BaseException) -> None:
        self.step = step
        super().__init__(f"{step}: {cause}")
