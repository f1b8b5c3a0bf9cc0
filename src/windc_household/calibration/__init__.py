"""Calibration models for disaggregating state accounts by household."""

from windc_household.calibration.base import SolverReport, solve_model, solver_available
from windc_household.calibration.consumption import (
    ConsumptionCalibrationResult,
    build_consumption_model,
    calibrate_consumption,
)
from windc_household.calibration.income import (
    IncomeCalibrationResult,
    build_income_model,
    calibrate_income,
)

__all__ = [
    "ConsumptionCalibrationResult",
    "IncomeCalibrationResult",
    "SolverReport",
    "build_consumption_model",
    "build_income_model",
    "calibrate_consumption",
    "calibrate_income",
    "solve_model",
    "solver_available",
]
