"""Data-quality checks and reporting for calibration solutions."""

from windc_household.qa.calibration_checks import check_consumption_calibration, check_income_calibration
from windc_household.qa.reporting import CalibrationQAReport, format_report_summary

__all__ = [
    "CalibrationQAReport",
    "check_consumption_calibration",
    "check_income_calibration",
    "format_report_summary",
]
