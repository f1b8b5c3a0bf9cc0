"""Contract definitions for calibration QA gates."""

from __future__ import annotations

from dataclasses import dataclass

from windc_household.qa.reporting import Severity


@dataclass(frozen=True)
class CalibrationContractSpec:
    """Defines one calibration QA contract gate."""

    code: str
    title: str
    category: str
    description: str
    severity: Severity
    abs_tol: float
    rel_tol: float


def default_income_contracts(*, balance_rel_tol: float = 1e-6) -> dict[str, CalibrationContractSpec]:
    """Identities the income calibration solution must satisfy."""
    return {
        "INC001": CalibrationContractSpec(
            code="INC001",
            title="Household Budget Identity",
            category="budget",
            description=(
                "For each (region, household): Transfer_Payments + sum_work Wages + Interest "
                "= Consumption + Savings + Taxes"
            ),
            severity="error",
            abs_tol=1e-6,
            rel_tol=balance_rel_tol,
        ),
        "INC002": CalibrationContractSpec(
            code="INC002",
            title="Transfer Decomposition",
            category="budget",
            description="Transfer_Payments = Government_Transfers + Other_Income",
            severity="error",
            abs_tol=1e-6,
            rel_tol=balance_rel_tol,
        ),
        "INC003": CalibrationContractSpec(
            code="INC003",
            title="Wage Mass Balance",
            category="mass_balance",
            description="For each work region: sum_home,h Wages = Labor_Demand (Use-normalized)",
            severity="error",
            abs_tol=1e-6,
            rel_tol=balance_rel_tol,
        ),
        "INC004": CalibrationContractSpec(
            code="INC004",
            title="Interest Mass Balance",
            category="mass_balance",
            description=(
                "sum Interest + Foreign_Capital_Ownership = Capital_Demand + Household_Supply "
                "(Use-normalized)"
            ),
            severity="error",
            abs_tol=1e-6,
            rel_tol=balance_rel_tol,
        ),
        "INC005": CalibrationContractSpec(
            code="INC005",
            title="Savings Mass Balance",
            category="mass_balance",
            description="sum Savings + Foreign_Savings = Investment_Final_Demand (Use-normalized)",
            severity="error",
            abs_tol=1e-6,
            rel_tol=balance_rel_tol,
        ),
        "INC006": CalibrationContractSpec(
            code="INC006",
            title="Commuting Dominance",
            category="wages",
            description="For each (home, household): Wages[home, home] >= sum_dest!=home Wages[home, dest]",
            severity="error",
            abs_tol=1e-6,
            rel_tol=0.0,
        ),
        "INC007": CalibrationContractSpec(
            code="INC007",
            title="Regional Consumption Total",
            category="consumption",
            description="For each region: sum_h Consumption = Personal_Consumption (Use-normalized)",
            severity="error",
            abs_tol=1e-6,
            rel_tol=balance_rel_tol,
        ),
    }


def default_consumption_contracts(
    *,
    balance_rel_tol: float = 1e-6,
    share_tol: float = 1e-9,
) -> dict[str, CalibrationContractSpec]:
    """Identities the consumption calibration solution must satisfy."""
    return {
        "CON001": CalibrationContractSpec(
            code="CON001",
            title="Market Clearing",
            category="consumption",
            description="For each (region, commodity): sum_h CD = Personal_Consumption (Use-normalized)",
            severity="error",
            abs_tol=1e-6,
            rel_tol=balance_rel_tol,
        ),
        "CON002": CalibrationContractSpec(
            code="CON002",
            title="Household Budget",
            category="consumption",
            description=(
                "For each (region, household) except the top household: "
                "sum_g CD = calibrated Consumption"
            ),
            severity="error",
            abs_tol=1e-6,
            rel_tol=balance_rel_tol,
        ),
        "CON003": CalibrationContractSpec(
            code="CON003",
            title="Share Normalization",
            category="shares",
            description="For each (region, household): sum_g theta = 1",
            severity="warning",
            abs_tol=share_tol,
            rel_tol=0.0,
        ),
    }
