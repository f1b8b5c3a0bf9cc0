"""QA checks on calibration solutions."""

from __future__ import annotations

from typing import Any

import pandas as pd

from windc_household.calibration.consumption import ConsumptionCalibrationResult
from windc_household.calibration.income import IncomeCalibrationResult
from windc_household.calibration.targets import national_total, region_total
from windc_household.config import HouseholdConfig
from windc_household.core.tables import AccountingTable
from windc_household.qa.contracts import (
    CalibrationContractSpec,
    default_consumption_contracts,
    default_income_contracts,
)
from windc_household.qa.reporting import CalibrationQACheckResult, CalibrationQAReport


def _eq_delta(lhs: pd.Series, rhs: pd.Series) -> tuple[pd.Series, pd.Series]:
    abs_delta = (lhs - rhs).abs()
    scale = pd.concat([lhs.abs(), rhs.abs()], axis=1).max(axis=1).clip(lower=1.0)
    return abs_delta, abs_delta / scale


def _keys(frame: pd.DataFrame) -> list[str]:
    return [c for c in frame.columns if c not in ("lhs", "rhs")]


def _build_check_result(
    spec: CalibrationContractSpec,
    *,
    evaluated: int,
    failures: list[dict[str, Any]],
    max_samples: int,
    keys: list[str],
) -> CalibrationQACheckResult:
    top_failures = sorted(
        failures,
        key=lambda row: max(abs(float(row.get("abs_delta", 0.0))), abs(float(row.get("rel_delta", 0.0)))),
        reverse=True,
    )[:max_samples]
    max_abs_delta = max((float(row.get("abs_delta", 0.0)) for row in failures), default=0.0)
    max_rel_delta = max((float(row.get("rel_delta", 0.0)) for row in failures), default=0.0)
    return CalibrationQACheckResult(
        code=spec.code,
        title=spec.title,
        category=spec.category,
        description=spec.description,
        severity=spec.severity,
        passed=len(failures) == 0,
        evaluated=evaluated,
        failures=len(failures),
        max_abs_delta=max_abs_delta,
        max_rel_delta=max_rel_delta,
        abs_tol=spec.abs_tol,
        rel_tol=spec.rel_tol,
        keys=keys,
        samples=top_failures,
    )


def _check_equal(
    frame: pd.DataFrame,
    spec: CalibrationContractSpec,
    max_samples: int,
) -> CalibrationQACheckResult:
    """Compare ``lhs`` and ``rhs`` columns row by row; other columns are labels."""
    frame = frame.fillna({"lhs": 0.0, "rhs": 0.0}).reset_index(drop=True)
    abs_delta, rel_delta = _eq_delta(frame["lhs"], frame["rhs"])
    passed = (abs_delta <= spec.abs_tol) | (rel_delta <= spec.rel_tol)
    failed = frame.assign(abs_delta=abs_delta, rel_delta=rel_delta)[~passed]
    return _build_check_result(
        spec,
        evaluated=len(frame),
        failures=failed.to_dict(orient="records"),
        max_samples=max_samples,
        keys=_keys(frame),
    )


def _check_at_least(
    frame: pd.DataFrame,
    spec: CalibrationContractSpec,
    max_samples: int,
) -> CalibrationQACheckResult:
    """Check ``lhs >= rhs`` row by row within ``abs_tol``."""
    frame = frame.fillna({"lhs": 0.0, "rhs": 0.0}).reset_index(drop=True)
    shortfall = (frame["rhs"] - frame["lhs"]).clip(lower=0.0)
    failed = frame.assign(abs_delta=shortfall, rel_delta=0.0)[shortfall > spec.abs_tol]
    return _build_check_result(
        spec,
        evaluated=len(frame),
        failures=failed.to_dict(orient="records"),
        max_samples=max_samples,
        keys=_keys(frame),
    )


def _scalar_frame(lhs: float, rhs: float) -> pd.DataFrame:
    return pd.DataFrame({"lhs": [lhs], "rhs": [rhs]})


def check_income_calibration(
    result: IncomeCalibrationResult,
    HH: AccountingTable,
    state_table: AccountingTable,
    config: HouseholdConfig | None = None,
    *,
    contracts: dict[str, CalibrationContractSpec] | None = None,
    max_samples: int = 10,
) -> CalibrationQAReport:
    """Evaluate budget, mass-balance and commuting identities on an income solution.

    Args:
        result: Income calibration result
        HH: Household table the model was built from
        state_table: Original state table
        config: Household configuration (for metadata)
        contracts: Override contract specs (defaults from :func:`default_income_contracts`)
        max_samples: Failures kept per check
    """
    config = config or HouseholdConfig()
    specs = contracts or default_income_contracts()
    year = result.year
    on = ["region", "hh"]

    wages = result.wages
    earned = (
        wages.groupby(["home", "hh"], as_index=False)["value"]
        .sum()
        .rename(columns={"home": "region", "value": "wages"})
    )
    household = earned
    for name, frame in (
        ("transfers", result.transfer_payments),
        ("interest", result.interest),
        ("consumption", result.consumption),
        ("savings", result.savings),
        ("taxes", result.taxes),
        ("government", result.government_transfers),
        ("other", result.other_income),
    ):
        household = household.merge(frame.rename(columns={"value": name}), on=on, how="outer")
    household = household.fillna(0.0)

    checks: list[CalibrationQACheckResult] = []
    budget = household.loc[:, on].assign(
        lhs=household["transfers"] + household["wages"] + household["interest"],
        rhs=household["consumption"] + household["savings"] + household["taxes"],
    )
    checks.append(_check_equal(budget, specs["INC001"], max_samples))

    decomposition = household.loc[:, on].assign(
        lhs=household["transfers"], rhs=household["government"] + household["other"]
    )
    checks.append(_check_equal(decomposition, specs["INC002"], max_samples))

    paid = wages.groupby("work", as_index=False)["value"].sum().rename(columns={"work": "region", "value": "lhs"})
    demand = region_total(HH, "Labor_Demand", year=year).rename(columns={"value": "rhs"})
    checks.append(_check_equal(paid.merge(demand, on="region", how="outer"), specs["INC003"], max_samples))

    interest = float(result.interest["value"].sum()) + result.foreign_capital_ownership
    capital = national_total(HH, "Capital_Demand", "Household_Supply", year=year)
    checks.append(_check_equal(_scalar_frame(interest, capital), specs["INC004"], max_samples))

    savings = float(result.savings["value"].sum()) + result.foreign_savings
    investment = national_total(HH, "Investment_Final_Demand", year=year)
    checks.append(_check_equal(_scalar_frame(savings, investment), specs["INC005"], max_samples))

    local = wages[wages["home"] == wages["work"]].groupby(["home", "hh"], as_index=False)["value"].sum()
    commuted = wages[wages["home"] != wages["work"]].groupby(["home", "hh"], as_index=False)["value"].sum()
    dominance = local.rename(columns={"value": "lhs"}).merge(
        commuted.rename(columns={"value": "rhs"}), on=["home", "hh"], how="outer"
    )
    checks.append(_check_at_least(dominance, specs["INC006"], max_samples))

    consumed = result.consumption.groupby("region", as_index=False)["value"].sum().rename(columns={"value": "lhs"})
    pce = region_total(state_table, "Personal_Consumption", year=year).rename(columns={"value": "rhs"})
    pce = pce[pce["region"].isin(consumed["region"])]
    checks.append(_check_equal(consumed.merge(pce, on="region", how="left"), specs["INC007"], max_samples))

    return CalibrationQAReport.from_checks(result.report, year, checks, metadata={"config": config.name})


def check_consumption_calibration(
    result: ConsumptionCalibrationResult,
    income: IncomeCalibrationResult,
    state_table: AccountingTable,
    config: HouseholdConfig | None = None,
    *,
    contracts: dict[str, CalibrationContractSpec] | None = None,
    max_samples: int = 10,
) -> CalibrationQAReport:
    """Evaluate market clearing, budgets and share normalization on a consumption solution."""
    config = config or HouseholdConfig()
    specs = contracts or default_consumption_contracts()
    year = result.year
    cd = result.consumption

    checks: list[CalibrationQACheckResult] = []
    market = state_table.table("Personal_Consumption", normalize="Use")
    market = (
        market[market["year"] == year]
        .groupby(["region", "row"], as_index=False)["value"]
        .sum()
        .rename(columns={"value": "rhs"})
    )
    supplied = cd.groupby(["region", "row"], as_index=False)["value"].sum().rename(columns={"value": "lhs"})
    checks.append(_check_equal(market.merge(supplied, on=["region", "row"], how="left"), specs["CON001"], max_samples))

    spent = cd.groupby(["region", "hh"], as_index=False)["value"].sum().rename(columns={"value": "lhs"})
    budgets = income.consumption.rename(columns={"value": "rhs"})
    budgets = budgets[(budgets["hh"] != config.top_household) & budgets["region"].isin(market["region"])]
    checks.append(_check_equal(budgets.merge(spent, on=["region", "hh"], how="left"), specs["CON002"], max_samples))

    shares = result.theta.groupby(["region", "hh"], as_index=False)["theta"].sum().rename(columns={"theta": "lhs"})
    checks.append(_check_equal(shares.assign(rhs=1.0), specs["CON003"], max_samples))

    return CalibrationQAReport.from_checks(result.report, year, checks, metadata={"config": config.name})
