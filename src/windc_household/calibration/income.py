"""Income reconciliation model.

Finds wage flows (including cross-state commuting), interest, savings,
taxes and transfers for every (state, household) pair so that household
budgets close and national totals match the accounting table, while
staying close to the CPS/NIPA derived targets.
"""

from __future__ import annotations

import logging

import numpy as np
import pandas as pd
from pydantic import BaseModel, ConfigDict
from pyomo.environ import ConcreteModel, Constraint, Objective, Reals, Set, Var, minimize, quicksum

from windc_household.calibration.base import (
    SolverReport,
    add_constraints,
    extract_variable,
    scalar_value,
    solve_model,
)
from windc_household.calibration.targets import (
    adjusted_capital_income,
    adjusted_consumption,
    adjusted_wages,
    bls_distribution_expenditures,
    calibration_year,
    cbo_wealth_distribution,
    household_transfers,
    national_total,
    other_income,
    region_total,
)
from windc_household.config import HouseholdConfig
from windc_household.core.tables import AccountingTable, HouseholdTable
from windc_household.data.raw import RawHouseholdData, labor_tax_rate_totals

logger = logging.getLogger(__name__)

MODEL_NAME = "income_calibration"


class IncomeCalibrationResult(BaseModel):
    """Solution of the income reconciliation model.

    Attributes:
        year: Calibration year
        wages: ``home, work, hh, value``
        consumption: ``region, hh, value``
        interest: ``region, hh, value``
        savings: ``region, hh, value``
        taxes: ``region, hh, value``
        transfer_payments: ``region, hh, value``
        government_transfers: ``region, hh, value``
        other_income: ``region, hh, value``
        foreign_savings: Scalar (fixed at 0)
        foreign_capital_ownership: Scalar (fixed at 0)
        report: Solver outcome
    """

    year: int
    wages: pd.DataFrame
    consumption: pd.DataFrame
    interest: pd.DataFrame
    savings: pd.DataFrame
    taxes: pd.DataFrame
    transfer_payments: pd.DataFrame
    government_transfers: pd.DataFrame
    other_income: pd.DataFrame
    foreign_savings: float = 0.0
    foreign_capital_ownership: float = 0.0
    report: SolverReport

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    @classmethod
    def from_model(cls, model: ConcreteModel, report: SolverReport, year: int) -> IncomeCalibrationResult:
        """Read the solved variable values out of ``model``."""
        by_household = ["region", "hh"]
        return cls(
            year=year,
            wages=extract_variable(model, "Wages", ["home", "work", "hh"]),
            consumption=extract_variable(model, "Consumption", by_household),
            interest=extract_variable(model, "Interest", by_household),
            savings=extract_variable(model, "Savings", by_household),
            taxes=extract_variable(model, "Taxes", by_household),
            transfer_payments=extract_variable(model, "Transfer_Payments", by_household),
            government_transfers=extract_variable(model, "Government_Transfers", by_household),
            other_income=extract_variable(model, "Other_Income", by_household),
            foreign_savings=scalar_value(model, "Foreign_Savings"),
            foreign_capital_ownership=scalar_value(model, "Foreign_Capital_Ownership"),
            report=report,
        )


def _in_model(df: pd.DataFrame, regions: list[str], households: list[str], column: str = "state") -> pd.DataFrame:
    return df[df[column].isin(regions) & df["hh"].isin(households)]


def _relative_deviation(expr, target: float):
    return abs(target) * (expr / target - 1) ** 2


def build_income_model(
    HH: AccountingTable,
    state_table: AccountingTable,
    raw: RawHouseholdData,
    config: HouseholdConfig | None = None,
    *,
    year: int | None = None,
) -> ConcreteModel:
    """Assemble the income reconciliation model without solving it.

    Args:
        HH: Household table after transfer payments were added
        state_table: Original state-level accounting table
        raw: Raw household inputs
        config: Household configuration (defaults used when omitted)
        year: Calibration year (defaults to ``config.year`` or the table's only year)

    Returns:
        Pyomo ``ConcreteModel`` with bounds and starting values applied
    """
    config = config or HouseholdConfig()
    year = calibration_year(HH, year if year is not None else config.year)
    settings = config.constants

    regions = HH.regions() if isinstance(HH, HouseholdTable) else HH.element_names("state")
    households = list(config.households)
    top = config.top_household

    wage_targets = _in_model(adjusted_wages(HH, raw, year=year, tax_adjustment=False), regions, households)
    capital_targets = _in_model(adjusted_capital_income(HH, raw, year=year), regions, households)
    consumption_targets = _in_model(
        adjusted_consumption(HH, state_table, raw, config, year=year), regions, households
    )
    other_targets = _in_model(other_income(HH, state_table, raw, config, year=year), regions, households)
    commute = raw.acs_commute[
        raw.acs_commute["home_state"].isin(regions) & raw.acs_commute["work_state"].isin(regions)
    ]
    cps_wages = _in_model(raw.cps("wages", year), regions, households)
    cps_interest = _in_model(raw.cps("interest", year), regions, households)
    cps_save = _in_model(raw.cps("save", year), regions, households)
    cps_labor_tax = _in_model(raw.cps("labor_tax", year), regions, households)
    tax_rates = _in_model(labor_tax_rate_totals(raw.labor_tax_rates), regions, households)
    bls = _in_model(bls_distribution_expenditures(raw, config, year=year), regions, households)
    cbo = cbo_wealth_distribution(config).set_index("hh")["value"]
    transfers = _in_model(household_transfers(HH, year), regions, households)

    m = ConcreteModel(name=MODEL_NAME)
    m.r = Set(initialize=regions, ordered=True)
    m.h = Set(initialize=households, ordered=True)

    m.Taxes = Var(m.r, m.h, domain=Reals)
    m.Foreign_Savings = Var(domain=Reals)
    m.Transfer_Payments = Var(m.r, m.h, domain=Reals)
    m.Other_Income = Var(m.r, m.h, domain=Reals)
    m.Government_Transfers = Var(m.r, m.h, domain=Reals, bounds=(0, None))
    m.Consumption = Var(m.r, m.h, domain=Reals, bounds=(0, None))
    m.Wages = Var(m.r, m.r, m.h, domain=Reals, bounds=(0, None))
    m.Interest = Var(m.r, m.h, domain=Reals, bounds=(0, None))
    m.Foreign_Capital_Ownership = Var(domain=Reals, bounds=(0, None))
    m.Savings = Var(m.r, m.h, domain=Reals, bounds=(0, None))

    def earned(home: str, h: str):
        return quicksum(m.Wages[home, work, h] for work in regions)

    # Objective
    terms = []
    targets = [
        ((earned(row.state, row.hh), row.wage) for row in wage_targets.itertuples(index=False)),
        ((m.Interest[row.state, row.hh], row.capital) for row in capital_targets.itertuples(index=False)),
        (
            (quicksum(m.Wages[row.home_state, row.work_state, h] for h in households), row.value)
            for row in commute.itertuples(index=False)
        ),
        ((m.Other_Income[row.state, row.hh], row.income) for row in other_targets.itertuples(index=False)),
    ]
    for group in targets:
        for expr, target in group:
            if target != 0 and np.isfinite(target):
                terms.append(_relative_deviation(expr, float(target)))
    m.objective = Objective(expr=quicksum(terms), sense=minimize)

    # Constraints
    add_constraints(
        m,
        "taxdef",
        {
            (row.state, row.hh): m.Taxes[row.state, row.hh] == row.labor_tax_rate * earned(row.state, row.hh)
            for row in tax_rates.itertuples(index=False)
        },
    )

    consumption_totals = region_total(state_table, "Personal_Consumption", year=year)
    add_constraints(
        m,
        "consdef",
        {
            (row.region,): quicksum(m.Consumption[row.region, h] for h in households) == row.value
            for row in consumption_totals.itertuples(index=False)
            if row.region in regions
        },
    )
    add_constraints(
        m,
        "consdids",
        {
            (row.state, row.hh): m.Consumption[row.state, row.hh]
            == row.bls * quicksum(m.Consumption[row.state, h] for h in households)
            for row in bls.itertuples(index=False)
        },
    )

    labor_demand = region_total(HH, "Labor_Demand", year=year)
    add_constraints(
        m,
        "wagedef",
        {
            (row.region,): quicksum(m.Wages[home, row.region, h] for home in regions for h in households)
            == row.value
            for row in labor_demand.itertuples(index=False)
            if row.region in regions
        },
    )
    total_wage = cps_wages.groupby("state")["value"].sum()
    add_constraints(
        m,
        "wagedis",
        {
            (row.state, row.hh): earned(row.state, row.hh) * float(total_wage[row.state])
            == row.value * quicksum(earned(row.state, h) for h in households)
            for row in cps_wages.itertuples(index=False)
        },
    )
    add_constraints(
        m,
        "commutedis",
        {
            (home, h): m.Wages[home, home, h]
            >= quicksum(m.Wages[home, work, h] for work in regions if work != home)
            for home in regions
            for h in households
        },
    )

    m.interestdef = Constraint(
        expr=quicksum(m.Interest[r, h] for r in regions for h in households) + m.Foreign_Capital_Ownership
        == national_total(HH, "Capital_Demand", "Household_Supply", year=year)
    )
    total_interest = cps_interest.groupby("state")["value"].sum()
    add_constraints(
        m,
        "interestdis",
        {
            (row.state, row.hh): m.Interest[row.state, row.hh] * float(total_interest[row.state])
            == row.value * quicksum(m.Interest[row.state, h] for h in households)
            for row in cps_interest.itertuples(index=False)
        },
    )

    m.savedef = Constraint(
        expr=quicksum(m.Savings[r, h] for r in regions for h in households) + m.Foreign_Savings
        == national_total(HH, "Investment_Final_Demand", year=year)
    )
    add_constraints(
        m,
        "savedis",
        {
            (r, h): m.Savings[r, h] == float(cbo[h]) * quicksum(m.Savings[r, hh] for hh in households)
            for r in regions
            for h in households
        },
    )

    add_constraints(
        m,
        "income_balance",
        {
            (r, h): m.Transfer_Payments[r, h] + earned(r, h) + m.Interest[r, h]
            == m.Consumption[r, h] + m.Savings[r, h] + m.Taxes[r, h]
            for r in regions
            for h in households
        },
    )
    add_constraints(
        m,
        "disagtrn",
        {
            (r, h): m.Transfer_Payments[r, h] == m.Government_Transfers[r, h] + m.Other_Income[r, h]
            for r in regions
            for h in households
        },
    )

    # Bounds and starting values
    low, high = settings.transfer_bounds
    for row in transfers.itertuples(index=False):
        bounds = sorted((low * row.transfers, high * row.transfers))
        m.Government_Transfers[row.state, row.hh].setlb(bounds[0])
        m.Government_Transfers[row.state, row.hh].setub(bounds[1])
        m.Transfer_Payments[row.state, row.hh].value = row.transfers

    for row in consumption_targets.itertuples(index=False):
        m.Consumption[row.state, row.hh].value = row.consumption

    for index in m.Wages:
        m.Wages[index].fix(0)
    for home in regions:
        for h in households:
            m.Wages[home, home, h].unfix()
            m.Wages[home, home, h].setlb(0)
    for row in wage_targets.itertuples(index=False):
        m.Wages[row.state, row.state, row.hh].value = row.wage
    n_households = len(households)
    for row in commute.itertuples(index=False):
        if row.home_state == row.work_state:
            continue
        per_household = row.value / n_households
        for h in households:
            var = m.Wages[row.home_state, row.work_state, h]
            var.unfix()
            var.setlb(settings.commute_lower_bound_factor * per_household)
            var.value = settings.commute_start_factor * per_household

    low, high = settings.interest_bounds
    for row in capital_targets.itertuples(index=False):
        var = m.Interest[row.state, row.hh]
        var.value = row.capital
        var.setlb(low * row.capital)
        var.setub(None if row.hh == top else high * row.capital)

    for row in cps_save.itertuples(index=False):
        start = -row.value
        m.Savings[row.state, row.hh].value = start
        m.Savings[row.state, row.hh].setlb(settings.savings_lower_bound_factor * start)

    for row in cps_labor_tax.itertuples(index=False):
        m.Taxes[row.state, row.hh].value = -row.value

    m.Foreign_Capital_Ownership.fix(0)
    m.Foreign_Savings.fix(0)

    logger.info(
        f"Built {MODEL_NAME} for {year}: {len(regions)} regions, {n_households} households, "
        f"{len(terms)} objective terms"
    )
    return m


def calibrate_income(
    HH: AccountingTable,
    state_table: AccountingTable,
    raw: RawHouseholdData,
    config: HouseholdConfig | None = None,
    *,
    year: int | None = None,
) -> IncomeCalibrationResult:
    """Build, solve and extract the income reconciliation model.

    Raises:
        CalibrationError: If the solve terminates unacceptably under
            ``config.solver.on_nonoptimal``
    """
    config = config or HouseholdConfig()
    year = calibration_year(HH, year if year is not None else config.year)
    model = build_income_model(HH, state_table, raw, config, year=year)
    report = solve_model(model, config.solver, MODEL_NAME)
    return IncomeCalibrationResult.from_model(model, report, year)
