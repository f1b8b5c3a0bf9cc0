"""Consumption share fitting.

Allocates each household's calibrated consumption across commodities using
income-elasticity adjusted expenditure shares, subject to regional market
clearing against the state table's personal consumption.
"""

from __future__ import annotations

import logging

import pandas as pd
from pydantic import BaseModel, ConfigDict
from pyomo.environ import ConcreteModel, Objective, Reals, Set, Var, log, minimize, quicksum

from windc_household.calibration.base import SolverReport, add_constraints, extract_variable, solve_model
from windc_household.calibration.income import IncomeCalibrationResult
from windc_household.config import HouseholdConfig
from windc_household.core.tables import AccountingTable
from windc_household.data.raw import RawHouseholdData

logger = logging.getLogger(__name__)

MODEL_NAME = "consumption_calibration"


class ConsumptionCalibrationResult(BaseModel):
    """Solution of the consumption share model.

    Attributes:
        year: Calibration year
        consumption: ``region, row, hh, value`` (positive amounts)
        theta: Income-adjusted shares ``region, hh, row, theta``
        report: Solver outcome
    """

    year: int
    consumption: pd.DataFrame
    theta: pd.DataFrame
    report: SolverReport

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)


def expenditure_elasticities(raw: RawHouseholdData) -> pd.DataFrame:
    """PCE-share weighted CEX income elasticity per commodity.

    Returns:
        DataFrame with columns ``naics, eta``
    """
    df = raw.pce_shares.merge(raw.cex_income_elasticities, on="cex", how="outer")
    df["weighted"] = df["value"] * df["elast"]
    out = df.dropna(subset=["naics"]).groupby("naics", as_index=False)["weighted"].sum()
    out["naics"] = out["naics"].astype(str)
    return out.rename(columns={"weighted": "eta"})


def baseline_shares(state_table: AccountingTable, year: int) -> pd.DataFrame:
    """Commodity shares of regional personal consumption.

    Returns:
        DataFrame with columns ``region, row, theta0``
    """
    df = state_table.table("Personal_Consumption", normalize="Use")
    df = df[df["year"] == year].groupby(["region", "row"], as_index=False)["value"].sum()
    df["theta0"] = df["value"] / df.groupby("region")["value"].transform("sum")
    return df.loc[:, ["region", "row", "theta0"]]


def income_index(consumption: pd.DataFrame, numhh: pd.DataFrame, year: int) -> pd.DataFrame:
    """Relative per-household income proxy within each region.

    ``incomeindex = (C[r,h] / sum_h' C[r,h']) * (sum_h' N[r,h'] / N[r,h])``
    with ``C`` the calibrated consumption and ``N`` the household counts.

    Args:
        consumption: ``region, hh, value`` from the income calibration
        numhh: CPS household counts ``hh, state, year, numhh``
        year: Year of the household counts

    Returns:
        DataFrame with columns ``region, hh, incomeindex``
    """
    counts = (
        numhh[numhh["year"] == year]
        .groupby(["state", "hh"], as_index=False)["numhh"]
        .sum()
        .rename(columns={"state": "region"})
    )
    df = consumption.loc[:, ["region", "hh", "value"]].merge(counts, on=["region", "hh"], how="left")
    consumption_share = df["value"] / df.groupby("region")["value"].transform("sum")
    household_share = df.groupby("region")["numhh"].transform("sum") / df["numhh"]
    df["incomeindex"] = consumption_share * household_share
    missing = df["incomeindex"].isna()
    if missing.any():
        logger.warning(f"No household count for {int(missing.sum())} (region, household) pair(s)")
    return df.loc[:, ["region", "hh", "incomeindex"]]


def adjusted_shares(theta0: pd.DataFrame, incomeindex: pd.DataFrame, eta: pd.DataFrame) -> pd.DataFrame:
    """Income-elasticity adjusted expenditure shares.

    ``theta = theta0 * incomeindex ** eta`` renormalized to sum to 1 over
    commodities for every (region, household). Commodities without an
    elasticity use ``eta = 0``.

    Returns:
        DataFrame with columns ``region, hh, row, theta``
    """
    df = theta0.merge(incomeindex, on="region", how="inner").merge(
        eta.rename(columns={"naics": "row"}), on="row", how="left"
    )
    no_eta = df["eta"].isna()
    if no_eta.any():
        logger.warning(f"No income elasticity for commodities {sorted(df.loc[no_eta, 'row'].unique())}; using 0")
    df["eta"] = df["eta"].fillna(0.0)
    df["theta"] = df["theta0"] * df["incomeindex"] ** df["eta"]
    df["theta"] = df["theta"] / df.groupby(["region", "hh"])["theta"].transform("sum")
    return df.loc[:, ["region", "hh", "row", "theta"]]


def consumption_targets(
    state_table: AccountingTable,
    raw: RawHouseholdData,
    income: IncomeCalibrationResult,
    year: int,
) -> pd.DataFrame:
    """Target consumption ``theta * C[r,h]`` per region, commodity and household.

    Returns:
        DataFrame with columns ``region, row, hh, theta, target``
    """
    theta = adjusted_shares(
        baseline_shares(state_table, year),
        income_index(income.consumption, raw.numhh, year),
        expenditure_elasticities(raw),
    )
    df = theta.merge(income.consumption.loc[:, ["region", "hh", "value"]], on=["region", "hh"], how="inner")
    df["target"] = df["theta"] * df["value"]
    undefined = df["target"].isna()
    if undefined.any():
        logger.warning(f"Dropping {int(undefined.sum())} consumption target(s) without a defined share")
        df = df[~undefined]
    return df.loc[:, ["region", "row", "hh", "theta", "target"]].reset_index(drop=True)


def build_consumption_model(
    state_table: AccountingTable,
    raw: RawHouseholdData,
    income: IncomeCalibrationResult,
    config: HouseholdConfig | None = None,
    *,
    year: int | None = None,
) -> tuple[ConcreteModel, pd.DataFrame]:
    """Assemble the consumption share model without solving it.

    Args:
        state_table: Original state-level accounting table
        raw: Raw household inputs
        income: Income calibration result supplying household consumption
        config: Household configuration
        year: Calibration year (defaults to the income calibration's year)

    Returns:
        ``(model, targets)`` where ``targets`` is the frame from
        :func:`consumption_targets`
    """
    config = config or HouseholdConfig()
    year = income.year if year is None else year
    households = list(config.households)
    lower = config.constants.consumption_lower_bound

    market = state_table.table("Personal_Consumption", normalize="Use")
    market = market[market["year"] == year].groupby(["region", "row"], as_index=False)["value"].sum()
    regions = list(dict.fromkeys(market["region"]))
    commodities = list(dict.fromkeys(market["row"]))

    targets = consumption_targets(state_table, raw, income, year)
    targets = targets[targets["hh"].isin(households)]

    m = ConcreteModel(name=MODEL_NAME)
    m.r = Set(initialize=regions, ordered=True)
    m.g = Set(initialize=commodities, ordered=True)
    m.h = Set(initialize=households, ordered=True)
    m.CD = Var(m.r, m.g, m.h, domain=Reals, bounds=(lower, None))

    for index in m.CD:
        m.CD[index].fix(0)
    for row in targets.itertuples(index=False):
        var = m.CD[row.region, row.row, row.hh]
        var.unfix()
        var.setlb(lower)
        var.value = max(row.target, lower)

    m.objective = Objective(
        expr=quicksum(
            (m.CD[row.region, row.row, row.hh] - row.target) ** 2 - log(m.CD[row.region, row.row, row.hh])
            for row in targets.itertuples(index=False)
        ),
        sense=minimize,
    )

    add_constraints(
        m,
        "market",
        {
            (row.region, row.row): quicksum(m.CD[row.region, row.row, h] for h in households) == row.value
            for row in market.itertuples(index=False)
        },
    )
    budget = income.consumption[
        income.consumption["region"].isin(regions)
        & income.consumption["hh"].isin(households)
        & (income.consumption["hh"] != config.top_household)
    ]
    add_constraints(
        m,
        "budget",
        {
            (row.region, row.hh): quicksum(m.CD[row.region, g, row.hh] for g in commodities) == row.value
            for row in budget.itertuples(index=False)
        },
    )

    logger.info(
        f"Built {MODEL_NAME} for {year}: {len(regions)} regions, {len(commodities)} commodities, "
        f"{len(targets)} targets"
    )
    return m, targets


def calibrate_consumption(
    state_table: AccountingTable,
    raw: RawHouseholdData,
    income: IncomeCalibrationResult,
    config: HouseholdConfig | None = None,
    *,
    year: int | None = None,
) -> ConsumptionCalibrationResult:
    """Build, solve and extract the consumption share model."""
    config = config or HouseholdConfig()
    year = income.year if year is None else int(year)
    model, targets = build_consumption_model(state_table, raw, income, config, year=year)
    report = solve_model(model, config.solver, MODEL_NAME)
    consumption = extract_variable(model, "CD", ["region", "row", "hh"])
    return ConsumptionCalibrationResult(
        year=year,
        consumption=consumption,
        theta=targets.loc[:, ["region", "hh", "row", "theta"]].reset_index(drop=True),
        report=report,
    )
