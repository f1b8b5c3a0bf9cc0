"""Pre-calibration targets derived from raw data and the accounting tables.

The functions here feed starting values, bounds and objective targets to the
income calibration model. All return long DataFrames keyed by ``state`` and
``hh`` unless noted.
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np
import pandas as pd

from windc_household import constants
from windc_household.config import HouseholdConfig, HouseholdConstants
from windc_household.core.tables import AccountingTable
from windc_household.data.raw import RawHouseholdData, labor_tax_rate_totals

logger = logging.getLogger(__name__)


def calibration_year(HH: AccountingTable, year: int | None = None) -> int:
    """Year the calibration runs for.

    Args:
        HH: Table whose ``year`` column is inspected
        year: Explicit year, returned unchanged when given

    Raises:
        ValueError: If ``year`` is not given and the table holds zero or
            several years
    """
    if year is not None:
        return int(year)
    years = HH.years()
    if len(years) != 1:
        raise ValueError(f"Table holds {len(years)} years {years}; set config.year to pick one")
    return int(years[0])


def region_total(table: AccountingTable, *names: str, year: int) -> pd.DataFrame:
    df = table.table(*names, normalize="Use")
    df = df[df["year"] == year]
    return df.groupby("region", as_index=False)["value"].sum()


def national_total(table: AccountingTable, *names: str, year: int) -> float:
    df = table.table(*names, normalize="Use")
    return float(df.loc[df["year"] == year, "value"].sum())


def transfer_weights(
    raw: RawHouseholdData,
    household_constants: HouseholdConstants | None = None,
) -> pd.DataFrame:
    """NIPA/CPS correction factor for each CPS transfer source.

    Sources with a direct NIPA counterpart use the NIPA/CPS ratio of their
    category. The literature value replaces it whenever the source's own CPS
    income is 0 in that year or the ratio is missing or not finite.
    Literature rows are also emitted for ``transfer_weight_year`` so every
    source has a weight in that year.

    Returns:
        DataFrame with columns ``year, source, trn_weight``
    """
    household_constants = household_constants or HouseholdConstants()
    link = pd.DataFrame(list(constants.NIPA_TRANSFER_SOURCES), columns=["category", "source"])
    ratios = raw.nipa_cps.merge(link, on="category", how="inner")
    ratios = ratios.assign(nipa_weight=ratios["nipa"] / ratios["cps"])

    source_income = raw.income.groupby(["year", "source"], as_index=False)["value"].sum()
    ratios = ratios.merge(source_income, on=["year", "source"], how="left")
    no_income = ratios["value"].fillna(0.0) == 0
    ratios.loc[no_income, "nipa_weight"] = np.nan
    ratios = ratios.loc[:, ["year", "source", "nipa_weight"]]

    literature = pd.DataFrame(
        [(w.source, w.study, w.value) for w in household_constants.transfer_weights],
        columns=["source", "study", "literature"],
    )
    pinned = literature.loc[:, ["source"]].assign(year=household_constants.transfer_weight_year)

    keys = pd.concat([ratios.loc[:, ["year", "source"]], pinned], ignore_index=True).drop_duplicates()
    out = keys.merge(ratios, on=["year", "source"], how="left").merge(
        literature.loc[:, ["source", "literature"]], on="source", how="left"
    )
    finite = np.isfinite(out["nipa_weight"].astype(float))
    out["trn_weight"] = out["nipa_weight"].where(finite, out["literature"])

    missing = out["trn_weight"].isna()
    if missing.any():
        logger.warning(f"No transfer weight for source(s) {sorted(out.loc[missing, 'source'].unique())}")
    return out.loc[~missing, ["year", "source", "trn_weight"]].reset_index(drop=True)


def initial_transfer_payments(
    HH: AccountingTable,
    raw: RawHouseholdData,
    household_constants: HouseholdConstants | None = None,
) -> pd.DataFrame:
    """CPS transfer income scaled by transfer weights, plus Medicare/Medicaid.

    Medicare rows always come from ``medicare_year``. Rows whose year is not
    declared in ``HH`` are dropped.

    Returns:
        Long frame ``row, col, region, year, parameter, value`` tagged
        ``transfer_payment``
    """
    household_constants = household_constants or HouseholdConstants()
    categories = raw.income_categories
    transfer_sources = categories.loc[categories["windc"] == "transfer", "source"]
    cps = raw.income[raw.income["source"].isin(transfer_sources)]

    weighted = cps.merge(
        transfer_weights(raw, household_constants), on=["year", "source"], how="left"
    )
    unweighted = weighted["trn_weight"].isna()
    if unweighted.any():
        logger.warning(
            f"Dropping {int(unweighted.sum())} CPS transfer row(s) without a weight "
            f"(sources {sorted(weighted.loc[unweighted, 'source'].unique())})"
        )
        weighted = weighted[~unweighted]
    cps_rows = pd.DataFrame(
        {
            "row": weighted["source"],
            "col": weighted["hh"],
            "region": weighted["state"],
            "year": weighted["year"],
            "value": weighted["value"] * weighted["trn_weight"],
        }
    )

    medicare = raw.medicare[raw.medicare["year"] == household_constants.medicare_year]
    medicare_rows = pd.DataFrame(
        {
            "row": medicare["variable"],
            "col": medicare["income"],
            "region": medicare["state"],
            "year": medicare["year"],
            "value": medicare["value"],
        }
    )

    out = pd.concat([cps_rows, medicare_rows], ignore_index=True)
    out["parameter"] = "transfer_payment"
    years = set(HH.years())
    outside = ~out["year"].isin(years)
    if outside.any():
        logger.warning(
            f"Dropping {int(outside.sum())} transfer row(s) for year(s) "
            f"{sorted(out.loc[outside, 'year'].unique())} not present in the table"
        )
        out = out[~outside]
    return out.loc[:, ["row", "col", "region", "year", "parameter", "value"]].reset_index(drop=True)


def cbo_wealth_distribution(config: HouseholdConfig | None = None) -> pd.DataFrame:
    """Fixed national savings shares by household (``hh, value``)."""
    config = config or HouseholdConfig()
    shares = config.constants.cbo_wealth_shares
    return pd.DataFrame({"hh": list(config.households), "value": [shares[h] for h in config.households]})


def bls_distribution_expenditures(
    raw: RawHouseholdData,
    config: HouseholdConfig | None = None,
    year: int | None = None,
) -> pd.DataFrame:
    """Expenditure share of each household within its state.

    ``bls = level(h) * numhh(state, h) / sum_h' level(h') * numhh(state, h')``,
    so the shares sum to 1 per state.

    Returns:
        DataFrame with columns ``state, hh, bls``
    """
    config = config or HouseholdConfig()
    levels = pd.DataFrame(
        {
            "hh": list(config.households),
            "level": [config.constants.bls_expenditure_levels[h] for h in config.households],
        }
    )
    numhh = raw.numhh if year is None else raw.numhh[raw.numhh["year"] == year]
    df = numhh.groupby(["state", "hh"], as_index=False)["numhh"].sum().merge(levels, on="hh", how="inner")
    df["spend"] = df["level"] * df["numhh"]
    df["bls"] = df["spend"] / df.groupby("state")["spend"].transform("sum")
    return df.loc[:, ["state", "hh", "bls"]]


def _fringe_markup(raw: RawHouseholdData, year: int) -> float:
    row = raw.nipa_fringe[raw.nipa_fringe["year"] == year]
    if row.empty:
        logger.warning(f"No NIPA fringe benefit markup for {year}; using 1.0")
        return 1.0
    return float(row["markup"].iloc[0])


def _scale_to(df: pd.DataFrame, column: str, total: float, label: str) -> pd.DataFrame:
    current = df[column].sum()
    if current == 0:
        logger.warning(f"CPS {label} total is 0; leaving values unscaled")
        return df
    return df.assign(**{column: df[column] * total / current})


def adjusted_wages(
    HH: AccountingTable,
    raw: RawHouseholdData,
    *,
    year: int | None = None,
    tax_adjustment: bool = True,
) -> pd.DataFrame:
    """CPS wages grossed up to compensation and scaled to total labor demand.

    Wages are multiplied by the NIPA fringe benefit markup, then scaled so
    the national total equals Use-normalized ``Labor_Demand``. With
    ``tax_adjustment`` the result is net of ``tl_avg + tfica``.

    Returns:
        DataFrame with columns ``state, hh, wage``
    """
    year = calibration_year(HH, year)
    df = raw.cps("wages", year).loc[:, ["state", "hh", "value"]].rename(columns={"value": "wage"})
    df["wage"] = df["wage"] * _fringe_markup(raw, year)
    df = _scale_to(df, "wage", national_total(HH, "Labor_Demand", year=year), "wage")
    if tax_adjustment:
        rates = labor_tax_rate_totals(raw.labor_tax_rates)
        df = df.merge(rates, on=["hh", "state"], how="left")
        df["wage"] = df["wage"] * (1 - df["labor_tax_rate"].fillna(0.0))
        df = df.drop(columns=["labor_tax_rate"])
    return df.reset_index(drop=True)


def adjusted_capital_income(
    HH: AccountingTable,
    raw: RawHouseholdData,
    *,
    year: int | None = None,
) -> pd.DataFrame:
    """CPS interest income scaled to total capital demand plus household supply.

    Returns:
        DataFrame with columns ``state, hh, capital``
    """
    year = calibration_year(HH, year)
    df = raw.cps("interest", year).loc[:, ["state", "hh", "value"]].rename(columns={"value": "capital"})
    total = national_total(HH, "Capital_Demand", "Household_Supply", year=year)
    return _scale_to(df, "capital", total, "interest").reset_index(drop=True)


def adjusted_consumption(
    HH: AccountingTable,
    state_table: AccountingTable,
    raw: RawHouseholdData,
    config: HouseholdConfig | None = None,
    *,
    year: int | None = None,
) -> pd.DataFrame:
    """Regional personal consumption split by BLS expenditure share.

    Returns:
        DataFrame with columns ``state, hh, consumption``
    """
    year = calibration_year(HH, year)
    totals = region_total(state_table, "Personal_Consumption", year=year).rename(
        columns={"region": "state", "value": "total"}
    )
    shares = bls_distribution_expenditures(raw, config, year=year)
    df = shares.merge(totals, on="state", how="inner")
    df["consumption"] = df["bls"] * df["total"]
    return df.loc[:, ["state", "hh", "consumption"]]


def household_transfers(HH: AccountingTable, year: int) -> pd.DataFrame:
    df = HH.table("Transfer_Payment")
    df = df[df["year"] == year]
    return (
        df.groupby(["region", "col"], as_index=False)["value"]
        .sum()
        .rename(columns={"region": "state", "col": "hh", "value": "transfers"})
    )


def other_income(
    HH: AccountingTable,
    state_table: AccountingTable,
    raw: RawHouseholdData,
    config: HouseholdConfig | None = None,
    *,
    year: int | None = None,
) -> pd.DataFrame:
    """Residual income closing each household budget before calibration.

    ``income = consumption + savings + taxes - wages - capital - transfers``
    where savings and taxes are the sign-flipped CPS ``save`` and
    ``labor_tax`` lines and wages carry no tax adjustment. Missing
    components count as 0.

    Returns:
        DataFrame with columns ``state, hh, income``
    """
    year = calibration_year(HH, year)
    on = ["state", "hh"]

    def cps_component(windc: str, name: str) -> pd.DataFrame:
        df = raw.cps(windc, year).loc[:, [*on, "value"]]
        return df.assign(value=-df["value"]).rename(columns={"value": name})

    parts: Sequence[pd.DataFrame] = [
        adjusted_consumption(HH, state_table, raw, config, year=year),
        cps_component("save", "savings"),
        cps_component("labor_tax", "taxes"),
        adjusted_wages(HH, raw, year=year, tax_adjustment=False),
        adjusted_capital_income(HH, raw, year=year),
        household_transfers(HH, year),
    ]
    df = parts[0]
    for part in parts[1:]:
        df = df.merge(part, on=on, how="outer")
    components = ["consumption", "savings", "taxes", "wage", "capital", "transfers"]
    df[components] = df[components].fillna(0.0)
    df["income"] = (
        df["consumption"] + df["savings"] + df["taxes"] - df["wage"] - df["capital"] - df["transfers"]
    )
    return df.loc[:, [*on, "income"]]
