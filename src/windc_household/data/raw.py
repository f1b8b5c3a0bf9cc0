"""Immutable bundle of raw household inputs and their derived cross-references."""

from __future__ import annotations

import logging

import pandas as pd
from pydantic import BaseModel, ConfigDict

from windc_household.config import HouseholdConfig
from windc_household.core.tables import AccountingTable
from windc_household.data.loaders import (
    load_acs_commute,
    load_capital_tax_rates,
    load_cex_income_elasticities,
    load_cps_income,
    load_cps_income_categories,
    load_cps_numhh,
    load_labor_tax_rates,
    load_medicare_data,
    load_nipa,
    load_pce_shares,
    load_state_fips,
    load_windc_naics_map,
)
from windc_household.data.nipa import (
    cps_vs_nipa_income_categories,
    nipa_fringe_benefit_markup,
    windc_vs_nipa_income_categories,
)

logger = logging.getLogger(__name__)

LABOR_TAX_VARIABLES: tuple[str, ...] = ("tl_avg", "tfica")


def labor_tax_rate_totals(
    labor_tax_rates: pd.DataFrame,
    variables: tuple[str, ...] = LABOR_TAX_VARIABLES,
) -> pd.DataFrame:
    """Sum of the selected labor tax rates per household and state.

    Returns:
        DataFrame with columns ``hh, state, labor_tax_rate``
    """
    subset = labor_tax_rates[labor_tax_rates["variable"].isin(variables)]
    return subset.groupby(["hh", "state"], as_index=False)["labor_tax_rate"].sum()


def build_cps_data(
    income: pd.DataFrame,
    income_categories: pd.DataFrame,
    labor_tax_rates: pd.DataFrame,
) -> pd.DataFrame:
    """CPS income by WiNDC category with an imputed labor tax line.

    ``save`` is sign-flipped. The ``labor_tax`` line is
    ``-wages * (tl_avg + tfica)``.

    Returns:
        DataFrame with columns ``hh, year, state, windc, value``
    """
    keys = ["hh", "year", "state"]
    grouped = (
        income.merge(income_categories, on="source", how="inner")
        .groupby([*keys, "windc"], as_index=False)["value"]
        .sum()
    )
    wide = grouped.pivot_table(index=keys, columns="windc", values="value", aggfunc="sum")
    wide.columns.name = None
    if "save" in wide.columns:
        wide["save"] = -wide["save"]
    cps_data = (
        wide.reset_index()
        .melt(id_vars=keys, var_name="windc", value_name="value")
        .dropna(subset=["value"])
    )

    wages = cps_data[cps_data["windc"] == "wages"]
    taxes = wages.merge(labor_tax_rate_totals(labor_tax_rates), on=["hh", "state"], how="inner")
    taxes = taxes.assign(value=-taxes["value"] * taxes["labor_tax_rate"], windc="labor_tax")
    if len(taxes) < len(wages):
        logger.warning(f"{len(wages) - len(taxes)} CPS wage row(s) have no labor tax rate")

    columns = ["hh", "year", "state", "windc", "value"]
    return pd.concat([cps_data.loc[:, columns], taxes.loc[:, columns]], ignore_index=True)


class RawHouseholdData(BaseModel):
    """All externally sourced inputs for one household build.

    Construct with :meth:`from_sources`, which also computes the derived
    cross-reference tables once. Treat every frame as read-only.

    Attributes:
        state_fips: ``fips, state``
        income_categories: ``windc, source``
        state_abbreviations: ``state, abbreviation``
        income: CPS income ``hh, state, year, source, value``
        numhh: CPS households ``hh, state, year, numhh``
        nipa: ``year, LineNumber, value``
        acs_commute: ``home_state, work_state, value``
        medicare: ``state, year, income, variable, value``
        labor_tax_rates: ``hh, state, variable, labor_tax_rate``
        capital_tax_rates: ``state, capital_tax_rate``
        nipa_cps: ``year, category, nipa, cps``
        windc_vs_nipa: ``year, parameter, nipa, windc``
        nipa_fringe: ``year, markup``
        cps_data: ``hh, year, state, windc, value``
        cex_income_elasticities: ``cex, elast``
        pce_shares: ``cex, naics, value``
    """

    state_fips: pd.DataFrame
    income_categories: pd.DataFrame
    state_abbreviations: pd.DataFrame
    income: pd.DataFrame
    numhh: pd.DataFrame
    nipa: pd.DataFrame
    acs_commute: pd.DataFrame
    medicare: pd.DataFrame
    labor_tax_rates: pd.DataFrame
    capital_tax_rates: pd.DataFrame
    nipa_cps: pd.DataFrame
    windc_vs_nipa: pd.DataFrame
    nipa_fringe: pd.DataFrame
    cps_data: pd.DataFrame
    cex_income_elasticities: pd.DataFrame
    pce_shares: pd.DataFrame

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    @classmethod
    def from_sources(
        cls,
        state_table: AccountingTable,
        income: pd.DataFrame,
        numhh: pd.DataFrame,
        nipa: pd.DataFrame,
        acs_commute: pd.DataFrame,
        medicare: pd.DataFrame,
        labor_tax_rates: pd.DataFrame,
        cex_income_elasticities: pd.DataFrame,
        pce_shares: pd.DataFrame,
        capital_tax_rates: pd.DataFrame,
        *,
        state_fips: pd.DataFrame | None = None,
        income_categories: pd.DataFrame | None = None,
        state_abbreviations: pd.DataFrame | None = None,
    ) -> RawHouseholdData:
        """Bundle loader outputs and compute the derived tables."""
        state_fips = load_state_fips() if state_fips is None else state_fips
        income_categories = load_cps_income_categories() if income_categories is None else income_categories
        if state_abbreviations is None:
            state_abbreviations = load_state_fips(columns=("state", "abbreviation"))

        raw = cls(
            state_fips=state_fips.copy(),
            income_categories=income_categories.copy(),
            state_abbreviations=state_abbreviations.copy(),
            income=income.copy(),
            numhh=numhh.copy(),
            nipa=nipa.copy(),
            acs_commute=acs_commute.copy(),
            medicare=medicare.copy(),
            labor_tax_rates=labor_tax_rates.copy(),
            capital_tax_rates=capital_tax_rates.copy(),
            nipa_cps=cps_vs_nipa_income_categories(income, nipa),
            windc_vs_nipa=windc_vs_nipa_income_categories(state_table, nipa),
            nipa_fringe=nipa_fringe_benefit_markup(nipa),
            cps_data=build_cps_data(income, income_categories, labor_tax_rates),
            cex_income_elasticities=cex_income_elasticities.copy(),
            pce_shares=pce_shares.copy(),
        )
        logger.info(
            f"Raw household data: {len(raw.income)} CPS income rows, "
            f"{len(raw.acs_commute)} commuting flows, {len(raw.medicare)} medicare rows"
        )
        return raw

    def cps(self, windc: str, year: int | None = None) -> pd.DataFrame:
        """CPS rows for one WiNDC category, optionally for a single year."""
        df = self.cps_data[self.cps_data["windc"] == windc]
        if year is not None:
            df = df[df["year"] == year]
        return df.reset_index(drop=True)


def load_raw_data(config: HouseholdConfig, state_table: AccountingTable) -> RawHouseholdData:
    """Load every raw input named in ``config.data`` and bundle it.

    Raises:
        ValueError: If a required data path is not configured
    """
    paths = config.data
    years = range(paths.medicare_min_year, paths.medicare_max_year + 1)
    return RawHouseholdData.from_sources(
        state_table,
        income=load_cps_income(paths.require("cps_income")),
        numhh=load_cps_numhh(paths.require("cps_numhh")),
        nipa=load_nipa(paths.require("nipa")),
        acs_commute=load_acs_commute(paths.require("acs_commute")),
        medicare=load_medicare_data(paths.require("medicare"), years=years),
        labor_tax_rates=load_labor_tax_rates(paths.require("labor_tax_rates")),
        cex_income_elasticities=load_cex_income_elasticities(paths.require("income_elasticities")),
        pce_shares=load_pce_shares(paths.require("pce_shares"), load_windc_naics_map(paths.require("naics_map"))),
        capital_tax_rates=load_capital_tax_rates(paths.require("capital_tax_rates")),
    )
