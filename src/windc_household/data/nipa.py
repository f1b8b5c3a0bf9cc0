"""Reconciliation tables between CPS, NIPA and the state accounting table."""

from __future__ import annotations

import pandas as pd

from windc_household import constants
from windc_household.core.tables import AccountingTable


def _nipa(nipa: pd.DataFrame) -> pd.DataFrame:
    df = nipa.loc[:, ["year", "LineNumber", "value"]].copy()
    df["LineNumber"] = df["LineNumber"].astype(str)
    return df


def cps_vs_nipa_income_categories(cps_income: pd.DataFrame, nipa: pd.DataFrame) -> pd.DataFrame:
    """Compare aggregate CPS income to NIPA by income category.

    CPS totals (billions) are scaled by 1e3 to NIPA's millions.

    Returns:
        DataFrame with columns ``year, category, nipa, cps``
    """
    link = pd.DataFrame(list(constants.NIPA_CPS_LINK), columns=["LineNumber", "source", "category"])
    cps_totals = (
        cps_income.merge(link, on="source", how="inner")
        .groupby(["year", "LineNumber", "category"], as_index=False)["value"]
        .sum()
        .rename(columns={"value": "cps"})
    )
    cps_totals["cps"] = cps_totals["cps"] * 1e3
    out = _nipa(nipa).rename(columns={"value": "nipa"}).merge(cps_totals, on=["year", "LineNumber"], how="inner")
    return out.loc[:, ["year", "category", "nipa", "cps"]].reset_index(drop=True)


def windc_vs_nipa_income_categories(state_table: AccountingTable, nipa: pd.DataFrame) -> pd.DataFrame:
    """Compare WiNDC labor and capital demand to NIPA factor income.

    Returns:
        DataFrame with columns ``year, parameter, nipa, windc`` (both in millions)
    """
    windc = (
        state_table.table("Labor_Demand", "Capital_Demand", normalize="Use")
        .groupby(["year", "parameter"], as_index=False)["value"]
        .sum()
    )
    factor_map = pd.DataFrame(list(constants.NIPA_FACTOR_LINES.items()), columns=["LineNumber", "parameter"])
    out = (
        _nipa(nipa)
        .merge(factor_map, on="LineNumber", how="inner")
        .groupby(["year", "parameter"], as_index=False)["value"]
        .sum()
        .rename(columns={"value": "nipa"})
        .merge(windc, on=["year", "parameter"], how="left")
    )
    out["windc"] = out.pop("value") * 1e3
    return out


def nipa_fringe_benefit_markup(nipa: pd.DataFrame) -> pd.DataFrame:
    """Ratio of total compensation to wages and salaries by year.

    Returns:
        DataFrame with columns ``year, markup``
    """
    df = _nipa(nipa)
    lines = {constants.NIPA_COMPENSATION_LINE: "compensation", constants.NIPA_WAGES_LINE: "wages"}
    wide = (
        df[df["LineNumber"].isin(lines)]
        .assign(line=lambda x: x["LineNumber"].map(lines))
        .pivot_table(index="year", columns="line", values="value", aggfunc="sum")
        .reset_index()
    )
    if not {"compensation", "wages"} <= set(wide.columns):
        return pd.DataFrame(columns=["year", "markup"])
    wide["markup"] = wide["compensation"] / wide["wages"]
    return wide.loc[:, ["year", "markup"]]
