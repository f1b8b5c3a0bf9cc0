"""Data extractors for the blocks of a household CGE model.

Each extractor bundles the table slices and derived parameters one model
block needs. ``output="frame"`` returns the long DataFrame;
``output="lookup"`` returns a :class:`ParameterLookup` keyed on the columns
that block indexes by, reading 0 for missing keys.
"""

from __future__ import annotations

import logging
from typing import Literal, Sequence

import pandas as pd

from windc_household import parameters
from windc_household.core.lookup import ParameterLookup
from windc_household.core.tables import DATA_COLUMNS, AccountingTable

logger = logging.getLogger(__name__)

Output = Literal["frame", "lookup"]

ROW_COL_KEYS: tuple[str, ...] = ("row", "col", "region", "parameter")


def _stack(*frames: pd.DataFrame) -> pd.DataFrame:
    parts = [f.loc[:, DATA_COLUMNS] for f in frames if not f.empty]
    if not parts:
        return frames[0].loc[:, DATA_COLUMNS].reset_index(drop=True)
    return pd.concat(parts, ignore_index=True)


def _emit(df: pd.DataFrame, output: Output, keys: Sequence[str] = ROW_COL_KEYS) -> pd.DataFrame | ParameterLookup:
    if output == "frame":
        return df
    if output == "lookup":
        return ParameterLookup.from_frame(df, keys)
    raise ValueError(f"Unsupported output type: {output}")


def sectoral_output(HH: AccountingTable, *, output: Output = "frame") -> pd.DataFrame | ParameterLookup:
    """Production block: supply, intermediate and factor demand, output and capital tax rates."""
    df = _stack(
        HH.table("Intermediate_Supply", "Intermediate_Demand", "Labor_Demand", "Capital_Demand", normalize="Use"),
        parameters.output_tax_rate(HH),
        parameters.capital_tax_rate(HH),
    )
    return _emit(df, output)


def disposition_data(HH: AccountingTable, *, output: Output = "frame") -> pd.DataFrame | ParameterLookup:
    """Disposition block: local, export, total and national supply per commodity.

    The lookup is keyed by ``(row, region, parameter)``.
    """
    df = _stack(
        parameters.regional_local_supply(HH),
        parameters.netports(HH),
        parameters.total_supply(HH),
        parameters.regional_national_supply(HH),
    )
    return _emit(df, output, ("row", "region", "parameter"))


def armington_data(HH: AccountingTable, *, output: Output = "frame") -> pd.DataFrame | ParameterLookup:
    """Armington block: absorption, sourcing flows, tax and duty rates."""
    df = _stack(
        parameters.absorption(HH, normalize=True),
        HH.table("Reexport", "National_Demand", "Local_Demand", "Import", "Margin_Demand", normalize="Use"),
        parameters.tax_rate(HH),
        parameters.duty_rate(HH),
    )
    return _emit(df, output)


def margin_supply_demand(HH: AccountingTable, *, output: Output = "frame") -> pd.DataFrame | ParameterLookup:
    df = HH.table("Margin_Demand", "Margin_Supply", normalize="Use")
    return _emit(df, output)


def consumption_data(HH: AccountingTable, *, output: Output = "frame") -> pd.DataFrame | ParameterLookup:
    df = HH.table("Personal_Consumption", normalize="Use")
    return _emit(df, output)


def leisure_data(HH: AccountingTable, *, output: Output = "frame") -> pd.DataFrame | ParameterLookup:
    """Labor-leisure block: endowments, labor supply, marginal and FICA tax rates."""
    df = _stack(
        HH.table("Labor_Endowment"),
        parameters.labor_supply(HH),
        parameters.marginal_labor_tax_rate(HH),
        parameters.fica_tax_rate(HH),
    )
    return _emit(df, output)


def capital_stock_data(HH: AccountingTable, *, output: Output = "frame") -> pd.DataFrame | ParameterLookup:
    """Net capital demand; the lookup is keyed by ``(col, region, parameter)``."""
    df = HH.table("Capital_Demand", normalize="Use")
    return _emit(df, output, ("col", "region", "parameter"))


def representative_agent_data(
    HH: AccountingTable, *, output: Output = "frame"
) -> pd.DataFrame | ParameterLookup:
    """Household block: elasticities, tax rates, leisure and the household accounts."""
    df = _stack(
        parameters.leisure_consumption_elasticity(HH),
        parameters.average_labor_tax_rate(HH),
        parameters.labor_supply(HH),
        parameters.leisure_demand(HH),
        HH.table(
            "Personal_Consumption",
            "Household_Interest",
            "Transfer_Payment",
            "Savings",
            "Labor_Endowment",
            normalize="Use",
        ),
    )
    return _emit(df, output)


def nyse_data(HH: AccountingTable, *, output: Output = "frame") -> pd.DataFrame | ParameterLookup:
    """Capital market block: household supply and capital demand."""
    df = HH.table("Household_Supply", "Capital_Demand", normalize="Use")
    return _emit(df, output)


def invest_data(HH: AccountingTable, *, output: Output = "frame") -> pd.DataFrame | ParameterLookup:
    """Investment block: investment demand and household savings."""
    df = HH.table("Investment_Final_Demand", "Savings", normalize="Use")
    return _emit(df, output)


def government_data(HH: AccountingTable, *, output: Output = "frame") -> pd.DataFrame | ParameterLookup:
    """Government block: spending, transfers, endowments, deficit and average labor tax rate."""
    df = _stack(
        HH.table("Government_Final_Demand", "Transfer_Payment", "Labor_Endowment", normalize="Use"),
        parameters.government_deficit(HH),
        parameters.average_labor_tax_rate(HH),
    )
    return _emit(df, output)


def ssk_data(HH: AccountingTable, *, output: Output = "frame") -> pd.DataFrame | ParameterLookup:
    """Steady-state capital: investment final demand."""
    return _emit(HH.table("Investment_Final_Demand", normalize="Use"), output)


def saverate_data(HH: AccountingTable, *, output: Output = "frame") -> pd.DataFrame | ParameterLookup:
    """Saving rates: investment final demand."""
    return _emit(HH.table("Investment_Final_Demand", normalize="Use"), output)


def trans_data(HH: AccountingTable, *, output: Output = "frame") -> pd.DataFrame | ParameterLookup:
    """Transfers: government final demand."""
    return _emit(HH.table("Government_Final_Demand", normalize="Use"), output)


def cpi_data(HH: AccountingTable, *, output: Output = "frame") -> pd.DataFrame | ParameterLookup:
    """Household consumption totals by (col, region, parameter) for price indices."""
    df = (
        HH.table("Personal_Consumption", normalize="Use")
        .groupby(["col", "region", "parameter"], as_index=False)["value"]
        .sum()
    )
    return _emit(df, output, ("col", "region", "parameter"))


MODEL_DATA = {
    "sectoral_output": sectoral_output,
    "disposition_data": disposition_data,
    "armington_data": armington_data,
    "margin_supply_demand": margin_supply_demand,
    "consumption_data": consumption_data,
    "leisure_data": leisure_data,
    "capital_stock_data": capital_stock_data,
    "representative_agent_data": representative_agent_data,
    "nyse_data": nyse_data,
    "invest_data": invest_data,
    "government_data": government_data,
    "ssk_data": ssk_data,
    "saverate_data": saverate_data,
    "trans_data": trans_data,
    "cpi_data": cpi_data,
}


def extract_model_data(HH: AccountingTable) -> dict[str, pd.DataFrame]:
    """Run every extractor and return the frames by block name."""
    frames = {}
    for name, extractor in MODEL_DATA.items():
        frames[name] = extractor(HH)
        logger.debug(f"{name}: {len(frames[name])} rows")
    return frames
