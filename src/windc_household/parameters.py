"""Derived parameters computed from a household accounting table.

Every function is a pure transform returning a long frame with columns
``row, col, region, year, parameter`` plus the numeric ``output`` column.
One of ``row``/``col`` carries a short tag identifying the aggregate
(``ls``, ``tot_sup``, ``otr`` ...), the other the dimension it is computed over.

Joins against parameters that are absent from the table produce empty (or
zero-filled, where noted) results rather than errors, and rates with a zero
denominator propagate ``inf``/``NaN``.
"""

from __future__ import annotations

import numpy as np
import pandas as pd

from windc_household import constants
from windc_household.core.tables import AccountingTable

KEYS: list[str] = ["row", "col", "region", "year", "parameter"]


def _finish(df: pd.DataFrame, output: str, **labels: str) -> pd.DataFrame:
    out = df.copy()
    for key, label in labels.items():
        out[key] = label
    return out.loc[:, [*KEYS, output]].reset_index(drop=True)


def _grouped_sum(df: pd.DataFrame, by: list[str], column: str, output: str) -> pd.DataFrame:
    return df.groupby(by, as_index=False)[column].sum().rename(columns={column: output})


def labor_supply(
    HH: AccountingTable,
    *,
    column: str = "value",
    output: str = "value",
    parameter: str = "labor_supply",
) -> pd.DataFrame:
    """Labor endowment net of marginal and FICA labor taxes, per household.

    ``labor_supply = sum(labor_endowment - marginal_labor_tax - fica_tax)``
    grouped by ``(region, year, col)``. Tagged ``row = "ls"``.
    """
    df = HH.table("Labor_Endowment", "Marginal_Labor_Tax", "FICA_Tax")
    taxes = df["parameter"].isin(["marginal_labor_tax", "fica_tax"])
    df[column] = np.where(taxes, -df[column], df[column])
    out = _grouped_sum(df, ["region", "year", "col"], column, output)
    return _finish(out, output, row="ls", parameter=parameter)


def total_supply(
    HH: AccountingTable,
    *,
    column: str = "value",
    output: str = "value",
    parameter: str = "total_supply",
) -> pd.DataFrame:
    """Intermediate plus household supply per commodity. Tagged ``col = "tot_sup"``."""
    df = HH.table("Intermediate_Supply", "Household_Supply")
    out = _grouped_sum(df, ["row", "region", "year"], column, output)
    return _finish(out, output, col="tot_sup", parameter=parameter)


def absorption(
    HH: AccountingTable,
    *,
    column: str = "value",
    output: str = "value",
    parameter: str = "absorption",
    normalize: bool = False,
) -> pd.DataFrame:
    """Intermediate demand plus other final demand per commodity.

    Values keep the table's demand sign (negative) unless ``normalize`` is set.
    Tagged ``col = "abs"``.
    """
    df = HH.table("Intermediate_Demand", "Other_Final_Demand")
    out = _grouped_sum(df, ["row", "year", "region"], column, output)
    if normalize:
        out[output] = -out[output]
    return _finish(out, output, col="abs", parameter=parameter)


def regional_local_supply(
    HH: AccountingTable,
    *,
    column: str = "value",
    output: str = "value",
    parameter: str = "region_local_supply",
) -> pd.DataFrame:
    """Local margin supply plus local demand (Use-normalized). Tagged ``col = "rls"``."""
    df = HH.table("Local_Margin_Supply", "Local_Demand", normalize="Use", column=column)
    out = _grouped_sum(df, ["row", "region", "year"], column, output)
    return _finish(out, output, col="rls", parameter=parameter)


def netports(
    HH: AccountingTable,
    *,
    column: str = "value",
    output: str = "value",
    parameter: str = "netport",
) -> pd.DataFrame:
    """Exports plus re-exports (Export-normalized). Tagged ``col = "netport"``."""
    df = HH.table("Export", "Reexport", normalize="Export", column=column)
    out = _grouped_sum(df, ["row", "region", "year"], column, output)
    return _finish(out, output, col="netport", parameter=parameter)


def regional_national_supply(
    HH: AccountingTable,
    *,
    column: str = "value",
    output: str = "value",
    parameter: str = "region_national_supply",
) -> pd.DataFrame:
    """Total supply less net exports and regional local supply.

    The three components are outer-joined with missing entries read as 0.
    Tagged ``col = "rns"``.
    """
    on = ["row", "region", "year"]
    parts = [
        total_supply(HH, column=column, output="total_supply").loc[:, [*on, "total_supply"]],
        netports(HH, column=column, output="netport").loc[:, [*on, "netport"]],
        regional_local_supply(HH, column=column, output="rls").loc[:, [*on, "rls"]],
    ]
    df = parts[0].merge(parts[1], on=on, how="outer").merge(parts[2], on=on, how="outer")
    df[["total_supply", "netport", "rls"]] = df[["total_supply", "netport", "rls"]].fillna(0.0)
    df[output] = df["total_supply"] - df["netport"] - df["rls"]
    return _finish(df, output, col="rns", parameter=parameter)


def output_tax_rate(
    HH: AccountingTable,
    *,
    column: str = "value",
    output: str = "value",
    parameter: str = "output_tax_rate",
) -> pd.DataFrame:
    """Output tax over total intermediate supply, per sector. Tagged ``row = "otr"``."""
    on = ["col", "region", "year"]
    supply = _grouped_sum(HH.table("Intermediate_Supply"), on, column, "is")
    tax = HH.table("Output_Tax", normalize="Use", column=column)
    df = supply.merge(tax, on=on, how="inner")
    df[output] = df[column] / df["is"]
    return _finish(df, output, row="otr", parameter=parameter)


def tax_rate(
    HH: AccountingTable,
    *,
    column: str = "value",
    output: str = "value",
    parameter: str = "tax_rate",
) -> pd.DataFrame:
    """Commodity tax over (positive) absorption. Tagged ``col = "tr"``."""
    on = ["row", "region", "year"]
    absorbed = absorption(HH, column=column, output="absorption", normalize=True)
    df = HH.table("Tax").merge(absorbed.loc[:, [*on, "absorption"]], on=on, how="inner")
    df[output] = df[column] / df["absorption"]
    return _finish(df, output, col="tr", parameter=parameter)


def duty_rate(
    HH: AccountingTable,
    *,
    column: str = "value",
    output: str = "value",
    parameter: str = "duty_rate",
) -> pd.DataFrame:
    """Import duty over imports, per commodity. Tagged ``col = "dr"``."""
    on = ["row", "region", "year"]
    imports = HH.table("Import").rename(columns={column: "import"}).loc[:, [*on, "import"]]
    df = HH.table("Duty").merge(imports, on=on, how="inner")
    df[output] = df[column] / df["import"]
    return _finish(df, output, col="dr", parameter=parameter)


def _labor_tax_rate(
    HH: AccountingTable,
    tax_set: str,
    tag: str,
    column: str,
    output: str,
    parameter: str,
) -> pd.DataFrame:
    on = ["col", "region", "year"]
    endowment = _grouped_sum(HH.table("Labor_Endowment"), on, column, "le")
    tax = HH.table(tax_set, normalize="Use", column=column)
    df = endowment.merge(tax, on=on, how="inner")
    df[output] = df[column] / df["le"]
    return _finish(df, output, row=tag, parameter=parameter)


def marginal_labor_tax_rate(
    HH: AccountingTable,
    *,
    column: str = "value",
    output: str = "value",
    parameter: str = "marginal_labor_tax_rate",
) -> pd.DataFrame:
    """Marginal labor tax over labor endowment summed across work regions.

    Tagged ``row = "ltr"``.
    """
    return _labor_tax_rate(HH, "Marginal_Labor_Tax", "ltr", column, output, parameter)


def fica_tax_rate(
    HH: AccountingTable,
    *,
    column: str = "value",
    output: str = "value",
    parameter: str = "fica_tax_rate",
) -> pd.DataFrame:
    """FICA tax over labor endowment. Tagged ``row = "ftr"``."""
    return _labor_tax_rate(HH, "FICA_Tax", "ftr", column, output, parameter)


def average_labor_tax_rate(
    HH: AccountingTable,
    *,
    column: str = "value",
    output: str = "value",
    parameter: str = "average_labor_tax_rate",
) -> pd.DataFrame:
    """Average labor tax over labor endowment. Tagged ``row = "altr"``."""
    return _labor_tax_rate(HH, "Average_Labor_Tax", "altr", column, output, parameter)


def capital_tax_rate(
    HH: AccountingTable,
    *,
    column: str = "value",
    output: str = "value",
    parameter: str = "capital_tax_rate",
) -> pd.DataFrame:
    """Capital tax over net capital demand, per sector. Tagged ``row = "ktr"``.

    Both flows are Use-normalized, so a positive tax on positive capital
    demand yields a positive rate.
    """
    on = ["col", "region", "year"]
    capital = _grouped_sum(HH.table("Capital_Demand", normalize="Use", column=column), on, column, "ce")
    tax = HH.table("Capital_Tax", normalize="Use", column=column)
    df = capital.merge(tax, on=on, how="inner")
    df[output] = df[column] / df["ce"]
    return _finish(df, output, row="ktr", parameter=parameter)


def leisure_demand(
    HH: AccountingTable,
    *,
    column: str = "value",
    output: str = "value",
    parameter: str = "leisure_demand",
    elasticity: float = constants.LABOR_SUPPLY_INCOME_ELASTICITY,
) -> pd.DataFrame:
    """Leisure demand as ``elasticity * labor_supply``. Tagged ``row = "ld"``."""
    df = labor_supply(HH, column=column, output=output)
    df[output] = elasticity * df[output]
    return _finish(df, output, row="ld", parameter=parameter)


def leisure_consumption_elasticity(
    HH: AccountingTable,
    *,
    column: str = "value",
    output: str = "value",
    parameter: str = "leisure_consumption_elasticity",
    elasticity: float = constants.LEISURE_INCOME_ELASTICITY,
    labor_supply_elasticity: float = constants.LABOR_SUPPLY_INCOME_ELASTICITY,
) -> pd.DataFrame:
    """Elasticity of substitution between leisure and consumption.

    ``els = elasticity * (pce + ld) / pce * ls / ld`` per household, region
    and year, where ``pce`` is Use-normalized personal consumption summed
    over commodities, ``ld`` leisure demand and ``ls`` labor supply.

    An older variant multiplies instead of adding (``(pce * ld) / pce``),
    which collapses to ``elasticity * ls``; the additive form is the one
    computed here. Tagged ``row = "els"``.
    """
    on = ["col", "region", "year"]
    pce = _grouped_sum(HH.table("Personal_Consumption", normalize="Use", column=column), on, column, "pce")
    ld = leisure_demand(HH, column=column, output="ld", elasticity=labor_supply_elasticity)
    ls = labor_supply(HH, column=column, output="ls")
    df = pce.merge(ld.loc[:, [*on, "ld"]], on=on, how="inner").merge(ls.loc[:, [*on, "ls"]], on=on, how="inner")
    df[output] = elasticity * (df["pce"] + df["ld"]) / df["pce"] * df["ls"] / df["ld"]
    return _finish(df, output, row="els", parameter=parameter)


def aggregate_transfer_payment(
    HH: AccountingTable,
    *,
    column: str = "value",
    output: str = "value",
    parameter: str = "total_transfers",
) -> pd.DataFrame:
    """Transfer payments summed over sources, per household. Tagged ``row = "tt"``."""
    df = _grouped_sum(HH.table("Transfer_Payment"), ["col", "region", "year"], column, output)
    return _finish(df, output, row="tt", parameter=parameter)


def government_deficit(
    HH: AccountingTable,
    *,
    column: str = "value",
    output: str = "value",
    parameter: str = "government_deficit",
) -> pd.DataFrame:
    """Government spending and transfers less tax revenue, per year.

    ``-sum(GFD - transfer_payment - average_labor_tax - fica_tax - capital_tax
    - output_tax - tax - duty)`` using stored signs, with transfer payments,
    output tax and capital tax flipped first. Tagged ``gd`` in row, col and region.
    """
    df = HH.table(
        "Government_Final_Demand",
        "Transfer_Payment",
        "Average_Labor_Tax",
        "FICA_Tax",
        "Capital_Tax",
        "Output_Tax",
        "Tax",
        "Duty",
    )
    flip = df["parameter"].isin(["transfer_payment", "output_tax", "capital_tax"])
    df[column] = np.where(flip, -df[column], df[column])
    out = df.groupby("year", as_index=False)[column].sum().rename(columns={column: output})
    out[output] = -out[output]
    return _finish(out, output, row="gd", col="gd", region="gd", parameter=parameter)


DERIVED_PARAMETERS = {
    "labor_supply": labor_supply,
    "total_supply": total_supply,
    "absorption": absorption,
    "regional_local_supply": regional_local_supply,
    "netports": netports,
    "regional_national_supply": regional_national_supply,
    "output_tax_rate": output_tax_rate,
    "tax_rate": tax_rate,
    "duty_rate": duty_rate,
    "marginal_labor_tax_rate": marginal_labor_tax_rate,
    "fica_tax_rate": fica_tax_rate,
    "average_labor_tax_rate": average_labor_tax_rate,
    "capital_tax_rate": capital_tax_rate,
    "leisure_demand": leisure_demand,
    "leisure_consumption_elasticity": leisure_consumption_elasticity,
    "aggregate_transfer_payment": aggregate_transfer_payment,
    "government_deficit": government_deficit,
}
