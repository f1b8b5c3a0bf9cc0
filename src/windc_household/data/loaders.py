"""Readers for locally stored raw inputs.

Each loader returns a DataFrame in the column contract the rest of the
package consumes. Downloading the files is outside this package.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Mapping, Sequence

import pandas as pd

from windc_household.data.cps import cps_income, cps_numhh, label_cps_microdata

logger = logging.getLogger(__name__)

MAPS_DIR = Path(__file__).parent / "maps"


def _read_csv(path: Path | str, required: Sequence[str], label: str) -> pd.DataFrame:
    df = pd.read_csv(path)
    df.columns = [str(c).strip() for c in df.columns]
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise ValueError(f"{label} file {path} is missing column(s): {missing}")
    return df


def load_state_fips(
    path: Path | str | None = None,
    columns: Sequence[str] = ("fips", "state"),
) -> pd.DataFrame:
    """State FIPS codes, names and abbreviations (bundled map by default)."""
    df = _read_csv(path or MAPS_DIR / "state_fips.csv", columns, "State FIPS")
    return df.loc[:, list(columns)]


def load_cps_income_categories(path: Path | str | None = None) -> pd.DataFrame:
    """Mapping of CPS income sources onto WiNDC categories (``windc, source``)."""
    df = _read_csv(path or MAPS_DIR / "cps_income_categories.csv", ["windc", "source"], "Income categories")
    return df.loc[:, ["windc", "source"]]


def load_windc_naics_map(path: Path | str) -> pd.DataFrame:
    """Mapping between WiNDC labels and BEA/NAICS codes (``naics, windc``)."""
    df = _read_csv(path, ["bea_code", "windc_label"], "NAICS map")
    return df.rename(columns={"bea_code": "naics", "windc_label": "windc"}).loc[:, ["naics", "windc"]]


def _with_state_names(
    df: pd.DataFrame,
    column: str,
    state_abbreviations: pd.DataFrame | None,
) -> pd.DataFrame:
    if state_abbreviations is None:
        state_abbreviations = load_state_fips(columns=("state", "abbreviation"))
    out = df.assign(abbreviation=df[column].astype(str).str.upper()).drop(columns=[column])
    out = out.merge(state_abbreviations.loc[:, ["state", "abbreviation"]], on="abbreviation", how="inner")
    return out.drop(columns=["abbreviation"])


def load_labor_tax_rates(path: Path | str, state_abbreviations: pd.DataFrame | None = None) -> pd.DataFrame:
    """Labor tax rates by household and state.

    The file carries one column per rate (``tl``, ``tl_avg``, ``tp`` ...);
    ``tp`` is renamed ``tfica``.

    Returns:
        DataFrame with columns ``hh, state, variable, labor_tax_rate``
    """
    df = _read_csv(path, ["hh", "state"], "Labor tax rates")
    df = _with_state_names(df, "state", state_abbreviations).rename(columns={"tp": "tfica"})
    return df.melt(id_vars=["hh", "state"], var_name="variable", value_name="labor_tax_rate")


def load_capital_tax_rates(path: Path | str, state_abbreviations: pd.DataFrame | None = None) -> pd.DataFrame:
    """Capital tax rates by state (``state, capital_tax_rate``)."""
    df = _read_csv(path, ["r", "value"], "Capital tax rates")
    df = _with_state_names(df, "r", state_abbreviations)
    return df.rename(columns={"value": "capital_tax_rate"})


def load_cex_income_elasticities(path: Path | str) -> pd.DataFrame:
    """CEX income elasticities by expenditure category (``cex, elast``)."""
    return _read_csv(path, ["cex", "elast"], "CEX elasticities").loc[:, ["cex", "elast"]]


def load_pce_shares(path: Path | str, naics_windc_map: pd.DataFrame) -> pd.DataFrame:
    """PCE shares linking CEX categories to commodities.

    Percentages are converted to fractions.

    Returns:
        DataFrame with columns ``cex, naics, value``
    """
    df = _read_csv(path, ["Column1", "Column2", "pct_windc"], "PCE shares")
    df = df.rename(columns={"Column1": "cex", "Column2": "windc", "pct_windc": "value"})
    out = df.loc[:, ["cex", "windc", "value"]].merge(naics_windc_map, on="windc", how="inner")
    out["value"] = out["value"] / 100
    return out.loc[:, ["cex", "naics", "value"]]


def load_medicare_data(path: Path | str, years: Iterable[int] = range(2009, 2025)) -> pd.DataFrame:
    """Medicare and Medicaid amounts by state, year and income group.

    Years outside the file's coverage are filled by copying the nearest
    available year.

    Returns:
        DataFrame with columns ``state, year, income, variable, value``
    """
    years = sorted(set(int(y) for y in years))
    df = _read_csv(path, ["state", "year", "income", "medicare", "medicaid"], "Medicare")
    df = df.melt(
        id_vars=["state", "year", "income"],
        value_vars=["medicare", "medicaid"],
        var_name="variable",
        value_name="value",
    )
    df = df[df["year"].isin(years)]
    if df.empty:
        return df.reset_index(drop=True)
    min_year, max_year = int(df["year"].min()), int(df["year"].max())
    fills = [
        df[df["year"] == (max_year if year > max_year else min_year)].assign(year=year)
        for year in years
        if year > max_year or year < min_year
    ]
    return pd.concat([df, *fills], ignore_index=True)


def load_nipa(path: Path | str) -> pd.DataFrame:
    """NIPA personal income lines (``year, LineNumber, value``, millions)."""
    df = _read_csv(path, ["year", "LineNumber", "value"], "NIPA")
    df["LineNumber"] = df["LineNumber"].astype(str)
    return df.loc[:, ["year", "LineNumber", "value"]]


def load_acs_commute(path: Path | str) -> pd.DataFrame:
    """ACS commuting flows (``home_state, work_state, value``)."""
    df = _read_csv(path, ["home_state", "work_state", "value"], "ACS commute")
    return df.loc[:, ["home_state", "work_state", "value"]]


def load_cps_income(path: Path | str) -> pd.DataFrame:
    """Aggregated CPS income (``hh, state, year, source, value``, billions)."""
    df = _read_csv(path, ["hh", "state", "year", "source", "value"], "CPS income")
    return df.loc[:, ["hh", "state", "year", "source", "value"]]


def load_cps_numhh(path: Path | str) -> pd.DataFrame:
    """Aggregated CPS household counts (``hh, state, year, numhh``, millions)."""
    df = _read_csv(path, ["hh", "state", "year", "numhh"], "CPS households")
    return df.loc[:, ["hh", "state", "year", "numhh"]]


def load_cps_microdata(
    directory: Path | str,
    years: Iterable[int],
    bounds: Mapping[str, float] | None = None,
    state_fips: pd.DataFrame | None = None,
) -> tuple[pd.DataFrame, pd.DataFrame]:
    """Read ``cps_<year>.csv`` files and aggregate them.

    Returns:
        ``(income, numhh)`` frames as produced by :func:`cps_income` and :func:`cps_numhh`
    """
    directory = Path(directory)
    state_fips = load_state_fips() if state_fips is None else state_fips
    labeled: dict[int, pd.DataFrame] = {}
    for year in years:
        path = directory / f"cps_{year}.csv"
        frame = pd.read_csv(path)
        frame.columns = [str(c).strip().lower() for c in frame.columns]
        labeled[int(year)] = label_cps_microdata(frame, int(year), bounds=bounds, state_fips=state_fips)
        logger.debug(f"Loaded {len(frame)} CPS household records from {path}")
    return cps_income(labeled), cps_numhh(labeled)
