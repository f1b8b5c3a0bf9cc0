"""CPS microdata labeling and weighted aggregation."""

from __future__ import annotations

import logging
from typing import Mapping

import numpy as np
import pandas as pd

from windc_household import constants

logger = logging.getLogger(__name__)

BOUND_KEYS: list[str] = ["hh1", "hh2", "hh3", "hh4"]
RESIDUAL_HOUSEHOLD = "hh5"
CPS_ID_COLUMNS: list[str] = ["hh", "year", "state", "marsupwt"]


def _validated_bounds(bounds: Mapping[str, float] | None) -> list[tuple[str, float]]:
    bounds = dict(constants.INCOME_BOUNDS if bounds is None else bounds)
    if sorted(bounds) != BOUND_KEYS:
        raise ValueError(f"Bounds dictionary must have keys: {', '.join(BOUND_KEYS)}")
    ordered = [(key, float(bounds[key])) for key in BOUND_KEYS]
    if any(a[1] >= b[1] for a, b in zip(ordered, ordered[1:])):
        raise ValueError(f"Bounds must satisfy hh1 < hh2 < hh3 < hh4, got {bounds}")
    return ordered


def household_labels(amount: float, bounds: Mapping[str, float] | None = None) -> str:
    """Income group label for a total household income.

    Returns the label of the smallest bound that is at least ``amount``, or
    ``hh5`` when the amount exceeds every bound.

    Args:
        amount: Total household income (dollars)
        bounds: Upper bounds for ``hh1``..``hh4`` (defaults to 25k/50k/75k/150k)

    Raises:
        ValueError: If the bounds do not have exactly the keys hh1..hh4 or are
            not strictly increasing
    """
    for label, upper in _validated_bounds(bounds):
        if amount <= upper:
            return label
    return RESIDUAL_HOUSEHOLD


def label_cps_microdata(
    frame: pd.DataFrame,
    year: int,
    bounds: Mapping[str, float] | None = None,
    state_fips: pd.DataFrame | None = None,
) -> pd.DataFrame:
    """Attach ``hh``, ``year`` and ``state`` to one year of CPS household records.

    Expects ``htotval``, ``gestfips`` and ``marsupwt`` columns; ``gestfips`` is
    replaced by the state name from ``state_fips``.
    """
    missing = [c for c in ("htotval", "gestfips", "marsupwt") if c not in frame.columns]
    if missing:
        raise ValueError(f"CPS microdata is missing column(s): {missing}")
    ordered = _validated_bounds(bounds)
    edges = np.array([upper for _, upper in ordered])
    labels = np.array([label for label, _ in ordered] + [RESIDUAL_HOUSEHOLD])

    df = frame.copy()
    df["hh"] = labels[np.searchsorted(edges, df["htotval"].to_numpy(dtype=float), side="left")]
    df["year"] = int(year)
    if state_fips is not None:
        fips = state_fips.loc[:, ["fips", "state"]]
        df = df.merge(fips, left_on="gestfips", right_on="fips", how="left").drop(columns=["fips"])
        unmatched = int(df["state"].isna().sum())
        if unmatched:
            logger.warning(f"{unmatched} CPS record(s) have a FIPS code missing from the state map")
    else:
        df["state"] = df["gestfips"]
    return df.drop(columns=["gestfips"])


def cps_income(microdata: Mapping[int, pd.DataFrame]) -> pd.DataFrame:
    """Weighted income by household group, state, year and source (billions).

    Returns:
        DataFrame with columns ``hh, state, year, source, value``
    """
    stacked = [
        df.melt(
            id_vars=CPS_ID_COLUMNS,
            value_vars=[c for c in df.columns if c not in CPS_ID_COLUMNS],
            var_name="source",
            value_name="value",
        )
        for df in microdata.values()
    ]
    if not stacked:
        return pd.DataFrame(columns=["hh", "state", "year", "source", "value"])
    long = pd.concat(stacked, ignore_index=True)
    long["value"] = long["value"].astype(float) * long["marsupwt"].astype(float)
    out = long.groupby(["hh", "state", "year", "source"], as_index=False)["value"].sum()
    out["value"] = out["value"] / 1e9
    return out


def cps_numhh(microdata: Mapping[int, pd.DataFrame]) -> pd.DataFrame:
    """Weighted household counts by group, state and year (millions).

    Returns:
        DataFrame with columns ``hh, state, year, numhh``
    """
    frames = [df.loc[:, CPS_ID_COLUMNS] for df in microdata.values()]
    if not frames:
        return pd.DataFrame(columns=["hh", "state", "year", "numhh"])
    out = (
        pd.concat(frames, ignore_index=True)
        .groupby(["hh", "state", "year"], as_index=False)["marsupwt"]
        .sum()
        .rename(columns={"marsupwt": "numhh"})
    )
    out["numhh"] = out["numhh"] * 1e-6
    return out
