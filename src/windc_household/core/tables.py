"""Long-format accounting tables with set/element metadata.

An :class:`AccountingTable` wraps three frames:

* ``data``: one economic flow per row, keyed by ``(row, col, region, year, parameter)``
* ``set_frame``: named dimensions ``(name, description, domain)``
* ``element_frame``: members of each set ``(name, description, set)``

Every value in the key columns of ``data`` must be declared as an element of
a set whose domain is that column (the *regularity* invariant). Tables are
immutable; every update returns a new instance.
"""

from __future__ import annotations

import logging
from functools import reduce
from typing import Iterable, TypeVar

import pandas as pd
from pydantic import BaseModel, ConfigDict, model_validator

from windc_household.core.sets import DOMAINS, ELEMENTS_COLUMNS, SETS_COLUMNS, Set
from windc_household.errors import RegularityError

logger = logging.getLogger(__name__)

DATA_COLUMNS: list[str] = ["row", "col", "region", "year", "parameter", "value"]
KEY_COLUMNS: list[str] = DATA_COLUMNS[:-1]
LABEL_COLUMNS: list[str] = ["row", "col", "region", "parameter"]

TableT = TypeVar("TableT", bound="AccountingTable")


def empty_data() -> pd.DataFrame:
    """An empty fact frame with the canonical columns."""
    return pd.DataFrame({c: pd.Series(dtype=float if c == "value" else object) for c in DATA_COLUMNS})


def _normalize_data(frame: pd.DataFrame) -> pd.DataFrame:
    missing = [c for c in DATA_COLUMNS if c not in frame.columns]
    if missing:
        raise ValueError(f"Fact table is missing column(s): {missing}")
    df = frame.loc[:, DATA_COLUMNS].copy()
    for column in LABEL_COLUMNS:
        df[column] = df[column].astype(str)
    if pd.api.types.is_numeric_dtype(df["year"]):
        df["year"] = df["year"].astype(int)
    df["value"] = df["value"].astype(float)
    return df.reset_index(drop=True)


def _normalize_meta(frame: pd.DataFrame, columns: list[str], label: str) -> pd.DataFrame:
    missing = [c for c in columns if c not in frame.columns]
    if missing:
        raise ValueError(f"{label} table is missing column(s): {missing}")
    df = frame.loc[:, columns].astype(str)
    return df.drop_duplicates().reset_index(drop=True)


class AccountingTable(BaseModel):
    """Immutable fact table plus the sets and elements that describe it.

    Attributes:
        data: Fact rows ``(row, col, region, year, parameter, value)``
        set_frame: Set declarations ``(name, description, domain)``
        element_frame: Element declarations ``(name, description, set)``
        regularity_check: Validate the regularity invariant on construction

    Example:
        >>> T = AccountingTable(data=data, set_frame=sets, element_frame=elements)
        >>> T.table("Labor_Demand", normalize="Use")
    """

    data: pd.DataFrame
    set_frame: pd.DataFrame
    element_frame: pd.DataFrame
    regularity_check: bool = True

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    @model_validator(mode="after")
    def _validate(self) -> AccountingTable:
        object.__setattr__(self, "data", _normalize_data(self.data))
        object.__setattr__(self, "set_frame", _normalize_meta(self.set_frame, SETS_COLUMNS, "Sets"))
        object.__setattr__(
            self, "element_frame", _normalize_meta(self.element_frame, ELEMENTS_COLUMNS, "Elements")
        )
        bad_domains = sorted(set(self.set_frame["domain"]) - set(DOMAINS))
        if bad_domains:
            raise ValueError(f"Unknown set domain(s) {bad_domains}; expected one of {DOMAINS}")
        if self.regularity_check:
            self.check_regularity()
        return self

    @classmethod
    def from_sets(
        cls: type[TableT],
        data: pd.DataFrame,
        sets: Iterable[Set],
        regularity_check: bool = True,
    ) -> TableT:
        """Build a table from a fact frame and a list of :class:`Set` objects."""
        sets = list(sets)
        set_frame = pd.concat([s.sets_frame() for s in sets], ignore_index=True) if sets else None
        element_frame = pd.concat([s.elements_frame() for s in sets], ignore_index=True) if sets else None
        return cls(
            data=data,
            set_frame=set_frame if set_frame is not None else pd.DataFrame(columns=SETS_COLUMNS),
            element_frame=element_frame
            if element_frame is not None
            else pd.DataFrame(columns=ELEMENTS_COLUMNS),
            regularity_check=regularity_check,
        )

    # ------------------------------------------------------------------
    # Regularity
    # ------------------------------------------------------------------

    def _declared(self, domain: str) -> set[str]:
        names = self.set_frame.loc[self.set_frame["domain"] == domain, "name"]
        members = self.element_frame.loc[self.element_frame["set"].isin(names), "name"]
        return set(members)

    def regularity_report(self) -> dict[str, list[str]]:
        """Undeclared values per fact-table column (empty dict when regular)."""
        report: dict[str, list[str]] = {}
        for column in KEY_COLUMNS:
            values = set(self.data[column].astype(str).unique())
            undeclared = values - self._declared(column)
            if undeclared:
                report[column] = sorted(undeclared)
        return report

    def check_regularity(self, step: str | None = None) -> None:
        """Raise :class:`RegularityError` if any key value is undeclared."""
        report = self.regularity_report()
        if report:
            column, values = next(iter(report.items()))
            raise RegularityError(column, values, step=step)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def domains(self, name: str) -> list[str]:
        """Domains declared for set ``name`` (empty if undeclared)."""
        return self.set_frame.loc[self.set_frame["name"] == name, "domain"].tolist()

    def element_names(self, set_name: str) -> list[str]:
        """Elements of ``set_name`` in declaration order."""
        names = self.element_frame.loc[self.element_frame["set"] == set_name, "name"]
        return list(dict.fromkeys(names))

    def table(
        self,
        *names: str,
        normalize: str | None = None,
        column: str = "value",
    ) -> pd.DataFrame:
        """Select fact rows by set name.

        Names sharing a domain are combined with OR; different domains with AND.
        A parameter set (domain ``parameter``) selects on the ``parameter``
        column. Undeclared names select nothing.

        Args:
            *names: Set names to select on (no names selects everything)
            normalize: Parameter set whose members are sign-flipped
            column: Numeric column to flip

        Returns:
            Copy of the selected fact rows
        """
        data = self.data
        if names:
            groups: dict[tuple[str, ...], pd.Series] = {}
            for name in names:
                domains = tuple(sorted(self.domains(name)))
                if not domains:
                    logger.debug(f"Set '{name}' is not declared; it selects no rows")
                    continue
                members = set(self.element_names(name))
                mask = reduce(
                    lambda acc, d: acc | data[d].astype(str).isin(members),
                    domains,
                    pd.Series(False, index=data.index),
                )
                groups[domains] = groups[domains] | mask if domains in groups else mask
            if not groups:
                return self.data.iloc[0:0].copy()
            data = data[reduce(lambda a, b: a & b, groups.values())]

        out = data.copy()
        if normalize is not None:
            flip = out["parameter"].isin(set(self.element_names(normalize)))
            out.loc[flip, column] = -out.loc[flip, column]
        return out.reset_index(drop=True)

    def sets(self, *names: str) -> pd.DataFrame:
        """Set declarations, optionally filtered by name."""
        frame = self.set_frame
        if names:
            frame = frame[frame["name"].isin(names)]
        return frame.reset_index(drop=True).copy()

    def elements(self, *names: str) -> pd.DataFrame:
        """Element declarations, optionally filtered by owning set."""
        frame = self.element_frame
        if names:
            frame = frame[frame["set"].isin(names)]
        return frame.reset_index(drop=True).copy()

    def years(self) -> list[int]:
        return sorted(int(y) for y in self.data["year"].unique())

    # ------------------------------------------------------------------
    # Functional updates
    # ------------------------------------------------------------------

    def replace(
        self: TableT,
        *,
        data: pd.DataFrame | None = None,
        set_frame: pd.DataFrame | None = None,
        element_frame: pd.DataFrame | None = None,
        cls: type[TableT] | None = None,
    ) -> TableT:
        """Return a new table with some frames swapped out."""
        target = cls or type(self)
        return target(
            data=self.data if data is None else data,
            set_frame=self.set_frame if set_frame is None else set_frame,
            element_frame=self.element_frame if element_frame is None else element_frame,
            regularity_check=self.regularity_check,
        )

    def append(
        self: TableT,
        data: pd.DataFrame | None = None,
        sets: Iterable[Set] = (),
        elements: dict[str, Iterable[str]] | None = None,
    ) -> TableT:
        """Add fact rows, new sets, and extra elements for existing sets."""
        sets = list(sets)
        set_frame = pd.concat([self.set_frame, *[s.sets_frame() for s in sets]], ignore_index=True)
        element_parts = [self.element_frame, *[s.elements_frame() for s in sets]]
        for set_name, names in (elements or {}).items():
            element_parts.append(
                pd.DataFrame([(n, n, set_name) for n in names], columns=ELEMENTS_COLUMNS)
            )
        element_frame = pd.concat(element_parts, ignore_index=True)
        new_data = self.data
        if data is not None and not data.empty:
            new_data = pd.concat([self.data, _normalize_data(data)], ignore_index=True)
        return self.replace(data=new_data, set_frame=set_frame, element_frame=element_frame)

    def drop_parameters(self: TableT, *parameters: str) -> TableT:
        """Remove all fact rows whose ``parameter`` is listed."""
        keep = ~self.data["parameter"].isin(parameters)
        return self.replace(data=self.data[keep])

    def drop_elements(self: TableT, *names: str) -> TableT:
        """Remove elements by name from every set."""
        keep = ~self.element_frame["name"].isin(names)
        return self.replace(element_frame=self.element_frame[keep])


class HouseholdTable(AccountingTable):
    """Accounting table disaggregated by household income group."""

    def households(self) -> list[str]:
        return self.element_names("household")

    def regions(self) -> list[str]:
        return self.element_names("state")
