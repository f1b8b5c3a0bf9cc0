"""Set definitions for accounting tables.

A set names one dimension of the fact table (commodities, sectors, states,
households, parameters, ...). Each set declares the fact-table column it
indexes (its *domain*) and the elements it contains.
"""

from __future__ import annotations

from collections.abc import Iterator

import pandas as pd
from pydantic import BaseModel, Field, field_validator

DOMAINS: tuple[str, ...] = ("row", "col", "region", "year", "parameter")

SETS_COLUMNS: list[str] = ["name", "description", "domain"]
ELEMENTS_COLUMNS: list[str] = ["name", "description", "set"]


class Set(BaseModel):
    """A named set of elements attached to one or more table domains.

    Attributes:
        name: Unique identifier for the set
        elements: Element names, in declaration order
        description: Human-readable description
        domain: Fact-table columns this set indexes
        labels: Optional per-element descriptions

    Example:
        >>> households = Set(name="household", domain=("col",),
        ...                  elements=("hh1", "hh2"), description="Households")
        >>> print(households)
        Set household [col] (2 elements): hh1, hh2
    """

    name: str = Field(..., min_length=1, description="Set identifier")
    elements: tuple[str, ...] = Field(default_factory=tuple, description="Set elements")
    description: str = Field(default="", description="Human-readable description")
    domain: tuple[str, ...] = Field(..., min_length=1, description="Indexed table columns")
    labels: dict[str, str] = Field(default_factory=dict, description="Element descriptions")

    model_config = {"frozen": True}

    @field_validator("domain", mode="before")
    @classmethod
    def _coerce_domain(cls, value: object) -> tuple[str, ...]:
        if isinstance(value, str):
            value = (value,)
        domain = tuple(str(v) for v in value)  # type: ignore[union-attr]
        unknown = [d for d in domain if d not in DOMAINS]
        if unknown:
            msg = f"Unknown set domain(s) {unknown}; expected one of {DOMAINS}"
            raise ValueError(msg)
        return domain

    @field_validator("elements", mode="before")
    @classmethod
    def _coerce_elements(cls, value: object) -> tuple[str, ...]:
        if isinstance(value, str):
            return (value,)
        return tuple(str(v) for v in value)  # type: ignore[union-attr]

    def __len__(self) -> int:
        return len(self.elements)

    def __iter__(self) -> Iterator[str]:  # type: ignore[override]
        return iter(self.elements)

    def __contains__(self, item: object) -> bool:
        return str(item) in self.elements

    def __str__(self) -> str:
        elems = ", ".join(self.elements[:5])
        if len(self.elements) > 5:
            elems += f", ... ({len(self.elements) - 5} more)"
        domain = ",".join(self.domain)
        return f"Set {self.name} [{domain}] ({len(self.elements)} elements): {elems}"

    def to_list(self) -> list[str]:
        """Return elements as a list."""
        return list(self.elements)

    def sets_frame(self) -> pd.DataFrame:
        """Rows for the sets table, one per domain."""
        return pd.DataFrame(
            [(self.name, self.description, d) for d in self.domain],
            columns=SETS_COLUMNS,
        )

    def elements_frame(self) -> pd.DataFrame:
        """Rows for the elements table."""
        return pd.DataFrame(
            [(e, self.labels.get(e, e), self.name) for e in self.elements],
            columns=ELEMENTS_COLUMNS,
        )

    def with_elements(self, *elements: str) -> Set:
        """Return a copy with extra elements appended (duplicates ignored)."""
        merged = list(self.elements)
        for element in elements:
            if element not in merged:
                merged.append(element)
        return self.model_copy(update={"elements": tuple(merged)})
