"""Sparse parameter lookups with a zero default."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import Hashable, Sequence

import pandas as pd


class ParameterLookup(Mapping):
    """Read-only mapping from key tuples to values; missing keys read as ``default``.

    Lookups of absent keys never insert them, so ``len`` and iteration only
    reflect the data the lookup was built from.

    Example:
        >>> Q = ParameterLookup.from_frame(df, ("row", "col", "region", "parameter"))
        >>> Q["agr", "mfg", "colorado", "intermediate_demand"]
        12.5
        >>> Q["nope", "mfg", "colorado", "intermediate_demand"]
        0.0
    """

    def __init__(self, values: Mapping[tuple, float] | None = None, default: float = 0.0) -> None:
        self._values: dict[tuple, float] = dict(values or {})
        self.default = default

    @classmethod
    def from_frame(
        cls,
        frame: pd.DataFrame,
        keys: Sequence[str],
        value: str = "value",
        default: float = 0.0,
    ) -> ParameterLookup:
        """Build a lookup from a long frame; later duplicates overwrite earlier ones."""
        missing = [k for k in (*keys, value) if k not in frame.columns]
        if missing:
            raise KeyError(f"Lookup columns not in frame: {missing}")
        records = zip(*(frame[k].tolist() for k in keys), frame[value].tolist())
        values = {tuple(rec[:-1]): float(rec[-1]) for rec in records}
        return cls(values, default=default)

    @staticmethod
    def _key(key: Hashable) -> tuple:
        return key if isinstance(key, tuple) else (key,)

    def __getitem__(self, key: Hashable) -> float:
        return self._values.get(self._key(key), self.default)

    def __contains__(self, key: object) -> bool:
        return self._key(key) in self._values  # type: ignore[arg-type]

    def __iter__(self) -> Iterator[tuple]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"ParameterLookup({len(self)} entries, default={self.default})"

    def to_dict(self) -> dict[tuple, float]:
        return dict(self._values)
