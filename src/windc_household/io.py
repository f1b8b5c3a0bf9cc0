"""Reading and writing accounting tables.

A table is stored either as a directory of three CSV files
(``data.csv``, ``sets.csv``, ``elements.csv``) or as one Excel workbook
with sheets of the same names.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, TypeVar

import pandas as pd

from windc_household.core.sets import ELEMENTS_COLUMNS, SETS_COLUMNS
from windc_household.core.tables import DATA_COLUMNS, AccountingTable, HouseholdTable

logger = logging.getLogger(__name__)

TableT = TypeVar("TableT", bound=AccountingTable)

SHEETS: dict[str, list[str]] = {
    "data": DATA_COLUMNS,
    "sets": SETS_COLUMNS,
    "elements": ELEMENTS_COLUMNS,
}

EXCEL_SUFFIXES = {".xlsx", ".xls"}


def _frames(table: AccountingTable) -> dict[str, pd.DataFrame]:
    return {"data": table.data, "sets": table.set_frame, "elements": table.element_frame}


def _text_columns(sheet: str) -> list[str]:
    return [c for c in SHEETS[sheet] if c not in ("year", "value")]


def _infer_format(path: Path, fmt: str | None) -> str:
    if fmt is not None:
        if fmt not in {"csv", "excel"}:
            raise ValueError(f"Unsupported table format: {fmt}")
        return fmt
    return "excel" if path.suffix.lower() in EXCEL_SUFFIXES else "csv"


def write_table(table: AccountingTable, path: Path | str, fmt: str | None = None) -> dict[str, Any]:
    """Write ``table`` to a CSV directory or an Excel workbook.

    Args:
        table: Table to write
        path: Output directory (CSV) or workbook path (Excel)
        fmt: ``"csv"`` or ``"excel"``; inferred from the suffix when omitted

    Returns:
        Summary with the format, path and row counts
    """
    output_path = Path(path)
    fmt = _infer_format(output_path, fmt)
    frames = _frames(table)

    if fmt == "excel":
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with pd.ExcelWriter(output_path, engine="openpyxl") as writer:
            for sheet, frame in frames.items():
                frame.to_excel(writer, sheet_name=sheet, index=False)
    else:
        output_path.mkdir(parents=True, exist_ok=True)
        for name, frame in frames.items():
            frame.to_csv(output_path / f"{name}.csv", index=False)

    logger.info(f"Wrote {len(table.data)} rows to {output_path} ({fmt})")
    return {
        "format": fmt,
        "path": str(output_path),
        "rows": {name: int(len(frame)) for name, frame in frames.items()},
    }


def read_table(
    path: Path | str,
    cls: type[TableT] = HouseholdTable,  # type: ignore[assignment]
    fmt: str | None = None,
    regularity_check: bool = True,
) -> TableT:
    """Read a table written by :func:`write_table`.

    Raises:
        FileNotFoundError: If the directory, workbook or one of the CSV files is missing
    """
    input_path = Path(path)
    if not input_path.exists():
        raise FileNotFoundError(f"Table not found: {input_path}")
    fmt = _infer_format(input_path, fmt)

    frames: dict[str, pd.DataFrame] = {}
    if fmt == "excel":
        sheets = pd.read_excel(input_path, sheet_name=list(SHEETS), engine="openpyxl")
        frames = {name: sheets[name] for name in SHEETS}
    else:
        for name in SHEETS:
            csv_path = input_path / f"{name}.csv"
            if not csv_path.exists():
                raise FileNotFoundError(f"Table file not found: {csv_path}")
            frames[name] = pd.read_csv(csv_path, dtype={c: str for c in _text_columns(name)})

    # empty descriptions come back as NaN
    for name, frame in frames.items():
        text_columns = _text_columns(name)
        frames[name] = frame.fillna({c: "" for c in text_columns if c in frame.columns})

    data = frames["data"]
    logger.debug(f"Read {len(data)} rows from {input_path} ({fmt})")
    return cls(
        data=data,
        set_frame=frames["sets"],
        element_frame=frames["elements"],
        regularity_check=regularity_check,
    )
