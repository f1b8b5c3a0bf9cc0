from __future__ import annotations

from pathlib import Path

import pandas as pd
import pytest

from tests.fixtures import make_household_table, make_state_table
from windc_household.core.tables import AccountingTable, HouseholdTable
from windc_household.io import read_table, write_table


def _assert_same_table(left: AccountingTable, right: AccountingTable) -> None:
    pd.testing.assert_frame_equal(left.data, right.data, check_dtype=False)
    pd.testing.assert_frame_equal(left.set_frame, right.set_frame, check_dtype=False)
    pd.testing.assert_frame_equal(left.element_frame, right.element_frame, check_dtype=False)


def test_csv_round_trip(tmp_path: Path) -> None:
    HH = make_household_table()
    summary = write_table(HH, tmp_path / "household")

    assert summary["format"] == "csv"
    assert summary["rows"]["data"] == len(HH.data)
    assert sorted(p.name for p in (tmp_path / "household").iterdir()) == ["data.csv", "elements.csv", "sets.csv"]

    loaded = read_table(tmp_path / "household")
    assert isinstance(loaded, HouseholdTable)
    _assert_same_table(HH, loaded)


def test_excel_round_trip(tmp_path: Path) -> None:
    T = make_state_table()
    path = tmp_path / "tables" / "state.xlsx"
    assert write_table(T, path)["format"] == "excel"

    loaded = read_table(path, cls=AccountingTable)
    assert type(loaded) is AccountingTable
    _assert_same_table(T, loaded)
    assert loaded.years() == [2024]


def test_explicit_format_overrides_suffix(tmp_path: Path) -> None:
    T = make_state_table()
    write_table(T, tmp_path / "state.xlsx", fmt="csv")
    assert (tmp_path / "state.xlsx" / "data.csv").exists()
    with pytest.raises(ValueError, match="Unsupported table format"):
        write_table(T, tmp_path / "state", fmt="parquet")


def test_missing_inputs_raise(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        read_table(tmp_path / "absent")

    write_table(make_state_table(), tmp_path / "partial")
    (tmp_path / "partial" / "sets.csv").unlink()
    with pytest.raises(FileNotFoundError, match="sets.csv"):
        read_table(tmp_path / "partial")
