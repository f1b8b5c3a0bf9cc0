from __future__ import annotations

from pathlib import Path

import pandas as pd
import pytest

from tests.fixtures import make_state_table
from windc_household.data.cps import cps_income, cps_numhh, household_labels, label_cps_microdata
from windc_household.data.loaders import (
    load_capital_tax_rates,
    load_cps_income_categories,
    load_cps_microdata,
    load_labor_tax_rates,
    load_medicare_data,
    load_pce_shares,
    load_state_fips,
    load_windc_naics_map,
)
from windc_household.data.nipa import (
    cps_vs_nipa_income_categories,
    nipa_fringe_benefit_markup,
    windc_vs_nipa_income_categories,
)
from windc_household.data.raw import build_cps_data, labor_tax_rate_totals


@pytest.mark.parametrize(
    ("amount", "label"),
    [(0, "hh1"), (25000, "hh1"), (25001, "hh2"), (75000, "hh3"), (150000, "hh4"), (150001, "hh5")],
)
def test_household_labels_default_bounds(amount: float, label: str) -> None:
    assert household_labels(amount) == label


def test_household_labels_custom_bounds() -> None:
    bounds = {"hh1": 10, "hh2": 20, "hh3": 30, "hh4": 40}
    assert household_labels(35, bounds) == "hh4"
    assert household_labels(41, bounds) == "hh5"


@pytest.mark.parametrize(
    "bounds",
    [
        {"hh1": 10, "hh2": 20, "hh3": 30},
        {"hh1": 10, "hh2": 20, "hh3": 30, "hh4": 40, "hh5": 50},
        {"hh1": 10, "hh2": 30, "hh3": 20, "hh4": 40},
    ],
)
def test_household_labels_rejects_bad_bounds(bounds: dict[str, float]) -> None:
    with pytest.raises(ValueError):
        household_labels(5, bounds)


def _microdata() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "htotval": [20000.0, 200000.0, 60000.0],
            "gestfips": [1, 1, 2],
            "marsupwt": [1000.0, 500.0, 2000.0],
            "hwsval": [15000.0, 150000.0, 40000.0],
        }
    )


def test_label_cps_microdata_maps_fips_and_groups() -> None:
    labeled = label_cps_microdata(_microdata(), 2024, state_fips=load_state_fips())
    assert labeled["hh"].tolist() == ["hh1", "hh5", "hh3"]
    assert labeled["state"].tolist() == ["Alabama", "Alabama", "Alaska"]
    assert set(labeled["year"]) == {2024}
    assert "gestfips" not in labeled.columns


def test_label_cps_microdata_requires_columns() -> None:
    with pytest.raises(ValueError, match="marsupwt"):
        label_cps_microdata(_microdata().drop(columns=["marsupwt"]), 2024)


def test_cps_income_and_numhh_are_weighted() -> None:
    labeled = {2024: label_cps_microdata(_microdata(), 2024, state_fips=load_state_fips())}

    income = cps_income(labeled)
    wages = income[income["source"] == "hwsval"].set_index(["state", "hh"])["value"]
    assert wages["Alabama", "hh1"] == pytest.approx(15000 * 1000 / 1e9)
    assert wages["Alabama", "hh5"] == pytest.approx(150000 * 500 / 1e9)

    numhh = cps_numhh(labeled).set_index(["state", "hh"])["numhh"]
    assert numhh["Alaska", "hh3"] == pytest.approx(2000 * 1e-6)


def test_load_cps_microdata_reads_yearly_files(tmp_path: Path) -> None:
    _microdata().to_csv(tmp_path / "cps_2023.csv", index=False)
    _microdata().rename(columns=str.upper).to_csv(tmp_path / "cps_2024.csv", index=False)

    income, numhh = load_cps_microdata(tmp_path, [2023, 2024])

    assert sorted(income["year"].unique()) == [2023, 2024]
    assert len(numhh) == 6


def test_build_cps_data_flips_savings_and_imputes_labor_tax() -> None:
    income = pd.DataFrame(
        {
            "hh": ["hh1"] * 3,
            "state": ["Alabama"] * 3,
            "year": [2024] * 3,
            "source": ["hwsval", "hseval", "hretval"],
            "value": [3.0, 1.0, 0.5],
        }
    )
    rates = pd.DataFrame(
        {
            "hh": ["hh1"] * 3,
            "state": ["Alabama"] * 3,
            "variable": ["tl", "tl_avg", "tfica"],
            "labor_tax_rate": [0.3, 0.1, 0.05],
        }
    )

    cps = build_cps_data(income, load_cps_income_categories(), rates).set_index("windc")["value"]

    assert cps["wages"] == pytest.approx(4.0)
    assert cps["save"] == pytest.approx(-0.5)
    assert cps["labor_tax"] == pytest.approx(-4.0 * 0.15)


def test_labor_tax_rate_totals_sums_average_and_fica() -> None:
    rates = pd.DataFrame(
        {
            "hh": ["hh1"] * 3,
            "state": ["Alabama"] * 3,
            "variable": ["tl", "tl_avg", "tfica"],
            "labor_tax_rate": [0.3, 0.1, 0.05],
        }
    )
    totals = labor_tax_rate_totals(rates)
    assert totals["labor_tax_rate"].tolist() == [pytest.approx(0.15)]


def test_cps_vs_nipa_groups_sources_by_category() -> None:
    income = pd.DataFrame(
        {
            "hh": ["hh1", "hh2"],
            "state": ["Alabama", "Alabama"],
            "year": [2024, 2024],
            "source": ["hssval", "hdisval"],
            "value": [1.0, 0.5],
        }
    )
    nipa = pd.DataFrame({"year": [2024], "LineNumber": [18], "value": [3000.0]})

    out = cps_vs_nipa_income_categories(income, nipa)

    assert out["category"].tolist() == ["government benefits: social security"]
    assert out["cps"].iloc[0] == pytest.approx(1500.0)
    assert out["nipa"].iloc[0] == pytest.approx(3000.0)


def test_nipa_fringe_benefit_markup() -> None:
    nipa = pd.DataFrame({"year": [2024, 2024], "LineNumber": ["2", "3"], "value": [1200.0, 1000.0]})
    markup = nipa_fringe_benefit_markup(nipa)
    assert markup["markup"].tolist() == [pytest.approx(1.2)]


def test_nipa_fringe_benefit_markup_needs_both_lines() -> None:
    nipa = pd.DataFrame({"year": [2024], "LineNumber": ["2"], "value": [1200.0]})
    assert nipa_fringe_benefit_markup(nipa).empty


def test_windc_vs_nipa_factor_income() -> None:
    nipa = pd.DataFrame(
        {"year": [2024] * 4, "LineNumber": ["2", "9", "12", "13"], "value": [500.0, 100.0, 200.0, 300.0]}
    )
    out = windc_vs_nipa_income_categories(make_state_table(), nipa).set_index("parameter")
    assert out.loc["labor_demand", "nipa"] == pytest.approx(500.0)
    assert out.loc["capital_demand", "nipa"] == pytest.approx(600.0)
    assert out.loc["labor_demand", "windc"] == pytest.approx(160.0 * 1e3)
    assert out.loc["capital_demand", "windc"] == pytest.approx(330.0 * 1e3)


class TestLoaders:
    """Tests for the local CSV loaders."""

    def test_labor_tax_rates_rename_fica_and_melt(self, tmp_path: Path) -> None:
        path = tmp_path / "labor.csv"
        pd.DataFrame({"hh": ["hh1"], "state": ["al"], "tl": [0.2], "tl_avg": [0.1], "tp": [0.07]}).to_csv(
            path, index=False
        )
        rates = load_labor_tax_rates(path).set_index("variable")
        assert set(rates.index) == {"tl", "tl_avg", "tfica"}
        assert rates.loc["tfica", "labor_tax_rate"] == pytest.approx(0.07)
        assert set(rates["state"]) == {"Alabama"}

    def test_capital_tax_rates(self, tmp_path: Path) -> None:
        path = tmp_path / "capital.csv"
        pd.DataFrame({"r": ["AK"], "value": [0.12]}).to_csv(path, index=False)
        rates = load_capital_tax_rates(path)
        assert rates.loc[0, "state"] == "Alaska"
        assert rates.loc[0, "capital_tax_rate"] == pytest.approx(0.12)

    def test_missing_columns_are_reported(self, tmp_path: Path) -> None:
        path = tmp_path / "capital.csv"
        pd.DataFrame({"state": ["AK"]}).to_csv(path, index=False)
        with pytest.raises(ValueError, match="missing column"):
            load_capital_tax_rates(path)

    def test_medicare_copies_nearest_year(self, tmp_path: Path) -> None:
        path = tmp_path / "medicare.csv"
        pd.DataFrame(
            {
                "state": ["Alabama", "Alabama"],
                "year": [2015, 2016],
                "income": ["hh1", "hh1"],
                "medicare": [1.0, 2.0],
                "medicaid": [0.5, 0.6],
            }
        ).to_csv(path, index=False)

        medicare = load_medicare_data(path, years=range(2014, 2018))
        by_year = medicare[medicare["variable"] == "medicare"].set_index("year")["value"]

        assert sorted(by_year.index) == [2014, 2015, 2016, 2017]
        assert by_year[2014] == 1.0
        assert by_year[2017] == 2.0

    def test_pce_shares_convert_percent_and_map_codes(self, tmp_path: Path) -> None:
        shares_path = tmp_path / "pce.csv"
        map_path = tmp_path / "naics.csv"
        pd.DataFrame({"Column1": ["food"], "Column2": ["Farms"], "pct_windc": [25.0]}).to_csv(
            shares_path, index=False
        )
        pd.DataFrame({"bea_code": ["agr"], "windc_label": ["Farms"]}).to_csv(map_path, index=False)

        shares = load_pce_shares(shares_path, load_windc_naics_map(map_path))

        assert shares.to_dict(orient="records") == [{"cex": "food", "naics": "agr", "value": 0.25}]
