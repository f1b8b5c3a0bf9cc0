"""Tests for the income reconciliation model (built, not solved)."""

import pytest
from pyomo.environ import value

from tests.fixtures import HOUSEHOLDS, REGIONS, make_household_table, make_raw, make_state_table
from windc_household.calibration.income import MODEL_NAME, build_income_model
from windc_household.calibration.targets import adjusted_capital_income, adjusted_wages


@pytest.fixture(scope="module")
def inputs():
    state_table = make_state_table()
    raw = make_raw(state_table)
    HH = make_household_table(calibrated=False)
    return HH, state_table, raw


@pytest.fixture(scope="module")
def model(inputs):
    HH, state_table, raw = inputs
    return build_income_model(HH, state_table, raw)


class TestStructure:
    """Variables and constraint blocks."""

    def test_model_name_and_sets(self, model):
        assert model.name == MODEL_NAME
        assert list(model.r) == list(REGIONS)
        assert list(model.h) == list(HOUSEHOLDS)

    def test_constraint_sizes(self, model):
        cells = len(REGIONS) * len(HOUSEHOLDS)
        assert len(model.income_balance) == cells
        assert len(model.disagtrn) == cells
        assert len(model.taxdef) == cells
        assert len(model.savedis) == cells
        assert len(model.commutedis) == cells
        assert len(model.consdef) == len(REGIONS)
        assert len(model.wagedef) == len(REGIONS)

    def test_foreign_accounts_fixed_at_zero(self, model):
        assert model.Foreign_Savings.fixed
        assert model.Foreign_Capital_Ownership.fixed
        assert value(model.Foreign_Savings) == 0


class TestWages:
    """Fixing and bounds of the wage matrix."""

    def test_flows_without_commuting_are_fixed(self, model):
        for h in HOUSEHOLDS:
            assert model.Wages["beta", "alpha", h].fixed
            assert model.Wages["beta", "alpha", h].value == 0

    def test_home_wages_free_and_started_at_target(self, model, inputs):
        HH, _, raw = inputs
        targets = adjusted_wages(HH, raw, tax_adjustment=False).set_index(["state", "hh"])["wage"]
        for r in REGIONS:
            for h in HOUSEHOLDS:
                var = model.Wages[r, r, h]
                assert not var.fixed
                assert var.lb == 0
                assert var.value == pytest.approx(targets[r, h])

    def test_commuting_flows_split_across_households(self, model):
        # 4 commuters from alpha to beta spread over 5 households
        var = model.Wages["alpha", "beta", "hh2"]
        assert not var.fixed
        assert var.lb == pytest.approx(0.05 * 0.8)
        assert var.value == pytest.approx(0.5 * 0.8)


class TestBounds:
    """Bounds derived from the targets."""

    def test_interest_bounds_leave_top_household_open(self, model, inputs):
        HH, _, raw = inputs
        capital = adjusted_capital_income(HH, raw).set_index(["state", "hh"])["capital"]
        assert model.Interest["alpha", "hh5"].ub is None
        assert model.Interest["alpha", "hh1"].ub == pytest.approx(1.25 * capital["alpha", "hh1"])
        assert model.Interest["beta", "hh5"].lb == pytest.approx(0.75 * capital["beta", "hh5"])

    def test_government_transfers_bracket_initial_transfers(self, model):
        total = 0.3 + 0.06 + 0.3 + 0.1
        var = model.Government_Transfers["alpha", "hh1"]
        assert var.lb == pytest.approx(0.8 * total)
        assert var.ub == pytest.approx(1.2 * total)
        assert model.Transfer_Payments["alpha", "hh1"].value == pytest.approx(total)

    def test_savings_start_from_cps_retirement_income(self, model):
        var = model.Savings["beta", "hh5"]
        assert var.value == pytest.approx(1.0)
        assert var.lb == pytest.approx(-0.1)

    def test_taxes_start_from_imputed_labor_tax(self, model):
        assert model.Taxes["alpha", "hh3"].value == pytest.approx(3.0 * 0.225)


def test_explicit_year_builds_same_blocks(inputs):
    HH, state_table, raw = inputs
    model = build_income_model(HH, state_table, raw, year=2024)
    assert len(model.income_balance) == len(REGIONS) * len(HOUSEHOLDS)
