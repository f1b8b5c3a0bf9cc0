"""Both calibration models solved on the toy table with the SciPy backend."""

import pandas as pd
import pytest

from tests.fixtures import (
    HOUSEHOLDS,
    REGIONS,
    WAGES_BN,
    make_household_table,
    make_raw,
    make_state_table,
)
from windc_household.calibration.base import solver_available
from windc_household.calibration.consumption import calibrate_consumption
from windc_household.calibration.income import calibrate_income
from windc_household.config import HouseholdConfig, SolverSettings
from windc_household.enums import NonOptimalPolicy, TerminationClass
from windc_household.qa import check_consumption_calibration, check_income_calibration

SCIPY = HouseholdConfig(
    solver=SolverSettings(name="scipy", max_iter=1000, on_nonoptimal=NonOptimalPolicy.RAISE)
)
DIAGONAL_COMMUTE = pd.DataFrame(
    {"home_state": ["alpha", "beta"], "work_state": ["alpha", "beta"], "value": [50.0, 30.0]}
)


@pytest.fixture(scope="module")
def inputs():
    state_table = make_state_table()
    return make_household_table(calibrated=False), state_table, make_raw(state_table)


@pytest.fixture(scope="module")
def income(inputs):
    HH, state_table, raw = inputs
    return calibrate_income(HH, state_table, raw, SCIPY)


def _by_household(frame: pd.DataFrame) -> pd.Series:
    return frame.set_index(["region", "hh"])["value"]


class TestIncomeSolution:
    """Identities the income model must hold at its optimum."""

    def test_solve_reports_optimal(self, income):
        assert income.report.solver == "scipy"
        assert income.report.termination_class is TerminationClass.OPTIMAL
        assert income.report.objective_value is not None

    def test_budget_identity(self, income):
        earned = income.wages.groupby(["home", "hh"])["value"].sum()
        transfers = _by_household(income.transfer_payments)
        interest = _by_household(income.interest)
        consumption = _by_household(income.consumption)
        savings = _by_household(income.savings)
        taxes = _by_household(income.taxes)
        for r in REGIONS:
            for h in HOUSEHOLDS:
                lhs = transfers[r, h] + earned[r, h] + interest[r, h]
                rhs = consumption[r, h] + savings[r, h] + taxes[r, h]
                assert lhs == pytest.approx(rhs, rel=1e-6, abs=1e-6)

    def test_mass_balances(self, income):
        by_work = income.wages.groupby("work")["value"].sum()
        assert by_work["alpha"] == pytest.approx(80.0, rel=1e-6)
        assert by_work["beta"] == pytest.approx(80.0, rel=1e-6)
        # net capital demand 150 and household supply 20 per state
        assert income.interest["value"].sum() == pytest.approx(340.0, rel=1e-6)
        assert income.savings["value"].sum() == pytest.approx(60.0, rel=1e-6)

    def test_commuting_dominance(self, income):
        wages = income.wages
        for r in REGIONS:
            for h in HOUSEHOLDS:
                mine = wages[(wages["home"] == r) & (wages["hh"] == h)]
                home = mine.loc[mine["work"] == r, "value"].sum()
                away = mine.loc[mine["work"] != r, "value"].sum()
                assert home >= away - 1e-6

    def test_earned_income_follows_cps_shares(self, income):
        earned = income.wages.groupby(["home", "hh"])["value"].sum()
        total = sum(WAGES_BN.values())
        for r in REGIONS:
            state_total = earned[r].sum()
            for h in HOUSEHOLDS:
                assert earned[r, h] / state_total == pytest.approx(WAGES_BN[h] / total, rel=1e-6)

    def test_qa_gates_pass(self, income, inputs):
        HH, state_table, _ = inputs
        report = check_income_calibration(income, HH, state_table)
        assert report.passed
        assert report.failed_checks == 0


def test_home_workers_supply_all_labor_without_commuting(inputs):
    HH, state_table, _ = inputs
    raw = make_raw(state_table, acs_commute=DIAGONAL_COMMUTE)
    result = calibrate_income(HH, state_table, raw, SCIPY)

    wages = result.wages
    home = wages[(wages["home"] == "alpha") & (wages["work"] == "alpha")].set_index("hh")["value"]
    assert home.sum() == pytest.approx(80.0, rel=1e-6)
    total = sum(WAGES_BN.values())
    for h in HOUSEHOLDS:
        assert home[h] == pytest.approx(80.0 * WAGES_BN[h] / total, rel=1e-5)
    assert wages.loc[wages["home"] != wages["work"], "value"].abs().max() == pytest.approx(0.0)


class TestConsumptionSolution:
    """Consumption shares fitted against the solved income model."""

    @pytest.fixture(scope="class")
    def consumption(self, inputs, income):
        _, state_table, raw = inputs
        return calibrate_consumption(state_table, raw, income, SCIPY)

    def test_markets_clear(self, consumption):
        cd = consumption.consumption
        totals = cd.groupby(["region", "row"])["value"].sum()
        for r in REGIONS:
            assert totals[r, "agr"] == pytest.approx(60.0, rel=1e-6)
            assert totals[r, "mfg"] == pytest.approx(40.0, rel=1e-6)

    def test_budgets_hold_below_the_top_household(self, consumption, income):
        spent = consumption.consumption.groupby(["region", "hh"])["value"].sum()
        budget = _by_household(income.consumption)
        for r in REGIONS:
            for h in HOUSEHOLDS[:-1]:
                assert spent[r, h] == pytest.approx(budget[r, h], rel=1e-6, abs=1e-6)

    def test_demand_stays_positive(self, consumption):
        assert (consumption.consumption["value"] > 0).all()

    def test_qa_gates_pass(self, consumption, income, inputs):
        _, state_table, _ = inputs
        report = check_consumption_calibration(consumption, income, state_table)
        assert report.check("CON001").passed
        assert report.check("CON002").passed
        assert report.passed


@pytest.mark.skipif(not solver_available("cyipopt"), reason="cyipopt not installed")
def test_income_model_with_cyipopt(inputs):
    HH, state_table, raw = inputs
    config = HouseholdConfig(solver=SolverSettings(name="cyipopt", on_nonoptimal=NonOptimalPolicy.RAISE))
    result = calibrate_income(HH, state_table, raw, config)
    assert result.report.termination_class is TerminationClass.OPTIMAL
    assert result.wages.groupby("work")["value"].sum()["alpha"] == pytest.approx(80.0, rel=1e-6)
