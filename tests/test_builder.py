"""Tests for the household table builder."""

import logging

import pandas as pd
import pytest

from tests.fixtures import (
    HOUSEHOLDS,
    REGIONS,
    make_consumption_result,
    make_household_table,
    make_income_result,
    make_raw,
    make_raw_frames,
    make_state_table,
)
from windc_household import builder
from windc_household.config import HouseholdConfig, SolverSettings
from windc_household.core.tables import HouseholdTable
from windc_household.errors import PipelineStepError


def _values(HH, parameter, *keys):
    df = HH.data[HH.data["parameter"] == parameter]
    return df.set_index(list(keys))["value"]


class TestPreCalibrationSteps:
    """initialize_table, adjust_capital_demand and build_transfer_payments."""

    def test_initialize_table_adds_households_and_drops_consumption(self):
        HH = builder.initialize_table(make_state_table())
        assert isinstance(HH, HouseholdTable)
        assert HH.households() == list(HOUSEHOLDS)
        assert HH.regions() == list(REGIONS)
        assert "personal_consumption" not in set(HH.data["parameter"])
        assert "personal_consumption" not in HH.element_names("Use")
        assert "household_supply" in set(HH.data["parameter"])

    def test_capital_demand_split_into_net_and_tax(self):
        state_table = make_state_table()
        HH = builder.adjust_capital_demand(builder.initialize_table(state_table), make_raw(state_table))
        capital = _values(HH, "capital_demand", "col", "region")
        tax = _values(HH, "capital_tax", "col", "region")
        assert capital["agr", "alpha"] == pytest.approx(-100.0)
        assert tax["agr", "alpha"] == pytest.approx(-10.0)
        assert capital["mfg", "beta"] + tax["mfg", "beta"] == pytest.approx(-55.0)
        assert "capital_tax" in HH.element_names("Use")
        assert "capital_tax" in HH.element_names("Value_Added")

    def test_missing_capital_tax_rate_uses_zero(self, caplog):
        state_table = make_state_table()
        rates = pd.DataFrame({"state": ["alpha"], "capital_tax_rate": [0.1]})
        raw = make_raw(state_table, capital_tax_rates=rates)
        with caplog.at_level(logging.WARNING):
            HH = builder.adjust_capital_demand(builder.initialize_table(state_table), raw)
        assert "No capital tax rate" in caplog.text
        assert _values(HH, "capital_demand", "col", "region")["agr", "beta"] == pytest.approx(-110.0)
        assert _values(HH, "capital_tax", "col", "region")["agr", "beta"] == pytest.approx(0.0)

    def test_transfer_payments_cover_every_household(self):
        HH = make_household_table(calibrated=False)
        transfers = HH.table("Transfer_Payment")
        assert set(transfers["row"]) == {"hssval", "hucval", "medicare", "medicaid"}
        assert len(transfers) == 4 * len(HOUSEHOLDS) * len(REGIONS)
        assert (transfers["value"] > 0).all()

    def test_transfers_outside_table_regions_are_skipped(self):
        state_table = make_state_table()
        frames = make_raw_frames()
        extra = frames["medicare"].assign(state="gamma")
        raw = make_raw(state_table, medicare=pd.concat([frames["medicare"], extra], ignore_index=True))
        HH = builder.adjust_capital_demand(builder.initialize_table(state_table), raw)
        HH = builder.build_transfer_payments(HH, raw)
        assert "gamma" not in set(HH.data["region"])


class TestPostCalibrationSteps:
    """Steps that write the calibrated solutions into the table."""

    def test_personal_consumption_uses_demand_sign_and_drops_zeros(self):
        HH = make_household_table()
        consumption = _values(HH, "personal_consumption", "row", "col", "region")
        assert consumption["agr", "hh1", "alpha"] == pytest.approx(-12.0)
        assert consumption["agr", "hh5", "beta"] == pytest.approx(-20.0)
        assert ("mfg", "hh5", "beta") not in consumption.index
        assert len(consumption) == 19
        assert "personal_consumption" in HH.element_names("Final_Demand")

    def test_labor_endowment_keys_home_and_work_state(self):
        HH = make_household_table()
        endowment = _values(HH, "labor_endowment", "row", "col", "region")
        assert endowment["beta", "hh5", "alpha"] == pytest.approx(5.0)
        assert endowment["alpha", "hh1", "alpha"] == pytest.approx(16.0)
        assert ("alpha", "hh1", "beta") not in endowment.index

    def test_interest_and_savings(self):
        HH = make_household_table()
        interest = _values(HH, "household_interest", "col", "region")
        savings = _values(HH, "savings", "col", "region")
        assert interest["hh3", "beta"] == pytest.approx(34.0)
        assert savings["hh3", "beta"] == pytest.approx(-6.0)
        assert set(HH.data.loc[HH.data["parameter"] == "savings", "row"]) == {"savings"}

    def test_transfers_rescaled_to_calibrated_totals(self):
        HH = make_household_table()
        income = make_income_result()
        totals = HH.table("Transfer_Payment").groupby(["region", "col"])["value"].sum()
        expected = income.transfer_payments.set_index(["region", "hh"])["value"]
        for key, value in expected.items():
            assert totals[key] == pytest.approx(value)
        other = _values(HH, "transfer_payment", "row", "col", "region")
        assert other["other", "hh5", "alpha"] == pytest.approx(0.5)

    def test_transfer_shares_preserved(self):
        HH = make_household_table()
        transfers = _values(HH, "transfer_payment", "row", "col", "region")
        # initial transfers were 0.3 social security and 0.1 medicaid
        ratio = transfers["hssval", "hh2", "alpha"] / transfers["medicaid", "hh2", "alpha"]
        assert ratio == pytest.approx(3.0)

    def test_household_without_initial_transfers_writes_no_nan(self, caplog):
        state_table = make_state_table()
        frames = make_raw_frames()
        income, medicare = frames["income"], frames["medicare"]
        cell = (income["state"] == "beta") & (income["hh"] == "hh1")
        income = income[~(cell & income["source"].isin(["hssval", "hucval"]))]
        medicare = medicare.copy()
        medicare.loc[(medicare["state"] == "beta") & (medicare["income"] == "hh1"), "value"] = 0.0
        raw = make_raw(state_table, income=income, medicare=medicare)

        HH = builder.adjust_capital_demand(builder.initialize_table(state_table), raw)
        HH = builder.build_transfer_payments(HH, raw)
        with caplog.at_level(logging.WARNING):
            HH = builder.update_household_transfers(HH, make_income_result())

        transfers = HH.table("Transfer_Payment")
        assert transfers["value"].notna().all()
        assert (transfers["value"] != 0).all()
        beta_hh1 = transfers[(transfers["region"] == "beta") & (transfers["col"] == "hh1")]
        assert list(beta_hh1["row"]) == ["other"]
        assert "no initial transfers to spread over (beta/hh1)" in caplog.text
        # everyone else still receives the calibrated total
        totals = transfers.groupby(["region", "col"])["value"].sum()
        expected = make_income_result().transfer_payments.set_index(["region", "hh"])["value"]
        assert totals["alpha", "hh1"] == pytest.approx(expected["alpha", "hh1"])
        assert HH.regularity_report() == {}

    def test_labor_taxes_apply_rates_to_endowment(self):
        HH = make_household_table()
        taxes = HH.table("Marginal_Labor_Tax", "FICA_Tax", "Average_Labor_Tax")
        values = taxes.set_index(["row", "col", "region"])["value"]
        assert values["mlt", "hh5", "alpha"] == pytest.approx(21.0 * 0.2)
        assert values["fica", "hh1", "beta"] == pytest.approx(15.0 * 0.075)
        assert values["tla", "hh1", "alpha"] == pytest.approx(16.0 * 0.15)
        assert len(taxes) == 3 * len(HOUSEHOLDS) * len(REGIONS)

    def test_final_table_is_regular(self):
        assert make_household_table().regularity_report() == {}


class TestBuildHouseholdTable:
    """End-to-end pipeline with calibrations stubbed by crafted solutions."""

    @pytest.fixture
    def stub_calibrations(self, monkeypatch):
        monkeypatch.setattr(builder, "calibrate_income", lambda *args: make_income_result())
        monkeypatch.setattr(builder, "calibrate_consumption", lambda *args: make_consumption_result())

    def test_pipeline_records_every_step(self, stub_calibrations):
        state_table = make_state_table()
        build = builder.build_household_table(state_table, make_raw(state_table))

        names = [step["name"] for step in build.steps]
        assert names == [
            "initialize_table",
            "adjust_capital_demand",
            "build_transfer_payments",
            "calibrate_income",
            "calibrate_consumption",
            "create_personal_consumption",
            "create_labor_endowment",
            "create_household_interest",
            "create_savings",
            "update_household_transfers",
            "create_taxes",
        ]
        assert build.steps[3]["solver"].startswith("income_calibration: optimal")
        assert build.qa["income"].passed
        assert build.qa["consumption"].passed

        report = build.report()
        assert report["summary"]["steps"] == 11
        assert report["solver"]["income"]["termination_class"] == "optimal"

    def test_failing_step_is_named(self, stub_calibrations, monkeypatch):
        def broken(HH, raw):
            raise KeyError("tl")

        monkeypatch.setattr(builder, "create_taxes", broken)
        state_table = make_state_table()
        with pytest.raises(PipelineStepError) as exc_info:
            builder.build_household_table(state_table, make_raw(state_table))
        assert exc_info.value.step == "create_taxes"
        assert isinstance(exc_info.value.__cause__, KeyError)

    def test_pipeline_with_solver(self):
        state_table = make_state_table()
        config = HouseholdConfig(solver=SolverSettings(name="scipy", max_iter=1000))
        build = builder.build_household_table(state_table, make_raw(state_table), config)
        assert build.income.report.optimal
        assert build.table.regularity_report() == {}
        assert build.qa["income"].check("INC001").passed
        assert build.qa["consumption"].check("CON001").passed
