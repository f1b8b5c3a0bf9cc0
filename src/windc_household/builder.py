"""Household disaggregation pipeline.

Each step takes a :class:`HouseholdTable` and returns a new one. The steps
run in a fixed order and the table's regularity is checked after every
step:

1. ``initialize_table``
2. ``adjust_capital_demand``
3. ``build_transfer_payments``
4. income calibration
5. consumption calibration
6. ``create_personal_consumption``
7. ``create_labor_endowment``
8. ``create_household_interest``
9. ``create_savings``
10. ``update_household_transfers``
11. ``create_taxes``
"""

from __future__ import annotations

import logging
from typing import Any, Callable

import numpy as np
import pandas as pd
from pydantic import BaseModel, ConfigDict, Field

from windc_household import constants
from windc_household.calibration.consumption import ConsumptionCalibrationResult, calibrate_consumption
from windc_household.calibration.income import IncomeCalibrationResult, calibrate_income
from windc_household.calibration.targets import initial_transfer_payments
from windc_household.config import HouseholdConfig
from windc_household.core.sets import Set
from windc_household.core.tables import DATA_COLUMNS, AccountingTable, HouseholdTable
from windc_household.data.raw import RawHouseholdData
from windc_household.errors import PipelineStepError
from windc_household.qa.calibration_checks import check_consumption_calibration, check_income_calibration
from windc_household.qa.reporting import CalibrationQAReport, format_report_summary

logger = logging.getLogger(__name__)

KEEP_PARAMETERS: tuple[str, ...] = (
    "Capital_Demand",
    "Duty",
    "Export",
    "Government_Final_Demand",
    "Household_Supply",
    "Import",
    "Intermediate_Demand",
    "Intermediate_Supply",
    "Investment_Final_Demand",
    "Labor_Demand",
    "Local_Demand",
    "Local_Margin_Supply",
    "Margin_Demand",
    "National_Demand",
    "National_Margin_Supply",
    "Output_Tax",
    "Reexport",
    "Tax",
)

KEEP_SETS: tuple[str, ...] = (
    "duty",
    "export",
    "government_final_demand",
    "import",
    "investment_final_demand",
    "local_demand",
    "margin",
    "national_demand",
    "reexport",
    "sector",
    "tax",
    "trade",
    "transport",
    "state",
    "capital_demand",
    "commodity",
    "labor_demand",
    "output_tax",
    "household_supply",
    "year",
    "Final_Demand",
    "Other_Final_Demand",
    "Margin_Supply",
    "Use",
    "Supply",
    "Value_Added",
)

LABOR_TAXES: tuple[tuple[str, str, str, str], ...] = (
    # (rate variable, row tag, parameter, parameter set)
    ("tl", "mlt", "marginal_labor_tax", "Marginal_Labor_Tax"),
    ("tfica", "fica", "fica_tax", "FICA_Tax"),
    ("tl_avg", "tla", "average_labor_tax", "Average_Labor_Tax"),
)


def _parameter_set(name: str, parameter: str, description: str) -> Set:
    return Set(name=name, domain="parameter", elements=(parameter,), description=description)


def _declared_sets(HH: AccountingTable, *names: str) -> list[str]:
    return [n for n in names if HH.domains(n)]


def _rows(df: pd.DataFrame, **labels: Any) -> pd.DataFrame:
    out = df.assign(**labels)
    return out.loc[:, DATA_COLUMNS].reset_index(drop=True)


def _nonzero(df: pd.DataFrame, column: str = "value") -> pd.DataFrame:
    return df[df[column] != 0]


def initialize_table(state_table: AccountingTable, config: HouseholdConfig | None = None) -> HouseholdTable:
    """Subset the state table to the kept parameters and add the household set.

    Everything named ``personal_consumption`` is removed from the element
    declarations; it is rebuilt by household later.
    """
    config = config or HouseholdConfig()
    data = state_table.table(*KEEP_PARAMETERS)
    set_frame = state_table.sets(*KEEP_SETS, *KEEP_PARAMETERS)
    element_frame = state_table.elements(*KEEP_SETS, *KEEP_PARAMETERS)
    element_frame = element_frame[element_frame["name"] != "personal_consumption"]

    HH = HouseholdTable(data=data, set_frame=set_frame, element_frame=element_frame)
    households = Set(
        name="household",
        domain="col",
        elements=config.households,
        description="Household income groups",
    )
    return HH.append(sets=[households])


def adjust_capital_demand(HH: HouseholdTable, raw: RawHouseholdData) -> HouseholdTable:
    """Split gross capital demand into net capital demand and capital tax.

    ``net = gross / (1 + r)`` and ``capital_tax = gross * r / (1 + r)`` with
    ``r`` the state's capital tax rate. States without a rate use 0.
    """
    rates = raw.capital_tax_rates.rename(columns={"state": "region"}).loc[:, ["region", "capital_tax_rate"]]
    capital = HH.table("Capital_Demand").merge(rates, on="region", how="left")
    missing = capital["capital_tax_rate"].isna()
    if missing.any():
        logger.warning(
            f"No capital tax rate for {sorted(capital.loc[missing, 'region'].unique())}; using 0"
        )
    rate = capital["capital_tax_rate"].fillna(0.0)

    net = _rows(capital, value=capital["value"] / (1 + rate))
    tax = _rows(
        capital,
        value=capital["value"] * rate / (1 + rate),
        row="capital_tax",
        parameter="capital_tax",
    )
    sets = [
        Set(name="capital_tax", domain="row", elements=("capital_tax",), description="Capital tax"),
        _parameter_set("Capital_Tax", "capital_tax", "Capital tax"),
    ]
    return HH.drop_parameters(*HH.element_names("Capital_Demand")).append(
        data=pd.concat([net, tax], ignore_index=True),
        sets=sets,
        elements={name: ["capital_tax"] for name in _declared_sets(HH, "Use", "Value_Added")},
    )


def build_transfer_payments(
    HH: HouseholdTable,
    raw: RawHouseholdData,
    config: HouseholdConfig | None = None,
) -> HouseholdTable:
    """Add weighted CPS transfers and Medicare/Medicaid as ``transfer_payment``."""
    config = config or HouseholdConfig()
    transfers = initial_transfer_payments(HH, raw, config.constants)
    in_table = transfers["region"].isin(HH.regions()) & transfers["col"].isin(HH.households())
    if not in_table.all():
        logger.debug(f"Skipping {int((~in_table).sum())} transfer row(s) outside the table's regions")
    sets = [
        Set(
            name="transfer_payments",
            domain="row",
            elements=tuple(constants.TRANSFER_ROWS),
            labels=dict(constants.TRANSFER_ROWS),
            description="Transfer payment sources",
        ),
        _parameter_set("Transfer_Payment", "transfer_payment", "Transfer payments"),
    ]
    return HH.append(data=transfers[in_table], sets=sets)


def create_personal_consumption(
    HH: HouseholdTable,
    consumption: ConsumptionCalibrationResult,
) -> HouseholdTable:
    """Replace personal consumption with calibrated household demand (Use sign)."""
    cd = _nonzero(consumption.consumption)
    rows = _rows(
        cd.rename(columns={"hh": "col"}),
        value=-cd["value"],
        year=consumption.year,
        parameter="personal_consumption",
    )
    parents = _declared_sets(HH, "Use", "Final_Demand", "Other_Final_Demand")
    return HH.drop_parameters("personal_consumption").append(
        data=rows,
        sets=[_parameter_set("Personal_Consumption", "personal_consumption", "Personal consumption")],
        elements={name: ["personal_consumption"] for name in parents},
    )


def create_labor_endowment(HH: HouseholdTable, income: IncomeCalibrationResult) -> HouseholdTable:
    """Labor endowment by home state (``region``), work state (``row``) and household."""
    wages = _nonzero(income.wages)
    rows = _rows(
        wages.rename(columns={"work": "row", "hh": "col", "home": "region"}),
        year=income.year,
        parameter="labor_endowment",
    )
    sets = [
        Set(name="work_state", domain="row", elements=tuple(HH.regions()), description="Work state"),
        _parameter_set("Labor_Endowment", "labor_endowment", "Labor endowment"),
    ]
    return HH.append(data=rows, sets=sets)


def create_household_interest(HH: HouseholdTable, income: IncomeCalibrationResult) -> HouseholdTable:
    """Capital income received by each household."""
    interest = _nonzero(income.interest)
    rows = _rows(
        interest.rename(columns={"hh": "col"}),
        row="interest",
        year=income.year,
        parameter="household_interest",
    )
    sets = [
        Set(name="household_interest", domain="row", elements=("interest",), description="Interest income"),
        _parameter_set("Household_Interest", "household_interest", "Household interest"),
    ]
    return HH.append(data=rows, sets=sets)


def create_savings(HH: HouseholdTable, income: IncomeCalibrationResult) -> HouseholdTable:
    """Household savings (Use sign)."""
    savings = _nonzero(income.savings)
    rows = _rows(
        savings.rename(columns={"hh": "col"}),
        value=-savings["value"],
        row="savings",
        year=income.year,
        parameter="savings",
    )
    sets = [
        Set(name="savings", domain="row", elements=("savings",), description="Savings"),
        _parameter_set("Savings", "savings", "Household savings"),
    ]
    return HH.append(data=rows, sets=sets, elements={name: ["savings"] for name in _declared_sets(HH, "Use")})


def update_household_transfers(HH: HouseholdTable, income: IncomeCalibrationResult) -> HouseholdTable:
    """Rescale transfers to the calibrated totals and add an ``other`` row.

    Source shares of the initial transfers per (region, household, year)
    are applied to the calibrated government transfers. Zero rows are
    dropped. A household whose initial transfers sum to zero has no shares,
    so its calibrated government transfer cannot be spread and is left out
    with a warning.
    """
    keys = ["region", "col", "year"]
    transfers = HH.table("Transfer_Payment")
    totals = transfers.groupby(keys)["value"].transform("sum")
    transfers["share"] = (transfers["value"] / totals.where(totals != 0)).fillna(0.0)
    government = income.government_transfers.rename(columns={"hh": "col", "value": "total"})

    spread = transfers.loc[totals != 0, ["region", "col"]].drop_duplicates()
    unspread = government.merge(spread, on=["region", "col"], how="left", indicator=True)
    unspread = unspread[(unspread["_merge"] == "left_only") & (unspread["total"] != 0)]
    if not unspread.empty:
        cells = ", ".join(f"{r.region}/{r.col}" for r in unspread.head(5).itertuples(index=False))
        logger.warning(
            f"{len(unspread)} calibrated government transfer(s) have no initial transfers "
            f"to spread over ({cells})"
        )

    scaled = transfers.merge(government, on=["region", "col"], how="inner")
    scaled = _rows(scaled, value=scaled["share"] * scaled["total"])

    other = _rows(
        income.other_income.rename(columns={"hh": "col"}),
        row="other",
        year=income.year,
        parameter="transfer_payment",
    )
    rows = pd.concat([scaled, other], ignore_index=True)
    rows = _nonzero(rows[np.isfinite(rows["value"])])
    return HH.drop_parameters("transfer_payment").append(data=rows)


def create_taxes(HH: HouseholdTable, raw: RawHouseholdData) -> HouseholdTable:
    """Marginal, FICA and average labor taxes on each household's endowment."""
    keys = ["col", "region", "year"]
    endowment = HH.table("Labor_Endowment").groupby(keys, as_index=False)["value"].sum()
    rates = raw.labor_tax_rates.rename(columns={"hh": "col", "state": "region"})

    parts = []
    sets = [Set(name="labor_tax", domain="row", elements=("mlt", "fica", "tla"), description="Labor taxes")]
    for variable, tag, parameter, set_name in LABOR_TAXES:
        rate = rates.loc[rates["variable"] == variable, ["col", "region", "labor_tax_rate"]]
        df = endowment.merge(rate, on=["col", "region"], how="inner")
        if len(df) < len(endowment):
            logger.warning(f"{len(endowment) - len(df)} labor endowment total(s) have no '{variable}' rate")
        parts.append(_rows(df, value=df["value"] * df["labor_tax_rate"], row=tag, parameter=parameter))
        sets.append(_parameter_set(set_name, parameter, parameter.replace("_", " ").capitalize()))
    return HH.append(data=pd.concat(parts, ignore_index=True), sets=sets)


class HouseholdBuild(BaseModel):
    """Result of :func:`build_household_table`.

    Attributes:
        table: Final household table
        income: Income calibration result
        consumption: Consumption calibration result
        steps: Per-step summaries (name, rows, parameters)
        qa: Calibration QA reports keyed by model name
    """

    table: HouseholdTable
    income: IncomeCalibrationResult
    consumption: ConsumptionCalibrationResult
    steps: list[dict[str, Any]] = Field(default_factory=list)
    qa: dict[str, CalibrationQAReport] = Field(default_factory=dict)

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    def report(self) -> dict[str, Any]:
        return {
            "summary": {
                "steps": len(self.steps),
                "rows": len(self.table.data),
                "parameters": int(self.table.data["parameter"].nunique()),
            },
            "solver": {
                "income": self.income.report.model_dump(mode="json"),
                "consumption": self.consumption.report.model_dump(mode="json"),
            },
            "qa": {name: report.to_dict() for name, report in self.qa.items()},
            "steps": self.steps,
        }


def _summary(HH: AccountingTable) -> dict[str, Any]:
    return {"rows": int(len(HH.data)), "parameters": int(HH.data["parameter"].nunique())}


def build_household_table(
    state_table: AccountingTable,
    raw: RawHouseholdData,
    config: HouseholdConfig | None = None,
) -> HouseholdBuild:
    """Run every pipeline step and both calibrations.

    Raises:
        PipelineStepError: Naming the step that failed; the original
            exception is chained
    """
    config = config or HouseholdConfig()
    steps: list[dict[str, Any]] = []

    def run(name: str, func: Callable[..., Any], *args: Any) -> Any:
        logger.info(f"Running step {name}")
        try:
            result = func(*args)
            if isinstance(result, AccountingTable):
                result.check_regularity(step=name)
        except Exception as exc:
            raise PipelineStepError(name, exc) from exc
        entry: dict[str, Any] = {"step": len(steps) + 1, "name": name}
        if isinstance(result, AccountingTable):
            entry.update(_summary(result))
            logger.debug(f"{name}: {entry['rows']} rows, {entry['parameters']} parameters")
        else:
            entry["solver"] = result.report.summary()
        steps.append(entry)
        return result

    HH = run("initialize_table", initialize_table, state_table, config)
    HH = run("adjust_capital_demand", adjust_capital_demand, HH, raw)
    HH = run("build_transfer_payments", build_transfer_payments, HH, raw, config)

    income = run("calibrate_income", calibrate_income, HH, state_table, raw, config)
    consumption = run("calibrate_consumption", calibrate_consumption, state_table, raw, income, config)

    qa = {
        "income": check_income_calibration(income, HH, state_table, config),
        "consumption": check_consumption_calibration(consumption, income, state_table, config),
    }
    for name, report in qa.items():
        message = format_report_summary(report)
        if report.passed:
            logger.info(message)
        else:
            logger.warning(message)

    HH = run("create_personal_consumption", create_personal_consumption, HH, consumption)
    HH = run("create_labor_endowment", create_labor_endowment, HH, income)
    HH = run("create_household_interest", create_household_interest, HH, income)
    HH = run("create_savings", create_savings, HH, income)
    HH = run("update_household_transfers", update_household_transfers, HH, income)
    HH = run("create_taxes", create_taxes, HH, raw)

    logger.info(f"Household table built: {len(HH.data)} rows over {len(steps)} steps")
    return HouseholdBuild(table=HH, income=income, consumption=consumption, steps=steps, qa=qa)
