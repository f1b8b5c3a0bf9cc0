from __future__ import annotations

import pandas as pd

from windc_household import builder
from windc_household.calibration.base import SolverReport
from windc_household.calibration.consumption import ConsumptionCalibrationResult
from windc_household.calibration.income import IncomeCalibrationResult
from windc_household.core.sets import Set
from windc_household.core.tables import AccountingTable, HouseholdTable
from windc_household.data.raw import RawHouseholdData
from windc_household.enums import TerminationClass

REGIONS: tuple[str, ...] = ("alpha", "beta")
COMMODITIES: tuple[str, ...] = ("agr", "mfg")
HOUSEHOLDS: tuple[str, ...] = ("hh1", "hh2", "hh3", "hh4", "hh5")
YEAR = 2024

# (row, col, parameter, value) repeated in every region; stored signs.
STATE_FLOWS: list[tuple[str, str, str, float]] = [
    ("agr", "agr", "intermediate_supply", 200.0),
    ("mfg", "mfg", "intermediate_supply", 150.0),
    ("agr", "mfg", "intermediate_demand", -20.0),
    ("mfg", "agr", "intermediate_demand", -30.0),
    ("labor_demand", "agr", "labor_demand", -40.0),
    ("labor_demand", "mfg", "labor_demand", -40.0),
    ("capital_demand", "agr", "capital_demand", -110.0),
    ("capital_demand", "mfg", "capital_demand", -55.0),
    ("output_tax", "agr", "output_tax", -5.0),
    ("output_tax", "mfg", "output_tax", -5.0),
    ("agr", "personal_consumption", "personal_consumption", -60.0),
    ("mfg", "personal_consumption", "personal_consumption", -40.0),
    ("agr", "govt", "government_final_demand", -10.0),
    ("mfg", "govt", "government_final_demand", -10.0),
    ("agr", "invest", "investment_final_demand", -15.0),
    ("mfg", "invest", "investment_final_demand", -15.0),
    ("agr", "household_supply", "household_supply", 10.0),
    ("mfg", "household_supply", "household_supply", 10.0),
    ("agr", "export", "export", -25.0),
    ("mfg", "export", "export", -5.0),
    ("agr", "import", "import", 20.0),
    ("mfg", "import", "import", 30.0),
    ("agr", "tax", "tax", 4.0),
    ("mfg", "tax", "tax", 3.0),
    ("agr", "duty", "duty", 2.0),
    ("mfg", "duty", "duty", 3.0),
]

PARAMETER_SETS: dict[str, str] = {
    "Intermediate_Supply": "intermediate_supply",
    "Intermediate_Demand": "intermediate_demand",
    "Labor_Demand": "labor_demand",
    "Capital_Demand": "capital_demand",
    "Output_Tax": "output_tax",
    "Personal_Consumption": "personal_consumption",
    "Government_Final_Demand": "government_final_demand",
    "Investment_Final_Demand": "investment_final_demand",
    "Household_Supply": "household_supply",
    "Export": "export",
    "Import": "import",
    "Tax": "tax",
    "Duty": "duty",
}

WAGES_BN = {"hh1": 1.0, "hh2": 2.0, "hh3": 3.0, "hh4": 4.0, "hh5": 10.0}
INTEREST_BN = {"hh1": 0.1, "hh2": 0.2, "hh3": 0.3, "hh4": 0.5, "hh5": 2.0}
RETIREMENT_BN = {"hh1": 0.05, "hh2": 0.1, "hh3": 0.2, "hh4": 0.3, "hh5": 1.0}
NUMHH = {"hh1": 2.0, "hh2": 1.5, "hh3": 1.0, "hh4": 0.8, "hh5": 0.5}
LABOR_TAX_RATES = {"tl": 0.2, "tl_avg": 0.15, "tfica": 0.075}


def state_sets() -> list[Set]:
    sets = [
        Set(name="state", domain="region", elements=REGIONS, description="States"),
        Set(name="year", domain="year", elements=(str(YEAR),), description="Years"),
        Set(name="commodity", domain="row", elements=COMMODITIES, description="Commodities"),
        Set(name="sector", domain="col", elements=COMMODITIES, description="Sectors"),
        Set(name="labor_demand", domain="row", elements=("labor_demand",)),
        Set(name="capital_demand", domain="row", elements=("capital_demand",)),
        Set(name="output_tax", domain="row", elements=("output_tax",)),
        Set(name="personal_consumption", domain="col", elements=("personal_consumption",)),
        Set(name="government_final_demand", domain="col", elements=("govt",)),
        Set(name="investment_final_demand", domain="col", elements=("invest",)),
        Set(name="household_supply", domain="col", elements=("household_supply",)),
        Set(name="export", domain="col", elements=("export",)),
        Set(name="import", domain="col", elements=("import",)),
        Set(name="tax", domain="col", elements=("tax",)),
        Set(name="duty", domain="col", elements=("duty",)),
    ]
    sets += [Set(name=name, domain="parameter", elements=(p,)) for name, p in PARAMETER_SETS.items()]
    sets += [
        Set(
            name="Use",
            domain="parameter",
            elements=(
                "intermediate_demand",
                "labor_demand",
                "capital_demand",
                "output_tax",
                "personal_consumption",
                "government_final_demand",
                "investment_final_demand",
                "export",
            ),
        ),
        Set(
            name="Supply",
            domain="parameter",
            elements=("intermediate_supply", "household_supply", "import", "tax", "duty"),
        ),
        Set(
            name="Final_Demand",
            domain="parameter",
            elements=("personal_consumption", "government_final_demand", "investment_final_demand", "export"),
        ),
        Set(
            name="Other_Final_Demand",
            domain="parameter",
            elements=("personal_consumption", "government_final_demand", "investment_final_demand"),
        ),
        Set(name="Value_Added", domain="parameter", elements=("labor_demand", "capital_demand", "output_tax")),
    ]
    return sets


def make_state_table() -> AccountingTable:
    """Two identical states, two commodities, one year."""
    rows = [
        (row, col, region, YEAR, parameter, value)
        for region in REGIONS
        for row, col, parameter, value in STATE_FLOWS
    ]
    data = pd.DataFrame(rows, columns=["row", "col", "region", "year", "parameter", "value"])
    return AccountingTable.from_sets(data, state_sets())


def _per_household(values: dict[str, float], **labels) -> list[dict]:
    return [
        {"hh": hh, "state": state, "year": YEAR, **labels, "value": values[hh]}
        for state in REGIONS
        for hh in HOUSEHOLDS
    ]


def make_raw_frames() -> dict[str, pd.DataFrame]:
    income = pd.DataFrame(
        _per_household(WAGES_BN, source="hwsval")
        + _per_household(INTEREST_BN, source="hintval")
        + _per_household(RETIREMENT_BN, source="hretval")
        + _per_household({hh: 0.2 for hh in HOUSEHOLDS}, source="hssval")
        + _per_household({hh: 0.05 for hh in HOUSEHOLDS}, source="hucval")
    )
    numhh = pd.DataFrame(
        [{"hh": hh, "state": state, "year": YEAR, "numhh": NUMHH[hh]} for state in REGIONS for hh in HOUSEHOLDS]
    )
    # millions; CPS social security is 2.0bn and unemployment 0.5bn nationally
    nipa = pd.DataFrame(
        {
            "year": [YEAR] * 5,
            "LineNumber": ["1", "2", "3", "18", "21"],
            "value": [20000.0, 1200.0, 1000.0, 3000.0, 600.0],
        }
    )
    acs_commute = pd.DataFrame(
        {
            "home_state": ["alpha", "alpha", "beta"],
            "work_state": ["alpha", "beta", "beta"],
            "value": [50.0, 4.0, 30.0],
        }
    )
    medicare = pd.DataFrame(
        [
            {"state": state, "year": YEAR, "income": hh, "variable": variable, "value": value}
            for state in REGIONS
            for hh in HOUSEHOLDS
            for variable, value in (("medicare", 0.3), ("medicaid", 0.1))
        ]
    )
    labor_tax_rates = pd.DataFrame(
        [
            {"hh": hh, "state": state, "variable": variable, "labor_tax_rate": rate}
            for state in REGIONS
            for hh in HOUSEHOLDS
            for variable, rate in LABOR_TAX_RATES.items()
        ]
    )
    return {
        "income": income,
        "numhh": numhh,
        "nipa": nipa,
        "acs_commute": acs_commute,
        "medicare": medicare,
        "labor_tax_rates": labor_tax_rates,
        "cex_income_elasticities": pd.DataFrame({"cex": ["food", "goods"], "elast": [0.5, 1.2]}),
        "pce_shares": pd.DataFrame({"cex": ["food", "goods"], "naics": ["agr", "mfg"], "value": [1.0, 1.0]}),
        "capital_tax_rates": pd.DataFrame({"state": list(REGIONS), "capital_tax_rate": [0.1, 0.1]}),
    }


def make_raw(state_table: AccountingTable, **overrides: pd.DataFrame) -> RawHouseholdData:
    frames = make_raw_frames()
    frames.update(overrides)
    return RawHouseholdData.from_sources(state_table, **frames)


def optimal_report(model_name: str) -> SolverReport:
    return SolverReport(
        model_name=model_name,
        status="ok",
        termination="optimal",
        termination_class=TerminationClass.OPTIMAL,
    )


def _household_frame(values: dict[tuple[str, str], float]) -> pd.DataFrame:
    return pd.DataFrame([(r, h, v) for (r, h), v in values.items()], columns=["region", "hh", "value"])


def make_income_result() -> IncomeCalibrationResult:
    """Income solution that satisfies every identity on the toy table.

    Every household in alpha earns 16 at home; beta households earn 15 at
    home and alpha's hh5 commutes for another 5, so each state pays 80.
    Interest (340), savings (60) and consumption (100 per state) match the
    table after the capital tax split.
    """
    cells = [(r, h) for r in REGIONS for h in HOUSEHOLDS]
    wages = [("alpha", "alpha", h, 16.0) for h in HOUSEHOLDS]
    wages += [("beta", "beta", h, 15.0) for h in HOUSEHOLDS]
    wages += [("alpha", "beta", "hh5", 5.0), ("beta", "alpha", "hh1", 0.0)]

    earned = {(r, h): 16.0 if r == "alpha" else 15.0 for r, h in cells}
    earned["alpha", "hh5"] = 21.0
    consumption, savings, taxes, interest = 20.0, 6.0, 30.0, 34.0
    transfers = {cell: consumption + savings + taxes - earned[cell] - interest for cell in cells}
    other = {cell: 1.0 for cell in cells}
    other["alpha", "hh5"] = 0.5

    return IncomeCalibrationResult(
        year=YEAR,
        wages=pd.DataFrame(wages, columns=["home", "work", "hh", "value"]),
        consumption=_household_frame({cell: consumption for cell in cells}),
        interest=_household_frame({cell: interest for cell in cells}),
        savings=_household_frame({cell: savings for cell in cells}),
        taxes=_household_frame({cell: taxes for cell in cells}),
        transfer_payments=_household_frame(transfers),
        government_transfers=_household_frame({cell: transfers[cell] - other[cell] for cell in cells}),
        other_income=_household_frame(other),
        report=optimal_report("income_calibration"),
    )


def make_consumption_result() -> ConsumptionCalibrationResult:
    """Demand that clears both markets and every non-top budget.

    beta's top household buys no manufactures, which the builder drops.
    """
    rows = []
    for h in HOUSEHOLDS:
        rows += [("alpha", "agr", h, 12.0), ("alpha", "mfg", h, 8.0)]
    for h in HOUSEHOLDS[:-1]:
        rows += [("beta", "agr", h, 10.0), ("beta", "mfg", h, 10.0)]
    rows += [("beta", "agr", "hh5", 20.0), ("beta", "mfg", "hh5", 0.0)]
    consumption = pd.DataFrame(rows, columns=["region", "row", "hh", "value"])

    theta = consumption.assign(theta=consumption["value"] / 20.0).loc[:, ["region", "hh", "row", "theta"]]
    return ConsumptionCalibrationResult(
        year=YEAR,
        consumption=consumption,
        theta=theta,
        report=optimal_report("consumption_calibration"),
    )


def make_household_table(*, calibrated: bool = True) -> HouseholdTable:
    """Household table after the pre-calibration steps, optionally finished
    with the crafted income and consumption solutions."""
    state_table = make_state_table()
    raw = make_raw(state_table)
    HH = builder.initialize_table(state_table)
    HH = builder.adjust_capital_demand(HH, raw)
    HH = builder.build_transfer_payments(HH, raw)
    if not calibrated:
        return HH
    income = make_income_result()
    HH = builder.create_personal_consumption(HH, make_consumption_result())
    HH = builder.create_labor_endowment(HH, income)
    HH = builder.create_household_interest(HH, income)
    HH = builder.create_savings(HH, income)
    HH = builder.update_household_transfers(HH, income)
    return builder.create_taxes(HH, raw)
