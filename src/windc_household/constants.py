"""Named economic constants used across the household build.

These values come from external studies and need refreshing as new vintages
are published. They are defaults for :class:`windc_household.config.HouseholdConfig`.
"""

from __future__ import annotations

HOUSEHOLDS: tuple[str, ...] = ("hh1", "hh2", "hh3", "hh4", "hh5")

# Upper bounds (dollars of total household income) for hh1..hh4; hh5 is the residual.
INCOME_BOUNDS: dict[str, float] = {
    "hh1": 25000,
    "hh2": 50000,
    "hh3": 75000,
    "hh4": 150000,
}

# CBO distribution of household wealth, used to split savings.
CBO_WEALTH_SHARES: dict[str, float] = {
    "hh1": 0.025871517,
    "hh2": 0.043989237,
    "hh3": 0.077542098,
    "hh4": 0.147248546,
    "hh5": 0.705348602,
}

# BLS average annual expenditures per household.
BLS_EXPENDITURE_LEVELS: dict[str, float] = {
    "hh1": 25138,
    "hh2": 36770,
    "hh3": 47664,
    "hh4": 64910,
    "hh5": 112221,
}

# Under-reporting corrections for CPS transfer income (Meyer et al.; Rothbaum).
LITERATURE_TRANSFER_WEIGHTS: tuple[tuple[str, str, float], ...] = (
    ("hucval", "meyer", 1 / 0.679),
    ("hssval", "meyer", 1 / 0.899),
    ("hssival", "meyer", 1 / 0.759),
    ("hdisval", "meyer", 1 / 0.819),
    ("hvetval", "rothbaum", 1 / 0.679),
    ("hwcval", "meyer", 1 / 0.527),
    ("hpawval", "meyer", 1 / 0.487),
    ("hsurval", "meyer", 1 / 0.908),
    ("hedval", "rothbaum", 1 / 0.804),
    ("hcspval", "rothbaum", 1 / 0.804),
    ("hfinval", "meyer", 1 / 0.539),
)
TRANSFER_WEIGHT_YEAR = 2024
MEDICARE_YEAR = 2024

LABOR_SUPPLY_INCOME_ELASTICITY = 0.05
LEISURE_INCOME_ELASTICITY = 0.2

CONSUMPTION_LOWER_BOUND = 1e-5
SOLVER_MAX_ITER = 500

# NIPA transfer categories that carry a direct NIPA/CPS ratio.
NIPA_TRANSFER_SOURCES: tuple[tuple[str, str], ...] = (
    ("government benefits: unemployment insurance", "hucval"),
    ("government benefits: social security", "hssval"),
    ("government benefits: social security", "hssival"),
    ("government benefits: social security", "hdisval"),
    ("government benefits: veterans' benefits", "hvetval"),
)

# NIPA table line -> CPS source -> reconciliation category.
NIPA_CPS_LINK: tuple[tuple[str, str, str], ...] = (
    ("1", "totinc", "total_income"),
    ("3", "hwsval", "wages and salaries"),
    ("10", "hfrval", "proprietor's income farm"),
    ("11", "hseval", "proprietor's income: non-farm"),
    ("12", "hrntval", "rental income"),
    ("14", "hintval", "personal interest income"),
    ("15", "hdivval", "personal dividend income"),
    ("18", "hssval", "government benefits: social security"),
    ("18", "hssival", "government benefits: social security"),
    ("18", "hdisval", "government benefits: social security"),
    ("21", "hucval", "government benefits: unemployment insurance"),
    ("22", "hvetval", "government benefits: veterans' benefits"),
    ("23", "hwcval", "government benefits: other"),
    ("23", "hpawval", "government benefits: other"),
    ("23", "hsurval", "government benefits: other"),
    ("23", "hedval", "government benefits: other"),
    ("24", "hcspval", "non-government transfer income"),
    ("24", "hfinval", "non-government transfer income"),
    ("24", "hoival", "non-government transfer income"),
)

# NIPA lines feeding the WiNDC labor / capital comparison.
NIPA_FACTOR_LINES: dict[str, str] = {
    "2": "labor_demand",
    "9": "capital_demand",
    "12": "capital_demand",
    "13": "capital_demand",
}
NIPA_COMPENSATION_LINE = "2"
NIPA_WAGES_LINE = "3"

TRANSFER_ROWS: dict[str, str] = {
    "hucval": "unemployment compensation",
    "hwcval": "workers compensation",
    "hssval": "social security",
    "hssival": "supplemental security",
    "hpawval": "public assistance or welfare",
    "hvetval": "veterans benefits",
    "hsurval": "survivors income",
    "hdisval": "disability",
    "hedval": "educational assistance",
    "hcspval": "child support",
    "hfinval": "financial assistance",
    "medicare": "medicare",
    "medicaid": "medicaid",
    "other": "other income",
}
