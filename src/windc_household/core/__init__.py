"""Core table, set and lookup types."""

from windc_household.core.lookup import ParameterLookup
from windc_household.core.sets import DOMAINS, Set
from windc_household.core.tables import (
    DATA_COLUMNS,
    KEY_COLUMNS,
    AccountingTable,
    HouseholdTable,
    empty_data,
)

__all__ = [
    "DATA_COLUMNS",
    "DOMAINS",
    "KEY_COLUMNS",
    "AccountingTable",
    "HouseholdTable",
    "ParameterLookup",
    "Set",
    "empty_data",
]
