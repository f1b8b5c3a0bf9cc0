"""windc_household - Household disaggregation of WiNDC state accounts."""

from windc_household.builder import HouseholdBuild, build_household_table
from windc_household.config import HouseholdConfig, load_household_config
from windc_household.core import AccountingTable, HouseholdTable, ParameterLookup, Set
from windc_household.data import RawHouseholdData, load_raw_data
from windc_household.io import read_table, write_table
from windc_household.version import __version__

__all__ = [
    "__version__",
    "AccountingTable",
    "HouseholdBuild",
    "HouseholdConfig",
    "HouseholdTable",
    "ParameterLookup",
    "RawHouseholdData",
    "Set",
    "build_household_table",
    "load_household_config",
    "load_raw_data",
    "read_table",
    "write_table",
]
