"""Raw input loading and the RawHouseholdData bundle."""

from windc_household.data.cps import cps_income, cps_numhh, household_labels, label_cps_microdata
from windc_household.data.loaders import (
    load_acs_commute,
    load_capital_tax_rates,
    load_cex_income_elasticities,
    load_cps_income,
    load_cps_income_categories,
    load_cps_microdata,
    load_cps_numhh,
    load_labor_tax_rates,
    load_medicare_data,
    load_nipa,
    load_pce_shares,
    load_state_fips,
    load_windc_naics_map,
)
from windc_household.data.nipa import (
    cps_vs_nipa_income_categories,
    nipa_fringe_benefit_markup,
    windc_vs_nipa_income_categories,
)
from windc_household.data.raw import RawHouseholdData, build_cps_data, labor_tax_rate_totals, load_raw_data

__all__ = [
    "RawHouseholdData",
    "build_cps_data",
    "cps_income",
    "cps_numhh",
    "cps_vs_nipa_income_categories",
    "household_labels",
    "label_cps_microdata",
    "labor_tax_rate_totals",
    "load_acs_commute",
    "load_capital_tax_rates",
    "load_cex_income_elasticities",
    "load_cps_income",
    "load_cps_income_categories",
    "load_cps_microdata",
    "load_cps_numhh",
    "load_labor_tax_rates",
    "load_medicare_data",
    "load_nipa",
    "load_pce_shares",
    "load_raw_data",
    "load_state_fips",
    "load_windc_naics_map",
    "nipa_fringe_benefit_markup",
    "windc_vs_nipa_income_categories",
]
