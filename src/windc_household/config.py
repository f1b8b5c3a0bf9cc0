"""Configuration models and YAML loading for household builds."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from windc_household import constants as defaults
from windc_household.enums import NonOptimalPolicy


class LiteratureWeight(BaseModel):
    """Transfer under-reporting correction from a published study."""

    source: str
    study: str
    value: float = Field(..., gt=0)


class HouseholdConstants(BaseModel):
    """Economic constants that parameterize targets and bounds."""

    cbo_wealth_shares: dict[str, float] = Field(default_factory=lambda: dict(defaults.CBO_WEALTH_SHARES))
    bls_expenditure_levels: dict[str, float] = Field(
        default_factory=lambda: dict(defaults.BLS_EXPENDITURE_LEVELS)
    )
    transfer_weights: list[LiteratureWeight] = Field(
        default_factory=lambda: [
            LiteratureWeight(source=s, study=k, value=v) for s, k, v in defaults.LITERATURE_TRANSFER_WEIGHTS
        ]
    )
    transfer_weight_year: int = defaults.TRANSFER_WEIGHT_YEAR
    medicare_year: int = defaults.MEDICARE_YEAR
    labor_supply_income_elasticity: float = defaults.LABOR_SUPPLY_INCOME_ELASTICITY
    leisure_income_elasticity: float = defaults.LEISURE_INCOME_ELASTICITY
    consumption_lower_bound: float = Field(default=defaults.CONSUMPTION_LOWER_BOUND, gt=0)
    transfer_bounds: tuple[float, float] = (0.8, 1.2)
    interest_bounds: tuple[float, float] = (0.75, 1.25)
    savings_lower_bound_factor: float = -0.1
    commute_lower_bound_factor: float = 0.05
    commute_start_factor: float = 0.5

    @field_validator("transfer_bounds", "interest_bounds")
    @classmethod
    def _ordered(cls, value: tuple[float, float]) -> tuple[float, float]:
        low, high = value
        if low > high:
            raise ValueError(f"Bound factors must be ordered (low <= high), got {value}")
        return value


class SolverSettings(BaseModel):
    """Nonlinear solver used by both calibration stages."""

    name: str = "ipopt"
    max_iter: int = Field(default=defaults.SOLVER_MAX_ITER, gt=0)
    options: dict[str, Any] = Field(default_factory=dict)
    on_nonoptimal: NonOptimalPolicy = NonOptimalPolicy.WARN
    tee: bool = False

    @field_validator("on_nonoptimal", mode="before")
    @classmethod
    def _policy(cls, value: Any) -> NonOptimalPolicy:
        return NonOptimalPolicy.from_alias(value)

    def solver_options(self) -> dict[str, Any]:
        return {"max_iter": self.max_iter, **self.options}


class DataPaths(BaseModel):
    """Locations of already-downloaded raw inputs (CSV)."""

    state_table: Path | None = None
    cps_income: Path | None = None
    cps_numhh: Path | None = None
    nipa: Path | None = None
    acs_commute: Path | None = None
    medicare: Path | None = None
    labor_tax_rates: Path | None = None
    capital_tax_rates: Path | None = None
    income_elasticities: Path | None = None
    pce_shares: Path | None = None
    naics_map: Path | None = None
    medicare_min_year: int = 2009
    medicare_max_year: int = 2024

    def require(self, field_name: str) -> Path:
        value = getattr(self, field_name)
        if value is None:
            raise ValueError(f"Missing required config field: data.{field_name}")
        return value


class HouseholdConfig(BaseModel):
    """Top-level settings for one household disaggregation run."""

    name: str = "windc_household"
    households: tuple[str, ...] = defaults.HOUSEHOLDS
    income_bounds: dict[str, float] = Field(default_factory=lambda: dict(defaults.INCOME_BOUNDS))
    year: int | None = None
    constants: HouseholdConstants = Field(default_factory=HouseholdConstants)
    solver: SolverSettings = Field(default_factory=SolverSettings)
    data: DataPaths = Field(default_factory=DataPaths)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _validate(self) -> HouseholdConfig:
        if len(self.households) < 2:
            raise ValueError("households must list at least two income groups")
        if len(set(self.households)) != len(self.households):
            raise ValueError(f"households must be unique, got {self.households}")
        keys = sorted(self.income_bounds)
        if keys != ["hh1", "hh2", "hh3", "hh4"]:
            raise ValueError(f"income_bounds must have keys hh1..hh4, got {keys}")
        values = [self.income_bounds[k] for k in keys]
        if any(a >= b for a, b in zip(values, values[1:])):
            raise ValueError(f"income_bounds must be strictly increasing, got {values}")
        for field_name in ("cbo_wealth_shares", "bls_expenditure_levels"):
            shares = getattr(self.constants, field_name)
            missing = [h for h in self.households if h not in shares]
            if missing:
                raise ValueError(f"constants.{field_name} is missing household(s): {missing}")
        return self

    @property
    def top_household(self) -> str:
        """Highest income group (last declared)."""
        return self.households[-1]


def _resolve_path(path_value: Any, base_dir: Path) -> Path | None:
    if not path_value:
        return None
    path = Path(str(path_value))
    if not path.is_absolute():
        path = (base_dir / path).resolve()
    return path


def load_household_config(config_path: Path | str) -> HouseholdConfig:
    """Read a household YAML file into a :class:`HouseholdConfig`.

    Relative data paths are resolved against the YAML file's directory.
    """
    config_path = Path(config_path)
    payload = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError("Household YAML must define a top-level mapping")

    metadata = payload.get("metadata") or {}
    if not isinstance(metadata, dict):
        raise ValueError("metadata must be a mapping")

    data_cfg = payload.get("data") or {}
    if not isinstance(data_cfg, dict):
        raise ValueError("data must be a mapping")

    base_dir = config_path.parent
    data: dict[str, Any] = {}
    for key, entry in data_cfg.items():
        if key not in DataPaths.model_fields:
            raise ValueError(f"Unknown data entry: data.{key}")
        if key.startswith("medicare_") and key.endswith("_year"):
            data[key] = entry
        elif isinstance(entry, dict):
            data[key] = _resolve_path(entry.get("path"), base_dir)
        else:
            data[key] = _resolve_path(entry, base_dir)

    fields: dict[str, Any] = {
        "name": str(metadata.get("name") or config_path.stem).strip(),
        "metadata": metadata,
        "data": DataPaths(**data),
    }
    for key in ("households", "income_bounds", "year", "constants", "solver"):
        if payload.get(key) is not None:
            fields[key] = payload[key]
    if isinstance(fields.get("households"), list):
        fields["households"] = tuple(str(h) for h in fields["households"])
    return HouseholdConfig(**fields)
