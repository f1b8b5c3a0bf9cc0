"""Enum definitions for calibration configuration and solver outcomes."""

from __future__ import annotations

from enum import Enum


class NonOptimalPolicy(str, Enum):
    """How a calibration stage reacts to a non-optimal solver termination."""

    WARN = "warn"
    RAISE = "raise"
    IGNORE = "ignore"

    @classmethod
    def from_alias(cls, value: str | None) -> NonOptimalPolicy:
        """Normalize policy aliases into one canonical ``NonOptimalPolicy``."""
        if isinstance(value, cls):
            return value
        normalized = str(value or cls.WARN.value).strip().lower()
        aliases: dict[str, NonOptimalPolicy] = {
            "warn": cls.WARN,
            "warning": cls.WARN,
            "continue": cls.WARN,
            "raise": cls.RAISE,
            "strict": cls.RAISE,
            "error": cls.RAISE,
            "ignore": cls.IGNORE,
            "silent": cls.IGNORE,
        }
        if normalized not in aliases:
            raise ValueError(f"Unsupported non-optimal policy: {value}")
        return aliases[normalized]


class TerminationClass(str, Enum):
    """Coarse classification of a solver termination condition."""

    OPTIMAL = "optimal"
    ITERATION_LIMIT = "iteration_limit"
    INFEASIBLE = "infeasible"
    ERROR = "error"

    @classmethod
    def from_termination(cls, termination: str) -> TerminationClass:
        """Map a Pyomo termination condition name onto a class."""
        normalized = str(termination).strip().lower()
        if normalized in {"optimal", "locallyoptimal", "globallyoptimal", "feasible"}:
            return cls.OPTIMAL
        if normalized in {"maxiterations", "maxtimelimit", "maxevaluations", "iterationlimit"}:
            return cls.ITERATION_LIMIT
        if normalized in {
            "infeasible",
            "locallyinfeasible",
            "infeasibleorunbounded",
            "unbounded",
        }:
            return cls.INFEASIBLE
        return cls.ERROR

    @property
    def recoverable(self) -> bool:
        return self in {TerminationClass.OPTIMAL, TerminationClass.ITERATION_LIMIT}
