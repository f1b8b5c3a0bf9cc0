"""Solver plumbing shared by the calibration models.

Both calibration stages build a Pyomo ``ConcreteModel``, solve it once with a
nonlinear solver (IPOPT by default), classify the termination, and read the
variable values back into plain DataFrames.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Mapping, Sequence

import pandas as pd
from pydantic import BaseModel, Field
from pyomo.environ import ConcreteModel, Constraint, Objective, Set, SolverFactory, value

from windc_household.calibration.nlp import (
    CALLBACK_SOLVERS,
    ModelNLP,
    NLPOutcome,
    callback_solver_available,
)
from windc_household.config import SolverSettings
from windc_household.enums import NonOptimalPolicy, TerminationClass
from windc_household.errors import CalibrationError

logger = logging.getLogger(__name__)


class SolverReport(BaseModel):
    """Outcome of one calibration solve.

    Attributes:
        model_name: Name of the solved model
        solver: Solver name
        status: Solver status (e.g. 'ok', 'warning')
        termination: Termination condition (e.g. 'optimal', 'maxIterations')
        termination_class: Coarse classification of ``termination``
        message: Solver message
        iterations: Iteration count, when the solver reports it
        solve_time: Wall-clock solve time in seconds
        objective_value: Objective at the returned point
    """

    model_name: str = Field(..., description="Model name")
    solver: str = Field(default="ipopt", description="Solver name")
    status: str = Field(default="unknown", description="Solver status")
    termination: str = Field(default="unknown", description="Termination condition")
    termination_class: TerminationClass = Field(default=TerminationClass.ERROR)
    message: str = Field(default="", description="Solver message")
    iterations: int | None = Field(default=None, description="Iteration count")
    solve_time: float = Field(default=0.0, description="Solve time in seconds")
    objective_value: float | None = Field(default=None, description="Objective value")

    @property
    def optimal(self) -> bool:
        return self.termination_class is TerminationClass.OPTIMAL

    def summary(self) -> str:
        """Compact human-readable summary line."""
        objective = "n/a" if self.objective_value is None else f"{self.objective_value:.6g}"
        return (
            f"{self.model_name}: {self.termination} ({self.status}) "
            f"objective={objective} time={self.solve_time:.2f}s"
        )


def solver_available(name: str = "ipopt") -> bool:
    """Whether solver ``name`` can run.

    ``scipy`` and ``cyipopt`` are callback backends and only need their
    Python package; any other name must resolve to a Pyomo solver
    (``ipopt`` needs the executable on PATH).
    """
    if name in CALLBACK_SOLVERS:
        return callback_solver_available(name)
    return bool(SolverFactory(name).available(exception_flag=False))


def _iterations(results: Any) -> int | None:
    count = getattr(results.solver, "iterations", None)
    if isinstance(count, (int, float)):
        return int(count)
    return None


def _objective_value(model: ConcreteModel) -> float | None:
    for objective in model.component_data_objects(Objective, active=True):
        try:
            return float(value(objective))
        except (ValueError, TypeError, ZeroDivisionError):
            return None
    return None


def solve_model(
    model: ConcreteModel,
    settings: SolverSettings | None = None,
    model_name: str | None = None,
) -> SolverReport:
    """Solve ``model`` in place and apply the non-optimal policy.

    The solver's final point is loaded into the model whenever one is
    returned, so callers can inspect it even after a warning.

    Args:
        model: Pyomo model to solve
        settings: Solver name, options and non-optimal policy
        model_name: Name used in logs and errors (defaults to ``model.name``)

    Returns:
        SolverReport describing the termination

    Raises:
        RuntimeError: If the solver executable is not available
        CalibrationError: If the termination is unacceptable under the policy
    """
    settings = settings or SolverSettings()
    name = model_name or model.name

    if not solver_available(settings.name):
        msg = f"Solver '{settings.name}' is not available"
        raise RuntimeError(msg)

    logger.info(f"Solving {name} with {settings.name}")
    start_time = time.time()
    if settings.name in CALLBACK_SOLVERS:
        _, backend = CALLBACK_SOLVERS[settings.name]
        outcome = backend(ModelNLP(model), settings)
    else:
        outcome = _solve_pyomo(model, settings)
    solve_time = time.time() - start_time

    report = SolverReport(
        model_name=name,
        solver=settings.name,
        status=outcome.status,
        termination=outcome.termination,
        termination_class=TerminationClass.from_termination(outcome.termination),
        message=outcome.message,
        iterations=outcome.iterations,
        solve_time=solve_time,
        objective_value=_objective_value(model) if outcome.has_solution else None,
    )
    _apply_policy(report, settings.on_nonoptimal)
    return report


def _solve_pyomo(model: ConcreteModel, settings: SolverSettings) -> NLPOutcome:
    solver = SolverFactory(settings.name)
    for key, option in settings.solver_options().items():
        solver.options[key] = option
    results = solver.solve(model, tee=settings.tee, load_solutions=False)
    has_solution = len(results.solution) > 0
    if has_solution:
        model.solutions.load_from(results)
    return NLPOutcome(
        status=str(results.solver.status),
        termination=str(results.solver.termination_condition),
        message=str(results.solver.message or ""),
        iterations=_iterations(results),
        has_solution=has_solution,
    )


def _apply_policy(report: SolverReport, policy: NonOptimalPolicy) -> None:
    if report.optimal:
        logger.info(report.summary())
        return
    if policy is NonOptimalPolicy.IGNORE:
        logger.warning(f"Ignoring non-optimal termination. {report.summary()}")
        return
    if report.termination_class is TerminationClass.ITERATION_LIMIT and policy is NonOptimalPolicy.WARN:
        logger.warning(f"Continuing with a non-optimal point. {report.summary()}")
        return
    raise CalibrationError(report.model_name, report, detail=report.message)


def extract_variable(model: ConcreteModel, name: str, index_names: Sequence[str] = ()) -> pd.DataFrame:
    """Values at the solution for one (indexed) variable.

    Args:
        model: Solved Pyomo model
        name: Variable component name
        index_names: Column names for the index positions

    Returns:
        DataFrame with the index columns followed by ``value``
    """
    var = model.find_component(name)
    if var is None:
        raise KeyError(f"Model '{model.name}' has no variable '{name}'")
    index_names = list(index_names)
    rows = []
    for index, data in var.items():
        key = index if isinstance(index, tuple) else (() if index is None else (index,))
        if len(key) != len(index_names):
            raise ValueError(f"Variable '{name}' has {len(key)} index positions, got names {index_names}")
        rows.append((*key, data.value))
    df = pd.DataFrame(rows, columns=[*index_names, "value"])
    df["value"] = df["value"].astype(float)
    return df


def scalar_value(model: ConcreteModel, name: str) -> float:
    """Value at the solution of a scalar variable (NaN when unset)."""
    var = model.find_component(name)
    if var is None:
        raise KeyError(f"Model '{model.name}' has no variable '{name}'")
    return float("nan") if var.value is None else float(var.value)


def add_constraints(model: ConcreteModel, name: str, expressions: Mapping[tuple, Any]) -> None:
    """Attach an indexed constraint built from precomputed expressions.

    The index set is materialized from the expression keys as ``<name>_idx``.
    Keys whose expression reduced to ``True`` (only constant terms that
    already agree) are skipped.

    Args:
        model: Model to extend
        name: Constraint component name
        expressions: Mapping from index tuple to relational expression

    Raises:
        ValueError: If any expression reduced to ``False``; such a row can
            never hold and the model would be infeasible
    """
    violated = [k for k, e in expressions.items() if e is False]
    if violated:
        preview = ", ".join(str(k) for k in violated[:5])
        raise ValueError(
            f"{model.name}: {len(violated)} row(s) of constraint '{name}' reduce to False "
            f"(no free terms, constants disagree): {preview}"
        )
    constraints = {k: e for k, e in expressions.items() if not isinstance(e, bool)}
    if not constraints:
        logger.debug(f"{model.name}: no rows for constraint '{name}'")
        return

    keys = list(constraints)
    dimen = len(keys[0])
    index = Set(initialize=[k[0] if dimen == 1 else k for k in keys], dimen=dimen, ordered=True)
    setattr(model, f"{name}_idx", index)

    def constraint_rule(m: ConcreteModel, *idx: Any) -> Any:
        return constraints.get(tuple(idx), Constraint.Skip)

    setattr(model, name, Constraint(index, rule=constraint_rule))
    logger.debug(f"{model.name}: {len(keys)} row(s) in constraint '{name}'")
