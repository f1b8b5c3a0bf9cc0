"""Callback view of a Pyomo model for array-based NLP solvers.

``ModelNLP`` packs the free variables of a ``ConcreteModel`` into one vector
and exposes objective, gradient, constraint and Jacobian callbacks over it.
Linear constraint rows are extracted once as a sparse matrix; nonlinear
rows are evaluated and differentiated through Pyomo expressions.

Two backends consume it:

- ``scipy``: ``scipy.optimize.minimize`` (SLSQP by default)
- ``cyipopt``: IPOPT through the cyipopt ``Problem`` interface, with a
  limited-memory Hessian

Neither needs a solver executable on PATH.
"""

from __future__ import annotations

import importlib.util
import logging
from dataclasses import dataclass
from typing import Any, Callable

import numpy as np
from pyomo.core.expr.calculus.derivatives import Modes, differentiate
from pyomo.core.expr.visitor import identify_variables
from pyomo.environ import ConcreteModel, Constraint, Objective, Var, maximize, value
from pyomo.repn import generate_standard_repn
from scipy.linalg import qr
from scipy.optimize import Bounds, LinearConstraint, NonlinearConstraint, minimize
from scipy.sparse import coo_matrix

from windc_household.config import SolverSettings

logger = logging.getLogger(__name__)


@dataclass
class NLPOutcome:
    """Raw outcome of a callback solve, before classification."""

    status: str
    termination: str
    message: str
    iterations: int | None
    has_solution: bool


class ModelNLP:
    """Array callbacks over the free variables of a Pyomo model.

    Args:
        model: Model with exactly one active objective

    Raises:
        ValueError: If the model does not have exactly one active objective
    """

    def __init__(self, model: ConcreteModel):
        objectives = list(model.component_data_objects(Objective, active=True))
        if len(objectives) != 1:
            raise ValueError(
                f"Model '{model.name}' needs exactly one active objective, found {len(objectives)}"
            )
        self.model = model
        self.objective_expr = objectives[0].expr
        self.sign = -1.0 if objectives[0].sense == maximize else 1.0

        self.variables = [v for v in model.component_data_objects(Var, descend_into=True) if not v.fixed]
        position = {id(v): i for i, v in enumerate(self.variables)}
        n = len(self.variables)
        self.lb = np.array([-np.inf if v.lb is None else v.lb for v in self.variables], dtype=float)
        self.ub = np.array([np.inf if v.ub is None else v.ub for v in self.variables], dtype=float)

        rows: list[int] = []
        cols: list[int] = []
        coefs: list[float] = []
        linear_lower: list[float] = []
        linear_upper: list[float] = []
        self.nonlinear: list[tuple[Any, list[int]]] = []
        nonlinear_lower: list[float] = []
        nonlinear_upper: list[float] = []

        for con in model.component_data_objects(Constraint, active=True):
            lower = -np.inf if con.lb is None else float(con.lb)
            upper = np.inf if con.ub is None else float(con.ub)
            repn = generate_standard_repn(con.body)
            if repn.is_linear():
                row = len(linear_lower)
                for var, coef in zip(repn.linear_vars, repn.linear_coefs):
                    rows.append(row)
                    cols.append(position[id(var)])
                    coefs.append(float(coef))
                constant = float(value(repn.constant))
                linear_lower.append(lower - constant)
                linear_upper.append(upper - constant)
            else:
                columns = sorted(
                    position[id(v)] for v in identify_variables(con.body, include_fixed=False)
                )
                self.nonlinear.append((con.body, columns))
                nonlinear_lower.append(lower)
                nonlinear_upper.append(upper)

        # duplicate (row, col) pairs are summed on conversion
        self.A = coo_matrix((coefs, (rows, cols)), shape=(len(linear_lower), n)).tocsr()
        self.linear_lower = np.array(linear_lower, dtype=float)
        self.linear_upper = np.array(linear_upper, dtype=float)
        self.nonlinear_lower = np.array(nonlinear_lower, dtype=float)
        self.nonlinear_upper = np.array(nonlinear_upper, dtype=float)

        logger.debug(
            f"{model.name}: {n} free variable(s), {self.A.shape[0]} linear and "
            f"{len(self.nonlinear)} nonlinear constraint row(s)"
        )

    @property
    def n(self) -> int:
        return len(self.variables)

    @property
    def m(self) -> int:
        return self.A.shape[0] + len(self.nonlinear)

    @property
    def constraint_lower(self) -> np.ndarray:
        return np.concatenate([self.linear_lower, self.nonlinear_lower])

    @property
    def constraint_upper(self) -> np.ndarray:
        return np.concatenate([self.linear_upper, self.nonlinear_upper])

    def initial_point(self) -> np.ndarray:
        """Current variable values (0 when unset) clipped into the bounds."""
        x0 = np.array([0.0 if v.value is None else float(v.value) for v in self.variables], dtype=float)
        return np.clip(x0, self.lb, self.ub)

    def load(self, x: np.ndarray) -> None:
        """Write ``x`` back into the model's variables."""
        for var, val in zip(self.variables, x):
            var.set_value(float(val), skip_validation=True)

    def objective(self, x: np.ndarray) -> float:
        self.load(x)
        return self.sign * float(value(self.objective_expr))

    def gradient(self, x: np.ndarray) -> np.ndarray:
        self.load(x)
        grad = differentiate(self.objective_expr, wrt_list=self.variables, mode=Modes.reverse_numeric)
        return self.sign * np.array(grad, dtype=float)

    def nonlinear_values(self, x: np.ndarray) -> np.ndarray:
        self.load(x)
        return np.array([float(value(body)) for body, _ in self.nonlinear], dtype=float)

    def nonlinear_jacobian(self, x: np.ndarray) -> np.ndarray:
        self.load(x)
        jac = np.zeros((len(self.nonlinear), self.n), dtype=float)
        for row, (body, columns) in enumerate(self.nonlinear):
            wrt = [self.variables[c] for c in columns]
            jac[row, columns] = differentiate(body, wrt_list=wrt, mode=Modes.reverse_numeric)
        return jac

    def constraints(self, x: np.ndarray) -> np.ndarray:
        """All constraint bodies: linear rows first, then nonlinear rows."""
        return np.concatenate([self.A @ x, self.nonlinear_values(x)])

    def jacobianstructure(self) -> tuple[np.ndarray, np.ndarray]:
        """Sparsity pattern matching :meth:`jacobian`."""
        linear = self.A.tocoo()
        offset = self.A.shape[0]
        rows = [linear.row] + [np.full(len(c), offset + i) for i, (_, c) in enumerate(self.nonlinear)]
        cols = [linear.col] + [np.array(c, dtype=int) for _, c in self.nonlinear]
        return np.concatenate(rows).astype(int), np.concatenate(cols).astype(int)

    def jacobian(self, x: np.ndarray) -> np.ndarray:
        """Jacobian values in :meth:`jacobianstructure` order."""
        values = [self.A.tocoo().data]
        if self.nonlinear:
            dense = self.nonlinear_jacobian(x)
            values += [dense[i, c] for i, (_, c) in enumerate(self.nonlinear)]
        return np.concatenate(values).astype(float)

    def independent_equalities(self, tol: float = 1e-10) -> np.ndarray:
        """Indices of linear equality rows that are linearly independent.

        Balance constraints written for every member of a share set are
        rank deficient (the shares sum to one). SLSQP fails on a singular
        equality block, so redundant rows are dropped before solving.
        """
        equality = np.flatnonzero(self.linear_lower == self.linear_upper)
        if len(equality) == 0:
            return equality
        block = self.A[equality].toarray()
        _, r, pivots = qr(block.T, mode="economic", pivoting=True)
        diag = np.abs(np.diag(r))
        if len(diag) == 0 or diag[0] == 0:
            return equality[:0]
        rank = int(np.sum(diag > tol * diag[0]))
        return np.sort(equality[pivots[:rank]])


def _split_options(settings: SolverSettings) -> tuple[int, dict[str, Any]]:
    options = dict(settings.options)
    max_iter = int(options.pop("max_iter", settings.max_iter))
    return max_iter, options


SLSQP_TERMINATION = {0: "optimal", 4: "infeasible", 9: "maxIterations"}
TRUST_CONSTR_TERMINATION = {0: "maxIterations", 1: "optimal", 2: "optimal"}


def solve_scipy(nlp: ModelNLP, settings: SolverSettings) -> NLPOutcome:
    """Solve with ``scipy.optimize.minimize``.

    Solver options: ``method`` (default ``SLSQP``), ``tol`` and any option
    accepted by the method; ``max_iter`` maps to ``maxiter``.
    """
    max_iter, options = _split_options(settings)
    method = str(options.pop("method", "SLSQP"))
    tol = options.pop("tol", None)
    options["maxiter"] = max_iter
    if settings.tee:
        options["disp"] = True

    constraints: list[Any] = []
    equality = nlp.independent_equalities()
    inequality = np.flatnonzero(nlp.linear_lower != nlp.linear_upper)
    dropped = int(np.sum(nlp.linear_lower == nlp.linear_upper)) - len(equality)
    if dropped:
        logger.debug(f"{nlp.model.name}: dropped {dropped} redundant equality row(s)")
    keep = np.concatenate([equality, inequality]).astype(int)
    if len(keep):
        constraints.append(
            LinearConstraint(nlp.A[keep].toarray(), nlp.linear_lower[keep], nlp.linear_upper[keep])
        )
    if nlp.nonlinear:
        constraints.append(
            NonlinearConstraint(
                nlp.nonlinear_values,
                nlp.nonlinear_lower,
                nlp.nonlinear_upper,
                jac=nlp.nonlinear_jacobian,
            )
        )

    result = minimize(
        nlp.objective,
        nlp.initial_point(),
        jac=nlp.gradient,
        method=method,
        bounds=Bounds(nlp.lb, nlp.ub),
        constraints=constraints,
        tol=tol,
        options=options,
    )
    nlp.load(result.x)

    if result.success:
        termination = "optimal"
    elif method.upper() == "SLSQP":
        termination = SLSQP_TERMINATION.get(int(result.status), "error")
    elif method == "trust-constr":
        termination = TRUST_CONSTR_TERMINATION.get(int(result.status), "error")
    else:
        termination = "error"
    return NLPOutcome(
        status="ok" if result.success else "warning",
        termination=termination,
        message=str(result.message),
        iterations=int(getattr(result, "nit", 0)) or None,
        has_solution=True,
    )


class _IpoptCallbacks:
    def __init__(self, nlp: ModelNLP):
        self.nlp = nlp

    def objective(self, x):
        return self.nlp.objective(x)

    def gradient(self, x):
        return self.nlp.gradient(x)

    def constraints(self, x):
        return self.nlp.constraints(x)

    def jacobian(self, x):
        return self.nlp.jacobian(x)

    def jacobianstructure(self):
        return self.nlp.jacobianstructure()


IPOPT_TERMINATION = {
    0: "optimal",
    1: "feasible",
    2: "infeasible",
    -1: "maxIterations",
    -4: "maxTimeLimit",
}


def solve_cyipopt(nlp: ModelNLP, settings: SolverSettings) -> NLPOutcome:
    """Solve with IPOPT through cyipopt (limited-memory Hessian)."""
    import cyipopt

    max_iter, options = _split_options(settings)
    problem = cyipopt.Problem(
        n=nlp.n,
        m=nlp.m,
        problem_obj=_IpoptCallbacks(nlp),
        lb=nlp.lb,
        ub=nlp.ub,
        cl=nlp.constraint_lower,
        cu=nlp.constraint_upper,
    )
    problem.add_option("max_iter", max_iter)
    problem.add_option("print_level", 5 if settings.tee else 0)
    problem.add_option("hessian_approximation", "limited-memory")
    for key, option in options.items():
        problem.add_option(key, option)

    x, info = problem.solve(nlp.initial_point())
    nlp.load(x)
    status = int(info.get("status", -100))
    return NLPOutcome(
        status="ok" if status in (0, 1) else "warning",
        termination=IPOPT_TERMINATION.get(status, "error"),
        message=str(info.get("status_msg", "")),
        iterations=None,
        has_solution=True,
    )


CALLBACK_SOLVERS: dict[str, tuple[str, Callable[[ModelNLP, SolverSettings], NLPOutcome]]] = {
    "scipy": ("scipy", solve_scipy),
    "cyipopt": ("cyipopt", solve_cyipopt),
}


def callback_solver_available(name: str) -> bool:
    module, _ = CALLBACK_SOLVERS[name]
    return importlib.util.find_spec(module) is not None
