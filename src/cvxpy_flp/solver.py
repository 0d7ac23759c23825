"""Solving an assembled :class:`~cvxpy_flp.model.FacilityModel` with CVXPY.

The triplet model is turned into a ``cp.Problem`` over a single
set-indexed :class:`~cvxpy_flp.sets.Variable`; the MIP itself is solved by
whichever backend CVXPY is told to use.

A solution pool is collected by re-solving with a no-good cut on the
``open`` block after every solution, so each pool member opens a different
set of facilities. Pool members come back best first.

Example
-------
>>> model = assemble_model([10, 20], [[0, 5], [5, 0]])
>>> pool = solve(model, SolverOptions(pool_size=3, presolve=False))
>>> [s.objective for s in pool]
[15.0, 25.0, 30.0]
>>> pool.best.open_facilities()
[0]
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Hashable, Iterable

import numpy as np

import cvxpy as cp
from cvxpy import settings
from cvxpy.error import SolverError as CvxpySolverError

from cvxpy_flp.exceptions import ModelValidationError, SolverError
from cvxpy_flp.model import BINARY, CONTINUOUS, EQUAL, FacilityModel
from cvxpy_flp.sets import Variable, VariableIndex

logger = logging.getLogger(__name__)

# All columns are bounded, so "infeasible or unbounded" can only mean infeasible.
_EXHAUSTED = (settings.INFEASIBLE, settings.INFEASIBLE_OR_UNBOUNDED)


@dataclass
class SolverOptions:
    """Solver configuration.

    Parameters
    ----------
    solver : str
        CVXPY solver name. ``"SCIPY"`` (HiGHS through ``scipy.optimize.milp``)
        ships with CVXPY; ``"HIGHS"``, ``"GUROBI"``, ``"CPLEX"`` and
        ``"SCIP"`` need their own packages.
    presolve : bool
        Run the backend's presolve.
    pool_size : int
        Maximum number of distinct facility configurations to return.
    time_limit : float, optional
        Wall-clock limit per solve, in seconds.
    verbose : bool
        Let the backend print its log.
    tolerance : float
        Integrality tolerance used when reading binary values back.
    solver_params : dict
        Extra keyword arguments for ``Problem.solve``; nested dicts are
        merged into the generated ones.
    """

    solver: str = "SCIPY"
    presolve: bool = True
    pool_size: int = 1
    time_limit: float | None = None
    verbose: bool = False
    tolerance: float = 1e-6
    solver_params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.solver = self.solver.upper()
        if self.pool_size < 1:
            raise ModelValidationError(f"pool_size must be at least 1, got {self.pool_size}")
        if self.time_limit is not None and self.time_limit <= 0:
            raise ModelValidationError(f"time_limit must be positive, got {self.time_limit}")
        if self.tolerance <= 0:
            raise ModelValidationError(f"tolerance must be positive, got {self.tolerance}")

    def solve_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for ``cp.Problem.solve``."""
        kwargs: dict[str, Any] = {"solver": self.solver, "verbose": self.verbose}
        limit = self.time_limit

        if self.solver == "SCIPY":
            opts: dict[str, Any] = {"presolve": self.presolve}
            if limit is not None:
                opts["time_limit"] = limit
            kwargs["scipy_options"] = opts
        elif self.solver == "HIGHS":
            kwargs["presolve"] = "on" if self.presolve else "off"
            if limit is not None:
                kwargs["time_limit"] = limit
        elif self.solver == "GUROBI":
            if not self.presolve:
                kwargs["Presolve"] = 0
            if limit is not None:
                kwargs["TimeLimit"] = limit
        elif self.solver == "CPLEX":
            params: dict[str, Any] = {}
            if not self.presolve:
                params["preprocessing.presolve"] = 0
            if limit is not None:
                params["timelimit"] = limit
            kwargs["cplex_params"] = params
        elif self.solver == "SCIP":
            params = {}
            if not self.presolve:
                params["presolving/maxrounds"] = 0
            if limit is not None:
                params["limits/time"] = limit
            kwargs["scip_params"] = params
        elif not self.presolve or limit is not None:
            logger.warning(
                "presolve/time_limit are not mapped for solver %s; "
                "pass native names in solver_params",
                self.solver,
            )

        for key, value in self.solver_params.items():
            if isinstance(value, dict) and isinstance(kwargs.get(key), dict):
                kwargs[key] = {**kwargs[key], **value}
            else:
                kwargs[key] = value
        return kwargs


@dataclass(frozen=True)
class Solution:
    """One solution: objective value and column values.

    ``values`` follows the same :class:`VariableIndex` as the model, so
    ``values[index.open(j)]`` is ``open[j]``.
    """

    objective: float
    values: np.ndarray
    index: VariableIndex
    status: str = settings.OPTIMAL

    @property
    def open_values(self) -> np.ndarray:
        """``open`` as a length-M vector."""
        return self.values[self.index.open_slice]

    @property
    def assign_values(self) -> np.ndarray:
        """``assign`` as an (N, M) matrix."""
        return self.values[self.index.assign_slice].reshape(
            self.index.n_stores, self.index.n_facilities
        )

    def get_value(self, key: tuple) -> float:
        return float(self.values[self.index.position(key)])

    def open_facilities(self) -> list[Hashable]:
        """Labels of the facilities opened, in set order."""
        facilities = self.index.facilities
        return [facilities[j] for j in np.flatnonzero(self.open_values > 0.5)]

    def assignments(self) -> dict[Hashable, Hashable]:
        """Map each store to the facility serving it."""
        stores, facilities = self.index.stores, self.index.facilities
        best = np.argmax(self.assign_values, axis=1)
        return {stores[i]: facilities[j] for i, j in enumerate(best)}


class SolutionPool(Sequence):
    """Solutions of one solver run, ordered best first."""

    def __init__(self, solutions: Iterable[Solution], status: str):
        self._solutions = sorted(solutions, key=lambda s: s.objective)
        self._status = status

    def __getitem__(self, pos):
        return self._solutions[pos]

    def __len__(self) -> int:
        return len(self._solutions)

    def __repr__(self) -> str:
        return f"SolutionPool(size={len(self)}, status={self._status!r})"

    @property
    def status(self) -> str:
        """Status of the solve that produced the best solution."""
        return self._status

    @property
    def best(self) -> Solution:
        return self._solutions[0]

    def selection_frequency(self) -> np.ndarray:
        """Share of pool solutions opening each facility."""
        return np.mean([s.open_values for s in self._solutions], axis=0)


def build_problem(
    model: FacilityModel,
    cuts: Sequence[tuple[np.ndarray, float]] = (),
) -> tuple[cp.Problem, Variable]:
    """Translate a model into a CVXPY problem.

    Parameters
    ----------
    model : FacilityModel
        The assembled model.
    cuts : sequence of (coefficients, rhs)
        Extra ``coefficients @ x >= rhs`` rows.

    Returns
    -------
    tuple[cp.Problem, Variable]
        The problem and its decision variable.
    """
    if model.is_binary:
        x = Variable(model.index, boolean=True, name="x")
    elif np.all(model.vtype == CONTINUOUS):
        x = Variable(model.index, name="x")
    else:
        raise ModelValidationError("Models mixing binary and continuous columns are not supported")

    A = model.matrix.to_csr()
    eq = np.flatnonzero(model.sense == EQUAL)
    ge = np.flatnonzero(model.sense != EQUAL)

    constraints = [x >= model.lb, x <= model.ub]
    if eq.size:
        constraints.append(A[eq] @ x == model.rhs[eq])
    if ge.size:
        constraints.append(A[ge] @ x >= model.rhs[ge])
    if cuts:
        coefs = np.vstack([c for c, _ in cuts])
        rhs = np.array([r for _, r in cuts], dtype=float)
        constraints.append(coefs @ x >= rhs)

    problem = cp.Problem(cp.Minimize(model.objective @ x), constraints)
    return problem, x


def _exclusion_cut(solution: Solution) -> tuple[np.ndarray, float]:
    """No-good cut removing the open-facility pattern of ``solution``."""
    opened = solution.open_values > 0.5
    coefs = np.zeros(len(solution.index))
    coefs[solution.index.open_slice] = np.where(opened, -1.0, 1.0)
    return coefs, 1.0 - opened.sum()


def _run(problem: cp.Problem, kwargs: dict[str, Any]) -> str:
    # backends may mutate nested option dicts
    kwargs = {k: dict(v) if isinstance(v, dict) else v for k, v in kwargs.items()}
    try:
        problem.solve(**kwargs)
    except CvxpySolverError as exc:
        raise SolverError(settings.SOLVER_ERROR, str(exc)) from exc
    return problem.status


def _extract(model: FacilityModel, x: Variable, problem: cp.Problem, status: str, tol: float) -> Solution:
    values = np.asarray(x.value, dtype=float).ravel().copy()
    binary = model.vtype == BINARY
    if binary.any():
        drift = np.abs(values[binary] - np.round(values[binary])).max()
        if drift > tol:
            logger.warning("Binary columns off integrality by up to %.3g", drift)
        values[binary] = np.clip(np.round(values[binary]), 0.0, 1.0)
    values.setflags(write=False)
    return Solution(objective=float(problem.value), values=values, index=model.index, status=status)


def solve(model: FacilityModel, options: SolverOptions | None = None) -> SolutionPool:
    """Solve a facility-location model.

    Parameters
    ----------
    model : FacilityModel
        The assembled model.
    options : SolverOptions, optional
        Solver configuration. Defaults to ``SolverOptions()``.

    Returns
    -------
    SolutionPool
        Between 1 and ``options.pool_size`` solutions, best first.

    Raises
    ------
    SolverError
        If the first solve yields no solution (infeasible, unbounded,
        limit reached without incumbent, backend failure), or a later solve
        fails for any reason other than infeasibility. ``status`` holds the
        CVXPY status unchanged.
    ModelValidationError
        If the model is structurally invalid, or a pool is requested for a
        model that is not binary.
    """
    options = options or SolverOptions()
    model.validate()
    if options.pool_size > 1 and not model.is_binary:
        raise ModelValidationError("A solution pool requires a binary model")

    kwargs = options.solve_kwargs()
    logger.info(
        "Solving %d x %d model with %s (pool_size=%d, presolve=%s)",
        model.num_rows, model.num_cols, options.solver, options.pool_size, options.presolve,
    )

    solutions: list[Solution] = []
    cuts: list[tuple[np.ndarray, float]] = []
    first_status = None
    while len(solutions) < options.pool_size:
        problem, x = build_problem(model, cuts)
        status = _run(problem, kwargs)
        if status not in settings.SOLUTION_PRESENT or x.value is None:
            if not solutions:
                raise SolverError(status)
            if status in _EXHAUSTED:
                logger.info("No further distinct configurations after %d solutions", len(solutions))
                break
            raise SolverError(status, f"while searching for pool solution {len(solutions) + 1}")

        solution = _extract(model, x, problem, status, options.tolerance)
        first_status = first_status or status
        solutions.append(solution)
        logger.info(
            "Solution %d: objective %.6g, %d facilities open",
            len(solutions), solution.objective, len(solution.open_facilities()),
        )
        cuts.append(_exclusion_cut(solution))

    if len(solutions) < options.pool_size:
        logger.warning(
            "Requested %d solutions but only %d exist", options.pool_size, len(solutions)
        )
    return SolutionPool(solutions, status=first_status)
