"""Assembly of the uncapacitated facility-location model.

The model is kept in solver-neutral array form: an objective vector, a
sparse constraint matrix in (row, column, value) triplet form, a right-hand
side, a per-row sense, bounds and variable types. Columns follow a
:class:`~cvxpy_flp.sets.VariableIndex`.

Rows are laid out as

* ``0 .. N-1``: assignment rows, ``sum_j assign[i, j] = 1`` for store ``i``;
* ``N .. N + M*N - 1``: linking rows, ``open[j] - assign[i, j] >= 0``,
  grouped by facility ``j`` and ordered by store ``i`` within a group.

Example
-------
>>> model = assemble_model([10, 20], [[0, 5], [5, 0]])
>>> model.objective.tolist()
[10.0, 20.0, 0.0, 5.0, 5.0, 0.0]
>>> model.num_rows
6
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Hashable, Sequence

import numpy as np
import scipy.sparse as sp

from cvxpy_flp import distance
from cvxpy_flp.distance import EARTH_RADIUS_KM
from cvxpy_flp.exceptions import ModelValidationError
from cvxpy_flp.locations import Locations
from cvxpy_flp.sets import Set, VariableIndex

logger = logging.getLogger(__name__)

EQUAL = "="
GREATER_EQUAL = ">="

BINARY = "B"
CONTINUOUS = "C"


@dataclass(frozen=True)
class TripletMatrix:
    """A sparse matrix stored as three parallel arrays.

    Entry ``k`` contributes ``vals[k]`` at ``(rows[k], cols[k])``. Each
    ``(row, col)`` pair is expected to appear at most once; scipy would
    silently sum duplicates.
    """

    rows: np.ndarray
    cols: np.ndarray
    vals: np.ndarray
    shape: tuple[int, int]

    def __post_init__(self):
        rows = np.asarray(self.rows, dtype=np.int64)
        cols = np.asarray(self.cols, dtype=np.int64)
        vals = np.asarray(self.vals, dtype=float)
        if not (rows.shape == cols.shape == vals.shape) or rows.ndim != 1:
            raise ModelValidationError(
                f"Triplet arrays must be 1-D and of equal length, got "
                f"{rows.shape}, {cols.shape}, {vals.shape}"
            )
        n_rows, n_cols = self.shape
        if rows.size and (rows.min() < 0 or rows.max() >= n_rows):
            raise ModelValidationError(f"Row index out of range for shape {self.shape}")
        if cols.size and (cols.min() < 0 or cols.max() >= n_cols):
            raise ModelValidationError(f"Column index out of range for shape {self.shape}")
        object.__setattr__(self, "rows", rows)
        object.__setattr__(self, "cols", cols)
        object.__setattr__(self, "vals", vals)
        object.__setattr__(self, "shape", (int(n_rows), int(n_cols)))

    def __len__(self) -> int:
        return self.rows.size

    @property
    def nnz(self) -> int:
        return self.rows.size

    def to_coo(self) -> sp.coo_matrix:
        return sp.coo_matrix((self.vals, (self.rows, self.cols)), shape=self.shape)

    def to_csr(self) -> sp.csr_matrix:
        return self.to_coo().tocsr()

    def has_duplicates(self) -> bool:
        """True if some ``(row, col)`` pair appears more than once."""
        keys = self.rows * self.shape[1] + self.cols
        return np.unique(keys).size != keys.size

    def row(self, r: int) -> tuple[np.ndarray, np.ndarray]:
        """Columns and values of the entries in row ``r``."""
        mask = self.rows == r
        return self.cols[mask], self.vals[mask]

    def row_counts(self) -> np.ndarray:
        """Number of stored entries in each row."""
        return np.bincount(self.rows, minlength=self.shape[0])


@dataclass(frozen=True)
class FacilityModel:
    """An assembled facility-location model, ready for a solver.

    Attributes
    ----------
    index : VariableIndex
        Column layout of the decision variables.
    objective : np.ndarray
        Cost coefficient of every column.
    matrix : TripletMatrix
        Constraint matrix.
    rhs : np.ndarray
        Right-hand side of every row.
    sense : np.ndarray
        ``"="`` or ``">="`` for every row.
    lb, ub : np.ndarray
        Column bounds.
    vtype : np.ndarray
        ``"B"`` (binary) or ``"C"`` (continuous) for every column.
    """

    index: VariableIndex
    objective: np.ndarray
    matrix: TripletMatrix
    rhs: np.ndarray
    sense: np.ndarray
    lb: np.ndarray
    ub: np.ndarray
    vtype: np.ndarray

    @property
    def num_cols(self) -> int:
        return len(self.index)

    @property
    def num_rows(self) -> int:
        return self.matrix.shape[0]

    @property
    def assignment_rows(self) -> slice:
        return slice(0, self.index.n_stores)

    @property
    def linking_rows(self) -> slice:
        return slice(self.index.n_stores, self.num_rows)

    @property
    def is_binary(self) -> bool:
        return bool(np.all(self.vtype == BINARY))

    def assignment_row(self, store: Hashable) -> int:
        """Row holding the assignment constraint of ``store``."""
        return self.index.stores.position(store)

    def linking_row(self, store: Hashable, facility: Hashable) -> int:
        """Row holding ``open[facility] - assign[store, facility] >= 0``."""
        n_stores = self.index.n_stores
        return (
            n_stores
            + self.index.facilities.position(facility) * n_stores
            + self.index.stores.position(store)
        )

    def validate(self) -> None:
        """Check the structural invariants of the model.

        Raises
        ------
        ModelValidationError
            If vector lengths disagree with the matrix shape, a sense or type
            flag is unknown, or the matrix holds duplicate entries.
        """
        n_rows, n_cols = self.matrix.shape
        if n_cols != len(self.index):
            raise ModelValidationError(
                f"Matrix has {n_cols} columns but the index has {len(self.index)}"
            )
        for label, arr, size in (
            ("objective", self.objective, n_cols),
            ("lb", self.lb, n_cols),
            ("ub", self.ub, n_cols),
            ("vtype", self.vtype, n_cols),
            ("rhs", self.rhs, n_rows),
            ("sense", self.sense, n_rows),
        ):
            if len(arr) != size:
                raise ModelValidationError(f"'{label}' has length {len(arr)}, expected {size}")
        if not np.isin(self.sense, (EQUAL, GREATER_EQUAL)).all():
            raise ModelValidationError("sense entries must be '=' or '>='")
        if not np.isin(self.vtype, (BINARY, CONTINUOUS)).all():
            raise ModelValidationError("vtype entries must be 'B' or 'C'")
        if (self.lb > self.ub).any():
            raise ModelValidationError("lower bounds exceed upper bounds")
        if self.matrix.has_duplicates():
            raise ModelValidationError("constraint matrix contains duplicate (row, col) entries")

    def relax(self) -> FacilityModel:
        """The LP relaxation: same rows and bounds, all columns continuous."""
        return replace(self, vtype=np.full(self.num_cols, CONTINUOUS))

    def evaluate(self, values) -> float:
        """Objective value of a column vector."""
        return float(self.objective @ self._as_values(values))

    def residuals(self, values) -> np.ndarray:
        """``A @ values - rhs`` for every row."""
        return self.matrix.to_csr() @ self._as_values(values) - self.rhs

    def is_feasible(self, values, tol: float = 1e-6) -> bool:
        """Check bounds, rows and integrality of a column vector."""
        x = self._as_values(values)
        if (x < self.lb - tol).any() or (x > self.ub + tol).any():
            return False
        binary = self.vtype == BINARY
        if (np.abs(x[binary] - np.round(x[binary])) > tol).any():
            return False
        res = self.residuals(x)
        eq = self.sense == EQUAL
        return bool((np.abs(res[eq]) <= tol).all() and (res[~eq] >= -tol).all())

    def _as_values(self, values) -> np.ndarray:
        x = np.asarray(values, dtype=float)
        if x.shape != (self.num_cols,):
            raise ModelValidationError(
                f"Expected a vector of length {self.num_cols}, got shape {x.shape}"
            )
        return x


def _as_set(elements: Set | Sequence[Hashable] | None, size: int, name: str) -> Set:
    if elements is None:
        return Set.range(size, name=name)
    if not isinstance(elements, Set):
        elements = Set(elements, name=name)
    if len(elements) != size:
        raise ModelValidationError(
            f"'{name}' has {len(elements)} elements but the cost matrix implies {size}"
        )
    return elements


def assemble_model(
    fixed_costs,
    cost_matrix,
    facilities: Set | Sequence[Hashable] | None = None,
    stores: Set | Sequence[Hashable] | None = None,
) -> FacilityModel:
    """Build the uncapacitated facility-location model.

    Parameters
    ----------
    fixed_costs : array_like
        Length-M cost of opening each candidate facility.
    cost_matrix : array_like
        (N, M) cost of serving store ``i`` entirely from facility ``j``.
    facilities : Set or sequence, optional
        Labels of the M facilities. Defaults to ``0 .. M-1``.
    stores : Set or sequence, optional
        Labels of the N stores. Defaults to ``0 .. N-1``.

    Returns
    -------
    FacilityModel
        Objective of length ``M + N*M``, ``N + M*N`` constraint rows, all
        columns binary in [0, 1].

    Raises
    ------
    ModelValidationError
        If either set is empty, ``cost_matrix`` is not 2-D, its column count
        differs from ``len(fixed_costs)``, or any value is not finite.
    """
    fixed_costs = np.asarray(fixed_costs, dtype=float)
    costs = np.asarray(cost_matrix, dtype=float)

    if fixed_costs.ndim != 1 or fixed_costs.size == 0:
        raise ModelValidationError(
            f"fixed_costs must be a non-empty 1-D array, got shape {fixed_costs.shape}"
        )
    if costs.ndim != 2:
        raise ModelValidationError(f"cost_matrix must be 2-D, got shape {costs.shape}")
    n_stores, n_facilities = costs.shape
    if n_facilities != fixed_costs.size:
        raise ModelValidationError(
            f"cost_matrix has {n_facilities} columns but there are "
            f"{fixed_costs.size} fixed costs"
        )
    if n_stores == 0:
        raise ModelValidationError("cost_matrix has no stores")
    if not np.all(np.isfinite(fixed_costs)) or not np.all(np.isfinite(costs)):
        raise ModelValidationError("fixed_costs and cost_matrix must be finite")

    index = VariableIndex(
        _as_set(facilities, n_facilities, "facilities"),
        _as_set(stores, n_stores, "stores"),
    )
    n_cols = len(index)
    n_links = n_facilities * n_stores

    objective = np.concatenate([fixed_costs, costs.ravel()])

    assign_cols = index.assign_columns()

    # Assignment rows: one per store over its M assign columns.
    a_rows = np.repeat(np.arange(n_stores), n_facilities)
    a_cols = assign_cols.ravel()
    a_vals = np.ones(n_links)

    # Linking rows: facility-major, two entries each.
    fac, store = np.meshgrid(
        np.arange(n_facilities), np.arange(n_stores), indexing="ij"
    )
    fac = fac.ravel()
    store = store.ravel()
    link_rows = n_stores + fac * n_stores + store
    l_rows = np.repeat(link_rows, 2)
    l_cols = np.column_stack([fac, assign_cols[store, fac]]).ravel()
    l_vals = np.tile([1.0, -1.0], n_links)

    matrix = TripletMatrix(
        rows=np.concatenate([a_rows, l_rows]),
        cols=np.concatenate([a_cols, l_cols]),
        vals=np.concatenate([a_vals, l_vals]),
        shape=(n_stores + n_links, n_cols),
    )

    model = FacilityModel(
        index=index,
        objective=objective,
        matrix=matrix,
        rhs=np.concatenate([np.ones(n_stores), np.zeros(n_links)]),
        sense=np.repeat([EQUAL, GREATER_EQUAL], [n_stores, n_links]),
        lb=np.zeros(n_cols),
        ub=np.ones(n_cols),
        vtype=np.full(n_cols, BINARY),
    )
    model.validate()
    logger.debug(
        "Assembled model: %d facilities, %d stores, %d columns, %d rows, %d nonzeros",
        n_facilities, n_stores, n_cols, model.num_rows, matrix.nnz,
    )
    return model


def model_from_locations(
    stores: Locations,
    facilities: Locations | None = None,
    unit_cost: float = 1.0,
    radius: float = EARTH_RADIUS_KM,
) -> FacilityModel:
    """Build the model straight from location data.

    Transportation costs are great-circle distances scaled by ``unit_cost``
    and store demand; fixed costs come from the facility locations.

    Parameters
    ----------
    stores : Locations
        Demand points.
    facilities : Locations, optional
        Candidate sites. Defaults to ``stores``: every store is a candidate.
    unit_cost : float
        Cost per unit of distance per unit of demand.
    radius : float
        Sphere radius; selects the distance unit.
    """
    if facilities is None:
        facilities = stores
    costs = distance.cost_matrix(
        stores.coordinates,
        stores.demand,
        facilities.coordinates,
        unit_cost=unit_cost,
        radius=radius,
    )
    return assemble_model(
        facilities.fixed_cost,
        costs,
        facilities=facilities.as_set("facilities"),
        stores=stores.as_set("stores"),
    )
