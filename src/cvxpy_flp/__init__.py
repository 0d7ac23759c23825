"""cvxpy-flp: uncapacitated facility location with CVXPY.

This package builds the uncapacitated facility-location model from location
data, keeps its constraints in sparse triplet form, and solves it through
CVXPY with any MIP backend, optionally collecting a pool of distinct
solutions.

Example
-------
>>> from cvxpy_flp import Locations, SolverOptions, model_from_locations, solve
>>>
>>> sites = Locations(
...     lat=[33.75, 39.74, 40.71], lon=[-84.39, -104.99, -74.01],
...     demand=[120, 80, 300], fixed_cost=[500, 450, 900],
...     names=['Atlanta', 'Denver', 'NYC'],
... )
>>> model = model_from_locations(sites, unit_cost=0.002)
>>> pool = solve(model, SolverOptions(pool_size=5, presolve=False))
>>> pool.best.open_facilities()
"""

from cvxpy_flp.distance import cost_matrix, distance_matrix, great_circle_distance
from cvxpy_flp.exceptions import FacilityLocationError, ModelValidationError, SolverError
from cvxpy_flp.locations import Locations
from cvxpy_flp.model import FacilityModel, TripletMatrix, assemble_model, model_from_locations
from cvxpy_flp.sets import Set, Variable, VariableIndex
from cvxpy_flp.solver import Solution, SolutionPool, SolverOptions, build_problem, solve

__all__ = [
    "Set",
    "Variable",
    "VariableIndex",
    "Locations",
    "great_circle_distance",
    "distance_matrix",
    "cost_matrix",
    "TripletMatrix",
    "FacilityModel",
    "assemble_model",
    "model_from_locations",
    "SolverOptions",
    "Solution",
    "SolutionPool",
    "build_problem",
    "solve",
    "FacilityLocationError",
    "ModelValidationError",
    "SolverError",
]
__version__ = "0.1.0"
