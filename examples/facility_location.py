#!/usr/bin/env python3
"""Facility Location Problem using cvxpy-flp.

This example solves the uncapacitated facility location problem (UFLP) on a
handful of US cities: every city is a store and also a candidate site for a
distribution center. Transportation cost is great-circle distance times a
unit cost times the store's demand.

It solves the MIP with presolve disabled, collects a pool of distinct
configurations, and compares the best solution with the LP relaxation.
"""

import logging

import pandas as pd

from cvxpy_flp import SolverOptions, model_from_locations, solve
from cvxpy_flp.io import (
    assignment_table,
    facility_report,
    locations_from_dataframe,
    pool_summary,
)

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

# =============================================================================
# DATA
# =============================================================================

cities = pd.DataFrame(
    {
        "city": ["Atlanta", "Boston", "Chicago", "Denver", "Seattle",
                 "NYC", "LA", "Houston", "Phoenix", "Miami"],
        "lat": [33.749, 42.360, 41.878, 39.739, 47.606,
                40.713, 34.052, 29.760, 33.448, 25.762],
        "lon": [-84.388, -71.059, -87.630, -104.990, -122.332,
                -74.006, -118.244, -95.370, -112.074, -80.192],
        "demand": [80, 60, 120, 50, 70, 200, 180, 110, 60, 90],
        "fixed_cost": [500, 600, 550, 450, 650, 900, 800, 500, 450, 550],
    }
)

sites = locations_from_dataframe(cities, name="city")

# Cost per km per unit of demand ($000s)
UNIT_COST = 0.0005

# =============================================================================
# MODEL
# =============================================================================

model = model_from_locations(sites, unit_cost=UNIT_COST)

print(f"Columns: {model.num_cols} "
      f"({model.index.n_facilities} open + "
      f"{model.index.n_stores * model.index.n_facilities} assign)")
print(f"Rows:    {model.num_rows}")
print(f"Nonzeros in triplet form: {model.matrix.nnz}")
print()

# =============================================================================
# SOLVE
# =============================================================================

pool = solve(model, SolverOptions(pool_size=10, presolve=False))
relaxed = solve(model.relax())

print(f"Status: {pool.status}")
print(f"Best total cost: ${pool.best.objective:.1f}k")
print(f"LP relaxation bound: ${relaxed.best.objective:.1f}k")
print()

# =============================================================================
# RESULTS
# =============================================================================

print("=== Solution Pool ===")
print(pool_summary(pool).to_string(index=False))
print()

print("=== Facilities (plotting input) ===")
print(facility_report(pool, sites).to_string())
print()

print("=== Assignments (best solution) ===")
print(assignment_table(pool.best, sites, model=model).to_string(index=False))
