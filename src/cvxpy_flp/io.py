"""I/O utilities for cvxpy-flp.

This module loads :class:`~cvxpy_flp.locations.Locations` from pandas
DataFrames and exports solutions back to DataFrames for reporting and
plotting.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from cvxpy_flp.exceptions import ModelValidationError

if TYPE_CHECKING:
    import pandas as pd

    from cvxpy_flp.locations import Locations
    from cvxpy_flp.model import FacilityModel
    from cvxpy_flp.solver import Solution, SolutionPool


def _check_pandas():
    """Check that pandas is available."""
    try:
        import pandas  # noqa: F401

        return True
    except ImportError:
        raise ImportError(
            "pandas is required for I/O operations. "
            "Install it with: pip install 'cvxpy-flp[pandas]'"
        )


def locations_from_dataframe(
    df: pd.DataFrame,
    lat: str = "lat",
    lon: str = "lon",
    demand: str = "demand",
    fixed_cost: str = "fixed_cost",
    name: str | None = None,
) -> Locations:
    """Create Locations from a DataFrame with one row per location.

    Parameters
    ----------
    df : pd.DataFrame
        The location table.
    lat, lon, demand, fixed_cost : str
        Column names.
    name : str, optional
        Column holding location labels. Defaults to the DataFrame index.

    Raises
    ------
    ModelValidationError
        If a column is missing or the data is invalid.

    Examples
    --------
    >>> df = pd.DataFrame({
    ...     'city': ['Atlanta', 'Denver'],
    ...     'lat': [33.75, 39.74], 'lon': [-84.39, -104.99],
    ...     'demand': [120, 80], 'fixed_cost': [500, 450],
    ... })
    >>> locs = locations_from_dataframe(df, name='city')
    >>> locs.names
    ['Atlanta', 'Denver']
    """
    _check_pandas()
    from cvxpy_flp.locations import Locations as LocationsClass

    required = [lat, lon, demand, fixed_cost] + ([name] if name else [])
    missing = [col for col in required if col not in df.columns]
    if missing:
        raise ModelValidationError(f"Location table is missing columns: {missing}")

    names = df[name].tolist() if name else df.index.tolist()
    return LocationsClass(
        lat=df[lat].to_numpy(dtype=float),
        lon=df[lon].to_numpy(dtype=float),
        demand=df[demand].to_numpy(dtype=float),
        fixed_cost=df[fixed_cost].to_numpy(dtype=float),
        names=names,
    )


def locations_to_dataframe(locations: Locations) -> pd.DataFrame:
    """Convert Locations to a DataFrame indexed by location name."""
    _check_pandas()
    import pandas as pd

    return pd.DataFrame(
        {
            "lat": locations.lat,
            "lon": locations.lon,
            "demand": locations.demand,
            "fixed_cost": locations.fixed_cost,
        },
        index=pd.Index(locations.names, name="name"),
    )


def solution_to_dataframe(
    solution: Solution,
    value_col: str = "value",
    nonzero: bool = False,
) -> pd.DataFrame:
    """Convert a Solution to a long table, one row per column.

    Parameters
    ----------
    solution : Solution
        The solution to convert.
    value_col : str, optional
        Name for the value column. Default "value".
    nonzero : bool, optional
        Keep only columns with a non-zero value.

    Returns
    -------
    pd.DataFrame
        Columns ``variable``, ``kind``, ``store``, ``facility`` and
        ``value_col``. ``store`` is None for ``open`` rows.

    Examples
    --------
    >>> solution_to_dataframe(pool.best, nonzero=True).head()
          variable    kind store facility  value
    0      open[0]    open  None        0    1.0
    1  assign[0,0]  assign     0        0    1.0
    """
    _check_pandas()
    import pandas as pd

    index = solution.index
    rows = []
    for col in range(len(index)):
        value = float(solution.values[col])
        if nonzero and value == 0.0:
            continue
        kind, *elems = index.key(col)
        store, facility = (None, elems[0]) if len(elems) == 1 else elems
        rows.append([index.label(col), kind, store, facility, value])

    labels = ["variable", "kind", "store", "facility"]
    # object dtype keeps None and mixed label types intact
    df = pd.DataFrame(rows, columns=labels + [value_col], dtype=object)
    df[value_col] = df[value_col].astype(float)
    return df


def _check_names(locations: Locations, expected: list, what: str) -> None:
    if list(locations.names) != expected:
        raise ModelValidationError(f"{what} do not match the model's {what} set")


def assignment_table(
    solution: Solution,
    stores: Locations | None = None,
    facilities: Locations | None = None,
    model: FacilityModel | None = None,
) -> pd.DataFrame:
    """One row per store with the facility serving it.

    Parameters
    ----------
    solution : Solution
        The solution to report.
    stores : Locations, optional
        Stores in the order of the model's store set; adds a ``distance``
        column (great-circle, km) from each store to its facility.
    facilities : Locations, optional
        Candidate sites in the order of the model's facility set. Defaults
        to ``stores``.
    model : FacilityModel, optional
        Adds a ``cost`` column with the transportation cost of each
        assignment.

    Raises
    ------
    ModelValidationError
        If ``stores`` or ``facilities`` do not match the model's sets.
    """
    _check_pandas()
    import pandas as pd

    from cvxpy_flp.distance import distance_matrix

    index = solution.index
    assigned = solution.assignments()
    df = pd.DataFrame(
        {
            "store": pd.Series(list(assigned.keys()), dtype=object),
            "facility": pd.Series(list(assigned.values()), dtype=object),
        }
    )
    if stores is not None:
        facilities = stores if facilities is None else facilities
        _check_names(stores, list(index.stores), "stores")
        _check_names(facilities, list(index.facilities), "facilities")
        dist = distance_matrix(stores.coordinates, facilities.coordinates)
        rows = [index.stores.position(s) for s in assigned]
        cols = [index.facilities.position(f) for f in assigned.values()]
        df["distance"] = dist[rows, cols]
    if model is not None:
        cols = [index.assign(s, f) for s, f in assigned.items()]
        df["cost"] = model.objective[cols]
    return df


def facility_report(
    pool: SolutionPool,
    facilities: Locations | None = None,
) -> pd.DataFrame:
    """Per-facility summary of a solution pool, ready for plotting.

    Parameters
    ----------
    pool : SolutionPool
        A solved pool.
    facilities : Locations, optional
        Candidate sites in the same order as the model's facility set;
        adds ``lat``, ``lon`` and ``fixed_cost`` columns.

    Returns
    -------
    pd.DataFrame
        Indexed by facility, with ``selected`` (open in the best solution),
        ``frequency`` (share of pool solutions opening it) and
        ``stores_served`` (in the best solution).

    Raises
    ------
    ModelValidationError
        If ``facilities`` does not match the model's facility set.
    """
    _check_pandas()
    import pandas as pd

    best = pool.best
    labels = list(best.index.facilities)
    df = pd.DataFrame(
        {
            "selected": best.open_values > 0.5,
            "frequency": pool.selection_frequency(),
            "stores_served": best.assign_values.sum(axis=0).astype(int),
        },
        index=pd.Index(labels, name="facility"),
    )

    if facilities is not None:
        _check_names(facilities, labels, "facilities")
        df.insert(0, "lat", facilities.lat)
        df.insert(1, "lon", facilities.lon)
        df.insert(2, "fixed_cost", facilities.fixed_cost)

    return df


def pool_summary(pool: SolutionPool) -> pd.DataFrame:
    """One row per pool solution: rank, objective and open facilities."""
    _check_pandas()
    import pandas as pd

    return pd.DataFrame(
        {
            "rank": np.arange(1, len(pool) + 1),
            "objective": [s.objective for s in pool],
            "n_open": [len(s.open_facilities()) for s in pool],
            "open": [s.open_facilities() for s in pool],
            "status": [s.status for s in pool],
        }
    )
