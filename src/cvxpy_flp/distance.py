"""Great-circle distances and transportation cost matrices.

Example
-------
>>> stores = np.array([[33.75, -84.39], [40.71, -74.01]])
>>> demand = np.array([100.0, 250.0])
>>> cost = cost_matrix(stores, demand, unit_cost=0.01)
>>> cost.shape
(2, 2)
"""

from __future__ import annotations

import logging

import numpy as np

from cvxpy_flp.exceptions import ModelValidationError
from cvxpy_flp.locations import check_coordinates

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0
EARTH_RADIUS_MI = 3958.8


def great_circle_distance(lat1, lon1, lat2, lon2, radius: float = EARTH_RADIUS_KM):
    """Haversine distance between points given in decimal degrees.

    Works on scalars and on NumPy arrays that broadcast together.
    """
    lat1, lon1, lat2, lon2 = map(
        np.radians,
        [np.asanyarray(v, dtype=float) for v in (lat1, lon1, lat2, lon2)],
    )
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = np.sin(dlat / 2.0) ** 2 + np.cos(lat1) * np.cos(lat2) * np.sin(dlon / 2.0) ** 2
    # rounding can push a a hair above 1 for antipodal points
    return radius * 2.0 * np.arcsin(np.sqrt(np.clip(a, 0.0, 1.0)))


def _as_coordinates(coords, what: str) -> np.ndarray:
    arr = np.asarray(coords, dtype=float)
    if arr.ndim != 2 or arr.shape[1] != 2:
        raise ModelValidationError(
            f"{what} must be an (n, 2) array of (lat, lon), got shape {arr.shape}"
        )
    if arr.shape[0] == 0:
        raise ModelValidationError(f"{what} must contain at least one location")
    check_coordinates(arr[:, 0], arr[:, 1], what=what)
    return arr


def distance_matrix(origins, destinations=None, radius: float = EARTH_RADIUS_KM) -> np.ndarray:
    """Dense pairwise distances.

    Parameters
    ----------
    origins : array_like
        (N, 2) array of ``(lat, lon)``.
    destinations : array_like, optional
        (M, 2) array of ``(lat, lon)``. Defaults to ``origins``.
    radius : float
        Sphere radius; selects the distance unit.

    Returns
    -------
    np.ndarray
        (N, M) matrix with entry ``(i, j)`` the distance from origin ``i``
        to destination ``j``.
    """
    origins = _as_coordinates(origins, "origins")
    if destinations is None:
        destinations = origins
    else:
        destinations = _as_coordinates(destinations, "destinations")
    return great_circle_distance(
        origins[:, 0][:, None],
        origins[:, 1][:, None],
        destinations[:, 0][None, :],
        destinations[:, 1][None, :],
        radius=radius,
    )


def cost_matrix(
    stores,
    demand,
    facilities=None,
    unit_cost: float = 1.0,
    radius: float = EARTH_RADIUS_KM,
) -> np.ndarray:
    """Transportation cost of serving each store from each facility.

    Entry ``(i, j)`` is ``distance(store i, facility j) * unit_cost *
    demand[i]``. Rows are scaled by store demand, so the matrix is not
    symmetric even when stores and facilities share coordinates.

    Parameters
    ----------
    stores : array_like
        (N, 2) store coordinates ``(lat, lon)``.
    demand : array_like
        Length-N demand weights.
    facilities : array_like, optional
        (M, 2) candidate facility coordinates. Defaults to the store
        coordinates, i.e. every store is also a candidate site.
    unit_cost : float
        Cost per unit of distance per unit of demand.
    radius : float
        Sphere radius used for the distances.

    Raises
    ------
    ModelValidationError
        On invalid coordinates, negative or missing demand, a length
        mismatch between ``demand`` and ``stores``, or a negative
        ``unit_cost``.
    """
    stores = _as_coordinates(stores, "stores")
    demand = np.asarray(demand, dtype=float)
    if demand.shape != (stores.shape[0],):
        raise ModelValidationError(
            f"demand has shape {demand.shape}, expected ({stores.shape[0]},) "
            f"to match the number of stores"
        )
    if not np.all(np.isfinite(demand)) or (demand < 0).any():
        raise ModelValidationError("demand must be finite and non-negative")
    if not np.isfinite(unit_cost) or unit_cost < 0:
        raise ModelValidationError(f"unit_cost must be non-negative, got {unit_cost!r}")

    dist = distance_matrix(stores, facilities, radius=radius)
    logger.debug("Built %d x %d distance matrix", *dist.shape)
    return dist * unit_cost * demand[:, None]
