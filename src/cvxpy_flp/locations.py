"""Location data for facility-location models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Hashable, Sequence

import numpy as np

from cvxpy_flp.exceptions import ModelValidationError
from cvxpy_flp.sets import Set


def check_coordinates(lat: np.ndarray, lon: np.ndarray, what: str = "coordinates") -> None:
    """Fail fast on missing or out-of-range coordinates.

    Raises
    ------
    ModelValidationError
        If any value is NaN/inf, a latitude lies outside [-90, 90] or a
        longitude outside [-180, 180], or the arrays differ in length.
    """
    if lat.shape != lon.shape:
        raise ModelValidationError(
            f"{what}: latitude has shape {lat.shape} but longitude has shape {lon.shape}"
        )
    bad = ~(np.isfinite(lat) & np.isfinite(lon))
    if bad.any():
        raise ModelValidationError(
            f"{what}: missing or non-finite values at positions "
            f"{np.flatnonzero(bad).tolist()}"
        )
    bad = (np.abs(lat) > 90) | (np.abs(lon) > 180)
    if bad.any():
        raise ModelValidationError(
            f"{what}: latitude must lie in [-90, 90] and longitude in "
            f"[-180, 180]; invalid positions {np.flatnonzero(bad).tolist()}"
        )


@dataclass(frozen=True)
class Locations:
    """One row per location: coordinate, demand weight and fixed opening cost.

    Attributes
    ----------
    lat, lon : np.ndarray
        Coordinates in decimal degrees.
    demand : np.ndarray
        Non-negative demand weight of each location.
    fixed_cost : np.ndarray
        Cost of opening a facility at each location.
    names : Sequence[Hashable], optional
        Labels for the locations. Defaults to ``0 .. N-1``.
    """

    lat: np.ndarray
    lon: np.ndarray
    demand: np.ndarray
    fixed_cost: np.ndarray
    names: Sequence[Hashable] = field(default=None)

    def __post_init__(self):
        lat = np.asarray(self.lat, dtype=float)
        lon = np.asarray(self.lon, dtype=float)
        demand = np.asarray(self.demand, dtype=float)
        fixed_cost = np.asarray(self.fixed_cost, dtype=float)

        n = lat.shape[0] if lat.ndim == 1 else -1
        if n <= 0:
            raise ModelValidationError("Locations requires a non-empty 1-D latitude array")
        for label, arr in (("lon", lon), ("demand", demand), ("fixed_cost", fixed_cost)):
            if arr.shape != (n,):
                raise ModelValidationError(
                    f"Locations: '{label}' has shape {arr.shape}, expected ({n},)"
                )
        check_coordinates(lat, lon, what="Locations")
        if not np.all(np.isfinite(demand)) or (demand < 0).any():
            raise ModelValidationError("Locations: demand must be finite and non-negative")
        if not np.all(np.isfinite(fixed_cost)):
            raise ModelValidationError("Locations: fixed_cost must be finite")

        names = list(range(n)) if self.names is None else list(self.names)
        if len(names) != n:
            raise ModelValidationError(
                f"Locations: got {len(names)} names for {n} locations"
            )
        if len(set(names)) != n:
            raise ModelValidationError("Locations: names must be unique")

        # frozen dataclass
        object.__setattr__(self, "lat", lat)
        object.__setattr__(self, "lon", lon)
        object.__setattr__(self, "demand", demand)
        object.__setattr__(self, "fixed_cost", fixed_cost)
        object.__setattr__(self, "names", names)

    def __len__(self) -> int:
        return len(self.names)

    @property
    def coordinates(self) -> np.ndarray:
        """(N, 2) array of ``(lat, lon)`` pairs."""
        return np.column_stack([self.lat, self.lon])

    def as_set(self, name: str = "locations") -> Set:
        """The location names as a :class:`Set`."""
        return Set(self.names, name=name)
