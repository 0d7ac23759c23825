import numpy as np
import pytest

from cvxpy_flp import Locations, assemble_model


@pytest.fixture
def two_site_model():
    return assemble_model([10, 20], [[0, 5], [5, 0]])


@pytest.fixture
def cities():
    return Locations(
        lat=np.array([33.749, 42.360, 41.878, 39.739, 47.606]),
        lon=np.array([-84.388, -71.059, -87.630, -104.990, -122.332]),
        demand=np.array([80.0, 60.0, 120.0, 50.0, 70.0]),
        fixed_cost=np.array([500.0, 600.0, 550.0, 450.0, 650.0]),
        names=["Atlanta", "Boston", "Chicago", "Denver", "Seattle"],
    )
