import numpy as np
import pandas as pd
import pytest

from cvxpy_flp import ModelValidationError, SolverOptions, model_from_locations, solve
from cvxpy_flp.distance import distance_matrix, great_circle_distance
from cvxpy_flp.io import (
    assignment_table,
    facility_report,
    locations_from_dataframe,
    locations_to_dataframe,
    pool_summary,
    solution_to_dataframe,
)


@pytest.fixture
def table():
    return pd.DataFrame(
        {
            "city": ["Atlanta", "Chicago", "Denver"],
            "lat": [33.749, 41.878, 39.739],
            "lon": [-84.388, -87.630, -104.990],
            "demand": [80, 120, 50],
            "fixed_cost": [500, 550, 450],
        }
    )


@pytest.fixture
def sites(table):
    return locations_from_dataframe(table, name="city")


@pytest.fixture
def pool(sites):
    model = model_from_locations(sites, unit_cost=0.001)
    return solve(model, SolverOptions(pool_size=3))


def test_locations_from_dataframe(sites):
    assert sites.names == ["Atlanta", "Chicago", "Denver"]
    np.testing.assert_array_equal(sites.fixed_cost, [500, 550, 450])


def test_locations_default_to_index(table):
    locs = locations_from_dataframe(table.set_index("city"))
    assert locs.names == ["Atlanta", "Chicago", "Denver"]


def test_custom_column_names(table):
    renamed = table.rename(columns={"lat": "latitude", "lon": "longitude"})
    locs = locations_from_dataframe(renamed, lat="latitude", lon="longitude")
    assert locs.names == [0, 1, 2]


def test_missing_column(table):
    with pytest.raises(ModelValidationError, match="fixed_cost"):
        locations_from_dataframe(table.drop(columns="fixed_cost"))


def test_invalid_row(table):
    table.loc[1, "lat"] = np.nan
    with pytest.raises(ModelValidationError):
        locations_from_dataframe(table)


def test_locations_to_dataframe(sites):
    df = locations_to_dataframe(sites)
    assert df.index.name == "name"
    assert list(df.columns) == ["lat", "lon", "demand", "fixed_cost"]
    assert df.loc["Denver", "fixed_cost"] == 450


def test_solution_to_dataframe(pool):
    df = solution_to_dataframe(pool.best)
    assert len(df) == 3 + 9
    assert list(df.columns) == ["variable", "kind", "store", "facility", "value"]
    assert df["variable"].iloc[0] == "open[Atlanta]"
    assert df["store"].iloc[0] is None
    assert set(df["kind"]) == {"open", "assign"}


def test_solution_to_dataframe_keeps_labels_as_objects(two_site_model):
    df = solution_to_dataframe(solve(two_site_model).best)
    assert df["store"].dtype == object
    assert df["facility"].dtype == object
    assert df["store"].iloc[0] is None
    assert df["store"].iloc[2] == 0
    assert df["facility"].tolist()[:2] == [0, 1]
    assert df["value"].dtype == float


def test_solution_to_dataframe_nonzero(pool):
    df = solution_to_dataframe(pool.best, nonzero=True)
    assert (df["value"] == 1.0).all()
    assert (df["kind"] == "assign").sum() == 3


def two_points():
    return locations_from_dataframe(
        pd.DataFrame({"lat": [0.0, 0.0], "lon": [0.0, 1.0],
                      "demand": [3, 1], "fixed_cost": [1, 1000]})
    )


def test_assignment_table_cost():
    model = model_from_locations(two_points(), unit_cost=2.0)
    best = solve(model).best
    df = assignment_table(best, model=model)
    assert df["facility"].tolist() == [0, 0]
    assert list(df.columns) == ["store", "facility", "cost"]
    assert df["cost"].iloc[0] == 0.0
    assert df["cost"].iloc[1] == pytest.approx(2.0 * great_circle_distance(0.0, 0.0, 0.0, 1.0))


def test_assignment_table_distance():
    points = two_points()
    model = model_from_locations(points, unit_cost=2.0)
    df = assignment_table(solve(model).best, points, model=model)
    assert list(df.columns) == ["store", "facility", "distance", "cost"]
    # distance is unscaled by demand or unit cost
    assert df["distance"].tolist() == pytest.approx([0.0, great_circle_distance(0.0, 0.0, 0.0, 1.0)])
    assert df["distance"].iloc[1] == pytest.approx(111.19, rel=1e-3)


def test_assignment_table_separate_facilities(sites):
    from cvxpy_flp import Locations

    hub = Locations(lat=[39.1], lon=[-94.6], demand=[0], fixed_cost=[100], names=["KC"])
    model = model_from_locations(sites, facilities=hub)
    df = assignment_table(solve(model).best, sites, hub)
    assert df["facility"].tolist() == ["KC"] * 3
    expected = distance_matrix(sites.coordinates, hub.coordinates)[:, 0]
    np.testing.assert_allclose(df["distance"], expected)


def test_assignment_table_mismatched_stores(pool):
    from cvxpy_flp import Locations

    other = Locations(lat=[1.0], lon=[1.0], demand=[1], fixed_cost=[1])
    with pytest.raises(ModelValidationError, match="stores set"):
        assignment_table(pool.best, other)


def test_facility_report(pool, sites):
    df = facility_report(pool, sites)
    assert list(df.index) == sites.names
    assert list(df.columns) == ["lat", "lon", "fixed_cost", "selected", "frequency", "stores_served"]
    assert df["stores_served"].sum() == 3
    assert df.loc[df["selected"], "stores_served"].sum() == 3
    assert ((df["frequency"] >= 0) & (df["frequency"] <= 1)).all()


def test_facility_report_without_coordinates(pool):
    df = facility_report(pool)
    assert "lat" not in df.columns


def test_facility_report_mismatch(pool, sites):
    from cvxpy_flp import Locations

    other = Locations(lat=[1.0], lon=[1.0], demand=[1], fixed_cost=[1])
    with pytest.raises(ModelValidationError, match="facilities set"):
        facility_report(pool, other)


def test_pool_summary(pool):
    df = pool_summary(pool)
    assert df["rank"].tolist() == list(range(1, len(pool) + 1))
    assert df["objective"].is_monotonic_increasing
