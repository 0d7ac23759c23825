from dataclasses import replace

import numpy as np
import pytest

from cvxpy_flp import ModelValidationError, TripletMatrix, assemble_model, model_from_locations
from cvxpy_flp.model import BINARY, CONTINUOUS, EQUAL, GREATER_EQUAL


def random_model(n_stores, n_facilities, seed=0):
    rng = np.random.default_rng(seed)
    return assemble_model(
        rng.uniform(1, 10, n_facilities),
        rng.uniform(0, 10, (n_stores, n_facilities)),
    )


class TestTwoSites:
    def test_objective(self, two_site_model):
        assert two_site_model.objective.tolist() == [10, 20, 0, 5, 5, 0]

    def test_row_count(self, two_site_model):
        assert two_site_model.num_rows == 6
        assert len(two_site_model.rhs) == 6
        assert len(two_site_model.sense) == 6

    def test_senses_and_rhs(self, two_site_model):
        assert two_site_model.sense.tolist() == [EQUAL] * 2 + [GREATER_EQUAL] * 4
        assert two_site_model.rhs.tolist() == [1, 1, 0, 0, 0, 0]

    def test_dense_matrix(self, two_site_model):
        dense = two_site_model.matrix.to_coo().toarray()
        expected = np.array(
            [
                # o0  o1  a00 a01 a10 a11
                [0, 0, 1, 1, 0, 0],
                [0, 0, 0, 0, 1, 1],
                [1, 0, -1, 0, 0, 0],
                [1, 0, 0, 0, -1, 0],
                [0, 1, 0, -1, 0, 0],
                [0, 1, 0, 0, 0, -1],
            ]
        )
        np.testing.assert_array_equal(dense, expected)

    def test_bounds_and_types(self, two_site_model):
        assert (two_site_model.lb == 0).all()
        assert (two_site_model.ub == 1).all()
        assert (two_site_model.vtype == BINARY).all()
        assert two_site_model.is_binary


@pytest.mark.parametrize("n", [1, 2, 3, 7])
def test_square_sizes(n):
    model = random_model(n, n)
    assert len(model.objective) == n + n * n
    assert model.num_rows == n + n * n
    assert model.matrix.nnz == n * n + 2 * n * n


def test_independent_set_sizes():
    model = random_model(n_stores=4, n_facilities=3)
    assert model.num_cols == 3 + 4 * 3
    assert model.num_rows == 4 + 3 * 4
    assert model.index.n_stores == 4
    assert model.index.n_facilities == 3


def test_assignment_rows():
    model = random_model(5, 3)
    index = model.index
    for i in index.stores:
        row = model.assignment_row(i)
        cols, vals = model.matrix.row(row)
        assert sorted(cols.tolist()) == [index.assign(i, j) for j in index.facilities]
        assert vals.sum() == index.n_facilities
        assert model.sense[row] == EQUAL
        assert model.rhs[row] == 1


def test_linking_rows():
    model = random_model(4, 3)
    index = model.index
    seen = set()
    for j in index.facilities:
        for i in index.stores:
            row = model.linking_row(i, j)
            seen.add(row)
            cols, vals = model.matrix.row(row)
            assert dict(zip(cols.tolist(), vals.tolist())) == {
                index.open(j): 1.0,
                index.assign(i, j): -1.0,
            }
            assert model.sense[row] == GREATER_EQUAL
            assert model.rhs[row] == 0
    assert seen == set(range(index.n_stores, model.num_rows))


def test_linking_rows_grouped_by_facility():
    model = random_model(3, 2)
    assert model.linking_row(0, 0) == 3
    assert model.linking_row(2, 0) == 5
    assert model.linking_row(0, 1) == 6


def test_triplets_are_row_major():
    model = random_model(3, 3)
    assert (np.diff(model.matrix.rows) >= 0).all()


def test_no_duplicate_triplets():
    assert not random_model(6, 4).matrix.has_duplicates()


def test_row_counts():
    model = random_model(3, 4)
    counts = model.matrix.row_counts()
    assert counts[model.assignment_rows].tolist() == [4, 4, 4]
    assert (counts[model.linking_rows] == 2).all()


def test_objective_flattens_row_major():
    costs = np.arange(6, dtype=float).reshape(2, 3)
    model = assemble_model([100, 200, 300], costs, facilities=["a", "b", "c"], stores=["x", "y"])
    assert model.objective[model.index.assign("y", "a")] == 3.0
    assert model.objective[model.index.open("c")] == 300.0


class TestFeasibility:
    def test_single_site_must_open(self):
        model = assemble_model([7], [[3]])
        assert model.num_rows == 2
        assert model.is_feasible([1, 1])
        assert not model.is_feasible([0, 1])
        assert not model.is_feasible([1, 0])
        assert not model.is_feasible([0, 0])

    def test_evaluate(self, two_site_model):
        x = [1, 0, 1, 0, 1, 0]
        assert two_site_model.is_feasible(x)
        assert two_site_model.evaluate(x) == 15.0

    def test_assign_to_closed_facility(self, two_site_model):
        assert not two_site_model.is_feasible([1, 0, 0, 1, 1, 0])

    def test_fractional_rejected_unless_relaxed(self, two_site_model):
        x = [0.5, 0.5, 0.5, 0.5, 0.5, 0.5]
        assert not two_site_model.is_feasible(x)
        assert two_site_model.relax().is_feasible(x)

    def test_residuals(self, two_site_model):
        res = two_site_model.residuals([1, 1, 1, 0, 0, 1])
        np.testing.assert_allclose(res, [0, 0, 0, 1, 1, 0])

    def test_wrong_length(self, two_site_model):
        with pytest.raises(ModelValidationError, match="length 6"):
            two_site_model.evaluate([1, 0])


def test_relax_keeps_original():
    model = random_model(2, 2)
    relaxed = model.relax()
    assert (relaxed.vtype == CONTINUOUS).all()
    assert model.is_binary
    assert relaxed.matrix is model.matrix


class TestValidation:
    def test_empty_facilities(self):
        with pytest.raises(ModelValidationError, match="non-empty"):
            assemble_model([], np.zeros((2, 0)))

    def test_empty_stores(self):
        with pytest.raises(ModelValidationError, match="no stores"):
            assemble_model([1.0, 2.0], np.zeros((0, 2)))

    def test_mismatched_lengths(self):
        with pytest.raises(ModelValidationError, match="3 fixed costs"):
            assemble_model([1, 2, 3], [[0, 5], [5, 0]])

    def test_not_2d(self):
        with pytest.raises(ModelValidationError, match="2-D"):
            assemble_model([1, 2], [0, 5])

    def test_nan_cost(self):
        with pytest.raises(ModelValidationError, match="finite"):
            assemble_model([1, 2], [[0, np.nan], [5, 0]])

    def test_label_count(self):
        with pytest.raises(ModelValidationError, match="'stores' has 3"):
            assemble_model([1, 2], [[0, 5], [5, 0]], stores=["a", "b", "c"])

    def test_validate_detects_bad_rhs(self, two_site_model):
        broken = replace(two_site_model, rhs=np.ones(5))
        with pytest.raises(ModelValidationError, match="'rhs'"):
            broken.validate()

    def test_validate_detects_duplicates(self, two_site_model):
        m = two_site_model.matrix
        dup = TripletMatrix(
            rows=np.append(m.rows, 0),
            cols=np.append(m.cols, 2),
            vals=np.append(m.vals, 1.0),
            shape=m.shape,
        )
        assert dup.has_duplicates()
        with pytest.raises(ModelValidationError, match="duplicate"):
            replace(two_site_model, matrix=dup).validate()


class TestTripletMatrix:
    def test_unequal_lengths(self):
        with pytest.raises(ModelValidationError, match="equal length"):
            TripletMatrix(rows=[0, 1], cols=[0], vals=[1.0], shape=(2, 2))

    def test_out_of_range(self):
        with pytest.raises(ModelValidationError, match="Column index"):
            TripletMatrix(rows=[0], cols=[5], vals=[1.0], shape=(1, 2))

    def test_to_csr(self):
        m = TripletMatrix(rows=[0, 1], cols=[1, 0], vals=[2.0, 3.0], shape=(2, 2))
        np.testing.assert_array_equal(m.to_csr().toarray(), [[0, 2], [3, 0]])
        assert len(m) == 2


def test_model_from_locations(cities):
    model = model_from_locations(cities, unit_cost=0.01)
    assert list(model.index.facilities) == cities.names
    assert model.num_cols == 5 + 25
    np.testing.assert_array_equal(model.objective[:5], cities.fixed_cost)
    # serving a store from its own site is free
    assert model.objective[model.index.assign("Denver", "Denver")] == pytest.approx(0.0)


def test_model_from_locations_separate_sites(cities):
    from cvxpy_flp import Locations

    hubs = Locations(lat=[39.1, 36.2], lon=[-94.6, -86.8], demand=[0, 0],
                     fixed_cost=[300, 350], names=["KC", "Nashville"])
    model = model_from_locations(cities, facilities=hubs)
    assert model.index.n_facilities == 2
    assert model.index.n_stores == 5
    assert model.objective[:2].tolist() == [300, 350]
