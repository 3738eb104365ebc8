"""Tests for the dataset sources and the dropout index selection."""

import numpy as np
import pandas as pd
import pytest

from clear_fc.datasets import ArrayDataset, CsvDataset, Datapoint, RandomDataset, select_drops
from clear_fc.errors import ConfigurationError, DimensionError


def collect(dataset):
    return [(p.input.copy(), p.expected.copy()) for p in dataset]


def test_random_dataset_is_deterministic():
    a = collect(RandomDataset(seed=42, input_size=3, max_value=1000, n_samples=20))
    b = collect(RandomDataset(seed=42, input_size=3, max_value=1000, n_samples=20))
    assert len(a) == 20
    for (xa, ya), (xb, yb) in zip(a, b):
        np.testing.assert_array_equal(xa, xb)
        np.testing.assert_array_equal(ya, yb)


def test_random_dataset_replays_after_reset():
    ds = RandomDataset(seed=1, input_size=2, max_value=10, n_samples=5)
    first = collect(ds)
    second = collect(ds)
    for (xa, _), (xb, _) in zip(first, second):
        np.testing.assert_array_equal(xa, xb)


def test_random_dataset_values_and_targets():
    ds = RandomDataset(seed=3, input_size=4, max_value=100, n_samples=50)
    for point in ds:
        assert point.input.shape == (4, 1)
        assert np.all(point.input >= -1.0) and np.all(point.input < 1.0)
        # grid of step 1/max_value
        np.testing.assert_allclose(point.input * 100, np.round(point.input * 100))
        np.testing.assert_allclose(point.expected, [[point.input.sum()]])


def test_random_dataset_custom_target():
    ds = RandomDataset(seed=3, input_size=3, max_value=1000, n_samples=5,
                       fn=lambda x: [2 * x[0] + 4 * x[1] - 3 * x[2], x[0]])
    point = ds.next()
    x = point.input.ravel()
    np.testing.assert_allclose(point.expected, [[2 * x[0] + 4 * x[1] - 3 * x[2]], [x[0]]])


def test_random_dataset_counts():
    ds = RandomDataset(seed=0, input_size=2, max_value=10, n_samples=3)
    assert ds.size() == len(ds) == 3
    assert ds.left() == 3
    ds.next()
    assert ds.left() == 2
    ds.next()
    ds.next()
    assert ds.left() == 0
    assert ds.next() is None
    ds.reset()
    assert ds.left() == 3


@pytest.mark.parametrize("n_samples, expected", [(0, 10), (-7, 7), (4, 4)])
def test_random_dataset_sample_count(n_samples, expected):
    assert RandomDataset(seed=0, input_size=1, max_value=5, n_samples=n_samples).size() == expected


def test_random_dataset_rejects_bad_arguments():
    with pytest.raises(ConfigurationError):
        RandomDataset(seed=0, input_size=0, max_value=5, n_samples=1)
    with pytest.raises(ConfigurationError):
        RandomDataset(seed=0, input_size=1, max_value=0, n_samples=1)


def test_array_dataset_iteration():
    ds = ArrayDataset([[1, 2], [3, 4], [5, 6]], [10, 20, 30])
    points = list(ds)
    assert len(points) == 3
    np.testing.assert_array_equal(points[1].input, [[3.0], [4.0]])
    np.testing.assert_array_equal(points[2].expected, [[30.0]])
    assert ds.left() == 0
    with pytest.raises(DimensionError):
        ArrayDataset([[1, 2]], [1, 2])


def test_datapoint_of_makes_columns():
    point = Datapoint.of([1, 2, 3], 4)
    assert point.input.shape == (3, 1)
    assert point.expected.shape == (1, 1)


def test_csv_dataset(tmp_path):
    path = tmp_path / "samples.csv"
    pd.DataFrame({
        "a": [1.0, 2.0, None, 4.0],
        "b": [0.5, 0.0, 1.0, -1.0],
        "y": [1.5, 2.0, 3.0, 3.0],
    }).to_csv(path, index=False)

    ds = CsvDataset(path, ["a", "b"], ["y"])
    assert ds.size() == 3
    points = list(ds)
    np.testing.assert_array_equal(points[0].input, [[1.0], [0.5]])
    np.testing.assert_array_equal(points[2].expected, [[3.0]])

    with pytest.raises(ConfigurationError, match="columns not found"):
        CsvDataset(path, ["a", "missing"], ["y"])


@pytest.mark.parametrize("drop_size, fleet_size, expected_len", [
    (2, 5, 2),
    (0, 5, 0),
    (-2, 5, 2),
    (8, 5, 5),
    (3, 0, 0),
    (3, -4, 0),
])
def test_select_drops(drop_size, fleet_size, expected_len):
    drops = select_drops(np.random.default_rng(11), drop_size, fleet_size)
    assert len(drops) == expected_len
    assert all(0 <= i < max(fleet_size, 1) for i in drops)


def test_select_drops_is_seeded():
    a = select_drops(np.random.default_rng(5), 3, 10)
    b = select_drops(np.random.default_rng(5), 3, 10)
    assert a == b
