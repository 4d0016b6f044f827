"""
Unit tests for the store module.
"""

import math

import pytest
import numpy as np
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from flatcube.errors import InvalidDataError
from flatcube.rules import AggregationRule
from flatcube.store import InMemoryStore, Status


@pytest.fixture
def grid():
    """3x2 store holding [[1, 2], [4, 8], [16, 32]]."""
    store = InMemoryStore(6, "float64")
    store.set_data([1, 2, 4, 8, 16, 32])
    return store


class TestInMemoryStore:
    def test_empty_store(self):
        store = InMemoryStore(4)
        assert store.dtype == "float32"
        assert np.isnan(store.data).all()
        assert (store.status == 0).all()
        assert store.byte_length == 4 * 4 + 4

    def test_set_data_marks_cells(self):
        store = InMemoryStore(3, "int32", default_value=-1)
        store.set_data([5, math.nan, 7])
        np.testing.assert_array_equal(store.data, [5, -1, 7])
        np.testing.assert_array_equal(store.status, [1, 0, 1])

    def test_set_data_wrong_length(self):
        with pytest.raises(InvalidDataError):
            InMemoryStore(3).set_data([1, 2])

    def test_views_are_read_only(self, grid):
        with pytest.raises(ValueError):
            grid.data[0] = 3
        with pytest.raises(ValueError):
            grid.status[0] = 0

    def test_single_cell_access(self):
        store = InMemoryStore(2)
        store.set_value(1, 4.5)
        assert store.get_value(1) == 4.5
        assert store.get_status(1) == Status.HAS_DATA
        assert store.get_status(0) == Status.NONE

    def test_invalid_type(self):
        with pytest.raises(ValueError):
            InMemoryStore(2, "complex64")
        with pytest.raises(ValueError):
            InMemoryStore(2, "int32")

    def test_set_value_nan_clears_cell(self):
        store = InMemoryStore(2, "int32", default_value=-1)
        store.set_value(0, 3)
        store.set_value(0, math.nan)
        store.set_value(1, None)
        np.testing.assert_array_equal(store.data, [-1, -1])
        np.testing.assert_array_equal(store.status, [0, 0])

    def test_set_value_rejects_non_numbers(self):
        store = InMemoryStore(1)
        with pytest.raises(InvalidDataError):
            store.set_value(0, "seven")
        with pytest.raises(InvalidDataError):
            store.set_value(0, [1, 2])

    def test_copy_is_independent(self, grid):
        copy = grid.copy()
        copy.set_value(0, 100)
        assert grid.get_value(0) == 1

    def test_reorder(self, grid):
        reordered = grid.reorder((3, 2), [1, 0])
        np.testing.assert_array_equal(reordered.data, [1, 4, 16, 2, 8, 32])

    def test_dice(self, grid):
        diced = grid.dice((3, 2), 0, [2, 0])
        np.testing.assert_array_equal(diced.data, [16, 32, 1, 2])
        assert diced.size == 4

    def test_shape_mismatch(self, grid):
        with pytest.raises(InvalidDataError):
            grid.reorder((2, 2), [1, 0])


class TestReducers:
    @pytest.mark.parametrize("rule,expected", [
        ("sum", [21, 42]),
        ("average", [7, 14]),
        ("highest", [16, 32]),
        ("lowest", [1, 2]),
        ("first", [1, 2]),
        ("last", [16, 32]),
    ])
    def test_collapse_axis(self, grid, rule, expected):
        reduced = grid.drill_up((3, 2), 0, [0, 0, 0], 1, rule)
        np.testing.assert_array_equal(reduced.data, expected)
        np.testing.assert_array_equal(reduced.status, [1, 1])

    def test_groups(self, grid):
        reduced = grid.drill_up((3, 2), 0, [0, 0, 1], 2, AggregationRule.SUM)
        np.testing.assert_array_equal(reduced.data, [5, 10, 16, 32])

    def test_cells_without_data_are_skipped(self):
        store = InMemoryStore(3, "float64")
        store.set_data([math.nan, 3, math.nan])

        for rule, expected in [("first", 3), ("last", 3), ("average", 3), ("lowest", 3)]:
            assert store.drill_up((3,), 0, [0, 0, 0], 1, rule).get_value(0) == expected

    def test_group_without_data(self):
        store = InMemoryStore(2, "float64")
        reduced = store.drill_up((2,), 0, [0, 0], 1, "sum")
        assert np.isnan(reduced.get_value(0))
        assert reduced.get_status(0) == Status.NONE

    def test_interpolated_flag_survives(self, grid):
        expanded = grid.drill_down((3, 2), 1, [0, 0, 1], "first")
        reduced = expanded.drill_up((3, 3), 1, [0, 0, 1], 2, "first")
        assert all(reduced.status == Status.HAS_DATA | Status.INTERPOLATED)


class TestDrillDown:
    def test_broadcast(self, grid):
        expanded = grid.drill_down((3, 2), 0, [0, 0, 1, 2], "highest")
        np.testing.assert_array_equal(expanded.data, [1, 2, 1, 2, 4, 8, 16, 32])
        assert all(expanded.status & Status.INTERPOLATED)

    def test_sum_is_split(self, grid):
        expanded = grid.drill_down((3, 2), 0, [0, 0, 1, 2], "sum")
        np.testing.assert_array_equal(expanded.data, [0.5, 1, 0.5, 1, 4, 8, 16, 32])

    def test_sum_round_trip(self, grid):
        parents = [0, 0, 0, 1, 1, 2]
        expanded = grid.drill_down((3, 2), 0, parents, "sum")
        back = expanded.drill_up((6, 2), 0, parents, 3, "sum")
        np.testing.assert_array_equal(back.data, grid.data)

    def test_integer_sum_is_split_with_remainder(self):
        store = InMemoryStore(2, "uint32", default_value=0)
        store.set_data([4, 7])
        expanded = store.drill_down((2,), 0, [0, 0, 0, 1, 1], "sum")
        np.testing.assert_array_equal(expanded.data, [2, 1, 1, 4, 3])

    def test_negative_integer_sum_round_trip(self):
        store = InMemoryStore(2, "int16", default_value=0)
        store.set_data([-7, 5])
        parents = [0, 0, 0, 1, 1, 1]
        back = store.drill_down((2,), 0, parents, "sum").drill_up((6,), 0, parents, 2, "sum")
        np.testing.assert_array_equal(back.data, [-7, 5])

    @pytest.mark.parametrize("dtype", ["float32", "float64"])
    @pytest.mark.parametrize("children", [3, 7, 31])
    def test_float_sum_round_trip_is_exact(self, dtype, children):
        rng = np.random.default_rng(children)
        store = InMemoryStore(200, dtype)
        store.set_data(rng.uniform(-1e6, 1e6, 200))

        parents = np.repeat(np.arange(200), children)
        expanded = store.drill_down((200,), 0, parents, "sum")
        back = expanded.drill_up((200 * children,), 0, parents, 200, "sum")
        np.testing.assert_array_equal(back.data, store.data)

    def test_sum_split_along_inner_axis(self, grid):
        parents = [0, 0, 0, 1, 1, 1, 1]
        expanded = grid.drill_down((3, 2), 1, parents, "sum")
        back = expanded.drill_up((3, 7), 1, parents, 2, "sum")
        np.testing.assert_array_equal(back.data, grid.data)

    def test_missing_rule_broadcasts(self, grid):
        expanded = grid.drill_down((3, 2), 1, [0, 1, 1])
        np.testing.assert_array_equal(expanded.data[:3], [1, 2, 2])


class TestLoad:
    def test_load_only_cells_with_data(self):
        target = InMemoryStore(4, "float64")
        target.set_data([1, 2, 3, 4])

        source = InMemoryStore(2, "float64")
        source.set_data([10, math.nan])

        # source is a 1x2 store; its items land on target row 1, columns 1 and 0
        target.load(source, (2, 2), [np.array([1]), np.array([1, 0])])
        np.testing.assert_array_equal(target.data, [1, 2, 3, 10])

    def test_load_skips_missing_items(self):
        target = InMemoryStore(2, "float64")
        source = InMemoryStore(3, "float64")
        source.set_data([5, 6, 7])

        target.load(source, (2,), [np.array([-1, 0, 1])])
        np.testing.assert_array_equal(target.data, [6, 7])
        np.testing.assert_array_equal(target.status, [1, 1])


class TestSerialization:
    def test_round_trip(self):
        store = InMemoryStore(3, "uint16", default_value=0)
        store.set_data([1, math.nan, 3])

        restored = InMemoryStore.deserialize(store.serialize())
        assert restored.dtype == "uint16"
        np.testing.assert_array_equal(restored.data, [1, 0, 3])
        np.testing.assert_array_equal(restored.status, [1, 0, 1])

    def test_corrupt_buffer(self):
        with pytest.raises(InvalidDataError):
            InMemoryStore.deserialize(b"nope")
