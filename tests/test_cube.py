"""
Unit tests for the cube module.
"""

import math

import pytest
import pandas as pd
import numpy as np
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from flatcube import ALL, Cube, CubeConfig, GenericDimension, Status, TimeDimension
from flatcube.cube import ReshapeResult
from flatcube.errors import (
    DuplicateDimensionError, DuplicateMeasureError, IncompatibleDimensionError,
    InvalidDataError, InvalidDimensionIndexError, InvalidIdentifierError, InvalidRuleError,
    MissingAggregationRuleError, NoSuchDimensionError, NoSuchMeasureError,
    UnknownMeasureReferenceError, UnsupportedOperationError
)
from configs.cubes import (
    create_antenna_cube, create_location_dimension, create_month_week_cube,
    create_monthly_cube, create_period_dimension
)


@pytest.fixture
def antennas():
    return create_antenna_cube()


@pytest.fixture
def float_cube():
    """Antenna grid with float values, sum over location and average over period."""
    cube = Cube([create_location_dimension(), create_period_dimension()])
    cube.create_stored_measure("antennas", {"location": "sum", "period": "average"})
    cube.set_nested_array("antennas", [[1, 2], [4, 8], [16, 32]])
    return cube


class TestCubeBasics:
    def test_shape(self, antennas):
        assert antennas.dimension_ids == ["location", "period"]
        assert antennas.shape == (3, 2)
        assert antennas.num_cells == 6
        assert antennas.storage_size == 12
        assert antennas.byte_length == 6 * 4 + 6

    def test_lookup(self, antennas):
        assert antennas.get_dimension("period").get_items() == ["summer", "winter"]
        assert antennas.get_dimension("planet") is None
        assert antennas.get_dimension_index("period") == 1
        assert antennas.get_dimension_index("planet") is None

    def test_duplicate_dimensions(self):
        with pytest.raises(DuplicateDimensionError):
            Cube([create_period_dimension(), create_period_dimension()])

    def test_nested_views(self, antennas):
        assert antennas.get_nested_array("antennas") == [[1, 2], [4, 8], [16, 32]]
        assert antennas.get_nested_object("antennas") == {
            "paris": {"summer": 1, "winter": 2},
            "toledo": {"summer": 4, "winter": 8},
            "tokyo": {"summer": 16, "winter": 32},
        }

    def test_missing_cells_render_as_none(self, float_cube):
        cube = Cube(float_cube.dimensions)
        cube.create_stored_measure("antennas")
        cube.set_nested_object("antennas", {"paris": {"winter": 3}})
        assert cube.get_nested_array("antennas") == [[None, 3], [None, None], [None, None]]

    def test_nested_metadata(self, antennas):
        view = antennas.get_nested_object("antennas", with_metadata=True)
        assert view["paris"]["summer"] == {"value": 1, "has_data": True, "interpolated": False}

    def test_nested_totals(self, antennas):
        view = antennas.get_nested_object("antennas", with_totals=True)
        assert view["paris"]["all"] == 3
        assert view["all"]["summer"] == 21
        assert view["all"]["all"] == 63

    def test_set_nested_array_wrong_shape(self, antennas):
        with pytest.raises(InvalidDataError):
            antennas.set_nested_array("antennas", [[1, 2], [3, 4]])

    def test_hydrate_sparse(self, float_cube):
        float_cube.hydrate_from_sparse_nested_object(
            "antennas", {"tokyo": {"winter": 64}, "berlin": {"summer": 1}}
        )
        assert float_cube.get_nested_array("antennas")[2] == [16, 64]

    def test_hydrate_sparse_missing_leaves(self, float_cube):
        float_cube.hydrate_from_sparse_nested_object(
            "antennas", {"paris": {"summer": None}, "toledo": {"winter": math.nan}}
        )
        status = float_cube.get_status("antennas")
        assert status[0] == Status.NONE
        assert status[3] == Status.NONE
        assert float_cube.get_nested_array("antennas")[0] == [None, 2]

    def test_hydrate_sparse_rejects_non_numbers(self, float_cube):
        with pytest.raises(InvalidDataError):
            float_cube.hydrate_from_sparse_nested_object("antennas", {"paris": {"summer": "many"}})
        with pytest.raises(InvalidDataError):
            float_cube.hydrate_from_sparse_nested_object("antennas", {"paris": 3})

    def test_to_dataframe(self, antennas):
        df = antennas.to_dataframe()
        assert isinstance(df, pd.DataFrame)
        assert list(df.index.names) == ["location", "period"]
        assert len(df) == 6
        assert df.loc[("toledo", "winter"), "antennas"] == 8


class TestMeasures:
    def test_invalid_ids(self, antennas):
        with pytest.raises(InvalidIdentifierError):
            antennas.create_stored_measure("2fast")
        with pytest.raises(InvalidIdentifierError):
            antennas.create_computed_measure("x", "antennas * 2")
        with pytest.raises(DuplicateMeasureError):
            antennas.create_stored_measure("antennas")

    def test_unknown_rule(self, antennas):
        with pytest.raises(InvalidRuleError):
            antennas.create_stored_measure("masts", {"period": "median"})
        assert "masts" not in antennas.stored_measures

    def test_computed_measure(self, antennas):
        antennas.create_computed_measure("double", "antennas * 2")
        np.testing.assert_array_equal(antennas.get_data("double"), [2, 4, 8, 16, 32, 64])
        assert antennas.computed_measure_ids == ["double"]

    def test_computed_measure_unknown_reference(self, antennas):
        with pytest.raises(UnknownMeasureReferenceError):
            antennas.create_computed_measure("ratio", "antennas / people")

    def test_computed_measures_follow_drill_up(self, antennas):
        antennas.create_computed_measure("double", "antennas * 2")
        continents = antennas.drill_up("location", "continent")
        assert continents.get_nested_array("double") == [[10.0, 20.0], [32.0, 64.0]]

    def test_set_data_on_computed_measure(self, antennas):
        antennas.create_computed_measure("double", "antennas * 2")
        with pytest.raises(UnsupportedOperationError):
            antennas.set_data("double", [1] * 6)

    def test_unknown_measure(self, antennas):
        with pytest.raises(NoSuchMeasureError):
            antennas.get_data("people")

    def test_rename_stored_measure(self, antennas):
        antennas.create_computed_measure("double", "antennas * 2")
        renamed = antennas.rename_measure("antennas", "masts")
        assert renamed.stored_measure_ids == ["masts"]
        assert renamed.computed_measures["double"].variables() == ["masts"]
        assert "antennas" in antennas.stored_measures
        np.testing.assert_array_equal(renamed.get_data("double"), antennas.get_data("double"))

    def test_drop_stored_measure_drops_formulas(self, antennas):
        antennas.create_computed_measure("double", "antennas * 2")
        dropped = antennas.drop_measure("antennas")
        assert dropped.stored_measure_ids == []
        assert dropped.computed_measure_ids == []
        assert antennas.computed_measure_ids == ["double"]

    def test_declaring_does_not_leak_into_derived_cubes(self, antennas):
        derived = antennas.drill_up("location", "continent")
        antennas.create_stored_measure("people", {"location": "sum"})
        assert derived.stored_measure_ids == ["antennas"]
        assert "people" not in derived.stored_measures_rules


class TestAggregation:
    @pytest.mark.parametrize("rule,expected", [
        ("sum", [21, 42]),
        ("average", [7, 14]),
        ("highest", [16, 32]),
        ("lowest", [1, 2]),
        ("first", [1, 2]),
        ("last", [16, 32]),
    ])
    def test_remove_dimension(self, rule, expected):
        cube = create_antenna_cube(rule).remove_dimension("location")
        assert cube.dimension_ids == ["period"]
        assert cube.get_nested_array("antennas") == expected

    def test_drill_up_continents(self, antennas):
        continents = antennas.drill_up("location", "continent")
        assert continents.get_nested_array("antennas") == [[5, 10], [16, 32]]
        assert not continents.get_dimension("location").is_interpolated

    def test_drill_round_trip(self, float_cube):
        continents = float_cube.drill_up("location", "continent")
        cities = continents.drill_down("location", "city")
        assert cities.is_interpolated
        assert all(cities.get_status("antennas") & Status.INTERPOLATED)

        back = cities.drill_up("location", "continent")
        assert not back.is_interpolated
        np.testing.assert_array_equal(back.get_data("antennas"), continents.get_data("antennas"))

    def test_missing_rule(self):
        cube = Cube([create_location_dimension()])
        cube.create_stored_measure("antennas")
        cube.set_data("antennas", [1, 2, 3])
        with pytest.raises(MissingAggregationRuleError):
            cube.drill_up("location", "continent")

    def test_unknown_dimension(self, antennas):
        with pytest.raises(NoSuchDimensionError):
            antennas.drill_up("planet", "all")


class TestTimeCubes:
    def test_monthly_drill_down(self):
        monthly = create_monthly_cube()
        daily = monthly.drill_down("time", "day")
        assert daily.num_cells == 59
        assert daily.is_interpolated
        assert daily.get_data("days")[0] == pytest.approx(1.0)

        assert daily.drill_up("time", "week_mon").is_interpolated

        back = daily.drill_up("time", "month")
        assert not back.is_interpolated
        np.testing.assert_array_equal(back.get_data("days"), monthly.get_data("days"))

    def test_month_weeks(self):
        cube = create_month_week_cube()
        daily = cube.drill_down("time", "day")
        np.testing.assert_array_equal(daily.get_data("visits"), np.ones(38))

        assert not daily.drill_up("time", "week_mon").is_interpolated
        assert daily.drill_up("time", "week_sat").is_interpolated

    def test_dice_range(self):
        daily = create_monthly_cube().drill_down("time", "day")
        week = daily.dice_range("time", "day", "2010-01-04", "2010-01-10")
        assert week.num_cells == 7


class TestStructure:
    def test_reorder(self, antennas):
        reordered = antennas.reorder_dimensions(["period", "location"])
        assert reordered.get_nested_array("antennas") == [[1, 4, 16], [2, 8, 32]]
        assert reordered.get_nested_object("antennas")["winter"]["toledo"] == 8

    def test_noop_operations_return_same_cube(self, antennas):
        assert antennas.reorder_dimensions(["location", "period"]) is antennas
        assert antennas.dice("period", "season", ["summer", "winter"]) is antennas
        assert antennas.drill_up("location", "city") is antennas
        assert antennas.drill_down("location", "city") is antennas

    def test_dice(self, antennas):
        diced = antennas.dice("location", "city", ["tokyo", "paris"], reorder=True)
        assert diced.get_nested_array("antennas") == [[16, 32], [1, 2]]

    def test_dice_by_continent(self, antennas):
        europe = antennas.dice("location", "continent", ["europe"])
        assert europe.get_dimension("location").get_items() == ["paris", "toledo"]

    def test_slice(self, antennas):
        winter = antennas.slice("period", "season", "winter")
        assert winter.dimension_ids == ["location"]
        assert winter.get_nested_array("antennas") == [2, 8, 32]

    def test_project(self, antennas):
        projected = antennas.project(["period"])
        assert projected.get_nested_array("antennas") == [21, 42]

    def test_keep_and_remove_dimensions(self, antennas):
        assert antennas.keep_dimensions(["location"]).dimension_ids == ["location"]
        assert antennas.remove_dimensions(["location", "period"]).dimension_ids == []
        assert antennas.remove_dimensions(["location", "period"]).get_data("antennas")[0] == 63

    def test_add_then_remove_dimension(self, float_cube):
        operator = GenericDimension("operator", "name", ["orange", "docomo", "vodafone"])
        spread = float_cube.add_dimension(operator, {"antennas": "sum"}, index=1)
        assert spread.dimension_ids == ["location", "operator", "period"]
        assert spread.get_nested_array("antennas")[0][0][0] == pytest.approx(1 / 3)

        removed = spread.remove_dimension("operator")
        np.testing.assert_array_equal(removed.get_data("antennas"), float_cube.get_data("antennas"))

    def test_add_then_remove_dimension_integer_store(self, antennas):
        operator = GenericDimension("operator", "name", ["orange", "docomo", "vodafone"])
        spread = antennas.add_dimension(operator, {"antennas": "sum"})
        assert spread.get_nested_array("antennas")[1] == [[2, 1, 1], [3, 3, 2]]

        removed = spread.remove_dimension("operator")
        assert removed.get_nested_array("antennas") == [[1, 2], [4, 8], [16, 32]]
        np.testing.assert_array_equal(removed.get_data("antennas"), antennas.get_data("antennas"))

    @pytest.mark.parametrize("index", [-1, 3])
    def test_add_dimension_index_out_of_range(self, antennas, index):
        operator = GenericDimension("operator", "name", ["orange", "docomo"])
        with pytest.raises(InvalidDimensionIndexError):
            antennas.add_dimension(operator, {"antennas": "sum"}, index=index)

    def test_add_dimension_with_broadcast_rule(self, float_cube):
        operator = GenericDimension("operator", "name", ["orange", "docomo"])
        spread = float_cube.add_dimension(operator, {"antennas": "average"})
        assert spread.get_nested_array("antennas")[2] == [[16, 16], [32, 32]]

        removed = spread.remove_dimension("operator")
        np.testing.assert_array_equal(removed.get_data("antennas"), float_cube.get_data("antennas"))

    def test_add_dimension_strict_rules(self):
        cube = Cube([create_period_dimension()], CubeConfig(strict_rules=True))
        cube.create_stored_measure("antennas", {"period": "sum"})
        with pytest.raises(MissingAggregationRuleError):
            cube.add_dimension(create_location_dimension())

    def test_add_existing_dimension(self, antennas):
        with pytest.raises(DuplicateDimensionError):
            antennas.add_dimension(create_period_dimension())

    def test_remove_single_item_dimension(self):
        cube = Cube([GenericDimension("only", "kind", ["one"]), create_period_dimension()])
        cube.create_stored_measure("value")
        cube.set_nested_array("value", [[1, 2]])
        assert cube.remove_dimension("only").get_nested_array("value") == [1, 2]


class TestCombination:
    def test_compose(self, antennas):
        people = Cube([create_location_dimension(), create_period_dimension()])
        people.create_stored_measure("people", {"location": "sum", "period": "average"})
        people.set_nested_object("people", {"paris": {"summer": 10, "winter": 20}})

        composed = antennas.compose(people)
        assert composed.stored_measure_ids == ["antennas", "people"]
        assert composed.get_nested_array("antennas") == [[1, 2], [4, 8], [16, 32]]
        assert composed.get_nested_array("people")[0] == [10, 20]
        assert composed.get_nested_array("people")[1] == [None, None]

    def test_compose_union(self, antennas):
        summer = antennas.dice("period", "season", ["summer"])
        winter = antennas.dice("period", "season", ["winter"])
        composed = summer.compose(winter, union=True)
        assert composed.get_nested_array("antennas") == [[1, 2], [4, 8], [16, 32]]

    def test_compose_intersection(self, antennas):
        europe = antennas.dice("location", "city", ["paris", "toledo"])
        asia_and_paris = antennas.dice("location", "city", ["paris", "tokyo"])
        composed = europe.compose(asia_and_paris)
        assert composed.get_dimension("location").get_items() == ["paris"]

    def test_compose_keeps_computed_measures(self, antennas):
        antennas.create_computed_measure("double", "antennas * 2")
        composed = antennas.compose(create_antenna_cube())
        assert composed.computed_measure_ids == ["double"]

    def test_reshape(self, antennas):
        target = [
            create_period_dimension(),
            create_location_dimension().drill_up("continent"),
        ]
        reshaped = antennas.reshape(target)
        assert reshaped.dimension_ids == ["period", "location"]
        assert reshaped.get_nested_array("antennas") == [[5, 16], [10, 32]]

    def test_reshape_to_fewer_items(self, antennas):
        target = [create_location_dimension().dice("city", ["tokyo"]), create_period_dimension()]
        reshaped = antennas.reshape(target)
        assert reshaped.get_nested_array("antennas") == [[16, 32]]

    def test_reshape_incompatible(self, antennas):
        target = [GenericDimension("location", "zip", ["75001"]), create_period_dimension()]
        with pytest.raises(IncompatibleDimensionError):
            antennas.reshape(target)

        result = antennas.try_reshape(target)
        assert isinstance(result, ReshapeResult)
        assert not result.success
        assert result.cube is None
        assert result.error

    def test_hydrate_from_cube(self, antennas):
        empty = Cube([create_location_dimension().drill_up("continent")])
        empty.create_stored_measure("antennas", {"location": "sum"})
        assert empty.hydrate_from_cube(antennas)
        # The period dimension is summed away with its own rule.
        assert empty.get_nested_array("antennas") == [15, 48]

    def test_hydrate_from_incompatible_cube(self, antennas):
        other = Cube([TimeDimension("location", "month", "2010-01", "2010-02")])
        other.create_stored_measure("antennas")
        assert not other.hydrate_from_cube(antennas)
        assert other.get_nested_array("antennas") == [None, None]


class TestSerialization:
    def test_round_trip(self, antennas):
        antennas.create_computed_measure("double", "antennas * 2")
        restored = Cube.deserialize(antennas.drill_up("location", "continent").serialize())

        assert restored.dimension_ids == ["location", "period"]
        assert restored.get_nested_array("antennas") == [[5, 10], [16, 32]]
        assert restored.get_nested_array("double") == [[10, 20], [32, 64]]
        assert restored.drill_up("location", ALL).get_nested_array("antennas") == [[21, 42]]
        assert math.isnan(restored.config.default_value)

    def test_corrupt(self):
        with pytest.raises(InvalidDataError):
            Cube.deserialize(b"FCUB")
