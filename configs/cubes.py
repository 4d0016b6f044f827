"""
Sample cubes used by the example script and the tests.

- Antenna cube: antenna counts by location (city -> continent) and season
- Monthly cube: daily-consistent totals for January and February 2010
- Month-week cube: the same period cut by Monday-starting month weeks
"""

from flatcube import Cube, GenericDimension, TimeDimension

ANTENNA_COUNTS = [[1, 2], [4, 8], [16, 32]]

CONTINENTS = {"paris": "europe", "toledo": "europe", "tokyo": "asia"}


def create_location_dimension(with_continents: bool = True) -> GenericDimension:
    """
    Location dimension.

    Hierarchy: city -> continent -> All
    """
    location = GenericDimension(
        "location", "city", ["paris", "toledo", "tokyo"],
        labels={"paris": "Paris", "toledo": "Toledo", "tokyo": "Tokyo"}
    )
    if with_continents:
        location = location.add_attribute(
            "city", "continent", CONTINENTS, labels={"europe": "Europe", "asia": "Asia"}
        )
    return location


def create_period_dimension() -> GenericDimension:
    return GenericDimension("period", "season", ["summer", "winter"])


def create_antenna_cube(rule: str = "sum", with_continents: bool = True) -> Cube:
    """
    Antenna cube from a 3x2 grid of counts.

    Dimensions:
    - location: paris, toledo, tokyo
    - period: summer, winter

    Measures: antennas (same rule on both dimensions)
    """
    cube = Cube([create_location_dimension(with_continents), create_period_dimension()])
    cube.create_stored_measure(
        "antennas", {"location": rule, "period": rule}, dtype="uint32", default_value=0
    )
    cube.set_nested_array("antennas", ANTENNA_COUNTS)
    return cube


def create_monthly_cube() -> Cube:
    """
    Monthly cube where every day weighs 1.

    Dimensions:
    - time: 2010-01, 2010-02

    Measures: days (sum over time)
    """
    cube = Cube([TimeDimension("time", "month", "2010-01", "2010-02")])
    cube.create_stored_measure("days", {"time": "sum"}, dtype="float64")
    cube.set_nested_array("days", [31, 28])
    return cube


def create_month_week_cube() -> Cube:
    """
    Cube over the Monday-starting month weeks of 2010-01-W1-mon .. 2010-02-W1-mon.

    Measures: visits (sum over time), one per day of each period
    """
    time = TimeDimension("time", "month_week_mon", "2010-01-W1-mon", "2010-02-W1-mon")
    cube = Cube([time])
    cube.create_stored_measure("visits", {"time": "sum"}, dtype="float64")
    cube.set_nested_array("visits", [
        len(time.drill_down("day").dice("month_week_mon", [item]).items)
        for item in time.items
    ])
    return cube
