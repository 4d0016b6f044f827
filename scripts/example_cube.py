#!/usr/bin/env python3
"""
Example: Exploring a small cube.

This script demonstrates how to:
1. Build a cube from the sample factories
2. Aggregate it (drill up, remove a dimension)
3. Spread monthly data over days and back
4. Compose two cubes and add a computed measure
"""

import os
import sys
import argparse
import logging

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from flatcube import Cube, GenericDimension
from configs.cubes import (
    create_antenna_cube, create_location_dimension, create_period_dimension, create_monthly_cube
)


def show(title: str, value):
    print(f"\n{title}")
    print(f"  {value}")


def main():
    parser = argparse.ArgumentParser(description="Walk through the cube operations")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log every cube operation")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(name)s %(levelname)s %(message)s"
        )

    print("=" * 60)
    print("FlatCube Demo: Antennas by location and season")
    print("=" * 60)

    # 1. Aggregation
    cube = create_antenna_cube()
    show("Antennas (city x season):", cube.get_nested_object("antennas"))
    show("By continent:", cube.drill_up("location", "continent").get_nested_array("antennas"))
    show("With totals:", cube.get_nested_object("antennas", with_totals=True))

    for rule in ("sum", "average", "highest", "lowest", "first", "last"):
        reduced = create_antenna_cube(rule).remove_dimension("location")
        show(f"Seasons, {rule} over cities:", reduced.get_nested_array("antennas"))

    # 2. Time hierarchy
    monthly = create_monthly_cube()
    daily = monthly.drill_down("time", "day")
    print(f"\nDaily cube: {daily.num_cells} cells, interpolated={daily.is_interpolated}")
    weekly = daily.drill_up("time", "week_mon")
    print(f"Weekly cube interpolated={weekly.is_interpolated}")
    back = daily.drill_up("time", "month")
    show(f"Back to months (interpolated={back.is_interpolated}):", back.get_nested_object("days"))

    # 3. Composition and computed measures
    population = Cube([create_location_dimension(), create_period_dimension()])
    population.create_stored_measure("population", {"location": "sum", "period": "average"})
    population.set_nested_object("population", {
        "paris": {"summer": 2.1, "winter": 2.2},
        "tokyo": {"summer": 14.0, "winter": 14.0},
    })

    composed = cube.compose(population)
    composed.create_computed_measure("density", "antennas / population")
    print("\nComposed cube:")
    print(composed.to_dataframe())

    extra = GenericDimension("operator", "name", ["orange", "docomo"])
    spread = cube.add_dimension(extra, {"antennas": "highest"})
    show("Spread over operators:", spread.get_nested_object("antennas", with_metadata=True))

    print(f"\nSerialized cube: {len(cube.serialize())} bytes")


if __name__ == "__main__":
    main()
