"""
FlatCube: In-Memory Multidimensional Cubes over Flat Typed Buffers

Dimensions with drillable hierarchies (categorical and calendar), stored
measures backed by numpy buffers with a per-cell status bitmap, and an
immutable cube algebra (slice, dice, drill, project, compose, reshape).
"""

__version__ = "0.1.0"

from flatcube.config import CubeConfig
from flatcube.rules import AggregationRule
from flatcube.dimension import (
    ALL, Dimension, GenericDimension, TimeDimension, CatchAllDimension
)
from flatcube.store import InMemoryStore, Status
from flatcube.cube import Cube, ReshapeResult, Expression

__all__ = [
    "CubeConfig",
    "AggregationRule",
    "ALL",
    "Dimension",
    "GenericDimension",
    "TimeDimension",
    "CatchAllDimension",
    "InMemoryStore",
    "Status",
    "Cube",
    "ReshapeResult",
    "Expression",
]
