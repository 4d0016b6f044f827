"""
Dimension module: ordered item sets over attribute hierarchies.
"""

from flatcube.dimension.base import ALL, Dimension
from flatcube.dimension.generic import GenericDimension, GenericHierarchy
from flatcube.dimension.time import TimeDimension, TIME_ATTRIBUTES, period_of, period_range
from flatcube.dimension.catch_all import CatchAllDimension
from flatcube.dimension.factory import deserialize_dimension, DIMENSION_TYPES

__all__ = [
    "ALL", "Dimension",
    "GenericDimension", "GenericHierarchy",
    "TimeDimension", "TIME_ATTRIBUTES", "period_of", "period_range",
    "CatchAllDimension",
    "deserialize_dimension", "DIMENSION_TYPES",
]
