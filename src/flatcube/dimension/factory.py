"""
Rebuild dimensions from their serialized form.
"""

from typing import Any, Dict, Mapping, Type

from flatcube.dimension.base import Dimension
from flatcube.dimension.catch_all import CatchAllDimension
from flatcube.dimension.generic import GenericDimension
from flatcube.dimension.time import TimeDimension
from flatcube.errors import InvalidDataError

DIMENSION_TYPES: Dict[str, Type[Dimension]] = {
    GenericDimension.kind: GenericDimension,
    TimeDimension.kind: TimeDimension,
    CatchAllDimension.kind: CatchAllDimension,
}


def deserialize_dimension(data: Mapping[str, Any]) -> Dimension:
    """Dispatch on the "type" tag written by Dimension.serialize()."""
    kind = data.get("type")
    if kind not in DIMENSION_TYPES:
        raise InvalidDataError(f"Unknown dimension type: {kind!r}")
    return DIMENSION_TYPES[kind].deserialize(data)
