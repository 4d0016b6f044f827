"""
Cube module: the cube algebra, computed-measure formulas and nested views.
"""

from flatcube.cube.cube import Cube, ReshapeResult
from flatcube.cube.formula import Expression, FUNCTIONS
from flatcube.cube.formatter import (
    to_nested_array, from_nested_array, to_nested_object, from_nested_object, merge_nested
)

__all__ = [
    "Cube", "ReshapeResult",
    "Expression", "FUNCTIONS",
    "to_nested_array", "from_nested_array", "to_nested_object", "from_nested_object",
    "merge_nested",
]
