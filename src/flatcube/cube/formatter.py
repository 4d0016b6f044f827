"""
Conversions between flat (data, status) buffers and nested views.

Nesting follows the dimension order: the first dimension is the outermost
level. Cells without data are rendered as None.
"""

from typing import Any, Dict, List, Sequence

import numpy as np

from flatcube.dimension.base import Dimension
from flatcube.errors import InvalidDataError
from flatcube.store.status import Status


def _shape(dimensions: Sequence[Dimension]) -> tuple:
    return tuple(dimension.num_items for dimension in dimensions)


def _cells(data: np.ndarray, status: np.ndarray) -> List[Any]:
    has_data = (np.asarray(status) & Status.HAS_DATA) != 0
    return [value if present else None for value, present in zip(np.asarray(data).tolist(), has_data)]


def to_nested_array(data: np.ndarray, status: np.ndarray, dimensions: Sequence[Dimension]):
    """Nested lists indexed by item position, one level per dimension."""
    cells = np.empty(len(data), dtype=object)
    cells[:] = _cells(data, status)
    return cells.reshape(_shape(dimensions)).tolist()


def from_nested_array(values, dimensions: Sequence[Dimension]) -> np.ndarray:
    """Flatten nested lists; None becomes NaN (no data)."""
    try:
        array = np.array(values, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise InvalidDataError(f"Nested array is not rectangular or not numeric: {e}") from e

    shape = _shape(dimensions)
    if array.shape != shape:
        raise InvalidDataError(f"Nested array has shape {array.shape}, expected {shape}")
    return array.ravel()


def _leaf(value, has_data: bool, interpolated: bool, with_metadata: bool):
    if not with_metadata:
        return value if has_data else None
    return {
        "value": value if has_data else None,
        "has_data": has_data,
        "interpolated": interpolated,
    }


def to_nested_object(data: np.ndarray, status: np.ndarray, dimensions: Sequence[Dimension],
                     with_metadata: bool = False):
    """
    Nested dicts keyed by item, one level per dimension.

    Args:
        data: Flat values
        status: Flat status bitmap
        dimensions: Dimensions in nesting order
        with_metadata: Render leaves as dicts carrying the status flags
    """
    values = np.asarray(data).tolist()
    flags = np.asarray(status).tolist()

    def build(depth: int, offset: int):
        if depth == len(dimensions):
            flag = flags[offset]
            return _leaf(
                values[offset],
                bool(flag & Status.HAS_DATA),
                bool(flag & Status.INTERPOLATED),
                with_metadata
            )
        dimension = dimensions[depth]
        return {
            item: build(depth + 1, offset * dimension.num_items + index)
            for index, item in enumerate(dimension.items)
        }

    return build(0, 0)


def from_nested_object(obj, dimensions: Sequence[Dimension]) -> np.ndarray:
    """Flatten nested dicts; missing keys and None become NaN (no data)."""
    result = np.full(int(np.prod(_shape(dimensions), dtype=np.int64)), np.nan)

    def visit(node, depth: int, offset: int):
        if depth == len(dimensions):
            if node is not None:
                result[offset] = node
            return
        if not isinstance(node, dict):
            raise InvalidDataError(
                f"Expected a mapping for dimension '{dimensions[depth].id}', got {type(node).__name__}"
            )
        dimension = dimensions[depth]
        for index, item in enumerate(dimension.items):
            if item in node:
                visit(node[item], depth + 1, offset * dimension.num_items + index)

    visit(obj, 0, 0)
    return result


def merge_nested(target: Dict[str, Any], source: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge `source` into `target` (in place); source wins on leaves."""
    for key, value in source.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            merge_nested(target[key], value)
        else:
            target[key] = value
    return target
