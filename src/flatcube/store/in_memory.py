"""
In-memory typed store: a flat numeric buffer plus a status bitmap.

Cells are addressed by a flat offset computed from per-dimension item
indices, first dimension most significant (row-major). Every reindexing
operation reshapes the flat buffers to the cube shape, works along one
axis, and flattens the result into a freshly allocated store.
"""

import logging
import math
from typing import Callable, Dict, List, Sequence, Tuple

import numpy as np

from flatcube.errors import InvalidDataError
from flatcube.rules import AggregationRule, coerce_rule
from flatcube.serialization import pack_record, unpack_record
from flatcube.store.status import Status, STATUS_DTYPE

logger = logging.getLogger(__name__)

SUPPORTED_DTYPES = (
    "int8", "uint8", "int16", "uint16", "int32", "uint32", "float32", "float64",
)

_HAS_DATA = STATUS_DTYPE(Status.HAS_DATA)
_INTERPOLATED = STATUS_DTYPE(Status.INTERPOLATED)


def _accumulator(dtype: np.dtype) -> np.dtype:
    return dtype if np.issubdtype(dtype, np.floating) else np.dtype(np.int64)


def _sum(values: np.ndarray, has_data: np.ndarray) -> np.ndarray:
    # Rows are added one by one, in item order, in the store precision.
    # _split_sum relies on this order to make SUM drill-downs exactly reversible.
    masked = np.where(has_data, values, 0).astype(_accumulator(values.dtype))
    total = masked[0].copy()
    for row in masked[1:]:
        total = total + row
    return total


def _average(values: np.ndarray, has_data: np.ndarray) -> np.ndarray:
    total = np.where(has_data, values, 0).astype(np.float64).sum(axis=0)
    count = has_data.sum(axis=0)
    return np.divide(total, count, out=np.zeros_like(total), where=count > 0)


def _highest(values: np.ndarray, has_data: np.ndarray) -> np.ndarray:
    return np.where(has_data, values, -np.inf).max(axis=0)


def _lowest(values: np.ndarray, has_data: np.ndarray) -> np.ndarray:
    return np.where(has_data, values, np.inf).min(axis=0)


def _first(values: np.ndarray, has_data: np.ndarray) -> np.ndarray:
    index = has_data.argmax(axis=0)
    return np.take_along_axis(values, np.asarray(index)[np.newaxis], axis=0)[0]


def _last(values: np.ndarray, has_data: np.ndarray) -> np.ndarray:
    index = values.shape[0] - 1 - has_data[::-1].argmax(axis=0)
    return np.take_along_axis(values, np.asarray(index)[np.newaxis], axis=0)[0]


# Each reducer collapses axis 0 of `values`, only looking at cells where
# `has_data` is set. Results for groups without data are discarded.
REDUCERS: Dict[AggregationRule, Callable[[np.ndarray, np.ndarray], np.ndarray]] = {
    AggregationRule.SUM: _sum,
    AggregationRule.AVERAGE: _average,
    AggregationRule.HIGHEST: _highest,
    AggregationRule.LOWEST: _lowest,
    AggregationRule.FIRST: _first,
    AggregationRule.LAST: _last,
}


def _split_sum(values: np.ndarray, parents: np.ndarray) -> np.ndarray:
    """
    Children values of a SUM drill-down, parent axis first.

    Integers are floor-divided, the remainder going one unit at a time to
    the leading children. Floats give every child but the last an equal
    share; the last child takes the parent value minus the shares added up
    in order, so that _sum gives the parent value back exactly.
    """
    result = np.empty((parents.size,) + values.shape[1:], dtype=values.dtype)
    integer = np.issubdtype(values.dtype, np.integer)

    for parent in range(values.shape[0]):
        children = np.flatnonzero(parents == parent)
        if children.size == 0:
            continue
        value = values[parent]

        if integer:
            share, remainder = np.divmod(value.astype(np.int64), children.size)
            for rank, child in enumerate(children):
                result[child] = share + (rank < remainder)
            continue

        share = np.asarray(value / children.size).astype(values.dtype)
        total = np.zeros_like(share)
        for child in children[:-1]:
            result[child] = share
            total = total + share
        result[children[-1]] = np.where(np.isfinite(value), value - total, value)

    return result


class InMemoryStore:
    """
    Fixed-size numeric buffer with one status byte per cell.

    Attributes:
        size: Number of cells
        dtype: Element type name (one of SUPPORTED_DTYPES)
        default_value: Value of cells that hold no data
    """

    def __init__(self, size: int, dtype: str = "float32", default_value: float = math.nan):
        if dtype not in SUPPORTED_DTYPES:
            raise ValueError(f"Unsupported store type: {dtype}")
        if np.issubdtype(np.dtype(dtype), np.integer) and not math.isfinite(default_value):
            raise ValueError(f"Integer stores need a finite default value, got {default_value}")

        self.size = int(size)
        self.dtype = dtype
        self.default_value = default_value
        self._data = np.full(self.size, default_value, dtype=dtype)
        self._status = np.zeros(self.size, dtype=STATUS_DTYPE)

    @property
    def data(self) -> np.ndarray:
        """Read-only view of the value buffer."""
        view = self._data.view()
        view.flags.writeable = False
        return view

    @data.setter
    def data(self, values):
        self.set_data(values)

    @property
    def status(self) -> np.ndarray:
        """Read-only view of the status bitmap."""
        view = self._status.view()
        view.flags.writeable = False
        return view

    @property
    def byte_length(self) -> int:
        return self._data.nbytes + self._status.nbytes

    def set_data(self, values: Sequence[float]):
        """
        Replace the whole buffer.

        Cells receiving NaN (or None) take the default value and lose their
        HAS_DATA flag; every other cell is marked HAS_DATA.
        """
        try:
            values = np.asarray(values, dtype=np.float64).ravel()
        except (TypeError, ValueError) as e:
            raise InvalidDataError(f"Values cannot be stored as numbers: {e}") from e

        if values.size != self.size:
            raise InvalidDataError(
                f"Expected {self.size} values, got {values.size}"
            )

        missing = np.isnan(values)
        self._data = np.where(missing, self.default_value, values).astype(self.dtype)
        self._status = np.where(missing, 0, _HAS_DATA).astype(STATUS_DTYPE)

    def get_value(self, offset: int):
        return self._data[offset].item()

    def get_status(self, offset: int) -> Status:
        return Status(int(self._status[offset]))

    def set_value(self, offset: int, value: float, status: Status = Status.HAS_DATA):
        """Write one cell; None or NaN clear it like set_data does."""
        if isinstance(value, (str, bytes)):
            raise InvalidDataError(f"Value cannot be stored as a number: {value!r}")
        try:
            number = math.nan if value is None else float(value)
        except (TypeError, ValueError) as e:
            raise InvalidDataError(f"Value cannot be stored as a number: {value!r}") from e

        if math.isnan(number):
            self._data[offset] = self.default_value
            self._status[offset] = Status.NONE
            return
        self._data[offset] = number
        self._status[offset] = status

    def copy(self) -> "InMemoryStore":
        return self._derive(self._data.copy(), self._status.copy())

    def _derive(self, data: np.ndarray, status: np.ndarray) -> "InMemoryStore":
        """Wrap freshly computed buffers in a store of the same type."""
        store = InMemoryStore.__new__(InMemoryStore)
        store.size = int(data.size)
        store.dtype = self.dtype
        store.default_value = self.default_value
        store._data = np.ascontiguousarray(data, dtype=self.dtype)
        store._status = np.ascontiguousarray(status, dtype=STATUS_DTYPE)
        return store

    def _shaped(self, shape: Sequence[int]) -> Tuple[np.ndarray, np.ndarray]:
        shape = tuple(int(n) for n in shape)
        if int(np.prod(shape, dtype=np.int64)) != self.size:
            raise InvalidDataError(
                f"Shape {shape} does not match a store of {self.size} cells"
            )
        return self._data.reshape(shape), self._status.reshape(shape)

    def reorder(self, shape: Sequence[int], order: Sequence[int]) -> "InMemoryStore":
        """
        Re-layout the cells for a new dimension order.

        Args:
            shape: Number of items of each dimension, in the current order
            order: For each new position, the current position of the dimension
        """
        data, status = self._shaped(shape)
        return self._derive(
            np.transpose(data, order).ravel(),
            np.transpose(status, order).ravel()
        )

    def dice(self, shape: Sequence[int], axis: int, indices: Sequence[int]) -> "InMemoryStore":
        """Keep the slices of `axis` listed in `indices`, in that order."""
        data, status = self._shaped(shape)
        indices = np.asarray(indices, dtype=np.intp)
        return self._derive(
            np.take(data, indices, axis=axis).ravel(),
            np.take(status, indices, axis=axis).ravel()
        )

    def drill_up(self, shape: Sequence[int], axis: int, groups: Sequence[int],
                 num_groups: int, rule) -> "InMemoryStore":
        """
        Aggregate the slices of `axis` that belong to the same group.

        Args:
            shape: Number of items of each dimension
            axis: Position of the dimension being aggregated
            groups: For each current item of that dimension, its group index
            num_groups: Number of items after aggregation
            rule: Reducer used within each group
        """
        reducer = REDUCERS[coerce_rule(rule)]
        data, status = self._shaped(shape)
        data = np.moveaxis(data, axis, 0)
        status = np.moveaxis(status, axis, 0)
        groups = np.asarray(groups, dtype=np.intp)

        out_shape = (int(num_groups),) + data.shape[1:]
        new_data = np.full(out_shape, self.default_value, dtype=self.dtype)
        new_status = np.zeros(out_shape, dtype=STATUS_DTYPE)

        for group in range(int(num_groups)):
            members = np.flatnonzero(groups == group)
            if members.size == 0:
                continue

            values = data[members]
            flags = status[members]
            has_data = (flags & _HAS_DATA) != 0
            any_data = has_data.any(axis=0)

            reduced = reducer(values, has_data)
            new_data[group] = np.where(any_data, reduced, self.default_value)
            merged = np.bitwise_or.reduce(flags, axis=0) & ~_HAS_DATA
            new_status[group] = merged | np.where(any_data, _HAS_DATA, 0).astype(STATUS_DTYPE)

        return self._derive(
            np.moveaxis(new_data, 0, axis).ravel(),
            np.moveaxis(new_status, 0, axis).ravel()
        )

    def drill_down(self, shape: Sequence[int], axis: int, parents: Sequence[int],
                   rule=None) -> "InMemoryStore":
        """
        Expand every slice of `axis` into the slices of its children.

        Children receive the parent's value, or a share of it when the rule
        is SUM (see _split_sum), and are all flagged INTERPOLATED.

        Args:
            shape: Number of items of each dimension
            axis: Position of the dimension being expanded
            parents: For each new item of that dimension, the index of its parent
            rule: Aggregation rule of the measure on that dimension, if any
        """
        data, status = self._shaped(shape)
        parents = np.asarray(parents, dtype=np.intp)

        new_data = np.take(data, parents, axis=axis)
        new_status = np.take(status, parents, axis=axis) | _INTERPOLATED

        if coerce_rule(rule) is AggregationRule.SUM:
            split = np.moveaxis(_split_sum(np.moveaxis(data, axis, 0), parents), 0, axis)
            has_data = (new_status & _HAS_DATA) != 0
            new_data = np.where(has_data, split, new_data)

        return self._derive(new_data.ravel(), new_status.ravel())

    def load(self, other: "InMemoryStore", shape: Sequence[int],
             index_maps: List[np.ndarray]):
        """
        Copy the cells of `other` that hold data into this store, in place.

        Args:
            other: Store laid out along the same dimensions (possibly other items)
            shape: Number of items of each dimension of this store
            index_maps: For each dimension, the position in this store of every
                item of `other` (-1 when this store does not have the item)
        """
        other_shape = tuple(len(mapping) for mapping in index_maps)
        other_data, other_status = other._shaped(other_shape)
        data, status = self._shaped(shape)

        keep = [np.flatnonzero(mapping >= 0) for mapping in index_maps]
        targets = [mapping[kept] for mapping, kept in zip(index_maps, keep)]
        source = np.ix_(*keep)
        target = np.ix_(*targets)

        values = other_data[source]
        flags = other_status[source]
        has_data = (flags & _HAS_DATA) != 0

        data[target] = np.where(has_data, values.astype(self.dtype), data[target])
        status[target] = np.where(has_data, flags, status[target])
        logger.debug(f"Loaded {int(has_data.sum())} cells into store of {self.size} cells")

    def serialize(self) -> bytes:
        return pack_record(
            {"dtype": self.dtype, "default_value": self.default_value, "size": self.size},
            [self._data.tobytes(), self._status.tobytes()]
        )

    @classmethod
    def deserialize(cls, buffer: bytes) -> "InMemoryStore":
        header, blobs = unpack_record(buffer)
        if len(blobs) != 2:
            raise InvalidDataError("A serialized store holds exactly two buffers")

        store = cls(header["size"], header["dtype"], header["default_value"])
        data = np.frombuffer(blobs[0], dtype=store.dtype)
        status = np.frombuffer(blobs[1], dtype=STATUS_DTYPE)
        if data.size != store.size or status.size != store.size:
            raise InvalidDataError("Serialized buffers do not match the store size")

        store._data = data.copy()
        store._status = status.copy()
        return store

    def __repr__(self):
        return f"InMemoryStore(size={self.size}, dtype={self.dtype!r})"
