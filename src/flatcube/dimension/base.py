"""
Dimension interface shared by every hierarchy variant.

A dimension is an ordered set of items at one attribute (granularity) of a
hierarchy. Drilling moves the dimension to a coarser or finer attribute;
every operation returns a new dimension, or the same instance when nothing
changes.
"""

from abc import ABC, abstractmethod
from typing import Any, ClassVar, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from flatcube.errors import (
    DuplicateItemError, EmptyDimensionError, IncompatibleDimensionError, NoSuchAttributeError,
    NoSuchItemError
)

ALL = "all"


def ordered_unique(values: Iterable[Any]) -> List[Any]:
    """Distinct values in first-seen order."""
    return list(dict.fromkeys(values))


class Dimension(ABC):
    """
    Abstract base class for dimensions.

    Attributes:
        id: Dimension id, unique within a cube
        attribute: Current attribute; its items define the dimension's indices
        is_interpolated: True when the items' values were estimated from a
            coarser level instead of being observed or aggregated
        ground_attribute: Attribute at which the data was last observed
    """

    kind: ClassVar[str]

    def __init__(self, id: str, attribute: str, items: Sequence[str],
                 is_interpolated: bool = False, ground_attribute: Optional[str] = None):
        self.id = id
        self.attribute = attribute
        self._items: Tuple[str, ...] = tuple(items)
        if not self._items:
            raise EmptyDimensionError(f"Dimension '{id}' must have at least one item")

        self._index: Dict[str, int] = {item: i for i, item in enumerate(self._items)}
        if len(self._index) != len(self._items):
            raise DuplicateItemError(f"Dimension '{id}' has duplicate items")

        self.is_interpolated = is_interpolated
        self.ground_attribute = ground_attribute or attribute

    # Hierarchy primitives implemented by every variant.

    @property
    @abstractmethod
    def attributes(self) -> List[str]:
        """Every attribute of the hierarchy."""
        pass

    @abstractmethod
    def is_reachable(self, finer: str, coarser: str) -> bool:
        """Whether every item of `finer` belongs to exactly one item of `coarser`."""
        pass

    @abstractmethod
    def _convert(self, item: str, attribute: str, target: str) -> str:
        """Up-convert an item of `attribute` to the `target` item owning it."""
        pass

    @abstractmethod
    def _children(self, item: str, attribute: str, target: str) -> List[str]:
        """Down-convert an item of `attribute` to its ordered `target` items."""
        pass

    @abstractmethod
    def _derive(self, attribute: str, items: Sequence[str], is_interpolated: bool,
                ground_attribute: str) -> "Dimension":
        """New dimension sharing this hierarchy."""
        pass

    @abstractmethod
    def serialize(self) -> Dict[str, Any]:
        pass

    # Items.

    @property
    def items(self) -> Tuple[str, ...]:
        return self._items

    def get_items(self) -> List[str]:
        return list(self._items)

    @property
    def num_items(self) -> int:
        return len(self._items)

    def get_index(self, item: str) -> Optional[int]:
        """Index of `item`, or None when the dimension does not have it."""
        return self._index.get(item)

    def label(self, item: str) -> str:
        return str(item)

    def convert_item(self, item: str, attribute: str) -> str:
        """The item of `attribute` that owns `item` (an item of the current attribute)."""
        if not self.is_reachable(self.attribute, attribute):
            raise NoSuchAttributeError(
                f"Attribute '{attribute}' is not coarser than '{self.attribute}' "
                f"in dimension '{self.id}'"
            )
        return self._convert(item, self.attribute, attribute)

    def item_positions(self, other: "Dimension") -> np.ndarray:
        """For each item of `other`, its index in this dimension (-1 if absent)."""
        return np.array([self._index.get(item, -1) for item in other.items], dtype=np.intp)

    def group_indices(self, finer: "Dimension") -> np.ndarray:
        """For each item of `finer`, the index of the item of this dimension owning it."""
        return np.array(
            [self._index[finer.convert_item(item, self.attribute)] for item in finer.items],
            dtype=np.intp
        )

    # Drilling.

    def can_drill_up(self, attribute: str) -> bool:
        return attribute in self.attributes and self.is_reachable(self.attribute, attribute)

    def can_drill_down(self, attribute: str) -> bool:
        return attribute in self.attributes and self.is_reachable(attribute, self.attribute)

    def drill_up(self, attribute: str) -> "Dimension":
        """
        Move to a coarser attribute.

        The new items are the distinct owners of the current items, in
        first-seen order. An interpolated dimension stops being interpolated
        when the target is its ground attribute or a level the ground
        attribute nests into.
        """
        if attribute == self.attribute:
            return self
        if not self.can_drill_up(attribute):
            raise NoSuchAttributeError(
                f"Cannot drill up dimension '{self.id}' from '{self.attribute}' to '{attribute}'"
            )

        items = ordered_unique(self._convert(item, self.attribute, attribute) for item in self._items)
        if not self.is_interpolated or self.is_reachable(self.ground_attribute, attribute):
            return self._derive(attribute, items, False, attribute)
        return self._derive(attribute, items, True, self.ground_attribute)

    def drill_down(self, attribute: str) -> "Dimension":
        """Move to a finer attribute; the result is always interpolated."""
        if attribute == self.attribute:
            return self
        if not self.can_drill_down(attribute):
            raise NoSuchAttributeError(
                f"Cannot drill down dimension '{self.id}' from '{self.attribute}' to '{attribute}'"
            )

        items = ordered_unique(
            child
            for item in self._items
            for child in self._children(item, self.attribute, attribute)
        )
        return self._derive(attribute, items, True, self.ground_attribute)

    # Restriction.

    def dice(self, attribute: str, items: Sequence[str], reorder: bool = False) -> "Dimension":
        """
        Restrict the items to those selected at `attribute`.

        When `attribute` is coarser than the current attribute, the current
        items owned by a selected item are kept. With `reorder`, items follow
        the order of `items` (current attribute only).
        """
        if attribute == self.attribute:
            if reorder:
                selected = [item for item in items if item in self._index]
            else:
                wanted = set(items)
                selected = [item for item in self._items if item in wanted]
        elif self.can_drill_up(attribute):
            wanted = set(items)
            selected = [
                item for item in self._items
                if self._convert(item, self.attribute, attribute) in wanted
            ]
        else:
            raise NoSuchAttributeError(
                f"Cannot dice dimension '{self.id}' at '{self.attribute}' by '{attribute}'"
            )

        return self._restrict(ordered_unique(selected))

    def dice_range(self, attribute: str, start: str, end: str) -> "Dimension":
        """Restrict the items to the contiguous range [start, end] of `attribute`."""
        if attribute == self.attribute:
            groups = list(self._items)
        elif self.can_drill_up(attribute):
            groups = ordered_unique(self._convert(item, self.attribute, attribute) for item in self._items)
        else:
            raise NoSuchAttributeError(
                f"Cannot dice dimension '{self.id}' at '{self.attribute}' by '{attribute}'"
            )

        for bound in (start, end):
            if bound not in groups:
                raise NoSuchItemError(f"Dimension '{self.id}' has no item '{bound}' at '{attribute}'")

        wanted = set(groups[groups.index(start):groups.index(end) + 1])
        if attribute == self.attribute:
            selected = [item for item in self._items if item in wanted]
        else:
            selected = [
                item for item in self._items
                if self._convert(item, self.attribute, attribute) in wanted
            ]
        return self._restrict(selected)

    def _restrict(self, selected: List[str]) -> "Dimension":
        if tuple(selected) == self._items:
            return self
        if not selected:
            raise EmptyDimensionError(f"No item of dimension '{self.id}' is selected")
        return self._derive(self.attribute, selected, self.is_interpolated, self.ground_attribute)

    # Combination.

    def union(self, other: "Dimension") -> "Dimension":
        """Items of this dimension followed by the items only `other` has."""
        self._check_combinable(other)
        items = self._items + tuple(item for item in other.items if item not in self._index)
        if items == self._items and not other.is_interpolated:
            return self
        return self._combine(other, items)

    def intersect(self, other: "Dimension") -> "Dimension":
        """Items of this dimension that `other` also has, in this dimension's order."""
        self._check_combinable(other)
        items = tuple(item for item in self._items if other.get_index(item) is not None)
        if not items:
            raise EmptyDimensionError(
                f"Dimensions '{self.id}' have no item in common"
            )
        if items == self._items and not other.is_interpolated:
            return self
        return self._combine(other, items)

    def _check_combinable(self, other: "Dimension"):
        if other.kind != self.kind or other.id != self.id or other.attribute != self.attribute:
            raise IncompatibleDimensionError(
                f"Cannot combine dimension '{self.id}' ({self.kind}, {self.attribute}) "
                f"with '{other.id}' ({other.kind}, {other.attribute})"
            )

    def _combine(self, other: "Dimension", items: Sequence[str]) -> "Dimension":
        return self._derive(
            self.attribute, items,
            self.is_interpolated or other.is_interpolated,
            self.ground_attribute
        )

    def __repr__(self):
        return (
            f"{type(self).__name__}(id={self.id!r}, attribute={self.attribute!r}, "
            f"num_items={self.num_items}, is_interpolated={self.is_interpolated})"
        )
