"""
Catch-all placeholder dimension.

Holds a single "all" item standing for every item of the dimension it
wraps. Adding a dimension to a cube inserts a catch-all first (the existing
data belongs to this single item) and then drills it down to the real
dimension.
"""

from typing import Any, Dict, List, Mapping

from flatcube.dimension.base import ALL, Dimension
from flatcube.errors import NoSuchAttributeError


class CatchAllDimension(Dimension):
    """Single-item dimension whose only finer attribute is its child's."""

    kind = "catch_all"

    def __init__(self, id: str, child: Dimension):
        super().__init__(id, ALL, (ALL,))
        self.child = child

    @property
    def attributes(self) -> List[str]:
        return [ALL, self.child.attribute]

    def is_reachable(self, finer: str, coarser: str) -> bool:
        return coarser == ALL or finer == coarser

    def _convert(self, item: str, attribute: str, target: str) -> str:
        return ALL

    def _children(self, item: str, attribute: str, target: str) -> List[str]:
        return self.child.get_items()

    def _derive(self, attribute, items, is_interpolated, ground_attribute) -> "CatchAllDimension":
        return CatchAllDimension(self.id, self.child)

    def drill_down(self, attribute: str) -> Dimension:
        """Drilling down to the child's attribute yields the child itself."""
        if attribute == self.attribute:
            return self
        if attribute != self.child.attribute:
            raise NoSuchAttributeError(
                f"Catch-all dimension '{self.id}' can only drill down to '{self.child.attribute}'"
            )
        return self.child

    def serialize(self) -> Dict[str, Any]:
        return {"type": self.kind, "id": self.id, "child": self.child.serialize()}

    @classmethod
    def deserialize(cls, data: Mapping[str, Any]) -> "CatchAllDimension":
        from flatcube.dimension.factory import deserialize_dimension
        return cls(data["id"], deserialize_dimension(data["child"]))
