"""
Generic categorical dimension.

The hierarchy is built from a base attribute (e.g. city) by declaring
coarser attributes, each one mapping the items of an existing attribute to
coarser items (city -> country -> continent). Every hierarchy ends with the
implicit "all" attribute.
"""

from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from flatcube.dimension.base import ALL, Dimension, ordered_unique
from flatcube.errors import NoSuchAttributeError


def _group(values: Sequence[str]) -> Dict[str, List[int]]:
    members: Dict[str, List[int]] = {}
    for index, value in enumerate(values):
        members.setdefault(value, []).append(index)
    return members


class GenericHierarchy:
    """
    Attribute tree of a generic dimension.

    Every attribute is stored as the value it takes for each base item, so
    conversions between any two attributes go through the base items.
    Instances are never modified once built.
    """

    def __init__(self, base_attribute: str, base_items: Sequence[str],
                 parents: Optional[Mapping[str, str]] = None,
                 mappings: Optional[Mapping[str, Sequence[str]]] = None,
                 labels: Optional[Mapping[str, str]] = None):
        self.base_attribute = base_attribute
        self.base_items: Tuple[str, ...] = tuple(base_items)
        self.parents: Dict[str, str] = dict(parents or {})
        self.mappings: Dict[str, Tuple[str, ...]] = {base_attribute: self.base_items}
        for attribute, values in (mappings or {}).items():
            self.mappings[attribute] = tuple(values)
        self.labels: Dict[str, str] = dict(labels or {})
        self.members = {attribute: _group(values) for attribute, values in self.mappings.items()}

    @property
    def attributes(self) -> List[str]:
        return list(self.mappings) + [ALL]

    def chain(self, attribute: str) -> List[str]:
        """The attribute followed by every finer attribute down to the base."""
        chain = [attribute]
        while chain[-1] in self.parents:
            chain.append(self.parents[chain[-1]])
        return chain

    def is_reachable(self, finer: str, coarser: str) -> bool:
        if coarser == ALL:
            return True
        if finer == ALL or coarser not in self.mappings:
            return False
        return finer in self.chain(coarser)

    def knows(self, attribute: str, item: str) -> bool:
        return attribute == ALL or item in self.members.get(attribute, {})

    def convert(self, item: str, attribute: str, target: str) -> str:
        if target == ALL:
            return ALL
        base_index = self.members[attribute][item][0]
        return self.mappings[target][base_index]

    def children(self, item: str, attribute: str, target: str) -> List[str]:
        if attribute == ALL:
            indices = range(len(self.base_items))
        else:
            indices = self.members[attribute][item]
        values = self.mappings[target]
        return ordered_unique(values[i] for i in indices)

    def with_attribute(self, parent: str, attribute: str, mapping: Mapping[str, str],
                       labels: Optional[Mapping[str, str]] = None) -> "GenericHierarchy":
        if attribute == ALL or attribute in self.mappings:
            raise ValueError(f"Attribute '{attribute}' already exists")
        if parent not in self.mappings:
            raise NoSuchAttributeError(f"No such attribute: '{parent}'")

        parent_values = self.mappings[parent]
        for value in ordered_unique(parent_values):
            if value not in mapping:
                raise ValueError(f"No '{attribute}' given for {parent} '{value}'")

        return GenericHierarchy(
            self.base_attribute,
            self.base_items,
            {**self.parents, attribute: parent},
            {**self.mappings, attribute: [mapping[value] for value in parent_values]},
            {**self.labels, **(labels or {})}
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "base_attribute": self.base_attribute,
            "base_items": list(self.base_items),
            "parents": self.parents,
            "mappings": {
                attribute: list(values)
                for attribute, values in self.mappings.items()
                if attribute != self.base_attribute
            },
            "labels": self.labels,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GenericHierarchy":
        return cls(
            data["base_attribute"],
            data["base_items"],
            data.get("parents"),
            data.get("mappings"),
            data.get("labels")
        )


class GenericDimension(Dimension):
    """
    Categorical dimension with a user-declared hierarchy.

    Example:
        >>> location = GenericDimension("location", "city", ["paris", "toledo", "tokyo"])
        >>> location = location.add_attribute(
        ...     "city", "continent", {"paris": "europe", "toledo": "europe", "tokyo": "asia"})
        >>> location.drill_up("continent").get_items()
        ['europe', 'asia']
    """

    kind = "generic"

    def __init__(self, id: str, attribute: str, items: Sequence[str],
                 labels: Optional[Mapping[str, str]] = None,
                 is_interpolated: bool = False,
                 ground_attribute: Optional[str] = None,
                 hierarchy: Optional[GenericHierarchy] = None):
        super().__init__(id, attribute, items, is_interpolated, ground_attribute)
        self.hierarchy = hierarchy or GenericHierarchy(attribute, self._items, labels=labels)

    @property
    def attributes(self) -> List[str]:
        return self.hierarchy.attributes

    def is_reachable(self, finer: str, coarser: str) -> bool:
        return self.hierarchy.is_reachable(finer, coarser)

    def _convert(self, item: str, attribute: str, target: str) -> str:
        return self.hierarchy.convert(item, attribute, target)

    def _children(self, item: str, attribute: str, target: str) -> List[str]:
        return self.hierarchy.children(item, attribute, target)

    def _derive(self, attribute, items, is_interpolated, ground_attribute) -> "GenericDimension":
        return GenericDimension(
            self.id, attribute, items,
            is_interpolated=is_interpolated,
            ground_attribute=ground_attribute,
            hierarchy=self.hierarchy
        )

    def add_attribute(self, parent: str, attribute: str, mapping: Mapping[str, str],
                      labels: Optional[Mapping[str, str]] = None) -> "GenericDimension":
        """
        Declare a coarser attribute.

        Args:
            parent: Existing attribute the new one groups
            attribute: Name of the new attribute
            mapping: Coarser item for every item of `parent`
            labels: Optional display labels of the new items

        Returns:
            A dimension with the same items and the extended hierarchy
        """
        return GenericDimension(
            self.id, self.attribute, self._items,
            is_interpolated=self.is_interpolated,
            ground_attribute=self.ground_attribute,
            hierarchy=self.hierarchy.with_attribute(parent, attribute, mapping, labels)
        )

    def label(self, item: str) -> str:
        return self.hierarchy.labels.get(item, str(item))

    def _combine(self, other: Dimension, items: Sequence[str]) -> Dimension:
        if all(self.hierarchy.knows(self.attribute, item) for item in items):
            return super()._combine(other, items)

        # Items unknown to this hierarchy: rebuild one based on the current
        # attribute, keeping the coarser attributes both sides share.
        def owner(item):
            return self if self.get_index(item) is not None else other

        kept = [
            attribute for attribute in self.hierarchy.mappings
            if attribute != self.attribute
            and self.is_reachable(self.attribute, attribute)
            and other.can_drill_up(attribute)
        ]
        parents = {}
        for attribute in kept:
            for finer in self.hierarchy.chain(attribute)[1:]:
                if finer in kept or finer == self.attribute:
                    parents[attribute] = finer
                    break

        labels = dict(self.hierarchy.labels)
        if isinstance(other, GenericDimension):
            labels = {**other.hierarchy.labels, **labels}

        hierarchy = GenericHierarchy(
            self.attribute,
            items,
            parents,
            {
                attribute: [owner(item).convert_item(item, attribute) for item in items]
                for attribute in kept
            },
            labels
        )
        return GenericDimension(
            self.id, self.attribute, items,
            is_interpolated=self.is_interpolated or other.is_interpolated,
            ground_attribute=self.ground_attribute,
            hierarchy=hierarchy
        )

    def serialize(self) -> Dict[str, Any]:
        return {
            "type": self.kind,
            "id": self.id,
            "attribute": self.attribute,
            "items": list(self._items),
            "is_interpolated": self.is_interpolated,
            "ground_attribute": self.ground_attribute,
            "hierarchy": self.hierarchy.to_dict(),
        }

    @classmethod
    def deserialize(cls, data: Mapping[str, Any]) -> "GenericDimension":
        return cls(
            data["id"],
            data["attribute"],
            data["items"],
            is_interpolated=data.get("is_interpolated", False),
            ground_attribute=data.get("ground_attribute"),
            hierarchy=GenericHierarchy.from_dict(data["hierarchy"])
        )
