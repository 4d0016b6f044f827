"""
Cube: stored and computed measures over an ordered list of dimensions.

Structural operations never modify a cube. Each one asks the affected
dimension for its new items, derives the old -> new item mapping, and
rebuilds every stored measure's store under that mapping. An operation that
changes nothing returns the same cube.
"""

import logging
import re
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from flatcube.config import CubeConfig, DEFAULT_CONFIG
from flatcube.cube.formatter import (
    from_nested_array, from_nested_object, merge_nested, to_nested_array, to_nested_object
)
from flatcube.cube.formula import Expression
from flatcube.dimension import ALL, CatchAllDimension, Dimension, deserialize_dimension
from flatcube.errors import (
    DuplicateDimensionError, DuplicateMeasureError, IncompatibleDimensionError,
    InvalidDataError, InvalidDimensionIndexError, InvalidIdentifierError,
    MissingAggregationRuleError,
    NoSuchDimensionError, NoSuchMeasureError, UnknownMeasureReferenceError,
    UnsupportedOperationError
)
from flatcube.rules import (
    RuleMap, measure_rules, renamed_measure, rules_from_dict, rules_to_dict,
    with_dimension, with_measure, without_dimension, without_measure
)
from flatcube.serialization import pack_record, unpack_record
from flatcube.store import InMemoryStore, Status

logger = logging.getLogger(__name__)

STORED_MEASURE_ID = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")
COMPUTED_MEASURE_ID = re.compile(r"^[A-Za-z][A-Za-z0-9_]{1,}$")


@dataclass
class ReshapeResult:
    """
    Outcome of Cube.try_reshape.

    Attributes:
        cube: The reshaped cube (None when the shapes are incompatible)
        success: Whether the cube could be reshaped
        error: Why it could not
    """
    cube: Optional["Cube"]
    success: bool
    error: Optional[str] = None


class Cube:
    """
    In-memory multidimensional cube.

    Attributes:
        dimensions: Ordered dimensions; the first one is the most significant
            in the flat cell layout
        stored_measures: Measure id -> store holding one value per cell
        stored_measures_rules: Measure id -> dimension id -> aggregation rule
        computed_measures: Measure id -> formula over stored measures
        config: Defaults for new measures and rule checking
    """

    def __init__(self, dimensions: Sequence[Dimension], config: Optional[CubeConfig] = None):
        ids = [dimension.id for dimension in dimensions]
        for dim_id in ids:
            if ids.count(dim_id) > 1:
                raise DuplicateDimensionError(f"Duplicate dimension id: '{dim_id}'")

        self.dimensions: List[Dimension] = list(dimensions)
        self.config = config or DEFAULT_CONFIG
        self.stored_measures: Dict[str, InMemoryStore] = {}
        self.stored_measures_rules: RuleMap = {}
        self.computed_measures: Dict[str, Expression] = {}

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def dimension_ids(self) -> List[str]:
        return [dimension.id for dimension in self.dimensions]

    @property
    def stored_measure_ids(self) -> List[str]:
        return list(self.stored_measures)

    @property
    def computed_measure_ids(self) -> List[str]:
        return list(self.computed_measures)

    @property
    def shape(self) -> tuple:
        return tuple(dimension.num_items for dimension in self.dimensions)

    @property
    def num_cells(self) -> int:
        return int(np.prod(self.shape, dtype=np.int64))

    @property
    def storage_size(self) -> int:
        """Slots allocated per stored measure: values plus status bitmap."""
        return self.num_cells * 2

    @property
    def byte_length(self) -> int:
        return sum(store.byte_length for store in self.stored_measures.values())

    @property
    def is_interpolated(self) -> bool:
        return any(dimension.is_interpolated for dimension in self.dimensions)

    def get_dimension(self, dimension_id: str) -> Optional[Dimension]:
        for dimension in self.dimensions:
            if dimension.id == dimension_id:
                return dimension
        return None

    def get_dimension_index(self, dimension_id: str) -> Optional[int]:
        for index, dimension in enumerate(self.dimensions):
            if dimension.id == dimension_id:
                return index
        return None

    def _require_dimension_index(self, dimension_id: str) -> int:
        index = self.get_dimension_index(dimension_id)
        if index is None:
            raise NoSuchDimensionError(f"No such dimension: '{dimension_id}'")
        return index

    def _derive(self, dimensions: List[Dimension], stores: Dict[str, InMemoryStore],
                rules: Optional[RuleMap] = None) -> "Cube":
        """New cube with the given stores, sharing untouched catalogs."""
        cube = Cube(dimensions, self.config)
        cube.stored_measures = stores
        cube.stored_measures_rules = self.stored_measures_rules if rules is None else rules
        cube.computed_measures = self.computed_measures
        return cube

    # ------------------------------------------------------------------
    # Measure catalog
    # ------------------------------------------------------------------

    def _check_new_measure_id(self, measure_id: str, pattern: re.Pattern):
        if not isinstance(measure_id, str) or not pattern.match(measure_id):
            raise InvalidIdentifierError(f"Invalid measureId: {measure_id!r}")
        if measure_id in self.stored_measures or measure_id in self.computed_measures:
            raise DuplicateMeasureError(f"This measure already exists: '{measure_id}'")

    def create_stored_measure(self, measure_id: str, rules: Optional[Mapping[str, Any]] = None,
                              dtype: Optional[str] = None, default_value: Optional[float] = None):
        """
        Declare a stored measure, with every cell empty.

        Args:
            measure_id: Identifier of the measure
            rules: Dimension id -> aggregation rule (enum or string)
            dtype: Element type, defaults to the config's
            default_value: "No data" value, defaults to the config's
        """
        self._check_new_measure_id(measure_id, STORED_MEASURE_ID)

        store = InMemoryStore(
            self.num_cells,
            dtype or self.config.default_dtype,
            self.config.default_value if default_value is None else default_value
        )
        self.stored_measures = {**self.stored_measures, measure_id: store}
        self.stored_measures_rules = with_measure(
            self.stored_measures_rules, measure_id, measure_rules(rules, self.dimension_ids)
        )

    def create_computed_measure(self, measure_id: str, formula: str):
        """Declare a measure computed from stored measures, e.g. "revenue / units"."""
        self._check_new_measure_id(measure_id, COMPUTED_MEASURE_ID)

        expression = Expression.parse(formula)
        for variable in expression.variables():
            if variable not in self.stored_measures:
                raise UnknownMeasureReferenceError(variable)

        self.computed_measures = {**self.computed_measures, measure_id: expression}

    def rename_measure(self, old_measure_id: str, new_measure_id: str) -> "Cube":
        """New cube where a measure has another id; formulas follow stored renames."""
        if old_measure_id == new_measure_id:
            return self

        if old_measure_id in self.computed_measures:
            self._check_new_measure_id(new_measure_id, COMPUTED_MEASURE_ID)
            cube = self._derive(self.dimensions, self._copy_stores())
            cube.computed_measures = {
                (new_measure_id if measure_id == old_measure_id else measure_id): expression
                for measure_id, expression in self.computed_measures.items()
            }
            return cube

        if old_measure_id in self.stored_measures:
            self._check_new_measure_id(new_measure_id, STORED_MEASURE_ID)
            stores = {
                (new_measure_id if measure_id == old_measure_id else measure_id): store
                for measure_id, store in self._copy_stores().items()
            }
            cube = self._derive(
                self.dimensions, stores,
                renamed_measure(self.stored_measures_rules, old_measure_id, new_measure_id)
            )
            cube.computed_measures = {
                measure_id: (
                    expression.substitute(old_measure_id, new_measure_id)
                    if old_measure_id in expression.references() else expression
                )
                for measure_id, expression in self.computed_measures.items()
            }
            return cube

        raise NoSuchMeasureError(f"No such measure: '{old_measure_id}'")

    def drop_measure(self, measure_id: str) -> "Cube":
        """New cube without a measure; dropping a stored measure drops the formulas using it."""
        if measure_id in self.computed_measures:
            cube = self._derive(self.dimensions, self._copy_stores())
            cube.computed_measures = {
                other_id: expression
                for other_id, expression in self.computed_measures.items()
                if other_id != measure_id
            }
            return cube

        if measure_id in self.stored_measures:
            stores = {
                other_id: store
                for other_id, store in self._copy_stores().items()
                if other_id != measure_id
            }
            cube = self._derive(
                self.dimensions, stores,
                without_measure(self.stored_measures_rules, measure_id)
            )
            cube.computed_measures = {
                other_id: expression
                for other_id, expression in self.computed_measures.items()
                if measure_id not in expression.references()
            }
            return cube

        raise NoSuchMeasureError(f"No such measure: '{measure_id}'")

    def _copy_stores(self) -> Dict[str, InMemoryStore]:
        return {measure_id: store.copy() for measure_id, store in self.stored_measures.items()}

    # ------------------------------------------------------------------
    # Data access
    # ------------------------------------------------------------------

    def get_data(self, measure_id: str) -> np.ndarray:
        """Flat values of a measure; computed measures are evaluated cell-wise."""
        if measure_id in self.stored_measures:
            return self.stored_measures[measure_id].data

        if measure_id in self.computed_measures:
            context = {
                stored_id: store.data.astype(np.float64)
                for stored_id, store in self.stored_measures.items()
            }
            result = self.computed_measures[measure_id].evaluate(context)
            return np.broadcast_to(np.asarray(result, dtype=np.float64), (self.num_cells,)).copy()

        raise NoSuchMeasureError(f"No such measure: '{measure_id}'")

    def get_status(self, measure_id: str) -> np.ndarray:
        """Flat status of a measure; a computed measure ORs every stored measure's status."""
        if measure_id in self.stored_measures:
            return self.stored_measures[measure_id].status

        if measure_id in self.computed_measures:
            result = np.zeros(self.num_cells, dtype=np.uint8)
            for store in self.stored_measures.values():
                result |= store.status
            return result

        raise NoSuchMeasureError(f"No such measure: '{measure_id}'")

    def set_data(self, measure_id: str, values: Sequence[float]):
        if measure_id in self.computed_measures:
            raise UnsupportedOperationError("setData can only be called on stored measures")
        if measure_id not in self.stored_measures:
            raise NoSuchMeasureError(f"No such measure: '{measure_id}'")
        self.stored_measures[measure_id].set_data(values)

    def get_nested_array(self, measure_id: str):
        return to_nested_array(self.get_data(measure_id), self.get_status(measure_id), self.dimensions)

    def set_nested_array(self, measure_id: str, values):
        self.set_data(measure_id, from_nested_array(values, self.dimensions))

    def get_nested_object(self, measure_id: str, with_totals: bool = False,
                          with_metadata: bool = False):
        """
        Nested dicts keyed by item labels, in dimension order.

        With totals, the views of every combination of dimensions drilled up
        to "all" are merged in, adding an "all" key at each level.
        """
        if not with_totals or not self.dimensions:
            return to_nested_object(
                self.get_data(measure_id), self.get_status(measure_id),
                self.dimensions, with_metadata
            )

        result = {}
        for combination in range(2 ** len(self.dimensions)):
            sub_cube = self
            for index, dimension in enumerate(self.dimensions):
                if combination & (1 << index):
                    sub_cube = sub_cube.drill_up(dimension.id, ALL)
            merge_nested(result, sub_cube.get_nested_object(measure_id, False, with_metadata))
        return result

    def set_nested_object(self, measure_id: str, value):
        self.set_data(measure_id, from_nested_object(value, self.dimensions))

    def hydrate_from_sparse_nested_object(self, measure_id: str, obj: Mapping[str, Any]):
        """Write the leaves of a partial nested dict in place; unknown items are ignored."""
        if measure_id not in self.stored_measures:
            raise NoSuchMeasureError(f"No such stored measure: '{measure_id}'")
        store = self.stored_measures[measure_id]

        def visit(node, depth: int, offset: int):
            if depth == len(self.dimensions):
                store.set_value(offset, node)
                return
            dimension = self.dimensions[depth]
            if not isinstance(node, Mapping):
                raise InvalidDataError(
                    f"Expected a mapping for dimension '{dimension.id}', got {type(node).__name__}"
                )
            for key, child in node.items():
                index = dimension.get_index(key)
                if index is not None:
                    visit(child, depth + 1, offset * dimension.num_items + index)

        visit(obj, 0, 0)

    def to_dataframe(self, measure_ids: Optional[Sequence[str]] = None) -> pd.DataFrame:
        """
        Tabular view: one row per cell, one column per measure.

        Cells without data are NaN. Rows are indexed by a MultiIndex of the
        dimensions' items, named after the dimension ids.
        """
        if measure_ids is None:
            measure_ids = self.stored_measure_ids + self.computed_measure_ids

        if self.dimensions:
            index = pd.MultiIndex.from_product(
                [dimension.get_items() for dimension in self.dimensions],
                names=self.dimension_ids
            )
        else:
            index = pd.RangeIndex(1)

        columns = {}
        for measure_id in measure_ids:
            has_data = (self.get_status(measure_id) & Status.HAS_DATA) != 0
            columns[measure_id] = np.where(has_data, self.get_data(measure_id), np.nan)
        return pd.DataFrame(columns, index=index)

    # ------------------------------------------------------------------
    # Structural operations
    # ------------------------------------------------------------------

    def project(self, dimension_ids: Sequence[str]) -> "Cube":
        """Keep only the listed dimensions, in the listed order."""
        for dimension_id in dimension_ids:
            self._require_dimension_index(dimension_id)
        return self.keep_dimensions(dimension_ids).reorder_dimensions(dimension_ids)

    def reorder_dimensions(self, dimension_ids: Sequence[str]) -> "Cube":
        dimension_ids = list(dimension_ids)
        if dimension_ids == self.dimension_ids:
            return self

        order = [self._require_dimension_index(dimension_id) for dimension_id in dimension_ids]
        if sorted(order) != list(range(len(self.dimensions))):
            raise ValueError(
                f"Reordering needs every dimension exactly once, got {dimension_ids}"
            )

        new_dimensions = [self.dimensions[index] for index in order]
        stores = {
            measure_id: store.reorder(self.shape, order)
            for measure_id, store in self.stored_measures.items()
        }
        logger.debug(f"Reordered dimensions {self.dimension_ids} -> {dimension_ids}")
        return self._derive(new_dimensions, stores)

    def slice(self, dimension_id: str, attribute: str, value: str) -> "Cube":
        """Fix a dimension to one item and remove it."""
        self._require_dimension_index(dimension_id)
        return self.dice(dimension_id, attribute, [value]).remove_dimension(dimension_id)

    def dice(self, dimension_id: str, attribute: str, items: Sequence[str],
             reorder: bool = False) -> "Cube":
        """Restrict a dimension to the items selected at `attribute`."""
        index = self._require_dimension_index(dimension_id)
        old = self.dimensions[index]
        return self._replace_items(index, old.dice(attribute, items, reorder))

    def dice_range(self, dimension_id: str, attribute: str, start: str, end: str) -> "Cube":
        index = self._require_dimension_index(dimension_id)
        old = self.dimensions[index]
        return self._replace_items(index, old.dice_range(attribute, start, end))

    def _replace_items(self, index: int, new: Dimension) -> "Cube":
        old = self.dimensions[index]
        if new is old:
            return self

        indices = old.item_positions(new)
        new_dimensions = list(self.dimensions)
        new_dimensions[index] = new
        stores = {
            measure_id: store.dice(self.shape, index, indices)
            for measure_id, store in self.stored_measures.items()
        }
        logger.debug(f"Diced dimension '{old.id}': {old.num_items} -> {new.num_items} items")
        return self._derive(new_dimensions, stores)

    def keep_dimensions(self, dimension_ids: Sequence[str]) -> "Cube":
        cube = self
        for dimension in self.dimensions:
            if dimension.id not in dimension_ids:
                cube = cube.remove_dimension(dimension.id)
        return cube

    def remove_dimensions(self, dimension_ids: Sequence[str]) -> "Cube":
        cube = self
        for dimension_id in dimension_ids:
            cube = cube.remove_dimension(dimension_id)
        return cube

    def add_dimension(self, new_dimension: Dimension,
                      aggregation: Optional[Mapping[str, Any]] = None,
                      index: Optional[int] = None) -> "Cube":
        """
        Insert a dimension; existing values are spread over its items.

        The cube is first given a single-item catch-all dimension holding all
        existing data, which is then drilled down to `new_dimension`.

        Args:
            new_dimension: Dimension to insert
            aggregation: Measure id -> aggregation rule on the new dimension
            index: Position of the new dimension (appended by default)
        """
        if self.get_dimension(new_dimension.id) is not None:
            raise DuplicateDimensionError(f"Duplicate dimension id: '{new_dimension.id}'")

        aggregation = aggregation or {}
        if self.config.strict_rules:
            for measure_id in self.stored_measures:
                if aggregation.get(measure_id) is None:
                    raise MissingAggregationRuleError(measure_id, new_dimension.id)

        index = len(self.dimensions) if index is None else index
        if not 0 <= index <= len(self.dimensions):
            raise InvalidDimensionIndexError(
                f"Dimension index must be between 0 and {len(self.dimensions)}, got {index}"
            )
        placeholder = CatchAllDimension(new_dimension.id, new_dimension)
        old_dimensions = list(self.dimensions)
        old_dimensions.insert(index, placeholder)

        drilled = placeholder.drill_down(new_dimension.attribute)
        new_dimensions = list(old_dimensions)
        new_dimensions[index] = drilled

        rules = with_dimension(self.stored_measures_rules, new_dimension.id, aggregation)
        shape = tuple(dimension.num_items for dimension in old_dimensions)
        parents = placeholder.group_indices(drilled)
        stores = {
            measure_id: store.drill_down(shape, index, parents, rules[measure_id][new_dimension.id])
            for measure_id, store in self.stored_measures.items()
        }
        logger.debug(f"Added dimension '{new_dimension.id}' at position {index}")
        return self._derive(new_dimensions, stores, rules)

    def remove_dimension(self, dimension_id: str) -> "Cube":
        """Aggregate a dimension away (drill up to "all") and drop it."""
        index = self._require_dimension_index(dimension_id)

        if self.dimensions[index].num_items == 1:
            # A single item needs no aggregation: the layout does not change.
            stores = self._copy_stores()
        else:
            stores = self.drill_up(dimension_id, ALL).stored_measures

        new_dimensions = [dimension for dimension in self.dimensions if dimension.id != dimension_id]
        logger.debug(f"Removed dimension '{dimension_id}'")
        return self._derive(
            new_dimensions, stores,
            without_dimension(self.stored_measures_rules, dimension_id)
        )

    def drill_down(self, dimension_id: str, attribute: str) -> "Cube":
        """Move a dimension to a finer attribute; values are spread over the children."""
        index = self._require_dimension_index(dimension_id)
        old = self.dimensions[index]
        new = old.drill_down(attribute)
        if new is old:
            return self

        parents = old.group_indices(new)
        new_dimensions = list(self.dimensions)
        new_dimensions[index] = new
        stores = {
            measure_id: store.drill_down(
                self.shape, index, parents,
                self.stored_measures_rules[measure_id].get(dimension_id)
            )
            for measure_id, store in self.stored_measures.items()
        }
        logger.debug(f"Drilled down '{dimension_id}' from '{old.attribute}' to '{attribute}'")
        return self._derive(new_dimensions, stores)

    def drill_up(self, dimension_id: str, attribute: str) -> "Cube":
        """
        Aggregate a dimension by group of items.
        ie: minutes by hour, or cities by region.
        """
        index = self._require_dimension_index(dimension_id)
        old = self.dimensions[index]
        new = old.drill_up(attribute)
        if new is old:
            return self

        groups = new.group_indices(old)
        new_dimensions = list(self.dimensions)
        new_dimensions[index] = new
        stores = {}
        for measure_id, store in self.stored_measures.items():
            rule = self.stored_measures_rules[measure_id].get(dimension_id)
            if rule is None:
                raise MissingAggregationRuleError(measure_id, dimension_id)
            stores[measure_id] = store.drill_up(self.shape, index, groups, new.num_items, rule)

        logger.debug(f"Drilled up '{dimension_id}' from '{old.attribute}' to '{attribute}'")
        return self._derive(new_dimensions, stores)

    # ------------------------------------------------------------------
    # Combining cubes
    # ------------------------------------------------------------------

    def compose(self, other_cube: "Cube", union: bool = False) -> "Cube":
        """
        Create a new cube that contains the measures of both cubes.

        This is useful when we want to create computed measures from different
        sources, e.g. sales by day and opening hours by week, to compute sales
        by opening hour per week. Only dimensions present in both cubes are
        kept, with the union or intersection of their items.
        """
        new_dimensions = []
        for dimension in self.dimensions:
            other_dimension = other_cube.get_dimension(dimension.id)
            if other_dimension is None:
                continue
            if union:
                new_dimensions.append(dimension.union(other_dimension))
            else:
                new_dimensions.append(dimension.intersect(other_dimension))

        new_cube = Cube(new_dimensions, self.config)
        for source in (self, other_cube):
            for measure_id, store in source.stored_measures.items():
                if measure_id not in new_cube.stored_measures:
                    new_cube.create_stored_measure(
                        measure_id, source.stored_measures_rules[measure_id],
                        store.dtype, store.default_value
                    )

        hydrated = [new_cube.hydrate_from_cube(source) for source in (self, other_cube)]
        new_cube.computed_measures = {**self.computed_measures, **other_cube.computed_measures}
        logger.info(
            f"Composed cube over {new_cube.dimension_ids} "
            f"({sum(hydrated)}/2 sources hydrated, {len(new_cube.stored_measures)} stored measures)"
        )
        return new_cube

    def reshape(self, target_dimensions: Sequence[Dimension]) -> "Cube":
        """
        Make this cube's dimensions match `target_dimensions`.

        Dimensions absent from the target are aggregated away, missing ones
        are added without aggregation rules, then each dimension is drilled to
        the target attribute and diced to the target items (those it has).

        Raises:
            IncompatibleDimensionError: a dimension cannot be drilled to the
                target attribute, or has no item in common with the target
        """
        cube = self
        common_ids = [
            dimension.id for dimension in target_dimensions
            if cube.get_dimension(dimension.id) is not None
        ]
        cube = cube.project(common_ids)

        for index, target in enumerate(target_dimensions):
            if index >= len(cube.dimensions) or cube.dimensions[index].id != target.id:
                # TODO: callers have no way to pass rules for added dimensions, so a
                # later drill-up of such a dimension raises MissingAggregationRuleError.
                cube = cube.add_dimension(target, {}, index)

        for index, target in enumerate(target_dimensions):
            actual = cube.dimensions[index]
            if actual.attribute != target.attribute:
                if actual.can_drill_up(target.attribute):
                    cube = cube.drill_up(target.id, target.attribute)
                elif actual.can_drill_down(target.attribute):
                    cube = cube.drill_down(target.id, target.attribute)
                else:
                    raise IncompatibleDimensionError(
                        f"The cube dimensions '{target.id}' are not compatible."
                    )

            actual = cube.dimensions[index]
            if not any(actual.get_index(item) is not None for item in target.items):
                raise IncompatibleDimensionError(
                    f"The cube dimensions '{target.id}' have no item in common."
                )
            cube = cube.dice(target.id, target.attribute, target.get_items(), reorder=True)

        return cube

    def try_reshape(self, target_dimensions: Sequence[Dimension]) -> ReshapeResult:
        try:
            return ReshapeResult(cube=self.reshape(target_dimensions), success=True)
        except IncompatibleDimensionError as e:
            return ReshapeResult(cube=None, success=False, error=str(e))

    def hydrate_from_cube(self, other_cube: "Cube") -> bool:
        """
        Copy into this cube the data `other_cube` has for the same measures.

        Returns:
            False when the other cube cannot be reshaped to this one's
            dimensions (nothing is copied), True otherwise
        """
        result = other_cube.try_reshape(self.dimensions)
        if not result.success:
            logger.warning(f"Skipping hydration from incompatible cube: {result.error}")
            return False

        compatible = result.cube
        index_maps = [
            dimension.item_positions(other_dimension)
            for dimension, other_dimension in zip(self.dimensions, compatible.dimensions)
        ]
        loaded = 0
        for measure_id, store in self.stored_measures.items():
            if measure_id in compatible.stored_measures:
                store.load(compatible.stored_measures[measure_id], self.shape, index_maps)
                loaded += 1
        logger.info(f"Hydrated {loaded} stored measures over {self.dimension_ids}")
        return True

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def serialize(self) -> bytes:
        measure_ids = self.stored_measure_ids
        header = {
            "dimensions": [dimension.serialize() for dimension in self.dimensions],
            "stored_measures_keys": measure_ids,
            "stored_measures_rules": rules_to_dict(self.stored_measures_rules),
            "computed_measures": {
                measure_id: expression.text
                for measure_id, expression in self.computed_measures.items()
            },
            "config": asdict(self.config),
        }
        blobs = [self.stored_measures[measure_id].serialize() for measure_id in measure_ids]
        return pack_record(header, blobs)

    @classmethod
    def deserialize(cls, buffer: bytes) -> "Cube":
        header, blobs = unpack_record(buffer)
        if len(blobs) != len(header["stored_measures_keys"]):
            raise InvalidDataError("Stored measure count does not match the serialized stores")

        dimensions = [deserialize_dimension(data) for data in header["dimensions"]]
        cube = cls(dimensions, CubeConfig(**header.get("config", {})))
        cube.stored_measures = {
            measure_id: InMemoryStore.deserialize(blob)
            for measure_id, blob in zip(header["stored_measures_keys"], blobs)
        }
        for store in cube.stored_measures.values():
            if store.size != cube.num_cells:
                raise InvalidDataError("Serialized store size does not match the dimensions")
        cube.stored_measures_rules = rules_from_dict(header["stored_measures_rules"])
        cube.computed_measures = {
            measure_id: Expression.parse(text)
            for measure_id, text in header["computed_measures"].items()
        }
        return cube

    def __repr__(self):
        return (
            f"Cube(dimensions={self.dimension_ids}, stored={self.stored_measure_ids}, "
            f"computed={self.computed_measure_ids})"
        )
