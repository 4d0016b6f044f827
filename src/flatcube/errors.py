"""
Exceptions raised by the cube engine.

Every error derives from CubeError. Errors that describe a bad argument
also derive from ValueError or KeyError so callers may catch them the
usual way.
"""


class CubeError(Exception):
    """Base class for all cube errors."""
    pass


class InvalidIdentifierError(CubeError, ValueError):
    """A measure id does not match the identifier pattern."""
    pass


class DuplicateMeasureError(CubeError, ValueError):
    """A measure with the same id already exists."""
    pass


class DuplicateDimensionError(CubeError, ValueError):
    """Two dimensions of one cube share an id."""
    pass


class UnknownMeasureReferenceError(CubeError, ValueError):
    """A formula references a measure that is not a stored measure."""

    def __init__(self, variable: str):
        super().__init__(f"Unknown measure: {variable}")
        self.variable = variable


class NoSuchMeasureError(CubeError, KeyError):
    """The measure id is not declared on the cube."""

    def __str__(self):
        return Exception.__str__(self)


class NoSuchDimensionError(CubeError, KeyError):
    """The dimension id is not part of the cube."""

    def __str__(self):
        return Exception.__str__(self)


class NoSuchAttributeError(CubeError, KeyError):
    """The attribute is unknown to a hierarchy or not reachable from the current one."""

    def __str__(self):
        return Exception.__str__(self)


class IncompatibleDimensionError(CubeError):
    """Two versions of a dimension cannot be aligned on the same attribute."""
    pass


class UnsupportedOperationError(CubeError):
    """The operation is not available for this kind of measure."""
    pass


class MissingAggregationRuleError(CubeError):
    """A drill-up needs a reducer that was never configured."""

    def __init__(self, measure_id: str, dimension_id: str):
        super().__init__(
            f"No aggregation rule configured for measure '{measure_id}' "
            f"on dimension '{dimension_id}'"
        )
        self.measure_id = measure_id
        self.dimension_id = dimension_id


class InvalidDataError(CubeError, ValueError):
    """Values do not fit the cube (wrong length, shape or encoding)."""
    pass


class FormulaError(CubeError, ValueError):
    """A formula cannot be parsed or uses an unsupported construct."""
    pass


class NoSuchItemError(CubeError, KeyError):
    """The item is not part of the dimension."""

    def __str__(self):
        return Exception.__str__(self)


class EmptyDimensionError(CubeError, ValueError):
    """An operation would leave a dimension without items."""
    pass


class InvalidRuleError(CubeError, ValueError):
    """An aggregation rule name is not one of the supported reducers."""
    pass


class DuplicateItemError(CubeError, ValueError):
    """A dimension lists the same item twice."""
    pass


class InvalidDimensionIndexError(CubeError, IndexError):
    """A dimension position is outside the cube's dimension list."""
    pass
