"""
Time dimension over calendar periods.

Periods are identified by string labels:

    day             2010-01-15
    week_<wd>       2010-W01-mon     ISO numbering, weeks starting on <wd>
    month_week_<wd> 2010-01-W1-mon   part of a week_<wd> lying in one month
    month           2010-01
    quarter         2010-Q1
    semester        2010-S1
    year            2010
    all             all
"""

import calendar
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

import pandas as pd

from flatcube.dimension.base import ALL, Dimension, ordered_unique
from flatcube.errors import NoSuchAttributeError

WEEKDAYS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")

WEEK_ATTRIBUTES = tuple(f"week_{wd}" for wd in WEEKDAYS)
MONTH_WEEK_ATTRIBUTES = tuple(f"month_week_{wd}" for wd in WEEKDAYS)

TIME_ATTRIBUTES = (
    ("day",) + MONTH_WEEK_ATTRIBUTES + WEEK_ATTRIBUTES
    + ("month", "quarter", "semester", "year", ALL)
)

# Direct upward edges: each period of the key lies within one period of
# every listed attribute.
_PARENTS: Dict[str, Set[str]] = {
    "day": {"month", *WEEK_ATTRIBUTES, *MONTH_WEEK_ATTRIBUTES},
    **{f"month_week_{wd}": {f"week_{wd}", "month"} for wd in WEEKDAYS},
    **{f"week_{wd}": {ALL} for wd in WEEKDAYS},
    "month": {"quarter"},
    "quarter": {"semester"},
    "semester": {"year"},
    "year": {ALL},
    ALL: set(),
}


def _ancestors(attribute: str) -> Set[str]:
    seen = {attribute}
    pending = [attribute]
    while pending:
        for parent in _PARENTS[pending.pop()]:
            if parent not in seen:
                seen.add(parent)
                pending.append(parent)
    return seen


_ANCESTORS = {attribute: _ancestors(attribute) for attribute in TIME_ATTRIBUTES}


def _weekday(attribute: str) -> int:
    return WEEKDAYS.index(attribute.rsplit("_", 1)[1])


def _week_shift(attribute: str) -> int:
    """Days to add so that a week starting on the attribute's weekday starts on a Monday."""
    return (7 - _weekday(attribute)) % 7


def _month_bounds(year: int, month: int) -> Tuple[date, date]:
    return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])


def period_of(day: date, attribute: str) -> str:
    """Label of the period of `attribute` containing `day`."""
    if attribute == "day":
        return day.isoformat()
    if attribute == "month":
        return f"{day.year:04d}-{day.month:02d}"
    if attribute == "quarter":
        return f"{day.year:04d}-Q{(day.month - 1) // 3 + 1}"
    if attribute == "semester":
        return f"{day.year:04d}-S{(day.month - 1) // 6 + 1}"
    if attribute == "year":
        return f"{day.year:04d}"
    if attribute == ALL:
        return ALL
    if attribute in WEEK_ATTRIBUTES:
        year, week, _ = (day + timedelta(days=_week_shift(attribute))).isocalendar()
        return f"{year:04d}-W{week:02d}-{attribute[5:]}"
    if attribute in MONTH_WEEK_ATTRIBUTES:
        offset = (day.replace(day=1).weekday() - _weekday(attribute)) % 7
        number = (day.day - 1 + offset) // 7 + 1
        return f"{day.year:04d}-{day.month:02d}-W{number}-{attribute[11:]}"
    raise NoSuchAttributeError(f"No such time attribute: '{attribute}'")


def period_range(label: str, attribute: str) -> Tuple[date, date]:
    """First and last day of a period."""
    try:
        if attribute == "day":
            day = date.fromisoformat(label)
            return day, day
        year = int(label[:4])
        if attribute == "month":
            return _month_bounds(year, int(label[5:7]))
        if attribute in ("quarter", "semester"):
            months = 3 if attribute == "quarter" else 6
            number = int(label[6:])
            first, _ = _month_bounds(year, (number - 1) * months + 1)
            _, last = _month_bounds(year, number * months)
            return first, last
        if attribute == "year":
            return date(year, 1, 1), date(year, 12, 31)
        if attribute in WEEK_ATTRIBUTES:
            monday = date.fromisocalendar(year, int(label[6:8]), 1)
            first = monday - timedelta(days=_week_shift(attribute))
            return first, first + timedelta(days=6)
        if attribute in MONTH_WEEK_ATTRIBUTES:
            month_first, month_last = _month_bounds(year, int(label[5:7]))
            number = int(label[9:].split("-")[0])
            offset = (month_first.weekday() - _weekday(attribute)) % 7
            first = month_first + timedelta(days=max(0, (number - 1) * 7 - offset))
            last = min(month_last, month_first + timedelta(days=number * 7 - offset - 1))
            return first, last
    except ValueError as e:
        raise ValueError(f"Invalid {attribute} label: '{label}'") from e
    raise NoSuchAttributeError(f"No such time attribute: '{attribute}'")


def _days(first: date, last: date) -> Iterable[date]:
    return pd.date_range(first, last, freq="D").date


class TimeDimension(Dimension):
    """
    Dimension whose items are consecutive calendar periods.

    Example:
        >>> months = TimeDimension("time", "month", "2010-01", "2010-03")
        >>> months.get_items()
        ['2010-01', '2010-02', '2010-03']
        >>> months.drill_up("quarter").get_items()
        ['2010-Q1']

    Attributes:
        start: First day covered by the dimension
        end: Last day covered by the dimension
    """

    kind = "time"

    def __init__(self, id: str, attribute: str, start: str, end: str,
                 is_interpolated: bool = False, ground_attribute: Optional[str] = None):
        if attribute not in TIME_ATTRIBUTES or attribute == ALL:
            raise NoSuchAttributeError(f"Cannot build a time dimension at '{attribute}'")

        first, _ = period_range(start, attribute)
        _, last = period_range(end, attribute)
        if last < first:
            raise ValueError(f"Time dimension '{id}' ends before it starts")

        items = ordered_unique(period_of(day, attribute) for day in _days(first, last))
        super().__init__(id, attribute, items, is_interpolated, ground_attribute)
        self.start = first
        self.end = last

    @classmethod
    def _create(cls, id: str, attribute: str, items: Sequence[str], start: date, end: date,
                is_interpolated: bool, ground_attribute: str) -> "TimeDimension":
        dimension = cls.__new__(cls)
        Dimension.__init__(dimension, id, attribute, items, is_interpolated, ground_attribute)
        dimension.start = start
        dimension.end = end
        return dimension

    @property
    def attributes(self) -> List[str]:
        return list(TIME_ATTRIBUTES)

    def is_reachable(self, finer: str, coarser: str) -> bool:
        return coarser in _ANCESTORS.get(finer, ())

    def _convert(self, item: str, attribute: str, target: str) -> str:
        if target == attribute:
            return item
        if target == ALL:
            return ALL
        return period_of(period_range(item, attribute)[0], target)

    def _children(self, item: str, attribute: str, target: str) -> List[str]:
        if attribute == ALL:
            first, last = self.start, self.end
        else:
            first, last = period_range(item, attribute)
        return ordered_unique(period_of(day, target) for day in _days(first, last))

    def _derive(self, attribute, items, is_interpolated, ground_attribute) -> "TimeDimension":
        return self._create(
            self.id, attribute, items, self.start, self.end, is_interpolated, ground_attribute
        )

    def _combine(self, other: Dimension, items: Sequence[str]) -> "TimeDimension":
        return self._create(
            self.id, self.attribute, items,
            min(self.start, other.start), max(self.end, other.end),
            self.is_interpolated or other.is_interpolated,
            self.ground_attribute
        )

    def serialize(self) -> Dict[str, Any]:
        return {
            "type": self.kind,
            "id": self.id,
            "attribute": self.attribute,
            "items": list(self._items),
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "is_interpolated": self.is_interpolated,
            "ground_attribute": self.ground_attribute,
        }

    @classmethod
    def deserialize(cls, data: Mapping[str, Any]) -> "TimeDimension":
        return cls._create(
            data["id"],
            data["attribute"],
            data["items"],
            date.fromisoformat(data["start"]),
            date.fromisoformat(data["end"]),
            data.get("is_interpolated", False),
            data.get("ground_attribute") or data["attribute"]
        )
