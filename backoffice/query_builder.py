"""
Query Builder Module

Translates validated filter values plus an ordering request into an
immutable Query: base scope first, then one predicate per active filter,
then the screen's recent-activity window when no date range was given.
"""

from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Mapping, Optional, Sequence

from .filters import FilterSet, FilterSpec, FilterValues, MatchType, Range, RelatedTarget, Target
from .query import (
    AnyOf, Between, Contains, Equals, FieldKind, InSet, Ordering, Predicate,
    Query, Related, SortDirection
)


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def _years_before(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year - years)
    except ValueError:
        # 29 February in a non-leap target year
        return day.replace(year=day.year - years, day=28)


class WindowPolicy(Enum):
    """Default date window applied when a screen's date filter is absent"""
    NO_WINDOW = ("no_window", 0, 0)
    LAST_7_DAYS = ("last_7_days", 7, 0)
    LAST_30_DAYS = ("last_30_days", 30, 0)
    LAST_2_YEARS = ("last_2_years", 0, 2)
    LAST_5_YEARS = ("last_5_years", 0, 5)

    def __init__(self, label: str, days: int, years: int):
        self.label = label
        self.days = days
        self.years = years

    def window(self, today: date) -> Optional[Range]:
        """Inclusive (start, today) window, or None for NO_WINDOW"""
        if self is WindowPolicy.NO_WINDOW:
            return None
        if self.years:
            return Range(_years_before(today, self.years), today)
        return Range(today - timedelta(days=self.days), today)


def parse_direction(value: Any, fallback: SortDirection) -> SortDirection:
    if isinstance(value, SortDirection):
        return value
    try:
        return SortDirection(str(value).strip().lower())
    except ValueError:
        return fallback


class QueryBuilder:
    """
    Builds the Query for one screen.

    Args:
        table: Table the screen lists
        filters: Declared filters
        default_ordering: Ordering used when none (or an unknown field) is requested
        sortable: Sortable field name -> kind
        base: Scope predicates ANDed ahead of every filter
        window_policy: Window applied when `window_filter` is absent
        window_filter: Name of the date range filter the window stands in for
    """

    def __init__(self, table: str, filters: FilterSet, default_ordering: Ordering,
                 sortable: Optional[Mapping[str, FieldKind]] = None,
                 base: Sequence[Predicate] = (),
                 window_policy: WindowPolicy = WindowPolicy.NO_WINDOW,
                 window_filter: Optional[str] = None):
        if window_policy is not WindowPolicy.NO_WINDOW:
            spec = filters.get(window_filter) if window_filter else None
            if spec is None or spec.match != MatchType.RANGE or spec.kind != FieldKind.DATE:
                raise ValueError(f"Window policy {window_policy.label} needs a date range filter")
        self.table = table
        self.filters = filters
        self.default_ordering = default_ordering
        self.sortable = dict(sortable or {})
        self.sortable.setdefault(default_ordering.field, default_ordering.kind)
        self.base = tuple(base)
        self.window_policy = window_policy
        self.window_filter = window_filter

    def resolve_ordering(self, field_name: Optional[str] = None,
                         direction: Any = None) -> Ordering:
        """Requested ordering when the field is sortable, else the default"""
        if not field_name or field_name not in self.sortable:
            if direction is None:
                return self.default_ordering
            return Ordering(self.default_ordering.field,
                            parse_direction(direction, self.default_ordering.direction),
                            self.default_ordering.kind)
        return Ordering(field_name,
                        parse_direction(direction, self.default_ordering.direction),
                        self.sortable[field_name])

    def build(self, values: FilterValues, ordering: Optional[Ordering] = None,
              today: Optional[date] = None) -> Query:
        predicates = list(self.base)
        for spec in self.filters:
            if spec.name in values:
                predicates.append(self.predicate_for(spec, values[spec.name]))

        if self.window_filter and self.window_filter not in values:
            window = self.window_policy.window(today or utc_today())
            if window is not None:
                spec = self.filters.get(self.window_filter)
                predicates.append(self.predicate_for(spec, window))

        if ordering is None or ordering.field not in self.sortable:
            ordering = self.default_ordering
        return Query(self.table, tuple(predicates), ordering)

    def predicate_for(self, spec: FilterSpec, value: Any) -> Predicate:
        """Predicate for one filter value; several targets are ORed"""
        if spec.match == MatchType.PRESET:
            return spec.presets[value]
        parts = tuple(self._target_predicate(target, spec, value) for target in spec.targets)
        return parts[0] if len(parts) == 1 else AnyOf(parts)

    def _target_predicate(self, target: Target, spec: FilterSpec, value: Any) -> Predicate:
        if isinstance(target, RelatedTarget):
            inner = self._field_predicate(target.field, spec, value)
            return Related(target.table, target.local_key, target.remote_key, inner)
        return self._field_predicate(target, spec, value)

    @staticmethod
    def _field_predicate(field_name: str, spec: FilterSpec, value: Any) -> Predicate:
        if spec.match == MatchType.SUBSTRING:
            return Contains(field_name, value)
        if spec.match == MatchType.RANGE:
            return Between(field_name, value.start, value.end, spec.kind)
        if spec.match == MatchType.IN:
            return InSet(field_name, tuple(value))
        if spec.kind == FieldKind.DATE:
            return Between(field_name, value, value, FieldKind.DATE)
        if spec.kind == FieldKind.NUMBER:
            return Between(field_name, value, value, FieldKind.NUMBER)
        return Equals(field_name, value)
