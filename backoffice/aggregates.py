"""
Aggregate Metrics Module

Summary metrics computed over exactly the same filtered query as the page
they accompany: counts, money totals, averages, distinct values for facets,
value distributions, ratios and grouped (per channel / per day) totals.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

from .query import FieldKind, Predicate, Query
from .storage import StorageInterface


TWO_PLACES = Decimal('0.01')
ZERO = Decimal('0.00')


class AggregationType(Enum):
    """Types of aggregations for metrics"""
    COUNT = "count"
    SUM = "sum"
    AVERAGE = "average"
    MIN = "min"
    MAX = "max"
    DISTINCT = "distinct"
    DISTRIBUTION = "distribution"
    PERCENTAGE = "percentage"
    GROUPING = "grouping"


class MetricFormat(Enum):
    """Display formats for metrics"""
    MONEY = "money"
    PERCENTAGE = "percentage"
    COUNT = "count"
    DECIMAL = "decimal"


# Scalar aggregations pushed down to the storage backend
_BACKEND_FUNCTIONS = {
    AggregationType.SUM: 'sum',
    AggregationType.AVERAGE: 'avg',
    AggregationType.MIN: 'min',
    AggregationType.MAX: 'max',
}

_NEEDS_FIELD = set(_BACKEND_FUNCTIONS) | {
    AggregationType.DISTINCT, AggregationType.DISTRIBUTION, AggregationType.GROUPING
}


def quantize(value: Optional[Decimal]) -> Decimal:
    if value is None:
        return ZERO
    return Decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class MetricDefinition:
    """
    Definition of a metric to calculate.

    `condition` narrows the screen's query for this metric only (e.g. "active
    accounts"). Percentage metrics name two earlier metrics as numerator and
    denominator. Grouping metrics count rows per value of `field` (or per
    calendar day when `key_kind` is DATE) and total `value_field`.
    """
    name: str
    aggregation: AggregationType
    field: Optional[str] = None
    condition: Optional[Predicate] = None
    format: MetricFormat = MetricFormat.COUNT
    numerator: Optional[str] = None
    denominator: Optional[str] = None
    key_kind: FieldKind = FieldKind.TEXT
    value_field: Optional[str] = None

    def __post_init__(self):
        if self.aggregation in _NEEDS_FIELD and not self.field:
            raise ValueError(f"Metric {self.name} needs a field")
        if self.aggregation == AggregationType.PERCENTAGE and not (self.numerator and self.denominator):
            raise ValueError(f"Percentage metric {self.name} needs a numerator and a denominator")

    def format_value(self, value: Any) -> str:
        """Format a metric value for display"""
        if self.format == MetricFormat.MONEY:
            return f"{quantize(value):,.2f}"
        elif self.format == MetricFormat.PERCENTAGE:
            return f"{quantize(value)}%"
        elif self.format == MetricFormat.COUNT:
            return str(int(value))
        else:
            return str(value)


class AggregateSnapshot(Mapping):
    """Immutable metric name -> value mapping"""

    def __init__(self, values: Dict[str, Any]):
        self._values = MappingProxyType(dict(values))

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"AggregateSnapshot({dict(self._values)!r})"

    def to_dict(self) -> Dict[str, Any]:
        return dict(self._values)


class AggregateCalculator:
    """Computes a fixed list of metrics against any query of its screen"""

    def __init__(self, metrics: Sequence[MetricDefinition]):
        seen = set()
        for metric in metrics:
            if metric.name in seen:
                raise ValueError(f"Duplicate metric name: {metric.name}")
            if metric.aggregation == AggregationType.PERCENTAGE:
                missing = {metric.numerator, metric.denominator} - seen
                if missing:
                    raise ValueError(
                        f"Percentage metric {metric.name} refers to undefined metrics: {sorted(missing)}"
                    )
            seen.add(metric.name)
        self.metrics = tuple(metrics)

    def compute(self, storage: StorageInterface, query: Query) -> AggregateSnapshot:
        values: Dict[str, Any] = {}
        unordered = query.order_by(None)
        for metric in self.metrics:
            scoped = unordered.where(metric.condition) if metric.condition else unordered
            values[metric.name] = self._compute_one(storage, scoped, metric, values)
        return AggregateSnapshot(values)

    def _compute_one(self, storage: StorageInterface, query: Query,
                     metric: MetricDefinition, computed: Dict[str, Any]) -> Any:
        aggregation = metric.aggregation

        if aggregation == AggregationType.COUNT:
            return storage.count_matching(query)

        if aggregation in _BACKEND_FUNCTIONS:
            return quantize(storage.aggregate(query, _BACKEND_FUNCTIONS[aggregation], metric.field))

        if aggregation == AggregationType.PERCENTAGE:
            numerator = Decimal(computed[metric.numerator] or 0)
            denominator = Decimal(computed[metric.denominator] or 0)
            if denominator == 0:
                return ZERO
            return quantize(numerator / denominator * 100)

        rows = storage.group(query, metric.field, metric.key_kind, metric.value_field)

        if aggregation == AggregationType.DISTINCT:
            return [key for key, _, _ in rows if key not in (None, "")]

        if aggregation == AggregationType.DISTRIBUTION:
            distribution: Dict[str, int] = {}
            for key, count, _ in rows:
                key = "" if key is None else key
                distribution[key] = distribution.get(key, 0) + count
            return distribution

        return self._groups(rows, metric)

    @staticmethod
    def _groups(rows, metric: MetricDefinition) -> List[Dict[str, Any]]:
        groups = []
        for key, count, total in rows:
            entry: Dict[str, Any] = {'key': key, 'count': count}
            if metric.value_field:
                entry['total'] = quantize(total)
            groups.append(entry)
        return groups
