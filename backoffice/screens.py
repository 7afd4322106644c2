"""
List Screen Module

A ListScreen declares one browsing screen (table, filters, default window,
sortable fields, scope, metrics, labels, export columns). ScreenBrowser runs
a request against it: parse filters, build the query, fetch one page and the
summary metrics from that same query, then attach display labels.
"""

import sys
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from .aggregates import AggregateCalculator, AggregateSnapshot, MetricDefinition
from .filters import FilterSet, FilterValues
from .logging_config import get_logger, log_action
from .pagination import Paginator, ResultPage
from .presentation import LabelRegistry, format_timestamp, get_registry
from .query import FieldKind, Ordering, Predicate, Query
from .query_builder import QueryBuilder, WindowPolicy, utc_today
from .storage import StorageError, StorageInterface


logger = get_logger("backoffice.screens")


class QueryFailedError(Exception):
    """A listing query failed in the data store; carries a message safe to show staff"""

    USER_MESSAGE = "The list could not be loaded. Try a smaller date range or try again."

    def __init__(self, screen: str, message: str = USER_MESSAGE):
        super().__init__(message)
        self.screen = screen
        self.message = message


@dataclass(frozen=True)
class ViewState:
    """UI state echoed back with each result (filter drawer, active tab)"""
    show_filters: bool = False
    tab: Optional[str] = None


@dataclass(frozen=True)
class ListScreen:
    name: str
    table: str
    filters: FilterSet
    default_ordering: Ordering
    sortable: Mapping[str, FieldKind] = field(default_factory=dict)
    window_policy: WindowPolicy = WindowPolicy.NO_WINDOW
    window_filter: Optional[str] = None
    base: Tuple[Predicate, ...] = ()
    metrics: Tuple[MetricDefinition, ...] = ()
    label_fields: Mapping[str, str] = field(default_factory=dict)
    export_columns: Tuple[str, ...] = ()

    def __post_init__(self):
        # Fail at declaration time on inconsistent windows or metrics
        self.builder()
        self.calculator()

    def builder(self) -> QueryBuilder:
        return QueryBuilder(
            self.table, self.filters, self.default_ordering,
            sortable=self.sortable, base=self.base,
            window_policy=self.window_policy, window_filter=self.window_filter,
        )

    def calculator(self) -> AggregateCalculator:
        return AggregateCalculator(self.metrics)

    def scoped(self, *predicates: Predicate, name: Optional[str] = None,
               window_policy: Optional[WindowPolicy] = None) -> 'ListScreen':
        """Same screen narrowed by extra base predicates (detail pages)"""
        return replace(
            self,
            name=name or self.name,
            base=self.base + tuple(predicates),
            window_policy=self.window_policy if window_policy is None else window_policy,
        )


@dataclass(frozen=True)
class BrowseRequest:
    """Raw, unvalidated request parameters for one screen"""
    filters: Mapping[str, Any] = field(default_factory=dict)
    sort_by: Optional[str] = None
    sort_direction: Optional[str] = None
    page: Any = None
    size: Any = None
    view: ViewState = ViewState()
    with_aggregates: bool = True


@dataclass(frozen=True)
class BrowseResult:
    screen: str
    page: ResultPage
    aggregates: AggregateSnapshot
    filters: FilterValues
    ordering: Ordering
    view: ViewState

    def to_dict(self) -> Dict[str, Any]:
        return {
            'screen': self.screen,
            'rows': list(self.page.rows),
            'pagination': self.page.meta(),
            'aggregates': self.aggregates.to_dict(),
            'filters': self.filters.to_dict(),
            'active_filters': self.filters.active_count,
            'rejected_filters': list(self.filters.rejected),
            'ordering': {'field': self.ordering.field, 'direction': self.ordering.direction.value},
            'view': {'show_filters': self.view.show_filters, 'tab': self.view.tab},
        }


class ScreenBrowser:
    """Runs browse requests against list screens"""

    def __init__(self, storage: StorageInterface, paginator: Optional[Paginator] = None,
                 labels: Optional[LabelRegistry] = None,
                 today: Callable[[], date] = utc_today,
                 date_format: str = "%d/%m/%Y %H:%M"):
        self.storage = storage
        self.paginator = paginator or Paginator()
        self.labels = labels or get_registry()
        self.today = today
        self.date_format = date_format

    def prepare(self, screen: ListScreen, request: BrowseRequest) -> Tuple[FilterValues, Query]:
        """Validated filters and the query they produce"""
        builder = screen.builder()
        values = screen.filters.parse(request.filters)
        ordering = builder.resolve_ordering(request.sort_by, request.sort_direction)
        return values, builder.build(values, ordering, today=self.today())

    def browse(self, screen: ListScreen, request: Optional[BrowseRequest] = None) -> BrowseResult:
        request = request or BrowseRequest()
        values, query = self.prepare(screen, request)

        with self.guard(screen, values, query):
            page = self.paginator.paginate(self.storage, query, request.page, request.size)
            if request.with_aggregates:
                aggregates = screen.calculator().compute(self.storage, query)
            else:
                aggregates = AggregateSnapshot({})

        page = page.map(lambda row: self.present(screen, row))
        return BrowseResult(screen.name, page, aggregates, values, query.ordering, request.view)

    def summarize(self, screen: ListScreen,
                  request: Optional[BrowseRequest] = None) -> Tuple[FilterValues, AggregateSnapshot]:
        """Summary metrics for a request without fetching any rows"""
        values, query = self.prepare(screen, request or BrowseRequest())
        with self.guard(screen, values, query):
            return values, screen.calculator().compute(self.storage, query)

    def present(self, screen: ListScreen, row: Dict[str, Any]) -> Dict[str, Any]:
        """Row with display labels and a formatted creation time"""
        row = self.labels.decorate(row, screen.label_fields)
        if row.get('created_at'):
            row['created_at_display'] = format_timestamp(row['created_at'], self.date_format)
        return row

    @contextmanager
    def guard(self, screen: ListScreen, values: FilterValues, query: Query):
        """Log storage failures with their context and re-raise them as QueryFailedError"""
        try:
            yield
        except StorageError as e:
            log_action(
                logger, "error", f"Query failed on screen {screen.name}: {e}",
                action="browse", resource=screen.name,
                extra={
                    'table': query.table,
                    'filters': values.to_dict(),
                    'ordering': query.ordering.field if query.ordering else None,
                },
                exc_info=sys.exc_info(),
            )
            raise QueryFailedError(screen.name) from e
