"""
Tests for running browse requests against list screens
"""

from datetime import date
from decimal import Decimal

import pytest

from backoffice.aggregates import AggregationType, MetricDefinition
from backoffice.filters import FilterSet, FilterSpec, MatchType
from backoffice.pagination import Paginator
from backoffice.query import Equals, FieldKind, Ordering, SortDirection
from backoffice.query_builder import WindowPolicy
from backoffice.screens import (
    BrowseRequest, ListScreen, QueryFailedError, ScreenBrowser, ViewState
)
from backoffice.storage import InMemoryStorage, SQLiteStorage, StorageError


TODAY = date(2024, 3, 1)

ENTITIES = [
    {"id": "1", "status": "03", "amount": 100, "date": "2024-01-05", "created_at": "2024-01-05T08:00:00+00:00"},
    {"id": "2", "status": "01", "amount": 200, "date": "2024-02-10", "created_at": "2024-02-10T16:45:00+00:00"},
]

SCREEN = ListScreen(
    name="entities",
    table="entities",
    filters=FilterSet(
        FilterSpec('status', MatchType.IN),
        FilterSpec('amount', MatchType.RANGE, kind=FieldKind.NUMBER),
        FilterSpec('date_range', MatchType.RANGE, targets=('date',), kind=FieldKind.DATE),
    ),
    default_ordering=Ordering('date', SortDirection.ASC),
    sortable={'amount': FieldKind.NUMBER},
    window_policy=WindowPolicy.LAST_2_YEARS,
    window_filter='date_range',
    metrics=(
        MetricDefinition('total_count', AggregationType.COUNT),
        MetricDefinition('sum_amount', AggregationType.SUM, field='amount'),
    ),
    label_fields={'status': 'account_status'},
)


@pytest.fixture(params=[InMemoryStorage, lambda: SQLiteStorage(":memory:")], ids=["memory", "sqlite"])
def storage(request):
    backend = request.param()
    for entity in ENTITIES:
        backend.save("entities", entity["id"], entity)
    return backend


@pytest.fixture
def browser(storage):
    return ScreenBrowser(storage, today=lambda: TODAY)


def row_ids(result):
    return [row["id"] for row in result.page.rows]


class TestBrowse:
    """The worked example every backend must reproduce"""

    def test_status_filter(self, browser):
        result = browser.browse(SCREEN, BrowseRequest(filters={'status': '03'}))
        assert row_ids(result) == ["1"]
        assert result.page.total_count == 1
        assert result.aggregates['total_count'] == 1
        assert result.aggregates['sum_amount'] == Decimal('100.00')

    def test_date_range_filter(self, browser):
        result = browser.browse(SCREEN, BrowseRequest(filters={'date_range': ['2024-01-01', '2024-01-31']}))
        assert row_ids(result) == ["1"]

    def test_day_first_date_range(self, browser):
        result = browser.browse(SCREEN, BrowseRequest(filters={'date_range': '01/02/2024 to 29/02/2024'}))
        assert row_ids(result) == ["2"]

    def test_default_window_includes_both(self, browser):
        result = browser.browse(SCREEN)
        assert row_ids(result) == ["1", "2"]
        assert result.aggregates['sum_amount'] == Decimal('300.00')

    def test_default_window_excludes_old_rows(self, storage):
        browser = ScreenBrowser(storage, today=lambda: date(2026, 2, 1))
        assert row_ids(browser.browse(SCREEN)) == ["2"]

    def test_rows_carry_labels_and_display_dates(self, browser):
        row = browser.browse(SCREEN, BrowseRequest(filters={'status': '03'})).page.rows[0]
        assert row['status_label'] == "Active"
        assert row['status_color'] == "badge-success"
        assert row['created_at_display'] == "05/01/2024 08:00"

    def test_requested_ordering(self, browser):
        result = browser.browse(SCREEN, BrowseRequest(sort_by='amount', sort_direction='desc'))
        assert row_ids(result) == ["2", "1"]
        assert result.ordering == Ordering('amount', SortDirection.DESC, FieldKind.NUMBER)

    def test_without_aggregates(self, browser):
        result = browser.browse(SCREEN, BrowseRequest(with_aggregates=False))
        assert len(result.aggregates) == 0
        assert result.page.total_count == 2


class TestConsistency:
    """Properties linking pages, counts and aggregates"""

    def test_pages_cover_exactly_the_counted_rows(self, storage):
        for number in range(3, 31):
            storage.save("entities", str(number), {
                "id": str(number), "status": "03", "amount": number, "date": "2024-01-20",
            })
        browser = ScreenBrowser(storage, paginator=Paginator(default_size=7), today=lambda: TODAY)
        request = {'status': '03'}

        first = browser.browse(SCREEN, BrowseRequest(filters=request))
        seen = []
        for page in range(1, first.page.last_page + 1):
            seen.extend(row_ids(browser.browse(SCREEN, BrowseRequest(filters=request, page=page))))

        assert len(seen) == len(set(seen)) == first.page.total_count == first.aggregates['total_count']

    def test_identical_requests_give_identical_results(self, browser):
        request = BrowseRequest(filters={'amount': '50 to 500'})
        assert browser.browse(SCREEN, request) == browser.browse(SCREEN, request)

    def test_empty_value_equals_missing_value(self, browser):
        _, with_empty = browser.prepare(SCREEN, BrowseRequest(filters={'status': ''}))
        _, without = browser.prepare(SCREEN, BrowseRequest())
        assert with_empty == without

    def test_reversed_range_matches_swapped_range(self, browser):
        reversed_range = browser.browse(SCREEN, BrowseRequest(filters={'amount': '250 to 150'}))
        swapped = browser.browse(SCREEN, BrowseRequest(filters={'amount': '150 to 250'}))
        assert row_ids(reversed_range) == row_ids(swapped) == ["2"]

    def test_page_beyond_the_end(self, browser):
        result = browser.browse(SCREEN, BrowseRequest(page=50))
        assert result.page.rows == ()
        assert result.page.total_count == 2

    def test_rejected_filters_are_reported(self, browser):
        result = browser.browse(SCREEN, BrowseRequest(filters={'amount': 'cheap', 'status': '03'}))
        assert row_ids(result) == ["1"]
        assert result.to_dict()['rejected_filters'] == ['amount']

    def test_summarize_matches_browse_without_fetching_rows(self, storage, browser, monkeypatch):
        request = BrowseRequest(filters={'status': '03', 'amount': 'cheap'})
        browsed = browser.browse(SCREEN, request)

        def no_fetch(*args, **kwargs):
            raise AssertionError("summaries must not fetch rows")

        monkeypatch.setattr(storage, "fetch", no_fetch)
        values, aggregates = browser.summarize(SCREEN, request)
        assert aggregates == browsed.aggregates
        assert values.rejected == ('amount',)


class TestResultShape:
    def test_to_dict(self, browser):
        request = BrowseRequest(filters={'status': '03'}, view=ViewState(show_filters=True, tab='details'))
        data = browser.browse(SCREEN, request).to_dict()
        assert data['screen'] == "entities"
        assert data['pagination']['total_count'] == 1
        assert data['filters'] == {'status': ['03']}
        assert data['active_filters'] == 1
        assert data['ordering'] == {'field': 'date', 'direction': 'asc'}
        assert data['view'] == {'show_filters': True, 'tab': 'details'}


class FailingStorage(InMemoryStorage):
    def count_matching(self, query):
        raise StorageError("relation \"entities\" is locked")


class TestQueryFailures:
    """Store failures surface as a generic error"""

    def test_storage_error_becomes_query_failed(self):
        browser = ScreenBrowser(FailingStorage(), today=lambda: TODAY)
        with pytest.raises(QueryFailedError) as excinfo:
            browser.browse(SCREEN)
        assert excinfo.value.screen == "entities"
        assert "locked" not in excinfo.value.message
        assert "smaller date range" in excinfo.value.message


class TestScreenDeclaration:
    def test_window_without_date_filter_fails_at_declaration(self):
        with pytest.raises(ValueError):
            ListScreen(
                name="broken", table="entities",
                filters=FilterSet(FilterSpec('status', MatchType.IN)),
                default_ordering=Ordering('id'),
                window_policy=WindowPolicy.LAST_7_DAYS,
            )

    def test_scoped_screen_adds_base_predicates(self, browser):
        scoped = SCREEN.scoped(Equals('status', '01'), name="inactive", window_policy=WindowPolicy.NO_WINDOW)
        result = browser.browse(scoped)
        assert result.screen == "inactive"
        assert row_ids(result) == ["2"]
