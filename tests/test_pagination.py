"""
Tests for offset pagination
"""

import pytest

from backoffice.pagination import Paginator, ResultPage
from backoffice.query import Ordering, Query, SortDirection
from backoffice.storage import InMemoryStorage


@pytest.fixture
def storage():
    storage = InMemoryStorage()
    for number in range(1, 24):
        storage.save("customers", f"{number:03d}", {"id": f"{number:03d}"})
    return storage


@pytest.fixture
def query():
    return Query("customers").order_by(Ordering("id", SortDirection.ASC))


class TestPaginator:
    """Test page windows and clamping"""

    def test_first_page(self, storage, query):
        page = Paginator(default_size=10).paginate(storage, query)
        assert [row["id"] for row in page.rows] == [f"{n:03d}" for n in range(1, 11)]
        assert page.total_count == 23
        assert page.last_page == 3
        assert page.has_next and not page.has_previous
        assert page.summary() == "1-10 of 23"

    def test_last_partial_page(self, storage, query):
        page = Paginator(default_size=10).paginate(storage, query, page="3")
        assert len(page.rows) == 3
        assert page.summary() == "21-23 of 23"
        assert not page.has_next and page.has_previous

    def test_page_past_the_end_is_empty(self, storage, query):
        page = Paginator(default_size=10).paginate(storage, query, page=9)
        assert page.rows == ()
        assert page.total_count == 23
        assert page.first_item == 0 and page.last_item == 0

    def test_invalid_page_numbers_clamp_to_one(self):
        assert Paginator.clamp_page(None) == 1
        assert Paginator.clamp_page("0") == 1
        assert Paginator.clamp_page(-4) == 1
        assert Paginator.clamp_page("two") == 1
        assert Paginator.clamp_page(True) == 1

    def test_page_size_is_clamped(self):
        paginator = Paginator(default_size=15, max_size=100)
        assert paginator.clamp_size(None) == 15
        assert paginator.clamp_size("abc") == 15
        assert paginator.clamp_size(0) == 1
        assert paginator.clamp_size(5000) == 100
        assert paginator.clamp_size(" 25 ") == 25

    def test_invalid_configuration(self):
        with pytest.raises(ValueError):
            Paginator(default_size=0)
        with pytest.raises(ValueError):
            Paginator(default_size=50, max_size=10)


class TestResultPage:
    """Test derived page numbers"""

    def test_empty_result_has_one_page(self):
        page = ResultPage((), 0, 1, 15)
        assert page.last_page == 1
        assert not page.has_next
        assert page.summary() == "0-0 of 0"

    def test_map_keeps_counts(self):
        page = ResultPage(({"id": "1"},), 31, 2, 15)
        mapped = page.map(lambda row: dict(row, shown=True))
        assert mapped.rows == ({"id": "1", "shown": True},)
        assert mapped.total_count == 31
        assert mapped.meta()["last_page"] == 3
        assert mapped.first_item == 16
