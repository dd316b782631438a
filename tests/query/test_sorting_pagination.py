"""Tests for sort resolution and pagination metadata."""

import pytest

from bartersearch.query.pagination import PageWindow, build_pagination
from bartersearch.query.params import SortKey
from bartersearch.query.sorting import RECENT, parse_sort_param, resolve_sort


class TestResolveSort:
    """Test symbolic sort keys -> pymongo sort specs."""

    @pytest.mark.parametrize(
        "key,expected",
        [
            (SortKey.RECENT, [("createdAt", -1)]),
            (SortKey.OLDEST, [("createdAt", 1)]),
            (SortKey.AZ, [("title", 1)]),
            (SortKey.ZA, [("title", -1)]),
        ],
    )
    def test_field_sorts(self, key, expected):
        assert resolve_sort(key, proximity_active=False) == expected
        assert resolve_sort(key, proximity_active=True) == expected

    def test_nearest_with_proximity_keeps_filter_order(self):
        """$near already orders nearest-first; no explicit sort is added."""
        assert resolve_sort(SortKey.NEAREST, proximity_active=True) is None

    def test_nearest_without_proximity_is_recent(self):
        assert resolve_sort(SortKey.NEAREST, proximity_active=False) == RECENT

    def test_unknown_key_is_recent(self):
        assert resolve_sort("cheapest", proximity_active=False) == RECENT

    def test_relevance(self):
        assert resolve_sort(SortKey.RELEVANCE, False, text_active=True) == [("score", {"$meta": "textScore"})]
        assert resolve_sort(SortKey.RELEVANCE, False, text_active=False) == RECENT

    def test_returned_spec_is_a_copy(self):
        resolve_sort(SortKey.RECENT, False).append(("title", 1))
        assert resolve_sort(SortKey.RECENT, False) == [("createdAt", -1)]


class TestParseSortParam:
    """Test the listing ``sort`` parameter."""

    def test_multi_field(self):
        assert parse_sort_param("-createdAt,title") == [("createdAt", -1), ("title", 1)]

    def test_aliases(self):
        assert parse_sort_param("title_desc") == [("title", -1)]
        assert parse_sort_param("oldest") == [("createdAt", 1)]

    @pytest.mark.parametrize("value", [None, "", "  ", ",", "-"])
    def test_empty_is_recent(self, value):
        assert parse_sort_param(value) == RECENT


class TestBuildPagination:
    """Test pagination metadata rules."""

    def test_first_of_two_pages(self):
        pagination = build_pagination(PageWindow(page=1, page_size=1), total=2)
        assert pagination.to_dict() == {
            "page": 1,
            "limit": 1,
            "total": 2,
            "pages": 2,
            "next": {"page": 2, "limit": 1},
        }

    def test_middle_page_has_both_links(self):
        pagination = build_pagination(PageWindow(page=2, page_size=10), total=25)
        assert pagination.pages == 3
        assert pagination.next.page == 3
        assert pagination.prev.page == 1

    def test_last_page_has_no_next(self):
        pagination = build_pagination(PageWindow(page=3, page_size=10), total=30)
        assert pagination.next is None
        assert pagination.prev.page == 2

    def test_empty_result(self):
        """No matches: one page, no links."""
        pagination = build_pagination(PageWindow(page=1, page_size=12), total=0)
        assert pagination.pages == 1
        assert pagination.to_dict() == {"page": 1, "limit": 12, "total": 0, "pages": 1}

    def test_empty_result_beyond_first_page(self):
        pagination = build_pagination(PageWindow(page=4, page_size=12), total=0)
        assert pagination.next is None
        assert pagination.prev is None

    def test_page_past_the_end(self):
        """A page after the last one still points back, never forward."""
        pagination = build_pagination(PageWindow(page=9, page_size=10), total=15)
        assert pagination.next is None
        assert pagination.prev.page == 8

    def test_window(self):
        window = PageWindow(page=3, page_size=12)
        assert window.skip == 24
        assert window.limit == 12
