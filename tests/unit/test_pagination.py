"""
Unit tests for paged results and Link headers.
"""

from urllib.parse import parse_qs, urlparse
import re

import pytest

from restroute.http.pagination import ListQuery, PagedResult, build_link_header, paginate


def links(header: str) -> dict:
    """rel → query params of each link."""
    result = {}
    for url, rel in re.findall(r'<([^>]+)>; rel="(\w+)"', header):
        parsed = urlparse(url)
        result[rel] = (parsed.path, parse_qs(parsed.query))
    return result


class TestPagedResult:
    """Tests for PagedResult invariants."""

    @pytest.mark.parametrize("kwargs", [
        {"page": 0, "page_size": 10, "total": 0},
        {"page": 1, "page_size": 0, "total": 0},
        {"page": 1, "page_size": 10, "total": -1},
    ])
    def test_invalid_numbers_rejected(self, kwargs):
        """Test page, page_size and total bounds."""
        with pytest.raises(ValueError):
            PagedResult(items=[], **kwargs)

    def test_too_many_items_rejected(self):
        """Test items must fit in one page."""
        with pytest.raises(ValueError):
            PagedResult(items=[1, 2, 3], page=1, page_size=2, total=3)

    def test_page_navigation(self):
        """Test last_page, has_next and has_previous."""
        result = PagedResult(items=[3, 4], page=2, page_size=2, total=5)

        assert result.total_pages == 3
        assert result.last_page == 3
        assert result.has_next
        assert result.has_previous

    def test_empty_list_has_one_page(self):
        """Test an empty list still has a page 1."""
        result = PagedResult(items=[], page=1, page_size=20, total=0)

        assert result.last_page == 1
        assert not result.has_next


class TestPaginate:
    """Tests for slicing an in-memory list."""

    def test_middle_page(self):
        """Test offset arithmetic."""
        result = paginate(list(range(45)), page=2, page_size=20)

        assert result.items == list(range(20, 40))
        assert result.total == 45

    def test_last_partial_page(self):
        """Test the final page holds the remainder."""
        assert paginate(list(range(45)), page=3, page_size=20).items == list(range(40, 45))

    def test_page_past_the_end(self):
        """Test a page past the end is empty, with the real total."""
        result = paginate(list(range(5)), page=9, page_size=2)

        assert result.items == []
        assert result.total == 5

    def test_item_count_matches_arithmetic(self):
        """Test returned = min(page_size, max(0, total - offset))."""
        items = list(range(7))
        for page in range(1, 6):
            for page_size in range(1, 9):
                result = paginate(items, page, page_size)
                expected = min(page_size, max(0, 7 - (page - 1) * page_size))
                assert len(result.items) == expected

    def test_invalid_arguments(self):
        """Test page and page_size must be positive."""
        with pytest.raises(ValueError):
            paginate([1], page=0, page_size=1)


class TestListQuery:
    """Tests for ListQuery."""

    def test_from_arguments(self):
        """Test building from bound paging arguments."""
        list_query = ListQuery.from_arguments({
            "page": 3,
            "page_size": 5,
            "order_by": "name",
            "order_dir": "desc",
            "filters": {"active": "true"},
        })

        assert list_query == ListQuery(3, 5, "name", "desc", {"active": "true"})
        assert list_query.descending

    def test_defaults(self):
        """Test missing arguments fall back to defaults."""
        list_query = ListQuery.from_arguments({})

        assert list_query.page == 1
        assert list_query.page_size == 20
        assert list_query.filters == {}
        assert not list_query.descending


class TestLinkHeader:
    """Tests for RFC 8288 Link headers."""

    def test_single_page_has_no_links(self):
        """Test nothing to link to on a lone page."""
        result = paginate([1, 2], page=1, page_size=20)

        assert build_link_header("/v1/users", {}, result) is None

    def test_first_page(self):
        """Test first, next and last on page 1."""
        result = paginate(list(range(45)), page=1, page_size=20)
        header = build_link_header("/v1/users", {"pageSize": ["20"]}, result)
        found = links(header)

        assert set(found) == {"first", "next", "last"}
        assert found["next"] == ("/v1/users", {"page": ["2"], "pageSize": ["20"]})
        assert found["last"][1]["page"] == ["3"]

    def test_middle_page_keeps_other_parameters(self):
        """Test filters and ordering carry over into every link."""
        result = paginate(list(range(45)), page=2, page_size=20)
        query = {"page": ["2"], "pageSize": ["20"], "orderBy": ["name"], "active": ["true"]}
        found = links(build_link_header("/v1/users", query, result))

        assert set(found) == {"first", "prev", "next", "last"}
        assert found["prev"][1] == {
            "page": ["1"],
            "pageSize": ["20"],
            "orderBy": ["name"],
            "active": ["true"],
        }

    def test_page_past_the_end_points_back(self):
        """Test prev from beyond the end goes to the last real page."""
        result = paginate(list(range(5)), page=9, page_size=2)
        found = links(build_link_header("/v1/users", {}, result))

        assert "next" not in found
        assert found["prev"][1]["page"] == ["3"]
