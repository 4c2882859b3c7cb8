"""
Unit tests for filtering, sorting and pagination of prompts.
"""

import pytest

from prompt_library.core.query import (
    ALL_PROMPTS,
    PROMPTS_PER_PAGE,
    PromptQuery,
    SortOption,
    all_tags,
    filter_prompts,
    paginate,
    parse_timestamp,
    sort_prompts,
)
from prompt_library.core.records import Folder, PromptVersion


def prompt(id, title="t", folder_id="f1", description="", text="", tags=None,
           created_at="2024-01-01T00:00:00+00:00", last_used_at=None, times_used=0):
    return PromptVersion(id=id, original_id=id, version=1, title=title, description=description,
                         text=text, tags=tags, folder_id=folder_id, created_at=created_at,
                         last_used_at=last_used_at, times_used=times_used)


def ids_of(prompts):
    return [p.id for p in prompts]


FOLDERS = [
    Folder("f1", "Work"),
    Folder("f2", "Emails", parent_id="f1"),
    Folder("f3", "Home"),
]


class TestFilters:
    """Test folder, search and tag filters."""

    def test_all_prompts_sentinel_keeps_everything(self):
        prompts = [prompt("a", folder_id="f1"), prompt("b", folder_id="f3")]

        assert ids_of(filter_prompts(prompts, FOLDERS, ALL_PROMPTS)) == ["a", "b"]
        assert ids_of(filter_prompts(prompts, FOLDERS, None)) == ["a", "b"]

    def test_folder_filter_includes_descendants(self):
        prompts = [prompt("a", folder_id="f1"), prompt("b", folder_id="f2"), prompt("c", folder_id="f3")]

        assert ids_of(filter_prompts(prompts, FOLDERS, "f1")) == ["a", "b"]
        assert ids_of(filter_prompts(prompts, FOLDERS, "f2")) == ["b"]

    def test_search_matches_title_description_and_text(self):
        prompts = [
            prompt("a", title="Weekly REPORT"),
            prompt("b", description="report for the board"),
            prompt("c", text="Write a report"),
            prompt("d", title="Unrelated"),
        ]

        assert ids_of(filter_prompts(prompts, FOLDERS, search="report")) == ["a", "b", "c"]

    def test_search_keeps_surrounding_spaces(self):
        prompts = [
            prompt("a", title="Cat facts"),
            prompt("b", title="Concatenate"),
            prompt("c", text="a cat"),
        ]

        assert ids_of(filter_prompts(prompts, FOLDERS, search="cat ")) == ["a"]
        assert ids_of(filter_prompts(prompts, FOLDERS, search=" cat")) == ["c"]

    def test_blank_search_is_ignored(self):
        prompts = [prompt("a"), prompt("b")]

        assert ids_of(filter_prompts(prompts, FOLDERS, search="   ")) == ["a", "b"]

    def test_tag_filter_is_exact(self):
        prompts = [prompt("a", tags=["email"]), prompt("b", tags=["emails"]), prompt("c")]

        assert ids_of(filter_prompts(prompts, FOLDERS, tag="email")) == ["a"]

    def test_filters_compose(self):
        prompts = [
            prompt("a", folder_id="f2", title="Follow up", tags=["email"]),
            prompt("b", folder_id="f2", title="Follow up"),
            prompt("c", folder_id="f3", title="Follow up", tags=["email"]),
        ]

        assert ids_of(filter_prompts(prompts, FOLDERS, "f1", "follow", "email")) == ["a"]

    def test_all_tags(self):
        prompts = [prompt("a", tags=["b", "a"]), prompt("b", tags=["a", "c"])]

        assert all_tags(prompts) == ["a", "b", "c"]


class TestSorting:
    """Test every sort option."""

    def test_name_sorts_ignore_case(self):
        prompts = [prompt("1", title="beta"), prompt("2", title="Alpha"), prompt("3", title="gamma")]

        assert ids_of(sort_prompts(prompts, SortOption.NAME_ASC)) == ["2", "1", "3"]
        assert ids_of(sort_prompts(prompts, SortOption.NAME_DESC)) == ["3", "1", "2"]

    def test_most_used(self):
        prompts = [prompt("a", times_used=1), prompt("b", times_used=5), prompt("c", times_used=3)]

        assert ids_of(sort_prompts(prompts, SortOption.MOST_USED)) == ["b", "c", "a"]

    def test_recently_used_puts_unused_last(self):
        prompts = [
            prompt("never"),
            prompt("old", last_used_at="2024-01-01T10:00:00+00:00"),
            prompt("new", last_used_at="2024-02-01T10:00:00+00:00"),
        ]

        assert ids_of(sort_prompts(prompts, SortOption.RECENTLY_USED)) == ["new", "old", "never"]

    def test_date_created(self):
        prompts = [
            prompt("mid", created_at="2024-02-01T00:00:00+00:00"),
            prompt("old", created_at="2024-01-01T00:00:00+00:00"),
            prompt("new", created_at="2024-03-01T00:00:00+00:00"),
        ]

        assert ids_of(sort_prompts(prompts, SortOption.DATE_CREATED_ASC)) == ["old", "mid", "new"]
        assert ids_of(sort_prompts(prompts, SortOption.DATE_CREATED_DESC)) == ["new", "mid", "old"]

    def test_sort_accepts_option_value(self):
        prompts = [prompt("b", title="b"), prompt("a", title="a")]

        assert ids_of(sort_prompts(prompts, "name_asc")) == ["a", "b"]

    def test_unknown_option_rejected(self):
        with pytest.raises(ValueError):
            sort_prompts([], "shuffle")

    def test_labels(self):
        assert SortOption.NAME_ASC.label == "Name (A-Z)"
        assert SortOption.RECENTLY_USED.label == "Recently Used"

    def test_parse_timestamp_fallback(self):
        assert parse_timestamp("garbage") < parse_timestamp("2000-01-01T00:00:00")
        assert parse_timestamp("2024-01-01T00:00:00").tzinfo is not None


class TestPagination:
    """Test page slicing and clamping."""

    def test_pages(self):
        items = [prompt(str(i)) for i in range(25)]

        page = paginate(items, 2)

        assert page.total_pages == 3
        assert page.total_items == 25
        assert len(page.items) == PROMPTS_PER_PAGE
        assert page.items[0].id == "12"

    def test_last_page_is_partial(self):
        items = [prompt(str(i)) for i in range(25)]

        assert len(paginate(items, 3).items) == 1

    def test_out_of_range_pages_are_clamped(self):
        items = [prompt(str(i)) for i in range(5)]

        assert paginate(items, 9, page_size=2).page == 3
        assert paginate(items, 0, page_size=2).page == 1

    def test_empty(self):
        page = paginate([], 4)

        assert page.items == []
        assert page.page == 1
        assert page.total_pages == 0

    def test_invalid_page_size(self):
        with pytest.raises(ValueError):
            paginate([], 1, page_size=0)

    def test_page_to_dict(self):
        data = paginate([prompt("a")]).to_dict()

        assert data["items"][0]["id"] == "a"
        assert data["total_items"] == 1


class TestPromptQuery:
    """Test browsing state."""

    def test_changing_criteria_resets_page(self):
        query = PromptQuery(page=3)

        query.search = "email"
        assert query.page == 1

        query.page = 2
        query.tag = "work"
        assert query.page == 1

        query.page = 2
        query.sort = "name_asc"
        assert query.page == 1
        assert query.sort is SortOption.NAME_ASC

        query.page = 2
        query.folder_id = "f1"
        assert query.page == 1

    def test_unchanged_criteria_keep_page(self):
        query = PromptQuery(search="email", page=3)

        query.search = "email"

        assert query.page == 3

    def test_apply(self):
        prompts = [
            prompt("a", folder_id="f2", title="B", tags=["x"]),
            prompt("b", folder_id="f1", title="A", tags=["x"]),
            prompt("c", folder_id="f3", title="C", tags=["x"]),
        ]
        query = PromptQuery(folder_id="f1", tag="x", sort=SortOption.NAME_ASC, page_size=1, page=2)

        page = query.apply(prompts, FOLDERS)

        assert ids_of(page.items) == ["a"]
        assert page.total_pages == 2
