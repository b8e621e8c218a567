"""Tests for the posts collection, tag list and prev/next lookup."""

from __future__ import annotations

import pytest

from site_collections import (
    RESERVED_TAGS,
    ContentItem,
    next_item,
    posts_collection,
    previous_item,
    tag_list,
)


def item(path: str, **data) -> ContentItem:
    return ContentItem(input_path=path, data=data)


class TestContentItem:
    def test_missing_data_is_not_draft(self) -> None:
        assert ContentItem(input_path="a", data=None).is_draft is False

    def test_missing_data_has_no_tags(self) -> None:
        assert ContentItem(input_path="a", data=None).tags == []

    def test_single_string_tag(self) -> None:
        assert item("a", tags="post").tags == ["post"]

    def test_unusable_tags_value(self) -> None:
        assert item("a", tags=42).tags == []

    @pytest.mark.parametrize("value", [True, "yes", 1])
    def test_truthy_draft(self, value) -> None:
        assert item("a", draft=value).is_draft is True


class TestPostsCollection:
    def test_drops_drafts_and_reverses(self) -> None:
        a = item("a", draft=True)
        b = item("b")
        c = item("c")
        assert posts_collection([a, b, c]) == [c, b]

    def test_empty(self) -> None:
        assert posts_collection([]) == []

    def test_no_drafts_is_plain_reverse(self) -> None:
        items = [item(str(i)) for i in range(5)]
        assert posts_collection(items) == items[::-1]

    def test_false_draft_is_kept(self) -> None:
        a = item("a", draft=False)
        assert posts_collection([a]) == [a]

    def test_input_not_mutated(self) -> None:
        items = [item("a"), item("b", draft=True)]
        before = list(items)
        posts_collection(items)
        assert items == before

    def test_never_contains_drafts(self) -> None:
        items = [item(str(i), draft=(i % 3 == 0)) for i in range(10)]
        assert not any(p.is_draft for p in posts_collection(items))


class TestTagList:
    def test_case_sensitive_reserved_stripped_sorted(self) -> None:
        items = [
            item("a", tags=["Go", "draft", "nav"]),
            item("b", tags=["go", "rust"]),
        ]
        assert tag_list(items) == ["Go", "go", "rust"]

    def test_items_without_tags_contribute_nothing(self) -> None:
        assert tag_list([item("a"), ContentItem(input_path="b", data=None)]) == []

    def test_deduplicates(self) -> None:
        items = [item("a", tags=["python", "web"]), item("b", tags=["web", "python"])]
        assert tag_list(items) == ["python", "web"]

    def test_reserved_names_never_listed(self) -> None:
        items = [item("a", tags=sorted(RESERVED_TAGS) + ["zig"])]
        result = tag_list(items)
        assert result == ["zig"]
        assert not set(result) & RESERVED_TAGS

    def test_code_point_order(self) -> None:
        items = [item("a", tags=["beta", "Alpha", "alpha", "Zed"])]
        assert tag_list(items) == ["Alpha", "Zed", "alpha", "beta"]


class TestNavigation:
    @pytest.fixture
    def posts(self) -> list:
        return [item("p0"), item("p1"), item("p2")]

    def test_middle(self, posts) -> None:
        assert previous_item(posts, posts[1]) is posts[0]
        assert next_item(posts, posts[1]) is posts[2]

    def test_first_has_no_previous(self, posts) -> None:
        assert previous_item(posts, posts[0]) is None
        assert next_item(posts, posts[0]) is posts[1]

    def test_last_has_no_next(self, posts) -> None:
        assert next_item(posts, posts[-1]) is None
        assert previous_item(posts, posts[-1]) is posts[1]

    def test_matches_by_input_path_not_identity(self, posts) -> None:
        copy = item("p1", title="a different object")
        assert previous_item(posts, copy) is posts[0]
        assert next_item(posts, copy) is posts[2]

    def test_unknown_page(self, posts) -> None:
        stranger = item("elsewhere")
        assert previous_item(posts, stranger) is None
        assert next_item(posts, stranger) is None

    @pytest.mark.parametrize("collection", [None, []])
    def test_missing_collection(self, collection) -> None:
        assert previous_item(collection, item("p0")) is None
        assert next_item(collection, item("p0")) is None

    def test_missing_page(self, posts) -> None:
        assert previous_item(posts, None) is None
        assert next_item(posts, None) is None

    def test_collection_of_non_items(self) -> None:
        page = item("x")
        assert previous_item(["Go", "rust"], page) is None
        assert next_item(["Go", "rust"], page) is None

    def test_page_without_input_path(self) -> None:
        class Loose:
            input_path = None

        posts = [Loose(), Loose()]
        assert previous_item(posts, Loose()) is None
        assert next_item(posts, Loose()) is None
        assert next_item([item("p0")], object()) is None

    def test_single_item(self) -> None:
        only = item("only")
        assert previous_item([only], only) is None
        assert next_item([only], only) is None
