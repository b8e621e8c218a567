"""
Content items and the collections derived from them.

Everything in here is a pure function over a list of ContentItem: nothing
is cached between calls and the input lists are never mutated, so the same
collection can be shared by every page rendered in a build.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

# Structural tags that never show up in the public tag list
RESERVED_TAGS = frozenset({"all", "nav", "post", "posts", "draft"})


@dataclass
class ContentItem:
    """One source document plus its metadata."""

    input_path: str
    data: Optional[dict] = field(default_factory=dict)
    content: str = ""
    url: Optional[str] = None
    output_path: Optional[str] = None
    date: Optional[datetime] = None

    @property
    def is_draft(self) -> bool:
        return bool((self.data or {}).get("draft"))

    @property
    def tags(self) -> list:
        """
        Tags from the metadata as a list.

        A bare string is a single tag; anything missing or unusable is
        treated as no tags.
        """
        tags = (self.data or {}).get("tags")
        if isinstance(tags, str):
            return [tags]
        if isinstance(tags, (list, tuple)):
            return [str(t) for t in tags]
        return []


def posts_collection(items):
    """Published posts, newest first (input is expected oldest first)."""
    return [item for item in items if not item.is_draft][::-1]


def tag_list(items):
    """
    Sorted, de-duplicated tags across all items, minus RESERVED_TAGS.

    Casing is passed through untouched: "Go" and "go" are two tags.
    """
    tag_set = set()
    for item in items:
        for tag in item.tags:
            if tag not in RESERVED_TAGS:
                tag_set.add(tag)
    return sorted(tag_set)


def _find_index(collection, page):
    if not collection or page is None:
        return None
    input_path = getattr(page, "input_path", None)
    if input_path is None:
        return None
    for i, item in enumerate(collection):
        if getattr(item, "input_path", None) == input_path:
            return i
    return None


def previous_item(collection, page):
    """Item just before `page` in `collection`, or None."""
    index = _find_index(collection, page)
    if index is None or index == 0:
        return None
    return collection[index - 1]


def next_item(collection, page):
    """Item just after `page` in `collection`, or None."""
    index = _find_index(collection, page)
    if index is None or index >= len(collection) - 1:
        return None
    return collection[index + 1]
