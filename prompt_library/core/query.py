"""
Filtering, sorting and pagination over the latest version of each prompt.

Filters compose in a fixed order: folder branch, then free-text search over
title/description/text, then tag. Sorting happens after filtering and
pagination after sorting.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, List, Optional

from .folder import get_folder_ids_in_branch
from .records import Folder, PromptVersion

logger = logging.getLogger(__name__)

PROMPTS_PER_PAGE = 12

# Folder filter value meaning "every folder"
ALL_PROMPTS = "all_prompts_folder_id"


class SortOption(str, Enum):
    NAME_ASC = "name_asc"
    NAME_DESC = "name_desc"
    MOST_USED = "most_used"
    RECENTLY_USED = "recently_used"
    DATE_CREATED_ASC = "date_created_asc"
    DATE_CREATED_DESC = "date_created_desc"

    @property
    def label(self) -> str:
        return SORT_OPTION_LABELS[self]


SORT_OPTION_LABELS = {
    SortOption.NAME_ASC: "Name (A-Z)",
    SortOption.NAME_DESC: "Name (Z-A)",
    SortOption.MOST_USED: "Most Used",
    SortOption.RECENTLY_USED: "Recently Used",
    SortOption.DATE_CREATED_ASC: "Date Created (Oldest)",
    SortOption.DATE_CREATED_DESC: "Date Created (Newest)",
}

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def parse_timestamp(value: str) -> datetime:
    """
    Parse an ISO-8601 timestamp; naive values are taken as UTC.

    Unparsable values sort as the earliest possible time.
    """
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        logger.debug(f"Unparsable timestamp {value!r}, sorting it first")
        return _EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def filter_prompts(prompts: Iterable[PromptVersion], folders: Iterable[Folder],
                   folder_id: Optional[str] = ALL_PROMPTS,
                   search: Optional[str] = None,
                   tag: Optional[str] = None) -> List[PromptVersion]:
    """
    Apply the folder, search and tag filters; unset filters pass everything.

    Args:
        prompts: Latest versions to filter
        folders: All folders, for resolving the folder branch
        folder_id: Folder whose branch to keep, or ALL_PROMPTS / None for all
        search: Case-insensitive substring matched against title, description and text
        tag: Exact tag to require

    Returns:
        The matching prompts in input order
    """
    result = list(prompts)

    if folder_id is not None and folder_id != ALL_PROMPTS:
        branch = get_folder_ids_in_branch(folder_id, folders)
        result = [p for p in result if p.folder_id in branch]

    if search and search.strip():
        needle = search.lower()
        result = [
            p for p in result
            if needle in p.title.lower() or needle in p.description.lower() or needle in p.text.lower()
        ]

    if tag:
        result = [p for p in result if tag in p.tags]

    return result


def sort_prompts(prompts: Iterable[PromptVersion],
                 option: SortOption = SortOption.RECENTLY_USED) -> List[PromptVersion]:
    """Return the prompts ordered by ``option``. Sorting is stable."""
    prompts = list(prompts)
    option = SortOption(option)

    if option in (SortOption.NAME_ASC, SortOption.NAME_DESC):
        return sorted(prompts, key=lambda p: (p.title.casefold(), p.title),
                      reverse=option is SortOption.NAME_DESC)
    if option is SortOption.MOST_USED:
        return sorted(prompts, key=lambda p: p.times_used, reverse=True)
    if option is SortOption.DATE_CREATED_ASC:
        return sorted(prompts, key=lambda p: parse_timestamp(p.created_at))
    if option is SortOption.DATE_CREATED_DESC:
        return sorted(prompts, key=lambda p: parse_timestamp(p.created_at), reverse=True)

    # Recently used: never-used prompts go last, keeping their relative order
    used = [p for p in prompts if p.last_used_at]
    unused = [p for p in prompts if not p.last_used_at]
    return sorted(used, key=lambda p: parse_timestamp(p.last_used_at), reverse=True) + unused


@dataclass
class Page:
    items: List[PromptVersion]
    page: int
    total_pages: int
    total_items: int

    def to_dict(self) -> dict:
        return {
            "items": [item.to_dict() for item in self.items],
            "page": self.page,
            "total_pages": self.total_pages,
            "total_items": self.total_items,
        }


def paginate(items: List[PromptVersion], page: int = 1, page_size: int = PROMPTS_PER_PAGE) -> Page:
    """
    Slice one page out of ``items``. Pages are 1-based; out of range page
    numbers are clamped to the first or last page.
    """
    if page_size < 1:
        raise ValueError("page_size must be at least 1")
    total_pages = math.ceil(len(items) / page_size)
    page = max(1, min(page, total_pages or 1))
    start = (page - 1) * page_size
    return Page(items[start:start + page_size], page, total_pages, len(items))


def all_tags(prompts: Iterable[PromptVersion]) -> List[str]:
    """Distinct tags across ``prompts``, sorted."""
    return sorted({tag for prompt in prompts for tag in prompt.tags})


@dataclass
class PromptQuery:
    """
    View state for browsing prompts.

    Changing any filter or the sort option resets the page to 1.
    """
    folder_id: Optional[str] = ALL_PROMPTS
    search: str = ""
    tag: Optional[str] = None
    sort: SortOption = SortOption.RECENTLY_USED
    page: int = 1
    page_size: int = field(default=PROMPTS_PER_PAGE, repr=False)

    _CRITERIA = ("folder_id", "search", "tag", "sort")

    def __setattr__(self, name, value):
        if name == "sort":
            value = SortOption(value)
        if name in self._CRITERIA and getattr(self, name, value) != value:
            super().__setattr__("page", 1)
        super().__setattr__(name, value)

    def apply(self, prompts: Iterable[PromptVersion], folders: Iterable[Folder]) -> Page:
        filtered = filter_prompts(prompts, folders, self.folder_id, self.search, self.tag)
        return paginate(sort_prompts(filtered, self.sort), self.page, self.page_size)
