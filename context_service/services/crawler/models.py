"""Data models for search, fetch and aggregation."""

from dataclasses import dataclass, field
from typing import List, Optional, Union


@dataclass(frozen=True)
class SearchQuery:
    """One query and the character allotment it may fill."""
    text: str
    char_budget: int


@dataclass(frozen=True)
class SearchResultItem:
    """A search index hit, in engine order."""
    title: str
    link: str
    snippet: str = ""


@dataclass
class ExtractedPage:
    """Cleaned text and same-origin links extracted from one page."""
    url: str
    text: str
    links: List[str] = field(default_factory=list)
    title: str = ""
    meta_description: str = ""
    canonical: str = ""


@dataclass
class FetchSuccess:
    url: str
    content: str
    page: Optional[ExtractedPage] = None
    attempts: int = 1

    @property
    def outcome(self) -> str:
        return "success"


@dataclass
class FetchSkipped:
    url: str
    reason: str
    attempts: int = 1

    @property
    def outcome(self) -> str:
        return "skipped"


@dataclass
class FetchFailed:
    url: str
    error: str
    status: Optional[int] = None
    timed_out: bool = False
    attempts: int = 1

    @property
    def outcome(self) -> str:
        return "failed"


FetchOutcome = Union[FetchSuccess, FetchSkipped, FetchFailed]


@dataclass
class QuerySection:
    """Budget-respecting text block assembled for one query."""
    query: str
    text: str = ""
    used_chars: int = 0

    @classmethod
    def empty(cls, query: str) -> "QuerySection":
        return cls(query=query)


@dataclass
class AggregationResult:
    """Final corpus plus the per-query sections it was built from."""
    sections: List[QuerySection]
    context_data: str
    timed_out: bool = False
