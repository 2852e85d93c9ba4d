"""Search-driven fetch and aggregation package for context corpus generation."""

from .models import (
    SearchQuery,
    SearchResultItem,
    ExtractedPage,
    FetchSuccess,
    FetchSkipped,
    FetchFailed,
    FetchOutcome,
    QuerySection,
    AggregationResult,
)
from .errors import (
    ContextServiceError,
    ValidationError,
    UpstreamSearchError,
    FetchError,
    TimeoutExceeded,
    InternalError,
)
from .filters import URLFilter, FilterRules
from .extraction import ContentExtractor, ExtractionRules
from .fetcher import ContentFetcher
from .client import DNSCache, build_http_client, get_dns_cache
from .aggregator import BudgetedAggregator, assemble_section, compute_char_budget

__all__ = [
    # Main entry point
    "BudgetedAggregator",

    # Pipeline components
    "URLFilter",
    "ContentExtractor",
    "ContentFetcher",

    # Immutable configuration
    "FilterRules",
    "ExtractionRules",

    # HTTP plumbing
    "DNSCache",
    "build_http_client",
    "get_dns_cache",

    # Data models
    "SearchQuery",
    "SearchResultItem",
    "ExtractedPage",
    "FetchSuccess",
    "FetchSkipped",
    "FetchFailed",
    "FetchOutcome",
    "QuerySection",
    "AggregationResult",

    # Errors
    "ContextServiceError",
    "ValidationError",
    "UpstreamSearchError",
    "FetchError",
    "TimeoutExceeded",
    "InternalError",

    # Utility functions
    "assemble_section",
    "compute_char_budget",
]
