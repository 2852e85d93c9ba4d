"""FastAPI dependency providers for the pipeline components."""
from functools import lru_cache

import httpx
from fastapi import Depends, Request

from context_service.config import Settings, get_settings
from context_service.services.crawler import (
    BudgetedAggregator,
    ContentExtractor,
    ContentFetcher,
    ExtractionRules,
    FilterRules,
    URLFilter,
)
from context_service.services.retrieval.search_connectors import SearchResultFetcher


@lru_cache
def get_extraction_rules() -> ExtractionRules:
    return ExtractionRules.default()


@lru_cache
def get_filter_rules() -> FilterRules:
    return FilterRules.default()


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


def _build_fetcher(client: httpx.AsyncClient, settings: Settings, min_content_chars: int) -> ContentFetcher:
    return ContentFetcher(
        client,
        ContentExtractor(get_extraction_rules()),
        max_attempts=settings.fetch_max_attempts,
        backoff_base=settings.fetch_backoff_base_seconds,
        min_content_chars=min_content_chars,
    )


def get_content_fetcher(
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_settings),
) -> ContentFetcher:
    """Fetcher for corpus building; near-empty pages are skipped."""
    return _build_fetcher(client, settings, settings.min_content_chars)


def get_page_fetcher(
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_settings),
) -> ContentFetcher:
    """Fetcher for single-page extraction; any fetched page is returned."""
    return _build_fetcher(client, settings, 0)


def get_aggregator(
    client: httpx.AsyncClient = Depends(get_http_client),
    content_fetcher: ContentFetcher = Depends(get_content_fetcher),
) -> BudgetedAggregator:
    return BudgetedAggregator(
        search_fetcher=SearchResultFetcher(client),
        url_filter=URLFilter(get_filter_rules()),
        content_fetcher=content_fetcher,
    )
