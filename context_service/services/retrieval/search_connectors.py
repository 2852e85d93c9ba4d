from __future__ import annotations

from typing import Any, List, Optional

import httpx

from context_service.config import get_settings
from context_service.observability import get_logger
from context_service.services.crawler.constants import MAX_SEARCH_RESULTS
from context_service.services.crawler.errors import UpstreamSearchError
from context_service.services.crawler.models import SearchResultItem

logger = get_logger(__name__)


def _to_result_items(items: Any, cap: int) -> List[SearchResultItem]:
    """Typed items in engine order; entries without a title or link are dropped."""
    if not isinstance(items, list):
        return []
    results: List[SearchResultItem] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        title = str(item.get("title") or "").strip()
        link = str(item.get("link") or "").strip()
        if not title or not link:
            continue
        results.append(
            SearchResultItem(
                title=title,
                link=link,
                snippet=str(item.get("snippet") or "").strip(),
            )
        )
        if len(results) >= cap:
            break
    return results


async def _search_google(
    client: httpx.AsyncClient,
    *,
    base_url: str,
    query: str,
    api_key: str,
    engine_id: str,
    num: int,
    timeout: float,
) -> List[SearchResultItem]:
    params = {
        "key": api_key,
        "cx": engine_id,
        "q": query,
        "num": num,
    }
    try:
        resp = await client.get(base_url, params=params, timeout=timeout)
        resp.raise_for_status()
        data = resp.json()
    except httpx.HTTPStatusError as exc:
        raise UpstreamSearchError(f"search index returned HTTP {exc.response.status_code}") from exc
    except httpx.HTTPError as exc:
        raise UpstreamSearchError(f"search index unreachable: {exc.__class__.__name__}: {exc}") from exc
    except ValueError as exc:
        raise UpstreamSearchError(f"search index returned invalid JSON: {exc}") from exc

    if not isinstance(data, dict):
        return []
    return _to_result_items(data.get("items"), num)


class SearchResultFetcher:
    """Fetches ordered candidate pages for one query from Google Custom Search."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        base_url: Optional[str] = None,
        num_results: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        settings = get_settings()
        self.client = client
        self.base_url = base_url or settings.google_search_url
        requested = num_results if num_results is not None else settings.search_results_per_query
        self.num_results = max(1, min(int(requested), MAX_SEARCH_RESULTS))
        self.timeout = timeout if timeout is not None else settings.search_timeout_seconds

    async def fetch(self, query: str, api_key: str, engine_id: str) -> List[SearchResultItem]:
        """Return results in engine order; any upstream failure yields an empty list."""
        try:
            results = await _search_google(
                self.client,
                base_url=self.base_url,
                query=query,
                api_key=api_key,
                engine_id=engine_id,
                num=self.num_results,
                timeout=self.timeout,
            )
        except UpstreamSearchError as exc:
            logger.error("search_failed", query=query, error=str(exc))
            return []

        logger.info("search_completed", query=query, results=len(results))
        return results

