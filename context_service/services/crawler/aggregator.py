"""Budgeted multi-query aggregation - search, filter, fan out fetches, fold into one bounded corpus."""

import asyncio
from typing import TYPE_CHECKING, List, Optional, Sequence

from context_service.observability import get_logger
from .constants import DEFAULT_MAX_TOTAL_CHARS, SECTION_SEPARATOR
from .errors import InternalError, ValidationError
from .fetcher import ContentFetcher
from .filters import URLFilter
from .models import (
    AggregationResult,
    FetchFailed,
    FetchOutcome,
    FetchSuccess,
    QuerySection,
    SearchQuery,
    SearchResultItem,
)

if TYPE_CHECKING:
    from context_service.services.retrieval.search_connectors import SearchResultFetcher

logger = get_logger(__name__)


def compute_char_budget(max_total_chars: int, num_queries: int) -> int:
    """Equal per-query allotment: floor(max_total_chars / num_queries)."""
    if num_queries <= 0:
        raise ValidationError("At least one query is required")
    return max_total_chars // num_queries


def format_record(item: SearchResultItem, content: str) -> str:
    return f"Title: {item.title}\nSOURCE: {item.link}\nContent: {content}\n\n"


def format_section(section: QuerySection) -> str:
    return f"**{section.query}:**\n{section.text}\n{SECTION_SEPARATOR}\n\n\n"


def assemble_section(
    query: SearchQuery,
    items: Sequence[SearchResultItem],
    outcomes: Sequence[FetchOutcome],
) -> QuerySection:
    """
    Fold successful fetches into the query's buffer in candidate order.

    A record is appended only while it fits entirely within the budget. The
    first record that would overflow is dropped whole and assembly stops there.
    """
    parts: List[str] = []
    used = 0
    for item, outcome in zip(items, outcomes):
        if not isinstance(outcome, FetchSuccess):
            continue
        record = format_record(item, outcome.content)
        if used + len(record) > query.char_budget:
            break
        parts.append(record)
        used += len(record)
    return QuerySection(query=query.text, text="".join(parts), used_chars=used)


def _validate_request(
    queries: Sequence[str],
    api_key: str,
    engine_id: str,
    max_total_chars: int,
) -> None:
    if not queries or isinstance(queries, str):
        raise ValidationError("Valid queries array is required")
    if any(not isinstance(query, str) for query in queries):
        raise ValidationError("Valid queries array is required")
    if not api_key or not engine_id:
        raise ValidationError("Google API credentials are required")
    if isinstance(max_total_chars, bool) or not isinstance(max_total_chars, int) or max_total_chars <= 0:
        raise ValidationError("maxTotalChars must be a positive integer")


class BudgetedAggregator:
    """
    Orchestrates the search -> filter -> fetch -> assemble pipeline for many queries.

    Every query gets the same character budget. All queries run concurrently and
    their joint completion is raced against one global deadline; sections still
    in flight when it expires are cancelled and contribute empty text.
    """

    def __init__(
        self,
        search_fetcher: "SearchResultFetcher",
        url_filter: URLFilter,
        content_fetcher: ContentFetcher,
    ):
        self.search_fetcher = search_fetcher
        self.url_filter = url_filter
        self.content_fetcher = content_fetcher

    async def build_section(
        self,
        query: SearchQuery,
        api_key: str,
        engine_id: str,
        per_attempt_timeout: float,
    ) -> QuerySection:
        """Search, filter and fetch one query, then assemble its budgeted section."""
        items = await self.search_fetcher.fetch(query.text, api_key, engine_id)
        candidates = [item for item in items if self.url_filter.is_fetchable(item.link)]
        if not candidates:
            return QuerySection.empty(query.text)

        # gather keeps input order regardless of completion order
        raw_outcomes = await asyncio.gather(
            *(self.content_fetcher.fetch(item.link, per_attempt_timeout) for item in candidates),
            return_exceptions=True,
        )
        outcomes: List[FetchOutcome] = []
        for item, raw in zip(candidates, raw_outcomes):
            if isinstance(raw, BaseException):
                logger.error("fetch_crashed", query=query.text, url=item.link, error=repr(raw))
                outcomes.append(FetchFailed(url=item.link, error=repr(raw)))
            else:
                outcomes.append(raw)

        section = assemble_section(query, candidates, outcomes)
        logger.info(
            "query_section_assembled",
            query=query.text,
            candidates=len(items),
            fetchable=len(candidates),
            succeeded=sum(1 for outcome in outcomes if isinstance(outcome, FetchSuccess)),
            used_chars=section.used_chars,
            char_budget=query.char_budget,
        )
        return section

    async def _build_section_safely(
        self,
        query: SearchQuery,
        api_key: str,
        engine_id: str,
        per_attempt_timeout: float,
    ) -> QuerySection:
        try:
            return await self.build_section(query, api_key, engine_id, per_attempt_timeout)
        except Exception as exc:
            logger.error("query_failed", query=query.text, error=f"{exc.__class__.__name__}: {exc}")
            return QuerySection.empty(query.text)

    async def aggregate(
        self,
        queries: Sequence[str],
        api_key: str,
        engine_id: str,
        max_total_chars: int = DEFAULT_MAX_TOTAL_CHARS,
        per_attempt_timeout: float = 10.0,
        global_timeout: Optional[float] = 60.0,
    ) -> AggregationResult:
        """
        Build one corpus from many queries.

        Args:
            queries: Free-text queries, in output order
            api_key: Search index API key
            engine_id: Search engine id
            max_total_chars: Hard cap on the returned corpus length
            per_attempt_timeout: Deadline for each page fetch attempt, seconds
            global_timeout: Deadline for the whole aggregation, seconds (None = no deadline)

        Returns:
            AggregationResult whose context_data never exceeds max_total_chars

        Raises:
            ValidationError: when inputs are missing or malformed
            InternalError: on an unexpected fault past validation
        """
        _validate_request(queries, api_key, engine_id, max_total_chars)
        try:
            return await self._aggregate_validated(
                queries, api_key, engine_id, max_total_chars, per_attempt_timeout, global_timeout
            )
        except Exception as exc:
            raise InternalError(f"aggregation failed: {exc.__class__.__name__}: {exc}") from exc

    async def _aggregate_validated(
        self,
        queries: Sequence[str],
        api_key: str,
        engine_id: str,
        max_total_chars: int,
        per_attempt_timeout: float,
        global_timeout: Optional[float],
    ) -> AggregationResult:
        budget = compute_char_budget(max_total_chars, len(queries))
        search_queries = [SearchQuery(text=text, char_budget=budget) for text in queries]

        tasks = [
            asyncio.ensure_future(
                self._build_section_safely(query, api_key, engine_id, per_attempt_timeout)
            )
            for query in search_queries
        ]
        done, pending = await asyncio.wait(tasks, timeout=global_timeout)

        timed_out = bool(pending)
        if pending:
            logger.warning(
                "aggregation_timed_out",
                global_timeout=global_timeout,
                pending_queries=[q.text for q, t in zip(search_queries, tasks) if t in pending],
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        sections: List[QuerySection] = []
        for query, task in zip(search_queries, tasks):
            if task in done and not task.cancelled() and task.exception() is None:
                sections.append(task.result())
            else:
                sections.append(QuerySection.empty(query.text))

        context_data = "".join(format_section(section) for section in sections)[:max_total_chars]
        logger.info(
            "aggregation_completed",
            queries=len(queries),
            char_budget=budget,
            context_length=len(context_data),
            timed_out=timed_out,
        )
        return AggregationResult(sections=sections, context_data=context_data, timed_out=timed_out)
