"""Query API routes - multi-query context corpus and single-page extraction."""
from fastapi import APIRouter, Depends, HTTPException
from pydantic import AliasChoices, BaseModel, Field
from typing import Optional, List

from context_service.config import Settings, get_settings
from context_service.observability import get_logger
from context_service.services.crawler import (
    BudgetedAggregator,
    ContentFetcher,
    FetchFailed,
    FetchSkipped,
    InternalError,
    ValidationError,
)
from context_service.api.dependencies import get_aggregator, get_page_fetcher

router = APIRouter()
logger = get_logger(__name__)


# ============================================================================
# Pydantic Schemas
# ============================================================================

class QueryRequest(BaseModel):
    queries: Optional[List[str]] = None
    api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("apiKey", "googleApiKey", "api_key"),
    )
    search_engine_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("searchEngineId", "googleSearchEngineId", "search_engine_id"),
    )
    max_total_chars: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("maxTotalChars", "max_total_chars"),
    )


class QueryResponse(BaseModel):
    context_data: str = Field(alias="contextData")

    class Config:
        populate_by_name = True


class ExtractRequest(BaseModel):
    url: Optional[str] = None


class ExtractResponse(BaseModel):
    url: str
    text: str
    links: List[str] = Field(default_factory=list)
    title: str = ""
    meta_description: str = Field(default="", alias="metaDescription")
    canonical: str = ""

    class Config:
        populate_by_name = True


# ============================================================================
# Routes
# ============================================================================

@router.post("/query", response_model=QueryResponse)
async def build_query_context(
    data: QueryRequest,
    aggregator: BudgetedAggregator = Depends(get_aggregator),
    settings: Settings = Depends(get_settings),
):
    """Search every query, fetch the hits and return one character-bounded corpus."""
    if not data.queries:
        raise HTTPException(status_code=400, detail="Valid queries array is required")
    if not data.api_key or not data.search_engine_id:
        raise HTTPException(status_code=400, detail="Google API credentials are required")

    max_total_chars = (
        data.max_total_chars if data.max_total_chars is not None else settings.default_max_total_chars
    )

    try:
        result = await aggregator.aggregate(
            data.queries,
            data.api_key,
            data.search_engine_id,
            max_total_chars=max_total_chars,
            per_attempt_timeout=settings.fetch_attempt_timeout_seconds,
            global_timeout=settings.global_timeout_seconds,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except InternalError as exc:
        logger.error("request_failed", route="/query", error=str(exc))
        raise HTTPException(status_code=500, detail="Error processing queries")
    except Exception:
        logger.exception("request_failed", route="/query")
        raise HTTPException(status_code=500, detail="Error processing queries")

    return QueryResponse(context_data=result.context_data)


@router.post("/", response_model=ExtractResponse)
async def extract_page(
    data: ExtractRequest,
    fetcher: ContentFetcher = Depends(get_page_fetcher),
    settings: Settings = Depends(get_settings),
):
    """Fetch a single URL and return its cleaned text and same-origin links."""
    if not data.url:
        raise HTTPException(status_code=400, detail="URL is required")

    try:
        outcome = await fetcher.fetch(data.url, settings.fetch_attempt_timeout_seconds)
    except Exception:
        logger.exception("request_failed", route="/", url=data.url)
        raise HTTPException(status_code=500, detail="Error fetching the URL")

    if isinstance(outcome, FetchSkipped):
        raise HTTPException(status_code=422, detail=outcome.reason)
    if isinstance(outcome, FetchFailed):
        if outcome.timed_out:
            raise HTTPException(status_code=504, detail="Request timed out")
        if outcome.status == 404:
            raise HTTPException(status_code=404, detail="Page not found")
        if outcome.status is not None and outcome.status >= 400:
            raise HTTPException(status_code=outcome.status, detail=f"HTTP error: {outcome.status}")
        raise HTTPException(status_code=502, detail="Error fetching the URL")

    page = outcome.page
    return ExtractResponse(
        url=data.url,
        text=outcome.content,
        links=page.links if page else [],
        title=page.title if page else "",
        meta_description=page.meta_description if page else "",
        canonical=page.canonical if page else "",
    )
