import uuid

from fastapi import FastAPI, Request
from contextlib import asynccontextmanager

from context_service.config import get_settings
from context_service.observability import (
    bind_request_context,
    clear_request_context,
    get_logger,
    setup_structured_logging,
)
from context_service.services.crawler import build_http_client
from context_service.api import query

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: logging and the shared HTTP client (connection pool + DNS cache)
    settings = get_settings()
    setup_structured_logging(settings.log_level)
    app.state.http_client = build_http_client()
    logger.info("service_started")
    yield
    # Shutdown: release pooled connections
    await app.state.http_client.aclose()


app = FastAPI(
    title="Search Context API",
    description="Turns search queries into a single character-bounded text corpus",
    version="0.1.0",
    debug=get_settings().debug,
    lifespan=lifespan,
)


@app.middleware("http")
async def request_context(request: Request, call_next):
    bind_request_context(request.headers.get("x-request-id") or uuid.uuid4().hex)
    try:
        return await call_next(request)
    finally:
        clear_request_context()


app.include_router(query.router, tags=["query"])


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


@app.get("/")
async def root():
    return {"message": "Search Context API", "docs": "/docs"}
