"""Single-page fetch with bounded retries, exponential backoff and content gates."""

import asyncio
from typing import Awaitable, Callable, Optional

import httpx

from context_service.observability import get_logger
from .constants import (
    BACKOFF_BASE_SECONDS,
    MAX_FETCH_ATTEMPTS,
    MIN_CONTENT_CHARS,
    RETRYABLE_STATUS_CODES,
)
from .errors import FetchError, TimeoutExceeded
from .extraction import ContentExtractor
from .models import FetchFailed, FetchOutcome, FetchSkipped, FetchSuccess

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]

# Transport failures worth another attempt: connection refused, connection reset,
# server hanging up mid-response.
_RETRYABLE_TRANSPORT_ERRORS = (
    httpx.ConnectError,
    httpx.ReadError,
    httpx.WriteError,
    httpx.RemoteProtocolError,
)


class ContentFetcher:
    """
    Fetches one URL and turns it into a FetchOutcome.

    Retry policy:
    - max_attempts total attempts (1 initial + retries)
    - retry on 429/502/503/504, connect/read/write errors and timeouts
    - wait backoff_base ** n seconds before retry n, no jitter
    - any other HTTP status or transport error fails immediately
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        extractor: ContentExtractor,
        *,
        max_attempts: int = MAX_FETCH_ATTEMPTS,
        backoff_base: float = BACKOFF_BASE_SECONDS,
        min_content_chars: int = MIN_CONTENT_CHARS,
        sleep: Optional[Sleep] = None,
    ):
        self.client = client
        self.extractor = extractor
        self.max_attempts = max(1, int(max_attempts))
        self.backoff_base = max(0.0, float(backoff_base))
        self.min_content_chars = max(0, int(min_content_chars))
        self._sleep: Sleep = sleep or asyncio.sleep

    def backoff_delay(self, retry_number: int) -> float:
        """Delay before retry ``retry_number`` (1-based)."""
        return self.backoff_base ** retry_number

    async def fetch(self, url: str, per_attempt_timeout: float) -> FetchOutcome:
        attempt = 0
        while True:
            attempt += 1
            try:
                response = await self._attempt(url, per_attempt_timeout)
            except FetchError as exc:
                retrying = exc.retryable and attempt < self.max_attempts
                self._log_attempt(
                    url,
                    attempt,
                    "retry" if retrying else "failed",
                    status=exc.status,
                    error=str(exc),
                )
                if retrying:
                    await self._sleep(self.backoff_delay(attempt))
                    continue
                return FetchFailed(
                    url=url,
                    error=str(exc),
                    status=exc.status,
                    timed_out=isinstance(exc, TimeoutExceeded),
                    attempts=attempt,
                )

            outcome = await self._evaluate(url, response, attempt)
            self._log_attempt(
                url,
                attempt,
                outcome.outcome,
                status=response.status_code,
                content_type=response.headers.get("content-type", ""),
                reason=getattr(outcome, "reason", None) or getattr(outcome, "error", None),
            )
            return outcome

    async def _attempt(self, url: str, timeout: float) -> httpx.Response:
        """One GET, bounded by a cancelling deadline so expiry releases the connection."""
        try:
            response = await asyncio.wait_for(
                self.client.get(url, timeout=timeout),
                timeout=timeout,
            )
        except asyncio.TimeoutError as exc:
            raise TimeoutExceeded(f"no response within {timeout}s") from exc
        except httpx.TimeoutException as exc:
            raise TimeoutExceeded(f"{exc.__class__.__name__}: {exc}") from exc
        except _RETRYABLE_TRANSPORT_ERRORS as exc:
            raise FetchError(f"{exc.__class__.__name__}: {exc}", retryable=True) from exc
        except httpx.HTTPError as exc:
            raise FetchError(f"{exc.__class__.__name__}: {exc}", retryable=False) from exc

        status = response.status_code
        if status in RETRYABLE_STATUS_CODES:
            raise FetchError(f"HTTP {status}", retryable=True, status=status)
        if not response.is_success:
            raise FetchError(f"HTTP {status}", retryable=False, status=status)
        return response

    async def _evaluate(self, url: str, response: httpx.Response, attempt: int) -> FetchOutcome:
        content_type = response.headers.get("content-type", "").lower()
        if "html" not in content_type and "text" not in content_type:
            return FetchSkipped(url=url, reason="unsupported content-type", attempts=attempt)

        body = response.text or ""
        if "<" not in body or ">" not in body:
            return FetchSkipped(url=url, reason="not valid HTML", attempts=attempt)

        # CPU-bound; runs in a worker thread.
        try:
            page = await asyncio.to_thread(self.extractor.extract, body, str(response.url))
        except Exception as exc:
            return FetchFailed(
                url=url,
                error=f"extraction failed: {exc}",
                status=response.status_code,
                attempts=attempt,
            )

        if len(page.text) < self.min_content_chars:
            return FetchSkipped(url=url, reason="insufficient content", attempts=attempt)

        return FetchSuccess(url=url, content=page.text, page=page, attempts=attempt)

    def _log_attempt(
        self,
        url: str,
        attempt: int,
        outcome: str,
        *,
        status: Optional[int] = None,
        content_type: str = "",
        error: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> None:
        log = logger.info if outcome == "success" else logger.warning
        log(
            "fetch_attempt",
            url=url,
            attempt=attempt,
            outcome=outcome,
            status=status,
            content_type=content_type,
            error=error,
            reason=reason,
        )
