import asyncio
import time

import httpx
import pytest

from context_service.services.crawler import (
    BudgetedAggregator,
    ContentFetcher,
    ExtractedPage,
    FetchFailed,
    FetchSkipped,
    FetchSuccess,
    FilterRules,
    SearchQuery,
    SearchResultItem,
    URLFilter,
    ValidationError,
    assemble_section,
    compute_char_budget,
)
from context_service.services.crawler.aggregator import format_record, format_section
from context_service.services.crawler.constants import SECTION_SEPARATOR


class _StubSearch:
    def __init__(self, results, hang=(), fail=()):
        self._results = results
        self._hang = set(hang)
        self._fail = set(fail)
        self.cancelled = []

    async def fetch(self, query, api_key, engine_id):
        if query in self._fail:
            raise RuntimeError("search exploded")
        if query in self._hang:
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                self.cancelled.append(query)
                raise
        return list(self._results.get(query, []))


class _StubFetcher:
    def __init__(self, contents, delays=None):
        self._contents = contents
        self._delays = delays or {}
        self.requested = []

    async def fetch(self, url, per_attempt_timeout):
        self.requested.append(url)
        await asyncio.sleep(self._delays.get(url, 0))
        content = self._contents.get(url)
        if content is None:
            return FetchFailed(url=url, error="HTTP 500", status=500)
        if content == "":
            return FetchSkipped(url=url, reason="insufficient content")
        return FetchSuccess(url=url, content=content)


def _aggregator(search, fetcher) -> BudgetedAggregator:
    return BudgetedAggregator(search, URLFilter(FilterRules.default()), fetcher)


def _item(title, link):
    return SearchResultItem(title=title, link=link)


def test_char_budget_is_floor_of_equal_split():
    assert compute_char_budget(1000, 2) == 500
    assert compute_char_budget(1000, 3) == 333
    assert 3 * compute_char_budget(1000, 3) <= 1000
    assert compute_char_budget(5, 7) == 0


def test_assemble_stops_at_first_overflowing_record():
    items = [
        _item("T1", "https://s.example/1"),
        _item("T2", "https://s.example/2"),
        _item("T3", "https://s.example/3"),
    ]
    outcomes = [
        FetchSuccess(url=items[0].link, content="a" * 50),
        FetchSuccess(url=items[1].link, content="b" * 150),
        FetchSuccess(url=items[2].link, content="c" * 10),
    ]
    first = format_record(items[0], "a" * 50)
    second = format_record(items[1], "b" * 150)
    third = format_record(items[2], "c" * 10)
    budget = len(first) + len(third) + 5
    assert len(first) + len(second) > budget

    section = assemble_section(SearchQuery(text="q", char_budget=budget), items, outcomes)

    assert section.text == first
    assert section.used_chars == len(first)
    assert "T2" not in section.text
    assert "T3" not in section.text


def test_assemble_skips_unsuccessful_outcomes_and_respects_budget():
    items = [_item("T1", "https://s.example/1"), _item("T2", "https://s.example/2")]
    outcomes = [
        FetchFailed(url=items[0].link, error="HTTP 500"),
        FetchSuccess(url=items[1].link, content="useful"),
    ]
    section = assemble_section(SearchQuery(text="q", char_budget=1000), items, outcomes)
    assert section.text == format_record(items[1], "useful")
    assert section.used_chars <= 1000


@pytest.mark.asyncio
async def test_aggregate_end_to_end_two_queries():
    search = _StubSearch(
        {
            "a": [_item("Page A", "https://a.example/page")],
            "b": [_item("Page B", "https://b.example/page")],
        }
    )
    content = "x" * 80
    fetcher = _StubFetcher({"https://a.example/page": content, "https://b.example/page": content})

    result = await _aggregator(search, fetcher).aggregate(["a", "b"], "key", "cx", max_total_chars=1000)

    record_a = format_record(_item("Page A", "https://a.example/page"), content)
    record_b = format_record(_item("Page B", "https://b.example/page"), content)
    expected = (
        f"**a:**\n{record_a}\n{SECTION_SEPARATOR}\n\n\n"
        f"**b:**\n{record_b}\n{SECTION_SEPARATOR}\n\n\n"
    )
    assert result.context_data == expected
    assert len(result.context_data) < 1000
    assert result.timed_out is False
    assert [section.query for section in result.sections] == ["a", "b"]
    assert all(section.used_chars <= 500 for section in result.sections)


@pytest.mark.asyncio
async def test_aggregate_preserves_candidate_order_despite_completion_order():
    links = [f"https://s.example/{i}" for i in range(3)]
    search = _StubSearch({"q": [_item(f"T{i}", link) for i, link in enumerate(links)]})
    fetcher = _StubFetcher(
        {link: f"content-{i}" for i, link in enumerate(links)},
        delays={links[0]: 0.05, links[1]: 0.0, links[2]: 0.02},
    )

    result = await _aggregator(search, fetcher).aggregate(["q"], "key", "cx", max_total_chars=5000)

    text = result.sections[0].text
    assert text.index("T0") < text.index("T1") < text.index("T2")


@pytest.mark.asyncio
async def test_aggregate_filters_candidates_before_fetching():
    search = _StubSearch(
        {
            "q": [
                _item("Doc", "https://s.example/file.pdf"),
                _item("Login", "https://s.example/login"),
                _item("Page", "https://s.example/page"),
            ]
        }
    )
    fetcher = _StubFetcher({"https://s.example/page": "page content"})

    result = await _aggregator(search, fetcher).aggregate(["q"], "key", "cx", max_total_chars=5000)

    assert fetcher.requested == ["https://s.example/page"]
    assert "Page" in result.sections[0].text


@pytest.mark.asyncio
async def test_aggregate_partial_timeout_returns_completed_sections():
    search = _StubSearch(
        {
            "q1": [_item("One", "https://one.example/page")],
            "q3": [_item("Three", "https://three.example/page")],
        },
        hang={"q2"},
    )
    fetcher = _StubFetcher(
        {"https://one.example/page": "first content", "https://three.example/page": "third content"}
    )

    result = await _aggregator(search, fetcher).aggregate(
        ["q1", "q2", "q3"], "key", "cx", max_total_chars=9000, global_timeout=0.2
    )

    assert result.timed_out is True
    assert [section.query for section in result.sections] == ["q1", "q2", "q3"]
    assert "first content" in result.sections[0].text
    assert result.sections[1].text == ""
    assert "third content" in result.sections[2].text
    assert f"**q2:**\n\n{SECTION_SEPARATOR}" in result.context_data
    assert search.cancelled == ["q2"]


@pytest.mark.asyncio
async def test_aggregate_isolates_query_and_url_failures():
    search = _StubSearch(
        {"good": [_item("Bad", "https://s.example/bad"), _item("Good", "https://s.example/good")]},
        fail={"broken"},
    )
    fetcher = _StubFetcher({"https://s.example/good": "good content"})

    result = await _aggregator(search, fetcher).aggregate(["broken", "good"], "key", "cx", max_total_chars=5000)

    assert result.timed_out is False
    assert result.sections[0].text == ""
    assert "good content" in result.sections[1].text
    assert "https://s.example/bad" not in result.sections[1].text


@pytest.mark.asyncio
async def test_aggregate_hard_truncates_to_max_total_chars():
    search = _StubSearch({"q1": [_item("One", "https://one.example/page")]})
    fetcher = _StubFetcher({"https://one.example/page": "z" * 500})

    result = await _aggregator(search, fetcher).aggregate(["q1", "q2"], "key", "cx", max_total_chars=60)

    assert len(result.context_data) == 60
    assert result.context_data.startswith("**q1:**\n")
    assert all(section.text == "" for section in result.sections)


@pytest.mark.asyncio
async def test_aggregate_output_never_exceeds_limit():
    links = [f"https://s.example/{i}" for i in range(5)]
    search = _StubSearch({q: [_item(f"{q}-{i}", link) for i, link in enumerate(links)] for q in ("a", "b", "c")})
    fetcher = _StubFetcher({link: "w" * (40 * (i + 1)) for i, link in enumerate(links)})
    aggregator = _aggregator(search, fetcher)

    for limit in (1, 50, 333, 1000, 4000):
        result = await aggregator.aggregate(["a", "b", "c"], "key", "cx", max_total_chars=limit)
        assert len(result.context_data) <= limit
        budget = compute_char_budget(limit, 3)
        assert all(section.used_chars <= budget for section in result.sections)


@pytest.mark.asyncio
async def test_aggregate_is_deterministic():
    links = [f"https://s.example/{i}" for i in range(3)]
    search = _StubSearch({"q": [_item(f"T{i}", link) for i, link in enumerate(links)]})
    fetcher = _StubFetcher(
        {link: f"body {i}" for i, link in enumerate(links)},
        delays={links[0]: 0.02, links[2]: 0.01},
    )
    aggregator = _aggregator(search, fetcher)

    first = await aggregator.aggregate(["q"], "key", "cx", max_total_chars=2000)
    second = await aggregator.aggregate(["q"], "key", "cx", max_total_chars=2000)
    assert first.context_data == second.context_data


@pytest.mark.asyncio
async def test_aggregate_rejects_invalid_input():
    aggregator = _aggregator(_StubSearch({}), _StubFetcher({}))

    with pytest.raises(ValidationError):
        await aggregator.aggregate([], "key", "cx")
    with pytest.raises(ValidationError):
        await aggregator.aggregate(["q"], "", "cx")
    with pytest.raises(ValidationError):
        await aggregator.aggregate(["q"], "key", "")
    with pytest.raises(ValidationError):
        await aggregator.aggregate(["q"], "key", "cx", max_total_chars=0)


def test_format_section_wraps_query_header_and_separator():
    from context_service.services.crawler import QuerySection

    rendered = format_section(QuerySection(query="widgets", text="body", used_chars=4))
    assert rendered == f"**widgets:**\nbody\n{SECTION_SEPARATOR}\n\n\n"


class _SlowExtractor:
    """Blocks like a parser chewing through a huge page."""

    def extract(self, html, url):
        time.sleep(1.0)
        return ExtractedPage(url=url, text="parsed " * 50)


@pytest.mark.asyncio
async def test_global_timeout_fires_while_a_page_is_being_parsed():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"content-type": "text/html"}, text="<html><body>big</body></html>")

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    fetcher = ContentFetcher(client, _SlowExtractor())
    search = _StubSearch({"q": [_item("Huge", "https://huge.example/page")]})
    loop = asyncio.get_running_loop()

    started = loop.time()
    result = await _aggregator(search, fetcher).aggregate(["q"], "key", "cx", max_total_chars=5000, global_timeout=0.2)
    elapsed = loop.time() - started

    assert result.timed_out is True
    assert result.sections[0].text == ""
    assert elapsed < 0.9
