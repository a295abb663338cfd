from __future__ import annotations

import asyncio
import time

import pytest

from webresearch.agents.orchestrator import ResearchOrchestrator
from webresearch.agents.summarizer import Summarizer
from webresearch.exceptions import FetchFailed, FetchTimeout, SearchUnavailable
from webresearch.llm_client import MessageResponse, TextBlock, Usage
from webresearch.models.schemas import CachedDocument, ResearchStatus, SearchCandidate
from webresearch.tools.document_cache import DocumentCache


def _candidates(*urls: str) -> list[SearchCandidate]:
    return [SearchCandidate(url=url, snippet=f"about {url}") for url in urls]


def _page(url: str) -> str:
    return f"Cleaned text of {url}"


class FakeSearchClient:
    def __init__(self, candidates=None, error: Exception | None = None):
        self.candidates = list(candidates or [])
        self.error = error
        self.queries: list[str] = []

    async def search(self, query: str) -> list[SearchCandidate]:
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return list(self.candidates)


class FakeFetcher:
    def __init__(self, *, delay: float = 0.0, delays=None, failures=None):
        self.delay = delay
        self.delays = dict(delays or {})
        self.failures = dict(failures or {})
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def fetch(self, url: str) -> str:
        self.calls.append(url)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(url, self.delay))
            if url in self.failures:
                raise self.failures[url]
            return _page(url)
        finally:
            self.in_flight -= 1


class _FakeMessages:
    def __init__(self):
        self.calls = 0

    async def create(self, **kwargs) -> MessageResponse:
        self.calls += 1
        return MessageResponse(
            content=[TextBlock(type="text", text="focused summary")],
            usage=Usage(),
        )


class _FakeLLM:
    def __init__(self):
        self.messages = _FakeMessages()


def _orchestrator(tmp_path, search, fetcher, **kwargs) -> ResearchOrchestrator:
    kwargs.setdefault("deadline_seconds", None)
    return ResearchOrchestrator(
        conversation_id="test-conversation",
        search_client=search,
        fetcher=fetcher,
        cache=DocumentCache(tmp_path / "web_cache", max_age_seconds=24 * 60 * 60),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_research_returns_populated_results_in_candidate_order(tmp_path):
    urls = [f"https://site{i}.example/" for i in range(6)]
    fetcher = FakeFetcher(delays={urls[0]: 0.05, urls[1]: 0.0, urls[2]: 0.02})
    orchestrator = _orchestrator(tmp_path, FakeSearchClient(_candidates(*urls)), fetcher)

    response = await orchestrator.research("rust programming", summarize_enabled=False)

    assert response.status == ResearchStatus.OK
    assert [r.url for r in response.results] == urls
    assert [r.content for r in response.results] == [_page(u) for u in urls]
    assert all(r.summary == "" for r in response.results)
    assert response.results[0].snippet == f"about {urls[0]}"


@pytest.mark.asyncio
async def test_batches_bound_concurrency(tmp_path):
    urls = [f"https://site{i}.example/" for i in range(10)]
    fetcher = FakeFetcher(delay=0.1)
    orchestrator = _orchestrator(
        tmp_path, FakeSearchClient(_candidates(*urls)), fetcher, batch_size=4
    )

    await orchestrator.research("query")

    assert sorted(fetcher.calls) == sorted(urls)
    assert fetcher.max_in_flight == 4


@pytest.mark.asyncio
async def test_warm_cache_skips_network_fetches(tmp_path):
    urls = ["https://a.example/", "https://b.example/"]
    fetcher = FakeFetcher()
    orchestrator = _orchestrator(tmp_path, FakeSearchClient(_candidates(*urls)), fetcher)

    first = await orchestrator.research("query")
    assert len(fetcher.calls) == 2

    second = await orchestrator.research("query")

    assert len(fetcher.calls) == 2
    assert [r.content for r in second.results] == [r.content for r in first.results]
    assert [r.summary for r in second.results] == [r.summary for r in first.results]


@pytest.mark.asyncio
async def test_stale_cache_entry_is_refetched_and_overwritten(tmp_path):
    url = "https://stale.example/"
    cache = DocumentCache(tmp_path / "web_cache", max_age_seconds=24 * 60 * 60)
    cache.ensure_dir()
    stale = CachedDocument(
        url=url,
        snippet="old snippet",
        document="old document",
        summary="",
        timestamp=int(time.time()) - 25 * 60 * 60,
    )
    cache.path_for(url).write_text(stale.model_dump_json(), encoding="utf-8")

    fetcher = FakeFetcher()
    orchestrator = ResearchOrchestrator(
        conversation_id="stale",
        search_client=FakeSearchClient(_candidates(url)),
        fetcher=fetcher,
        cache=cache,
        deadline_seconds=None,
    )

    response = await orchestrator.research("query")

    assert fetcher.calls == [url]
    assert response.results[0].content == _page(url)
    refreshed = cache.read(url)
    assert refreshed is not None
    assert refreshed.document == _page(url)
    assert refreshed.timestamp > stale.timestamp


@pytest.mark.asyncio
async def test_one_failed_fetch_does_not_affect_siblings(tmp_path):
    urls = ["https://ok1.example/", "https://down.invalid/", "https://ok2.example/"]
    fetcher = FakeFetcher(
        failures={"https://down.invalid/": FetchFailed("unreachable host")},
    )
    orchestrator = _orchestrator(tmp_path, FakeSearchClient(_candidates(*urls)), fetcher)

    response = await orchestrator.research("query")

    assert response.status == ResearchStatus.OK
    by_url = {r.url: r for r in response.results}
    assert by_url["https://ok1.example/"].content == _page("https://ok1.example/")
    assert by_url["https://ok2.example/"].content == _page("https://ok2.example/")
    assert by_url["https://down.invalid/"].content == ""
    assert by_url["https://down.invalid/"].snippet == "about https://down.invalid/"


@pytest.mark.asyncio
async def test_unexpected_worker_error_is_isolated(tmp_path):
    urls = ["https://ok.example/", "https://weird.example/"]
    fetcher = FakeFetcher(failures={"https://weird.example/": RuntimeError("boom")})
    orchestrator = _orchestrator(tmp_path, FakeSearchClient(_candidates(*urls)), fetcher)

    response = await orchestrator.research("query")

    assert response.results[0].content == _page("https://ok.example/")
    assert response.results[1].content == ""


@pytest.mark.asyncio
async def test_search_failure_is_distinct_from_no_results(tmp_path):
    failing = _orchestrator(
        tmp_path, FakeSearchClient(error=SearchUnavailable("timeout")), FakeFetcher()
    )
    empty = _orchestrator(tmp_path, FakeSearchClient([]), FakeFetcher())

    failed_response = await failing.research("query")
    empty_response = await empty.research("query")

    assert failed_response.results == []
    assert failed_response.status == ResearchStatus.SEARCH_FAILED
    assert failed_response.error
    assert failed_response.succeeded is False
    assert empty_response.results == []
    assert empty_response.status == ResearchStatus.NO_RESULTS


@pytest.mark.asyncio
async def test_deadline_returns_completed_subset_in_time(tmp_path):
    urls = [f"https://site{i}.example/" for i in range(4)]
    fetcher = FakeFetcher(delay=5.0, delays={urls[0]: 0.01})
    orchestrator = _orchestrator(tmp_path, FakeSearchClient(_candidates(*urls)), fetcher)

    started = time.monotonic()
    response = await orchestrator.research("query", deadline_seconds=0.3)
    elapsed = time.monotonic() - started

    assert elapsed < 2
    assert response.status == ResearchStatus.DEADLINE_EXCEEDED
    assert [r.url for r in response.results] == urls
    assert response.results[0].content == _page(urls[0])
    assert all(r.content == "" for r in response.results[1:])
    assert response.succeeded is True


@pytest.mark.asyncio
async def test_max_results_limits_fetches_but_keeps_all_candidates(tmp_path):
    urls = [f"https://site{i}.example/" for i in range(5)]
    fetcher = FakeFetcher()
    orchestrator = _orchestrator(
        tmp_path, FakeSearchClient(_candidates(*urls)), fetcher, max_results=2
    )

    response = await orchestrator.research("query")

    assert sorted(fetcher.calls) == urls[:2]
    assert len(response.results) == 5
    assert [bool(r.content) for r in response.results] == [True, True, False, False, False]


@pytest.mark.asyncio
async def test_duplicate_candidate_urls_each_get_content(tmp_path):
    url = "https://dup.example/"
    orchestrator = _orchestrator(tmp_path, FakeSearchClient(_candidates(url, url)), FakeFetcher())

    response = await orchestrator.research("query")

    assert [r.content for r in response.results] == [_page(url), _page(url)]


@pytest.mark.asyncio
async def test_summaries_are_published_and_cached(tmp_path):
    url = "https://a.example/"
    llm = _FakeLLM()
    orchestrator = _orchestrator(
        tmp_path,
        FakeSearchClient(_candidates(url)),
        FakeFetcher(),
        summarizer=Summarizer(llm=llm),
    )

    response = await orchestrator.research("query", summarize_enabled=True)

    assert response.results[0].summary == "focused summary"
    assert orchestrator.cache.read(url).summary == "focused summary"
    assert llm.messages.calls == 1


@pytest.mark.asyncio
async def test_cached_page_without_summary_is_summarized_without_refetch(tmp_path):
    url = "https://a.example/"
    llm = _FakeLLM()
    fetcher = FakeFetcher()
    orchestrator = _orchestrator(
        tmp_path,
        FakeSearchClient(_candidates(url)),
        fetcher,
        summarizer=Summarizer(llm=llm),
    )

    await orchestrator.research("query", summarize_enabled=False)
    response = await orchestrator.research("query", summarize_enabled=True)

    assert fetcher.calls == [url]
    assert response.results[0].summary == "focused summary"


@pytest.mark.asyncio
async def test_store_is_cleared_between_queries(tmp_path):
    search = FakeSearchClient(_candidates("https://first.example/"))
    orchestrator = _orchestrator(tmp_path, search, FakeFetcher())

    await orchestrator.research("first")
    search.candidates = _candidates("https://second.example/")
    response = await orchestrator.research("second")

    assert [r.url for r in response.results] == ["https://second.example/"]
    assert [r.url for r in await orchestrator.snapshot()] == ["https://second.example/"]


@pytest.mark.asyncio
async def test_cache_write_failure_still_publishes_content(tmp_path, monkeypatch):
    url = "https://a.example/"
    orchestrator = _orchestrator(tmp_path, FakeSearchClient(_candidates(url)), FakeFetcher())

    def failing_write(*_args, **_kwargs):
        raise OSError("disk full")

    monkeypatch.setattr(orchestrator.cache, "write", failing_write)

    response = await orchestrator.research("query")

    assert response.results[0].content == _page(url)


@pytest.mark.asyncio
async def test_progress_is_readable_while_research_runs(tmp_path):
    urls = ["https://fast.example/", "https://slow.example/"]
    fetcher = FakeFetcher(delays={urls[0]: 0.0, urls[1]: 0.3})
    orchestrator = _orchestrator(tmp_path, FakeSearchClient(_candidates(*urls)), fetcher)

    task = asyncio.create_task(orchestrator.research("query"))
    partial = []
    for _ in range(50):
        await asyncio.sleep(0.01)
        partial = await orchestrator.snapshot()
        if partial and partial[0].content:
            break
    response = await task

    assert partial[0].content == _page(urls[0])
    assert partial[1].content == ""
    assert response.results[1].content == _page(urls[1])


@pytest.mark.asyncio
async def test_timeout_errors_degrade_single_entry(tmp_path):
    urls = ["https://a.example/", "https://b.example/"]
    fetcher = FakeFetcher(failures={urls[1]: FetchTimeout("slow")})
    orchestrator = _orchestrator(tmp_path, FakeSearchClient(_candidates(*urls)), fetcher)

    response = await orchestrator.research("query")

    assert response.results[0].is_populated
    assert not response.results[1].is_populated


@pytest.mark.asyncio
async def test_search_outcomes_are_logged_as_events(tmp_path, monkeypatch):
    events = []
    monkeypatch.setattr(
        "webresearch.services.logger.log_event",
        lambda event_type, message, **fields: events.append((event_type, fields)),
    )
    failing = _orchestrator(
        tmp_path, FakeSearchClient(error=SearchUnavailable("timeout")), FakeFetcher()
    )
    empty = _orchestrator(tmp_path, FakeSearchClient([]), FakeFetcher())

    await failing.research("broken query")
    await empty.research("empty query")

    assert [event_type for event_type, _ in events] == ["search_failed", "no_results"]
    assert events[0][1]["level"] == "ERROR"
    assert events[0][1]["query"] == "broken query"
    assert events[1][1]["conversation_id"] == "test-conversation"
