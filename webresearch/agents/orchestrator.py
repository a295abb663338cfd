from __future__ import annotations

import asyncio
import time
import uuid
from typing import Any

import httpx
from loguru import logger

from webresearch.agents.summarizer import Summarizer
from webresearch.config import settings
from webresearch.exceptions import SearchUnavailable, WebResearchError
from webresearch.models.schemas import (
    CachedDocument,
    ResearchResponse,
    ResearchStatus,
    SearchCandidate,
    SourceResult,
)
from webresearch.services import logger as log_service
from webresearch.services.result_store import ResultStore
from webresearch.tools.document_cache import DocumentCache, conversation_cache_dir
from webresearch.tools.page_fetcher import PageFetcher
from webresearch.tools.search_client import SearchClient


class ResearchOrchestrator:
    """Drives one web-research pipeline per call.

    Flow:
      1. Clear the shared store and search
      2. Seed the store with one empty entry per candidate
      3. Process candidates in fixed-size batches, one batch at a time;
         every URL in a batch runs cache -> fetch -> summarize -> cache write
         concurrently
      4. Publish each finished URL into the store in place
      5. Return a snapshot once all batches settle or the deadline fires

    Per-URL failures are logged and leave that entry empty. Only a failed
    search or an expired deadline is reported through the response status.
    """

    def __init__(
        self,
        conversation_id: str | None = None,
        *,
        max_results: int | None = None,
        batch_size: int | None = None,
        deadline_seconds: float | None = settings.research_deadline_seconds,
        search_client: Any | None = None,
        fetcher: Any | None = None,
        summarizer: Summarizer | None = None,
        cache: DocumentCache | None = None,
        store: ResultStore | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.conversation_id = conversation_id or str(uuid.uuid4())
        self.max_results = max(int(max_results or settings.max_results), 1)
        self.batch_size = max(int(batch_size or settings.batch_size), 1)
        self.deadline_seconds = deadline_seconds

        self._owns_http_client = http_client is None and (search_client is None or fetcher is None)
        self._http_client = http_client
        if self._owns_http_client:
            self._http_client = httpx.AsyncClient(follow_redirects=True)

        self.search_client = search_client or SearchClient(http_client=self._http_client)
        self.fetcher = fetcher or PageFetcher(http_client=self._http_client)
        self.summarizer = summarizer or Summarizer()
        self.cache = cache or DocumentCache(conversation_cache_dir(self.conversation_id))
        self.store = store or ResultStore()

    async def __aenter__(self) -> "ResearchOrchestrator":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http_client and self._http_client is not None:
            await self._http_client.aclose()

    async def snapshot(self) -> list[SourceResult]:
        """Current contents of the shared store; safe while a run is active."""
        return await self.store.snapshot()

    async def research(
        self,
        query: str,
        summarize_enabled: bool = False,
        *,
        deadline_seconds: float | None = None,
    ) -> ResearchResponse:
        deadline = self.deadline_seconds if deadline_seconds is None else deadline_seconds
        started = time.monotonic()
        generation = await self.store.clear()
        log_service.log_research_step(
            self.conversation_id,
            "research",
            "started",
            {"query": query[:200], "summarize": summarize_enabled, "deadline_s": deadline},
        )

        try:
            if deadline is None:
                status, error = await self._run(query, summarize_enabled, generation)
            else:
                status, error = await asyncio.wait_for(
                    self._run(query, summarize_enabled, generation),
                    max(float(deadline), 0.0),
                )
        except asyncio.TimeoutError:
            logger.warning(f"Research deadline of {deadline}s expired; returning partial results")
            status, error = ResearchStatus.DEADLINE_EXCEEDED, f"Deadline of {deadline}s exceeded"

        results = await self.store.snapshot()
        log_service.log_research_step(
            self.conversation_id,
            "research",
            status.value,
            {
                "results": len(results),
                "populated": sum(1 for r in results if r.is_populated),
                "runtime_ms": int((time.monotonic() - started) * 1000),
            },
        )
        return ResearchResponse(results=results, status=status, error=error)

    async def _run(
        self,
        query: str,
        summarize_enabled: bool,
        generation: int,
    ) -> tuple[ResearchStatus, str | None]:
        try:
            candidates = await self.search_client.search(query)
        except SearchUnavailable as exc:
            log_service.log_event(
                "search_failed",
                f"Web search unavailable: {exc}",
                level="ERROR",
                conversation_id=self.conversation_id,
                query=query[:200],
            )
            return ResearchStatus.SEARCH_FAILED, str(exc)

        await self.store.seed(candidates)
        if not candidates:
            log_service.log_event(
                "no_results",
                "Search returned no candidates",
                conversation_id=self.conversation_id,
                query=query[:200],
            )
            return ResearchStatus.NO_RESULTS, None

        try:
            await asyncio.to_thread(self.cache.ensure_dir)
        except OSError as exc:
            logger.error(f"Could not create cache directory {self.cache.cache_dir}: {exc}")

        selected = list(enumerate(candidates))[: self.max_results]
        batches = [
            selected[i : i + self.batch_size] for i in range(0, len(selected), self.batch_size)
        ]
        for batch_no, batch in enumerate(batches, 1):
            logger.info(f"Processing batch {batch_no}/{len(batches)} ({len(batch)} URLs)")
            await asyncio.gather(
                *(
                    self._process_candidate(index, candidate, query, summarize_enabled, generation)
                    for index, candidate in batch
                ),
                return_exceptions=True,
            )

        return ResearchStatus.OK, None

    async def _process_candidate(
        self,
        index: int,
        candidate: SearchCandidate,
        query: str,
        summarize_enabled: bool,
        generation: int,
    ) -> None:
        url = candidate.url
        try:
            cached = await asyncio.to_thread(self.cache.read, url)
            if cached is not None:
                logger.debug(f"Cache hit for {url}")
                record = await self._refresh_summary(cached, query, summarize_enabled)
            else:
                content = await self.fetcher.fetch(url)
                summary = await self.summarizer.summarize(content, query, summarize_enabled)
                record = await self._write_cache(url, candidate.snippet, content, summary)

            await self.store.update(
                index,
                url,
                snippet=record.snippet or candidate.snippet,
                content=record.document,
                summary=record.summary,
                generation=generation,
            )
        except WebResearchError as exc:
            logger.warning(f"Skipping {url}: {exc}")
        except Exception as exc:
            logger.error(f"Unexpected failure processing {url}: {exc}")

    async def _refresh_summary(
        self,
        cached: CachedDocument,
        query: str,
        summarize_enabled: bool,
    ) -> CachedDocument:
        # Cached without a summary, now requested: summarize the stored text, no refetch.
        if not summarize_enabled or cached.summary or not cached.document:
            return cached
        summary = await self.summarizer.summarize(cached.document, query, True)
        return await self._write_cache(cached.url, cached.snippet, cached.document, summary)

    async def _write_cache(
        self,
        url: str,
        snippet: str,
        content: str,
        summary: str,
    ) -> CachedDocument:
        try:
            return await asyncio.to_thread(self.cache.write, url, snippet, content, summary)
        except OSError as exc:
            logger.error(f"Failed to write cache entry for {url}: {exc}")
            return CachedDocument(
                url=url,
                snippet=snippet,
                document=content,
                summary=summary,
                timestamp=int(time.time()),
            )
