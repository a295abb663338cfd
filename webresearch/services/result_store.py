"""Shared, concurrently readable result set for one research run."""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable

from webresearch.models.schemas import SearchCandidate, SourceResult


class ReaderWriterLock:
    """asyncio reader-writer lock: shared readers, one exclusive writer.

    A waiting writer blocks new readers, so progressive readers cannot starve
    the workers publishing results.
    """

    def __init__(self) -> None:
        self._write_lock = asyncio.Lock()
        self._readers = 0
        self._no_readers = asyncio.Event()
        self._no_readers.set()

    @property
    def readers(self) -> int:
        return self._readers

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        async with self._write_lock:
            self._readers += 1
            self._no_readers.clear()
        try:
            yield
        finally:
            self._readers -= 1
            if self._readers == 0:
                self._no_readers.set()

    @asynccontextmanager
    async def write(self) -> AsyncIterator[None]:
        async with self._write_lock:
            await self._no_readers.wait()
            yield


class ResultStore:
    """Ordered ``SourceResult`` entries, mutated in place by research workers.

    Every ``clear`` starts a new generation; updates tagged with an older
    generation are dropped so a late worker from an abandoned run cannot
    write into the next run's results.
    """

    def __init__(self) -> None:
        self._lock = ReaderWriterLock()
        self._results: list[SourceResult] = []
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    async def clear(self) -> int:
        async with self._lock.write():
            self._results = []
            self._generation += 1
            return self._generation

    async def seed(self, candidates: Iterable[SearchCandidate]) -> None:
        async with self._lock.write():
            self._results = [
                SourceResult(url=candidate.url, snippet=candidate.snippet)
                for candidate in candidates
            ]

    async def update(
        self,
        index: int,
        url: str,
        *,
        snippet: str,
        content: str,
        summary: str,
        generation: int | None = None,
    ) -> bool:
        """Publish one worker's output. Returns False when nothing matched."""
        async with self._lock.write():
            if generation is not None and generation != self._generation:
                return False

            target: SourceResult | None = None
            if 0 <= index < len(self._results) and self._results[index].url == url:
                target = self._results[index]
            else:
                target = next((r for r in self._results if r.url == url), None)
            if target is None:
                return False

            target.snippet = snippet
            target.content = content
            target.summary = summary
            return True

    async def snapshot(self) -> list[SourceResult]:
        async with self._lock.read():
            return [result.model_copy() for result in self._results]

    async def size(self) -> int:
        async with self._lock.read():
            return len(self._results)
