from __future__ import annotations

import asyncio
from urllib.parse import quote_plus

import httpx
from bs4 import BeautifulSoup
from loguru import logger

from webresearch.config import settings
from webresearch.exceptions import SearchUnavailable
from webresearch.models.schemas import SearchCandidate
from webresearch.tools import web_utils

RESULT_BLOCK_SELECTOR = "div.result"
AD_BLOCK_CLASS = "result--ad"
URL_SELECTORS = ("a.result__a", "a.result__url")
SNIPPET_SELECTOR = ".result__snippet"


def build_search_url(query: str, endpoint: str | None = None) -> str:
    base = (endpoint or settings.search_endpoint).rstrip("?")
    return f"{base}?q={quote_plus(query)}"


def _extract_url_token(block) -> str:
    for selector in URL_SELECTORS:
        link = block.select_one(selector)
        if link is None:
            continue
        token = link.get("href") or link.get_text()
        if token and token.strip():
            return token
    return ""


def parse_results(html: str) -> list[SearchCandidate]:
    """Parse an HTML result listing into candidates, in page order.

    Blocks without both a URL and a snippet are skipped.
    """
    soup = BeautifulSoup(html, "html.parser")
    candidates: list[SearchCandidate] = []

    for block in soup.select(RESULT_BLOCK_SELECTOR):
        if AD_BLOCK_CLASS in (block.get("class") or []):
            continue

        url = web_utils.normalize_result_url(_extract_url_token(block))
        snippet_el = block.select_one(SNIPPET_SELECTOR)
        snippet = web_utils.collapse_whitespace(snippet_el.get_text(" ")) if snippet_el else ""
        if not url or not snippet:
            continue
        candidates.append(SearchCandidate(url=url, snippet=snippet))

    return candidates


class SearchClient:
    """Scrapes a search engine's HTML result page.

    The parsing is best-effort and tied to the engine's markup; swap this
    class out (or fake it in tests) without touching the orchestrator.
    """

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient | None = None,
        endpoint: str | None = None,
        timeout: float | None = None,
        parse_timeout: float | None = None,
    ):
        self._http_client = http_client
        self.endpoint = endpoint or settings.search_endpoint
        self.timeout = float(timeout or settings.search_timeout_seconds)
        self.parse_timeout = float(parse_timeout or settings.parse_timeout_seconds)

    async def search(self, query: str) -> list[SearchCandidate]:
        search_url = build_search_url(query, self.endpoint)
        logger.info(f"Searching for: {query[:100]}")

        async def _do_request(client: httpx.AsyncClient) -> str:
            response = await client.get(
                search_url,
                headers={"User-Agent": settings.user_agent},
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.text

        try:
            if self._http_client is None:
                async with httpx.AsyncClient(follow_redirects=True) as client:
                    html = await asyncio.wait_for(_do_request(client), self.timeout)
            else:
                html = await asyncio.wait_for(_do_request(self._http_client), self.timeout)
        except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
            logger.error("Timeout fetching search results")
            raise SearchUnavailable("Timeout fetching search results") from exc
        except httpx.HTTPError as exc:
            logger.error(f"Error fetching search results: {exc}")
            raise SearchUnavailable(f"Failed to fetch search results: {exc}") from exc

        try:
            candidates = await asyncio.wait_for(
                asyncio.to_thread(parse_results, html),
                self.parse_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Timeout parsing search results; treating as zero results")
            return []
        except Exception as exc:
            logger.warning(f"Failed to parse search results; treating as zero results: {exc}")
            return []

        logger.info(f"Found {len(candidates)} search results")
        return candidates
