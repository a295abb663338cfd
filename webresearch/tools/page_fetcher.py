from __future__ import annotations

import asyncio

import httpx
from bs4 import BeautifulSoup
from bs4.element import PreformattedString
from loguru import logger

from webresearch.config import settings
from webresearch.exceptions import FetchFailed, FetchTimeout, InvalidUrl, ParseFailed
from webresearch.tools import web_utils

REMOVED_TAGS = ["script", "style", "head", "meta", "link", "noscript", "iframe", "svg"]
CONTENT_TAGS = ["p", "h1", "h2", "h3", "h4", "h5", "h6", "article", "section", "main"]
TEXTUAL_CONTENT_TYPES = ("text/", "application/xhtml", "application/xml", "application/json")


def clean_html(raw_html: str, max_length: int) -> str:
    """Strip non-content markup and return newline-joined text fragments.

    Every text node belongs to its nearest content-tag ancestor, so an
    ``<article>`` contributes its own lead text once and each nested
    paragraph is read separately.
    """
    soup = BeautifulSoup(raw_html, "html.parser")
    for tag in soup.find_all(REMOVED_TAGS):
        if not tag.decomposed:
            tag.decompose()

    blocks: dict[int, list[str]] = {}
    for node in soup.find_all(string=True):
        if isinstance(node, PreformattedString) or not node.strip():
            continue
        owner = node.find_parent(CONTENT_TAGS)
        if owner is None:
            continue
        blocks.setdefault(id(owner), []).append(str(node))

    fragments: list[str] = []
    for pieces in blocks.values():
        text = web_utils.collapse_whitespace(" ".join(pieces))
        if text:
            fragments.append(text)

    if not fragments:
        root = soup.body or soup
        for line in root.get_text("\n").splitlines():
            text = web_utils.collapse_whitespace(line)
            if text:
                fragments.append(text)

    return web_utils.truncate("\n".join(fragments), max_length)


def _is_textual(response: httpx.Response) -> bool:
    content_type = response.headers.get("content-type", "").lower()
    if not content_type:
        return True
    return content_type.startswith(TEXTUAL_CONTENT_TYPES)


class PageFetcher:
    """Retrieve one page and reduce it to cleaned, length-capped text."""

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient | None = None,
        fetch_timeout: float | None = None,
        parse_timeout: float | None = None,
        max_content_length: int | None = None,
    ):
        self._http_client = http_client
        self.fetch_timeout = float(fetch_timeout or settings.fetch_timeout_seconds)
        self.parse_timeout = float(parse_timeout or settings.parse_timeout_seconds)
        self.max_content_length = int(max_content_length or settings.max_content_length)

    async def fetch(self, url: str) -> str:
        if not web_utils.is_valid_url(url):
            logger.warning(f"Rejecting invalid URL '{url}'")
            raise InvalidUrl(f"Invalid URL: {url!r}")

        raw_html = await self._download(url)
        content = await self._clean(url, raw_html)
        logger.debug(f"Got {len(content)} chars of content for {url}")
        return content

    async def _download(self, url: str) -> str:
        async def _do_request(client: httpx.AsyncClient) -> httpx.Response:
            response = await client.get(
                url,
                headers={"User-Agent": settings.user_agent},
                timeout=self.fetch_timeout,
            )
            response.raise_for_status()
            return response

        try:
            if self._http_client is None:
                async with httpx.AsyncClient(follow_redirects=True) as client:
                    response = await asyncio.wait_for(_do_request(client), self.fetch_timeout)
            else:
                response = await asyncio.wait_for(
                    _do_request(self._http_client), self.fetch_timeout
                )
        except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
            logger.warning(f"Timeout fetching URL '{url}'")
            raise FetchTimeout(f"Timeout fetching {url}") from exc
        except httpx.HTTPError as exc:
            logger.warning(f"Error fetching URL '{url}': {exc}")
            raise FetchFailed(f"Failed to fetch {url}: {exc}") from exc

        if not _is_textual(response):
            content_type = response.headers.get("content-type", "")
            raise FetchFailed(f"Unsupported content type {content_type!r} for {url}")
        return response.text

    async def _clean(self, url: str, raw_html: str) -> str:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(clean_html, raw_html, self.max_content_length),
                self.parse_timeout,
            )
        except asyncio.TimeoutError as exc:
            logger.warning(f"Timeout parsing HTML for '{url}'")
            raise ParseFailed(f"Timeout parsing {url}") from exc
        except Exception as exc:
            logger.warning(f"Failed to parse HTML for '{url}': {exc}")
            raise ParseFailed(f"Failed to parse {url}: {exc}") from exc
