"""Turn research results into chat prompt context."""
from __future__ import annotations

from typing import Sequence

from webresearch.models.schemas import SourceResult
from webresearch.tools import web_utils

WEB_TRIGGER = "@web"
CONTENT_FALLBACK_WORDS = 1000
NO_RESULTS_NOTICE = (
    "The web search did not return any useful results. "
    "Answer from your own knowledge and say that no web sources were found."
)


def extract_web_query(message: str) -> tuple[bool, str]:
    """Return whether a message asks for web research, and the cleaned query.

    Words tagged with ``@`` or ``#`` (the trigger itself, provider switches)
    are dropped from the query.
    """
    is_web_search = WEB_TRIGGER in message
    query = " ".join(
        word for word in message.split() if not word.startswith(("@", "#"))
    )
    return is_web_search, query


def source_text(result: SourceResult, *, fallback_words: int = CONTENT_FALLBACK_WORDS) -> str:
    if result.summary.strip():
        return result.summary.strip()
    if result.content.strip():
        return web_utils.first_words(result.content, fallback_words)
    return result.snippet.strip()


def format_sources(results: Sequence[SourceResult]) -> str:
    blocks: list[str] = []
    for result in results:
        text = source_text(result)
        if not text:
            continue
        blocks.append(f"Source {len(blocks) + 1}: {result.url}\nSummary: {text}")
    return "\n\n".join(blocks)


def build_search_context(query: str, results: Sequence[SourceResult]) -> str:
    sources = format_sources(results)
    if not sources:
        return f"{NO_RESULTS_NOTICE}\n\nQuestion: '{query}'"
    return (
        f"Based on the following web search results, please answer the question: '{query}'"
        f"\n\nSearch Results:\n{sources}"
    )
