"""Error taxonomy for the web-research pipeline.

Only ``SearchUnavailable`` is fatal to a research call. Everything else is
scoped to a single URL and degrades that one result.
"""
from __future__ import annotations


class WebResearchError(Exception):
    """Base class for research pipeline errors."""


class SearchUnavailable(WebResearchError):
    """The search request failed or timed out."""


class InvalidUrl(WebResearchError):
    """The URL was rejected before any request was issued."""


class FetchFailed(WebResearchError):
    """The page could not be retrieved."""


class FetchTimeout(FetchFailed):
    """The page did not arrive within the fetch timeout."""


class ParseFailed(WebResearchError):
    """Markup cleanup failed or exceeded its timeout."""


class SummarizeFailed(WebResearchError):
    """The summarization backend returned an error or unusable output."""


class SummarizeTimeout(SummarizeFailed):
    """The summarization backend did not answer in time."""
