from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


# --- Search ---


class SearchCandidate(BaseModel):
    url: str
    snippet: str


# --- Research output ---


class SourceResult(BaseModel):
    url: str
    snippet: str = ""
    content: str = ""
    summary: str = ""

    @property
    def is_populated(self) -> bool:
        return bool(self.content or self.summary)


class ResearchStatus(str, Enum):
    OK = "ok"
    NO_RESULTS = "no_results"
    SEARCH_FAILED = "search_failed"
    DEADLINE_EXCEEDED = "deadline_exceeded"


class ResearchResponse(BaseModel):
    results: list[SourceResult] = Field(default_factory=list)
    status: ResearchStatus = ResearchStatus.OK
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        """True when the call produced a usable (possibly partial) result set."""
        return self.status in (ResearchStatus.OK, ResearchStatus.DEADLINE_EXCEEDED) and bool(
            self.results
        )


# --- Disk cache ---


class CachedDocument(BaseModel):
    url: str
    snippet: str = ""
    document: str = ""
    summary: str = ""
    timestamp: int = Field(ge=0)
