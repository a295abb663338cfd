from __future__ import annotations

import asyncio
import time
from typing import Any

from loguru import logger

from webresearch import llm_client
from webresearch.config import settings
from webresearch.exceptions import SummarizeFailed, SummarizeTimeout
from webresearch.services import logger as log_service
from webresearch.tools import web_utils

SUMMARY_SYSTEM_PROMPT = (
    "You are a web content analyzer. You read the text of one web page and "
    "extract only the information that helps answer the user's query. Keep "
    "facts, figures, dates and names. Answer in plain prose without preamble."
)


def build_summary_prompt(query: str, content: str) -> str:
    return (
        f'Query: "{query}"\n\n'
        "Extract the information in the following page that is relevant to the query. "
        "If nothing in the page is relevant, say so in one sentence.\n\n"
        f"Page text:\n{content}"
    )


class Summarizer:
    """Optional LLM-backed reduction of page text, with a deterministic fallback."""

    def __init__(
        self,
        *,
        llm: Any | None = None,
        model: str | None = None,
        timeout: float | None = None,
        max_tokens: int | None = None,
        fallback_words: int | None = None,
    ):
        self._llm = llm
        self.model = model or llm_client.get_model()
        self.timeout = float(timeout or settings.summary_timeout_seconds)
        self.max_tokens = int(max_tokens or settings.llm_max_tokens)
        self.fallback_words = int(
            settings.summary_fallback_words if fallback_words is None else fallback_words
        )

    def _client(self) -> Any:
        if self._llm is None:
            self._llm = llm_client.client()
        return self._llm

    def fallback(self, content: str) -> str:
        return web_utils.first_words(content, self.fallback_words)

    async def summarize(self, content: str, query: str, enabled: bool) -> str:
        if not enabled:
            return ""
        if not content.strip():
            return ""

        try:
            return await self._request_summary(content, query)
        except SummarizeFailed as exc:
            logger.warning(f"Summarization unavailable, using truncated content: {exc}")
            return self.fallback(content)

    async def _request_summary(self, content: str, query: str) -> str:
        started = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client().messages.create(
                    model=self.model,
                    max_tokens=self.max_tokens,
                    system=SUMMARY_SYSTEM_PROMPT,
                    messages=[{"role": "user", "content": build_summary_prompt(query, content)}],
                ),
                self.timeout,
            )
        except asyncio.TimeoutError as exc:
            self._log_call(started, error="timeout")
            raise SummarizeTimeout(f"No summary within {self.timeout:.0f}s") from exc
        except Exception as exc:
            self._log_call(started, error=str(exc))
            raise SummarizeFailed(f"Summarization request failed: {exc}") from exc

        summary = getattr(response, "text", "")
        if not isinstance(summary, str) or not summary.strip():
            self._log_call(started, error="empty response")
            raise SummarizeFailed("Summarization backend returned no text")

        usage = getattr(response, "usage", None)
        self._log_call(
            started,
            input_tokens=getattr(usage, "input_tokens", 0) or 0,
            output_tokens=getattr(usage, "output_tokens", 0) or 0,
        )
        return summary.strip()

    def _log_call(
        self,
        started: float,
        *,
        input_tokens: int = 0,
        output_tokens: int = 0,
        error: str | None = None,
    ) -> None:
        log_service.log_llm_call(
            model=self.model,
            caller="summarizer",
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            duration_ms=int((time.monotonic() - started) * 1000),
            status="error" if error else "success",
            error=error,
        )
