from __future__ import annotations

import os
import tempfile
import time
from hashlib import sha256
from pathlib import Path

from loguru import logger
from pydantic import ValidationError

from webresearch.config import settings
from webresearch.models.schemas import CachedDocument
from webresearch.tools.web_utils import canonical_url

CACHE_VERSION = 1


def _now() -> int:
    return int(time.time())


def cache_key(url: str) -> str:
    material = f"v{CACHE_VERSION}|{canonical_url(url)}"
    return sha256(material.encode("utf-8")).hexdigest()


def conversation_cache_dir(conversation_id: str, cache_root: str | None = None) -> Path:
    root = Path(cache_root or settings.cache_root).expanduser()
    return root / conversation_id / "web_cache"


class DocumentCache:
    """One JSON file per URL, fresh for ``max_age_seconds`` after the last write."""

    def __init__(self, cache_dir: str | Path, *, max_age_seconds: int | None = None):
        self.cache_dir = Path(cache_dir)
        self.max_age_seconds = (
            settings.cache_max_age_seconds if max_age_seconds is None else max(int(max_age_seconds), 0)
        )

    def path_for(self, url: str) -> Path:
        return self.cache_dir / f"{cache_key(url)}.json"

    def ensure_dir(self) -> None:
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def read(self, url: str) -> CachedDocument | None:
        path = self.path_for(url)
        if not path.exists():
            return None

        try:
            record = CachedDocument.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, ValidationError) as exc:
            logger.debug(f"Ignoring unreadable cache entry {path.name} for {url}: {exc}")
            return None

        age = _now() - record.timestamp
        if age < 0 or age >= self.max_age_seconds:
            logger.debug(f"Cache entry for {url} is outside the freshness window ({age}s old)")
            return None
        return record

    def write(self, url: str, snippet: str, content: str, summary: str) -> CachedDocument:
        record = CachedDocument(
            url=url,
            snippet=snippet,
            document=content,
            summary=summary,
            timestamp=_now(),
        )
        self.ensure_dir()
        path = self.path_for(url)

        # Whole-record replace: readers never observe a half-written file.
        fd, tmp_name = tempfile.mkstemp(dir=self.cache_dir, prefix=".", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(record.model_dump_json(indent=2))
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        return record
