from __future__ import annotations

import re
from urllib.parse import parse_qsl, unquote, urlencode, urlsplit, urlunsplit

DEFAULT_PORTS = {"http": 80, "https": 443}


def is_valid_url(url: str) -> bool:
    """Basic URL validation: http(s) scheme and a host."""
    try:
        result = urlsplit(url)
        return result.scheme in ("http", "https") and bool(result.hostname)
    except ValueError:
        return False


def collapse_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def truncate(text: str, max_length: int) -> str:
    """Silently cap text at max_length characters, then trim."""
    if max_length > 0 and len(text) > max_length:
        text = text[:max_length]
    return text.strip()


def first_words(text: str, count: int) -> str:
    return " ".join(text.split()[: max(count, 0)])


def canonical_url(url: str) -> str:
    """Collapse scheme/host/path variants of a URL onto one form."""
    parsed = urlsplit(url.strip())
    scheme = (parsed.scheme or "https").lower()
    host = (parsed.hostname or "").lower()
    netloc = host
    try:
        port = parsed.port
    except ValueError:
        port = None
    if port and DEFAULT_PORTS.get(scheme) != port:
        netloc = f"{host}:{port}"
    path = parsed.path or "/"
    if len(path) > 1:
        path = path.rstrip("/") or "/"
    query = urlencode(sorted(parse_qsl(parsed.query, keep_blank_values=True)))
    return urlunsplit((scheme, netloc, path, query, ""))


def normalize_result_url(raw: str) -> str:
    """Turn a search-engine URL token into a plain https:// destination URL.

    Handles redirect links that carry the destination in a ``uddg`` parameter,
    protocol-relative links and display-only tokens such as ``example.com/a``.
    """
    token = raw.strip()
    if "uddg=" in token:
        start = token.index("uddg=") + len("uddg=")
        end = token.find("&", start)
        token = unquote(token[start:] if end == -1 else token[start:end])
    token = "".join(token.split())
    token = re.sub(r"^(?:https?:)?//", "", token, flags=re.IGNORECASE)
    if not token:
        return ""
    return f"https://{token}"


def extract_domain(url: str) -> str:
    """Extract domain from URL for display."""
    try:
        return urlsplit(url).netloc
    except ValueError:
        return url
