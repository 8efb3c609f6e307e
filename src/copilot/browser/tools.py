from __future__ import annotations

import re
from urllib.parse import quote, quote_plus, urlparse

SEARCH_URL = "https://duckduckgo.com/?q={query}"
_SPECIAL_PREFIXES = ("data:", "blob:", "about:", "file:")
_SCHEME_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://([^/?#]+)")


def is_special_url(url: str) -> bool:
    return url.startswith(_SPECIAL_PREFIXES)


def is_http_url(url: str) -> bool:
    return url.startswith("http://") or url.startswith("https://")


def is_home_like(url: str) -> bool:
    """Blank or internal pages that carry no site context."""

    return not url or url.startswith(("data:", "about:"))


def normalize_host(url: str) -> str:
    match = _SCHEME_PATTERN.match(url)
    if not match:
        return ""
    return match.group(1).lower()


def search_url(query: str) -> str:
    return SEARCH_URL.format(query=quote(query, safe=""))


def normalize_url(raw: str) -> str:
    """Turn address-bar input into a navigable URL; free text becomes a search."""

    trimmed = raw.strip()
    if not trimmed:
        return ""
    if is_special_url(trimmed) or is_http_url(trimmed):
        return trimmed
    if "." in trimmed and " " not in trimmed:
        return f"https://{trimmed}"
    return search_url(trimmed)


def base_url(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


def youtube_results_url(query: str) -> str:
    return f"https://www.youtube.com/results?search_query={quote_plus(query)}"
