from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Callable
from urllib.parse import urlparse

from pydantic import ValidationError

from ..browser.tools import base_url as site_base_url, is_special_url
from ..storage import JSONDocumentStore
from ..types import FrequentSite, SiteEntry, VisitEvent

logger = logging.getLogger(__name__)

MAX_VISITS = 500
MAX_RECENT_URLS = 6
DUPLICATE_WINDOW_S = 15.0
EMPTY_SUMMARY = "No frequent sites recorded yet."


class VisitMemory:
    """Site-frequency memory fed by every page the copilot reads or opens."""

    def __init__(self, store: JSONDocumentStore, clock: Callable[[], float] = time.time) -> None:
        self._store = store
        self._clock = clock
        self._visits: list[VisitEvent] = []
        self._sites: dict[str, SiteEntry] = {}
        self._load()

    def _load(self) -> None:
        document = self._store.get()
        try:
            self._visits = [VisitEvent.model_validate(item) for item in document.get("visits") or []]
            sites = document.get("sites") or {}
            self._sites = {host: SiteEntry.model_validate(entry) for host, entry in sites.items()}
        except (ValidationError, AttributeError):
            logger.exception("Visit memory is malformed; starting empty")
            self._visits, self._sites = [], {}

    def _save(self) -> None:
        self._store.replace(
            {
                "visits": [visit.to_document() for visit in self._visits],
                "sites": {host: entry.to_document() for host, entry in self._sites.items()},
            }
        )

    def record_visit(self, url: str, title: str | None = None) -> None:
        if not url or is_special_url(url):
            return
        parsed = urlparse(url)
        if not parsed.scheme or not parsed.netloc:
            return

        host = parsed.netloc
        base_url = site_base_url(url)
        title = (title or host).strip() or host
        now = self._clock()
        last = self._visits[0] if self._visits else None
        duplicate = last is not None and last.url == url and now - last.timestamp < DUPLICATE_WINDOW_S

        existing = self._sites.get(host)
        if existing is None:
            self._sites[host] = SiteEntry(
                host=host, base_url=base_url, title=title, count=1, last_visited=now, recent_urls=[url]
            )
        else:
            existing.title = title or existing.title
            existing.count = existing.count if duplicate else existing.count + 1
            existing.last_visited = now
            existing.recent_urls = [url, *(item for item in existing.recent_urls if item != url)][:MAX_RECENT_URLS]

        if duplicate and last is not None:
            last.title = title
            last.timestamp = now
        else:
            visit = VisitEvent(url=url, title=title, host=host, base_url=base_url, timestamp=now)
            self._visits = [visit, *self._visits][:MAX_VISITS]
        self._save()

    def recent_visits(self, limit: int = 20) -> list[VisitEvent]:
        return self._visits[: max(1, limit)]

    def _score(self, entry: SiteEntry) -> float:
        days = max(0.0, (self._clock() - entry.last_visited) / 86_400)
        return entry.count + max(0.0, 5 - days)

    def _rank(self, entries: list[SiteEntry], limit: int) -> list[FrequentSite]:
        ranked = [FrequentSite(**entry.model_dump(), score=self._score(entry)) for entry in entries]
        ranked.sort(key=lambda site: (site.score, site.last_visited), reverse=True)
        return ranked[: max(1, limit)]

    def frequent_sites(self, limit: int = 8) -> list[FrequentSite]:
        return self._rank(list(self._sites.values()), limit)

    def search_sites(self, query: str, limit: int = 6) -> list[FrequentSite]:
        needle = query.strip().lower()
        if not needle:
            return self.frequent_sites(limit)
        matched = [
            entry
            for entry in self._sites.values()
            if needle in entry.host.lower()
            or needle in entry.title.lower()
            or any(needle in url.lower() for url in entry.recent_urls)
        ]
        return self._rank(matched, limit)

    def summary(self, limit: int = 6) -> str:
        top = self.frequent_sites(limit)
        if not top:
            return EMPTY_SUMMARY
        lines = []
        for idx, site in enumerate(top, start=1):
            last = datetime.fromtimestamp(site.last_visited).strftime("%Y-%m-%d %H:%M")
            lines.append(f"{idx}. {site.title} ({site.host}) - visits: {site.count}, last: {last}")
        return "\n".join(lines)
