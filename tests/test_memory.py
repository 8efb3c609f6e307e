from __future__ import annotations

from pathlib import Path

from copilot.core.memory import EMPTY_SUMMARY, MAX_RECENT_URLS, VisitMemory
from copilot.storage import JSONDocumentStore, MemoryDocumentStore


class Clock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def make_memory(clock: Clock) -> VisitMemory:
    return VisitMemory(MemoryDocumentStore({"visits": [], "sites": {}}), clock=clock)


def test_special_urls_are_ignored() -> None:
    memory = make_memory(Clock())
    for url in ("about:blank", "data:text/html,hi", "file:///etc/hosts", "blob:abc", "not a url", ""):
        memory.record_visit(url)
    assert memory.recent_visits() == []
    assert memory.summary() == EMPTY_SUMMARY


def test_repeat_visit_within_window_is_not_counted() -> None:
    clock = Clock()
    memory = make_memory(clock)
    memory.record_visit("https://example.com/a", "Example")
    clock.now += 5
    memory.record_visit("https://example.com/a", "Example A")
    clock.now += 30
    memory.record_visit("https://example.com/a", "Example A")

    site = memory.frequent_sites()[0]
    assert site.count == 2
    assert site.title == "Example A"
    assert len(memory.recent_visits()) == 2


def test_recent_urls_are_distinct_and_capped() -> None:
    clock = Clock()
    memory = make_memory(clock)
    for idx in range(MAX_RECENT_URLS + 3):
        clock.now += 60
        memory.record_visit(f"https://example.com/{idx}")
    clock.now += 60
    memory.record_visit("https://example.com/2")

    site = memory.frequent_sites()[0]
    assert len(site.recent_urls) == MAX_RECENT_URLS
    assert site.recent_urls[0] == "https://example.com/2"
    assert len(set(site.recent_urls)) == MAX_RECENT_URLS


def test_frequency_ranking_blends_count_and_recency() -> None:
    clock = Clock()
    memory = make_memory(clock)
    for _ in range(3):
        clock.now += 60
        memory.record_visit("https://old.example.com/", "Old")
    clock.now += 10 * 86_400
    memory.record_visit("https://fresh.example.org/", "Fresh")

    ranked = memory.frequent_sites()
    assert [site.host for site in ranked] == ["fresh.example.org", "old.example.com"]
    assert ranked[0].score == 1 + 5
    assert ranked[1].score == 3


def test_search_and_summary(tmp_path: Path) -> None:
    clock = Clock()
    store = JSONDocumentStore(tmp_path / "visits.json", {"visits": [], "sites": {}})
    memory = VisitMemory(store, clock=clock)
    memory.record_visit("https://docs.python.org/3/library/asyncio.html", "asyncio docs")
    clock.now += 60
    memory.record_visit("https://news.ycombinator.com/", "Hacker News")

    assert [site.host for site in memory.search_sites("asyncio")] == ["docs.python.org"]
    assert memory.search_sites("nothing-matches") == []
    assert "1. Hacker News (news.ycombinator.com) - visits: 1" in memory.summary()

    reloaded = VisitMemory(JSONDocumentStore(tmp_path / "visits.json", {"visits": [], "sites": {}}), clock=clock)
    assert len(reloaded.recent_visits()) == 2
    assert reloaded.frequent_sites()[0].base_url == "https://news.ycombinator.com"
