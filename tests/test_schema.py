from __future__ import annotations

import pytest

from copilot.browser.schema import SchemaExtractor, page_contains_url
from copilot.browser.surface import PageSurface
from copilot.types import ElementSummary, PageSchema

from fakes import FakeHost, FakePage

DOCS_SCHEMA = {
    "inputs": [{"tag": "input", "name": "q", "selector": "input[name=\"q\"]", "placeholder": "Search"}],
    "buttons": [{"tag": "button", "text": "Go", "selector": "#go"}],
    "links": [{"tag": "a", "text": "Library", "href": "https://docs.python.org/3/library/", "selector": "a.lib"}],
    "headings": [{"level": "h1", "text": "Python docs", "selector": "h1"}],
    "forms": [],
    "htmlSnippet": "<html>...</html>",
}


class Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def make_extractor(host: FakeHost, clock: Clock) -> SchemaExtractor:
    surface = PageSurface(host, ready_timeout_s=0.05, poll_interval_s=0.01)
    return SchemaExtractor(surface, ttl_s=120, clock=clock)


@pytest.mark.asyncio
async def test_schema_is_parsed_and_cached_per_url() -> None:
    host = FakeHost(
        "https://docs.python.org/3/",
        pages={"https://docs.python.org/3/": FakePage(title="3.12 Documentation", schema=DOCS_SCHEMA)},
    )
    clock = Clock()
    extractor = make_extractor(host, clock)

    schema = await extractor.extract_schema()
    assert schema is not None
    assert schema.title == "3.12 Documentation"
    assert schema.inputs[0].selector == 'input[name="q"]'
    assert schema.links[0].href == "https://docs.python.org/3/library/"

    again = await extractor.extract_schema()
    assert again is schema
    assert len(host.scripts) == 1

    clock.now = 121
    await extractor.extract_schema()
    assert len(host.scripts) == 2

    await extractor.extract_schema(force=True)
    assert len(host.scripts) == 3

    host.url = "https://docs.python.org/3/library/"
    assert extractor.cached_for(host.url) is None


@pytest.mark.asyncio
async def test_prompt_json_omits_html_snippet() -> None:
    host = FakeHost("https://docs.python.org/3/", pages={"https://docs.python.org/3/": FakePage(schema=DOCS_SCHEMA)})
    schema = await make_extractor(host, Clock()).extract_schema()
    assert schema is not None
    payload = schema.to_prompt_json()
    assert "htmlSnippet" not in payload
    assert '"ariaLabel"' in payload


@pytest.mark.asyncio
async def test_unavailable_surface_yields_no_schema() -> None:
    host = FakeHost("https://example.com/")
    host.broken = True
    extractor = make_extractor(host, Clock())
    assert await extractor.extract_schema() is None
    page = await extractor.read_page()
    assert page.content == ""


@pytest.mark.asyncio
async def test_read_page_formats_title_and_body() -> None:
    host = FakeHost("https://example.com/", pages={"https://example.com/": FakePage(title="", content="Hello world")})
    page = await make_extractor(host, Clock()).read_page()
    assert page.url == "https://example.com/"
    assert page.title == "Untitled"
    assert page.content == "Title: Untitled\n\nContent:\nHello world"


def test_page_contains_url_ignores_trailing_slash() -> None:
    schema = PageSchema(links=[ElementSummary(href="https://example.com/docs/", selector="a")])
    assert page_contains_url(schema, "https://example.com/docs")
    assert page_contains_url(schema, "https://EXAMPLE.com/docs/")
    assert not page_contains_url(schema, "https://example.com/blog")
    assert not page_contains_url(None, "https://example.com/docs")
