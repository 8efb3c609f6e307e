from __future__ import annotations

import logging
import time
from typing import Callable

import orjson
from pydantic import ValidationError

from ..errors import SurfaceError
from ..types import PageContent, PageSchema
from .surface import PageSurface

logger = logging.getLogger(__name__)

MAX_CONTENT_CHARS = 50_000

PAGE_CONTENT_SCRIPT = r"""
/* copilot:page-content */
(() => {
    const bodyText = (document.body && document.body.innerText) || "";
    const maxContent = %(max_content)d;
    const content = bodyText.length > maxContent ? bodyText.substring(0, maxContent) + "..." : bodyText;
    return { title: document.title || "", content };
})()
""" % {"max_content": MAX_CONTENT_CHARS}

SNAPSHOT_SCRIPT = r"""
/* copilot:snapshot */
(() => {
    const escapeCss = (value) => {
        if (window.CSS && CSS.escape) return CSS.escape(value);
        return value.replace(/[^a-zA-Z0-9_-]/g, '\\$&');
    };
    const trimText = (text, max = 140) => {
        if (!text) return '';
        return String(text).replace(/\s+/g, ' ').trim().slice(0, max);
    };
    const selectorFor = (el) => {
        if (!el || el.nodeType !== 1) return '';
        if (el.id) return '#' + escapeCss(el.id);
        const parts = [];
        let node = el;
        while (node && node.nodeType === 1 && parts.length < 4) {
            let part = node.tagName.toLowerCase();
            if (node.className && typeof node.className === 'string') {
                const classes = node.className.split(/\s+/).filter(Boolean).slice(0, 2);
                if (classes.length) {
                    part += '.' + classes.map(escapeCss).join('.');
                }
            }
            const parent = node.parentElement;
            if (parent) {
                const siblings = Array.from(parent.children).filter((child) => child.tagName === node.tagName);
                if (siblings.length > 1) {
                    part += ':nth-of-type(' + (siblings.indexOf(node) + 1) + ')';
                }
            }
            parts.unshift(part);
            node = node.parentElement;
        }
        return parts.join(' > ');
    };
    const summarize = (el) => ({
        tag: (el.tagName || '').toLowerCase(),
        text: trimText(el.innerText || el.value || ''),
        id: el.id || '',
        name: typeof el.name === 'string' ? el.name : '',
        type: typeof el.type === 'string' ? el.type : '',
        placeholder: el.placeholder || '',
        ariaLabel: (el.getAttribute && el.getAttribute('aria-label')) || '',
        role: (el.getAttribute && el.getAttribute('role')) || '',
        selector: selectorFor(el)
    });
    const pick = (selector, limit) => Array.from(document.querySelectorAll(selector)).slice(0, limit);

    const inputs = pick('input, textarea, select', 80).map(summarize);
    const buttons = pick('button, [role="button"], input[type="button"], input[type="submit"]', 80).map(summarize);
    const links = pick('a[href]', 80).map((el) => Object.assign(summarize(el), { href: el.getAttribute('href') }));
    const headings = pick('h1, h2, h3', 40).map((el) => ({
        level: el.tagName.toLowerCase(),
        text: trimText(el.innerText, 180),
        selector: selectorFor(el)
    }));
    const forms = pick('form', 40).map((form) => ({
        action: form.getAttribute('action') || '',
        method: form.getAttribute('method') || '',
        selector: selectorFor(form),
        inputs: Array.from(form.querySelectorAll('input, textarea, select')).slice(0, 20).map(summarize)
    }));

    return {
        title: document.title || '',
        url: location.href,
        inputs,
        buttons,
        links,
        headings,
        forms,
        htmlSnippet: ((document.documentElement && document.documentElement.outerHTML) || '').slice(0, 50000)
    };
})()
"""


def page_contains_url(schema: PageSchema | None, url: str) -> bool:
    """Return True when ``url`` (trailing slash ignored) appears anywhere in the schema."""

    if not url or schema is None:
        return False
    normalized = url.rstrip("/").lower()
    if not normalized:
        return False
    haystack = orjson.dumps(schema.model_dump(mode="json", by_alias=True)).decode().lower()
    return normalized in haystack


class SchemaExtractor:
    """Build page schemas and text snapshots from the live surface."""

    def __init__(
        self,
        surface: PageSurface,
        *,
        ttl_s: float = 120.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._surface = surface
        self._ttl_s = ttl_s
        self._clock = clock
        self._cached_url: str | None = None
        self._cached_at = 0.0
        self._cached: PageSchema | None = None

    def invalidate(self) -> None:
        self._cached_url = None
        self._cached = None

    def cached_for(self, url: str) -> PageSchema | None:
        if self._cached is None or self._cached_url != url:
            return None
        if self._clock() - self._cached_at >= self._ttl_s:
            return None
        return self._cached

    async def extract_schema(self, *, force: bool = False) -> PageSchema | None:
        url = self._surface.get_url()
        if not force:
            cached = self.cached_for(url)
            if cached is not None:
                logger.debug("Using cached schema for %s", url)
                return cached

        try:
            raw = await self._surface.execute(SNAPSHOT_SCRIPT)
        except SurfaceError:
            logger.warning("Failed to capture DOM snapshot", exc_info=True)
            return None
        if not isinstance(raw, dict):
            logger.info("DOM snapshot unavailable for %s", url or "<blank>")
            return None
        try:
            schema = PageSchema.model_validate(raw)
        except ValidationError:
            logger.warning("DOM snapshot for %s did not match the expected shape", url, exc_info=True)
            return None

        if not schema.url:
            schema.url = url
        self._cached_url = url
        self._cached_at = self._clock()
        self._cached = schema
        logger.debug(
            "Captured schema",
            extra={
                "url": url,
                "inputs": len(schema.inputs),
                "buttons": len(schema.buttons),
                "links": len(schema.links),
            },
        )
        return schema

    async def read_page(self) -> PageContent:
        url = self._surface.get_url()
        try:
            raw = await self._surface.execute(PAGE_CONTENT_SCRIPT)
        except SurfaceError:
            logger.warning("Failed to read page content", exc_info=True)
            return PageContent()
        if not isinstance(raw, dict):
            return PageContent()
        title = str(raw.get("title") or "") or "Untitled"
        body = str(raw.get("content") or "")
        return PageContent(url=url, title=title, content=f"Title: {title}\n\nContent:\n{body}")
