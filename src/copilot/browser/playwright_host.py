from __future__ import annotations

import logging
from typing import Any

from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Frame,
    Page,
    Request,
    async_playwright,
)

from ..errors import SurfaceError, SurfaceNotReady
from .surface import SurfaceHost, is_not_ready_message

logger = logging.getLogger(__name__)


class PlaywrightHost(SurfaceHost):
    """Surface host backed by a single Chromium page driven through Playwright."""

    def __init__(
        self,
        *,
        headless: bool = True,
        start_url: str = "about:blank",
        navigation_timeout_s: float = 12.0,
    ) -> None:
        super().__init__()
        self._headless = headless
        self._start_url = start_url
        self._navigation_timeout_ms = navigation_timeout_s * 1000
        self._playwright = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None

    async def __aenter__(self) -> "PlaywrightHost":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        await self.stop()

    async def start(self) -> None:
        if self._page is not None:
            return
        playwright = await async_playwright().start()
        self._playwright = playwright
        browser = await playwright.chromium.launch(headless=self._headless)
        context = await browser.new_context()
        page = await context.new_page()

        self._browser = browser
        self._context = context
        self._page = page
        self._attach_page_listeners(page)
        if self._start_url and self._start_url != "about:blank":
            await self.load_url(self._start_url)
        else:
            self.emit("dom-ready")

    async def stop(self) -> None:
        if self._page is not None:
            await self._page.close()
        if self._context is not None:
            await self._context.close()
        if self._browser is not None:
            await self._browser.close()
        if self._playwright is not None:
            await self._playwright.stop()
        self._page = None
        self._context = None
        self._browser = None
        self._playwright = None

    @property
    def page(self) -> Page:
        if self._page is None:
            raise SurfaceError("Browser not started")
        return self._page

    def get_url(self) -> str:
        if self._page is None or self._page.is_closed():
            return ""
        return self._page.url

    def is_attached(self) -> bool:
        return self._page is not None and not self._page.is_closed()

    async def execute_javascript(self, script: str) -> Any:
        try:
            return await self.page.evaluate(script)
        except PlaywrightError as exc:
            message = str(exc)
            if is_not_ready_message(message):
                raise SurfaceNotReady(message) from exc
            raise SurfaceError(message) from exc

    async def load_url(self, url: str) -> None:
        try:
            await self.page.goto(url, wait_until="commit", timeout=self._navigation_timeout_ms)
        except PlaywrightError as exc:
            self.emit("did-fail-load")
            raise SurfaceError(f"Navigation to {url} failed: {exc}") from exc

    async def stop_loading(self) -> None:
        if not self.is_attached():
            return
        try:
            await self.page.evaluate("() => window.stop()")
        except PlaywrightError:
            logger.debug("window.stop() failed", exc_info=True)

    def _attach_page_listeners(self, page: Page) -> None:
        page.on("domcontentloaded", lambda _: self.emit("dom-ready"))
        page.on("load", lambda _: self.emit("did-stop-loading"))
        page.on("framenavigated", self._handle_frame_navigated)
        page.on("request", self._handle_request)
        page.on("requestfailed", self._handle_request_failed)

    def _is_main_navigation(self, request: Request) -> bool:
        return self._page is not None and request.is_navigation_request() and request.frame == self._page.main_frame

    def _handle_frame_navigated(self, frame: Frame) -> None:
        if self._page is not None and frame == self._page.main_frame:
            self.emit("did-navigate")

    def _handle_request(self, request: Request) -> None:
        if self._is_main_navigation(request):
            self.emit("did-start-loading")

    def _handle_request_failed(self, request: Request) -> None:
        if self._is_main_navigation(request):
            logger.info("Main frame navigation failed: %s", request.url)
            self.emit("did-fail-load")
