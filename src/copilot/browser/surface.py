from __future__ import annotations

import abc
import asyncio
import logging
import re
import time
from collections import defaultdict
from typing import Any, Callable, Iterable

from ..errors import SurfaceError, SurfaceNotReady

logger = logging.getLogger(__name__)

Listener = Callable[[str], None]

NAVIGATION_EVENTS: tuple[str, ...] = ("did-navigate", "did-navigate-in-page", "did-stop-loading", "dom-ready")
LOAD_EVENTS: tuple[str, ...] = ("did-stop-loading", "dom-ready")

_NOT_READY_PATTERN = re.compile(
    r"dom-ready|attached to the DOM|execution context was destroyed|context was destroyed",
    re.IGNORECASE,
)


def is_not_ready_message(message: str) -> bool:
    return bool(_NOT_READY_PATTERN.search(message))


class SurfaceHost(abc.ABC):
    """Renderer handle (webview or tab) hosting the page.

    Implementations translate their native errors into ``SurfaceNotReady`` for
    scripts sent before the document is usable and ``SurfaceError`` for any
    other communication failure.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = defaultdict(list)
        self.dom_ready_seen = False

    @abc.abstractmethod
    def get_url(self) -> str:
        """Return the URL currently shown by the host."""

    @abc.abstractmethod
    async def execute_javascript(self, script: str) -> Any:
        """Evaluate ``script`` in the page and return its JSON-shaped value."""

    @abc.abstractmethod
    async def load_url(self, url: str) -> None:
        """Start navigating to ``url`` without waiting for the load to finish."""

    def is_attached(self) -> bool:
        return True

    async def stop_loading(self) -> None:
        return None

    def add_listener(self, event: str, listener: Listener) -> None:
        self._listeners[event].append(listener)

    def remove_listener(self, event: str, listener: Listener) -> None:
        listeners = self._listeners.get(event)
        if listeners and listener in listeners:
            listeners.remove(listener)

    def emit(self, event: str) -> None:
        if event == "dom-ready":
            self.dom_ready_seen = True
        for listener in list(self._listeners.get(event, ())):
            listener(event)


class EventWatch:
    """One-shot waiter resolved by the first of several lifecycle events.

    Arm it before triggering the action that causes the events.
    """

    def __init__(self, host: SurfaceHost, events: Iterable[str]) -> None:
        self._host = host
        self._events = tuple(events)
        self._future: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        for event in self._events:
            host.add_listener(event, self._handle)

    def _handle(self, event: str) -> None:
        if not self._future.done():
            self._future.set_result(event)
        self.close()

    def close(self) -> None:
        for event in self._events:
            self._host.remove_listener(event, self._handle)

    @property
    def fired(self) -> bool:
        return self._future.done() and not self._future.cancelled()

    async def wait(self, timeout_s: float) -> bool:
        try:
            await asyncio.wait_for(self._future, timeout=timeout_s)
            return True
        except asyncio.TimeoutError:
            return False
        finally:
            self.close()


class PageSurface:
    """Readiness-aware adapter around a ``SurfaceHost``."""

    def __init__(
        self,
        host: SurfaceHost,
        *,
        ready_timeout_s: float = 2.0,
        poll_interval_s: float = 0.2,
    ) -> None:
        self._host = host
        self._ready_timeout_s = ready_timeout_s
        self._poll_interval_s = poll_interval_s
        self._ready = host.dom_ready_seen
        host.add_listener("dom-ready", self._mark_ready)

    @property
    def host(self) -> SurfaceHost:
        return self._host

    @property
    def ready(self) -> bool:
        return self._ready

    def _mark_ready(self, _: str) -> None:
        self._ready = True

    def get_url(self) -> str:
        return self._host.get_url() or ""

    def on_ready(self, callback: Listener) -> Callable[[], None]:
        return self._subscribe(("dom-ready",), callback)

    def on_navigated(self, callback: Listener) -> Callable[[], None]:
        return self._subscribe(("did-navigate", "did-navigate-in-page"), callback)

    def _subscribe(self, events: tuple[str, ...], callback: Listener) -> Callable[[], None]:
        for event in events:
            self._host.add_listener(event, callback)

        def unsubscribe() -> None:
            for event in events:
                self._host.remove_listener(event, callback)

        return unsubscribe

    def watch(self, events: Iterable[str] = NAVIGATION_EVENTS) -> EventWatch:
        return EventWatch(self._host, events)

    async def wait_for_attached(self, timeout_s: float) -> bool:
        deadline = time.monotonic() + timeout_s
        while not self._host.is_attached():
            if time.monotonic() >= deadline:
                return False
            await asyncio.sleep(0.05)
        return True

    async def wait_for_ready(self, timeout_s: float | None = None) -> bool:
        timeout_s = self._ready_timeout_s if timeout_s is None else timeout_s
        if not await self.wait_for_attached(min(self._ready_timeout_s, timeout_s)):
            self._ready = False
            return False
        if self._ready:
            return True
        ready = await self.watch(("dom-ready",)).wait(timeout_s)
        return ready or self._ready

    async def execute(self, script: str) -> Any | None:
        """Run ``script`` once the page is ready; ``None`` when it never becomes ready."""

        if not await self.wait_for_ready():
            logger.debug("Surface not ready; skipping script execution")
            return None
        try:
            return await self._host.execute_javascript(script)
        except SurfaceNotReady as exc:
            logger.info("Surface reported not ready (%s); retrying once", exc)
            self._ready = False

        if not await self.wait_for_ready() or not self._host.is_attached():
            return None
        try:
            return await self._host.execute_javascript(script)
        except SurfaceNotReady:
            logger.warning("Surface still not ready after retry; giving up on this script")
            return None

    async def wait_for_url_change(self, before_url: str, timeout_s: float) -> str:
        deadline = time.monotonic() + timeout_s
        while time.monotonic() < deadline:
            current = self.get_url()
            if current and current != before_url:
                return current
            await asyncio.sleep(self._poll_interval_s)
        return self.get_url()

    async def wait_for_settle(self, watch: EventWatch, before_url: str, timeout_s: float) -> bool:
        """Wait for a lifecycle event or a URL change, whichever comes first."""

        if watch.fired:
            watch.close()
            return True
        event_task = asyncio.ensure_future(watch.wait(timeout_s))
        url_task = asyncio.ensure_future(self.wait_for_url_change(before_url, timeout_s))
        done, pending = await asyncio.wait({event_task, url_task}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        settled = False
        if event_task in done and event_task.result():
            settled = True
        if url_task in done:
            after_url = url_task.result()
            settled = settled or bool(after_url and after_url != before_url)
        if not settled:
            logger.debug("No navigation observed within %.1fs; continuing with current state", timeout_s)
        return settled

    async def navigate(self, url: str, timeout_s: float) -> bool:
        watch = self.watch(LOAD_EVENTS)
        try:
            await self._host.load_url(url)
        except SurfaceError:
            watch.close()
            logger.warning("Navigation to %s failed to start", url, exc_info=True)
            return False
        loaded = await watch.wait(timeout_s)
        if not loaded:
            logger.info("Navigation to %s did not finish within %.1fs", url, timeout_s)
        return loaded

    async def stop(self) -> None:
        await self._host.stop_loading()
