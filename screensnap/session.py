# screensnap/session.py
import asyncio
import logging

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import ViewportSize, async_playwright

from screensnap.config import Settings
from screensnap.errors import (
    CaptureFailure,
    CleanupFailure,
    DeadlineExceeded,
    EngineStartupFailure,
    NavigationTransportError,
    ReadinessTimeout,
)
from screensnap.metrics import registry

log = logging.getLogger(__name__)

LAUNCH_ARGS = [
    "--disable-gpu",
    "--no-sandbox",
    "--disable-dev-shm-usage",
    "--hide-scrollbars",
]


def _ms(seconds: float) -> float:
    return max(seconds, 0.0) * 1000


class Tab:
    """One request's isolated browser context and page."""

    def __init__(self, session: "BrowserSession", context, page):
        self._session = session
        self._context = context
        self._page = page
        self._cdp = None
        self.closed = False

    async def enable_network(self):
        try:
            self._cdp = await self._context.new_cdp_session(self._page)
            await self._cdp.send("Network.enable")
        except PlaywrightError as err:
            raise NavigationTransportError(f"network enable: {err.message}") from err

    async def set_extra_headers(self, headers: dict):
        try:
            await self._page.set_extra_http_headers({k: str(v) for k, v in headers.items()})
        except PlaywrightError as err:
            raise NavigationTransportError(f"set headers: {err.message}") from err

    async def set_viewport(self, width: int, height: int):
        try:
            await self._page.set_viewport_size(ViewportSize(width=width, height=height))
        except PlaywrightError as err:
            raise NavigationTransportError(f"set viewport: {err.message}") from err

    async def navigate(self, url: str, timeout: float) -> int:
        try:
            response = await self._page.goto(url, wait_until="load", timeout=_ms(timeout))
        except PlaywrightTimeoutError as err:
            raise DeadlineExceeded(f"navigate {url}: {err.message}") from err
        except PlaywrightError as err:
            raise NavigationTransportError(f"navigate {url}: {err.message}") from err
        if response is None:
            raise NavigationTransportError(f"navigate {url}: no response")
        return response.status

    async def wait_visible(self, selector: str, timeout: float):
        try:
            await self._page.wait_for_selector(selector, state="visible", timeout=_ms(timeout))
        except PlaywrightTimeoutError as err:
            raise ReadinessTimeout(f"waiting for {selector}: {err.message}") from err
        except PlaywrightError as err:
            raise NavigationTransportError(f"waiting for {selector}: {err.message}") from err

    async def screenshot(self, selector: str, timeout: float) -> bytes:
        try:
            return await self._page.locator(selector).screenshot(type="png", timeout=_ms(timeout))
        except PlaywrightError as err:
            raise CaptureFailure(f"screenshot {selector}: {err.message}") from err

    async def close(self):
        if self.closed:
            return
        self.closed = True
        try:
            if self._cdp is not None:
                await self._cdp.detach()
            await self._page.close()
            await self._context.close()
        except PlaywrightError as err:
            raise CleanupFailure(f"close tab: {err.message}") from err
        finally:
            self._session._forget(self)


class BrowserSession:
    """The single long-lived Chromium process, shared by all requests."""

    def __init__(self, metrics=registry):
        self.metrics = metrics
        self._playwright = None
        self._browser = None
        self._settings = None
        self._tabs = set()
        self._cleanups = set()

    @property
    def running(self) -> bool:
        return self._browser is not None

    @property
    def open_tabs(self) -> int:
        return len(self._tabs)

    async def start(self, settings: Settings):
        if self._browser is not None:
            raise EngineStartupFailure("browser session already started")
        self._settings = settings
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(headless=True, args=LAUNCH_ARGS)
        except Exception as err:
            await self._shutdown()
            raise EngineStartupFailure(f"start browser: {err}") from err
        log.info("chromium %s started", self._browser.version)

    async def new_tab(self, timeout: float) -> Tab:
        if self._browser is None:
            raise NavigationTransportError("browser session is not running")
        try:
            tab = await asyncio.wait_for(self._open_tab(), timeout)
        except asyncio.TimeoutError as err:
            raise DeadlineExceeded(f"new tab: no context after {timeout:.1f}s") from err
        except PlaywrightError as err:
            raise NavigationTransportError(f"new tab: {err.message}") from err
        self._tabs.add(tab)
        self.metrics.set_gauge("screensnap_open_tabs", len(self._tabs))
        return tab

    async def _open_tab(self) -> Tab:
        viewport = ViewportSize(width=self._settings.viewport_width, height=self._settings.viewport_height)
        context = await self._browser.new_context(viewport=viewport)
        try:
            page = await context.new_page()
        except BaseException:
            await context.close()
            raise
        return Tab(self, context, page)

    def _forget(self, tab: Tab):
        self._tabs.discard(tab)
        self.metrics.set_gauge("screensnap_open_tabs", len(self._tabs))

    def spawn_cleanup(self, coro) -> asyncio.Task:
        """Run ``coro`` as a task owned by the session rather than the caller.

        The request that spawned it may be cancelled; the task still runs to
        completion and is awaited on ``stop()``.
        """
        task = asyncio.ensure_future(coro)
        self._cleanups.add(task)
        task.add_done_callback(self._cleanups.discard)
        return task

    async def stop(self):
        if self._cleanups:
            await asyncio.gather(*self._cleanups, return_exceptions=True)
        for tab in list(self._tabs):
            try:
                await tab.close()
            except CleanupFailure as err:
                log.warning("leaked tab on shutdown: %s", err)
        await self._shutdown()
        log.info("chromium stopped")

    async def _shutdown(self):
        if self._browser is not None:
            try:
                await self._browser.close()
            except PlaywrightError as err:
                log.error("error closing browser: %s", err)
            finally:
                self._browser = None
        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as err:
                log.error("error stopping playwright: %s", err)
            finally:
                self._playwright = None
