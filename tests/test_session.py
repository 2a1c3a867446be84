import asyncio

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from screensnap.errors import (
    CaptureFailure,
    CleanupFailure,
    DeadlineExceeded,
    EngineStartupFailure,
    NavigationTransportError,
    ReadinessTimeout,
)
from screensnap.session import LAUNCH_ARGS, BrowserSession, Tab


class FakeResponse:
    def __init__(self, status):
        self.status = status


class FakeLocator:
    def __init__(self, page, selector):
        self.page = page
        self.selector = selector

    async def screenshot(self, **kwargs):
        self.page.shots.append((self.selector, kwargs))
        if self.page.shot_error:
            raise self.page.shot_error
        return b"\x89PNG\r\n\x1a\n"


class FakePage:
    def __init__(self, goto=None, wait_error=None, shot_error=None, close_error=None):
        self.goto_result = goto
        self.wait_error = wait_error
        self.shot_error = shot_error
        self.close_error = close_error
        self.headers = None
        self.shots = []
        self.closed = 0

    async def set_extra_http_headers(self, headers):
        self.headers = headers

    async def set_viewport_size(self, size):
        self.viewport = size

    async def goto(self, url, wait_until=None, timeout=None):
        self.goto_args = (url, wait_until, timeout)
        if isinstance(self.goto_result, Exception):
            raise self.goto_result
        return self.goto_result

    async def wait_for_selector(self, selector, state=None, timeout=None):
        if self.wait_error:
            raise self.wait_error

    def locator(self, selector):
        return FakeLocator(self, selector)

    async def close(self):
        self.closed += 1
        if self.close_error:
            raise self.close_error


class FakeCDP:
    def __init__(self):
        self.sent = []

    async def send(self, method, params=None):
        self.sent.append(method)

    async def detach(self):
        pass


class FakeContext:
    def __init__(self, page):
        self.page = page
        self.cdp = FakeCDP()
        self.closed = 0

    async def new_cdp_session(self, page):
        return self.cdp

    async def new_page(self):
        return self.page

    async def close(self):
        self.closed += 1


def make_tab(**page_kwargs):
    session = BrowserSession()
    page = FakePage(**page_kwargs)
    context = FakeContext(page)
    tab = Tab(session, context, page)
    session._tabs.add(tab)
    return session, tab, page, context


@pytest.mark.asyncio
async def test_navigate_returns_status():
    _, tab, page, context = make_tab(goto=FakeResponse(404))
    await tab.enable_network()
    assert await tab.navigate("https://example.org/scores/x?graph_only=1", 2.0) == 404
    assert page.goto_args == ("https://example.org/scores/x?graph_only=1", "load", 2000.0)
    assert context.cdp.sent == ["Network.enable"]


@pytest.mark.asyncio
async def test_navigate_without_response_is_transport_error():
    _, tab, _, _ = make_tab(goto=None)
    with pytest.raises(NavigationTransportError):
        await tab.navigate("https://example.org/", 1.0)


@pytest.mark.asyncio
async def test_navigate_errors_are_translated():
    _, tab, _, _ = make_tab(goto=PlaywrightTimeoutError("Timeout 1000ms exceeded"))
    with pytest.raises(DeadlineExceeded):
        await tab.navigate("https://example.org/", 1.0)

    _, tab, _, _ = make_tab(goto=PlaywrightError("net::ERR_CONNECTION_REFUSED"))
    with pytest.raises(NavigationTransportError, match="ERR_CONNECTION_REFUSED"):
        await tab.navigate("https://example.org/", 1.0)


@pytest.mark.asyncio
async def test_headers_are_stringified():
    _, tab, page, _ = make_tab()
    await tab.set_extra_headers({"traceparent": "00-abc-def-01", "x-count": 3})
    assert page.headers == {"traceparent": "00-abc-def-01", "x-count": "3"}


@pytest.mark.asyncio
async def test_wait_visible_timeout_is_readiness_timeout():
    _, tab, _, _ = make_tab(wait_error=PlaywrightTimeoutError("Timeout 4000ms exceeded"))
    with pytest.raises(ReadinessTimeout):
        await tab.wait_visible("#loaded", 4.0)


@pytest.mark.asyncio
async def test_screenshot_targets_element():
    _, tab, page, _ = make_tab()
    buf = await tab.screenshot("#graph", 1.5)
    assert buf.startswith(b"\x89PNG")
    assert page.shots == [("#graph", {"type": "png", "timeout": 1500.0})]


@pytest.mark.asyncio
async def test_screenshot_error_is_capture_failure():
    _, tab, _, _ = make_tab(shot_error=PlaywrightError("Element is not attached to the DOM"))
    with pytest.raises(CaptureFailure):
        await tab.screenshot("#graph", 1.0)


@pytest.mark.asyncio
async def test_close_is_idempotent():
    session, tab, page, context = make_tab()
    await tab.close()
    await tab.close()
    assert page.closed == 1
    assert context.closed == 1
    assert session.open_tabs == 0


@pytest.mark.asyncio
async def test_close_failure_still_forgets_tab():
    session, tab, _, _ = make_tab(close_error=PlaywrightError("Target closed"))
    with pytest.raises(CleanupFailure):
        await tab.close()
    assert tab.closed
    assert session.open_tabs == 0
    await tab.close()


@pytest.mark.asyncio
async def test_new_tab_requires_running_browser():
    with pytest.raises(NavigationTransportError):
        await BrowserSession().new_tab(1.0)


class FakeBrowser:
    version = "120.0"

    def __init__(self, delay=0.0):
        self.delay = delay
        self.contexts = []
        self.closed = False

    async def new_context(self, viewport=None):
        await asyncio.sleep(self.delay)
        context = FakeContext(FakePage())
        context.viewport = viewport
        self.contexts.append(context)
        return context

    async def close(self):
        self.closed = True


@pytest.mark.asyncio
async def test_new_tab_uses_fixed_viewport(settings):
    session = BrowserSession()
    session._settings = settings
    session._browser = FakeBrowser()

    tab = await session.new_tab(1.0)
    assert session.open_tabs == 1
    assert session._browser.contexts[0].viewport == {"width": 501, "height": 233}

    await tab.close()
    assert session.open_tabs == 0


@pytest.mark.asyncio
async def test_new_tab_bounded_by_timeout(settings):
    session = BrowserSession()
    session._settings = settings
    session._browser = FakeBrowser(delay=1.0)

    with pytest.raises(DeadlineExceeded):
        await session.new_tab(0.05)
    assert session.open_tabs == 0


@pytest.mark.asyncio
async def test_stop_closes_leftover_tabs(settings):
    session = BrowserSession()
    session._settings = settings
    browser = FakeBrowser()
    session._browser = browser
    tab = await session.new_tab(1.0)

    await session.stop()
    assert tab.closed
    assert browser.closed
    assert not session.running


@pytest.mark.asyncio
async def test_start_failure_is_fatal(settings, monkeypatch):
    class BrokenPlaywright:
        async def start(self):
            raise PlaywrightError("Executable doesn't exist")

    monkeypatch.setattr("screensnap.session.async_playwright", lambda: BrokenPlaywright())
    with pytest.raises(EngineStartupFailure):
        await BrowserSession().start(settings)


def test_launch_disables_gpu():
    assert "--disable-gpu" in LAUNCH_ARGS
