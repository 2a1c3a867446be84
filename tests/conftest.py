import asyncio

import pytest

from screensnap.config import Settings
from screensnap.errors import CleanupFailure
from screensnap.metrics import MetricsRegistry

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


class FakeTab:
    """Scripted stand-in for a browser tab; records every call it receives."""

    def __init__(self, status=200, ready="ok", shot=PNG, navigate="ok", close="ok"):
        self.status = status
        self.ready = ready
        self.shot = shot
        self.navigate_mode = navigate
        self.close_mode = close
        self.calls = []
        self.close_calls = 0
        self.closed = False

    async def enable_network(self):
        self.calls.append(("enable_network",))

    async def set_extra_headers(self, headers):
        self.calls.append(("set_extra_headers", dict(headers)))

    async def set_viewport(self, width, height):
        self.calls.append(("set_viewport", width, height))

    async def navigate(self, url, timeout):
        self.calls.append(("navigate", url))
        if self.navigate_mode == "hang":
            await asyncio.sleep(3600)
        if isinstance(self.navigate_mode, Exception):
            raise self.navigate_mode
        return self.status

    async def wait_visible(self, selector, timeout):
        self.calls.append(("wait_visible", selector))
        if self.ready == "hang":
            await asyncio.sleep(3600)
        if isinstance(self.ready, Exception):
            raise self.ready

    async def screenshot(self, selector, timeout):
        self.calls.append(("screenshot", selector))
        if self.shot == "hang":
            await asyncio.sleep(3600)
        if isinstance(self.shot, Exception):
            raise self.shot
        return self.shot

    async def close(self):
        self.close_calls += 1
        if self.closed:
            return
        self.closed = True
        if self.close_mode == "raise":
            raise CleanupFailure("close tab: target crashed")
        if self.close_mode == "hang":
            await asyncio.sleep(3600)

    def called(self, name):
        return [c for c in self.calls if c[0] == name]


class FakeSession:
    def __init__(self, scripts=None, **tab_kwargs):
        # scripts, if given, are handed out one per tab in creation order
        self.scripts = list(scripts or [])
        self.tab_kwargs = tab_kwargs
        self.tabs = []
        self._cleanups = set()

    async def new_tab(self, timeout):
        kwargs = self.scripts.pop(0) if self.scripts else self.tab_kwargs
        tab = FakeTab(**kwargs)
        self.tabs.append(tab)
        return tab

    def spawn_cleanup(self, coro):
        task = asyncio.ensure_future(coro)
        self._cleanups.add(task)
        task.add_done_callback(self._cleanups.discard)
        return task

    async def drain(self):
        if self._cleanups:
            await asyncio.gather(*self._cleanups)

    @property
    def opened(self):
        return len(self.tabs)

    @property
    def closes(self):
        return sum(tab.close_calls for tab in self.tabs)


@pytest.fixture
def settings():
    return Settings(
        upstream_base="https://example.org/",
        tab_timeout=0.5,
        ready_timeout=0.1,
        settle_delay=0.0,
    )


@pytest.fixture
def metrics():
    return MetricsRegistry()


@pytest.fixture
def make_session():
    return FakeSession


@pytest.fixture
def make_tab():
    return FakeTab


@pytest.fixture
def png():
    return PNG
