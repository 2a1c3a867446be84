# screensnap/orchestrator.py
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional

from screensnap.capture import capture
from screensnap.config import Settings
from screensnap.deadline import Deadline
from screensnap.errors import (
    CaptureError,
    CleanupFailure,
    DeadlineExceeded,
    EmptyResult,
    NotFound,
    UpstreamError,
)
from screensnap.metrics import registry
from screensnap.navigation import navigate
from screensnap.tracing import Span, TraceContext

log = logging.getLogger(__name__)

CLOSE_TIMEOUT = 5.0


@dataclass(frozen=True)
class CaptureRequest:
    identifier: str
    url: str
    viewport_width: int
    viewport_height: int
    deadline: Deadline


@dataclass
class CaptureResult:
    status: int
    body: bytes = b""
    message: str = ""
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.status == 200


class Screenshotter:
    """Runs one capture per request against a shared browser session."""

    def __init__(self, session, settings: Settings, metrics=registry):
        self.session = session
        self.settings = settings
        self.metrics = metrics

    def build_request(self, identifier: str) -> CaptureRequest:
        return CaptureRequest(
            identifier=identifier,
            url=self.settings.upstream_url(identifier),
            viewport_width=self.settings.viewport_width,
            viewport_height=self.settings.viewport_height,
            deadline=Deadline(self.settings.tab_timeout),
        )

    async def handle(self, identifier: str, trace: TraceContext) -> CaptureResult:
        started = time.monotonic()
        try:
            buf = await self.take_screenshot(identifier, trace)
        except NotFound as err:
            log.info("upstream has no scores for %s", identifier)
            return self._result("not_found", CaptureResult(404, message="Not found", error=err))
        except UpstreamError as err:
            return self._result("upstream_error", CaptureResult(500, message=str(err), error=err))
        except DeadlineExceeded as err:
            return self._result("timeout", CaptureResult(500, message=str(err), error=err))
        except CaptureError as err:
            return self._result("error", CaptureResult(500, message=str(err), error=err))
        finally:
            self.metrics.observe("screensnap_capture_seconds", time.monotonic() - started)

        if not buf:
            err = EmptyResult()
            with trace.span("empty_response") as span:
                span.record_error(err)
            return self._result("empty", CaptureResult(502, message=str(err), error=err))

        return self._result("ok", CaptureResult(200, body=buf))

    def _result(self, outcome: str, result: CaptureResult) -> CaptureResult:
        self.metrics.increment("screensnap_requests_total", labels={"outcome": outcome})
        return result

    async def take_screenshot(self, identifier: str, trace: TraceContext) -> bytes:
        request = self.build_request(identifier)
        with trace.span("take_screenshot", identifier=identifier) as span:
            tab = await self.session.new_tab(request.deadline.remaining())
            try:
                return await asyncio.wait_for(self._run(tab, request, trace), request.deadline.remaining())
            except asyncio.TimeoutError as err:
                raise DeadlineExceeded(
                    f"screenshot of {identifier} did not finish within {request.deadline.seconds:.1f}s"
                ) from err
            finally:
                span.add_event("closing tab", expired=request.deadline.expired())
                # the close is owned by the session so it still runs if this
                # request is cancelled while waiting on it
                await asyncio.shield(self.session.spawn_cleanup(self._close_tab(tab, span, trace)))

    async def _run(self, tab, request: CaptureRequest, trace: TraceContext) -> bytes:
        await navigate(
            tab,
            request.url,
            {"traceparent": trace.traceparent()},
            request.deadline,
            trace,
            viewport=(request.viewport_width, request.viewport_height),
            ready_selector=self.settings.ready_selector,
            ready_timeout=self.settings.ready_timeout,
            settle_delay=self.settings.settle_delay,
            metrics=self.metrics,
        )
        return await capture(tab, self.settings.graph_selector, request.deadline, trace)

    async def _close_tab(self, tab, span: Span, trace: TraceContext):
        try:
            await asyncio.wait_for(tab.close(), CLOSE_TIMEOUT)
        except asyncio.TimeoutError:
            self._close_failed(CleanupFailure(f"close tab: no reply after {CLOSE_TIMEOUT:.0f}s"), span, trace)
        except CleanupFailure as err:
            self._close_failed(err, span, trace)

    def _close_failed(self, err: CleanupFailure, span: Span, trace: TraceContext):
        log.error("could not close tab: %s trace_id=%s", err, trace.trace_id)
        span.record_error(err)
        self.metrics.increment("screensnap_tab_close_failures_total")
