# screensnap/navigation.py
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from screensnap.deadline import Deadline
from screensnap.errors import CaptureError, NotFound, ReadinessTimeout, UpstreamError
from screensnap.metrics import registry
from screensnap.tracing import TraceContext

log = logging.getLogger(__name__)


@dataclass
class NavigationOutcome:
    url: str
    status: int
    ready: bool
    ready_error: Optional[CaptureError] = None


async def navigate(
    tab,
    url: str,
    headers: dict,
    deadline: Deadline,
    trace: TraceContext,
    *,
    viewport: tuple,
    ready_selector: str,
    ready_timeout: float,
    settle_delay: float,
    metrics=registry,
) -> NavigationOutcome:
    """Load ``url`` in ``tab`` and wait (best effort) for the page to signal it is ready.

    Raises NotFound for an upstream 404 and UpstreamError for any other non-200
    status; neither waits for readiness. A readiness failure is logged and
    reported on the outcome, never raised.
    """
    with trace.span("navigate", url=url) as span:
        # headers must be in place before the navigation request goes out
        await tab.enable_network()
        await tab.set_extra_headers(headers)
        await tab.set_viewport(*viewport)
        status = await tab.navigate(url, deadline.remaining())
        span.attributes["status"] = status
        if status not in (200, 404):
            log.warning("invalid response status %d url=%s", status, url)
            raise UpstreamError(status, url)

    if status == 404:
        raise NotFound(url)

    outcome = NavigationOutcome(url=url, status=status, ready=False)
    ready_deadline = deadline.sub(ready_timeout)
    try:
        with trace.span("wait_ready", selector=ready_selector):
            await asyncio.wait_for(
                _wait_ready(tab, ready_selector, ready_deadline, settle_delay),
                ready_deadline.remaining(),
            )
        outcome.ready = True
    except asyncio.TimeoutError:
        # don't fail the request; take the screenshot as it is
        outcome.ready_error = ReadinessTimeout(f"{ready_selector} not visible within {ready_timeout:.1f}s")
        log.error("loading: %s", outcome.ready_error)
        metrics.increment("screensnap_ready_timeouts_total")
    except CaptureError as err:
        outcome.ready_error = err
        log.error("loading: %s", err)
        if isinstance(err, ReadinessTimeout):
            metrics.increment("screensnap_ready_timeouts_total")
    return outcome


async def _wait_ready(tab, selector: str, deadline: Deadline, settle_delay: float):
    await tab.wait_visible(selector, deadline.remaining())
    await asyncio.sleep(min(settle_delay, deadline.remaining()))
