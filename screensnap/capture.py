# screensnap/capture.py
import asyncio
import logging

from screensnap.deadline import Deadline
from screensnap.errors import CaptureFailure, DeadlineExceeded
from screensnap.tracing import TraceContext

log = logging.getLogger(__name__)

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


async def capture(tab, selector: str, deadline: Deadline, trace: TraceContext) -> bytes:
    # element bounding box only, not the full viewport
    with trace.span("screenshot", selector=selector) as span:
        try:
            buf = await asyncio.wait_for(tab.screenshot(selector, deadline.remaining()), deadline.remaining())
        except asyncio.TimeoutError as err:
            log.error("screenshot: timed out")
            raise DeadlineExceeded(f"screenshot {selector}: timed out") from err
        except CaptureFailure as err:
            log.error("screenshot: %s", err)
            raise
        span.attributes["bytes"] = len(buf or b"")
        if buf and not buf.startswith(PNG_SIGNATURE):
            log.warning("screenshot of %s is not a PNG (%d bytes)", selector, len(buf))
        return buf or b""
