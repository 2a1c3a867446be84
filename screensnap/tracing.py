# screensnap/tracing.py
import contextvars
import re
import secrets
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Optional

from screensnap.errors import NotFound

_TRACEPARENT = re.compile(r"^00-([0-9a-f]{32})-([0-9a-f]{16})-[0-9a-f]{2}$")

current_trace: contextvars.ContextVar[Optional["TraceContext"]] = contextvars.ContextVar(
    "screensnap_trace", default=None
)


@dataclass
class Span:
    name: str
    attributes: dict = field(default_factory=dict)
    events: list = field(default_factory=list)
    errors: list = field(default_factory=list)
    started: float = field(default_factory=time.monotonic)
    ended: Optional[float] = None

    def add_event(self, name: str, **attributes):
        self.events.append((name, attributes))

    def record_error(self, err: BaseException):
        self.errors.append(err)

    @property
    def duration(self) -> float:
        end = self.ended if self.ended is not None else time.monotonic()
        return end - self.started


class TraceContext:
    """Correlation id for one request, plus the spans recorded under it.

    The trace id travels to the browser as a ``traceparent`` header so the
    rendered page's own requests can be tied back to this one.
    """

    def __init__(self, trace_id: Optional[str] = None):
        self.trace_id = trace_id or secrets.token_hex(16)
        self.span_id = secrets.token_hex(8)
        self.spans: list[Span] = []

    @classmethod
    def from_traceparent(cls, header: Optional[str]) -> "TraceContext":
        if header:
            match = _TRACEPARENT.match(header.strip().lower())
            # all-zero trace ids are invalid per W3C
            if match and match.group(1) != "0" * 32:
                return cls(match.group(1))
        return cls()

    def traceparent(self) -> str:
        return f"00-{self.trace_id}-{self.span_id}-01"

    @contextmanager
    def span(self, name: str, **attributes):
        sp = Span(name, dict(attributes))
        self.spans.append(sp)
        try:
            yield sp
        except NotFound:
            # expected outcome, not a span error
            raise
        except BaseException as err:
            sp.record_error(err)
            raise
        finally:
            sp.ended = time.monotonic()

    def span_names(self) -> list[str]:
        return [sp.name for sp in self.spans]

    @contextmanager
    def activate(self):
        token = current_trace.set(self)
        try:
            yield self
        finally:
            current_trace.reset(token)


def current_trace_id() -> str:
    trace = current_trace.get()
    return trace.trace_id if trace is not None else "-"
