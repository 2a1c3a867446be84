# screensnap/metrics.py
"""In-process counters exported as Prometheus text on the metrics port."""

import threading
from collections import defaultdict
from typing import Mapping, Optional

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

_LabelTuple = tuple


def _label_tuple(labels: Optional[Mapping[str, str]]) -> _LabelTuple:
    if not labels:
        return tuple()
    return tuple(sorted((str(k), str(v)) for k, v in labels.items()))


def _label_str(labels: _LabelTuple) -> str:
    if not labels:
        return ""
    return "{" + ",".join(f'{k}="{v}"' for k, v in labels) + "}"


class MetricsRegistry:
    def __init__(self):
        self._lock = threading.Lock()
        self._counters = defaultdict(float)
        self._gauges = {}
        self._summaries = {}

    def increment(self, name: str, value: float = 1.0, *, labels: Optional[Mapping[str, str]] = None):
        with self._lock:
            self._counters[(name, _label_tuple(labels))] += float(value)

    def set_gauge(self, name: str, value: float):
        with self._lock:
            self._gauges[(name, ())] = float(value)

    def observe(self, name: str, value: float):
        with self._lock:
            count, total, maximum = self._summaries.get(name, (0, 0.0, 0.0))
            self._summaries[name] = (count + 1, total + value, max(maximum, value))

    def counter(self, name: str, **labels) -> float:
        with self._lock:
            return self._counters.get((name, _label_tuple(labels)), 0.0)

    def export_prometheus(self) -> str:
        with self._lock:
            lines = []
            for (name, labels), value in sorted(self._counters.items()):
                lines.append(f"# TYPE {name} counter")
                lines.append(f"{name}{_label_str(labels)} {value}")
            for (name, labels), value in sorted(self._gauges.items()):
                lines.append(f"# TYPE {name} gauge")
                lines.append(f"{name}{_label_str(labels)} {value}")
            for name, (count, total, maximum) in sorted(self._summaries.items()):
                lines.append(f"# TYPE {name} summary")
                lines.append(f"{name}_count {count}")
                lines.append(f"{name}_sum {total}")
                lines.append(f"{name}_max {maximum}")
            return "\n".join(lines) + "\n"


registry = MetricsRegistry()


def create_metrics_app(metrics: MetricsRegistry = registry) -> FastAPI:
    app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)

    @app.get("/metrics", response_class=PlainTextResponse)
    def export():
        return PlainTextResponse(metrics.export_prometheus(), media_type="text/plain; version=0.0.4")

    @app.get("/__health")
    def health():
        return PlainTextResponse("ok")

    return app
