# screensnap/config.py
import os
from dataclasses import dataclass
from urllib.parse import quote

from dotenv import load_dotenv

from screensnap.errors import ConfigurationMissing

VIEWPORT_WIDTH = 501
VIEWPORT_HEIGHT = 233
READY_SELECTOR = "#loaded"
GRAPH_SELECTOR = "#graph"


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationMissing(f"{name} must be a number, got {raw!r}")


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationMissing(f"{name} must be an integer, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    upstream_base: str
    port: int = 8000
    metrics_port: int = 8001
    log_level: str = "INFO"
    tab_timeout: float = 15.0
    ready_timeout: float = 4.0
    settle_delay: float = 0.2
    viewport_width: int = VIEWPORT_WIDTH
    viewport_height: int = VIEWPORT_HEIGHT
    ready_selector: str = READY_SELECTOR
    graph_selector: str = GRAPH_SELECTOR

    def __post_init__(self):
        # frozen, so normalise through object.__setattr__
        object.__setattr__(self, "upstream_base", self.upstream_base.rstrip("/"))

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        upstream = (os.getenv("upstream_base") or "").strip()
        if not upstream:
            raise ConfigurationMissing("upstream_base not set")
        return cls(
            upstream_base=upstream,
            port=_int_env("SCREENSNAP_PORT", 8000),
            metrics_port=_int_env("SCREENSNAP_METRICS_PORT", 8001),
            log_level=os.getenv("SCREENSNAP_LOG_LEVEL", "INFO").upper(),
            tab_timeout=_float_env("SCREENSNAP_TAB_TIMEOUT", 15.0),
            ready_timeout=_float_env("SCREENSNAP_READY_TIMEOUT", 4.0),
            settle_delay=_float_env("SCREENSNAP_SETTLE_DELAY", 0.2),
        )

    def upstream_url(self, identifier: str) -> str:
        # the identifier is opaque; it must stay a single path segment
        return f"{self.upstream_base}/scores/{quote(identifier, safe=':')}?graph_only=1"
