# screensnap/errors.py


class ScreensnapError(Exception):
    pass


# --- process level, fatal at startup ---

class ConfigurationMissing(ScreensnapError):
    pass


class EngineStartupFailure(ScreensnapError):
    pass


# --- per request, mapped to an HTTP status by the handler ---

class CaptureError(ScreensnapError):
    status_code = 500


class NotFound(CaptureError):
    status_code = 404

    def __init__(self, url: str = ""):
        super().__init__("http status 404")
        self.url = url


class UpstreamError(CaptureError):
    def __init__(self, status: int, url: str = ""):
        super().__init__(f"response status {status}")
        self.status = status
        self.url = url


class NavigationTransportError(CaptureError):
    pass


class ReadinessTimeout(CaptureError):
    """Never reaches the caller; the wait failure is logged and capture goes ahead."""


class CaptureFailure(CaptureError):
    pass


class EmptyResult(CaptureError):
    status_code = 502

    def __init__(self):
        super().__init__("empty response")


class DeadlineExceeded(CaptureError):
    pass


class CleanupFailure(ScreensnapError):
    pass
