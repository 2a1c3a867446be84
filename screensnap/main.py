# screensnap/main.py
import asyncio
import contextlib
import logging
import sys

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, Response

from screensnap.config import Settings
from screensnap.errors import ConfigurationMissing, EngineStartupFailure
from screensnap.logging_setup import setup_logging
from screensnap.metrics import create_metrics_app, registry
from screensnap.orchestrator import Screenshotter
from screensnap.session import BrowserSession
from screensnap.tracing import TraceContext

log = logging.getLogger("screensnap")


def create_app(settings: Settings, session, metrics=registry) -> FastAPI:
    app = FastAPI(title="screensnap", docs_url=None, redoc_url=None)
    screenshotter = Screenshotter(session, settings, metrics=metrics)
    app.state.screenshotter = screenshotter

    @app.middleware("http")
    async def trace_requests(request: Request, call_next):
        trace = TraceContext.from_traceparent(request.headers.get("traceparent"))
        request.state.trace = trace
        with trace.activate():
            response = await call_next(request)
        response.headers["Traceparent"] = trace.trace_id
        return response

    @app.get("/image/offset/{identifier}")
    async def offset_image(identifier: str, request: Request):
        if not identifier.strip():
            return PlainTextResponse("identifier required", status_code=400)
        log.info("offsetHandler ip=%s", identifier)

        result = await screenshotter.handle(identifier, request.state.trace)
        if result.ok:
            return Response(content=result.body, media_type="image/png")
        return PlainTextResponse(result.message, status_code=result.status)

    @app.get("/__health")
    def health():
        # liveness only, the browser is not probed
        return PlainTextResponse("ok")

    return app


# --- process lifecycle ---

class SideServer(uvicorn.Server):
    """A uvicorn server that leaves process signals to the main server."""

    @contextlib.contextmanager
    def capture_signals(self):
        yield

    def install_signal_handlers(self):
        pass


async def serve(settings: Settings):
    session = BrowserSession()
    await session.start(settings)
    try:
        servers = [
            uvicorn.Server(uvicorn.Config(create_app(settings, session), host="0.0.0.0",
                                          port=settings.port, log_config=None)),
            SideServer(uvicorn.Config(create_metrics_app(), host="0.0.0.0",
                                      port=settings.metrics_port, log_config=None)),
        ]
        log.info("listening on :%d, metrics on :%d", settings.port, settings.metrics_port)
        tasks = [asyncio.ensure_future(server.serve()) for server in servers]
        await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        # the main server owns SIGINT/SIGTERM; either one stopping takes the other down
        for server in servers:
            server.should_exit = True
        await asyncio.gather(*tasks, return_exceptions=True)
    finally:
        await session.stop()


def main():
    try:
        settings = Settings.from_env()
    except ConfigurationMissing as err:
        setup_logging("INFO").error("configuration: %s", err)
        sys.exit(2)

    setup_logging(settings.log_level)
    try:
        asyncio.run(serve(settings))
    except EngineStartupFailure as err:
        log.error("start browser: %s", err)
        sys.exit(10)
    except KeyboardInterrupt:
        # uvicorn re-raises the captured SIGINT once the servers have drained
        log.info("shut down")


if __name__ == "__main__":
    main()
