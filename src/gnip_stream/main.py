"""
gnip_stream Service
===================

FastAPI entry point that runs one stream connection and exposes its state.

Endpoints:
    GET  /          - Service information
    GET  /health    - Liveness probe (is process alive?)
    GET  /ready     - Readiness probe (stream connected?)
    GET  /metrics   - Stream, buffer and connection metrics
    WS   /ws/events - Buffered stream events as JSON

The stream is started in the lifespan and ended at shutdown. It is not
restarted after it ends; restart the service (or the orchestrator does it)
to reconnect.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from gnip_stream import __version__
from gnip_stream.config import Settings, get_settings, setup_logging
from gnip_stream.models.events import EventKind
from gnip_stream.stream import EventBuffer, StreamClient


logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """
    Build the service application.

    Args:
        settings: Settings to use (default: get_settings() at startup)
        http_client: HTTP client handed to the StreamClient

    Returns:
        FastAPI application; runtime objects live on app.state
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        active = settings or get_settings()

        client = StreamClient(active.stream, http_client=http_client)
        buffer = EventBuffer(maxsize=active.buffer.max_queue_size)
        buffer.attach(client)
        client.on(EventKind.READY, lambda: logger.info("Stream ready"))
        client.on(EventKind.END, lambda: logger.info("Stream ended"))

        app.state.settings = active
        app.state.client = client
        app.state.buffer = buffer
        app.state.startup_time = time.time()

        client.start()
        logger.info("gnip_stream service started")
        try:
            yield
        finally:
            logger.info("Shutting down stream...")
            client.end()
            await client.wait_closed()
            logger.info("gnip_stream service stopped")

    app = FastAPI(
        title="gnip_stream",
        version=__version__,
        lifespan=lifespan,
    )

    @app.get("/")
    async def root() -> dict:
        """Service information."""
        return {
            "service": "gnip_stream",
            "version": __version__,
            "stream_url": app.state.settings.stream.url,
        }

    @app.get("/health")
    async def health() -> dict:
        """Liveness probe."""
        return {
            "status": "ok",
            "uptime_seconds": round(time.time() - app.state.startup_time, 3),
        }

    @app.get("/ready")
    async def ready() -> JSONResponse:
        """Readiness probe: 200 only while the stream is connected."""
        client: StreamClient = app.state.client
        body = {"ready": client.connected, "state": client.state.value}
        return JSONResponse(body, status_code=200 if client.connected else 503)

    @app.get("/metrics")
    async def metrics() -> dict:
        """Stream and buffer metrics."""
        client: StreamClient = app.state.client
        return {
            "state": client.state.value,
            "stream": client.metrics.to_dict(),
            "buffer": app.state.buffer.metrics(),
        }

    @app.websocket("/ws/events")
    async def events(websocket: WebSocket) -> None:
        """Forward buffered events to a websocket client."""
        await websocket.accept()
        logger.info("Client connected to /ws/events")
        buffer: EventBuffer = app.state.buffer

        try:
            while True:
                event = await buffer.get(timeout=1.0)
                if event is not None:
                    await websocket.send_text(event.to_json())
        except WebSocketDisconnect as e:
            logger.debug(f"WebSocket closed with code {e.code}")
        finally:
            logger.info("Client disconnected from /ws/events")

    return app


app = create_app()


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    settings = get_settings()
    setup_logging(settings)

    uvicorn.run(
        "gnip_stream.main:app",
        host=settings.server.host,
        port=settings.server.port,
        reload=False,
    )


if __name__ == "__main__":
    run()
