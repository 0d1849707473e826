"""
Relay Bridge Server
Pairs a plugin WebSocket with at most one host WebSocket per plugin id and
forwards newline-delimited frames between them without interpreting them.
"""

import time
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Response, WebSocket, WebSocketDisconnect
from injector import Injector

from .. import __version__
from ..core.config import Settings
from ..core.container import create_container
from ..core.id import new_connection_id
from ..core.logging_config import LogContext, get_logger
from ..monitoring.metrics import RelayMetrics
from .sessions import (
    NORMAL_CLOSE,
    PLUGIN_NOT_READY,
    REPLACED,
    SessionRegistry,
    Side,
    normalize_frame,
)

logger = get_logger(__name__)


async def _close(websocket: WebSocket, reason: str) -> None:
    """Close a connection with code 1000, tolerating one that is already gone."""
    try:
        await websocket.close(code=NORMAL_CLOSE, reason=reason)
    except RuntimeError as e:
        # Close already sent or peer already gone
        logger.debug("close_skipped", reason=reason, error=str(e))


async def _pump(
    websocket: WebSocket,
    plugin_id: str,
    side: Side,
    sessions: SessionRegistry,
    metrics: RelayMetrics,
) -> None:
    """Forward every frame from `websocket` to the opposite side until it closes."""
    direction = "plugin_to_host" if side == "plugin" else "host_to_plugin"

    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return

        raw = message.get("text")
        if raw is None:
            raw = message.get("bytes")
        if raw is None:
            continue

        frame = normalize_frame(raw)
        peer = sessions.peer_of(plugin_id, side)
        if peer is None:
            metrics.record_dropped(direction)
            logger.debug("frame_dropped", direction=direction, reason="peer absent")
            continue

        try:
            await peer.send_text(frame)
        except (WebSocketDisconnect, RuntimeError) as e:
            metrics.record_dropped(direction)
            logger.warning("forward_failed", direction=direction, error=str(e))
            continue

        metrics.record_frame(direction, len(frame))


def create_app(settings: Settings | None = None, container: Injector | None = None) -> FastAPI:
    """
    Build the relay application.

    Args:
        settings: Optional explicit settings (environment otherwise)
        container: Optional injector providing SessionRegistry and RelayMetrics

    Returns:
        FastAPI app with WebSocket and HTTP endpoints
    """
    container = container or create_container(settings)
    settings = container.get(Settings)
    sessions = container.get(SessionRegistry)
    metrics = container.get(RelayMetrics)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Log startup, close every connection on shutdown."""
        logger.info("relay_starting", host=settings.relay_host, port=settings.relay_port)
        yield
        open_conns = [
            conn
            for session in sessions.list_sessions()
            for conn in (session.plugin, session.host)
            if conn is not None
        ]
        logger.info("relay_shutting_down", open_connections=len(open_conns))
        for conn in open_conns:
            await _close(conn, "Server shutting down")

    app = FastAPI(
        title="plugview relay",
        description="Relay bridge between UI plugins and hosts",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.sessions = sessions
    app.state.metrics = metrics

    @app.websocket("/plugins/{plugin_id}")
    async def plugin_endpoint(websocket: WebSocket, plugin_id: str):
        """Plugin side of a session."""
        await websocket.accept()
        metrics.record_connection("plugin")
        connected_at = time.time()

        with LogContext(plugin_id=plugin_id, side="plugin", connection_id=new_connection_id()):
            previous = await sessions.attach_plugin(plugin_id, websocket)
            metrics.set_active_sessions(len(sessions))
            if previous is not None:
                metrics.record_rejection("replaced")
                await _close(previous, REPLACED)

            try:
                await _pump(websocket, plugin_id, "plugin", sessions, metrics)
            finally:
                await sessions.detach_plugin(plugin_id, websocket)
                metrics.set_active_sessions(len(sessions))
                metrics.record_session_closed(time.time() - connected_at)
                logger.info("plugin_disconnected")

    @app.websocket("/host/{plugin_id}")
    async def host_endpoint(websocket: WebSocket, plugin_id: str):
        """Host side of a session."""
        await websocket.accept()
        metrics.record_connection("host")

        with LogContext(plugin_id=plugin_id, side="host", connection_id=new_connection_id()):
            attach = await sessions.attach_host(plugin_id, websocket)
            if not attach.accepted:
                metrics.record_rejection("plugin_not_ready")
                await _close(websocket, PLUGIN_NOT_READY)
                return

            if attach.displaced is not None:
                metrics.record_rejection("replaced")
                await _close(attach.displaced, REPLACED)

            try:
                await _pump(websocket, plugin_id, "host", sessions, metrics)
            finally:
                await sessions.detach_host(plugin_id, websocket)
                metrics.set_active_sessions(len(sessions))
                logger.info("host_disconnected")

    @app.get("/health")
    async def health() -> dict[str, Any]:
        """Detailed health check"""
        return {
            "status": "healthy",
            "service": "plugview-relay",
            "version": __version__,
            "timestamp": time.time(),
            **sessions.stats(),
        }

    @app.get("/sessions")
    async def list_sessions() -> dict[str, Any]:
        return {"sessions": [s.to_dict() for s in sessions.list_sessions()]}

    @app.get("/sessions/{plugin_id}")
    async def get_session(plugin_id: str) -> dict[str, Any]:
        session = sessions.get(plugin_id)
        if session is None:
            raise HTTPException(status_code=404, detail=f"No session for plugin '{plugin_id}'")
        return session.to_dict()

    @app.get("/metrics")
    async def prometheus_metrics() -> Response:
        return Response(content=metrics.get_metrics(), media_type=metrics.content_type)

    return app
