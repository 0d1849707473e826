"""
Transports carrying newline-delimited RPC frames.

A transport moves opaque text chunks; framing and decoding belong to the
channel. Once closed, `receive` and `send` raise NotConnectedError.
"""

import asyncio
from typing import Protocol, runtime_checkable

from websockets.exceptions import ConnectionClosed, WebSocketException
from websockets.asyncio.client import ClientConnection, connect

from ..core.errors import NotConnectedError, TransportError
from ..core.logging_config import get_logger

logger = get_logger(__name__)


@runtime_checkable
class Transport(Protocol):
    """Bidirectional text transport."""

    @property
    def closed(self) -> bool: ...

    async def send(self, data: str) -> None: ...

    async def receive(self) -> str: ...

    async def close(self) -> None: ...


# Marks end of stream in a memory transport queue
_EOF = object()


class MemoryTransport:
    """One end of an in-process pipe."""

    def __init__(self, name: str = "memory") -> None:
        self.name = name
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._peer: "MemoryTransport | None" = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, data: str) -> None:
        if self._closed or self._peer is None or self._peer._closed:
            raise NotConnectedError()
        self._peer._inbox.put_nowait(data)

    async def receive(self) -> str:
        if self._closed:
            raise NotConnectedError()
        item = await self._inbox.get()
        if item is _EOF:
            self._closed = True
            raise NotConnectedError("Peer closed the connection")
        return item

    async def close(self) -> None:
        """Close both ends; pending receives on either side are woken."""
        if self._closed:
            return
        self._closed = True
        self._inbox.put_nowait(_EOF)
        if self._peer is not None and not self._peer._closed:
            self._peer._inbox.put_nowait(_EOF)
        logger.debug("memory_transport_closed", name=self.name)


def memory_pipe() -> tuple[MemoryTransport, MemoryTransport]:
    """Create a connected pair of in-process transports (plugin end, host end)."""
    plugin_end = MemoryTransport("plugin")
    host_end = MemoryTransport("host")
    plugin_end._peer = host_end
    host_end._peer = plugin_end
    return plugin_end, host_end


class WebSocketTransport:
    """Transport over a `websockets` client connection."""

    def __init__(self, connection: ClientConnection) -> None:
        self._ws = connection
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, data: str) -> None:
        if self._closed:
            raise NotConnectedError()
        try:
            await self._ws.send(data)
        except ConnectionClosed as e:
            self._closed = True
            raise NotConnectedError(f"Connection closed: {e}") from e

    async def receive(self) -> str:
        if self._closed:
            raise NotConnectedError()
        try:
            message = await self._ws.recv()
        except ConnectionClosed as e:
            self._closed = True
            raise NotConnectedError(f"Connection closed: {e}") from e
        return message.decode("utf-8") if isinstance(message, bytes) else message

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._ws.close()


def relay_endpoint(relay_url: str, side: str, plugin_id: str) -> str:
    """WebSocket URL of one side of a relay session (side: 'plugins' or 'host')."""
    return f"{relay_url.rstrip('/')}/{side}/{plugin_id}"


async def connect_websocket(
    url: str,
    attempts: int = 5,
    base_delay: float = 0.5,
    max_size: int | None = 4 * 1024 * 1024,
) -> WebSocketTransport:
    """
    Open a WebSocket transport, retrying with exponential backoff.

    Args:
        url: ws:// or wss:// URL (relay plugin or host endpoint)
        attempts: Maximum connection attempts
        base_delay: Delay before the second attempt; doubles each retry
        max_size: Maximum incoming message size

    Returns:
        Connected transport

    Raises:
        TransportError: If every attempt fails
    """
    last_error: Exception | None = None

    for attempt in range(attempts):
        try:
            connection = await connect(url, max_size=max_size)
            logger.info("websocket_connected", url=url, attempt=attempt + 1)
            return WebSocketTransport(connection)
        except (OSError, WebSocketException) as e:
            last_error = e
            logger.warning("websocket_connect_failed", url=url, attempt=attempt + 1, error=str(e))
            if attempt < attempts - 1:
                # Exponential backoff
                await asyncio.sleep(base_delay * 2**attempt)

    raise TransportError(f"Could not connect to {url} after {attempts} attempts: {last_error}")
