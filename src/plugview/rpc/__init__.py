"""RPC channel and transports."""

from .channel import DEFAULT_TIMEOUT, PendingRequest, RPCChannel
from .transport import (
    MemoryTransport,
    Transport,
    WebSocketTransport,
    connect_websocket,
    memory_pipe,
    relay_endpoint,
)

__all__ = [
    "DEFAULT_TIMEOUT",
    "PendingRequest",
    "RPCChannel",
    "MemoryTransport",
    "Transport",
    "WebSocketTransport",
    "connect_websocket",
    "memory_pipe",
    "relay_endpoint",
]
