"""Error taxonomy shared by plugin, host and relay."""

from typing import Any


class PlugviewError(Exception):
    """Base class for all plugview errors."""


class TransportError(PlugviewError):
    """Socket-level failure (connect, send or receive)."""


class NotConnectedError(TransportError):
    """Channel is closed or was never opened."""

    def __init__(self, message: str = "Not connected") -> None:
        super().__init__(message)


class ProtocolError(PlugviewError):
    """Malformed frame, unknown method or invalid payload."""


class RequestTimeoutError(PlugviewError):
    """No response arrived within the request deadline."""

    def __init__(self, method: str, timeout: float) -> None:
        super().__init__(f"Request '{method}' timed out after {timeout:.1f}s")
        self.method = method
        self.timeout = timeout


class RemoteError(PlugviewError):
    """The peer answered a request with an error response."""

    def __init__(self, name: str, message: str, stack: str | None = None) -> None:
        super().__init__(f"{name}: {message}")
        self.name = name
        self.message = message
        self.stack = stack

    @classmethod
    def from_payload(cls, payload: Any) -> "RemoteError":
        """Build from an error payload (struct or plain dict)."""
        if isinstance(payload, dict):
            return cls(
                str(payload.get("name", "Error")),
                str(payload.get("message", "Unknown error")),
                payload.get("stack"),
            )
        return cls(payload.name, payload.message, payload.stack)


class InvalidMutationError(PlugviewError):
    """Mutation references a node that is not in the replica."""

    def __init__(self, message: str, node_id: str | None = None) -> None:
        super().__init__(message)
        self.node_id = node_id
