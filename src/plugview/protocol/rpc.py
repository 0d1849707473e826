"""
RPC envelope and newline-delimited frame codec.

Every frame is one JSON-encoded RPCMessage terminated by '\\n'. A frame may
also arrive wrapped in a serialization envelope ({"json": <message>,
"meta": ...}); only the "json" member is used.
"""

from enum import Enum
from typing import Any

import msgspec
import orjson

from ..core.errors import ProtocolError
from ..core.json import validate_json_depth, validate_json_size

PROTOCOL_VERSION = 1

FRAME_DELIMITER = "\n"
DEFAULT_FORMAT = "json"


class MessageType(str, Enum):
    """Envelope kinds."""

    REQUEST = "request"
    RESPONSE = "response"
    CALLBACK = "callback"


class Method:
    """Wire method names."""

    # Exposed by the host, invoked by the plugin
    UPDATE_TREE = "updateTree"
    APPLY_MUTATIONS = "applyMutations"
    LOG = "log"
    REPORT_ERROR = "reportError"

    # Exposed by the plugin, invoked by the host
    INITIALIZE = "initialize"
    UPDATE_PROPS = "updateProps"
    EXECUTE_HANDLER = "executeHandler"
    DESTROY = "destroy"
    SYNC_TREE = "syncTree"


HOST_METHODS = frozenset(
    {Method.UPDATE_TREE, Method.APPLY_MUTATIONS, Method.LOG, Method.REPORT_ERROR}
)
PLUGIN_METHODS = frozenset(
    {
        Method.INITIALIZE,
        Method.UPDATE_PROPS,
        Method.EXECUTE_HANDLER,
        Method.DESTROY,
        Method.SYNC_TREE,
    }
)


class RPCErrorPayload(msgspec.Struct, frozen=True, omit_defaults=True):
    """Error carried by a failed response."""

    name: str
    message: str
    stack: str | None = None

    @classmethod
    def from_exception(cls, exc: BaseException) -> "RPCErrorPayload":
        return cls(name=type(exc).__name__, message=str(exc))


class RPCMessage(msgspec.Struct, frozen=True, omit_defaults=True):
    """One request, response or callback."""

    id: str
    type: MessageType
    method: str | None = None
    args: list[Any] | None = None
    result: Any = None
    error: RPCErrorPayload | None = None
    version: str = DEFAULT_FORMAT

    @property
    def is_request(self) -> bool:
        return self.type is MessageType.REQUEST

    @property
    def is_response(self) -> bool:
        return self.type is MessageType.RESPONSE

    @property
    def is_callback(self) -> bool:
        return self.type is MessageType.CALLBACK


def request(msg_id: str, method: str, args: list[Any]) -> RPCMessage:
    return RPCMessage(id=msg_id, type=MessageType.REQUEST, method=method, args=args)


def callback(msg_id: str, method: str, args: list[Any]) -> RPCMessage:
    return RPCMessage(id=msg_id, type=MessageType.CALLBACK, method=method, args=args)


def response(msg_id: str, result: Any = None) -> RPCMessage:
    return RPCMessage(id=msg_id, type=MessageType.RESPONSE, result=result)


def error_response(msg_id: str, error: RPCErrorPayload) -> RPCMessage:
    return RPCMessage(id=msg_id, type=MessageType.RESPONSE, error=error)


_encoder = msgspec.json.Encoder()


def encode_message(msg: RPCMessage) -> str:
    """Encode one message as a newline-terminated frame."""
    return _encoder.encode(msg).decode("utf-8") + FRAME_DELIMITER


def split_frames(text: str) -> list[str]:
    """Split received text into non-empty frames."""
    return [line for line in text.split(FRAME_DELIMITER) if line.strip()]


def decode_frame(
    line: str,
    max_size: int = 4 * 1024 * 1024,
    max_depth: int = 256,
) -> RPCMessage:
    """
    Decode a single frame.

    Args:
        line: One frame, with or without the trailing newline
        max_size: Maximum frame size in bytes
        max_depth: Maximum JSON nesting depth

    Returns:
        Decoded message

    Raises:
        ProtocolError: If the frame is oversized, not JSON, or not an RPCMessage
    """
    validate_json_size(line, max_size)

    try:
        data = orjson.loads(line)
    except orjson.JSONDecodeError as e:
        raise ProtocolError(f"Malformed frame: {e}") from e

    validate_json_depth(data, max_depth)

    # Serialization envelope: {"json": message, "meta": ...}
    if isinstance(data, dict) and "json" in data and "type" not in data:
        data = data["json"]

    try:
        return msgspec.convert(data, type=RPCMessage)
    except msgspec.ValidationError as e:
        raise ProtocolError(f"Invalid RPC message: {e}") from e


def decode_frames(
    text: str,
    max_size: int = 4 * 1024 * 1024,
    max_depth: int = 256,
) -> list[RPCMessage]:
    """
    Decode every frame in a chunk of text.

    Raises:
        ProtocolError: On the first malformed frame
    """
    return [decode_frame(line, max_size, max_depth) for line in split_frames(text)]
