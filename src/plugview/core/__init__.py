"""Core utilities and infrastructure."""

from .config import Settings, get_settings
from .errors import (
    PlugviewError,
    TransportError,
    NotConnectedError,
    ProtocolError,
    RequestTimeoutError,
    RemoteError,
    InvalidMutationError,
)
from .logging_config import configure_logging, get_logger, LogContext
from .json import (
    is_json_serializable,
    validate_json_size,
    validate_json_depth,
)
from .id import (
    Sequence,
    new_request_id,
    new_connection_id,
    handler_sequence,
    node_sequence,
    text_sequence,
)
from .validate import (
    ValidationResult,
    InitializeRequest,
    ExecuteHandlerRequest,
    LogRequest,
    ReportErrorRequest,
    validate_request,
    parse_tree,
)


def create_container(settings: Settings | None = None):
    """Create dependency injection container (lazy import to avoid circular deps)."""
    from .container import create_container as _create_container

    return _create_container(settings)


__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Errors
    "PlugviewError",
    "TransportError",
    "NotConnectedError",
    "ProtocolError",
    "RequestTimeoutError",
    "RemoteError",
    "InvalidMutationError",
    # Logging
    "configure_logging",
    "get_logger",
    "LogContext",
    # JSON
    "is_json_serializable",
    "validate_json_size",
    "validate_json_depth",
    # IDs
    "Sequence",
    "new_request_id",
    "new_connection_id",
    "handler_sequence",
    "node_sequence",
    "text_sequence",
    # Validation
    "ValidationResult",
    "InitializeRequest",
    "ExecuteHandlerRequest",
    "LogRequest",
    "ReportErrorRequest",
    "validate_request",
    "parse_tree",
    # DI
    "create_container",
]
