"""
Structured Logging Configuration
One structlog pipeline shared by plugins, hosts and the relay.

Every event carries the component that emitted it (`service`). Relay
connections add `plugin_id`, `side` and `connection_id` through LogContext.
"""

import logging
import sys
from typing import Any, Callable

import structlog
from pythonjsonlogger.json import JsonFormatter

# Chatty third-party loggers kept at WARNING unless DEBUG is requested
_NOISY_LOGGERS = ("websockets", "uvicorn.access", "httpx", "httpcore")

# Plugin `log` RPC levels -> stdlib level names
PLUGIN_LOG_LEVELS = {
    "log": "info",
    "info": "info",
    "warn": "warning",
    "error": "error",
}


def _add_service(service: str) -> Callable[..., dict[str, Any]]:
    def processor(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        event_dict.setdefault("service", service)
        return event_dict

    return processor


def configure_logging(level: str = "INFO", json_logs: bool = False, service: str = "plugview") -> None:
    """
    Configure structured logging for the process.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Emit one JSON object per line instead of console output
        service: Value of the `service` field on every event (relay, host, plugin, ...)
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    if json_logs:
        handler.setFormatter(JsonFormatter("%(message)s"))
    logging.basicConfig(level=log_level, format="%(message)s", handlers=[handler], force=True)

    if log_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            _add_service(service),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            # JSON mode hands the event dict to JsonFormatter as record extras
            structlog.stdlib.render_to_log_kwargs if json_logs else structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Structured logger for a module (pass __name__)."""
    return structlog.get_logger(name)


def plugin_log_method(logger: Any, level: str) -> Any:
    """Bound logging method matching a plugin log level ('warn' -> logger.warning)."""
    return getattr(logger, PLUGIN_LOG_LEVELS.get(level, "info"))


class LogContext:
    """
    Bind context variables for every log event in scope.

    Nested contexts restore the outer values on exit rather than unbinding
    the keys outright.
    """

    def __init__(self, **kwargs: Any):
        self.context = kwargs
        self._tokens: dict[str, Any] = {}

    def __enter__(self) -> "LogContext":
        self._tokens = structlog.contextvars.bind_contextvars(**self.context)
        return self

    def __exit__(self, *args: Any) -> None:
        structlog.contextvars.reset_contextvars(**self._tokens)
        self._tokens = {}
