"""
Relay bridge server.

The app factory lives in `plugview.relay.app`; it is not imported here so
the core container can depend on the session registry.
"""

from .sessions import (
    PLUGIN_NOT_READY,
    REPLACED,
    HostAttach,
    Session,
    SessionRegistry,
    normalize_frame,
)

__all__ = [
    "PLUGIN_NOT_READY",
    "REPLACED",
    "HostAttach",
    "Session",
    "SessionRegistry",
    "normalize_frame",
]
