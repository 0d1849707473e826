"""ID Generation System.

Two kinds of identifiers cross the plugin/host boundary:

- ULIDs for RPC messages and relay connections: lexicographically sortable,
  timestamp-based, unique across processes.
- Counter-based ids for handlers and render nodes: monotonic within their
  owner, never reused, cheap to compare in tests.

Design:
- Prefixed: type-specific prefixes for debugging (req_*, conn_*, h_*, node-*)
- Type-safe: NewType wrappers for different ID categories
"""

import itertools
import threading
from typing import NewType
from ulid import ULID

# ============================================================================
# Type-Safe ID Wrappers
# ============================================================================

RequestID = NewType("RequestID", str)
"""RPC request identifier"""

ConnectionID = NewType("ConnectionID", str)
"""Relay connection identifier"""

HandlerID = NewType("HandlerID", str)
"""Event handler identifier"""

# ============================================================================
# ID Prefixes (for debugging and type identification)
# ============================================================================


class Prefix:
    """ID prefix constants."""

    REQUEST = "req"
    CONNECTION = "conn"
    HANDLER = "h"
    NODE = "node"
    TEXT = "text"


# ============================================================================
# ULID Generator
# ============================================================================


class Generator:
    """ULID generator."""

    def generate(self) -> str:
        """Generate a new ULID."""
        return str(ULID())

    def generate_with_prefix(self, prefix: str) -> str:
        """Generate ULID with type prefix."""
        return f"{prefix}_{self.generate()}"


# Singleton instance
_generator = Generator()


class Sequence:
    """Monotonic prefixed id sequence.

    Ids are never reused for the lifetime of the sequence, so a stale id can
    never alias a newer object.
    """

    def __init__(self, prefix: str, separator: str = "_") -> None:
        self.prefix = prefix
        self.separator = separator
        self._counter = itertools.count()
        self._lock = threading.Lock()

    def next(self) -> str:
        """Return the next id."""
        with self._lock:
            value = next(self._counter)
        return f"{self.prefix}{self.separator}{value}"


# ============================================================================
# Typed ID Generators
# ============================================================================


def new_request_id() -> RequestID:
    """Generate new RPC request ID."""
    return RequestID(_generator.generate_with_prefix(Prefix.REQUEST))


def new_connection_id() -> ConnectionID:
    """Generate new relay connection ID."""
    return ConnectionID(_generator.generate_with_prefix(Prefix.CONNECTION))


def handler_sequence() -> Sequence:
    """Sequence for handler ids (h_0, h_1, ...)."""
    return Sequence(Prefix.HANDLER)


def node_sequence() -> Sequence:
    """Sequence for render node ids (node-0, node-1, ...)."""
    return Sequence(Prefix.NODE, separator="-")


def text_sequence() -> Sequence:
    """Sequence for text instance ids (text-0, text-1, ...)."""
    return Sequence(Prefix.TEXT, separator="-")
