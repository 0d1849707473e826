"""
Relay session registry.

A session pairs one plugin connection with at most one host connection under
a plugin id. Plugin and host slots have independent lifecycles; the session
is dropped once both slots are empty.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Generic, Literal, TypeVar

from ..core.logging_config import get_logger

logger = get_logger(__name__)

Side = Literal["plugin", "host"]

# Close reasons (code 1000)
PLUGIN_NOT_READY = "Plugin not ready"
REPLACED = "Replaced by new connection"
NORMAL_CLOSE = 1000

C = TypeVar("C")


def normalize_frame(message: str | bytes) -> str:
    """Decode binary frames and make sure the frame ends with a newline."""
    text = message.decode("utf-8") if isinstance(message, bytes) else message
    return text if text.endswith("\n") else text + "\n"


@dataclass
class Session(Generic[C]):
    """Plugin/host pair for one plugin id."""

    plugin_id: str
    plugin: C | None = None
    host: C | None = None
    created_at: float = field(default_factory=time.time)
    plugin_connected_at: float | None = None
    host_connected_at: float | None = None

    @property
    def empty(self) -> bool:
        return self.plugin is None and self.host is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "plugin_id": self.plugin_id,
            "plugin_connected": self.plugin is not None,
            "host_connected": self.host is not None,
            "created_at": self.created_at,
            "plugin_connected_at": self.plugin_connected_at,
            "host_connected_at": self.host_connected_at,
        }


@dataclass(frozen=True)
class HostAttach(Generic[C]):
    """Outcome of a host attach."""

    accepted: bool
    displaced: C | None = None


class SessionRegistry(Generic[C]):
    """
    Registry of relay sessions keyed by plugin id.

    Connections are opaque here (WebSockets in the relay app). All mutation
    happens under one asyncio.Lock, so concurrent connects for the same plugin
    id are serialized.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, Session[C]] = {}
        self._lock = asyncio.Lock()
        self._stats = {
            "plugins_attached": 0,
            "hosts_attached": 0,
            "hosts_replaced": 0,
            "hosts_rejected": 0,
        }

    async def attach_plugin(self, plugin_id: str, conn: C) -> C | None:
        """
        Register a plugin connection.

        Returns:
            The previous plugin connection for this id, if any
        """
        async with self._lock:
            session = self._sessions.get(plugin_id)
            if session is None:
                session = Session(plugin_id=plugin_id)
                self._sessions[plugin_id] = session
            previous = session.plugin
            session.plugin = conn
            session.plugin_connected_at = time.time()
            self._stats["plugins_attached"] += 1

        logger.info("plugin_attached", plugin_id=plugin_id, replaced=previous is not None)
        return previous

    async def attach_host(self, plugin_id: str, conn: C) -> HostAttach[C]:
        """
        Register a host connection (replace-and-close policy).

        A host is only accepted while a plugin is connected. A newer host
        displaces the current one, which the caller must close.
        """
        async with self._lock:
            session = self._sessions.get(plugin_id)
            if session is None or session.plugin is None:
                self._stats["hosts_rejected"] += 1
                logger.info("host_rejected", plugin_id=plugin_id, reason=PLUGIN_NOT_READY)
                return HostAttach(accepted=False)

            displaced = session.host
            session.host = conn
            session.host_connected_at = time.time()
            self._stats["hosts_attached"] += 1
            if displaced is not None:
                self._stats["hosts_replaced"] += 1

        logger.info("host_attached", plugin_id=plugin_id, replaced=displaced is not None)
        return HostAttach(accepted=True, displaced=displaced)

    async def detach(self, plugin_id: str, side: Side, conn: C) -> bool:
        """
        Clear a slot if it still holds `conn`.

        A connection that was already replaced leaves the newer one alone.

        Returns:
            True if the slot was cleared
        """
        async with self._lock:
            session = self._sessions.get(plugin_id)
            if session is None or getattr(session, side) is not conn:
                return False

            setattr(session, side, None)
            if side == "plugin":
                session.plugin_connected_at = None
            else:
                session.host_connected_at = None

            if session.empty:
                del self._sessions[plugin_id]
                logger.info("session_closed", plugin_id=plugin_id)

        logger.info("side_detached", plugin_id=plugin_id, side=side)
        return True

    async def detach_plugin(self, plugin_id: str, conn: C) -> bool:
        return await self.detach(plugin_id, "plugin", conn)

    async def detach_host(self, plugin_id: str, conn: C) -> bool:
        return await self.detach(plugin_id, "host", conn)

    def peer_of(self, plugin_id: str, side: Side) -> C | None:
        """Connection on the opposite side of `side`, if present."""
        session = self._sessions.get(plugin_id)
        if session is None:
            return None
        return session.host if side == "plugin" else session.plugin

    def get(self, plugin_id: str) -> Session[C] | None:
        return self._sessions.get(plugin_id)

    def list_sessions(self) -> list[Session[C]]:
        return list(self._sessions.values())

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, plugin_id: str) -> bool:
        return plugin_id in self._sessions

    def stats(self) -> dict[str, Any]:
        """Get registry statistics."""
        return {
            "active_sessions": len(self._sessions),
            "plugins_connected": sum(1 for s in self._sessions.values() if s.plugin is not None),
            "hosts_connected": sum(1 for s in self._sessions.values() if s.host is not None),
            **self._stats,
        }
