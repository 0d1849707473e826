"""
Host controller: drives one plugin over an RPC channel.

State machine: disconnected -> connecting -> connected -> initialized ->
disconnected. The channel is `connected` once the transport is open and
`initialized` only after the initialize round-trip succeeds. Any transport
close drops the replica; a new `connect` rebuilds everything.
"""

import asyncio
import inspect
from enum import Enum
from typing import Any, Callable

from returns.result import Failure

from ..core.config import Settings, get_settings
from ..core.errors import (
    NotConnectedError,
    PlugviewError,
    ProtocolError,
    RemoteError,
    RequestTimeoutError,
)
from ..core.logging_config import get_logger, plugin_log_method
from ..core.validate import LogRequest, ReportErrorRequest, parse_tree, validate_request
from ..protocol.mutations import mutations_from_builtins
from ..protocol.rpc import Method
from ..protocol.tree import UINode
from ..rpc.channel import RPCChannel
from ..rpc.transport import connect_websocket, relay_endpoint
from .mutable_tree import MutableTree
from .registry import ComponentRegistry

logger = get_logger(__name__)
plugin_logger = get_logger("plugview.plugin")

TreeSubscriber = Callable[[UINode | None], None]
ErrorSubscriber = Callable[[ReportErrorRequest], None]


class ConnectionState(str, Enum):
    """Host-side connection states."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    INITIALIZED = "initialized"


class HostController:
    """
    Owns the replica of one plugin's tree and the channel to that plugin.

    Args:
        transport_factory: Callable returning a transport (or an awaitable of one)
        initial_props: Props sent with initialize
        settings: Settings (environment otherwise)
        components: Optional component registry for rendering
    """

    def __init__(
        self,
        transport_factory: Callable[[], Any],
        initial_props: dict[str, Any] | None = None,
        settings: Settings | None = None,
        components: ComponentRegistry | None = None,
        name: str = "host",
    ) -> None:
        self.settings = settings or get_settings()
        self.transport_factory = transport_factory
        self.props: dict[str, Any] = dict(initial_props or {})
        self.components = components or ComponentRegistry()
        self.name = name

        self.replica = MutableTree()
        self.replica.on_tree_replaced(self._emit)
        self.replica.on_mutations_applied(self._emit)
        self.replica.on_invalid_mutation(lambda mutation, error: self._request_resync())

        self.state = ConnectionState.DISCONNECTED
        self.last_error: ReportErrorRequest | None = None
        self._channel: RPCChannel | None = None
        self._subscribers: list[TreeSubscriber] = []
        self._error_subscribers: list[ErrorSubscriber] = []
        self._sync_task: asyncio.Task | None = None
        self._stats = {"full_updates": 0, "batches": 0, "mutations_dropped": 0, "resyncs": 0}

    @classmethod
    def over_relay(
        cls,
        plugin_id: str,
        relay_url: str | None = None,
        settings: Settings | None = None,
        **kwargs: Any,
    ) -> "HostController":
        """
        Controller connecting to the host side of a relay session.

        Each `connect` opens a new WebSocket, retrying with the configured
        reconnect attempts and backoff.
        """
        settings = settings or get_settings()
        url = relay_endpoint(relay_url or settings.relay_url, "host", plugin_id)

        def factory():
            return connect_websocket(
                url,
                attempts=settings.reconnect_attempts,
                base_delay=settings.reconnect_base_delay,
                max_size=settings.max_frame_size,
            )

        kwargs.setdefault("name", f"host:{plugin_id}")
        return cls(factory, settings=settings, **kwargs)

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def tree(self) -> UINode | None:
        """Current replica root."""
        return self.replica.root

    @property
    def channel(self) -> RPCChannel | None:
        return self._channel

    def subscribe(self, subscriber: TreeSubscriber) -> Callable[[], None]:
        """Get notified with the new root after every tree change."""
        self._subscribers.append(subscriber)
        return lambda: self._subscribers.remove(subscriber)

    def on_error(self, subscriber: ErrorSubscriber) -> Callable[[], None]:
        """Get notified of errors reported by the plugin."""
        self._error_subscribers.append(subscriber)
        return lambda: self._error_subscribers.remove(subscriber)

    def status(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "nodes": len(self.replica),
            "pending_requests": self._channel.pending_count if self._channel else 0,
            "last_error": self.last_error.message if self.last_error else None,
            **self._stats,
        }

    def render(self) -> Any:
        """Render the replica through the component registry."""
        return self.components.render_tree(self.replica.root)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """
        Open the transport and initialize the plugin.

        Raises:
            PlugviewError: Already connected
            TransportError: Transport could not be opened
            RemoteError: Plugin rejected initialize
            ProtocolError: Initialize could not be encoded (e.g. non-JSON props)
        """
        if self.state is not ConnectionState.DISCONNECTED:
            raise PlugviewError(f"Cannot connect while {self.state.value}")

        self.state = ConnectionState.CONNECTING
        try:
            transport = self.transport_factory()
            if inspect.isawaitable(transport):
                transport = await transport
        except Exception:
            self.state = ConnectionState.DISCONNECTED
            raise

        channel = RPCChannel(
            transport,
            expose={
                Method.UPDATE_TREE: self._update_tree,
                Method.APPLY_MUTATIONS: self._apply_mutations,
                Method.LOG: self._log,
                Method.REPORT_ERROR: self._report_error,
            },
            timeout=self.settings.rpc_timeout,
            name=self.name,
            max_frame_size=self.settings.max_frame_size,
            max_json_depth=self.settings.max_json_depth,
        )
        channel.on_close(self._on_close)
        self._channel = channel
        self.replica.clear()
        channel.start()
        self.state = ConnectionState.CONNECTED
        logger.info("host_connected", host=self.name)

        try:
            await channel.call(
                Method.INITIALIZE,
                {"protocolVersion": self.settings.protocol_version, "props": self.props},
            )
        except Exception as e:
            # Remote rejection, timeout, or a local failure such as unencodable props
            logger.error("initialize_failed", host=self.name, error=str(e), error_type=type(e).__name__)
            await self.disconnect()
            raise

        if self.state is ConnectionState.CONNECTED:
            self.state = ConnectionState.INITIALIZED
            logger.info("host_initialized", host=self.name, nodes=len(self.replica))

    async def disconnect(self) -> None:
        """Close the channel; state and replica are reset by the close handler."""
        if self._channel is not None:
            await self._channel.close()

    async def destroy(self) -> None:
        """Ask the plugin to tear down, then disconnect."""
        if self._channel is not None and not self._channel.closed:
            try:
                await self._channel.call(Method.DESTROY)
            except NotConnectedError:
                # Plugin closed the transport as part of destroy
                logger.debug("destroy_closed_by_plugin", host=self.name)
        await self.disconnect()

    # ------------------------------------------------------------------
    # Plugin control
    # ------------------------------------------------------------------

    async def update_props(self, props: dict[str, Any]) -> None:
        self._require_initialized()
        self.props = dict(props)
        await self._channel.call(Method.UPDATE_PROPS, self.props)

    async def execute_handler(self, handler_id: str, args: list[Any] | None = None) -> None:
        """Invoke a plugin handler by id (unknown ids are a no-op on the plugin)."""
        self._require_initialized()
        await self._channel.call(Method.EXECUTE_HANDLER, handler_id, list(args or []))

    async def sync_tree(self) -> None:
        """Request a full-tree push."""
        if self._channel is None or self._channel.closed:
            raise NotConnectedError()
        self._stats["resyncs"] += 1
        await self._channel.call(Method.SYNC_TREE)

    def _require_initialized(self) -> None:
        if self.state is not ConnectionState.INITIALIZED or self._channel is None:
            raise NotConnectedError(f"Plugin not initialized ({self.state.value})")

    # ------------------------------------------------------------------
    # Exposed to the plugin
    # ------------------------------------------------------------------

    def _update_tree(self, tree: Any = None) -> None:
        result = parse_tree(tree)
        if isinstance(result, Failure):
            raise ProtocolError(result.failure().message)
        self._stats["full_updates"] += 1
        self.replica.init(result.unwrap())

    def _apply_mutations(self, batch: Any = None) -> dict[str, int]:
        mutations, malformed = mutations_from_builtins(batch if batch is not None else [])
        if malformed:
            logger.warning("malformed_mutations", host=self.name, count=len(malformed))
            self._request_resync()

        result = self.replica.apply(mutations)
        dropped = len(result.dropped) + len(malformed)
        self._stats["batches"] += 1
        self._stats["mutations_dropped"] += dropped
        return {"applied": result.applied, "dropped": dropped}

    def _log(self, level: Any = "log", args: Any = None) -> None:
        result = validate_request(LogRequest, {"level": level, "args": args if args is not None else []})
        if isinstance(result, Failure):
            raise ProtocolError(f"Invalid log call: {result.failure().message}")
        request = result.unwrap()
        plugin_log_method(plugin_logger, request.level)("plugin_log", host=self.name, level=request.level, args=request.args)

    def _report_error(self, payload: Any = None) -> None:
        result = validate_request(ReportErrorRequest, payload if payload is not None else {})
        if isinstance(result, Failure):
            raise ProtocolError(f"Invalid error report: {result.failure().message}")
        report = result.unwrap()
        self.last_error = report
        plugin_logger.error("plugin_reported_error", host=self.name, name=report.name, message=report.message)
        for subscriber in list(self._error_subscribers):
            subscriber(report)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _emit(self, root: UINode | None) -> None:
        for subscriber in list(self._subscribers):
            subscriber(root)

    def _request_resync(self) -> None:
        """Ask for one full tree; requests made while one is in flight coalesce."""
        if self._sync_task is not None and not self._sync_task.done():
            return
        if self._channel is None or self._channel.closed:
            return
        self._sync_task = asyncio.ensure_future(self._resync())

    async def _resync(self) -> None:
        try:
            await self.sync_tree()
            logger.info("tree_resynced", host=self.name, nodes=len(self.replica))
        except (NotConnectedError, RequestTimeoutError, RemoteError) as e:
            logger.warning("resync_failed", host=self.name, error=str(e))

    def _on_close(self, error: BaseException | None) -> None:
        self.state = ConnectionState.DISCONNECTED
        self._channel = None
        task = self._sync_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        self._sync_task = None
        if self.replica.root is not None:
            self.replica.init(None)
        else:
            self.replica.clear()
        logger.info("host_disconnected", host=self.name, error=str(error) if error else None)
