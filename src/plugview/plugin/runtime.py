"""
Plugin runtime: serves a UI app to a host over an RPC channel.

Exposes initialize / updateProps / executeHandler / destroy / syncTree and
pushes tree updates with updateTree (full mode) or applyMutations
(incremental mode). Renders are serialized: a commit and the push of its
output form one unit that no other render can interleave with.
"""

import asyncio
import traceback
from typing import Any, Callable

from returns.result import Failure

from ..core.config import Settings, get_settings
from ..core.errors import NotConnectedError, ProtocolError
from ..core.logging_config import get_logger
from ..core.validate import (
    ExecuteHandlerRequest,
    InitializeRequest,
    validate_request,
)
from ..protocol.mutations import batch_to_builtins
from ..protocol.rpc import PROTOCOL_VERSION, Method
from ..protocol.tree import tree_to_builtins
from ..rpc.channel import RPCChannel
from ..rpc.transport import connect_websocket, relay_endpoint
from .reconciler import Element, Reconciler
from .renderer import RenderContainer, UpdateMode

logger = get_logger(__name__)

App = Callable[[dict[str, Any]], Element | None]


class PluginRuntime:
    """
    One plugin instance.

    Render state (container, handler registry, collector) is rebuilt by every
    `initialize` and dropped when the transport closes.
    """

    def __init__(
        self,
        app: App,
        update_mode: UpdateMode | None = None,
        settings: Settings | None = None,
        name: str = "plugin",
    ) -> None:
        self.app = app
        self.settings = settings or get_settings()
        self.update_mode: UpdateMode = update_mode or self.settings.update_mode
        self.name = name

        self.container: RenderContainer | None = None
        self.reconciler: Reconciler | None = None
        self.props: dict[str, Any] = {}
        self.initialized = False

        self._channel: RPCChannel | None = None
        self._lock = asyncio.Lock()
        self._outbox: list[tuple[str, Any]] = []
        self._closed = asyncio.Event()
        self._close_task: asyncio.Future | None = None
        self._report_tasks: set[asyncio.Future] = set()
        self._running = False

    @property
    def channel(self) -> RPCChannel | None:
        return self._channel

    def attach(self, transport: Any) -> RPCChannel:
        """Bind to a transport and start serving."""
        channel = RPCChannel(
            transport,
            expose={
                Method.INITIALIZE: self.initialize,
                Method.UPDATE_PROPS: self.update_props,
                Method.EXECUTE_HANDLER: self.execute_handler,
                Method.DESTROY: self.destroy,
                Method.SYNC_TREE: self.sync_tree,
            },
            timeout=self.settings.rpc_timeout,
            name=self.name,
            max_frame_size=self.settings.max_frame_size,
            max_json_depth=self.settings.max_json_depth,
        )
        channel.on_close(self._on_close)
        channel.on_protocol_error(self._on_protocol_error)
        self._channel = channel
        self._closed.clear()
        channel.start()
        logger.info("plugin_attached", plugin=self.name, mode=self.update_mode)
        return channel

    async def serve(self, transport: Any) -> None:
        """Attach and wait until the transport closes."""
        self.attach(transport)
        await self._closed.wait()

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def run(self, plugin_id: str, relay_url: str | None = None) -> None:
        """
        Serve through a relay, reconnecting whenever the connection drops.

        Every connection starts from a fresh attach; the next host initializes
        the plugin again. Runs until `stop()`.

        Args:
            plugin_id: Session id on the relay
            relay_url: ws:// base URL (settings.relay_url by default)

        Raises:
            TransportError: A (re)connect exhausted settings.reconnect_attempts
        """
        url = relay_endpoint(relay_url or self.settings.relay_url, "plugins", plugin_id)
        self._running = True
        connections = 0

        while self._running:
            transport = await connect_websocket(
                url,
                attempts=self.settings.reconnect_attempts,
                base_delay=self.settings.reconnect_base_delay,
                max_size=self.settings.max_frame_size,
            )
            if not self._running:
                await transport.close()
                break
            connections += 1
            if connections > 1:
                logger.info("plugin_reconnected", plugin=self.name, url=url, connections=connections)
            await self.serve(transport)

        logger.info("plugin_run_stopped", plugin=self.name, connections=connections)

    async def stop(self) -> None:
        """End `run()` and close the current connection."""
        self._running = False
        if self._channel is not None:
            await self._channel.close()

    # ------------------------------------------------------------------
    # Exposed methods
    # ------------------------------------------------------------------

    async def initialize(self, payload: Any = None) -> dict[str, Any]:
        """Validate the handshake, rebuild render state and render once."""
        result = validate_request(InitializeRequest, payload if payload is not None else {})
        if isinstance(result, Failure):
            error = result.failure()
            raise ProtocolError(f"Invalid initialize payload: {error.message}")

        request = result.unwrap()
        if request.protocol_version != PROTOCOL_VERSION:
            raise ProtocolError(
                f"Unsupported protocol version {request.protocol_version} "
                f"(expected {PROTOCOL_VERSION})"
            )

        async with self._lock:
            self._reset()
            self.container = RenderContainer(mode=self.update_mode)
            self.container.subscribe(self._on_commit)
            self.reconciler = Reconciler(self.container)
            self.props = dict(request.props)
            await self._render()
            self.initialized = True

        logger.info("plugin_initialized", plugin=self.name, mode=self.update_mode)
        return {"protocolVersion": PROTOCOL_VERSION}

    async def update_props(self, props: Any = None) -> None:
        if props is not None and not isinstance(props, dict):
            raise ProtocolError("Props must be an object")
        async with self._lock:
            self._require_initialized()
            self.props = dict(props or {})
            await self._render()

    async def execute_handler(self, handler_id: Any, args: Any = None) -> None:
        """Run a handler, then re-render so state changes reach the host."""
        result = validate_request(
            ExecuteHandlerRequest, {"handler_id": handler_id, "args": args if args is not None else []}
        )
        if isinstance(result, Failure):
            raise ProtocolError(f"Invalid executeHandler arguments: {result.failure().message}")
        request = result.unwrap()

        async with self._lock:
            self._require_initialized()
            try:
                await self.container.registry.execute(request.handler_id, *request.args)
            except Exception as e:
                await self.report_error(e)
                raise
            await self._render()

    async def destroy(self) -> None:
        """Drop render state and close the transport."""
        async with self._lock:
            self._reset()
        logger.info("plugin_destroyed", plugin=self.name)
        if self._channel is not None:
            # Let the reply go out before closing
            asyncio.get_running_loop().call_soon(self._close_channel)

    async def sync_tree(self) -> None:
        """Push the full current tree regardless of update mode."""
        async with self._lock:
            self._require_initialized()
            tree = self.container.snapshot()
            await self._call(Method.UPDATE_TREE, tree_to_builtins(tree))
        logger.info("tree_resynced", plugin=self.name)

    # ------------------------------------------------------------------
    # Host-facing helpers
    # ------------------------------------------------------------------

    async def log(self, level: str, *args: Any) -> None:
        """Forward a log line to the host."""
        await self._notify(Method.LOG, level, list(args))

    async def report_error(self, error: BaseException) -> None:
        """Report an error to the host (best effort)."""
        payload = {
            "name": type(error).__name__,
            "message": str(error),
            "stack": "".join(traceback.format_exception(type(error), error, error.__traceback__)),
        }
        logger.error("plugin_error", plugin=self.name, error=str(error), error_type=payload["name"])
        await self._notify(Method.REPORT_ERROR, payload)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _render(self) -> None:
        try:
            element = self.app(self.props)
            self.reconciler.render(element)
        except Exception as e:
            # Whatever reached the instance tree before the failure still goes out
            await self._push()
            await self.report_error(e)
            raise
        await self._push()

    def _on_commit(self, kind: str, payload: Any) -> None:
        self._outbox.append((kind, payload))

    async def _push(self) -> None:
        updates, self._outbox = self._outbox, []
        for kind, payload in updates:
            if kind == "mutations":
                await self._call(Method.APPLY_MUTATIONS, batch_to_builtins(payload))
            else:
                await self._call(Method.UPDATE_TREE, tree_to_builtins(payload))

    async def _call(self, method: str, *args: Any) -> Any:
        if self._channel is None:
            raise NotConnectedError()
        return await self._channel.call(method, *args)

    async def _notify(self, method: str, *args: Any) -> None:
        if self._channel is None or self._channel.closed:
            logger.debug("notify_dropped", method=method)
            return
        try:
            await self._channel.notify(method, *args)
        except NotConnectedError:
            logger.debug("notify_dropped", method=method)

    def _require_initialized(self) -> None:
        if not self.initialized or self.container is None:
            raise ProtocolError("Plugin is not initialized")

    def _reset(self) -> None:
        if self.container is not None:
            self.container.reset()
        self.container = None
        self.reconciler = None
        self.props = {}
        self.initialized = False
        self._outbox.clear()

    def _close_channel(self) -> None:
        if self._channel is not None and not self._channel.closed:
            self._close_task = asyncio.ensure_future(self._channel.close())

    def _on_close(self, error: BaseException | None) -> None:
        self._reset()
        self._closed.set()
        logger.info("plugin_detached", plugin=self.name, error=str(error) if error else None)

    def _on_protocol_error(self, error: ProtocolError, line: str) -> None:
        logger.warning("plugin_protocol_error", plugin=self.name, error=str(error))
        task = asyncio.ensure_future(self.report_error(error))
        self._report_tasks.add(task)
        task.add_done_callback(self._report_tasks.discard)
