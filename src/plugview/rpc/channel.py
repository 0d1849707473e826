"""
Bidirectional RPC channel.

Both peers run the same channel: outgoing requests are correlated with their
responses through a pending table, incoming requests are dispatched to the
exposed methods. Every pending request is settled exactly once: by its
response, by its timer, or by the disconnect sweep.
"""

import asyncio
import inspect
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping

from ..core.errors import NotConnectedError, ProtocolError, RemoteError, RequestTimeoutError, TransportError
from ..core.id import new_request_id
from ..core.logging_config import get_logger
from ..protocol.rpc import (
    RPCErrorPayload,
    RPCMessage,
    callback,
    decode_frame,
    encode_message,
    error_response,
    request,
    response,
    split_frames,
)

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 30.0

CloseListener = Callable[[BaseException | None], None]
ProtocolErrorListener = Callable[[ProtocolError, str], None]


@dataclass
class PendingRequest:
    """Outstanding request awaiting its response."""

    future: asyncio.Future
    method: str
    issued_at: float
    timer: asyncio.TimerHandle


class RPCChannel:
    """
    Request/response/callback layer over a Transport.

    Exposed methods may be plain functions (run inline, in arrival order) or
    coroutine functions (started as tasks in arrival order so they can call
    back into the peer without blocking the reader).
    """

    def __init__(
        self,
        transport: Any,
        expose: Mapping[str, Callable[..., Any]] | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        name: str = "rpc",
        max_frame_size: int = 4 * 1024 * 1024,
        max_json_depth: int = 256,
    ) -> None:
        self._transport = transport
        self._handlers: dict[str, Callable[..., Any]] = dict(expose or {})
        self.timeout = timeout
        self.name = name
        self.max_frame_size = max_frame_size
        self.max_json_depth = max_json_depth

        self._pending: dict[str, PendingRequest] = {}
        self._tasks: set[asyncio.Task] = set()
        self._reader: asyncio.Task | None = None
        self._closed = False
        self._close_listeners: list[CloseListener] = []
        self._protocol_error_listeners: list[ProtocolErrorListener] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def expose(self, method: str, handler: Callable[..., Any]) -> None:
        """Register (or replace) an exposed method."""
        self._handlers[method] = handler

    def on_close(self, listener: CloseListener) -> Callable[[], None]:
        """Listen for channel close. Returns an unsubscribe function."""
        self._close_listeners.append(listener)
        return lambda: self._close_listeners.remove(listener)

    def on_protocol_error(self, listener: ProtocolErrorListener) -> Callable[[], None]:
        """Listen for malformed frames and unknown methods."""
        self._protocol_error_listeners.append(listener)
        return lambda: self._protocol_error_listeners.remove(listener)

    def start(self) -> None:
        """Start reading from the transport."""
        if self._closed:
            raise NotConnectedError()
        if self._reader is None:
            self._reader = asyncio.create_task(self._read_loop(), name=f"{self.name}-reader")

    async def close(self) -> None:
        """Close the transport and reject everything still pending."""
        if self._closed:
            return
        await self._transport.close()
        self._shutdown(None)

        reader = self._reader
        if reader is not None and reader is not asyncio.current_task() and not reader.done():
            reader.cancel()

    def _shutdown(self, error: BaseException | None) -> None:
        if self._closed:
            return
        self._closed = True

        swept = len(self._pending)
        for pending in self._pending.values():
            pending.timer.cancel()
            if not pending.future.done():
                pending.future.set_exception(NotConnectedError())
        self._pending.clear()

        current = asyncio.current_task()
        for task in list(self._tasks):
            if task is not current:
                task.cancel()

        logger.info("channel_closed", channel=self.name, rejected=swept, error=str(error) if error else None)

        for listener in list(self._close_listeners):
            try:
                listener(error)
            except Exception as e:
                logger.error("close_listener_failed", channel=self.name, error=str(e), exc_info=True)

    # ------------------------------------------------------------------
    # Outgoing
    # ------------------------------------------------------------------

    async def call(self, method: str, *args: Any, timeout: float | None = None) -> Any:
        """
        Send a request and wait for its response.

        Raises:
            NotConnectedError: Channel closed before or while waiting
            RequestTimeoutError: No response within the deadline
            RemoteError: Peer answered with an error
        """
        if self._closed:
            raise NotConnectedError()

        deadline = self.timeout if timeout is None else timeout
        msg_id = new_request_id()
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        timer = loop.call_later(deadline, self._expire, msg_id, deadline)
        self._pending[msg_id] = PendingRequest(future, method, time.monotonic(), timer)

        try:
            try:
                await self._send(request(msg_id, method, list(args)))
            except (NotConnectedError, ProtocolError):
                # The disconnect sweep may have settled the future already
                if future.done() and not future.cancelled():
                    future.exception()
                raise
            logger.debug("request_sent", channel=self.name, method=method, id=msg_id)
            return await future
        finally:
            self._discard(msg_id)

    async def notify(self, method: str, *args: Any) -> None:
        """Send a callback message; no response is expected."""
        if self._closed:
            raise NotConnectedError()
        await self._send(callback(new_request_id(), method, list(args)))

    async def _send(self, msg: RPCMessage) -> None:
        try:
            frame = encode_message(msg)
        except TypeError as e:
            raise ProtocolError(f"Cannot encode '{msg.method or msg.id}': {e}") from e

        try:
            await self._transport.send(frame)
        except TransportError as e:
            self._shutdown(e)
            raise NotConnectedError(str(e)) from e

    def _expire(self, msg_id: str, deadline: float) -> None:
        pending = self._pending.pop(msg_id, None)
        if pending is None or pending.future.done():
            return
        logger.warning("request_timeout", channel=self.name, method=pending.method, id=msg_id)
        pending.future.set_exception(RequestTimeoutError(pending.method, deadline))

    def _discard(self, msg_id: str) -> None:
        pending = self._pending.pop(msg_id, None)
        if pending is not None:
            pending.timer.cancel()

    # ------------------------------------------------------------------
    # Incoming
    # ------------------------------------------------------------------

    async def _read_loop(self) -> None:
        error: BaseException | None = None
        try:
            while not self._closed:
                chunk = await self._transport.receive()
                for line in split_frames(chunk):
                    await self._handle_line(line)
        except NotConnectedError as e:
            logger.debug("transport_closed", channel=self.name, reason=str(e))
        except TransportError as e:
            error = e
            logger.warning("transport_error", channel=self.name, error=str(e))
        finally:
            self._shutdown(error)

    async def _handle_line(self, line: str) -> None:
        try:
            msg = decode_frame(line, self.max_frame_size, self.max_json_depth)
        except ProtocolError as e:
            self._protocol_error(e, line)
            return

        if msg.is_response:
            self._resolve(msg)
        elif msg.method is None:
            self._protocol_error(ProtocolError(f"Message {msg.id} has no method"), line)
        else:
            await self._dispatch(msg, line)

    def _resolve(self, msg: RPCMessage) -> None:
        pending = self._pending.pop(msg.id, None)
        if pending is None:
            # Timed out or swept already
            logger.debug("late_response_ignored", channel=self.name, id=msg.id)
            return

        pending.timer.cancel()
        if pending.future.done():
            return
        if msg.error is not None:
            pending.future.set_exception(RemoteError.from_payload(msg.error))
        else:
            pending.future.set_result(msg.result)

    async def _dispatch(self, msg: RPCMessage, line: str) -> None:
        handler = self._handlers.get(msg.method)
        if handler is None:
            error = ProtocolError(f"Unknown method: {msg.method}")
            self._protocol_error(error, line)
            if msg.is_request:
                await self._reply(error_response(msg.id, RPCErrorPayload.from_exception(error)))
            return

        try:
            result = handler(*(msg.args or []))
        except Exception as e:
            await self._fail(msg, e)
            return

        if inspect.isawaitable(result):
            self._spawn(self._finish(msg, result))
        elif msg.is_request:
            await self._reply(response(msg.id, result))

    async def _finish(self, msg: RPCMessage, pending: Awaitable[Any]) -> None:
        try:
            result = await pending
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await self._fail(msg, e)
            return

        if msg.is_request:
            await self._reply(response(msg.id, result))

    async def _fail(self, msg: RPCMessage, error: Exception) -> None:
        logger.warning(
            "handler_failed",
            channel=self.name,
            method=msg.method,
            error=str(error),
            error_type=type(error).__name__,
        )
        if msg.is_request:
            await self._reply(error_response(msg.id, RPCErrorPayload.from_exception(error)))

    async def _reply(self, msg: RPCMessage) -> None:
        try:
            await self._send(msg)
        except ProtocolError as e:
            # Result was not encodable
            await self._reply(error_response(msg.id, RPCErrorPayload.from_exception(e)))
        except NotConnectedError:
            logger.debug("reply_dropped", channel=self.name, id=msg.id)

    def _protocol_error(self, error: ProtocolError, line: str) -> None:
        logger.warning("protocol_error", channel=self.name, error=str(error))
        for listener in list(self._protocol_error_listeners):
            try:
                listener(error, line)
            except Exception as e:
                logger.error("protocol_listener_failed", channel=self.name, error=str(e), exc_info=True)

    def _spawn(self, coro: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
