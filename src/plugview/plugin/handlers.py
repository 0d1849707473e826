"""
Handler Registry
Maps opaque handler ids to local callbacks so behavior can cross the
plugin/host boundary.
"""

import inspect
from typing import Any, Callable

from ..core.id import HandlerID, Sequence, handler_sequence
from ..core.logging_config import get_logger

logger = get_logger(__name__)

Handler = Callable[..., Any]


class HandlerRegistry:
    """
    Registry of event handlers for one plugin session.

    Ids come from a monotonic sequence that is never reset, so an id retired
    by a re-render can never resolve to a newer handler.
    """

    def __init__(self, sequence: Sequence | None = None) -> None:
        self._handlers: dict[str, Handler] = {}
        self._sequence = sequence or handler_sequence()

    def register(self, handler: Handler) -> HandlerID:
        """
        Register a callback.

        Args:
            handler: Sync or async callable

        Returns:
            Fresh handler id
        """
        handler_id = HandlerID(self._sequence.next())
        self._handlers[handler_id] = handler
        return handler_id

    async def execute(self, handler_id: str, *args: Any) -> Any:
        """
        Invoke a handler by id.

        Unknown ids are a no-op resolving to None: events can race with the
        re-render that retired their handler.

        Raises:
            Exception: Whatever the handler raises
        """
        handler = self._handlers.get(handler_id)
        if handler is None:
            logger.debug("handler_not_found", handler_id=handler_id)
            return None

        result = handler(*args)
        if inspect.isawaitable(result):
            result = await result
        return result

    def has(self, handler_id: str) -> bool:
        return handler_id in self._handlers

    def remove(self, handler_id: str) -> bool:
        """Unregister a handler. Returns False if it was not registered."""
        return self._handlers.pop(handler_id, None) is not None

    def clear(self) -> None:
        """Drop every handler; the id sequence keeps counting."""
        self._handlers.clear()

    def __len__(self) -> int:
        return len(self._handlers)

    def __contains__(self, handler_id: object) -> bool:
        return handler_id in self._handlers
