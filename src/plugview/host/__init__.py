"""Consumer side: tree replica, component registry and plugin controller."""

from .controller import ConnectionState, HostController
from .mutable_tree import ApplyResult, MutableTree
from .registry import ComponentEntry, ComponentRegistry, Renderable

__all__ = [
    "ConnectionState",
    "HostController",
    "ApplyResult",
    "MutableTree",
    "ComponentEntry",
    "ComponentRegistry",
    "Renderable",
]
