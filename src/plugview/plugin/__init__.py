"""Producer side: rendering, handler registry and mutation collection."""

from .collector import MutationCollector
from .handlers import HandlerRegistry
from .instances import Instance, RenderNode, TextInstance
from .reconciler import Element, Reconciler, h
from .renderer import RenderContainer, UpdateMode
from .runtime import PluginRuntime
from .serialize import serialize_props, serialize_tree

__all__ = [
    "MutationCollector",
    "HandlerRegistry",
    "Instance",
    "RenderNode",
    "TextInstance",
    "Element",
    "Reconciler",
    "h",
    "RenderContainer",
    "UpdateMode",
    "PluginRuntime",
    "serialize_props",
    "serialize_tree",
]
