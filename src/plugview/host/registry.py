"""
Component Registry
Maps node types to host-side rendering collaborators.
"""

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from ..core.logging_config import get_logger
from ..protocol.tree import UINode, is_layout_tag

logger = get_logger(__name__)


@runtime_checkable
class Renderable(Protocol):
    """Host-side renderer for one node type."""

    def render(self, node: UINode, children: list[Any]) -> Any: ...


@dataclass
class ComponentEntry:
    """Registered component with metadata."""

    type: str
    component: Renderable
    metadata: dict[str, Any] = field(default_factory=dict)


class ComponentRegistry:
    """
    Registry of renderers keyed by node type.
    Layout tags may be left unregistered; `resolve` then returns None and the
    host renders them natively.
    """

    def __init__(self) -> None:
        self._components: dict[str, ComponentEntry] = {}

    def register(self, node_type: str, component: Renderable, metadata: dict[str, Any] | None = None) -> None:
        """
        Register a renderer.

        Args:
            node_type: Node type (layout tag or product primitive)
            component: Renderer
            metadata: Free-form description (props schema, category, ...)
        """
        if node_type in self._components:
            logger.warning("component_replaced", type=node_type)
        self._components[node_type] = ComponentEntry(node_type, component, dict(metadata or {}))
        logger.debug("component_registered", type=node_type, layout=is_layout_tag(node_type))

    def unregister(self, node_type: str) -> bool:
        return self._components.pop(node_type, None) is not None

    def get(self, node_type: str) -> Renderable | None:
        entry = self._components.get(node_type)
        return entry.component if entry else None

    def get_entry(self, node_type: str) -> ComponentEntry | None:
        return self._components.get(node_type)

    def has(self, node_type: str) -> bool:
        return node_type in self._components

    def list_types(self) -> list[str]:
        return list(self._components)

    def clear(self) -> None:
        self._components.clear()

    def resolve(self, node: UINode) -> Renderable | None:
        """Renderer for a node; unknown product types are logged."""
        component = self.get(node.type)
        if component is None and not is_layout_tag(node.type):
            logger.warning("component_not_found", type=node.type, node_id=node.id)
        return component

    def render_tree(self, node: UINode | str | None) -> Any:
        """
        Render a tree bottom-up through the registered components.

        Text is returned as-is. Nodes without a renderer become plain dicts
        so layout tags survive.
        """
        if node is None or isinstance(node, str):
            return node
        children = [self.render_tree(child) for child in node.children]
        component = self.resolve(node)
        if component is None:
            return {"type": node.type, "props": dict(node.props), "children": children}
        return component.render(node, children)

    def __len__(self) -> int:
        return len(self._components)
