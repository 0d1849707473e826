"""
Props and tree serialization.

Only JSON values cross the boundary. Event-prop callables are registered in
the HandlerRegistry and replaced by `_<event>HandlerId` entries; any other
callable or non-JSON value is dropped.
"""

from typing import Any, Mapping

from ..core.json import is_json_serializable
from ..protocol.events import handler_id_prop, is_event_prop
from ..protocol.tree import UINode
from .handlers import HandlerRegistry
from .instances import RenderNode, TextInstance

# Framework-internal props that never reach the host
SKIPPED_PROPS = frozenset({"children", "key", "ref"})

# node id -> {event prop -> handler id}
Ownership = dict[str, dict[str, str]]


def serialize_props(
    props: Mapping[str, Any],
    registry: HandlerRegistry,
    owned: dict[str, str] | None = None,
) -> dict[str, Any]:
    """
    Serialize props for the wire.

    Args:
        props: Raw props (may hold callables)
        registry: Registry receiving event handlers
        owned: Event prop -> handler id already registered for this node.
            Existing entries are reused; new registrations are recorded.

    Returns:
        JSON-only props
    """
    result: dict[str, Any] = {}
    for key, value in props.items():
        if key in SKIPPED_PROPS:
            continue

        if callable(value):
            if not is_event_prop(key):
                continue
            handler_id = owned.get(key) if owned is not None else None
            if handler_id is None:
                handler_id = registry.register(value)
                if owned is not None:
                    owned[key] = handler_id
            result[handler_id_prop(key)] = handler_id
            continue

        if is_json_serializable(value):
            result[key] = value

    return result


def serialize_tree(
    instance: RenderNode | TextInstance | None,
    registry: HandlerRegistry,
    ownership: Ownership | None = None,
) -> UINode | str | None:
    """
    Serialize a render instance and its subtree.

    Args:
        instance: Render node, text instance or None
        registry: Registry receiving event handlers
        ownership: Per-node handler ownership to reuse and fill

    Returns:
        UINode, literal text, or None
    """
    if instance is None:
        return None
    if isinstance(instance, TextInstance):
        return instance.text

    owned = ownership.setdefault(instance.id, {}) if ownership is not None else None
    return UINode(
        id=instance.id,
        type=instance.type,
        props=serialize_props(instance.props, registry, owned),
        children=tuple(serialize_tree(child, registry, ownership) for child in instance.children),
    )
