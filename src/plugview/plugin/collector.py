"""
Mutation Collector

Records every structural, prop and text change of one render commit as an
ordered mutation batch. `begin_commit` and `flush_commit` bracket a commit;
mutations are appended in the order the changes were made, which is the
order the host must replay them.

Handler ownership (node id -> event prop -> handler id) is tracked so that a
handler is unregistered as soon as the prop holding it is rebound or removed,
or its node leaves the tree.
"""

from typing import Any, Mapping

from ..core.json import is_json_serializable
from ..core.logging_config import get_logger
from ..protocol.events import handler_id_prop, is_event_prop
from ..protocol.mutations import (
    Create,
    Mutation,
    MutationBatch,
    Remove,
    RemoveProp,
    Reorder,
    SetProp,
    SetText,
)
from ..protocol.tree import TEXT_NODE_TYPE, text_key
from .handlers import HandlerRegistry
from .instances import Instance, RenderNode, TextInstance
from .serialize import SKIPPED_PROPS, Ownership, serialize_props, serialize_tree

logger = get_logger(__name__)

_MISSING = object()


class _HandlerRef:
    """Event callable as seen on the wire side of a prop diff."""

    __slots__ = ("event", "fn")

    def __init__(self, event: str, fn: Any) -> None:
        self.event = event
        self.fn = fn


def _wire_entries(props: Mapping[str, Any]) -> dict[str, Any]:
    """Wire key -> JSON value or _HandlerRef, in prop order."""
    entries: dict[str, Any] = {}
    for key, value in props.items():
        if key in SKIPPED_PROPS:
            continue
        if callable(value):
            if is_event_prop(key):
                entries[handler_id_prop(key)] = _HandlerRef(key, value)
        elif is_json_serializable(value):
            entries[key] = value
    return entries


def _same_value(a: Any, b: Any) -> bool:
    return type(a) is type(b) and a == b


def _key_of(child: Instance, index: int) -> str:
    return text_key(index) if isinstance(child, TextInstance) else child.id


class MutationCollector:
    """Producer-side change recorder for one render container."""

    def __init__(self, registry: HandlerRegistry) -> None:
        self.registry = registry
        self.ownership: Ownership = {}
        self._batch: list[Mutation] = []
        self._in_commit = False

    @property
    def in_commit(self) -> bool:
        return self._in_commit

    @property
    def pending(self) -> int:
        return len(self._batch)

    def begin_commit(self) -> None:
        """Start a commit with an empty batch."""
        if self._batch:
            logger.warning("uncommitted_mutations_discarded", count=len(self._batch))
        self._batch = []
        self._in_commit = True

    def flush_commit(self) -> MutationBatch:
        """End the commit and hand over its batch."""
        batch, self._batch = self._batch, []
        self._in_commit = False
        return batch

    def clear(self) -> None:
        """Drop the pending batch and all ownership records."""
        self._batch = []
        self.ownership.clear()
        self._in_commit = False

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    def collect_create(self, parent: RenderNode | None, child: Instance, index: int) -> None:
        """Record insertion of `child` (and its subtree) at `index`."""
        parent_id = parent.id if parent is not None else None

        if isinstance(child, TextInstance):
            self._batch.append(
                Create(
                    node_id=child.id,
                    node_type=TEXT_NODE_TYPE,
                    parent_id=parent_id,
                    index=index,
                    props={"text": child.text},
                )
            )
            return

        owned = self.ownership.setdefault(child.id, {})
        self._batch.append(
            Create(
                node_id=child.id,
                node_type=child.type,
                parent_id=parent_id,
                index=index,
                props=serialize_props(child.props, self.registry, owned),
                children=tuple(
                    serialize_tree(grandchild, self.registry, self.ownership)
                    for grandchild in child.children
                ),
            )
        )

    def collect_append_child(self, parent: RenderNode, child: Instance) -> None:
        """Record `child` appended as the last child of `parent` (already attached)."""
        self.collect_create(parent, child, len(parent.children) - 1)

    def collect_insert_before(self, parent: RenderNode, child: Instance, before: Instance) -> None:
        """Record `child` inserted right before `before` (already attached)."""
        self.collect_create(parent, child, parent.index_of(before) - 1)

    def collect_remove(self, parent: RenderNode | None, child: Instance, index: int) -> None:
        """
        Record removal of `child` from `parent`.

        Args:
            parent: Former parent, None for the root
            child: Removed instance
            index: Position the child had before removal
        """
        parent_id = parent.id if parent is not None else None
        self._batch.append(Remove(node_id=_key_of(child, index), parent_id=parent_id))
        self._retire(child)

    def collect_reorder(self, parent: RenderNode, before: list[Instance]) -> None:
        """
        Record a move within `parent`.

        Args:
            parent: Parent whose children were reordered (already moved)
            before: The parent's children before the move
        """
        old_keys = {id(child): _key_of(child, i) for i, child in enumerate(before)}
        child_ids = tuple(old_keys[id(child)] for child in parent.children if id(child) in old_keys)
        self._batch.append(Reorder(parent_id=parent.id, child_ids=child_ids))

    # ------------------------------------------------------------------
    # Props and text
    # ------------------------------------------------------------------

    def collect_set_props(
        self, node: RenderNode, old_props: Mapping[str, Any], new_props: Mapping[str, Any]
    ) -> None:
        """Diff props and record per-key SetProp / RemoveProp."""
        owned = self.ownership.setdefault(node.id, {})
        old_wire = _wire_entries(old_props)
        new_wire = _wire_entries(new_props)

        for wire_key, old_value in old_wire.items():
            if wire_key in new_wire:
                continue
            if isinstance(old_value, _HandlerRef):
                self._retire_handler(owned.pop(old_value.event, None))
            self._batch.append(RemoveProp(node_id=node.id, key=wire_key))

        for wire_key, new_value in new_wire.items():
            old_value = old_wire.get(wire_key, _MISSING)

            if isinstance(new_value, _HandlerRef):
                if (
                    isinstance(old_value, _HandlerRef)
                    and old_value.fn == new_value.fn
                    and new_value.event in owned
                ):
                    continue
                self._retire_handler(owned.pop(new_value.event, None))
                handler_id = self.registry.register(new_value.fn)
                owned[new_value.event] = handler_id
                self._batch.append(SetProp(node_id=node.id, key=wire_key, value=handler_id))
                continue

            if old_value is _MISSING or not _same_value(old_value, new_value):
                self._batch.append(SetProp(node_id=node.id, key=wire_key, value=new_value))

    def collect_set_text(self, text: TextInstance, new_text: str) -> None:
        """Record a text change of an attached text instance."""
        parent = text.parent
        if parent is None:
            return
        self._batch.append(SetText(parent_id=parent.id, index=parent.index_of(text), text=new_text))

    # ------------------------------------------------------------------
    # Ownership
    # ------------------------------------------------------------------

    def _retire(self, instance: Instance) -> None:
        """Unregister every handler owned by a removed subtree."""
        stack: list[Instance] = [instance]
        while stack:
            current = stack.pop()
            if isinstance(current, TextInstance):
                continue
            for handler_id in self.ownership.pop(current.id, {}).values():
                self._retire_handler(handler_id)
            stack.extend(current.children)

    def _retire_handler(self, handler_id: str | None) -> None:
        if handler_id is not None:
            self.registry.remove(handler_id)
