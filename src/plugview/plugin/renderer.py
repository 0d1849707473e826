"""
Render container: the host-config a front end drives during a commit.

Structural calls (`append_child`, `insert_before`, `remove_child`, ...) update
the live instance tree and, in incremental mode, feed the MutationCollector
when they touch the attached tree. Changes inside a detached subtree are not
recorded; the subtree is sent whole when it is attached.
"""

from contextlib import contextmanager
from typing import Any, Callable, Iterator, Literal, Mapping

from ..core.id import node_sequence, text_sequence
from ..core.logging_config import get_logger
from ..protocol.tree import UINode
from .collector import MutationCollector
from .handlers import HandlerRegistry
from .instances import Instance, RenderNode, TextInstance
from .serialize import serialize_tree

logger = get_logger(__name__)

UpdateMode = Literal["incremental", "full"]
Subscriber = Callable[[str, Any], None]


class RenderContainer:
    """
    Owns one instance tree, its handler registry and its collector.

    Subscribers receive ("mutations", batch) after each non-empty incremental
    commit, or ("full", tree) after every commit in full mode.
    """

    def __init__(self, registry: HandlerRegistry | None = None, mode: UpdateMode = "incremental") -> None:
        self.registry = registry or HandlerRegistry()
        self.collector = MutationCollector(self.registry)
        self.mode: UpdateMode = mode
        self._root: RenderNode | None = None
        self._node_ids = node_sequence()
        self._text_ids = text_sequence()
        self._subscribers: list[Subscriber] = []
        self._committing = False

    @property
    def root(self) -> RenderNode | None:
        return self._root

    @property
    def incremental(self) -> bool:
        return self.mode == "incremental"

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        """Subscribe to commit output. Returns an unsubscribe function."""
        self._subscribers.append(subscriber)
        return lambda: self._subscribers.remove(subscriber)

    # ------------------------------------------------------------------
    # Commit bracket
    # ------------------------------------------------------------------

    @contextmanager
    def commit(self) -> Iterator["RenderContainer"]:
        """
        Bracket one commit. No other commit may interleave.

        The batch is published even if the body raises, so the host sees
        exactly the changes that reached the instance tree.
        """
        if self._committing:
            raise RuntimeError("Commit already in progress")
        self._committing = True
        if self.incremental:
            self.collector.begin_commit()
        try:
            yield self
        finally:
            self._committing = False
            self._publish()

    def _publish(self) -> None:
        if self.incremental:
            batch = self.collector.flush_commit()
            if not batch:
                return
            logger.debug("commit_flushed", mutations=len(batch))
            self._notify("mutations", batch)
        else:
            self._notify("full", self.snapshot())

    def _notify(self, kind: str, payload: Any) -> None:
        for subscriber in list(self._subscribers):
            subscriber(kind, payload)

    def snapshot(self) -> UINode | None:
        """
        Serialize the whole attached tree.

        Incremental mode reuses the handler ids the host already knows; full
        mode starts from an empty registry.
        """
        if self._root is None:
            if not self.incremental:
                self.registry.clear()
            return None
        if self.incremental:
            return serialize_tree(self._root, self.registry, self.collector.ownership)
        self.registry.clear()
        self.collector.ownership.clear()
        return serialize_tree(self._root, self.registry, self.collector.ownership)

    def reset(self) -> None:
        """Forget the instance tree and every handler."""
        self._root = None
        self.registry.clear()
        self.collector.clear()

    # ------------------------------------------------------------------
    # Instances
    # ------------------------------------------------------------------

    def create_instance(self, node_type: str, props: Mapping[str, Any], key: Any = None) -> RenderNode:
        return RenderNode(self._node_ids.next(), node_type, dict(props), key)

    def create_text(self, text: str) -> TextInstance:
        return TextInstance(self._text_ids.next(), text)

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    def append_initial_child(self, parent: RenderNode, child: Instance) -> None:
        """Attach a child while building a detached subtree (not recorded)."""
        self._detach(child)
        child.parent = parent
        parent.children.append(child)

    def append_child(self, parent: RenderNode, child: Instance) -> None:
        if child.parent is parent:
            self._move(parent, child, None)
            return
        self._detach(child)
        child.parent = parent
        parent.children.append(child)
        if self._tracking(parent):
            self.collector.collect_append_child(parent, child)

    def insert_before(self, parent: RenderNode, child: Instance, before: Instance | None) -> None:
        """Insert `child` before `before`; an already-attached child is moved."""
        if before is None:
            self.append_child(parent, child)
            return
        if child is before:
            return
        if child.parent is parent:
            self._move(parent, child, before)
            return
        self._detach(child)
        child.parent = parent
        parent.children.insert(parent.index_of(before), child)
        if self._tracking(parent):
            self.collector.collect_insert_before(parent, child, before)

    def remove_child(self, parent: RenderNode, child: Instance) -> None:
        index = parent.index_of(child)
        tracking = self._tracking(parent)
        del parent.children[index]
        child.parent = None
        if tracking:
            self.collector.collect_remove(parent, child, index)

    def set_root(self, node: RenderNode) -> None:
        if not isinstance(node, RenderNode):
            raise TypeError("Root must be an element, not text")
        if node is self._root:
            return
        self.clear_root()
        self._detach(node)
        self._root = node
        if self.incremental:
            self.collector.collect_create(None, node, 0)

    def clear_root(self) -> None:
        old_root = self._root
        if old_root is None:
            return
        self._root = None
        if self.incremental:
            self.collector.collect_remove(None, old_root, 0)

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def commit_update(self, node: RenderNode, new_props: Mapping[str, Any]) -> None:
        old_props = node.props
        node.props = dict(new_props)
        if self._tracking(node):
            self.collector.collect_set_props(node, old_props, node.props)

    def commit_text_update(self, text: TextInstance, new_text: str) -> None:
        if text.text == new_text:
            return
        text.text = new_text
        if self._tracking(text):
            self.collector.collect_set_text(text, new_text)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _tracking(self, instance: Instance) -> bool:
        return self.incremental and self._is_attached(instance)

    def _is_attached(self, instance: Instance) -> bool:
        current: Instance = instance
        while current.parent is not None:
            current = current.parent
        return current is self._root and self._root is not None

    def _move(self, parent: RenderNode, child: Instance, before: Instance | None) -> None:
        snapshot = list(parent.children)
        del parent.children[parent.index_of(child)]
        index = parent.index_of(before) if before is not None else len(parent.children)
        parent.children.insert(index, child)

        if any(a is not b for a, b in zip(snapshot, parent.children)) and self._tracking(parent):
            self.collector.collect_reorder(parent, snapshot)

    def _detach(self, child: Instance) -> None:
        if child.parent is not None:
            self.remove_child(child.parent, child)
