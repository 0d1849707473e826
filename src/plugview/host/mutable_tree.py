"""
Mutable Tree

Host-side replica of the plugin's UI tree. The replica is immutable from the
outside: every applied mutation produces new node objects for the changed
node and each of its ancestors up to the root, while untouched subtrees keep
their identity. Rendering collaborators can therefore compare by identity to
skip unchanged branches.

A mutation that references an unknown node is dropped on its own; the rest
of the batch still applies.
"""

from dataclasses import dataclass, field
from typing import Any, Callable

import msgspec

from ..core.errors import InvalidMutationError
from ..core.logging_config import get_logger
from ..protocol.mutations import (
    Create,
    Mutation,
    Remove,
    RemoveProp,
    Reorder,
    SetProp,
    SetText,
)
from ..protocol.tree import (
    TEXT_NODE_TYPE,
    Child,
    UINode,
    check_tree,
    child_key,
    iter_nodes,
    parse_text_key,
)

logger = get_logger(__name__)

TreeListener = Callable[[UINode | None], None]
InvalidMutationListener = Callable[[Mutation, InvalidMutationError], None]


@dataclass
class ApplyResult:
    """Outcome of one batch."""

    applied: int = 0
    dropped: list[tuple[Mutation, InvalidMutationError]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.dropped


class MutableTree:
    """Copy-on-write replica indexed by node id."""

    def __init__(self, root: UINode | None = None) -> None:
        self._root: UINode | None = None
        self._nodes: dict[str, UINode] = {}
        self._parents: dict[str, str | None] = {}
        self._replaced_listeners: list[TreeListener] = []
        self._applied_listeners: list[TreeListener] = []
        self._invalid_listeners: list[InvalidMutationListener] = []
        if root is not None:
            self._set_root(root)

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def root(self) -> UINode | None:
        return self._root

    def get_node(self, node_id: str) -> UINode | None:
        return self._nodes.get(node_id)

    def parent_of(self, node_id: str) -> str | None:
        return self._parents.get(node_id)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def on_tree_replaced(self, listener: TreeListener) -> Callable[[], None]:
        self._replaced_listeners.append(listener)
        return lambda: self._replaced_listeners.remove(listener)

    def on_mutations_applied(self, listener: TreeListener) -> Callable[[], None]:
        self._applied_listeners.append(listener)
        return lambda: self._applied_listeners.remove(listener)

    def on_invalid_mutation(self, listener: InvalidMutationListener) -> Callable[[], None]:
        self._invalid_listeners.append(listener)
        return lambda: self._invalid_listeners.remove(listener)

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def init(self, root: UINode | None) -> None:
        """
        Replace the whole replica (full-tree update or resync).

        Raises:
            InvalidMutationError: If the tree contains a duplicate node id
        """
        self._nodes.clear()
        self._parents.clear()
        self._root = None
        if root is not None:
            self._set_root(root)
        logger.debug("tree_replaced", nodes=len(self._nodes))
        for listener in list(self._replaced_listeners):
            listener(self._root)

    def clear(self) -> None:
        """Drop the replica without notifying."""
        self._nodes.clear()
        self._parents.clear()
        self._root = None

    def apply(self, batch: list[Mutation]) -> ApplyResult:
        """
        Apply a batch in order.

        An empty batch changes nothing, keeps the root object and notifies
        nobody.
        """
        result = ApplyResult()
        if not batch:
            return result

        for mutation in batch:
            try:
                self._apply_one(mutation)
                result.applied += 1
            except InvalidMutationError as e:
                result.dropped.append((mutation, e))
                logger.warning(
                    "mutation_dropped",
                    mutation=type(mutation).__name__,
                    node_id=e.node_id,
                    error=str(e),
                )
                for listener in list(self._invalid_listeners):
                    listener(mutation, e)

        if result.applied:
            for listener in list(self._applied_listeners):
                listener(self._root)
        return result

    # ------------------------------------------------------------------
    # Mutation handlers
    # ------------------------------------------------------------------

    def _apply_one(self, mutation: Mutation) -> None:
        if isinstance(mutation, Create):
            self._create(mutation)
        elif isinstance(mutation, Remove):
            self._remove(mutation)
        elif isinstance(mutation, SetProp):
            node = self._require(mutation.node_id)
            self._commit(msgspec.structs.replace(node, props={**node.props, mutation.key: mutation.value}))
        elif isinstance(mutation, RemoveProp):
            node = self._require(mutation.node_id)
            if mutation.key in node.props:
                props = {k: v for k, v in node.props.items() if k != mutation.key}
                self._commit(msgspec.structs.replace(node, props=props))
        elif isinstance(mutation, SetText):
            self._set_text(mutation)
        elif isinstance(mutation, Reorder):
            self._reorder(mutation)
        else:
            raise InvalidMutationError(f"Unknown mutation: {mutation!r}")

    def _create(self, m: Create) -> None:
        if m.parent_id is None:
            if m.node_type == TEXT_NODE_TYPE:
                raise InvalidMutationError("Root cannot be text", m.node_id)
            node = UINode(id=m.node_id, type=m.node_type, props=dict(m.props), children=m.children)
            try:
                check_tree(node)
            except ValueError as e:
                raise InvalidMutationError(str(e), m.node_id) from e
            self.clear()
            self._set_root(node)
            return

        parent = self._require(m.parent_id)
        child: Child
        if m.node_type == TEXT_NODE_TYPE:
            text = m.props.get("text", "")
            if not isinstance(text, str):
                raise InvalidMutationError("Text create without string text", m.node_id)
            child = text
        else:
            child = UINode(id=m.node_id, type=m.node_type, props=dict(m.props), children=m.children)
            self._check_new_ids(child)

        index = max(0, min(m.index, len(parent.children)))
        children = parent.children[:index] + (child,) + parent.children[index:]
        if isinstance(child, UINode):
            self._index(child, parent.id)
        self._commit(msgspec.structs.replace(parent, children=children))

    def _remove(self, m: Remove) -> None:
        if m.parent_id is None:
            if self._root is None or self._root.id != m.node_id:
                raise InvalidMutationError(f"Root is not {m.node_id}", m.node_id)
            self.clear()
            return

        parent = self._require(m.parent_id)
        text_index = parse_text_key(m.node_id)
        if text_index is not None:
            if not (0 <= text_index < len(parent.children)) or not isinstance(parent.children[text_index], str):
                raise InvalidMutationError(f"No text at {m.node_id} in {m.parent_id}", m.node_id)
            index = text_index
        else:
            index = self._position(parent, m.node_id)
            self._unindex(parent.children[index])

        children = parent.children[:index] + parent.children[index + 1:]
        self._commit(msgspec.structs.replace(parent, children=children))

    def _set_text(self, m: SetText) -> None:
        parent = self._require(m.parent_id)
        if not (0 <= m.index < len(parent.children)) or not isinstance(parent.children[m.index], str):
            raise InvalidMutationError(f"No text at index {m.index} in {m.parent_id}", m.parent_id)
        children = parent.children[:m.index] + (m.text,) + parent.children[m.index + 1:]
        self._commit(msgspec.structs.replace(parent, children=children))

    def _reorder(self, m: Reorder) -> None:
        parent = self._require(m.parent_id)
        by_key = {child_key(child, i): child for i, child in enumerate(parent.children)}

        ordered: list[Child] = []
        taken: set[str] = set()
        for key in m.child_ids:
            if key in by_key and key not in taken:
                ordered.append(by_key[key])
                taken.add(key)

        # Children the batch did not mention keep their relative order at the end
        for i, child in enumerate(parent.children):
            if child_key(child, i) not in taken:
                ordered.append(child)

        self._commit(msgspec.structs.replace(parent, children=tuple(ordered)))

    # ------------------------------------------------------------------
    # Copy-on-write plumbing
    # ------------------------------------------------------------------

    def _require(self, node_id: str) -> UINode:
        node = self._nodes.get(node_id)
        if node is None:
            raise InvalidMutationError(f"Unknown node: {node_id}", node_id)
        return node

    @staticmethod
    def _position(parent: UINode, node_id: str) -> int:
        for i, child in enumerate(parent.children):
            if not isinstance(child, str) and child.id == node_id:
                return i
        raise InvalidMutationError(f"{node_id} is not a child of {parent.id}", node_id)

    def _commit(self, node: UINode) -> None:
        """Store a new version of an indexed node and rebuild its ancestors."""
        self._nodes[node.id] = node
        parent_id = self._parents.get(node.id)
        while parent_id is not None:
            parent = self._nodes[parent_id]
            children = tuple(
                node if not isinstance(child, str) and child.id == node.id else child
                for child in parent.children
            )
            node = msgspec.structs.replace(parent, children=children)
            self._nodes[parent_id] = node
            parent_id = self._parents.get(parent_id)
        self._root = node

    def _set_root(self, root: UINode) -> None:
        self._check_new_ids(root)
        self._index(root, None)
        self._root = root

    def _check_new_ids(self, subtree: UINode) -> None:
        seen: set[str] = set()
        for node in iter_nodes(subtree):
            if node.id in self._nodes or node.id in seen:
                raise InvalidMutationError(f"Duplicate node id: {node.id}", node.id)
            seen.add(node.id)

    def _index(self, subtree: UINode, parent_id: str | None) -> None:
        stack: list[tuple[UINode, str | None]] = [(subtree, parent_id)]
        while stack:
            node, parent = stack.pop()
            self._nodes[node.id] = node
            self._parents[node.id] = parent
            for child in node.children:
                if not isinstance(child, str):
                    stack.append((child, node.id))

    def _unindex(self, subtree: Any) -> None:
        if isinstance(subtree, str):
            return
        for node in iter_nodes(subtree):
            self._nodes.pop(node.id, None)
            self._parents.pop(node.id, None)
