"""Tests for props serialization and the mutation collector."""

import pytest

from plugview.plugin.collector import MutationCollector
from plugview.plugin.handlers import HandlerRegistry
from plugview.plugin.instances import RenderNode, TextInstance
from plugview.plugin.serialize import serialize_props, serialize_tree
from plugview.protocol.mutations import (
    Create,
    Remove,
    RemoveProp,
    Reorder,
    SetProp,
    SetText,
)
from plugview.protocol.tree import UINode


def _node(node_id, node_type="div", props=None, *children):
    node = RenderNode(node_id, node_type, dict(props or {}))
    for child in children:
        child.parent = node
        node.children.append(child)
    return node


def _noop(*args):
    return None


# ============================================================================
# Serialization
# ============================================================================


@pytest.mark.unit
class TestSerializeProps:
    """Test props serialization."""

    def test_skips_framework_props(self, handler_registry):
        props = {"children": ["x"], "key": "k", "ref": object(), "title": "T"}
        assert serialize_props(props, handler_registry) == {"title": "T"}

    def test_event_handler_becomes_handler_id(self, handler_registry):
        """onClick is replaced by _onClickHandlerId."""
        wire = serialize_props({"onClick": _noop}, handler_registry)
        assert wire == {"_onClickHandlerId": "h_0"}
        assert handler_registry.has("h_0")

    def test_drops_non_event_callables(self, handler_registry):
        wire = serialize_props({"render": _noop, "label": "ok"}, handler_registry)
        assert wire == {"label": "ok"}
        assert len(handler_registry) == 0

    def test_drops_non_json_values(self, handler_registry):
        wire = serialize_props({"obj": object(), "n": 3, "nested": {"a": [1, None]}}, handler_registry)
        assert wire == {"n": 3, "nested": {"a": [1, None]}}

    def test_owned_ids_are_reused(self, handler_registry):
        owned = {}
        first = serialize_props({"onClick": _noop}, handler_registry, owned)
        second = serialize_props({"onClick": _noop}, handler_registry, owned)
        assert first == second == {"_onClickHandlerId": "h_0"}
        assert owned == {"onClick": "h_0"}
        assert len(handler_registry) == 1


@pytest.mark.unit
def test_serialize_tree(handler_registry):
    """Subtrees serialize to UINodes with text children kept inline."""
    root = _node(
        "node-0",
        "div",
        {"className": "app"},
        _node("node-1", "button", {"onClick": _noop}, TextInstance("text-0", "Go")),
        TextInstance("text-1", "tail"),
    )
    ownership = {}

    tree = serialize_tree(root, handler_registry, ownership)

    assert tree == UINode(
        id="node-0",
        type="div",
        props={"className": "app"},
        children=(
            UINode(id="node-1", type="button", props={"_onClickHandlerId": "h_0"}, children=("Go",)),
            "tail",
        ),
    )
    assert ownership["node-1"] == {"onClick": "h_0"}


@pytest.mark.unit
def test_serialize_tree_text_and_none(handler_registry):
    assert serialize_tree(None, handler_registry) is None
    assert serialize_tree(TextInstance("text-0", "hi"), handler_registry) == "hi"


# ============================================================================
# Collector
# ============================================================================


@pytest.fixture
def collector(handler_registry):
    collector = MutationCollector(handler_registry)
    collector.begin_commit()
    return collector


@pytest.mark.unit
class TestCommitBracket:
    """Test begin/flush bracketing."""

    def test_flush_returns_batch_in_order(self, collector):
        root = _node("node-0")
        collector.collect_set_props(root, {}, {"a": 1})
        collector.collect_set_props(root, {"a": 1}, {"a": 1, "b": 2})

        assert collector.in_commit
        assert collector.pending == 2
        batch = collector.flush_commit()

        assert batch == [
            SetProp(node_id="node-0", key="a", value=1),
            SetProp(node_id="node-0", key="b", value=2),
        ]
        assert not collector.in_commit
        assert collector.flush_commit() == []

    def test_clear_drops_everything(self, collector):
        collector.collect_create(None, _node("node-0", "div", {"onClick": _noop}), 0)
        collector.clear()
        assert collector.pending == 0
        assert collector.ownership == {}


@pytest.mark.unit
class TestStructure:
    """Test structural mutations."""

    def test_create_node_with_subtree(self, collector):
        parent = _node("node-0")
        child = _node("node-1", "ul", {}, _node("node-2", "li", {"onClick": _noop}, TextInstance("text-0", "one")))
        child.parent = parent
        parent.children.append(child)

        collector.collect_append_child(parent, child)
        (create,) = collector.flush_commit()

        assert create == Create(
            node_id="node-1",
            node_type="ul",
            parent_id="node-0",
            index=0,
            props={},
            children=(UINode(id="node-2", type="li", props={"_onClickHandlerId": "h_0"}, children=("one",)),),
        )
        assert collector.ownership["node-2"] == {"onClick": "h_0"}

    def test_create_text(self, collector):
        parent = _node("node-0", "p", {}, TextInstance("text-0", "a"))
        text = TextInstance("text-1", "b")
        text.parent = parent
        parent.children.append(text)

        collector.collect_append_child(parent, text)

        assert collector.flush_commit() == [
            Create(node_id="text-1", node_type="#text", parent_id="node-0", index=1, props={"text": "b"})
        ]

    def test_insert_before_uses_new_position(self, collector):
        first = _node("node-1")
        last = _node("node-2")
        parent = _node("node-0", "div", {}, first, last)
        inserted = _node("node-3")
        inserted.parent = parent
        parent.children.insert(1, inserted)

        collector.collect_insert_before(parent, inserted, last)

        (create,) = collector.flush_commit()
        assert create.index == 1

    def test_remove_retires_subtree_handlers(self, collector, handler_registry):
        """Removing a subtree unregisters every handler it owned."""
        inner = _node("node-2", "button", {"onClick": _noop})
        outer = _node("node-1", "div", {"onMouseEnter": _noop}, inner)
        parent = _node("node-0")
        outer.parent = parent
        parent.children.append(outer)
        collector.collect_append_child(parent, outer)
        assert len(handler_registry) == 2

        parent.children.remove(outer)
        collector.collect_remove(parent, outer, 0)

        batch = collector.flush_commit()
        assert batch[-1] == Remove(node_id="node-1", parent_id="node-0")
        assert len(handler_registry) == 0
        assert "node-1" not in collector.ownership
        assert "node-2" not in collector.ownership

    def test_remove_text_uses_text_key(self, collector):
        text = TextInstance("text-0", "x")
        parent = _node("node-0", "p", {}, _node("node-1"), text)
        parent.children.remove(text)

        collector.collect_remove(parent, text, 1)

        assert collector.flush_commit() == [Remove(node_id="#text:1", parent_id="node-0")]

    def test_reorder_keys_from_previous_order(self, collector):
        """Reorder keys are computed against the children before the move."""
        a = _node("node-1")
        text = TextInstance("text-0", "t")
        b = _node("node-2")
        parent = _node("node-0", "div", {}, a, text, b)
        before = list(parent.children)
        parent.children[:] = [b, a, text]

        collector.collect_reorder(parent, before)

        assert collector.flush_commit() == [
            Reorder(parent_id="node-0", child_ids=("node-2", "node-1", "#text:1"))
        ]

    def test_set_text_uses_parent_and_index(self, collector):
        text = TextInstance("text-0", "old")
        parent = _node("node-0", "span", {}, _node("node-1"), text)

        collector.collect_set_text(text, "new")

        assert collector.flush_commit() == [SetText(parent_id="node-0", index=1, text="new")]

    def test_set_text_on_detached_text_is_ignored(self, collector):
        collector.collect_set_text(TextInstance("text-0", "x"), "y")
        assert collector.flush_commit() == []


@pytest.mark.unit
class TestPropDiff:
    """Test per-key prop diffing."""

    def test_unchanged_props_emit_nothing(self, collector):
        node = _node("node-0")
        collector.collect_set_props(node, {"a": 1, "b": [1, 2]}, {"a": 1, "b": [1, 2]})
        assert collector.flush_commit() == []

    def test_changed_and_removed_props(self, collector):
        node = _node("node-0")
        collector.collect_set_props(node, {"a": 1, "b": 2}, {"a": 3})
        assert collector.flush_commit() == [
            RemoveProp(node_id="node-0", key="b"),
            SetProp(node_id="node-0", key="a", value=3),
        ]

    def test_type_change_is_a_change(self, collector):
        """1 and True are different values on the wire."""
        node = _node("node-0")
        collector.collect_set_props(node, {"v": 1}, {"v": True})
        assert collector.flush_commit() == [SetProp(node_id="node-0", key="v", value=True)]

    def test_prop_becoming_non_json_is_removed(self, collector):
        node = _node("node-0")
        collector.collect_set_props(node, {"v": 1}, {"v": object()})
        assert collector.flush_commit() == [RemoveProp(node_id="node-0", key="v")]

    def test_new_handler(self, collector, handler_registry):
        node = _node("node-0")
        collector.collect_set_props(node, {}, {"onClick": _noop})
        assert collector.flush_commit() == [SetProp(node_id="node-0", key="_onClickHandlerId", value="h_0")]
        assert collector.ownership["node-0"] == {"onClick": "h_0"}

    def test_same_handler_is_kept(self, collector, handler_registry):
        node = _node("node-0")
        collector.collect_set_props(node, {}, {"onClick": _noop})
        collector.flush_commit()
        collector.begin_commit()

        collector.collect_set_props(node, {"onClick": _noop}, {"onClick": _noop, "title": "x"})

        assert collector.flush_commit() == [SetProp(node_id="node-0", key="title", value="x")]
        assert handler_registry.has("h_0")

    def test_rebinding_retires_previous_handler(self, collector, handler_registry):
        """A new callable gets a fresh id and the old id stops resolving."""
        def other(*args):
            return None

        node = _node("node-0")
        collector.collect_set_props(node, {}, {"onClick": _noop})
        collector.flush_commit()
        collector.begin_commit()

        collector.collect_set_props(node, {"onClick": _noop}, {"onClick": other})

        assert collector.flush_commit() == [SetProp(node_id="node-0", key="_onClickHandlerId", value="h_1")]
        assert not handler_registry.has("h_0")
        assert handler_registry.has("h_1")

    def test_removed_handler_prop(self, collector, handler_registry):
        node = _node("node-0")
        collector.collect_set_props(node, {}, {"onClick": _noop})
        collector.flush_commit()
        collector.begin_commit()

        collector.collect_set_props(node, {"onClick": _noop}, {})

        assert collector.flush_commit() == [RemoveProp(node_id="node-0", key="_onClickHandlerId")]
        assert len(handler_registry) == 0
        assert collector.ownership["node-0"] == {}


@pytest.mark.unit
def test_collector_uses_given_registry():
    registry = HandlerRegistry()
    collector = MutationCollector(registry)
    assert collector.registry is registry
