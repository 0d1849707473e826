"""Property tests: replaying mutation batches reproduces the plugin's tree."""

import pytest
from hypothesis import HealthCheck, given, settings as hypothesis_settings, strategies as st

from plugview.host.mutable_tree import MutableTree
from plugview.plugin.reconciler import Element, Reconciler, h
from plugview.plugin.renderer import RenderContainer
from plugview.protocol.events import is_handler_id_prop
from plugview.protocol.tree import UINode

TAGS = st.sampled_from(["div", "span", "li", "Chart"])
PROP_VALUES = st.one_of(st.integers(0, 2), st.booleans(), st.text(alphabet="ab", max_size=2), st.none())
PROPS = st.dictionaries(st.sampled_from(["title", "n", "flag"]), PROP_VALUES, max_size=2)
KEYS = ["a", "b", "c", "d"]


def _click(*args):
    return None


def _hover(*args):
    return None


@st.composite
def elements(draw, depth=0):
    """Random element trees with unique keys among keyed siblings."""
    props = draw(PROPS)
    handler = draw(st.sampled_from([None, _click, _hover]))
    if handler is not None:
        props["onClick"] = handler

    children = []
    if depth < 3:
        keys = draw(st.permutations(KEYS))
        for i in range(draw(st.integers(0, 3))):
            kind = draw(st.sampled_from(["text", "element", "keyed"]))
            if kind == "text":
                children.append(draw(st.text(alphabet="xyz", max_size=2)))
                continue
            child = draw(elements(depth=depth + 1))
            if kind == "keyed":
                child = Element(child.type, child.props, child.children, keys[i])
            children.append(child)

    return h(draw(TAGS), props, *children)


def _shape(node):
    """Tree without ids or handler id values, for comparing independent renders."""
    if isinstance(node, str) or node is None:
        return node
    props = {k: ("<handler>" if is_handler_id_prop(k) else v) for k, v in node.props.items()}
    return (node.type, tuple(sorted(props.items(), key=lambda item: item[0])), tuple(_shape(c) for c in node.children))


def _render_incremental(trees):
    container = RenderContainer(mode="incremental")
    reconciler = Reconciler(container)
    replica = MutableTree()
    batches = []
    container.subscribe(lambda kind, payload: batches.append(payload))

    for tree in trees:
        reconciler.render(tree)
        for batch in batches:
            result = replica.apply(batch)
            assert result.ok, result.dropped
        batches.clear()

    return container, replica


@pytest.mark.integration
@hypothesis_settings(max_examples=75, deadline=None, suppress_health_check=[HealthCheck.too_slow, HealthCheck.data_too_large])
@given(first=elements(), second=elements())
def test_replica_matches_snapshot(first, second):
    """After T1 then T2, the replica equals the plugin's serialized tree."""
    container, replica = _render_incremental([first, second])
    assert replica.root == container.snapshot()


@pytest.mark.integration
@hypothesis_settings(max_examples=75, deadline=None, suppress_health_check=[HealthCheck.too_slow, HealthCheck.data_too_large])
@given(first=elements(), second=elements())
def test_replica_matches_fresh_render(first, second):
    """Incremental updates end in the same shape as rendering T2 from scratch."""
    _, replica = _render_incremental([first, second])

    fresh = RenderContainer(mode="full")
    trees = []
    fresh.subscribe(lambda kind, payload: trees.append(payload))
    Reconciler(fresh).render(second)

    assert _shape(replica.root) == _shape(trees[-1])


@pytest.mark.integration
@hypothesis_settings(max_examples=50, deadline=None)
@given(trees=st.lists(elements(), min_size=1, max_size=4))
def test_handlers_match_tree(trees):
    """Every handler id in the replica resolves; no retired handler lingers."""
    container, replica = _render_incremental(trees)

    referenced = set()
    stack = [replica.root] if replica.root is not None else []
    while stack:
        node = stack.pop()
        referenced.update(v for k, v in node.props.items() if is_handler_id_prop(k))
        stack.extend(c for c in node.children if isinstance(c, UINode))

    assert all(container.registry.has(handler_id) for handler_id in referenced)
    assert len(container.registry) == len(referenced)
