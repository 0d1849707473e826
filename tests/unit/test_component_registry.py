"""Tests for the host-side component registry."""

import pytest

from plugview.host.registry import ComponentRegistry, Renderable
from plugview.protocol.tree import UINode


class ChartRenderer:
    def render(self, node, children):
        return f"<chart {node.props.get('kind')}>{''.join(map(str, children))}</chart>"


@pytest.fixture
def registry():
    return ComponentRegistry()


@pytest.mark.unit
class TestComponentRegistry:
    """Test registration and lookup."""

    def test_register_and_get(self, registry):
        renderer = ChartRenderer()
        registry.register("Chart", renderer, {"category": "data"})

        assert registry.has("Chart")
        assert registry.get("Chart") is renderer
        assert registry.get_entry("Chart").metadata == {"category": "data"}
        assert registry.list_types() == ["Chart"]
        assert len(registry) == 1

    def test_renderer_satisfies_protocol(self):
        assert isinstance(ChartRenderer(), Renderable)

    def test_register_replaces(self, registry):
        first, second = ChartRenderer(), ChartRenderer()
        registry.register("Chart", first)
        registry.register("Chart", second)
        assert registry.get("Chart") is second
        assert len(registry) == 1

    def test_unregister_and_clear(self, registry):
        registry.register("Chart", ChartRenderer())
        registry.register("Table", ChartRenderer())

        assert registry.unregister("Chart") is True
        assert registry.unregister("Chart") is False
        assert registry.list_types() == ["Table"]

        registry.clear()
        assert len(registry) == 0

    def test_resolve_layout_tag_without_renderer(self, registry):
        assert registry.resolve(UINode(id="n", type="div")) is None

    def test_resolve_unknown_product_type(self, registry):
        assert registry.resolve(UINode(id="n", type="Gauge")) is None


@pytest.mark.unit
class TestRenderTree:
    """Test bottom-up rendering."""

    def test_mixed_tree(self, registry):
        registry.register("Chart", ChartRenderer())
        tree = UINode(
            id="node-0",
            type="div",
            props={"className": "panel"},
            children=("Title", UINode(id="node-1", type="Chart", props={"kind": "bar"}, children=("x",))),
        )

        assert registry.render_tree(tree) == {
            "type": "div",
            "props": {"className": "panel"},
            "children": ["Title", "<chart bar>x</chart>"],
        }

    def test_text_and_empty(self, registry):
        assert registry.render_tree("plain") == "plain"
        assert registry.render_tree(None) is None
