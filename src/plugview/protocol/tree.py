"""
UI tree model shared by plugin and host.

A UINode is the protocol-level representation of a UI element:
- `id` is stable across renders of the same logical element
- `type` is a layout tag or a product-defined primitive
- `props` holds only JSON values (handler ids are plain strings)
- `children` mixes nested nodes and literal text
"""

from typing import Any, Iterator, Union

import msgspec

JSONValue = Union[None, bool, int, float, str, list[Any], dict[str, Any]]

# Node type used by mutations that create a literal text child
TEXT_NODE_TYPE = "#text"
_TEXT_KEY_PREFIX = "#text:"

LAYOUT_TAGS: tuple[str, ...] = (
    "div",
    "span",
    "p",
    "section",
    "header",
    "footer",
    "nav",
    "main",
    "aside",
    "article",
    "ul",
    "ol",
    "li",
    "br",
    "hr",
    "h1",
    "h2",
    "h3",
    "h4",
    "h5",
    "h6",
    "button",
    "input",
    "textarea",
    "select",
    "option",
    "label",
    "form",
    "a",
    "img",
    "table",
    "thead",
    "tbody",
    "tr",
    "th",
    "td",
    "strong",
    "em",
    "code",
    "pre",
)


class UINode(msgspec.Struct, frozen=True):
    """Immutable UI node. Equality is structural."""

    id: str
    type: str
    props: dict[str, Any] = {}
    children: "tuple[UINode | str, ...]" = ()


Child = Union[UINode, str]


def is_layout_tag(node_type: str) -> bool:
    """Check if a type string is a layout tag."""
    return node_type in LAYOUT_TAGS


def text_key(index: int) -> str:
    """Positional key of a literal text child: '#text:<index>'."""
    return f"{_TEXT_KEY_PREFIX}{index}"


def parse_text_key(key: str) -> int | None:
    """Return the index encoded in a text key, None for node ids."""
    if not key.startswith(_TEXT_KEY_PREFIX):
        return None
    try:
        return int(key[len(_TEXT_KEY_PREFIX):])
    except ValueError:
        return None


def child_key(child: Child, index: int) -> str:
    """Key of a child within its parent: node id or positional text key."""
    if isinstance(child, str):
        return text_key(index)
    return child.id


def iter_nodes(root: UINode | None) -> Iterator[UINode]:
    """Depth-first, pre-order iteration over every node (text excluded)."""
    if root is None:
        return
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        for child in reversed(node.children):
            if not isinstance(child, str):
                stack.append(child)


def find_node(root: UINode | None, node_id: str) -> UINode | None:
    """Find a node by id (linear walk)."""
    for node in iter_nodes(root):
        if node.id == node_id:
            return node
    return None


def check_tree(root: UINode | None) -> None:
    """
    Verify that every node id is unique.

    Raises:
        ValueError: If an id appears twice (shared node or cycle)
    """
    seen: set[str] = set()
    for node in iter_nodes(root):
        if node.id in seen:
            raise ValueError(f"Duplicate node id in tree: {node.id}")
        seen.add(node.id)


_encoder = msgspec.json.Encoder()


def tree_to_builtins(root: UINode | None) -> dict[str, Any] | None:
    """Convert a tree to plain dicts/lists (children as lists) for JSON encoding."""
    if root is None:
        return None
    return msgspec.json.decode(_encoder.encode(root))


def tree_from_builtins(data: Any) -> UINode | None:
    """
    Build a tree from plain dicts/lists.

    Raises:
        msgspec.ValidationError: If the data does not describe a UINode
    """
    if data is None:
        return None
    return msgspec.convert(data, type=UINode)
