"""Live render instances owned by a RenderContainer."""

from typing import Any, Union


class RenderNode:
    """Element instance: raw props (callables included) and ordered children."""

    __slots__ = ("id", "type", "props", "children", "parent", "key")

    def __init__(self, node_id: str, node_type: str, props: dict[str, Any], key: Any = None) -> None:
        self.id = node_id
        self.type = node_type
        self.props = props
        self.children: list[Instance] = []
        self.parent: RenderNode | None = None
        self.key = key

    def index_of(self, child: "Instance") -> int:
        """Position of `child` by identity."""
        for i, candidate in enumerate(self.children):
            if candidate is child:
                return i
        raise ValueError(f"{child!r} is not a child of {self.id}")

    def __repr__(self) -> str:
        return f"RenderNode(id={self.id!r}, type={self.type!r}, children={len(self.children)})"


class TextInstance:
    """Literal text child."""

    __slots__ = ("id", "text", "parent")

    def __init__(self, text_id: str, text: str) -> None:
        self.id = text_id
        self.text = text
        self.parent: RenderNode | None = None

    def __repr__(self) -> str:
        return f"TextInstance(id={self.id!r}, text={self.text!r})"


Instance = Union[RenderNode, TextInstance]
