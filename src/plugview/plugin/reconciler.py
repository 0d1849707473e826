"""
Elements and a small keyed reconciler.

`h(type, props, *children)` describes UI; `Reconciler.render(element)` diffs
the description against the live instances of a RenderContainer and issues
the host-config calls for one commit. Children are matched by their `key`
prop when present, otherwise by position among unkeyed siblings. A type
change remounts the subtree.

Function components are plain callables taking props (with `children`) and
returning an element.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Callable, Iterable, Union

from .instances import Instance, RenderNode, TextInstance
from .renderer import RenderContainer

Component = Callable[[dict[str, Any]], "Element | None"]


@dataclass(frozen=True)
class Element:
    """Immutable UI description."""

    type: Union[str, Component]
    props: dict[str, Any] = field(default_factory=dict)
    children: tuple["Element | str", ...] = ()
    key: Any = None


Node = Union[Element, str]


def _flatten(children: Iterable[Any]) -> Iterable[Node]:
    for child in children:
        if child is None or isinstance(child, bool):
            continue
        if isinstance(child, (list, tuple)):
            yield from _flatten(child)
        elif isinstance(child, Element):
            yield child
        else:
            yield str(child)


def h(node_type: Union[str, Component], props: dict[str, Any] | None = None, *children: Any) -> Element:
    """
    Build an element.

    None and booleans are skipped, nested lists are flattened, and any other
    non-element child is rendered as text.
    """
    props = dict(props or {})
    key = props.pop("key", None)
    return Element(type=node_type, props=props, children=tuple(_flatten(children)), key=key)


def _same_props(old: dict[str, Any], new: dict[str, Any]) -> bool:
    """Key-wise comparison that tells 1 from True."""
    if old.keys() != new.keys():
        return False
    return all(type(old[k]) is type(new[k]) and old[k] == new[k] for k in old)


def resolve(element: Element | None) -> Element | None:
    """Expand function components until a host element (string type) remains."""
    # The key written at the call site identifies the slot among siblings
    key = element.key if element is not None else None
    while element is not None and callable(element.type):
        element = element.type({**element.props, "children": element.children})
    if element is not None and key is not None and element.key != key:
        element = replace(element, key=key)
    return element


class Reconciler:
    """Drives a RenderContainer from element trees."""

    def __init__(self, container: RenderContainer) -> None:
        self.container = container

    def render(self, element: Element | None) -> None:
        """Reconcile the container with `element` in one commit."""
        with self.container.commit():
            element = resolve(element)
            root = self.container.root

            if element is None:
                self.container.clear_root()
            elif root is not None and self._compatible(root, element):
                self._update(root, element)
            else:
                self.container.set_root(self._mount(element))

    # ------------------------------------------------------------------

    def _mount(self, element: Element) -> RenderNode:
        node = self.container.create_instance(element.type, element.props, element.key)
        for child in element.children:
            self.container.append_initial_child(node, self._mount_child(child))
        return node

    def _mount_child(self, child: Node) -> Instance:
        if isinstance(child, str):
            return self.container.create_text(child)
        resolved = resolve(child)
        if resolved is None:
            # Component rendered nothing; keep position with empty text
            return self.container.create_text("")
        return self._mount(resolved)

    @staticmethod
    def _compatible(instance: Instance, element: Element) -> bool:
        return (
            isinstance(instance, RenderNode)
            and instance.type == element.type
            and instance.key == element.key
        )

    def _update(self, node: RenderNode, element: Element) -> None:
        if not _same_props(node.props, element.props):
            self.container.commit_update(node, element.props)
        self._reconcile_children(node, element.children)

    def _reconcile_children(self, parent: RenderNode, children: tuple[Node, ...]) -> None:
        old = list(parent.children)
        keyed = {c.key: c for c in old if isinstance(c, RenderNode) and c.key is not None}
        unkeyed = [c for c in old if not (isinstance(c, RenderNode) and c.key is not None)]

        desired: list[Instance] = []
        reused: set[int] = set()
        position = 0

        for child in children:
            if isinstance(child, str):
                candidate = unkeyed[position] if position < len(unkeyed) else None
                position += 1
                if isinstance(candidate, TextInstance):
                    self.container.commit_text_update(candidate, child)
                    desired.append(candidate)
                    reused.add(id(candidate))
                else:
                    desired.append(self.container.create_text(child))
                continue

            element = resolve(child)
            if element is None:
                candidate = unkeyed[position] if position < len(unkeyed) else None
                position += 1
                if isinstance(candidate, TextInstance):
                    self.container.commit_text_update(candidate, "")
                    desired.append(candidate)
                    reused.add(id(candidate))
                else:
                    desired.append(self.container.create_text(""))
                continue

            if element.key is not None:
                candidate = keyed.get(element.key)
            else:
                candidate = unkeyed[position] if position < len(unkeyed) else None
                position += 1

            if candidate is not None and id(candidate) not in reused and self._compatible(candidate, element):
                self._update(candidate, element)
                desired.append(candidate)
                reused.add(id(candidate))
            else:
                desired.append(self._mount(element))

        # Removals first, in current positions
        for child in old:
            if id(child) not in reused:
                self.container.remove_child(parent, child)

        # Then moves and insertions, left to right
        for index, child in enumerate(desired):
            current = parent.children[index] if index < len(parent.children) else None
            if current is child:
                continue
            if current is None:
                self.container.append_child(parent, child)
            else:
                self.container.insert_before(parent, child, current)
