"""
Event props and handler-id prop names.

Callables cannot cross the boundary; an event prop such as `onClick` is sent
as `_onClickHandlerId` holding an opaque handler id.
"""

EVENT_PROPS: tuple[str, ...] = (
    "onClick",
    "onChange",
    "onInput",
    "onSubmit",
    "onFocus",
    "onBlur",
    "onKeyDown",
    "onKeyUp",
    "onMouseEnter",
    "onMouseLeave",
)

_HANDLER_ID_PREFIX = "_"
_HANDLER_ID_SUFFIX = "HandlerId"


def is_event_prop(key: str) -> bool:
    """Check if a prop name looks like an event handler ('on' + uppercase)."""
    return len(key) > 2 and key.startswith("on") and key[2].isupper()


def handler_id_prop(event_prop: str) -> str:
    """'onClick' -> '_onClickHandlerId'."""
    return f"{_HANDLER_ID_PREFIX}{event_prop}{_HANDLER_ID_SUFFIX}"


def is_handler_id_prop(prop_name: str) -> bool:
    """'_onClickHandlerId' -> True."""
    return (
        prop_name.startswith(_HANDLER_ID_PREFIX)
        and prop_name.endswith(_HANDLER_ID_SUFFIX)
        and len(prop_name) > len(_HANDLER_ID_PREFIX) + len(_HANDLER_ID_SUFFIX)
    )


def extract_event_name(prop_name: str) -> str | None:
    """'_onClickHandlerId' -> 'onClick', None if not a handler-id prop."""
    if not is_handler_id_prop(prop_name):
        return None
    event = prop_name[len(_HANDLER_ID_PREFIX):-len(_HANDLER_ID_SUFFIX)]
    return event if is_event_prop(event) else None
