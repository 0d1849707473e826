"""Wire protocol: tree model, events, mutations and RPC framing."""

from .events import (
    EVENT_PROPS,
    extract_event_name,
    handler_id_prop,
    is_event_prop,
    is_handler_id_prop,
)
from .mutations import (
    Create,
    Mutation,
    MutationBatch,
    Remove,
    RemoveProp,
    Reorder,
    SetProp,
    SetText,
    batch_to_builtins,
    decode_batch,
    encode_batch,
    mutations_from_builtins,
)
from .rpc import (
    PROTOCOL_VERSION,
    MessageType,
    Method,
    RPCErrorPayload,
    RPCMessage,
    decode_frame,
    decode_frames,
    encode_message,
)
from .tree import (
    LAYOUT_TAGS,
    TEXT_NODE_TYPE,
    Child,
    UINode,
    check_tree,
    find_node,
    is_layout_tag,
    iter_nodes,
    tree_from_builtins,
    tree_to_builtins,
)

__all__ = [
    "EVENT_PROPS",
    "extract_event_name",
    "handler_id_prop",
    "is_event_prop",
    "is_handler_id_prop",
    "Create",
    "Mutation",
    "MutationBatch",
    "Remove",
    "RemoveProp",
    "Reorder",
    "SetProp",
    "SetText",
    "batch_to_builtins",
    "decode_batch",
    "encode_batch",
    "mutations_from_builtins",
    "PROTOCOL_VERSION",
    "MessageType",
    "Method",
    "RPCErrorPayload",
    "RPCMessage",
    "decode_frame",
    "decode_frames",
    "encode_message",
    "LAYOUT_TAGS",
    "TEXT_NODE_TYPE",
    "Child",
    "UINode",
    "check_tree",
    "find_node",
    "is_layout_tag",
    "iter_nodes",
    "tree_from_builtins",
    "tree_to_builtins",
]
