"""
Mutation vocabulary for incremental UI updates.

Instead of sending the entire UINode tree on every commit, plugins send an
ordered batch of mutations describing only what changed, so the payload is
O(changes) instead of O(tree size). Order within a batch is significant.

Literal text children have no id of their own. They are addressed by
position: `SetText` names the parent and the index, and `Remove`/`Reorder`
use text keys ('#text:<index>') computed against the parent's children at
the moment the mutation is produced.
"""

from typing import Any, Union

import msgspec

from .tree import UINode


class _Mutation(msgspec.Struct, frozen=True, tag_field="type", rename="camel"):
    """Base for all mutation structs (tagged on 'type')."""


class Create(_Mutation, tag="create"):
    """Create a node (with its serialized subtree) at `index` in the parent.

    `parent_id` None replaces the root. `node_type` '#text' inserts a literal
    text child whose content is `props['text']`.
    """

    node_id: str
    node_type: str
    parent_id: str | None
    index: int
    props: dict[str, Any] = {}
    children: "tuple[UINode | str, ...]" = ()


class Remove(_Mutation, tag="remove"):
    """Remove a node (or text key) from its parent; None parent clears the root."""

    node_id: str
    parent_id: str | None


class SetProp(_Mutation, tag="setProp"):
    """Set a single prop."""

    node_id: str
    key: str
    value: Any


class RemoveProp(_Mutation, tag="removeProp"):
    """Remove a single prop."""

    node_id: str
    key: str


class SetText(_Mutation, tag="setText"):
    """Replace the literal text child at `index` of `parent_id`."""

    parent_id: str
    index: int
    text: str


class Reorder(_Mutation, tag="reorder"):
    """Rebuild a parent's children in the order of `child_ids`."""

    parent_id: str
    child_ids: tuple[str, ...]


Mutation = Union[Create, Remove, SetProp, RemoveProp, SetText, Reorder]
MutationBatch = list[Mutation]

_batch_encoder = msgspec.json.Encoder()
_batch_decoder = msgspec.json.Decoder(MutationBatch)


def encode_batch(batch: MutationBatch) -> bytes:
    """Encode a batch to JSON bytes."""
    return _batch_encoder.encode(batch)


def decode_batch(data: bytes | str) -> MutationBatch:
    """
    Decode a JSON batch.

    Raises:
        msgspec.DecodeError: If the payload is not a valid batch
    """
    return _batch_decoder.decode(data)


def batch_to_builtins(batch: MutationBatch) -> list[dict[str, Any]]:
    """Convert a batch to plain dicts and lists for embedding in RPC args."""
    return msgspec.json.decode(_batch_encoder.encode(batch))


def mutations_from_builtins(items: Any) -> tuple[MutationBatch, list[Any]]:
    """
    Convert plain dicts to mutations one by one.

    Returns:
        (valid mutations in order, items that failed validation)
    """
    if not isinstance(items, list):
        return [], [items]

    valid: MutationBatch = []
    invalid: list[Any] = []
    for item in items:
        try:
            valid.append(msgspec.convert(item, type=Mutation))
        except msgspec.ValidationError:
            invalid.append(item)
    return valid, invalid
