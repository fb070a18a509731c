"""
Node decoder.

Classifies RLP-encoded trie nodes into typed values. Decoding is pure: it
looks only at the bytes it is given and never at storage.

Encoded shapes:
- empty string         -> EmptyNode
- [path, value|child]  -> LeafNode or ExtensionNode (hex-prefix flag decides)
- [c0 .. c15, value]   -> BranchNode
"""

from typing import Any, List, Optional

import rlp
from rlp.exceptions import DecodingError

from txtrie.errors import InvalidChildSizeError, MalformedNodeError
from .nibbles import NibblePath, decode_hex_prefix, encode_hex_prefix
from .nodes import (
    BRANCH_WIDTH,
    EMPTY_REF,
    HASH_LENGTH,
    BranchNode,
    ChildRef,
    EmptyNode,
    EmptyRef,
    ExtensionNode,
    HashRef,
    InlineRef,
    LeafNode,
    TrieNode,
)

# Index reported for the single child of an extension node
EXTENSION_CHILD_INDEX = 1


def decode_node(node_hash: Optional[bytes], data: bytes) -> TrieNode:
    """
    Decode an encoded trie node.

    Args:
        node_hash: Hash the bytes were stored under (used in error reports)
        data: RLP encoding of the node

    Returns:
        Typed trie node

    Raises:
        MalformedNodeError: Invalid RLP or an unknown node shape
        InvalidChildSizeError: A child reference of invalid width
    """
    try:
        item = rlp.decode(data, strict=True)
    except DecodingError as e:
        raise MalformedNodeError(node_hash, f"invalid node encoding: {e}") from e

    return decode_raw_node(node_hash, item)


def decode_raw_node(node_hash: Optional[bytes], item: Any) -> TrieNode:
    """Classify an already RLP-decoded item."""
    if isinstance(item, bytes):
        if item == b"":
            return EmptyNode()
        raise MalformedNodeError(node_hash, "node is a string, not a list")

    if not isinstance(item, (list, tuple)):
        raise MalformedNodeError(node_hash, f"unexpected item type {type(item).__name__}")

    if len(item) == 2:
        return _decode_short(node_hash, item)
    if len(item) == BRANCH_WIDTH + 1:
        return _decode_branch(node_hash, item)

    raise MalformedNodeError(node_hash, f"invalid number of list elements: {len(item)}")


def _decode_short(node_hash: Optional[bytes], item: List[Any]) -> TrieNode:
    raw_path, raw_second = item

    if not isinstance(raw_path, bytes):
        raise MalformedNodeError(node_hash, "short node path is not a string")
    try:
        path = decode_hex_prefix(raw_path)
    except ValueError as e:
        raise MalformedNodeError(node_hash, f"invalid short node path: {e}") from e

    if path.terminated:
        if not isinstance(raw_second, bytes):
            raise MalformedNodeError(node_hash, "leaf value is not a string")
        return LeafNode(path=path, value=raw_second)

    if not path.nibbles:
        raise MalformedNodeError(node_hash, "extension with empty path")

    child = _decode_ref(node_hash, raw_second, EXTENSION_CHILD_INDEX)
    if isinstance(child, EmptyRef):
        raise MalformedNodeError(node_hash, "extension with empty child")

    return ExtensionNode(path=path, child=child)


def _decode_branch(node_hash: Optional[bytes], item: List[Any]) -> BranchNode:
    children = tuple(
        _decode_ref(node_hash, item[index], index)
        for index in range(BRANCH_WIDTH)
    )

    raw_value = item[BRANCH_WIDTH]
    if not isinstance(raw_value, bytes):
        raise MalformedNodeError(node_hash, "branch value is not a string")

    return BranchNode(children=children, value=raw_value or None)


def _decode_ref(node_hash: Optional[bytes], raw: Any, index: int) -> ChildRef:
    if isinstance(raw, (list, tuple)):
        # Embedded nodes must be shorter than a hash, or they would be stored
        # by reference.
        size = len(rlp.encode(raw))
        if size > HASH_LENGTH:
            raise InvalidChildSizeError(node_hash, index, size)
        return InlineRef(decode_raw_node(node_hash, raw))

    if len(raw) == 0:
        return EMPTY_REF
    if len(raw) == HASH_LENGTH:
        return HashRef(raw)

    raise InvalidChildSizeError(node_hash, index, len(raw))


# ===== ENCODING =====

def encode_node(node: TrieNode) -> bytes:
    """RLP-encode a typed node. Inverse of :func:`decode_node`."""
    return rlp.encode(node_to_raw(node))


def node_to_raw(node: TrieNode) -> Any:
    """Convert a typed node into the nested list structure RLP encodes."""
    if isinstance(node, EmptyNode):
        return b""
    if isinstance(node, LeafNode):
        return [encode_hex_prefix(NibblePath(node.path.nibbles, terminated=True)), node.value]
    if isinstance(node, ExtensionNode):
        return [encode_hex_prefix(NibblePath(node.path.nibbles)), _ref_to_raw(node.child)]
    if isinstance(node, BranchNode):
        return [_ref_to_raw(child) for child in node.children] + [node.value or b""]

    raise TypeError(f"Unknown node type: {type(node).__name__}")


def _ref_to_raw(ref: ChildRef) -> Any:
    if isinstance(ref, EmptyRef):
        return b""
    if isinstance(ref, HashRef):
        return ref.node_hash
    if isinstance(ref, InlineRef):
        return node_to_raw(ref.node)

    raise TypeError(f"Unknown child reference: {type(ref).__name__}")
