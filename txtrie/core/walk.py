"""
Path walk from a root hash to a key.

Shared by proof generation (lookups read trie storage and record what they
read) and proof verification (lookups read the disclosed nodes and check
their hashes).
"""

from typing import Callable, Optional

from txtrie.errors import BadNodeError, DecodeError, IterationCapExceededError
from .decoder import decode_node
from .nibbles import key_to_nibbles
from .nodes import (
    BranchNode,
    EmptyNode,
    EmptyRef,
    ExtensionNode,
    HashRef,
    InlineRef,
    LeafNode,
    TrieNode,
)

# lookup(node_hash, depth) -> encoded node bytes
NodeLookup = Callable[[bytes, int], bytes]


def walk_path(root: bytes, key: bytes, lookup: NodeLookup) -> Optional[bytes]:
    """
    Walk from ``root`` along the nibble path of ``key``.

    Each hash lookup goes through ``lookup``; embedded children are
    followed without one. Every step consumes at least one nibble, so the
    walk is capped at twice the key's nibble count plus two.

    Args:
        root: Root node hash
        key: Raw key bytes
        lookup: Returns encoded node bytes for a hash, or raises

    Returns:
        Value stored at ``key``, or None if the key is absent

    Raises:
        BadNodeError: A node could not be decoded
        IterationCapExceededError: The walk did not terminate
    """
    remaining = key_to_nibbles(key).nibbles
    cap = 2 * len(remaining) + 2

    depth = 0
    node = _load(root, depth, lookup)

    for _ in range(cap):
        if isinstance(node, EmptyNode):
            return None

        if isinstance(node, LeafNode):
            # Leaves are terminal, so any divergence proves absence
            return node.value if node.path.nibbles == remaining else None

        if isinstance(node, ExtensionNode):
            prefix = node.path.nibbles
            if remaining[:len(prefix)] != prefix:
                return None
            remaining = remaining[len(prefix):]
            child = node.child

        elif isinstance(node, BranchNode):
            if not remaining:
                return node.value
            child = node.children[remaining[0]]
            remaining = remaining[1:]

        else:
            raise BadNodeError(root, depth, f"unknown node type {type(node).__name__}")

        if isinstance(child, EmptyRef):
            return None
        if isinstance(child, InlineRef):
            node = child.node
        elif isinstance(child, HashRef):
            depth += 1
            node = _load(child.node_hash, depth, lookup)
        else:
            raise BadNodeError(root, depth, f"unknown child reference {type(child).__name__}")

    raise IterationCapExceededError(cap)


def _load(node_hash: bytes, depth: int, lookup: NodeLookup) -> TrieNode:
    data = lookup(node_hash, depth)
    try:
        return decode_node(node_hash, data)
    except DecodeError as e:
        raise BadNodeError(node_hash, depth, str(e)) from e
