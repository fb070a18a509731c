"""
Merkle-Patricia Trie node types.

Every node is one of four shapes. Children are referenced either by the
hash of their encoding (stored out of line) or embedded inline when their
encoding is shorter than a hash.
"""

from dataclasses import dataclass
from typing import Optional, Tuple, Union

import rlp
from eth_hash.auto import keccak

from .nibbles import NibblePath

HASH_LENGTH = 32
BRANCH_WIDTH = 16

# rlp.encode(b"") and its hash: the canonical empty trie
EMPTY_NODE_ENCODING = rlp.encode(b"")
EMPTY_ROOT = keccak(EMPTY_NODE_ENCODING)


@dataclass(frozen=True)
class EmptyNode:
    """The empty trie."""


@dataclass(frozen=True)
class LeafNode:
    """Terminal entry: remaining key nibbles and the stored value."""
    path: NibblePath
    value: bytes


@dataclass(frozen=True)
class ExtensionNode:
    """Shared-prefix compression with exactly one child."""
    path: NibblePath
    child: "ChildRef"


@dataclass(frozen=True)
class BranchNode:
    """One child slot per next nibble plus an optional value."""
    children: Tuple["ChildRef", ...]
    value: Optional[bytes] = None

    def __post_init__(self):
        if len(self.children) != BRANCH_WIDTH:
            raise ValueError(f"Branch needs {BRANCH_WIDTH} children, got {len(self.children)}")


@dataclass(frozen=True)
class EmptyRef:
    """Empty child slot."""


@dataclass(frozen=True)
class HashRef:
    """Child stored out of line under its hash."""
    node_hash: bytes

    def __post_init__(self):
        if len(self.node_hash) != HASH_LENGTH:
            raise ValueError(f"Invalid hash length: {len(self.node_hash)}")


@dataclass(frozen=True)
class InlineRef:
    """Child embedded directly in its parent's encoding."""
    node: "TrieNode"


TrieNode = Union[EmptyNode, LeafNode, ExtensionNode, BranchNode]
ChildRef = Union[EmptyRef, HashRef, InlineRef]

EMPTY_REF = EmptyRef()


def empty_branch_children() -> Tuple[ChildRef, ...]:
    """Sixteen empty child slots."""
    return (EMPTY_REF,) * BRANCH_WIDTH
