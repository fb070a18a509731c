"""
txtrie core module

- Node types, decoder and encoder
- Key path (nibble / hex-prefix) encoding
- Proof database and its wire format
- Trie engine adapter and the transaction trie cache
"""

from txtrie.core.nibbles import NibblePath, key_to_nibbles, transaction_key
from txtrie.core.nodes import (
    EMPTY_ROOT,
    HASH_LENGTH,
    BranchNode,
    EmptyNode,
    EmptyRef,
    ExtensionNode,
    HashRef,
    InlineRef,
    LeafNode,
)
from txtrie.core.decoder import decode_node, encode_node
from txtrie.core.proof_database import ProofDatabase
from txtrie.core.walk import walk_path
from txtrie.core.trie_engine import TrieEngine, TrieHandle
from txtrie.core.tx_tries import TxTries

__all__ = [
    "NibblePath",
    "key_to_nibbles",
    "transaction_key",
    "EMPTY_ROOT",
    "HASH_LENGTH",
    "BranchNode",
    "EmptyNode",
    "EmptyRef",
    "ExtensionNode",
    "HashRef",
    "InlineRef",
    "LeafNode",
    "decode_node",
    "encode_node",
    "ProofDatabase",
    "walk_path",
    "TrieEngine",
    "TrieHandle",
    "TxTries",
]
