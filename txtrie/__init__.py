"""
txtrie - Transaction trie proofs

Keeps recently built Merkle-Patricia transaction tries in a bounded cache
and serves inclusion/exclusion proofs that anyone holding the root hash
can verify without the trie.

Quick Start:
    >>> from txtrie import TxTries, transaction_key, verify_proof
    >>>
    >>> # Keep the last 3 tries resident
    >>> tries = TxTries(capacity=3)
    >>>
    >>> # Build the trie for a block (raises RootMismatchError on a bad root)
    >>> tries.add_trie(tx_root, tx_hashes)
    >>>
    >>> # Prove transaction 0 and verify it
    >>> proof = tries.retrieve_proof(tx_root, transaction_key(0))
    >>> verify_proof(tx_root, transaction_key(0), proof)
    True

Features:
    - Self-contained node decoder (RLP, hex-prefix paths, inline children)
    - Trustless, iterative proof verification (presence and absence)
    - Deterministic proof wire format with content-address checks
    - FIFO trie cache with reference-counted storage reclamation
"""

from txtrie.core import (
    EMPTY_ROOT,
    ProofDatabase,
    TrieEngine,
    TrieHandle,
    TxTries,
    decode_node,
    encode_node,
    key_to_nibbles,
    transaction_key,
)
from txtrie.config import TxTriesConfig
from txtrie.errors import (
    BadNodeError,
    CacheError,
    DecodeError,
    HashMismatchError,
    InvalidChildSizeError,
    IterationCapExceededError,
    KeyNotFoundError,
    MalformedNodeError,
    MissingNodeError,
    RootMismatchError,
    RootNotFoundError,
    StorageError,
    TxTrieError,
    VerifyError,
)
from txtrie.storage import NodeStore, TrieStorage
from txtrie.verification import ProofStatus, ProofVerifier, verify, verify_proof

__version__ = "0.1.0"

__all__ = [
    "EMPTY_ROOT",
    "ProofDatabase",
    "TrieEngine",
    "TrieHandle",
    "TxTries",
    "TxTriesConfig",
    "decode_node",
    "encode_node",
    "key_to_nibbles",
    "transaction_key",
    "NodeStore",
    "TrieStorage",
    "ProofStatus",
    "ProofVerifier",
    "verify",
    "verify_proof",
    "TxTrieError",
    "DecodeError",
    "MalformedNodeError",
    "InvalidChildSizeError",
    "HashMismatchError",
    "VerifyError",
    "MissingNodeError",
    "BadNodeError",
    "IterationCapExceededError",
    "CacheError",
    "RootNotFoundError",
    "RootMismatchError",
    "StorageError",
    "KeyNotFoundError",
]
