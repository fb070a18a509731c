"""
Trie engine adapter.

The trie itself (insertion, deletion, canonical root hashing) is py-trie's
HexaryTrie. This module wraps it behind the small interface the cache
needs and generates proofs by walking the trie's own storage.
"""

from dataclasses import dataclass
from typing import Optional
import logging

from trie import HexaryTrie

from txtrie.errors import KeyNotFoundError, StorageError
from txtrie.storage.node_store import TrieStorage
from .nodes import EMPTY_NODE_ENCODING, EMPTY_ROOT
from .proof_database import ProofDatabase
from .walk import walk_path

logger = logging.getLogger(__name__)


@dataclass
class TrieHandle:
    """
    A live trie and the storage view its nodes live in.

    Attributes:
        trie: py-trie HexaryTrie writing into ``storage``
        storage: This trie's view of the shared node store
        key_count: Number of distinct keys written through the engine
    """
    trie: HexaryTrie
    storage: TrieStorage
    key_count: int = 0

    @property
    def root_hash(self) -> bytes:
        return self.trie.root_hash


class TrieEngine:
    """Collaborator interface over py-trie used by the trie cache."""

    def new_trie(self, root: bytes, storage: TrieStorage) -> TrieHandle:
        """
        Open a trie at ``root`` over ``storage``.

        Args:
            root: Root hash to start from (EMPTY_ROOT for a new trie)
            storage: Storage view the trie reads and writes

        Returns:
            New trie handle
        """
        return TrieHandle(trie=HexaryTrie(storage, root_hash=root), storage=storage)

    def update(self, handle: TrieHandle, key: bytes, value: bytes):
        """Set ``key`` to ``value``."""
        if not value:
            raise ValueError("Trie values must be non-empty")

        is_new = not handle.trie.exists(key)
        handle.trie.set(key, value)
        if is_new:
            handle.key_count += 1

    def hash(self, handle: TrieHandle) -> bytes:
        """Current root hash."""
        return handle.trie.root_hash

    def has_key(self, handle: TrieHandle, key: bytes) -> bool:
        return handle.trie.exists(key)

    def delete_key(self, handle: TrieHandle, key: bytes):
        """
        Remove ``key`` from the trie.

        Raises:
            KeyNotFoundError: If the key has no value
        """
        if not handle.trie.exists(key):
            raise KeyNotFoundError(key)

        handle.trie.delete(key)
        handle.key_count -= 1

    def prove(self, handle: TrieHandle, key: bytes, root: Optional[bytes] = None) -> ProofDatabase:
        """
        Collect every node on the path from the root to ``key``.

        The resulting proof proves presence when the key exists and absence
        when it does not.

        Args:
            handle: Trie to prove against
            key: Trie key
            root: Root to walk from (default: the trie's current root). Nodes
                of earlier roots stay readable until the storage is released.

        Raises:
            StorageError: If a node on the path is missing from storage
        """
        if root is None:
            root = handle.trie.root_hash
        proof = ProofDatabase(root=root, key=key)

        def lookup(node_hash: bytes, depth: int) -> bytes:
            if node_hash == EMPTY_ROOT:
                data = EMPTY_NODE_ENCODING
            else:
                try:
                    data = handle.storage[node_hash]
                except KeyError:
                    raise StorageError(
                        f"trie node {node_hash.hex()[:16]}... missing from storage at depth {depth}"
                    ) from None
            proof.put(node_hash, data)
            return data

        walk_path(root, key, lookup)

        logger.debug(
            f"Generated proof for root {root.hex()[:16]}... "
            f"({len(proof)} nodes, {proof.size_bytes} bytes)"
        )
        return proof
