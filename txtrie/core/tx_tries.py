"""
Bounded cache of recently built transaction tries.

Keeps the last ``capacity`` tries keyed by their root hash so that proofs
can be served for recent blocks. When the cache is full, adding a trie
evicts the oldest one (FIFO) and reclaims its storage.

Eviction is split in two steps:
1. Under the cache lock the entry leaves both the root order and the
   root -> handle map, so new readers never see it again.
2. Outside the lock its entries are deleted and its node references are
   released. Nodes still referenced by a surviving trie stay in storage.

Usage:
    >>> tries = TxTries(capacity=3)
    >>> tries.add_trie(root, tx_hashes)
    >>> proof = tries.retrieve_proof(root, transaction_key(0))
    >>> verify_proof(root, transaction_key(0), proof)
    True
"""

from collections import deque
from typing import Any, Deque, Dict, List, Optional, Sequence, Tuple
import logging
from threading import RLock

from txtrie.backends.local import LocalNodeBackend
from txtrie.config import TxTriesConfig
from txtrie.errors import RootMismatchError, RootNotFoundError, StorageError
from txtrie.storage.node_store import NodeStore, TrieStorage
from .nibbles import transaction_key
from .nodes import EMPTY_ROOT
from .proof_database import ProofDatabase
from .trie_engine import TrieEngine, TrieHandle

logger = logging.getLogger(__name__)


class TxTries:
    """
    FIFO cache of transaction tries keyed by root hash.

    ``order`` (oldest first) and ``by_root`` always hold the same roots;
    both are only changed together under the cache lock.
    """

    def __init__(
        self,
        capacity: int,
        node_store: Optional[NodeStore] = None,
        engine: Optional[TrieEngine] = None,
        reclaim_storage: bool = True,
    ):
        """
        Initialize trie cache.

        Args:
            capacity: Maximum number of resident tries (fixed for the cache's lifetime)
            node_store: Shared node storage (default: new in-memory store)
            engine: Trie engine adapter (default: py-trie)
            reclaim_storage: Delete unshared nodes of evicted tries
        """
        if capacity < 1:
            raise ValueError(f"Invalid capacity: {capacity}")

        self._capacity = capacity
        self.node_store = node_store if node_store is not None else NodeStore()
        self.engine = engine if engine is not None else TrieEngine()
        self.reclaim_storage = reclaim_storage

        self.order: Deque[bytes] = deque()
        self.by_root: Dict[bytes, TrieHandle] = {}

        self._lock = RLock()

        self.stats = {
            "tries_added": 0,
            "evictions": 0,
            "replacements": 0,
            "proofs_served": 0,
            "nodes_reclaimed": 0,
            "reclamation_failures": 0,
        }

        logger.info(
            f"Initialized transaction trie cache (capacity: {capacity}, "
            f"reclaim storage: {reclaim_storage})"
        )

    @classmethod
    def from_config(cls, config: TxTriesConfig) -> "TxTries":
        """Build a cache from configuration."""
        backend = LocalNodeBackend(config.storage_dir) if config.storage_dir else None
        return cls(
            capacity=config.capacity,
            node_store=NodeStore(backend),
            reclaim_storage=config.reclaim_storage,
        )

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def roots(self) -> List[bytes]:
        """Resident roots, oldest first."""
        with self._lock:
            return list(self.order)

    def __len__(self) -> int:
        with self._lock:
            return len(self.order)

    def __contains__(self, root: object) -> bool:
        with self._lock:
            return root in self.by_root

    def get(self, root: bytes) -> Optional[TrieHandle]:
        """Handle for ``root``, or None if not resident."""
        with self._lock:
            return self.by_root.get(root)

    def add_trie(self, root: bytes, transactions: Sequence[bytes]) -> TrieHandle:
        """
        Build the trie for a block's transactions and cache it.

        Transaction ``i`` is stored under ``transaction_key(i)``, so the
        sequence must be in block order.

        Args:
            root: Transaction root the block claims
            transactions: Transaction hashes in block order

        Returns:
            Handle of the newly built trie

        Raises:
            RootMismatchError: If the transactions do not hash to ``root``
        """
        storage = TrieStorage(self.node_store)
        handle = self.engine.new_trie(EMPTY_ROOT, storage)

        try:
            for index, transaction in enumerate(transactions):
                self.engine.update(handle, transaction_key(index), bytes(transaction))
        except Exception:
            storage.release()
            raise

        computed = self.engine.hash(handle)
        if computed != root:
            storage.release()
            raise RootMismatchError(root, computed)

        self.insert(root, handle)

        with self._lock:
            self.stats["tries_added"] += 1

        logger.debug(f"Added trie {root.hex()[:16]}... ({handle.key_count} transactions)")
        return handle

    def insert(self, root: bytes, handle: TrieHandle):
        """
        Cache ``handle`` under ``root``.

        An already resident root gets the new handle and moves to the
        newest position. Otherwise, when the cache is full, the oldest
        entry is evicted first.

        Readers still holding a replaced handle get StorageError.
        """
        with self._lock:
            displaced = self._insert_locked(root, handle)

        if displaced is None:
            return

        old_root, old_handle, evicted = displaced
        if evicted:
            self._reclaim(old_root, old_handle)
        elif self.reclaim_storage:
            # Same root, so the new handle already holds every shared node
            old_handle.storage.release()

    def _insert_locked(
        self,
        root: bytes,
        handle: TrieHandle
    ) -> Optional[Tuple[bytes, TrieHandle, bool]]:
        if root in self.by_root:
            old_handle = self.by_root[root]
            self.order.remove(root)
            self.order.append(root)
            self.by_root[root] = handle
            self.stats["replacements"] += 1

            logger.debug(f"Replaced trie {root.hex()[:16]}... and moved it to newest")

            if old_handle is handle:
                return None
            return root, old_handle, False

        displaced = None
        if len(self.order) >= self._capacity:
            oldest = self.order.popleft()
            displaced = (oldest, self.by_root.pop(oldest), True)
            self.stats["evictions"] += 1

            logger.info(f"Evicted trie {oldest.hex()[:16]}... (capacity {self._capacity})")

        self.order.append(root)
        self.by_root[root] = handle
        return displaced

    def _reclaim(self, root: bytes, handle: TrieHandle):
        """Delete an evicted trie's entries and release its node references."""
        if not self.reclaim_storage:
            return

        try:
            try:
                self._delete_entries(root, handle)
            finally:
                deleted = handle.storage.release()
        except Exception:
            # Entry is already out of the cache, bookkeeping stays consistent
            logger.exception(f"Failed to reclaim storage of trie {root.hex()[:16]}...")
            with self._lock:
                self.stats["reclamation_failures"] += 1
            return

        with self._lock:
            self.stats["nodes_reclaimed"] += deleted

        logger.debug(f"Reclaimed trie {root.hex()[:16]}... ({deleted} nodes deleted)")

    def _delete_entries(self, root: bytes, handle: TrieHandle):
        # Keys were written at transaction_key(0 .. key_count - 1). py-trie does
        # not prune, so each delete writes fresh intermediate nodes through the
        # view (to disk on LocalNodeBackend); release() is what frees storage.
        key_count = handle.key_count
        for index in range(key_count):
            if self.engine.hash(handle) == EMPTY_ROOT:
                break
            key = transaction_key(index)
            if self.engine.has_key(handle, key):
                self.engine.delete_key(handle, key)

        if self.engine.hash(handle) != EMPTY_ROOT:
            logger.warning(
                f"Trie {root.hex()[:16]}... did not collapse to the empty root "
                f"after deleting {key_count} entries"
            )

    def retrieve_proof(self, root: bytes, key: bytes) -> ProofDatabase:
        """
        Proof for ``key`` in the trie with root ``root``.

        A root that is replaced while its proof is being built is retried
        once on the new handle. A root evicted meanwhile may surface as
        StorageError.

        Args:
            root: Root of a resident trie
            key: Trie key (see ``transaction_key``)

        Returns:
            Frozen proof database (proves presence or absence)

        Raises:
            RootNotFoundError: If no trie with this root is resident
            StorageError: If the trie was evicted while proving
        """
        handle = self.get(root)
        if handle is None:
            raise RootNotFoundError(root)

        # Walk from the requested root; the handle may be mid-reclamation
        try:
            proof = self.engine.prove(handle, key, root)
        except StorageError:
            current = self.get(root)
            if current is None or current is handle:
                raise
            logger.debug(f"Trie {root.hex()[:16]}... replaced while proving, retrying")
            proof = self.engine.prove(current, key, root)

        with self._lock:
            self.stats["proofs_served"] += 1

        return proof.freeze()

    def retrieve_encoded_proof(self, root: bytes, key: bytes) -> bytes:
        """Wire-encoded proof for ``key`` in the trie with root ``root``."""
        return self.retrieve_proof(root, key).encode()

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            stats: Dict[str, Any] = dict(self.stats)
            stats["capacity"] = self._capacity
            stats["size"] = len(self.order)

        stats["node_store"] = self.node_store.get_stats()
        return stats
