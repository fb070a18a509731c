"""
Reference-counted node storage shared by all tries in a cache.

Trie nodes are content addressed, so two tries built from overlapping
data produce identical nodes under identical hashes. Deleting a node
because one trie was evicted would corrupt every other trie still
pointing at it. The store therefore counts, per hash, how many tries hold
the node and only deletes the bytes when the last one lets go.
"""

from collections.abc import MutableMapping
from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Set
import logging
from threading import RLock  # Reentrant: stats reads happen under the same lock

from txtrie.errors import StorageError

logger = logging.getLogger(__name__)


@dataclass
class NodeStoreStats:
    """Node store statistics."""
    references_added: int
    references_removed: int
    unique_nodes_written: int
    nodes_deleted: int
    bytes_deleted: int

    @property
    def shared_references(self) -> int:
        """References that pointed at a node already in the store."""
        return self.references_added - self.unique_nodes_written


class NodeStore:
    """
    Content-addressed node store with reference counting.

    The backend is any mutable mapping from hash to bytes: a dict for
    in-memory use or a LocalNodeBackend for on-disk storage.
    """

    def __init__(self, backend: Optional[MutableMapping] = None):
        """
        Initialize node store.

        Args:
            backend: Mapping holding node bytes (default: new dict)
        """
        self.backend = backend if backend is not None else {}

        # Map: node hash -> number of tries holding it
        self.reference_counts: Dict[bytes, int] = {}

        self._lock = RLock()

        self.stats = NodeStoreStats(
            references_added=0,
            references_removed=0,
            unique_nodes_written=0,
            nodes_deleted=0,
            bytes_deleted=0,
        )

        logger.info(f"Initialized node store on {type(self.backend).__name__} backend")

    def get(self, node_hash: bytes) -> Optional[bytes]:
        with self._lock:
            return self.backend.get(node_hash)

    def __contains__(self, node_hash: object) -> bool:
        with self._lock:
            return node_hash in self.backend

    def __len__(self) -> int:
        with self._lock:
            return len(self.backend)

    def add_reference(self, node_hash: bytes, data: bytes) -> bool:
        """
        Add one reference to a node, writing it if it is new.

        Args:
            node_hash: Hash of the encoded node
            data: Encoded node bytes

        Returns:
            True if the node bytes were written, False if already stored
        """
        with self._lock:
            self.stats.references_added += 1

            count = self.reference_counts.get(node_hash, 0)
            self.reference_counts[node_hash] = count + 1

            if count > 0:
                logger.debug(f"Shared node {node_hash.hex()[:16]}... (refs: {count + 1})")
                return False

            # Backend may already hold the bytes from an earlier run
            if node_hash not in self.backend:
                self.backend[node_hash] = data
            self.stats.unique_nodes_written += 1
            return True

    def remove_reference(self, node_hash: bytes) -> bool:
        """
        Remove one reference to a node.

        Args:
            node_hash: Hash of the encoded node

        Returns:
            True if this was the last reference and the bytes were deleted
        """
        with self._lock:
            count = self.reference_counts.get(node_hash)
            if count is None:
                logger.warning(f"Attempted to remove reference to unknown node {node_hash.hex()[:16]}...")
                return False

            self.stats.references_removed += 1

            if count > 1:
                self.reference_counts[node_hash] = count - 1
                return False

            del self.reference_counts[node_hash]
            data = self.backend.pop(node_hash, None)
            if data is not None:
                self.stats.nodes_deleted += 1
                self.stats.bytes_deleted += len(data)

            logger.debug(f"Deleted node {node_hash.hex()[:16]}... (0 refs)")
            return True

    def get_reference_count(self, node_hash: bytes) -> int:
        """Number of tries holding the node (0 if unknown)."""
        with self._lock:
            return self.reference_counts.get(node_hash, 0)

    def get_stats(self) -> NodeStoreStats:
        """Get a snapshot of node store statistics."""
        with self._lock:
            return NodeStoreStats(
                references_added=self.stats.references_added,
                references_removed=self.stats.references_removed,
                unique_nodes_written=self.stats.unique_nodes_written,
                nodes_deleted=self.stats.nodes_deleted,
                bytes_deleted=self.stats.bytes_deleted,
            )


class TrieStorage(MutableMapping):
    """
    One trie's view of the shared node store.

    Handed to the trie engine as its database. Remembers which nodes this
    trie has written so that releasing the trie drops exactly its own
    references.
    """

    def __init__(self, node_store: NodeStore):
        self.node_store = node_store
        self._held: Set[bytes] = set()
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def _check_open(self):
        if self._released:
            raise StorageError("Trie storage has been released")

    def __getitem__(self, node_hash: bytes) -> bytes:
        self._check_open()
        data = self.node_store.get(node_hash)
        if data is None:
            raise KeyError(node_hash)
        return data

    def __setitem__(self, node_hash: bytes, data: bytes):
        self._check_open()
        if node_hash in self._held:
            return
        self.node_store.add_reference(node_hash, data)
        self._held.add(node_hash)

    def __delitem__(self, node_hash: bytes):
        self._check_open()
        if node_hash not in self._held:
            raise KeyError(node_hash)
        self._held.discard(node_hash)
        self.node_store.remove_reference(node_hash)

    def __iter__(self) -> Iterator[bytes]:
        return iter(list(self._held))

    def __len__(self) -> int:
        return len(self._held)

    def release(self) -> int:
        """
        Drop every reference this trie holds.

        Returns:
            Number of nodes whose bytes were deleted from the store
        """
        self._check_open()

        deleted = 0
        for node_hash in list(self._held):
            if self.node_store.remove_reference(node_hash):
                deleted += 1
        self._held.clear()
        self._released = True

        logger.debug(f"Released trie storage ({deleted} nodes deleted)")
        return deleted
