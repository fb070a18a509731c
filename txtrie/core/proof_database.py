"""
Proof database: the nodes disclosed for one key, keyed by their hash.

Wire form (RLP):

    [root, key, [[hash_0, body_0], [hash_1, body_1], ...]]

Records keep insertion order so that encoding is deterministic. Decoding
recomputes every record's hash from its body and rejects mismatches, so a
remote verifier never has to trust the sender's hash labels.
"""

from typing import Dict, Iterator, Optional, Tuple
import logging

import rlp
from eth_hash.auto import keccak
from rlp.exceptions import DecodingError

from txtrie.errors import HashMismatchError, MalformedNodeError
from .nodes import HASH_LENGTH

logger = logging.getLogger(__name__)


class ProofDatabase:
    """
    Content-addressed map from node hash to encoded node bytes.

    Built fresh for every proof request and frozen before it is handed
    to a verifier.
    """

    def __init__(self, root: Optional[bytes] = None, key: Optional[bytes] = None):
        """
        Initialize an empty proof database.

        Args:
            root: Root hash the proof was generated against
            key: Key the proof was generated for
        """
        self.root = root
        self.key = key
        self._nodes: Dict[bytes, bytes] = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> "ProofDatabase":
        """Disallow further insertions."""
        self._frozen = True
        return self

    def get(self, node_hash: bytes) -> Optional[bytes]:
        return self._nodes.get(node_hash)

    def put(self, node_hash: bytes, data: bytes):
        """
        Store node bytes under their hash.

        Inserting the same pair twice is a no-op.

        Raises:
            ValueError: If the hash width is wrong or the database is frozen
            HashMismatchError: If different bytes are already stored under the hash
        """
        if self._frozen:
            raise ValueError("Proof database is frozen")
        if len(node_hash) != HASH_LENGTH:
            raise ValueError(f"Invalid node hash length: {len(node_hash)}")

        existing = self._nodes.get(node_hash)
        if existing is not None:
            if existing != data:
                raise HashMismatchError(node_hash, "conflicting bytes for proof node")
            return

        self._nodes[node_hash] = bytes(data)

    def items(self) -> Iterator[Tuple[bytes, bytes]]:
        return iter(self._nodes.items())

    def __contains__(self, node_hash: object) -> bool:
        return node_hash in self._nodes

    def __iter__(self) -> Iterator[bytes]:
        return iter(self._nodes)

    def __len__(self) -> int:
        return len(self._nodes)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ProofDatabase):
            return NotImplemented
        return (
            self.root == other.root
            and self.key == other.key
            and list(self._nodes.items()) == list(other._nodes.items())
        )

    def __repr__(self) -> str:
        root = self.root.hex()[:16] + "..." if self.root else None
        return f"ProofDatabase(root={root}, nodes={len(self._nodes)})"

    @property
    def size_bytes(self) -> int:
        """Total size of the disclosed node bodies."""
        return sum(len(data) for data in self._nodes.values())

    # ===== WIRE FORMAT =====

    def encode(self) -> bytes:
        """
        Serialize the proof for transmission.

        Raises:
            ValueError: If the queried root or key is not set
        """
        if self.root is None or self.key is None:
            raise ValueError("Proof database needs root and key to be encoded")

        records = [[node_hash, data] for node_hash, data in self._nodes.items()]
        encoded = rlp.encode([self.root, self.key, records])

        logger.debug(
            f"Encoded proof for root {self.root.hex()[:16]}... "
            f"({len(records)} nodes, {len(encoded)} bytes)"
        )
        return encoded

    @classmethod
    def decode(cls, data: bytes) -> "ProofDatabase":
        """
        Deserialize and integrity-check a proof.

        Args:
            data: Output of :meth:`encode`

        Returns:
            Frozen ProofDatabase carrying the queried root and key

        Raises:
            MalformedNodeError: Invalid encoding or record shape
            HashMismatchError: A record's body does not hash to its label
        """
        try:
            item = rlp.decode(data, strict=True)
        except DecodingError as e:
            raise MalformedNodeError(None, f"invalid proof encoding: {e}") from e

        if not isinstance(item, (list, tuple)) or len(item) != 3:
            raise MalformedNodeError(None, "proof must be [root, key, records]")

        root, key, records = item
        if not isinstance(root, bytes) or len(root) != HASH_LENGTH:
            raise MalformedNodeError(None, "invalid proof root")
        if not isinstance(key, bytes):
            raise MalformedNodeError(root, "invalid proof key")
        if not isinstance(records, (list, tuple)):
            raise MalformedNodeError(root, "invalid proof records")

        proof = cls(root=root, key=key)
        for record in records:
            if (
                not isinstance(record, (list, tuple))
                or len(record) != 2
                or not all(isinstance(part, bytes) for part in record)
            ):
                raise MalformedNodeError(root, "proof record must be [hash, body]")

            node_hash, body = record
            if len(node_hash) != HASH_LENGTH:
                raise MalformedNodeError(node_hash, "invalid proof record hash")
            if keccak(body) != node_hash:
                raise HashMismatchError(node_hash, "proof record body does not match its hash")

            proof.put(node_hash, body)

        logger.debug(f"Decoded proof for root {root.hex()[:16]}... ({len(proof)} nodes)")
        return proof.freeze()
