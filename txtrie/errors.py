"""
Error taxonomy for txtrie.

Decoding, verification, cache and storage failures each have their own
branch so callers can tell "proven absent" apart from "cannot verify" and
from "trie not resident".
"""

from typing import Optional


class TxTrieError(Exception):
    """Base class for all txtrie errors."""


def _short(node_hash: Optional[bytes]) -> str:
    if not node_hash:
        return "<none>"
    return f"{node_hash.hex()[:16]}..."


# ===== DECODING =====

class DecodeError(TxTrieError):
    """A node or proof could not be decoded."""

    def __init__(self, node_hash: Optional[bytes], message: str):
        self.node_hash = node_hash
        super().__init__(f"{message} (node {_short(node_hash)})")


class MalformedNodeError(DecodeError):
    """Encoded node has an unknown shape (wrong arity, bad path, bad codec)."""

    def __init__(self, node_hash: Optional[bytes], reason: str = "malformed node"):
        super().__init__(node_hash, reason)


class InvalidChildSizeError(DecodeError):
    """A child reference is neither empty, a digest, nor a small embedded node."""

    def __init__(self, node_hash: Optional[bytes], index: int, size: int):
        self.index = index
        self.size = size
        super().__init__(node_hash, f"invalid child size {size} at index {index}")


class HashMismatchError(DecodeError):
    """Bytes stored under a hash do not match that hash."""

    def __init__(self, node_hash: Optional[bytes], reason: str = "hash mismatch"):
        super().__init__(node_hash, reason)


# ===== VERIFICATION =====

class VerifyError(TxTrieError):
    """A proof could not be verified. Never means the key is absent."""


class MissingNodeError(VerifyError):
    """The proof does not disclose a node the walk needs."""

    def __init__(self, node_hash: bytes, depth: int):
        self.node_hash = node_hash
        self.depth = depth
        super().__init__(f"proof node {_short(node_hash)} missing at depth {depth}")


class BadNodeError(VerifyError):
    """A disclosed node failed its hash check or could not be decoded."""

    def __init__(self, node_hash: bytes, depth: int, reason: str):
        self.node_hash = node_hash
        self.depth = depth
        super().__init__(f"bad proof node {_short(node_hash)} at depth {depth}: {reason}")


class IterationCapExceededError(VerifyError):
    """The walk did not terminate within its iteration budget."""

    def __init__(self, cap: int):
        self.cap = cap
        super().__init__(f"proof walk exceeded {cap} iterations")


# ===== CACHE =====

class CacheError(TxTrieError):
    """Trie cache lookup or insertion failed."""


class RootNotFoundError(CacheError):
    """No resident trie for this root (never added or already evicted)."""

    def __init__(self, root: bytes):
        self.root = root
        super().__init__(f"transaction trie for root {_short(root)} does not exist")


class RootMismatchError(CacheError):
    """Supplied transactions do not hash to the claimed root."""

    def __init__(self, expected: bytes, computed: bytes):
        self.expected = expected
        self.computed = computed
        super().__init__(
            f"transaction roots don't match: expected {_short(expected)}, "
            f"computed {_short(computed)}"
        )


# ===== STORAGE / ENGINE =====

class StorageError(TxTrieError):
    """Trie storage is missing a node or has been released."""


class KeyNotFoundError(TxTrieError):
    """Key has no value in the trie."""

    def __init__(self, key: bytes):
        self.key = key
        super().__init__(f"key {key.hex() or '<empty>'} not found in trie")
