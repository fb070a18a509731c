"""
Local filesystem node backend.

Stores encoded trie nodes on local disk, one file per node.
"""

from collections.abc import MutableMapping
from pathlib import Path
from typing import Iterator, Optional
import logging

logger = logging.getLogger(__name__)


class LocalNodeBackend(MutableMapping):
    """
    Local filesystem mapping from node hash to encoded node bytes.

    Directory structure:
    storage_dir/
        56/
            56e81f...421.node
        a1/
            a1b2c3...789.node

    Uses the first 2 hex characters of the node hash as directory prefix
    to avoid having too many files in a single directory.
    """

    SUFFIX = ".node"

    def __init__(self, storage_dir: Path):
        """
        Initialize local backend.

        Args:
            storage_dir: Base directory for node files
        """
        self.storage_dir = Path(storage_dir)
        self.storage_dir.mkdir(parents=True, exist_ok=True)

        logger.info(f"Initialized local node backend at {self.storage_dir}")

    def __getitem__(self, node_hash: bytes) -> bytes:
        file_path = self._get_file_path(node_hash)
        try:
            return file_path.read_bytes()
        except FileNotFoundError:
            raise KeyError(node_hash) from None

    def __setitem__(self, node_hash: bytes, data: bytes):
        file_path = self._get_file_path(node_hash)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        # Write then rename so readers never see a partial node
        tmp_path = file_path.with_suffix(".tmp")
        tmp_path.write_bytes(data)
        tmp_path.replace(file_path)

        logger.debug(f"Stored node {node_hash.hex()[:16]}... to {file_path}")

    def __delitem__(self, node_hash: bytes):
        file_path = self._get_file_path(node_hash)
        try:
            file_path.unlink()
        except FileNotFoundError:
            raise KeyError(node_hash) from None

        logger.debug(f"Deleted node {node_hash.hex()[:16]}... from {file_path}")
        self._cleanup_empty_dirs(file_path.parent)

    def __contains__(self, node_hash: object) -> bool:
        if not isinstance(node_hash, bytes):
            return False
        return self._get_file_path(node_hash).exists()

    def __iter__(self) -> Iterator[bytes]:
        for prefix_dir in sorted(self.storage_dir.iterdir()):
            if not prefix_dir.is_dir():
                continue
            for file_path in sorted(prefix_dir.glob(f"*{self.SUFFIX}")):
                yield bytes.fromhex(file_path.stem)

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def get_size(self, node_hash: bytes) -> Optional[int]:
        """Size of a stored node in bytes, or None if not found."""
        file_path = self._get_file_path(node_hash)
        if file_path.exists():
            return file_path.stat().st_size
        return None

    def get_total_size(self) -> int:
        """Total size of all stored nodes in bytes."""
        total_size = 0
        for prefix_dir in self.storage_dir.iterdir():
            if not prefix_dir.is_dir():
                continue
            for file_path in prefix_dir.glob(f"*{self.SUFFIX}"):
                total_size += file_path.stat().st_size
        return total_size

    # Internal methods

    def _get_file_path(self, node_hash: bytes) -> Path:
        """Get file path for a node hash."""
        hex_hash = node_hash.hex()
        return self.storage_dir / hex_hash[:2] / f"{hex_hash}{self.SUFFIX}"

    def _cleanup_empty_dirs(self, directory: Path):
        """Remove a prefix directory once its last node is gone."""
        if directory != self.storage_dir and directory.is_dir() and not any(directory.iterdir()):
            directory.rmdir()
            logger.debug(f"Cleaned up empty directory {directory}")
