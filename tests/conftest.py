"""
Shared fixtures for the txtrie test suite.
"""

import shutil
import tempfile
from pathlib import Path

import pytest
import rlp
from eth_hash.auto import keccak
from trie import HexaryTrie

from txtrie.core.tx_tries import TxTries
from txtrie.storage.node_store import NodeStore

DEFAULT_TRIES_TO_STORE = 3


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast, isolated tests")
    config.addinivalue_line("markers", "integration: tests spanning several components")


def _make_transactions(label: str, count: int):
    return [keccak(f"{label}-tx-{i}".encode()) for i in range(count)]


# ===== FIXTURES =====

@pytest.fixture
def temp_storage_dir():
    """Create a temporary directory for on-disk node storage."""
    temp_dir = tempfile.mkdtemp(prefix="txtrie_test_")
    yield Path(temp_dir)
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def transactions_1():
    """Three transaction hashes (keys 0, 1, 2)."""
    return _make_transactions("block-1", 3)


@pytest.fixture
def transactions_2():
    """Twelve transaction hashes."""
    return _make_transactions("block-2", 12)


@pytest.fixture
def transactions_3():
    """130 transaction hashes; keys past 127 share prefixes and form extension nodes."""
    return _make_transactions("block-3", 130)


@pytest.fixture
def reference_root():
    """
    Compute a transaction root independently of the cache.

    Builds a throwaway py-trie over a plain dict with rlp(index) keys.
    """
    def compute(transactions):
        reference = HexaryTrie({})
        for index, transaction in enumerate(transactions):
            reference.set(rlp.encode(index), transaction)
        return reference.root_hash

    return compute


@pytest.fixture
def node_store():
    """Provide an in-memory node store."""
    return NodeStore()


@pytest.fixture
def tx_tries(node_store):
    """Provide a trie cache holding up to three tries."""
    return TxTries(capacity=DEFAULT_TRIES_TO_STORE, node_store=node_store)
