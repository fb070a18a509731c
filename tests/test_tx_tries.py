"""
Test suite for the transaction trie cache.

Tests trie building, FIFO eviction, proof serving, storage reclamation
and configuration.
"""

import pytest
from eth_hash.auto import keccak
from pydantic import ValidationError

from txtrie.backends.local import LocalNodeBackend
from txtrie.config import DEFAULT_CAPACITY, TxTriesConfig
from txtrie.core.nibbles import transaction_key
from txtrie.core.nodes import EMPTY_ROOT
from txtrie.core.proof_database import ProofDatabase
from txtrie.core.trie_engine import TrieEngine
from txtrie.core.tx_tries import TxTries
from txtrie.errors import RootMismatchError, RootNotFoundError, StorageError
from txtrie.verification.verifier import verify, verify_proof


def assert_all_provable(tries, root, transactions):
    for index, transaction in enumerate(transactions):
        key = transaction_key(index)
        proof = tries.retrieve_proof(root, key)
        assert verify(root, key, proof) == transaction


class FailingEngine(TrieEngine):
    """Engine whose deletions always fail."""

    def delete_key(self, handle, key):
        raise RuntimeError("delete failed")


class InterruptingEngine(TrieEngine):
    """Engine that runs a callback right before its next proof."""

    def __init__(self):
        self.before_prove = None

    def prove(self, handle, key, root=None):
        callback, self.before_prove = self.before_prove, None
        if callback is not None:
            callback()
        return super().prove(handle, key, root)


@pytest.mark.unit
class TestAddTrie:
    """Test building and caching tries."""

    def test_empty_trie(self, tx_tries):
        tx_tries.add_trie(EMPTY_ROOT, [])

        assert EMPTY_ROOT in tx_tries
        proof = tx_tries.retrieve_proof(EMPTY_ROOT, transaction_key(0))
        assert verify(EMPTY_ROOT, transaction_key(0), proof) is None

    def test_single_trie(self, tx_tries, transactions_1, reference_root):
        root = reference_root(transactions_1)

        handle = tx_tries.add_trie(root, transactions_1)

        assert handle.root_hash == root
        assert handle.key_count == 3
        assert tx_tries.roots == [root]
        assert_all_provable(tx_tries, root, transactions_1)

    def test_absent_key(self, tx_tries, transactions_1, reference_root):
        root = reference_root(transactions_1)
        tx_tries.add_trie(root, transactions_1)

        proof = tx_tries.retrieve_proof(root, transaction_key(3))

        assert verify(root, transaction_key(3), proof) is None
        assert not verify_proof(root, transaction_key(3), proof)

    def test_root_mismatch(self, tx_tries, node_store, transactions_1):
        """A wrong root leaves neither a cache entry nor stored nodes."""
        with pytest.raises(RootMismatchError) as exc_info:
            tx_tries.add_trie(keccak(b"wrong root"), transactions_1)

        assert exc_info.value.expected == keccak(b"wrong root")
        assert len(tx_tries) == 0
        assert len(node_store) == 0

    def test_extension_nodes(self, tx_tries, transactions_3, reference_root):
        """130 transactions put keys 128 and 129 under a shared prefix."""
        root = reference_root(transactions_3)
        tx_tries.add_trie(root, transactions_3)

        for index in (0, 127, 128, 129):
            key = transaction_key(index)
            assert verify(root, key, tx_tries.retrieve_proof(root, key)) == transactions_3[index]

    def test_proofs_are_frozen(self, tx_tries, transactions_1, reference_root):
        root = reference_root(transactions_1)
        tx_tries.add_trie(root, transactions_1)

        proof = tx_tries.retrieve_proof(root, transaction_key(0))

        assert proof.frozen
        assert proof.root == root
        assert proof.key == transaction_key(0)

    def test_encoded_proof(self, tx_tries, transactions_2, reference_root):
        root = reference_root(transactions_2)
        tx_tries.add_trie(root, transactions_2)

        data = tx_tries.retrieve_encoded_proof(root, transaction_key(5))
        proof = ProofDatabase.decode(data)

        assert proof == tx_tries.retrieve_proof(root, transaction_key(5))
        assert verify(proof.root, proof.key, proof) == transactions_2[5]

    def test_unknown_root(self, tx_tries):
        with pytest.raises(RootNotFoundError):
            tx_tries.retrieve_proof(keccak(b"unknown"), transaction_key(0))

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            TxTries(capacity=0)


@pytest.mark.unit
class TestEviction:
    """Test FIFO ordering and eviction."""

    def test_readding_moves_root_to_newest(
        self, tx_tries, transactions_1, transactions_2, transactions_3, reference_root
    ):
        root1 = reference_root(transactions_1)
        root2 = reference_root(transactions_2)
        root3 = reference_root(transactions_3)

        tx_tries.add_trie(root1, transactions_1)
        tx_tries.add_trie(root2, transactions_2)
        tx_tries.add_trie(root3, transactions_3)
        tx_tries.add_trie(root1, transactions_1)

        assert tx_tries.roots == [root2, root3, root1]
        assert tx_tries.get_stats()["evictions"] == 0
        assert tx_tries.get_stats()["replacements"] == 1

        # Oldest is now root2
        tx_tries.add_trie(EMPTY_ROOT, [])

        assert tx_tries.roots == [root3, root1, EMPTY_ROOT]
        with pytest.raises(RootNotFoundError):
            tx_tries.retrieve_proof(root2, transaction_key(0))
        assert_all_provable(tx_tries, root1, transactions_1)
        assert_all_provable(tx_tries, root3, transactions_3)

    def test_capacity_one(self, node_store, transactions_1, transactions_2, reference_root):
        tries = TxTries(capacity=1, node_store=node_store)
        root1 = reference_root(transactions_1)
        root2 = reference_root(transactions_2)

        tries.add_trie(root1, transactions_1)
        tries.add_trie(root2, transactions_2)

        assert tries.roots == [root2]
        with pytest.raises(RootNotFoundError):
            tries.retrieve_proof(root1, transaction_key(0))
        assert_all_provable(tries, root2, transactions_2)

    def test_capacity_above_count(
        self, node_store, transactions_1, transactions_2, transactions_3, reference_root
    ):
        tries = TxTries(capacity=4, node_store=node_store)
        blocks = [transactions_1, transactions_2, transactions_3]
        roots = [reference_root(transactions) for transactions in blocks]

        for root, transactions in zip(roots, blocks):
            tries.add_trie(root, transactions)
        tries.add_trie(roots[0], transactions_1)

        assert tries.roots == [roots[1], roots[2], roots[0]]
        for root, transactions in zip(roots, blocks):
            assert_all_provable(tries, root, transactions)

    def test_replacing_same_root_keeps_nodes(self, tx_tries, node_store, transactions_2, reference_root):
        root = reference_root(transactions_2)
        old_handle = tx_tries.add_trie(root, transactions_2)
        stored = len(node_store)

        new_handle = tx_tries.add_trie(root, transactions_2)

        assert len(tx_tries) == 1
        assert tx_tries.get(root) is new_handle
        assert old_handle.storage.released
        assert len(node_store) == stored
        assert_all_provable(tx_tries, root, transactions_2)

    def test_inserting_same_handle(self, tx_tries, transactions_1, reference_root):
        root = reference_root(transactions_1)
        handle = tx_tries.add_trie(root, transactions_1)

        tx_tries.insert(root, handle)

        assert not handle.storage.released
        assert_all_provable(tx_tries, root, transactions_1)

    def test_readding_evicted_root(
        self, node_store, transactions_1, transactions_2, transactions_3, reference_root
    ):
        """Three roots in a two-slot cache evict the first; adding it again is a fresh insert."""
        tries = TxTries(capacity=2, node_store=node_store)
        blocks = [transactions_1, transactions_2, transactions_3]
        roots = [reference_root(transactions) for transactions in blocks]

        for root, transactions in zip(roots, blocks):
            tries.add_trie(root, transactions)

        assert tries.roots == [roots[1], roots[2]]
        with pytest.raises(RootNotFoundError):
            tries.retrieve_proof(roots[0], transaction_key(0))
        assert_all_provable(tries, roots[1], transactions_2)
        assert_all_provable(tries, roots[2], transactions_3)

        tries.add_trie(roots[0], transactions_1)

        assert tries.roots == [roots[2], roots[0]]
        assert tries.get_stats()["evictions"] == 2
        assert tries.get_stats()["replacements"] == 0
        assert_all_provable(tries, roots[0], transactions_1)
        assert_all_provable(tries, roots[2], transactions_3)


@pytest.mark.integration
class TestConcurrentProofs:
    """Proofs requested while the trie is being reclaimed or replaced."""

    def test_proof_walks_requested_root(self, tx_tries, transactions_2, reference_root):
        """A proof built mid-reclamation still proves against the requested root."""
        root = reference_root(transactions_2)
        handle = tx_tries.add_trie(root, transactions_2)

        # First step of the reclamation loop
        tx_tries.engine.delete_key(handle, transaction_key(0))
        assert handle.root_hash != root

        for index in (0, 5):
            key = transaction_key(index)
            proof = tx_tries.retrieve_proof(root, key)

            assert proof.root == root
            assert verify(root, key, proof) == transactions_2[index]

    def test_engine_defaults_to_current_root(self, tx_tries, transactions_2, reference_root):
        handle = tx_tries.add_trie(reference_root(transactions_2), transactions_2)
        tx_tries.engine.delete_key(handle, transaction_key(0))

        proof = tx_tries.engine.prove(handle, transaction_key(0))

        assert proof.root == handle.root_hash
        assert verify(proof.root, transaction_key(0), proof) is None

    def test_root_replaced_while_proving(self, node_store, transactions_2, reference_root):
        """The proof is retried on the handle that replaced the released one."""
        engine = InterruptingEngine()
        tries = TxTries(capacity=3, node_store=node_store, engine=engine)
        root = reference_root(transactions_2)
        old_handle = tries.add_trie(root, transactions_2)
        engine.before_prove = lambda: tries.add_trie(root, transactions_2)

        proof = tries.retrieve_proof(root, transaction_key(3))

        assert old_handle.storage.released
        assert tries.get(root) is not old_handle
        assert verify(root, transaction_key(3), proof) == transactions_2[3]

    def test_replaced_handle_is_unusable(self, tx_tries, transactions_2, reference_root):
        root = reference_root(transactions_2)
        old_handle = tx_tries.add_trie(root, transactions_2)
        tx_tries.add_trie(root, transactions_2)

        with pytest.raises(StorageError):
            tx_tries.engine.prove(old_handle, transaction_key(0), root)

    def test_root_evicted_while_proving(
        self, node_store, transactions_1, transactions_2, reference_root
    ):
        engine = InterruptingEngine()
        tries = TxTries(capacity=1, node_store=node_store, engine=engine)
        root = reference_root(transactions_1)
        tries.add_trie(root, transactions_1)
        engine.before_prove = lambda: tries.add_trie(reference_root(transactions_2), transactions_2)

        with pytest.raises(StorageError):
            tries.retrieve_proof(root, transaction_key(0))

        assert root not in tries


@pytest.mark.integration
class TestStorageReclamation:
    """Test that evicted tries release exactly their own nodes."""

    def test_evicted_nodes_are_deleted(self, node_store, transactions_2, transactions_3, reference_root):
        tries = TxTries(capacity=1, node_store=node_store)
        tries.add_trie(reference_root(transactions_3), transactions_3)
        handle = tries.add_trie(reference_root(transactions_2), transactions_2)

        assert len(node_store) == len(handle.storage)
        assert tries.get_stats()["nodes_reclaimed"] > 0

    def test_evicted_nodes_leave_disk(self, temp_storage_dir, transactions_2, transactions_3, reference_root):
        """Nodes written while deleting an evicted trie's keys are released too."""
        tries = TxTries.from_config(TxTriesConfig(capacity=1, storage_dir=temp_storage_dir))
        tries.add_trie(reference_root(transactions_3), transactions_3)
        handle = tries.add_trie(reference_root(transactions_2), transactions_2)

        assert len(LocalNodeBackend(temp_storage_dir)) == len(handle.storage)

    def test_shared_nodes_survive_eviction(self, node_store, transactions_2, reference_root):
        """The evicted trie shares nodes with the surviving one."""
        extended = transactions_2 + [keccak(b"extra transaction")]
        tries = TxTries(capacity=1, node_store=node_store)

        tries.add_trie(reference_root(transactions_2), transactions_2)
        root = reference_root(extended)
        handle = tries.add_trie(root, extended)

        assert node_store.get_stats().shared_references > 0
        assert all(node_hash in node_store for node_hash in handle.storage)
        assert_all_provable(tries, root, extended)

    def test_reclamation_disabled(self, node_store, transactions_2, transactions_3, reference_root):
        tries = TxTries(capacity=1, node_store=node_store, reclaim_storage=False)
        first = tries.add_trie(reference_root(transactions_3), transactions_3)
        stored = len(node_store)

        tries.add_trie(reference_root(transactions_2), transactions_2)

        assert not first.storage.released
        assert len(node_store) >= stored
        assert tries.get_stats()["nodes_reclaimed"] == 0

    def test_failed_reclamation(self, node_store, transactions_2, transactions_3, reference_root):
        """A failing delete is counted, and the trie's references are still released."""
        tries = TxTries(capacity=1, node_store=node_store, engine=FailingEngine())
        first = tries.add_trie(reference_root(transactions_3), transactions_3)
        root = reference_root(transactions_2)
        handle = tries.add_trie(root, transactions_2)

        assert tries.get_stats()["reclamation_failures"] == 1
        assert first.storage.released
        assert tries.roots == [root]
        assert len(node_store) == len(handle.storage)


@pytest.mark.unit
class TestStats:
    """Test statistics reporting."""

    def test_get_stats(self, tx_tries, transactions_1, reference_root):
        root = reference_root(transactions_1)
        tx_tries.add_trie(root, transactions_1)
        tx_tries.retrieve_proof(root, transaction_key(0))
        tx_tries.retrieve_encoded_proof(root, transaction_key(1))

        stats = tx_tries.get_stats()

        assert stats["tries_added"] == 1
        assert stats["proofs_served"] == 2
        assert stats["size"] == 1
        assert stats["capacity"] == 3
        assert stats["node_store"].unique_nodes_written == len(tx_tries.node_store)


@pytest.mark.unit
class TestConfig:
    """Test configuration and construction from it."""

    def test_defaults(self):
        config = TxTriesConfig()

        assert config.capacity == DEFAULT_CAPACITY
        assert config.reclaim_storage is True
        assert config.storage_dir is None

    def test_invalid_capacity(self):
        with pytest.raises(ValidationError):
            TxTriesConfig(capacity=0)

    def test_from_env(self, monkeypatch, temp_storage_dir):
        monkeypatch.setenv("TXTRIE_CAPACITY", "5")
        monkeypatch.setenv("TXTRIE_RECLAIM_STORAGE", "false")
        monkeypatch.setenv("TXTRIE_STORAGE_DIR", str(temp_storage_dir))

        config = TxTriesConfig.from_env()

        assert config.capacity == 5
        assert config.reclaim_storage is False
        assert config.storage_dir == temp_storage_dir

    def test_from_env_defaults(self, monkeypatch):
        for name in ("TXTRIE_CAPACITY", "TXTRIE_RECLAIM_STORAGE", "TXTRIE_STORAGE_DIR"):
            monkeypatch.delenv(name, raising=False)

        assert TxTriesConfig.from_env() == TxTriesConfig()

    def test_from_config_in_memory(self):
        tries = TxTries.from_config(TxTriesConfig(capacity=2))

        assert tries.capacity == 2
        assert isinstance(tries.node_store.backend, dict)

    def test_from_config_on_disk(self, temp_storage_dir, transactions_2, reference_root):
        tries = TxTries.from_config(TxTriesConfig(capacity=2, storage_dir=temp_storage_dir))
        root = reference_root(transactions_2)

        tries.add_trie(root, transactions_2)

        assert isinstance(tries.node_store.backend, LocalNodeBackend)
        assert len(LocalNodeBackend(temp_storage_dir)) == len(tries.node_store)
        assert_all_provable(tries, root, transactions_2)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
