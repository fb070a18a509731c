"""
Node storage for txtrie.

Reference-counted, content-addressed storage shared by cached tries.
"""

from .node_store import NodeStore, NodeStoreStats, TrieStorage

__all__ = ["NodeStore", "NodeStoreStats", "TrieStorage"]
