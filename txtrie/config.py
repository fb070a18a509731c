"""
Trie cache configuration.

Settings come from keyword arguments or from the environment:

- TXTRIE_CAPACITY: number of tries kept resident (default 3)
- TXTRIE_RECLAIM_STORAGE: "true"/"false", reclaim node storage on eviction
- TXTRIE_STORAGE_DIR: directory for on-disk node storage (default: in memory)
"""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

DEFAULT_CAPACITY = 3


class TxTriesConfig(BaseModel):
    """Transaction trie cache configuration."""

    capacity: int = Field(
        default=DEFAULT_CAPACITY,
        ge=1,
        description="Maximum number of tries kept resident"
    )
    reclaim_storage: bool = Field(
        default=True,
        description="Delete an evicted trie's unshared nodes from storage"
    )
    storage_dir: Optional[Path] = Field(
        default=None,
        description="Directory for on-disk node storage (None keeps nodes in memory)"
    )

    @classmethod
    def from_env(cls) -> "TxTriesConfig":
        """Build a configuration from TXTRIE_* environment variables."""
        storage_dir = os.getenv("TXTRIE_STORAGE_DIR")
        return cls(
            capacity=int(os.getenv("TXTRIE_CAPACITY", str(DEFAULT_CAPACITY))),
            reclaim_storage=os.getenv("TXTRIE_RECLAIM_STORAGE", "true").lower() == "true",
            storage_dir=Path(storage_dir) if storage_dir else None,
        )
