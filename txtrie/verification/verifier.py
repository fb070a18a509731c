"""
Merkle-Patricia proof verification.

Proves presence or absence of a key against a trusted root hash using only
the nodes disclosed in a ProofDatabase. The party that supplied the proof
is not trusted: every looked-up node must hash to the pointer that led to
it, and every structural anomaly is reported instead of being read as
absence.

Outcomes:
- value bytes: key proven present
- None: key proven absent
- VerifyError: proof insufficient or malformed (NOT absence)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional
import logging
from threading import RLock
import time

from eth_hash.auto import keccak

from txtrie.core.proof_database import ProofDatabase
from txtrie.core.walk import NodeLookup, walk_path
from txtrie.errors import BadNodeError, MissingNodeError, TxTrieError

logger = logging.getLogger(__name__)


def proof_lookup(proof: ProofDatabase) -> NodeLookup:
    """Lookup over a proof database that checks every node against its hash."""

    def lookup(node_hash: bytes, depth: int) -> bytes:
        data = proof.get(node_hash)
        if data is None:
            raise MissingNodeError(node_hash, depth)
        if keccak(data) != node_hash:
            raise BadNodeError(node_hash, depth, "node bytes do not match hash")
        return data

    return lookup


def verify(root: bytes, key: bytes, proof: ProofDatabase) -> Optional[bytes]:
    """
    Verify a proof for ``key`` against ``root``.

    Returns:
        The proven value, or None if the key is proven absent

    Raises:
        VerifyError: The proof cannot establish either outcome
    """
    return walk_path(root, key, proof_lookup(proof))


def verify_proof(root: bytes, key: bytes, proof: ProofDatabase) -> bool:
    """True if ``key`` is proven present under ``root``."""
    return verify(root, key, proof) is not None


class ProofStatus(Enum):
    """Outcome of a proof verification."""
    PRESENT = "present"
    ABSENT = "absent"
    INVALID = "invalid"


@dataclass
class ProofVerificationResult:
    """Result of verifying one proof."""

    root: Optional[bytes]
    key: Optional[bytes]
    status: ProofStatus
    value: Optional[bytes] = None
    error: Optional[str] = None
    verification_time: float = 0.0

    @property
    def is_valid(self) -> bool:
        """True when the proof established presence or absence."""
        return self.status != ProofStatus.INVALID


class ProofVerifier:
    """
    Verifies proofs received from untrusted parties.

    Wraps :func:`verify` with result objects and running statistics, and
    accepts proofs in their wire form.
    """

    def __init__(self):
        self._lock = RLock()

        self.stats = {
            "proofs_verified": 0,
            "proofs_present": 0,
            "proofs_absent": 0,
            "proofs_invalid": 0,
        }

        logger.info("Initialized proof verifier")

    def verify(self, root: bytes, key: bytes, proof: ProofDatabase) -> ProofVerificationResult:
        """
        Verify a decoded proof.

        Args:
            root: Trusted root hash
            key: Key the proof claims to cover
            proof: Disclosed nodes

        Returns:
            Verification result (never raises for bad proofs)
        """
        start_time = time.time()

        try:
            value = verify(root, key, proof)
        except TxTrieError as e:
            return self._record(root, key, ProofStatus.INVALID, start_time, error=str(e))

        status = ProofStatus.PRESENT if value is not None else ProofStatus.ABSENT
        return self._record(root, key, status, start_time, value=value)

    def verify_encoded(self, data: bytes, trusted_root: bytes) -> ProofVerificationResult:
        """
        Decode and verify a proof in wire form.

        The root embedded in the proof comes from the sender and is only
        accepted when it equals ``trusted_root``.

        Args:
            data: Encoded proof (root, key and records)
            trusted_root: Root hash the caller already trusts

        Returns:
            Verification result
        """
        start_time = time.time()

        try:
            proof = ProofDatabase.decode(data)
        except TxTrieError as e:
            return self._record(trusted_root, None, ProofStatus.INVALID, start_time, error=str(e))

        if proof.root != trusted_root:
            return self._record(
                trusted_root,
                proof.key,
                ProofStatus.INVALID,
                start_time,
                error=f"untrusted root: {proof.root.hex()[:16]}...",
            )

        return self.verify(trusted_root, proof.key, proof)

    def _record(
        self,
        root: Optional[bytes],
        key: Optional[bytes],
        status: ProofStatus,
        start_time: float,
        value: Optional[bytes] = None,
        error: Optional[str] = None,
    ) -> ProofVerificationResult:
        with self._lock:
            self.stats["proofs_verified"] += 1
            self.stats[f"proofs_{status.value}"] += 1

        elapsed = time.time() - start_time
        root_hex = root.hex()[:16] if root else "<none>"
        if status == ProofStatus.INVALID:
            logger.warning(f"Rejected proof for root {root_hex}...: {error}")
        else:
            logger.debug(
                f"Verified proof for root {root_hex}... "
                f"in {elapsed * 1000:.2f}ms: {status.value.upper()}"
            )

        return ProofVerificationResult(
            root=root,
            key=key,
            status=status,
            value=value,
            error=error,
            verification_time=elapsed,
        )

    def get_stats(self) -> Dict[str, int]:
        """Get verifier statistics."""
        with self._lock:
            return dict(self.stats)
