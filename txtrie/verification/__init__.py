"""
Merkle-Patricia Proof Verification

Trustless verification of proofs from untrusted parties.
"""

from .verifier import (
    ProofStatus,
    ProofVerificationResult,
    ProofVerifier,
    proof_lookup,
    verify,
    verify_proof,
)

__all__ = [
    "ProofStatus",
    "ProofVerificationResult",
    "ProofVerifier",
    "proof_lookup",
    "verify",
    "verify_proof",
]
