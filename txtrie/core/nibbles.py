"""
Key path encoding.

Trie keys are walked one nibble (half byte) at a time. Leaf and extension
nodes store their partial path in hex-prefix form, where the first nibble
carries the terminator flag and the odd-length flag.
"""

from dataclasses import dataclass
from typing import Iterable, Tuple

import rlp

# Hex-prefix flag nibbles
_FLAG_ODD = 1
_FLAG_TERMINATOR = 2


@dataclass(frozen=True)
class NibblePath:
    """
    Ordered sequence of nibbles (0-15).

    Attributes:
        nibbles: Nibble values in walk order
        terminated: True when the path ends at a value (leaf paths)
    """
    nibbles: Tuple[int, ...] = ()
    terminated: bool = False

    def __post_init__(self):
        for nibble in self.nibbles:
            if not 0 <= nibble <= 0x0F:
                raise ValueError(f"Invalid nibble value: {nibble}")

    def __len__(self) -> int:
        return len(self.nibbles)

    def startswith(self, prefix: "NibblePath") -> bool:
        """True if this path begins with the nibbles of ``prefix``."""
        return self.nibbles[:len(prefix.nibbles)] == prefix.nibbles

    def __str__(self) -> str:
        return "".join(f"{n:x}" for n in self.nibbles) + ("+T" if self.terminated else "")


def bytes_to_nibbles(data: bytes) -> Tuple[int, ...]:
    """Expand each byte into two nibbles, high then low."""
    nibbles = []
    for byte in data:
        nibbles.append(byte >> 4)
        nibbles.append(byte & 0x0F)
    return tuple(nibbles)


def nibbles_to_bytes(nibbles: Iterable[int]) -> bytes:
    """
    Pack nibbles back into bytes.

    Raises:
        ValueError: If the number of nibbles is odd
    """
    nibbles = tuple(nibbles)
    if len(nibbles) % 2:
        raise ValueError("Cannot pack an odd number of nibbles")
    return bytes((nibbles[i] << 4) | nibbles[i + 1] for i in range(0, len(nibbles), 2))


def key_to_nibbles(key: bytes) -> NibblePath:
    """
    Convert a raw trie key into its (unterminated) nibble path.

    The empty key yields the empty path, which addresses the trie root.
    Proof generation and verification both go through this function so
    that path comparisons are symmetric.
    """
    return NibblePath(bytes_to_nibbles(key))


def encode_hex_prefix(path: NibblePath) -> bytes:
    """Encode a nibble path and its terminator flag in hex-prefix form."""
    flag = _FLAG_TERMINATOR if path.terminated else 0
    if len(path.nibbles) % 2:
        prefixed = (flag | _FLAG_ODD,) + path.nibbles
    else:
        prefixed = (flag, 0) + path.nibbles
    return nibbles_to_bytes(prefixed)


def decode_hex_prefix(data: bytes) -> NibblePath:
    """
    Decode a hex-prefix encoded path.

    Args:
        data: Encoded path (at least one byte)

    Returns:
        NibblePath with ``terminated`` taken from the flag nibble

    Raises:
        ValueError: On empty input, an unknown flag nibble or non-zero padding
    """
    if not data:
        raise ValueError("Empty hex-prefix path")

    nibbles = bytes_to_nibbles(data)
    flag = nibbles[0]
    if flag > (_FLAG_TERMINATOR | _FLAG_ODD):
        raise ValueError(f"Invalid hex-prefix flag: {flag}")
    if not flag & _FLAG_ODD and nibbles[1] != 0:
        raise ValueError(f"Invalid hex-prefix padding nibble: {nibbles[1]}")

    body = nibbles[1:] if flag & _FLAG_ODD else nibbles[2:]
    return NibblePath(body, terminated=bool(flag & _FLAG_TERMINATOR))


def transaction_key(index: int) -> bytes:
    """
    Canonical trie key for the transaction at ``index`` in a block.

    The key is the RLP encoding of the index as an unsigned integer, so
    index 0 maps to ``0x80`` and index 1 to ``0x01``. The same convention
    must be used to request proofs.
    """
    if index < 0:
        raise ValueError(f"Invalid transaction index: {index}")
    return rlp.encode(index)
