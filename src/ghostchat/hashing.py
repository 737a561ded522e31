"""
Integrity hashing for GhostChat.

One SHA-512 computation over the UTF-8 text feeds two encodings:

- a 128-character hex digest for generic fingerprinting
- a decimal "field" digest (first 31 bytes, big-endian) for an external
  verifier whose native numeric field is narrower than 512 bits

Both encodings are views of the same digest, so equality in one implies
equality of the content checked through the other.
"""

from cryptography.hazmat.primitives import hashes

from .types import FIELD_HASH_BYTES, FIELD_SUFFIX


def digest(text: str) -> bytes:
    """Return the 64-byte SHA-512 digest of the UTF-8 encoded text."""
    h = hashes.Hash(hashes.SHA512())
    h.update(text.encode("utf-8"))
    return h.finalize()


def hex_from_digest(raw: bytes) -> str:
    """Encode a digest as lowercase hex."""
    return raw.hex()


def field_hash_from_digest(raw: bytes) -> str:
    """Encode the leading bytes of a digest as a decimal field literal."""
    number = int.from_bytes(raw[:FIELD_HASH_BYTES], "big")
    return f"{number}{FIELD_SUFFIX}"


def hash_message(text: str) -> str:
    """SHA-512 of a string, as hex."""
    return hex_from_digest(digest(text))


def hash_for_field(text: str) -> str:
    """
    Shorter hash suitable for a numeric field.

    Args:
        text: Content to fingerprint

    Returns:
        Decimal string with a ``field`` suffix, e.g. ``"1234...field"``
    """
    return field_hash_from_digest(digest(text))
