"""Envelope types and their text-safe wire encoding."""

import base64
import binascii
from dataclasses import dataclass

from .types import NONCE_SIZE, PUBLIC_KEY_SIZE, InvalidEnvelopeError


@dataclass(frozen=True)
class Envelope:
    """An encrypted DM or room message."""
    ciphertext: bytes  # box/secretbox output (16-byte tag + message)
    nonce: bytes  # 24 bytes, fresh per encryption

    def to_wire(self) -> dict[str, str]:
        """
        Encode for the transport.

        Format:
            {"payload": base64(ciphertext), "nonce": base64(nonce)}
        """
        return {
            "payload": encode_base64(self.ciphertext),
            "nonce": encode_base64(self.nonce),
        }

    @classmethod
    def from_wire(cls, data: dict) -> "Envelope":
        """
        Decode from the transport form.

        Raises:
            InvalidEnvelopeError: If fields are missing or malformed
        """
        return cls(
            ciphertext=decode_base64(_field(data, "payload")),
            nonce=decode_base64(_field(data, "nonce"), NONCE_SIZE),
        )


@dataclass(frozen=True)
class SecretEnvelope:
    """
    A one-time secret message.

    Carries only the public half of the ephemeral key pair; the secret half
    is discarded by the sender before this object exists.
    """
    ciphertext: bytes
    ephemeral_public_key: bytes  # 32 bytes
    nonce: bytes  # 24 bytes
    content_hash: str  # decimal field hash of the plaintext

    def to_wire(self) -> dict[str, str]:
        """Encode for the transport."""
        return {
            "payload": encode_base64(self.ciphertext),
            "ephemeralPk": encode_base64(self.ephemeral_public_key),
            "nonce": encode_base64(self.nonce),
            "aleoHash": self.content_hash,
        }

    @classmethod
    def from_wire(cls, data: dict) -> "SecretEnvelope":
        """
        Decode from the transport form.

        Raises:
            InvalidEnvelopeError: If fields are missing or malformed
        """
        content_hash = _field(data, "aleoHash")
        if not isinstance(content_hash, str):
            raise InvalidEnvelopeError("aleoHash must be a string")
        return cls(
            ciphertext=decode_base64(_field(data, "payload")),
            ephemeral_public_key=decode_base64(_field(data, "ephemeralPk"), PUBLIC_KEY_SIZE),
            nonce=decode_base64(_field(data, "nonce"), NONCE_SIZE),
            content_hash=content_hash,
        )


def encode_base64(data: bytes) -> str:
    """Standard padded base64, as text."""
    return base64.b64encode(data).decode("ascii")


def decode_base64(text: str, expected_size: int = 0) -> bytes:
    """
    Decode standard base64 text.

    Args:
        text: base64 string
        expected_size: Required decoded length (0 for any)

    Raises:
        InvalidEnvelopeError: If the text is not valid base64 or has the wrong length
    """
    if not isinstance(text, str):
        raise InvalidEnvelopeError(f"Expected base64 string, got {type(text).__name__}")
    try:
        data = base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidEnvelopeError(f"Invalid base64: {e}") from e
    if expected_size and len(data) != expected_size:
        raise InvalidEnvelopeError(
            f"Expected {expected_size} bytes, got {len(data)}"
        )
    return data


def _field(data: dict, name: str):
    try:
        return data[name]
    except (KeyError, TypeError) as e:
        raise InvalidEnvelopeError(f"Missing field: {name}") from e
