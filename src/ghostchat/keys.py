"""Key generation and management for GhostChat."""

import base64
import binascii
from dataclasses import dataclass

from nacl.public import PrivateKey, PublicKey

from .types import PUBLIC_KEY_SIZE, SECRET_KEY_SIZE, InvalidKeyError


@dataclass(frozen=True)
class KeyPair:
    """
    A Curve25519 key pair for NaCl box encryption.

    Attributes:
        public_key: 32-byte public key, safe to publish.
        secret_key: 32-byte secret key, never leaves the client.
    """

    public_key: bytes
    secret_key: bytes

    def __post_init__(self) -> None:
        check_public_key(self.public_key)
        check_secret_key(self.secret_key)

    def __repr__(self) -> str:
        return f"KeyPair(public_key={self.public_key_b64!r})"

    @property
    def public_key_b64(self) -> str:
        """The public key as base64 text."""
        return base64.b64encode(self.public_key).decode("ascii")

    def to_dict(self) -> dict[str, str]:
        """Serialize to a base64 dictionary (for persistence only)."""
        return {
            "publicKey": self.public_key_b64,
            "secretKey": base64.b64encode(self.secret_key).decode("ascii"),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "KeyPair":
        """
        Load a key pair from its base64 dictionary form.

        Raises:
            InvalidKeyError: If a field is missing or malformed.
        """
        try:
            public_key = base64.b64decode(data["publicKey"], validate=True)
            secret_key = base64.b64decode(data["secretKey"], validate=True)
        except (KeyError, TypeError, binascii.Error) as e:
            raise InvalidKeyError(f"Invalid key pair data: {e}") from e
        return cls(public_key=public_key, secret_key=secret_key)


def generate_keypair() -> KeyPair:
    """
    Generate a random Curve25519 key pair.

    Returns:
        A fresh KeyPair
    """
    private_key = PrivateKey.generate()
    return KeyPair(
        public_key=bytes(private_key.public_key),
        secret_key=bytes(private_key),
    )


def keypair_from_secret_key(secret_key: bytes) -> KeyPair:
    """Rebuild a key pair from its 32-byte secret key."""
    private_key = private_key_from_bytes(secret_key)
    return KeyPair(
        public_key=bytes(private_key.public_key),
        secret_key=bytes(private_key),
    )


def check_public_key(data: bytes) -> None:
    """Raise InvalidKeyError unless data is a 32-byte public key."""
    if not isinstance(data, (bytes, bytearray)) or len(data) != PUBLIC_KEY_SIZE:
        raise InvalidKeyError(f"Public key must be {PUBLIC_KEY_SIZE} bytes")


def check_secret_key(data: bytes) -> None:
    """Raise InvalidKeyError unless data is a 32-byte secret key."""
    if not isinstance(data, (bytes, bytearray)) or len(data) != SECRET_KEY_SIZE:
        raise InvalidKeyError(f"Secret key must be {SECRET_KEY_SIZE} bytes")


def public_key_from_bytes(data: bytes) -> PublicKey:
    """Create a NaCl public key from raw bytes."""
    check_public_key(data)
    return PublicKey(bytes(data))


def private_key_from_bytes(data: bytes) -> PrivateKey:
    """Create a NaCl private key from raw bytes."""
    check_secret_key(data)
    return PrivateKey(bytes(data))
