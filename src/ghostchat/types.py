"""Type definitions and protocol constants for GhostChat."""

# Key and nonce sizes (NaCl box / secretbox)
PUBLIC_KEY_SIZE = 32
SECRET_KEY_SIZE = 32
ROOM_KEY_SIZE = 32
NONCE_SIZE = 24
TAG_SIZE = 16

# Integrity hash constants
HASH_SIZE = 64  # SHA-512
FIELD_HASH_BYTES = 31  # fits below the external verifier's field modulus
FIELD_SUFFIX = "field"

# Synthetic transport event tags (never sent over the wire)
CONNECTED = "connected"
DISCONNECTED = "disconnected"


# Exception types
class GhostChatError(Exception):
    """Base exception for GhostChat errors."""
    pass


class InvalidKeyError(GhostChatError, ValueError):
    """Key has the wrong length or format."""
    pass


class EncryptionError(GhostChatError):
    """Encryption failed."""
    pass


class DecryptionError(GhostChatError):
    """Decryption failed (wrong key, corrupted ciphertext, or tampering)."""
    pass


class TamperedSecretError(DecryptionError):
    """A one-time secret failed authentication."""

    def __init__(self) -> None:
        super().__init__("Secret decryption failed: message may have been tampered with")


class SecretAlreadyReadError(GhostChatError):
    """A one-time secret was already read or destroyed."""

    def __init__(self, secret_id: str) -> None:
        super().__init__(f"Secret already read: {secret_id}")
        self.secret_id = secret_id


class InvalidEnvelopeError(GhostChatError):
    """Envelope fields are missing or not valid base64."""
    pass


class MalformedFrameError(GhostChatError):
    """Inbound transport frame could not be parsed."""
    pass


class TransportDisconnectedError(GhostChatError):
    """Transport was explicitly closed."""
    pass


class StorageError(GhostChatError):
    """Storage operation failed."""
    pass


class RoomKeyNotFoundError(GhostChatError):
    """No room key is held for a room."""

    def __init__(self, room_id: str) -> None:
        super().__init__(f"Room key not found for room: {room_id}")
        self.room_id = room_id


class PublicKeyNotFoundError(GhostChatError):
    """Public key not known for a user."""

    def __init__(self, user_id: str) -> None:
        super().__init__(f"Public key not found for user: {user_id}")
        self.user_id = user_id
