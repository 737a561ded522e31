"""
GhostChat - End-to-end encrypted chat client core

Python implementation of the GhostChat client using NaCl box (X25519 +
XSalsa20-Poly1305) for direct messages, NaCl secretbox for rooms, and
ephemeral-key boxes for one-time secrets.
"""

from .keys import KeyPair, generate_keypair, keypair_from_secret_key
from .crypto import encrypt_for_recipient, decrypt_from_sender
from .room import derive_room_key, encrypt_room, decrypt_room, RoomKeyring
from .secret import (
    create_secret_message,
    read_secret_message,
    verify_secret_hash,
    SecretMessage,
    SecretStatus,
)
from .hashing import hash_message, hash_for_field
from .envelope import Envelope, SecretEnvelope
from .types import (
    PUBLIC_KEY_SIZE,
    SECRET_KEY_SIZE,
    ROOM_KEY_SIZE,
    NONCE_SIZE,
    CONNECTED,
    DISCONNECTED,
    GhostChatError,
    InvalidKeyError,
    EncryptionError,
    DecryptionError,
    TamperedSecretError,
    SecretAlreadyReadError,
    InvalidEnvelopeError,
    MalformedFrameError,
    TransportDisconnectedError,
    StorageError,
    RoomKeyNotFoundError,
    PublicKeyNotFoundError,
)
from .models import (
    RoomType,
    MessageKind,
    UserInfo,
    Room,
    EncryptedMessage,
    SecretRecord,
    DecryptedMessage,
)
from .events import TransportEvent, parse_event, parse_frame, serialize_event
from .storage import (
    KeyPairStorage,
    InMemoryKeyPairStorage,
    RoomKeyStorage,
    InMemoryRoomKeyStorage,
    FileKeyPairStorage,
    FileRoomKeyStorage,
    PeerDirectory,
)
from .identity import IdentityKeyStore
from .transport import ConnectionState, TransportConfig, TransportChannel
from .config import GhostChatConfig
from .client import GhostChatClient, NotStartedError

__version__ = "0.1.0"

__all__ = [
    # Keys
    "KeyPair",
    "generate_keypair",
    "keypair_from_secret_key",
    # Crypto
    "encrypt_for_recipient",
    "decrypt_from_sender",
    # Rooms
    "derive_room_key",
    "encrypt_room",
    "decrypt_room",
    "RoomKeyring",
    # Secrets
    "create_secret_message",
    "read_secret_message",
    "verify_secret_hash",
    "SecretMessage",
    "SecretStatus",
    # Hashing
    "hash_message",
    "hash_for_field",
    # Envelope
    "Envelope",
    "SecretEnvelope",
    # Models
    "RoomType",
    "MessageKind",
    "UserInfo",
    "Room",
    "EncryptedMessage",
    "SecretRecord",
    "DecryptedMessage",
    # Events
    "TransportEvent",
    "parse_event",
    "parse_frame",
    "serialize_event",
    # Storage
    "KeyPairStorage",
    "InMemoryKeyPairStorage",
    "RoomKeyStorage",
    "InMemoryRoomKeyStorage",
    "FileKeyPairStorage",
    "FileRoomKeyStorage",
    "PeerDirectory",
    "IdentityKeyStore",
    # Transport
    "ConnectionState",
    "TransportConfig",
    "TransportChannel",
    # Client
    "GhostChatConfig",
    "GhostChatClient",
    # Errors
    "GhostChatError",
    "InvalidKeyError",
    "EncryptionError",
    "DecryptionError",
    "TamperedSecretError",
    "SecretAlreadyReadError",
    "InvalidEnvelopeError",
    "MalformedFrameError",
    "TransportDisconnectedError",
    "StorageError",
    "RoomKeyNotFoundError",
    "PublicKeyNotFoundError",
    "NotStartedError",
    # Constants
    "PUBLIC_KEY_SIZE",
    "SECRET_KEY_SIZE",
    "ROOM_KEY_SIZE",
    "NONCE_SIZE",
    "CONNECTED",
    "DISCONNECTED",
]
