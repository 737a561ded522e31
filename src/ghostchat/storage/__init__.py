"""GhostChat storage module."""

from .keypair_storage import KeyPairStorage, InMemoryKeyPairStorage
from .room_key_storage import RoomKeyStorage, InMemoryRoomKeyStorage
from .peer_directory import PeerDirectory
from .file_key_storage import (
    FileKeyPairStorage,
    FileRoomKeyStorage,
    SealedDirectory,
    PasswordRequiredError,
    DecryptionFailedError,
    InvalidKeyDataError,
)

__all__ = [
    "KeyPairStorage",
    "InMemoryKeyPairStorage",
    "RoomKeyStorage",
    "InMemoryRoomKeyStorage",
    "PeerDirectory",
    "FileKeyPairStorage",
    "FileRoomKeyStorage",
    "SealedDirectory",
    "PasswordRequiredError",
    "DecryptionFailedError",
    "InvalidKeyDataError",
]
