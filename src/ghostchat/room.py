"""
Room encryption for GhostChat.

All members of a room share one symmetric key derived from a passphrase.
The derivation is a single unsalted SHA-512 pass, so members who join
independently converge on the same key without a key exchange. That also
means the key is only as strong as the passphrase: there is no stretching
and no per-room salt. Changing the derivation breaks existing rooms.
"""

import asyncio
import logging
from typing import Optional

from nacl.exceptions import CryptoError
from nacl.secret import SecretBox

from .crypto import seal, unseal
from .envelope import Envelope
from .hashing import digest
from .storage import RoomKeyStorage
from .types import ROOM_KEY_SIZE, DecryptionError, InvalidKeyError, RoomKeyNotFoundError, StorageError

logger = logging.getLogger(__name__)


def derive_room_key(passphrase: str) -> bytes:
    """
    Derive a 32-byte room key from a passphrase.

    Args:
        passphrase: Shared room passphrase

    Returns:
        First 32 bytes of SHA-512(passphrase)
    """
    return digest(passphrase)[:ROOM_KEY_SIZE]


def encrypt_room(plaintext: str, room_key: bytes) -> Envelope:
    """
    Encrypt with a symmetric room key.

    Raises:
        InvalidKeyError: If the key is not 32 bytes
        EncryptionError: If the primitive rejects the inputs
    """
    return seal(_secret_box(room_key), plaintext)


def decrypt_room(ciphertext: bytes, nonce: bytes, room_key: bytes) -> str:
    """
    Decrypt with a symmetric room key.

    Raises:
        InvalidKeyError: If the key is not 32 bytes
        DecryptionError: If authentication fails (e.g. wrong passphrase)
    """
    box = _secret_box(room_key)
    try:
        return unseal(box, ciphertext, nonce)
    except CryptoError as e:
        raise DecryptionError("Room decryption failed") from e


def _secret_box(room_key: bytes) -> SecretBox:
    if not isinstance(room_key, (bytes, bytearray)) or len(room_key) != ROOM_KEY_SIZE:
        raise InvalidKeyError(f"Room key must be {ROOM_KEY_SIZE} bytes")
    return SecretBox(bytes(room_key))


class RoomKeyring:
    """
    Client-side holder of the keys for joined rooms.

    Keys are cached in memory and mirrored to a RoomKeyStorage so that
    rooms survive a restart. Keys never leave the client.

    Example usage:
        ```python
        keyring = RoomKeyring(InMemoryRoomKeyStorage())
        await keyring.join("room-1", "opensesame")
        envelope = await keyring.encrypt("room-1", "hi all")
        ```
    """

    def __init__(self, storage: RoomKeyStorage) -> None:
        self._storage = storage
        self._keys: dict[str, bytes] = {}
        self._lock = asyncio.Lock()

    async def join(self, room_id: str, passphrase: str) -> bytes:
        """Derive and remember the key for a room."""
        room_key = derive_room_key(passphrase)
        async with self._lock:
            self._keys[room_id] = room_key
        try:
            await self._storage.save(room_id, room_key)
        except StorageError as e:
            logger.warning(
                "Could not save key for room %s, keeping it for this session only: %s", room_id, e
            )
        return room_key

    async def key_for(self, room_id: str) -> bytes:
        """
        Return the key for a room.

        Raises:
            RoomKeyNotFoundError: If the room was never joined
        """
        key = await self.get(room_id)
        if key is None:
            raise RoomKeyNotFoundError(room_id)
        return key

    async def get(self, room_id: str) -> Optional[bytes]:
        """Return the key for a room, or None."""
        async with self._lock:
            key = self._keys.get(room_id)
        if key is not None:
            return key

        key = await self._storage.load(room_id)
        if key is not None:
            async with self._lock:
                self._keys[room_id] = key
        return key

    async def has(self, room_id: str) -> bool:
        return await self.get(room_id) is not None

    async def leave(self, room_id: str) -> None:
        """Forget the key for a room (leave or delete)."""
        async with self._lock:
            self._keys.pop(room_id, None)
        await self._storage.remove(room_id)
        logger.debug("Removed room key for %s", room_id)

    async def encrypt(self, room_id: str, plaintext: str) -> Envelope:
        return encrypt_room(plaintext, await self.key_for(room_id))

    async def decrypt(self, room_id: str, envelope: Envelope) -> str:
        return decrypt_room(envelope.ciphertext, envelope.nonce, await self.key_for(room_id))
