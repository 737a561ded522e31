"""
File-based key storage with password protection.

Stores identity key pairs and room keys encrypted with AES-256-GCM under a
password-derived key (PBKDF2). Files live in `~/.ghostchat/keys/` and
`~/.ghostchat/rooms/` unless another directory is given.

## File Format

Each file contains:
- Salt: 32 bytes (random, for PBKDF2)
- Nonce: 12 bytes (random, for AES-GCM)
- Ciphertext: variable (JSON record)
- Tag: 16 bytes (authentication tag)

File names are the URL-safe base64 of the identity or room ID, so any
name maps to a valid file name and back.

## Security

- PBKDF2-HMAC-SHA256 with 100,000 iterations
- AES-256-GCM authenticated encryption
- Files are 600 and directories 700 (owner only)
- Salt is unique per file
"""

import base64
import binascii
import json
import logging
import os
from pathlib import Path
from typing import Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..keys import KeyPair
from ..types import ROOM_KEY_SIZE, InvalidKeyError, StorageError
from .keypair_storage import KeyPairStorage
from .room_key_storage import RoomKeyStorage

logger = logging.getLogger(__name__)


class PasswordRequiredError(StorageError):
    """Raised when password is required but not set."""

    def __init__(self) -> None:
        super().__init__("Password is required for file key storage")


class DecryptionFailedError(StorageError):
    """Raised when decryption fails (wrong password)."""

    def __init__(self) -> None:
        super().__init__("Decryption failed - incorrect password or corrupted data")


class InvalidKeyDataError(StorageError):
    """Raised when key data is invalid."""

    def __init__(self) -> None:
        super().__init__("Invalid key data format")


class SealedDirectory:
    """
    A directory of password-sealed JSON records.

    Shared by FileKeyPairStorage and FileRoomKeyStorage.
    """

    # PBKDF2 iteration count (OWASP recommendation for SHA256)
    PBKDF2_ITERATIONS = 100_000

    SALT_SIZE = 32
    NONCE_SIZE = 12
    TAG_SIZE = 16

    FILE_SUFFIX = ".key"

    # Minimum file size (salt + nonce + tag)
    MIN_FILE_SIZE = 32 + 12 + 16

    def __init__(self, directory: Path, password: Optional[str] = None) -> None:
        self.directory = directory
        self._password = password
        self._cached_derived_key: Optional[bytes] = None
        self._cached_salt: Optional[bytes] = None

    def set_password(self, password: str) -> None:
        """Set the password for encryption/decryption."""
        self._password = password
        self._cached_derived_key = None
        self._cached_salt = None

    def clear_password(self) -> None:
        """Clear the password and cached keys from memory."""
        self._password = None
        self._cached_derived_key = None
        self._cached_salt = None

    def write(self, name: str, record: dict) -> None:
        """
        Seal a record and write it under a name.

        Raises:
            PasswordRequiredError: If no password is set.
            StorageError: If the file cannot be written.
        """
        if not self._password:
            raise PasswordRequiredError()

        salt = os.urandom(self.SALT_SIZE)
        nonce = os.urandom(self.NONCE_SIZE)
        derived_key = self._derive_key(self._password, salt)

        ciphertext_and_tag = AESGCM(derived_key).encrypt(
            nonce, json.dumps(record).encode("utf-8"), None
        )

        try:
            self._ensure_directory()
            file_path = self._file_path(name)
            file_path.write_bytes(salt + nonce + ciphertext_and_tag)
        except OSError as e:
            raise StorageError(f"Cannot write {name}: {e}") from e

        self._set_restrictive_permissions(file_path)

    def read(self, name: str) -> Optional[dict]:
        """
        Read and unseal the record stored under a name.

        Returns:
            The record, or None if no file exists.

        Raises:
            PasswordRequiredError: If no password is set.
            DecryptionFailedError: If decryption fails (wrong password).
            InvalidKeyDataError: If the file is corrupted.
        """
        if not self._password:
            raise PasswordRequiredError()

        file_path = self._file_path(name)
        if not file_path.exists():
            return None

        try:
            file_data = file_path.read_bytes()
        except OSError as e:
            raise StorageError(f"Cannot read {name}: {e}") from e

        if len(file_data) < self.MIN_FILE_SIZE:
            raise InvalidKeyDataError()

        salt = file_data[: self.SALT_SIZE]
        nonce = file_data[self.SALT_SIZE : self.SALT_SIZE + self.NONCE_SIZE]
        ciphertext_and_tag = file_data[self.SALT_SIZE + self.NONCE_SIZE :]

        derived_key = self._derive_key(self._password, salt)
        try:
            plaintext = AESGCM(derived_key).decrypt(nonce, ciphertext_and_tag, None)
        except InvalidTag as e:
            raise DecryptionFailedError() from e

        try:
            record = json.loads(plaintext.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise InvalidKeyDataError() from e
        if not isinstance(record, dict):
            raise InvalidKeyDataError()
        return record

    def delete(self, name: str) -> None:
        file_path = self._file_path(name)
        try:
            if file_path.exists():
                file_path.unlink()
        except OSError as e:
            raise StorageError(f"Cannot delete {name}: {e}") from e

    def names(self) -> list[str]:
        """List the names of all stored records."""
        if not self.directory.exists():
            return []
        names = []
        for f in self.directory.iterdir():
            if f.suffix != self.FILE_SUFFIX:
                continue
            try:
                names.append(_decode_name(f.stem))
            except ValueError:
                logger.debug("Skipping foreign file %s", f.name)
        return names

    def _ensure_directory(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        try:
            self.directory.chmod(0o700)
        except OSError:
            pass  # not supported on every platform

    def _file_path(self, name: str) -> Path:
        return self.directory / f"{_encode_name(name)}{self.FILE_SUFFIX}"

    def _derive_key(self, password: str, salt: bytes) -> bytes:
        """Derive an encryption key from password using PBKDF2."""
        if self._cached_derived_key and self._cached_salt == salt:
            return self._cached_derived_key

        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=self.PBKDF2_ITERATIONS,
        )
        derived_key = kdf.derive(password.encode("utf-8"))

        self._cached_derived_key = derived_key
        self._cached_salt = salt
        return derived_key

    def _set_restrictive_permissions(self, file_path: Path) -> None:
        try:
            file_path.chmod(0o600)
        except OSError:
            pass  # not supported on every platform


class FileKeyPairStorage(KeyPairStorage):
    """
    Password-protected file storage for identity key pairs.

    Example usage:
        ```python
        storage = FileKeyPairStorage(password="user-password")
        store = IdentityKeyStore(storage)
        keys = await store.get_or_create_keys("alice")
        ```
    """

    DIRECTORY_NAME = ".ghostchat/keys"

    def __init__(
        self,
        password: Optional[str] = None,
        directory: Union[str, Path, None] = None,
    ) -> None:
        """
        Create a new file key pair storage.

        Args:
            password: Password for encryption. If not provided, must be set
                      before use.
            directory: Storage directory (default: ~/.ghostchat/keys).
        """
        path = Path(directory) if directory else Path.home() / self.DIRECTORY_NAME
        self._files = SealedDirectory(path, password)

    @property
    def directory(self) -> Path:
        return self._files.directory

    def set_password(self, password: str) -> None:
        self._files.set_password(password)

    def clear_password(self) -> None:
        self._files.clear_password()

    async def load(self, identity: str) -> Optional[KeyPair]:
        record = self._files.read(identity)
        if record is None:
            return None
        try:
            return KeyPair.from_dict(record)
        except InvalidKeyError as e:
            raise InvalidKeyDataError() from e

    async def save(self, identity: str, keypair: KeyPair) -> None:
        record = {"identity": identity, **keypair.to_dict()}
        self._files.write(identity, record)

    async def delete(self, identity: str) -> None:
        self._files.delete(identity)

    async def list_identities(self) -> list[str]:
        return self._files.names()


class FileRoomKeyStorage(RoomKeyStorage):
    """Password-protected file storage for room keys."""

    DIRECTORY_NAME = ".ghostchat/rooms"

    def __init__(
        self,
        password: Optional[str] = None,
        directory: Union[str, Path, None] = None,
    ) -> None:
        path = Path(directory) if directory else Path.home() / self.DIRECTORY_NAME
        self._files = SealedDirectory(path, password)

    @property
    def directory(self) -> Path:
        return self._files.directory

    async def load(self, room_id: str) -> Optional[bytes]:
        record = self._files.read(room_id)
        if record is None:
            return None
        try:
            key = base64.b64decode(record["roomKey"], validate=True)
        except (KeyError, TypeError, binascii.Error) as e:
            raise InvalidKeyDataError() from e
        if len(key) != ROOM_KEY_SIZE:
            raise InvalidKeyDataError()
        return key

    async def save(self, room_id: str, room_key: bytes) -> None:
        record = {
            "roomId": room_id,
            "roomKey": base64.b64encode(room_key).decode("ascii"),
        }
        self._files.write(room_id, record)

    async def remove(self, room_id: str) -> None:
        self._files.delete(room_id)

    async def list_rooms(self) -> list[str]:
        return self._files.names()


def _encode_name(name: str) -> str:
    return base64.urlsafe_b64encode(name.encode("utf-8")).decode("ascii").rstrip("=")


def _decode_name(stem: str) -> str:
    padded = stem + "=" * (-len(stem) % 4)
    try:
        return base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8")
    except (binascii.Error, UnicodeError) as e:
        raise ValueError(f"Not an encoded name: {stem}") from e
