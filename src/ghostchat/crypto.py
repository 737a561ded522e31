"""Direct-message encryption and decryption for GhostChat."""

from nacl.exceptions import CryptoError
from nacl.public import Box
from nacl.utils import random as nacl_random

from .envelope import Envelope
from .keys import private_key_from_bytes, public_key_from_bytes
from .types import NONCE_SIZE, EncryptionError, DecryptionError


def encrypt_for_recipient(
    plaintext: str,
    recipient_public_key: bytes,
    sender_secret_key: bytes,
) -> Envelope:
    """
    Encrypt a message for a specific recipient (DM).

    The sender's secret key and the recipient's public key jointly derive
    the box key, so the recipient can also verify who sent the message.

    Args:
        plaintext: Message to encrypt
        recipient_public_key: Recipient's 32-byte public key
        sender_secret_key: Sender's 32-byte secret key

    Returns:
        Envelope with the ciphertext and a fresh random nonce

    Raises:
        InvalidKeyError: If a key has the wrong length
        EncryptionError: If the primitive rejects the inputs
    """
    box = Box(
        private_key_from_bytes(sender_secret_key),
        public_key_from_bytes(recipient_public_key),
    )
    return seal(box, plaintext)


def decrypt_from_sender(
    ciphertext: bytes,
    nonce: bytes,
    sender_public_key: bytes,
    recipient_secret_key: bytes,
) -> str:
    """
    Decrypt a DM from a specific sender.

    Args:
        ciphertext: Box ciphertext (tag + message)
        nonce: 24-byte nonce from the envelope
        sender_public_key: Sender's 32-byte public key
        recipient_secret_key: Our 32-byte secret key

    Returns:
        Decrypted message text

    Raises:
        InvalidKeyError: If a key has the wrong length
        DecryptionError: If authentication fails
    """
    box = Box(
        private_key_from_bytes(recipient_secret_key),
        public_key_from_bytes(sender_public_key),
    )
    try:
        return unseal(box, ciphertext, nonce)
    except CryptoError as e:
        raise DecryptionError("Decryption failed") from e


def seal(box, plaintext: str) -> Envelope:
    """Encrypt with a box or secret box under a fresh nonce."""
    nonce = nacl_random(NONCE_SIZE)
    try:
        encrypted = box.encrypt(plaintext.encode("utf-8"), nonce)
    except (CryptoError, TypeError, ValueError) as e:
        raise EncryptionError(f"Encryption failed: {e}") from e
    return Envelope(ciphertext=encrypted.ciphertext, nonce=nonce)


def unseal(box, ciphertext: bytes, nonce: bytes) -> str:
    """Decrypt with a box or secret box; CryptoError propagates to the caller."""
    if len(nonce) != NONCE_SIZE:
        raise DecryptionError(f"Nonce must be {NONCE_SIZE} bytes, got {len(nonce)}")
    plaintext = box.decrypt(bytes(ciphertext), bytes(nonce))
    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecryptionError("Decrypted payload is not valid UTF-8") from e
