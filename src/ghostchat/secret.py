"""
One-time ("burn after read") secret messages.

A secret is encrypted with NaCl box under a throwaway key pair generated
inside create_secret_message. Only the public half of that pair leaves the
call, so once it returns nobody but the recipient can derive the box key,
not even the sender. The plaintext's field hash travels with the envelope
for external registration and later verification.

Recipient-side lifecycle (SecretMessage):

    CREATED -> DELIVERED -> READ      (terminal)
                         -> TAMPERED  (terminal)

Expiry is enforced by the server, not here.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from nacl.exceptions import CryptoError
from nacl.public import Box, PrivateKey

from .crypto import seal, unseal
from .envelope import SecretEnvelope
from .hashing import hash_for_field
from .keys import check_secret_key, private_key_from_bytes, public_key_from_bytes
from .types import DecryptionError, SecretAlreadyReadError, TamperedSecretError

logger = logging.getLogger(__name__)


def create_secret_message(plaintext: str, recipient_public_key: bytes) -> SecretEnvelope:
    """
    Create a one-time secret message.

    1. Generate an ephemeral key pair
    2. Encrypt with NaCl box (ephemeral secret + recipient public)
    3. Compute the field hash of the plaintext
    4. Return ciphertext, ephemeral public key, nonce and hash

    Args:
        plaintext: Secret text
        recipient_public_key: Recipient's 32-byte public key

    Returns:
        SecretEnvelope (never contains the ephemeral secret key)

    Raises:
        InvalidKeyError: If the recipient key has the wrong length
        EncryptionError: If the primitive rejects the inputs
    """
    recipient = public_key_from_bytes(recipient_public_key)

    ephemeral = PrivateKey.generate()
    ephemeral_public_key = bytes(ephemeral.public_key)
    envelope = seal(Box(ephemeral, recipient), plaintext)
    del ephemeral

    return SecretEnvelope(
        ciphertext=envelope.ciphertext,
        ephemeral_public_key=ephemeral_public_key,
        nonce=envelope.nonce,
        content_hash=hash_for_field(plaintext),
    )


def read_secret_message(
    ciphertext: bytes,
    nonce: bytes,
    ephemeral_public_key: bytes,
    recipient_secret_key: bytes,
) -> str:
    """
    Decrypt a one-time secret message.

    Args:
        ciphertext: Box ciphertext
        nonce: 24-byte nonce
        ephemeral_public_key: The sender's one-time public key
        recipient_secret_key: Our 32-byte secret key

    Returns:
        Secret text

    Raises:
        InvalidKeyError: If a key has the wrong length
        TamperedSecretError: If authentication fails
    """
    box = Box(
        private_key_from_bytes(recipient_secret_key),
        public_key_from_bytes(ephemeral_public_key),
    )
    try:
        return unseal(box, ciphertext, nonce)
    except (CryptoError, DecryptionError) as e:
        raise TamperedSecretError() from e


def verify_secret_hash(plaintext: str, expected_hash: str) -> bool:
    """Check a published field hash against locally decrypted content."""
    return hash_for_field(plaintext) == expected_hash


class SecretStatus(Enum):
    """Lifecycle of a one-time secret on the recipient side."""
    CREATED = "created"
    DELIVERED = "delivered"
    READ = "read"
    TAMPERED = "tampered"

    @property
    def is_terminal(self) -> bool:
        return self in (SecretStatus.READ, SecretStatus.TAMPERED)


@dataclass
class SecretMessage:
    """
    A one-time secret held by its recipient.

    ``read`` succeeds at most once. After the first attempt the envelope
    is dropped, whatever the outcome.
    """
    id: str
    sender_id: str
    envelope: Optional[SecretEnvelope]
    status: SecretStatus = SecretStatus.CREATED
    created_at: datetime = field(default_factory=datetime.now)
    read_at: Optional[datetime] = None
    hash_verified: Optional[bool] = None

    def mark_delivered(self) -> None:
        """Mark as delivered to the recipient."""
        if self.status == SecretStatus.CREATED:
            self.status = SecretStatus.DELIVERED

    def read(self, recipient_secret_key: bytes) -> str:
        """
        Decrypt the secret and destroy the local copy.

        Raises:
            SecretAlreadyReadError: If the secret reached a terminal state
            InvalidKeyError: If the secret key has the wrong length
            TamperedSecretError: If authentication fails
        """
        if self.status.is_terminal or self.envelope is None:
            raise SecretAlreadyReadError(self.id)
        check_secret_key(recipient_secret_key)

        envelope, self.envelope = self.envelope, None
        self.read_at = datetime.now()
        try:
            plaintext = read_secret_message(
                envelope.ciphertext,
                envelope.nonce,
                envelope.ephemeral_public_key,
                recipient_secret_key,
            )
        except TamperedSecretError:
            self.status = SecretStatus.TAMPERED
            logger.warning("Secret %s from %s failed authentication", self.id, self.sender_id)
            raise

        self.status = SecretStatus.READ
        self.hash_verified = verify_secret_hash(plaintext, envelope.content_hash)
        if not self.hash_verified:
            logger.warning("Secret %s content does not match its published hash", self.id)
        return plaintext
