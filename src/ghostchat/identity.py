"""
Identity key store for GhostChat.

Each identity (user name) owns one key pair, created on first use and
reused across sessions. If storage fails the store falls back to a fresh
pair for the rest of the session; that breaks continuity with earlier
sessions but never blocks the user.
"""

import asyncio
import logging
from typing import Optional

from .keys import KeyPair, generate_keypair
from .storage import KeyPairStorage
from .types import StorageError

logger = logging.getLogger(__name__)


class IdentityKeyStore:
    """
    Get-or-create access to identity key pairs.

    Within one store instance, repeated calls for the same identity return
    the same pair unless ``forget`` is called.
    """

    def __init__(self, storage: KeyPairStorage) -> None:
        self._storage = storage
        self._pairs: dict[str, KeyPair] = {}
        self._lock = asyncio.Lock()

    async def get_or_create_keys(self, identity: str) -> KeyPair:
        """
        Return the key pair for an identity, creating and saving it if needed.

        Args:
            identity: User name the pair belongs to

        Returns:
            The identity's KeyPair
        """
        async with self._lock:
            keypair = self._pairs.get(identity)
            if keypair is not None:
                return keypair

            try:
                keypair = await self._storage.load(identity)
            except StorageError as e:
                # keep whatever is on disk; this pair lives for the session only
                logger.warning("Could not load keys for %s, using session keys: %s", identity, e)
                keypair = generate_keypair()
            else:
                if keypair is None:
                    keypair = generate_keypair()
                    logger.info("Generated new key pair for %s", identity)
                    await self._save(identity, keypair)

            self._pairs[identity] = keypair
            return keypair

    def cached(self, identity: str) -> Optional[KeyPair]:
        return self._pairs.get(identity)

    def forget(self, identity: str) -> None:
        """Drop the in-memory copy (storage is untouched)."""
        self._pairs.pop(identity, None)

    async def _save(self, identity: str, keypair: KeyPair) -> None:
        try:
            await self._storage.save(identity, keypair)
        except StorageError as e:
            logger.warning("Could not save keys for %s, keeping them for this session only: %s", identity, e)
