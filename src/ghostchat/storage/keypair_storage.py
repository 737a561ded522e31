"""Identity key pair storage interface and in-memory implementation."""

import asyncio
from abc import ABC, abstractmethod
from typing import Optional

from ..keys import KeyPair


class KeyPairStorage(ABC):
    """Interface for persisting identity key pairs."""

    @abstractmethod
    async def load(self, identity: str) -> Optional[KeyPair]:
        """Load the key pair for an identity (None if absent)."""
        ...

    @abstractmethod
    async def save(self, identity: str, keypair: KeyPair) -> None:
        """Save the key pair for an identity."""
        ...

    @abstractmethod
    async def delete(self, identity: str) -> None:
        """Delete the key pair for an identity."""
        ...

    @abstractmethod
    async def list_identities(self) -> list[str]:
        """List all identities with stored key pairs."""
        ...


class InMemoryKeyPairStorage(KeyPairStorage):
    """
    In-memory implementation of KeyPairStorage (for testing).

    WARNING: Keys are held in memory without encryption and are lost when
    the process exits, so every restart creates a new identity.
    """

    def __init__(self) -> None:
        self._pairs: dict[str, KeyPair] = {}
        self._lock = asyncio.Lock()

    async def load(self, identity: str) -> Optional[KeyPair]:
        async with self._lock:
            return self._pairs.get(identity)

    async def save(self, identity: str, keypair: KeyPair) -> None:
        async with self._lock:
            self._pairs[identity] = keypair

    async def delete(self, identity: str) -> None:
        async with self._lock:
            self._pairs.pop(identity, None)

    async def list_identities(self) -> list[str]:
        async with self._lock:
            return list(self._pairs.keys())
