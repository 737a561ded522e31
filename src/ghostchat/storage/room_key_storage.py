"""Room key storage interface and in-memory implementation."""

import asyncio
from abc import ABC, abstractmethod
from typing import Optional


class RoomKeyStorage(ABC):
    """Interface for persisting derived room keys, keyed by room ID."""

    @abstractmethod
    async def load(self, room_id: str) -> Optional[bytes]:
        """Load the key for a room (None if absent)."""
        ...

    @abstractmethod
    async def save(self, room_id: str, room_key: bytes) -> None:
        """Save the key for a room."""
        ...

    @abstractmethod
    async def remove(self, room_id: str) -> None:
        """Remove the key for a room (left or deleted)."""
        ...

    @abstractmethod
    async def list_rooms(self) -> list[str]:
        """List all rooms with stored keys."""
        ...


class InMemoryRoomKeyStorage(RoomKeyStorage):
    """In-memory implementation of RoomKeyStorage."""

    def __init__(self) -> None:
        self._keys: dict[str, bytes] = {}
        self._lock = asyncio.Lock()

    async def load(self, room_id: str) -> Optional[bytes]:
        async with self._lock:
            key = self._keys.get(room_id)
            return bytes(key) if key is not None else None

    async def save(self, room_id: str, room_key: bytes) -> None:
        async with self._lock:
            self._keys[room_id] = bytes(room_key)

    async def remove(self, room_id: str) -> None:
        async with self._lock:
            self._keys.pop(room_id, None)

    async def list_rooms(self) -> list[str]:
        async with self._lock:
            return list(self._keys.keys())
