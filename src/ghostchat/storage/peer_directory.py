"""Directory of known peers and their public keys."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from ..models import UserInfo
from ..types import PublicKeyNotFoundError


@dataclass
class _PeerEntry:
    """Entry in the peer directory with optional expiration."""
    user: UserInfo
    expires_at: Optional[datetime]


class PeerDirectory:
    """
    In-memory map of user ID to UserInfo, filled from server events.

    Entries never expire unless a TTL is given.
    """

    def __init__(self, ttl: Optional[timedelta] = None) -> None:
        self._peers: dict[str, _PeerEntry] = {}
        self._ttl = ttl

    def store(self, user: UserInfo) -> None:
        """Store or replace a peer."""
        expires_at = datetime.now() + self._ttl if self._ttl else None
        self._peers[user.id] = _PeerEntry(user=user, expires_at=expires_at)

    def retrieve(self, user_id: str) -> Optional[UserInfo]:
        """Retrieve a peer (returns None if unknown or expired)."""
        entry = self._peers.get(user_id)
        if entry is None:
            return None

        if entry.expires_at is not None and entry.expires_at <= datetime.now():
            del self._peers[user_id]
            return None

        return entry.user

    def public_key_for(self, user_id: str) -> bytes:
        """
        Return a peer's public key.

        Raises:
            PublicKeyNotFoundError: If the peer is unknown
        """
        user = self.retrieve(user_id)
        if user is None:
            raise PublicKeyNotFoundError(user_id)
        return user.public_key

    def find_by_username(self, username: str) -> Optional[UserInfo]:
        for entry in self._peers.values():
            if entry.user.username == username:
                return entry.user
        return None

    def invalidate(self, user_id: str) -> None:
        """Forget a peer."""
        self._peers.pop(user_id, None)

    def clear(self) -> None:
        """Forget all peers."""
        self._peers.clear()

    def users(self) -> list[UserInfo]:
        """All known peers."""
        return [entry.user for entry in self._peers.values()]

    def __len__(self) -> int:
        return len(self._peers)
