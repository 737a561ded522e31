"""Models for GhostChat users, rooms and messages."""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from .envelope import Envelope, SecretEnvelope, decode_base64, encode_base64
from .types import PUBLIC_KEY_SIZE, InvalidEnvelopeError


class RoomType(Enum):
    """Kind of room."""
    CHANNEL = "channel"
    GROUP = "group"


class MessageKind(Enum):
    """Whether a message went to one user or to a room."""
    DIRECT = "direct"
    ROOM = "room"


@dataclass(frozen=True)
class UserInfo:
    """A user as announced by the server."""
    id: str
    username: str
    public_key: bytes

    @classmethod
    def from_wire(cls, data: dict) -> "UserInfo":
        return cls(
            id=_require_str(data, "id"),
            username=_require_str(data, "username"),
            public_key=decode_base64(_pick(data, "publicKey", "public_key"), PUBLIC_KEY_SIZE),
        )

    def to_wire(self) -> dict[str, str]:
        return {
            "id": self.id,
            "username": self.username,
            "publicKey": encode_base64(self.public_key),
        }


@dataclass(frozen=True)
class Room:
    """A channel or group."""
    id: str
    name: str
    type: RoomType
    is_private: bool = False
    created_by: Optional[str] = None

    @classmethod
    def from_wire(cls, data: dict) -> "Room":
        try:
            room_type = RoomType(_pick(data, "type", "roomType"))
        except ValueError as e:
            raise InvalidEnvelopeError(f"Unknown room type: {e}") from e
        return cls(
            id=_require_str(data, "id"),
            name=_require_str(data, "name"),
            type=room_type,
            is_private=bool(_pick(data, "isPrivate", "is_private", default=False)),
            created_by=_pick(data, "createdBy", "created_by", default=None),
        )

    def to_wire(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "isPrivate": self.is_private,
        }
        if self.created_by is not None:
            data["createdBy"] = self.created_by
        return data


@dataclass(frozen=True)
class EncryptedMessage:
    """
    A DM or room message as relayed by the server.

    Exactly one of room_id / recipient_id is set.
    """
    id: str
    sender_id: str
    envelope: Envelope
    timestamp: int  # milliseconds since the epoch
    room_id: Optional[str] = None
    recipient_id: Optional[str] = None

    @property
    def kind(self) -> MessageKind:
        return MessageKind.ROOM if self.room_id else MessageKind.DIRECT

    @property
    def sent_at(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp / 1000, tz=timezone.utc)

    @classmethod
    def from_wire(cls, data: dict) -> "EncryptedMessage":
        """
        Parse a server message record.

        The server emits both camelCase and snake_case field names
        depending on whether the record is live or from history.
        """
        room_id = _pick(data, "roomId", "room_id", default=None)
        recipient_id = _pick(data, "recipientId", "recipient_id", default=None)
        if not room_id and not recipient_id:
            raise InvalidEnvelopeError("Message has neither roomId nor recipientId")
        return cls(
            id=str(_pick(data, "id")),
            sender_id=_pick(data, "senderId", "sender_id"),
            envelope=Envelope.from_wire(data),
            timestamp=_parse_timestamp(_pick(data, "timestamp", default=0)),
            room_id=room_id or None,
            recipient_id=recipient_id or None,
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "senderId": self.sender_id,
            "roomId": self.room_id,
            "recipientId": self.recipient_id,
            "timestamp": self.timestamp,
            **self.envelope.to_wire(),
        }


@dataclass(frozen=True)
class SecretRecord:
    """A one-time secret as handed out by the server on request."""
    id: str
    sender_id: str
    recipient_id: str
    envelope: SecretEnvelope
    created_at: int = 0
    expires_at: int = 0

    @classmethod
    def from_wire(cls, data: dict) -> "SecretRecord":
        return cls(
            id=str(_pick(data, "id")),
            sender_id=_pick(data, "senderId", "sender_id"),
            recipient_id=_pick(data, "recipientId", "recipient_id"),
            envelope=SecretEnvelope.from_wire(data),
            created_at=_parse_timestamp(_pick(data, "createdAt", "created_at", default=0)),
            expires_at=_parse_timestamp(_pick(data, "expiresAt", "expires_at", default=0)),
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "senderId": self.sender_id,
            "recipientId": self.recipient_id,
            "createdAt": self.created_at,
            "expiresAt": self.expires_at,
            **self.envelope.to_wire(),
        }


@dataclass(frozen=True)
class DecryptedMessage:
    """A message after successful decryption."""
    id: str
    sender_id: str
    text: str
    kind: MessageKind
    timestamp: int
    is_mine: bool
    room_id: Optional[str] = None
    recipient_id: Optional[str] = None


_MISSING = object()


def _pick(data: dict, *names: str, default: Any = _MISSING) -> Any:
    """Return the first present field among names."""
    if not isinstance(data, dict):
        raise InvalidEnvelopeError("Expected an object")
    for name in names:
        if name in data and data[name] is not None:
            return data[name]
    if default is _MISSING:
        raise InvalidEnvelopeError(f"Missing field: {names[0]}")
    return default


def _require_str(data: dict, name: str) -> str:
    value = _pick(data, name)
    if not isinstance(value, str):
        raise InvalidEnvelopeError(f"Field {name} must be a string")
    return value


def _parse_timestamp(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise InvalidEnvelopeError(f"Invalid timestamp: {value!r}") from e
