"""
Typed transport events for the GhostChat wire protocol.

Every frame is a JSON object with a ``type`` tag. Each tag maps to one
frozen dataclass; ``to_wire`` produces the JSON object and ``parse_event``
turns a decoded server frame back into its variant.

The ``message`` and ``typing`` tags are used in both directions with
different payloads, so client-to-server events (``SendMessage``,
``Typing``) and server-to-client events (``MessageReceived``,
``TypingNotice``) are distinct classes. Only server-to-client events are
parseable.
"""

import json
from dataclasses import dataclass, field
from typing import Any, ClassVar, Optional, Union

from .envelope import Envelope, SecretEnvelope, encode_base64
from .models import EncryptedMessage, Room, RoomType, SecretRecord, UserInfo
from .types import CONNECTED, DISCONNECTED, InvalidEnvelopeError, MalformedFrameError


@dataclass(frozen=True)
class TransportEvent:
    """Base class for all events."""

    type: ClassVar[str] = ""

    def to_wire(self) -> dict[str, Any]:
        return {"type": self.type, **self._payload()}

    def _payload(self) -> dict[str, Any]:
        return {}


# Registry of parseable (server-to-client) events by tag
INBOUND_EVENTS: dict[str, type] = {}


def _inbound(cls):
    INBOUND_EVENTS[cls.type] = cls
    return cls


# ============================================================================
# Synthetic events (local only, never sent)
# ============================================================================


@dataclass(frozen=True)
class Connected(TransportEvent):
    """The link is live."""
    type: ClassVar[str] = CONNECTED


@dataclass(frozen=True)
class Disconnected(TransportEvent):
    """The link dropped or could not be opened."""
    type: ClassVar[str] = DISCONNECTED
    reason: Optional[str] = None

    def _payload(self) -> dict[str, Any]:
        return {"reason": self.reason}


@dataclass(frozen=True)
class UnknownEvent(TransportEvent):
    """A well-formed frame with a tag this client does not know."""
    tag: str = ""
    payload: dict = field(default_factory=dict)

    @property
    def type(self) -> str:  # type: ignore[override]
        return self.tag

    def to_wire(self) -> dict[str, Any]:
        return {**self.payload, "type": self.tag}


# ============================================================================
# Client to server
# ============================================================================


@dataclass(frozen=True)
class Auth(TransportEvent):
    """Announce identity and public key after connecting."""
    type: ClassVar[str] = "auth"
    username: str
    public_key: bytes

    def _payload(self) -> dict[str, Any]:
        return {"username": self.username, "publicKey": encode_base64(self.public_key)}


@dataclass(frozen=True)
class JoinRoom(TransportEvent):
    type: ClassVar[str] = "join_room"
    room_id: str
    encrypted_room_key: Optional[str] = None

    def _payload(self) -> dict[str, Any]:
        data: dict[str, Any] = {"roomId": self.room_id}
        if self.encrypted_room_key is not None:
            data["encryptedRoomKey"] = self.encrypted_room_key
        return data


@dataclass(frozen=True)
class LeaveRoom(TransportEvent):
    type: ClassVar[str] = "leave_room"
    room_id: str

    def _payload(self) -> dict[str, Any]:
        return {"roomId": self.room_id}


@dataclass(frozen=True)
class DeleteRoom(TransportEvent):
    type: ClassVar[str] = "delete_room"
    room_id: str

    def _payload(self) -> dict[str, Any]:
        return {"roomId": self.room_id}


@dataclass(frozen=True)
class ClearDm(TransportEvent):
    type: ClassVar[str] = "clear_dm"
    recipient_id: str

    def _payload(self) -> dict[str, Any]:
        return {"recipientId": self.recipient_id}


@dataclass(frozen=True)
class CreateRoom(TransportEvent):
    type: ClassVar[str] = "create_room"
    name: str
    room_type: RoomType = RoomType.CHANNEL
    is_private: bool = False

    def _payload(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "isPrivate": self.is_private,
            "roomType": self.room_type.value,
        }


def _check_target(room_id: Optional[str], recipient_id: Optional[str]) -> None:
    if bool(room_id) == bool(recipient_id):
        raise ValueError("Exactly one of room_id or recipient_id is required")


def _target(room_id: Optional[str], recipient_id: Optional[str]) -> dict[str, str]:
    return {"roomId": room_id} if room_id else {"recipientId": recipient_id}


@dataclass(frozen=True)
class SendMessage(TransportEvent):
    """An encrypted DM or room message."""
    type: ClassVar[str] = "message"
    envelope: Envelope
    room_id: Optional[str] = None
    recipient_id: Optional[str] = None

    def __post_init__(self) -> None:
        _check_target(self.room_id, self.recipient_id)

    def _payload(self) -> dict[str, Any]:
        return {**_target(self.room_id, self.recipient_id), **self.envelope.to_wire()}


@dataclass(frozen=True)
class SendSecret(TransportEvent):
    """A one-time secret for one recipient."""
    type: ClassVar[str] = "secret"
    recipient_id: str
    envelope: SecretEnvelope

    def _payload(self) -> dict[str, Any]:
        return {"recipientId": self.recipient_id, **self.envelope.to_wire()}


@dataclass(frozen=True)
class ReadSecret(TransportEvent):
    """Ask the server to hand over (and destroy) a secret."""
    type: ClassVar[str] = "read_secret"
    message_id: str

    def _payload(self) -> dict[str, Any]:
        return {"messageId": self.message_id}


@dataclass(frozen=True)
class Typing(TransportEvent):
    type: ClassVar[str] = "typing"
    room_id: Optional[str] = None
    recipient_id: Optional[str] = None

    def __post_init__(self) -> None:
        _check_target(self.room_id, self.recipient_id)

    def _payload(self) -> dict[str, Any]:
        return _target(self.room_id, self.recipient_id)


@dataclass(frozen=True)
class Heartbeat(TransportEvent):
    type: ClassVar[str] = "heartbeat"


# ============================================================================
# Server to client
# ============================================================================


@_inbound
@dataclass(frozen=True)
class AuthOk(TransportEvent):
    type: ClassVar[str] = "auth_ok"
    user_id: str
    users: tuple[UserInfo, ...] = ()

    @classmethod
    def from_wire(cls, data: dict) -> "AuthOk":
        return cls(
            user_id=_str(data, "userId"),
            users=tuple(UserInfo.from_wire(u) for u in _list(data, "users")),
        )

    def _payload(self) -> dict[str, Any]:
        return {"userId": self.user_id, "users": [u.to_wire() for u in self.users]}


@_inbound
@dataclass(frozen=True)
class ServerError(TransportEvent):
    type: ClassVar[str] = "error"
    message: str

    @classmethod
    def from_wire(cls, data: dict) -> "ServerError":
        return cls(message=str(data.get("message", "")))

    def _payload(self) -> dict[str, Any]:
        return {"message": self.message}


@_inbound
@dataclass(frozen=True)
class UserJoined(TransportEvent):
    type: ClassVar[str] = "user_joined"
    user: UserInfo

    @classmethod
    def from_wire(cls, data: dict) -> "UserJoined":
        return cls(user=UserInfo.from_wire(data.get("user")))

    def _payload(self) -> dict[str, Any]:
        return {"user": self.user.to_wire()}


@_inbound
@dataclass(frozen=True)
class UserLeft(TransportEvent):
    type: ClassVar[str] = "user_left"
    user_id: str

    @classmethod
    def from_wire(cls, data: dict) -> "UserLeft":
        return cls(user_id=_str(data, "userId"))

    def _payload(self) -> dict[str, Any]:
        return {"userId": self.user_id}


@_inbound
@dataclass(frozen=True)
class RoomCreated(TransportEvent):
    type: ClassVar[str] = "room_created"
    room: Room

    @classmethod
    def from_wire(cls, data: dict) -> "RoomCreated":
        return cls(room=Room.from_wire(data.get("room")))

    def _payload(self) -> dict[str, Any]:
        return {"room": self.room.to_wire()}


@_inbound
@dataclass(frozen=True)
class RoomJoined(TransportEvent):
    type: ClassVar[str] = "room_joined"
    room_id: str
    user_id: str
    members: tuple[str, ...] = ()

    @classmethod
    def from_wire(cls, data: dict) -> "RoomJoined":
        return cls(
            room_id=_str(data, "roomId"),
            user_id=_str(data, "userId"),
            members=tuple(str(m) for m in data.get("members") or ()),
        )

    def _payload(self) -> dict[str, Any]:
        return {"roomId": self.room_id, "userId": self.user_id, "members": list(self.members)}


@_inbound
@dataclass(frozen=True)
class RoomLeft(TransportEvent):
    type: ClassVar[str] = "room_left"
    room_id: str
    user_id: str

    @classmethod
    def from_wire(cls, data: dict) -> "RoomLeft":
        return cls(room_id=_str(data, "roomId"), user_id=_str(data, "userId"))

    def _payload(self) -> dict[str, Any]:
        return {"roomId": self.room_id, "userId": self.user_id}


@_inbound
@dataclass(frozen=True)
class RoomDeleted(TransportEvent):
    type: ClassVar[str] = "room_deleted"
    room_id: str

    @classmethod
    def from_wire(cls, data: dict) -> "RoomDeleted":
        return cls(room_id=_str(data, "roomId"))

    def _payload(self) -> dict[str, Any]:
        return {"roomId": self.room_id}


@_inbound
@dataclass(frozen=True)
class DmCleared(TransportEvent):
    type: ClassVar[str] = "dm_cleared"
    recipient_id: str

    @classmethod
    def from_wire(cls, data: dict) -> "DmCleared":
        return cls(recipient_id=_str(data, "recipientId"))

    def _payload(self) -> dict[str, Any]:
        return {"recipientId": self.recipient_id}


@_inbound
@dataclass(frozen=True)
class MessageReceived(TransportEvent):
    type: ClassVar[str] = "message"
    message: EncryptedMessage

    @classmethod
    def from_wire(cls, data: dict) -> "MessageReceived":
        return cls(message=EncryptedMessage.from_wire(data.get("message")))

    def _payload(self) -> dict[str, Any]:
        return {"message": self.message.to_wire()}


@_inbound
@dataclass(frozen=True)
class SecretAvailable(TransportEvent):
    """A secret is waiting on the server; its content is not included."""
    type: ClassVar[str] = "secret_available"
    id: str
    sender_id: str
    content_hash: str

    @classmethod
    def from_wire(cls, data: dict) -> "SecretAvailable":
        return cls(
            id=_str(data, "id"),
            sender_id=_str(data, "senderId"),
            content_hash=_str(data, "aleoHash"),
        )

    def _payload(self) -> dict[str, Any]:
        return {"id": self.id, "senderId": self.sender_id, "aleoHash": self.content_hash}


@_inbound
@dataclass(frozen=True)
class SecretData(TransportEvent):
    type: ClassVar[str] = "secret_data"
    record: SecretRecord

    @classmethod
    def from_wire(cls, data: dict) -> "SecretData":
        return cls(record=SecretRecord.from_wire(data.get("message")))

    def _payload(self) -> dict[str, Any]:
        return {"message": self.record.to_wire()}


@_inbound
@dataclass(frozen=True)
class SecretRead(TransportEvent):
    """The recipient opened a secret we sent."""
    type: ClassVar[str] = "secret_read"
    message_id: str

    @classmethod
    def from_wire(cls, data: dict) -> "SecretRead":
        return cls(message_id=_str(data, "messageId"))

    def _payload(self) -> dict[str, Any]:
        return {"messageId": self.message_id}


@_inbound
@dataclass(frozen=True)
class TypingNotice(TransportEvent):
    type: ClassVar[str] = "typing"
    user_id: str
    room_id: Optional[str] = None

    @classmethod
    def from_wire(cls, data: dict) -> "TypingNotice":
        return cls(user_id=_str(data, "userId"), room_id=data.get("roomId"))

    def _payload(self) -> dict[str, Any]:
        data: dict[str, Any] = {"userId": self.user_id}
        if self.room_id is not None:
            data["roomId"] = self.room_id
        return data


@_inbound
@dataclass(frozen=True)
class OnlineStatus(TransportEvent):
    type: ClassVar[str] = "online"
    user_id: str
    online: bool

    @classmethod
    def from_wire(cls, data: dict) -> "OnlineStatus":
        return cls(user_id=_str(data, "userId"), online=bool(data.get("online")))

    def _payload(self) -> dict[str, Any]:
        return {"userId": self.user_id, "online": self.online}


@_inbound
@dataclass(frozen=True)
class RoomList(TransportEvent):
    type: ClassVar[str] = "room_list"
    rooms: tuple[Room, ...] = ()

    @classmethod
    def from_wire(cls, data: dict) -> "RoomList":
        return cls(rooms=tuple(Room.from_wire(r) for r in _list(data, "rooms")))

    def _payload(self) -> dict[str, Any]:
        return {"rooms": [r.to_wire() for r in self.rooms]}


ServerEvent = Union[
    AuthOk,
    ServerError,
    UserJoined,
    UserLeft,
    RoomCreated,
    RoomJoined,
    RoomLeft,
    RoomDeleted,
    DmCleared,
    MessageReceived,
    SecretAvailable,
    SecretData,
    SecretRead,
    TypingNotice,
    OnlineStatus,
    RoomList,
    UnknownEvent,
]


def parse_event(data: Any) -> TransportEvent:
    """
    Turn a decoded frame into its event variant.

    Raises:
        MalformedFrameError: If the frame has no string ``type`` or its
            payload does not match the tag
    """
    if not isinstance(data, dict):
        raise MalformedFrameError(f"Frame must be an object, got {type(data).__name__}")
    tag = data.get("type")
    if not isinstance(tag, str) or not tag:
        raise MalformedFrameError("Frame has no type tag")

    cls = INBOUND_EVENTS.get(tag)
    if cls is None:
        return UnknownEvent(tag=tag, payload={k: v for k, v in data.items() if k != "type"})

    try:
        return cls.from_wire(data)
    except (InvalidEnvelopeError, ValueError, TypeError, AttributeError) as e:
        raise MalformedFrameError(f"Invalid {tag} frame: {e}") from e


def parse_frame(raw: Union[str, bytes]) -> TransportEvent:
    """
    Decode a JSON text frame into its event variant.

    Raises:
        MalformedFrameError: If the frame is not valid JSON or not a valid event
    """
    try:
        data = json.loads(raw)
    except (ValueError, TypeError, RecursionError) as e:
        # huge integer literals raise ValueError, deep nesting RecursionError
        raise MalformedFrameError(f"Frame is not valid JSON: {e}") from e
    return parse_event(data)


def serialize_event(event: TransportEvent) -> str:
    """Encode an event as a JSON text frame."""
    return json.dumps(event.to_wire())


def _str(data: dict, name: str) -> str:
    value = data.get(name)
    if not isinstance(value, str):
        raise InvalidEnvelopeError(f"Field {name} must be a string")
    return value


def _list(data: dict, name: str) -> list:
    value = data.get(name)
    if value is None:
        return []
    if not isinstance(value, list):
        raise InvalidEnvelopeError(f"Field {name} must be a list")
    return value
