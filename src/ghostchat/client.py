"""
GhostChat client for end-to-end encrypted chat.

The GhostChatClient ties the identity key store, the room keyring, the
ciphers and the transport channel together: plaintext goes in, envelopes
go out over the channel, and inbound envelopes come back as plaintext only
when they authenticate.
"""

import asyncio
import logging
from typing import Optional

from .config import GhostChatConfig
from .crypto import decrypt_from_sender, encrypt_for_recipient
from .envelope import SecretEnvelope
from .events import (
    Auth,
    AuthOk,
    ClearDm,
    CreateRoom,
    DeleteRoom,
    Heartbeat,
    JoinRoom,
    LeaveRoom,
    ReadSecret,
    RoomCreated,
    RoomDeleted,
    SecretAvailable,
    SendMessage,
    SendSecret,
    ServerError,
    TransportEvent,
    Typing,
    UserJoined,
    UserLeft,
)
from .identity import IdentityKeyStore
from .keys import KeyPair
from .models import DecryptedMessage, EncryptedMessage, RoomType, SecretRecord
from .room import RoomKeyring
from .secret import SecretMessage, SecretStatus, create_secret_message
from .storage import PeerDirectory
from .transport import ConnectionState, TransportChannel
from .types import CONNECTED, GhostChatError, SecretAlreadyReadError, TransportDisconnectedError

logger = logging.getLogger(__name__)


class NotStartedError(GhostChatError):
    """Raised when the client is used before start()."""

    def __init__(self) -> None:
        super().__init__("Client has not been started")


class GhostChatClient:
    """
    High-level client for GhostChat encrypted messaging.

    The GhostChatClient provides methods for:
    - Authenticating over the transport after every (re)connection
    - Sending encrypted DMs, room messages and one-time secrets
    - Joining, leaving, creating and deleting rooms
    - Decrypting inbound messages and secrets

    Decryption failures are raised, never replaced by placeholder text.

    Example usage:
        ```python
        client = GhostChatClient(
            username="alice",
            key_store=IdentityKeyStore(FileKeyPairStorage(password="pw")),
            room_keyring=RoomKeyring(InMemoryRoomKeyStorage()),
        )

        async def show(event):
            message = await client.open_message(event.message)
            print(f"{message.sender_id}: {message.text}")

        client.channel.on("message", show)
        await client.start()
        await client.wait_authenticated(timeout=10)
        await client.send_direct(bob_id, "Hello, Bob!")
        ```
    """

    def __init__(
        self,
        username: str,
        key_store: IdentityKeyStore,
        room_keyring: RoomKeyring,
        config: Optional[GhostChatConfig] = None,
        channel: Optional[TransportChannel] = None,
        peers: Optional[PeerDirectory] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            username: Identity to authenticate as.
            key_store: Source of the identity key pair.
            room_keyring: Holder of joined rooms' keys.
            config: Client configuration (default: local server).
            channel: Transport channel (default: built from config).
            peers: Directory of known users (default: empty).
        """
        self.username = username
        self.config = config or GhostChatConfig()
        self.key_store = key_store
        self.rooms = room_keyring
        self.channel = channel or TransportChannel(self.config.transport_config())
        self.peers = peers or PeerDirectory()
        self.keys: Optional[KeyPair] = None
        self.user_id: Optional[str] = None
        self._secrets: dict[str, SecretMessage] = {}
        self._burned: dict[str, SecretStatus] = {}
        self._pending_rooms: dict[str, str] = {}
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._authenticated = asyncio.Event()
        self._subscribed = False

    @property
    def public_key(self) -> bytes:
        """The identity's public key (32 bytes)."""
        return self._require_keys().public_key

    @property
    def is_authenticated(self) -> bool:
        return self._authenticated.is_set()

    # MARK: - Lifecycle

    async def start(self) -> None:
        """Load keys, subscribe to server events and start connecting."""
        self.keys = await self.key_store.get_or_create_keys(self.username)
        if not self._subscribed:
            self._subscribe()
        await self.channel.connect()

        interval = self.config.heartbeat_interval
        if interval and self._heartbeat_task is None:
            self._heartbeat_task = asyncio.create_task(self._heartbeat_loop(interval))

    async def stop(self) -> None:
        """Stop heartbeats and close the transport."""
        task, self._heartbeat_task = self._heartbeat_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self.channel.disconnect()
        self._authenticated.clear()

    async def wait_authenticated(self, timeout: Optional[float] = None) -> None:
        """Wait for the server's auth_ok (raises asyncio.TimeoutError on timeout)."""
        await asyncio.wait_for(self._authenticated.wait(), timeout)

    # MARK: - Direct messages

    async def send_direct(self, recipient_id: str, text: str) -> bool:
        """
        Encrypt and send a DM.

        Returns:
            True if the frame was written, False if the link was down.

        Raises:
            PublicKeyNotFoundError: If the recipient is unknown.
            TransportDisconnectedError: If the client was stopped.
        """
        keys = self._require_keys()
        envelope = encrypt_for_recipient(text, self._public_key_of(recipient_id), keys.secret_key)
        return await self._send(SendMessage(envelope=envelope, recipient_id=recipient_id))

    async def clear_dm(self, recipient_id: str) -> bool:
        return await self._send(ClearDm(recipient_id=recipient_id))

    # MARK: - Rooms

    async def send_room(self, room_id: str, text: str) -> bool:
        """
        Encrypt and send a room message.

        Raises:
            RoomKeyNotFoundError: If the room was never joined.
        """
        self._require_keys()
        envelope = await self.rooms.encrypt(room_id, text)
        return await self._send(SendMessage(envelope=envelope, room_id=room_id))

    async def create_room(
        self,
        name: str,
        passphrase: str,
        room_type: RoomType = RoomType.CHANNEL,
        is_private: Optional[bool] = None,
    ) -> bool:
        """
        Ask the server to create a room, then join it once it exists.

        Groups are private unless stated otherwise.
        """
        self._require_keys()
        if is_private is None:
            is_private = room_type is RoomType.GROUP
        self._pending_rooms[name] = passphrase
        return await self._send(CreateRoom(name=name, room_type=room_type, is_private=is_private))

    async def join_room(self, room_id: str, passphrase: str) -> bool:
        """Derive the room key locally and announce the join."""
        self._require_keys()
        await self.rooms.join(room_id, passphrase)
        return await self._send(JoinRoom(room_id=room_id))

    async def leave_room(self, room_id: str) -> bool:
        sent = await self._send(LeaveRoom(room_id=room_id))
        await self.rooms.leave(room_id)
        return sent

    async def delete_room(self, room_id: str) -> bool:
        sent = await self._send(DeleteRoom(room_id=room_id))
        await self.rooms.leave(room_id)
        return sent

    async def send_typing(self, room_id: Optional[str] = None, recipient_id: Optional[str] = None) -> bool:
        return await self._send(Typing(room_id=room_id, recipient_id=recipient_id))

    # MARK: - Secrets

    async def send_secret(self, recipient_id: str, text: str) -> SecretEnvelope:
        """
        Create and send a one-time secret.

        Returns:
            The envelope that was sent (its content_hash can be registered
            externally).
        """
        envelope = create_secret_message(text, self._public_key_of(recipient_id))
        await self._send(SendSecret(recipient_id=recipient_id, envelope=envelope))
        return envelope

    async def request_secret(self, secret_id: str) -> bool:
        """Ask the server for a secret; it answers with secret_data and destroys its copy."""
        return await self._send(ReadSecret(message_id=secret_id))

    def open_secret(self, record: SecretRecord) -> str:
        """
        Decrypt a delivered secret. Each secret opens at most once.

        Raises:
            SecretAlreadyReadError: If the secret was already opened.
            TamperedSecretError: If the secret fails authentication.
        """
        keys = self._require_keys()
        if record.id in self._burned:
            raise SecretAlreadyReadError(record.id)
        secret = self._secrets.get(record.id)
        if secret is None:
            secret = SecretMessage(id=record.id, sender_id=record.sender_id, envelope=None)
            self._secrets[record.id] = secret
        if secret.status is SecretStatus.CREATED:
            secret.envelope = record.envelope
            secret.mark_delivered()
        try:
            return secret.read(keys.secret_key)
        finally:
            if secret.status.is_terminal:
                # only the outcome outlives a burned secret
                del self._secrets[record.id]
                self._burned[record.id] = secret.status

    def secret_status(self, secret_id: str) -> Optional[SecretStatus]:
        if secret_id in self._burned:
            return self._burned[secret_id]
        secret = self._secrets.get(secret_id)
        return secret.status if secret else None

    # MARK: - Inbound messages

    async def open_message(self, message: EncryptedMessage) -> DecryptedMessage:
        """
        Decrypt a DM or room message.

        Raises:
            DecryptionError: If the message does not authenticate.
            RoomKeyNotFoundError: If the room was never joined.
            PublicKeyNotFoundError: If the DM counterpart is unknown.
        """
        keys = self._require_keys()
        is_mine = self.user_id is not None and message.sender_id == self.user_id

        if message.room_id:
            text = await self.rooms.decrypt(message.room_id, message.envelope)
        else:
            # box keys are symmetric: our secret + the other side's public key
            counterpart = message.recipient_id if is_mine else message.sender_id
            text = decrypt_from_sender(
                message.envelope.ciphertext,
                message.envelope.nonce,
                self._public_key_of(counterpart),
                keys.secret_key,
            )

        return DecryptedMessage(
            id=message.id,
            sender_id=message.sender_id,
            text=text,
            kind=message.kind,
            timestamp=message.timestamp,
            is_mine=is_mine,
            room_id=message.room_id,
            recipient_id=message.recipient_id,
        )

    # MARK: - Event handlers

    def _subscribe(self) -> None:
        self.channel.on(CONNECTED, self._on_connected)
        self.channel.on(AuthOk.type, self._on_auth_ok)
        self.channel.on(UserJoined.type, self._on_user_joined)
        self.channel.on(UserLeft.type, self._on_user_left)
        self.channel.on(RoomCreated.type, self._on_room_created)
        self.channel.on(RoomDeleted.type, self._on_room_deleted)
        self.channel.on(SecretAvailable.type, self._on_secret_available)
        self.channel.on(ServerError.type, self._on_server_error)
        self._subscribed = True

    async def _on_connected(self, event: TransportEvent) -> None:
        # re-authenticate after every reconnection
        self._authenticated.clear()
        keys = self._require_keys()
        await self.channel.send(Auth(username=self.username, public_key=keys.public_key))

    def _on_auth_ok(self, event: AuthOk) -> None:
        self.user_id = event.user_id
        for user in event.users:
            self.peers.store(user)
        self._authenticated.set()
        logger.info("Authenticated as %s (%d peers)", self.username, len(event.users))

    def _on_user_joined(self, event: UserJoined) -> None:
        self.peers.store(event.user)

    def _on_user_left(self, event: UserLeft) -> None:
        self.peers.invalidate(event.user_id)

    async def _on_room_created(self, event: RoomCreated) -> None:
        room = event.room
        if room.created_by != self.user_id:
            return
        passphrase = self._pending_rooms.pop(room.name, None)
        if passphrase is not None:
            await self.join_room(room.id, passphrase)

    async def _on_room_deleted(self, event: RoomDeleted) -> None:
        await self.rooms.leave(event.room_id)

    def _on_server_error(self, event: ServerError) -> None:
        # the server names no request, so any pending room creation may have failed
        if self._pending_rooms:
            logger.warning(
                "Server error with %d room creation(s) pending, dropping them: %s",
                len(self._pending_rooms),
                event.message,
            )
            self._pending_rooms.clear()
        else:
            logger.warning("Server error: %s", event.message)

    def _on_secret_available(self, event: SecretAvailable) -> None:
        if event.id not in self._secrets and event.id not in self._burned:
            self._secrets[event.id] = SecretMessage(id=event.id, sender_id=event.sender_id, envelope=None)

    # MARK: - Helpers

    async def _send(self, event: TransportEvent) -> bool:
        self._require_keys()
        if self.channel.state is ConnectionState.CLOSED:
            raise TransportDisconnectedError("Transport was closed")
        return await self.channel.send(event)

    async def _heartbeat_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self.channel.send(Heartbeat())
            except Exception:
                logger.exception("Heartbeat failed")

    def _public_key_of(self, user_id: str) -> bytes:
        keys = self._require_keys()
        if user_id == self.user_id:
            return keys.public_key
        return self.peers.public_key_for(user_id)

    def _require_keys(self) -> KeyPair:
        if self.keys is None:
            raise NotStartedError()
        return self.keys
