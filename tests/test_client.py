"""End-to-end tests for GhostChatClient over a scripted server."""

import asyncio

import pytest
import pytest_asyncio
from ghostchat.client import GhostChatClient, NotStartedError
from ghostchat.config import GhostChatConfig
from ghostchat.identity import IdentityKeyStore
from ghostchat.keys import generate_keypair
from ghostchat.models import EncryptedMessage, MessageKind, SecretRecord, UserInfo
from ghostchat.room import RoomKeyring
from ghostchat.secret import SecretStatus
from ghostchat.storage import InMemoryKeyPairStorage, InMemoryRoomKeyStorage
from ghostchat.transport import TransportChannel, TransportConfig
from ghostchat.types import (
    DecryptionError,
    PublicKeyNotFoundError,
    RoomKeyNotFoundError,
    SecretAlreadyReadError,
    TransportDisconnectedError,
)
from .fakes import FakeConnector, FakeSocket, RecordingSleep, wait_until
from .test_vectors import ROOM_PASSPHRASE

URL = "ws://chat.test"


def make_client(username, outcomes, heartbeat_interval=None):
    channel = TransportChannel(
        TransportConfig(url=URL),
        connector=FakeConnector(outcomes),
        sleep=RecordingSleep(),
    )
    return GhostChatClient(
        username=username,
        key_store=IdentityKeyStore(InMemoryKeyPairStorage()),
        room_keyring=RoomKeyring(InMemoryRoomKeyStorage()),
        config=GhostChatConfig(server_url=URL, heartbeat_interval=heartbeat_interval),
        channel=channel,
    )


def user_record(user_id, client):
    return {"id": user_id, "username": client.username, "publicKey": client.keys.public_key_b64}


def relay(frame, message_id, sender_id):
    """Turn an outbound message frame into the record the server relays."""
    record = {k: v for k, v in frame.items() if k != "type"}
    return EncryptedMessage.from_wire({
        "id": message_id,
        "senderId": sender_id,
        "timestamp": 1700000000000,
        **record,
    })


@pytest.fixture
def alice_sock():
    return FakeSocket()


@pytest.fixture
def bob_sock():
    return FakeSocket()


@pytest_asyncio.fixture
async def pair(alice_sock, bob_sock):
    """Alice and Bob, connected and authenticated, each knowing the other."""
    alice = make_client("alice", [alice_sock])
    bob = make_client("bob", [bob_sock])
    await alice.start()
    await bob.start()
    await wait_until(lambda: alice_sock.sent_frames("auth") and bob_sock.sent_frames("auth"))

    users = [user_record("u-alice", alice), user_record("u-bob", bob)]
    alice_sock.feed({"type": "auth_ok", "userId": "u-alice", "users": users})
    bob_sock.feed({"type": "auth_ok", "userId": "u-bob", "users": users})
    await alice.wait_authenticated(timeout=1)
    await bob.wait_authenticated(timeout=1)

    yield alice, bob
    await alice.stop()
    await bob.stop()


class TestAuthentication:
    """Test the connect/auth handshake."""

    @pytest.mark.asyncio
    async def test_auth_frame(self, alice_sock) -> None:
        client = make_client("alice", [alice_sock])
        await client.start()
        await wait_until(lambda: alice_sock.sent)

        (auth,) = alice_sock.sent_frames()
        assert auth == {"type": "auth", "username": "alice", "publicKey": client.keys.public_key_b64}
        await client.stop()

    @pytest.mark.asyncio
    async def test_auth_ok_fills_directory(self, pair) -> None:
        alice, bob = pair
        assert alice.user_id == "u-alice"
        assert alice.is_authenticated
        assert alice.peers.public_key_for("u-bob") == bob.public_key

    @pytest.mark.asyncio
    async def test_reauthenticates_after_reconnect(self) -> None:
        first, second = FakeSocket(), FakeSocket()
        client = make_client("alice", [first, second])
        await client.start()
        await wait_until(lambda: first.sent_frames("auth"))

        first.hang_up()
        await wait_until(lambda: second.sent_frames("auth"))
        assert second.sent_frames("auth")[0]["publicKey"] == client.keys.public_key_b64
        await client.stop()

    @pytest.mark.asyncio
    async def test_user_presence(self, pair, alice_sock) -> None:
        alice, bob = pair
        carol = {"id": "u-carol", "username": "carol", "publicKey": bob.keys.public_key_b64}
        alice_sock.feed({"type": "user_joined", "user": carol})
        await wait_until(lambda: alice.peers.retrieve("u-carol") is not None)

        alice_sock.feed({"type": "user_left", "userId": "u-carol"})
        await wait_until(lambda: alice.peers.retrieve("u-carol") is None)

    @pytest.mark.asyncio
    async def test_not_started(self) -> None:
        client = make_client("alice", [])
        with pytest.raises(NotStartedError):
            await client.send_direct("u-bob", "hi")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("action", [
        lambda c: c.clear_dm("u-bob"),
        lambda c: c.join_room("r1", ROOM_PASSPHRASE),
        lambda c: c.leave_room("r1"),
        lambda c: c.delete_room("r1"),
        lambda c: c.create_room("ops", ROOM_PASSPHRASE),
        lambda c: c.send_typing(room_id="r1"),
        lambda c: c.request_secret("s1"),
        lambda c: c.send_room("r1", "hi"),
    ])
    async def test_actions_need_start(self, action) -> None:
        """Every outbound action fails loudly before start and leaves no state behind."""
        client = make_client("alice", [])
        with pytest.raises(NotStartedError):
            await action(client)
        assert not await client.rooms.has("r1")
        assert client._pending_rooms == {}


class TestDirectMessages:
    """Test DMs between two clients."""

    @pytest.mark.asyncio
    async def test_dm_round_trip(self, pair, alice_sock) -> None:
        alice, bob = pair
        assert await alice.send_direct("u-bob", "hello") is True

        (frame,) = alice_sock.sent_frames("message")
        assert frame["recipientId"] == "u-bob"
        assert "hello" not in str(frame)

        message = await bob.open_message(relay(frame, "m1", "u-alice"))
        assert message.text == "hello"
        assert message.kind is MessageKind.DIRECT
        assert message.is_mine is False
        assert message.sender_id == "u-alice"

    @pytest.mark.asyncio
    async def test_sender_reads_own_dm(self, pair, alice_sock) -> None:
        alice, _ = pair
        await alice.send_direct("u-bob", "note to self")
        (frame,) = alice_sock.sent_frames("message")

        message = await alice.open_message(relay(frame, "m1", "u-alice"))
        assert message.text == "note to self"
        assert message.is_mine is True

    @pytest.mark.asyncio
    async def test_forged_sender_fails(self, pair, alice_sock) -> None:
        """A DM attributed to the wrong sender does not open."""
        alice, bob = pair
        await alice.send_direct("u-bob", "hello")
        (frame,) = alice_sock.sent_frames("message")

        mallory = generate_keypair()
        bob.peers.store(UserInfo(id="u-mallory", username="mallory", public_key=mallory.public_key))
        with pytest.raises(DecryptionError):
            await bob.open_message(relay(frame, "m1", "u-mallory"))

    @pytest.mark.asyncio
    async def test_unknown_recipient(self, pair) -> None:
        alice, _ = pair
        with pytest.raises(PublicKeyNotFoundError):
            await alice.send_direct("u-nobody", "hi")

    @pytest.mark.asyncio
    async def test_clear_dm(self, pair, alice_sock) -> None:
        alice, _ = pair
        await alice.clear_dm("u-bob")
        assert alice_sock.sent_frames("clear_dm") == [{"type": "clear_dm", "recipientId": "u-bob"}]


class TestRooms:
    """Test room membership and room messages."""

    @pytest.mark.asyncio
    async def test_room_round_trip(self, pair, alice_sock) -> None:
        alice, bob = pair
        await alice.join_room("r1", ROOM_PASSPHRASE)
        await bob.join_room("r1", ROOM_PASSPHRASE)
        assert alice_sock.sent_frames("join_room") == [{"type": "join_room", "roomId": "r1"}]

        await alice.send_room("r1", "hi all")
        (frame,) = alice_sock.sent_frames("message")
        message = await bob.open_message(relay(frame, "m1", "u-alice"))
        assert message.text == "hi all"
        assert message.kind is MessageKind.ROOM
        assert message.room_id == "r1"

    @pytest.mark.asyncio
    async def test_wrong_passphrase(self, pair, alice_sock) -> None:
        alice, bob = pair
        await alice.join_room("r1", ROOM_PASSPHRASE)
        await bob.join_room("r1", "not it")

        await alice.send_room("r1", "hi all")
        (frame,) = alice_sock.sent_frames("message")
        with pytest.raises(DecryptionError):
            await bob.open_message(relay(frame, "m1", "u-alice"))

    @pytest.mark.asyncio
    async def test_send_without_joining(self, pair) -> None:
        alice, _ = pair
        with pytest.raises(RoomKeyNotFoundError):
            await alice.send_room("r1", "hi")

    @pytest.mark.asyncio
    async def test_leave_room(self, pair, alice_sock) -> None:
        alice, _ = pair
        await alice.join_room("r1", ROOM_PASSPHRASE)
        await alice.leave_room("r1")
        assert alice_sock.sent_frames("leave_room") == [{"type": "leave_room", "roomId": "r1"}]
        assert not await alice.rooms.has("r1")

    @pytest.mark.asyncio
    async def test_room_deleted_by_server(self, pair, bob_sock) -> None:
        _, bob = pair
        await bob.join_room("r1", ROOM_PASSPHRASE)
        bob_sock.feed({"type": "room_deleted", "roomId": "r1"})

        async def forgotten():
            return not await bob.rooms.has("r1")

        await wait_until(forgotten)

    @pytest.mark.asyncio
    async def test_create_room_joins_on_creation(self, pair, alice_sock) -> None:
        alice, _ = pair
        await alice.create_room("ops", ROOM_PASSPHRASE)
        (create,) = alice_sock.sent_frames("create_room")
        assert create == {"type": "create_room", "name": "ops", "isPrivate": False, "roomType": "channel"}

        alice_sock.feed({
            "type": "room_created",
            "room": {"id": "r9", "name": "ops", "type": "channel", "createdBy": "u-alice"},
        })
        await wait_until(lambda: alice_sock.sent_frames("join_room"))
        assert await alice.rooms.has("r9")

    @pytest.mark.asyncio
    async def test_server_error_drops_pending_rooms(self, pair, alice_sock) -> None:
        """A refused creation is not joined if the name shows up later."""
        alice, _ = pair
        await alice.create_room("ops", ROOM_PASSPHRASE)
        alice_sock.feed({"type": "error", "message": "Room name taken"})
        await wait_until(lambda: not alice._pending_rooms)

        seen = []
        alice.channel.on("room_created", seen.append)
        alice_sock.feed({
            "type": "room_created",
            "room": {"id": "r9", "name": "ops", "type": "channel", "createdBy": "u-alice"},
        })
        await wait_until(lambda: seen)
        assert alice_sock.sent_frames("join_room") == []
        assert not await alice.rooms.has("r9")

    @pytest.mark.asyncio
    async def test_typing(self, pair, alice_sock) -> None:
        alice, _ = pair
        await alice.send_typing(room_id="r1")
        assert alice_sock.sent_frames("typing") == [{"type": "typing", "roomId": "r1"}]


class TestSecrets:
    """Test one-time secrets between two clients."""

    async def _deliver(self, alice, bob, alice_sock, bob_sock, text):
        envelope = await alice.send_secret("u-bob", text)
        (frame,) = alice_sock.sent_frames("secret")
        bob_sock.feed({
            "type": "secret_available", "id": "s1", "senderId": "u-alice", "aleoHash": frame["aleoHash"],
        })
        await wait_until(lambda: bob.secret_status("s1") is SecretStatus.CREATED)
        record = SecretRecord.from_wire({
            "id": "s1", "senderId": "u-alice", "recipientId": "u-bob",
            **{k: v for k, v in frame.items() if k not in ("type", "recipientId")},
        })
        return envelope, record

    @pytest.mark.asyncio
    async def test_secret_reads_once(self, pair, alice_sock, bob_sock) -> None:
        alice, bob = pair
        envelope, record = await self._deliver(alice, bob, alice_sock, bob_sock, "code 42")

        assert record.envelope == envelope
        assert bob.open_secret(record) == "code 42"
        assert bob.secret_status("s1") is SecretStatus.READ

        with pytest.raises(SecretAlreadyReadError):
            bob.open_secret(record)

    @pytest.mark.asyncio
    async def test_read_secret_is_released(self, pair, alice_sock, bob_sock) -> None:
        """Only the outcome of an opened secret is remembered."""
        alice, bob = pair
        _, record = await self._deliver(alice, bob, alice_sock, bob_sock, "code 42")
        bob.open_secret(record)

        assert "s1" not in bob._secrets
        seen = []
        bob.channel.on("secret_available", seen.append)
        bob_sock.feed({"type": "secret_available", "id": "s1", "senderId": "u-alice", "aleoHash": "x"})
        await wait_until(lambda: seen)
        assert "s1" not in bob._secrets
        assert bob.secret_status("s1") is SecretStatus.READ
        with pytest.raises(SecretAlreadyReadError):
            bob.open_secret(record)

    @pytest.mark.asyncio
    async def test_sender_cannot_open(self, pair, alice_sock, bob_sock) -> None:
        """Not even the sender can open a secret once it is sent."""
        alice, bob = pair
        _, record = await self._deliver(alice, bob, alice_sock, bob_sock, "code 42")
        with pytest.raises(DecryptionError):
            alice.open_secret(record)

    @pytest.mark.asyncio
    async def test_request_secret(self, pair, bob_sock) -> None:
        _, bob = pair
        await bob.request_secret("s1")
        assert bob_sock.sent_frames("read_secret") == [{"type": "read_secret", "messageId": "s1"}]


class TestLifecycle:
    """Test start/stop behaviour."""

    @pytest.mark.asyncio
    async def test_send_after_stop(self, pair) -> None:
        alice, _ = pair
        await alice.stop()
        with pytest.raises(TransportDisconnectedError):
            await alice.clear_dm("u-bob")

    @pytest.mark.asyncio
    async def test_heartbeats(self, alice_sock) -> None:
        client = make_client("alice", [alice_sock], heartbeat_interval=0.01)
        await client.start()
        await wait_until(lambda: alice_sock.sent_frames("heartbeat"))
        await client.stop()

    @pytest.mark.asyncio
    async def test_heartbeats_survive_send_error(self, alice_sock) -> None:
        """A failed heartbeat is logged and the next one still goes out."""
        client = make_client("alice", [alice_sock], heartbeat_interval=0.01)
        await client.start()
        await wait_until(lambda: alice_sock.sent_frames("auth"))

        attempts = []
        send = client.channel.send

        async def flaky_send(event):
            attempts.append(event.type)
            if len(attempts) == 1:
                raise RuntimeError("encoder broke")
            return await send(event)

        client.channel.send = flaky_send
        await wait_until(lambda: alice_sock.sent_frames("heartbeat"))
        assert attempts[:2] == ["heartbeat", "heartbeat"]
        assert not client._heartbeat_task.done()
        await client.stop()

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, alice_sock) -> None:
        client = make_client("alice", [alice_sock], heartbeat_interval=0.01)
        await client.start()
        await client.stop()
        await client.stop()
        await asyncio.sleep(0.02)
        assert alice_sock.sent_frames("heartbeat") == []
