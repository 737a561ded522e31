"""
WebSocket transport for GhostChat.

A TransportChannel owns one duplex connection and one asyncio task that
connects, reads frames in order, and reconnects with exponential backoff
while reconnection is allowed. Frames are dispatched by type tag to
subscribed handlers; the channel never looks inside payloads.

State machine:

    DISCONNECTED -> CONNECTING -> CONNECTED -> DISCONNECTED -> ... (repeat)
    any state -> CLOSED            (only through disconnect())

Sends are fire-and-forget: a frame sent while the link is down is dropped,
not queued.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Awaitable, Callable, Optional, Union

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from .events import Connected, Disconnected, TransportEvent, parse_frame, serialize_event
from .types import MalformedFrameError

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Union[None, Awaitable[None]]]
Connector = Callable[[str], Awaitable[Any]]
Sleeper = Callable[[float], Awaitable[None]]


class ConnectionState(Enum):
    """Connection states for the transport channel."""

    DISCONNECTED = auto()  # Not connected, may reconnect
    CONNECTING = auto()  # Opening the WebSocket
    CONNECTED = auto()  # Link is live
    CLOSED = auto()  # Explicitly closed, no reconnection


@dataclass
class TransportConfig:
    """Configuration for the transport channel."""
    url: str
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_factor: float = 2.0


class Backoff:
    """Exponential reconnection delay with a ceiling."""

    def __init__(self, initial: float, maximum: float, factor: float = 2.0) -> None:
        if initial <= 0 or maximum < initial:
            raise ValueError("Backoff requires 0 < initial <= maximum")
        if factor < 1:
            raise ValueError("Backoff factor must be >= 1")
        self.initial = initial
        self.maximum = maximum
        self.factor = factor
        self._current = initial

    @property
    def current(self) -> float:
        """The delay the next attempt will wait."""
        return self._current

    def next_delay(self) -> float:
        """Return the current delay and grow it for the following attempt."""
        delay = self._current
        self._current = min(self._current * self.factor, self.maximum)
        return delay

    def reset(self) -> None:
        """Go back to the initial delay."""
        self._current = self.initial


class TransportChannel:
    """
    Reconnecting WebSocket channel with typed publish/subscribe dispatch.

    Example usage:
        ```python
        channel = TransportChannel(TransportConfig(url="ws://localhost:3001"))

        async def on_connected(event):
            await channel.send(Auth(username="alice", public_key=keys.public_key))

        channel.on(CONNECTED, on_connected)
        channel.on("message", lambda event: print(event.message.id))
        await channel.connect()
        ```
    """

    def __init__(
        self,
        config: TransportConfig,
        connector: Optional[Connector] = None,
        sleep: Optional[Sleeper] = None,
    ) -> None:
        """
        Create a channel.

        Args:
            config: URL and backoff settings.
            connector: Coroutine function opening a connection for a URL
                       (default: websockets.connect).
            sleep: Coroutine used to wait between attempts (default: asyncio.sleep).
        """
        self.config = config
        self.backoff = Backoff(config.initial_delay, config.max_delay, config.backoff_factor)
        self.state = ConnectionState.DISCONNECTED
        self.should_reconnect = False
        self._connector = connector or websockets.connect
        self._sleep = sleep or asyncio.sleep
        self._handlers: dict[str, list[Handler]] = {}
        self._ws: Any = None
        self._task: Optional[asyncio.Task] = None
        self._connected_event = asyncio.Event()

    @property
    def connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    # MARK: - Subscriptions

    def on(self, event_type: str, handler: Handler) -> None:
        """Subscribe a handler (sync or async) to an event type."""
        self._handlers.setdefault(event_type, []).append(handler)

    def off(self, event_type: str, handler: Handler) -> None:
        """Unsubscribe a handler; unknown handlers are ignored."""
        handlers = self._handlers.get(event_type)
        if not handlers:
            return
        self._handlers[event_type] = [h for h in handlers if h != handler]

    # MARK: - Lifecycle

    async def connect(self) -> None:
        """
        Start connecting in the background.

        Returns immediately; subscribe to ``connected`` to act once the
        link is live. Calling connect while already running is a no-op.
        """
        self.should_reconnect = True
        if self._task is not None and not self._task.done():
            return
        self.backoff.reset()
        self.state = ConnectionState.DISCONNECTED
        self._task = asyncio.create_task(self._run())

    async def wait_connected(self, timeout: Optional[float] = None) -> None:
        """Wait until the link is live (raises asyncio.TimeoutError on timeout)."""
        await asyncio.wait_for(self._connected_event.wait(), timeout)

    async def disconnect(self) -> None:
        """
        Close the link and stop reconnecting.

        Cancels a pending reconnection wait. This is the only way to stop
        the channel.
        """
        self.should_reconnect = False
        task, self._task = self._task, None

        ws = self._ws
        if ws is not None:
            await ws.close()

        if task is not None and task is not asyncio.current_task() and not task.done():
            if ws is None:
                # waiting out a backoff delay or still opening the socket
                task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        self.state = ConnectionState.CLOSED
        logger.info("Transport closed")

    async def send(self, event: TransportEvent) -> bool:
        """
        Serialize and write an event if the link is live.

        Returns:
            True if the frame was written, False if it was dropped.
        """
        ws = self._ws
        if self.state is not ConnectionState.CONNECTED or ws is None:
            logger.debug("Dropping %s frame: not connected", event.type)
            return False
        try:
            await ws.send(serialize_event(event))
        except (ConnectionClosed, OSError) as e:
            logger.debug("Dropping %s frame: %s", event.type, e)
            return False
        return True

    # MARK: - Owner task

    async def _run(self) -> None:
        try:
            while self.should_reconnect:
                try:
                    await self._connect_once()
                except Exception:
                    # an unexpected error ends this link, not the loop
                    logger.exception("Transport error on %s", self.config.url)
                    self.state = ConnectionState.DISCONNECTED
                if not self.should_reconnect:
                    break
                delay = self.backoff.next_delay()
                logger.info("Reconnecting in %.1fs", delay)
                await self._sleep(delay)
        finally:
            if not self.should_reconnect:
                self.state = ConnectionState.CLOSED

    async def _connect_once(self) -> None:
        self.state = ConnectionState.CONNECTING
        logger.debug("Connecting to %s", self.config.url)
        try:
            ws = await self._connector(self.config.url)
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            logger.warning("Connection to %s failed: %s", self.config.url, e)
            self.state = ConnectionState.DISCONNECTED
            await self._dispatch(Disconnected(reason=str(e) or type(e).__name__))
            return

        self._ws = ws
        self.state = ConnectionState.CONNECTED
        self.backoff.reset()
        self._connected_event.set()
        logger.info("Connected to %s", self.config.url)

        reason = None
        try:
            await self._dispatch(Connected())
            async for raw in ws:
                await self._handle_frame(raw)
        except ConnectionClosed as e:
            reason = str(e)
        except Exception as e:
            logger.exception("Reading from %s failed", self.config.url)
            reason = f"{type(e).__name__}: {e}"
        finally:
            self._ws = None
            self._connected_event.clear()
            self.state = ConnectionState.DISCONNECTED
            await ws.close()
            logger.info("Disconnected from %s", self.config.url)
            await self._dispatch(Disconnected(reason=reason))

    async def _handle_frame(self, raw: Union[str, bytes]) -> None:
        try:
            event = parse_frame(raw)
        except MalformedFrameError as e:
            logger.warning("Dropping malformed frame: %s", e)
            return
        await self._dispatch(event)

    async def _dispatch(self, event: TransportEvent) -> None:
        for handler in list(self._handlers.get(event.type, ())):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Handler for %s event failed", event.type)
