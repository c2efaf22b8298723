"""Push Channel: Socket.IO backed status source.

Maintains one authenticated Socket.IO connection, exposes its connection state,
fans server events out to subscribed handlers and keeps room membership across
reconnects. Reconnection is driven here rather than by the Socket.IO client so
the Connected/Disconnected/Reconnecting transitions are observable and the
number of attempts is bounded with a capped exponential backoff.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

import socketio

from ..config import PushConfig
from .models import ConnectionState, StatusSnapshot
from .snapshot_parser import SnapshotParseError, parse_snapshot
from .subscription import Subscription

logger = logging.getLogger(__name__)

EventHandler = Callable[[Any], None]
StateHandler = Callable[[ConnectionState], None]
SnapshotHandler = Callable[[StatusSnapshot], None]
ClientFactory = Callable[[], Any]


def _default_client_factory() -> socketio.AsyncClient:
    return socketio.AsyncClient(reconnection=False, logger=False, engineio_logger=False)


class PushChannel:
    """Socket.IO status source with rooms, handler fan-out and reconnection."""

    def __init__(
        self,
        url: str,
        config: Optional[PushConfig] = None,
        client_factory: Optional[ClientFactory] = None,
    ):
        """Initialize push channel.

        Args:
            url: Socket.IO server URL (server root, not the /api prefix)
            config: Reconnection and event name settings
            client_factory: Builds the Socket.IO client (tests pass a fake)
        """
        self.url = url
        self.config = config or PushConfig()
        self._client = (client_factory or _default_client_factory)()
        self._state = ConnectionState.DISCONNECTED
        self._state_handlers: List[StateHandler] = []
        self._handlers: Dict[str, List[EventHandler]] = {}
        self._registered_events: set = set()
        self._rooms: Dict[str, None] = {}
        self._token: Optional[str] = None
        self._closing = False
        self._reconnect_task: Optional[asyncio.Task] = None
        self.last_error: Optional[str] = None

        self._client.on("connect", self._on_connect)
        self._client.on("disconnect", self._on_disconnect)
        self._client.on("connect_error", self._on_connect_error)

    @property
    def connection_state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def rooms(self) -> List[str]:
        return list(self._rooms)

    async def connect(self, token: Optional[str]) -> ConnectionState:
        """Open the connection, authenticating with a bearer token.

        A failed first attempt hands over to the reconnection loop instead of
        raising.

        Returns:
            Connection state after the first attempt
        """
        self._token = token
        self._closing = False
        if self._state == ConnectionState.CONNECTED:
            return self._state

        logger.info(f"Connecting to push server {self.url}")
        try:
            await self._open()
        except Exception as e:
            self.last_error = str(e)
            logger.warning(f"Push connection failed: {e}")
            self._schedule_reconnect()
        return self._state

    async def disconnect(self) -> None:
        """Leave every room, drop every handler and close the connection."""
        self._closing = True
        if self._reconnect_task is not None and not self._reconnect_task.done():
            self._reconnect_task.cancel()
        self._reconnect_task = None

        if self._state == ConnectionState.CONNECTED:
            for room in list(self._rooms):
                await self._emit(self.config.leave_event, room)
        self._rooms.clear()
        self._handlers.clear()

        if getattr(self._client, "connected", False):
            try:
                await self._client.disconnect()
            except Exception as e:
                logger.warning(f"Error closing push connection: {e}")

        self._set_state(ConnectionState.DISCONNECTED)
        self._state_handlers.clear()

    async def join_room(self, room: str) -> None:
        """Join a room now if connected; it is (re-)joined on every connect."""
        self._rooms[room] = None
        if self._state == ConnectionState.CONNECTED:
            logger.debug(f"Joining room {room}")
            await self._emit(self.config.join_event, room)
        else:
            logger.debug(f"Not connected, join of room {room} deferred until connected")

    async def leave_room(self, room: str) -> None:
        """Leave a room and stop re-joining it on reconnect."""
        if self._rooms.pop(room, "absent") == "absent":
            return
        if self._state == ConnectionState.CONNECTED:
            logger.debug(f"Leaving room {room}")
            await self._emit(self.config.leave_event, room)

    def on(self, event: str, handler: EventHandler) -> Subscription:
        """Subscribe a handler to a server event."""
        self._handlers.setdefault(event, []).append(handler)
        if event not in self._registered_events:
            self._client.on(event, self._make_dispatcher(event))
            self._registered_events.add(event)

        def remove() -> None:
            handlers = self._handlers.get(event, [])
            if handler in handlers:
                handlers.remove(handler)

        return Subscription(remove)

    def on_snapshot(
        self, handler: SnapshotHandler, events: Optional[Iterable[str]] = None
    ) -> Subscription:
        """Subscribe to snapshot-carrying events, parsed at the channel edge."""

        def deliver(payload: Any) -> None:
            try:
                snapshot = parse_snapshot(payload)
            except SnapshotParseError as e:
                logger.warning(f"Dropping malformed push payload: {e}")
                return
            handler(snapshot)

        subscription = Subscription()
        for event in events or self.config.snapshot_events:
            subscription.add(self.on(event, deliver))
        return subscription

    def on_connection_state(self, handler: StateHandler) -> Subscription:
        """Subscribe to connection state transitions."""
        self._state_handlers.append(handler)

        def remove() -> None:
            if handler in self._state_handlers:
                self._state_handlers.remove(handler)

        return Subscription(remove)

    async def _open(self) -> None:
        timeout = self.config.connect_timeout
        await asyncio.wait_for(
            self._client.connect(
                self.url,
                auth={"token": self._token} if self._token else None,
                transports=["websocket", "polling"],
                wait_timeout=timeout,
            ),
            timeout=timeout + 1,
        )
        if getattr(self._client, "connected", False):
            await self._mark_connected()

    async def _mark_connected(self) -> None:
        if self._state == ConnectionState.CONNECTED or self._closing:
            return
        self.last_error = None
        self._set_state(ConnectionState.CONNECTED)
        logger.info(f"Push channel connected to {self.url}")
        for room in list(self._rooms):
            await self._emit(self.config.join_event, room)

    def _set_state(self, state: ConnectionState) -> None:
        if state == self._state:
            return
        logger.debug(f"Push connection state {self._state.value} -> {state.value}")
        self._state = state
        for handler in list(self._state_handlers):
            try:
                handler(state)
            except Exception as e:
                logger.warning(f"Connection state handler failed: {e}")

    def _schedule_reconnect(self) -> None:
        if self._closing:
            return
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        if self.config.reconnection_attempts == 0:
            return
        self._reconnect_task = asyncio.get_running_loop().create_task(
            self._reconnect_loop()
        )

    def _backoff_delay(self, attempt: int) -> float:
        """Exponential backoff: delay * 2^(attempt-1), capped at delay_max."""
        delay = self.config.reconnection_delay * (2 ** (attempt - 1))
        return float(min(delay, self.config.reconnection_delay_max))

    async def _reconnect_loop(self) -> None:
        attempts = self.config.reconnection_attempts
        for attempt in range(1, attempts + 1):
            self._set_state(ConnectionState.RECONNECTING)
            delay = self._backoff_delay(attempt)
            logger.info(f"Push reconnection attempt {attempt}/{attempts} in {delay:.1f}s")
            await asyncio.sleep(delay)
            if self._closing:
                return
            try:
                await self._open()
            except Exception as e:
                self.last_error = str(e)
                logger.warning(f"Push reconnection attempt {attempt} failed: {e}")
                continue
            if self._state == ConnectionState.CONNECTED:
                logger.info(f"Push channel reconnected after {attempt} attempt(s)")
                return

        self.last_error = "Failed to reconnect. Please refresh the page."
        logger.error(f"Push reconnection failed after {attempts} attempts")
        self._set_state(ConnectionState.DISCONNECTED)

    async def _on_connect(self) -> None:
        await self._mark_connected()

    def _on_disconnect(self, reason: Any = None) -> None:
        logger.info(f"Push channel disconnected: {reason}")
        self._set_state(ConnectionState.DISCONNECTED)
        self._schedule_reconnect()

    def _on_connect_error(self, data: Any = None) -> None:
        self.last_error = str(data) if data is not None else "connection error"
        logger.warning(f"Push connection error: {self.last_error}")

    async def _emit(self, event: str, data: Any) -> None:
        try:
            await self._client.emit(event, data)
        except Exception as e:
            logger.warning(f"Failed to emit {event}: {e}")

    def _make_dispatcher(self, event: str) -> Callable[..., None]:
        def dispatch(data: Any = None, *args: Any) -> None:
            for handler in list(self._handlers.get(event, [])):
                try:
                    handler(data)
                except Exception as e:
                    logger.warning(f"Handler for {event} failed: {e}")

        return dispatch
