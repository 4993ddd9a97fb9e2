import asyncio
import enum
import json
import logging
from typing import Callable, Iterator

from fastapi import WebSocket

logger = logging.getLogger(__name__)

OUTBOX_LIMIT = 256


class ConnectionState(str, enum.Enum):
    CONNECTING = "connecting"
    AUTHENTICATED = "authenticated"
    SUBSCRIBED = "subscribed"
    CLOSED = "closed"


class Connection:
    """One live websocket: its user, its (single) room binding and an outbox.

    ``send`` only enqueues; a writer task drains the outbox in order, so a
    slow or dead socket never blocks the caller. A full outbox drops new
    frames.
    """

    def __init__(self, websocket: WebSocket, user_id: str | None = None, outbox_size: int = OUTBOX_LIMIT) -> None:
        self.websocket = websocket
        self.user_id = user_id
        self.room_id: str | None = None
        self.state = ConnectionState.CONNECTING if user_id is None else ConnectionState.AUTHENTICATED
        self._outbox: asyncio.Queue[dict | None] = asyncio.Queue(maxsize=outbox_size)
        self._writer: asyncio.Task | None = None

    @property
    def is_open(self) -> bool:
        return self.state is not ConnectionState.CLOSED

    def start(self) -> None:
        if self._writer is None:
            self._writer = asyncio.create_task(self._drain())

    def authenticate(self, user_id: str) -> None:
        if self.state is ConnectionState.CONNECTING:
            self.user_id = user_id
            self.state = ConnectionState.AUTHENTICATED

    def subscribe(self, room_id: str) -> None:
        if not self.is_open:
            return
        # last subscribe wins
        self.room_id = room_id
        self.state = ConnectionState.SUBSCRIBED

    def send(self, frame: dict) -> None:
        if not self.is_open:
            logger.debug("Dropping %s frame for closed connection of %s", frame.get("type"), self.user_id)
            return
        try:
            self._outbox.put_nowait(frame)
        except asyncio.QueueFull:
            logger.debug("Outbox full for %s, dropping %s frame", self.user_id, frame.get("type"))

    async def _drain(self) -> None:
        while True:
            frame = await self._outbox.get()
            if frame is None:
                return
            try:
                await self.websocket.send_text(json.dumps(frame))
            except Exception:
                # half-closed socket; everything still queued is dropped
                logger.debug("Send to %s failed, dropping outbox", self.user_id, exc_info=True)
                self.state = ConnectionState.CLOSED
                return

    async def close(self) -> None:
        self.state = ConnectionState.CLOSED
        writer, self._writer = self._writer, None
        if writer is not None and not writer.done():
            writer.cancel()
            try:
                await writer
            except asyncio.CancelledError:
                pass


class ConnectionRegistry:
    """Live connections of this process. Nothing here survives a restart."""

    def __init__(self) -> None:
        self.connections: set[Connection] = set()

    def __len__(self) -> int:
        return len(self.connections)

    def __contains__(self, connection: Connection) -> bool:
        return connection in self.connections

    def add(self, connection: Connection) -> None:
        self.connections.add(connection)

    def remove(self, connection: Connection) -> None:
        self.connections.discard(connection)

    def subscribers(self, room_id: str) -> Iterator[Connection]:
        # snapshot: callbacks may add/remove connections
        for connection in list(self.connections):
            if connection.room_id == room_id:
                yield connection

    def for_each_subscriber(self, room_id: str, fn: Callable[[Connection], None]) -> None:
        for connection in self.subscribers(room_id):
            fn(connection)

    async def close_all(self) -> None:
        connections, self.connections = self.connections, set()
        for connection in connections:
            await connection.close()
