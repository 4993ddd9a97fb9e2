"""Realtime chat delivery over websockets.

Protocol (JSON text frames):

- server -> client: ``connected``, ``subscribed``, ``message:new``, ``error``
- client -> server: ``{"type": "subscribe", "roomId": ...}`` only

Each connection is bound to at most one room; a new subscribe replaces the
previous one. There is no unsubscribe frame. Delivery is at-most-once: a
client that misses a broadcast re-fetches history over HTTP.
"""
import json
import logging
from typing import Protocol

from fastapi import WebSocket, status

from .auth import SessionResolver, credentials_from_connection
from .membership import MembershipGate
from .registry import Connection, ConnectionRegistry
from .schemas import MessageOut

logger = logging.getLogger(__name__)


class Broadcaster(Protocol):
    def publish(self, message: MessageOut) -> None: ...


class RealtimeGateway:
    def __init__(self, registry: ConnectionRegistry, resolver: SessionResolver, gate: MembershipGate) -> None:
        self.registry = registry
        self.resolver = resolver
        self.gate = gate

    # ---------------------- BROADCAST ----------------------
    def publish(self, message: MessageOut) -> None:
        frame = {"type": "message:new", "message": message.model_dump(mode="json", by_alias=True)}

        def deliver(connection: Connection) -> None:
            try:
                connection.send(frame)
            except Exception:
                logger.warning("Broadcast to %s failed, skipping", connection.user_id, exc_info=True)

        self.registry.for_each_subscriber(message.room_id, deliver)

    # ---------------------- CONNECTION LIFECYCLE ----------------------
    async def handle(self, ws: WebSocket) -> None:
        connection = Connection(ws)
        try:
            identity = await self.resolver.resolve(credentials_from_connection(ws))
        except Exception:
            logger.exception("Session resolution failed")
            identity = None

        # upgrade first so the client sees the close code and reason
        await ws.accept()
        if identity is None:
            logger.warning("Rejected realtime connection: no session")
            await ws.close(code=status.WS_1008_POLICY_VIOLATION, reason="Unauthorized")
            await connection.close()
            return

        connection.authenticate(identity.id)
        connection.start()
        self.registry.add(connection)
        logger.info("Realtime connection opened for %s (%d live)", identity.id, len(self.registry))
        connection.send({"type": "connected", "userId": identity.id})

        try:
            while True:
                message = await ws.receive()
                if message["type"] == "websocket.disconnect":
                    break
                text = message.get("text")
                if text is None:
                    connection.send({"type": "error", "message": "Invalid message payload"})
                    continue
                await self.handle_frame(connection, text)
        finally:
            self.registry.remove(connection)
            await connection.close()
            logger.info("Realtime connection closed for %s", identity.id)

    async def handle_frame(self, connection: Connection, raw: str) -> None:
        try:
            payload = json.loads(raw)
        except ValueError:
            connection.send({"type": "error", "message": "Invalid message payload"})
            return

        if not isinstance(payload, dict) or payload.get("type") != "subscribe":
            connection.send({"type": "error", "message": "Unsupported event"})
            return
        room_id = payload.get("roomId")
        if not isinstance(room_id, str) or not room_id.strip():
            connection.send({"type": "error", "message": "Unsupported event"})
            return

        try:
            allowed = await self.gate.is_member(connection.user_id, room_id)
        except Exception:
            logger.exception("Membership check failed for %s in room %s", connection.user_id, room_id)
            connection.send({"type": "error", "message": "Unable to process request"})
            return

        if not allowed:
            connection.send({"type": "error", "message": "Access denied for room"})
            return

        connection.subscribe(room_id)
        connection.send({"type": "subscribed", "roomId": room_id})
