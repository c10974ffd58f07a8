"""
Thinking Monitor - WebSocket Hub
=================================

Live snapshot + change stream for dashboard clients.

Every socket gets its own engine subscription; a pump task drains that
subscription and writes to the socket, so a slow client only ever
backs up its own queue.
"""

import asyncio
import json
from typing import Any, Dict, Optional
from dataclasses import dataclass, field
from uuid import uuid4
from enum import Enum
import logging

from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from thinking_monitor.core.config import settings
from thinking_monitor.core.monitor.engine import MonitorEngine
from thinking_monitor.core.monitor.publisher import Subscription
from thinking_monitor.core.monitor.records import ChangeKind, utc_now_iso

logger = logging.getLogger(__name__)

# Close codes
CLOSE_NORMAL = 1000
CLOSE_GOING_AWAY = 1001
CLOSE_UNSUPPORTED = 1003
CLOSE_TOO_BIG = 1009
CLOSE_TRY_AGAIN_LATER = 1013


# ==========================================================================
# WebSocket Message Types
# ==========================================================================

class WSMessageType(str, Enum):
    """WebSocket message types"""
    # Client -> Server
    PING = "ping"

    # Server -> Client
    CONNECTED = "connected"
    SNAPSHOT = "snapshot"
    CHANGE = "change"
    STALE = "stale"
    PONG = "pong"
    ERROR = "error"


@dataclass
class WSMessage:
    """WebSocket message structure"""
    type: WSMessageType
    payload: Any
    seq: Optional[int] = None
    timestamp: str = field(default_factory=utc_now_iso)

    def to_json(self) -> str:
        data = {
            "type": self.type.value,
            "payload": self.payload,
            "timestamp": self.timestamp,
        }
        if self.seq is not None:
            data["seq"] = self.seq
        return json.dumps(data)

    @classmethod
    def from_json(cls, data: str) -> 'WSMessage':
        parsed = json.loads(data)
        return cls(
            type=WSMessageType(parsed["type"]),
            payload=parsed.get("payload"),
            timestamp=parsed.get("timestamp") or utc_now_iso(),
        )


# ==========================================================================
# Connection Manager
# ==========================================================================

@dataclass
class ClientConnection:
    """Represents a connected WebSocket client"""
    id: str
    websocket: WebSocket
    engine: MonitorEngine
    connected_at: str = field(default_factory=utc_now_iso)
    subscription: Optional[Subscription] = None
    pump_task: Optional[asyncio.Task] = None
    ready: asyncio.Event = field(default_factory=asyncio.Event)
    send_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    invalid_messages: int = 0
    is_active: bool = True


class ConnectionManager:
    """
    Manages WebSocket connections and their engine subscriptions.
    """

    def __init__(self, max_connections: Optional[int] = None):
        self.max_connections = max_connections or settings.MAX_WS_CONNECTIONS
        self.connections: Dict[str, ClientConnection] = {}
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, engine: MonitorEngine) -> Optional[str]:
        """Accept a connection and start streaming; None if the server is full."""
        await websocket.accept()

        async with self._lock:
            if len(self.connections) >= self.max_connections:
                logger.warning("Rejected connection: max client limit reached")
                await websocket.close(code=CLOSE_TRY_AGAIN_LATER, reason="Server busy: too many connections")
                return None

            client_id = str(uuid4())
            connection = ClientConnection(id=client_id, websocket=websocket, engine=engine)
            self.connections[client_id] = connection

        await self._send(connection, WSMessage(
            type=WSMessageType.CONNECTED,
            payload={
                "client_id": client_id,
                "server_version": settings.APP_VERSION,
            },
        ))

        loop = asyncio.get_running_loop()
        connection.subscription = engine.subscribe(
            on_ready=lambda: loop.call_soon_threadsafe(connection.ready.set)
        )
        connection.pump_task = asyncio.create_task(self._pump(connection))

        logger.info(f"Client {client_id} connected. Total: {len(self.connections)}")
        return client_id

    async def disconnect(self, client_id: str):
        """Handle client disconnection"""
        async with self._lock:
            connection = self.connections.pop(client_id, None)
        if connection is None:
            return

        connection.is_active = False
        if connection.subscription is not None:
            connection.engine.unsubscribe(connection.subscription)
        if connection.pump_task and connection.pump_task is not asyncio.current_task():
            connection.pump_task.cancel()
            try:
                await connection.pump_task
            except asyncio.CancelledError:
                pass

        logger.info(f"Client {client_id} disconnected. Total: {len(self.connections)}")

    async def handle_raw(self, client_id: str, data: str) -> bool:
        """
        Parse and dispatch one client frame.

        Returns False when the connection was closed because of the frame.
        """
        connection = self.connections.get(client_id)
        if not connection:
            return False

        if len(data.encode("utf-8")) > settings.WS_MAX_MESSAGE_SIZE:
            logger.warning(f"Rejected oversized message from {client_id}")
            await self._close(connection, CLOSE_TOO_BIG, "Message too large")
            return False

        try:
            message = WSMessage.from_json(data)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError):
            connection.invalid_messages += 1
            if connection.invalid_messages > settings.WS_MAX_INVALID_MESSAGES:
                logger.warning(f"Closing connection for {client_id}: too many invalid messages")
                await self._close(connection, CLOSE_UNSUPPORTED, "Too many invalid messages")
                return False
            await self._send(connection, WSMessage(
                type=WSMessageType.ERROR,
                payload={"error": "Invalid message"},
            ))
            return True

        await self.handle_message(client_id, message)
        return True

    async def handle_message(self, client_id: str, message: WSMessage):
        """Handle incoming message from client"""
        connection = self.connections.get(client_id)
        if not connection:
            return

        if message.type == WSMessageType.PING:
            await self._send(connection, WSMessage(
                type=WSMessageType.PONG,
                payload={"received": message.timestamp},
            ))
        else:
            await self._send(connection, WSMessage(
                type=WSMessageType.ERROR,
                payload={"error": f"Unsupported message type: {message.type.value}"},
            ))

    async def _pump(self, connection: ClientConnection) -> None:
        """Forward the subscription to the socket until it closes or goes stale."""
        subscription = connection.subscription
        while connection.is_active and subscription is not None:
            await connection.ready.wait()
            connection.ready.clear()

            for change in subscription.drain():
                if change.kind == ChangeKind.SNAPSHOT:
                    message = WSMessage(type=WSMessageType.SNAPSHOT, payload=change.payload, seq=change.seq)
                else:
                    message = WSMessage(type=WSMessageType.CHANGE, payload=change.to_dict(), seq=change.seq)
                if not await self._send(connection, message):
                    return

            if subscription.stale:
                logger.warning(f"Client {connection.id} fell behind; closing for resync")
                await self._send(connection, WSMessage(
                    type=WSMessageType.STALE,
                    payload={"dropped": subscription.dropped, "last_seq": connection.engine.publisher.last_seq},
                ))
                await self._close(connection, CLOSE_TRY_AGAIN_LATER, "Subscriber fell behind; resubscribe")
                return

            if subscription.closed:
                return

    async def _send(self, connection: ClientConnection, message: WSMessage) -> bool:
        """Send message to a specific client"""
        if not connection.is_active:
            return False

        try:
            async with connection.send_lock:
                if connection.websocket.client_state == WebSocketState.CONNECTED:
                    await connection.websocket.send_text(message.to_json())
                    return True
        except Exception as e:
            logger.error(f"Error sending to {connection.id}: {e}")
            connection.is_active = False
        return False

    async def _close(self, connection: ClientConnection, code: int, reason: str) -> None:
        connection.is_active = False
        if connection.subscription is not None:
            connection.engine.unsubscribe(connection.subscription)
        try:
            if connection.websocket.client_state == WebSocketState.CONNECTED:
                await connection.websocket.close(code=code, reason=reason)
        except Exception as e:
            logger.error(f"Error closing {connection.id}: {e}")

    async def close_all(self) -> None:
        """Close every socket on shutdown"""
        for client_id, connection in list(self.connections.items()):
            await self._close(connection, CLOSE_GOING_AWAY, "Server shutting down")
            await self.disconnect(client_id)


# ==========================================================================
# Global Instance
# ==========================================================================

_connection_manager: Optional[ConnectionManager] = None


def get_connection_manager() -> ConnectionManager:
    """Get or create the global connection manager"""
    global _connection_manager
    if _connection_manager is None:
        _connection_manager = ConnectionManager()
    return _connection_manager


# ==========================================================================
# FastAPI WebSocket Endpoint
# ==========================================================================

async def websocket_endpoint(websocket: WebSocket, engine: MonitorEngine, manager: ConnectionManager):
    """
    WebSocket endpoint handler.

    Sends ``connected``, then the snapshot, then every change with its
    ``seq``. Clients may send ``{"type": "ping"}`` at any time.
    """
    client_id = await manager.connect(websocket, engine)
    if client_id is None:
        return

    try:
        while True:
            data = await websocket.receive_text()
            if not await manager.handle_raw(client_id, data):
                break
    except WebSocketDisconnect:
        pass
    except Exception as e:
        connection = manager.connections.get(client_id)
        if connection is not None and connection.is_active and websocket.client_state == WebSocketState.CONNECTED:
            logger.error(f"WebSocket error for {client_id}: {e}")
        else:
            # Socket already closed by the server (stale subscriber, oversized frame)
            logger.debug(f"WebSocket {client_id} ended after server close: {e}")
    finally:
        await manager.disconnect(client_id)
