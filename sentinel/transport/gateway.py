"""
WebSocket Gateway

Accepts dispatch connections, turns inbound frames into events for the
dispatch engine, and cleans up after disconnects.

Connection lifecycle:
1. accept - the connection gets a conn_id and an outbound queue, but no tag
2. register - the first `register` frame tags it (handled by the engine)
3. frames - each frame is parsed and handed to the engine; unparseable
   frames get an error event and the connection keeps going
4. close/error - tag removed from the registry, queue stopped, nothing
   buffered for later
"""

import logging
from uuid import uuid4

from fastapi import WebSocket, WebSocketDisconnect

from sentinel.dispatch import DispatchEngine
from sentinel.protocol.events import ProtocolError, parse_inbound
from sentinel.registry import ConnectionRegistry
from sentinel.transport.connection import ClientConnection
from sentinel.transport.queue import ConnectionQueueManager

logger = logging.getLogger(__name__)


class WebSocketGateway:
    """
    Owns the WebSocket side of every dispatch connection.
    """

    def __init__(
        self,
        engine: DispatchEngine,
        registry: ConnectionRegistry,
        queue_manager: ConnectionQueueManager | None = None,
    ):
        """
        Initialize the gateway.

        Args:
            engine: Dispatch engine that handles parsed events
            registry: Connection registry to clean up on disconnect
            queue_manager: Per-connection queue manager for outbound sends
        """
        self._engine = engine
        self._registry = registry
        self._queues = queue_manager or ConnectionQueueManager()

        # Every accepted connection, tagged or not: conn_id -> ClientConnection
        self._connections: dict[str, ClientConnection] = {}

    @property
    def connection_count(self) -> int:
        """Accepted connections, including ones that never registered."""
        return len(self._connections)

    async def handle_connection(self, websocket: WebSocket) -> None:
        """
        Handle a WebSocket connection lifecycle.

        Args:
            websocket: The WebSocket connection
        """
        await websocket.accept()

        conn_id = f"conn-{uuid4().hex[:12]}"
        queue = self._queues.open(conn_id, websocket.send_text)
        connection = ClientConnection(conn_id, websocket, queue)
        self._connections[conn_id] = connection
        logger.info(f"WebSocket connected: {conn_id} ({len(self._connections)} open)")

        try:
            while True:
                data = await self._receive_frame(websocket)

                try:
                    message = parse_inbound(data)
                except ProtocolError as e:
                    logger.warning(f"Invalid frame from {conn_id}: {e.message}")
                    await self._engine.reply_error(connection, e.message, e.code)
                    continue

                await self._engine.handle(connection, message)

        except WebSocketDisconnect:
            logger.info(f"WebSocket disconnected: {conn_id}")

        except Exception as e:
            logger.error(f"WebSocket error on {conn_id}: {e}")

        finally:
            self._connections.pop(conn_id, None)
            await self._registry.unregister(conn_id)
            await self._queues.close(conn_id)

    async def shutdown(self) -> None:
        """Stop every outbound queue."""
        await self._queues.close_all()

    @staticmethod
    async def _receive_frame(websocket: WebSocket) -> str | bytes:
        """
        Receive one text or binary frame.

        Raises:
            WebSocketDisconnect: When the client goes away
        """
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            raise WebSocketDisconnect(message.get("code", 1000))

        if message.get("text") is not None:
            return message["text"]
        return message.get("bytes") or b""
