"""
Client Connection

Transport-side handle for one WebSocket. The registry stores these and the
dispatch engine sends outbound events through them.
"""

import logging

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from sentinel.protocol.events import OutboundEvent
from sentinel.transport.queue import ConnectionQueue, QueueClosedError, QueueFullError

logger = logging.getLogger(__name__)


class ClientConnection:
    """
    A live WebSocket plus its outbound queue.

    ``send`` never raises: a connection that is closing, closed or backed
    up simply does not get the event.
    """

    def __init__(self, conn_id: str, websocket: WebSocket, queue: ConnectionQueue):
        self.conn_id = conn_id
        self._websocket = websocket
        self._queue = queue

    @property
    def is_open(self) -> bool:
        """True while both sides of the socket are connected."""
        return (
            not self._queue.is_closed
            and self._websocket.client_state == WebSocketState.CONNECTED
            and self._websocket.application_state == WebSocketState.CONNECTED
        )

    async def send(self, event: OutboundEvent) -> bool:
        """
        Serialize and enqueue an event.

        Returns:
            True if queued, False if the connection is not open or is backed up
        """
        if not self.is_open:
            logger.debug(f"Skipping {event.type.value} for {self.conn_id}: connection not open")
            return False

        try:
            self._queue.offer(event.to_json())
            return True
        except QueueFullError as e:
            logger.warning(f"Dropping {event.type.value}: {e}")
            return False
        except QueueClosedError:
            return False

    def __repr__(self) -> str:
        return f"ClientConnection({self.conn_id!r})"
