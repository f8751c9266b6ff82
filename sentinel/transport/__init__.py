# Transport Layer
# Handles WebSocket connections, outbound queues and the HTTP query surface
# Separated from dispatch logic so the engine never touches a socket

from sentinel.transport.connection import ClientConnection
from sentinel.transport.gateway import WebSocketGateway
from sentinel.transport.queue import (
    ConnectionQueue,
    ConnectionQueueManager,
    QueueClosedError,
    QueueFullError,
)

__all__ = [
    "ClientConnection",
    "WebSocketGateway",
    "ConnectionQueue",
    "ConnectionQueueManager",
    "QueueClosedError",
    "QueueFullError",
]
