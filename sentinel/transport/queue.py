"""
Outbound Frame Queues

Every connection owns one bounded queue of serialized frames and one pump
task that writes them to the socket, so sends to a connection never
interleave and a slow client never stalls the dispatch engine.

Delivery rules:
- Frames go out in the order they were offered
- A full queue refuses the frame; the frame is dropped and counted
- A write failure marks the queue closed; the connection itself is reaped
  by the gateway when its receive side sees the close
- Closing discards whatever is still queued (no buffering for later)
"""

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

SendText = Callable[[str], Awaitable[None]]


class QueueFullError(Exception):
    """Raised when a connection's outbound queue has no room left."""
    def __init__(self, conn_id: str, capacity: int):
        self.conn_id = conn_id
        self.capacity = capacity
        super().__init__(f"Outbound queue for {conn_id} is full ({capacity} frames)")


class QueueClosedError(Exception):
    """Raised when offering a frame to a closed queue."""
    def __init__(self, conn_id: str):
        self.conn_id = conn_id
        super().__init__(f"Outbound queue for {conn_id} is closed")


class ConnectionQueue:
    """
    Bounded FIFO of outbound frames for one connection, drained by a pump task.
    """

    def __init__(self, conn_id: str, send_text: SendText, capacity: int = 200):
        """
        Args:
            conn_id: Connection the frames belong to
            send_text: Coroutine writing one text frame to the socket
            capacity: Frames held before new ones are refused
        """
        self.conn_id = conn_id
        self.capacity = capacity
        self._send_text = send_text
        self._frames: asyncio.Queue[str] = asyncio.Queue(maxsize=capacity)
        self._pump_task: asyncio.Task | None = None
        self._closed = False

        self.delivered = 0
        self.dropped = 0

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def depth(self) -> int:
        """Frames waiting to be written."""
        return self._frames.qsize()

    def start(self) -> None:
        """Start the pump (needs a running event loop)."""
        if self._pump_task is None and not self._closed:
            self._pump_task = asyncio.get_running_loop().create_task(
                self._pump(), name=f"outbound-{self.conn_id}"
            )

    def offer(self, frame: str) -> None:
        """
        Queue one frame without waiting.

        Raises:
            QueueClosedError: The queue was closed
            QueueFullError: The connection is not keeping up
        """
        if self._closed:
            raise QueueClosedError(self.conn_id)
        try:
            self._frames.put_nowait(frame)
        except asyncio.QueueFull:
            self.dropped += 1
            raise QueueFullError(self.conn_id, self.capacity)

    async def close(self) -> None:
        """Stop the pump and discard anything not yet written."""
        self._closed = True
        pending = self._frames.qsize()

        task, self._pump_task = self._pump_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if pending:
            logger.debug(f"Discarded {pending} unsent frame(s) for {self.conn_id}")

    async def _pump(self) -> None:
        while not self._closed:
            frame = await self._frames.get()
            try:
                await self._send_text(frame)
                self.delivered += 1
            except Exception as e:
                # Half-closed socket: stop writing, the gateway reaps the connection
                logger.warning(f"Write to {self.conn_id} failed, closing its queue: {e}")
                self._closed = True


class ConnectionQueueManager:
    """
    Owns the outbound queue of every open connection.
    """

    def __init__(self, capacity: int = 200):
        """
        Args:
            capacity: Outbound frames buffered per connection
        """
        self._capacity = capacity
        self._queues: dict[str, ConnectionQueue] = {}

    def open(self, conn_id: str, send_text: SendText) -> ConnectionQueue:
        """Create and start the queue for a new connection."""
        if conn_id in self._queues:
            raise ValueError(f"Connection {conn_id} already has an outbound queue")

        queue = ConnectionQueue(conn_id, send_text, self._capacity)
        queue.start()
        self._queues[conn_id] = queue
        return queue

    async def close(self, conn_id: str) -> None:
        """Close and forget a connection's queue, if it still has one."""
        queue = self._queues.pop(conn_id, None)
        if queue is not None:
            await queue.close()

    async def close_all(self) -> None:
        queues, self._queues = list(self._queues.values()), {}
        for queue in queues:
            await queue.close()

    def __len__(self) -> int:
        return len(self._queues)

    def stats(self) -> dict[str, int]:
        """Totals across open queues (for /health)."""
        return {
            "queues": len(self._queues),
            "pending": sum(q.depth for q in self._queues.values()),
            "dropped": sum(q.dropped for q in self._queues.values()),
        }
