# tests/test_queue.py
"""
Tests for per-connection outbound queues and the ClientConnection wrapper.
"""
import asyncio
from unittest.mock import MagicMock

import pytest
from starlette.websockets import WebSocketState

from sentinel.protocol import create_error
from sentinel.transport import (
    ClientConnection,
    ConnectionQueue,
    ConnectionQueueManager,
    QueueClosedError,
    QueueFullError,
)


async def _settle() -> None:
    """Let pump tasks drain."""
    for _ in range(5):
        await asyncio.sleep(0)


class Recorder:
    """Async send_text stand-in that records frames."""

    def __init__(self, fail: bool = False):
        self.frames: list[str] = []
        self.fail = fail

    async def __call__(self, frame: str) -> None:
        if self.fail:
            raise RuntimeError("socket gone")
        self.frames.append(frame)


class TestConnectionQueue:

    @pytest.mark.asyncio
    async def test_frames_written_in_order(self):
        send = Recorder()
        queue = ConnectionQueue("c1", send)
        queue.start()

        for i in range(3):
            queue.offer(f"frame-{i}")
        await _settle()
        await queue.close()

        assert send.frames == ["frame-0", "frame-1", "frame-2"]
        assert queue.delivered == 3

    @pytest.mark.asyncio
    async def test_full_queue_refuses_and_counts(self):
        # Pump not started, so nothing drains
        queue = ConnectionQueue("c1", Recorder(), capacity=2)
        queue.offer("a")
        queue.offer("b")

        with pytest.raises(QueueFullError):
            queue.offer("c")
        assert queue.depth == 2
        assert queue.dropped == 1

    @pytest.mark.asyncio
    async def test_closed_queue_refuses(self):
        queue = ConnectionQueue("c1", Recorder())
        queue.start()
        await queue.close()

        assert queue.is_closed
        with pytest.raises(QueueClosedError):
            queue.offer("late")

    @pytest.mark.asyncio
    async def test_close_discards_pending_frames(self):
        send = Recorder()
        queue = ConnectionQueue("c1", send)
        queue.offer("never sent")

        await queue.close()
        queue.start()
        await _settle()

        assert send.frames == []

    @pytest.mark.asyncio
    async def test_write_failure_closes_queue(self):
        queue = ConnectionQueue("c1", Recorder(fail=True))
        queue.start()
        queue.offer("doomed")
        await _settle()

        assert queue.is_closed
        assert queue.delivered == 0
        await queue.close()


class TestConnectionQueueManager:

    @pytest.mark.asyncio
    async def test_open_and_close(self):
        manager = ConnectionQueueManager(capacity=10)
        queue = manager.open("c1", Recorder())

        assert len(manager) == 1
        assert queue.capacity == 10

        await manager.close("c1")
        assert queue.is_closed
        assert len(manager) == 0
        # Closing twice is harmless
        await manager.close("c1")

    @pytest.mark.asyncio
    async def test_duplicate_open_rejected(self):
        manager = ConnectionQueueManager()
        manager.open("c1", Recorder())

        with pytest.raises(ValueError):
            manager.open("c1", Recorder())
        await manager.close_all()

    @pytest.mark.asyncio
    async def test_stats(self):
        manager = ConnectionQueueManager(capacity=1)
        queue = manager.open("c1", Recorder())
        manager.open("c2", Recorder())
        # Stop the pump so frames stay queued
        queue._pump_task.cancel()
        await _settle()

        queue.offer("one")
        with pytest.raises(QueueFullError):
            queue.offer("two")

        assert manager.stats() == {"queues": 2, "pending": 1, "dropped": 1}
        await manager.close_all()
        assert len(manager) == 0


def _websocket(state: WebSocketState = WebSocketState.CONNECTED) -> MagicMock:
    websocket = MagicMock()
    websocket.client_state = state
    websocket.application_state = WebSocketState.CONNECTED
    return websocket


class TestClientConnection:

    @pytest.mark.asyncio
    async def test_send_serializes_event(self):
        send = Recorder()
        queue = ConnectionQueue("c1", send)
        queue.start()
        connection = ClientConnection("c1", _websocket(), queue)

        assert await connection.send(create_error("bad frame"))
        await _settle()
        await queue.close()

        assert send.frames == ['{"type":"error","message":"bad frame","code":"INVALID_MESSAGE"}']

    @pytest.mark.asyncio
    async def test_closing_socket_is_a_no_op(self):
        queue = ConnectionQueue("c1", Recorder(fail=True))
        connection = ClientConnection("c1", _websocket(WebSocketState.DISCONNECTED), queue)

        assert not connection.is_open
        assert await connection.send(create_error("bad frame")) is False
        assert queue.depth == 0

    @pytest.mark.asyncio
    async def test_backed_up_connection_drops(self):
        queue = ConnectionQueue("c1", Recorder(), capacity=1)
        connection = ClientConnection("c1", _websocket(), queue)

        assert await connection.send(create_error("first"))
        assert await connection.send(create_error("second")) is False
        assert queue.dropped == 1
