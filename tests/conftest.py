# tests/conftest.py
"""Pytest configuration and fixtures"""
import pytest
import pytest_asyncio

from sentinel.dispatch import DispatchEngine
from sentinel.protocol import InboundMessage, OutboundEvent
from sentinel.registry import ConnectionRegistry
from sentinel.storage import create_memory_storage


class FakeConnection:
    """Records outbound events instead of writing to a socket."""

    def __init__(self, conn_id: str, is_open: bool = True):
        self.conn_id = conn_id
        self.open = is_open
        self.sent: list[OutboundEvent] = []

    @property
    def is_open(self) -> bool:
        return self.open

    async def send(self, event: OutboundEvent) -> bool:
        if not self.open:
            return False
        self.sent.append(event)
        return True

    def events(self, event_type: str | None = None) -> list[dict]:
        """Sent events as wire dicts, optionally filtered by type."""
        return [
            e.to_dict() for e in self.sent
            if event_type is None or e.type.value == event_type
        ]

    def types(self) -> list[str]:
        return [e.type.value for e in self.sent]

    def clear(self) -> None:
        self.sent.clear()


def message(event_type: str, **fields) -> InboundMessage:
    """Build an inbound message the way the gateway would after parsing."""
    return InboundMessage.model_validate({"type": event_type, **fields})


@pytest_asyncio.fixture
async def storage():
    """Seeded in-memory storage"""
    bundle = await create_memory_storage()
    yield bundle
    await bundle.close()


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest.fixture
def engine(storage, registry):
    return DispatchEngine(storage=storage, registry=registry)


@pytest.fixture
def connection_factory():
    """Create FakeConnections with sequential ids"""
    counter = {"n": 0}

    def make(is_open: bool = True) -> FakeConnection:
        counter["n"] += 1
        return FakeConnection(f"conn-{counter['n']}", is_open=is_open)

    return make
