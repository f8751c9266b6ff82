"""
Connection Registry

In-memory registry tracking every registered connection, tagged with its
role and, for agents, the agent identity it represents. The dispatch engine
asks it "which connections match predicate P" for every fan-out.

A connection that never sent `register` has no tag and is invisible to
every predicate.

Why in-memory?
- Connections only live as long as the process
- Low latency for fan-out decisions
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Iterable, Protocol

from sentinel.registry.tag import ClientRole, ConnectionTag

logger = logging.getLogger(__name__)


class Connection(Protocol):
    """What the registry and engine need from a transport connection."""

    conn_id: str

    @property
    def is_open(self) -> bool: ...

    def send(self, event: Any) -> Awaitable[bool]: ...


TagPredicate = Callable[[ConnectionTag], bool]


# =============================================================================
# Predicates
# =============================================================================

def everyone(tag: ConnectionTag) -> bool:
    """Match every tagged connection."""
    return True


def by_role(role: ClientRole) -> TagPredicate:
    """Match connections registered as ``role``."""
    def predicate(tag: ConnectionTag) -> bool:
        return tag.role == role
    return predicate


def by_agent_ids(agent_ids: Iterable[str]) -> TagPredicate:
    """Match agent connections whose identity is in ``agent_ids``."""
    wanted = frozenset(agent_ids)

    def predicate(tag: ConnectionTag) -> bool:
        return tag.role == ClientRole.AGENT and tag.agent_id in wanted
    return predicate


# =============================================================================
# Registry
# =============================================================================

class ConnectionRegistry:
    """
    Tracks role tags for live connections.

    Thread-safe for async operations using an asyncio lock.
    """

    def __init__(self):
        # Primary index: conn_id -> ConnectionTag
        self._tags: dict[str, ConnectionTag] = {}

        # Connection store: conn_id -> Connection
        self._connections: dict[str, Connection] = {}

        self._lock = asyncio.Lock()

    async def register(
        self,
        connection: Connection,
        role: ClientRole | str,
        agent_id: str | None = None
    ) -> ConnectionTag:
        """
        Tag a connection, replacing any tag it already had.

        Args:
            connection: Live connection
            role: Role name (aliases accepted, see ClientRole.parse)
            agent_id: Agent identity, required for the agent role

        Returns:
            The new tag

        Raises:
            ValueError: If the role is unknown or an agent has no identity
        """
        tag = ConnectionTag(
            conn_id=connection.conn_id,
            role=ClientRole.parse(role),
            agent_id=agent_id,
        )

        async with self._lock:
            previous = self._tags.get(connection.conn_id)
            self._tags[connection.conn_id] = tag
            self._connections[connection.conn_id] = connection

        if previous:
            logger.info(
                f"Connection re-registered: {connection.conn_id} "
                f"({previous.role.value} -> {tag.role.value})"
            )
        else:
            logger.info(
                f"Connection registered: {connection.conn_id} as {tag.role.value}"
                + (f" ({tag.agent_id})" if tag.agent_id else "")
            )
        return tag

    async def unregister(self, connection: Connection | str) -> ConnectionTag | None:
        """
        Remove a connection's tag.

        Args:
            connection: The connection or its conn_id

        Returns:
            The removed tag, or None if the connection was never tagged
        """
        conn_id = connection if isinstance(connection, str) else connection.conn_id

        async with self._lock:
            tag = self._tags.pop(conn_id, None)
            self._connections.pop(conn_id, None)

        if tag:
            logger.info(f"Connection unregistered: {conn_id} ({tag.role.value})")
        return tag

    async def matching(self, predicate: TagPredicate) -> list[Connection]:
        """
        Every tagged connection whose tag satisfies ``predicate``.

        Order is unspecified; results are send targets.
        """
        async with self._lock:
            return [
                self._connections[conn_id]
                for conn_id, tag in self._tags.items()
                if predicate(tag)
            ]

    async def get_tag(self, conn_id: str) -> ConnectionTag | None:
        """Get the tag for a connection."""
        async with self._lock:
            return self._tags.get(conn_id)

    async def list_tags(self) -> list[ConnectionTag]:
        """Snapshot of all tags."""
        async with self._lock:
            return list(self._tags.values())

    @property
    def tagged_count(self) -> int:
        """Number of tagged connections."""
        return len(self._tags)

    def count_by_role(self) -> dict[str, int]:
        """Tagged connections per role."""
        counts = {role.value: 0 for role in ClientRole}
        for tag in self._tags.values():
            counts[tag.role.value] += 1
        return counts
