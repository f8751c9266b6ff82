"""
Storage Port Interfaces

Abstract base classes defining the storage contracts for Sentinel dispatch.
All persistence APIs are async.

The dispatch engine sees only these classes; the in-memory and SQLAlchemy
adapters implement them and arrive bundled in a StorageBundle.

Update semantics: every update is a shallow merge. Fields not named in the
update keep their previous values. No operation ever removes a record.

Each call is atomic with respect to every other call on the same store.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, fields, replace
from datetime import datetime
from enum import Enum
from typing import Any


# =============================================================================
# Status enums
# =============================================================================

class AgentStatus(str, Enum):
    """Field agent availability."""
    AVAILABLE = "available"
    ASSIGNED = "assigned"    # Offered a mission by the operator
    ACCEPTED = "accepted"    # Committed to a mission


class MissionStatus(str, Enum):
    """
    Mission lifecycle states.

    Strict forward order: pending -> assigned -> accepted -> completed.
    """
    PENDING = "pending"
    ASSIGNED = "assigned"
    ACCEPTED = "accepted"
    COMPLETED = "completed"

    def can_transition_to(self, target: "MissionStatus") -> bool:
        """Check whether moving from this status to ``target`` keeps the forward order."""
        return target in _MISSION_TRANSITIONS[self]


# assigned -> assigned lets the operator re-assign before anyone accepts
_MISSION_TRANSITIONS: dict[MissionStatus, frozenset[MissionStatus]] = {
    MissionStatus.PENDING: frozenset({MissionStatus.ASSIGNED}),
    MissionStatus.ASSIGNED: frozenset({MissionStatus.ASSIGNED, MissionStatus.ACCEPTED}),
    MissionStatus.ACCEPTED: frozenset({MissionStatus.COMPLETED}),
    MissionStatus.COMPLETED: frozenset(),
}


MISSION_ID_PREFIX = "MISSION-"


def format_mission_id(sequence: int) -> str:
    """Format a mission sequence number, e.g. 1 -> MISSION-001."""
    return f"{MISSION_ID_PREFIX}{sequence:03d}"


# =============================================================================
# Records
# =============================================================================

@dataclass
class AgentRecord:
    """
    Stored field agent.

    Created from the seed roster at startup, mutated only by the dispatch engine.
    """
    id: str
    name: str
    status: AgentStatus
    lat: float
    lng: float

    def to_dict(self) -> dict[str, Any]:
        """Serialize for message payloads."""
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "lat": self.lat,
            "lng": self.lng,
        }


@dataclass
class MissionRecord:
    """
    Stored mission.

    ``assigned_agents`` stays None until an assignment happens and
    ``accepted_by`` stays None until an agent accepts.
    """
    id: str
    lat: float
    lng: float
    status: MissionStatus
    timestamp: datetime
    assigned_agents: list[str] | None = None
    accepted_by: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for message payloads (camelCase wire format)."""
        return {
            "id": self.id,
            "lat": self.lat,
            "lng": self.lng,
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
            "assignedAgents": list(self.assigned_agents) if self.assigned_agents is not None else None,
            "acceptedBy": self.accepted_by,
        }


# Fields fixed at creation time
_IMMUTABLE_AGENT_FIELDS = frozenset({"id"})
_IMMUTABLE_MISSION_FIELDS = frozenset({"id", "timestamp"})


def merge_agent(record: AgentRecord, updates: dict[str, Any]) -> AgentRecord:
    """
    Shallow-merge ``updates`` onto an agent record.

    Returns a new record; the input is left untouched.

    Raises:
        StorageError: If an update names an unknown or immutable field
        ValueError: If a status value is outside AgentStatus
    """
    _check_fields(AgentRecord, updates, _IMMUTABLE_AGENT_FIELDS)
    if "status" in updates:
        updates = {**updates, "status": AgentStatus(updates["status"])}
    return replace(record, **updates)


def merge_mission(record: MissionRecord, updates: dict[str, Any]) -> MissionRecord:
    """
    Shallow-merge ``updates`` onto a mission record.

    Returns a new record; the input is left untouched.

    Raises:
        StorageError: If an update names an unknown or immutable field
        ValueError: If a status value is outside MissionStatus
    """
    _check_fields(MissionRecord, updates, _IMMUTABLE_MISSION_FIELDS)
    if "status" in updates:
        updates = {**updates, "status": MissionStatus(updates["status"])}
    if updates.get("assigned_agents") is not None:
        updates = {**updates, "assigned_agents": list(updates["assigned_agents"])}
    return replace(record, **updates)


def copy_mission(record: MissionRecord) -> MissionRecord:
    """Detached copy (the assigned list is the only mutable field)."""
    return merge_mission(record, {})


def _check_fields(record_type: type, updates: dict[str, Any], immutable: frozenset[str]) -> None:
    known = {f.name for f in fields(record_type)}
    unknown = set(updates) - known
    if unknown:
        raise StorageError(f"Unknown {record_type.__name__} fields: {sorted(unknown)}")
    frozen = set(updates) & immutable
    if frozen:
        raise StorageError(f"Immutable {record_type.__name__} fields: {sorted(frozen)}")


# =============================================================================
# Agent Store
# =============================================================================

class AgentStore(ABC):
    """
    Storage interface for field agents.
    """

    @abstractmethod
    async def list_all(self) -> list[AgentRecord]:
        """
        Get every agent.

        Returns:
            All agent records, in insertion order
        """
        ...

    @abstractmethod
    async def get(self, agent_id: str) -> AgentRecord | None:
        """
        Get an agent by ID.

        Returns:
            Agent record or None if not found
        """
        ...

    @abstractmethod
    async def create(self, record: AgentRecord) -> AgentRecord:
        """
        Create an agent.

        Args:
            record: Agent data to persist

        Returns:
            The created record

        Raises:
            ConflictError: If an agent with the same ID already exists
        """
        ...

    @abstractmethod
    async def update(self, agent_id: str, **updates: Any) -> AgentRecord | None:
        """
        Shallow-merge fields onto an existing agent.

        Args:
            agent_id: Target agent
            **updates: Fields to change (name, status, lat, lng)

        Returns:
            Updated record or None if the agent is unknown
        """
        ...


# =============================================================================
# Mission Store
# =============================================================================

class MissionStore(ABC):
    """
    Storage interface for missions.

    Mission IDs are assigned by the store from a monotonically increasing sequence.
    """

    @abstractmethod
    async def list_all(self) -> list[MissionRecord]:
        """
        Get every mission.

        Returns:
            All mission records, in creation order
        """
        ...

    @abstractmethod
    async def get(self, mission_id: str) -> MissionRecord | None:
        """
        Get a mission by ID.

        Returns:
            Mission record or None if not found
        """
        ...

    @abstractmethod
    async def create(self, lat: float, lng: float, **extra: Any) -> MissionRecord:
        """
        Create a new mission.

        Assigns the next sequence number and stamps the current time.
        The status is always pending, whatever the caller passes.

        Args:
            lat: Requested latitude
            lng: Requested longitude
            **extra: Optional assigned_agents / accepted_by (a status here is ignored)

        Returns:
            The created record
        """
        ...

    @abstractmethod
    async def update(self, mission_id: str, **updates: Any) -> MissionRecord | None:
        """
        Shallow-merge fields onto an existing mission.

        Args:
            mission_id: Target mission
            **updates: Fields to change (status, assigned_agents, accepted_by, lat, lng)

        Returns:
            Updated record or None if the mission is unknown
        """
        ...


# =============================================================================
# Storage Bundle
# =============================================================================

@dataclass
class StorageBundle:
    """The agent and mission stores handed to the dispatch engine."""
    agents: AgentStore
    missions: MissionStore

    async def close(self) -> None:
        """Release backend resources at shutdown. Nothing to do in memory."""


# =============================================================================
# Exceptions
# =============================================================================

class StorageError(Exception):
    """Base class for storage failures."""


class ConflictError(StorageError):
    """Write collides with an existing record id."""
