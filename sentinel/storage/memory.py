"""
In-Memory Storage Adapters

Thread-safe implementations for development and testing.
Uses asyncio locks for concurrent async safety.

These adapters store everything in memory and are lost on restart.
Use for:
- Local development
- Unit/integration testing
- Single-node deployments without persistence requirements

Records are copied on the way in and on the way out, so callers never hold
a live reference into the store.
"""

import asyncio
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

from sentinel.storage.ports import (
    AgentStore,
    AgentRecord,
    MissionStore,
    MissionRecord,
    MissionStatus,
    ConflictError,
    StorageError,
    merge_agent,
    merge_mission,
    copy_mission,
    format_mission_id,
)


class InMemoryAgentStore(AgentStore):
    """
    In-memory agent storage.

    Uses dict with asyncio.Lock for thread-safety.
    """

    def __init__(self):
        self._agents: dict[str, AgentRecord] = {}
        self._lock = asyncio.Lock()

    async def list_all(self) -> list[AgentRecord]:
        async with self._lock:
            return [replace(a) for a in self._agents.values()]

    async def get(self, agent_id: str) -> AgentRecord | None:
        async with self._lock:
            agent = self._agents.get(agent_id)
            return replace(agent) if agent else None

    async def create(self, record: AgentRecord) -> AgentRecord:
        async with self._lock:
            if record.id in self._agents:
                raise ConflictError(f"Agent {record.id} already exists")
            stored = merge_agent(record, {"status": record.status})
            self._agents[record.id] = stored
            return replace(stored)

    async def update(self, agent_id: str, **updates: Any) -> AgentRecord | None:
        async with self._lock:
            agent = self._agents.get(agent_id)
            if agent is None:
                return None

            updated = merge_agent(agent, updates)
            self._agents[agent_id] = updated
            return replace(updated)


class InMemoryMissionStore(MissionStore):
    """
    In-memory mission storage.

    Owns the mission sequence counter.
    """

    def __init__(self):
        self._missions: dict[str, MissionRecord] = {}
        self._counter = 0
        self._lock = asyncio.Lock()

    async def list_all(self) -> list[MissionRecord]:
        async with self._lock:
            return [copy_mission(m) for m in self._missions.values()]

    async def get(self, mission_id: str) -> MissionRecord | None:
        async with self._lock:
            mission = self._missions.get(mission_id)
            return copy_mission(mission) if mission else None

    async def create(self, lat: float, lng: float, **extra: Any) -> MissionRecord:
        extra.pop("status", None)
        unknown = set(extra) - {"assigned_agents", "accepted_by"}
        if unknown:
            raise StorageError(f"Unknown MissionRecord fields: {sorted(unknown)}")

        async with self._lock:
            self._counter += 1
            assigned = extra.get("assigned_agents")
            mission = MissionRecord(
                id=format_mission_id(self._counter),
                lat=lat,
                lng=lng,
                status=MissionStatus.PENDING,
                timestamp=datetime.now(timezone.utc),
                assigned_agents=list(assigned) if assigned is not None else None,
                accepted_by=extra.get("accepted_by"),
            )
            self._missions[mission.id] = mission
            return copy_mission(mission)

    async def update(self, mission_id: str, **updates: Any) -> MissionRecord | None:
        async with self._lock:
            mission = self._missions.get(mission_id)
            if mission is None:
                return None

            updated = merge_mission(mission, updates)
            self._missions[mission_id] = updated
            return copy_mission(updated)

