"""
SQLAlchemy Storage Adapters

Async SQLAlchemy 2.0 implementations of the agent and mission stores.
Every call runs in its own transaction.

Compatible with:
- SQLite (aiosqlite)
- PostgreSQL (asyncpg)
"""

import asyncio
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
)

from sentinel.storage.ports import (
    AgentStore,
    AgentRecord,
    AgentStatus,
    MissionStore,
    MissionRecord,
    MissionStatus,
    ConflictError,
    StorageError,
    merge_agent,
    merge_mission,
    format_mission_id,
)
from sentinel.storage.models import AgentModel, MissionModel


# =============================================================================
# Converters
# =============================================================================

def agent_model_to_record(model: AgentModel) -> AgentRecord:
    """Convert SQLAlchemy model to port record."""
    return AgentRecord(
        id=model.id,
        name=model.name,
        status=AgentStatus(model.status),
        lat=model.lat,
        lng=model.lng,
    )


def agent_record_to_model(record: AgentRecord) -> AgentModel:
    """Convert port record to SQLAlchemy model."""
    return AgentModel(
        id=record.id,
        name=record.name,
        status=AgentStatus(record.status).value,
        lat=record.lat,
        lng=record.lng,
    )


def mission_model_to_record(model: MissionModel) -> MissionRecord:
    """Convert SQLAlchemy model to port record."""
    timestamp = model.timestamp
    # SQLite drops tzinfo on the way back
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)

    return MissionRecord(
        id=model.id,
        lat=model.lat,
        lng=model.lng,
        status=MissionStatus(model.status),
        timestamp=timestamp,
        assigned_agents=list(model.assigned_agents) if model.assigned_agents is not None else None,
        accepted_by=model.accepted_by,
    )


def _apply_mission(model: MissionModel, record: MissionRecord) -> None:
    model.lat = record.lat
    model.lng = record.lng
    model.status = record.status.value
    model.assigned_agents = list(record.assigned_agents) if record.assigned_agents is not None else None
    model.accepted_by = record.accepted_by


# =============================================================================
# SQLAlchemy Agent Store
# =============================================================================

class SqlAlchemyAgentStore(AgentStore):
    """
    SQLAlchemy implementation of agent storage.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def list_all(self) -> list[AgentRecord]:
        async with self._session_factory() as session:
            result = await session.execute(select(AgentModel).order_by(AgentModel.id))
            return [agent_model_to_record(m) for m in result.scalars().all()]

    async def get(self, agent_id: str) -> AgentRecord | None:
        async with self._session_factory() as session:
            model = await session.get(AgentModel, agent_id)
            if model is None:
                return None
            return agent_model_to_record(model)

    async def create(self, record: AgentRecord) -> AgentRecord:
        async with self._session_factory() as session:
            async with session.begin():
                existing = await session.get(AgentModel, record.id)
                if existing:
                    raise ConflictError(f"Agent {record.id} already exists")

                model = agent_record_to_model(record)
                session.add(model)

            return agent_model_to_record(model)

    async def update(self, agent_id: str, **updates: Any) -> AgentRecord | None:
        async with self._session_factory() as session:
            async with session.begin():
                model = await session.get(AgentModel, agent_id)
                if model is None:
                    return None

                merged = merge_agent(agent_model_to_record(model), updates)
                model.name = merged.name
                model.status = merged.status.value
                model.lat = merged.lat
                model.lng = merged.lng

                return merged


# =============================================================================
# SQLAlchemy Mission Store
# =============================================================================

class SqlAlchemyMissionStore(MissionStore):
    """
    SQLAlchemy implementation of mission storage.

    The next sequence number is read and written under an in-process lock,
    so two creates in the same process never race for the same number.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory
        self._create_lock = asyncio.Lock()

    async def list_all(self) -> list[MissionRecord]:
        async with self._session_factory() as session:
            result = await session.execute(select(MissionModel).order_by(MissionModel.sequence))
            return [mission_model_to_record(m) for m in result.scalars().all()]

    async def get(self, mission_id: str) -> MissionRecord | None:
        async with self._session_factory() as session:
            model = await session.get(MissionModel, mission_id)
            if model is None:
                return None
            return mission_model_to_record(model)

    async def create(self, lat: float, lng: float, **extra: Any) -> MissionRecord:
        extra.pop("status", None)
        unknown = set(extra) - {"assigned_agents", "accepted_by"}
        if unknown:
            raise StorageError(f"Unknown MissionRecord fields: {sorted(unknown)}")

        async with self._create_lock:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(select(func.max(MissionModel.sequence)))
                    sequence = (result.scalar() or 0) + 1

                    assigned = extra.get("assigned_agents")
                    model = MissionModel(
                        id=format_mission_id(sequence),
                        sequence=sequence,
                        lat=lat,
                        lng=lng,
                        status=MissionStatus.PENDING.value,
                        timestamp=datetime.now(timezone.utc),
                        assigned_agents=list(assigned) if assigned is not None else None,
                        accepted_by=extra.get("accepted_by"),
                    )
                    session.add(model)

                return mission_model_to_record(model)

    async def update(self, mission_id: str, **updates: Any) -> MissionRecord | None:
        async with self._session_factory() as session:
            async with session.begin():
                model = await session.get(MissionModel, mission_id)
                if model is None:
                    return None

                merged = merge_mission(mission_model_to_record(model), updates)
                _apply_mission(model, merged)

                return merged
