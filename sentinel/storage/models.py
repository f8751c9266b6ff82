"""
SQLAlchemy ORM Models

Tables behind the SQL storage adapters. Enum values are stored as their
string form; the adapters convert to and from the port records.

Works with SQLite (aiosqlite) and PostgreSQL (asyncpg). The assigned-agent
list is a JSON array, JSONB on PostgreSQL.
"""

from datetime import datetime

from sqlalchemy import JSON, DateTime, Float, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


AgentIdList = JSON(none_as_null=True).with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    pass


class AgentModel(Base):
    """Field agent row. Seeded once, then only updated."""
    __tablename__ = "sentinel_agents"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(String(16), default="available", index=True)
    lat: Mapped[float] = mapped_column(Float)
    lng: Mapped[float] = mapped_column(Float)


class MissionModel(Base):
    """
    Mission row.

    ``sequence`` is the number behind the formatted id and orders listings.
    """
    __tablename__ = "sentinel_missions"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    sequence: Mapped[int] = mapped_column(Integer, unique=True)
    lat: Mapped[float] = mapped_column(Float)
    lng: Mapped[float] = mapped_column(Float)
    status: Mapped[str] = mapped_column(String(16), default="pending", index=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    # NULL until the first assignment
    assigned_agents: Mapped[list[str] | None] = mapped_column(AgentIdList, nullable=True)
    accepted_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
