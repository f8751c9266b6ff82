"""
Storage Factory

Picks and builds the storage adapters from settings, creates tables for SQL
backends and seeds the default agent roster.

Backends:
- memory: in-process dicts (default)
- sqlite: SQLAlchemy + aiosqlite
- postgresql: SQLAlchemy + asyncpg

Usage:
    bundle = await create_storage_from_env()
    bundle = await create_storage(StorageSettings(database_url="sqlite:///sentinel.db"))
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .memory import InMemoryAgentStore, InMemoryMissionStore
from .models import Base
from .ports import AgentStore, MissionStore, StorageBundle
from .seed import seed_agents
from .sqlalchemy import SqlAlchemyAgentStore, SqlAlchemyMissionStore

logger = logging.getLogger(__name__)


class StorageBackend(str, Enum):
    MEMORY = "memory"
    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"

    @classmethod
    def from_url(cls, url: str) -> StorageBackend:
        """Infer the backend from a database URL scheme."""
        scheme = url.split(":", 1)[0].split("+", 1)[0]
        if scheme == "sqlite":
            return cls.SQLITE
        if scheme in ("postgresql", "postgres"):
            return cls.POSTGRESQL
        raise ValueError(f"Unsupported database URL scheme: {url}")


# Async driver per SQL backend
_ASYNC_DRIVERS = {
    StorageBackend.SQLITE: "sqlite+aiosqlite",
    StorageBackend.POSTGRESQL: "postgresql+asyncpg",
}


@dataclass
class StorageSettings:
    """
    Storage configuration.

    Attributes:
        backend: Which adapters to build; inferred from database_url when left at memory
        database_url: SQLAlchemy URL, with or without the async driver part
        pool_size: PostgreSQL connection pool size
        pool_max_overflow: PostgreSQL connections allowed beyond pool_size
        echo_sql: Log every SQL statement
        create_tables: Create missing tables at startup
        seed_agents: Load the default roster when the agent store is empty
    """
    backend: StorageBackend = StorageBackend.MEMORY
    database_url: str | None = None
    pool_size: int = 5
    pool_max_overflow: int = 10
    echo_sql: bool = False
    create_tables: bool = True
    seed_agents: bool = True

    def __post_init__(self) -> None:
        if self.database_url and self.backend == StorageBackend.MEMORY:
            self.backend = StorageBackend.from_url(self.database_url)

    def async_url(self) -> str:
        """database_url rewritten to use the async driver for its backend."""
        if not self.database_url:
            raise ValueError(f"database_url required for backend {self.backend.value}")
        _, rest = self.database_url.split("://", 1)
        return f"{_ASYNC_DRIVERS[self.backend]}://{rest}"


@dataclass
class ManagedStorageBundle(StorageBundle):
    """StorageBundle that disposes its SQLAlchemy engine, if it has one, on close."""
    agents: AgentStore
    missions: MissionStore
    engine: AsyncEngine | None = field(default=None, repr=False)

    async def close(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def settings_from_env() -> StorageSettings:
    """
    Build StorageSettings from the environment.

    Environment variables:
        SENTINEL_STORAGE_BACKEND: memory | sqlite | postgresql (default: memory)
        SENTINEL_DATABASE_URL: database URL for SQL backends
        SENTINEL_POOL_SIZE / SENTINEL_POOL_MAX_OVERFLOW: PostgreSQL pool sizing
        SENTINEL_ECHO_SQL: log SQL statements (default: false)
        SENTINEL_CREATE_TABLES: create tables at startup (default: true)
        SENTINEL_SEED_AGENTS: seed the default roster (default: true)
    """
    return StorageSettings(
        backend=StorageBackend(os.getenv("SENTINEL_STORAGE_BACKEND", "memory").lower()),
        database_url=os.getenv("SENTINEL_DATABASE_URL") or None,
        pool_size=int(os.getenv("SENTINEL_POOL_SIZE", "5")),
        pool_max_overflow=int(os.getenv("SENTINEL_POOL_MAX_OVERFLOW", "10")),
        echo_sql=_env_flag("SENTINEL_ECHO_SQL", False),
        create_tables=_env_flag("SENTINEL_CREATE_TABLES", True),
        seed_agents=_env_flag("SENTINEL_SEED_AGENTS", True),
    )


async def _open_engine(settings: StorageSettings) -> AsyncEngine:
    options: dict = {"echo": settings.echo_sql}
    # SQLite picks its own pool; sizing only applies to server databases
    if settings.backend == StorageBackend.POSTGRESQL:
        options.update(pool_size=settings.pool_size, max_overflow=settings.pool_max_overflow)

    engine = create_async_engine(settings.async_url(), **options)

    if settings.create_tables:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    return engine


async def create_storage(settings: StorageSettings) -> StorageBundle:
    """
    Build the storage bundle described by ``settings``.

    Raises:
        ValueError: If a SQL backend has no database_url
    """
    if settings.backend == StorageBackend.MEMORY:
        bundle = ManagedStorageBundle(agents=InMemoryAgentStore(), missions=InMemoryMissionStore())
    else:
        engine = await _open_engine(settings)
        sessions = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        bundle = ManagedStorageBundle(
            agents=SqlAlchemyAgentStore(sessions),
            missions=SqlAlchemyMissionStore(sessions),
            engine=engine,
        )

    if settings.seed_agents:
        await seed_agents(bundle.agents)

    logger.info(f"Storage ready (backend: {settings.backend.value})")
    return bundle


async def create_storage_from_env() -> StorageBundle:
    return await create_storage(settings_from_env())


async def create_memory_storage(seed: bool = True) -> StorageBundle:
    """In-memory bundle, seeded by default."""
    return await create_storage(StorageSettings(seed_agents=seed))


async def create_sqlite_storage(path: str = ":memory:", seed: bool = True) -> StorageBundle:
    """SQLite bundle with tables created; ``:memory:`` keeps one shared connection."""
    return await create_storage(StorageSettings(
        backend=StorageBackend.SQLITE,
        database_url=f"sqlite:///{path}",
        seed_agents=seed,
    ))
