# Storage Layer
# Pluggable persistence for agents and missions
#
# This module provides:
# - Port interfaces (ABCs) defining storage contracts
# - In-memory implementations (default)
# - SQLAlchemy implementations for SQLite/PostgreSQL
# - The seed roster loaded at startup
# - Factory for configuration-based adapter selection

from .ports import (
    AgentStatus,
    MissionStatus,
    AgentRecord,
    MissionRecord,
    AgentStore,
    MissionStore,
    StorageBundle,
    StorageError,
    ConflictError,
    format_mission_id,
)
from .seed import DEFAULT_ROSTER, default_roster, seed_agents
from .factory import (
    StorageSettings,
    StorageBackend,
    create_storage,
    create_storage_from_env,
    create_memory_storage,
    create_sqlite_storage,
    settings_from_env,
)

__all__ = [
    # Ports
    "AgentStatus",
    "MissionStatus",
    "AgentRecord",
    "MissionRecord",
    "AgentStore",
    "MissionStore",
    "StorageBundle",
    "StorageError",
    "ConflictError",
    "format_mission_id",
    # Seed
    "DEFAULT_ROSTER",
    "default_roster",
    "seed_agents",
    # Factory
    "StorageSettings",
    "StorageBackend",
    "create_storage",
    "create_storage_from_env",
    "create_memory_storage",
    "create_sqlite_storage",
    "settings_from_env",
]
