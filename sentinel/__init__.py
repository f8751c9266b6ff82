# Sentinel Dispatch - real-time security mission dispatch
# Requesters raise missions, operators assign agents, agents accept over one WebSocket

__version__ = "0.1.0"

# Re-export commonly used components for convenience
from sentinel.storage import (
    AgentRecord,
    AgentStatus,
    MissionRecord,
    MissionStatus,
    create_storage_from_env,
)
from sentinel.registry import ClientRole, ConnectionRegistry
from sentinel.dispatch import DispatchEngine
from sentinel.client import DispatchClient

__all__ = [
    "__version__",
    # Storage
    "AgentRecord",
    "AgentStatus",
    "MissionRecord",
    "MissionStatus",
    "create_storage_from_env",
    # Registry
    "ClientRole",
    "ConnectionRegistry",
    # Dispatch
    "DispatchEngine",
    # Client
    "DispatchClient",
]
