# Connection Registry
# Tracks live connections by role tag and answers fan-out queries

from sentinel.registry.tag import ClientRole, ConnectionTag
from sentinel.registry.registry import (
    Connection,
    ConnectionRegistry,
    TagPredicate,
    by_agent_ids,
    by_role,
    everyone,
)

__all__ = [
    "ClientRole",
    "ConnectionTag",
    "Connection",
    "ConnectionRegistry",
    "TagPredicate",
    "by_agent_ids",
    "by_role",
    "everyone",
]
