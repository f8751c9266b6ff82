# Dispatch Engine
# Mission state machine and fan-out decisions

from sentinel.dispatch.engine import DispatchEngine
from sentinel.dispatch.errors import (
    DispatchError,
    MissionNotFoundError,
    AgentNotFoundError,
    InvalidTransitionError,
)

__all__ = [
    "DispatchEngine",
    "DispatchError",
    "MissionNotFoundError",
    "AgentNotFoundError",
    "InvalidTransitionError",
]
