"""
Dispatch Errors

Raised inside the engine when an event cannot be applied. Each one maps to
an error event sent back to the originating connection only.
"""

from sentinel.protocol.events import ErrorCode
from sentinel.storage.ports import MissionStatus


class DispatchError(Exception):
    """Base exception for rejected dispatch events."""

    code: ErrorCode = ErrorCode.PRECONDITION_FAILED

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class MissionNotFoundError(DispatchError):
    """Event referenced a mission id the repository does not know."""

    code = ErrorCode.MISSION_NOT_FOUND

    def __init__(self, mission_id: str):
        self.mission_id = mission_id
        super().__init__(f"Mission {mission_id} not found")


class AgentNotFoundError(DispatchError):
    """Event referenced an agent id the repository does not know."""

    code = ErrorCode.AGENT_NOT_FOUND

    def __init__(self, agent_id: str):
        self.agent_id = agent_id
        super().__init__(f"Agent {agent_id} not found")


class InvalidTransitionError(DispatchError):
    """The requested status change would break the forward mission order."""

    code = ErrorCode.PRECONDITION_FAILED

    def __init__(self, mission_id: str, current: MissionStatus, target: MissionStatus):
        self.mission_id = mission_id
        self.current = current
        self.target = target
        super().__init__(
            f"Mission {mission_id} is {current.value}, cannot move to {target.value}"
        )
