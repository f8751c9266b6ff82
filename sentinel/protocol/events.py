"""
Dispatch Wire Protocol

Every frame on the dispatch socket is a JSON object with a ``type``
discriminator and flat, camelCase fields next to it:

    {"type": "operator:assign_agents", "missionId": "MISSION-001", "agentIds": ["AGENT-001"]}

Inbound frames are parsed in two steps:
1. ``parse_inbound`` checks the frame is a JSON object with a string ``type``
2. The engine validates the body against the payload model for that type

Outbound events are built with the ``create_*`` constructors and
serialized with ``OutboundEvent.to_json``.
"""

from enum import Enum
from typing import Any, Iterable

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_serializer,
    model_validator,
)

from sentinel.registry.tag import ClientRole
from sentinel.storage.ports import AgentRecord, MissionRecord, MissionStatus


class InboundType(str, Enum):
    """
    Event types clients send to the server.

    Prefix shows the role expected to send it; the server does not enforce it.
    """
    REGISTER = "register"
    REQUEST_MISSION = "client:request_mission"
    ASSIGN_AGENTS = "operator:assign_agents"
    ACCEPT_MISSION = "agent:accept_mission"
    DECLINE_MISSION = "agent:decline_mission"


class OutboundType(str, Enum):
    """Event types the server sends to clients."""
    INITIAL_DATA = "initial_data"                          # operator, on register
    NEW_MISSION = "server:new_mission"                     # operators
    MISSION_CREATED = "server:mission_created"             # requesting connection
    MISSION_UPDATED = "server:mission_updated"             # operators
    MISSION_OFFER = "server:mission_offer"                 # matched agent connections
    MISSION_STATUS_UPDATE = "server:mission_status_update"  # everyone
    ERROR = "error"                                        # originating connection


class ErrorCode(str, Enum):
    """Machine-readable codes carried on error events."""
    INVALID_MESSAGE = "INVALID_MESSAGE"
    UNSUPPORTED_EVENT = "UNSUPPORTED_EVENT"
    MISSION_NOT_FOUND = "MISSION_NOT_FOUND"
    AGENT_NOT_FOUND = "AGENT_NOT_FOUND"
    PRECONDITION_FAILED = "PRECONDITION_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ProtocolError(Exception):
    """Raised when an inbound frame cannot be parsed or validated."""

    def __init__(self, message: str, code: ErrorCode = ErrorCode.INVALID_MESSAGE):
        self.message = message
        self.code = code
        super().__init__(message)


# =============================================================================
# Inbound
# =============================================================================

class InboundMessage(BaseModel):
    """
    A parsed inbound frame.

    Only ``type`` is checked here; everything else is kept as-is for the
    payload model of that type.
    """
    model_config = ConfigDict(extra="allow")

    type: str

    @property
    def body(self) -> dict[str, Any]:
        """All fields except ``type``."""
        return dict(self.model_extra or {})


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class RegisterPayload(_Payload):
    """register {clientType, agentId?}"""
    client_type: ClientRole = Field(..., alias="clientType")
    agent_id: str | None = Field(default=None, alias="agentId")

    @field_validator("client_type", mode="before")
    @classmethod
    def _parse_role(cls, value: Any) -> ClientRole:
        if not isinstance(value, (str, ClientRole)):
            raise ValueError("clientType must be a string")
        return ClientRole.parse(value)

    @model_validator(mode="after")
    def _agent_needs_identity(self) -> "RegisterPayload":
        if self.client_type == ClientRole.AGENT and not self.agent_id:
            raise ValueError("agentId is required when registering as an agent")
        return self


class RequestMissionPayload(_Payload):
    """client:request_mission {lat, lng}"""
    lat: float = Field(..., ge=-90.0, le=90.0)
    lng: float = Field(..., ge=-180.0, le=180.0)


class AssignAgentsPayload(_Payload):
    """operator:assign_agents {missionId, agentIds}"""
    mission_id: str = Field(..., alias="missionId", min_length=1)
    agent_ids: list[str] = Field(..., alias="agentIds", min_length=1)

    @field_validator("agent_ids")
    @classmethod
    def _unique_in_order(cls, value: list[str]) -> list[str]:
        # assignedAgents is unique by identity
        return list(dict.fromkeys(value))


class AcceptMissionPayload(_Payload):
    """agent:accept_mission {missionId, agentId}"""
    mission_id: str = Field(..., alias="missionId", min_length=1)
    agent_id: str = Field(..., alias="agentId", min_length=1)


class DeclineMissionPayload(_Payload):
    """agent:decline_mission {missionId, agentId}"""
    mission_id: str = Field(..., alias="missionId", min_length=1)
    agent_id: str = Field(..., alias="agentId", min_length=1)


PAYLOAD_MODELS: dict[InboundType, type[_Payload]] = {
    InboundType.REGISTER: RegisterPayload,
    InboundType.REQUEST_MISSION: RequestMissionPayload,
    InboundType.ASSIGN_AGENTS: AssignAgentsPayload,
    InboundType.ACCEPT_MISSION: AcceptMissionPayload,
    InboundType.DECLINE_MISSION: DeclineMissionPayload,
}


def parse_inbound(raw: str | bytes) -> InboundMessage:
    """
    Parse a raw frame into an InboundMessage.

    Raises:
        ProtocolError: If the frame is not a JSON object with a string ``type``
    """
    # pydantic parses the JSON too, so nesting past its recursion limit,
    # bad UTF-8 and non-object frames all surface as ValidationError
    try:
        return InboundMessage.model_validate_json(raw)
    except ValidationError as e:
        raise ProtocolError(f"Invalid message format: {_describe(e)}")


def validate_payload(event_type: InboundType, message: InboundMessage) -> _Payload:
    """
    Validate the body of ``message`` against the payload model for ``event_type``.

    Raises:
        ProtocolError: If required fields are missing or malformed
    """
    model = PAYLOAD_MODELS[event_type]
    try:
        return model.model_validate(message.body)
    except ValidationError as e:
        raise ProtocolError(f"Invalid {event_type.value} payload: {_describe(e)}")


def _describe(error: ValidationError) -> str:
    """Compact human-readable summary of a ValidationError."""
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item.get("loc", ())) or "message"
        parts.append(f"{location}: {item.get('msg', 'invalid')}")
    return "; ".join(parts)


# =============================================================================
# Outbound
# =============================================================================

class OutboundEvent(BaseModel):
    """
    A server-originated event.

    Serialized flat: ``{"type": ..., **payload}``.
    """
    type: OutboundType
    payload: dict[str, Any] = Field(default_factory=dict)

    @model_serializer
    def _flatten(self) -> dict[str, Any]:
        return {"type": self.type.value, **self.payload}

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump()

    def to_json(self) -> str:
        return self.model_dump_json()


def create_initial_data(
    agents: Iterable[AgentRecord],
    missions: Iterable[MissionRecord]
) -> OutboundEvent:
    """Full roster snapshot sent to an operator when it registers."""
    return OutboundEvent(
        type=OutboundType.INITIAL_DATA,
        payload={
            "agents": [a.to_dict() for a in agents],
            "missions": [m.to_dict() for m in missions],
        }
    )


def create_new_mission(mission: MissionRecord) -> OutboundEvent:
    """Operators learn about a freshly requested mission."""
    return OutboundEvent(
        type=OutboundType.NEW_MISSION,
        payload={"mission": mission.to_dict()}
    )


def create_mission_created(mission: MissionRecord) -> OutboundEvent:
    """Confirmation to the requester that its mission exists."""
    return OutboundEvent(
        type=OutboundType.MISSION_CREATED,
        payload={"mission": mission.to_dict()}
    )


def create_mission_updated(
    mission: MissionRecord,
    agents: Iterable[AgentRecord]
) -> OutboundEvent:
    """Operators get the assigned mission plus the full agent list."""
    return OutboundEvent(
        type=OutboundType.MISSION_UPDATED,
        payload={
            "mission": mission.to_dict(),
            "agents": [a.to_dict() for a in agents],
        }
    )


def create_mission_offer(mission: MissionRecord) -> OutboundEvent:
    """Offer sent to each connection of an assigned agent."""
    return OutboundEvent(
        type=OutboundType.MISSION_OFFER,
        payload={"mission": mission.to_dict()}
    )


def create_mission_status_update(
    mission: MissionRecord,
    agent: AgentRecord,
    status: MissionStatus = MissionStatus.ACCEPTED
) -> OutboundEvent:
    """
    Broadcast to every connection when an agent accepts.

    Receivers filter by mission id themselves.
    """
    return OutboundEvent(
        type=OutboundType.MISSION_STATUS_UPDATE,
        payload={
            "mission": mission.to_dict(),
            "agent": agent.to_dict(),
            "status": status.value,
        }
    )


def create_error(
    message: str,
    code: ErrorCode = ErrorCode.INVALID_MESSAGE
) -> OutboundEvent:
    """
    Create an error event.

    Only ever sent to the connection whose frame caused it.
    """
    return OutboundEvent(
        type=OutboundType.ERROR,
        payload={"message": message, "code": code.value}
    )
