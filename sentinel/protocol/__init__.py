# Wire Protocol
# Inbound event parsing/validation and outbound event constructors

from sentinel.protocol.events import (
    InboundType,
    OutboundType,
    ErrorCode,
    ProtocolError,
    InboundMessage,
    RegisterPayload,
    RequestMissionPayload,
    AssignAgentsPayload,
    AcceptMissionPayload,
    DeclineMissionPayload,
    OutboundEvent,
    parse_inbound,
    validate_payload,
    create_initial_data,
    create_new_mission,
    create_mission_created,
    create_mission_updated,
    create_mission_offer,
    create_mission_status_update,
    create_error,
)

__all__ = [
    "InboundType",
    "OutboundType",
    "ErrorCode",
    "ProtocolError",
    "InboundMessage",
    "RegisterPayload",
    "RequestMissionPayload",
    "AssignAgentsPayload",
    "AcceptMissionPayload",
    "DeclineMissionPayload",
    "OutboundEvent",
    "parse_inbound",
    "validate_payload",
    "create_initial_data",
    "create_new_mission",
    "create_mission_created",
    "create_mission_updated",
    "create_mission_offer",
    "create_mission_status_update",
    "create_error",
]
