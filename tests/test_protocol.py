# tests/test_protocol.py
"""
Tests for inbound frame parsing, payload validation and outbound event
serialization.
"""
import json
from datetime import datetime, timezone

import pytest

from sentinel.protocol import (
    AssignAgentsPayload,
    ErrorCode,
    InboundType,
    ProtocolError,
    RegisterPayload,
    create_error,
    create_mission_status_update,
    create_mission_updated,
    parse_inbound,
    validate_payload,
)
from sentinel.registry import ClientRole
from sentinel.storage import AgentRecord, AgentStatus, MissionRecord, MissionStatus


def _mission(**overrides) -> MissionRecord:
    fields = dict(
        id="MISSION-001",
        lat=48.85,
        lng=2.35,
        status=MissionStatus.PENDING,
        timestamp=datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc),
    )
    fields.update(overrides)
    return MissionRecord(**fields)


class TestParseInbound:

    def test_valid_frame(self):
        message = parse_inbound('{"type": "client:request_mission", "lat": 48.85, "lng": 2.35}')
        assert message.type == "client:request_mission"
        assert message.body == {"lat": 48.85, "lng": 2.35}

    def test_bytes_frame(self):
        message = parse_inbound(b'{"type": "register", "clientType": "operator"}')
        assert message.type == "register"

    @pytest.mark.parametrize("raw", [
        "not json",
        "{",
        "[1, 2, 3]",
        '"register"',
        "{}",
        '{"type": 5}',
        b"\xc3\x28",
    ])
    def test_malformed_frames(self, raw):
        with pytest.raises(ProtocolError) as exc_info:
            parse_inbound(raw)
        assert exc_info.value.code == ErrorCode.INVALID_MESSAGE

    def test_deeply_nested_frame_is_rejected(self):
        raw = '{"type": "register", "x": ' + "[" * 100000 + "]" * 100000 + "}"

        with pytest.raises(ProtocolError) as exc_info:
            parse_inbound(raw)
        assert exc_info.value.code == ErrorCode.INVALID_MESSAGE

    def test_unknown_type_still_parses(self):
        # Routing decides whether the type is supported
        assert parse_inbound('{"type": "agent:teleport"}').type == "agent:teleport"


class TestValidatePayload:

    def test_register_with_alias_role(self):
        message = parse_inbound('{"type": "register", "clientType": "guard", "agentId": "AGENT-001"}')
        payload = validate_payload(InboundType.REGISTER, message)

        assert isinstance(payload, RegisterPayload)
        assert payload.client_type == ClientRole.AGENT
        assert payload.agent_id == "AGENT-001"

    def test_register_agent_without_id(self):
        message = parse_inbound('{"type": "register", "clientType": "guard"}')
        with pytest.raises(ProtocolError):
            validate_payload(InboundType.REGISTER, message)

    def test_register_unknown_role(self):
        message = parse_inbound('{"type": "register", "clientType": "janitor"}')
        with pytest.raises(ProtocolError):
            validate_payload(InboundType.REGISTER, message)

    def test_request_mission_missing_coordinate(self):
        message = parse_inbound('{"type": "client:request_mission", "lat": 48.85}')
        with pytest.raises(ProtocolError) as exc_info:
            validate_payload(InboundType.REQUEST_MISSION, message)
        assert "lng" in exc_info.value.message

    def test_request_mission_out_of_range(self):
        message = parse_inbound('{"type": "client:request_mission", "lat": 91, "lng": 2.35}')
        with pytest.raises(ProtocolError):
            validate_payload(InboundType.REQUEST_MISSION, message)

    def test_assign_deduplicates_in_order(self):
        message = parse_inbound(json.dumps({
            "type": "operator:assign_agents",
            "missionId": "MISSION-001",
            "agentIds": ["AGENT-002", "AGENT-001", "AGENT-002"],
        }))
        payload = validate_payload(InboundType.ASSIGN_AGENTS, message)

        assert isinstance(payload, AssignAgentsPayload)
        assert payload.agent_ids == ["AGENT-002", "AGENT-001"]

    def test_assign_requires_agents(self):
        message = parse_inbound('{"type": "operator:assign_agents", "missionId": "MISSION-001", "agentIds": []}')
        with pytest.raises(ProtocolError):
            validate_payload(InboundType.ASSIGN_AGENTS, message)

    def test_accept_requires_both_ids(self):
        message = parse_inbound('{"type": "agent:accept_mission", "missionId": "MISSION-001"}')
        with pytest.raises(ProtocolError):
            validate_payload(InboundType.ACCEPT_MISSION, message)


class TestOutboundEvents:

    def test_flat_serialization(self):
        mission = _mission(status=MissionStatus.ASSIGNED, assigned_agents=["AGENT-001"])
        agents = [AgentRecord("AGENT-001", "Agent Smith", AgentStatus.ASSIGNED, 48.8566, 2.3522)]

        raw = create_mission_updated(mission, agents).to_json()
        data = json.loads(raw)

        assert raw.startswith('{"type":"server:mission_updated","mission":')

        assert data["type"] == "server:mission_updated"
        assert data["mission"]["assignedAgents"] == ["AGENT-001"]
        assert data["mission"]["timestamp"] == "2024-01-01T12:00:00+00:00"
        assert data["agents"][0]["status"] == "assigned"

    def test_status_update_carries_agent_and_status(self):
        mission = _mission(status=MissionStatus.ACCEPTED, accepted_by="AGENT-003")
        agent = AgentRecord("AGENT-003", "Agent Chen", AgentStatus.ACCEPTED, 48.8529, 2.3499)

        data = create_mission_status_update(mission, agent).to_dict()

        assert data["status"] == "accepted"
        assert data["agent"]["id"] == "AGENT-003"
        assert data["mission"]["acceptedBy"] == "AGENT-003"

    def test_error_event(self):
        data = create_error("Mission MISSION-404 not found", ErrorCode.MISSION_NOT_FOUND).to_dict()
        assert data == {
            "type": "error",
            "message": "Mission MISSION-404 not found",
            "code": "MISSION_NOT_FOUND",
        }
