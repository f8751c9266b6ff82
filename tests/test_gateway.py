# tests/test_gateway.py
"""
End-to-end tests through the FastAPI app: WebSocket dispatch flow, frame
error handling, disconnect cleanup and the HTTP query surface.
"""
import time

import pytest
from fastapi.testclient import TestClient

from sentinel.transport import app as app_module


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setenv("SENTINEL_STORAGE_BACKEND", "memory")
    monkeypatch.delenv("SENTINEL_DATABASE_URL", raising=False)
    monkeypatch.delenv("SENTINEL_SEED_AGENTS", raising=False)

    with TestClient(app_module.app) as test_client:
        yield test_client


def _wait_for(predicate, timeout: float = 2.0) -> bool:
    """Poll until the server thread catches up."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


class TestHttpEndpoints:

    def test_list_agents(self, client):
        response = client.get("/api/agents")

        assert response.status_code == 200
        agents = response.json()
        assert [a["id"] for a in agents] == [f"AGENT-00{i}" for i in range(1, 7)]
        assert agents[0] == {
            "id": "AGENT-001",
            "name": "Agent Smith",
            "status": "available",
            "lat": 48.8566,
            "lng": 2.3522,
        }

    def test_list_missions_starts_empty(self, client):
        response = client.get("/api/missions")

        assert response.status_code == 200
        assert response.json() == []

    def test_storage_failure_returns_500(self, client, monkeypatch):
        async def broken():
            raise RuntimeError("database unavailable")

        monkeypatch.setattr(app_module.storage.missions, "list_all", broken)
        response = client.get("/api/missions")

        assert response.status_code == 500
        assert response.json() == {"message": "Failed to fetch missions"}

    def test_health(self, client):
        data = client.get("/health").json()

        assert data["status"] == "healthy"
        assert data["connections"] == 0
        assert data["missions"] == 0
        assert data["tags"] == []

    def test_health_lists_registered_tags(self, client):
        with client.websocket_connect("/ws") as guard:
            guard.send_json({"type": "register", "clientType": "guard", "agentId": "AGENT-004"})
            guard.send_json({"type": "agent:teleport"})
            assert guard.receive_json()["code"] == "UNSUPPORTED_EVENT"

            tags = client.get("/health").json()["tags"]

        assert len(tags) == 1
        assert tags[0]["role"] == "agent"
        assert tags[0]["agent_id"] == "AGENT-004"
        assert tags[0]["conn_id"].startswith("conn-")


class TestWebSocketFlow:

    def test_operator_receives_initial_data(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "register", "clientType": "operator"})
            data = ws.receive_json()

        assert data["type"] == "initial_data"
        assert len(data["agents"]) == 6
        assert data["missions"] == []

    def test_full_dispatch_scenario(self, client):
        with client.websocket_connect("/ws") as operator, \
                client.websocket_connect("/ws") as requester, \
                client.websocket_connect("/ws") as guard:
            operator.send_json({"type": "register", "clientType": "operator"})
            assert operator.receive_json()["type"] == "initial_data"
            requester.send_json({"type": "register", "clientType": "client"})
            guard.send_json({"type": "register", "clientType": "guard", "agentId": "AGENT-001"})

            requester.send_json({"type": "client:request_mission", "lat": 48.85, "lng": 2.35})

            created = requester.receive_json()
            assert created["type"] == "server:mission_created"
            assert created["mission"]["id"] == "MISSION-001"
            assert created["mission"]["status"] == "pending"

            new_mission = operator.receive_json()
            assert new_mission["type"] == "server:new_mission"
            assert new_mission["mission"]["id"] == "MISSION-001"

            operator.send_json({
                "type": "operator:assign_agents",
                "missionId": "MISSION-001",
                "agentIds": ["AGENT-001"],
            })

            updated = operator.receive_json()
            assert updated["type"] == "server:mission_updated"
            assert updated["mission"]["status"] == "assigned"

            offer = guard.receive_json()
            assert offer["type"] == "server:mission_offer"
            assert offer["mission"]["assignedAgents"] == ["AGENT-001"]

            guard.send_json({"type": "agent:accept_mission", "missionId": "MISSION-001", "agentId": "AGENT-001"})

            for ws in (operator, requester, guard):
                event = ws.receive_json()
                assert event["type"] == "server:mission_status_update"
                assert event["status"] == "accepted"
                assert event["mission"]["acceptedBy"] == "AGENT-001"
                assert event["agent"]["status"] == "accepted"

        missions = client.get("/api/missions").json()
        assert missions[0]["status"] == "accepted"

    def test_malformed_frame_keeps_connection_usable(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_text("this is not json")
            error = ws.receive_json()
            assert error["type"] == "error"
            assert error["code"] == "INVALID_MESSAGE"
            assert error["message"]

            ws.send_json({"type": "register", "clientType": "operator"})
            assert ws.receive_json()["type"] == "initial_data"

    def test_deeply_nested_frame_gets_one_error(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "register", "clientType": "client"})
            ws.send_text('{"type": "register", "x": ' + "[" * 100000 + "]" * 100000 + "}")
            error = ws.receive_json()
            assert error["type"] == "error"
            assert error["code"] == "INVALID_MESSAGE"

            ws.send_json({"type": "client:request_mission", "lat": 48.85, "lng": 2.35})
            created = ws.receive_json()
            assert created["type"] == "server:mission_created"
            assert created["mission"]["id"] == "MISSION-001"

    def test_binary_frame_is_parsed(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_bytes(b'{"type": "register", "clientType": "operator"}')
            assert ws.receive_json()["type"] == "initial_data"

    def test_error_goes_only_to_sender(self, client):
        with client.websocket_connect("/ws") as operator, \
                client.websocket_connect("/ws") as requester:
            operator.send_json({"type": "register", "clientType": "operator"})
            operator.receive_json()
            requester.send_json({"type": "register", "clientType": "client"})

            requester.send_text("{broken")
            assert requester.receive_json()["type"] == "error"

            # The next thing the operator sees is the mission, not the error
            requester.send_json({"type": "client:request_mission", "lat": 48.85, "lng": 2.35})
            assert operator.receive_json()["type"] == "server:new_mission"

    def test_disconnect_unregisters(self, client):
        with client.websocket_connect("/ws") as guard:
            guard.send_json({"type": "register", "clientType": "guard", "agentId": "AGENT-002"})
            # Round trip so the register has been handled
            guard.send_json({"type": "agent:teleport"})
            assert guard.receive_json()["code"] == "UNSUPPORTED_EVENT"
            assert client.get("/health").json()["registered"]["agent"] == 1

        assert _wait_for(lambda: client.get("/health").json()["connections"] == 0)
        assert client.get("/health").json()["registered"]["agent"] == 0
