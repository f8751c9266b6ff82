#!/usr/bin/env python3
"""
Dispatch Flow Demo

Walks one mission through its whole lifecycle against a running server:
1. An operator, a requester and agent AGENT-001 connect and register
2. The requester asks for help at a position in central Paris
3. The operator assigns AGENT-001 as soon as the mission shows up
4. AGENT-001 accepts the offer
5. Everyone sees the status update

Usage:
    python scripts/demo_dispatch_flow.py

Start the server first with:
    sentinel-server
"""

import asyncio
import sys

from sentinel.client import DispatchClient

SERVER_URL = "ws://localhost:8000/ws"
AGENT_ID = "AGENT-001"


async def main():
    operator = DispatchClient(SERVER_URL, "operator", max_reconnect_attempts=0)
    requester = DispatchClient(SERVER_URL, "client", max_reconnect_attempts=0)
    agent = DispatchClient(SERVER_URL, "guard", agent_id=AGENT_ID, max_reconnect_attempts=0)

    done = asyncio.Event()
    seen_by = set()

    def on_initial_data(event):
        print(f"📋 Operator sees {len(event['agents'])} agents, {len(event['missions'])} missions")

    def on_new_mission(event):
        mission = event["mission"]
        print(f"🚨 Operator: new mission {mission['id']} at ({mission['lat']}, {mission['lng']})")
        asyncio.get_running_loop().create_task(operator.assign_agents(mission["id"], [AGENT_ID]))

    def on_created(event):
        print(f"✅ Requester: mission {event['mission']['id']} created")

    def on_offer(event):
        mission = event["mission"]
        print(f"📨 {AGENT_ID}: offered {mission['id']}, accepting")
        asyncio.get_running_loop().create_task(agent.accept_mission(mission["id"]))

    def status_listener(name):
        def on_status(event):
            print(f"🔔 {name}: {event['mission']['id']} is {event['status']} by {event['agent']['name']}")
            seen_by.add(name)
            if len(seen_by) == 3:
                done.set()
        return on_status

    def on_error(event):
        print(f"❌ Server error [{event.get('code')}]: {event.get('message')}")

    operator.subscribe("initial_data", on_initial_data)
    operator.subscribe("server:new_mission", on_new_mission)
    requester.subscribe("server:mission_created", on_created)
    agent.subscribe("server:mission_offer", on_offer)
    for name, client in (("operator", operator), ("requester", requester), ("agent", agent)):
        client.subscribe("server:mission_status_update", status_listener(name))
        client.subscribe("error", on_error)

    try:
        for client in (operator, requester, agent):
            await client.connect()
    except OSError:
        print("=" * 70)
        print("❌ CONNECTION ERROR")
        print("=" * 70)
        print(f"Cannot connect to {SERVER_URL}")
        print("💡 Start the server with:")
        print("   sentinel-server")
        print("=" * 70)
        sys.exit(1)

    runners = [asyncio.create_task(c.run()) for c in (operator, requester, agent)]

    await requester.request_mission(48.8566, 2.3522)

    try:
        await asyncio.wait_for(done.wait(), timeout=10.0)
        print("\n🎉 Mission dispatched end to end")
    except asyncio.TimeoutError:
        print("\n⏱️  Timed out waiting for the status update")
    finally:
        for client in (operator, requester, agent):
            await client.close()
        await asyncio.gather(*runners, return_exceptions=True)


if __name__ == "__main__":
    asyncio.run(main())
