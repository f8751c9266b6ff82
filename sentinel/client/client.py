"""
Dispatch Client

Async client for the dispatch WebSocket, built on the `websockets` library.

Usage:
    client = DispatchClient("ws://localhost:8000/ws", "operator")
    client.subscribe("server:new_mission", lambda event: print(event["mission"]))
    await client.connect()
    await client.run()

Listeners are independent: each `subscribe` call returns its own
Subscription, and cancelling it leaves every other listener in place.
Callbacks are plain functions run on the receive loop, so they should not
block.
"""

import asyncio
import json
import logging
from typing import Any, Callable

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from sentinel.protocol.events import InboundType, OutboundType
from sentinel.registry.tag import ClientRole

logger = logging.getLogger(__name__)

EventCallback = Callable[[dict[str, Any]], None]


class Subscription:
    """Handle for one listener; `cancel()` removes only that listener."""

    def __init__(self, client: "DispatchClient", event_type: str, callback: EventCallback):
        self.event_type = event_type
        self.callback = callback
        self._client = client
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if self._active:
            self._active = False
            self._client._remove(self)


class DispatchClient:
    """
    Connects as one role, keeps a cache of the last known roster and
    missions, and fans received events out to subscribers.

    Reconnects after a dropped connection with linear backoff
    (``reconnect_backoff_seconds * attempt``) up to
    ``max_reconnect_attempts`` consecutive failures.
    """

    def __init__(
        self,
        url: str,
        role: str | ClientRole,
        agent_id: str | None = None,
        max_reconnect_attempts: int = 5,
        reconnect_backoff_seconds: float = 2.0,
        connector: Callable[..., Any] = websockets.connect,
    ):
        """
        Initialize the client.

        Args:
            url: WebSocket URL of the dispatch server, e.g. ws://host:8000/ws
            role: operator, requester or agent (client/guard aliases accepted)
            agent_id: Agent identity, required for the agent role
            max_reconnect_attempts: Consecutive reconnect attempts before giving up
            reconnect_backoff_seconds: Base delay, multiplied by the attempt number
            connector: Coroutine function opening the socket
        """
        self.url = url
        self.role = ClientRole.parse(role)
        if self.role == ClientRole.AGENT and not agent_id:
            raise ValueError("agent_id is required for the agent role")
        self.agent_id = agent_id if self.role == ClientRole.AGENT else None

        self.max_reconnect_attempts = max_reconnect_attempts
        self.reconnect_backoff_seconds = reconnect_backoff_seconds
        self._connector = connector

        self._ws: Any = None
        self._closing = False
        self._reconnect_attempts = 0

        # event type -> listeners in registration order
        self._subscriptions: dict[str, list[Subscription]] = {}

        # Last known data, replayed to late initial_data subscribers
        self._agents: list[dict[str, Any]] | None = None
        self._missions: list[dict[str, Any]] | None = None

    # =========================================================================
    # Connection
    # =========================================================================

    @property
    def connected(self) -> bool:
        return self._ws is not None

    @property
    def agents(self) -> list[dict[str, Any]] | None:
        return list(self._agents) if self._agents is not None else None

    @property
    def missions(self) -> list[dict[str, Any]] | None:
        return list(self._missions) if self._missions is not None else None

    async def connect(self) -> None:
        """Open the socket and register this client's role."""
        self._closing = False
        self._ws = await self._connector(self.url)
        self._reconnect_attempts = 0
        logger.info(f"Connected to {self.url} as {self.role.value}")

        register: dict[str, Any] = {
            "type": InboundType.REGISTER.value,
            "clientType": self.role.value,
        }
        if self.agent_id:
            register["agentId"] = self.agent_id
        await self.send(register)

    async def run(self) -> None:
        """
        Receive events until `close()` is called or reconnects run out.
        """
        while not self._closing:
            try:
                if self._ws is None:
                    await self.connect()

                async for raw in self._ws:
                    self._handle_raw(raw)

            except (OSError, asyncio.TimeoutError, WebSocketException) as e:
                logger.warning(f"Connection to {self.url} lost: {e}")

            self._ws = None
            if self._closing:
                break

            if self._reconnect_attempts >= self.max_reconnect_attempts:
                logger.error(
                    f"Giving up on {self.url} after {self._reconnect_attempts} reconnect attempts"
                )
                break

            self._reconnect_attempts += 1
            delay = self.reconnect_backoff_seconds * self._reconnect_attempts
            logger.info(
                f"Reconnecting in {delay:.1f}s "
                f"({self._reconnect_attempts}/{self.max_reconnect_attempts})"
            )
            await asyncio.sleep(delay)

    async def close(self) -> None:
        """Stop `run()` and close the socket."""
        self._closing = True
        ws, self._ws = self._ws, None
        if ws is not None:
            await ws.close()
            logger.info(f"Disconnected from {self.url}")

    async def send(self, message: dict[str, Any]) -> bool:
        """
        Send one event. Dropped with a warning when not connected.

        Returns:
            True if the frame was written to the socket
        """
        if self._ws is None:
            logger.warning(f"Not connected, dropping {message.get('type')}")
            return False
        try:
            await self._ws.send(json.dumps(message))
            return True
        except ConnectionClosed as e:
            logger.warning(f"Send of {message.get('type')} failed: {e}")
            return False

    # =========================================================================
    # Senders
    # =========================================================================

    async def request_mission(self, lat: float, lng: float) -> bool:
        return await self.send({
            "type": InboundType.REQUEST_MISSION.value,
            "lat": lat,
            "lng": lng,
        })

    async def assign_agents(self, mission_id: str, agent_ids: list[str]) -> bool:
        return await self.send({
            "type": InboundType.ASSIGN_AGENTS.value,
            "missionId": mission_id,
            "agentIds": list(agent_ids),
        })

    async def accept_mission(self, mission_id: str, agent_id: str | None = None) -> bool:
        """Accept an offered mission, as this client's agent unless another is named."""
        return await self.send({
            "type": InboundType.ACCEPT_MISSION.value,
            "missionId": mission_id,
            "agentId": agent_id or self.agent_id,
        })

    async def decline_mission(self, mission_id: str, agent_id: str | None = None) -> bool:
        return await self.send({
            "type": InboundType.DECLINE_MISSION.value,
            "missionId": mission_id,
            "agentId": agent_id or self.agent_id,
        })

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def subscribe(self, event_type: str | OutboundType, callback: EventCallback) -> Subscription:
        """
        Add a listener for one outbound event type.

        An initial_data listener added after the cache is populated is
        called straight away with the cached agents and missions.
        """
        key = event_type.value if isinstance(event_type, OutboundType) else event_type
        subscription = Subscription(self, key, callback)
        self._subscriptions.setdefault(key, []).append(subscription)

        if key == OutboundType.INITIAL_DATA.value and self._agents is not None and self._missions is not None:
            self._invoke(subscription, {
                "type": key,
                "agents": list(self._agents),
                "missions": list(self._missions),
            })

        return subscription

    def _remove(self, subscription: Subscription) -> None:
        listeners = self._subscriptions.get(subscription.event_type, [])
        if subscription in listeners:
            listeners.remove(subscription)

    def listener_count(self, event_type: str | OutboundType) -> int:
        key = event_type.value if isinstance(event_type, OutboundType) else event_type
        return len(self._subscriptions.get(key, []))

    # =========================================================================
    # Inbound
    # =========================================================================

    def _handle_raw(self, raw: str | bytes) -> None:
        try:
            event = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning(f"Ignoring unparseable frame: {e}")
            return
        if not isinstance(event, dict) or not isinstance(event.get("type"), str):
            logger.warning("Ignoring frame without a type")
            return
        self.handle_event(event)

    def handle_event(self, event: dict[str, Any]) -> None:
        """Update the cache from one server event, then notify its listeners."""
        event_type = event["type"]

        if event_type == OutboundType.INITIAL_DATA.value:
            self._agents = list(event.get("agents", []))
            self._missions = list(event.get("missions", []))

        elif event_type in (OutboundType.NEW_MISSION.value, OutboundType.MISSION_CREATED.value):
            mission = event["mission"]
            others = [m for m in (self._missions or []) if m["id"] != mission["id"]]
            self._missions = others + [mission]

        elif event_type == OutboundType.MISSION_UPDATED.value:
            mission = event["mission"]
            missions = self._missions or []
            if any(m["id"] == mission["id"] for m in missions):
                self._missions = [mission if m["id"] == mission["id"] else m for m in missions]
            else:
                self._missions = missions + [mission]
            self._agents = list(event.get("agents", []))

        elif event_type == OutboundType.ERROR.value:
            logger.warning(f"Server error [{event.get('code')}]: {event.get('message')}")

        # Snapshot so a listener cancelling itself does not skip the next one
        for subscription in list(self._subscriptions.get(event_type, [])):
            if subscription.active:
                self._invoke(subscription, event)

    @staticmethod
    def _invoke(subscription: Subscription, event: dict[str, Any]) -> None:
        try:
            subscription.callback(event)
        except Exception:
            logger.exception(f"Listener for {subscription.event_type} failed")
