"""
Dispatch Engine

The mission state machine. Consumes role-tagged inbound events, mutates the
repository and decides which connections receive which outbound events.

Mission lifecycle (forward only):
1. pending   - created by client:request_mission
2. assigned  - operator:assign_agents named one or more agents
3. accepted  - one agent sent agent:accept_mission
4. completed - terminal, not reachable through the current event set

Fan-out:
- request_mission -> server:new_mission to operators, server:mission_created to sender
- assign_agents   -> server:mission_updated to operators, server:mission_offer to
                     every connection registered as one of the named agents
- accept_mission  -> server:mission_status_update to every tagged connection
- decline_mission -> nothing
- register        -> initial_data to the registering connection if it is an operator

Every rejected event produces exactly one error event, to its sender only.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Iterable

from sentinel.dispatch.errors import (
    DispatchError,
    MissionNotFoundError,
    AgentNotFoundError,
    InvalidTransitionError,
)
from sentinel.protocol.events import (
    InboundMessage,
    InboundType,
    ErrorCode,
    OutboundEvent,
    ProtocolError,
    RegisterPayload,
    RequestMissionPayload,
    AssignAgentsPayload,
    AcceptMissionPayload,
    DeclineMissionPayload,
    validate_payload,
    create_initial_data,
    create_new_mission,
    create_mission_created,
    create_mission_updated,
    create_mission_offer,
    create_mission_status_update,
    create_error,
)
from sentinel.registry import (
    ClientRole,
    Connection,
    ConnectionRegistry,
    by_agent_ids,
    by_role,
    everyone,
)
from sentinel.storage import AgentStatus, MissionRecord, MissionStatus, StorageBundle

logger = logging.getLogger(__name__)


class DispatchEngine:
    """
    Applies inbound dispatch events.

    One global lock covers each event's repository reads/writes and the
    fan-out decision that depends on them, so a fan-out never observes a
    state older than the write that triggered it. Sends only enqueue on the
    connection, so holding the lock across them is cheap.
    """

    def __init__(
        self,
        storage: StorageBundle,
        registry: ConnectionRegistry,
    ):
        """
        Initialize the engine.

        Args:
            storage: Agent and mission stores
            registry: Connection registry used for every fan-out
        """
        self._storage = storage
        self._registry = registry
        self._lock = asyncio.Lock()

        self._handlers: dict[InboundType, Callable[[Connection, object], Awaitable[None]]] = {
            InboundType.REGISTER: self._handle_register,
            InboundType.REQUEST_MISSION: self._handle_request_mission,
            InboundType.ASSIGN_AGENTS: self._handle_assign_agents,
            InboundType.ACCEPT_MISSION: self._handle_accept_mission,
            InboundType.DECLINE_MISSION: self._handle_decline_mission,
        }

    @property
    def storage(self) -> StorageBundle:
        return self._storage

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    async def handle(self, connection: Connection, message: InboundMessage) -> None:
        """
        Route one inbound message to its handler.

        Never raises for bad input: every failure becomes an error event
        sent to ``connection``.
        """
        try:
            event_type = InboundType(message.type)
        except ValueError:
            logger.warning(f"Unsupported event type from {connection.conn_id}: {message.type!r}")
            await self.reply_error(
                connection,
                f"Unsupported event type: {message.type}",
                ErrorCode.UNSUPPORTED_EVENT,
            )
            return

        try:
            payload = validate_payload(event_type, message)
            async with self._lock:
                await self._handlers[event_type](connection, payload)

        except ProtocolError as e:
            logger.warning(f"Rejected {event_type.value} from {connection.conn_id}: {e.message}")
            await self.reply_error(connection, e.message, e.code)

        except DispatchError as e:
            logger.warning(f"Rejected {event_type.value} from {connection.conn_id}: {e.message}")
            await self.reply_error(connection, e.message, e.code)

        except Exception:
            logger.exception(f"Error handling {event_type.value} from {connection.conn_id}")
            await self.reply_error(
                connection,
                f"Internal error while handling {event_type.value}",
                ErrorCode.INTERNAL_ERROR,
            )

    async def reply_error(
        self,
        connection: Connection,
        message: str,
        code: ErrorCode = ErrorCode.INVALID_MESSAGE
    ) -> None:
        """Send an error event to one connection."""
        await connection.send(create_error(message, code))

    # =========================================================================
    # Handlers (called with the engine lock held)
    # =========================================================================

    async def _handle_register(self, connection: Connection, payload: RegisterPayload) -> None:
        """Tag the connection; operators get the full roster straight away."""
        tag = await self._registry.register(connection, payload.client_type, payload.agent_id)

        if tag.role == ClientRole.OPERATOR:
            agents = await self._storage.agents.list_all()
            missions = await self._storage.missions.list_all()
            await connection.send(create_initial_data(agents, missions))

    async def _handle_request_mission(
        self,
        connection: Connection,
        payload: RequestMissionPayload
    ) -> None:
        """Create a pending mission at the requested position."""
        mission = await self._storage.missions.create(lat=payload.lat, lng=payload.lng)
        logger.info(
            f"Mission {mission.id} requested at ({mission.lat}, {mission.lng}) "
            f"by {connection.conn_id}"
        )

        operators = await self._registry.matching(by_role(ClientRole.OPERATOR))
        await self._fan_out(operators, create_new_mission(mission))
        await connection.send(create_mission_created(mission))

    async def _handle_assign_agents(
        self,
        connection: Connection,
        payload: AssignAgentsPayload
    ) -> None:
        """
        Assign agents to a mission and offer it to them.

        Unknown agent ids are skipped without error; offers still go to any
        connection claiming those ids.
        """
        mission = await self._require_mission(payload.mission_id)
        self._require_transition(mission, MissionStatus.ASSIGNED)

        mission = await self._storage.missions.update(
            mission.id,
            status=MissionStatus.ASSIGNED,
            assigned_agents=payload.agent_ids,
        )

        for agent_id in payload.agent_ids:
            updated = await self._storage.agents.update(agent_id, status=AgentStatus.ASSIGNED)
            if updated is None:
                logger.warning(f"Assignment for {mission.id} names unknown agent {agent_id}")

        logger.info(f"Mission {mission.id} assigned to {', '.join(payload.agent_ids)}")

        agents = await self._storage.agents.list_all()
        operators = await self._registry.matching(by_role(ClientRole.OPERATOR))
        await self._fan_out(operators, create_mission_updated(mission, agents))

        targets = await self._registry.matching(by_agent_ids(payload.agent_ids))
        await self._fan_out(targets, create_mission_offer(mission))

    async def _handle_accept_mission(
        self,
        connection: Connection,
        payload: AcceptMissionPayload
    ) -> None:
        """
        Record an agent's acceptance and tell everyone.

        Only an assigned mission can be accepted, so acceptedBy is never
        overwritten once set. Any known agent may accept, including one
        outside assignedAgents.
        """
        mission = await self._require_mission(payload.mission_id)
        agent = await self._storage.agents.get(payload.agent_id)
        if agent is None:
            raise AgentNotFoundError(payload.agent_id)
        self._require_transition(mission, MissionStatus.ACCEPTED)

        mission = await self._storage.missions.update(
            mission.id,
            status=MissionStatus.ACCEPTED,
            accepted_by=agent.id,
        )
        agent = await self._storage.agents.update(agent.id, status=AgentStatus.ACCEPTED)

        logger.info(f"Mission {mission.id} accepted by {agent.id}")

        targets = await self._registry.matching(everyone)
        await self._fan_out(targets, create_mission_status_update(mission, agent, MissionStatus.ACCEPTED))

    async def _handle_decline_mission(
        self,
        connection: Connection,
        payload: DeclineMissionPayload
    ) -> None:
        """Acknowledge a decline. No state change, no reassignment, no fan-out."""
        logger.info(f"Agent {payload.agent_id} declined mission {payload.mission_id}")

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _require_mission(self, mission_id: str) -> MissionRecord:
        mission = await self._storage.missions.get(mission_id)
        if mission is None:
            raise MissionNotFoundError(mission_id)
        return mission

    @staticmethod
    def _require_transition(mission: MissionRecord, target: MissionStatus) -> None:
        if not mission.status.can_transition_to(target):
            raise InvalidTransitionError(mission.id, mission.status, target)

    async def _fan_out(self, targets: Iterable[Connection], event: OutboundEvent) -> int:
        """
        Send one event to each target.

        Returns:
            Number of connections the event was handed to
        """
        delivered = 0
        for connection in targets:
            if await connection.send(event):
                delivered += 1
        logger.debug(f"{event.type.value} delivered to {delivered} connection(s)")
        return delivered
