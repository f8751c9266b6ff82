"""
Seed Roster

The fixed set of field agents loaded at process start.
"""

import logging

from sentinel.storage.ports import AgentRecord, AgentStatus, AgentStore

logger = logging.getLogger(__name__)


# Six agents around central Paris
DEFAULT_ROSTER: tuple[tuple[str, str, float, float], ...] = (
    ("AGENT-001", "Agent Smith", 48.8566, 2.3522),
    ("AGENT-002", "Agent Johnson", 48.8606, 2.3376),
    ("AGENT-003", "Agent Chen", 48.8529, 2.3499),
    ("AGENT-004", "Agent Williams", 48.8584, 2.2945),
    ("AGENT-005", "Agent Brown", 48.8738, 2.2950),
    ("AGENT-006", "Agent Davis", 48.8648, 2.3489),
)


def default_roster() -> list[AgentRecord]:
    """Fresh AgentRecords for the default roster, all available."""
    return [
        AgentRecord(id=agent_id, name=name, status=AgentStatus.AVAILABLE, lat=lat, lng=lng)
        for agent_id, name, lat, lng in DEFAULT_ROSTER
    ]


async def seed_agents(store: AgentStore, roster: list[AgentRecord] | None = None) -> int:
    """
    Load the roster into an empty agent store.

    Does nothing if the store already holds agents (e.g. a reused SQL database).

    Returns:
        Number of agents created
    """
    if await store.list_all():
        logger.info("Agent store already populated, skipping seed")
        return 0

    roster = roster if roster is not None else default_roster()
    for agent in roster:
        await store.create(agent)

    logger.info(f"Seeded {len(roster)} agents")
    return len(roster)
