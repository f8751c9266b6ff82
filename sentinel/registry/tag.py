"""
Connection Tag Model

The role/identity metadata attached to a live connection once it registers.
Tags are ephemeral: never persisted, gone when the connection closes.
"""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, model_validator


class ClientRole(str, Enum):
    """Roles a connection can register as."""
    OPERATOR = "operator"
    REQUESTER = "requester"
    AGENT = "agent"

    @classmethod
    def parse(cls, value: "str | ClientRole") -> "ClientRole":
        """
        Resolve a wire role name.

        Accepts the canonical names plus the names the browser clients
        send ("client" for requester, "guard" for agent).

        Raises:
            ValueError: If the name is not a known role
        """
        if isinstance(value, ClientRole):
            return value
        normalized = str(value).strip().lower()
        return cls(_ROLE_ALIASES.get(normalized, normalized))


_ROLE_ALIASES = {
    "client": ClientRole.REQUESTER.value,
    "guard": ClientRole.AGENT.value,
}


class ConnectionTag(BaseModel):
    """
    Registry entry for one live connection.

    Several connections may carry equal tags (e.g. two operator tabs), and
    several agent connections may claim the same agent_id.
    """

    conn_id: str = Field(
        ...,
        description="Connection identifier"
    )
    role: ClientRole = Field(
        ...,
        description="Role the connection registered as"
    )
    agent_id: str | None = Field(
        default=None,
        description="Agent identity, only for the agent role"
    )
    registered_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the tag was (re)placed"
    )

    @model_validator(mode="after")
    def _agent_identity_only_for_agents(self) -> "ConnectionTag":
        if self.role == ClientRole.AGENT and not self.agent_id:
            raise ValueError("agent connections must carry an agent_id")
        if self.role != ClientRole.AGENT:
            self.agent_id = None
        return self

    def to_public_dict(self) -> dict:
        """Return a public view of the tag (for health/debug output)."""
        return {
            "conn_id": self.conn_id,
            "role": self.role.value,
            "agent_id": self.agent_id,
            "registered_at": self.registered_at.isoformat(),
        }
