"""Agent directory port.

The agent directory is an external collaborator that owns agent profiles.
The governance core reads from it twice: once when a voting session opens
(to snapshot the eligible agents) and once per vote (to weight it).
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from src.domain.models.agent import AgentRecord, AgentRole


class AgentDirectoryProtocol(Protocol):
    """Protocol for reading agent records.

    Methods:
        list_active_agents: List active agents holding any of the given roles
        get_agent: Look up a single agent
    """

    async def list_active_agents(
        self,
        role_filter: Iterable[AgentRole] | None = None,
    ) -> list[AgentRecord]:
        """List active agents.

        Args:
            role_filter: If given, only agents holding at least one of these
                roles are returned.

        Returns:
            Active agent records.
        """
        ...

    async def get_agent(self, agent_id: str) -> AgentRecord | None:
        """Look up an agent by id.

        Args:
            agent_id: Directory id.

        Returns:
            The agent record if known, None otherwise.
        """
        ...
