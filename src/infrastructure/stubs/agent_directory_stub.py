"""Agent directory stub implementation.

In-memory implementation of AgentDirectoryProtocol for development and
testing. Agents are registered with add_agent(); deactivate_agent()
simulates an agent leaving the directory.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace

from src.application.ports.agent_directory import AgentDirectoryProtocol
from src.domain.models.agent import AgentRecord, AgentRole, PerformanceMetrics


class AgentDirectoryStub(AgentDirectoryProtocol):
    """In-memory stub implementation of AgentDirectoryProtocol.

    Attributes:
        _agents: Dictionary mapping agent_id to AgentRecord.
    """

    def __init__(self, agents: Iterable[AgentRecord] = ()) -> None:
        """Initialize the stub, optionally pre-populated."""
        self._agents: dict[str, AgentRecord] = {a.agent_id: a for a in agents}

    async def list_active_agents(
        self,
        role_filter: Iterable[AgentRole] | None = None,
    ) -> list[AgentRecord]:
        """List active agents, optionally filtered by role, sorted by id."""
        roles = frozenset(role_filter) if role_filter is not None else None
        return sorted(
            (
                agent
                for agent in self._agents.values()
                if agent.active and (roles is None or agent.has_any_role(roles))
            ),
            key=lambda a: a.agent_id,
        )

    async def get_agent(self, agent_id: str) -> AgentRecord | None:
        """Look up an agent by id."""
        return self._agents.get(agent_id)

    # Test helpers

    def add_agent(
        self,
        agent_id: str,
        roles: Iterable[AgentRole] = (AgentRole.VOTER,),
        quality_score: float | None = None,
        consensus_score: float | None = None,
        active: bool = True,
    ) -> AgentRecord:
        """Register an agent and return its record."""
        record = AgentRecord(
            agent_id=agent_id,
            roles=frozenset(roles),
            active=active,
            metrics=PerformanceMetrics(
                quality_score=quality_score,
                consensus_score=consensus_score,
            ),
        )
        self._agents[agent_id] = record
        return record

    def deactivate_agent(self, agent_id: str) -> None:
        """Mark an agent inactive."""
        self._agents[agent_id] = replace(self._agents[agent_id], active=False)

    def remove_agent(self, agent_id: str) -> None:
        """Forget an agent entirely."""
        self._agents.pop(agent_id, None)

    def clear(self) -> None:
        """Clear all agents."""
        self._agents.clear()
