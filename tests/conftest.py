"""
Pytest configuration and shared fixtures for the governance core tests.

Testing Standards:
- All async tests use pytest.mark.asyncio (auto mode enabled in pyproject.toml)
- Use AsyncMock for async function mocking
- Unit tests go in tests/unit/
- Integration tests go in tests/integration/
"""

import pytest

from src.bootstrap.governance import GovernanceServices, build_in_memory_services
from src.config.voting_config import DEFAULT_VOTING_DEFAULTS
from src.domain.models.agent import AgentRole
from src.infrastructure.stubs import AgentDirectoryStub
from tests.helpers import FakeTimeAuthority


@pytest.fixture
def project_version() -> str:
    """Provide the current project version for tests."""
    from src import __version__

    return __version__


@pytest.fixture
def fake_time_authority() -> FakeTimeAuthority:
    """Clock frozen at 2026-01-01T00:00:00 UTC."""
    return FakeTimeAuthority()


@pytest.fixture
def agent_directory() -> AgentDirectoryStub:
    """Directory with five eligible voters and one observer."""
    directory = AgentDirectoryStub()
    for agent_id in ("agent-1", "agent-2", "agent-3", "agent-4", "agent-5"):
        directory.add_agent(agent_id, roles=(AgentRole.VOTER,))
    directory.add_agent("observer-1", roles=(AgentRole.OBSERVER,))
    return directory


@pytest.fixture
def governance(
    agent_directory: AgentDirectoryStub,
    fake_time_authority: FakeTimeAuthority,
) -> GovernanceServices:
    """Fully wired in-memory governance services on the fake clock."""
    return build_in_memory_services(
        agent_directory=agent_directory,
        time_authority=fake_time_authority,
        defaults=DEFAULT_VOTING_DEFAULTS,
    )
