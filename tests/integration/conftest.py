"""
Integration test configuration with testcontainers.

PostgreSQL fixtures for the repository adapters:
- A PostgreSQL 16 container, started once per test session
- Set DATABASE_URL to run against an existing database instead
- Tests are skipped when neither Docker nor DATABASE_URL is available

Isolation:
- Every test gets a fresh engine with the governance tables dropped and
  recreated from migrations/, so rows never leak between tests.

Usage:
    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_example(session_factory: async_sessionmaker[AsyncSession]) -> None:
        repository = PostgresProposalRepository(session_factory)
        ...
"""

import os
from collections.abc import AsyncGenerator, Generator
from pathlib import Path

import pytest
from docker.errors import DockerException
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from testcontainers.postgres import PostgresContainer

from src.bootstrap.database import (
    DatabaseSettings,
    create_database_engine,
    create_session_factory,
    get_database_url,
    to_async_url,
)

MIGRATIONS_DIR = Path(__file__).resolve().parents[2] / "migrations"

GOVERNANCE_TABLES = (
    "audit_chain_entries",
    "governance_votes",
    "voting_sessions",
    "governance_proposals",
)


def _load_migration_statements() -> list[str]:
    statements: list[str] = []
    for path in sorted(MIGRATIONS_DIR.glob("*.sql")):
        sql = "\n".join(
            line
            for line in path.read_text().splitlines()
            if not line.lstrip().startswith("--")
        )
        statements.extend(s.strip() for s in sql.split(";") if s.strip())
    return statements


@pytest.fixture(scope="session")
def postgres_async_url() -> Generator[str, None, None]:
    """Session-scoped async PostgreSQL URL.

    Uses DATABASE_URL when set; otherwise starts a postgres:16-alpine
    container for the whole session.
    """
    if os.environ.get("DATABASE_URL"):
        yield get_database_url()
        return

    try:
        container = PostgresContainer("postgres:16-alpine")
        container.start()
    except DockerException as exc:
        pytest.skip(f"Docker unavailable and DATABASE_URL not set: {exc}")

    try:
        # testcontainers returns a psycopg2 URL
        yield to_async_url(container.get_connection_url())
    finally:
        container.stop()


@pytest.fixture
async def session_factory(
    postgres_async_url: str,
) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Per-test session factory over freshly migrated governance tables."""
    engine = create_database_engine(DatabaseSettings(url=postgres_async_url))

    async with engine.begin() as conn:
        for table in GOVERNANCE_TABLES:
            await conn.execute(text(f"DROP TABLE IF EXISTS {table} CASCADE"))
        for statement in _load_migration_statements():
            await conn.execute(text(statement))

    yield create_session_factory(engine)

    await engine.dispose()
