"""
Infrastructure layer - External adapters for the governance core.

This layer contains:
- PostgreSQL repositories (SQLAlchemy async + asyncpg)
- In-memory stubs for development and testing
- Observability (structlog configuration, correlation ids)

IMPORT RULES:
- CAN import from: domain, application
- Implements ports defined in application layer
"""
