"""
Application layer - Use cases and orchestration for the governance core.

This layer contains:
- Application services (phase state machine, voting engine, audit ledger)
- Port definitions (abstract interfaces for infrastructure)

IMPORT RULES:
- CAN import from: domain
- CANNOT import from: infrastructure
"""
