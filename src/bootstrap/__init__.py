"""Composition root for wiring dependencies.

This package centralizes infrastructure-aware wiring so callers can depend
on the governance services without importing infrastructure directly.
"""
