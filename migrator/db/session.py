"""Database engine helpers."""

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine


def create_engine_from_url(url: str) -> Engine:
    """Create an engine for the Supabase Postgres connection string."""
    return create_engine(url, pool_pre_ping=True, future=True)
