"""Database layer: engine, declarative base, immutability listeners."""

from inventory_kernel.db.base import Base
from inventory_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    session_scope,
    unit_of_work,
)

__all__ = [
    "Base",
    "create_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "session_scope",
    "unit_of_work",
]
