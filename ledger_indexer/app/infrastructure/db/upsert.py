from __future__ import annotations

from typing import Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import AsyncConnection


def dialect_insert(conn: AsyncConnection | Connection, table: Any) -> Any:
    """
    Dialect-specific INSERT supporting ON CONFLICT clauses.

    PostgreSQL in production, SQLite in tests; both expose
    on_conflict_do_update / on_conflict_do_nothing with the same signature.
    """
    name = conn.dialect.name
    if name == "postgresql":
        return postgresql.insert(table)
    if name == "sqlite":
        return sqlite.insert(table)
    raise ValueError(f"Unsupported dialect for upserts: {name!r}")
