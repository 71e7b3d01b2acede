"""Service layer exports."""

from .database import Database, to_asyncpg_dsn

__all__ = [
    "Database",
    "to_asyncpg_dsn",
]
