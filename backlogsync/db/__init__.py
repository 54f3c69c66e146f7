"""
BacklogSync Database Package

Database layer with dual SQLite and PostgreSQL support.
"""

from backlogsync.db.database import (
    Database,
    DatabaseProtocol,
    SQLiteDatabase,
    PostgresDatabase,
    UnitOfWork,
    get_database,
    placeholders,
)
from backlogsync.db.schema import SCHEMA_SQLITE, SCHEMA_POSTGRES

__all__ = [
    "Database",
    "DatabaseProtocol",
    "SQLiteDatabase",
    "PostgresDatabase",
    "UnitOfWork",
    "get_database",
    "placeholders",
    "SCHEMA_SQLITE",
    "SCHEMA_POSTGRES",
]
