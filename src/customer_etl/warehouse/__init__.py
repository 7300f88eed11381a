"""
PostgreSQL warehouse access: connection pool, DDL and quarantine storage.
"""

from .connection import DatabaseConnectionPool
from .quarantine_writer import QuarantineWriter
from .schema_mgmt import SchemaManager

__all__ = [
    "DatabaseConnectionPool",
    "QuarantineWriter",
    "SchemaManager",
]
