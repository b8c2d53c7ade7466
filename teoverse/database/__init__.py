"""
TeoVerse Database Layer

Neo4j async client and schema management.
"""

from teoverse.database.client import Neo4jClient
from teoverse.database.schema import SchemaManager

__all__ = [
    "Neo4jClient",
    "SchemaManager",
]
