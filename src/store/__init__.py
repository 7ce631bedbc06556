"""
Remote SQL store access.

- connector: SQLAlchemy Core tables and row-level reads/writes
- metadata: the store's root record (protection marker, schema version, cache flag)
- version: schema version gate
"""

from .connector import SqlStoreConnector
from .metadata import MetadataRetriever, StoreMetadata
from .version import CURRENT_SCHEMA_VERSION, SUPPORTED_SCHEMA_VERSIONS, VersionVerifier

__all__ = [
    "CURRENT_SCHEMA_VERSION",
    "MetadataRetriever",
    "SUPPORTED_SCHEMA_VERSIONS",
    "SqlStoreConnector",
    "StoreMetadata",
    "VersionVerifier",
]
