"""
CDM Util: Common Data Model manifests to Synapse / SQL DDL.

Reads CDM manifest trees from ADLS Gen2 (or a local folder), maps entity
attributes to SQL columns, generates idempotent DDL for serverless views,
external tables or plain tables, and applies it to the target database. The
inverse direction builds manifests and sub-manifest links from an entity
list.

Usage:
    from cdmutil.handlers import manifest_to_sql_ddl

    statements = manifest_to_sql_ddl({"ManifestURL": url})
"""

from .errors import (
    CDMUtilError,
    ConfigurationError,
    ManifestNotFoundError,
    ManifestFormatError,
    UnsupportedTypeError,
    DDLGenerationError,
    ExecutionError,
    StorageError,
    AuthenticationError,
)

__version__ = "1.0.0"

__all__ = [
    "__version__",
    "CDMUtilError",
    "ConfigurationError",
    "ManifestNotFoundError",
    "ManifestFormatError",
    "UnsupportedTypeError",
    "DDLGenerationError",
    "ExecutionError",
    "StorageError",
    "AuthenticationError",
]
