"""
Centralized configuration constants for CDM Util.

This module provides a single source of truth for configuration keys,
default values, file names and limits used throughout the application.
"""

from enum import IntEnum
from typing import Final

# ============================================================================
# Exit Codes
# ============================================================================

class ExitCode(IntEnum):
    """Standard exit codes for CLI commands.

    Following Unix conventions:
    - 0: Success
    - 1: General error
    - 2+: Specific error categories
    """
    SUCCESS = 0
    ERROR = 1
    CONFIG_ERROR = 2
    MANIFEST_ERROR = 3
    TYPE_ERROR = 4
    GENERATION_ERROR = 5
    EXECUTION_ERROR = 6
    STORAGE_ERROR = 7
    AUTH_ERROR = 8


# ============================================================================
# Configuration Keys
# ============================================================================

class ConfigKeys:
    """Header / environment variable names understood by the resolver."""

    TENANT_ID: Final[str] = "TenantId"
    STORAGE_ACCOUNT: Final[str] = "StorageAccount"
    ROOT_FOLDER: Final[str] = "RootFolder"
    MANIFEST_LOCATION: Final[str] = "ManifestLocation"
    LOCAL_FOLDER: Final[str] = "LocalFolder"
    MANIFEST_NAME: Final[str] = "ManifestName"
    MANIFEST_URL: Final[str] = "ManifestURL"
    SQL_ENDPOINT: Final[str] = "SQLEndpoint"
    DDL_TYPE: Final[str] = "DDLType"
    DATA_SOURCE_NAME: Final[str] = "DataSourceName"
    SCHEMA: Final[str] = "Schema"
    FILE_FORMAT: Final[str] = "FileFormat"
    DATE_TIME_AS_STRING: Final[str] = "DateTimeAsString"
    CONVERT_DATE_TIME: Final[str] = "ConvertDateTime"
    TRANSLATE_ENUM: Final[str] = "TranslateEnum"
    CREATE_MODEL_JSON: Final[str] = "CreateModelJson"
    TABLE_LIST: Final[str] = "TableList"


# ============================================================================
# DDL Types
# ============================================================================

class DDLType:
    """Supported target object kinds."""

    SYNAPSE_VIEW: Final[str] = "SynapseView"
    SYNAPSE_EXTERNAL_TABLE: Final[str] = "SynapseExternalTable"
    SQL_TABLE: Final[str] = "SQLTable"

    ALL: Final[tuple] = (SYNAPSE_VIEW, SYNAPSE_EXTERNAL_TABLE, SQL_TABLE)
    DEFAULT: Final[str] = SYNAPSE_VIEW


# ============================================================================
# File Names
# ============================================================================

class FileNames:
    """CDM document suffixes and auxiliary file names."""

    MANIFEST_URL_SUFFIX: Final[str] = "cdm.json"
    """Every manifest URL must end with this (case-insensitive)."""

    MANIFEST_SUFFIX: Final[str] = ".manifest.cdm.json"
    ENTITY_SUFFIX: Final[str] = ".cdm.json"
    MODEL_JSON: Final[str] = "model.json"

    SOURCE_COLUMN_PROPERTIES: Final[str] = "SourceColumnProperties.json"
    REPLACE_VIEW_SYNTAX: Final[str] = "ReplaceViewSyntax.json"
    ARTIFACTS: Final[str] = "Artifacts.json"

    DEFAULT_GLOB_PATTERN: Final[str] = "*.csv"


# ============================================================================
# Warehouse Defaults
# ============================================================================

class WarehouseDefaults:
    """Built-in defaults applied when neither override nor environment sets a value."""

    SCHEMA: Final[str] = "dbo"

    STRING_MAX_LENGTH: Final[int] = 4000
    """Largest explicit nvarchar length; longer columns use nvarchar(max)."""

    DECIMAL_PRECISION: Final[int] = 32
    DECIMAL_SCALE: Final[int] = 6

    DATE_TIME_STRING_TYPE: Final[str] = "nvarchar(30)"
    """Type used for date/time columns read or exposed as text."""

    DATE_TIME_STYLE: Final[int] = 126
    """ISO 8601 style code for CONVERT."""

    PARSER_VERSION: Final[str] = "2.0"

    SCOPED_CREDENTIAL: Final[str] = "SynapseIdentity"
    """Database scoped credential created by db_setup and used by data sources."""


# ============================================================================
# API Configuration
# ============================================================================

class APIConfig:
    """Storage / SQL endpoint configuration constants."""

    STORAGE_SCOPE: Final[str] = "https://storage.azure.com/.default"
    """OAuth scope for ADLS Gen2."""

    SQL_SCOPE: Final[str] = "https://database.windows.net/.default"
    """OAuth scope for Azure SQL / Synapse endpoints."""

    DFS_HOST_SUFFIX: Final[str] = ".dfs.core.windows.net"

    STORAGE_API_VERSION: Final[str] = "2021-08-06"

    DEFAULT_TIMEOUT_SECONDS: Final[int] = 30
    """Default HTTP request timeout."""

    MAX_RETRY_ATTEMPTS: Final[int] = 5
    RETRY_MIN_WAIT_SECONDS: Final[int] = 2
    RETRY_MAX_WAIT_SECONDS: Final[int] = 60

    TOKEN_BUFFER_SECONDS: Final[int] = 300
    """Refresh tokens this many seconds before expiry."""

    SQL_COPT_SS_ACCESS_TOKEN: Final[int] = 1256
    """pyodbc connection attribute for Azure AD access tokens."""


# ============================================================================
# Processing Limits
# ============================================================================

class ProcessingLimits:
    """Traversal limits."""

    DEFAULT_MAX_WORKERS: Final[int] = 4
    """Threads used to fetch sibling entity documents."""

    MAX_MANIFEST_DEPTH: Final[int] = 32
    """Maximum sub-manifest nesting depth."""
