"""
Exception taxonomy for CDM Util.

Every failure surfaced by the pipeline derives from CDMUtilError so that
callers (handlers, CLI) can map categories to responses or exit codes.
"""

from typing import Optional


class CDMUtilError(Exception):
    """Base class for all CDM Util errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ConfigurationError(CDMUtilError):
    """Missing or invalid required setting. Raised before any I/O."""

    def __init__(self, message: str, key: Optional[str] = None):
        self.key = key
        super().__init__(message)


class ManifestNotFoundError(CDMUtilError):
    """A manifest, sub-manifest or entity document could not be reached."""

    def __init__(self, message: str, location: Optional[str] = None):
        self.location = location
        super().__init__(message)


class ManifestFormatError(CDMUtilError):
    """A manifest or entity document is malformed, or the tree contains a cycle."""

    def __init__(self, message: str, location: Optional[str] = None, details: Optional[str] = None):
        self.location = location
        self.details = details
        super().__init__(message)


class UnsupportedTypeError(CDMUtilError):
    """A CDM attribute type has no SQL mapping and no column override."""

    def __init__(self, cdm_type: str, column: str, table: Optional[str] = None):
        self.cdm_type = cdm_type
        self.column = column
        self.table = table
        where = f"{table}.{column}" if table else column
        super().__init__(f"Unsupported CDM type '{cdm_type}' for column '{where}'")


class DDLGenerationError(CDMUtilError):
    """A DDL template produced invalid output."""

    def __init__(self, message: str, entity_name: Optional[str] = None, field: Optional[str] = None):
        self.entity_name = entity_name
        self.field = field
        super().__init__(message)


class ExecutionError(CDMUtilError):
    """A DDL statement failed. Statements before statement_index remain applied."""

    def __init__(self, statement_index: int, cause: BaseException, statement: Optional[str] = None):
        self.statement_index = statement_index
        self.cause = cause
        self.statement = statement
        super().__init__(f"Statement {statement_index} failed: {cause}")


class StorageError(CDMUtilError):
    """Manifest store transport failure (other than not-found)."""

    def __init__(self, message: str, status_code: Optional[int] = None, location: Optional[str] = None):
        self.status_code = status_code
        self.location = location
        super().__init__(message)


class AuthenticationError(CDMUtilError):
    """Exception raised for authentication failures."""
