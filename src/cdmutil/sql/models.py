"""
SQL metadata and statement models.

Models:
- SQLColumn: one mapped column
- SQLMetadata: one table/view to create, produced by the metadata extractor
- StatementIntent: what a DDL statement does
- SQLStatement / SQLStatements: ordered DDL output
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


@dataclass
class SQLColumn:
    """
    A CDM attribute mapped onto a SQL column.

    Attributes:
        name: Column name.
        cdm_type: Original CDM data type.
        sql_type: Type exposed to consumers of the created object.
        source_type: Type used when reading the underlying files.
        expression: Select expression replacing the bare column reference.
        is_nullable: Whether the column accepts NULL.
        is_override: Whether a column override entry decided the mapping.
        is_enum: Whether the CDM attribute is an enumeration.
        is_date_time: Whether the CDM type is a date/time type.
    """
    name: str
    cdm_type: str
    sql_type: str
    source_type: Optional[str] = None
    expression: Optional[str] = None
    is_nullable: bool = True
    is_override: bool = False
    is_enum: bool = False
    is_date_time: bool = False

    def __post_init__(self):
        if self.source_type is None:
            self.source_type = self.sql_type

    @property
    def quoted_name(self) -> str:
        return quote_identifier(self.name)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "name": self.name,
            "cdmType": self.cdm_type,
            "sqlType": self.sql_type,
            "isNullable": self.is_nullable,
        }
        if self.source_type != self.sql_type:
            result["sourceType"] = self.source_type
        if self.expression:
            result["expression"] = self.expression
        return result


@dataclass
class SQLMetadata:
    """
    Normalized metadata for one entity.

    Attributes:
        entity_name: Table / view name.
        tenant_id: Tenant qualifier.
        schema: Target schema.
        columns: Ordered mapped columns.
        data_location: Data files path relative to the storage root.
        storage_root: Storage root location (external data source location).
        manifest_path: Location of the manifest declaring the entity.
    """
    entity_name: str
    tenant_id: Optional[str] = None
    schema: str = "dbo"
    columns: List[SQLColumn] = field(default_factory=list)
    data_location: str = ""
    storage_root: str = ""
    manifest_path: Optional[str] = None

    @property
    def qualified_name(self) -> str:
        return f"{quote_identifier(self.schema)}.{quote_identifier(self.entity_name)}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entityName": self.entity_name,
            "tenantId": self.tenant_id,
            "schema": self.schema,
            "dataLocation": self.data_location,
            "columns": [c.to_dict() for c in self.columns],
        }


class StatementIntent(Enum):
    """What a generated statement does."""
    SETUP = "setup"
    CREATE_DATA_SOURCE = "create-data-source"
    CREATE_FILE_FORMAT = "create-file-format"
    DROP_IF_EXISTS = "drop-if-exists"
    CREATE_TABLE = "create-table"
    CREATE_VIEW = "create-view"


@dataclass
class SQLStatement:
    """One DDL statement tagged with its intent."""
    intent: StatementIntent
    text: str
    entity_name: Optional[str] = None

    def __str__(self) -> str:
        return self.text


@dataclass
class SQLStatements:
    """Ordered statement batch."""
    statements: List[SQLStatement] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.statements)

    def __iter__(self):
        return iter(self.statements)

    @property
    def texts(self) -> List[str]:
        return [s.text for s in self.statements]

    def to_dict(self) -> Dict[str, Any]:
        return {"statements": self.texts}


def quote_identifier(name: str) -> str:
    """Bracket-quote a SQL Server identifier."""
    return "[" + name.replace("]", "]]") + "]"


def quote_literal(value: str) -> str:
    """Single-quote a SQL string literal."""
    return "'" + value.replace("'", "''") + "'"
