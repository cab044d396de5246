"""
SQL side of the CDM Util pipeline.

Key Components:
- models: SQLColumn, SQLMetadata and statement types
- type_mapper: CDM to SQL column mapping, column overrides
- ddl_generator: ordered, idempotent DDL statements
- executor: sequential execution, database setup, pyodbc connections

Usage:
    from cdmutil.sql import DDLGenerator, execute

    statements = DDLGenerator().generate(metadata, options)
    execute(statements, connection)
"""

from .models import (
    SQLColumn,
    SQLMetadata,
    SQLStatement,
    SQLStatements,
    StatementIntent,
)

from .type_mapper import (
    SQLTypeMapper,
    ColumnPropertyOverrides,
    map_column,
)

from .ddl_generator import (
    DDLGenerator,
    ViewSyntaxRules,
    generate,
)

from .executor import (
    connect,
    db_setup,
    execute,
)

__all__ = [
    # Models
    "SQLColumn",
    "SQLMetadata",
    "SQLStatement",
    "SQLStatements",
    "StatementIntent",
    # Mapping
    "SQLTypeMapper",
    "ColumnPropertyOverrides",
    "map_column",
    # Generation
    "DDLGenerator",
    "ViewSyntaxRules",
    "generate",
    # Execution
    "connect",
    "db_setup",
    "execute",
]
