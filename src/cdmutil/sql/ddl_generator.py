"""
DDL generation.

Turns ordered ``SQLMetadata`` records into ordered SQL statements:

1. External data source (once, if configured)
2. External file format (once, if configured)
3. For every record: drop-if-exists, then create

Every create is preceded by its guarded drop and every shared object is
guarded by ``IF NOT EXISTS``, so the same batch can be applied any number of
times.

Supported target kinds:
- SynapseView: serverless ``OPENROWSET`` view over the CSV partitions
- SynapseExternalTable: external table over the CSV partitions
- SQLTable: plain table

Usage:
    from cdmutil.sql.ddl_generator import DDLGenerator

    statements = DDLGenerator().generate(metadata, options, ddl_type="SynapseView")
"""

import json
import logging
import os
from dataclasses import dataclass
from string import Template
from typing import Dict, List, Optional

from ..config import WarehouseOptions
from ..constants import DDLType, WarehouseDefaults
from ..errors import ConfigurationError, DDLGenerationError
from .models import (
    SQLColumn,
    SQLMetadata,
    SQLStatement,
    StatementIntent,
    quote_identifier,
    quote_literal,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Templates
# =============================================================================

DATA_SOURCE_TEMPLATE = Template(
    "IF NOT EXISTS (SELECT * FROM sys.external_data_sources WHERE name = ${name_literal})\n"
    "CREATE EXTERNAL DATA SOURCE ${name} WITH (\n"
    "    LOCATION = ${location},\n"
    "    CREDENTIAL = ${credential}\n"
    ")"
)

FILE_FORMAT_TEMPLATE = Template(
    "IF NOT EXISTS (SELECT * FROM sys.external_file_formats WHERE name = ${name_literal})\n"
    "CREATE EXTERNAL FILE FORMAT ${name} WITH (\n"
    "    FORMAT_TYPE = DELIMITEDTEXT,\n"
    "    FORMAT_OPTIONS (\n"
    "        FIELD_TERMINATOR = ',',\n"
    "        STRING_DELIMITER = '\"',\n"
    "        FIRST_ROW = 1,\n"
    "        USE_TYPE_DEFAULT = FALSE\n"
    "    )\n"
    ")"
)

DROP_TEMPLATE = Template(
    "IF OBJECT_ID(${object_literal}, ${object_type}) IS NOT NULL\n"
    "DROP ${kind} ${qualified_name}"
)

VIEW_TEMPLATE = Template(
    "CREATE VIEW ${qualified_name} AS\n"
    "SELECT\n"
    "${select_list}\n"
    "FROM OPENROWSET(\n"
    "    BULK ${location},\n"
    "${data_source_clause}"
    "    FORMAT = 'CSV',\n"
    "    PARSER_VERSION = ${parser_version}\n"
    ") WITH (\n"
    "${with_list}\n"
    ") AS [r]"
)

EXTERNAL_TABLE_TEMPLATE = Template(
    "CREATE EXTERNAL TABLE ${qualified_name} (\n"
    "${column_list}\n"
    ") WITH (\n"
    "    LOCATION = ${location},\n"
    "    DATA_SOURCE = ${data_source},\n"
    "    FILE_FORMAT = ${file_format}\n"
    ")"
)

TABLE_TEMPLATE = Template(
    "CREATE TABLE ${qualified_name} (\n"
    "${column_list}\n"
    ")"
)

INDENT = "    "

# (drop kind, OBJECT_ID type, create intent)
_OBJECT_KINDS: Dict[str, tuple] = {
    DDLType.SYNAPSE_VIEW: ("VIEW", "V", StatementIntent.CREATE_VIEW),
    DDLType.SYNAPSE_EXTERNAL_TABLE: ("EXTERNAL TABLE", "U", StatementIntent.CREATE_TABLE),
    DDLType.SQL_TABLE: ("TABLE", "U", StatementIntent.CREATE_TABLE),
}


# =============================================================================
# View rewrite rules
# =============================================================================

@dataclass(frozen=True)
class ViewSyntaxRule:
    """Verbatim find/replace applied to generated view text."""
    find: str
    replace: str
    view_name: Optional[str] = None

    def applies_to(self, view_name: str) -> bool:
        return self.view_name in (None, "", "*") or self.view_name == view_name


class ViewSyntaxRules:
    """
    Ordered view rewrite rules.

    File format (``ReplaceViewSyntax.json``)::

        [
            {"viewName": "CustTable", "find": "FORMAT = 'CSV'", "replace": "FORMAT = 'CSV', HEADER_ROW = TRUE"},
            {"find": "PARSER_VERSION = '2.0'", "replace": "PARSER_VERSION = '1.0'"}
        ]
    """

    def __init__(self, rules: Optional[List[ViewSyntaxRule]] = None):
        self.rules: List[ViewSyntaxRule] = list(rules or [])

    def __len__(self) -> int:
        return len(self.rules)

    def apply(self, view_name: str, text: str) -> str:
        for rule in self.rules:
            if rule.applies_to(view_name) and rule.find in text:
                logger.debug(f"Rewriting view {view_name}: '{rule.find}'")
                text = text.replace(rule.find, rule.replace)
        return text

    @classmethod
    def load(cls, path: Optional[str]) -> 'ViewSyntaxRules':
        """
        Load rules from a JSON file. A missing file yields no rules.

        Raises:
            ConfigurationError: If the file is malformed.
        """
        if not path or not os.path.exists(path):
            return cls()

        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in view syntax file {path}: {e}") from e

        if not isinstance(data, list):
            raise ConfigurationError(f"View syntax file must contain a JSON list: {path}")

        rules: List[ViewSyntaxRule] = []
        for i, item in enumerate(data):
            if not isinstance(item, dict) or not item.get("find") or "replace" not in item:
                raise ConfigurationError(f"View syntax rule {i} needs 'find' and 'replace': {path}")
            rules.append(ViewSyntaxRule(
                find=item["find"],
                replace=item["replace"],
                view_name=item.get("viewName"),
            ))

        logger.info(f"Loaded {len(rules)} view syntax rules from {path}")
        return cls(rules)


# =============================================================================
# Generator
# =============================================================================

class DDLGenerator:
    """
    Generate ordered DDL statements from metadata records.

    Example:
        >>> generator = DDLGenerator()
        >>> for statement in generator.generate(records, options):
        ...     print(statement.intent.value, statement.text)
    """

    def generate(
        self,
        metadata: List[SQLMetadata],
        options: WarehouseOptions,
        ddl_type: str = DDLType.DEFAULT,
        replace_rules: Optional[ViewSyntaxRules] = None,
    ) -> List[SQLStatement]:
        """
        Generate statements for all records.

        Args:
            metadata: Records in the order their objects should be created.
            options: Warehouse options.
            ddl_type: One of ``DDLType.ALL``.
            replace_rules: View rewrite rules (views only).

        Returns:
            Ordered statements.

        Raises:
            DDLGenerationError: If a required value is empty, a record has
                no columns, or the DDL type is unknown.
        """
        if ddl_type not in _OBJECT_KINDS:
            raise DDLGenerationError(f"Unknown DDL type: {ddl_type}", field="ddl_type")

        statements: List[SQLStatement] = []

        if ddl_type != DDLType.SQL_TABLE and metadata:
            if options.external_data_source:
                statements.append(self._data_source(options.external_data_source, metadata[0].storage_root))
            if options.file_format_name:
                statements.append(self._file_format(options.file_format_name))

        for record in metadata:
            self._check_record(record)
            statements.append(self._drop(record, ddl_type))
            if ddl_type == DDLType.SYNAPSE_VIEW:
                statements.append(self._view(record, options, replace_rules))
            elif ddl_type == DDLType.SYNAPSE_EXTERNAL_TABLE:
                statements.append(self._external_table(record, options))
            else:
                statements.append(self._table(record))

        logger.info(f"Generated {len(statements)} statements for {len(metadata)} entities ({ddl_type})")
        return statements

    @staticmethod
    def _required(value: Optional[str], field: str, entity_name: Optional[str] = None) -> str:
        if value is None or not str(value).strip():
            where = f" for {entity_name}" if entity_name else ""
            raise DDLGenerationError(f"Empty value for required field '{field}'{where}", entity_name, field)
        return value

    def _check_record(self, record: SQLMetadata) -> None:
        self._required(record.entity_name, "entity_name")
        self._required(record.schema, "schema", record.entity_name)
        if not record.columns:
            raise DDLGenerationError(
                f"Entity {record.entity_name} has no columns",
                entity_name=record.entity_name,
                field="columns",
            )
        for column in record.columns:
            self._required(column.name, "column name", record.entity_name)
            self._required(column.sql_type, f"sql type of {column.name}", record.entity_name)

    def _data_source(self, name: str, storage_root: str) -> SQLStatement:
        text = DATA_SOURCE_TEMPLATE.substitute(
            name=quote_identifier(name),
            name_literal=quote_literal(name),
            location=quote_literal(self._required(storage_root, "storage_root")),
            credential=quote_identifier(WarehouseDefaults.SCOPED_CREDENTIAL),
        )
        return SQLStatement(StatementIntent.CREATE_DATA_SOURCE, text)

    def _file_format(self, name: str) -> SQLStatement:
        text = FILE_FORMAT_TEMPLATE.substitute(
            name=quote_identifier(name),
            name_literal=quote_literal(name),
        )
        return SQLStatement(StatementIntent.CREATE_FILE_FORMAT, text)

    def _drop(self, record: SQLMetadata, ddl_type: str) -> SQLStatement:
        kind, object_type, _ = _OBJECT_KINDS[ddl_type]
        text = DROP_TEMPLATE.substitute(
            object_literal=quote_literal(record.qualified_name),
            object_type=quote_literal(object_type),
            kind=kind,
            qualified_name=record.qualified_name,
        )
        return SQLStatement(StatementIntent.DROP_IF_EXISTS, text, record.entity_name)

    def _view(
        self,
        record: SQLMetadata,
        options: WarehouseOptions,
        replace_rules: Optional[ViewSyntaxRules],
    ) -> SQLStatement:
        location = self._required(record.data_location, "data_location", record.entity_name)
        if options.external_data_source:
            data_source_clause = f"{INDENT}DATA_SOURCE = {quote_literal(options.external_data_source)},\n"
        else:
            root = self._required(record.storage_root, "storage_root", record.entity_name)
            location = f"{root.rstrip('/')}/{location.lstrip('/')}"
            data_source_clause = ""

        text = VIEW_TEMPLATE.substitute(
            qualified_name=record.qualified_name,
            select_list=",\n".join(INDENT + self._select_item(c) for c in record.columns),
            location=quote_literal(location),
            data_source_clause=data_source_clause,
            parser_version=quote_literal(WarehouseDefaults.PARSER_VERSION),
            with_list=",\n".join(f"{INDENT}{c.quoted_name} {c.source_type}" for c in record.columns),
        )
        if replace_rules:
            text = replace_rules.apply(record.entity_name, text)
        return SQLStatement(StatementIntent.CREATE_VIEW, text, record.entity_name)

    @staticmethod
    def _select_item(column: SQLColumn) -> str:
        if column.expression:
            return f"{column.expression} AS {column.quoted_name}"
        return column.quoted_name

    def _external_table(self, record: SQLMetadata, options: WarehouseOptions) -> SQLStatement:
        data_source = self._required(options.external_data_source, "external_data_source", record.entity_name)
        file_format = self._required(options.file_format_name, "file_format_name", record.entity_name)
        location = self._required(record.data_location, "data_location", record.entity_name)

        for column in record.columns:
            if column.expression:
                logger.debug(
                    f"External table {record.entity_name}: expression for {column.name} "
                    f"not applied, column read as {column.source_type}"
                )

        text = EXTERNAL_TABLE_TEMPLATE.substitute(
            qualified_name=record.qualified_name,
            column_list=",\n".join(
                f"{INDENT}{c.quoted_name} {c.source_type} NULL" for c in record.columns
            ),
            location=quote_literal(location),
            data_source=quote_identifier(data_source),
            file_format=quote_identifier(file_format),
        )
        return SQLStatement(StatementIntent.CREATE_TABLE, text, record.entity_name)

    def _table(self, record: SQLMetadata) -> SQLStatement:
        text = TABLE_TEMPLATE.substitute(
            qualified_name=record.qualified_name,
            column_list=",\n".join(
                f"{INDENT}{c.quoted_name} {c.sql_type} {'NULL' if c.is_nullable else 'NOT NULL'}"
                for c in record.columns
            ),
        )
        return SQLStatement(StatementIntent.CREATE_TABLE, text, record.entity_name)


def generate(
    metadata: List[SQLMetadata],
    options: WarehouseOptions,
    ddl_type: str = DDLType.DEFAULT,
    replace_rules: Optional[ViewSyntaxRules] = None,
) -> List[SQLStatement]:
    """Convenience wrapper around ``DDLGenerator.generate``."""
    return DDLGenerator().generate(metadata, options, ddl_type, replace_rules)
