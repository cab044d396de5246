"""
CDM to SQL type mapping.

CDM supports various data types:
- Primitive types: string, int64, decimal, dateTime, guid, ...
- Semantic types: email, phone, currency, year, ...
- Enumerations: listLookup (or any attribute carrying a well-known list)

Every column resolves through a fixed primitive table. Three warehouse
options alter the defaults:

- date_time_as_string: date/time columns become ``nvarchar(30)``
- convert_date_time: date/time columns are read as text and normalized with
  ``TRY_CONVERT``
- translate_enum: enumerations are exposed as their labels via ``CASE``

An entry in the column override file for the exact (table, column) key wins
over all of the above.

Usage:
    from cdmutil.sql.type_mapper import SQLTypeMapper, ColumnPropertyOverrides

    overrides = ColumnPropertyOverrides.load(config.source_column_properties)
    column = map_column(attribute, overrides, config.warehouse_options, "CustTable")
"""

import json
import logging
import os
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from ..config import WarehouseOptions
from ..constants import WarehouseDefaults
from ..errors import ConfigurationError, UnsupportedTypeError
from ..manifest.models import CDMAttribute
from .models import SQLColumn, quote_identifier, quote_literal

logger = logging.getLogger(__name__)


# =============================================================================
# CDM Primitive Type Mappings
# =============================================================================

CDM_TYPE_MAPPINGS: Dict[str, str] = {
    # String types
    "string": "nvarchar",
    "char": "nvarchar",
    "text": "nvarchar",

    # GUID types
    "guid": "uniqueidentifier",
    "uuid": "uniqueidentifier",

    # Integer types
    "int16": "smallint",
    "smallInteger": "smallint",
    "int32": "int",
    "integer": "int",
    "int": "int",
    "int64": "bigint",
    "bigInteger": "bigint",
    "long": "bigint",
    "byte": "tinyint",
    "tinyInteger": "tinyint",

    # Floating point types
    "float": "float",
    "double": "float",
    "real": "real",

    # Decimal types
    "decimal": "decimal",
    "numeric": "decimal",
    "money": "decimal",
    "smallMoney": "decimal",

    # Boolean types
    "boolean": "bit",
    "bool": "bit",

    # Date/time types
    "date": "date",
    "dateTime": "datetime2",
    "timestamp": "datetime2",
    "dateTimeOffset": "datetimeoffset",
    "time": "time",

    # Binary types
    "binary": "varbinary",
    "varbinary": "varbinary",

    # JSON/object types (stored as serialized string)
    "json": "nvarchar(max)",
    "object": "nvarchar(max)",

    # Enumerations (raw values)
    "listLookup": "int",
}

DATE_TIME_SQL_TYPES = {"date", "datetime2", "datetimeoffset", "time"}


# =============================================================================
# CDM Semantic Type Mappings (semantic -> primitive)
# =============================================================================

CDM_SEMANTIC_TYPE_MAPPINGS: Dict[str, str] = {
    # Identity types
    "name": "string",
    "fullName": "string",
    "firstName": "string",
    "lastName": "string",
    "middleName": "string",

    # Contact types
    "email": "string",
    "phone": "string",
    "phoneNumber": "string",
    "fax": "string",

    # Internet types
    "url": "string",
    "uri": "string",
    "webAddress": "string",
    "ipAddress": "string",

    # Address types
    "address": "string",
    "city": "string",
    "stateOrProvince": "string",
    "country": "string",
    "postalCode": "string",
    "latitude": "double",
    "longitude": "double",

    # Localization types
    "languageTag": "string",
    "locale": "string",
    "timezone": "string",

    # Date component types
    "year": "int32",
    "month": "int32",
    "day": "int32",
    "week": "int32",
    "quarter": "int32",
    "fiscalYear": "int32",

    # Measurement types
    "age": "int32",
    "duration": "int64",
    "percentage": "double",

    # Financial types
    "currency": "decimal",
    "currencyCode": "string",
    "exchangeRate": "decimal",
    "amount": "decimal",
    "price": "decimal",

    # Count types
    "count": "int64",
    "quantity": "decimal",
    "ordinal": "int32",

    # Status types
    "statusCode": "int32",
    "stateCode": "int32",
    "versionNumber": "int64",

    # Identifier types
    "entityId": "guid",
    "entityName": "string",
    "code": "string",
}


@dataclass
class TypeMappingResult:
    """
    Result of CDM to SQL type mapping.

    Attributes:
        sql_type: The mapped SQL type, sized.
        original_type: The original CDM type.
        primitive_type: The primitive CDM type the original resolved to.
        is_semantic_type: Whether the original was a semantic type.
    """
    sql_type: str
    original_type: str
    primitive_type: str
    is_semantic_type: bool = False

    @property
    def is_date_time(self) -> bool:
        return self.sql_type in DATE_TIME_SQL_TYPES


class SQLTypeMapper:
    """
    Maps CDM data types to SQL Server / Synapse column types.

    Example:
        >>> mapper = SQLTypeMapper()
        >>> mapper.map_type("int64").sql_type
        'bigint'
        >>> mapper.map_type("string", maximum_length=100).sql_type
        'nvarchar(100)'
    """

    def __init__(self):
        self._primitive_mappings = {k.lower(): v for k, v in CDM_TYPE_MAPPINGS.items()}
        self._semantic_mappings = {k.lower(): v for k, v in CDM_SEMANTIC_TYPE_MAPPINGS.items()}

    def map_type(
        self,
        cdm_type: str,
        maximum_length: Optional[int] = None,
        precision: Optional[int] = None,
        scale: Optional[int] = None,
    ) -> Optional[TypeMappingResult]:
        """
        Map a CDM type to a SQL type.

        Returns:
            TypeMappingResult, or None when the type is unknown.
        """
        cdm_type_lower = cdm_type.lower()
        is_semantic = False

        primitive = cdm_type_lower
        if primitive not in self._primitive_mappings and primitive in self._semantic_mappings:
            primitive = self._semantic_mappings[primitive].lower()
            is_semantic = True

        base = self._primitive_mappings.get(primitive)
        if base is None:
            return None

        return TypeMappingResult(
            sql_type=self._size(base, maximum_length, precision, scale),
            original_type=cdm_type,
            primitive_type=primitive,
            is_semantic_type=is_semantic,
        )

    @staticmethod
    def _size(base: str, maximum_length: Optional[int], precision: Optional[int], scale: Optional[int]) -> str:
        if base == "nvarchar":
            if maximum_length and 0 < maximum_length <= WarehouseDefaults.STRING_MAX_LENGTH:
                return f"nvarchar({maximum_length})"
            return "nvarchar(max)"
        if base == "decimal":
            p = precision or WarehouseDefaults.DECIMAL_PRECISION
            s = WarehouseDefaults.DECIMAL_SCALE if scale is None else scale
            return f"decimal({p},{min(s, p)})"
        if base == "varbinary":
            return "varbinary(max)"
        return base

    def is_supported_type(self, cdm_type: str) -> bool:
        """Check if a CDM type has a known mapping."""
        return self.map_type(cdm_type) is not None

    def get_supported_types(self) -> Tuple[List[str], List[str]]:
        """
        Get lists of supported primitive and semantic types.

        Returns:
            Tuple of (primitive_types, semantic_types).
        """
        return (
            list(CDM_TYPE_MAPPINGS.keys()),
            list(CDM_SEMANTIC_TYPE_MAPPINGS.keys())
        )


# =============================================================================
# Column overrides
# =============================================================================

@dataclass(frozen=True)
class ColumnOverride:
    """One entry of the column property override file."""
    table_name: str
    column_name: str
    sql_type: str
    expression: Optional[str] = None


class ColumnPropertyOverrides:
    """
    Column-level overrides keyed by exact (table, column).

    File format (``SourceColumnProperties.json``)::

        [
            {"tableName": "CustTable", "columnName": "AccountNum",
             "sqlType": "nvarchar(20)"},
            {"tableName": "CustTable", "columnName": "Modified",
             "sqlType": "datetime2", "expression": "TRY_CONVERT(datetime2, [Modified], 103)"}
        ]
    """

    def __init__(self, entries: Optional[List[ColumnOverride]] = None):
        self._entries: Dict[Tuple[str, str], ColumnOverride] = {}
        for entry in entries or []:
            self._entries[(entry.table_name, entry.column_name)] = entry

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, table_name: Optional[str], column_name: str) -> Optional[ColumnOverride]:
        if table_name is None:
            return None
        return self._entries.get((table_name, column_name))

    @classmethod
    def load(cls, path: Optional[str]) -> 'ColumnPropertyOverrides':
        """
        Load overrides from a JSON file. A missing file yields no overrides.

        Raises:
            ConfigurationError: If the file is malformed.
        """
        if not path or not os.path.exists(path):
            logger.debug(f"No column override file at {path}")
            return cls()

        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in column override file {path}: {e}") from e

        if not isinstance(data, list):
            raise ConfigurationError(f"Column override file must contain a JSON list: {path}")

        entries: List[ColumnOverride] = []
        for i, item in enumerate(data):
            if not isinstance(item, dict):
                raise ConfigurationError(f"Column override entry {i} must be an object: {path}")
            table = item.get("tableName")
            column = item.get("columnName")
            sql_type = item.get("sqlType")
            if not table or not column or not sql_type:
                raise ConfigurationError(
                    f"Column override entry {i} needs tableName, columnName and sqlType: {path}"
                )
            entries.append(ColumnOverride(table, column, sql_type, item.get("expression") or None))

        logger.info(f"Loaded {len(entries)} column overrides from {path}")
        return cls(entries)


_default_mapper = SQLTypeMapper()


def _enum_expression(column: str, values: List[Tuple[object, str]]) -> Optional[Tuple[str, int]]:
    # Source column is read as int
    if not all(isinstance(value, int) and not isinstance(value, bool) for value, _ in values):
        return None

    quoted = quote_identifier(column)
    whens = []
    width = 10
    for value, label in values:
        whens.append(f"WHEN {value} THEN {quote_literal(label)}")
        width = max(width, len(label))
    expression = f"CASE {quoted} {' '.join(whens)} ELSE CAST({quoted} AS nvarchar(10)) END"
    return expression, width


def map_column(
    attribute: CDMAttribute,
    overrides: Optional[ColumnPropertyOverrides],
    options: WarehouseOptions,
    table_name: Optional[str] = None,
    mapper: Optional[SQLTypeMapper] = None,
) -> SQLColumn:
    """
    Map one CDM attribute to a SQL column.

    Args:
        attribute: CDM attribute.
        overrides: Column override entries.
        options: Warehouse options carrying the three mapping flags.
        table_name: Owning table, used for override lookup and errors.
        mapper: Type mapper to use.

    Raises:
        UnsupportedTypeError: If the type is unknown and no override exists.
    """
    override = overrides.get(table_name, attribute.name) if overrides else None
    if override is not None:
        logger.debug(f"Column override applied to {table_name}.{attribute.name}: {override.sql_type}")
        return SQLColumn(
            name=attribute.name,
            cdm_type=attribute.data_type,
            sql_type=override.sql_type,
            source_type=override.sql_type,
            expression=override.expression,
            is_nullable=attribute.is_nullable,
            is_override=True,
            is_enum=attribute.is_enum,
        )

    mapper = mapper or _default_mapper
    result = mapper.map_type(
        attribute.data_type,
        maximum_length=attribute.maximum_length,
        precision=attribute.precision,
        scale=attribute.scale,
    )
    if result is None:
        raise UnsupportedTypeError(attribute.data_type, attribute.name, table_name)

    column = SQLColumn(
        name=attribute.name,
        cdm_type=attribute.data_type,
        sql_type=result.sql_type,
        is_nullable=attribute.is_nullable,
        is_enum=attribute.is_enum,
        is_date_time=result.is_date_time,
    )
    quoted = column.quoted_name
    text_type = WarehouseDefaults.DATE_TIME_STRING_TYPE

    if result.is_date_time:
        if options.convert_date_time:
            column.source_type = text_type
            if options.date_time_as_string:
                column.sql_type = text_type
                column.expression = (
                    f"CONVERT({text_type}, TRY_CONVERT(datetime2, {quoted}), "
                    f"{WarehouseDefaults.DATE_TIME_STYLE})"
                )
            else:
                column.expression = f"TRY_CONVERT({result.sql_type}, {quoted})"
        elif options.date_time_as_string:
            column.sql_type = text_type
            column.source_type = text_type
    elif attribute.is_enum and options.translate_enum:
        translated = _enum_expression(attribute.name, attribute.enum_values) if attribute.enum_values else None
        if translated is not None:
            column.expression, width = translated
            column.sql_type = f"nvarchar({width})"
        elif attribute.enum_values:
            logger.debug(f"Enumeration {table_name}.{attribute.name} has non-integer values; not translated")
        else:
            logger.debug(f"Enumeration {table_name}.{attribute.name} has no values to translate")

    return column
