"""
DDL generator tests.

Tests for statement ordering, the three target kinds, view rewrite rules and
validation of generated output.
"""

import json
import pytest
import sys
import os

src_dir = os.path.join(os.path.dirname(__file__), '..', '..', 'src')
if src_dir not in sys.path:
    sys.path.insert(0, src_dir)

from cdmutil.config import WarehouseOptions
from cdmutil.constants import DDLType
from cdmutil.errors import ConfigurationError, DDLGenerationError
from cdmutil.sql.ddl_generator import (
    DDLGenerator,
    ViewSyntaxRule,
    ViewSyntaxRules,
    generate,
)
from cdmutil.sql.models import SQLColumn, SQLMetadata, StatementIntent

ROOT = "https://acct.dfs.core.windows.net/fs"
OPTIONS = WarehouseOptions(external_data_source="cdm_ds", file_format_name="csv_ff", schema="cdm")


def _cust_table():
    return SQLMetadata(
        entity_name="CustTable",
        tenant_id="t1",
        schema="cdm",
        columns=[
            SQLColumn("AccountNum", "string", "nvarchar(20)", is_nullable=False),
            SQLColumn("Created", "dateTime", "datetime2", source_type="nvarchar(30)",
                      expression="TRY_CONVERT(datetime2, [Created])"),
        ],
        data_location="Tables/Finance/CustTable/*.csv",
        storage_root=ROOT,
    )


def _cust_group():
    return SQLMetadata(
        entity_name="CustGroup",
        schema="cdm",
        columns=[SQLColumn("CustGroup", "string", "nvarchar(10)")],
        data_location="Tables/Finance/CustGroup/*.csv",
        storage_root=ROOT,
    )


@pytest.mark.unit
class TestStatementOrder:
    """Ordering of shared objects, drops and creates."""

    def test_view_order(self):
        statements = generate([_cust_table(), _cust_group()], OPTIONS)
        assert [s.intent for s in statements] == [
            StatementIntent.CREATE_DATA_SOURCE,
            StatementIntent.CREATE_FILE_FORMAT,
            StatementIntent.DROP_IF_EXISTS,
            StatementIntent.CREATE_VIEW,
            StatementIntent.DROP_IF_EXISTS,
            StatementIntent.CREATE_VIEW,
        ]
        assert [s.entity_name for s in statements[2:]] == ["CustTable", "CustTable", "CustGroup", "CustGroup"]

    def test_no_shared_objects_without_names(self):
        statements = generate([_cust_table()], WarehouseOptions(schema="cdm"))
        assert [s.intent for s in statements] == [StatementIntent.DROP_IF_EXISTS, StatementIntent.CREATE_VIEW]

    def test_empty_metadata(self):
        assert generate([], OPTIONS) == []

    def test_sql_table_has_no_shared_objects(self):
        statements = generate([_cust_table()], OPTIONS, DDLType.SQL_TABLE)
        assert [s.intent for s in statements] == [StatementIntent.DROP_IF_EXISTS, StatementIntent.CREATE_TABLE]

    def test_deterministic(self):
        first = [s.text for s in generate([_cust_table(), _cust_group()], OPTIONS)]
        second = [s.text for s in generate([_cust_table(), _cust_group()], OPTIONS)]
        assert first == second

    def test_unknown_ddl_type(self):
        with pytest.raises(DDLGenerationError):
            generate([_cust_table()], OPTIONS, "Parquet")


@pytest.mark.unit
class TestSharedObjects:
    """Data source and file format statements."""

    def test_data_source(self):
        text = generate([_cust_table()], OPTIONS)[0].text
        assert text.startswith("IF NOT EXISTS (SELECT * FROM sys.external_data_sources WHERE name = 'cdm_ds')")
        assert "CREATE EXTERNAL DATA SOURCE [cdm_ds]" in text
        assert f"LOCATION = '{ROOT}'" in text
        assert "CREDENTIAL = [SynapseIdentity]" in text

    def test_file_format(self):
        text = generate([_cust_table()], OPTIONS)[1].text
        assert text.startswith("IF NOT EXISTS (SELECT * FROM sys.external_file_formats WHERE name = 'csv_ff')")
        assert "CREATE EXTERNAL FILE FORMAT [csv_ff]" in text
        assert "FORMAT_TYPE = DELIMITEDTEXT" in text


@pytest.mark.unit
class TestViews:
    """Serverless OPENROWSET views."""

    def test_drop(self):
        text = generate([_cust_table()], OPTIONS)[2].text
        assert text == "IF OBJECT_ID('[cdm].[CustTable]', 'V') IS NOT NULL\nDROP VIEW [cdm].[CustTable]"

    def test_view_with_data_source(self):
        text = generate([_cust_table()], OPTIONS)[3].text
        assert text == (
            "CREATE VIEW [cdm].[CustTable] AS\n"
            "SELECT\n"
            "    [AccountNum],\n"
            "    TRY_CONVERT(datetime2, [Created]) AS [Created]\n"
            "FROM OPENROWSET(\n"
            "    BULK 'Tables/Finance/CustTable/*.csv',\n"
            "    DATA_SOURCE = 'cdm_ds',\n"
            "    FORMAT = 'CSV',\n"
            "    PARSER_VERSION = '2.0'\n"
            ") WITH (\n"
            "    [AccountNum] nvarchar(20),\n"
            "    [Created] nvarchar(30)\n"
            ") AS [r]"
        )

    def test_view_without_data_source(self):
        text = generate([_cust_group()], WarehouseOptions(schema="cdm"))[1].text
        assert f"BULK '{ROOT}/Tables/Finance/CustGroup/*.csv'" in text
        assert "DATA_SOURCE" not in text

    def test_identifier_quoting(self):
        record = _cust_group()
        record.entity_name = "Odd]Name"
        text = generate([record], OPTIONS)[3].text
        assert text.startswith("CREATE VIEW [cdm].[Odd]]Name] AS")

    def test_rewrite_rules(self):
        rules = ViewSyntaxRules([
            ViewSyntaxRule("PARSER_VERSION = '2.0'", "PARSER_VERSION = '1.0'"),
            ViewSyntaxRule("FORMAT = 'CSV'", "FORMAT = 'CSV', HEADER_ROW = TRUE", view_name="CustGroup"),
        ])
        statements = generate([_cust_table(), _cust_group()], OPTIONS, replace_rules=rules)
        cust_table, cust_group = statements[3].text, statements[5].text

        assert "PARSER_VERSION = '1.0'" in cust_table
        assert "HEADER_ROW" not in cust_table
        assert "PARSER_VERSION = '1.0'" in cust_group
        assert "HEADER_ROW = TRUE" in cust_group

    def test_rewrite_rules_ignored_for_tables(self):
        rules = ViewSyntaxRules([ViewSyntaxRule("NOT NULL", "NULL")])
        text = generate([_cust_table()], OPTIONS, DDLType.SQL_TABLE, replace_rules=rules)[1].text
        assert "[AccountNum] nvarchar(20) NOT NULL" in text


@pytest.mark.unit
class TestTables:
    """External and plain tables."""

    def test_external_table(self):
        statements = generate([_cust_table()], OPTIONS, DDLType.SYNAPSE_EXTERNAL_TABLE)
        assert statements[2].text == (
            "IF OBJECT_ID('[cdm].[CustTable]', 'U') IS NOT NULL\nDROP EXTERNAL TABLE [cdm].[CustTable]"
        )
        assert statements[3].text == (
            "CREATE EXTERNAL TABLE [cdm].[CustTable] (\n"
            "    [AccountNum] nvarchar(20) NULL,\n"
            "    [Created] nvarchar(30) NULL\n"
            ") WITH (\n"
            "    LOCATION = 'Tables/Finance/CustTable/*.csv',\n"
            "    DATA_SOURCE = [cdm_ds],\n"
            "    FILE_FORMAT = [csv_ff]\n"
            ")"
        )

    def test_external_table_needs_data_source(self):
        with pytest.raises(DDLGenerationError) as exc_info:
            generate([_cust_table()], WarehouseOptions(file_format_name="csv_ff"), DDLType.SYNAPSE_EXTERNAL_TABLE)
        assert exc_info.value.field == "external_data_source"

    def test_external_table_needs_file_format(self):
        with pytest.raises(DDLGenerationError):
            generate([_cust_table()], WarehouseOptions(external_data_source="ds"), DDLType.SYNAPSE_EXTERNAL_TABLE)

    def test_sql_table(self):
        statements = generate([_cust_table()], OPTIONS, DDLType.SQL_TABLE)
        assert statements[0].text == "IF OBJECT_ID('[cdm].[CustTable]', 'U') IS NOT NULL\nDROP TABLE [cdm].[CustTable]"
        assert statements[1].text == (
            "CREATE TABLE [cdm].[CustTable] (\n"
            "    [AccountNum] nvarchar(20) NOT NULL,\n"
            "    [Created] datetime2 NULL\n"
            ")"
        )


@pytest.mark.unit
class TestValidation:
    """Rejection of records that would produce invalid DDL."""

    def test_no_columns(self):
        record = _cust_group()
        record.columns = []
        with pytest.raises(DDLGenerationError) as exc_info:
            DDLGenerator().generate([record], OPTIONS)
        assert exc_info.value.entity_name == "CustGroup"

    def test_empty_schema(self):
        record = _cust_group()
        record.schema = " "
        with pytest.raises(DDLGenerationError):
            DDLGenerator().generate([record], OPTIONS)

    def test_empty_entity_name(self):
        record = _cust_group()
        record.entity_name = ""
        with pytest.raises(DDLGenerationError):
            DDLGenerator().generate([record], OPTIONS)

    def test_empty_sql_type(self):
        record = _cust_group()
        record.columns = [SQLColumn("CustGroup", "string", "")]
        with pytest.raises(DDLGenerationError):
            DDLGenerator().generate([record], OPTIONS)

    def test_empty_data_location(self):
        record = _cust_group()
        record.data_location = ""
        with pytest.raises(DDLGenerationError) as exc_info:
            DDLGenerator().generate([record], OPTIONS)
        assert exc_info.value.field == "data_location"


@pytest.mark.unit
class TestViewSyntaxRules:
    """Rule file loading."""

    def test_load(self, tmp_path):
        path = tmp_path / "ReplaceViewSyntax.json"
        path.write_text(json.dumps([
            {"viewName": "CustTable", "find": "a", "replace": "b"},
            {"find": "c", "replace": ""},
        ]), encoding="utf-8")
        rules = ViewSyntaxRules.load(str(path))
        assert len(rules) == 2
        assert rules.apply("CustTable", "ac") == "b"
        assert rules.apply("Other", "ac") == "a"

    def test_missing_file(self, tmp_path):
        assert len(ViewSyntaxRules.load(str(tmp_path / "none.json"))) == 0

    @pytest.mark.parametrize("content", ["[{", '{"find": "a"}', '[{"find": "a"}]', '[{"replace": "b"}]'])
    def test_malformed(self, tmp_path, content):
        path = tmp_path / "ReplaceViewSyntax.json"
        path.write_text(content, encoding="utf-8")
        with pytest.raises(ConfigurationError):
            ViewSyntaxRules.load(str(path))
