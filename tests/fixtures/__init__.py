"""
Centralized test fixtures for the CDM Util test suite.

This package provides reusable fixtures for testing, including:
- CDM manifest and entity documents forming a small manifest tree
- Entity list, artifacts catalogue and event payloads
- An in-memory DB-API connection for DDL execution

Usage:
    from fixtures import CDM_TREE, write_tree, FakeConnection

Or use the pytest fixtures in conftest.py which import from here.
"""

from .manifest_fixtures import (
    # Manifest tree
    TABLES_MANIFEST,
    FINANCE_MANIFEST,
    SUPPLY_MANIFEST,
    CUST_TABLE_ENTITY,
    CUST_GROUP_ENTITY,
    VEND_TABLE_ENTITY,
    UNKNOWN_TYPE_ENTITY,
    CDM_TREE,

    # Cycles
    CYCLE_A_MANIFEST,
    CYCLE_B_MANIFEST,
    SELF_MANIFEST,

    # Creation / lookup input
    ENTITY_LIST,
    ARTIFACTS,
    EVENT_GRID_EVENT,

    # Helpers
    write_tree,
    load,
)

from .fake_db import FakeConnection, FakeCursor, FakeDatabase

__all__ = [
    "TABLES_MANIFEST",
    "FINANCE_MANIFEST",
    "SUPPLY_MANIFEST",
    "CUST_TABLE_ENTITY",
    "CUST_GROUP_ENTITY",
    "VEND_TABLE_ENTITY",
    "UNKNOWN_TYPE_ENTITY",
    "CDM_TREE",
    "CYCLE_A_MANIFEST",
    "CYCLE_B_MANIFEST",
    "SELF_MANIFEST",
    "ENTITY_LIST",
    "ARTIFACTS",
    "EVENT_GRID_EVENT",
    "write_tree",
    "load",
    "FakeConnection",
    "FakeCursor",
    "FakeDatabase",
]
