"""Live database inspectors.

Each inspector implements the same interface:
  connect(config), list_schemas(), list_tables(schema), inspect_schema(schema, tables) -> TableCatalog
"""

from studio_core.connectors.base import (
    ColumnInfo,
    ConnectionConfig,
    Driver,
    ForeignKeyInfo,
    InformationSchemaInspector,
    PrimaryKeyInfo,
    SchemaInspector,
    build_catalog,
    list_drivers,
    new_inspector,
    test_connection,
)
from studio_core.connectors.bigquery import BigQueryInspector
from studio_core.connectors.mysql import MySQLInspector
from studio_core.connectors.postgres import PostgresInspector
from studio_core.connectors.sqlserver import SQLServerInspector

__all__ = [
    "BigQueryInspector",
    "ColumnInfo",
    "ConnectionConfig",
    "Driver",
    "ForeignKeyInfo",
    "InformationSchemaInspector",
    "MySQLInspector",
    "PostgresInspector",
    "PrimaryKeyInfo",
    "SQLServerInspector",
    "SchemaInspector",
    "build_catalog",
    "list_drivers",
    "new_inspector",
    "test_connection",
]
