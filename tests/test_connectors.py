"""Tests for live database inspectors.

No database is contacted: inspectors run against fake DB-API connections and
driver modules injected through ``unittest.mock``.

Covers:
  - build_catalog (ids, ordering, type overrides, FK direction, dropped FKs)
  - information_schema inspectors: query wiring, placeholders, filters, errors
  - Driver connect() arguments and driver-missing / connect-failure errors
  - SQL Server connection string
  - BigQuery auth modes and metadata mapping
  - Driver registry (new_inspector, list_drivers, test_connection)
"""

import sys
import types
import unittest
from pathlib import Path
from typing import Any, List, Sequence, Tuple
from unittest import mock

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT / "packages" / "core_engine" / "src"))

from studio_core.connectors import (
    BigQueryInspector,
    ColumnInfo,
    ConnectionConfig,
    Driver,
    ForeignKeyInfo,
    MySQLInspector,
    PostgresInspector,
    PrimaryKeyInfo,
    SQLServerInspector,
    build_catalog,
    list_drivers,
    new_inspector,
    test_connection as check_connection,
)
from studio_core.connectors.sqlserver import build_conn_string
from studio_core.errors import (
    ConnectionFailedError,
    DriverNotInstalledError,
    IntrospectionError,
    UnsupportedDriverError,
)


# ---------------------------------------------------------------------------
# Fake DB-API
# ---------------------------------------------------------------------------

class FakeCursor:
    def __init__(self, conn: "FakeConnection"):
        self.conn = conn
        self.rows: List[Tuple[Any, ...]] = []

    def execute(self, query: str, params: Sequence[Any] = ()) -> None:
        self.conn.executed.append((query, tuple(params)))
        if self.conn.error is not None:
            raise self.conn.error
        for marker, rows in self.conn.responses:
            if marker in query:
                self.rows = list(rows)
                return
        self.rows = []

    def fetchall(self) -> List[Tuple[Any, ...]]:
        return self.rows

    def close(self) -> None:
        self.conn.cursors_closed += 1


class FakeConnection:
    """Answers each query with the rows of the first marker found in its text."""

    def __init__(self, responses=(), error: Exception = None):
        self.responses = list(responses)
        self.error = error
        self.executed: List[Tuple[str, Tuple[Any, ...]]] = []
        self.cursors_closed = 0
        self.closed = False

    def cursor(self) -> FakeCursor:
        return FakeCursor(self)

    def close(self) -> None:
        self.closed = True


POSTGRES_RESPONSES = [
    ("FOREIGN KEY", [("orders", "customer_id", "customers", "id"), ("orders", "region_id", "regions", "id")]),
    ("PRIMARY KEY", [("customers", "id"), ("orders", "id")]),
    (
        "information_schema.columns",
        [
            ("orders", "id", "integer", "NO", 1, None, 32, 0),
            ("orders", "customer_id", "integer", "YES", 2, None, 32, 0),
            ("orders", "region_id", "integer", "YES", 4, None, 32, 0),
            ("orders", "total", "numeric", "YES", 3, None, 12, 2),
            ("customers", "id", "integer", "NO", 1, None, 32, 0),
            ("customers", "email", "character varying", "NO", 2, 255, None, None),
        ],
    ),
    ("information_schema.schemata", [("pg_catalog",), ("public",), ("information_schema",), ("sales",)]),
    ("information_schema.tables", [("customers",), ("orders",)]),
]


def _connected(inspector, responses=(), error=None):
    inspector._conn = FakeConnection(responses, error)
    return inspector


# ===========================================================================
# build_catalog
# ===========================================================================

class TestBuildCatalog(unittest.TestCase):
    def setUp(self):
        columns = [
            ColumnInfo("orders", "id", "bigint", False, 1),
            ColumnInfo("orders", "customer_id", "bigint", True, 2),
            ColumnInfo("customers", "name", "varchar", True, 2, char_max_length=80),
            ColumnInfo("customers", "id", "bigint", False, 1),
        ]
        pks = [PrimaryKeyInfo("customers", "id"), PrimaryKeyInfo("orders", "id")]
        fks = [
            ForeignKeyInfo("orders", "customer_id", "customers", "id"),
            ForeignKeyInfo("orders", "id", "archive", "id"),
        ]
        self.catalog = build_catalog(columns, pks, fks, "public (PostgreSQL)", "postgres")

    def test_tables_sorted_with_grid_positions(self):
        names = [t.name for t in self.catalog.tables]
        self.assertEqual(names, ["customers", "orders"])
        self.assertEqual(self.catalog.tables[1].x, 320.0)
        self.assertEqual(self.catalog.tables[1].y, 0.0)

    def test_fields_in_ordinal_order(self):
        customers = self.catalog.tables[0]
        self.assertEqual([f.name for f in customers.fields], ["id", "name"])
        self.assertEqual([f.id for f in customers.fields], ["f1", "f2"])
        self.assertTrue(customers.fields[0].primary_key)
        self.assertEqual(customers.fields[1].length, 80)

    def test_raw_type_kept_as_override(self):
        customers = self.catalog.tables[0]
        self.assertEqual(customers.fields[0].type, "integer")
        self.assertEqual(customers.fields[0].type_overrides, {"postgres": "bigint"})

    def test_foreign_key_direction(self):
        self.assertEqual(len(self.catalog.relationships), 1)
        rel = self.catalog.relationships[0]
        self.assertEqual(rel.source_table_id, "t1")
        self.assertEqual(rel.source_field_id, "f1")
        self.assertEqual(rel.target_table_id, "t2")
        self.assertEqual(rel.target_field_id, "f4")

    def test_import_source(self):
        self.assertEqual(self.catalog.import_source, "public (PostgreSQL)")


# ===========================================================================
# information_schema inspectors
# ===========================================================================

class TestInformationSchemaInspector(unittest.TestCase):
    def test_inspect_schema_postgres(self):
        inspector = _connected(PostgresInspector(), POSTGRES_RESPONSES)
        catalog = inspector.inspect_schema("public")
        self.assertEqual(catalog.import_source, "public (PostgreSQL)")
        orders = catalog.tables[1]
        self.assertEqual([f.name for f in orders.fields], ["id", "customer_id", "total", "region_id"])
        total = orders.fields[2]
        self.assertEqual((total.type, total.precision, total.scale), ("numeric", 12, 2))
        # regions was not inspected
        self.assertEqual(len(catalog.relationships), 1)
        for _, params in inspector._conn.executed:
            self.assertEqual(params, ("public",))

    def test_table_filter_uses_driver_placeholder(self):
        inspector = _connected(PostgresInspector(), POSTGRES_RESPONSES)
        inspector.inspect_schema("public", ["customers", "orders"])
        query, params = inspector._conn.executed[0]
        self.assertIn("AND table_name IN (%s,%s)", query)
        self.assertEqual(params, ("public", "customers", "orders"))

    def test_sqlserver_placeholders(self):
        inspector = _connected(SQLServerInspector(), [])
        inspector.inspect_schema("dbo", ["a"])
        for query, _ in inspector._conn.executed:
            self.assertNotIn("%s", query)
            self.assertIn("?", query)
        self.assertIn("fk_kcu.TABLE_NAME IN (?)", inspector._conn.executed[-1][0])

    def test_mysql_foreign_key_query(self):
        responses = [
            ("REFERENCED_TABLE_NAME", [("b", "a_id", "a", "id")]),
            ("PRIMARY KEY", [("a", "id")]),
            ("information_schema.columns", [
                ("a", "id", "int", "NO", 1, None, 10, 0),
                ("b", "a_id", "int", "YES", 1, None, 10, 0),
            ]),
        ]
        catalog = _connected(MySQLInspector(), responses).inspect_schema("shop")
        self.assertEqual(catalog.import_source, "shop (MySQL)")
        self.assertEqual(len(catalog.relationships), 1)
        self.assertEqual(catalog.tables[0].fields[0].type_overrides, {"mysql": "int"})

    def test_list_schemas_excludes_system(self):
        inspector = _connected(PostgresInspector(), POSTGRES_RESPONSES)
        self.assertEqual(inspector.list_schemas(), ["public", "sales"])

    def test_list_tables(self):
        inspector = _connected(PostgresInspector(), POSTGRES_RESPONSES)
        self.assertEqual(inspector.list_tables("public"), ["customers", "orders"])
        query, params = inspector._conn.executed[0]
        self.assertIn("table_type = 'BASE TABLE'", query)
        self.assertEqual(params, ("public",))

    def test_query_failure_is_wrapped(self):
        inspector = _connected(PostgresInspector(), error=RuntimeError("permission denied"))
        with self.assertRaises(IntrospectionError) as ctx:
            inspector.inspect_schema("public")
        self.assertIn("permission denied", str(ctx.exception))
        self.assertIsInstance(ctx.exception.__cause__, RuntimeError)
        self.assertEqual(inspector._conn.cursors_closed, 1)

    def test_not_connected(self):
        with self.assertRaises(IntrospectionError):
            PostgresInspector().list_schemas()

    def test_context_manager_closes(self):
        inspector = _connected(PostgresInspector())
        conn = inspector._conn
        with inspector:
            pass
        self.assertTrue(conn.closed)
        self.assertIsNone(inspector._conn)


# ===========================================================================
# Driver connect()
# ===========================================================================

class TestDriverConnect(unittest.TestCase):
    def test_postgres_connect_arguments(self):
        fake = mock.MagicMock()
        with mock.patch.dict(sys.modules, {"psycopg2": fake}):
            inspector = PostgresInspector()
            inspector.connect(ConnectionConfig(driver="postgres", host="db", database="shop", username="u", password="p"))
        kwargs = fake.connect.call_args.kwargs
        self.assertEqual(kwargs["port"], 5432)
        self.assertEqual(kwargs["dbname"], "shop")
        self.assertEqual(kwargs["sslmode"], "prefer")
        self.assertEqual(kwargs["connect_timeout"], 30)
        self.assertEqual(kwargs["options"], "-c statement_timeout=30000")
        self.assertIs(inspector._conn, fake.connect.return_value)

    def test_postgres_connect_failure(self):
        fake = mock.MagicMock()
        fake.connect.side_effect = RuntimeError("could not connect")
        with mock.patch.dict(sys.modules, {"psycopg2": fake}):
            with self.assertRaises(ConnectionFailedError) as ctx:
                PostgresInspector().connect(ConnectionConfig(driver="postgres", host="db"))
        self.assertIn("could not connect", ctx.exception.message)

    def test_driver_not_installed(self):
        with mock.patch.dict(sys.modules, {"psycopg2": None}):
            with self.assertRaises(DriverNotInstalledError) as ctx:
                PostgresInspector().connect(ConnectionConfig(driver="postgres"))
        self.assertIn("pip install psycopg2-binary", ctx.exception.message)

    def test_mysql_ssl_disabled(self):
        connector = mock.MagicMock()
        package = types.ModuleType("mysql")
        package.connector = connector
        with mock.patch.dict(sys.modules, {"mysql": package, "mysql.connector": connector}):
            MySQLInspector().connect(ConnectionConfig(driver="mysql", host="db", ssl_mode="disable", timeout=5))
        kwargs = connector.connect.call_args.kwargs
        self.assertTrue(kwargs["ssl_disabled"])
        self.assertEqual(kwargs["port"], 3306)
        self.assertEqual(kwargs["connection_timeout"], 5)

    def _mysql_connect(self, timeout: int, execute_effect=None):
        connector = mock.MagicMock()
        cursor = connector.connect.return_value.cursor.return_value
        cursor.execute.side_effect = execute_effect
        package = types.ModuleType("mysql")
        package.connector = connector
        with mock.patch.dict(sys.modules, {"mysql": package, "mysql.connector": connector}):
            MySQLInspector().connect(ConnectionConfig(driver="mysql", host="db", timeout=timeout))
        return cursor

    def test_mysql_statement_timeout(self):
        cursor = self._mysql_connect(7)
        cursor.execute.assert_called_once_with("SET SESSION MAX_EXECUTION_TIME = 7000")
        cursor.close.assert_called_once()

    def test_mariadb_statement_timeout_fallback(self):
        cursor = self._mysql_connect(7, [RuntimeError("Unknown system variable"), None])
        self.assertEqual(
            [c.args[0] for c in cursor.execute.call_args_list],
            ["SET SESSION MAX_EXECUTION_TIME = 7000", "SET SESSION max_statement_time = 7"],
        )

    def test_sqlserver_connect(self):
        fake = mock.MagicMock()
        with mock.patch.dict(sys.modules, {"pyodbc": fake}):
            SQLServerInspector().connect(ConnectionConfig(driver="mssql", host="sql", username="sa", password="x"))
        args, kwargs = fake.connect.call_args
        self.assertIn("UID=sa", args[0])
        self.assertTrue(kwargs["autocommit"])


class TestSqlServerConnString(unittest.TestCase):
    def test_sql_auth(self):
        conn_str = build_conn_string(
            ConnectionConfig(driver="mssql", host="sql.local", port=1444, database="crm", username="sa", password="pw")
        )
        self.assertEqual(
            conn_str,
            "DRIVER={ODBC Driver 18 for SQL Server};SERVER=sql.local,1444;DATABASE=crm;Encrypt=yes;"
            "TrustServerCertificate=yes;Connection Timeout=30;UID=sa;PWD=pw",
        )

    def test_integrated_auth_defaults(self):
        conn_str = build_conn_string(ConnectionConfig(driver="mssql", ssl_mode="disable"))
        self.assertIn("SERVER=localhost,1433", conn_str)
        self.assertIn("DATABASE=master", conn_str)
        self.assertIn("Encrypt=no", conn_str)
        self.assertTrue(conn_str.endswith("Trusted_Connection=yes"))


# ===========================================================================
# BigQuery
# ===========================================================================

def _bigquery_modules(fake_bigquery):
    google = types.ModuleType("google")
    cloud = types.ModuleType("google.cloud")
    cloud.bigquery = fake_bigquery
    google.cloud = cloud
    return {"google": google, "google.cloud": cloud, "google.cloud.bigquery": fake_bigquery}


class TestBigQueryInspector(unittest.TestCase):
    def test_service_account_requires_file(self):
        fake = mock.MagicMock()
        with mock.patch.dict(sys.modules, _bigquery_modules(fake)):
            with self.assertRaises(ConnectionFailedError):
                BigQueryInspector().connect(
                    ConnectionConfig(driver="bigquery", project="p", bigquery_auth_mode="service_account")
                )

    def test_project_required(self):
        fake = mock.MagicMock()
        with mock.patch.dict(sys.modules, _bigquery_modules(fake)):
            with self.assertRaises(ConnectionFailedError):
                BigQueryInspector().connect(ConnectionConfig(driver="bigquery"))

    def test_credentials_file_used_by_default(self):
        fake = mock.MagicMock()
        with mock.patch.dict(sys.modules, _bigquery_modules(fake)):
            BigQueryInspector().connect(ConnectionConfig(driver="bigquery", project="p", credentials_file="/k.json"))
        fake.Client.from_service_account_json.assert_called_once_with("/k.json", project="p")

    def test_adc_ignores_file(self):
        fake = mock.MagicMock()
        with mock.patch.dict(sys.modules, _bigquery_modules(fake)):
            BigQueryInspector().connect(
                ConnectionConfig(driver="bigquery", project="p", credentials_file="/k.json", bigquery_auth_mode="adc")
            )
        fake.Client.assert_called_once_with(project="p")
        fake.Client.from_service_account_json.assert_not_called()

    def test_inspect_schema(self):
        client = mock.MagicMock()
        client.list_tables.return_value = [types.SimpleNamespace(table_id="users"), types.SimpleNamespace(table_id="events")]
        schemas = {
            "events": [types.SimpleNamespace(name="ts", field_type="TIMESTAMP", mode="REQUIRED")],
            "users": [
                types.SimpleNamespace(name="id", field_type="INT64", mode="REQUIRED"),
                types.SimpleNamespace(name="tags", field_type="STRING", mode="REPEATED"),
            ],
        }
        client.get_table.side_effect = lambda ref, timeout: types.SimpleNamespace(schema=schemas[ref.split(".")[-1]])

        inspector = BigQueryInspector()
        inspector._client = client
        inspector.project = "acme"
        catalog = inspector.inspect_schema("analytics")

        self.assertEqual(catalog.import_source, "acme.analytics (BigQuery)")
        self.assertEqual([t.name for t in catalog.tables], ["events", "users"])
        users = catalog.tables[1]
        self.assertFalse(users.fields[0].nullable)
        self.assertTrue(users.fields[1].nullable)
        self.assertEqual(users.fields[0].type_overrides, {"bigquery": "int64"})
        self.assertEqual(catalog.relationships, [])
        client.list_tables.assert_called_once_with("acme.analytics", timeout=30)

    def test_list_schemas_sorted(self):
        client = mock.MagicMock()
        client.list_datasets.return_value = [types.SimpleNamespace(dataset_id="b"), types.SimpleNamespace(dataset_id="a")]
        inspector = BigQueryInspector()
        inspector._client = client
        self.assertEqual(inspector.list_schemas(), ["a", "b"])

    def test_api_error_is_wrapped(self):
        client = mock.MagicMock()
        client.list_datasets.side_effect = RuntimeError("403")
        inspector = BigQueryInspector()
        inspector._client = client
        with self.assertRaises(IntrospectionError):
            inspector.list_schemas()


# ===========================================================================
# Registry
# ===========================================================================

class TestDriverRegistry(unittest.TestCase):
    def test_new_inspector(self):
        self.assertIsInstance(new_inspector("postgres"), PostgresInspector)
        self.assertIsInstance(new_inspector("MYSQL"), MySQLInspector)
        self.assertIsInstance(new_inspector(Driver.MSSQL), SQLServerInspector)
        self.assertIsInstance(new_inspector("bigquery"), BigQueryInspector)

    def test_unknown_driver(self):
        with self.assertRaises(UnsupportedDriverError) as ctx:
            new_inspector("oracle")
        self.assertEqual(ctx.exception.message, "unsupported database driver: oracle")

    def test_list_drivers(self):
        drivers = list_drivers()
        self.assertEqual([d["type"] for d in drivers], ["postgres", "mysql", "mssql", "bigquery"])
        for d in drivers:
            self.assertIsInstance(d["installed"], bool)
            self.assertIsInstance(d["status"], str)

    def test_check_driver_missing(self):
        with mock.patch.dict(sys.modules, {"psycopg2": None}):
            ok, msg = PostgresInspector().check_driver()
        self.assertFalse(ok)
        self.assertEqual(msg, "Missing driver: pip install psycopg2-binary")

    def test_connection_check_reports_failure(self):
        with mock.patch.dict(sys.modules, {"psycopg2": None}):
            ok, msg = check_connection(ConnectionConfig(driver="postgres", host="db"))
        self.assertFalse(ok)
        self.assertTrue(msg.startswith("Connection failed:"))

    def test_connection_check_success_closes(self):
        fake = mock.MagicMock()
        with mock.patch.dict(sys.modules, {"psycopg2": fake}):
            ok, msg = check_connection(ConnectionConfig(driver="postgres", host="db"))
        self.assertTrue(ok)
        self.assertEqual(msg, "Connection successful")
        fake.connect.return_value.close.assert_called_once_with()

    def test_config_dict_has_no_password(self):
        data = ConnectionConfig(driver="postgres", password="secret", ssl_mode="require").to_dict()
        self.assertNotIn("password", data)
        self.assertEqual(data["sslMode"], "require")


if __name__ == "__main__":
    unittest.main()
