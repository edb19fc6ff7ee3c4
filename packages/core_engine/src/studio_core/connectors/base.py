"""Inspector interface, shared information_schema queries and catalog assembly."""

from __future__ import annotations

import importlib
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from studio_core.errors import IntrospectionError, UnsupportedDriverError
from studio_core.importers import CELL_HEIGHT, CELL_WIDTH, GRID_COLUMNS
from studio_core.model import Field, Relationship, Table, TableCatalog
from studio_core.typemap import normalize_type

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30


class Driver(str, Enum):
    POSTGRES = "postgres"
    MYSQL = "mysql"
    MSSQL = "mssql"
    BIGQUERY = "bigquery"

    @classmethod
    def parse(cls, value: Any) -> "Driver":
        if isinstance(value, Driver):
            return value
        key = str(value or "").strip().lower()
        for member in cls:
            if member.value == key:
                return member
        raise UnsupportedDriverError(str(value))


@dataclass
class ConnectionConfig:
    """Parameters needed to reach one database backend."""

    driver: str
    host: str = ""
    port: int = 0
    database: str = ""
    username: str = ""
    password: str = ""
    ssl_mode: str = ""
    # BigQuery
    project: str = ""
    dataset: str = ""
    credentials_file: str = ""
    bigquery_auth_mode: str = ""
    timeout: int = DEFAULT_TIMEOUT

    def to_dict(self) -> Dict[str, Any]:
        """camelCase form without the password."""
        return {
            "driver": self.driver,
            "host": self.host,
            "port": self.port,
            "database": self.database,
            "username": self.username,
            "sslMode": self.ssl_mode,
            "project": self.project,
            "dataset": self.dataset,
            "credentialsFile": self.credentials_file,
            "bigqueryAuthMode": self.bigquery_auth_mode,
            "timeout": self.timeout,
        }


@dataclass
class ColumnInfo:
    table_name: str
    column_name: str
    data_type: str
    is_nullable: bool
    ordinal_position: int
    char_max_length: Optional[int] = None
    numeric_precision: Optional[int] = None
    numeric_scale: Optional[int] = None


@dataclass
class PrimaryKeyInfo:
    table_name: str
    column_name: str


@dataclass
class ForeignKeyInfo:
    """One FK column pair. ``source_*`` is the declaring (child) side."""

    source_table: str
    source_column: str
    target_table: str
    target_column: str


def _as_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    return int(value)


def build_catalog(
    columns: Iterable[ColumnInfo],
    pks: Iterable[PrimaryKeyInfo],
    fks: Iterable[ForeignKeyInfo],
    import_source: str,
    dialect: str,
) -> TableCatalog:
    """Assemble a catalog from raw catalog rows.

    Relationships point from the referenced table (source) to the table that
    declares the foreign key (target). FKs whose ends are not among the
    inspected tables are dropped.
    """
    pk_set = {(pk.table_name, pk.column_name) for pk in pks}

    by_table: Dict[str, List[ColumnInfo]] = {}
    for col in columns:
        by_table.setdefault(col.table_name, []).append(col)

    catalog = TableCatalog(import_source=import_source)
    table_ids: Dict[str, str] = {}
    field_ids: Dict[Tuple[str, str], str] = {}
    next_field = 0

    for index, table_name in enumerate(sorted(by_table)):
        table_id = f"t{index + 1}"
        table_ids[table_name] = table_id
        row, col = divmod(index, GRID_COLUMNS)
        table = Table(id=table_id, name=table_name, x=float(col * CELL_WIDTH), y=float(row * CELL_HEIGHT))

        for info in sorted(by_table[table_name], key=lambda c: c.ordinal_position):
            next_field += 1
            field_id = f"f{next_field}"
            field_ids[(table_name, info.column_name)] = field_id
            norm = normalize_type(info.data_type)
            field = Field(
                id=field_id,
                name=info.column_name,
                type=norm.generic_type,
                nullable=info.is_nullable,
                primary_key=(table_name, info.column_name) in pk_set,
                length=info.char_max_length if info.char_max_length is not None else norm.length,
                precision=info.numeric_precision if info.numeric_precision is not None else norm.precision,
                scale=info.numeric_scale if info.numeric_scale is not None else norm.scale,
            )
            raw = (info.data_type or "").strip().lower()
            if dialect and raw != norm.generic_type:
                field.type_overrides[dialect] = raw
            table.fields.append(field)
        catalog.tables.append(table)

    for fk in fks:
        src_table = table_ids.get(fk.target_table)
        src_field = field_ids.get((fk.target_table, fk.target_column))
        tgt_table = table_ids.get(fk.source_table)
        tgt_field = field_ids.get((fk.source_table, fk.source_column))
        if not (src_table and src_field and tgt_table and tgt_field):
            logger.debug(
                "Dropping foreign key %s.%s -> %s.%s: endpoint not inspected",
                fk.source_table, fk.source_column, fk.target_table, fk.target_column,
            )
            continue
        catalog.relationships.append(
            Relationship(
                id=f"r{len(catalog.relationships) + 1}",
                source_table_id=src_table,
                source_field_id=src_field,
                target_table_id=tgt_table,
                target_field_id=tgt_field,
            )
        )

    return catalog


class SchemaInspector(ABC):
    """One live connection to a database, used to read its schema."""

    driver: Driver
    display_name: str = ""
    required_package: str = ""
    pip_package: str = ""

    @abstractmethod
    def connect(self, config: ConnectionConfig) -> None:
        """Open the connection. Raises ConnectionFailedError or DriverNotInstalledError."""

    @abstractmethod
    def close(self) -> None:
        ...

    @abstractmethod
    def list_schemas(self) -> List[str]:
        """Non-system schema names (datasets for BigQuery)."""

    @abstractmethod
    def list_tables(self, schema_name: str) -> List[str]:
        ...

    @abstractmethod
    def inspect_schema(self, schema_name: str, table_names: Optional[Sequence[str]] = None) -> TableCatalog:
        """Tables, fields and relationships of ``schema_name``; all tables when ``table_names`` is empty."""

    def check_driver(self) -> Tuple[bool, str]:
        """Check if the required Python driver package is installed."""
        try:
            importlib.import_module(self.required_package)
        except ImportError:
            return False, f"Missing driver: pip install {self.pip_package}"
        return True, f"{self.pip_package} is installed"

    def __enter__(self) -> "SchemaInspector":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class InformationSchemaInspector(SchemaInspector):
    """Inspector for engines exposing ANSI ``information_schema`` over DB-API."""

    placeholder = "%s"
    system_schemas: Tuple[str, ...] = ()
    source_label = ""

    def __init__(self) -> None:
        self._conn: Any = None
        self.timeout = DEFAULT_TIMEOUT

    def close(self) -> None:
        if self._conn is not None:
            conn, self._conn = self._conn, None
            conn.close()

    def _fetch(self, what: str, query: str, params: Sequence[Any] = ()) -> List[Tuple[Any, ...]]:
        if self._conn is None:
            raise IntrospectionError(f"{self.display_name}: not connected")
        try:
            cur = self._conn.cursor()
            try:
                cur.execute(query, tuple(params))
                return [tuple(row) for row in cur.fetchall()]
            finally:
                cur.close()
        except IntrospectionError:
            raise
        except Exception as exc:
            raise IntrospectionError(
                f"{what}: {exc}",
                details={"driver": self.driver.value},
            ) from exc

    def _in_clause(self, column: str, names: Sequence[str]) -> Tuple[str, List[str]]:
        if not names:
            return "", []
        marks = ",".join(self.placeholder for _ in names)
        return f" AND {column} IN ({marks})", list(names)

    def list_schemas(self) -> List[str]:
        excluded = {name.lower() for name in self.system_schemas}
        rows = self._fetch(
            "listing schemas",
            "SELECT schema_name FROM information_schema.schemata ORDER BY schema_name",
        )
        return [row[0] for row in rows if str(row[0]).lower() not in excluded]

    def list_tables(self, schema_name: str) -> List[str]:
        rows = self._fetch(
            "listing tables",
            "SELECT table_name FROM information_schema.tables "
            f"WHERE table_schema = {self.placeholder} AND table_type = 'BASE TABLE' ORDER BY table_name",
            [schema_name],
        )
        return [row[0] for row in rows]

    def _query_columns(self, schema_name: str, table_names: Sequence[str]) -> List[ColumnInfo]:
        extra, args = self._in_clause("table_name", table_names)
        query = (
            "SELECT table_name, column_name, data_type, is_nullable, ordinal_position, "
            "character_maximum_length, numeric_precision, numeric_scale "
            "FROM information_schema.columns "
            f"WHERE table_schema = {self.placeholder}{extra} "
            "ORDER BY table_name, ordinal_position"
        )
        return [
            ColumnInfo(
                table_name=row[0],
                column_name=row[1],
                data_type=row[2],
                is_nullable=str(row[3]).upper() == "YES",
                ordinal_position=int(row[4]),
                char_max_length=_as_int(row[5]),
                numeric_precision=_as_int(row[6]),
                numeric_scale=_as_int(row[7]),
            )
            for row in self._fetch("querying columns", query, [schema_name] + args)
        ]

    def _query_primary_keys(self, schema_name: str, table_names: Sequence[str]) -> List[PrimaryKeyInfo]:
        extra, args = self._in_clause("tc.table_name", table_names)
        query = (
            "SELECT kcu.table_name, kcu.column_name "
            "FROM information_schema.table_constraints tc "
            "JOIN information_schema.key_column_usage kcu "
            "ON tc.constraint_name = kcu.constraint_name "
            "AND tc.table_schema = kcu.table_schema "
            f"WHERE tc.table_schema = {self.placeholder} "
            f"AND tc.constraint_type = 'PRIMARY KEY'{extra}"
        )
        return [
            PrimaryKeyInfo(table_name=row[0], column_name=row[1])
            for row in self._fetch("querying primary keys", query, [schema_name] + args)
        ]

    @abstractmethod
    def _foreign_key_query(self) -> Tuple[str, str]:
        """Return (query filtered on schema, column used for the table filter)."""

    def _query_foreign_keys(self, schema_name: str, table_names: Sequence[str]) -> List[ForeignKeyInfo]:
        query, table_column = self._foreign_key_query()
        extra, args = self._in_clause(table_column, table_names)
        return [
            ForeignKeyInfo(source_table=row[0], source_column=row[1], target_table=row[2], target_column=row[3])
            for row in self._fetch("querying foreign keys", query + extra, [schema_name] + args)
        ]

    def inspect_schema(self, schema_name: str, table_names: Optional[Sequence[str]] = None) -> TableCatalog:
        names = list(table_names or [])
        columns = self._query_columns(schema_name, names)
        pks = self._query_primary_keys(schema_name, names)
        fks = self._query_foreign_keys(schema_name, names)
        catalog = build_catalog(
            columns, pks, fks,
            import_source=f"{schema_name} ({self.source_label})",
            dialect=self.driver.value,
        )
        logger.info(
            "Inspected %s.%s: %d tables, %d relationships",
            self.driver.value, schema_name, len(catalog.tables), len(catalog.relationships),
        )
        return catalog


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def new_inspector(driver: Any) -> SchemaInspector:
    """Fresh, unconnected inspector for ``driver``."""
    from studio_core.connectors.bigquery import BigQueryInspector
    from studio_core.connectors.mysql import MySQLInspector
    from studio_core.connectors.postgres import PostgresInspector
    from studio_core.connectors.sqlserver import SQLServerInspector

    kind = Driver.parse(driver)
    if kind is Driver.POSTGRES:
        return PostgresInspector()
    if kind is Driver.MYSQL:
        return MySQLInspector()
    if kind is Driver.MSSQL:
        return SQLServerInspector()
    if kind is Driver.BIGQUERY:
        return BigQueryInspector()
    raise UnsupportedDriverError(str(driver))


def test_connection(config: ConnectionConfig) -> Tuple[bool, str]:
    """Connect and disconnect. Returns (success, message)."""
    inspector = new_inspector(config.driver)
    try:
        inspector.connect(config)
    except Exception as exc:
        logger.debug("Connection test for %s failed", config.driver, exc_info=True)
        return False, f"Connection failed: {exc}"
    inspector.close()
    return True, "Connection successful"


# pytest would otherwise collect this as a test function.
test_connection.__test__ = False


def list_drivers() -> List[Dict[str, Any]]:
    """All supported drivers with their install status."""
    result = []
    for kind in Driver:
        inspector = new_inspector(kind)
        ok, msg = inspector.check_driver()
        result.append({
            "type": kind.value,
            "name": inspector.display_name,
            "driver": inspector.pip_package,
            "installed": ok,
            "status": msg,
        })
    return result
