"""SQL Server inspector over pyodbc."""

from __future__ import annotations

import logging
from typing import Tuple

from studio_core.connectors.base import ConnectionConfig, Driver, InformationSchemaInspector
from studio_core.errors import ConnectionFailedError, DriverNotInstalledError

logger = logging.getLogger(__name__)

DEFAULT_PORT = 1433
ODBC_DRIVER = "ODBC Driver 18 for SQL Server"


def build_conn_string(config: ConnectionConfig) -> str:
    server = f"{config.host or 'localhost'},{config.port or DEFAULT_PORT}"
    encrypt = "no" if config.ssl_mode in ("disable", "none") else "yes"

    parts = [
        f"DRIVER={{{ODBC_DRIVER}}}",
        f"SERVER={server}",
        f"DATABASE={config.database or 'master'}",
        f"Encrypt={encrypt}",
        "TrustServerCertificate=yes",
        f"Connection Timeout={config.timeout}",
    ]
    if config.username:
        parts.extend([
            f"UID={config.username}",
            f"PWD={config.password or ''}",
        ])
    else:
        parts.append("Trusted_Connection=yes")
    return ";".join(parts)


class SQLServerInspector(InformationSchemaInspector):
    driver = Driver.MSSQL
    display_name = "SQL Server"
    required_package = "pyodbc"
    pip_package = "pyodbc"
    placeholder = "?"
    system_schemas = (
        "information_schema", "sys", "guest", "db_owner",
        "db_accessadmin", "db_securityadmin", "db_ddladmin",
        "db_backupoperator", "db_datareader", "db_datawriter",
        "db_denydatareader", "db_denydatawriter",
    )
    source_label = "SQL Server"

    def connect(self, config: ConnectionConfig) -> None:
        try:
            import pyodbc
        except ImportError as exc:
            raise DriverNotInstalledError("mssql", self.pip_package) from exc

        self.timeout = config.timeout
        try:
            conn = pyodbc.connect(build_conn_string(config), autocommit=True, timeout=config.timeout)
            conn.timeout = config.timeout
        except Exception as exc:
            raise ConnectionFailedError(
                f"mssql connect: {exc}",
                details={"host": config.host, "port": config.port or DEFAULT_PORT},
            ) from exc
        self._conn = conn
        logger.debug("Connected to SQL Server %s/%s", config.host, config.database)

    def _foreign_key_query(self) -> Tuple[str, str]:
        # Composite keys pair columns by ordinal position.
        query = (
            "SELECT fk_kcu.TABLE_NAME AS source_table, fk_kcu.COLUMN_NAME AS source_column, "
            "pk_kcu.TABLE_NAME AS target_table, pk_kcu.COLUMN_NAME AS target_column "
            "FROM INFORMATION_SCHEMA.REFERENTIAL_CONSTRAINTS rc "
            "JOIN INFORMATION_SCHEMA.KEY_COLUMN_USAGE fk_kcu "
            "ON rc.CONSTRAINT_NAME = fk_kcu.CONSTRAINT_NAME "
            "AND rc.CONSTRAINT_SCHEMA = fk_kcu.CONSTRAINT_SCHEMA "
            "JOIN INFORMATION_SCHEMA.KEY_COLUMN_USAGE pk_kcu "
            "ON rc.UNIQUE_CONSTRAINT_NAME = pk_kcu.CONSTRAINT_NAME "
            "AND rc.UNIQUE_CONSTRAINT_SCHEMA = pk_kcu.CONSTRAINT_SCHEMA "
            "AND fk_kcu.ORDINAL_POSITION = pk_kcu.ORDINAL_POSITION "
            "WHERE rc.CONSTRAINT_SCHEMA = ?"
        )
        return query, "fk_kcu.TABLE_NAME"
