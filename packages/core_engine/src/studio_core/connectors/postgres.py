"""PostgreSQL inspector over psycopg2."""

from __future__ import annotations

import logging
from typing import Tuple

from studio_core.connectors.base import ConnectionConfig, Driver, InformationSchemaInspector
from studio_core.errors import ConnectionFailedError, DriverNotInstalledError

logger = logging.getLogger(__name__)

DEFAULT_PORT = 5432


class PostgresInspector(InformationSchemaInspector):
    driver = Driver.POSTGRES
    display_name = "PostgreSQL"
    required_package = "psycopg2"
    pip_package = "psycopg2-binary"
    placeholder = "%s"
    system_schemas = ("information_schema", "pg_catalog", "pg_toast", "pg_temp_1", "pg_toast_temp_1")
    source_label = "PostgreSQL"

    def connect(self, config: ConnectionConfig) -> None:
        try:
            import psycopg2
        except ImportError as exc:
            raise DriverNotInstalledError("postgres", self.pip_package) from exc

        self.timeout = config.timeout
        port = config.port or DEFAULT_PORT
        try:
            self._conn = psycopg2.connect(
                host=config.host,
                port=port,
                dbname=config.database,
                user=config.username,
                password=config.password,
                sslmode=config.ssl_mode or "prefer",
                connect_timeout=config.timeout,
                options=f"-c statement_timeout={config.timeout * 1000}",
            )
        except Exception as exc:
            raise ConnectionFailedError(
                f"postgres connect: {exc}",
                details={"host": config.host, "port": port},
            ) from exc
        logger.debug("Connected to PostgreSQL %s:%s/%s", config.host, port, config.database)

    def _foreign_key_query(self) -> Tuple[str, str]:
        query = (
            "SELECT kcu.table_name AS source_table, kcu.column_name AS source_column, "
            "ccu.table_name AS target_table, ccu.column_name AS target_column "
            "FROM information_schema.table_constraints tc "
            "JOIN information_schema.key_column_usage kcu "
            "ON tc.constraint_name = kcu.constraint_name "
            "AND tc.table_schema = kcu.table_schema "
            "JOIN information_schema.constraint_column_usage ccu "
            "ON tc.constraint_name = ccu.constraint_name "
            "AND tc.table_schema = ccu.table_schema "
            "WHERE tc.table_schema = %s "
            "AND tc.constraint_type = 'FOREIGN KEY'"
        )
        return query, "kcu.table_name"
