"""MySQL / MariaDB inspector over mysql-connector-python."""

from __future__ import annotations

import logging
from typing import Tuple

from studio_core.connectors.base import ConnectionConfig, Driver, InformationSchemaInspector
from studio_core.errors import ConnectionFailedError, DriverNotInstalledError

logger = logging.getLogger(__name__)

DEFAULT_PORT = 3306


class MySQLInspector(InformationSchemaInspector):
    driver = Driver.MYSQL
    display_name = "MySQL"
    required_package = "mysql.connector"
    pip_package = "mysql-connector-python"
    placeholder = "%s"
    system_schemas = ("information_schema", "mysql", "performance_schema", "sys")
    source_label = "MySQL"

    def connect(self, config: ConnectionConfig) -> None:
        try:
            import mysql.connector
        except ImportError as exc:
            raise DriverNotInstalledError("mysql", self.pip_package) from exc

        self.timeout = config.timeout
        port = config.port or DEFAULT_PORT
        kwargs = {
            "host": config.host,
            "port": port,
            "database": config.database,
            "user": config.username,
            "password": config.password,
            "connection_timeout": config.timeout,
        }
        if config.ssl_mode in ("disable", "none"):
            kwargs["ssl_disabled"] = True
        try:
            self._conn = mysql.connector.connect(**kwargs)
        except Exception as exc:
            raise ConnectionFailedError(
                f"mysql connect: {exc}",
                details={"host": config.host, "port": port},
            ) from exc
        self._limit_statement_time()
        logger.debug("Connected to MySQL %s:%s/%s", config.host, port, config.database)

    def _limit_statement_time(self) -> None:
        """Bound each catalog query by ``self.timeout`` for the rest of the session."""
        cur = self._conn.cursor()
        try:
            cur.execute(f"SET SESSION MAX_EXECUTION_TIME = {int(self.timeout) * 1000}")
        except Exception as exc:
            # MariaDB names this variable max_statement_time (seconds)
            logger.debug("MAX_EXECUTION_TIME rejected (%s); trying max_statement_time", exc)
            try:
                cur.execute(f"SET SESSION max_statement_time = {int(self.timeout)}")
            except Exception as inner:
                logger.warning("MySQL: cannot set a statement timeout: %s", inner)
        finally:
            cur.close()

    def _foreign_key_query(self) -> Tuple[str, str]:
        query = (
            "SELECT kcu.TABLE_NAME AS source_table, kcu.COLUMN_NAME AS source_column, "
            "kcu.REFERENCED_TABLE_NAME AS target_table, kcu.REFERENCED_COLUMN_NAME AS target_column "
            "FROM information_schema.KEY_COLUMN_USAGE kcu "
            "WHERE kcu.TABLE_SCHEMA = %s "
            "AND kcu.REFERENCED_TABLE_NAME IS NOT NULL"
        )
        return query, "kcu.TABLE_NAME"
