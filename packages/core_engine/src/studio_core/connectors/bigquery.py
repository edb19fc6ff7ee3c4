"""BigQuery inspector over the google-cloud-bigquery metadata API."""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Sequence

from studio_core.connectors.base import ConnectionConfig, Driver, SchemaInspector
from studio_core.errors import ConnectionFailedError, DriverNotInstalledError, IntrospectionError
from studio_core.importers import CELL_HEIGHT, CELL_WIDTH, GRID_COLUMNS
from studio_core.model import Field, Table, TableCatalog
from studio_core.typemap import normalize_type

logger = logging.getLogger(__name__)

AUTH_SERVICE_ACCOUNT = "service_account"
AUTH_ADC = "adc"


class BigQueryInspector(SchemaInspector):
    driver = Driver.BIGQUERY
    display_name = "Google BigQuery"
    required_package = "google.cloud.bigquery"
    pip_package = "google-cloud-bigquery"

    def __init__(self) -> None:
        self._client: Any = None
        self.project = ""
        self.timeout = 30

    def connect(self, config: ConnectionConfig) -> None:
        try:
            from google.cloud import bigquery
        except ImportError as exc:
            raise DriverNotInstalledError("bigquery", self.pip_package) from exc

        if not config.project:
            raise ConnectionFailedError("bigquery: project is required")

        mode = (config.bigquery_auth_mode or "").strip().lower()
        if mode == AUTH_SERVICE_ACCOUNT and not config.credentials_file:
            raise ConnectionFailedError("bigquery service account: credentials file is required")

        use_file = mode == AUTH_SERVICE_ACCOUNT or (mode != AUTH_ADC and bool(config.credentials_file))
        try:
            if use_file:
                client = bigquery.Client.from_service_account_json(config.credentials_file, project=config.project)
            else:
                # Application Default Credentials
                client = bigquery.Client(project=config.project)
        except Exception as exc:
            raise ConnectionFailedError(
                f"bigquery connect: {exc}",
                details={"project": config.project},
            ) from exc

        self._client = client
        self.project = config.project
        self.timeout = config.timeout
        logger.debug("Connected to BigQuery project %s", config.project)

    def close(self) -> None:
        if self._client is not None:
            client, self._client = self._client, None
            client.close()

    def _require_client(self) -> Any:
        if self._client is None:
            raise IntrospectionError("Google BigQuery: not connected")
        return self._client

    def list_schemas(self) -> List[str]:
        client = self._require_client()
        try:
            datasets = [ds.dataset_id for ds in client.list_datasets(timeout=self.timeout)]
        except Exception as exc:
            raise IntrospectionError(f"listing bigquery datasets: {exc}") from exc
        return sorted(datasets)

    def list_tables(self, schema_name: str) -> List[str]:
        client = self._require_client()
        try:
            tables = [
                tbl.table_id
                for tbl in client.list_tables(f"{self.project}.{schema_name}", timeout=self.timeout)
            ]
        except Exception as exc:
            raise IntrospectionError(f"listing bigquery tables: {exc}") from exc
        return sorted(tables)

    def inspect_schema(self, schema_name: str, table_names: Optional[Sequence[str]] = None) -> TableCatalog:
        """BigQuery has no foreign keys, so the catalog carries no relationships."""
        client = self._require_client()
        names = sorted(table_names) if table_names else self.list_tables(schema_name)

        catalog = TableCatalog(import_source=f"{self.project}.{schema_name} (BigQuery)")
        next_field = 0
        for index, table_name in enumerate(names):
            try:
                meta = client.get_table(f"{self.project}.{schema_name}.{table_name}", timeout=self.timeout * 2)
            except Exception as exc:
                raise IntrospectionError(f"inspecting bigquery table {table_name}: {exc}") from exc

            row, col = divmod(index, GRID_COLUMNS)
            table = Table(id=f"t{index + 1}", name=table_name, x=float(col * CELL_WIDTH), y=float(row * CELL_HEIGHT))
            for schema_field in meta.schema:
                next_field += 1
                raw_type = str(schema_field.field_type or "")
                norm = normalize_type(raw_type)
                field = Field(
                    id=f"f{next_field}",
                    name=schema_field.name,
                    type=norm.generic_type,
                    nullable=schema_field.mode != "REQUIRED",
                    length=norm.length,
                    precision=norm.precision,
                    scale=norm.scale,
                )
                raw = raw_type.strip().lower()
                if raw != norm.generic_type:
                    field.type_overrides["bigquery"] = raw
                table.fields.append(field)
            catalog.tables.append(table)

        logger.info("Inspected bigquery %s.%s: %d tables", self.project, schema_name, len(catalog.tables))
        return catalog
