from studio_core.connectors.base import (
    ConnectionConfig,
    Driver,
    build_catalog,
    list_drivers,
    new_inspector,
    test_connection,
)
from studio_core.errors import StudioError
from studio_core.exporters import (
    CreationMode,
    export_bigquery,
    export_mermaid,
    export_plantuml,
    export_relational,
    export_sql,
)
from studio_core.importers import import_csv, import_mermaid, import_sql_ddl
from studio_core.issues import Issue, has_errors, to_lines
from studio_core.loader import load_json_document, load_yaml_profiles, profile_to_config
from studio_core.model import (
    Cardinality,
    Diagram,
    Field,
    Relationship,
    Table,
    TableCatalog,
    Viewport,
)
from studio_core.schema import bundled_schema, load_schema, schema_issues
from studio_core.typemap import GENERIC_TYPES, Dialect, normalize_type, resolve_export_type
from studio_core.workspace import WorkspaceManager, WorkspaceRepo, migrate_from_folder

__all__ = [
    "build_catalog",
    "bundled_schema",
    "Cardinality",
    "ConnectionConfig",
    "CreationMode",
    "Diagram",
    "Dialect",
    "Driver",
    "export_bigquery",
    "export_mermaid",
    "export_plantuml",
    "export_relational",
    "export_sql",
    "Field",
    "GENERIC_TYPES",
    "has_errors",
    "import_csv",
    "import_mermaid",
    "import_sql_ddl",
    "Issue",
    "list_drivers",
    "load_json_document",
    "load_schema",
    "load_yaml_profiles",
    "migrate_from_folder",
    "new_inspector",
    "normalize_type",
    "profile_to_config",
    "Relationship",
    "resolve_export_type",
    "schema_issues",
    "StudioError",
    "Table",
    "TableCatalog",
    "test_connection",
    "to_lines",
    "Viewport",
    "WorkspaceManager",
    "WorkspaceRepo",
]
