"""Workspace files: a SQLite store holding the table catalog, diagrams,
connection profiles and UI state."""

from studio_core.workspace.db import (
    CURRENT_SCHEMA_VERSION,
    init_schema,
    migrate_schema,
    open_db,
    read_schema_version,
)
from studio_core.workspace.manager import WorkspaceManager
from studio_core.workspace.migrate import MigrationResult, migrate_from_folder
from studio_core.workspace.models import (
    CatalogField,
    CatalogFieldTypeOverride,
    CatalogRelationship,
    CatalogRelationshipField,
    CatalogTable,
    ConnectionProfile,
    Diagram,
    DiagramNote,
    DiagramRelationshipPlacement,
    DiagramSummary,
    DiagramTablePlacement,
    DiagramTextBlock,
    WorkspaceSettings,
)
from studio_core.workspace.repository import WorkspaceRepo

__all__ = [
    "CURRENT_SCHEMA_VERSION",
    "CatalogField",
    "CatalogFieldTypeOverride",
    "CatalogRelationship",
    "CatalogRelationshipField",
    "CatalogTable",
    "ConnectionProfile",
    "Diagram",
    "DiagramNote",
    "DiagramRelationshipPlacement",
    "DiagramSummary",
    "DiagramTablePlacement",
    "DiagramTextBlock",
    "MigrationResult",
    "WorkspaceManager",
    "WorkspaceRepo",
    "WorkspaceSettings",
    "init_schema",
    "migrate_from_folder",
    "migrate_schema",
    "open_db",
    "read_schema_version",
]
