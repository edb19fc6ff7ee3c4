"""CRUD access to one workspace file.

Saves that own child rows (a table's fields, a relationship's field pairs,
a diagram's placements) delete and re-insert all children in the same
transaction as the parent upsert.
"""

import logging
import sqlite3
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence

from studio_core.errors import WorkspaceError
from studio_core.model import TableCatalog
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

logger = logging.getLogger(__name__)

_UPSERT_SETTING = (
    "INSERT INTO workspace_settings (key, value) VALUES (?, ?) "
    "ON CONFLICT(key) DO UPDATE SET value = excluded.value"
)
_INSERT_OVERRIDE = "INSERT INTO catalog_field_type_overrides (field_id, dialect, type_override) VALUES (?, ?, ?)"


def _null_if_empty(value: Optional[str]) -> Optional[str]:
    return value if value else None


def _new_id() -> str:
    return str(uuid.uuid4())


class WorkspaceRepo:
    def __init__(self, conn: sqlite3.Connection, file_path: str = ""):
        self._conn = conn
        self._file_path = file_path

    @property
    def file_path(self) -> str:
        return self._file_path

    def close(self) -> None:
        self._conn.close()

    @contextmanager
    def _transaction(self, what: str) -> Iterator[sqlite3.Connection]:
        try:
            with self._conn:
                yield self._conn
        except sqlite3.Error as exc:
            raise WorkspaceError(f"{what}: {exc}") from exc

    def _rows(self, what: str, query: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        try:
            return self._conn.execute(query, tuple(params)).fetchall()
        except sqlite3.Error as exc:
            raise WorkspaceError(f"{what}: {exc}") from exc

    # --- Settings ---

    def get_setting(self, key: str) -> str:
        rows = self._rows("get setting", "SELECT value FROM workspace_settings WHERE key = ?", [key])
        return rows[0]["value"] if rows else ""

    def set_setting(self, key: str, value: str) -> None:
        with self._transaction("set setting") as conn:
            conn.execute(_UPSERT_SETTING, (key, value))

    def get_all_settings(self) -> WorkspaceSettings:
        values = {row["key"]: row["value"] for row in self._rows("get settings", "SELECT key, value FROM workspace_settings")}
        return WorkspaceSettings(
            name=values.get("name", ""),
            description=values.get("description", ""),
            notation_style=values.get("notation_style", ""),
        )

    def save_all_settings(self, settings: WorkspaceSettings) -> None:
        with self._transaction("save settings") as conn:
            conn.execute(_UPSERT_SETTING, ("name", settings.name))
            conn.execute(_UPSERT_SETTING, ("description", settings.description))
            conn.execute(_UPSERT_SETTING, ("notation_style", settings.notation_style))

    # --- Catalog tables ---

    def list_catalog_tables(self) -> List[CatalogTable]:
        rows = self._rows("list tables", "SELECT id, name, sort_order FROM catalog_tables ORDER BY sort_order, name")
        return [
            CatalogTable(
                id=row["id"],
                name=row["name"],
                sort_order=row["sort_order"],
                fields=self.get_fields_for_table(row["id"]),
            )
            for row in rows
        ]

    def get_catalog_table(self, table_id: str) -> Optional[CatalogTable]:
        rows = self._rows("get table", "SELECT id, name, sort_order FROM catalog_tables WHERE id = ?", [table_id])
        if not rows:
            return None
        row = rows[0]
        return CatalogTable(
            id=row["id"],
            name=row["name"],
            sort_order=row["sort_order"],
            fields=self.get_fields_for_table(row["id"]),
        )

    def _write_table(self, conn: sqlite3.Connection, table: CatalogTable) -> None:
        conn.execute(
            "INSERT INTO catalog_tables (id, name, sort_order, updated_at) VALUES (?, ?, ?, datetime('now')) "
            "ON CONFLICT(id) DO UPDATE SET name = excluded.name, sort_order = excluded.sort_order, "
            "updated_at = datetime('now')",
            (table.id, table.name, table.sort_order),
        )
        # cascades to overrides, relationship field pairs and nothing else
        conn.execute("DELETE FROM catalog_fields WHERE table_id = ?", (table.id,))
        for f in table.fields:
            conn.execute(
                "INSERT INTO catalog_fields "
                "(id, table_id, name, type, nullable, primary_key, length, precision, scale, sort_order) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (f.id, table.id, f.name, f.type, int(f.nullable), int(f.primary_key),
                 f.length, f.precision, f.scale, f.sort_order),
            )
            for o in f.type_overrides:
                conn.execute(_INSERT_OVERRIDE, (f.id, o.dialect, o.type_override))

    def save_catalog_table(self, table: CatalogTable) -> None:
        """Upsert ``table`` and replace all of its fields and overrides."""
        with self._transaction(f"save table {table.id}") as conn:
            self._write_table(conn, table)

    def delete_catalog_table(self, table_id: str) -> None:
        with self._transaction(f"delete table {table_id}") as conn:
            conn.execute("DELETE FROM catalog_tables WHERE id = ?", (table_id,))

    # --- Catalog fields ---

    def get_fields_for_table(self, table_id: str) -> List[CatalogField]:
        rows = self._rows(
            "get fields",
            "SELECT id, table_id, name, type, nullable, primary_key, length, precision, scale, sort_order "
            "FROM catalog_fields WHERE table_id = ? ORDER BY sort_order",
            [table_id],
        )
        return [
            CatalogField(
                id=row["id"],
                table_id=row["table_id"],
                name=row["name"],
                type=row["type"],
                nullable=bool(row["nullable"]),
                primary_key=bool(row["primary_key"]),
                length=row["length"],
                precision=row["precision"],
                scale=row["scale"],
                sort_order=row["sort_order"],
                type_overrides=self.get_type_overrides(row["id"]),
            )
            for row in rows
        ]

    def save_field(self, f: CatalogField) -> None:
        with self._transaction(f"save field {f.id}") as conn:
            conn.execute(
                "INSERT INTO catalog_fields "
                "(id, table_id, name, type, nullable, primary_key, length, precision, scale, sort_order) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(id) DO UPDATE SET name = excluded.name, type = excluded.type, "
                "nullable = excluded.nullable, primary_key = excluded.primary_key, length = excluded.length, "
                "precision = excluded.precision, scale = excluded.scale, sort_order = excluded.sort_order",
                (f.id, f.table_id, f.name, f.type, int(f.nullable), int(f.primary_key),
                 f.length, f.precision, f.scale, f.sort_order),
            )
            conn.execute("DELETE FROM catalog_field_type_overrides WHERE field_id = ?", (f.id,))
            for o in f.type_overrides:
                conn.execute(_INSERT_OVERRIDE, (f.id, o.dialect, o.type_override))

    def delete_field(self, field_id: str) -> None:
        with self._transaction(f"delete field {field_id}") as conn:
            conn.execute("DELETE FROM catalog_fields WHERE id = ?", (field_id,))

    # --- Type overrides ---

    def get_type_overrides(self, field_id: str) -> List[CatalogFieldTypeOverride]:
        rows = self._rows(
            "get type overrides",
            "SELECT field_id, dialect, type_override FROM catalog_field_type_overrides "
            "WHERE field_id = ? ORDER BY dialect",
            [field_id],
        )
        return [CatalogFieldTypeOverride(row["field_id"], row["dialect"], row["type_override"]) for row in rows]

    def set_type_override(self, field_id: str, dialect: str, type_override: str) -> None:
        with self._transaction("set type override") as conn:
            conn.execute(
                "INSERT INTO catalog_field_type_overrides (field_id, dialect, type_override) VALUES (?, ?, ?) "
                "ON CONFLICT(field_id, dialect) DO UPDATE SET type_override = excluded.type_override",
                (field_id, dialect, type_override),
            )

    # --- Catalog relationships ---

    def list_catalog_relationships(self) -> List[CatalogRelationship]:
        rows = self._rows(
            "list relationships",
            "SELECT id, source_table_id, target_table_id, name, note, cardinality FROM catalog_relationships",
        )
        return [
            CatalogRelationship(
                id=row["id"],
                source_table_id=row["source_table_id"],
                target_table_id=row["target_table_id"],
                name=row["name"] or "",
                note=row["note"] or "",
                cardinality=row["cardinality"] or "",
                fields=self._relationship_fields(row["id"]),
            )
            for row in rows
        ]

    def _relationship_fields(self, relationship_id: str) -> List[CatalogRelationshipField]:
        rows = self._rows(
            "get relationship fields",
            "SELECT relationship_id, source_field_id, target_field_id, sort_order "
            "FROM catalog_relationship_fields WHERE relationship_id = ? ORDER BY sort_order",
            [relationship_id],
        )
        return [
            CatalogRelationshipField(row["relationship_id"], row["source_field_id"], row["target_field_id"], row["sort_order"])
            for row in rows
        ]

    def _write_relationship(self, conn: sqlite3.Connection, rel: CatalogRelationship) -> None:
        conn.execute(
            "INSERT INTO catalog_relationships (id, source_table_id, target_table_id, name, note, cardinality) "
            "VALUES (?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(id) DO UPDATE SET source_table_id = excluded.source_table_id, "
            "target_table_id = excluded.target_table_id, name = excluded.name, note = excluded.note, "
            "cardinality = excluded.cardinality",
            (rel.id, rel.source_table_id, rel.target_table_id,
             _null_if_empty(rel.name), _null_if_empty(rel.note), _null_if_empty(rel.cardinality)),
        )
        conn.execute("DELETE FROM catalog_relationship_fields WHERE relationship_id = ?", (rel.id,))
        for pair in rel.fields:
            conn.execute(
                "INSERT INTO catalog_relationship_fields (relationship_id, source_field_id, target_field_id, sort_order) "
                "VALUES (?, ?, ?, ?)",
                (rel.id, pair.source_field_id, pair.target_field_id, pair.sort_order),
            )

    def save_catalog_relationship(self, rel: CatalogRelationship) -> None:
        with self._transaction(f"save relationship {rel.id}") as conn:
            self._write_relationship(conn, rel)

    def delete_catalog_relationship(self, relationship_id: str) -> None:
        with self._transaction(f"delete relationship {relationship_id}") as conn:
            conn.execute("DELETE FROM catalog_relationships WHERE id = ?", (relationship_id,))

    # --- Diagrams ---

    def list_diagrams(self) -> List[DiagramSummary]:
        rows = self._rows("list diagrams", "SELECT id, name FROM diagrams ORDER BY name")
        return [DiagramSummary(row["id"], row["name"]) for row in rows]

    def get_diagram(self, diagram_id: str) -> Optional[Diagram]:
        rows = self._rows(
            "get diagram",
            "SELECT id, name, version, viewport_zoom, viewport_pan_x, viewport_pan_y FROM diagrams WHERE id = ?",
            [diagram_id],
        )
        if not rows:
            return None
        row = rows[0]
        diagram = Diagram(
            id=row["id"],
            name=row["name"],
            version=row["version"],
            viewport_zoom=row["viewport_zoom"] if row["viewport_zoom"] is not None else 1.0,
            viewport_pan_x=row["viewport_pan_x"] or 0.0,
            viewport_pan_y=row["viewport_pan_y"] or 0.0,
        )
        diagram.tables = [
            DiagramTablePlacement(r["id"], r["diagram_id"], r["catalog_table_id"], r["x"], r["y"])
            for r in self._rows(
                "get table placements",
                "SELECT id, diagram_id, catalog_table_id, x, y FROM diagram_table_placements WHERE diagram_id = ?",
                [diagram_id],
            )
        ]
        diagram.relationships = [
            DiagramRelationshipPlacement(r["id"], r["diagram_id"], r["catalog_relationship_id"], r["label"] or "")
            for r in self._rows(
                "get relationship placements",
                "SELECT id, diagram_id, catalog_relationship_id, label "
                "FROM diagram_relationship_placements WHERE diagram_id = ?",
                [diagram_id],
            )
        ]
        diagram.notes = [
            DiagramNote(r["id"], r["diagram_id"], r["x"], r["y"], r["text"], r["width"], r["height"])
            for r in self._rows(
                "get notes",
                "SELECT id, diagram_id, x, y, text, width, height FROM diagram_notes WHERE diagram_id = ?",
                [diagram_id],
            )
        ]
        diagram.text_blocks = [
            DiagramTextBlock(
                r["id"], r["diagram_id"], r["x"], r["y"], r["text"],
                r["width"], r["height"], r["font_size"], bool(r["use_markdown"]),
            )
            for r in self._rows(
                "get text blocks",
                "SELECT id, diagram_id, x, y, text, width, height, font_size, use_markdown "
                "FROM diagram_text_blocks WHERE diagram_id = ?",
                [diagram_id],
            )
        ]
        return diagram

    def save_diagram(self, diagram: Diagram) -> None:
        """Upsert the diagram header and replace every placement, note and text block."""
        with self._transaction(f"save diagram {diagram.id}") as conn:
            conn.execute(
                "INSERT INTO diagrams (id, name, version, viewport_zoom, viewport_pan_x, viewport_pan_y, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, datetime('now')) "
                "ON CONFLICT(id) DO UPDATE SET name = excluded.name, version = excluded.version, "
                "viewport_zoom = excluded.viewport_zoom, viewport_pan_x = excluded.viewport_pan_x, "
                "viewport_pan_y = excluded.viewport_pan_y, updated_at = datetime('now')",
                (diagram.id, diagram.name, diagram.version,
                 diagram.viewport_zoom, diagram.viewport_pan_x, diagram.viewport_pan_y),
            )

            conn.execute("DELETE FROM diagram_table_placements WHERE diagram_id = ?", (diagram.id,))
            for tp in diagram.tables:
                conn.execute(
                    "INSERT INTO diagram_table_placements (id, diagram_id, catalog_table_id, x, y) VALUES (?, ?, ?, ?, ?)",
                    (tp.id, diagram.id, tp.catalog_table_id, tp.x, tp.y),
                )

            conn.execute("DELETE FROM diagram_relationship_placements WHERE diagram_id = ?", (diagram.id,))
            for rp in diagram.relationships:
                conn.execute(
                    "INSERT INTO diagram_relationship_placements (id, diagram_id, catalog_relationship_id, label) "
                    "VALUES (?, ?, ?, ?)",
                    (rp.id, diagram.id, rp.catalog_relationship_id, _null_if_empty(rp.label)),
                )

            conn.execute("DELETE FROM diagram_notes WHERE diagram_id = ?", (diagram.id,))
            for n in diagram.notes:
                conn.execute(
                    "INSERT INTO diagram_notes (id, diagram_id, x, y, text, width, height) VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (n.id, diagram.id, n.x, n.y, n.text, n.width, n.height),
                )

            conn.execute("DELETE FROM diagram_text_blocks WHERE diagram_id = ?", (diagram.id,))
            for tb in diagram.text_blocks:
                conn.execute(
                    "INSERT INTO diagram_text_blocks "
                    "(id, diagram_id, x, y, text, width, height, font_size, use_markdown) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (tb.id, diagram.id, tb.x, tb.y, tb.text, tb.width, tb.height, tb.font_size, int(tb.use_markdown)),
                )

    def delete_diagram(self, diagram_id: str) -> None:
        with self._transaction(f"delete diagram {diagram_id}") as conn:
            conn.execute("DELETE FROM diagrams WHERE id = ?", (diagram_id,))

    # --- Connection profiles ---

    def list_connection_profiles(self) -> List[ConnectionProfile]:
        rows = self._rows(
            "list connection profiles",
            "SELECT id, name, driver, host, port, database_name, username, ssl_mode, "
            "project, dataset, credentials_file, bigquery_auth_mode "
            "FROM connection_profiles ORDER BY name",
        )
        return [
            ConnectionProfile(
                id=row["id"],
                name=row["name"],
                driver=row["driver"],
                host=row["host"] or "",
                port=row["port"],
                database_name=row["database_name"] or "",
                username=row["username"] or "",
                ssl_mode=row["ssl_mode"] or "",
                project=row["project"] or "",
                dataset=row["dataset"] or "",
                credentials_file=row["credentials_file"] or "",
                bigquery_auth_mode=row["bigquery_auth_mode"] or "",
            )
            for row in rows
        ]

    def save_connection_profile(self, p: ConnectionProfile) -> None:
        with self._transaction(f"save connection profile {p.name}") as conn:
            conn.execute(
                "INSERT INTO connection_profiles (id, name, driver, host, port, database_name, username, ssl_mode, "
                "project, dataset, credentials_file, bigquery_auth_mode, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, datetime('now')) "
                "ON CONFLICT(id) DO UPDATE SET name = excluded.name, driver = excluded.driver, "
                "host = excluded.host, port = excluded.port, database_name = excluded.database_name, "
                "username = excluded.username, ssl_mode = excluded.ssl_mode, project = excluded.project, "
                "dataset = excluded.dataset, credentials_file = excluded.credentials_file, "
                "bigquery_auth_mode = excluded.bigquery_auth_mode, updated_at = datetime('now')",
                (p.id, p.name, p.driver,
                 _null_if_empty(p.host), p.port, _null_if_empty(p.database_name),
                 _null_if_empty(p.username), _null_if_empty(p.ssl_mode),
                 _null_if_empty(p.project), _null_if_empty(p.dataset),
                 _null_if_empty(p.credentials_file), _null_if_empty(p.bigquery_auth_mode)),
            )

    def delete_connection_profile(self, profile_id: str) -> None:
        with self._transaction(f"delete connection profile {profile_id}") as conn:
            conn.execute("DELETE FROM connection_profiles WHERE id = ?", (profile_id,))

    # --- UI state ---

    def get_ui_state(self) -> Dict[str, str]:
        return {row["key"]: row["value"] for row in self._rows("get ui state", "SELECT key, value FROM ui_state")}

    def save_ui_state(self, state: Dict[str, str]) -> None:
        """Replace all UI state keys."""
        with self._transaction("save ui state") as conn:
            conn.execute("DELETE FROM ui_state")
            for key, value in state.items():
                conn.execute("INSERT INTO ui_state (key, value) VALUES (?, ?)", (key, value))

    # --- Import ---

    def merge_catalog(self, catalog: TableCatalog) -> Dict[str, str]:
        """Append an imported catalog under fresh ids.

        Tables are placed after the existing ones. Relationships whose
        endpoints are not part of ``catalog`` are skipped. Returns the map
        from the catalog's table ids to the new catalog table ids.
        """
        rows = self._rows("read sort order", "SELECT COALESCE(MAX(sort_order), -1) AS top FROM catalog_tables")
        next_order = int(rows[0]["top"]) + 1

        table_ids: Dict[str, str] = {}
        field_ids: Dict[str, str] = {}
        tables: List[CatalogTable] = []
        for offset, table in enumerate(catalog.tables):
            new_table_id = _new_id()
            table_ids[table.id] = new_table_id
            fields: List[CatalogField] = []
            for position, f in enumerate(table.fields):
                new_field_id = _new_id()
                field_ids[f.id] = new_field_id
                fields.append(
                    CatalogField(
                        id=new_field_id,
                        table_id=new_table_id,
                        name=f.name,
                        type=f.type,
                        nullable=f.nullable,
                        primary_key=f.primary_key,
                        length=f.length,
                        precision=f.precision,
                        scale=f.scale,
                        sort_order=position,
                        type_overrides=[
                            CatalogFieldTypeOverride(new_field_id, dialect, raw)
                            for dialect, raw in sorted(f.type_overrides.items())
                        ],
                    )
                )
            tables.append(CatalogTable(id=new_table_id, name=table.name, sort_order=next_order + offset, fields=fields))

        relationships: List[CatalogRelationship] = []
        for rel in catalog.relationships:
            src_table = table_ids.get(rel.source_table_id)
            tgt_table = table_ids.get(rel.target_table_id)
            pairs = list(zip(rel.source_fields(), rel.target_fields()))
            if not src_table or not tgt_table or any(s not in field_ids or t not in field_ids for s, t in pairs):
                logger.warning("Skipping relationship %s: endpoint not in imported catalog", rel.id)
                continue
            new_rel_id = _new_id()
            relationships.append(
                CatalogRelationship(
                    id=new_rel_id,
                    source_table_id=src_table,
                    target_table_id=tgt_table,
                    name=rel.name,
                    note=rel.note,
                    cardinality=rel.cardinality,
                    fields=[
                        CatalogRelationshipField(new_rel_id, field_ids[s], field_ids[t], order)
                        for order, (s, t) in enumerate(pairs)
                    ],
                )
            )

        with self._transaction("merge catalog") as conn:
            for table in tables:
                self._write_table(conn, table)
            for rel in relationships:
                self._write_relationship(conn, rel)
        logger.info(
            "Merged %d tables and %d relationships from %s",
            len(tables), len(relationships), catalog.import_source or "import",
        )
        return table_ids
