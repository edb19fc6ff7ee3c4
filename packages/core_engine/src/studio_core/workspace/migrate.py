"""One-shot migration of a legacy JSON workspace folder into a workspace file.

The legacy folder holds ``workspace.config.json``, ``table_catalog.json``,
``catalog_relationships.json``, ``*.diagram`` files (in the root or in
``diagrams/``) and ``workspace.state``. Every item is attempted; problems are
collected on the result instead of aborting the run.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from studio_core.errors import WorkspaceError
from studio_core.typemap import dialect_names, is_generic_type, normalize_type
from studio_core.workspace.db import init_schema, open_db
from studio_core.workspace.models import (
    CatalogField,
    CatalogFieldTypeOverride,
    CatalogRelationship,
    CatalogRelationshipField,
    CatalogTable,
    Diagram,
    DiagramNote,
    DiagramRelationshipPlacement,
    DiagramTablePlacement,
    DiagramTextBlock,
    WorkspaceSettings,
)
from studio_core.workspace.repository import WorkspaceRepo

logger = logging.getLogger(__name__)

CONFIG_FILE = "workspace.config.json"
CATALOG_FILE = "table_catalog.json"
RELATIONSHIPS_FILE = "catalog_relationships.json"
STATE_FILE = "workspace.state"
DIAGRAM_SUFFIX = ".diagram"

UI_FLAG_KEYS = ("catalogOpen", "diagramsOpen", "settingsOpen")
UI_SCROLL_KEYS = ("sidebarScrollTop", "catalogContentScrollTop", "diagramsContentScrollTop")


@dataclass
class MigrationResult:
    tables_imported: int = 0
    diagrams_imported: int = 0
    relationships_imported: int = 0
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def warn(self, message: str) -> None:
        logger.warning("%s", message)
        self.warnings.append(message)

    def error(self, message: str) -> None:
        logger.error("%s", message)
        self.errors.append(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tablesImported": self.tables_imported,
            "diagramsImported": self.diagrams_imported,
            "relationshipsImported": self.relationships_imported,
            "warnings": list(self.warnings),
            "errors": list(self.errors),
        }


def _read_json(path: Path) -> Tuple[Any, Optional[str]]:
    """Return ``(data, None)``, or ``(None, reason)`` when the file cannot be parsed.

    A missing file raises ``FileNotFoundError`` so callers can tell it apart.
    """
    raw = path.read_bytes()
    try:
        return json.loads(raw.decode("utf-8")), None
    except UnicodeDecodeError as exc:
        return None, f"not valid UTF-8 ({exc.reason} at byte {exc.start})"
    except json.JSONDecodeError as exc:
        return None, str(exc)


def _scoped_id(diagram_id: str, raw_id: Any) -> str:
    # legacy diagrams reuse ids like t1/n1; store ids are global
    return f"{diagram_id}:{raw_id}"


def _opt_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _opt_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _float(value: Any, default: float = 0.0) -> float:
    parsed = _opt_float(value)
    return default if parsed is None else parsed


def migrate_field(raw: Dict[str, Any], table_id: str, sort_order: int, result: MigrationResult) -> CatalogField:
    """Convert a legacy field, normalizing its type and override dialects."""
    name = str(raw.get("name", ""))
    field_id = str(raw.get("id", ""))
    cf = CatalogField(
        id=field_id,
        table_id=table_id,
        name=name,
        type="string",
        nullable=bool(raw.get("nullable", False)),
        primary_key=bool(raw.get("primaryKey", False)),
        length=_opt_int(raw.get("length")),
        precision=_opt_int(raw.get("precision")),
        scale=_opt_int(raw.get("scale")),
        sort_order=sort_order,
    )

    raw_type = str(raw.get("type") or "")
    if is_generic_type(raw_type):
        cf.type = raw_type
    else:
        norm = normalize_type(raw_type)
        cf.type = norm.generic_type
        cf.length = cf.length if cf.length is not None else norm.length
        cf.precision = cf.precision if cf.precision is not None else norm.precision
        cf.scale = cf.scale if cf.scale is not None else norm.scale
        result.warn(f'field "{name}": type "{raw_type}" normalized to "{norm.generic_type}"')

    overrides = raw.get("typeOverrides") or {}
    if not isinstance(overrides, dict):
        result.warn(f'field "{name}": typeOverrides is not an object; ignored')
        overrides = {}
    known = set(dialect_names())
    seen = set()
    for dialect, override in overrides.items():
        dialect_key = str(dialect).lower()
        if dialect_key not in known:
            result.warn(f'field "{name}": unknown dialect "{dialect}" in type override')
            dialect_key = str(dialect)
        value = override.get("type") if isinstance(override, dict) else override
        override_type = str(value).strip() if value is not None else ""
        if not override_type:
            result.warn(f'field "{name}": empty type override for "{dialect}"; skipped')
            continue
        if dialect_key in seen:
            result.warn(f'field "{name}": duplicate type override for "{dialect_key}"; kept the first')
            continue
        seen.add(dialect_key)
        cf.type_overrides.append(CatalogFieldTypeOverride(field_id, dialect_key, override_type))

        # dimensions may only survive in the vendor type
        if cf.length is None and cf.precision is None:
            norm = normalize_type(override_type)
            cf.length = norm.length
            cf.precision = norm.precision
            if cf.scale is None:
                cf.scale = norm.scale
    return cf


class _FolderMigration:
    def __init__(self, root: Path, repo: WorkspaceRepo):
        self.root = root
        self.repo = repo
        self.result = MigrationResult()
        self.tables_by_id: Dict[str, CatalogTable] = {}
        self.relationship_ids: set = set()
        # "srcTable|srcField|tgtTable|tgtField" -> catalog relationship id
        self.auto_created: Dict[str, str] = {}

    def run(self) -> MigrationResult:
        self.migrate_config()
        self.migrate_catalog()
        self.migrate_relationships()
        self.refresh_indexes()
        for path in self.diagram_files():
            self.migrate_diagram(path)
        self.migrate_ui_state()
        return self.result

    def refresh_indexes(self) -> None:
        self.tables_by_id = {t.id: t for t in self.repo.list_catalog_tables()}
        self.relationship_ids = {r.id for r in self.repo.list_catalog_relationships()}

    # --- workspace.config.json ---

    def migrate_config(self) -> None:
        try:
            data, problem = _read_json(self.root / CONFIG_FILE)
        except OSError:
            self.result.warn(f"{CONFIG_FILE} not found; using defaults")
            return
        if problem is None and not isinstance(data, dict):
            problem = "expected a JSON object"
        if problem is not None:
            self.result.warn(f"{CONFIG_FILE} parse error: {problem}")
            return
        settings = WorkspaceSettings(
            name=str(data.get("name") or ""),
            description=str(data.get("description") or ""),
        )
        try:
            self.repo.save_all_settings(settings)
        except WorkspaceError as exc:
            self.result.error(f"save settings: {exc}")

    # --- table_catalog.json ---

    def migrate_catalog(self) -> None:
        try:
            data, problem = _read_json(self.root / CATALOG_FILE)
        except OSError:
            self.result.warn(f"{CATALOG_FILE} not found; skipping catalog import")
            return
        if problem is None and not isinstance(data, list):
            problem = "expected a JSON array"
        if problem is not None:
            self.result.error(f"{CATALOG_FILE} parse error: {problem}")
            return

        for index, raw in enumerate(data):
            if not isinstance(raw, dict):
                self.result.warn(f"{CATALOG_FILE}: entry {index} is not an object; skipped")
                continue
            table_id = str(raw.get("id", ""))
            table = CatalogTable(id=table_id, name=str(raw.get("name", "")), sort_order=index)
            for position, raw_field in enumerate(raw.get("fields") or []):
                if isinstance(raw_field, dict):
                    table.fields.append(migrate_field(raw_field, table_id, position, self.result))
            try:
                self.repo.save_catalog_table(table)
            except WorkspaceError as exc:
                self.result.error(f'save table "{table.name}": {exc}')
                continue
            self.result.tables_imported += 1

    # --- catalog_relationships.json ---

    def migrate_relationships(self) -> None:
        try:
            data, problem = _read_json(self.root / RELATIONSHIPS_FILE)
        except OSError:
            self.result.warn(f"{RELATIONSHIPS_FILE} not found; skipping relationships")
            return
        if problem is None and not isinstance(data, list):
            problem = "expected a JSON array"
        if problem is not None:
            self.result.error(f"{RELATIONSHIPS_FILE} parse error: {problem}")
            return

        self.refresh_indexes()
        for raw in data:
            if not isinstance(raw, dict):
                continue
            rel_id = str(raw.get("id", ""))
            src = self.tables_by_id.get(str(raw.get("sourceCatalogTableId", "")))
            tgt = self.tables_by_id.get(str(raw.get("targetCatalogTableId", "")))
            if src is None:
                self.result.warn(f"relationship {rel_id}: source table {raw.get('sourceCatalogTableId')} not found")
                continue
            if tgt is None:
                self.result.warn(f"relationship {rel_id}: target table {raw.get('targetCatalogTableId')} not found")
                continue

            src_name = str(raw.get("sourceFieldName", ""))
            tgt_name = str(raw.get("targetFieldName", ""))
            src_field = next((f.id for f in src.fields if f.name == src_name), "")
            tgt_field = next((f.id for f in tgt.fields if f.name == tgt_name), "")
            if not src_field:
                self.result.warn(f'relationship {rel_id}: source field "{src_name}" not found in table "{src.name}"')
            if not tgt_field:
                self.result.warn(f'relationship {rel_id}: target field "{tgt_name}" not found in table "{tgt.name}"')

            rel = CatalogRelationship(id=rel_id, source_table_id=src.id, target_table_id=tgt.id)
            if src_field and tgt_field:
                rel.fields = [CatalogRelationshipField(rel_id, src_field, tgt_field, 0)]
            try:
                self.repo.save_catalog_relationship(rel)
            except WorkspaceError as exc:
                self.result.error(f"save relationship {rel_id}: {exc}")
                continue
            self.result.relationships_imported += 1

    # --- *.diagram ---

    def diagram_files(self) -> List[Path]:
        return sorted(self.root.glob("*" + DIAGRAM_SUFFIX)) + sorted((self.root / "diagrams").glob("*" + DIAGRAM_SUFFIX))

    def migrate_diagram(self, path: Path) -> None:
        try:
            data, problem = _read_json(path)
        except OSError as exc:
            self.result.warn(f"cannot read {path.name}: {exc}")
            return
        if problem is None and not isinstance(data, dict):
            problem = "expected a JSON object"
        if problem is not None:
            self.result.warn(f"cannot parse {path.name}: {problem}")
            return

        name = path.stem
        diagram_id = "diag-" + name
        diagram = Diagram(id=diagram_id, name=name, version=_opt_int(data.get("version")) or 1)
        viewport = data.get("viewport")
        if isinstance(viewport, dict):
            diagram.viewport_zoom = _float(viewport.get("zoom"), 1.0)
            diagram.viewport_pan_x = _float(viewport.get("panX"))
            diagram.viewport_pan_y = _float(viewport.get("panY"))

        legacy_tables = [t for t in data.get("tables") or [] if isinstance(t, dict)]
        tables_by_diagram_id = {str(t.get("id", "")): t for t in legacy_tables}
        for t in legacy_tables:
            catalog_id = str(t.get("catalogTableId") or "")
            if not catalog_id:
                self.result.warn(f'diagram {name}: table "{t.get("name", "")}" has no catalog link; skipped')
                continue
            if catalog_id not in self.tables_by_id:
                self.result.warn(
                    f'diagram {name}: table "{t.get("name", "")}" references unknown catalog table {catalog_id}'
                )
                continue
            diagram.tables.append(
                DiagramTablePlacement(
                    _scoped_id(diagram_id, t.get("id", "")), diagram_id, catalog_id, _float(t.get("x")), _float(t.get("y"))
                )
            )

        placed = set()
        for r in data.get("relationships") or []:
            if not isinstance(r, dict):
                continue
            catalog_rel_id = self.resolve_relationship(name, r, tables_by_diagram_id)
            if catalog_rel_id in placed:
                self.result.warn(f"diagram {name}: relationship {r.get('id', '')} duplicates {catalog_rel_id}; skipped")
                continue
            if catalog_rel_id:
                placed.add(catalog_rel_id)
                diagram.relationships.append(
                    DiagramRelationshipPlacement(
                        _scoped_id(diagram_id, r.get("id", "")), diagram_id, catalog_rel_id, str(r.get("label") or "")
                    )
                )

        diagram.notes = [DiagramNote.from_dict(n, diagram_id) for n in data.get("notes") or [] if isinstance(n, dict)]
        diagram.text_blocks = [
            DiagramTextBlock.from_dict(b, diagram_id) for b in data.get("textBlocks") or [] if isinstance(b, dict)
        ]
        for item in diagram.notes + diagram.text_blocks:
            item.id = _scoped_id(diagram_id, item.id)

        try:
            self.repo.save_diagram(diagram)
        except WorkspaceError as exc:
            self.result.error(f'save diagram "{name}": {exc}')
            return
        self.result.diagrams_imported += 1

    def resolve_relationship(self, diagram_name: str, r: Dict[str, Any], tables_by_diagram_id: Dict[str, Dict[str, Any]]) -> str:
        """Return the catalog relationship id for a diagram relationship, creating one if unlinked."""
        rel_id = str(r.get("id", ""))
        linked = str(r.get("catalogRelationshipId") or "")
        if linked:
            if linked not in self.relationship_ids:
                self.result.warn(
                    f"diagram {diagram_name}: relationship {rel_id} references unknown catalog relationship {linked}"
                )
                return ""
            return linked

        src_table = tables_by_diagram_id.get(str(r.get("sourceTableId", "")))
        tgt_table = tables_by_diagram_id.get(str(r.get("targetTableId", "")))
        if src_table is None or tgt_table is None:
            self.result.warn(f"diagram {diagram_name}: relationship {rel_id} references unknown diagram table(s); skipped")
            return ""
        src_catalog_id = str(src_table.get("catalogTableId") or "")
        tgt_catalog_id = str(tgt_table.get("catalogTableId") or "")
        if not src_catalog_id or not tgt_catalog_id:
            self.result.warn(
                f"diagram {diagram_name}: relationship {rel_id}: source/target table(s) have no catalog link; skipped"
            )
            return ""
        src_catalog = self.tables_by_id.get(src_catalog_id)
        tgt_catalog = self.tables_by_id.get(tgt_catalog_id)
        if src_catalog is None or tgt_catalog is None:
            self.result.warn(f"diagram {diagram_name}: relationship {rel_id}: catalog table(s) not found; skipped")
            return ""

        # linked diagram tables share field ids with their catalog table
        src_field = str(r.get("sourceFieldId", ""))
        tgt_field = str(r.get("targetFieldId", ""))
        key = "|".join((src_catalog_id, src_field, tgt_catalog_id, tgt_field))
        if key in self.auto_created:
            return self.auto_created[key]

        catalog_rel_id = "catrel-" + rel_id
        if catalog_rel_id in self.relationship_ids:
            catalog_rel_id = f"catrel-{diagram_name}-{rel_id}"
        rel = CatalogRelationship(
            id=catalog_rel_id,
            source_table_id=src_catalog_id,
            target_table_id=tgt_catalog_id,
            name=str(r.get("name") or ""),
            note=str(r.get("note") or ""),
            cardinality=str(r.get("cardinality") or ""),
        )
        src_ok = any(f.id == src_field for f in src_catalog.fields)
        tgt_ok = any(f.id == tgt_field for f in tgt_catalog.fields)
        if src_ok and tgt_ok:
            rel.fields = [CatalogRelationshipField(catalog_rel_id, src_field, tgt_field, 0)]
        if not src_ok:
            self.result.warn(
                f'diagram {diagram_name}: relationship {rel_id}: source field {src_field} '
                f'not found in catalog table "{src_catalog.name}"'
            )
        if not tgt_ok:
            self.result.warn(
                f'diagram {diagram_name}: relationship {rel_id}: target field {tgt_field} '
                f'not found in catalog table "{tgt_catalog.name}"'
            )

        try:
            self.repo.save_catalog_relationship(rel)
        except WorkspaceError as exc:
            self.result.error(
                f"auto-create catalog relationship for diagram {diagram_name} rel {rel_id}: {exc}"
            )
            return ""
        self.auto_created[key] = catalog_rel_id
        self.relationship_ids.add(catalog_rel_id)
        self.result.relationships_imported += 1
        return catalog_rel_id

    # --- workspace.state ---

    def migrate_ui_state(self) -> None:
        try:
            data, problem = _read_json(self.root / STATE_FILE)
        except OSError:
            return
        if problem is not None or not isinstance(data, dict):
            self.result.warn(f"{STATE_FILE} could not be parsed; UI state not migrated")
            return

        state: Dict[str, str] = {}
        for key in UI_FLAG_KEYS:
            if isinstance(data.get(key), bool):
                state[key] = "true" if data[key] else "false"
        for key in UI_SCROLL_KEYS:
            value = _opt_float(data.get(key))
            if value is not None:
                state[key] = f"{value:.0f}"
        try:
            self.repo.save_ui_state(state)
        except WorkspaceError as exc:
            self.result.error(f"save ui state: {exc}")


def migrate_from_folder(old_root: Union[str, Path], new_file: Union[str, Path]) -> MigrationResult:
    """Copy a legacy workspace folder into a new workspace file.

    Raises ``WorkspaceError`` only when the new file cannot be created.
    """
    conn = open_db(new_file)
    try:
        init_schema(conn)
    except WorkspaceError:
        conn.close()
        raise
    repo = WorkspaceRepo(conn, str(new_file))
    try:
        result = _FolderMigration(Path(old_root), repo).run()
    finally:
        repo.close()
    logger.info(
        "Migrated %s: %d tables, %d relationships, %d diagrams",
        old_root, result.tables_imported, result.relationships_imported, result.diagrams_imported,
    )
    return result
