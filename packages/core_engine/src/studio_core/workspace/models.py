"""Persistent workspace entities.

Diagrams here never carry table or field data. They only place catalog tables
and catalog relationships by id.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


def _opt_int(value: Any) -> Optional[int]:
    return None if value is None or value == "" else int(value)


def _opt_float(value: Any) -> Optional[float]:
    return None if value is None or value == "" else float(value)


def _drop_empty(out: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in out.items() if v not in (None, "", [], False)}


@dataclass
class WorkspaceSettings:
    name: str = ""
    description: str = ""
    notation_style: str = ""

    def to_dict(self) -> Dict[str, Any]:
        out = {"name": self.name}
        out.update(_drop_empty({"description": self.description, "notationStyle": self.notation_style}))
        return out


@dataclass
class CatalogFieldTypeOverride:
    field_id: str
    dialect: str
    type_override: str

    def to_dict(self) -> Dict[str, Any]:
        return {"fieldId": self.field_id, "dialect": self.dialect, "typeOverride": self.type_override}


@dataclass
class CatalogField:
    id: str
    table_id: str
    name: str
    type: str
    nullable: bool = False
    primary_key: bool = False
    length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    sort_order: int = 0
    type_overrides: List[CatalogFieldTypeOverride] = field(default_factory=list)

    def override_map(self) -> Dict[str, str]:
        return {o.dialect: o.type_override for o in self.type_overrides}

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "id": self.id,
            "tableId": self.table_id,
            "name": self.name,
            "type": self.type,
            "sortOrder": self.sort_order,
        }
        out.update(_drop_empty({
            "nullable": self.nullable,
            "primaryKey": self.primary_key,
            "length": self.length,
            "precision": self.precision,
            "scale": self.scale,
            "typeOverrides": [o.to_dict() for o in self.type_overrides],
        }))
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CatalogField":
        field_id = str(data.get("id", ""))
        return cls(
            id=field_id,
            table_id=str(data.get("tableId", "")),
            name=str(data.get("name", "")),
            type=str(data.get("type") or "string"),
            nullable=bool(data.get("nullable", False)),
            primary_key=bool(data.get("primaryKey", False)),
            length=_opt_int(data.get("length")),
            precision=_opt_int(data.get("precision")),
            scale=_opt_int(data.get("scale")),
            sort_order=int(data.get("sortOrder") or 0),
            type_overrides=[
                CatalogFieldTypeOverride(field_id, str(o.get("dialect", "")), str(o.get("typeOverride", "")))
                for o in data.get("typeOverrides") or []
            ],
        )


@dataclass
class CatalogTable:
    id: str
    name: str
    sort_order: int = 0
    fields: List[CatalogField] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "sortOrder": self.sort_order,
            "fields": [f.to_dict() for f in self.fields],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CatalogTable":
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            sort_order=int(data.get("sortOrder") or 0),
            fields=[CatalogField.from_dict(f) for f in data.get("fields") or []],
        )


@dataclass
class CatalogRelationshipField:
    relationship_id: str
    source_field_id: str
    target_field_id: str
    sort_order: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "relationshipId": self.relationship_id,
            "sourceFieldId": self.source_field_id,
            "targetFieldId": self.target_field_id,
            "sortOrder": self.sort_order,
        }


@dataclass
class CatalogRelationship:
    id: str
    source_table_id: str
    target_table_id: str
    name: str = ""
    note: str = ""
    cardinality: str = ""
    fields: List[CatalogRelationshipField] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        out = {"id": self.id, "sourceTableId": self.source_table_id, "targetTableId": self.target_table_id}
        out.update(_drop_empty({
            "name": self.name,
            "note": self.note,
            "cardinality": self.cardinality,
            "fields": [f.to_dict() for f in self.fields],
        }))
        return out


@dataclass
class DiagramTablePlacement:
    id: str
    diagram_id: str
    catalog_table_id: str
    x: float = 0.0
    y: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "diagramId": self.diagram_id,
            "catalogTableId": self.catalog_table_id,
            "x": self.x,
            "y": self.y,
        }


@dataclass
class DiagramRelationshipPlacement:
    id: str
    diagram_id: str
    catalog_relationship_id: str
    label: str = ""

    def to_dict(self) -> Dict[str, Any]:
        out = {"id": self.id, "diagramId": self.diagram_id, "catalogRelationshipId": self.catalog_relationship_id}
        out.update(_drop_empty({"label": self.label}))
        return out


@dataclass
class DiagramNote:
    id: str
    diagram_id: str
    x: float = 0.0
    y: float = 0.0
    text: str = ""
    width: Optional[float] = None
    height: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        out = {"id": self.id, "diagramId": self.diagram_id, "x": self.x, "y": self.y, "text": self.text}
        out.update(_drop_empty({"width": self.width, "height": self.height}))
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any], diagram_id: str) -> "DiagramNote":
        return cls(
            id=str(data.get("id", "")),
            diagram_id=diagram_id,
            x=float(data.get("x") or 0),
            y=float(data.get("y") or 0),
            text=str(data.get("text") or ""),
            width=_opt_float(data.get("width")),
            height=_opt_float(data.get("height")),
        )


@dataclass
class DiagramTextBlock:
    id: str
    diagram_id: str
    x: float = 0.0
    y: float = 0.0
    text: str = ""
    width: Optional[float] = None
    height: Optional[float] = None
    font_size: Optional[float] = None
    use_markdown: bool = False

    def to_dict(self) -> Dict[str, Any]:
        out = {"id": self.id, "diagramId": self.diagram_id, "x": self.x, "y": self.y, "text": self.text}
        out.update(_drop_empty({
            "width": self.width,
            "height": self.height,
            "fontSize": self.font_size,
            "useMarkdown": self.use_markdown,
        }))
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any], diagram_id: str) -> "DiagramTextBlock":
        return cls(
            id=str(data.get("id", "")),
            diagram_id=diagram_id,
            x=float(data.get("x") or 0),
            y=float(data.get("y") or 0),
            text=str(data.get("text") or ""),
            width=_opt_float(data.get("width")),
            height=_opt_float(data.get("height")),
            font_size=_opt_float(data.get("fontSize")),
            use_markdown=bool(data.get("useMarkdown", False)),
        )


@dataclass
class Diagram:
    id: str
    name: str
    version: int = 1
    viewport_zoom: float = 1.0
    viewport_pan_x: float = 0.0
    viewport_pan_y: float = 0.0
    tables: List[DiagramTablePlacement] = field(default_factory=list)
    relationships: List[DiagramRelationshipPlacement] = field(default_factory=list)
    notes: List[DiagramNote] = field(default_factory=list)
    text_blocks: List[DiagramTextBlock] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "id": self.id,
            "name": self.name,
            "version": self.version,
            "viewportZoom": self.viewport_zoom,
            "viewportPanX": self.viewport_pan_x,
            "viewportPanY": self.viewport_pan_y,
        }
        out.update(_drop_empty({
            "tables": [t.to_dict() for t in self.tables],
            "relationships": [r.to_dict() for r in self.relationships],
            "notes": [n.to_dict() for n in self.notes],
            "textBlocks": [b.to_dict() for b in self.text_blocks],
        }))
        return out


@dataclass
class DiagramSummary:
    id: str
    name: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name}


@dataclass
class ConnectionProfile:
    """Saved connection details. Passwords are never stored."""

    id: str
    name: str
    driver: str
    host: str = ""
    port: Optional[int] = None
    database_name: str = ""
    username: str = ""
    ssl_mode: str = ""
    project: str = ""
    dataset: str = ""
    credentials_file: str = ""
    bigquery_auth_mode: str = ""

    def to_dict(self) -> Dict[str, Any]:
        out = {"id": self.id, "name": self.name, "driver": self.driver}
        out.update(_drop_empty({
            "host": self.host,
            "port": self.port,
            "databaseName": self.database_name,
            "username": self.username,
            "sslMode": self.ssl_mode,
            "project": self.project,
            "dataset": self.dataset,
            "credentialsFile": self.credentials_file,
            "bigqueryAuthMode": self.bigquery_auth_mode,
        }))
        return out
