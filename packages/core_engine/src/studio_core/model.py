"""Portable relational model: tables, typed fields and relationships.

These objects are what importers and inspectors produce and what exporters
consume. ``to_dict``/``from_dict`` use the camelCase interchange layout shared
with the diagram editor.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from studio_core.errors import ModelError
from studio_core.issues import Issue

DIAGRAM_VERSION = 1


class Cardinality(str, Enum):
    ONE_TO_ONE = "1-to-1"
    ONE_TO_MANY = "1-to-many"
    MANY_TO_ONE = "many-to-1"
    MANY_TO_MANY = "many-to-many"


def _opt_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


def _put(out: Dict[str, Any], key: str, value: Any) -> None:
    if value not in (None, "", [], {}):
        out[key] = value


@dataclass
class Field:
    id: str
    name: str
    type: str = "string"
    nullable: bool = False
    primary_key: bool = False
    length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    type_overrides: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"id": self.id, "name": self.name, "type": self.type}
        if self.nullable:
            out["nullable"] = True
        if self.primary_key:
            out["primaryKey"] = True
        _put(out, "length", self.length)
        _put(out, "precision", self.precision)
        _put(out, "scale", self.scale)
        if self.type_overrides:
            out["typeOverrides"] = {d: {"type": t} for d, t in sorted(self.type_overrides.items())}
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Field":
        overrides: Dict[str, str] = {}
        for dialect, value in (data.get("typeOverrides") or {}).items():
            raw = value.get("type") if isinstance(value, dict) else value
            if raw:
                overrides[str(dialect)] = str(raw)
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            type=str(data.get("type") or "string"),
            nullable=bool(data.get("nullable", False)),
            primary_key=bool(data.get("primaryKey", False)),
            length=_opt_int(data.get("length")),
            precision=_opt_int(data.get("precision")),
            scale=_opt_int(data.get("scale")),
            type_overrides=overrides,
        )


@dataclass
class Table:
    id: str
    name: str
    x: float = 0.0
    y: float = 0.0
    fields: List[Field] = field(default_factory=list)

    def field_by_id(self, field_id: str) -> Optional[Field]:
        for f in self.fields:
            if f.id == field_id:
                return f
        return None

    def field_by_name(self, name: str) -> Optional[Field]:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "x": self.x,
            "y": self.y,
            "fields": [f.to_dict() for f in self.fields],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Table":
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            x=float(data.get("x") or 0),
            y=float(data.get("y") or 0),
            fields=[Field.from_dict(f) for f in data.get("fields") or []],
        )


@dataclass
class Relationship:
    """Link from source field(s) to target field(s).

    Single-column relationships use ``source_field_id``/``target_field_id``;
    composite keys additionally carry the ordered ``*_field_ids`` lists, whose
    first element mirrors the single id.
    """

    id: str
    source_table_id: str
    source_field_id: str
    target_table_id: str
    target_field_id: str
    label: str = ""
    source_field_ids: List[str] = field(default_factory=list)
    target_field_ids: List[str] = field(default_factory=list)
    name: str = ""
    note: str = ""
    cardinality: str = ""

    def __post_init__(self) -> None:
        if len(self.source_field_ids) != len(self.target_field_ids):
            raise ModelError(
                f"relationship {self.id}: {len(self.source_field_ids)} source fields "
                f"but {len(self.target_field_ids)} target fields",
                details={"relationshipId": self.id},
            )

    def source_fields(self) -> List[str]:
        return list(self.source_field_ids) if self.source_field_ids else [self.source_field_id]

    def target_fields(self) -> List[str]:
        return list(self.target_field_ids) if self.target_field_ids else [self.target_field_id]

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "id": self.id,
            "sourceTableId": self.source_table_id,
            "sourceFieldId": self.source_field_id,
            "targetTableId": self.target_table_id,
            "targetFieldId": self.target_field_id,
        }
        _put(out, "label", self.label)
        if len(self.source_field_ids) > 1:
            out["sourceFieldIds"] = list(self.source_field_ids)
            out["targetFieldIds"] = list(self.target_field_ids)
        _put(out, "name", self.name)
        _put(out, "note", self.note)
        _put(out, "cardinality", self.cardinality)
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Relationship":
        return cls(
            id=str(data.get("id", "")),
            source_table_id=str(data.get("sourceTableId", "")),
            source_field_id=str(data.get("sourceFieldId", "")),
            target_table_id=str(data.get("targetTableId", "")),
            target_field_id=str(data.get("targetFieldId", "")),
            label=str(data.get("label") or ""),
            source_field_ids=[str(v) for v in data.get("sourceFieldIds") or []],
            target_field_ids=[str(v) for v in data.get("targetFieldIds") or []],
            name=str(data.get("name") or ""),
            note=str(data.get("note") or ""),
            cardinality=str(data.get("cardinality") or ""),
        )


@dataclass
class Viewport:
    zoom: float = 1.0
    pan_x: float = 0.0
    pan_y: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {"zoom": self.zoom, "panX": self.pan_x, "panY": self.pan_y}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Viewport":
        zoom = data.get("zoom")
        return cls(
            zoom=float(zoom) if zoom else 1.0,
            pan_x=float(data.get("panX") or 0),
            pan_y=float(data.get("panY") or 0),
        )


@dataclass
class Diagram:
    """Interchange document: a free-standing set of tables and relationships."""

    tables: List[Table] = field(default_factory=list)
    relationships: List[Relationship] = field(default_factory=list)
    viewport: Optional[Viewport] = None
    version: int = DIAGRAM_VERSION

    def table_by_id(self, table_id: str) -> Optional[Table]:
        for t in self.tables:
            if t.id == table_id:
                return t
        return None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "version": self.version,
            "tables": [t.to_dict() for t in self.tables],
            "relationships": [r.to_dict() for r in self.relationships],
        }
        if self.viewport is not None:
            out["viewport"] = self.viewport.to_dict()
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Diagram":
        viewport = data.get("viewport")
        return cls(
            version=int(data.get("version") or DIAGRAM_VERSION),
            tables=[Table.from_dict(t) for t in data.get("tables") or []],
            relationships=[Relationship.from_dict(r) for r in data.get("relationships") or []],
            viewport=Viewport.from_dict(viewport) if isinstance(viewport, dict) else None,
        )


@dataclass
class TableCatalog:
    """Result of one import or introspection call."""

    import_source: str = ""
    tables: List[Table] = field(default_factory=list)
    relationships: List[Relationship] = field(default_factory=list)
    issues: List[Issue] = field(default_factory=list)

    def table_by_id(self, table_id: str) -> Optional[Table]:
        for t in self.tables:
            if t.id == table_id:
                return t
        return None

    def to_diagram(self) -> Diagram:
        return Diagram(tables=list(self.tables), relationships=list(self.relationships))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "importSource": self.import_source,
            "tables": [t.to_dict() for t in self.tables],
            "relationships": [r.to_dict() for r in self.relationships],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TableCatalog":
        return cls(
            import_source=str(data.get("importSource") or ""),
            tables=[Table.from_dict(t) for t in data.get("tables") or []],
            relationships=[Relationship.from_dict(r) for r in data.get("relationships") or []],
        )
