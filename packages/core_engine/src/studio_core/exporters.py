import logging
from enum import Enum
from typing import Dict, List, Optional, Union

from studio_core.errors import StudioError
from studio_core.model import Diagram, Field, Relationship, Table, TableCatalog
from studio_core.typemap import Dialect, resolve_export_type

logger = logging.getLogger(__name__)

DiagramLike = Union[Diagram, TableCatalog]


class CreationMode(str, Enum):
    CREATE = ""
    IF_NOT_EXISTS = "if_not_exists"
    CREATE_OR_REPLACE = "create_or_replace"

    @classmethod
    def parse(cls, value: Union[str, "CreationMode", None]) -> "CreationMode":
        if isinstance(value, CreationMode):
            return value
        key = str(value or "").strip().lower().replace("-", "_")
        for member in cls:
            if member.value == key:
                return member
        raise StudioError(
            f"Unknown creation mode: {value}. Use one of: if_not_exists, create_or_replace.",
            code="UNKNOWN_CREATION_MODE",
        )


_CREATE_PREFIX = {
    CreationMode.CREATE: "create table",
    CreationMode.IF_NOT_EXISTS: "create table if not exists",
    CreationMode.CREATE_OR_REPLACE: "create or replace table",
}


def _quote(name: str, quote: str = '"') -> str:
    if " " in name:
        return f"{quote}{name}{quote}"
    return name


def _column_type(field: Field, dialect: Dialect) -> str:
    return resolve_export_type(
        dialect,
        field.type,
        length=field.length,
        precision=field.precision,
        scale=field.scale,
        overrides=field.type_overrides,
    )


def _field_names(table: Table, field_ids: List[str]) -> Optional[List[str]]:
    names: List[str] = []
    for field_id in field_ids:
        field = table.field_by_id(field_id)
        if field is None:
            return None
        names.append(field.name)
    return names


def _foreign_key_clauses(table: Table, diagram: DiagramLike, tables_by_id: Dict[str, Table]) -> List[str]:
    clauses: List[str] = []
    for rel in diagram.relationships:
        if rel.target_table_id != table.id:
            continue
        source = tables_by_id.get(rel.source_table_id)
        if source is None:
            logger.debug("Skipping relationship %s: unknown source table %s", rel.id, rel.source_table_id)
            continue
        local = _field_names(table, rel.target_fields())
        remote = _field_names(source, rel.source_fields())
        if not local or not remote:
            logger.debug("Skipping relationship %s: unresolved field ids", rel.id)
            continue
        clauses.append(
            f"  foreign key ({', '.join(_quote(n) for n in local)}) "
            f"references {_quote(source.name)} ({', '.join(_quote(n) for n in remote)})"
        )
    return clauses


def export_relational(diagram: DiagramLike, dialect: Union[str, Dialect], schema: str = "") -> str:
    """DDL for postgres, mysql or mssql with primary and foreign key clauses."""
    dialect = Dialect.parse(dialect)
    tables_by_id = {t.id: t for t in diagram.tables}
    blocks: List[str] = []

    for table in diagram.tables:
        lines: List[str] = []
        for field in table.fields:
            line = f"  {_quote(field.name)} {_column_type(field, dialect)}"
            if not field.nullable:
                line += " not null"
            lines.append(line)

        pk_cols = [_quote(f.name) for f in table.fields if f.primary_key]
        if pk_cols:
            lines.append(f"  primary key ({', '.join(pk_cols)})")
        lines.extend(_foreign_key_clauses(table, diagram, tables_by_id))

        name = _quote(table.name)
        if schema:
            name = f"{_quote(schema)}.{name}"
        blocks.append(f"create table {name} (\n" + ",\n".join(lines) + "\n);")

    if not blocks:
        return ""
    return "\n\n".join(blocks) + "\n"


def export_bigquery(
    diagram: DiagramLike,
    project: str = "",
    dataset: str = "",
    mode: Union[str, CreationMode] = CreationMode.CREATE,
) -> str:
    """BigQuery DDL. No key clauses; names are ``project.dataset.table`` when given."""
    prefix = _CREATE_PREFIX[CreationMode.parse(mode)]
    blocks: List[str] = []

    for table in diagram.tables:
        name = _quote(table.name, "`")
        if project and dataset:
            name = f"{project}.{dataset}.{name}"
        elif dataset:
            name = f"{dataset}.{name}"

        lines: List[str] = []
        for field in table.fields:
            line = f"  {_quote(field.name, '`')} {_column_type(field, Dialect.BIGQUERY)}"
            if not field.nullable:
                line += " not null"
            lines.append(line)
        blocks.append(f"{prefix} {name} (\n" + ",\n".join(lines) + "\n);")

    if not blocks:
        return ""
    return "\n\n".join(blocks) + "\n"


def export_sql(dialect: Union[str, Dialect], diagram: DiagramLike, **options) -> str:
    """Render ``diagram`` as DDL for ``dialect``.

    Options: ``schema`` for the relational dialects; ``project``, ``dataset``
    and ``mode`` for bigquery. Unknown dialects raise UnsupportedDialectError.
    """
    dialect = Dialect.parse(dialect)
    if dialect is Dialect.BIGQUERY:
        return export_bigquery(
            diagram,
            project=options.get("project") or "",
            dataset=options.get("dataset") or "",
            mode=options.get("mode") or CreationMode.CREATE,
        )
    if dialect in (Dialect.POSTGRES, Dialect.MYSQL, Dialect.MSSQL):
        return export_relational(diagram, dialect, schema=options.get("schema") or "")
    raise StudioError(f"No exporter for dialect {dialect.value}", code="UNSUPPORTED_DIALECT")


# ---------------------------------------------------------------------------
# Diagram text formats
# ---------------------------------------------------------------------------


def _rel_endpoints(rel: Relationship, tables_by_id: Dict[str, Table]):
    source = tables_by_id.get(rel.source_table_id)
    target = tables_by_id.get(rel.target_table_id)
    return (
        source.name if source else rel.source_table_id,
        target.name if target else rel.target_table_id,
    )


def export_mermaid(diagram: DiagramLike) -> str:
    tables_by_id = {t.id: t for t in diagram.tables}
    out = ["erDiagram"]
    for table in diagram.tables:
        out.append(f"    {table.name} {{")
        for field in table.fields:
            marker = " PK" if field.primary_key else ""
            out.append(f"        {field.type} {field.name}{marker}")
        out.append("    }")
    for rel in diagram.relationships:
        source, target = _rel_endpoints(rel, tables_by_id)
        out.append(f'    {source} ||--o{{ {target} : "{rel.label}"')
    return "\n".join(out) + "\n"


def export_plantuml(diagram: DiagramLike) -> str:
    tables_by_id = {t.id: t for t in diagram.tables}
    out = ["@startuml", "hide circle", "skinparam linetype ortho", ""]
    for table in diagram.tables:
        out.append(f'entity "{table.name}" as {table.id} {{')
        keys = [f for f in table.fields if f.primary_key]
        for field in keys:
            out.append(f"  * {field.name} : {field.type}")
        if keys:
            out.append("  --")
        for field in table.fields:
            if field.primary_key:
                continue
            prefix = "  " if field.nullable else "  * "
            out.append(f"{prefix}{field.name} : {field.type}")
        out.append("}")
        out.append("")
    for rel in diagram.relationships:
        if rel.source_table_id not in tables_by_id or rel.target_table_id not in tables_by_id:
            continue
        line = f"{rel.source_table_id} ||--o{{ {rel.target_table_id}"
        if rel.label:
            line += f" : {rel.label}"
        out.append(line)
    out.append("@enduml")
    return "\n".join(out) + "\n"
