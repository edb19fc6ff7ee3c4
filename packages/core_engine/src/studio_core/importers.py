import csv
import io
import logging
import re
from typing import Dict, List, Optional, Tuple

from studio_core.errors import ImportFormatError
from studio_core.issues import warning
from studio_core.model import Field, Relationship, Table, TableCatalog
from studio_core.typemap import is_vendor_type, normalize_type

logger = logging.getLogger(__name__)

GRID_COLUMNS = 3
CELL_WIDTH = 320
CELL_HEIGHT = 240

# One identifier part: "quoted", `quoted`, [quoted] or bare; parts may be dotted.
_IDENT = r'(?:"[^"]+"|`[^`]+`|\[[^\]]+\]|[^\s(."`\[]+)'
_QUALIFIED_NAME = rf"{_IDENT}(?:\.{_IDENT})*"

CREATE_TABLE_RE = re.compile(
    rf"create\s+table\s+(?:if\s+not\s+exists\s+)?({_QUALIFIED_NAME})\s*\(",
    flags=re.IGNORECASE,
)
CONSTRAINT_PREFIX_RE = re.compile(rf"^constraint\s+{_IDENT}\s+", flags=re.IGNORECASE)
PRIMARY_KEY_RE = re.compile(r"^primary\s+key\s*\((.*?)\)", flags=re.IGNORECASE | re.DOTALL)
FOREIGN_KEY_RE = re.compile(
    rf"^foreign\s+key\s*\((.*?)\)\s*references\s+({_QUALIFIED_NAME})\s*\((.*?)\)",
    flags=re.IGNORECASE | re.DOTALL,
)
# KEY/INDEX/UNIQUE/CHECK/EXCLUDE followed by an optional name and a column list.
# Group 1 is the name; a column called "key" matches too, with its type in group 1.
TABLE_CONSTRAINT_RE = re.compile(
    rf"^(?:(?:unique|fulltext|spatial)(?:\s+(?:key|index))?|index|key|check|exclude(?:\s+using\s+\w+)?)"
    rf"\s*(?:({_IDENT})\s*)?(?:using\s+\w+\s*)?\(",
    flags=re.IGNORECASE,
)
INLINE_REFERENCES_RE = re.compile(
    rf"\breferences\s+({_QUALIFIED_NAME})\s*\((.*?)\)",
    flags=re.IGNORECASE | re.DOTALL,
)
NOT_NULL_RE = re.compile(r"\bnot\s+null\b", flags=re.IGNORECASE)
INLINE_PRIMARY_KEY_RE = re.compile(r"\bprimary\s+key\b", flags=re.IGNORECASE)

# Words that end the type part of a column definition.
TYPE_STOP_WORDS = {
    "NOT", "NULL", "DEFAULT", "PRIMARY", "REFERENCES", "UNIQUE", "CHECK",
    "CONSTRAINT", "COLLATE", "GENERATED", "AUTO_INCREMENT", "IDENTITY", "COMMENT",
}

MERMAID_ENTITY_RE = re.compile(r"^\s*(\w[\w\d_]*)\s*\{\s*$")
MERMAID_FIELD_RE = re.compile(r"^\s*(\w+)\s+(\w[\w\d_]*)\s*(PK|FK)?\s*$")
MERMAID_CLOSE_RE = re.compile(r"^\s*\}\s*$")
MERMAID_REL_RE = re.compile(r"^\s*(\w[\w\d_]*)\s*\|[\|\-]+\w*\{\s*(\w[\w\d_]*)\s*(?::\s*(.*))?$")

CSV_REQUIRED_COLUMNS = ("table", "column", "type")
TRUTHY = {"yes", "true", "1"}


class _IdGen:
    """Sequential t1/f1/r1 ids, scoped to a single import call."""

    def __init__(self) -> None:
        self._tables = 0
        self._fields = 0
        self._rels = 0

    def table(self) -> str:
        self._tables += 1
        return f"t{self._tables}"

    def field(self) -> str:
        self._fields += 1
        return f"f{self._fields}"

    def rel(self) -> str:
        self._rels += 1
        return f"r{self._rels}"


def _place_on_grid(tables: List[Table]) -> None:
    for index, table in enumerate(tables):
        row, col = divmod(index, GRID_COLUMNS)
        table.x = float(col * CELL_WIDTH)
        table.y = float(row * CELL_HEIGHT)


def _unquote(name: str) -> str:
    return name.strip().replace('"', "").replace("`", "").replace("[", "").replace("]", "")


def _split_columns(text: str) -> List[str]:
    return [_unquote(part) for part in text.split(",") if part.strip()]


def _split_top_level(body: str) -> List[str]:
    parts: List[str] = []
    current: List[str] = []
    depth = 0
    in_single = False
    in_double = False

    for char in body:
        if char == "'" and not in_double:
            in_single = not in_single
        elif char == '"' and not in_single:
            in_double = not in_double
        elif not in_single and not in_double:
            if char == "(":
                depth += 1
            elif char == ")":
                depth = max(0, depth - 1)
            elif char == "," and depth == 0:
                parts.append("".join(current).strip())
                current = []
                continue
        current.append(char)

    if current:
        parts.append("".join(current).strip())
    return [part for part in parts if part]


def _matching_paren(text: str, start: int) -> int:
    """Return the index just past the ``)`` closing a ``(`` opened before ``start``, or -1."""
    depth = 1
    in_single = False
    in_double = False
    i = start
    while i < len(text):
        char = text[i]
        if char == "'" and not in_double:
            in_single = not in_single
        elif char == '"' and not in_single:
            in_double = not in_double
        elif not in_single and not in_double:
            if char == "(":
                depth += 1
            elif char == ")":
                depth -= 1
                if depth == 0:
                    return i + 1
        i += 1
    return -1


def _split_column_definition(definition: str) -> Tuple[str, str, str]:
    """Split ``name type... constraints...`` into (name, raw type, constraint tail)."""
    text = definition.strip()
    if text[:1] in ('"', "`", "["):
        closer = "]" if text[0] == "[" else text[0]
        end = text.find(closer, 1)
        if end < 0:
            return _unquote(text), "", ""
        name, pos = text[1:end], end + 1
    else:
        match = re.match(r"\S+", text)
        name, pos = match.group(0), match.end()

    type_parts: List[str] = []
    while pos < len(text):
        while pos < len(text) and text[pos].isspace():
            pos += 1
        if pos >= len(text):
            break
        if text[pos] == "(":
            end = _matching_paren(text, pos + 1)
            if end < 0:
                end = len(text)
            if type_parts:
                type_parts[-1] += text[pos:end]
            pos = end
            continue
        match = re.match(r"[^\s(]+", text[pos:])
        word = match.group(0)
        if word.upper() in TYPE_STOP_WORDS:
            break
        type_parts.append(word)
        pos += len(word)

    return name, " ".join(type_parts), text[pos:].strip()


def _is_table_constraint(clause: str) -> bool:
    match = TABLE_CONSTRAINT_RE.match(clause)
    if match is None:
        return False
    # "key VARCHAR(50)" is a column named key, not an index named VARCHAR
    return match.group(1) is None or not is_vendor_type(_unquote(match.group(1)))


class _DdlParser:
    def __init__(self, import_source: str) -> None:
        self.catalog = TableCatalog(import_source=import_source)
        self.ids = _IdGen()
        self.tables_by_name: Dict[str, Table] = {}

    def _lookup_table(self, name: str) -> Optional[Table]:
        name = _unquote(name)
        table = self.tables_by_name.get(name)
        if table is None and "." in name:
            table = self.tables_by_name.get(name.split(".")[-1])
        return table

    def _register(self, table: Table) -> None:
        self.catalog.tables.append(table)
        self.tables_by_name[table.name] = table
        short = table.name.split(".")[-1]
        self.tables_by_name.setdefault(short, table)

    def issue(self, code: str, message: str, path: str) -> None:
        logger.debug("%s: %s", code, message)
        self.catalog.issues.append(warning(code, message, path))

    def _relate(self, table: Table, local_cols: List[str], ref_name: str, ref_cols: List[str]) -> None:
        path = f"/tables/{table.name}"
        parent = table if _unquote(ref_name) == table.name else self._lookup_table(ref_name)
        if parent is None:
            self.issue(
                "DDL_FORWARD_REFERENCE",
                f"foreign key on {table.name}({', '.join(local_cols)}) references "
                f"{_unquote(ref_name)} before it is defined; relationship dropped",
                path,
            )
            return
        if len(local_cols) != len(ref_cols) or not local_cols:
            self.issue(
                "DDL_FOREIGN_KEY_MISMATCH",
                f"foreign key on {table.name} lists {len(local_cols)} columns but references {len(ref_cols)}",
                path,
            )
            return

        local_ids: List[str] = []
        ref_ids: List[str] = []
        for local_col, ref_col in zip(local_cols, ref_cols):
            local_field = table.field_by_name(local_col)
            ref_field = parent.field_by_name(ref_col)
            if local_field is None or ref_field is None:
                self.issue(
                    "DDL_UNRESOLVED_COLUMN",
                    f"foreign key {table.name}.{local_col} -> {parent.name}.{ref_col} has an unknown column",
                    path,
                )
                return
            local_ids.append(local_field.id)
            ref_ids.append(ref_field.id)

        composite = len(local_ids) > 1
        self.catalog.relationships.append(
            Relationship(
                id=self.ids.rel(),
                source_table_id=parent.id,
                source_field_id=ref_ids[0],
                target_table_id=table.id,
                target_field_id=local_ids[0],
                source_field_ids=ref_ids if composite else [],
                target_field_ids=local_ids if composite else [],
            )
        )

    def parse_table(self, name: str, body: str) -> None:
        table = Table(id=self.ids.table(), name=name)
        primary_keys: List[str] = []
        foreign_keys: List[Tuple[List[str], str, List[str]]] = []

        for clause in _split_top_level(body):
            stripped = CONSTRAINT_PREFIX_RE.sub("", clause)
            pk_match = PRIMARY_KEY_RE.match(stripped)
            if pk_match:
                primary_keys.extend(_split_columns(pk_match.group(1)))
                continue
            if re.match(r"^foreign\s+key\b", stripped, flags=re.IGNORECASE):
                fk_match = FOREIGN_KEY_RE.match(stripped)
                if fk_match:
                    foreign_keys.append(
                        (_split_columns(fk_match.group(1)), fk_match.group(2), _split_columns(fk_match.group(3)))
                    )
                continue
            if stripped != clause or _is_table_constraint(stripped):
                # named UNIQUE/CHECK constraints and bare table constraints
                continue

            col_name, raw_type, tail = _split_column_definition(clause)
            if not col_name or not raw_type:
                continue
            norm = normalize_type(raw_type)
            inline_pk = bool(INLINE_PRIMARY_KEY_RE.search(tail))
            field = Field(
                id=self.ids.field(),
                name=col_name,
                type=norm.generic_type,
                nullable=not (inline_pk or NOT_NULL_RE.search(tail)),
                primary_key=inline_pk,
                length=norm.length,
                precision=norm.precision,
                scale=norm.scale,
            )
            if raw_type.lower() != norm.generic_type:
                field.type_overrides["postgres"] = raw_type.lower()
            table.fields.append(field)

            ref_match = INLINE_REFERENCES_RE.search(tail)
            if ref_match:
                foreign_keys.append(([col_name], ref_match.group(1), _split_columns(ref_match.group(2))))

        pk_set = set(primary_keys)
        for field in table.fields:
            if field.name in pk_set:
                field.primary_key = True
                field.nullable = False

        for local_cols, ref_name, ref_cols in foreign_keys:
            self._relate(table, local_cols, ref_name, ref_cols)
        self._register(table)


def import_sql_ddl(ddl_text: str, import_source: str = "") -> TableCatalog:
    """Parse ``CREATE TABLE`` statements into a catalog.

    Foreign keys resolve only against tables defined earlier in the text (or
    the declaring table itself). Anything that cannot be resolved is dropped
    and reported in ``catalog.issues``.
    """
    parser = _DdlParser(import_source)
    pos = 0
    while True:
        match = CREATE_TABLE_RE.search(ddl_text, pos)
        if match is None:
            break
        table_name = _unquote(match.group(1))
        end = _matching_paren(ddl_text, match.end())
        if end < 0:
            parser.issue(
                "DDL_UNBALANCED_PARENS",
                f"CREATE TABLE {table_name} has unbalanced parentheses; statement skipped",
                f"/tables/{table_name}",
            )
            pos = match.end()
            continue
        parser.parse_table(table_name, ddl_text[match.end():end - 1])
        pos = end

    _place_on_grid(parser.catalog.tables)
    logger.debug(
        "Imported %d tables and %d relationships from DDL",
        len(parser.catalog.tables),
        len(parser.catalog.relationships),
    )
    return parser.catalog


def _parse_order(value: str) -> int:
    try:
        return int(value.strip())
    except ValueError:
        return 0


def import_csv(csv_text: str, import_source: str = "") -> TableCatalog:
    """Build a catalog from ``schema,table,column,type,is_nullable,field_order`` rows."""
    catalog = TableCatalog(import_source=import_source)
    try:
        rows = list(csv.reader(io.StringIO(csv_text)))
    except csv.Error as exc:
        raise ImportFormatError(f"Invalid CSV: {exc}") from exc
    if len(rows) < 2:
        return catalog

    col_idx = {name.strip().lower(): i for i, name in enumerate(rows[0])}
    if any(name not in col_idx for name in CSV_REQUIRED_COLUMNS):
        raise ImportFormatError(
            "CSV must have columns: table, column, type",
            details={"header": rows[0]},
        )
    table_i, column_i, type_i = (col_idx[name] for name in CSV_REQUIRED_COLUMNS)
    nullable_i = col_idx.get("is_nullable")
    order_i = col_idx.get("field_order")
    needed = max(table_i, column_i, type_i)

    grouped: Dict[str, List[Tuple[int, List[str]]]] = {}
    for row in rows[1:]:
        if len(row) <= needed:
            continue
        table_name = row[table_i].strip()
        if not table_name:
            continue
        order = _parse_order(row[order_i]) if order_i is not None and order_i < len(row) else 0
        grouped.setdefault(table_name, []).append((order, row))

    ids = _IdGen()
    for table_name in sorted(grouped):
        table = Table(id=ids.table(), name=table_name)
        for _, row in sorted(grouped[table_name], key=lambda item: item[0]):
            norm = normalize_type(row[type_i].strip())
            nullable = True
            if nullable_i is not None and nullable_i < len(row):
                nullable = row[nullable_i].strip().lower() in TRUTHY
            table.fields.append(
                Field(
                    id=ids.field(),
                    name=row[column_i].strip(),
                    type=norm.generic_type,
                    nullable=nullable,
                    length=norm.length,
                    precision=norm.precision,
                    scale=norm.scale,
                )
            )
        catalog.tables.append(table)

    _place_on_grid(catalog.tables)
    logger.debug("Imported %d tables from CSV", len(catalog.tables))
    return catalog


def import_mermaid(mermaid_text: str, import_source: str = "") -> TableCatalog:
    """Parse a Mermaid ``erDiagram``.

    Relationship lines carry no column information, so they link the first
    field of each table.
    """
    catalog = TableCatalog(import_source=import_source)
    ids = _IdGen()
    tables_by_name: Dict[str, Table] = {}
    lines = mermaid_text.splitlines()

    current: Optional[Table] = None
    for line in lines:
        line = line.rstrip()
        entity = MERMAID_ENTITY_RE.match(line)
        if entity:
            name = entity.group(1)
            if name.lower() == "erdiagram":
                continue
            current = Table(id=ids.table(), name=name)
            catalog.tables.append(current)
            tables_by_name[name] = current
            continue
        if current is not None and MERMAID_CLOSE_RE.match(line):
            current = None
            continue
        if current is not None:
            field_match = MERMAID_FIELD_RE.match(line)
            if field_match:
                norm = normalize_type(field_match.group(1))
                current.fields.append(
                    Field(
                        id=ids.field(),
                        name=field_match.group(2),
                        type=norm.generic_type,
                        primary_key=field_match.group(3) == "PK",
                        length=norm.length,
                        precision=norm.precision,
                        scale=norm.scale,
                    )
                )

    for line in lines:
        rel = MERMAID_REL_RE.match(line)
        if not rel:
            continue
        source = tables_by_name.get(rel.group(1))
        target = tables_by_name.get(rel.group(2))
        if source is None or target is None or not source.fields or not target.fields:
            continue
        catalog.relationships.append(
            Relationship(
                id=ids.rel(),
                source_table_id=source.id,
                source_field_id=source.fields[0].id,
                target_table_id=target.id,
                target_field_id=target.fields[0].id,
                label=(rel.group(3) or "").strip().strip('"'),
            )
        )

    _place_on_grid(catalog.tables)
    return catalog
