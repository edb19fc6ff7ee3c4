"""Generic column types and their mapping to and from vendor type names.

``normalize_type`` turns any raw vendor type ("varchar(255)", "NUMERIC(10,2)",
"character varying") into one of the generic types plus optional
length / precision / scale. ``resolve_export_type`` goes the other way: a
stored per-dialect override wins, otherwise the dialect default is used.
"""

import re
from enum import Enum
from typing import Dict, List, Mapping, NamedTuple, Optional, Union

from studio_core.errors import UnsupportedDialectError

GENERIC_TYPES = (
    "string",
    "integer",
    "float",
    "numeric",
    "boolean",
    "date",
    "time",
    "timestamp",
    "timestamptz",
    "uuid",
    "json",
    "bytes",
    "other",
)


class Dialect(str, Enum):
    POSTGRES = "postgres"
    MYSQL = "mysql"
    MSSQL = "mssql"
    BIGQUERY = "bigquery"

    @classmethod
    def parse(cls, value: Union[str, "Dialect"]) -> "Dialect":
        if isinstance(value, Dialect):
            return value
        key = str(value or "").strip().lower()
        for member in cls:
            if member.value == key:
                return member
        raise UnsupportedDialectError(str(value), supported=dialect_names())


def dialect_names() -> List[str]:
    return [d.value for d in Dialect]


class NormalizedType(NamedTuple):
    generic_type: str
    length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None


def _family(generic: str, *names: str) -> Dict[str, str]:
    return {name: generic for name in names}


_BASE_TYPES: Dict[str, str] = {}
_BASE_TYPES.update(_family(
    "string",
    "VARCHAR", "CHAR", "CHARACTER", "TEXT", "STRING", "NVARCHAR", "NCHAR",
    "CHARACTER VARYING", "NVARCHAR2", "VARCHAR2", "CLOB", "NCLOB",
    "LONGTEXT", "MEDIUMTEXT", "TINYTEXT", "ENUM", "SET",
    "CIDR", "INET", "MACADDR", "TSQUERY", "TSVECTOR", "XML",
    "ROWID", "RAW",
))
_BASE_TYPES.update(_family(
    "integer",
    "INT", "INTEGER", "INT2", "INT4", "INT8", "SMALLINT", "BIGINT",
    "TINYINT", "MEDIUMINT", "SERIAL", "SMALLSERIAL", "BIGSERIAL",
    "OID", "YEAR", "INT64",
))
_BASE_TYPES.update(_family(
    "float",
    "FLOAT", "REAL", "DOUBLE", "DOUBLE PRECISION", "FLOAT4", "FLOAT8",
    "FLOAT64", "BINARY FLOAT", "BINARY DOUBLE", "MONEY", "SMALLMONEY",
))
_BASE_TYPES.update(_family("numeric", "NUMERIC", "DECIMAL", "NUMBER", "BIGNUMERIC", "BIGDECIMAL"))
_BASE_TYPES.update(_family("boolean", "BOOL", "BOOLEAN", "BIT"))
_BASE_TYPES.update(_family("date", "DATE"))
_BASE_TYPES.update(_family("time", "TIME", "TIME WITH TIME ZONE", "TIME WITHOUT TIME ZONE"))
_BASE_TYPES.update(_family(
    "timestamp",
    "TIMESTAMP", "DATETIME", "DATETIME2", "SMALLDATETIME",
    "TIMESTAMP WITH TIME ZONE", "TIMESTAMP WITHOUT TIME ZONE",
    "TIMESTAMPTZ", "DATETIMEOFFSET",
))
_BASE_TYPES.update(_family("uuid", "UUID", "UNIQUEIDENTIFIER"))
_BASE_TYPES.update(_family("json", "JSON", "JSONB"))
_BASE_TYPES.update(_family(
    "bytes",
    "BYTEA", "BINARY", "VARBINARY", "BLOB", "LONGBLOB", "MEDIUMBLOB",
    "TINYBLOB", "IMAGE", "BIT VARYING", "BYTES",
))
_BASE_TYPES.update(_family("string", "INTERVAL"))

_WHITESPACE_RE = re.compile(r"\s+")


def _parse_int(text: str) -> Optional[int]:
    try:
        return int(text.strip())
    except ValueError:
        return None


def _parse_first_int(args: str) -> Optional[int]:
    args = args.strip()
    if not args:
        return None
    value = _parse_int(args.split(",")[0])
    if value is None or value <= 0:
        return None
    return value


def _parse_precision_scale(args: str):
    args = args.strip()
    if not args:
        return None, None
    parts = args.split(",")
    precision = _parse_int(parts[0])
    if precision is not None and precision <= 0:
        precision = None
    scale = None
    if len(parts) >= 2:
        scale = _parse_int(parts[1])
        if scale is not None and scale < 0:
            scale = None
    return precision, scale


def normalize_type(raw_type: str) -> NormalizedType:
    upper = (raw_type or "").strip().upper()
    if not upper:
        return NormalizedType("string")

    base = upper
    args = ""
    open_idx = upper.find("(")
    if open_idx >= 0:
        base = upper[:open_idx].strip()
        close_idx = upper.rfind(")")
        if close_idx > open_idx:
            args = upper[open_idx + 1:close_idx].strip()
    base = _WHITESPACE_RE.sub(" ", base)

    generic = _BASE_TYPES.get(base)
    if generic is None:
        if "INT" in base:
            generic = "integer"
        elif "CHAR" in base or "TEXT" in base or "STRING" in base:
            generic = "string"
        elif "FLOAT" in base or "DOUBLE" in base or "REAL" in base:
            generic = "float"
        else:
            return NormalizedType("other")

    if generic == "string":
        return NormalizedType("string", length=_parse_first_int(args))
    if generic == "numeric":
        precision, scale = _parse_precision_scale(args)
        return NormalizedType("numeric", precision=precision, scale=scale)
    return NormalizedType(generic)


def is_generic_type(value: str) -> bool:
    return value in GENERIC_TYPES


def is_vendor_type(name: str) -> bool:
    """True when ``name`` (without arguments) is a type name some dialect uses."""
    return _WHITESPACE_RE.sub(" ", (name or "").strip().upper()) in _BASE_TYPES


# ---------------------------------------------------------------------------
# Export defaults
# ---------------------------------------------------------------------------

_POSTGRES_DEFAULTS = {
    "integer": "integer",
    "float": "double precision",
    "boolean": "boolean",
    "date": "date",
    "time": "time",
    "timestamp": "timestamp",
    "timestamptz": "timestamp with time zone",
    "uuid": "uuid",
    "json": "jsonb",
    "bytes": "bytea",
}

_MYSQL_DEFAULTS = {
    "integer": "int",
    "float": "double",
    "boolean": "tinyint(1)",
    "date": "date",
    "time": "time",
    "timestamp": "datetime",
    "timestamptz": "datetime",
    "uuid": "char(36)",
    "json": "json",
    "bytes": "blob",
}

_MSSQL_DEFAULTS = {
    "integer": "int",
    "float": "float",
    "boolean": "bit",
    "date": "date",
    "time": "time",
    "timestamp": "datetime2",
    "timestamptz": "datetimeoffset",
    "uuid": "uniqueidentifier",
    "json": "nvarchar(max)",
    "bytes": "varbinary(max)",
}

_BIGQUERY_DEFAULTS = {
    "string": "STRING",
    "integer": "INT64",
    "float": "FLOAT64",
    "numeric": "NUMERIC",
    "boolean": "BOOL",
    "date": "DATE",
    "time": "TIME",
    "timestamp": "TIMESTAMP",
    "timestamptz": "TIMESTAMP",
    "uuid": "STRING",
    "json": "JSON",
    "bytes": "BYTES",
}


def _numeric_with_ps(type_name: str, precision: Optional[int], scale: Optional[int]) -> str:
    if precision is not None and precision > 0:
        if scale is not None and scale > 0:
            return f"{type_name}({precision},{scale})"
        return f"{type_name}({precision})"
    return type_name


def _sized_string(type_name: str, length: Optional[int], unsized: str) -> str:
    if length is not None and length > 0:
        return f"{type_name}({length})"
    return unsized


def _override_for(overrides: Optional[Mapping[str, object]], dialect: Dialect) -> str:
    if not overrides:
        return ""
    value = overrides.get(dialect.value)
    if isinstance(value, Mapping):
        value = value.get("type")
    return str(value or "")


def resolve_export_type(
    dialect: Union[str, "Dialect"],
    generic_type: str,
    length: Optional[int] = None,
    precision: Optional[int] = None,
    scale: Optional[int] = None,
    overrides: Optional[Mapping[str, object]] = None,
) -> str:
    dialect = Dialect.parse(dialect)
    override = _override_for(overrides, dialect)
    if override:
        return override

    gt = (generic_type or "").strip().lower()

    if dialect is Dialect.POSTGRES:
        if gt == "string":
            return _sized_string("varchar", length, "text")
        if gt == "numeric":
            return _numeric_with_ps("numeric", precision, scale)
        return _POSTGRES_DEFAULTS.get(gt, gt)
    if dialect is Dialect.MYSQL:
        if gt == "string":
            return _sized_string("varchar", length, "text")
        if gt == "numeric":
            return _numeric_with_ps("decimal", precision, scale)
        return _MYSQL_DEFAULTS.get(gt, gt)
    if dialect is Dialect.MSSQL:
        if gt == "string":
            return _sized_string("nvarchar", length, "nvarchar(max)")
        if gt == "numeric":
            return _numeric_with_ps("decimal", precision, scale)
        return _MSSQL_DEFAULTS.get(gt, gt)
    if dialect is Dialect.BIGQUERY:
        return _BIGQUERY_DEFAULTS.get(gt, gt.upper())
    raise UnsupportedDialectError(dialect.value, supported=dialect_names())
