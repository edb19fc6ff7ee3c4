"""Tests for the generic type normalizer and per-dialect export types.

Covers:
  - normalize_type: families, dimensions, case/whitespace, fallbacks
  - resolve_export_type: defaults per dialect, sized strings, numeric precision
  - Type overrides (string and {"type": ...} forms)
  - Dialect parsing and unknown dialects
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "packages" / "core_engine" / "src"))

from studio_core.errors import UnsupportedDialectError
from studio_core.typemap import (
    GENERIC_TYPES,
    Dialect,
    NormalizedType,
    dialect_names,
    is_generic_type,
    normalize_type,
    resolve_export_type,
)


# ---------------------------------------------------------------------------
# normalize_type
# ---------------------------------------------------------------------------

class TestNormalizeType:
    def test_varchar_with_length(self):
        assert normalize_type("varchar(255)") == NormalizedType("string", length=255)

    def test_character_varying_multiword(self):
        assert normalize_type("character   varying(40)") == NormalizedType("string", length=40)

    def test_numeric_precision_and_scale(self):
        assert normalize_type("NUMERIC(10,2)") == NormalizedType("numeric", precision=10, scale=2)

    def test_decimal_precision_only(self):
        norm = normalize_type("decimal(12)")
        assert norm.generic_type == "numeric"
        assert norm.precision == 12
        assert norm.scale is None

    def test_empty_type_is_string(self):
        assert normalize_type("") == NormalizedType("string")
        assert normalize_type("   ") == NormalizedType("string")

    def test_unknown_type_is_other(self):
        assert normalize_type("geography").generic_type == "other"

    def test_substring_fallbacks(self):
        assert normalize_type("UNSIGNED_INT_CUSTOM").generic_type == "integer"
        assert normalize_type("citext").generic_type == "string"
        assert normalize_type("binary_double_x").generic_type == "float"

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("bigint", "integer"),
            ("serial", "integer"),
            ("double precision", "float"),
            ("money", "float"),
            ("bool", "boolean"),
            ("bit", "boolean"),
            ("date", "date"),
            ("time without time zone", "time"),
            ("datetime2", "timestamp"),
            ("timestamp with time zone", "timestamp"),
            ("TIMESTAMPTZ", "timestamp"),
            ("uniqueidentifier", "uuid"),
            ("jsonb", "json"),
            ("bytea", "bytes"),
            ("interval", "string"),
        ],
    )
    def test_families(self, raw, expected):
        assert normalize_type(raw).generic_type == expected

    def test_dimensions_dropped_for_non_sized_types(self):
        norm = normalize_type("int(11)")
        assert norm == NormalizedType("integer")

    def test_non_numeric_length_ignored(self):
        assert normalize_type("nvarchar(max)") == NormalizedType("string")

    def test_negative_scale_ignored(self):
        norm = normalize_type("numeric(5,-1)")
        assert norm.precision == 5
        assert norm.scale is None

    def test_generic_type_set(self):
        assert "timestamptz" in GENERIC_TYPES
        assert is_generic_type("uuid")
        assert not is_generic_type("varchar")


# ---------------------------------------------------------------------------
# resolve_export_type
# ---------------------------------------------------------------------------

class TestResolveExportType:
    def test_postgres_defaults(self):
        assert resolve_export_type("postgres", "string", length=100) == "varchar(100)"
        assert resolve_export_type("postgres", "string") == "text"
        assert resolve_export_type("postgres", "float") == "double precision"
        assert resolve_export_type("postgres", "json") == "jsonb"
        assert resolve_export_type("postgres", "timestamptz") == "timestamp with time zone"

    def test_mysql_defaults(self):
        assert resolve_export_type("mysql", "boolean") == "tinyint(1)"
        assert resolve_export_type("mysql", "uuid") == "char(36)"
        assert resolve_export_type("mysql", "numeric", precision=10, scale=2) == "decimal(10,2)"
        assert resolve_export_type("mysql", "timestamp") == "datetime"

    def test_mssql_defaults(self):
        assert resolve_export_type("mssql", "string") == "nvarchar(max)"
        assert resolve_export_type("mssql", "string", length=50) == "nvarchar(50)"
        assert resolve_export_type("mssql", "uuid") == "uniqueidentifier"
        assert resolve_export_type("mssql", "bytes") == "varbinary(max)"

    def test_bigquery_defaults(self):
        assert resolve_export_type("bigquery", "string", length=20) == "STRING"
        assert resolve_export_type("bigquery", "integer") == "INT64"
        assert resolve_export_type("bigquery", "boolean") == "BOOL"
        assert resolve_export_type("bigquery", "other") == "OTHER"

    def test_numeric_without_precision(self):
        assert resolve_export_type("postgres", "numeric") == "numeric"
        assert resolve_export_type("postgres", "numeric", precision=8) == "numeric(8)"

    def test_override_wins(self):
        overrides = {"postgres": "citext", "mysql": {"type": "varchar(191)"}}
        assert resolve_export_type("postgres", "string", length=10, overrides=overrides) == "citext"
        assert resolve_export_type("mysql", "string", overrides=overrides) == "varchar(191)"
        assert resolve_export_type("mssql", "string", overrides=overrides) == "nvarchar(max)"

    def test_empty_override_ignored(self):
        assert resolve_export_type("postgres", "integer", overrides={"postgres": ""}) == "integer"

    def test_unknown_dialect(self):
        with pytest.raises(UnsupportedDialectError):
            resolve_export_type("oracle", "string")


# ---------------------------------------------------------------------------
# Dialect
# ---------------------------------------------------------------------------

class TestDialect:
    def test_parse_is_case_insensitive(self):
        assert Dialect.parse(" Postgres ") is Dialect.POSTGRES
        assert Dialect.parse(Dialect.MSSQL) is Dialect.MSSQL

    def test_unknown_dialect_is_value_error(self):
        with pytest.raises(ValueError) as exc:
            Dialect.parse("sqlite")
        assert "sqlite" in str(exc.value)

    def test_dialect_names(self):
        assert dialect_names() == ["postgres", "mysql", "mssql", "bigquery"]
