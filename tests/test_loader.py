"""Tests for profile/document loading and JSON Schema validation.

Covers:
  - YAML connection profiles: structure errors, ${VAR} expansion
  - Profile -> ConnectionConfig / ConnectionProfile conversion
  - JSON document loading
  - Bundled diagram and profiles schemas via schema_issues
"""

import json
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "packages" / "core_engine" / "src"))

from studio_core.errors import UnsupportedDriverError
from studio_core.importers import import_sql_ddl
from studio_core.loader import (
    load_json_document,
    load_yaml_profiles,
    profile_to_config,
    profile_to_connection_profile,
)
from studio_core.schema import DIAGRAM_SCHEMA, PROFILES_SCHEMA, bundled_schema, load_schema, schema_issues

PROFILES_YAML = """
connections:
  warehouse:
    driver: postgres
    host: db.internal
    port: 5433
    database: dw
    username: etl
    password: ${WAREHOUSE_PASSWORD}
    ssl_mode: require
  analytics:
    driver: bigquery
    project: acme-analytics
    dataset: events
    credentials_file: ${HOME_DIR}/keys/bq.json
    bigquery_auth_mode: service_account
"""


# ---------------------------------------------------------------------------
# YAML profiles
# ---------------------------------------------------------------------------

class TestLoadYamlProfiles:
    def test_profiles_with_env_expansion(self, tmp_path, monkeypatch):
        monkeypatch.setenv("WAREHOUSE_PASSWORD", "s3cret")
        monkeypatch.setenv("HOME_DIR", "/home/etl")
        path = tmp_path / "profiles.yaml"
        path.write_text(PROFILES_YAML, encoding="utf-8")

        profiles = load_yaml_profiles(str(path))
        assert sorted(profiles) == ["analytics", "warehouse"]
        assert profiles["warehouse"]["password"] == "s3cret"
        assert profiles["warehouse"]["port"] == 5433
        assert profiles["analytics"]["credentials_file"] == "/home/etl/keys/bq.json"

    def test_unset_variable_left_as_is(self, tmp_path, monkeypatch):
        monkeypatch.delenv("WAREHOUSE_PASSWORD", raising=False)
        path = tmp_path / "profiles.yaml"
        path.write_text(PROFILES_YAML, encoding="utf-8")
        assert load_yaml_profiles(str(path))["warehouse"]["password"] == "${WAREHOUSE_PASSWORD}"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_yaml_profiles(str(tmp_path / "nope.yaml"))

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert load_yaml_profiles(str(path)) == {}

    def test_root_must_be_map(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ValueError):
            load_yaml_profiles(str(path))

    def test_profile_must_be_map(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("connections:\n  broken: postgres\n", encoding="utf-8")
        with pytest.raises(ValueError) as exc:
            load_yaml_profiles(str(path))
        assert "broken" in str(exc.value)


# ---------------------------------------------------------------------------
# Conversions
# ---------------------------------------------------------------------------

class TestProfileConversion:
    def test_profile_to_config(self):
        config = profile_to_config({"driver": "Postgres", "host": "db", "port": "5433", "username": "u", "password": "p"})
        assert config.driver == "postgres"
        assert config.port == 5433
        assert config.password == "p"
        assert config.timeout == 30

    def test_explicit_password_wins(self):
        config = profile_to_config({"driver": "mysql", "password": "from-file"}, password="from-prompt")
        assert config.password == "from-prompt"

    def test_unknown_driver(self):
        with pytest.raises(UnsupportedDriverError):
            profile_to_config({"driver": "oracle"})

    def test_connection_profile_drops_password(self):
        cp = profile_to_connection_profile("cp1", "warehouse", {"driver": "postgres", "host": "db", "password": "x"})
        assert cp.port is None
        assert cp.host == "db"
        assert "password" not in json.dumps(cp.to_dict())


# ---------------------------------------------------------------------------
# JSON documents and schemas
# ---------------------------------------------------------------------------

class TestDocuments:
    def test_load_json_document(self, tmp_path):
        path = tmp_path / "diagram.json"
        path.write_text('{"tables": []}', encoding="utf-8")
        assert load_json_document(str(path)) == {"tables": []}

    def test_document_must_be_object(self, tmp_path):
        path = tmp_path / "list.json"
        path.write_text("[]", encoding="utf-8")
        with pytest.raises(ValueError):
            load_json_document(str(path))

    def test_missing_schema_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_schema(str(tmp_path / "none.json"))


class TestSchemaIssues:
    def test_imported_catalog_is_valid(self):
        catalog = import_sql_ddl(
            "CREATE TABLE a (id SERIAL PRIMARY KEY, tag VARCHAR(20));"
            "CREATE TABLE b (id INT, a_id INT REFERENCES a(id));"
        )
        assert schema_issues(catalog.to_dict(), bundled_schema(DIAGRAM_SCHEMA)) == []

    def test_unknown_generic_type_is_reported(self):
        doc = {"tables": [{"id": "t1", "name": "a", "fields": [{"id": "f1", "name": "x", "type": "varchar"}]}]}
        issues = schema_issues(doc, bundled_schema())
        assert len(issues) == 1
        assert issues[0].severity == "error"
        assert issues[0].code == "SCHEMA_VALIDATION_FAILED"
        assert issues[0].path == "/tables/0/fields/0/type"

    def test_missing_tables(self):
        issues = schema_issues({}, bundled_schema())
        assert [i.path for i in issues] == ["/"]

    def test_unknown_override_dialect(self):
        doc = {
            "tables": [{
                "id": "t1", "name": "a",
                "fields": [{"id": "f1", "name": "x", "type": "string", "typeOverrides": {"oracle": {"type": "clob"}}}],
            }]
        }
        assert schema_issues(doc, bundled_schema())

    def test_profiles_schema(self):
        schema = bundled_schema(PROFILES_SCHEMA)
        good = {"connections": {"w": {"driver": "mssql", "host": "sql", "port": 1433}}}
        bad = {"connections": {"w": {"driver": "sqlite", "hostname": "x"}}}
        assert schema_issues(good, schema) == []
        assert len(schema_issues(bad, schema)) == 2
