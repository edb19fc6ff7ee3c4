import argparse
import json
import logging
import sys
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

from studio_core import (
    ConnectionConfig,
    Diagram,
    Driver,
    TableCatalog,
    WorkspaceManager,
    bundled_schema,
    export_mermaid,
    export_plantuml,
    export_sql,
    import_csv,
    import_mermaid,
    import_sql_ddl,
    list_drivers,
    load_json_document,
    load_schema,
    load_yaml_profiles,
    migrate_from_folder,
    new_inspector,
    profile_to_config,
    schema_issues,
    test_connection,
)
from studio_core.errors import StudioError
from studio_core.issues import Issue, has_errors, to_lines
from studio_core.loader import profile_to_connection_profile
from studio_core.typemap import dialect_names
from studio_core.workspace import WorkspaceRepo, WorkspaceSettings

logger = logging.getLogger("studio_cli")

TEXT_FORMATS = ("mermaid", "plantuml")
EXPORT_FORMATS = tuple(dialect_names()) + TEXT_FORMATS


def _normalize_host_and_port(host: str, port: int) -> Tuple[str, int]:
    """Accept URL-ish host input and normalize it to hostname + port."""
    clean_host = (host or "").strip()
    clean_port = port or 0
    if not clean_host:
        return "", clean_port

    target = clean_host if "://" in clean_host else f"//{clean_host}"
    parsed = urlparse(target)
    normalized_host = parsed.hostname or clean_host.split("/", 1)[0].strip()

    parsed_port = 0
    try:
        parsed_port = parsed.port or 0
    except ValueError:
        parsed_port = 0

    if not clean_port and parsed_port:
        clean_port = parsed_port

    return normalized_host, clean_port


def _print_issue_block(prefix: str, issues: List[Issue]) -> None:
    """Issues go to stderr so stdout stays machine-readable."""
    if not issues:
        return
    print(f"{prefix}:", file=sys.stderr)
    for line in to_lines(issues):
        print(f"  {line}", file=sys.stderr)


def _write_json(path: str, payload: Dict[str, Any]) -> None:
    Path(path).write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")


def _emit_text(text: str, out: Optional[str], what: str) -> None:
    if out:
        Path(out).write_text(text, encoding="utf-8")
        print(f"Wrote {what}: {out}")
    else:
        sys.stdout.write(text)


def _emit_catalog(catalog: TableCatalog, out: Optional[str]) -> int:
    _print_issue_block("Import warnings", catalog.issues)
    if out:
        _write_json(out, catalog.to_dict())
        print(f"Wrote catalog JSON: {out} ({len(catalog.tables)} tables, {len(catalog.relationships)} relationships)")
    else:
        print(json.dumps(catalog.to_dict(), indent=2))
    return 1 if has_errors(catalog.issues) else 0


# ---------------------------------------------------------------------------
# Import / export
# ---------------------------------------------------------------------------


def cmd_import_sql(args: argparse.Namespace) -> int:
    ddl_text = Path(args.input).read_text(encoding="utf-8")
    catalog = import_sql_ddl(ddl_text, import_source=args.source or Path(args.input).name)
    return _emit_catalog(catalog, args.out)


def cmd_import_csv(args: argparse.Namespace) -> int:
    csv_text = Path(args.input).read_text(encoding="utf-8")
    catalog = import_csv(csv_text, import_source=args.source or Path(args.input).name)
    return _emit_catalog(catalog, args.out)


def cmd_import_mermaid(args: argparse.Namespace) -> int:
    text = Path(args.input).read_text(encoding="utf-8")
    catalog = import_mermaid(text, import_source=args.source or Path(args.input).name)
    return _emit_catalog(catalog, args.out)


def cmd_export(args: argparse.Namespace) -> int:
    diagram = Diagram.from_dict(load_json_document(args.document))
    if args.dialect == "mermaid":
        text = export_mermaid(diagram)
    elif args.dialect == "plantuml":
        text = export_plantuml(diagram)
    else:
        text = export_sql(
            args.dialect,
            diagram,
            schema=args.schema or "",
            project=args.project or "",
            dataset=args.dataset or "",
            mode=args.mode or "",
        )
    _emit_text(text, args.out, f"{args.dialect} output")
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    schema = load_schema(args.schema) if args.schema else bundled_schema()
    document = load_json_document(args.document)
    issues = schema_issues(document, schema)
    if not has_errors(issues):
        # composite key lists must line up
        Diagram.from_dict(document)

    if args.output_json:
        print(json.dumps([issue.to_dict() for issue in issues], indent=2))
    elif issues:
        for line in to_lines(issues):
            print(line)
    else:
        print("No issues found.")
    return 1 if has_errors(issues) else 0


# ---------------------------------------------------------------------------
# Live databases
# ---------------------------------------------------------------------------


def cmd_connectors(args: argparse.Namespace) -> int:
    drivers = list_drivers()
    if args.output_json:
        print(json.dumps(drivers, indent=2))
        return 0

    print("Available database drivers:\n")
    for d in drivers:
        status = "installed" if d["installed"] else "NOT INSTALLED"
        print(f"  {d['type']:10s}  {d['name']:22s}  package: {d['driver']:24s}  [{status}]")
    print(
        "\nUsage: studio pull <driver> --host <host> --database <db> --user <user> "
        "--password <pass> --db-schema <schema> [--out catalog.json]"
    )
    return 0


def _build_connection_config(args: argparse.Namespace) -> ConnectionConfig:
    if getattr(args, "profile", None):
        if not args.profiles:
            raise StudioError("--profile requires --profiles FILE", code="MISSING_PROFILES_FILE")
        profiles = load_yaml_profiles(args.profiles)
        if args.profile not in profiles:
            raise StudioError(
                f"profile '{args.profile}' not found in {args.profiles}",
                code="PROFILE_NOT_FOUND",
                details={"available": sorted(profiles)},
            )
        return profile_to_config(profiles[args.profile], password=args.password)

    if not args.driver:
        raise StudioError("a driver or --profile is required", code="MISSING_DRIVER")

    host, port = _normalize_host_and_port(args.host or "", args.port or 0)
    config = ConnectionConfig(
        driver=Driver.parse(args.driver).value,
        host=host,
        port=port,
        database=args.database or "",
        username=args.user or "",
        password=args.password or "",
        ssl_mode=args.ssl_mode or "",
        project=args.project or "",
        dataset=args.dataset or "",
        credentials_file=args.credentials_file or "",
        bigquery_auth_mode=args.auth_mode or "",
    )
    if args.timeout:
        config.timeout = args.timeout
    return config


def cmd_pull(args: argparse.Namespace) -> int:
    config = _build_connection_config(args)

    if args.test:
        ok, msg = test_connection(config)
        print(f"{'OK' if ok else 'FAIL'}: {msg}")
        return 0 if ok else 1

    inspector = new_inspector(config.driver)
    ok, msg = inspector.check_driver()
    if not ok:
        print(f"Driver check failed: {msg}", file=sys.stderr)
        return 1

    inspector.connect(config)
    with inspector:
        if args.list_schemas:
            for name in inspector.list_schemas():
                print(name)
            return 0

        schema_name = args.db_schema or config.dataset
        if not schema_name:
            raise StudioError("--db-schema is required", code="MISSING_SCHEMA")

        if args.list_tables:
            for name in inspector.list_tables(schema_name):
                print(name)
            return 0

        print(f"Inspecting {inspector.display_name} schema {schema_name}...", file=sys.stderr)
        catalog = inspector.inspect_schema(schema_name, args.tables or None)

    return _emit_catalog(catalog, args.out)


# ---------------------------------------------------------------------------
# Workspace files
# ---------------------------------------------------------------------------


def _open_existing(manager: WorkspaceManager, path: str) -> Tuple[str, WorkspaceRepo]:
    if not Path(path).exists():
        raise StudioError(f"workspace file not found: {path}", code="WORKSPACE_NOT_FOUND")
    return manager.open_workspace(path)


def cmd_workspace_init(args: argparse.Namespace) -> int:
    manager = WorkspaceManager()
    ws_id, repo = manager.create_workspace(args.path)
    try:
        repo.save_all_settings(
            WorkspaceSettings(
                name=args.name or Path(args.path).stem,
                description=args.description or "",
            )
        )
    finally:
        manager.close_workspace(ws_id)
    print(f"Initialized workspace: {args.path}")
    return 0


def cmd_workspace_info(args: argparse.Namespace) -> int:
    manager = WorkspaceManager()
    ws_id, repo = _open_existing(manager, args.path)
    try:
        tables = repo.list_catalog_tables()
        info = {
            "path": repo.file_path,
            "settings": repo.get_all_settings().to_dict(),
            "tables": len(tables),
            "fields": sum(len(t.fields) for t in tables),
            "relationships": len(repo.list_catalog_relationships()),
            "diagrams": [d.to_dict() for d in repo.list_diagrams()],
            "connectionProfiles": [p.to_dict() for p in repo.list_connection_profiles()],
        }
    finally:
        manager.close_workspace(ws_id)

    if args.output_json:
        print(json.dumps(info, indent=2))
        return 0

    print(f"Workspace: {info['settings'].get('name') or '(unnamed)'} ({info['path']})")
    if info["settings"].get("description"):
        print(f"  {info['settings']['description']}")
    print(f"  Tables:        {info['tables']} ({info['fields']} fields)")
    print(f"  Relationships: {info['relationships']}")
    print(f"  Diagrams:      {len(info['diagrams'])}")
    for d in info["diagrams"]:
        print(f"    - {d['name']}")
    print(f"  Profiles:      {len(info['connectionProfiles'])}")
    for p in info["connectionProfiles"]:
        print(f"    - {p['name']} ({p['driver']})")
    return 0


def cmd_workspace_import(args: argparse.Namespace) -> int:
    catalog = TableCatalog.from_dict(load_json_document(args.catalog))
    manager = WorkspaceManager()
    ws_id, repo = _open_existing(manager, args.path)
    try:
        table_ids = repo.merge_catalog(catalog)
    finally:
        manager.close_workspace(ws_id)
    print(f"Imported {len(table_ids)} tables into {args.path}")
    return 0


def cmd_workspace_add_profile(args: argparse.Namespace) -> int:
    profiles = load_yaml_profiles(args.profiles)
    if args.profile not in profiles:
        raise StudioError(
            f"profile '{args.profile}' not found in {args.profiles}",
            code="PROFILE_NOT_FOUND",
            details={"available": sorted(profiles)},
        )

    manager = WorkspaceManager()
    ws_id, repo = _open_existing(manager, args.path)
    try:
        existing = {p.name: p.id for p in repo.list_connection_profiles()}
        profile_id = existing.get(args.profile) or str(uuid.uuid4())
        repo.save_connection_profile(profile_to_connection_profile(profile_id, args.profile, profiles[args.profile]))
    finally:
        manager.close_workspace(ws_id)
    print(f"Saved connection profile '{args.profile}' (password not stored)")
    return 0


def cmd_migrate(args: argparse.Namespace) -> int:
    if not Path(args.old_folder).is_dir():
        raise StudioError(f"legacy workspace folder not found: {args.old_folder}", code="WORKSPACE_NOT_FOUND")
    result = migrate_from_folder(args.old_folder, args.new_file)

    if args.output_json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print(f"Migrated {args.old_folder} -> {args.new_file}")
        print(f"  Tables:        {result.tables_imported}")
        print(f"  Relationships: {result.relationships_imported}")
        print(f"  Diagrams:      {result.diagrams_imported}")
        for w in result.warnings:
            print(f"  [WARN] {w}")
        for e in result.errors:
            print(f"  [ERROR] {e}")
    return 1 if result.errors else 0


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def _add_import_parser(sub: Any, name: str, help_text: str, func: Any) -> None:
    p = sub.add_parser(name, help=help_text)
    p.add_argument("input", help="Input file path")
    p.add_argument("--source", help="Import source label (defaults to the file name)")
    p.add_argument("--out", help="Output catalog JSON path")
    p.set_defaults(func=func)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="studio", description="Schema Studio CLI")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    _add_import_parser(sub, "import-sql", "Import CREATE TABLE statements", cmd_import_sql)
    _add_import_parser(sub, "import-csv", "Import a table,column,type CSV", cmd_import_csv)
    _add_import_parser(sub, "import-mermaid", "Import a Mermaid erDiagram", cmd_import_mermaid)

    export_parser = sub.add_parser("export", help="Export a diagram or catalog JSON document")
    export_parser.add_argument("document", help="Diagram or catalog JSON path")
    export_parser.add_argument("--dialect", required=True, choices=EXPORT_FORMATS)
    export_parser.add_argument("--schema", help="Schema prefix for postgres/mysql/mssql")
    export_parser.add_argument("--project", help="BigQuery project ID")
    export_parser.add_argument("--dataset", help="BigQuery dataset")
    export_parser.add_argument(
        "--mode",
        choices=["if_not_exists", "create_or_replace"],
        help="BigQuery table creation mode",
    )
    export_parser.add_argument("--out", help="Output file path")
    export_parser.set_defaults(func=cmd_export)

    validate_parser = sub.add_parser("validate", help="Validate a diagram or catalog JSON document")
    validate_parser.add_argument("document", help="Document JSON path")
    validate_parser.add_argument("--schema", help="JSON Schema path (defaults to the bundled diagram schema)")
    validate_parser.add_argument("--output-json", action="store_true", help="Print issues as JSON")
    validate_parser.set_defaults(func=cmd_validate)

    connectors_parser = sub.add_parser("connectors", help="List database drivers and their install status")
    connectors_parser.add_argument("--output-json", action="store_true", help="Print as JSON")
    connectors_parser.set_defaults(func=cmd_connectors)

    pull_parser = sub.add_parser("pull", help="Inspect a live database schema into catalog JSON")
    pull_parser.add_argument("driver", nargs="?", choices=[d.value for d in Driver], help="Database driver")
    pull_parser.add_argument("--profile", help="Profile name from --profiles")
    pull_parser.add_argument("--profiles", help="Connection profiles YAML path")
    pull_parser.add_argument("--host", help="Database host (host:port accepted)")
    pull_parser.add_argument("--port", type=int, help="Database port")
    pull_parser.add_argument("--database", help="Database name")
    pull_parser.add_argument("--user", help="Database user")
    pull_parser.add_argument("--password", help="Database password")
    pull_parser.add_argument("--ssl-mode", help="SSL mode (postgres sslmode; 'disable' for mysql/mssql)")
    pull_parser.add_argument("--project", help="BigQuery project ID")
    pull_parser.add_argument("--dataset", help="BigQuery dataset")
    pull_parser.add_argument("--credentials-file", help="BigQuery service account JSON path")
    pull_parser.add_argument("--auth-mode", choices=["service_account", "adc"], help="BigQuery auth mode")
    pull_parser.add_argument("--timeout", type=int, help="Connect/query timeout in seconds")
    pull_parser.add_argument("--db-schema", help="Schema (or BigQuery dataset) to inspect")
    pull_parser.add_argument("--tables", nargs="+", help="Only inspect these tables")
    pull_parser.add_argument("--test", action="store_true", help="Only test the connection")
    pull_parser.add_argument("--list-schemas", action="store_true", help="List schemas and exit")
    pull_parser.add_argument("--list-tables", action="store_true", help="List tables in --db-schema and exit")
    pull_parser.add_argument("--out", help="Output catalog JSON path")
    pull_parser.set_defaults(func=cmd_pull)

    workspace_parser = sub.add_parser("workspace", help="Manage workspace files")
    workspace_sub = workspace_parser.add_subparsers(dest="workspace_command", required=True)

    ws_init = workspace_sub.add_parser("init", help="Create a workspace file")
    ws_init.add_argument("path", help="Workspace file path")
    ws_init.add_argument("--name", help="Workspace name (defaults to the file stem)")
    ws_init.add_argument("--description", help="Workspace description")
    ws_init.set_defaults(func=cmd_workspace_init)

    ws_info = workspace_sub.add_parser("info", help="Summarize a workspace file")
    ws_info.add_argument("path", help="Workspace file path")
    ws_info.add_argument("--output-json", action="store_true", help="Print as JSON")
    ws_info.set_defaults(func=cmd_workspace_info)

    ws_import = workspace_sub.add_parser("import", help="Append an imported catalog to the workspace")
    ws_import.add_argument("path", help="Workspace file path")
    ws_import.add_argument("catalog", help="Catalog JSON path")
    ws_import.set_defaults(func=cmd_workspace_import)

    ws_profile = workspace_sub.add_parser("add-profile", help="Save a connection profile (without password)")
    ws_profile.add_argument("path", help="Workspace file path")
    ws_profile.add_argument("--profile", required=True, help="Profile name")
    ws_profile.add_argument("--profiles", required=True, help="Connection profiles YAML path")
    ws_profile.set_defaults(func=cmd_workspace_add_profile)

    migrate_parser = sub.add_parser("migrate", help="Convert a legacy workspace folder into a workspace file")
    migrate_parser.add_argument("old_folder", help="Legacy workspace folder")
    migrate_parser.add_argument("new_file", help="New workspace file path")
    migrate_parser.add_argument("--output-json", action="store_true", help="Print the migration result as JSON")
    migrate_parser.set_defaults(func=cmd_migrate)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        return args.func(args)
    except StudioError as exc:
        print(f"error: {exc.message}", file=sys.stderr)
        return 1
    except (OSError, ValueError) as exc:
        logger.debug("Command failed", exc_info=True)
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
