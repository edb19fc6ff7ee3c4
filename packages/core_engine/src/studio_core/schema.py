import json
from pathlib import Path
from typing import Any, Dict, List

from jsonschema import Draft202012Validator

from studio_core.issues import ERROR, Issue

SCHEMA_DIR = Path(__file__).resolve().parent / "schemas"
DIAGRAM_SCHEMA = "diagram.schema.json"
PROFILES_SCHEMA = "profiles.schema.json"


def load_schema(schema_path: str) -> Dict[str, Any]:
    path = Path(schema_path)
    if not path.exists():
        raise FileNotFoundError(f"Schema file not found: {schema_path}")
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def bundled_schema(name: str = DIAGRAM_SCHEMA) -> Dict[str, Any]:
    """Load one of the JSON Schemas shipped with the package."""
    return load_schema(str(SCHEMA_DIR / name))


def _to_json_path(parts: List[Any]) -> str:
    if not parts:
        return "/"
    return "/" + "/".join(str(part) for part in parts)


def schema_issues(document: Dict[str, Any], schema: Dict[str, Any]) -> List[Issue]:
    validator = Draft202012Validator(schema)
    issues: List[Issue] = []

    for error in sorted(validator.iter_errors(document), key=lambda e: [str(p) for p in e.absolute_path]):
        issues.append(
            Issue(
                severity=ERROR,
                code="SCHEMA_VALIDATION_FAILED",
                message=error.message,
                path=_to_json_path(list(error.absolute_path)),
            )
        )

    return issues
