import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from studio_core.connectors.base import DEFAULT_TIMEOUT, ConnectionConfig, Driver
from studio_core.workspace.models import ConnectionProfile

PROFILE_KEYS = (
    "driver",
    "host",
    "port",
    "database",
    "username",
    "password",
    "ssl_mode",
    "project",
    "dataset",
    "credentials_file",
    "bigquery_auth_mode",
    "timeout",
)


def _expand(value: Any) -> Any:
    if isinstance(value, str):
        return os.path.expandvars(value)
    if isinstance(value, dict):
        return {k: _expand(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand(v) for v in value]
    return value


def load_yaml_profiles(path: str) -> Dict[str, Dict[str, Any]]:
    """Read a connection profiles file.

    The file holds a top-level ``connections:`` map of profile name to
    settings. ``${VAR}`` references in string values are expanded from the
    environment so passwords can stay out of the file.
    """
    profiles_path = Path(path)
    if not profiles_path.exists():
        raise FileNotFoundError(f"Profiles file not found: {path}")

    with profiles_path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle)

    if data is None:
        return {}

    if not isinstance(data, dict):
        raise ValueError("Profiles YAML must parse to an object/map at root.")

    connections = data.get("connections") or {}
    if not isinstance(connections, dict):
        raise ValueError("Profiles YAML 'connections' must be a map of name -> profile.")

    profiles: Dict[str, Dict[str, Any]] = {}
    for name, profile in connections.items():
        if not isinstance(profile, dict):
            raise ValueError(f"Profile '{name}' must be a map.")
        profiles[str(name)] = _expand(profile)
    return profiles


def _text(profile: Dict[str, Any], key: str) -> str:
    value = profile.get(key)
    return "" if value is None else str(value)


def profile_to_config(profile: Dict[str, Any], password: Optional[str] = None) -> ConnectionConfig:
    """Build a ConnectionConfig; an explicit ``password`` wins over the profile's."""
    driver = Driver.parse(profile.get("driver"))
    return ConnectionConfig(
        driver=driver.value,
        host=_text(profile, "host"),
        port=int(profile.get("port") or 0),
        database=_text(profile, "database"),
        username=_text(profile, "username"),
        password=password if password is not None else _text(profile, "password"),
        ssl_mode=_text(profile, "ssl_mode"),
        project=_text(profile, "project"),
        dataset=_text(profile, "dataset"),
        credentials_file=_text(profile, "credentials_file"),
        bigquery_auth_mode=_text(profile, "bigquery_auth_mode"),
        timeout=int(profile.get("timeout") or DEFAULT_TIMEOUT),
    )


def profile_to_connection_profile(profile_id: str, name: str, profile: Dict[str, Any]) -> ConnectionProfile:
    """Storable form of a profile. The password is dropped."""
    config = profile_to_config(profile, password="")
    return ConnectionProfile(
        id=profile_id,
        name=name,
        driver=config.driver,
        host=config.host,
        port=config.port or None,
        database_name=config.database,
        username=config.username,
        ssl_mode=config.ssl_mode,
        project=config.project,
        dataset=config.dataset,
        credentials_file=config.credentials_file,
        bigquery_auth_mode=config.bigquery_auth_mode,
    )


def load_json_document(path: str) -> Dict[str, Any]:
    doc_path = Path(path)
    if not doc_path.exists():
        raise FileNotFoundError(f"Document not found: {path}")

    with doc_path.open("r", encoding="utf-8") as handle:
        data = json.load(handle)

    if not isinstance(data, dict):
        raise ValueError("Document JSON must be an object at root.")

    return data
