"""Error types raised by studio_core."""

from typing import Any, Dict, Optional


class StudioError(Exception):
    """Base exception for Schema Studio errors."""

    def __init__(self, message: str, code: str = "STUDIO_ERROR", details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ModelError(StudioError):
    """A model object violates an invariant (e.g. mismatched composite key lists)."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="MODEL_ERROR", details=details)


class ImportFormatError(StudioError):
    """Input text could not be parsed by an importer."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="IMPORT_FORMAT_ERROR", details=details)


class UnsupportedDialectError(StudioError, ValueError):
    def __init__(self, dialect: str, supported: Optional[list] = None):
        supported = supported or []
        message = f"Unsupported dialect: {dialect}"
        if supported:
            message += f". Use one of: {', '.join(supported)}."
        super().__init__(message, code="UNSUPPORTED_DIALECT", details={"dialect": dialect})


class UnsupportedDriverError(StudioError, ValueError):
    def __init__(self, driver: str):
        super().__init__(
            f"unsupported database driver: {driver}",
            code="UNSUPPORTED_DRIVER",
            details={"driver": driver},
        )


class DriverNotInstalledError(StudioError):
    """The Python package backing a database driver is not importable."""

    def __init__(self, driver: str, package: str):
        super().__init__(
            f"{driver} driver not installed. Run: pip install {package}",
            code="DRIVER_NOT_INSTALLED",
            details={"driver": driver, "package": package},
        )


class ConnectionFailedError(StudioError):
    """A database connection could not be established."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="CONNECTION_ERROR", details=details)


class IntrospectionError(StudioError):
    """A catalog query failed while inspecting a live database."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="INTROSPECTION_ERROR", details=details)


class WorkspaceError(StudioError):
    """Error reading or writing a workspace store."""

    def __init__(self, message: str, code: str = "WORKSPACE_ERROR", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, details=details)


class SchemaVersionError(WorkspaceError):
    """The workspace file was written by a newer schema version."""

    def __init__(self, found: int, supported: int):
        super().__init__(
            f"workspace file version {found} is newer than supported version {supported}; "
            "please upgrade Schema Studio",
            code="SCHEMA_VERSION_ERROR",
            details={"found": found, "supported": supported},
        )


class WorkspaceNotFoundError(WorkspaceError):
    def __init__(self, workspace_id: str):
        super().__init__(
            f"workspace {workspace_id} not found",
            code="WORKSPACE_NOT_FOUND",
            details={"workspaceId": workspace_id},
        )
