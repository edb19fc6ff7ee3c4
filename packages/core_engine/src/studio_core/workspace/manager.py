"""Registry of open workspace files, keyed by a per-session workspace id."""

import logging
import threading
import uuid
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from studio_core.errors import StudioError, WorkspaceNotFoundError
from studio_core.workspace.db import init_schema, migrate_schema, open_db
from studio_core.workspace.repository import WorkspaceRepo

logger = logging.getLogger(__name__)


class WorkspaceManager:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._repos: Dict[str, WorkspaceRepo] = {}

    def _register(self, repo: WorkspaceRepo) -> str:
        ws_id = str(uuid.uuid4())
        with self._lock:
            self._repos[ws_id] = repo
        return ws_id

    def create_workspace(self, file_path: Union[str, Path]) -> Tuple[str, WorkspaceRepo]:
        """Create (or reuse) a workspace file and initialize its tables."""
        conn = open_db(file_path)
        try:
            init_schema(conn)
        except StudioError:
            conn.close()
            raise
        repo = WorkspaceRepo(conn, str(file_path))
        ws_id = self._register(repo)
        logger.info("Created workspace %s at %s", ws_id, file_path)
        return ws_id, repo

    def open_workspace(self, file_path: Union[str, Path]) -> Tuple[str, WorkspaceRepo]:
        """Open an existing workspace file, refusing files from a newer release."""
        conn = open_db(file_path)
        try:
            migrate_schema(conn)
        except StudioError:
            conn.close()
            raise
        repo = WorkspaceRepo(conn, str(file_path))
        ws_id = self._register(repo)
        logger.info("Opened workspace %s at %s", ws_id, file_path)
        return ws_id, repo

    def close_workspace(self, ws_id: str) -> None:
        with self._lock:
            repo = self._repos.pop(ws_id, None)
        if repo is None:
            raise WorkspaceNotFoundError(ws_id)
        repo.close()

    def get_repo(self, ws_id: str) -> Optional[WorkspaceRepo]:
        with self._lock:
            return self._repos.get(ws_id)

    def open_ids(self) -> List[str]:
        with self._lock:
            return sorted(self._repos)

    def close_all(self) -> None:
        with self._lock:
            repos, self._repos = list(self._repos.values()), {}
        for repo in repos:
            repo.close()
