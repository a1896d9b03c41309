"""
Chunk Registry
---------------
Per-project table of masked chunks, gated by each project's secret key.

State lives in memory for the life of the process.  The registry only grows:
projects and chunks are never deleted or expired.  A single lock guards
every read and write so the store stays consistent when handlers run on a
thread pool.
"""
from __future__ import annotations

import threading
from typing import Optional

from loguru import logger

from codemask.errors import ProjectExistsError, ProjectNotFoundError
from codemask.schemas import Chunk, Project


class ChunkRegistry:
    """
    In-memory store of Projects and their Chunks.

    Usage:
        registry = ChunkRegistry()
        registry.create_project("p1", "secret")
        registry.put_chunk("p1", chunk.chunk_id, chunk)
        registry.get_chunk("p1", chunk.chunk_id)
    """

    def __init__(self) -> None:
        self._projects: dict[str, Project] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._projects)

    def __contains__(self, project_id: str) -> bool:
        with self._lock:
            return project_id in self._projects

    def create_project(self, project_id: str, key: str) -> Project:
        """Register an empty project.  Raises ProjectExistsError on id collision."""
        with self._lock:
            if project_id in self._projects:
                raise ProjectExistsError(project_id)
            project = Project(project_id=project_id, key=key)
            self._projects[project_id] = project
            created = project.model_copy(deep=True)
        logger.debug(f"[Registry] Project created: {project_id}")
        return created

    def put_chunk(self, project_id: str, chunk_id: str, chunk: Chunk) -> None:
        """Store `chunk` under `chunk_id`; overwrites an existing entry."""
        with self._lock:
            project = self._projects.get(project_id)
            if project is None:
                raise ProjectNotFoundError(project_id)
            project.chunks[chunk_id] = chunk

    def get_project(self, project_id: str) -> Optional[Project]:
        """Detached copy; mutating it never reaches the registry."""
        with self._lock:
            project = self._projects.get(project_id)
            return project.model_copy(deep=True) if project else None

    def project_key(self, project_id: str) -> Optional[str]:
        with self._lock:
            project = self._projects.get(project_id)
            return project.key if project else None

    def list_chunks(self, project_id: str) -> list[Chunk]:
        """Chunks in insertion order; empty for an unknown project."""
        with self._lock:
            project = self._projects.get(project_id)
            return list(project.chunks.values()) if project else []

    def get_chunk(self, project_id: str, chunk_id: str) -> Optional[Chunk]:
        """None when either the project or the chunk is missing."""
        with self._lock:
            project = self._projects.get(project_id)
            if project is None:
                return None
            return project.chunks.get(chunk_id)

    def chunk_count(self, project_id: str) -> int:
        with self._lock:
            project = self._projects.get(project_id)
            return len(project.chunks) if project else 0
