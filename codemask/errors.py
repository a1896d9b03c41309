"""CodeMask exception taxonomy.

Fetch-path errors carry the HTTP status and the message the service returns
in its ``{"error": ...}`` body. Unmatched markers and unclassifiable
fragments are not errors: they degrade to verbatim text or the unknown kind.
"""
from __future__ import annotations


class CodeMaskError(Exception):
    """Base class for every CodeMask error."""

    status_code: int = 500
    public_message: str = "Internal error"


class ProjectNotFoundError(CodeMaskError):
    status_code = 404
    public_message = "Project not found"

    def __init__(self, project_id: str) -> None:
        super().__init__(f"Project not found: {project_id}")
        self.project_id = project_id


class ForbiddenError(CodeMaskError):
    status_code = 403
    public_message = "Invalid key"

    def __init__(self, project_id: str) -> None:
        super().__init__(f"Invalid key for project {project_id}")
        self.project_id = project_id


class ChunkNotFoundError(CodeMaskError):
    status_code = 404
    public_message = "Chunk not found"

    def __init__(self, project_id: str, chunk_id: str) -> None:
        super().__init__(f"Chunk not found: {project_id}/{chunk_id}")
        self.project_id = project_id
        self.chunk_id = chunk_id


class ProjectExistsError(CodeMaskError):
    status_code = 409
    public_message = "Project already exists"

    def __init__(self, project_id: str) -> None:
        super().__init__(f"Project already exists: {project_id}")
        self.project_id = project_id


class ChunkLoadError(CodeMaskError):
    """The loader could not fetch a chunk (transport failure or non-2xx)."""

    def __init__(self, chunk_id: str, reason: str = "") -> None:
        message = f"Failed to load chunk {chunk_id}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.chunk_id = chunk_id


class LoaderNotReadyError(CodeMaskError):
    """A stub tried to reach the loader before it existed."""


class ChunkExecutionError(CodeMaskError):
    """A compiled chunk was invoked but no executor can run it."""


class ConfigError(ValueError):
    """Raised for invalid settings values."""
