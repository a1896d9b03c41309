"""
Fetch Authorizer
-----------------
Validates a (project, chunk, key) triple and shapes the payload served back
to the loader.

Checks run in a fixed order and stop at the first failure:

    1. project exists          else ProjectNotFoundError  (404)
    2. key matches exactly     else ForbiddenError        (403)
    3. chunk exists            else ChunkNotFoundError    (404)

The key is checked before the chunk is looked up, so a wrong key never
reveals whether a chunk id exists.
"""
from __future__ import annotations

import secrets
from typing import Optional

from loguru import logger

from codemask.errors import ChunkNotFoundError, ForbiddenError, ProjectNotFoundError
from codemask.registry import ChunkRegistry
from codemask.schemas import Chunk, FetchPayload


def keys_match(supplied: Optional[str], expected: str) -> bool:
    """Exact comparison, done in constant time."""
    if supplied is None:
        return False
    return secrets.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8"))


def shape_payload(chunk: Chunk) -> FetchPayload:
    """
    Function kinds are served as arrow-function source the loader can
    compile; constants and unknown blocks are served as their original text.
    """
    if chunk.kind.is_function:
        return FetchPayload(
            kind="function",
            name=chunk.name,
            code=f"({chunk.params}) => {{ {chunk.body} }}",
        )
    return FetchPayload(kind="raw", code=chunk.original)


class FetchAuthorizer:
    """Read-side gate in front of a ChunkRegistry."""

    def __init__(self, registry: ChunkRegistry) -> None:
        self.registry = registry

    def authorize(self, project_id: str, chunk_id: str, supplied_key: Optional[str]) -> FetchPayload:
        project_key = self.registry.project_key(project_id)
        if project_key is None:
            logger.warning(f"[Fetch] 404 project: {project_id} {chunk_id}")
            raise ProjectNotFoundError(project_id)

        if not keys_match(supplied_key, project_key):
            logger.warning(f"[Fetch] 403 key mismatch: {project_id} {chunk_id}")
            raise ForbiddenError(project_id)

        chunk = self.registry.get_chunk(project_id, chunk_id)
        if chunk is None:
            logger.warning(f"[Fetch] 404 chunk: {project_id} {chunk_id}")
            raise ChunkNotFoundError(project_id, chunk_id)

        logger.info(f"[Fetch] 200 {project_id} {chunk_id} | kind={chunk.kind.value}")
        return shape_payload(chunk)
