"""
Mask Service
-------------
One upload in, one project out:

    create project -> mask files -> register chunks
        -> inject loader bootstrap into HTML -> zip + base64
"""
from __future__ import annotations

import base64
from typing import Callable, Iterable

from loguru import logger

from codemask.config import Settings
from codemask.ids import new_chunk_id, new_project_id, new_project_key
from codemask.masking.processor import process_files
from codemask.packaging import build_sdk_snippet, inject_sdk_into_html, is_html, make_zip
from codemask.registry import ChunkRegistry
from codemask.schemas import MaskResponse, ProcessedFile, SourceFile

MASK_MESSAGE = (
    "SDK snippet auto-injected into your HTML files. "
    "You can still copy the snippet manually if needed."
)


class MaskService:
    """Writes masked projects into a ChunkRegistry."""

    def __init__(
        self,
        registry: ChunkRegistry,
        settings: Settings,
        chunk_id_factory: Callable[[], str] = new_chunk_id,
    ) -> None:
        self.registry = registry
        self.settings = settings
        self.chunk_id_factory = chunk_id_factory

    def mask(self, files: Iterable[SourceFile]) -> MaskResponse:
        project_id = new_project_id()
        key = new_project_key()
        self.registry.create_project(project_id, key)

        result = process_files(files, self.chunk_id_factory)
        for chunk in result.chunks:
            self.registry.put_chunk(project_id, chunk.chunk_id, chunk)

        public_url = self.settings.public_url
        processed = [
            ProcessedFile(
                relative_path=f.relative_path,
                content=inject_sdk_into_html(f.content, public_url, project_id, key),
            )
            if is_html(f.relative_path)
            else f
            for f in result.processed_files
        ]

        archive = make_zip(processed)
        logger.info(
            f"[Mask] Project {project_id} | {len(processed)} file(s) | "
            f"{len(result.chunks)} chunk(s) | archive={len(archive):,} bytes"
        )
        return MaskResponse(
            projectId=project_id,
            envKey=key,
            sdkSnippet=build_sdk_snippet(public_url, project_id, key),
            message=MASK_MESSAGE,
            download=base64.b64encode(archive).decode("ascii"),
        )
