"""
Core Pydantic schemas for CodeMask.

Masking, the chunk registry, the fetch path and the loader all share these
models so a fragment keeps the same shape from extraction to delivery.
"""
from __future__ import annotations

from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


# --- Enumerations ------------------------------------------------------------

class ChunkKind(str, Enum):
    DECL = "decl"            # function foo(a, b) { ... }
    ARROW = "arrow"          # const foo = (a, b) => { ... }
    CONSTANT = "constant"    # const TABLE = [...];
    UNKNOWN = "unknown"      # anything else, kept verbatim

    @property
    def is_function(self) -> bool:
        return self in (ChunkKind.DECL, ChunkKind.ARROW)


# --- Masking Models ------------------------------------------------------------

class ClassifiedSnippet(BaseModel):
    """Structural reading of one fragment found between markers."""

    model_config = ConfigDict(frozen=True)

    kind: ChunkKind
    name: Optional[str] = None
    params: str = ""
    body: str = ""
    original: str                        # Trimmed fragment, verbatim


class Chunk(BaseModel):
    """
    A classified fragment plus its assigned id, as stored in the registry.

    Immutable once created; params/body are only meaningful for the two
    function kinds and stay empty otherwise.
    """

    model_config = ConfigDict(frozen=True)

    chunk_id: str
    kind: ChunkKind
    name: Optional[str] = None
    params: str = ""
    body: str = ""
    original: str

    @classmethod
    def from_snippet(cls, chunk_id: str, snippet: ClassifiedSnippet) -> "Chunk":
        if snippet.kind.is_function:
            return cls(
                chunk_id=chunk_id,
                kind=snippet.kind,
                name=snippet.name,
                params=snippet.params,
                body=snippet.body,
                original=snippet.original,
            )
        return cls(
            chunk_id=chunk_id,
            kind=snippet.kind,
            name=snippet.name if snippet.kind == ChunkKind.CONSTANT else None,
            original=snippet.original,
        )


class Project(BaseModel):
    """A registry scope created per upload: one secret key, many chunks."""

    project_id: str
    key: str
    chunks: dict[str, Chunk] = Field(default_factory=dict)


class SourceFile(BaseModel):
    """An uploaded file before masking."""

    relative_path: str
    content: bytes


class ProcessedFile(BaseModel):
    """A file after masking, ready to be archived."""

    relative_path: str
    content: str


class MaskResult(BaseModel):
    processed_files: list[ProcessedFile] = Field(default_factory=list)
    chunks: list[Chunk] = Field(default_factory=list)


# --- Wire Models ---------------------------------------------------------------

class FetchPayload(BaseModel):
    """Successful fetch response. Loaders pick a compile strategy from `kind`."""

    ok: bool = True
    kind: Literal["function", "raw"]
    name: Optional[str] = None
    code: str

    def to_wire(self) -> dict:
        # raw payloads carry no name at all, not a null one
        return self.model_dump(exclude_none=True)


class ErrorPayload(BaseModel):
    error: str


class MaskResponse(BaseModel):
    projectId: str
    envKey: str
    sdkSnippet: str
    message: str
    download: str                        # base64-encoded zip archive


class LoaderState(BaseModel):
    """Publicly inspectable loader snapshot, refreshed on every init()."""

    initialized: bool = False
    base_url: str = ""
    project_id: str = ""
    cached_chunks: list[str] = Field(default_factory=list)
    init_count: int = 0
