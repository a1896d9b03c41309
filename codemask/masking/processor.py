"""
Masking Processor
------------------
Drives scanner -> classifier -> stub generator over uploaded files.

Only script files are scanned; everything else (HTML, CSS, images decoded
as text) is passed through.  One malformed fragment never aborts a file:
at worst it becomes an UNKNOWN chunk, or an unmatched marker is left in
the output verbatim.
"""
from __future__ import annotations

from pathlib import PurePosixPath
from typing import Callable, Iterable

from loguru import logger

from codemask.ids import new_chunk_id
from codemask.masking.classifier import classify
from codemask.masking.scanner import has_markers, scan
from codemask.masking.stubs import generate
from codemask.schemas import Chunk, MaskResult, ProcessedFile, SourceFile

SCRIPT_EXTENSIONS = frozenset({".js", ".jsx", ".ts", ".tsx", ".mjs"})


def is_script(relative_path: str) -> bool:
    return PurePosixPath(relative_path).suffix.lower() in SCRIPT_EXTENSIONS


def transform_file(
    relative_path: str,
    content: str,
    id_factory: Callable[[], str] = new_chunk_id,
) -> tuple[str, list[Chunk]]:
    """
    Replace every marked fragment in `content` with its stub.

    Returns:
        (transformed_text, chunks in the order they appear)
    """
    if not has_markers(content):
        return content, []

    parts: list[str] = []
    chunks: list[Chunk] = []
    for segment in scan(content):
        parts.append(segment.verbatim)
        if segment.unmatched:
            logger.warning(f"[Processor] {relative_path}: unmatched CODEMASK_START left in place")
        if segment.fragment is None:
            continue

        snippet = classify(segment.fragment)
        chunk_id = id_factory()
        stub, chunk = generate(chunk_id, snippet)
        parts.append(stub)
        chunks.append(chunk)

    logger.debug(f"[Processor] {relative_path}: {len(chunks)} fragment(s) masked")
    return "".join(parts), chunks


def process_files(
    files: Iterable[SourceFile],
    id_factory: Callable[[], str] = new_chunk_id,
) -> MaskResult:
    """Mask every script file in `files`; pass the rest through as text."""
    result = MaskResult()

    for f in files:
        text = f.content.decode("utf-8", errors="replace")
        if not is_script(f.relative_path):
            result.processed_files.append(ProcessedFile(relative_path=f.relative_path, content=text))
            continue

        out, file_chunks = transform_file(f.relative_path, text, id_factory)
        result.processed_files.append(ProcessedFile(relative_path=f.relative_path, content=out))
        result.chunks.extend(file_chunks)

    logger.info(
        f"[Processor] {len(result.processed_files)} file(s) processed | "
        f"{len(result.chunks)} chunk(s) extracted"
    )
    return result
