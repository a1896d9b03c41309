"""
CodeMask - CLI Entry Point
---------------------------
Usage:
    codemask serve                              # Run the API server
    codemask mask ./site --out site.zip         # Mask a local directory offline
    codemask fetch http://localhost:8080 PROJECT CHUNK --key KEY
"""
from __future__ import annotations

import sys

# Windows cp1252 terminal fix
if sys.platform == "win32":
    sys.stdout.reconfigure(encoding="utf-8", errors="replace")
    sys.stderr.reconfigure(encoding="utf-8", errors="replace")

import asyncio
import base64
import json
from pathlib import Path
from typing import Optional

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from codemask.config import load_settings
from codemask.errors import CodeMaskError
from codemask.loader import CodeMaskLoader
from codemask.registry import ChunkRegistry
from codemask.service import MaskService
from codemask.utils.helpers import read_source_tree, save_json
from codemask.utils.logger import setup_logger

app = typer.Typer(
    name="codemask",
    help="CodeMask - hide marked client-side code behind a keyed fetch endpoint",
    add_completion=False,
)
console = Console()


# --- Commands -----------------------------------------------------------------

@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (default from settings)"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port (default from settings)"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to config YAML"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on code changes"),
) -> None:
    """Run the CodeMask API server with uvicorn."""
    import uvicorn

    settings = load_settings(config)
    setup_logger(settings.log_level, settings.log_file)
    uvicorn.run(
        "app.server:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
    )


@app.command()
def mask(
    source_dir: Path = typer.Argument(..., help="Directory of files to mask"),
    out: Path = typer.Option(Path("codemask-output.zip"), "--out", "-o", help="Archive to write"),
    manifest: Path = typer.Option(
        Path("codemask-manifest.json"), "--manifest", "-m", help="Project manifest to write"
    ),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to config YAML"),
) -> None:
    """
    Mask a local directory without a running server.

    \b
    Writes:
      - the transformed files as a zip archive
      - a JSON manifest with project id, key, SDK snippet and chunk table

    The chunks live only in this process; serve them by uploading the same
    files to a running server instead.
    """
    if not source_dir.is_dir():
        console.print(f"[red]Not a directory: {source_dir}[/red]")
        raise typer.Exit(1)

    settings = load_settings(config)
    setup_logger(settings.log_level, None)

    registry = ChunkRegistry()
    service = MaskService(registry, settings)
    result = service.mask(read_source_tree(source_dir))

    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(base64.b64decode(result.download))

    chunks = registry.list_chunks(result.projectId)
    save_json(
        {
            "projectId": result.projectId,
            "envKey": result.envKey,
            "sdkSnippet": result.sdkSnippet,
            "chunks": [c.model_dump(mode="json") for c in chunks],
        },
        manifest,
    )

    table = Table("Chunk", "Kind", "Name", box=box.SIMPLE, header_style="bold dim")
    for c in chunks:
        table.add_row(c.chunk_id, c.kind.value, c.name or "-")
    console.print(table)
    console.print(
        f"[green][OK] {len(chunks)} chunk(s) masked[/green] | "
        f"project=[cyan]{result.projectId}[/cyan]\n"
        f"  archive : {out}\n"
        f"  manifest: {manifest}"
    )


@app.command()
def fetch(
    base_url: str = typer.Argument(..., help="Server base URL, e.g. http://localhost:8080"),
    project_id: str = typer.Argument(..., help="Project id"),
    chunk_id: str = typer.Argument(..., help="Chunk id"),
    key: str = typer.Option(..., "--key", "-k", help="Project key"),
) -> None:
    """Fetch one chunk payload from a running server and print it."""
    try:
        payload = asyncio.run(_fetch_async(base_url, project_id, chunk_id, key))
    except CodeMaskError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)
    console.print_json(json.dumps(payload))


async def _fetch_async(base_url: str, project_id: str, chunk_id: str, key: str) -> dict:
    async with CodeMaskLoader() as loader:
        loader.init(base_url, project_id, key)
        payload = await loader.fetch_payload(chunk_id)
    return payload.to_wire()


# --- Entry Point --------------------------------------------------------------

if __name__ == "__main__":
    app()
