"""
CodeMask - Web API Server
--------------------------
FastAPI server that masks uploaded sources and serves the hidden chunks
back to authorised loaders.

Endpoints:
  POST /api/mask                        -> mask uploaded files, return project + zip
  GET  /api/fetch/{project}/{chunk}     -> serve one chunk (requires ?key=)
  GET  /sdk/codemask-sdk.js             -> browser loader script
  GET  /api/health                      -> service status

Run from the project root:
    uvicorn app.server:app --reload --port 8080
"""
from __future__ import annotations

import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

# Windows cp1252 terminal fix
if sys.platform == "win32":
    sys.stdout.reconfigure(encoding="utf-8", errors="replace")
    sys.stderr.reconfigure(encoding="utf-8", errors="replace")

from fastapi import Depends, FastAPI, File, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from loguru import logger

from codemask.access import FetchAuthorizer
from codemask.config import Settings, load_settings
from codemask.errors import CodeMaskError
from codemask.registry import ChunkRegistry
from codemask.schemas import ErrorPayload, SourceFile
from codemask.service import MaskService
from codemask.utils.logger import setup_logger

# ---------------------------------------------------------------------------
# Paths & constants
# ---------------------------------------------------------------------------

STATIC_DIR = Path(__file__).parent / "static"
SDK_FILE = STATIC_DIR / "codemask-sdk.js"


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_mask_service(request: Request) -> MaskService:
    return request.app.state.mask_service


def get_authorizer(request: Request) -> FetchAuthorizer:
    return request.app.state.authorizer


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------

def create_app(
    settings: Optional[Settings] = None,
    registry: Optional[ChunkRegistry] = None,
) -> FastAPI:
    """Build a service around its own registry (a fresh one unless given)."""
    settings = settings or load_settings()
    registry = registry if registry is not None else ChunkRegistry()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logger(settings.log_level, settings.log_file)
        logger.info(
            f"[Server] CodeMask ready | public_url={settings.public_url} "
            f"| projects={len(registry)}"
        )
        yield
        logger.info("[Server] Shutting down; in-memory registry discarded.")

    app = FastAPI(
        title="CodeMask API",
        description="Mask client-side code fragments and serve them to key holders",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.registry = registry
    app.state.mask_service = MaskService(registry, settings)
    app.state.authorizer = FetchAuthorizer(registry)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(CodeMaskError)
    async def codemask_error_handler(request: Request, exc: CodeMaskError):
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorPayload(error=exc.public_message).model_dump(),
        )

    # -----------------------------------------------------------------------
    # Routes
    # -----------------------------------------------------------------------

    @app.post("/api/mask")
    def mask(
        files: Optional[list[UploadFile]] = File(None),
        service: MaskService = Depends(get_mask_service),
    ):
        """Mask every uploaded file and register the extracted chunks."""
        try:
            sources = [
                SourceFile(relative_path=f.filename or "unnamed", content=f.file.read())
                for f in (files or [])
            ]
            result = service.mask(sources)
        except Exception as exc:
            logger.exception(f"[Server] Mask failed: {exc}")
            return JSONResponse(status_code=500, content=ErrorPayload(error=str(exc)).model_dump())
        return result.model_dump()

    @app.get("/api/fetch/{project_id}/{chunk_id}")
    def fetch(
        project_id: str,
        chunk_id: str,
        key: Optional[str] = Query(None),
        authorizer: FetchAuthorizer = Depends(get_authorizer),
    ):
        """Serve one chunk; 404 unknown project, 403 bad key, 404 unknown chunk."""
        return authorizer.authorize(project_id, chunk_id, key).to_wire()

    @app.get("/sdk/codemask-sdk.js", include_in_schema=False)
    async def sdk():
        return FileResponse(str(SDK_FILE), media_type="application/javascript")

    @app.get("/api/health")
    async def health():
        return {"status": "ok", "projects": len(registry)}

    return app


app = create_app()
