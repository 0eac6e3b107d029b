from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from epubenc_backend.config import METADATA_HEADER, WORKSPACE_PREFIX, GatewayConfig
from epubenc_backend.engine import EncryptionEngine, LcpEncryptEngine
from epubenc_backend.errors import GatewayError
from epubenc_backend.logging_config import setup_logging
from epubenc_backend.pipeline import EncryptPipeline
from epubenc_backend.workspace import sweep_stale_workspaces


logger = logging.getLogger("epubenc.server")


def get_pipeline(request: Request) -> EncryptPipeline:
    return request.app.state.pipeline


router = APIRouter()


@router.post("/v1/encrypt")
async def encrypt_epub(request: Request, pipeline: EncryptPipeline = Depends(get_pipeline)) -> Response:
    """Encrypt an uploaded EPUB and stream it back.

    Form parts: `file` (required) and `title` (optional). Metadata travels as
    JSON in the X-Encrypt-Metadata header; nothing is stored.
    """
    return await pipeline.run(request)


@router.get("/healthz")
async def healthz() -> JSONResponse:
    return JSONResponse({"ok": True})


async def _gateway_error_handler(request: Request, exc: GatewayError) -> Response:
    return PlainTextResponse(exc.public_message(), status_code=exc.status_code)


def create_app(config: Optional[GatewayConfig] = None, engine: Optional[EncryptionEngine] = None) -> FastAPI:
    config = config or GatewayConfig.from_env()
    engine = engine or LcpEncryptEngine(config.engine_command, config.engine_timeout_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Remove workspaces a crashed process left behind in a dedicated root.
        if config.workspaces_root is not None:
            try:
                deleted = sweep_stale_workspaces(
                    config.workspaces_root, WORKSPACE_PREFIX, config.stale_workspace_seconds
                )
            except OSError as exc:
                logger.warning("stale workspace sweep failed: %s", exc)
            else:
                if deleted:
                    logger.info("removed %d stale workspaces", deleted)
        yield

    app = FastAPI(title="EPUB encryption gateway", lifespan=lifespan)
    app.state.config = config
    app.state.pipeline = EncryptPipeline(engine, config, logging.getLogger("epubenc.encrypt"))

    # Browser clients need to read the metadata header off a cross-origin response.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["POST", "GET"],
        allow_headers=["*"],
        expose_headers=[METADATA_HEADER, "Content-Disposition"],
    )
    app.add_exception_handler(GatewayError, _gateway_error_handler)
    app.include_router(router)
    return app


if __name__ == "__main__":
    # Convenience: python server.py
    import uvicorn

    _config = GatewayConfig.from_env()
    setup_logging(_config.log_level)
    port = int(os.environ.get("PORT", "8010"))
    uvicorn.run(create_app(_config), host="127.0.0.1", port=port, reload=False, log_config=None)
