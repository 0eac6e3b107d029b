from __future__ import annotations

import logging
from contextlib import ExitStack

from fastapi import Request
from starlette.concurrency import run_in_threadpool

from .config import GatewayConfig
from .engine import EncryptionEngine
from .errors import ClientDisconnectedError, GatewayError
from .ingest import parse_upload, stage_upload
from .invoker import invoke, new_content_id
from .logging_config import set_request_id
from .response import ArtifactResponse, build_metadata, open_artifact_response, serialize_metadata
from .workspace import scoped_workspace


class EncryptPipeline:
    """Per-request orchestration: ingest, stage, encrypt, respond.

    The workspace lives in a single ExitStack. Up to the point where the
    response is ready every failure unwinds it right here; after that its
    release is handed to the response, which runs it once the body is sent
    or the transfer is abandoned.
    """

    def __init__(self, engine: EncryptionEngine, config: GatewayConfig, logger: logging.Logger) -> None:
        self.engine = engine
        self.config = config
        self.logger = logger

    async def run(self, request: Request) -> ArtifactResponse:
        set_request_id()
        self.logger.info("EncryptEPUB: request received")
        try:
            return await self._run(request)
        except GatewayError as exc:
            self.logger.error("EncryptEPUB: %s", exc.public_message())
            raise

    async def _run(self, request: Request) -> ArtifactResponse:
        upload = await parse_upload(request, self.config.max_upload_bytes)
        try:
            with ExitStack() as stack:
                ws = stack.enter_context(scoped_workspace(self.config.workspaces_root))
                staged = await run_in_threadpool(stage_upload, upload, ws)

                if await request.is_disconnected():
                    raise ClientDisconnectedError("client went away before encryption started")

                content_id = new_content_id()
                self.logger.info("EncryptEPUB: encrypting %s as %s", upload.filename, content_id)
                resolved = await run_in_threadpool(invoke, self.engine, staged, ws, content_id)

                metadata = build_metadata(resolved.descriptor, upload.title)
                header_value = serialize_metadata(metadata)
                response = open_artifact_response(
                    resolved,
                    metadata,
                    header_value,
                    chunk_size=self.config.stream_chunk_bytes,
                    log=self.logger,
                )
                response.add_cleanup(stack.pop_all().close)
                return response
        finally:
            # Every spooled upload part; the staged copy lives in the workspace.
            await upload.form.close()
