from __future__ import annotations

import base64
import json
import logging
import os
from typing import BinaryIO, Callable, List
from urllib.parse import quote

import anyio
from pydantic import BaseModel
from starlette.requests import ClientDisconnect
from starlette.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

from .config import METADATA_HEADER
from .engine import EncryptedArtifact
from .errors import SerializationError, StorageReadError
from .invoker import ResolvedArtifact

logger = logging.getLogger(__name__)


class EncryptMetadata(BaseModel):
    uuid: str
    encryption_key: str  # base64
    size: int
    checksum: str
    content_type: str
    title: str
    file_name: str


def resolve_title(user_title: str, extracted_title: str) -> str:
    return user_title if user_title else extracted_title


def build_metadata(artifact: EncryptedArtifact, user_title: str = "") -> EncryptMetadata:
    return EncryptMetadata(
        uuid=artifact.identifier,
        encryption_key=base64.b64encode(artifact.content_key).decode("ascii"),
        size=artifact.size,
        checksum=artifact.checksum,
        content_type=artifact.content_type,
        title=resolve_title(user_title, artifact.title),
        file_name=artifact.file_name,
    )


def serialize_metadata(metadata: EncryptMetadata) -> str:
    """Compact JSON in declaration order.

    Non-ASCII is escaped so the value is always a legal header value.
    """
    try:
        return json.dumps(metadata.model_dump(), separators=(",", ":"), ensure_ascii=True)
    except (TypeError, ValueError) as exc:
        raise SerializationError(str(exc)) from exc


def content_disposition(file_name: str) -> str:
    quoted = file_name.replace("\\", "\\\\").replace('"', '\\"')
    try:
        quoted.encode("latin-1")
    except UnicodeEncodeError:
        fallback = quoted.encode("ascii", "replace").decode("ascii")
        return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(file_name)}"
    return f'attachment; filename="{quoted}"'


class ArtifactResponse(StreamingResponse):
    """Streams an already-opened artifact and runs cleanup when the send ends.

    Cleanup callbacks run exactly once however the transfer ends: completed,
    failed mid-stream, or cancelled because the client went away.
    """

    def __init__(
        self,
        fh: BinaryIO,
        metadata: EncryptMetadata,
        headers: dict,
        chunk_size: int = 64 * 1024,
        log: logging.Logger = logger,
    ) -> None:
        self._fh = fh
        self._metadata = metadata
        self._chunk_size = max(1, chunk_size)
        self._log = log
        self._cleanups: List[Callable[[], None]] = []
        self._closed = False
        self._finished = False
        super().__init__(self._iter_chunks(), status_code=200, headers=headers, media_type=metadata.content_type)

    def add_cleanup(self, callback: Callable[[], None]) -> None:
        self._cleanups.append(callback)

    async def _iter_chunks(self):
        afh = anyio.wrap_file(self._fh)
        while True:
            chunk = await afh.read(self._chunk_size)
            if not chunk:
                break
            yield chunk
        self._finished = True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._fh.close()
        finally:
            while self._cleanups:
                self._cleanups.pop()()

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        except (OSError, ClientDisconnect) as exc:
            # Headers are already on the wire; all that is left is to drop the body.
            self._log.error("failed to stream encrypted file uuid=%s: %s", self._metadata.uuid, exc)
        else:
            if self._finished:
                self._log.info(
                    "success, uuid=%s, title=%s, size=%d",
                    self._metadata.uuid,
                    self._metadata.title,
                    self._metadata.size,
                )
            else:
                self._log.warning("client disconnected before uuid=%s was fully sent", self._metadata.uuid)
        finally:
            self.close()


def open_artifact_response(
    resolved: ResolvedArtifact,
    metadata: EncryptMetadata,
    header_value: str,
    chunk_size: int = 64 * 1024,
    log: logging.Logger = logger,
) -> ArtifactResponse:
    try:
        fh = resolved.path.open("rb")
    except OSError as exc:
        raise StorageReadError(exc.strerror or str(exc)) from exc

    try:
        on_disk = os.fstat(fh.fileno()).st_size
        if on_disk != metadata.size:
            log.warning("engine reported size %d for uuid=%s but file has %d bytes", metadata.size, metadata.uuid, on_disk)
        headers = {
            METADATA_HEADER: header_value,
            "Content-Disposition": content_disposition(metadata.file_name),
            "Content-Length": str(on_disk),
            "Cache-Control": "no-store",
        }
        return ArtifactResponse(fh, metadata, headers, chunk_size=chunk_size, log=log)
    except OSError as exc:
        fh.close()
        raise StorageReadError(exc.strerror or str(exc)) from exc
    except UnicodeEncodeError as exc:
        fh.close()
        raise SerializationError("response headers are not latin-1 encodable") from exc
