from __future__ import annotations

import shutil
from dataclasses import dataclass
from pathlib import Path

from fastapi import Request
from starlette.datastructures import FormData, UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.formparsers import MultiPartException
from starlette.requests import ClientDisconnect
from starlette.types import Message

from .config import FILE_FIELD, OUTPUT_SUBDIR, TITLE_FIELD
from .errors import (
    ClientDisconnectedError,
    GatewayError,
    MalformedRequestError,
    MissingFieldError,
    StorageWriteError,
)
from .security import safe_join, upload_basename
from .workspace import Workspace

_COPY_CHUNK_BYTES = 1024 * 1024


@dataclass(frozen=True)
class ParsedUpload:
    form: FormData
    file: UploadFile
    filename: str
    title: str


def _declared_length(request: Request) -> int | None:
    raw = request.headers.get("content-length")
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        raise MalformedRequestError("invalid Content-Length header")


def _upload_size(upload: UploadFile) -> int:
    if upload.size is not None:
        return upload.size
    # Older Starlette releases do not track the size while spooling.
    fh = upload.file
    pos = fh.tell()
    fh.seek(0, 2)
    size = fh.tell()
    fh.seek(pos)
    return size


def _size_limited(request: Request, max_bytes: int) -> Request:
    """Re-wrap the request so reading the body stops once it passes max_bytes.

    Covers bodies sent without a Content-Length (chunked transfer encoding).
    """
    received = 0

    async def receive() -> Message:
        nonlocal received
        message = await request.receive()
        if message["type"] == "http.request":
            received += len(message.get("body", b""))
            if received > max_bytes:
                # Raised inside Starlette's parser, which closes its spooled parts.
                raise MultiPartException(f"request body exceeds {max_bytes} bytes")
        return message

    return Request(request.scope, receive)


async def parse_upload(request: Request, max_bytes: int) -> ParsedUpload:
    """Parse the multipart body and pull out the `file` part and `title` field.

    Nothing touches the filesystem beyond Starlette's own spooling, so a
    rejected request never allocates a workspace. The caller owns the
    returned form and closes it once the upload is staged.
    """
    content_type = request.headers.get("content-type", "")
    if not content_type.lower().startswith("multipart/form-data"):
        raise MalformedRequestError("request is not multipart/form-data")

    declared = _declared_length(request)
    if declared is not None and declared > max_bytes:
        raise MalformedRequestError(f"request body exceeds {max_bytes} bytes")

    try:
        form = await _size_limited(request, max_bytes).form(max_files=8, max_fields=32)
    except ClientDisconnect:
        raise ClientDisconnectedError("client disconnected during upload")
    except MultiPartException as exc:
        raise MalformedRequestError(exc.message)
    except StarletteHTTPException as exc:
        raise MalformedRequestError(str(exc.detail))

    try:
        return _extract_fields(form, max_bytes)
    except GatewayError:
        await form.close()
        raise


def _extract_fields(form: FormData, max_bytes: int) -> ParsedUpload:
    files = [v for v in form.getlist(FILE_FIELD) if isinstance(v, UploadFile)]
    if not files:
        raise MissingFieldError()
    if len(files) > 1:
        raise MalformedRequestError(f"expected exactly one '{FILE_FIELD}' part, got {len(files)}")
    upload = files[0]

    filename = upload_basename(upload.filename)
    if not filename:
        raise MissingFieldError("file part has no filename")
    if filename.casefold() == OUTPUT_SUBDIR.casefold():
        raise MalformedRequestError(f"'{filename}' is a reserved filename")
    if _upload_size(upload) > max_bytes:
        raise MalformedRequestError(f"uploaded file exceeds {max_bytes} bytes")

    title = form.get(TITLE_FIELD)
    if not isinstance(title, str):
        title = ""

    return ParsedUpload(form=form, file=upload, filename=filename, title=title)


def stage_upload(upload: ParsedUpload, ws: Workspace) -> Path:
    """Copy the uploaded bytes verbatim into the workspace root.

    Blocking; the pipeline runs it in the thread pool.
    """
    try:
        dest = safe_join(ws.root, upload.filename)
    except ValueError as exc:
        raise MalformedRequestError("invalid upload filename") from exc

    src = upload.file.file
    try:
        src.seek(0)
        with dest.open("xb") as out:
            shutil.copyfileobj(src, out, _COPY_CHUNK_BYTES)
    except OSError as exc:
        raise StorageWriteError(exc.strerror or str(exc)) from exc
    return dest
