import uuid
from pathlib import Path

import pytest

from conftest import FakeEncryptionEngine
from epubenc_backend.errors import ArtifactNotFoundError, EncryptionEngineError
from epubenc_backend.invoker import invoke, new_content_id
from epubenc_backend.workspace import acquire, release


@pytest.fixture
def ws(tmp_path: Path):
    ws = acquire(tmp_path)
    yield ws
    release(ws)


@pytest.fixture
def staged(ws) -> Path:
    path = ws.root / "book.epub"
    path.write_bytes(b"PK\x03\x04 book")
    return path


def test_new_content_id_is_random_uuid4():
    first, second = new_content_id(), new_content_id()
    assert first != second
    assert uuid.UUID(first).version == 4


def test_invoke_passes_no_key_and_output_dir(ws, staged):
    engine = FakeEncryptionEngine()
    resolved = invoke(engine, staged, ws)

    call = engine.calls[0]
    assert call["content_key"] is None
    assert call["input_path"] == staged
    assert call["output_dir"] == ws.output_dir
    assert resolved.path == ws.output_dir / resolved.descriptor.file_name
    assert resolved.path.is_absolute()
    assert resolved.descriptor.identifier == call["content_id"]


def test_invoke_uses_given_content_id(ws, staged):
    engine = FakeEncryptionEngine()
    resolved = invoke(engine, staged, ws, content_id="fixed-id")
    assert resolved.descriptor.identifier == "fixed-id"


def test_engine_exception_is_wrapped(ws, staged):
    engine = FakeEncryptionEngine(fail_with=ValueError("not an EPUB"))
    with pytest.raises(EncryptionEngineError) as exc_info:
        invoke(engine, staged, ws)
    assert exc_info.value.public_message() == "encryption failed: not an EPUB"
    assert isinstance(exc_info.value.__cause__, ValueError)


def test_engine_error_passes_through(ws, staged):
    original = EncryptionEngineError("exit status 2")
    engine = FakeEncryptionEngine(fail_with=original)
    with pytest.raises(EncryptionEngineError) as exc_info:
        invoke(engine, staged, ws)
    assert exc_info.value is original


@pytest.mark.parametrize(
    "name", ["missing.epub", "../book.epub", ".", "sub/dir.epub", "book.epub\r\nSet-Cookie: a=b"]
)
def test_unresolvable_artifact(ws, staged, name):
    engine = FakeEncryptionEngine(report_file_name=name)
    with pytest.raises(ArtifactNotFoundError):
        invoke(engine, staged, ws)
