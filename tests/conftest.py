"""
Shared fixtures for the gateway tests.

The FakeEncryptionEngine stands in for lcpencrypt: it writes a reversible,
deterministic transform of the input into the output directory and reports
a random key plus a SHA-256 checksum of what it wrote.
"""

import hashlib
import os
import threading
from pathlib import Path
from typing import List, Optional

import pytest
from fastapi.testclient import TestClient

from epubenc_backend.config import GatewayConfig
from epubenc_backend.engine import EncryptedArtifact, EncryptionEngine
from server import create_app

FAKE_MAGIC = b"FAKE-LCP"


def fake_encrypt_bytes(data: bytes) -> bytes:
    return FAKE_MAGIC + data[::-1]


class FakeEncryptionEngine(EncryptionEngine):
    def __init__(
        self,
        title: str = "Engine Title",
        content_type: str = "application/epub+zip",
        fail_with: Optional[Exception] = None,
        report_file_name: Optional[str] = None,
    ):
        self.title = title
        self.content_type = content_type
        self.fail_with = fail_with
        self.report_file_name = report_file_name
        self.calls: List[dict] = []
        self._lock = threading.Lock()

    def encrypt(self, content_id, content_key, input_path, output_dir):
        with self._lock:
            self.calls.append(
                {
                    "content_id": content_id,
                    "content_key": content_key,
                    "input_path": Path(input_path),
                    "output_dir": Path(output_dir),
                    "input_bytes": Path(input_path).read_bytes(),
                }
            )
        if self.fail_with is not None:
            raise self.fail_with

        key = content_key or os.urandom(32)
        encrypted = fake_encrypt_bytes(Path(input_path).read_bytes())
        file_name = f"{content_id}.epub"
        (Path(output_dir) / file_name).write_bytes(encrypted)
        return EncryptedArtifact(
            identifier=content_id,
            content_key=key,
            size=len(encrypted),
            checksum=hashlib.sha256(encrypted).hexdigest(),
            content_type=self.content_type,
            file_name=self.report_file_name or file_name,
            title=self.title,
        )


def leftover_workspaces(root: Path) -> list:
    if not root.exists():
        return []
    return sorted(p.name for p in root.iterdir())


@pytest.fixture
def workspaces_root(tmp_path: Path) -> Path:
    return tmp_path / "workspaces"


@pytest.fixture
def config(workspaces_root: Path) -> GatewayConfig:
    return GatewayConfig(workspaces_root=workspaces_root, stream_chunk_bytes=8192)


@pytest.fixture
def engine() -> FakeEncryptionEngine:
    return FakeEncryptionEngine()


@pytest.fixture
def app(config: GatewayConfig, engine: FakeEncryptionEngine):
    return create_app(config, engine)


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def epub_bytes() -> bytes:
    # Only the zip signature matters; the gateway does not validate EPUB structure.
    return b"PK\x03\x04" + b"mimetypeapplication/epub+zip" + os.urandom(4096)
