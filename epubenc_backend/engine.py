"""Boundary to the content-encryption engine.

The gateway treats encryption as an opaque call: hand over a content id, an
optional content key, the staged EPUB and an output directory; get back a
descriptor of the encrypted file the engine wrote there.
"""
from __future__ import annotations

import base64
import logging
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence

from pydantic import Base64Bytes, BaseModel, Field, ValidationError

from .errors import EncryptionEngineError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EncryptedArtifact:
    identifier: str
    # Raw key material: kept out of repr so it cannot leak through logging.
    content_key: bytes = field(repr=False)
    size: int
    checksum: str
    content_type: str
    file_name: str
    title: str = ""


class EncryptionEngine(ABC):
    @abstractmethod
    def encrypt(
        self,
        content_id: str,
        content_key: Optional[bytes],
        input_path: Path,
        output_dir: Path,
    ) -> EncryptedArtifact:
        """Encrypt input_path into output_dir and describe the result.

        content_key is None when the engine should generate its own key.
        External storage, cover extraction and PDF metadata stripping are
        never requested through this interface.
        """


class _EngineReport(BaseModel):
    """Publication descriptor printed by lcpencrypt on stdout."""

    uuid: str
    encryption_key: Base64Bytes
    size: int = Field(ge=0)
    checksum: str
    content_type: str
    file_name: str
    title: str = ""


def _parse_report(stdout: str) -> _EngineReport:
    text = stdout.strip()
    try:
        return _EngineReport.model_validate_json(text)
    except ValidationError:
        # Tolerate log lines around the JSON document.
        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end <= start:
            raise
        return _EngineReport.model_validate_json(text[start : end + 1])


class LcpEncryptEngine(EncryptionEngine):
    """Runs the external `lcpencrypt` command for each publication.

    No notification URL or storage options are passed, so the command only
    packages the encrypted EPUB into the output directory and reports the
    publication as JSON on stdout.
    """

    def __init__(self, command: str = "lcpencrypt", timeout_seconds: Optional[float] = None) -> None:
        self.command = command
        self.timeout_seconds = timeout_seconds

    def build_args(
        self,
        content_id: str,
        content_key: Optional[bytes],
        input_path: Path,
        output_dir: Path,
    ) -> Sequence[str]:
        args = [
            self.command,
            "-input", str(input_path),
            "-contentid", content_id,
            "-output", str(output_dir),
            "-tempdir", str(output_dir),
        ]
        if content_key:
            args += ["-contentkey", base64.b64encode(content_key).decode("ascii")]
        return args

    def encrypt(
        self,
        content_id: str,
        content_key: Optional[bytes],
        input_path: Path,
        output_dir: Path,
    ) -> EncryptedArtifact:
        args = self.build_args(content_id, content_key, input_path, output_dir)
        logger.debug("running %s for content %s", self.command, content_id)
        try:
            proc = subprocess.run(
                args,
                capture_output=True,
                text=True,
                timeout=self.timeout_seconds,
                check=False,
            )
        except FileNotFoundError as exc:
            raise EncryptionEngineError(f"engine command not found: {self.command}") from exc
        except subprocess.TimeoutExpired as exc:
            raise EncryptionEngineError(f"engine timed out after {self.timeout_seconds}s") from exc
        except OSError as exc:
            raise EncryptionEngineError(f"cannot run engine: {exc.strerror or exc}") from exc

        if proc.returncode != 0:
            detail = (proc.stderr or proc.stdout or "").strip().splitlines()
            message = detail[-1] if detail else f"exit status {proc.returncode}"
            raise EncryptionEngineError(message)

        try:
            report = _parse_report(proc.stdout or "")
        except ValidationError as exc:
            raise EncryptionEngineError(f"unreadable engine output ({exc.error_count()} errors)") from exc

        return EncryptedArtifact(
            identifier=report.uuid,
            content_key=report.encryption_key,
            size=report.size,
            checksum=report.checksum,
            content_type=report.content_type,
            file_name=report.file_name,
            title=report.title,
        )
