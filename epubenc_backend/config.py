from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional


# Multipart payload limit.
DEFAULT_MAX_UPLOAD_BYTES = 50 * 1024 * 1024  # 50MB

# Every per-request workspace directory name starts with this prefix.
WORKSPACE_PREFIX = "lcp-encrypt-"
OUTPUT_SUBDIR = "output"

# Leftover workspaces older than this are removed at startup.
DEFAULT_STALE_WORKSPACE_SECONDS = 3600

DEFAULT_ENGINE_COMMAND = "lcpencrypt"
DEFAULT_STREAM_CHUNK_BYTES = 64 * 1024

# Form fields of the upload endpoint.
FILE_FIELD = "file"
TITLE_FIELD = "title"

METADATA_HEADER = "X-Encrypt-Metadata"


def _optional_path(raw: Optional[str]) -> Optional[Path]:
    if raw and raw.strip():
        return Path(raw.strip()).resolve()
    return None


def _optional_float(raw: Optional[str]) -> Optional[float]:
    if raw and raw.strip():
        return float(raw)
    return None


@dataclass(frozen=True)
class GatewayConfig:
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    # None means the system temp directory; the startup sweep only runs for a dedicated root.
    workspaces_root: Optional[Path] = None
    stale_workspace_seconds: float = DEFAULT_STALE_WORKSPACE_SECONDS
    engine_command: str = DEFAULT_ENGINE_COMMAND
    engine_timeout_seconds: Optional[float] = None
    stream_chunk_bytes: int = DEFAULT_STREAM_CHUNK_BYTES
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "GatewayConfig":
        """Build the configuration from EPUBENC_* environment variables."""
        env = os.environ if environ is None else environ
        return cls(
            max_upload_bytes=int(env.get("EPUBENC_MAX_UPLOAD_BYTES", str(DEFAULT_MAX_UPLOAD_BYTES))),
            workspaces_root=_optional_path(env.get("EPUBENC_WORKSPACES_ROOT")),
            stale_workspace_seconds=float(
                env.get("EPUBENC_STALE_WORKSPACE_SECONDS", str(DEFAULT_STALE_WORKSPACE_SECONDS))
            ),
            engine_command=(env.get("EPUBENC_ENGINE_COMMAND") or DEFAULT_ENGINE_COMMAND).strip(),
            engine_timeout_seconds=_optional_float(env.get("EPUBENC_ENGINE_TIMEOUT_SECONDS")),
            stream_chunk_bytes=int(env.get("EPUBENC_STREAM_CHUNK_BYTES", str(DEFAULT_STREAM_CHUNK_BYTES))),
            log_level=(env.get("EPUBENC_LOG_LEVEL") or "INFO").strip().upper(),
        )
