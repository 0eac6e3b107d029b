from __future__ import annotations

import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .engine import EncryptedArtifact, EncryptionEngine
from .errors import ArtifactNotFoundError, EncryptionEngineError, GatewayError
from .security import is_safe_basename, safe_join
from .workspace import Workspace


@dataclass(frozen=True)
class ResolvedArtifact:
    descriptor: EncryptedArtifact
    path: Path


def new_content_id() -> str:
    return str(uuid.uuid4())


def resolve_artifact(descriptor: EncryptedArtifact, ws: Workspace) -> ResolvedArtifact:
    """Locate the file the engine reported inside the workspace output dir."""
    name = descriptor.file_name
    if not is_safe_basename(name):
        raise ArtifactNotFoundError(f"engine reported an invalid file name: {name!r}")
    try:
        path = safe_join(ws.output_dir, name)
    except ValueError as exc:
        raise ArtifactNotFoundError(f"engine reported an invalid file name: {name!r}") from exc
    if not path.is_file():
        raise ArtifactNotFoundError(f"{name} is missing from the output directory")
    return ResolvedArtifact(descriptor=descriptor, path=path)


def invoke(
    engine: EncryptionEngine,
    staged_input: Path,
    ws: Workspace,
    content_id: Optional[str] = None,
) -> ResolvedArtifact:
    """Encrypt the staged upload into the workspace output directory.

    The content key is always left to the engine. Blocking: the engine may
    run for a long time on large publications.
    """
    content_id = content_id or new_content_id()
    try:
        descriptor = engine.encrypt(content_id, None, staged_input, ws.output_dir)
    except GatewayError:
        raise
    except Exception as exc:
        raise EncryptionEngineError(str(exc) or type(exc).__name__) from exc
    return resolve_artifact(descriptor, ws)
