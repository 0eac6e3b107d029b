from __future__ import annotations

import logging
import shutil
import tempfile
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

from .config import OUTPUT_SUBDIR, WORKSPACE_PREFIX
from .errors import ResourceAllocationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Workspace:
    root: Path
    output_dir: Path


def acquire(parent: Optional[Path] = None, prefix: str = WORKSPACE_PREFIX) -> Workspace:
    """Create a private workspace root and its output subdirectory."""
    try:
        if parent is not None:
            parent.mkdir(parents=True, exist_ok=True)
        root = Path(tempfile.mkdtemp(prefix=prefix, dir=str(parent) if parent is not None else None))
    except OSError as exc:
        raise ResourceAllocationError(f"cannot create temp dir: {exc.strerror or exc}") from exc

    root = root.resolve()
    output_dir = root / OUTPUT_SUBDIR
    try:
        output_dir.mkdir()
    except OSError as exc:
        shutil.rmtree(root, ignore_errors=True)
        raise ResourceAllocationError(f"cannot create output dir: {exc.strerror or exc}") from exc

    logger.debug("workspace acquired: %s", root.name)
    return Workspace(root=root, output_dir=output_dir)


def release(ws: Workspace) -> None:
    """Remove the whole workspace tree. Safe to call more than once."""
    if ws.root.exists():
        shutil.rmtree(ws.root, ignore_errors=True)
    if ws.root.exists():
        logger.warning("workspace %s could not be fully removed", ws.root.name)
    else:
        logger.debug("workspace released: %s", ws.root.name)


@contextmanager
def scoped_workspace(parent: Optional[Path] = None, prefix: str = WORKSPACE_PREFIX) -> Iterator[Workspace]:
    ws = acquire(parent, prefix)
    try:
        yield ws
    finally:
        release(ws)


def sweep_stale_workspaces(parent: Path, prefix: str = WORKSPACE_PREFIX, max_age_seconds: float = 3600) -> int:
    """Delete leftover workspaces under parent older than max_age_seconds.

    Only directories whose name carries our prefix are considered, and the
    age check keeps live workspaces of sibling worker processes intact.
    Returns the number of deleted workspaces.
    """
    if not parent.exists():
        return 0

    deleted = 0
    now = time.time()
    for child in parent.iterdir():
        if not child.name.startswith(prefix) or not child.is_dir():
            continue
        try:
            age = now - child.stat().st_mtime
        except FileNotFoundError:
            continue
        if age > max(0.0, max_age_seconds):
            shutil.rmtree(child, ignore_errors=True)
            deleted += 1
    return deleted
