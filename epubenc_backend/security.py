from __future__ import annotations

from pathlib import Path, PureWindowsPath


def upload_basename(filename: str | None) -> str:
    """Reduce a client-supplied upload filename to its final component.

    Browsers on Windows may send full paths with backslashes, so both
    separators are stripped. Returns "" when nothing usable is left.
    """
    if not isinstance(filename, str):
        return ""
    name = PureWindowsPath(filename.strip()).name
    name = Path(name).name
    if name in ("", ".", ".."):
        return ""
    return name


def is_safe_basename(name: str) -> bool:
    """Allow only simple filenames: no directories, no control characters.

    The name ends up in a Content-Disposition header, where CR/LF would
    break the response.
    """
    if not isinstance(name, str) or not name:
        return False
    if name in (".", ".."):
        return False
    if name != Path(name).name:
        return False
    if "/" in name or "\\" in name:
        return False
    if any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in name):
        return False
    return True


def safe_join(base_dir: Path, *parts: str) -> Path:
    """Join paths and ensure the result stays strictly within base_dir.

    Used for the staged upload name and for the filename the engine reports,
    neither of which the gateway controls.
    """
    base_dir = base_dir.resolve()
    candidate = base_dir
    for part in parts:
        candidate = candidate / part
    resolved = candidate.resolve()
    if base_dir not in resolved.parents:
        raise ValueError("Path traversal attempt")
    return resolved
