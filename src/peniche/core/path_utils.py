"""Path resolution helpers for workspaces and package manifests."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Optional, Union

from .exceptions import PathResolutionError

MANIFEST_FILENAME = "Cargo.toml"

PathLike = Union[str, "os.PathLike[str]"]


def resolve_path(path: PathLike) -> Path:
    """Return ``path`` as an absolute path anchored at the working directory."""
    candidate = Path(path)
    if candidate.is_absolute():
        return candidate
    try:
        base = Path.cwd()
    except OSError as exc:
        raise PathResolutionError(
            f"Failed to determine the current directory: {exc}"
        ) from exc
    return base / candidate


def ensure_dir(path: PathLike) -> Path:
    resolved = resolve_path(path)
    try:
        resolved.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise PathResolutionError(
            f"Failed to create directory at {resolved}: {exc}"
        ) from exc
    return resolved


def is_manifest_path(path: Path) -> bool:
    return path.name == MANIFEST_FILENAME


def split_manifest(path: PathLike) -> tuple[Path, Path]:
    """Split ``path`` into ``(package_root, manifest_path)`` without touching disk.

    A path naming the manifest file itself yields its parent as the root;
    anything else is treated as the package root.
    """
    candidate = Path(path)
    if is_manifest_path(candidate):
        return candidate.parent, candidate
    return candidate, candidate / MANIFEST_FILENAME


def declares_workspace(manifest_path: Path) -> bool:
    try:
        data = tomllib.loads(manifest_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError):
        return False
    return isinstance(data.get("workspace"), dict)


def find_descriptor(start: PathLike) -> Optional[Path]:
    """Find the nearest workspace descriptor at or above ``start``."""
    root, _ = split_manifest(resolve_path(start))
    search_dir = root if root.is_dir() or not root.exists() else root.parent
    for current in [search_dir, *search_dir.parents]:
        candidate = current / MANIFEST_FILENAME
        if candidate.is_file() and declares_workspace(candidate):
            return candidate
    return None


def relative_to_or_absolute(path: Path, base: Path) -> str:
    """Render ``path`` relative to ``base`` as a POSIX string when possible."""
    try:
        return Path(os.path.relpath(path, base)).as_posix()
    except ValueError:
        # Different drives on Windows.
        return path.as_posix()
