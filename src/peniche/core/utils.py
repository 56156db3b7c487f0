from __future__ import annotations

import os
import tempfile
from pathlib import Path


def atomic_write(path: Path, content: str, durable: bool = False) -> None:
    """Replace ``path`` with ``content`` so readers never see a partial file.

    The content is written to a sibling temp file which is then renamed over
    the target. With ``durable`` the data and the directory entry are fsynced.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent)
    )
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            handle.write(content)
            handle.flush()
            if durable:
                os.fsync(handle.fileno())
        if path.exists():
            try:
                os.chmod(tmp_path, path.stat().st_mode & 0o7777)
            except OSError:
                pass
        os.replace(tmp_path, path)
    except BaseException:
        try:
            tmp_path.unlink()
        except FileNotFoundError:
            pass
        raise
    if durable and os.name != "nt":
        dir_fd = os.open(str(path.parent), os.O_RDONLY)
        try:
            os.fsync(dir_fd)
        finally:
            os.close(dir_fd)
