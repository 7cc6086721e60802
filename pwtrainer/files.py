"""Filesystem helpers for secret artifacts."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path


PRIVATE_FILE_MODE = 0o600


def write_private_file(path: Path, content: bytes) -> None:
    """Atomically replace ``path`` with ``content``, readable by the owner only."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(tmp_path, PRIVATE_FILE_MODE)
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
