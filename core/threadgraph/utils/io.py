"""File helpers shared by the durable stores."""

import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TextIO


@contextmanager
def atomic_write(path: Path, encoding: str = "utf-8") -> Iterator[TextIO]:
    """
    Write ``path`` all-or-nothing.

    Content goes to a temp file in the same directory, is fsynced, then
    renamed over the target. Readers see either the old file or the complete
    new one, never a partial write.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding=encoding) as f:
            yield f
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


@contextmanager
def exclusive_write(path: Path, encoding: str = "utf-8") -> Iterator[TextIO]:
    """
    Write ``path`` all-or-nothing, failing if it already exists.

    Like ``atomic_write``, but the finished temp file is published with a
    hard link instead of a rename. Linking never replaces an existing file,
    so of two writers racing for the same path exactly one wins and the
    other gets ``FileExistsError``, even across processes.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding=encoding) as f:
            yield f
            f.flush()
            os.fsync(f.fileno())
        os.link(tmp_name, path)
    finally:
        Path(tmp_name).unlink(missing_ok=True)


def safe_path_component(value: str) -> str:
    """Reject identifiers that would escape their storage directory."""
    if not value or value in (".", "..") or "/" in value or "\\" in value or "\x00" in value:
        raise ValueError(f"Invalid storage identifier: {value!r}")
    return value
