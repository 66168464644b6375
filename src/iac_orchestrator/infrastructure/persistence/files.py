"""Crash-safe file writes shared by the JSON stores."""

from __future__ import annotations

import contextlib
import os
import re
import tempfile
from pathlib import Path


SAFE_NAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,127}$")


def check_name(kind: str, value: str) -> str:
    """Reject names that could escape the storage directory."""
    if not SAFE_NAME.match(value):
        raise ValueError(f"Invalid {kind} name: {value!r}")
    return value


def _write_temp(path: Path, text: str) -> str:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp_path)
        raise
    return tmp_path


def atomic_write_text(path: Path, text: str) -> None:
    """Replace ``path`` with ``text``; readers see the old or the new file, never a mix."""
    tmp_path = _write_temp(path, text)
    try:
        os.replace(tmp_path, path)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp_path)
        raise


def exclusive_write_text(path: Path, text: str) -> None:
    """Create ``path`` with ``text``; raises FileExistsError if it already exists."""
    tmp_path = _write_temp(path, text)
    try:
        os.link(tmp_path, path)
    finally:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp_path)
