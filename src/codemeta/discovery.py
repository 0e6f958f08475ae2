"""Workspace file enumeration for reference scans."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Iterator
from pathlib import Path

logger = logging.getLogger(__name__)

_BINARY_SNIFF_BYTES = 4096


def is_binary_file(path: Path) -> bool:
    """Treat a file as binary when its first block contains a NUL byte."""
    with path.open("rb") as f:
        return b"\x00" in f.read(_BINARY_SNIFF_BYTES)


def iter_workspace_files(root: Path, exclude_dirs: Iterable[str]) -> Iterator[Path]:
    """Yield regular files under ``root`` in sorted order.

    Directories whose name is in ``exclude_dirs`` are pruned at any depth.
    Symlinked directories are not followed.
    """
    excluded = set(exclude_dirs)
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in excluded)
        for name in sorted(filenames):
            path = Path(dirpath) / name
            if path.is_file():
                yield path


def read_text_file(path: Path) -> str | None:
    """Read a source file as UTF-8, or None when it cannot be scanned."""
    try:
        if is_binary_file(path):
            logger.debug("Skipping binary file %s", path)
            return None
        # newline="" keeps CRLF intact so rewrites do not change line endings
        with path.open(encoding="utf-8", newline="") as f:
            return f.read()
    except (OSError, UnicodeDecodeError) as e:
        logger.debug("Skipping unreadable file %s: %s", path, e)
        return None
