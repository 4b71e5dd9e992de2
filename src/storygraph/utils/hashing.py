"""Deterministic file hashing for stable asset identifiers."""

from __future__ import annotations

import hashlib
from pathlib import Path

from storygraph.core.constants import HASH_PREFIX_BYTES


def file_hash(path: Path) -> str:
    """SHA-256 of the first 64KB plus the file size.

    Quick enough for camera cards full of multi-gigabyte clips, and stable when
    a folder is moved or renamed, so the registry keeps its forensic state.
    """
    h = hashlib.sha256()
    with open(path, "rb") as f:
        h.update(f.read(HASH_PREFIX_BYTES))
    h.update(str(path.stat().st_size).encode())
    return h.hexdigest()


def asset_id_for(path: Path) -> str:
    return file_hash(path)[:24]
