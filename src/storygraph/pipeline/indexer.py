"""Register local media files in the asset registry."""

from __future__ import annotations

import mimetypes
import sys
from pathlib import Path

from storygraph.core.exceptions import FFmpegError
from storygraph.db.models import Asset, Category
from storygraph.db.repository import Repository
from storygraph.pipeline.ffmpeg import get_media_info
from storygraph.utils.hashing import asset_id_for
from storygraph.utils.media import discover_media, is_audio, relative_folder


def _duration_ms(path: Path) -> int | None:
    try:
        info = get_media_info(path)
    except FFmpegError as e:
        print(f"  Warning: no duration for {path.name}: {e}", file=sys.stderr)
        return None
    return int(round(info.duration_sec * 1000)) if info.duration_sec > 0 else None


def describe_file(path: Path, root: Path, probe_duration: bool = True) -> Asset:
    mime_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    return Asset(
        id=asset_id_for(path),
        filename=path.name,
        mime_type=mime_type,
        size_bytes=path.stat().st_size,
        category=Category.AUDIO if is_audio(path.name, mime_type) else Category.VIDEO,
        duration_ms=_duration_ms(path) if probe_duration else None,
        relative_path=relative_folder(path, root),
    )


def index_media(root: Path, repo: Repository, *, probe_duration: bool = True) -> dict:
    """Discover media under ``root`` and register each file.

    Existing assets only get their discovery fields refreshed, so
    classification, operation state, offsets and tech metadata survive a
    re-index. Returns a JSON-serializable summary.
    """
    root = root.expanduser().resolve()
    files = discover_media(root)
    base = root.parent if root.is_file() else root

    indexed = []
    new = 0
    for i, path in enumerate(files, 1):
        print(f"  [{i}/{len(files)}] {path.name}", file=sys.stderr)
        asset = describe_file(path, base, probe_duration)
        if repo.get(asset.id) is None:
            new += 1
        repo.register(asset)
        indexed.append(
            {
                "asset_id": asset.id,
                "filename": asset.filename,
                "category": asset.category.value,
                "relative_path": asset.relative_path,
            }
        )

    return {"root": str(root), "total": len(indexed), "new": new, "assets": indexed}
