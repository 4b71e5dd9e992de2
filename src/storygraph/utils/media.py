"""Media file discovery and local path resolution."""

from __future__ import annotations

from pathlib import Path

from storygraph.core.constants import AUDIO_EXTENSIONS, VIDEO_EXTENSIONS
from storygraph.db.models import Asset


def is_media_file(path: Path) -> bool:
    """Check if path points to an audio or video file by extension."""
    suffix = path.suffix.lower()
    return path.is_file() and (suffix in VIDEO_EXTENSIONS or suffix in AUDIO_EXTENSIONS)


def is_audio(filename: str, mime_type: str = "") -> bool:
    return "audio" in mime_type or Path(filename).suffix.lower() in AUDIO_EXTENSIONS


def discover_media(path: Path) -> list[Path]:
    """Find all media files in a path (file or directory).

    If path is a file, returns [path] if it's media.
    If path is a directory, recursively finds all audio and video files.
    """
    if path.is_file():
        return [path] if is_media_file(path) else []
    if path.is_dir():
        return sorted(p for p in path.rglob("*") if is_media_file(p) and not p.name.startswith("."))
    return []


def relative_folder(path: Path, root: Path) -> str | None:
    """Folder of ``path`` relative to ``root`` in posix form, or None at the root."""
    rel = path.parent.relative_to(root).as_posix()
    return None if rel in ("", ".") else rel


def local_media_path(asset: Asset, media_root: str) -> Path:
    base = Path(media_root).expanduser()
    if asset.relative_path:
        base = base / asset.relative_path
    return base / asset.filename


def media_key(asset: Asset) -> str:
    """Folder-qualified name, unique across cameras that reuse clip names."""
    if asset.relative_path:
        return f"{asset.relative_path}/{asset.filename}"
    return asset.filename
