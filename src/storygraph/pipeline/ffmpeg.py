"""FFmpeg/ffprobe utilities: technical probing and audio decoding."""

from __future__ import annotations

import json
import subprocess
from dataclasses import dataclass
from pathlib import Path

import numpy as np

from storygraph.core.exceptions import FFmpegError, ProbeError
from storygraph.db.models import TechnicalMetadata
from storygraph.providers.base import TechProbe


@dataclass
class MediaInfo:
    duration_sec: float
    width: int | None
    height: int | None
    frame_rate: str | None  # exact fraction string as reported, e.g. "30000/1001"
    codec: str | None
    sample_rate: int | None
    file_size_bytes: int


def _ffprobe_json(args: list[str], path: Path, timeout: int = 30) -> dict:
    cmd = ["ffprobe", "-v", "quiet", "-print_format", "json", *args, str(path)]
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, check=True, timeout=timeout)
    except FileNotFoundError:
        raise FFmpegError("ffprobe not found. Install ffmpeg: brew install ffmpeg", cmd=" ".join(cmd))
    except subprocess.CalledProcessError as e:
        raise FFmpegError(f"ffprobe failed: {e.stderr}", cmd=" ".join(cmd), returncode=e.returncode)
    except subprocess.TimeoutExpired:
        raise FFmpegError("ffprobe timed out", cmd=" ".join(cmd))
    return json.loads(result.stdout or "{}")


def _first_stream(streams: list[dict], codec_type: str) -> dict | None:
    return next((s for s in streams if s.get("codec_type") == codec_type), None)


def _valid_rate(value: str | None) -> str | None:
    if not value or value in ("0/0", "0/1"):
        return None
    return value


def get_media_info(path: Path) -> MediaInfo:
    """Extract container and stream metadata using ffprobe."""
    data = _ffprobe_json(["-show_format", "-show_streams"], path)
    fmt = data.get("format", {})
    streams = data.get("streams", [])
    video = _first_stream(streams, "video")
    audio = _first_stream(streams, "audio")

    sample_rate = None
    if audio and audio.get("sample_rate"):
        sample_rate = int(audio["sample_rate"])

    return MediaInfo(
        duration_sec=float(fmt.get("duration", 0) or 0),
        width=video.get("width") if video else None,
        height=video.get("height") if video else None,
        frame_rate=_valid_rate(video.get("r_frame_rate")) if video else None,
        codec=(video or audio or {}).get("codec_name"),
        sample_rate=sample_rate,
        file_size_bytes=path.stat().st_size,
    )


def _count_video_frames(path: Path) -> str:
    """Exact frame count by demuxing every packet. Slow, used when the container has no nb_frames."""
    data = _ffprobe_json(
        ["-select_streams", "v:0", "-count_packets", "-show_entries", "stream=nb_read_packets"],
        path,
        timeout=600,
    )
    streams = data.get("streams") or [{}]
    value = str(streams[0].get("nb_read_packets", "")).strip()
    return value if value.isdigit() else ""


class FFprobeProbe(TechProbe):
    """Ground-truth technical metadata straight from the container."""

    def probe(self, path: Path) -> TechnicalMetadata:
        if not path.is_file():
            raise ProbeError(f"File not found for probing: {path}")
        try:
            data = _ffprobe_json(["-show_format", "-show_streams"], path)
            fmt = data.get("format", {})
            streams = data.get("streams", [])
            video = _first_stream(streams, "video")
            audio = _first_stream(streams, "audio")
            stream = video or audio
            if stream is None:
                raise ProbeError(f"No audio or video stream in {path.name}")

            stream_tags = stream.get("tags") or {}
            fmt_tags = fmt.get("tags") or {}
            start_tc = stream_tags.get("timecode") or fmt_tags.get("timecode") or "00:00:00:00"
            reel = stream_tags.get("reel_name") or fmt_tags.get("reel_name")

            frame_rate = ""
            total_frames = ""
            if video:
                frame_rate = _valid_rate(video.get("r_frame_rate")) or ""
                nb_frames = str(video.get("nb_frames", "")).strip()
                total_frames = nb_frames if nb_frames.isdigit() else _count_video_frames(path)
        except FFmpegError as e:
            raise ProbeError(f"Technical probe failed for {path.name}: {e}") from e

        return TechnicalMetadata(
            start_tc=start_tc,
            reel_name=reel,
            codec_id=stream.get("codec_name") or "",
            width=video.get("width") if video else None,
            height=video.get("height") if video else None,
            frame_rate_fraction=frame_rate,
            total_frames=total_frames,
        )


def decode_audio(path: Path, sample_rate: int | None = None) -> tuple[np.ndarray, int]:
    """Decode the first audio stream's channel 0 to float32 PCM.

    If ``sample_rate`` is None the stream's native rate is kept; otherwise ffmpeg
    resamples so master and slave signals share one sample clock.
    """
    if sample_rate is None:
        sample_rate = get_media_info(path).sample_rate
        if not sample_rate:
            raise FFmpegError(f"No audio stream in {path.name}")

    cmd = [
        "ffmpeg", "-v", "error",
        "-i", str(path),
        "-map", "0:a:0",
        "-af", "pan=mono|c0=c0",
        "-ar", str(sample_rate),
        "-f", "f32le", "-acodec", "pcm_f32le",
        "pipe:1",
    ]
    try:
        result = subprocess.run(cmd, capture_output=True, check=True, timeout=1800)
    except FileNotFoundError:
        raise FFmpegError("ffmpeg not found. Install ffmpeg: brew install ffmpeg", cmd=" ".join(cmd))
    except subprocess.CalledProcessError as e:
        stderr = e.stderr.decode(errors="ignore") if e.stderr else ""
        raise FFmpegError(f"Audio decode failed: {stderr}", cmd=" ".join(cmd), returncode=e.returncode)
    except subprocess.TimeoutExpired:
        raise FFmpegError("Audio decode timed out", cmd=" ".join(cmd))

    samples = np.frombuffer(result.stdout, dtype="<f4")
    if samples.size == 0:
        raise FFmpegError(f"Audio decode produced no samples: {path.name}", cmd=" ".join(cmd))
    return samples, sample_rate
