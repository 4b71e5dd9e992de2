"""Waveform sync: offset of each slave recording against the master audio.

The search is a coarse, bounded time-domain correlation. A leading window of
the slave is slid across the master at a fixed stride, and the offset with the
largest raw dot product wins. No normalization is applied, so relative gain and
DC offset between sources influence the result.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from fractions import Fraction
from pathlib import Path
from typing import Callable

import numpy as np

from storygraph.core.config import StoryGraphConfig
from storygraph.core.constants import (
    AUDIO_PROXY_DIR,
    AUDIO_PROXY_SUFFIX,
    DEFAULT_CORRELATION_STRIDE,
    DEFAULT_CORRELATION_WINDOW,
    DEFAULT_SCAN_SECONDS,
)
from storygraph.core.exceptions import AlignmentError
from storygraph.db.models import Asset, Category
from storygraph.pipeline.ffmpeg import decode_audio
from storygraph.utils.media import local_media_path, media_key
from storygraph.utils.timecode import round_half_up

# Candidate offsets scored per matrix product; bounds peak memory
_BLOCK = 1024

Decoder = Callable[[Asset, "int | None"], "tuple[np.ndarray, int]"]


@dataclass
class AlignmentResult:
    asset_id: str
    filename: str
    offset_sec: float


def calculate_offset(
    master: np.ndarray,
    slave: np.ndarray,
    sample_rate: int,
    *,
    window: int = DEFAULT_CORRELATION_WINDOW,
    stride: int = DEFAULT_CORRELATION_STRIDE,
    scan_seconds: float = DEFAULT_SCAN_SECONDS,
) -> float:
    """Seconds into the master at which the slave starts (always >= 0)."""
    master = np.asarray(master, dtype=np.float64)
    slave = np.asarray(slave, dtype=np.float64)

    length = min(window, len(slave))
    if length == 0 or len(master) < length:
        return 0.0

    # Every candidate must keep master[offset + length - 1] in range
    scan = min(len(master) - length + 1, len(slave), int(scan_seconds * sample_rate))
    if scan <= 0:
        return 0.0

    offsets = np.arange(0, scan, stride)
    template = slave[:length]
    windows = np.lib.stride_tricks.sliding_window_view(master, length)

    best_offset = 0
    best_score = -np.inf
    for start in range(0, len(offsets), _BLOCK):
        block = offsets[start:start + _BLOCK]
        scores = windows[block] @ template
        idx = int(np.argmax(scores))
        if scores[idx] > best_score:
            best_score = scores[idx]
            best_offset = int(block[idx])

    return best_offset / sample_rate


def seconds_to_frames(seconds: float, fps: Fraction | int) -> int:
    """Convert an offset to frames at the exact sequence rate."""
    return round_half_up(Fraction(seconds) * Fraction(fps))


def audio_source_path(asset: Asset, media_root: str) -> Path:
    """Raw file for audio; the extracted audio proxy for video when one exists.

    Proxies mirror the media folder layout under the proxy directory.
    """
    source = local_media_path(asset, media_root)
    if asset.category == Category.AUDIO:
        return source
    key = Path(media_key(asset))
    proxy = Path(media_root).expanduser() / AUDIO_PROXY_DIR / key.parent / f"{key.stem}{AUDIO_PROXY_SUFFIX}"
    return proxy if proxy.is_file() else source


def make_decoder(config: StoryGraphConfig) -> Decoder:
    def decode(asset: Asset, sample_rate: int | None) -> tuple[np.ndarray, int]:
        return decode_audio(audio_source_path(asset, config.media_root), sample_rate)

    return decode


def align_assets(
    master: Asset,
    slaves: list[Asset],
    decode: Decoder,
    *,
    window: int = DEFAULT_CORRELATION_WINDOW,
    stride: int = DEFAULT_CORRELATION_STRIDE,
    scan_seconds: float = DEFAULT_SCAN_SECONDS,
) -> list[AlignmentResult]:
    """Align every slave against the master.

    A master that cannot be decoded aborts the batch. A slave that cannot be
    decoded is skipped and gets no result.
    """
    try:
        master_signal, sample_rate = decode(master, None)
    except Exception as e:
        raise AlignmentError(f"Cannot start sync, master audio unavailable ({master.filename}): {e}") from e

    results: list[AlignmentResult] = []
    for slave in slaves:
        try:
            slave_signal, _ = decode(slave, sample_rate)
        except Exception as e:
            print(f"  Warning: could not load {slave.filename}: {e}", file=sys.stderr)
            continue

        offset = calculate_offset(
            master_signal,
            slave_signal,
            sample_rate,
            window=window,
            stride=stride,
            scan_seconds=scan_seconds,
        )
        results.append(AlignmentResult(asset_id=slave.id, filename=slave.filename, offset_sec=offset))
        print(f"  Sync: {slave.filename} matched at {offset:.3f}s", file=sys.stderr)
    return results
