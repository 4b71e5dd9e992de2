"""Exact frame-rate arithmetic and SMPTE timecode formatting."""

from __future__ import annotations

import math
from fractions import Fraction


def parse_fraction(value: str | None) -> Fraction | None:
    """Parse an exact rate such as "30000/1001" or "25". Returns None if unusable."""
    text = (value or "").strip()
    if not text:
        return None
    try:
        fps = Fraction(text)
    except (ValueError, ZeroDivisionError):
        return None
    return fps if fps > 0 else None


def round_half_up(value: Fraction | float | int) -> int:
    """Round to the nearest integer, halves away from zero for positive values."""
    if isinstance(value, Fraction):
        return math.floor(value + Fraction(1, 2))
    return math.floor(value + 0.5)


def nominal_timebase(fps: Fraction) -> int:
    """Integer timebase for a rational rate: 30000/1001 -> 30, 24000/1001 -> 24."""
    return round_half_up(fps)


def is_ntsc(fps: Fraction) -> bool:
    return fps.denominator != 1


def is_drop_frame(fps: Fraction) -> bool:
    """Drop-frame display only exists for the 29.97 and 59.94 families."""
    return is_ntsc(fps) and nominal_timebase(fps) in (30, 60)


def convert_frames(frames: int, source_fps: Fraction, target_fps: Fraction | int) -> int:
    """Convert a frame count between rates exactly: round(frames / source * target)."""
    return round_half_up(Fraction(frames) / source_fps * Fraction(target_fps))


def frames_to_timecode(frames: int, timebase: int) -> str:
    """Format a frame count as non-drop HH:MM:SS:FF."""
    ff = frames % timebase
    total_secs = frames // timebase
    ss = total_secs % 60
    mm = (total_secs // 60) % 60
    hh = total_secs // 3600
    return f"{hh:02d}:{mm:02d}:{ss:02d}:{ff:02d}"
