"""Multicam timeline assembly and FCP7 XML (xmeml v5) serialization.

The timeline is built as plain dataclasses first and serialized in one pass, so
the same structure can be inspected in tests or printed as a summary without
touching XML.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from fractions import Fraction
from urllib.parse import quote

from storygraph.core.constants import (
    DEFAULT_HEIGHT,
    DEFAULT_SEQUENCE_NAME,
    DEFAULT_TIMEBASE,
    DEFAULT_WIDTH,
    PCM_BYTES_PER_SECOND,
    TIMELINE_ANCHOR_HOURS,
)
from storygraph.core.exceptions import FrameRateMismatchError
from storygraph.db.models import Asset, Category
from storygraph.utils.timecode import (
    convert_frames,
    frames_to_timecode,
    is_drop_frame,
    is_ntsc,
    nominal_timebase,
    round_half_up,
)

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'
DOCTYPE = "<!DOCTYPE xmeml>"

# encodeURIComponent leaves these unescaped
_URI_SAFE = "-_.!~*'()"

SERIALIZATION_GAP = "SerializationGap"
FRAME_RATE_MISMATCH = "FrameRateMismatch"


@dataclass
class TimelineNote:
    kind: str
    filename: str
    message: str

    def __str__(self) -> str:
        return f"{self.kind}: {self.filename}: {self.message}"


@dataclass
class SequenceFormat:
    timebase: int
    ntsc: bool
    drop_frame: bool
    width: int
    height: int
    fps: Fraction

    @property
    def display_format(self) -> str:
        return "DF" if self.drop_frame else "NDF"


@dataclass
class ClipItem:
    clip_id: str
    file_id: str
    name: str
    start: int
    duration: int
    kind: str  # "video", "scratch" or "master"
    pathurl: str = ""
    width: int = DEFAULT_WIDTH
    height: int = DEFAULT_HEIGHT
    source_tc: str | None = None
    source_frames: int | None = None  # native-rate frame count
    source_format: SequenceFormat | None = None
    links: list[str] = field(default_factory=list)

    @property
    def end(self) -> int:
        return self.start + self.duration


@dataclass
class Track:
    clips: list[ClipItem] = field(default_factory=list)


@dataclass
class Timeline:
    name: str
    format: SequenceFormat
    video_tracks: list[Track] = field(default_factory=list)
    audio_tracks: list[Track] = field(default_factory=list)
    notes: list[TimelineNote] = field(default_factory=list)

    @property
    def anchor_frame(self) -> int:
        return TIMELINE_ANCHOR_HOURS * 3600 * self.format.timebase

    @property
    def anchor_timecode(self) -> str:
        # Nominal hour mark; drop-frame only changes the frame separator
        tc = frames_to_timecode(self.anchor_frame, self.format.timebase)
        return f"{tc[:-3]};{tc[-2:]}" if self.format.drop_frame else tc

    @property
    def warnings(self) -> list[TimelineNote]:
        return [n for n in self.notes if n.kind == FRAME_RATE_MISMATCH]

    @property
    def gaps(self) -> list[TimelineNote]:
        return [n for n in self.notes if n.kind == SERIALIZATION_GAP]

    def to_xml(self) -> str:
        return serialize(self)


# --- Assembly ---


def select_format(assets: list[Asset], fallback_timebase: int = DEFAULT_TIMEBASE) -> SequenceFormat:
    """Project rate from the first video asset (registry order) with a usable probed rate."""
    for asset in assets:
        if asset.category != Category.VIDEO:
            continue
        fmt = _source_format(asset)
        if fmt is not None:
            return fmt
    return SequenceFormat(
        timebase=fallback_timebase,
        ntsc=False,
        drop_frame=False,
        width=DEFAULT_WIDTH,
        height=DEFAULT_HEIGHT,
        fps=Fraction(fallback_timebase),
    )


def resolve_duration(asset: Asset, fmt: SequenceFormat) -> tuple[int, str | None]:
    """Clip length in project frames, plus a gap message when a fallback was used.

    Exact frame counts win, then the indexed duration, then a size estimate
    (audio only). Everything is floored at one second when only an estimate
    or nothing at all is available.
    """
    tech = asset.tech
    if tech is not None and tech.frame_count and tech.native_fps is not None:
        return convert_frames(tech.frame_count, tech.native_fps, fmt.fps), None

    if asset.duration_ms and asset.duration_ms > 0:
        return round_half_up(Fraction(asset.duration_ms, 1000) * fmt.fps), "duration from indexed milliseconds"

    if asset.category == Category.AUDIO and asset.size_bytes > 0:
        estimate = round_half_up(Fraction(asset.size_bytes, PCM_BYTES_PER_SECOND) * fmt.fps)
        return max(estimate, fmt.timebase), "duration estimated from file size"

    return fmt.timebase, "no duration available, using one second"


def build_pathurl(asset: Asset, media_root: str) -> str:
    root = media_root or ""
    if root and not root.endswith("/"):
        root += "/"
    name = quote(asset.filename, safe=_URI_SAFE)
    if asset.relative_path:
        return f"file://{root}{asset.relative_path}/{name}"
    return f"file://{root}{name}"


def _source_format(asset: Asset) -> SequenceFormat | None:
    fps = asset.tech.native_fps if asset.tech else None
    if fps is None:
        return None
    return SequenceFormat(
        timebase=nominal_timebase(fps),
        ntsc=is_ntsc(fps),
        drop_frame=is_drop_frame(fps),
        width=asset.tech.width or DEFAULT_WIDTH,
        height=asset.tech.height or DEFAULT_HEIGHT,
        fps=fps,
    )


def assemble_timeline(
    assets: list[Asset],
    media_root: str = "",
    sequence_name: str = DEFAULT_SEQUENCE_NAME,
    *,
    fallback_timebase: int = DEFAULT_TIMEBASE,
    strict: bool = False,
) -> Timeline:
    """Lay out interview angles, their scratch audio and the master audio.

    Raises FrameRateMismatchError only when ``strict`` is set; otherwise rate
    mismatches are reported in ``Timeline.warnings``.
    """
    fmt = select_format(assets, fallback_timebase)
    timeline = Timeline(name=sequence_name, format=fmt)
    angles = [a for a in assets if a.is_interview_angle]
    masters = [a for a in assets if a.is_master_audio]

    scratch_tracks: list[Track] = []
    for asset in angles:
        duration, gap = resolve_duration(asset, fmt)
        if gap:
            timeline.notes.append(TimelineNote(SERIALIZATION_GAP, asset.filename, gap))

        source = _source_format(asset)
        if source is None:
            timeline.notes.append(
                TimelineNote(SERIALIZATION_GAP, asset.filename, "no technical metadata, using defaults")
            )
        elif source.fps != fmt.fps:
            timeline.notes.append(
                TimelineNote(
                    FRAME_RATE_MISMATCH,
                    asset.filename,
                    f"native rate {source.fps} differs from project rate {fmt.fps}",
                )
            )

        video_id, scratch_id = f"{asset.filename} 0", f"{asset.filename} 3"
        links = [video_id, scratch_id]
        start = asset.sync_offset_frames or 0
        timeline.video_tracks.append(
            Track([
                ClipItem(
                    clip_id=video_id,
                    file_id=f"{asset.filename} 2",
                    name=asset.filename,
                    start=start,
                    duration=duration,
                    kind="video",
                    pathurl=build_pathurl(asset, media_root),
                    width=source.width if source else DEFAULT_WIDTH,
                    height=source.height if source else DEFAULT_HEIGHT,
                    source_tc=asset.tech.start_tc if asset.tech else None,
                    source_frames=asset.tech.frame_count if asset.tech else None,
                    source_format=source,
                    links=list(links),
                )
            ])
        )
        scratch_tracks.append(
            Track([
                ClipItem(
                    clip_id=scratch_id,
                    file_id=f"{asset.filename} 2",
                    name=asset.filename,
                    start=start,
                    duration=duration,
                    kind="scratch",
                    links=list(links),
                )
            ])
        )

    timeline.audio_tracks.extend(scratch_tracks)
    for asset in masters:
        duration, gap = resolve_duration(asset, fmt)
        if gap:
            timeline.notes.append(TimelineNote(SERIALIZATION_GAP, asset.filename, gap))
        timeline.audio_tracks.append(
            Track([
                ClipItem(
                    clip_id=f"{asset.filename} 3",
                    file_id=f"{asset.filename} 1",
                    name=asset.filename,
                    start=0,
                    duration=duration,
                    kind="master",
                    pathurl=build_pathurl(asset, media_root),
                )
            ])
        )

    if strict and timeline.warnings:
        mismatches = [n.filename for n in timeline.warnings]
        raise FrameRateMismatchError(
            f"{len(mismatches)} angle(s) do not match the project rate {fmt.fps}: {', '.join(mismatches)}",
            mismatches=mismatches,
        )
    return timeline


# --- Serialization ---


def _sub(parent: ET.Element, tag: str, text=None) -> ET.Element:
    el = ET.SubElement(parent, tag)
    if text is not None:
        el.text = str(text)
    return el


def _bool(value: bool) -> str:
    return "TRUE" if value else "FALSE"


def _rate(parent: ET.Element, fmt: SequenceFormat) -> None:
    rate = _sub(parent, "rate")
    _sub(rate, "timebase", fmt.timebase)
    _sub(rate, "ntsc", _bool(fmt.ntsc))


def _param(effect: ET.Element, name: str, param_id: str, value=None, vmin=None, vmax=None, point=False) -> None:
    param = _sub(effect, "parameter")
    _sub(param, "name", name)
    _sub(param, "parameterid", param_id)
    if point:
        val = _sub(param, "value")
        _sub(val, "horiz", 0)
        _sub(val, "vert", 0)
    else:
        _sub(param, "value", value)
    if vmin is not None:
        _sub(param, "valuemin", vmin)
        _sub(param, "valuemax", vmax)


def _filter(clip: ET.Element, duration: int, name: str, effect_id: str) -> ET.Element:
    flt = _sub(clip, "filter")
    _sub(flt, "enabled", "TRUE")
    _sub(flt, "start", 0)
    _sub(flt, "end", duration)
    effect = _sub(flt, "effect")
    _sub(effect, "name", name)
    _sub(effect, "effectid", effect_id)
    _sub(effect, "effecttype", "motion")
    _sub(effect, "mediatype", "video")
    _sub(effect, "effectcategory", "motion")
    return effect


def _clip_header(track: ET.Element, clip: ClipItem, fmt: SequenceFormat) -> ET.Element:
    el = _sub(track, "clipitem")
    el.set("id", clip.clip_id)
    _sub(el, "name", clip.name)
    _sub(el, "duration", clip.duration)
    _rate(el, fmt)
    _sub(el, "start", clip.start)
    _sub(el, "end", clip.end)
    _sub(el, "enabled", "TRUE")
    _sub(el, "in", 0)
    _sub(el, "out", clip.duration)
    return el


def _links(el: ET.Element, clip: ClipItem) -> None:
    for ref in clip.links:
        link = _sub(el, "link")
        _sub(link, "linkclipref", ref)


def _sourcetrack(el: ET.Element) -> None:
    src = _sub(el, "sourcetrack")
    _sub(src, "mediatype", "audio")
    _sub(src, "trackindex", 1)


def _video_clip(track: ET.Element, clip: ClipItem, fmt: SequenceFormat) -> None:
    el = _clip_header(track, clip, fmt)
    file_el = _sub(el, "file")
    file_el.set("id", clip.file_id)
    _sub(file_el, "name", clip.name)
    _sub(file_el, "pathurl", clip.pathurl)
    if clip.source_tc is not None:
        source = clip.source_format or fmt
        tc = _sub(file_el, "timecode")
        _sub(tc, "string", clip.source_tc)
        _sub(tc, "displayformat", source.display_format)
        _rate(tc, source)
    media = _sub(file_el, "media")
    chars = _sub(_sub(media, "video"), "samplecharacteristics")
    _sub(chars, "width", clip.width)
    _sub(chars, "height", clip.height)
    _sub(_sub(media, "audio"), "channelcount", 2)

    _sub(el, "compositemode", "normal")
    motion = _filter(el, clip.duration, "Basic Motion", "basic")
    _param(motion, "Scale", "scale", 100, 0, 10000)
    _param(motion, "Center", "center", point=True)
    _param(motion, "Rotation", "rotation", 0, -100000, 100000)
    _param(motion, "Anchor Point", "centerOffset", point=True)
    opacity = _filter(el, clip.duration, "Opacity", "opacity")
    _param(opacity, "opacity", "opacity", 100, 0, 100)
    _links(el, clip)


def _scratch_clip(track: ET.Element, clip: ClipItem, fmt: SequenceFormat) -> None:
    el = _clip_header(track, clip, fmt)
    # Reference to the file already described by the video clip
    _sub(el, "file").set("id", clip.file_id)
    _sourcetrack(el)
    _links(el, clip)


def _master_clip(track: ET.Element, clip: ClipItem, fmt: SequenceFormat) -> None:
    el = _clip_header(track, clip, fmt)
    file_el = _sub(el, "file")
    file_el.set("id", clip.file_id)
    _sub(file_el, "name", clip.name)
    _sub(file_el, "pathurl", clip.pathurl)
    _rate(file_el, fmt)
    _sub(file_el, "duration", clip.duration)
    _sourcetrack(el)


_CLIP_WRITERS = {
    "video": _video_clip,
    "scratch": _scratch_clip,
    "master": _master_clip,
}


def build_document(timeline: Timeline) -> ET.Element:
    fmt = timeline.format
    root = ET.Element("xmeml", version="5")
    seq = _sub(root, "sequence")
    _sub(seq, "name", timeline.name)
    _rate(seq, fmt)
    _sub(seq, "in", -1)
    _sub(seq, "out", -1)

    tc = _sub(seq, "timecode")
    _sub(tc, "string", timeline.anchor_timecode)
    _sub(tc, "frame", timeline.anchor_frame)
    _sub(tc, "displayformat", fmt.display_format)
    _rate(tc, fmt)

    media = _sub(seq, "media")
    video = _sub(media, "video")
    for track in timeline.video_tracks:
        track_el = _sub(video, "track")
        for clip in track.clips:
            _CLIP_WRITERS[clip.kind](track_el, clip, fmt)

    chars = _sub(_sub(video, "format"), "samplecharacteristics")
    _sub(chars, "width", fmt.width)
    _sub(chars, "height", fmt.height)
    _sub(chars, "pixelaspectratio", "square")
    _rate(chars, fmt)

    audio = _sub(media, "audio")
    for track in timeline.audio_tracks:
        track_el = _sub(audio, "track")
        for clip in track.clips:
            _CLIP_WRITERS[clip.kind](track_el, clip, fmt)
    return root


def serialize(timeline: Timeline) -> str:
    root = build_document(timeline)
    ET.indent(root)
    body = ET.tostring(root, encoding="unicode")
    return f"{XML_DECLARATION}\n{DOCTYPE}\n{body}\n"
