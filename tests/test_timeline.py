"""Tests for timeline assembly and FCP7 XML output."""

from __future__ import annotations

import xml.etree.ElementTree as ET

import pytest

from storygraph.core.exceptions import FrameRateMismatchError
from storygraph.db.models import Asset, Category, Classification, TechnicalMetadata
from storygraph.pipeline.timeline import (
    assemble_timeline,
    build_pathurl,
    resolve_duration,
    select_format,
)


def _angle(name: str, offset: int, rate: str = "25/1", frames: str = "1500", **kwargs) -> Asset:
    return Asset(
        id=name,
        filename=f"{name}.mov",
        classification=Classification.INTERVIEW,
        sync_offset_frames=offset,
        tech=TechnicalMetadata(
            start_tc="14:02:11:05", codec_id="prores", width=3840, height=2160,
            frame_rate_fraction=rate, total_frames=frames,
        ),
        **kwargs,
    )


def _master(**kwargs) -> Asset:
    kwargs.setdefault("duration_ms", 120000)
    return Asset(
        id="boom",
        filename="boom.wav",
        category=Category.AUDIO,
        classification=Classification.INTERVIEW,
        **kwargs,
    )


def _parse(xml: str) -> ET.Element:
    body = xml.split("<!DOCTYPE xmeml>", 1)[1]
    return ET.fromstring(body.strip())


# ---------------------------------------------------------------------------
# Track layout
# ---------------------------------------------------------------------------

def test_master_and_two_angles_layout() -> None:
    assets = [_master(), _angle("camA", 10), _angle("camB", 250)]
    timeline = assemble_timeline(assets, "/media/")

    assert len(timeline.video_tracks) == 2
    assert len(timeline.audio_tracks) == 3
    assert [t.clips[0].start for t in timeline.video_tracks] == [10, 250]
    assert [t.clips[0].start for t in timeline.audio_tracks] == [10, 250, 0]
    assert timeline.video_tracks[0].clips[0].end == 1510


def test_xml_document_structure() -> None:
    xml = assemble_timeline([_master(), _angle("camA", 10), _angle("camB", 250)], "/media/").to_xml()

    assert xml.startswith('<?xml version="1.0" encoding="UTF-8"?>\n<!DOCTYPE xmeml>\n')
    root = _parse(xml)
    assert root.tag == "xmeml"
    assert root.get("version") == "5"

    seq = root.find("sequence")
    assert seq.findtext("name") == "StoryGraph_Sync"
    assert seq.findtext("rate/timebase") == "25"
    assert seq.findtext("rate/ntsc") == "FALSE"
    assert seq.findtext("timecode/string") == "01:00:00:00"
    assert seq.findtext("timecode/frame") == "90000"
    assert seq.findtext("timecode/displayformat") == "NDF"

    video_clips = seq.findall("media/video/track/clipitem")
    audio_clips = seq.findall("media/audio/track/clipitem")
    assert len(video_clips) == 2
    assert len(audio_clips) == 3
    assert [c.findtext("start") for c in video_clips] == ["10", "250"]
    assert [c.findtext("start") for c in audio_clips] == ["10", "250", "0"]
    assert seq.find("media/video/format/samplecharacteristics/width").text == "3840"


def test_clip_ids_and_links() -> None:
    root = _parse(assemble_timeline([_master(), _angle("camA", 10)], "/media/").to_xml())
    video = root.find("sequence/media/video/track/clipitem")
    scratch, master = root.findall("sequence/media/audio/track/clipitem")

    assert video.get("id") == "camA.mov 0"
    assert video.find("file").get("id") == "camA.mov 2"
    assert scratch.get("id") == "camA.mov 3"
    assert scratch.find("file").get("id") == "camA.mov 2"
    assert master.get("id") == "boom.wav 3"
    assert master.find("file").get("id") == "boom.wav 1"

    expected_links = ["camA.mov 0", "camA.mov 3"]
    assert [l.text for l in video.findall("link/linkclipref")] == expected_links
    assert [l.text for l in scratch.findall("link/linkclipref")] == expected_links
    assert master.find("link") is None


def test_video_clip_carries_filters_and_source_timecode() -> None:
    root = _parse(assemble_timeline([_angle("camA", 0)], "/media/").to_xml())
    video = root.find("sequence/media/video/track/clipitem")

    assert [f.findtext("effect/name") for f in video.findall("filter")] == ["Basic Motion", "Opacity"]
    assert video.findtext("file/timecode/string") == "14:02:11:05"
    assert video.findtext("file/media/video/samplecharacteristics/height") == "2160"


# ---------------------------------------------------------------------------
# Rates and durations
# ---------------------------------------------------------------------------

def test_fractional_rate_converted_exactly() -> None:
    fmt = select_format([_angle("camA", 0)])
    asset = _angle("camB", 0, rate="30000/1001", frames="1001")
    duration, gap = resolve_duration(asset, fmt)
    assert duration == 835
    assert gap is None


def test_ntsc_project_uses_drop_frame_anchor() -> None:
    timeline = assemble_timeline([_angle("camA", 0, rate="30000/1001", frames="1798")])
    assert timeline.format.timebase == 30
    assert timeline.format.ntsc is True
    assert timeline.format.display_format == "DF"
    assert timeline.anchor_frame == 108000
    root = _parse(timeline.to_xml())
    assert root.findtext("sequence/rate/ntsc") == "TRUE"
    assert root.findtext("sequence/timecode/displayformat") == "DF"
    # Same integer frames on both rates: exact frame count kept
    assert root.findtext("sequence/media/video/track/clipitem/duration") == "1798"


def test_23976_is_ntsc_but_not_drop_frame() -> None:
    fmt = select_format([_angle("camA", 0, rate="24000/1001")])
    assert fmt.timebase == 24
    assert fmt.ntsc is True
    assert fmt.display_format == "NDF"


def test_fallback_format_without_video_metadata() -> None:
    fmt = select_format([_master()], fallback_timebase=25)
    assert (fmt.timebase, fmt.ntsc, fmt.width, fmt.height) == (25, False, 1920, 1080)


def test_duration_priority() -> None:
    fmt = select_format([])
    from_ms = _master(duration_ms=2000)
    from_size = _master(duration_ms=None, size_bytes=176400 * 3)
    tiny = _master(duration_ms=None, size_bytes=1000)
    nothing = Asset(id="x", filename="x.mov", classification=Classification.INTERVIEW)

    assert resolve_duration(from_ms, fmt)[0] == 50
    assert resolve_duration(from_size, fmt)[0] == 75
    assert resolve_duration(tiny, fmt)[0] == 25
    assert resolve_duration(nothing, fmt) == (25, "no duration available, using one second")


def test_missing_metadata_defaults_recorded_as_gaps() -> None:
    bare = Asset(id="x", filename="x.mov", classification=Classification.INTERVIEW)
    timeline = assemble_timeline([bare])
    clip = timeline.video_tracks[0].clips[0]

    assert (clip.width, clip.height) == (1920, 1080)
    assert clip.source_tc is None
    assert len(timeline.gaps) == 2
    root = _parse(timeline.to_xml())
    assert root.find("sequence/media/video/track/clipitem/file/timecode") is None


# ---------------------------------------------------------------------------
# Frame-rate mismatch policy
# ---------------------------------------------------------------------------

def test_mismatch_is_a_warning_by_default() -> None:
    assets = [_angle("camA", 0), _angle("camB", 0, rate="30000/1001", frames="1001")]
    timeline = assemble_timeline(assets)
    assert [w.filename for w in timeline.warnings] == ["camB.mov"]
    assert timeline.video_tracks[1].clips[0].duration == 835


def test_mismatch_raises_in_strict_mode() -> None:
    assets = [_angle("camA", 0), _angle("camB", 0, rate="30000/1001", frames="1001")]
    with pytest.raises(FrameRateMismatchError) as exc:
        assemble_timeline(assets, strict=True)
    assert exc.value.mismatches == ["camB.mov"]


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

def test_pathurl_with_relative_folder() -> None:
    asset = Asset(id="x", filename="Interview #1 (take 2).mov", relative_path="Day 1/Cam A")
    assert build_pathurl(asset, "/Volumes/Drive/") == (
        "file:///Volumes/Drive/Day 1/Cam A/Interview%20%231%20(take%202).mov"
    )


def test_pathurl_without_relative_folder() -> None:
    asset = Asset(id="x", filename="boom.wav")
    assert build_pathurl(asset, "/Volumes/Drive") == "file:///Volumes/Drive/boom.wav"


def test_empty_registry_still_serializes() -> None:
    root = _parse(assemble_timeline([]).to_xml())
    assert root.find("sequence/media/video/format") is not None
    assert root.findall("sequence/media/audio/track") == []


def test_drop_frame_anchor_string() -> None:
    timeline = assemble_timeline([_angle("camA", 0, rate="30000/1001")])
    assert timeline.anchor_timecode == "01:00:00;00"
