"""Tests for the classification engine: routing, failure isolation, polling."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from storygraph.core.config import StoryGraphConfig
from storygraph.core.exceptions import APIError, PhaseBusyError, PhaseFieldError, ProbeError
from storygraph.db.models import (
    Asset,
    Category,
    Classification,
    Completed,
    Failed,
    ForensicStage,
    LightDone,
    NotStarted,
    Pending,
    TechnicalMetadata,
)
from storygraph.db.repository import Repository
from storygraph.pipeline.batch import SELECTORS, PhaseToken, run_classification_batch
from storygraph.pipeline.classify import (
    ClassificationEngine,
    Phase,
    format_annotation_results,
    route,
)
from storygraph.providers.base import OperationStatus


@pytest.fixture()
def repo(tmp_path: Path) -> Repository:
    r = Repository(tmp_path / "test.db")
    yield r
    r.close()


@pytest.fixture()
def engine(repo: Repository, tmp_path: Path) -> ClassificationEngine:
    mirror = MagicMock()
    mirror.uri_for.side_effect = lambda asset: f"gs://bucket/{asset.filename}"
    return ClassificationEngine(
        repo,
        mirror=mirror,
        probe=MagicMock(),
        inference=MagicMock(),
        annotator=MagicMock(),
        config=StoryGraphConfig(media_root=str(tmp_path)),
    )


def _add(repo: Repository, asset_id: str, **kwargs) -> Asset:
    kwargs.setdefault("filename", f"{asset_id}.mov")
    kwargs.setdefault("mime_type", "video/quicktime")
    asset = Asset(id=asset_id, **kwargs)
    repo.upsert(asset)
    return asset


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------

def test_route_unknown_goes_to_discovery() -> None:
    assert route(Asset(id="x", filename="x.mov")) == Phase.CATEGORY_DISCOVERY
    assert route(Asset(id="x", filename="x.wav", category=Category.AUDIO)) == Phase.CATEGORY_DISCOVERY


def test_route_known_assets() -> None:
    interview = Asset(id="x", filename="x.mov", classification=Classification.INTERVIEW)
    broll = Asset(id="x", filename="x.mov", classification=Classification.B_ROLL)
    location = Asset(id="x", filename="x.wav", category=Category.AUDIO, classification=Classification.B_ROLL)
    assert route(interview) == Phase.TRANSCRIPTION
    assert route(broll) == Phase.DEEP_CONTENT_MAPPING
    assert route(location) == Phase.TRANSCRIPTION


def test_route_explicit_phase_wins() -> None:
    broll = Asset(id="x", filename="x.mov", classification=Classification.B_ROLL)
    assert route(broll, Phase.TECH_PROBE) == Phase.TECH_PROBE


# ---------------------------------------------------------------------------
# Phases
# ---------------------------------------------------------------------------

def test_category_discovery_video(engine: ClassificationEngine, repo: Repository) -> None:
    asset = _add(repo, "a1")
    engine.inference.infer.return_value = "Interview"

    updated = engine.classify(asset)

    assert updated.classification == Classification.INTERVIEW
    assert updated.operation == LightDone()
    stored = repo.get_asset("a1")
    assert stored.classification == Classification.INTERVIEW
    assert stored.forensic_stage == ForensicStage.LIGHT
    assert stored.analysis_content == "Classified as Interview"
    engine.mirror.ensure_mirrored.assert_called_once()


def test_category_discovery_audio_location_sound(engine: ClassificationEngine, repo: Repository) -> None:
    asset = _add(repo, "a1", filename="amb.wav", mime_type="audio/wav", category=Category.AUDIO)
    engine.inference.infer.return_value = "location"

    engine.classify(asset)

    stored = repo.get_asset("a1")
    assert stored.classification == Classification.B_ROLL
    assert stored.analysis_content == "Classified as Location Sound"
    prompt = engine.inference.infer.call_args.args[2]
    assert "audio" in prompt


def test_mirror_runs_before_inference(engine: ClassificationEngine, repo: Repository) -> None:
    asset = _add(repo, "a1")
    calls = []
    engine.mirror.ensure_mirrored.side_effect = lambda a: calls.append("mirror")
    engine.inference.infer.side_effect = lambda *args: calls.append("infer") or "b-roll"

    engine.classify(asset)
    assert calls == ["mirror", "infer"]


def test_transcription_submits_job(engine: ClassificationEngine, repo: Repository) -> None:
    asset = _add(repo, "a1", filename="boom.wav", category=Category.AUDIO, classification=Classification.INTERVIEW)
    engine.annotator.submit.return_value = "projects/p/locations/l/operations/42"

    engine.classify(asset)

    stored = repo.get_asset("a1")
    assert stored.operation == Pending(handle="projects/p/locations/l/operations/42")
    assert stored.forensic_stage == ForensicStage.HEAVY
    assert stored.analysis_content == "Transcribing audio..."
    uri, features, context = engine.annotator.submit.call_args.args
    assert uri == "gs://bucket/boom.wav"
    assert features == ["SPEECH_TRANSCRIPTION"]
    assert context["speechTranscriptionConfig"]["languageCode"] == "en-US"


def test_tech_probe_replaces_metadata(engine: ClassificationEngine, repo: Repository) -> None:
    asset = _add(repo, "a1", classification=Classification.INTERVIEW)
    engine.probe.probe.return_value = TechnicalMetadata(
        start_tc="01:00:00:00", codec_id="prores", width=3840, height=2160,
        frame_rate_fraction="25/1", total_frames="1500",
    )

    engine.classify(asset, Phase.TECH_PROBE)

    stored = repo.get_asset("a1")
    assert stored.tech.width == 3840
    assert stored.forensic_stage == ForensicStage.TECH
    assert stored.operation == Completed()
    assert stored.classification == Classification.INTERVIEW


def test_tech_probe_failure_keeps_existing_metadata(engine: ClassificationEngine, repo: Repository) -> None:
    old = TechnicalMetadata(frame_rate_fraction="25/1", total_frames="100")
    asset = _add(repo, "a1", tech=old)
    engine.probe.probe.side_effect = ProbeError("moov atom not found")

    engine.classify(asset, Phase.TECH_PROBE)

    stored = repo.get_asset("a1")
    assert stored.tech == old
    assert stored.operation == Failed(message="moov atom not found")
    assert stored.analysis_content == "Error: moov atom not found"


def test_handler_cannot_write_undeclared_fields(engine: ClassificationEngine, repo: Repository) -> None:
    asset = _add(repo, "a1")
    engine._handlers[Phase.TECH_PROBE] = lambda a: {
        "classification": Classification.INTERVIEW,
        "operation": Completed(),
    }

    with pytest.raises(PhaseFieldError):
        engine.classify(asset, Phase.TECH_PROBE)
    assert repo.get_asset("a1").classification == Classification.UNKNOWN


# ---------------------------------------------------------------------------
# Batches
# ---------------------------------------------------------------------------

def test_batch_isolates_failing_asset(engine: ClassificationEngine, repo: Repository) -> None:
    assets = [_add(repo, f"a{i}") for i in (1, 2, 3)]

    def infer(uri: str, mime: str, prompt: str) -> str:
        if uri.endswith("a2.mov"):
            raise APIError("503 backend unavailable", provider="vertex", status_code=503)
        return "b-roll"

    engine.inference.infer.side_effect = infer
    summary = run_classification_batch(engine, assets, Phase.CATEGORY_DISCOVERY, PhaseToken())

    assert summary["total"] == 3
    assert summary["failed"] == 1
    assert repo.get_asset("a1").operation == LightDone()
    assert repo.get_asset("a3").operation == LightDone()
    failed = repo.get_asset("a2")
    assert failed.operation == Failed(message="503 backend unavailable")
    assert failed.forensic_stage == ForensicStage.ERROR
    assert failed.analysis_content == "Error: 503 backend unavailable"


def test_rerun_skips_submitted_jobs(engine: ClassificationEngine, repo: Repository) -> None:
    _add(
        repo, "done", classification=Classification.B_ROLL, forensic_stage=ForensicStage.COMPLETED,
        operation=Completed(), analysis_content="Visual Labels: x",
    )
    _add(
        repo, "inflight", classification=Classification.B_ROLL, forensic_stage=ForensicStage.HEAVY,
        operation=Pending(handle="ops/OLD"),
    )
    _add(
        repo, "boom", filename="boom.wav", mime_type="audio/wav", category=Category.AUDIO,
        classification=Classification.INTERVIEW, operation=Pending(handle="ops/T"),
    )
    engine.annotator.submit.return_value = "ops/NEW"

    for batch in ("broll", "transcribe", "auto"):
        select, phase = SELECTORS[batch]
        assert select(repo.list_all()) == []
        run_classification_batch(engine, select(repo.list_all()), phase, PhaseToken())

    engine.annotator.submit.assert_not_called()
    assert repo.get_asset("done").analysis_content == "Visual Labels: x"
    assert repo.get_asset("inflight").operation == Pending(handle="ops/OLD")


def test_broll_batch_picks_up_failed_and_fresh_assets(repo: Repository) -> None:
    _add(repo, "fresh", classification=Classification.B_ROLL, operation=LightDone())
    _add(repo, "failed", classification=Classification.B_ROLL, operation=Failed(message="503"))
    _add(repo, "done", classification=Classification.B_ROLL, operation=Completed())

    select, _ = SELECTORS["broll"]
    assert sorted(a.id for a in select(repo.list_all())) == ["failed", "fresh"]


def test_batch_refuses_when_token_held(engine: ClassificationEngine, repo: Repository) -> None:
    token = PhaseToken()
    token.acquire("relational-sync")
    with pytest.raises(PhaseBusyError):
        run_classification_batch(engine, [_add(repo, "a1")], None, token)
    engine.inference.infer.assert_not_called()

    token.release()
    assert not token.busy


# ---------------------------------------------------------------------------
# Polling
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "operation",
    [None, "light_complete", "completed", "error", NotStarted(), LightDone(), Completed(), Failed(message="x")],
)
def test_poll_terminal_never_calls_remote(engine: ClassificationEngine, operation) -> None:
    assert engine.poll_operation(operation) is None
    engine.annotator.poll.assert_not_called()


def test_poll_pending_not_done(engine: ClassificationEngine) -> None:
    engine.annotator.poll.return_value = OperationStatus(done=False)
    result = engine.poll_operation(Pending(handle="op-1"))
    assert result.pending
    engine.annotator.poll.assert_called_once_with("op-1")


def test_poll_marker_string_is_pending_handle(engine: ClassificationEngine) -> None:
    engine.annotator.poll.return_value = OperationStatus(
        done=True,
        response={"annotationResults": [{"segmentLabelAnnotations": [{"entity": {"description": "tree"}}]}]},
    )
    result = engine.poll_operation("projects/p/operations/9")
    assert result.done
    assert result.content == "Visual Labels: tree"


def test_poll_remote_error(engine: ClassificationEngine) -> None:
    engine.annotator.poll.return_value = OperationStatus(done=True, error="Video too long")
    result = engine.poll_operation(Pending(handle="op-1"))
    assert result.error == "Video too long"
    assert result.content == "Error: Video too long"


# ---------------------------------------------------------------------------
# Result formatting
# ---------------------------------------------------------------------------

def test_format_transcription() -> None:
    response = {
        "annotationResults": [{
            "speechTranscriptions": [
                {"alternatives": [{"transcript": "We came here in 1994.", "words": [{"startTime": "1.5s"}]}]},
                {"alternatives": [{"transcript": " It was winter. ", "words": [{"startTime": {"seconds": 12}}]}]},
            ]
        }]
    }
    assert format_annotation_results(response) == "[1.5s] We came here in 1994.\n\n[12s] It was winter."


def test_format_transcription_empty() -> None:
    assert format_annotation_results({"annotationResults": [{"speechTranscriptions": []}]}) == "No speech detected."


def test_format_labels() -> None:
    response = {
        "annotationResults": [{
            "segmentLabelAnnotations": [
                {"entity": {"description": "mountain"}},
                {"entity": {"description": "road"}},
            ]
        }]
    }
    assert format_annotation_results(response) == "Visual Labels: mountain, road"
    assert format_annotation_results({"annotationResults": [{}]}) == "Visual Labels: None"
