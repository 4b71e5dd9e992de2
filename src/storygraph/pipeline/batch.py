"""Batch orchestration: asset selection, phase exclusion and sync write-back."""

from __future__ import annotations

import sys
import threading
from contextlib import contextmanager

from storygraph.core.config import StoryGraphConfig
from storygraph.core.exceptions import AlignmentError, PhaseBusyError
from storygraph.db.models import Asset, Category, Classification, Completed, ForensicStage, Pending
from storygraph.db.repository import Repository
from storygraph.pipeline.alignment import Decoder, align_assets, make_decoder, seconds_to_frames
from storygraph.pipeline.classify import ClassificationEngine, Phase, route
from storygraph.pipeline.timeline import select_format


class PhaseToken:
    """Explicit "a phase is running" marker.

    The caller creates one token and passes it to every batch it starts; a
    second batch on the same token fails fast instead of interleaving.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.phase: str | None = None

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def acquire(self, phase: str) -> None:
        if not self._lock.acquire(blocking=False):
            raise PhaseBusyError(f"Cannot start {phase}: {self.phase} is still running")
        self.phase = phase

    def release(self) -> None:
        self.phase = None
        self._lock.release()

    @contextmanager
    def hold(self, phase: str):
        self.acquire(phase)
        try:
            yield self
        finally:
            self.release()


# --- Selectors ---


def select_for_categorization(assets: list[Asset]) -> list[Asset]:
    """Unclassified assets that have not started forensic work."""
    return [
        a for a in assets
        if a.classification == Classification.UNKNOWN and a.forensic_stage == ForensicStage.NONE
    ]


_HEAVY_PHASES = (Phase.DEEP_CONTENT_MAPPING, Phase.TRANSCRIPTION)


def has_remote_job(asset: Asset) -> bool:
    """True once a long-running job was submitted, whether in flight or finished."""
    return isinstance(asset.operation, (Pending, Completed))


def select_broll(assets: list[Asset]) -> list[Asset]:
    return [
        a for a in assets
        if a.category == Category.VIDEO
        and a.classification == Classification.B_ROLL
        and not has_remote_job(a)
    ]


def select_multicam(assets: list[Asset]) -> list[Asset]:
    return [a for a in assets if a.in_multicam_set]


def select_master_audio(assets: list[Asset]) -> list[Asset]:
    return [a for a in assets if a.is_master_audio]


def select_for_transcription(assets: list[Asset]) -> list[Asset]:
    return [a for a in select_master_audio(assets) if not has_remote_job(a)]


def select_auto(assets: list[Asset]) -> list[Asset]:
    """Everything still needing work in its routed phase."""
    return [a for a in assets if not (route(a) in _HEAVY_PHASES and has_remote_job(a))]


# Selectors never pick up a submitted job again; `--asset` is the explicit retry
SELECTORS = {
    "categorize": (select_for_categorization, Phase.CATEGORY_DISCOVERY),
    "broll": (select_broll, Phase.DEEP_CONTENT_MAPPING),
    "tech": (select_multicam, Phase.TECH_PROBE),
    "transcribe": (select_for_transcription, Phase.TRANSCRIPTION),
    "auto": (select_auto, None),
}


def run_classification_batch(
    engine: ClassificationEngine,
    assets: list[Asset],
    phase: Phase | None,
    token: PhaseToken,
) -> dict:
    """Run one phase over ``assets`` in order, one remote call at a time.

    A failing asset is recorded and the batch moves on. Returns a
    JSON-serializable summary.
    """
    label = phase.value if phase else "auto"
    results: list[dict] = []
    with token.hold(label):
        total = len(assets)
        for i, asset in enumerate(assets, 1):
            print(f"  [{i}/{total}] {asset.filename}", file=sys.stderr)
            updated = engine.classify(asset, phase)
            results.append(
                {
                    "asset_id": updated.id,
                    "filename": updated.filename,
                    "classification": updated.classification.value,
                    "forensic_stage": updated.forensic_stage.value,
                    "state": updated.operation.state,
                }
            )

    return {
        "phase": label,
        "total": len(results),
        "failed": sum(1 for r in results if r["state"] == "error"),
        "pending": sum(1 for r in results if r["state"] == "pending"),
        "assets": results,
    }


def run_alignment(
    repo: Repository,
    config: StoryGraphConfig,
    token: PhaseToken,
    decoder: Decoder | None = None,
) -> dict:
    """Sync every interview angle to the master audio and store frame offsets.

    Offsets are converted at the exact sequence rate the timeline uses for
    clip durations, so starts and lengths share one clock.
    """
    assets = repo.list_all()
    masters = select_master_audio(assets)
    if not masters:
        raise AlignmentError("No master audio: classify an audio file as interview first")
    master = masters[0]
    slaves = [a for a in assets if a.is_interview_angle]
    fmt = select_format(assets, config.fallback_timebase)
    decode = decoder or make_decoder(config)

    with token.hold("relational-sync"):
        results = align_assets(
            master,
            slaves,
            decode,
            window=config.correlation_window,
            stride=config.correlation_stride,
            scan_seconds=config.scan_seconds,
        )
        repo.update_fields(master.id, sync_offset_frames=0)
        synced = []
        for result in results:
            frames = seconds_to_frames(result.offset_sec, fmt.fps)
            repo.update_fields(result.asset_id, sync_offset_frames=frames)
            synced.append(
                {
                    "asset_id": result.asset_id,
                    "filename": result.filename,
                    "offset_sec": round(result.offset_sec, 6),
                    "offset_frames": frames,
                }
            )

    synced_ids = {r["asset_id"] for r in synced}
    return {
        "master": master.filename,
        "timebase": fmt.timebase,
        "synced": synced,
        "skipped": [a.filename for a in slaves if a.id not in synced_ids],
    }
