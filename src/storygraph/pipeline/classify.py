"""Forensic classification: route each asset through remote analysis phases.

Every phase is a member of the closed ``Phase`` enum and is dispatched through
``route``. A phase handler returns a field update for the asset; the fields it
may touch are declared in ``PHASE_FIELDS`` and enforced before anything is
persisted. Collaborator failures stop at the asset boundary and are stored on
the asset as an error state, so a batch never aborts because of one file.
"""

from __future__ import annotations

import re
import sys
from dataclasses import dataclass
from enum import Enum

from storygraph.core.config import StoryGraphConfig
from storygraph.core.constants import (
    AUDIO_CATEGORY_PROMPT,
    CONTENT_MAPPING_FEATURES,
    TRANSCRIPTION_FEATURES,
    VIDEO_CATEGORY_PROMPT,
)
from storygraph.core.exceptions import PhaseFieldError
from storygraph.db.models import (
    Asset,
    Category,
    Classification,
    Completed,
    Failed,
    ForensicStage,
    LightDone,
    Pending,
    is_terminal,
    operation_from_marker,
)
from storygraph.db.repository import Repository
from storygraph.providers.base import (
    AnnotationProvider,
    BlobMirror,
    InferenceProvider,
    TechProbe,
)
from storygraph.utils.media import local_media_path


class Phase(str, Enum):
    TECH_PROBE = "tech-probe"
    CATEGORY_DISCOVERY = "category-discovery"
    DEEP_CONTENT_MAPPING = "deep-content-mapping"
    TRANSCRIPTION = "transcription"


PHASE_FIELDS: dict[Phase, frozenset[str]] = {
    Phase.TECH_PROBE: frozenset({"tech", "forensic_stage", "operation"}),
    Phase.CATEGORY_DISCOVERY: frozenset({"classification", "analysis_content", "forensic_stage", "operation"}),
    Phase.DEEP_CONTENT_MAPPING: frozenset({"analysis_content", "forensic_stage", "operation"}),
    Phase.TRANSCRIPTION: frozenset({"analysis_content", "forensic_stage", "operation"}),
}

# Any phase may record its own failure
FAILURE_FIELDS = frozenset({"analysis_content", "forensic_stage", "operation"})

_INTERVIEW_RE = re.compile(r"interview", re.IGNORECASE)


@dataclass
class PollResult:
    done: bool
    content: str | None = None
    error: str | None = None

    @property
    def pending(self) -> bool:
        return not self.done


def route(asset: Asset, phase: Phase | None = None) -> Phase:
    """Pick the phase to run. An explicit phase always wins."""
    if phase is not None:
        return Phase(phase)
    if asset.classification == Classification.UNKNOWN:
        return Phase.CATEGORY_DISCOVERY
    if asset.category == Category.AUDIO or asset.classification == Classification.INTERVIEW:
        return Phase.TRANSCRIPTION
    return Phase.DEEP_CONTENT_MAPPING


def _check_fields(phase: Phase, update: dict, allowed: frozenset[str]) -> None:
    extra = set(update) - allowed
    if extra:
        raise PhaseFieldError(f"Phase {phase.value} may not set {sorted(extra)}")


def _format_timestamp(value) -> str:
    if isinstance(value, dict):
        secs = int(value.get("seconds", 0) or 0)
        nanos = int(value.get("nanos", 0) or 0)
        return f"{secs + nanos / 1e9:g}s"
    return str(value or "0s")


def format_annotation_results(response: dict) -> str:
    """Render a finished annotation job as readable text."""
    results = response.get("annotationResults") or [{}]
    first = results[0] or {}

    if "speechTranscriptions" in first:
        transcriptions = first.get("speechTranscriptions") or []
        paragraphs = []
        for transcription in transcriptions:
            alt = (transcription.get("alternatives") or [{}])[0]
            words = alt.get("words") or [{}]
            start = _format_timestamp(words[0].get("startTime"))
            paragraphs.append(f"[{start}] {alt.get('transcript', '').strip()}")
        return "\n\n".join(paragraphs) if paragraphs else "No speech detected."

    labels = [
        (label.get("entity") or {}).get("description", "")
        for label in first.get("segmentLabelAnnotations") or []
    ]
    labels = [label for label in labels if label]
    return f"Visual Labels: {', '.join(labels) if labels else 'None'}"


class ClassificationEngine:
    def __init__(
        self,
        repo: Repository,
        mirror: BlobMirror,
        probe: TechProbe,
        inference: InferenceProvider,
        annotator: AnnotationProvider,
        config: StoryGraphConfig,
    ):
        self.repo = repo
        self.mirror = mirror
        self.probe = probe
        self.inference = inference
        self.annotator = annotator
        self.config = config
        self._handlers = {
            Phase.TECH_PROBE: self._tech_probe,
            Phase.CATEGORY_DISCOVERY: self._category_discovery,
            Phase.DEEP_CONTENT_MAPPING: self._deep_content_mapping,
            Phase.TRANSCRIPTION: self._transcription,
        }

    def classify(self, asset: Asset, phase: Phase | None = None) -> Asset:
        """Run one phase on one asset and persist the outcome. Never raises for remote failures."""
        target = route(asset, phase)
        try:
            self.mirror.ensure_mirrored(asset)
            update = self._handlers[target](asset)
            _check_fields(target, update, PHASE_FIELDS[target])
        except PhaseFieldError:
            raise
        except Exception as e:
            print(f"  Warning: {target.value} failed for {asset.filename}: {e}", file=sys.stderr)
            update = {
                "operation": Failed(message=str(e)),
                "forensic_stage": ForensicStage.ERROR,
                "analysis_content": f"Error: {e}",
            }
            _check_fields(target, update, FAILURE_FIELDS)

        self.repo.update_fields(asset.id, **update)
        return asset.model_copy(update=update)

    def poll_operation(self, operation) -> PollResult | None:
        """Check a long-running job. Terminal or absent operations are never sent to the remote."""
        if operation is None or isinstance(operation, str):
            operation = operation_from_marker(operation)
        if is_terminal(operation) or not isinstance(operation, Pending):
            return None

        status = self.annotator.poll(operation.handle)
        if not status.done:
            return PollResult(done=False)
        if status.error:
            return PollResult(done=True, content=f"Error: {status.error}", error=status.error)
        return PollResult(done=True, content=format_annotation_results(status.response))

    # --- Phase handlers ---

    def _tech_probe(self, asset: Asset) -> dict:
        tech = self.probe.probe(local_media_path(asset, self.config.media_root))
        return {
            "tech": tech,
            "forensic_stage": ForensicStage.TECH,
            "operation": Completed(),
        }

    def _category_discovery(self, asset: Asset) -> dict:
        is_audio = asset.category == Category.AUDIO
        prompt = AUDIO_CATEGORY_PROMPT if is_audio else VIDEO_CATEGORY_PROMPT
        text = self.inference.infer(self.mirror.uri_for(asset), asset.mime_type, prompt)

        if _INTERVIEW_RE.search(text):
            classification, label = Classification.INTERVIEW, "Interview"
        else:
            classification = Classification.B_ROLL
            label = "Location Sound" if is_audio else "B-Roll"
        return {
            "classification": classification,
            "analysis_content": f"Classified as {label}",
            "forensic_stage": ForensicStage.LIGHT,
            "operation": LightDone(),
        }

    def _deep_content_mapping(self, asset: Asset) -> dict:
        handle = self.annotator.submit(
            self.mirror.uri_for(asset),
            CONTENT_MAPPING_FEATURES,
            {"labelDetectionConfig": {"labelDetectionMode": "SHOT_MODE"}},
        )
        return {
            "operation": Pending(handle=handle),
            "forensic_stage": ForensicStage.HEAVY,
            "analysis_content": "Analyzing visuals...",
        }

    def _transcription(self, asset: Asset) -> dict:
        handle = self.annotator.submit(
            self.mirror.uri_for(asset),
            TRANSCRIPTION_FEATURES,
            {
                "speechTranscriptionConfig": {
                    "languageCode": self.config.language_code,
                    "enableAutomaticPunctuation": True,
                }
            },
        )
        return {
            "operation": Pending(handle=handle),
            "forensic_stage": ForensicStage.HEAVY,
            "analysis_content": "Transcribing audio...",
        }


def build_engine(repo: Repository, config: StoryGraphConfig) -> ClassificationEngine:
    """Wire the engine to the Google Cloud collaborators and the local ffprobe."""
    from storygraph.pipeline.ffmpeg import FFprobeProbe
    from storygraph.providers.google import (
        GCSMirror,
        VertexInference,
        VideoIntelligenceAnnotator,
        _session,
    )

    session = _session(config)
    return ClassificationEngine(
        repo,
        mirror=GCSMirror(config, session),
        probe=FFprobeProbe(),
        inference=VertexInference(config, session),
        annotator=VideoIntelligenceAnnotator(config, session),
        config=config,
    )
