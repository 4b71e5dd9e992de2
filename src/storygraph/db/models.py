"""Pydantic models for registry entities."""

from __future__ import annotations

from enum import Enum
from fractions import Fraction
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from storygraph.core.constants import OP_COMPLETED, OP_ERROR, OP_LIGHT_COMPLETE
from storygraph.utils.timecode import parse_fraction


class Category(str, Enum):
    VIDEO = "video"
    AUDIO = "audio"


class Classification(str, Enum):
    UNKNOWN = "unknown"
    INTERVIEW = "interview"
    B_ROLL = "b-roll"


class ForensicStage(str, Enum):
    NONE = "none"
    LIGHT = "light"
    HEAVY = "heavy"
    TECH = "tech"
    COMPLETED = "completed"
    ERROR = "error"


# --- Operation state ---


class NotStarted(BaseModel):
    state: Literal["not_started"] = "not_started"


class LightDone(BaseModel):
    state: Literal["light_complete"] = "light_complete"


class Pending(BaseModel):
    state: Literal["pending"] = "pending"
    handle: str


class Completed(BaseModel):
    state: Literal["completed"] = "completed"


class Failed(BaseModel):
    state: Literal["error"] = "error"
    message: str = ""


Operation = Annotated[
    Union[NotStarted, LightDone, Pending, Completed, Failed],
    Field(discriminator="state"),
]

operation_adapter: TypeAdapter = TypeAdapter(Operation)


def is_terminal(op: BaseModel) -> bool:
    return isinstance(op, (LightDone, Completed, Failed))


def operation_marker(op: BaseModel) -> str | None:
    """Collapse an operation into the single-string handle form used on the wire."""
    if isinstance(op, LightDone):
        return OP_LIGHT_COMPLETE
    if isinstance(op, Completed):
        return OP_COMPLETED
    if isinstance(op, Failed):
        return OP_ERROR
    if isinstance(op, Pending):
        return op.handle
    return None


def operation_from_marker(marker: str | None, message: str = "") -> BaseModel:
    """Parse the single-string handle form back into a tagged operation."""
    if not marker:
        return NotStarted()
    if marker == OP_LIGHT_COMPLETE:
        return LightDone()
    if marker == OP_COMPLETED:
        return Completed()
    if marker == OP_ERROR:
        return Failed(message=message)
    return Pending(handle=marker)


# --- Assets ---


class TechnicalMetadata(BaseModel):
    start_tc: str = "00:00:00:00"
    reel_name: str | None = None
    codec_id: str = ""
    width: int | None = None
    height: int | None = None
    frame_rate_fraction: str = ""  # exact, e.g. "30000/1001"
    total_frames: str = ""  # exact integer string, never a float

    @property
    def native_fps(self) -> Fraction | None:
        return parse_fraction(self.frame_rate_fraction)

    @property
    def frame_count(self) -> int | None:
        value = (self.total_frames or "").strip()
        if not value.isdigit():
            return None
        return int(value)


class Asset(BaseModel):
    id: str
    filename: str
    mime_type: str = ""
    size_bytes: int = 0
    category: Category = Category.VIDEO
    classification: Classification = Classification.UNKNOWN
    forensic_stage: ForensicStage = ForensicStage.NONE
    operation: Operation = Field(default_factory=NotStarted)
    analysis_content: str | None = None
    tech: TechnicalMetadata | None = None
    sync_offset_frames: int = 0
    duration_ms: int | None = None
    relative_path: str | None = None
    indexed_at: str | None = None
    updated_at: str | None = None

    @property
    def is_master_audio(self) -> bool:
        return self.category == Category.AUDIO and self.classification == Classification.INTERVIEW

    @property
    def is_interview_angle(self) -> bool:
        return self.category == Category.VIDEO and self.classification == Classification.INTERVIEW

    @property
    def in_multicam_set(self) -> bool:
        return self.is_master_audio or self.is_interview_angle


class AssetListItem(BaseModel):
    asset_id: str
    filename: str
    category: str
    classification: str
    forensic_stage: str
    operation: str | None
    sync_offset_frames: int
