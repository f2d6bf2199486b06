"""Pydantic models for frame sampling and risk assessment."""

import base64
from enum import Enum
from typing import Iterator, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Placement(str, Enum):
    UNIFORM = "uniform"
    RANDOM_NON_OVERLAPPING = "random-non-overlapping"
    FIXED_FRACTION = "fixed-fraction"


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class Verdict(str, Enum):
    AUTHENTIC = "AUTHENTIC"
    SUSPICIOUS = "SUSPICIOUS"
    MANIPULATED = "MANIPULATED"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SignalCategory(str, Enum):
    MOUTH = "Mouth Analysis"
    EYES = "Eye Analysis"
    BOUNDARY = "Face Boundary"
    TEMPORAL = "Temporal Consistency"
    KEY_FINDING = "Key Finding"
    OVERALL = "Overall Analysis"


class SamplingConfig(BaseModel):
    """How many frames to take and where to take them from."""
    placement: Placement = Placement.RANDOM_NON_OVERLAPPING
    segments: int = Field(default=3, ge=1)
    frames_per_segment: int = Field(default=8, ge=1)
    segment_duration: float = Field(default=1.0, gt=0)

    @property
    def total_frames(self) -> int:
        return self.segments * self.frames_per_segment


class SamplingPlan(BaseModel):
    """Segment start times plus the spacing of frames inside each segment."""
    model_config = ConfigDict(frozen=True)

    placement: Placement
    starts: list[float]
    frames_per_segment: int = 1
    frame_interval: float = 0.0

    def timestamps(self) -> Iterator[tuple[float, int | None, int | None]]:
        """Yield (timestamp, segment_index, index_in_segment) in capture order."""
        if self.placement == Placement.UNIFORM:
            for start in self.starts:
                yield start, None, None
            return

        for segment_index, start in enumerate(self.starts):
            for i in range(self.frames_per_segment):
                yield start + i * self.frame_interval, segment_index, i


class SampledFrame(BaseModel):
    """A single rendered still, tagged with where it came from."""
    model_config = ConfigDict(frozen=True)

    timestamp: float
    image: bytes
    segment_index: int | None = None
    index_in_segment: int | None = None

    def to_base64(self) -> str:
        return base64.b64encode(self.image).decode("ascii")

    def data_url(self) -> str:
        return f"data:image/jpeg;base64,{self.to_base64()}"


class StructuredResponse(BaseModel):
    """Oracle reply in the numeric-score JSON shape."""
    mouth_score: float
    eyes_score: float
    boundary_score: float
    temporal_score: float
    verdict: Verdict
    key_evidence: str = ""
    detailed_analysis: str = ""

    @field_validator(
        "mouth_score", "eyes_score", "boundary_score", "temporal_score",
        mode="before",
    )
    @classmethod
    def clamp_score(cls, value):
        try:
            score = float(value)
        except (TypeError, ValueError):
            raise ValueError(f"Score is not a number: {value!r}")
        # Clamp to the 0-10 scale
        return max(0.0, min(10.0, score))

    @field_validator("verdict", mode="before")
    @classmethod
    def normalize_verdict(cls, value):
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("key_evidence", "detailed_analysis", mode="before")
    @classmethod
    def none_to_empty(cls, value):
        return "" if value is None else value

    @property
    def average(self) -> float:
        return (
            self.mouth_score + self.eyes_score
            + self.boundary_score + self.temporal_score
        ) / 4


class FreeTextResponse(BaseModel):
    """Oracle reply that is plain prose."""
    text: str


OracleResponse = Union[StructuredResponse, FreeTextResponse]


class Signal(BaseModel):
    """One categorized finding shown to the user."""
    model_config = ConfigDict(frozen=True)

    category: SignalCategory
    description: str
    severity: Severity
    score: float | None = None


class RegionScores(BaseModel):
    model_config = ConfigDict(frozen=True)

    mouth: float
    eyes: float
    boundary: float
    temporal: float
    average: float


class RiskAssessment(BaseModel):
    """Final, display-ready result of interpreting an oracle reply."""
    model_config = ConfigDict(frozen=True)

    risk_level: RiskLevel
    scores: RegionScores | None = None
    verdict: Verdict | None = None
    signals: list[Signal] = []
    confidence: float
    analysis: str = ""


class RiskInfo(BaseModel):
    """Presentational metadata for a risk level."""
    model_config = ConfigDict(frozen=True)

    label: str
    color: str
    bg_color: str
    description: str


class FrameInfo(BaseModel):
    """Metadata for a single frame written to disk."""
    path: str
    timestamp: float
    segment_index: int | None = None
    index_in_segment: int | None = None


class SamplingResponse(BaseModel):
    """Response from the frame sampling tool."""
    status: str  # "success" or "error"
    video_duration: float | None = None
    frames_sampled: int = 0
    frames: list[FrameInfo] = []
    message: str


class SourceMetadata(BaseModel):
    file_name: str
    file_size: int
    frame_count: int
    analyzed_at: str


class AnalysisResponse(BaseModel):
    """Response from the video analysis tool."""
    status: str  # "success" or "error"
    assessment: RiskAssessment | None = None
    risk_info: RiskInfo | None = None
    source: SourceMetadata | None = None
    message: str
