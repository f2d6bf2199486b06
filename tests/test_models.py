import base64

import pytest
from pydantic import ValidationError

from deepfake_agent.models import (
    AnalysisResponse,
    FrameInfo,
    Placement,
    SampledFrame,
    SamplingConfig,
    SamplingPlan,
    SamplingResponse,
    StructuredResponse,
    Verdict,
)


def test_sampling_config_defaults():
    config = SamplingConfig()
    assert config.placement == Placement.RANDOM_NON_OVERLAPPING
    assert config.segments == 3
    assert config.frames_per_segment == 8
    assert config.total_frames == 24


def test_sampling_config_rejects_bad_values():
    with pytest.raises(ValidationError):
        SamplingConfig(segments=0)
    with pytest.raises(ValidationError):
        SamplingConfig(segment_duration=0)


def test_sampling_plan_segmented_timestamps():
    plan = SamplingPlan(
        placement=Placement.FIXED_FRACTION,
        starts=[10.0, 20.0],
        frames_per_segment=4,
        frame_interval=0.25,
    )
    stamps = list(plan.timestamps())
    assert len(stamps) == 8
    assert stamps[0] == (10.0, 0, 0)
    assert stamps[3] == (10.75, 0, 3)
    assert stamps[4] == (20.0, 1, 0)


def test_sampling_plan_uniform_has_no_segments():
    plan = SamplingPlan(placement=Placement.UNIFORM, starts=[1.0, 2.0, 3.0])
    assert list(plan.timestamps()) == [(1.0, None, None), (2.0, None, None), (3.0, None, None)]


def test_sampled_frame_encodings():
    frame = SampledFrame(timestamp=1.5, image=b"\xff\xd8abc", segment_index=0, index_in_segment=2)
    encoded = base64.b64encode(b"\xff\xd8abc").decode()
    assert frame.to_base64() == encoded
    assert frame.data_url() == f"data:image/jpeg;base64,{encoded}"


def test_sampled_frame_is_immutable():
    frame = SampledFrame(timestamp=1.5, image=b"x")
    with pytest.raises(ValidationError):
        frame.timestamp = 2.0


def test_structured_response_clamps_and_normalizes():
    response = StructuredResponse(
        mouth_score=12,
        eyes_score=-1,
        boundary_score="5",
        temporal_score=7,
        verdict="manipulated",
        key_evidence=None,
    )
    assert response.mouth_score == 10.0
    assert response.eyes_score == 0.0
    assert response.verdict == Verdict.MANIPULATED
    assert response.key_evidence == ""
    assert response.average == 5.5


def test_structured_response_rejects_non_numeric_score():
    with pytest.raises(ValidationError):
        StructuredResponse(
            mouth_score="high", eyes_score=1, boundary_score=1, temporal_score=1,
            verdict="AUTHENTIC",
        )


def test_sampling_response_success():
    response = SamplingResponse(
        status="success",
        video_duration=154.0,
        frames_sampled=1,
        frames=[FrameInfo(path="/tmp/frames/frame_001.jpg", timestamp=12.5, segment_index=0, index_in_segment=0)],
        message="Sampled 1 frames"
    )
    assert response.status == "success"
    assert response.frames[0].timestamp == 12.5


def test_analysis_response_error():
    response = AnalysisResponse(status="error", message="Analysis failed")
    assert response.status == "error"
    assert response.assessment is None
    assert response.risk_info is None
