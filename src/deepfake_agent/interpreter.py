# src/deepfake_agent/interpreter.py
"""Turn an oracle reply of uncertain shape into a risk assessment."""

import json
import logging
from typing import Any

from pydantic import ValidationError

from deepfake_agent.models import (
    FreeTextResponse,
    OracleResponse,
    RegionScores,
    RiskAssessment,
    RiskInfo,
    RiskLevel,
    Severity,
    Signal,
    SignalCategory,
    StructuredResponse,
    Verdict,
)

logger = logging.getLogger(__name__)

MIN_CONFIDENCE = 30
MAX_CONFIDENCE = 95

RISK_LEVELS: dict[RiskLevel, RiskInfo] = {
    RiskLevel.LOW: RiskInfo(
        label="LOW RISK",
        color="#22c55e",
        bg_color="#dcfce7",
        description="Video appears authentic with no significant manipulation indicators detected.",
    ),
    RiskLevel.MEDIUM: RiskInfo(
        label="MEDIUM RISK",
        color="#f59e0b",
        bg_color="#fef3c7",
        description="Some potential indicators detected. Manual review recommended.",
    ),
    RiskLevel.HIGH: RiskInfo(
        label="HIGH RISK",
        color="#ef4444",
        bg_color="#fee2e2",
        description="Multiple manipulation indicators detected. Video authenticity is questionable.",
    ),
}

_REGION_DESCRIPTIONS: dict[SignalCategory, dict[Severity, str]] = {
    SignalCategory.MOUTH: {
        Severity.LOW: "Natural lip and teeth appearance",
        Severity.MEDIUM: "Minor irregularities in mouth region",
        Severity.HIGH: "Significant mouth artifacts detected",
    },
    SignalCategory.EYES: {
        Severity.LOW: "Natural eye reflections and movement",
        Severity.MEDIUM: "Slight inconsistencies in eye region",
        Severity.HIGH: "Eye region shows manipulation signs",
    },
    SignalCategory.BOUNDARY: {
        Severity.LOW: "Clean face-to-background transition",
        Severity.MEDIUM: "Minor boundary irregularities",
        Severity.HIGH: "Visible blending artifacts at face boundary",
    },
    SignalCategory.TEMPORAL: {
        Severity.LOW: "Consistent frame-to-frame motion",
        Severity.MEDIUM: "Some temporal inconsistencies",
        Severity.HIGH: "Significant temporal artifacts detected",
    },
}

_OVERALL_SIGNALS: dict[RiskLevel, Signal] = {
    RiskLevel.LOW: Signal(
        category=SignalCategory.OVERALL,
        description="No significant manipulation indicators detected",
        severity=Severity.LOW,
    ),
    RiskLevel.MEDIUM: Signal(
        category=SignalCategory.OVERALL,
        description="Some potential indicators detected - review recommended",
        severity=Severity.MEDIUM,
    ),
    RiskLevel.HIGH: Signal(
        category=SignalCategory.OVERALL,
        description="Multiple manipulation indicators detected",
        severity=Severity.HIGH,
    ),
}

# Checked in order against the upper-cased text; the first hit wins.
# Manipulation phrases and negated authenticity are checked before authenticity.
_VERDICT_PHRASES: list[tuple[str, RiskLevel]] = [
    ("POSSIBLY MANIPULATED", RiskLevel.MEDIUM),
    ("LIKELY MANIPULATED", RiskLevel.HIGH),
    ("MANIPULATED", RiskLevel.HIGH),
    ("NOT AUTHENTIC", RiskLevel.HIGH),
    ("INAUTHENTIC", RiskLevel.HIGH),
    ("LIKELY AUTHENTIC", RiskLevel.LOW),
    ("AUTHENTIC", RiskLevel.LOW),
    ("SUSPICIOUS", RiskLevel.MEDIUM),
]

_SEVERITY_FOR_LEVEL = {
    RiskLevel.LOW: Severity.LOW,
    RiskLevel.MEDIUM: Severity.MEDIUM,
    RiskLevel.HIGH: Severity.HIGH,
}


def risk_info(level: RiskLevel) -> RiskInfo:
    """Display metadata (label, colors, description) for a risk level."""
    return RISK_LEVELS[level]


def score_severity(score: float) -> Severity:
    if score < 4:
        return Severity.LOW
    if score < 7:
        return Severity.MEDIUM
    return Severity.HIGH


def _clamp_confidence(value: float) -> float:
    return max(MIN_CONFIDENCE, min(MAX_CONFIDENCE, value))


def parse_oracle_output(raw: str) -> OracleResponse:
    """
    Classify raw oracle output as structured JSON scores or free text.

    A JSON object is decoded at each opening brace in turn and the first one
    that validates as a score payload wins. Prose around it, braces included,
    is ignored. Anything without such an object is kept as free text.
    """
    decoder = json.JSONDecoder()
    start = raw.find("{")
    while start != -1:
        try:
            data, _ = decoder.raw_decode(raw, start)
        except json.JSONDecodeError:
            data = None
        if isinstance(data, dict):
            try:
                return StructuredResponse.model_validate(data)
            except ValidationError as e:
                logger.debug(f"Oracle JSON did not match the score schema: {e.error_count()} errors")
        start = raw.find("{", start + 1)
    return FreeTextResponse(text=raw)


def interpret(response: Any, frame_count: int = 0) -> RiskAssessment:
    """
    Build a risk assessment from an oracle reply.

    Accepts a parsed OracleResponse, the raw reply string, or a decoded JSON
    object. Never raises: anything unrecognised becomes a MEDIUM assessment.

    Args:
        response: The oracle's reply in any of the accepted shapes
        frame_count: Number of frames the oracle was shown

    Returns:
        RiskAssessment with level, signals and a confidence in [30, 95]
    """
    if isinstance(response, str):
        response = parse_oracle_output(response)
    elif isinstance(response, dict):
        response = _coerce_mapping(response)

    if isinstance(response, StructuredResponse):
        return interpret_structured(response, frame_count)
    if isinstance(response, FreeTextResponse):
        return interpret_free_text(response.text, frame_count)

    logger.warning(f"Unrecognised oracle response of type {type(response).__name__}, defaulting to MEDIUM")
    signals = [_OVERALL_SIGNALS[RiskLevel.MEDIUM]]
    return RiskAssessment(
        risk_level=RiskLevel.MEDIUM,
        signals=signals,
        confidence=_free_text_confidence(signals, frame_count),
    )


def _coerce_mapping(data: dict) -> OracleResponse | None:
    try:
        return StructuredResponse.model_validate(data)
    except ValidationError:
        pass
    for key in ("text", "analysis"):
        if isinstance(data.get(key), str):
            return FreeTextResponse(text=data[key])
    return None


def interpret_structured(response: StructuredResponse, frame_count: int = 0) -> RiskAssessment:
    average = response.average

    if average >= 6 or response.verdict == Verdict.MANIPULATED:
        level = RiskLevel.HIGH
    elif average >= 4 or response.verdict == Verdict.SUSPICIOUS:
        level = RiskLevel.MEDIUM
    else:
        level = RiskLevel.LOW

    regions = [
        (SignalCategory.MOUTH, response.mouth_score),
        (SignalCategory.EYES, response.eyes_score),
        (SignalCategory.BOUNDARY, response.boundary_score),
        (SignalCategory.TEMPORAL, response.temporal_score),
    ]
    signals = []
    for category, score in regions:
        severity = score_severity(score)
        signals.append(Signal(
            category=category,
            description=_REGION_DESCRIPTIONS[category][severity],
            severity=severity,
            score=score,
        ))

    if response.key_evidence.strip():
        signals.insert(0, Signal(
            category=SignalCategory.KEY_FINDING,
            description=response.key_evidence.strip(),
            severity=_SEVERITY_FOR_LEVEL[level],
        ))

    # Strong scores in either direction and more frames both raise confidence
    confidence = (
        min(95, 50 + average * 5)
        + min(20, frame_count * 0.8)
        + abs(average - 5) * 3
    )

    return RiskAssessment(
        risk_level=level,
        scores=RegionScores(
            mouth=response.mouth_score,
            eyes=response.eyes_score,
            boundary=response.boundary_score,
            temporal=response.temporal_score,
            average=average,
        ),
        verdict=response.verdict,
        signals=signals,
        confidence=_clamp_confidence(confidence),
        analysis=response.detailed_analysis,
    )


def classify_free_text(text: str) -> RiskLevel:
    """Resolve a risk level from prose using the fixed phrase precedence."""
    upper = text.upper()
    for phrase, level in _VERDICT_PHRASES:
        if phrase in upper:
            return level

    if "NO SIGNS OF MANIPULATION" in upper:
        return RiskLevel.LOW
    if "HIGH CONFIDENCE" in upper and "MANIPULAT" in upper:
        return RiskLevel.HIGH
    return RiskLevel.MEDIUM


def interpret_free_text(text: str, frame_count: int = 0) -> RiskAssessment:
    level = classify_free_text(text)
    signals = [_OVERALL_SIGNALS[level]]
    return RiskAssessment(
        risk_level=level,
        signals=signals,
        confidence=_free_text_confidence(signals, frame_count),
        analysis=text,
    )


def _free_text_confidence(signals: list[Signal], frame_count: int) -> float:
    confidence = min(70, 50 + frame_count * 3)
    decisive = sum(1 for s in signals if s.severity in (Severity.HIGH, Severity.LOW))
    hedged = sum(1 for s in signals if s.severity == Severity.MEDIUM)
    confidence += decisive * 5 - hedged * 3
    return _clamp_confidence(round(confidence))
