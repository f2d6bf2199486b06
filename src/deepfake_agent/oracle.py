# src/deepfake_agent/oracle.py
"""
Vision-language model client that performs the forensic judgment.

Two runtime modes:
  - REAL mode: sends the frames to Gemini through the google-genai SDK.
    Requires an API key.
  - MOCK mode: returns a canned structured reply without touching the
    network. Use for tests and local development.

Create one OracleClient per process and pass it to whatever runs analyses.
"""

import logging
import os

from google import genai
from google.genai import types

from deepfake_agent.models import SampledFrame

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"
MAX_OUTPUT_TOKENS = 2000

ANALYSIS_PROMPT = """\
You are an expert video forensics analyst specializing in deepfake detection and video authenticity verification.

You will receive frames sampled from a video. Frames come in short segments of consecutive frames, so
compare neighbouring frames within a segment for temporal artifacts.

Score each region from 0 (clearly natural) to 10 (clearly manipulated):

1. MOUTH: lip sync issues, teeth blurring or smearing, unnatural mouth interior
2. EYES: blinking patterns, mismatched catchlights, gaze direction, iris distortion
3. BOUNDARY: blending halos at jawline, hairline or neck; skin-tone shifts; edge warping
4. TEMPORAL: flicker or jitter in facial features between consecutive frames, face position lag

Respond with valid JSON only:
{
  "mouth_score": <0-10>,
  "eyes_score": <0-10>,
  "boundary_score": <0-10>,
  "temporal_score": <0-10>,
  "verdict": "AUTHENTIC" | "SUSPICIOUS" | "MANIPULATED",
  "key_evidence": "the single most important observation, with frame numbers",
  "detailed_analysis": "2-4 sentences covering what you observed across the frames"
}"""

_MOCK_RESPONSE = (
    '{"mouth_score": 2, "eyes_score": 3, "boundary_score": 2, "temporal_score": 3, '
    '"verdict": "AUTHENTIC", '
    '"key_evidence": "[MOCK] No oracle call was made", '
    '"detailed_analysis": "[MOCK] Canned reply. Set DEEPFAKE_ORACLE_MOCK=false and '
    'provide GEMINI_API_KEY for a real analysis."}'
)


class OracleError(Exception):
    """The oracle call failed; there is no verdict to report."""
    pass


def build_frame_context(frames: list[SampledFrame]) -> str:
    """One caption line per frame: position, timestamp and segment."""
    lines = []
    for i, frame in enumerate(frames, start=1):
        line = f"Frame {i}: timestamp {frame.timestamp:.2f}s"
        if frame.segment_index is not None:
            line += f" (segment {frame.segment_index + 1}, frame {(frame.index_in_segment or 0) + 1})"
        lines.append(line)
    return "\n".join(lines)


def build_contents(frames: list[SampledFrame]) -> list[types.Content]:
    """User message: the captioned frame list followed by the images in order."""
    intro = (
        f"Analyze these {len(frames)} frames extracted from a video for deepfake/manipulation detection:\n\n"
        f"{build_frame_context(frames)}\n\n"
        "Provide your forensic analysis."
    )
    parts = [types.Part.from_text(text=intro)]
    parts.extend(types.Part.from_bytes(data=f.image, mime_type="image/jpeg") for f in frames)
    return [types.Content(role="user", parts=parts)]


class OracleClient:
    """Sends sampled frames to a vision-language model and returns its reply."""

    def __init__(self, api_key: str = "", model: str = DEFAULT_MODEL, mock_mode: bool = False):
        self.api_key = api_key
        self.model = model
        self.mock_mode = mock_mode
        self._client: genai.Client | None = None

        if self.mock_mode:
            logger.info("OracleClient initialised in MOCK mode")
        else:
            logger.info(f"OracleClient initialised in REAL mode (model: {self.model})")

    @classmethod
    def from_env(cls) -> "OracleClient":
        """Build a client from GEMINI_API_KEY, DEEPFAKE_ORACLE_MODEL and DEEPFAKE_ORACLE_MOCK."""
        return cls(
            api_key=os.environ.get("GEMINI_API_KEY", ""),
            model=os.environ.get("DEEPFAKE_ORACLE_MODEL", DEFAULT_MODEL),
            mock_mode=os.environ.get("DEEPFAKE_ORACLE_MOCK", "false").lower() in ("1", "true", "yes"),
        )

    def _get_client(self) -> genai.Client:
        if self._client is None:
            if not self.api_key:
                raise OracleError("GEMINI_API_KEY is not set. Set it, or enable DEEPFAKE_ORACLE_MOCK.")
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    async def analyze(self, frames: list[SampledFrame]) -> str:
        """
        Ask the model to judge the frames.

        Returns:
            The model's raw reply text (JSON or prose)

        Raises:
            OracleError: If there are no frames or the call fails
        """
        if not frames:
            raise OracleError("No frames provided")

        if self.mock_mode:
            return _MOCK_RESPONSE

        client = self._get_client()
        logger.info(f"Sending {len(frames)} frames to {self.model}")

        try:
            response = await client.aio.models.generate_content(
                model=self.model,
                contents=build_contents(frames),
                config=types.GenerateContentConfig(
                    system_instruction=ANALYSIS_PROMPT,
                    max_output_tokens=MAX_OUTPUT_TOKENS,
                ),
            )
        except Exception as exc:
            logger.error(f"Oracle API error (model={self.model}): {exc}")
            raise OracleError(f"Analysis failed: {exc}") from exc

        return response.text or ""
