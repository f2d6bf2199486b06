# src/deepfake_agent/server.py
"""MCP server for deepfake screening of video files."""

import asyncio
import os
import logging
from datetime import datetime, timezone
from pathlib import Path

from mcp.server.fastmcp import FastMCP

from deepfake_agent.models import (
    AnalysisResponse,
    FrameInfo,
    Placement,
    SampledFrame,
    SamplingConfig,
    SamplingResponse,
    SourceMetadata,
)
from deepfake_agent.source import DecodeError, VideoSource, resolve_local_path
from deepfake_agent.sampler import FrameSampler, SeekError, format_timestamp
from deepfake_agent.interpreter import interpret, risk_info
from deepfake_agent.oracle import OracleClient, OracleError

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Configuration from environment or defaults
VIDEOS_DIR = os.environ.get("DEEPFAKE_VIDEOS_DIR", "/videos")
FRAMES_DIR = os.environ.get("DEEPFAKE_FRAMES_DIR", "/tmp/deepfake-frames")
MAX_VIDEO_DURATION = 30 * 60  # 30 minutes in seconds

# Initialize MCP server
mcp = FastMCP("deepfake-agent")

# Initialize components, one per process
sampler = FrameSampler(output_base_dir=FRAMES_DIR)
oracle = OracleClient.from_env()


def _build_config(
    placement: str,
    segments: int,
    frames_per_segment: int,
    segment_duration: float
) -> SamplingConfig | str:
    """Validate tool parameters; returns an error message on failure."""
    try:
        mode = Placement(placement)
    except ValueError:
        choices = ", ".join(p.value for p in Placement)
        return f"Invalid placement: {placement}. Must be one of {choices}"

    if segments < 1:
        return f"Invalid segments: {segments}. Must be at least 1"
    if frames_per_segment < 1:
        return f"Invalid frames_per_segment: {frames_per_segment}. Must be at least 1"
    if segment_duration <= 0:
        return f"Invalid segment_duration: {segment_duration}. Must be greater than 0"

    return SamplingConfig(
        placement=mode,
        segments=segments,
        frames_per_segment=frames_per_segment,
        segment_duration=segment_duration,
    )


def _sample_local(video_path: str, config: SamplingConfig) -> tuple[float, list[SampledFrame]]:
    """Open the video once, enforce the duration cap and sample it."""
    with VideoSource.open(video_path) as source:
        if source.duration > MAX_VIDEO_DURATION:
            raise DecodeError(
                f"Video exceeds 30min limit ({int(source.duration/60)} minutes). Use a trimmed clip."
            )
        frames = sampler.sample_source(source, config, progress=_log_progress)
        return source.duration, frames


def _log_progress(fraction: float) -> None:
    logger.info(f"Sampling progress: {fraction:.0%}")


@mcp.tool()
async def sample_video_frames(
    source: str,
    placement: str = "random-non-overlapping",
    segments: int = 3,
    frames_per_segment: int = 8,
    segment_duration: float = 1.0
) -> dict:
    """
    Sample frames from a local video file and save them as JPEGs.

    Args:
        source: Video filename (drop it in the videos directory and
                provide the filename only)
        placement: uniform, random-non-overlapping or fixed-fraction
        segments: Number of distinct moments to sample. Default 3
        frames_per_segment: Consecutive frames per moment. Default 8
        segment_duration: Seconds covered by each moment. Default 1.0

    Returns:
        Dictionary with status, frames list, and metadata
    """
    config = _build_config(placement, segments, frames_per_segment, segment_duration)
    if isinstance(config, str):
        return SamplingResponse(status="error", message=config).model_dump()

    try:
        video_path = resolve_local_path(VIDEOS_DIR, source)
        # Sampling blocks on ffmpeg; keep it off the event loop
        duration, frames = await asyncio.to_thread(_sample_local, video_path, config)

        output_dir = sampler.create_output_dir(Path(source).stem)
        paths = sampler.write_frames(frames, output_dir)
        logger.info(f"Wrote {len(paths)} frames to {output_dir}")

        response = SamplingResponse(
            status="success",
            video_duration=duration,
            frames_sampled=len(frames),
            frames=[
                FrameInfo(
                    path=str(path),
                    timestamp=frame.timestamp,
                    segment_index=frame.segment_index,
                    index_in_segment=frame.index_in_segment,
                )
                for frame, path in zip(frames, paths)
            ],
            message=f"Sampled {len(frames)} frames from {format_timestamp(duration)} video. Frames saved to {output_dir}/"
        )
        return response.model_dump()

    except FileNotFoundError as e:
        logger.error(f"File not found: {e}")
        return SamplingResponse(status="error", message=str(e)).model_dump()

    except (DecodeError, SeekError) as e:
        logger.error(f"Sampling error: {e}")
        return SamplingResponse(status="error", message=str(e)).model_dump()

    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return SamplingResponse(
            status="error",
            message=f"Unexpected error: {str(e)}"
        ).model_dump()


@mcp.tool()
async def analyze_video(
    source: str,
    placement: str = "random-non-overlapping",
    segments: int = 3,
    frames_per_segment: int = 8,
    segment_duration: float = 1.0
) -> dict:
    """
    Screen a local video for signs of deepfake manipulation.

    Samples frames, asks the vision model for a forensic judgment and maps
    its reply to a LOW / MEDIUM / HIGH risk level with supporting signals.
    The result is advisory.

    Args:
        source: Video filename in the videos directory
        placement: uniform, random-non-overlapping or fixed-fraction
        segments: Number of distinct moments to sample. Default 3
        frames_per_segment: Consecutive frames per moment. Default 8
        segment_duration: Seconds covered by each moment. Default 1.0

    Returns:
        Dictionary with status, assessment, risk level display info and
        source metadata
    """
    config = _build_config(placement, segments, frames_per_segment, segment_duration)
    if isinstance(config, str):
        return AnalysisResponse(status="error", message=config).model_dump()

    try:
        video_path = resolve_local_path(VIDEOS_DIR, source)
        _, frames = await asyncio.to_thread(_sample_local, video_path, config)

        raw = await oracle.analyze(frames)
        assessment = interpret(raw, frame_count=len(frames))
        logger.info(
            f"Analysis complete: risk={assessment.risk_level.value} "
            f"confidence={assessment.confidence:.0f}"
        )

        response = AnalysisResponse(
            status="success",
            assessment=assessment,
            risk_info=risk_info(assessment.risk_level),
            source=SourceMetadata(
                file_name=Path(video_path).name,
                file_size=os.path.getsize(video_path),
                frame_count=len(frames),
                analyzed_at=datetime.now(timezone.utc).isoformat(),
            ),
            message=f"Analyzed {len(frames)} frames: {risk_info(assessment.risk_level).label}"
        )
        return response.model_dump(mode="json")

    except FileNotFoundError as e:
        logger.error(f"File not found: {e}")
        return AnalysisResponse(status="error", message=str(e)).model_dump()

    except (DecodeError, SeekError) as e:
        logger.error(f"Sampling error: {e}")
        return AnalysisResponse(status="error", message=str(e)).model_dump()

    except OracleError as e:
        logger.error(f"Oracle error: {e}")
        return AnalysisResponse(status="error", message=str(e)).model_dump()

    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return AnalysisResponse(
            status="error",
            message=f"Unexpected error: {str(e)}"
        ).model_dump()


def main():
    """Run the MCP server."""
    mcp.run()


if __name__ == "__main__":
    main()
