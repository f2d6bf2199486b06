# src/deepfake_agent/sampler.py
"""Frame sampling: choose timestamps, then seek and render one still at each."""

import io
import logging
import random
import re
import subprocess
import uuid
from pathlib import Path
from typing import Any, Callable

from PIL import Image, UnidentifiedImageError

from deepfake_agent.models import Placement, SampledFrame, SamplingConfig, SamplingPlan
from deepfake_agent.source import VideoSource

logger = logging.getLogger(__name__)

MAX_WIDTH = 1280
MAX_HEIGHT = 720
JPEG_QUALITY = 80

# Share of overall analysis progress reserved for sampling
SAMPLING_PROGRESS_SHARE = 0.30

MAX_PLACEMENT_ATTEMPTS = 50
EDGE_FRACTION = 0.1
MIN_EDGE_SECONDS = 3.0
SHORT_MEDIA_SECONDS = 3.0


class SeekError(Exception):
    """A requested timestamp could not be rendered."""
    pass


def format_timestamp(seconds: float) -> str:
    """Format seconds as M:SS or MM:SS timestamp."""
    minutes = int(seconds // 60)
    secs = int(seconds % 60)
    return f"{minutes}:{secs:02d}"


def parse_showinfo_line(line: str) -> dict[str, Any] | None:
    """Parse a showinfo filter output line to extract pts_time."""
    match = re.search(r'pts_time:\s*(-?\d+\.?\d*)', line)
    if match:
        return {"pts_time": float(match.group(1))}
    return None


def safe_window(duration: float, segment_duration: float) -> tuple[float, float]:
    """
    Range of allowed segment starts, away from intros and outros.

    Excludes the first and last 10% of the media, widened to 3 seconds at each
    end when the media is long enough to still fit a segment in between.
    """
    latest = max(0.0, duration - segment_duration)
    margin = max(duration * EDGE_FRACTION, MIN_EDGE_SECONDS)
    if duration - 2 * margin < segment_duration:
        margin = duration * EDGE_FRACTION

    start = min(margin, latest)
    end = max(start, min(latest, duration - margin - segment_duration))
    return start, end


def even_starts(window_start: float, window_end: float, count: int) -> list[float]:
    """Spread count starts evenly from window_start to window_end inclusive."""
    if count == 1:
        return [(window_start + window_end) / 2]
    step = (window_end - window_start) / (count - 1)
    return [window_start + i * step for i in range(count)]


def random_starts(
    window_start: float,
    window_end: float,
    count: int,
    min_gap: float,
    rng: random.Random
) -> list[float]:
    """
    Draw count starts inside the window, each at least min_gap from the others.

    Falls back to even spacing when the window cannot hold count starts at
    min_gap, or when a start cannot be placed within MAX_PLACEMENT_ATTEMPTS.
    """
    if (window_end - window_start) < (count - 1) * min_gap:
        logger.info(f"Window too small for {count} non-overlapping segments, spacing evenly")
        return even_starts(window_start, window_end, count)

    accepted: list[float] = []
    for _ in range(count):
        for _attempt in range(MAX_PLACEMENT_ATTEMPTS):
            candidate = rng.uniform(window_start, window_end)
            if all(abs(candidate - other) >= min_gap for other in accepted):
                accepted.append(candidate)
                break
        else:
            logger.info(f"Gave up placing segment {len(accepted) + 1} at random, spacing evenly")
            return even_starts(window_start, window_end, count)

    return sorted(accepted)


def plan_segments(
    duration: float,
    config: SamplingConfig,
    rng: random.Random | None = None
) -> SamplingPlan:
    """
    Work out where frames will be taken for a video of the given duration.

    A segment never runs past the end of the media: for clips shorter than the
    configured segment duration the segment shrinks to the clip length.
    """
    if config.placement == Placement.UNIFORM:
        count = config.total_frames
        interval = duration / (count + 1)
        return SamplingPlan(
            placement=Placement.UNIFORM,
            starts=[interval * k for k in range(1, count + 1)],
        )

    span = min(config.segment_duration, duration)
    window_start, window_end = safe_window(duration, span)

    if config.placement == Placement.RANDOM_NON_OVERLAPPING:
        starts = random_starts(
            window_start, window_end, config.segments,
            min_gap=span + 1, rng=rng or random.Random()
        )
    elif duration < SHORT_MEDIA_SECONDS:
        starts = even_starts(window_start, window_end, config.segments)
    else:
        starts = [duration * k / (config.segments + 1) for k in range(1, config.segments + 1)]

    starts = [min(max(0.0, s), duration - span) for s in starts]

    return SamplingPlan(
        placement=config.placement,
        starts=starts,
        frames_per_segment=config.frames_per_segment,
        frame_interval=span / config.frames_per_segment,
    )


def render_still(
    raw: bytes,
    max_width: int = MAX_WIDTH,
    max_height: int = MAX_HEIGHT,
    quality: int = JPEG_QUALITY
) -> bytes:
    """Fit a decoded frame into the bounding box, letterbox on black, encode JPEG."""
    with Image.open(io.BytesIO(raw)) as img:
        img = img.convert("RGB")
        canvas_width = min(img.width, max_width)
        canvas_height = min(img.height, max_height)

        scale = min(canvas_width / img.width, canvas_height / img.height)
        size = (max(1, round(img.width * scale)), max(1, round(img.height * scale)))
        if size != img.size:
            img = img.resize(size, Image.Resampling.LANCZOS)

        canvas = Image.new("RGB", (canvas_width, canvas_height), (0, 0, 0))
        canvas.paste(img, ((canvas_width - size[0]) // 2, (canvas_height - size[1]) // 2))

        out = io.BytesIO()
        canvas.save(out, format="JPEG", quality=quality)
        return out.getvalue()


class FrameSampler:
    """Sample a small, temporally informative set of frames from a video."""

    def __init__(self, output_base_dir: str | None = None, seek_timeout: int = 30):
        self.output_base_dir = Path(output_base_dir) if output_base_dir else None
        self.seek_timeout = seek_timeout

    def create_output_dir(self, video_identifier: str) -> Path:
        """Create a unique output directory for this sampling pass."""
        if self.output_base_dir is None:
            raise ValueError("FrameSampler was created without an output directory")
        unique_id = f"{video_identifier}_{uuid.uuid4().hex[:8]}"
        output_dir = self.output_base_dir / unique_id
        output_dir.mkdir(parents=True, exist_ok=True)
        return output_dir

    def write_frames(self, frames: list[SampledFrame], output_dir: Path) -> list[Path]:
        """Write each frame as frame_NNN.jpg, in capture order."""
        paths = []
        for i, frame in enumerate(frames, start=1):
            path = output_dir / f"frame_{i:03d}.jpg"
            path.write_bytes(frame.image)
            paths.append(path)
        return paths

    def sample(
        self,
        video: str | Path | bytes,
        config: SamplingConfig | None = None,
        rng: random.Random | None = None,
        progress: Callable[[float], None] | None = None
    ) -> list[SampledFrame]:
        """
        Sample frames from a video.

        Args:
            video: Path to a video file, or its raw bytes
            config: Placement strategy and frame counts
            rng: Random generator for randomized placement
            progress: Called after each frame with overall progress (0.0-0.30)

        Returns:
            Exactly config.segments * config.frames_per_segment frames

        Raises:
            DecodeError: If the video cannot be opened or probed
            SeekError: If any frame cannot be rendered
        """
        with VideoSource.open(video) as source:
            return self.sample_source(source, config, rng, progress)

    def sample_source(
        self,
        source: VideoSource,
        config: SamplingConfig | None = None,
        rng: random.Random | None = None,
        progress: Callable[[float], None] | None = None
    ) -> list[SampledFrame]:
        """Plan and capture frames from a source that is already open."""
        config = config or SamplingConfig()
        logger.info(
            f"Sampling {config.total_frames} frames ({config.placement.value}) "
            f"from {format_timestamp(source.duration)} video, {source.width}x{source.height}"
        )
        plan = plan_segments(source.duration, config, rng)
        return self.capture_plan(source, plan, progress)

    def capture_plan(
        self,
        source: VideoSource,
        plan: SamplingPlan,
        progress: Callable[[float], None] | None = None
    ) -> list[SampledFrame]:
        """Capture every planned timestamp, one seek at a time."""
        targets = list(plan.timestamps())
        frames = []

        for completed, (timestamp, segment_index, index_in_segment) in enumerate(targets, start=1):
            image, actual_time = self.capture_frame(source, timestamp)
            frames.append(SampledFrame(
                timestamp=actual_time,
                image=image,
                segment_index=segment_index,
                index_in_segment=index_in_segment,
            ))
            if progress:
                progress(completed / len(targets) * SAMPLING_PROGRESS_SHARE)

        return frames

    def capture_frame(self, source: VideoSource, timestamp: float) -> tuple[bytes, float]:
        """
        Seek to timestamp and render one still.

        Returns:
            JPEG bytes and the frame's real presentation time, which can differ
            slightly from the requested time after keyframe snapping
        """
        cmd = [
            "ffmpeg",
            "-hide_banner",
            "-ss", f"{timestamp:.3f}",
            "-copyts",
            "-i", source.path,
            "-frames:v", "1",
            "-vf", "showinfo",
            "-f", "image2pipe",
            "-c:v", "png",
            "-"
        ]

        try:
            result = subprocess.run(cmd, capture_output=True, timeout=self.seek_timeout)
        except subprocess.TimeoutExpired:
            raise SeekError(f"Seeking to {timestamp:.2f}s timed out after {self.seek_timeout} seconds")
        except FileNotFoundError:
            raise SeekError("ffmpeg not found. Ensure ffmpeg is installed.")

        stderr = result.stderr.decode("utf-8", errors="replace")
        if result.returncode != 0 or not result.stdout:
            raise SeekError(f"Could not render frame at {timestamp:.2f}s: {stderr.strip()[-300:]}")

        actual_time = timestamp
        for line in stderr.split('\n'):
            if 'showinfo' in line.lower() or 'pts_time' in line:
                parsed = parse_showinfo_line(line)
                if parsed:
                    actual_time = parsed["pts_time"]
                    break

        try:
            image = render_still(result.stdout)
        except (UnidentifiedImageError, OSError) as e:
            raise SeekError(f"Could not decode frame at {timestamp:.2f}s: {e}")

        return image, actual_time
