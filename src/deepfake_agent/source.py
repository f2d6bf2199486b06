# src/deepfake_agent/source.py
"""Video source resolution and metadata probing."""

import json
import os
import subprocess
import tempfile
from pathlib import Path


class DecodeError(Exception):
    """Video could not be opened or its metadata could not be read."""
    pass


def resolve_local_path(videos_dir: str, filename: str) -> str:
    """Get full path for a local file in the videos directory."""
    full_path = Path(videos_dir) / filename
    if not full_path.exists():
        raise FileNotFoundError(f"File not found: {filename} (looked in {videos_dir})")
    return str(full_path)


class VideoSource:
    """
    Decodable video media with its duration and intrinsic size.

    Use as a context manager. Sources opened from raw bytes are spooled to a
    temporary file which is removed when the context exits, whatever the
    outcome.
    """

    def __init__(self, path: str, duration: float, width: int, height: int,
                 temp_path: str | None = None):
        self.path = path
        self.duration = duration
        self.width = width
        self.height = height
        self._temp_path = temp_path

    @classmethod
    def open(cls, video: str | Path | bytes, timeout: int = 30) -> "VideoSource":
        """
        Open a video from a filesystem path or raw bytes and probe it.

        Raises:
            DecodeError: If the file is missing or ffprobe cannot read it
        """
        temp_path = None
        if isinstance(video, (bytes, bytearray)):
            fd, temp_path = tempfile.mkstemp(prefix="deepfake_src_", suffix=".video")
            with os.fdopen(fd, "wb") as f:
                f.write(video)
            path = temp_path
        else:
            path = str(video)
            if not os.path.exists(path):
                raise DecodeError(f"Video file not found: {path}")

        try:
            duration, width, height = probe_video(path, timeout=timeout)
        except DecodeError:
            if temp_path:
                os.remove(temp_path)
            raise

        return cls(path, duration, width, height, temp_path=temp_path)

    def close(self) -> None:
        """Release the temporary file backing this source, if any."""
        if self._temp_path and os.path.exists(self._temp_path):
            os.remove(self._temp_path)
        self._temp_path = None

    def __enter__(self) -> "VideoSource":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def probe_video(path: str, timeout: int = 30) -> tuple[float, int, int]:
    """Return (duration, width, height) of the first video stream via ffprobe."""
    cmd = [
        "ffprobe",
        "-v", "error",
        "-select_streams", "v:0",
        "-show_entries", "stream=width,height:format=duration",
        "-of", "json",
        path
    ]

    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except subprocess.TimeoutExpired:
        raise DecodeError(f"Probing video timed out after {timeout} seconds")
    except FileNotFoundError:
        raise DecodeError("ffprobe not found. Ensure ffmpeg is installed.")

    if result.returncode != 0:
        raise DecodeError(f"Could not probe video: {result.stderr.strip()}")

    return parse_probe_output(result.stdout)


def parse_probe_output(output: str) -> tuple[float, int, int]:
    """Pull duration, width and height out of ffprobe's JSON output."""
    try:
        info = json.loads(output)
        stream = info["streams"][0]
        width = int(stream["width"])
        height = int(stream["height"])
        duration = float(info["format"]["duration"])
    except (ValueError, KeyError, IndexError, TypeError) as e:
        raise DecodeError(f"Error reading video metadata: {e}")

    if duration <= 0 or width <= 0 or height <= 0:
        raise DecodeError(
            f"Video has no playable frames (duration={duration}, size={width}x{height})"
        )
    return duration, width, height
