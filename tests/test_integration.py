# tests/test_integration.py
"""Integration tests - require ffmpeg."""

import io
import random
import shutil
import subprocess
import tempfile
from pathlib import Path

import pytest
from PIL import Image

# Check if ffmpeg is available
FFMPEG_AVAILABLE = shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None


def _make_video(path: Path, seconds: int = 6, size: str = "640x360") -> None:
    cmd = [
        "ffmpeg",
        "-f", "lavfi",
        "-i", f"testsrc=duration={seconds}:size={size}:rate=25",
        "-pix_fmt", "yuv420p",
        str(path),
        "-y"
    ]
    subprocess.run(cmd, capture_output=True, check=True)


@pytest.mark.skipif(not FFMPEG_AVAILABLE, reason="ffmpeg not installed")
class TestIntegration:
    """Integration tests that require ffmpeg."""

    def test_sample_fixed_fraction_from_file(self):
        from deepfake_agent.models import Placement, SamplingConfig
        from deepfake_agent.sampler import FrameSampler

        with tempfile.TemporaryDirectory() as tmpdir:
            video = Path(tmpdir) / "test.mp4"
            _make_video(video)

            config = SamplingConfig(placement=Placement.FIXED_FRACTION, segments=3,
                                    frames_per_segment=4, segment_duration=1.0)
            frames = FrameSampler().sample(str(video), config)

            assert len(frames) == 12
            for frame in frames:
                assert 0 <= frame.timestamp < 6.0
                with Image.open(io.BytesIO(frame.image)) as img:
                    assert img.format == "JPEG"
                    assert img.size == (640, 360)
            assert [f.segment_index for f in frames[:4]] == [0, 0, 0, 0]

    def test_sample_random_from_bytes(self):
        from deepfake_agent.models import SamplingConfig
        from deepfake_agent.sampler import FrameSampler

        with tempfile.TemporaryDirectory() as tmpdir:
            video = Path(tmpdir) / "test.mp4"
            _make_video(video, seconds=12, size="1920x1080")

            frames = FrameSampler().sample(
                video.read_bytes(),
                SamplingConfig(segments=2, frames_per_segment=3),
                rng=random.Random(42),
            )

            assert len(frames) == 6
            with Image.open(io.BytesIO(frames[0].image)) as img:
                assert img.size == (1280, 720)

    def test_unreadable_file(self):
        from deepfake_agent.sampler import FrameSampler
        from deepfake_agent.source import DecodeError

        with tempfile.TemporaryDirectory() as tmpdir:
            bogus = Path(tmpdir) / "bogus.mp4"
            bogus.write_bytes(b"this is not a video")

            with pytest.raises(DecodeError):
                FrameSampler().sample(str(bogus))
