# tests/test_source.py
import json
import os
import subprocess
import tempfile
from pathlib import Path
from unittest.mock import patch, MagicMock

import pytest

from deepfake_agent.source import (
    DecodeError,
    VideoSource,
    parse_probe_output,
    probe_video,
    resolve_local_path,
)


def _probe_json(duration="12.5", width=1920, height=1080):
    return json.dumps({
        "streams": [{"width": width, "height": height}],
        "format": {"duration": duration},
    })


def test_resolve_local_file_not_found():
    with pytest.raises(FileNotFoundError, match="File not found"):
        resolve_local_path("/nonexistent", "missing.mp4")


def test_resolve_local_file_exists():
    with tempfile.TemporaryDirectory() as tmpdir:
        test_file = Path(tmpdir) / "test.mp4"
        test_file.touch()

        path = resolve_local_path(tmpdir, "test.mp4")
        assert path == str(test_file)


def test_parse_probe_output():
    assert parse_probe_output(_probe_json()) == (12.5, 1920, 1080)


def test_parse_probe_output_without_video_stream():
    output = json.dumps({"streams": [], "format": {"duration": "3.0"}})
    with pytest.raises(DecodeError):
        parse_probe_output(output)


def test_parse_probe_output_zero_duration():
    with pytest.raises(DecodeError, match="no playable frames"):
        parse_probe_output(_probe_json(duration="0"))


def test_parse_probe_output_garbage():
    with pytest.raises(DecodeError):
        parse_probe_output("not json")


def test_probe_video_failure():
    failed = MagicMock(returncode=1, stdout="", stderr="Invalid data found when processing input")
    with patch("deepfake_agent.source.subprocess.run", return_value=failed):
        with pytest.raises(DecodeError, match="Invalid data"):
            probe_video("/tmp/broken.mp4")


def test_probe_video_missing_ffprobe():
    with patch("deepfake_agent.source.subprocess.run", side_effect=FileNotFoundError()):
        with pytest.raises(DecodeError, match="ffprobe not found"):
            probe_video("/tmp/video.mp4")


def test_probe_video_timeout():
    timeout = subprocess.TimeoutExpired(cmd="ffprobe", timeout=30)
    with patch("deepfake_agent.source.subprocess.run", side_effect=timeout):
        with pytest.raises(DecodeError, match="timed out"):
            probe_video("/tmp/video.mp4")


def test_open_missing_path():
    with pytest.raises(DecodeError, match="not found"):
        VideoSource.open("/nonexistent/video.mp4")


def test_open_from_bytes_releases_temp_file():
    with patch("deepfake_agent.source.probe_video", return_value=(10.0, 640, 360)):
        with VideoSource.open(b"fake video bytes") as source:
            temp_path = source.path
            assert os.path.exists(temp_path)
            assert Path(temp_path).read_bytes() == b"fake video bytes"
            assert source.duration == 10.0
            assert (source.width, source.height) == (640, 360)

    assert not os.path.exists(temp_path)


def test_open_from_bytes_releases_temp_file_on_probe_failure():
    seen = []

    def failing_probe(path, timeout=30):
        seen.append(path)
        raise DecodeError("unsupported codec")

    with patch("deepfake_agent.source.probe_video", side_effect=failing_probe):
        with pytest.raises(DecodeError):
            VideoSource.open(b"garbage")

    assert len(seen) == 1
    assert not os.path.exists(seen[0])


def test_close_leaves_caller_files_alone():
    with tempfile.TemporaryDirectory() as tmpdir:
        video = Path(tmpdir) / "clip.mp4"
        video.touch()
        with patch("deepfake_agent.source.probe_video", return_value=(5.0, 320, 240)):
            with VideoSource.open(str(video)):
                pass
        assert video.exists()
