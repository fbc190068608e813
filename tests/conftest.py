"""Shared test fixtures for streamcompose tests."""

import subprocess

import pytest
import imageio_ffmpeg

_FFMPEG = imageio_ffmpeg.get_ffmpeg_exe()


def _lavfi_clip(out, color: str, size: str, seconds: int, fps: int):
    subprocess.run(
        [
            _FFMPEG, "-y",
            "-f", "lavfi", "-i", f"color=c={color}:s={size}:d={seconds}:r={fps}",
            "-c:v", "libx264", "-crf", "28", "-pix_fmt", "yuv420p",
            str(out),
        ],
        check=True,
        capture_output=True,
    )
    return out


@pytest.fixture
def source_video(tmp_path):
    """Create a 2-second test video (320x240, 10fps) using ffmpeg.

    Shared across test_media.py and test_cli.py.
    """
    return _lavfi_clip(tmp_path / "source.mp4", "blue", "320x240", 2, 10)


@pytest.fixture
def second_video(tmp_path):
    """A 1-second red clip (160x120) at a different rate (5fps)."""
    return _lavfi_clip(tmp_path / "second.mp4", "red", "160x120", 1, 5)
