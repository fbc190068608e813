"""Raw I420 frame I/O through ffmpeg.

The compositor only ever sees decoded I420 payloads. This module is the
command-line front end's bridge to files on disk:

  read_frames()  decode any ffmpeg-readable file (or a raw .yuv file) into
                 (pts, payload) pairs at a fixed size and frame rate
  FrameWriter    write output payloads to a raw .yuv file, or pipe them
                 into ffmpeg for an H.264 .mp4/.mkv/... container
"""

import subprocess
import tempfile
from pathlib import Path
from typing import Iterator

import imageio_ffmpeg

from .geometry import NANOS_PER_SECOND, RawVideo

_FFMPEG = imageio_ffmpeg.get_ffmpeg_exe()


def frame_pts(index: int, framerate: tuple[int, int], offset: int = 0) -> int:
    """pts in nanoseconds of frame `index` at `framerate`, shifted by offset."""
    num, den = framerate
    return offset + index * den * NANOS_PER_SECOND // num


def _read_log(log) -> bytes:
    log.seek(0)
    return log.read()


def _raw_args(fmt: RawVideo) -> list[str]:
    num, den = fmt.framerate
    return [
        "-f", "rawvideo",
        "-pix_fmt", "yuv420p",
        "-s", f"{fmt.width}x{fmt.height}",
        "-r", f"{num}/{den}",
    ]


def read_frames(
    path: str | Path,
    fmt: RawVideo,
    offset: int = 0,
    max_duration: float | None = None,
) -> Iterator[tuple[int, bytes]]:
    """Yield (pts, payload) for each frame of path, converted to fmt.

    Args:
        path: Video file. A .yuv file is read as raw I420 in fmt.
        fmt: Size and frame rate to decode to.
        offset: Added to every pts (nanoseconds).
        max_duration: Stop after this many seconds of input.

    Raises:
        subprocess.CalledProcessError: ffmpeg failed to decode the file.
    """
    frame_size = fmt.frame_size
    limit = None
    if max_duration is not None:
        num, den = fmt.framerate
        limit = int(max_duration * num / den)

    if Path(path).suffix.lower() == ".yuv":
        with open(path, "rb") as f:
            index = 0
            while limit is None or index < limit:
                payload = f.read(frame_size)
                if len(payload) < frame_size:
                    break
                yield frame_pts(index, fmt.framerate, offset), payload
                index += 1
        return

    cmd = [_FFMPEG, "-v", "error", "-i", str(path)]
    if max_duration is not None:
        cmd += ["-t", f"{max_duration:.3f}"]
    cmd += [*_raw_args(fmt), "-"]

    # Not a pipe: nothing drains stderr while frames are streaming.
    log = tempfile.TemporaryFile()
    proc = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=log)
    try:
        index = 0
        while True:
            payload = proc.stdout.read(frame_size)
            if len(payload) < frame_size:
                break
            yield frame_pts(index, fmt.framerate, offset), payload
            index += 1
        if proc.wait() != 0:
            raise subprocess.CalledProcessError(proc.returncode, cmd, stderr=_read_log(log))
    finally:
        if proc.poll() is None:
            proc.kill()
            proc.wait()
        proc.stdout.close()
        log.close()


class FrameWriter:
    """Sink for output payloads; use as a context manager.

    .yuv paths receive the raw payloads back to back. Anything else is
    encoded by ffmpeg (libx264, yuv420p).
    """

    def __init__(self, path: str | Path, fmt: RawVideo, crf: int = 20):
        self.path = Path(path)
        self.fmt = fmt
        self.frames_written = 0
        self.path.parent.mkdir(parents=True, exist_ok=True)

        self._file = None
        self._proc = None
        self._log = None
        if self.path.suffix.lower() == ".yuv":
            self._file = open(self.path, "wb")
        else:
            self._cmd = [
                _FFMPEG, "-y", "-v", "error",
                *_raw_args(fmt), "-i", "-",
                "-c:v", "libx264", "-crf", str(crf), "-pix_fmt", "yuv420p",
                str(self.path),
            ]
            self._log = tempfile.TemporaryFile()
            self._proc = subprocess.Popen(
                self._cmd, stdin=subprocess.PIPE, stderr=self._log,
            )

    def write(self, payload: bytes) -> None:
        if len(payload) != self.fmt.frame_size:
            raise ValueError(
                f"Output payload is {len(payload)} bytes, expected {self.fmt.frame_size}"
            )
        if self._file is not None:
            self._file.write(payload)
        else:
            self._proc.stdin.write(payload)
        self.frames_written += 1

    def close(self) -> None:
        """Flush and finish the file.

        Raises:
            subprocess.CalledProcessError: ffmpeg failed while encoding.
        """
        if self._file is not None:
            self._file.close()
            self._file = None
        if self._proc is not None:
            proc, self._proc = self._proc, None
            log, self._log = self._log, None
            try:
                proc.stdin.close()
                if proc.wait() != 0:
                    raise subprocess.CalledProcessError(
                        proc.returncode, self._cmd, stderr=_read_log(log),
                    )
            finally:
                log.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
