"""streamcompose.geometry — points, sizes, placements and raw video formats.

All types are NamedTuples: immutable, hashable, structurally compared and
still unpackable as the plain (x, y) / (width, height) tuples used
throughout the renderer.
"""

from typing import NamedTuple

from .errors import BadFramerate, BadResolution, UnsupportedPixelFormat


SUPPORTED_PIXEL_FORMATS = {"I420"}

NANOS_PER_SECOND = 1_000_000_000
NANOS_PER_MILLI = 1_000_000


class Point(NamedTuple):
    x: int
    y: int


class Resolution(NamedTuple):
    width: int
    height: int


class Placement(NamedTuple):
    """Where a source lands on a canvas.

    `size` of None keeps the source's own size. `scale` multiplies the
    size after that. Higher `z` is drawn on top; values are expected in
    the [0, 1] range but only their order matters.
    """

    position: Point = Point(0, 0)
    size: Resolution | None = None
    z: float = 0.0
    scale: float = 1.0

    def target_size(self, source: Resolution) -> Resolution:
        """Size in pixels the source occupies once placed (at least 1x1)."""
        w, h = self.size if self.size is not None else source
        return Resolution(
            max(1, round(w * self.scale)),
            max(1, round(h * self.scale)),
        )


class RawVideo(NamedTuple):
    """Format of a raw video stream: size, pixel format and frame rate.

    `framerate` is a (numerator, denominator) pair in frames per second,
    e.g. (30000, 1001) for NTSC.
    """

    width: int
    height: int
    pixel_format: str = "I420"
    framerate: tuple[int, int] = (30, 1)

    @property
    def resolution(self) -> Resolution:
        return Resolution(self.width, self.height)

    @property
    def frame_size(self) -> int:
        return i420_frame_size(self.resolution)


def i420_frame_size(resolution: tuple[int, int]) -> int:
    """Bytes in one unpadded I420 frame (luma plane + two quarter chroma planes).

    Odd dimensions round the chroma planes up, which only happens for
    static images; stream formats are required to be even.
    """
    w, h = resolution
    cw, ch = (w + 1) // 2, (h + 1) // 2
    return w * h + 2 * cw * ch


def check_raw_video(fmt: RawVideo) -> RawVideo:
    """Validate a stream or output format, returning it unchanged.

    Raises:
        BadResolution: non-positive or odd width/height.
        BadFramerate: framerate parts missing or non-positive.
        UnsupportedPixelFormat: anything other than I420.
    """
    w, h = fmt.width, fmt.height
    if not all(isinstance(v, int) and v > 0 and v % 2 == 0 for v in (w, h)):
        raise BadResolution(w, h)

    try:
        num, den = fmt.framerate
    except (TypeError, ValueError):
        raise BadFramerate(fmt.framerate) from None
    if not all(isinstance(v, int) and v > 0 for v in (num, den)):
        raise BadFramerate(fmt.framerate)

    if fmt.pixel_format not in SUPPORTED_PIXEL_FORMATS:
        raise UnsupportedPixelFormat(fmt.pixel_format)
    return fmt
