"""streamcompose.colour — I420 <-> RGBA conversion.

Every stream enters and leaves the compositor as planar I420: a full
resolution luma plane followed by the U and V planes at half width and
half height, row-major, no padding. Inside the renderer all work happens
on RGBA uint8 arrays of shape (h, w, 4).

Conversion uses BT.601 limited-range coefficients, the usual choice for
decoder output at SD/HD sizes. Chroma is upsampled by pixel replication
and downsampled by averaging each 2x2 block.
"""

import numpy as np

from .errors import PayloadSizeMismatch
from .geometry import i420_frame_size


# ── Conversion matrices (BT.601, limited range) ──────────────────

_Y_SCALE = 255.0 / 219.0

_YUV_TO_RGB = {
    "r_v": 1.596027,
    "g_u": -0.391762,
    "g_v": -0.812968,
    "b_u": 2.017232,
}

_RGB_TO_Y = (0.256788, 0.504129, 0.097906)
_RGB_TO_U = (-0.148223, -0.290993, 0.439216)
_RGB_TO_V = (0.439216, -0.367788, -0.071427)


def _split_planes(payload, resolution):
    w, h = resolution
    expected = i420_frame_size(resolution)
    if len(payload) != expected:
        raise PayloadSizeMismatch(expected, len(payload))

    cw, ch = (w + 1) // 2, (h + 1) // 2
    buf = np.frombuffer(payload, dtype=np.uint8)
    y = buf[:w * h].reshape(h, w)
    u = buf[w * h:w * h + cw * ch].reshape(ch, cw)
    v = buf[w * h + cw * ch:].reshape(ch, cw)
    return y, u, v


def _upsample(plane: np.ndarray, w: int, h: int) -> np.ndarray:
    return np.repeat(np.repeat(plane, 2, axis=0), 2, axis=1)[:h, :w]


def _downsample(plane: np.ndarray) -> np.ndarray:
    """Average 2x2 blocks, replicating the last row/column for odd sizes."""
    h, w = plane.shape
    if h % 2 or w % 2:
        plane = np.pad(plane, ((0, h % 2), (0, w % 2)), mode="edge")
    return (
        plane[0::2, 0::2] + plane[1::2, 0::2]
        + plane[0::2, 1::2] + plane[1::2, 1::2]
    ) / 4.0


def i420_to_rgba(payload: bytes, resolution: tuple[int, int]) -> np.ndarray:
    """Decode an I420 payload into an opaque RGBA array.

    Args:
        payload: Raw planar I420 bytes.
        resolution: (width, height) of the frame.

    Returns:
        numpy array of shape (h, w, 4), dtype uint8, alpha = 255.

    Raises:
        PayloadSizeMismatch: payload length doesn't match the resolution.
    """
    w, h = resolution
    y, u, v = _split_planes(payload, resolution)

    luma = (y.astype(np.float32) - 16.0) * _Y_SCALE
    u = _upsample(u, w, h).astype(np.float32) - 128.0
    v = _upsample(v, w, h).astype(np.float32) - 128.0

    rgba = np.empty((h, w, 4), dtype=np.uint8)
    rgba[:, :, 0] = np.clip(np.rint(luma + _YUV_TO_RGB["r_v"] * v), 0, 255)
    rgba[:, :, 1] = np.clip(
        np.rint(luma + _YUV_TO_RGB["g_u"] * u + _YUV_TO_RGB["g_v"] * v), 0, 255,
    )
    rgba[:, :, 2] = np.clip(np.rint(luma + _YUV_TO_RGB["b_u"] * u), 0, 255)
    rgba[:, :, 3] = 255
    return rgba


def rgba_to_i420(frame: np.ndarray) -> bytes:
    """Encode an RGBA (or RGB) array as planar I420 bytes.

    Alpha is ignored; flatten the frame onto an opaque background first
    if it carries transparency.
    """
    rgb = frame[:, :, :3].astype(np.float32)
    r, g, b = rgb[:, :, 0], rgb[:, :, 1], rgb[:, :, 2]

    y = 16.0 + _RGB_TO_Y[0] * r + _RGB_TO_Y[1] * g + _RGB_TO_Y[2] * b
    u = 128.0 + _RGB_TO_U[0] * r + _RGB_TO_U[1] * g + _RGB_TO_U[2] * b
    v = 128.0 + _RGB_TO_V[0] * r + _RGB_TO_V[1] * g + _RGB_TO_V[2] * b

    planes = [y, _downsample(u), _downsample(v)]
    return b"".join(
        np.clip(np.rint(p), 0, 255).astype(np.uint8).tobytes() for p in planes
    )


def solid_i420(resolution: tuple[int, int], rgb: tuple[int, int, int]) -> bytes:
    """A single-colour I420 frame, handy for images and tests."""
    w, h = resolution
    frame = np.empty((h, w, 3), dtype=np.uint8)
    frame[:, :] = rgb
    return rgba_to_i420(frame)
