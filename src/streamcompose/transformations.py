"""Built-in texture transformations.

  corners_rounding — makes the frame's corners transparent outside a
                     circle of border_radius pixels.
  cropping         — keeps a sub-rectangle given in relative [0, 1]
                     coordinates; the output shrinks accordingly.

Both work on RGBA uint8 frames and never modify their input.
"""

from dataclasses import dataclass

import numpy as np

from .geometry import Resolution
from .plugins import Transformation


# ── Corners rounding ─────────────────────────────────────────────


@dataclass(frozen=True)
class CornersRoundingParams:
    border_radius: int


class CornersRounding(Transformation):
    params_type = CornersRoundingParams

    def parse(self, raw: dict) -> CornersRoundingParams:
        radius = raw.get("border_radius")
        if not isinstance(radius, int) or isinstance(radius, bool) or radius < 0:
            raise ValueError(f"border_radius must be an integer >= 0, got {radius!r}")
        return CornersRoundingParams(border_radius=radius)

    def apply(self, params: CornersRoundingParams, frame: np.ndarray) -> np.ndarray:
        h, w = frame.shape[:2]
        r = min(params.border_radius, w // 2, h // 2)
        result = frame.copy()
        if r == 0:
            return result

        # Distance of each pixel centre in an r x r corner block from the
        # circle centre; the same mask is mirrored into all four corners.
        ys, xs = np.mgrid[0:r, 0:r]
        dist = np.hypot(r - (xs + 0.5), r - (ys + 0.5))
        outside = dist > r

        corners = (
            (slice(0, r), slice(0, r), outside),
            (slice(0, r), slice(w - r, w), outside[:, ::-1]),
            (slice(h - r, h), slice(0, r), outside[::-1, :]),
            (slice(h - r, h), slice(w - r, w), outside[::-1, ::-1]),
        )
        for rows, cols, mask in corners:
            alpha = result[rows, cols, 3]
            alpha[mask] = 0
        return result


# ── Cropping ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class CroppingParams:
    top_left_corner: tuple[float, float]
    crop_size: tuple[float, float]


class Cropping(Transformation):
    params_type = CroppingParams

    def parse(self, raw: dict) -> CroppingParams:
        corner = _pair(raw.get("top_left_corner", (0.0, 0.0)), "top_left_corner")
        size = _pair(raw.get("crop_size", (1.0, 1.0)), "crop_size")

        if not all(0.0 <= v < 1.0 for v in corner):
            raise ValueError(f"top_left_corner must be within [0, 1), got {corner}")
        if not all(0.0 < v <= 1.0 for v in size):
            raise ValueError(f"crop_size must be within (0, 1], got {size}")
        if corner[0] + size[0] > 1.0 + 1e-9 or corner[1] + size[1] > 1.0 + 1e-9:
            raise ValueError(
                f"crop rectangle {corner} + {size} extends past the frame"
            )
        return CroppingParams(top_left_corner=corner, crop_size=size)

    def _rect(self, params: CroppingParams, w: int, h: int) -> tuple[int, int, int, int]:
        x0 = min(w - 1, round(params.top_left_corner[0] * w))
        y0 = min(h - 1, round(params.top_left_corner[1] * h))
        cw = max(1, min(w - x0, round(params.crop_size[0] * w)))
        ch = max(1, min(h - y0, round(params.crop_size[1] * h)))
        return x0, y0, cw, ch

    def output_size(self, params: CroppingParams, input_size: Resolution) -> Resolution:
        _, _, cw, ch = self._rect(params, *input_size)
        return Resolution(cw, ch)

    def apply(self, params: CroppingParams, frame: np.ndarray) -> np.ndarray:
        h, w = frame.shape[:2]
        x0, y0, cw, ch = self._rect(params, w, h)
        return frame[y0:y0 + ch, x0:x0 + cw].copy()


def _pair(value, field_name: str) -> tuple[float, float]:
    try:
        a, b = value
        return (float(a), float(b))
    except (TypeError, ValueError):
        raise ValueError(f"{field_name} must be a pair of numbers, got {value!r}") from None
