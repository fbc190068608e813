"""Built-in layouts: free placement and an evenly divided grid.

placement — every slot is drawn at an explicit Placement (position, size,
            z, scale). Slots without one fall back to the stream's own
            placement, then to the top-left corner at natural size.
            Higher z is drawn on top; ties keep declaration order.

grid      — slots fill a columns x rows grid left to right, top to bottom:

              ┌──────┐ gap ┌──────┐
              │ in 0 │     │ in 1 │
              └──────┘     └──────┘
                  gap
              ┌──────┐
              │ in 2 │
              └──────┘

            Each input is scaled to fit its cell (aspect kept) and
            centered in it. Absent inputs leave their cell empty.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Mapping

import numpy as np

from .common import blank_canvas, blend_onto, resize_rgba, resolve_color
from .geometry import Placement, Point, Resolution
from .plugins import LayoutInput, LayoutPlugin
from .scene import object_name


def parse_placement(raw: Mapping) -> Placement:
    """Build a Placement from a {position, size, z, scale} mapping.

    Raises:
        ValueError: unknown keys or malformed values.
    """
    if not isinstance(raw, Mapping):
        raise ValueError(f"placement must be a mapping, got {raw!r}")
    unknown = set(raw) - {"position", "size", "z", "scale"}
    if unknown:
        raise ValueError(f"Unknown placement fields: {sorted(unknown)}")

    try:
        x, y = raw.get("position", (0, 0))
        position = Point(int(x), int(y))
    except (TypeError, ValueError):
        raise ValueError(f"placement position must be [x, y], got {raw.get('position')!r}") from None

    size = raw.get("size")
    if size is not None:
        try:
            w, h = size
        except (TypeError, ValueError):
            raise ValueError(f"placement size must be [width, height], got {size!r}") from None
        if not (isinstance(w, int) and isinstance(h, int) and w > 0 and h > 0):
            raise ValueError(f"placement size must be positive integers, got {size!r}")
        size = Resolution(w, h)

    z = float(raw.get("z", 0.0))
    scale = float(raw.get("scale", 1.0))
    if scale <= 0:
        raise ValueError(f"placement scale must be > 0, got {scale}")
    return Placement(position=position, size=size, z=z, scale=scale)


def fit_within(source: Resolution, box: Resolution) -> Resolution:
    """Largest size with source's aspect ratio that fits inside box."""
    sw, sh = source
    bw, bh = box
    factor = min(bw / sw, bh / sh)
    return Resolution(max(1, round(sw * factor)), max(1, round(sh * factor)))


def _background(raw) -> tuple[int, int, int] | None:
    if raw is None:
        return None
    return resolve_color(raw, {})


# ── Placement layout ──────────────────────────────────────────────


@dataclass(frozen=True)
class PlacementParams:
    placements: Mapping[Any, Placement] = field(default_factory=dict)
    background: tuple[int, int, int] | None = None


class PlacementLayout(LayoutPlugin):
    params_type = PlacementParams

    def parse(self, raw: dict) -> PlacementParams:
        placements = raw.get("placements") or {}
        if not isinstance(placements, Mapping):
            raise ValueError("placements must map slot names to placements")
        return PlacementParams(
            placements={
                object_name(slot): parse_placement(spec)
                for slot, spec in placements.items()
            },
            background=_background(raw.get("background")),
        )

    def compose(
        self, params: PlacementParams, inputs: Mapping[Any, LayoutInput | None],
        size: Resolution,
    ) -> np.ndarray:
        canvas = blank_canvas(size, params.background)

        layers = []
        for order, (slot, item) in enumerate(inputs.items()):
            if item is None:
                continue
            placement = params.placements.get(slot) or item.placement or Placement()
            layers.append((placement.z, order, placement, item.frame))

        for _, _, placement, frame in sorted(layers, key=lambda layer: layer[:2]):
            h, w = frame.shape[:2]
            target = placement.target_size(Resolution(w, h))
            blend_onto(canvas, resize_rgba(frame, target), *placement.position)
        return canvas


# ── Grid layout ───────────────────────────────────────────────────


@dataclass(frozen=True)
class GridParams:
    columns: int | None = None
    gap: int = 0
    background: tuple[int, int, int] | None = None


class GridLayout(LayoutPlugin):
    params_type = GridParams

    def parse(self, raw: dict) -> GridParams:
        columns = raw.get("columns")
        if columns is not None and (not isinstance(columns, int) or columns < 1):
            raise ValueError(f"columns must be a positive integer, got {columns!r}")
        gap = raw.get("gap", 0)
        if not isinstance(gap, int) or gap < 0:
            raise ValueError(f"gap must be an integer >= 0, got {gap!r}")
        return GridParams(
            columns=columns, gap=gap,
            background=_background(raw.get("background")),
        )

    def cells(self, params: GridParams, count: int, size: Resolution) -> list[tuple[int, int, int, int]]:
        """(x, y, w, h) of each of count cells inside a canvas of size."""
        if count == 0:
            return []
        w, h = size
        cols = params.columns or math.ceil(math.sqrt(count))
        rows = math.ceil(count / cols)
        gap = params.gap
        cell_w = max(1, (w - (cols - 1) * gap) // cols)
        cell_h = max(1, (h - (rows - 1) * gap) // rows)
        return [
            ((i % cols) * (cell_w + gap), (i // cols) * (cell_h + gap), cell_w, cell_h)
            for i in range(count)
        ]

    def compose(
        self, params: GridParams, inputs: Mapping[Any, LayoutInput | None],
        size: Resolution,
    ) -> np.ndarray:
        canvas = blank_canvas(size, params.background)
        items = list(inputs.values())
        for item, (x, y, cell_w, cell_h) in zip(items, self.cells(params, len(items), size)):
            if item is None:
                continue
            h, w = item.frame.shape[:2]
            fw, fh = fit_within(Resolution(w, h), Resolution(cell_w, cell_h))
            blend_onto(
                canvas, resize_rgba(item.frame, (fw, fh)),
                x + (cell_w - fw) // 2, y + (cell_h - fh) // 2,
            )
        return canvas
