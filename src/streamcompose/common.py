"""streamcompose.common — shared helpers for manifests and renderers.

Contains: color parsing, path variable resolution, image loading and the
alpha-blend primitive every compositing step goes through.
"""

import re
from pathlib import Path

import numpy as np
from PIL import Image


# ── Color utilities ────────────────────────────────────────────────

def parse_hex_color(hex_str: str) -> tuple[int, int, int]:
    """Convert '#RRGGBB' or 'RRGGBB' string to (R, G, B) tuple."""
    hex_str = hex_str.lstrip("#")
    if len(hex_str) != 6:
        raise ValueError(f"Bad hex color: '#{hex_str}'. Expected #RRGGBB.")
    return (int(hex_str[0:2], 16), int(hex_str[2:4], 16), int(hex_str[4:6], 16))


def resolve_color(
    value, palette: dict[str, tuple[int, int, int]],
) -> tuple[int, int, int]:
    """Resolve a color reference — palette key, inline '#RRGGBB' or [r, g, b].

    Palette keys are tried first. If the value starts with '#' or is 6 hex
    chars, it's parsed as inline hex. Otherwise raises ValueError.
    """
    if isinstance(value, (list, tuple)) and len(value) == 3:
        return tuple(int(c) for c in value)
    if not isinstance(value, str):
        raise ValueError(f"Unknown color: {value!r}.")
    if value in palette:
        return palette[value]
    if value.startswith("#") or (
        len(value) == 6
        and all(c in "0123456789abcdefABCDEF" for c in value)
    ):
        return parse_hex_color(value)
    raise ValueError(
        f"Unknown color: '{value}'. Not in palette and not a hex value."
    )


# ── Path utilities ─────────────────────────────────────────────────

def resolve_path_vars(text: str, paths: dict[str, str]) -> str:
    """Replace ${name} variables in a string using the paths dict."""
    def _replace(match):
        key = match.group(1)
        if key not in paths:
            raise ValueError(f"Unknown path variable: ${{{key}}}")
        return paths[key]
    return re.sub(r"\$\{(\w+)\}", _replace, text)


# ── Image loading ──────────────────────────────────────────────────

def load_image(
    path: str | Path, resolution: tuple[int, int] | None = None,
) -> np.ndarray:
    """Load an image file as an RGBA uint8 array of shape (h, w, 4).

    If resolution is given as (width, height) the image is resized to it
    with Lanczos filtering; otherwise the file's own size is kept.
    """
    with Image.open(path) as img:
        img = img.convert("RGBA")
        if resolution is not None and img.size != tuple(resolution):
            img = img.resize(tuple(resolution), Image.LANCZOS)
        return np.array(img)


def resize_rgba(frame: np.ndarray, size: tuple[int, int]) -> np.ndarray:
    """Resize an RGBA frame to (width, height). Returns the input if unchanged."""
    h, w = frame.shape[:2]
    if (w, h) == tuple(size):
        return frame
    img = Image.fromarray(frame)
    return np.array(img.resize(tuple(size), Image.BILINEAR))


# ── Compositing ────────────────────────────────────────────────────

def blend_onto(
    canvas: np.ndarray, patch: np.ndarray, x: int, y: int,
) -> None:
    """Alpha-blend an RGBA patch onto an RGBA canvas in place at (x, y).

    The patch may hang off any edge of the canvas; only the overlapping
    part is drawn. Canvas alpha accumulates with the usual "over" rule.
    """
    canvas_h, canvas_w = canvas.shape[:2]
    patch_h, patch_w = patch.shape[:2]

    # Clip the patch rectangle to the canvas.
    x0, y0 = max(0, x), max(0, y)
    x1, y1 = min(canvas_w, x + patch_w), min(canvas_h, y + patch_h)
    if x0 >= x1 or y0 >= y1:
        return
    src = patch[y0 - y:y1 - y, x0 - x:x1 - x]

    alpha = src[:, :, 3:4].astype(np.float32) / 255.0
    rgb = src[:, :, :3].astype(np.float32)
    dest = canvas[y0:y1, x0:x1].astype(np.float32)
    dest_alpha = dest[:, :, 3:4] / 255.0

    # Straight (non-premultiplied) alpha "over".
    out_alpha = alpha + dest_alpha * (1 - alpha)
    weighted = rgb * alpha + dest[:, :, :3] * dest_alpha * (1 - alpha)
    out_rgb = np.divide(
        weighted, out_alpha,
        out=np.zeros_like(weighted), where=out_alpha > 0,
    )
    canvas[y0:y1, x0:x1, :3] = np.clip(np.rint(out_rgb), 0, 255).astype(np.uint8)
    canvas[y0:y1, x0:x1, 3:4] = np.clip(
        np.rint(out_alpha * 255.0), 0, 255,
    ).astype(np.uint8)


def blank_canvas(
    size: tuple[int, int], color: tuple[int, int, int] | None = None,
) -> np.ndarray:
    """RGBA canvas of (width, height): transparent, or opaque in `color`."""
    w, h = size
    canvas = np.zeros((h, w, 4), dtype=np.uint8)
    if color is not None:
        canvas[:, :, :3] = color
        canvas[:, :, 3] = 255
    return canvas
