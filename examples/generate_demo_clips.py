#!/usr/bin/env python3
"""Generate synthetic input streams for the streamcompose demo manifest.

Creates three clips in examples/demo-clips/, each at its own frame rate
so the compositor has to align independently clocked inputs, plus a
small logo image. Every clip is a solid colour with a white bar sweeping
left to right once per second and its frame number drawn in the corner,
which makes dropped or repeated frames easy to spot in the output.

Usage:
    python examples/generate_demo_clips.py
    # Then compose:
    streamcompose compose --manifest examples/demo-scene.yaml \
        --output examples/demo-renders/demo.mp4
"""

from pathlib import Path

import numpy as np
from PIL import Image, ImageDraw

from streamcompose.colour import rgba_to_i420
from streamcompose.geometry import RawVideo
from streamcompose.media import FrameWriter

OUTPUT_DIR = Path(__file__).resolve().parent / "demo-clips"
SIZE = (320, 240)

# (name, colour, fps, duration in seconds)
CLIPS = [
    ("cam-a", (180, 60, 60), 30, 4.0),   # red
    ("cam-b", (60, 60, 180), 25, 3.0),   # blue
    ("cam-c", (60, 160, 60), 24, 3.5),   # green
]


def _frame(color: tuple[int, int, int], index: int, fps: int) -> np.ndarray:
    w, h = SIZE
    img = Image.new("RGB", SIZE, color)
    draw = ImageDraw.Draw(img)
    x = int((index % fps) / fps * w)
    draw.rectangle([x, 0, x + 8, h], fill=(255, 255, 255))
    draw.text((8, 8), f"{index:04d}", fill=(255, 255, 255))
    return np.array(img)


def _make_logo(path: Path) -> None:
    img = Image.new("RGBA", (64, 64), (0, 0, 0, 0))
    draw = ImageDraw.Draw(img)
    draw.ellipse([4, 4, 60, 60], fill=(240, 200, 60, 255))
    img.save(path)


def main():
    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    for name, color, fps, duration in CLIPS:
        out = OUTPUT_DIR / f"{name}.mp4"
        if out.exists():
            print(f"  skip {name} (exists)")
            continue
        fmt = RawVideo(SIZE[0], SIZE[1], "I420", (fps, 1))
        with FrameWriter(out, fmt) as writer:
            for i in range(int(duration * fps)):
                writer.write(rgba_to_i420(_frame(color, i, fps)))
        print(f"  wrote {out.name} ({fps} fps, {duration:.1f}s)")

    logo = OUTPUT_DIR / "logo.png"
    if not logo.exists():
        _make_logo(logo)
        print(f"  wrote {logo.name}")


if __name__ == "__main__":
    main()
