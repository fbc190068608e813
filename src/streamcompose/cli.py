"""CLI for live-style composition of video files.

Reads a YAML manifest, decodes every input stream through ffmpeg, feeds
the frames to a Compositor in presentation order, exactly as live
producers would, and writes each emitted output frame.

Usage:
    # Compose to an mp4 (or a raw .yuv file)
    python -m streamcompose.cli \
        --manifest scene.yaml --output /tmp/out.mp4

    # Only the first 2 seconds of every input
    python -m streamcompose.cli \
        --manifest scene.yaml --output /tmp/out.mp4 --max-duration 2

    # Validate only (manifest, scene graph and paths; no decoding)
    python -m streamcompose.cli \
        --manifest scene.yaml --validate
"""

import argparse
import heapq
import logging
import time
from pathlib import Path

from .compositor import Compositor
from .geometry import NANOS_PER_SECOND
from .manifest import check_scene, load_manifest, validate_paths
from .media import FrameWriter, read_frames

logger = logging.getLogger(__name__)

_FRAME = 0
_END = 1


# ── Stream scheduling ─────────────────────────────────────────────


def _stream_events(stream: dict, max_duration: float | None):
    """Frames of one manifest stream as (pts, kind, stream, payload) events.

    The final _END event carries the last frame's pts so it sorts right
    after it.
    """
    offset = round(stream["offset"] * NANOS_PER_SECOND)
    pts = offset
    for pts, payload in read_frames(
        stream["path"], stream["format"], offset=offset, max_duration=max_duration,
    ):
        yield pts, _FRAME, stream, payload
    yield pts, _END, stream, None


def _catch_up(compositor: Compositor, next_pts: int | None, emit) -> None:
    """Force the ticks whose deadline passed before next_pts.

    Events arrive in pts order, so once next_pts lies beyond the current
    tick, no frame for that tick can still arrive. A stream whose next
    frame sits past the tick (e.g. 25 fps into a 30 fps output) would
    otherwise keep the session waiting forever. next_pts None drains
    everything still queued.
    """
    while compositor.has_pending_frames():
        interval = compositor.frame_interval()
        if next_pts is not None and (interval is None or next_pts <= interval[1]):
            return
        before = compositor.last_pts
        logger.debug(f"Tick ending {interval and interval[1]} ns passed; forcing output")
        emit(compositor.force_render())
        if compositor.last_pts == before:
            # Only frames no stream may show yet are left.
            return


def compose(
    manifest_path: str | Path,
    output_path: str | Path,
    max_duration: float | None = None,
) -> int:
    """Compose every stream of a manifest into output_path.

    Streams join the session with their first frame, so a stream with an
    `offset` enters mid-composition.

    Args:
        manifest_path: Path to YAML manifest.
        output_path: Output video path (.yuv for raw I420).
        max_duration: If set, read at most this many seconds per stream.

    Returns:
        Number of output frames written.
    """
    config = load_manifest(manifest_path)
    validate_paths(config)
    scene = check_scene(config)

    video = config["video"]
    output_format = video["format"]
    compositor = Compositor(output_format, background=video["background"])
    if scene is not None:
        compositor.replace_scene(scene)

    streams = config["streams"]
    if not streams:
        print("No streams to compose.")
        return 0

    print(
        f"Composing {len(streams)} streams at {output_format.width}x{output_format.height}, "
        f"{output_format.framerate[0]}/{output_format.framerate[1]} fps"
    )
    print(f"Writing to: {output_path}")

    t_start = time.monotonic()
    events = heapq.merge(
        *(_stream_events(s, max_duration) for s in streams),
        key=lambda event: (event[0], event[1]),
    )

    with FrameWriter(output_path, output_format) as writer:
        def emit(output):
            if output is None:
                return
            writer.write(output.payload)
            if writer.frames_written % 100 == 0:
                print(f"  {writer.frames_written} frames (pts {output.pts / NANOS_PER_SECOND:.2f}s)")

        added = set()
        current_pts = None
        for pts, kind, stream, payload in events:
            if pts != current_pts:
                _catch_up(compositor, pts, emit)
                current_pts = pts
            sid = stream["id"]
            if kind == _END:
                if sid in added:
                    emit(compositor.end_stream(sid))
                continue
            if sid not in added:
                compositor.add_stream(
                    sid, stream["format"], stream["placement"], stream["transformations"],
                )
                added.add(sid)
            emit(compositor.upload_frame(sid, payload, pts))

        # Drain whatever is still queued once every input is exhausted.
        _catch_up(compositor, None, emit)

        frames = writer.frames_written

    wall = time.monotonic() - t_start
    print(f"\nDone: {frames} frames written to {output_path} ({wall:.1f}s)")
    return frames


def validate(manifest_path: str | Path) -> dict:
    """Load the manifest, check its scene graph and paths, print a summary."""
    config = load_manifest(manifest_path)
    scene = check_scene(config)
    validate_paths(config)

    fmt = config["video"]["format"]
    print(
        f"Manifest valid: {fmt.width}x{fmt.height} @ "
        f"{fmt.framerate[0]}/{fmt.framerate[1]} fps, {len(config['streams'])} streams"
    )
    for i, s in enumerate(config["streams"]):
        sf = s["format"]
        print(f"  {i}: {s['id']} ({sf.width}x{sf.height}) — {s['path']}")
    if scene is None:
        print("No scene: streams are drawn by placement.")
    else:
        print(f"Scene: {len(scene.objects)} objects, output {scene.output!r}")
    print("All paths verified.")
    return config


# ── CLI entry point ───────────────────────────────────────────────


def main(args=None):
    parser = argparse.ArgumentParser(
        description="Stream compositor — compose manifest inputs into one video.",
    )
    parser.add_argument(
        "--manifest", required=True,
        help="Path to YAML manifest file",
    )
    parser.add_argument(
        "--output",
        help="Output video path (.mp4, .mkv, ... or .yuv for raw I420)",
    )
    parser.add_argument(
        "--max-duration", type=float, default=None,
        help="Read at most N seconds from each input stream",
    )
    parser.add_argument(
        "--validate", action="store_true",
        help="Validate manifest only — check scene and paths, don't compose",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true",
        help="Log session events and per-frame composition",
    )
    args = parser.parse_args(args)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.validate:
        validate(args.manifest)
        return

    if not args.output:
        parser.error("--output is required (unless using --validate)")

    compose(args.manifest, args.output, max_duration=args.max_duration)


if __name__ == "__main__":
    main()
