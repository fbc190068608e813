"""streamcompose.compositor — the session API and per-tick compose driver.

A Compositor owns the live streams, their frame queues, the current scene
graph and the renderer. Producers call upload_frame() at their own pace;
whenever a call leaves every stream ready for the next tick, the output
frame is composed on the spot and returned to the caller.

  upload_frame ─► FrameQueue.push ─► drop stale ─► all ready? ─► compose
                                                       │
                                                       └─ no ─► None

All state changes and the readiness check run under one lock, so calls
from several producer threads see a consistent session.

Timestamps are integer nanoseconds. The tick interval after an output at
pts `start` is [start, end] with end = start + one frame duration, rounded
up to the next whole millisecond; it is computed with integers only so
that NTSC rates like 30000/1001 never drift.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import NamedTuple

from .errors import PayloadSizeMismatch, StreamAlreadyExists, UnknownStreamId
from .frame_queue import FrameQueue
from .geometry import (
    NANOS_PER_MILLI,
    NANOS_PER_SECOND,
    Placement,
    RawVideo,
    check_raw_video,
)
from .graph import SceneGraph, build_scene_graph
from .plugins import PluginRegistry, default_registry
from .render import Renderer, SoftwareRenderer, SourceFrame
from .scene import SceneDescription
from .validation import validate_scene

logger = logging.getLogger(__name__)


class OutputFrame(NamedTuple):
    payload: bytes
    pts: int


@dataclass
class _Stream:
    format: RawVideo
    placement: Placement | None
    queue: FrameQueue = field(default_factory=FrameQueue)
    transformations: tuple = ()


class Compositor:
    """One composition session.

    Args:
        output_format: RawVideo of the produced stream.
        registry: Transformations and layouts available to scenes. Each
            session gets its own default_registry() when omitted.
        renderer: Rendering engine; SoftwareRenderer when omitted.
        background: RGB colour behind everything the scene draws.
        auto_compose: Compose inline as soon as every stream is ready. When
            False, stream calls only queue; the caller polls all_ready()
            and calls force_render() itself.

    Raises:
        BadResolution, BadFramerate, UnsupportedPixelFormat: bad output_format.
    """

    def __init__(
        self,
        output_format: RawVideo,
        registry: PluginRegistry | None = None,
        renderer: Renderer | None = None,
        background: tuple[int, int, int] = (0, 0, 0),
        auto_compose: bool = True,
    ):
        self.output_format = check_raw_video(RawVideo(*output_format))
        self.registry = registry if registry is not None else default_registry()
        self.renderer = renderer if renderer is not None else SoftwareRenderer(
            self.registry, background,
        )
        self._graph: SceneGraph | None = None
        self._streams: dict[str, _Stream] = {}
        self._last_pts: int | None = None
        self._lock = threading.Lock()
        self.auto_compose = auto_compose

    # ── Inspection ────────────────────────────────────────────────

    @property
    def graph(self) -> SceneGraph | None:
        return self._graph

    @property
    def last_pts(self) -> int | None:
        """pts of the last output frame, None before the first."""
        return self._last_pts

    def stream_ids(self) -> list[str]:
        with self._lock:
            return list(self._streams)

    def frame_interval(self) -> tuple[int, int] | None:
        with self._lock:
            return self._frame_interval()

    def all_ready(self) -> bool:
        with self._lock:
            return self._all_ready(self._frame_interval())

    def has_pending_frames(self) -> bool:
        """True if any stream has a real frame waiting at its front."""
        with self._lock:
            return any(
                stream.queue.front_pts() is not None
                for stream in self._streams.values()
            )

    # ── Scene ─────────────────────────────────────────────────────

    def replace_scene(self, description: SceneDescription) -> None:
        """Validate, resolve and install a new scene.

        The new graph is built completely before it replaces the current
        one; on any error the current scene stays active. Stream queues
        are untouched either way.

        Raises:
            SceneError: the description failed validation, or names an
                unregistered transformation or layout.
            ValueError: a plugin rejected its parameters.
        """
        validate_scene(description)
        decoded = self.registry.decode_scene(description)
        graph = build_scene_graph(decoded)
        with self._lock:
            self._graph = graph
        logger.info(
            f"Scene replaced: output {description.output!r}, "
            f"{len(graph.nodes)} nodes, pads {graph.pads()}"
        )

    # ── Streams ───────────────────────────────────────────────────

    def add_stream(
        self,
        stream_id: str,
        stream_format: RawVideo,
        placement: Placement | None = None,
        transformations=(),
    ) -> None:
        """Register a new input stream.

        Args:
            transformations: PluginSpecs (or {type: ...} mappings) applied
                to every frame of this stream before it is placed or fed
                to the scene.

        Raises:
            StreamAlreadyExists: stream_id is already registered.
            BadResolution, BadFramerate, UnsupportedPixelFormat: bad format.
            UnknownPlugin: a transformation key isn't registered.
            ValueError: a transformation rejected its parameters.
        """
        stream_format = check_raw_video(RawVideo(*stream_format))
        transformations = self.registry.decode_transformations(stream_id, transformations)
        with self._lock:
            if stream_id in self._streams:
                raise StreamAlreadyExists(stream_id)
            self._streams[stream_id] = _Stream(
                format=stream_format,
                placement=placement,
                queue=FrameQueue(stream_id),
                transformations=transformations,
            )
        logger.info(
            f"Stream {stream_id!r} added: {stream_format.width}x{stream_format.height} "
            f"@ {stream_format.framerate[0]}/{stream_format.framerate[1]} fps"
        )

    def update_placement(self, stream_id: str, placement: Placement | None) -> None:
        """Change where a stream is drawn when no scene overrides it."""
        with self._lock:
            self._get(stream_id).placement = placement

    def update_format(self, stream_id: str, stream_format: RawVideo) -> None:
        """Switch a stream to a new format for every later upload.

        Frames already queued keep the size they were uploaded at.

        Raises:
            UnknownStreamId: stream_id isn't registered.
            BadResolution, BadFramerate, UnsupportedPixelFormat: bad format.
        """
        stream_format = check_raw_video(RawVideo(*stream_format))
        with self._lock:
            self._get(stream_id).format = stream_format
        logger.info(
            f"Stream {stream_id!r} format changed: "
            f"{stream_format.width}x{stream_format.height} "
            f"@ {stream_format.framerate[0]}/{stream_format.framerate[1]} fps"
        )

    def update_transformations(self, stream_id: str, transformations) -> None:
        """Replace the per-stream transformation chain.

        On error the previous chain stays in place.

        Raises:
            UnknownStreamId: stream_id isn't registered.
            UnknownPlugin: a transformation key isn't registered.
            ValueError: a transformation rejected its parameters.
        """
        decoded = self.registry.decode_transformations(stream_id, transformations)
        with self._lock:
            self._get(stream_id).transformations = decoded
        logger.info(f"Stream {stream_id!r} transformations: {[t.kind for t in decoded]}")

    def remove_stream(self, stream_id: str) -> OutputFrame | None:
        """Drop a stream and its queued frames.

        Returns the output frame this unblocked, if any.
        """
        with self._lock:
            self._get(stream_id)
            del self._streams[stream_id]
            logger.info(f"Stream {stream_id!r} removed")
            return self._compose_if_ready()

    def end_stream(self, stream_id: str) -> OutputFrame | None:
        """Signal that stream_id will send no more frames.

        The stream keeps its queued frames and retires once they're used.
        """
        with self._lock:
            self._get(stream_id).queue.send_end_of_stream()
            logger.info(f"Stream {stream_id!r} ended")
            return self._compose_if_ready()

    def upload_frame(
        self, stream_id: str, payload: bytes, pts: int,
    ) -> OutputFrame | None:
        """Hand over one decoded I420 frame with its pts in nanoseconds.

        Returns:
            The composed output frame if this upload made every stream
            ready, otherwise None.

        Raises:
            UnknownStreamId: stream_id isn't registered.
            PayloadSizeMismatch: payload length doesn't match the stream format.
            StreamEnded: end_stream() was already called for stream_id.
        """
        with self._lock:
            stream = self._get(stream_id)
            expected = stream.format.frame_size
            if len(payload) != expected:
                raise PayloadSizeMismatch(expected, len(payload))

            queued = stream.queue.push(
                bytes(payload), pts, self._last_pts, stream.format.resolution,
            )
            if not queued:
                logger.warning(
                    f"Stream {stream_id!r}: frame at {pts} ns arrived after "
                    f"output {self._last_pts} ns; kept only as fallback"
                )
            return self._compose_if_ready()

    def force_render(self) -> OutputFrame:
        """Compose an output frame now, whether or not streams are ready."""
        with self._lock:
            return self._compose()

    # ── Driver (lock held) ────────────────────────────────────────

    def _get(self, stream_id: str) -> _Stream:
        try:
            return self._streams[stream_id]
        except KeyError:
            raise UnknownStreamId(stream_id) from None

    def _frame_interval(self) -> tuple[int, int] | None:
        if self._last_pts is None:
            return None
        num, den = self.output_format.framerate
        start = self._last_pts
        # ceil((start + den/num s) / 1 ms) * 1 ms, in integer nanoseconds.
        end_millis = -(-(start * num + den * NANOS_PER_SECOND) // (num * NANOS_PER_MILLI))
        return (start, end_millis * NANOS_PER_MILLI)

    def _all_ready(self, interval) -> bool:
        queues = [stream.queue for stream in self._streams.values()]
        return (
            bool(queues)
            and any(q.front_pts() is not None for q in queues)
            and all(q.is_ready(interval) for q in queues)
        )

    def _drop_stale(self, interval) -> None:
        for stream in self._streams.values():
            stream.queue.remove_stale(interval)

    def _retire(self, stream_ids) -> None:
        for stream_id in stream_ids:
            del self._streams[stream_id]
            logger.info(f"Stream {stream_id!r} retired at end of stream")

    def _compose_if_ready(self) -> OutputFrame | None:
        interval = self._frame_interval()
        self._drop_stale(interval)

        finished = [
            sid for sid, stream in self._streams.items()
            if stream.queue.at_end_of_stream
        ]
        if finished and len(finished) == len(self._streams):
            # Nothing left to show: retire without repeating the last frame.
            self._retire(finished)
            return None

        if not self.auto_compose or not self._all_ready(interval):
            return None
        return self._compose()

    def _compose(self) -> OutputFrame:
        interval = self._frame_interval()
        self._drop_stale(interval)

        inputs = {}
        used_pts = []
        contributed = []
        consumed = []
        for stream_id, stream in self._streams.items():
            frame, is_front = stream.queue.select(interval)
            payload = None
            if frame is not None:
                payload = frame.payload
                used_pts.append(frame.pts)
                contributed.append(stream.queue)
                if is_front:
                    consumed.append(stream.queue)
            resolution = stream.format.resolution
            if frame is not None and frame.resolution is not None:
                resolution = frame.resolution
            inputs[stream_id] = SourceFrame(
                payload, resolution, stream.placement, stream.transformations,
            )

        payload = self.renderer.render(self._graph, inputs, self.output_format)
        if len(payload) != self.output_format.frame_size:
            raise PayloadSizeMismatch(self.output_format.frame_size, len(payload))

        previous = self._last_pts if self._last_pts is not None else 0
        pts = max(used_pts) if used_pts else previous
        # Fallback frames alone must not move the output backwards.
        if self._last_pts is not None:
            pts = max(pts, self._last_pts)

        for queue in contributed:
            queue.has_contributed = True
        for queue in consumed:
            queue.pop_front()
        self._retire([
            sid for sid, stream in self._streams.items()
            if stream.queue.at_end_of_stream
        ])

        self._last_pts = pts
        logger.debug(
            f"Composed output at {pts} ns (interval {interval}, "
            f"{len(consumed)}/{len(inputs)} streams advanced)"
        )
        return OutputFrame(payload, pts)
