"""streamcompose.frame_queue — per-stream buffering of timestamped frames.

Each live stream owns one FrameQueue. The compositor asks it, once per
output tick, three questions about the tick interval [start, end]:

  is_ready(interval)  can this stream take part in the next output frame?
  is_stale(interval)  is the front frame older than the interval start?
  select(interval)    which frame should be composited (or None)?

`interval` is None until the first output frame exists. Otherwise
`start` is the pts of the last output frame and `end` the next frame's
deadline rounded up to a whole millisecond; both bounds are inclusive.

Frames that arrive after the output has already moved past them never
enter the queue. They may replace the fallback, the most recent frame
already consumed, which is redrawn whenever the queue has nothing
usable.
"""

from collections import deque
from typing import NamedTuple

from .errors import StreamEnded


class Frame(NamedTuple):
    pts: int
    payload: bytes
    # Size the payload was uploaded at; streams may change format mid-session.
    resolution: tuple[int, int] | None = None


class _EndOfStream:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "END_OF_STREAM"


END_OF_STREAM = _EndOfStream()

Interval = tuple[int, int] | None


class FrameQueue:
    """FIFO of Frame records, optionally terminated by END_OF_STREAM."""

    def __init__(self, stream_id=None):
        self.stream_id = stream_id
        self._entries: deque = deque()
        self.fallback: Frame | None = None
        self.ended = False
        # False until a frame of this stream has been composited.
        self.has_contributed = False

    def __len__(self):
        return len(self._entries)

    def __repr__(self):
        return (
            f"FrameQueue({self.stream_id!r}, front={self.front_pts()}, "
            f"len={len(self._entries)}, ended={self.ended})"
        )

    # ── Producer side ─────────────────────────────────────────────

    def push(
        self,
        payload: bytes,
        pts: int,
        last_pts: int | None = None,
        resolution: tuple[int, int] | None = None,
    ) -> bool:
        """Queue a frame, or keep it as fallback if the output is past it.

        Args:
            payload: Raw frame bytes.
            pts: Presentation timestamp in nanoseconds.
            last_pts: pts of the last output frame, None before the first.
            resolution: (width, height) of the payload, kept with the frame.

        Returns:
            True if the frame was queued, False if it was only considered
            as a fallback.

        Raises:
            StreamEnded: end of stream was already signalled.
        """
        if self.ended:
            raise StreamEnded(self.stream_id)

        frame = Frame(pts, payload, resolution)
        if last_pts is None or pts > last_pts:
            self._entries.append(frame)
            return True
        if self.fallback is None or pts > self.fallback.pts:
            self.fallback = frame
        return False

    def send_end_of_stream(self) -> None:
        if self.ended:
            raise StreamEnded(self.stream_id)
        self._entries.append(END_OF_STREAM)
        self.ended = True

    # ── Consumer side ─────────────────────────────────────────────

    def front(self):
        """First queued entry (a Frame or END_OF_STREAM), or None."""
        return self._entries[0] if self._entries else None

    def front_pts(self) -> int | None:
        front = self.front()
        return front.pts if isinstance(front, Frame) else None

    @property
    def at_end_of_stream(self) -> bool:
        return self.front() is END_OF_STREAM

    def pop_front(self) -> Frame | None:
        """Drop the front frame, keeping it as the fallback.

        END_OF_STREAM is never popped here; the compositor retires the
        whole stream instead.
        """
        front = self.front()
        if not isinstance(front, Frame):
            return None
        self._entries.popleft()
        self.fallback = front
        return front

    def is_ready(self, interval: Interval) -> bool:
        front = self.front()
        if front is None:
            return False
        if front is END_OF_STREAM or interval is None:
            return True
        start, end = interval
        if start <= front.pts <= end:
            return True
        # A stream that joined mid-session may start ahead of the output.
        return not self.has_contributed and front.pts > end

    def is_stale(self, interval: Interval) -> bool:
        if interval is None:
            return False
        pts = self.front_pts()
        return pts is not None and pts < interval[0]

    def remove_stale(self, interval: Interval) -> int:
        """Evict every stale front frame into the fallback slot.

        Returns the number of frames evicted; a second call with the same
        interval evicts nothing.
        """
        evicted = 0
        while self.is_stale(interval):
            self.pop_front()
            evicted += 1
        return evicted

    def select(self, interval: Interval) -> tuple[Frame | None, bool]:
        """Frame to composite for the tick, and whether it is the front.

        A never-used stream whose front is beyond the tick is left out
        rather than shown early. Otherwise the front frame wins, then the
        fallback.
        """
        front = self.front()
        if isinstance(front, Frame):
            too_new = (
                interval is not None
                and not self.has_contributed
                and front.pts > interval[1]
            )
            if too_new:
                return None, False
            return front, True
        if self.fallback is not None:
            return self.fallback, False
        return None, False
