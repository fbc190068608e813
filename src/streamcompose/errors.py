"""streamcompose.errors — structured exceptions raised by the compositor.

Four families, matching how callers are expected to react:

  - ConfigurationError: bad output/stream format. Raised synchronously,
    never worth retrying with the same arguments.
  - SceneError: a scene description was rejected as a whole. The scene
    that was active before the call stays active.
  - StreamError: a runtime precondition on a stream call was violated
    (unknown id, wrong payload size, ...). State is left untouched.
  - SceneGraphInconsistency: the graph builder was handed a description
    that never went through validation. This is a programming error.

The first three subclass ValueError so existing `except ValueError`
handling around manifest loading keeps working.
"""


class CompositorError(Exception):
    """Base class for every error raised by streamcompose."""


# ── Configuration errors ──────────────────────────────────────────


class ConfigurationError(CompositorError, ValueError):
    pass


class BadResolution(ConfigurationError):
    def __init__(self, width, height):
        self.width = width
        self.height = height
        super().__init__(
            f"Bad video resolution {width}x{height}: "
            f"dimensions must be positive even integers"
        )


class BadFramerate(ConfigurationError):
    def __init__(self, framerate):
        self.framerate = framerate
        super().__init__(
            f"Bad framerate {framerate!r}: expected (numerator, denominator) "
            f"with both parts positive"
        )


class UnsupportedPixelFormat(ConfigurationError):
    def __init__(self, pixel_format):
        self.pixel_format = pixel_format
        super().__init__(f"Unsupported pixel format: {pixel_format!r}")


# ── Scene validation errors ───────────────────────────────────────


class SceneError(CompositorError, ValueError):
    pass


class CycleDetected(SceneError):
    def __init__(self, name=None):
        self.name = name
        where = f" (at {name!r})" if name is not None else ""
        super().__init__(f"Cycle detected in the scene graph{where}")


class UndefinedName(SceneError):
    def __init__(self, name):
        self.name = name
        super().__init__(
            f"The scene references an object that is not defined: {name!r}"
        )


class DuplicateNames(SceneError):
    def __init__(self, name):
        self.name = name
        super().__init__(f"Object name {name!r} is defined more than once")


class DuplicatePadReferences(SceneError):
    def __init__(self, pad):
        self.pad = pad
        super().__init__(
            f"Two video objects reference the same input pad: {pad!r}"
        )


class UnusedObject(SceneError):
    def __init__(self, name):
        self.name = name
        super().__init__(
            f"Object {name!r} is not used in compositing the output"
        )


class OutputUsedAsInput(SceneError):
    def __init__(self, name):
        self.name = name
        super().__init__(
            f"Output object {name!r} is also used as an input of another object"
        )


class ResolutionCycleDetected(SceneError):
    def __init__(self, name):
        self.name = name
        super().__init__(
            f"Output resolution of {name!r} depends on itself"
        )


class UnknownPlugin(SceneError):
    def __init__(self, category, kind):
        self.category = category
        self.kind = kind
        super().__init__(f"Unknown {category}: {kind!r}")


# ── Stream (runtime precondition) errors ──────────────────────────


class StreamError(CompositorError, ValueError):
    pass


class UnknownStreamId(StreamError):
    def __init__(self, stream_id):
        self.stream_id = stream_id
        super().__init__(f"Unknown stream id: {stream_id!r}")


class StreamAlreadyExists(StreamError):
    def __init__(self, stream_id):
        self.stream_id = stream_id
        super().__init__(f"Stream {stream_id!r} is already registered")


class StreamEnded(StreamError):
    def __init__(self, stream_id):
        self.stream_id = stream_id
        super().__init__(
            f"Stream {stream_id!r} already received end of stream"
        )


class PayloadSizeMismatch(StreamError):
    def __init__(self, expected, actual):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"I420 payload must be exactly {expected} bytes, got {actual}"
        )


# ── Internal consistency ──────────────────────────────────────────


class SceneGraphInconsistency(CompositorError, RuntimeError):
    """The builder met a cycle or an undefined name.

    Only possible when a description skipped validate_scene().
    """
