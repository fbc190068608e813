"""streamcompose.scene — scene descriptions, as supplied by the user.

A scene is an ordered list of (name, object) pairs plus the name of the
object whose frames become the compositor output. Objects reference each
other by name:

  video "cam"  ──►  texture "rounded" (corners_rounding)  ──┐
                                                            ├─►  layout "main"  = output
  image "logo" ─────────────────────────────────────────────┘

Nothing here is checked beyond the shape of individual values; graph-level
rules (unique names, no cycles, ...) belong to streamcompose.validation,
and resolving names into render nodes to streamcompose.graph.

Object names come in three shapes, mirroring how pipeline frameworks
usually key their pads: a plain tag "cam", a tag pair ("cam", "left") or a
tag with an index ("cam", 2). YAML lists are accepted and turned into
tuples so names stay hashable.
"""

from dataclasses import dataclass, field
from typing import Any, Mapping, Union

from .errors import PayloadSizeMismatch
from .geometry import Resolution, i420_frame_size


ObjectName = Union[str, tuple[str, str], tuple[str, int]]

# Texture resolution meaning "whatever size the transformations produce".
TRANSFORMED_INPUT = "transformed_input"


def object_name(value) -> ObjectName:
    """Normalize a raw name into one of the three supported shapes.

    Raises:
        ValueError: value is not a str, [str, str] or [str, int].
    """
    if isinstance(value, str):
        return value
    if isinstance(value, (list, tuple)) and len(value) == 2:
        tag, second = value
        second_ok = isinstance(second, str) or (
            isinstance(second, int) and not isinstance(second, bool)
        )
        if isinstance(tag, str) and second_ok:
            return (tag, second)
    raise ValueError(
        f"Bad object name {value!r}: expected a string, "
        f"[tag, tag] or [tag, integer]"
    )


@dataclass(frozen=True)
class SizeOf:
    """Output resolution borrowed from another object.

    Constrains sizing only: the referenced object is not an input.
    """

    name: ObjectName

    def __post_init__(self):
        object.__setattr__(self, "name", object_name(self.name))


@dataclass(frozen=True)
class PluginSpec:
    """One transformation or layout invocation: registry key + parameters.

    `params` holds the raw mapping from the description until the
    compositor decodes it through its PluginRegistry.
    """

    kind: str
    params: Any = field(default_factory=dict)


# ── Objects ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class Video:
    """A live input stream, bound to the stream registered under input_pad."""

    input_pad: str

    def mentioned_names(self) -> tuple:
        return ()

    def previous_names(self) -> tuple:
        return ()

    def size_dependencies(self) -> tuple:
        return ()


@dataclass(frozen=True)
class Image:
    """A static I420 picture."""

    data: bytes = field(repr=False)
    resolution: Resolution

    def __post_init__(self):
        resolution = Resolution(*self.resolution)
        object.__setattr__(self, "resolution", resolution)
        expected = i420_frame_size(resolution)
        if len(self.data) != expected:
            raise PayloadSizeMismatch(expected, len(self.data))

    def mentioned_names(self) -> tuple:
        return ()

    def previous_names(self) -> tuple:
        return ()

    def size_dependencies(self) -> tuple:
        return ()


@dataclass(frozen=True)
class Texture:
    """A single-input filter chain.

    Transformations apply in declared order. `resolution` is
    TRANSFORMED_INPUT, a fixed Resolution or SizeOf(name).
    """

    input: ObjectName
    transformations: tuple[PluginSpec, ...] = ()
    resolution: Any = TRANSFORMED_INPUT

    def __post_init__(self):
        object.__setattr__(self, "input", object_name(self.input))
        object.__setattr__(self, "transformations", tuple(self.transformations))
        object.__setattr__(self, "resolution", _texture_resolution(self.resolution))

    def mentioned_names(self) -> tuple:
        if isinstance(self.resolution, SizeOf):
            return (self.input, self.resolution.name)
        return (self.input,)

    def previous_names(self) -> tuple:
        return (self.input,)

    def size_dependencies(self) -> tuple:
        if isinstance(self.resolution, SizeOf):
            return (self.resolution.name,)
        if self.resolution == TRANSFORMED_INPUT:
            return (self.input,)
        return ()


@dataclass(frozen=True)
class Layout:
    """A multi-input composer: inputs maps internal slot names to objects."""

    inputs: Mapping[Any, ObjectName]
    resolution: Any
    layout: PluginSpec = field(default_factory=lambda: PluginSpec("placement"))

    def __post_init__(self):
        inputs = {object_name(slot): object_name(name) for slot, name in self.inputs.items()}
        object.__setattr__(self, "inputs", inputs)
        object.__setattr__(self, "resolution", _layout_resolution(self.resolution))

    def mentioned_names(self) -> tuple:
        names = tuple(self.inputs.values())
        if isinstance(self.resolution, SizeOf):
            names += (self.resolution.name,)
        return names

    def previous_names(self) -> tuple:
        return tuple(self.inputs.values())

    def size_dependencies(self) -> tuple:
        if isinstance(self.resolution, SizeOf):
            return (self.resolution.name,)
        return ()


SceneObject = Union[Video, Image, Texture, Layout]


def _texture_resolution(value):
    if value == TRANSFORMED_INPUT or isinstance(value, SizeOf):
        return value
    return _fixed_resolution(value)


def _layout_resolution(value):
    if isinstance(value, SizeOf):
        return value
    return _fixed_resolution(value)


def _fixed_resolution(value) -> Resolution:
    try:
        w, h = value
    except (TypeError, ValueError):
        raise ValueError(f"Bad output resolution: {value!r}") from None
    if not (isinstance(w, int) and isinstance(h, int) and w > 0 and h > 0):
        raise ValueError(f"Bad output resolution: {value!r}")
    return Resolution(w, h)


# ── Scene description ─────────────────────────────────────────────


@dataclass(frozen=True)
class SceneDescription:
    """Ordered (name, object) pairs plus the designated output name."""

    objects: tuple[tuple[ObjectName, SceneObject], ...]
    output: ObjectName

    def __post_init__(self):
        objects = tuple((object_name(name), obj) for name, obj in self.objects)
        object.__setattr__(self, "objects", objects)
        object.__setattr__(self, "output", object_name(self.output))

    def names(self) -> list[ObjectName]:
        """Defined names in declaration order (duplicates included)."""
        return [name for name, _ in self.objects]

    def object_map(self) -> dict[ObjectName, SceneObject]:
        """Name → object. Later duplicates win; validate first."""
        return dict(self.objects)
