"""streamcompose.plugins — per-session registry of transformations and layouts.

A scene refers to effects by string key ("corners_rounding", "grid", ...).
The registry maps those keys to plugin objects with a fixed interface:

  Transformation: parse(raw) -> params, output_size(params, size), apply(params, frame)
  LayoutPlugin:   parse(raw) -> params, compose(params, inputs, size)

Each Compositor owns its own registry instance (default_registry() gives
one pre-filled with the built-ins), so registering a custom effect in one
session never leaks into another.

Frames handed to plugins are RGBA uint8 arrays of shape (h, w, 4).
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Any, Mapping, NamedTuple

import numpy as np

from .errors import CompositorError, UnknownPlugin
from .geometry import Placement, Resolution
from .scene import Layout, PluginSpec, SceneDescription, Texture

logger = logging.getLogger(__name__)


# ── Plugin interfaces ─────────────────────────────────────────────


class _Plugin(ABC):
    params_type: type = dict

    def decode_params(self, raw) -> Any:
        """Turn raw description params into this plugin's params object.

        Already-decoded params pass through unchanged.
        """
        if self.params_type is not dict and isinstance(raw, self.params_type):
            return raw
        if raw is None:
            raw = {}
        if not isinstance(raw, Mapping):
            raise ValueError(f"params must be a mapping, got {type(raw).__name__}")
        return self.parse(dict(raw))

    @abstractmethod
    def parse(self, raw: dict) -> Any:
        ...


class Transformation(_Plugin):
    """Single-input, single-output frame filter."""

    def output_size(self, params, input_size: Resolution) -> Resolution:
        """Size of apply()'s result for an input of input_size."""
        return input_size

    @abstractmethod
    def apply(self, params, frame: np.ndarray) -> np.ndarray:
        ...


class LayoutInput(NamedTuple):
    """One resolved layout input: its frame and the stream's own placement.

    placement is only set when the input is a video node whose stream was
    registered with one.
    """

    frame: np.ndarray
    placement: Placement | None = None


class LayoutPlugin(_Plugin):
    """Multi-input composer producing one frame of the requested size."""

    @abstractmethod
    def compose(
        self, params, inputs: Mapping[Any, LayoutInput], size: Resolution,
    ) -> np.ndarray:
        """Compose inputs into an RGBA frame of size.

        inputs holds every slot in declaration order; absent sources map
        to None.
        """


# ── Registry ──────────────────────────────────────────────────────


class PluginRegistry:
    """Maps registry keys to transformation and layout implementations."""

    def __init__(self):
        self._transformations: dict[str, Transformation] = {}
        self._layouts: dict[str, LayoutPlugin] = {}

    def register_transformation(self, kind: str, plugin: Transformation) -> None:
        if not isinstance(plugin, Transformation):
            raise TypeError(f"Not a Transformation: {plugin!r}")
        self._transformations[kind] = plugin
        logger.debug(f"Registered transformation '{kind}'")

    def register_layout(self, kind: str, plugin: LayoutPlugin) -> None:
        if not isinstance(plugin, LayoutPlugin):
            raise TypeError(f"Not a LayoutPlugin: {plugin!r}")
        self._layouts[kind] = plugin
        logger.debug(f"Registered layout '{kind}'")

    def transformation(self, kind: str) -> Transformation:
        try:
            return self._transformations[kind]
        except KeyError:
            raise UnknownPlugin("transformation", kind) from None

    def layout(self, kind: str) -> LayoutPlugin:
        try:
            return self._layouts[kind]
        except KeyError:
            raise UnknownPlugin("layout", kind) from None

    def list_transformations(self) -> list[str]:
        return sorted(self._transformations)

    def list_layouts(self) -> list[str]:
        return sorted(self._layouts)

    # ── Scene decoding ────────────────────────────────────────────

    def decode_scene(self, description: SceneDescription) -> SceneDescription:
        """Return a copy of description with every PluginSpec's params decoded.

        Raises:
            UnknownPlugin: a transformation or layout key isn't registered.
            ValueError: a plugin rejected its params (message names the object).
        """
        objects = []
        for name, obj in description.objects:
            if isinstance(obj, Texture):
                specs = self.decode_transformations(name, obj.transformations)
                obj = replace(obj, transformations=specs)
            elif isinstance(obj, Layout):
                spec = self._decode(name, obj.layout, self.layout(obj.layout.kind), "layout")
                obj = replace(obj, layout=spec)
            objects.append((name, obj))
        return SceneDescription(objects=tuple(objects), output=description.output)

    def decode_transformations(self, owner, specs) -> tuple[PluginSpec, ...]:
        """Decode a list of transformation PluginSpecs (or {type: ...} mappings).

        owner names the object or stream the list belongs to in error messages.

        Raises:
            UnknownPlugin: a transformation key isn't registered.
            ValueError: malformed entry or params.
        """
        decoded = []
        for spec in specs:
            if isinstance(spec, Mapping):
                if "type" not in spec:
                    raise ValueError(f"Object {owner!r}: transformation missing 'type'")
                spec = PluginSpec(
                    spec["type"], {k: v for k, v in spec.items() if k != "type"},
                )
            elif not isinstance(spec, PluginSpec):
                raise ValueError(
                    f"Object {owner!r}: transformations must be PluginSpecs, got {spec!r}"
                )
            plugin = self.transformation(spec.kind)
            decoded.append(self._decode(owner, spec, plugin, "transformation"))
        return tuple(decoded)

    @staticmethod
    def _decode(name, spec: PluginSpec, plugin: _Plugin, category: str) -> PluginSpec:
        try:
            params = plugin.decode_params(spec.params)
        except CompositorError:
            raise
        except (TypeError, ValueError, KeyError) as exc:
            raise ValueError(
                f"Object {name!r}, {category} '{spec.kind}': {exc}"
            ) from exc
        return PluginSpec(spec.kind, params)


def default_registry() -> PluginRegistry:
    """A fresh registry holding the built-in transformations and layouts."""
    # Imported here: the built-ins subclass the interfaces defined above.
    from .layouts import GridLayout, PlacementLayout
    from .transformations import CornersRounding, Cropping

    registry = PluginRegistry()
    registry.register_transformation("corners_rounding", CornersRounding())
    registry.register_transformation("cropping", Cropping())
    registry.register_layout("placement", PlacementLayout())
    registry.register_layout("grid", GridLayout())
    return registry
