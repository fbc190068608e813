"""streamcompose.render — turn a scene graph plus source frames into output.

The compositor hands the renderer one snapshot per tick:

  graph          the current SceneGraph, or None when no scene is set
  inputs         stream id → SourceFrame (payload None when the stream
                 has nothing to show this tick)
  output_format  RawVideo of the output

and expects an I420 payload of exactly output_format.frame_size bytes.
Any engine honouring that contract can be plugged into a Compositor;
SoftwareRenderer is the numpy/Pillow one shipped here.

Pipeline (SoftwareRenderer):
  1. Decode each used source from I420 to RGBA and run its per-stream
     transformations.
  2. Evaluate nodes[0..root] in arena order, predecessors first:
       video          → the stream's frame, or nothing
       image          → decoded once per scene and cached
       transformation → registry plugin applied to the predecessor
       layout         → registry plugin composing its slots
     Nodes with a fixed or SizeOf resolution are resized to it.
  3. Scale the root to the output size and flatten it over the
     background colour.
  4. Encode back to I420.

Without a graph every live stream is drawn by its own Placement, lowest z
first.
"""

from abc import ABC, abstractmethod
from typing import Mapping, NamedTuple

import numpy as np

from .colour import i420_to_rgba, rgba_to_i420
from .common import blank_canvas, blend_onto, resize_rgba
from .geometry import Placement, RawVideo, Resolution
from .graph import ImageNode, LayoutNode, SceneGraph, TransformationNode, VideoNode
from .plugins import LayoutInput, PluginRegistry
from .scene import TRANSFORMED_INPUT, SizeOf


class SourceFrame(NamedTuple):
    """One stream's contribution to a tick."""

    payload: bytes | None
    resolution: Resolution
    placement: Placement | None = None
    # Decoded transformation PluginSpecs applied before placement or scene use.
    transformations: tuple = ()


class Renderer(ABC):
    @abstractmethod
    def render(
        self,
        graph: SceneGraph | None,
        inputs: Mapping[str, SourceFrame | None],
        output_format: RawVideo,
    ) -> bytes:
        """Produce one I420 output payload."""


class SoftwareRenderer(Renderer):
    """CPU renderer built on numpy arrays and Pillow resizing."""

    def __init__(
        self,
        registry: PluginRegistry,
        background: tuple[int, int, int] = (0, 0, 0),
    ):
        self.registry = registry
        self.background = tuple(background)
        self._image_graph: SceneGraph | None = None
        self._images: dict[int, np.ndarray] = {}

    def render(self, graph, inputs, output_format):
        output_size = output_format.resolution
        if graph is None:
            frame = self._render_placements(inputs, output_size)
        else:
            frame = self._render_graph(graph, inputs, output_size)

        canvas = blank_canvas(output_size, self.background)
        if frame is not None:
            blend_onto(canvas, resize_rgba(frame, output_size), 0, 0)
        return rgba_to_i420(canvas)

    # ── Legacy mode: streams by placement ─────────────────────────

    def _render_placements(self, inputs, output_size: Resolution) -> np.ndarray:
        canvas = blank_canvas(output_size)
        layers = []
        for order, source in enumerate(inputs.values()):
            if source is None or source.payload is None:
                continue
            placement = source.placement or Placement()
            layers.append((placement.z, order, placement, source))

        for _, _, placement, source in sorted(layers, key=lambda layer: layer[:2]):
            frame = self._source_rgba(source)
            target = placement.target_size(_frame_size(frame))
            blend_onto(canvas, resize_rgba(frame, target), *placement.position)
        return canvas

    # ── Scene graph evaluation ────────────────────────────────────

    def _render_graph(self, graph: SceneGraph, inputs, output_size: Resolution):
        if graph is not self._image_graph:
            self._image_graph = graph
            self._images = {}

        sizes = _SizeResolver(graph, inputs, self.registry, output_size)
        values: list[np.ndarray | None] = [None] * len(graph.nodes)

        for index in graph.render_order():
            node = graph.nodes[index]

            if isinstance(node, VideoNode):
                source = inputs.get(node.pad)
                if source is not None and source.payload is not None:
                    values[index] = self._source_rgba(source)

            elif isinstance(node, ImageNode):
                if index not in self._images:
                    self._images[index] = i420_to_rgba(node.data, node.resolution)
                values[index] = self._images[index]

            elif isinstance(node, TransformationNode):
                previous = values[node.previous]
                if previous is None:
                    continue
                plugin = self.registry.transformation(node.transform.kind)
                frame = plugin.apply(node.transform.params, previous)
                if node.resolution != TRANSFORMED_INPUT:
                    frame = resize_rgba(frame, sizes.size(index))
                values[index] = frame

            elif isinstance(node, LayoutNode):
                slots = {}
                for slot, previous in node.inputs:
                    frame = values[previous]
                    slots[slot] = None if frame is None else LayoutInput(
                        frame, _stream_placement(graph.nodes[previous], inputs),
                    )
                size = sizes.size(index)
                plugin = self.registry.layout(node.layout.kind)
                values[index] = resize_rgba(
                    plugin.compose(node.layout.params, slots, size), size,
                )

        return values[graph.root]

    def _source_rgba(self, source: SourceFrame) -> np.ndarray:
        frame = i420_to_rgba(source.payload, source.resolution)
        for spec in source.transformations:
            frame = self.registry.transformation(spec.kind).apply(spec.params, frame)
        return frame


def _frame_size(frame: np.ndarray) -> Resolution:
    return Resolution(frame.shape[1], frame.shape[0])


def _stream_placement(node, inputs) -> Placement | None:
    if isinstance(node, VideoNode):
        source = inputs.get(node.pad)
        if source is not None:
            return source.placement
    return None


class _SizeResolver:
    """Memoized output size of every node, including detached SizeOf targets.

    A video whose stream isn't registered has no known size and falls back
    to the output resolution.
    """

    def __init__(self, graph, inputs, registry, output_size):
        self.graph = graph
        self.inputs = inputs
        self.registry = registry
        self.output_size = output_size
        self._sizes: dict[int, Resolution] = {}

    def size(self, index: int) -> Resolution:
        if index not in self._sizes:
            self._sizes[index] = self._compute(self.graph.nodes[index])
        return self._sizes[index]

    def _declared(self, resolution) -> Resolution:
        if isinstance(resolution, SizeOf):
            return self.size(self.graph.index_of(resolution.name))
        return Resolution(*resolution)

    def _compute(self, node) -> Resolution:
        if isinstance(node, VideoNode):
            source = self.inputs.get(node.pad)
            if source is None:
                return self.output_size
            size = Resolution(*source.resolution)
            for spec in source.transformations:
                plugin = self.registry.transformation(spec.kind)
                size = plugin.output_size(spec.params, size)
            return size
        if isinstance(node, ImageNode):
            return node.resolution
        if isinstance(node, TransformationNode):
            if node.resolution == TRANSFORMED_INPUT:
                plugin = self.registry.transformation(node.transform.kind)
                return plugin.output_size(node.transform.params, self.size(node.previous))
            return self._declared(node.resolution)
        return self._declared(node.resolution)
