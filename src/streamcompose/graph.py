"""streamcompose.graph — resolve a validated scene description into a render DAG.

The graph is an arena: SceneGraph.nodes is a tuple of immutable nodes,
and nodes refer to their predecessors by index. An object reachable from
several parents is materialized once, so sharing is simply two parents
holding the same index.

Nodes are appended in post-order while resolving the output, which gives
two useful properties:

  - every predecessor has a lower index than its successors, so walking
    nodes[0..root] front to back is a valid evaluation order;
  - nodes[0..root] is exactly the set reachable from the output.

Objects that are only referenced as a SizeOf resolution are resolved
after the output and land past the root. The renderer uses them for
sizing and never evaluates their pixels.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Union

from .errors import SceneGraphInconsistency
from .geometry import Resolution
from .scene import (
    Image,
    Layout,
    ObjectName,
    PluginSpec,
    SceneDescription,
    SizeOf,
    TRANSFORMED_INPUT,
    Texture,
    Video,
)

logger = logging.getLogger(__name__)


# ── Nodes ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class VideoNode:
    pad: str


@dataclass(frozen=True)
class ImageNode:
    data: bytes = field(repr=False)
    resolution: Resolution


@dataclass(frozen=True)
class TransformationNode:
    previous: int
    transform: PluginSpec
    resolution: Any


@dataclass(frozen=True)
class LayoutNode:
    inputs: tuple[tuple[Any, int], ...]
    resolution: Any
    layout: PluginSpec

    def input_map(self) -> dict[Any, int]:
        return dict(self.inputs)


Node = Union[VideoNode, ImageNode, TransformationNode, LayoutNode]


@dataclass(frozen=True)
class SceneGraph:
    """Immutable render DAG built from one validated description."""

    nodes: tuple[Node, ...]
    root: int
    names: Mapping[ObjectName, int]

    @property
    def root_node(self) -> Node:
        return self.nodes[self.root]

    def predecessors(self, index: int) -> tuple[int, ...]:
        node = self.nodes[index]
        if isinstance(node, TransformationNode):
            return (node.previous,)
        if isinstance(node, LayoutNode):
            return tuple(i for _, i in node.inputs)
        return ()

    def render_order(self) -> range:
        """Indices to evaluate for the output, predecessors first."""
        return range(self.root + 1)

    def pads(self) -> list[str]:
        """Input pads the output actually depends on, in evaluation order."""
        return [
            node.pad for node in self.nodes[:self.root + 1]
            if isinstance(node, VideoNode)
        ]

    def index_of(self, name: ObjectName) -> int:
        return self.names[name]


# ── Builder ───────────────────────────────────────────────────────


class _GraphBuilder:
    def __init__(self, description: SceneDescription):
        self.objects = description.object_map()
        self.nodes: list[Node] = []
        self.memo: dict[ObjectName, int] = {}
        self.resolving: set = set()

    def add(self, node: Node) -> int:
        self.nodes.append(node)
        return len(self.nodes) - 1

    def resolve(self, name: ObjectName) -> int:
        if name in self.memo:
            return self.memo[name]
        if name in self.resolving:
            raise SceneGraphInconsistency(
                f"Cycle through {name!r} while building the scene graph; "
                f"the description was not validated"
            )
        if name not in self.objects:
            raise SceneGraphInconsistency(
                f"Object {name!r} is not defined; the description was not validated"
            )

        self.resolving.add(name)
        obj = self.objects[name]

        if isinstance(obj, Video):
            index = self.add(VideoNode(pad=obj.input_pad))

        elif isinstance(obj, Image):
            index = self.add(ImageNode(data=obj.data, resolution=obj.resolution))

        elif isinstance(obj, Texture):
            # Fold left to right: the last declared transformation is outermost
            # and the only one carrying the texture's output resolution.
            index = self.resolve(obj.input)
            last = len(obj.transformations) - 1
            for i, transform in enumerate(obj.transformations):
                index = self.add(TransformationNode(
                    previous=index, transform=transform,
                    resolution=obj.resolution if i == last else TRANSFORMED_INPUT,
                ))

        elif isinstance(obj, Layout):
            inputs = tuple(
                (slot, self.resolve(input_name))
                for slot, input_name in obj.inputs.items()
            )
            index = self.add(LayoutNode(
                inputs=inputs, resolution=obj.resolution, layout=obj.layout,
            ))

        else:
            raise SceneGraphInconsistency(f"Unknown object type for {name!r}: {obj!r}")

        self.resolving.discard(name)
        self.memo[name] = index
        return index


def build_scene_graph(description: SceneDescription) -> SceneGraph:
    """Resolve an already-validated description into a SceneGraph.

    Raises:
        SceneGraphInconsistency: description contains a cycle or an
            undefined name, i.e. validate_scene() was skipped.
    """
    builder = _GraphBuilder(description)
    root = builder.resolve(description.output)

    # Pull in SizeOf targets, including targets of targets.
    i = 0
    while i < len(builder.nodes):
        resolution = getattr(builder.nodes[i], "resolution", None)
        if isinstance(resolution, SizeOf):
            builder.resolve(resolution.name)
        i += 1

    graph = SceneGraph(nodes=tuple(builder.nodes), root=root, names=dict(builder.memo))
    logger.debug(
        f"Built scene graph: {len(graph.nodes)} nodes, root {root}, "
        f"pads {graph.pads()}"
    )
    return graph
