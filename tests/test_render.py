"""Tests for the software renderer."""

import numpy as np
import pytest

from streamcompose.colour import i420_to_rgba, rgba_to_i420, solid_i420
from streamcompose.geometry import Placement, Point, RawVideo, Resolution
from streamcompose.graph import build_scene_graph
from streamcompose.plugins import default_registry
from streamcompose.render import SoftwareRenderer, SourceFrame
from streamcompose.scene import (
    Image,
    Layout,
    PluginSpec,
    SceneDescription,
    SizeOf,
    Texture,
    Video,
)

OUT = RawVideo(8, 8, "I420", (30, 1))
RED = (255, 0, 0)
GREEN = (0, 255, 0)
BLUE = (0, 0, 255)


def _graph(*objects, output, registry=None):
    registry = registry or default_registry()
    description = SceneDescription(objects=tuple(objects), output=output)
    return build_scene_graph(registry.decode_scene(description))


def _source(color, size=(4, 4), placement=None):
    return SourceFrame(solid_i420(size, color), Resolution(*size), placement)


def _pixel(payload, x, y, size=(8, 8)):
    return tuple(int(c) for c in i420_to_rgba(payload, size)[y, x, :3])


def _close(actual, expected, tolerance=10):
    return all(abs(a - e) <= tolerance for a, e in zip(actual, expected))


class TestOutputContract:
    def test_payload_size(self):
        payload = SoftwareRenderer(default_registry()).render(None, {}, OUT)
        assert len(payload) == 8 * 8 * 3 // 2

    def test_empty_output_is_background(self):
        renderer = SoftwareRenderer(default_registry(), background=(0, 0, 0))
        payload = renderer.render(None, {}, OUT)
        assert payload[:64] == bytes([16]) * 64

    def test_deterministic(self):
        graph = _graph(
            ("v", Video("cam")),
            ("t", Texture(input="v", transformations=(
                PluginSpec("corners_rounding", {"border_radius": 2}),
            ))),
            output="t",
        )
        renderer = SoftwareRenderer(default_registry())
        inputs = {"cam": _source(RED)}
        assert renderer.render(graph, inputs, OUT) == renderer.render(graph, inputs, OUT)


class TestWithoutScene:
    def test_streams_drawn_by_placement_and_z(self):
        renderer = SoftwareRenderer(default_registry())
        full = Resolution(8, 8)
        inputs = {
            "top": _source(BLUE, placement=Placement(size=full, z=1.0)),
            "bottom": _source(RED, placement=Placement(size=full, z=0.0)),
        }
        payload = renderer.render(None, inputs, OUT)
        assert _close(_pixel(payload, 4, 4), BLUE)

    def test_absent_stream_draws_nothing(self):
        renderer = SoftwareRenderer(default_registry())
        inputs = {"cam": SourceFrame(None, Resolution(4, 4), Placement())}
        payload = renderer.render(None, inputs, OUT)
        assert payload[:64] == bytes([16]) * 64

    def test_position_offsets_stream(self):
        renderer = SoftwareRenderer(default_registry())
        inputs = {"cam": _source(RED, placement=Placement(position=Point(4, 4)))}
        payload = renderer.render(None, inputs, OUT)
        assert _close(_pixel(payload, 6, 6), RED)
        assert _close(_pixel(payload, 1, 1), (0, 0, 0))


    def test_stream_transformations_before_placement(self):
        # Left half red, right half blue; cropping keeps the red half.
        frame = np.zeros((4, 4, 4), dtype=np.uint8)
        frame[:, :2, :3] = RED
        frame[:, 2:, :3] = BLUE
        registry = default_registry()
        crop = registry.decode_transformations("cam", [
            {"type": "cropping", "crop_size": [0.5, 1]},
        ])
        source = SourceFrame(rgba_to_i420(frame), Resolution(4, 4), Placement(), crop)

        payload = SoftwareRenderer(registry).render(None, {"cam": source}, OUT)
        assert _close(_pixel(payload, 1, 2), RED)
        assert _close(_pixel(payload, 3, 2), (0, 0, 0))


class TestWithScene:
    def test_transformation_and_fixed_resolution(self):
        # Left half red, right half blue; cropping keeps the red half.
        frame = np.zeros((4, 4, 4), dtype=np.uint8)
        frame[:, :2, :3] = RED
        frame[:, 2:, :3] = BLUE
        source = SourceFrame(rgba_to_i420(frame), Resolution(4, 4))
        graph = _graph(
            ("v", Video("cam")),
            ("t", Texture(
                input="v",
                transformations=(PluginSpec(
                    "cropping", {"top_left_corner": [0, 0], "crop_size": [0.5, 1]},
                ),),
                resolution=(8, 8),
            )),
            output="t",
        )
        payload = SoftwareRenderer(default_registry()).render(graph, {"cam": source}, OUT)
        assert _close(_pixel(payload, 6, 4), RED)

    def test_absent_source_shows_background(self):
        graph = _graph(("v", Video("cam")), output="v")
        inputs = {"cam": SourceFrame(None, Resolution(4, 4))}
        payload = SoftwareRenderer(default_registry()).render(graph, inputs, OUT)
        assert payload[:64] == bytes([16]) * 64

    def test_unregistered_pad_is_absent(self):
        graph = _graph(
            ("v", Video("ghost")),
            ("t", Texture(input="v", transformations=(
                PluginSpec("cropping", {"crop_size": [0.5, 0.5]}),
            ))),
            output="t",
        )
        payload = SoftwareRenderer(default_registry()).render(graph, {}, OUT)
        assert len(payload) == OUT.frame_size

    def test_layout_with_image_sized_from_stream(self):
        graph = _graph(
            ("v", Video("cam")),
            ("img", Image(solid_i420((2, 2), GREEN), (2, 2))),
            ("logo", Texture(
                input="img",
                transformations=(PluginSpec("corners_rounding", {"border_radius": 0}),),
                resolution=SizeOf("v"),
            )),
            ("out", Layout(
                inputs={"bg": "v", "logo": "logo"},
                resolution=(8, 8),
                layout=PluginSpec("placement", {"placements": {
                    "bg": {"size": [8, 8], "z": 0.0},
                    "logo": {"position": [0, 0], "z": 1.0},
                }}),
            )),
            output="out",
        )
        payload = SoftwareRenderer(default_registry()).render(
            graph, {"cam": _source(RED)}, OUT,
        )
        assert _close(_pixel(payload, 1, 1), GREEN)
        assert _close(_pixel(payload, 6, 6), RED)

    def test_stream_transformations_change_video_size(self):
        registry = default_registry()
        crop = registry.decode_transformations("cam", [
            {"type": "cropping", "crop_size": [0.5, 1]},
        ])
        source = SourceFrame(solid_i420((4, 4), RED), Resolution(4, 4), None, crop)
        graph = _graph(
            ("v", Video("cam")),
            ("img", Image(solid_i420((2, 2), GREEN), (2, 2))),
            ("logo", Texture(
                input="img",
                transformations=(PluginSpec("corners_rounding", {"border_radius": 0}),),
                resolution=SizeOf("v"),
            )),
            ("out", Layout(
                inputs={"bg": "v", "logo": "logo"},
                resolution=(8, 8),
                layout=PluginSpec("placement", {"placements": {
                    "bg": {"size": [8, 8], "z": 0.0},
                    "logo": {"position": [0, 0], "z": 1.0},
                }}),
            )),
            output="out",
            registry=registry,
        )
        payload = SoftwareRenderer(registry).render(graph, {"cam": source}, OUT)
        # The logo takes the cropped 2x4 size, not the uploaded 4x4.
        assert _close(_pixel(payload, 1, 1), GREEN)
        assert _close(_pixel(payload, 3, 1), RED)

    def test_texture_sized_from_output(self):
        graph = _graph(
            ("v", Video("cam")),
            ("big", Texture(
                input="v",
                transformations=(PluginSpec("corners_rounding", {"border_radius": 0}),),
                resolution=SizeOf("out"),
            )),
            ("out", Layout(
                inputs={"only": "big"},
                resolution=(8, 8),
                layout=PluginSpec("placement", {"placements": {"only": {"z": 0.0}}}),
            )),
            output="out",
        )
        payload = SoftwareRenderer(default_registry()).render(
            graph, {"cam": _source(BLUE)}, OUT,
        )
        # Placed at its own size, the texture only fills the layout at 8x8.
        assert _close(_pixel(payload, 7, 7), BLUE)

    def test_layout_resized_to_output(self):
        graph = _graph(
            ("v", Video("cam")),
            ("out", Layout(
                inputs={"only": "v"}, resolution=(2, 2),
                layout=PluginSpec("grid", {"columns": 1}),
            )),
            output="out",
        )
        payload = SoftwareRenderer(default_registry()).render(
            graph, {"cam": _source(BLUE)}, OUT,
        )
        assert _close(_pixel(payload, 7, 7), BLUE)

    @pytest.mark.parametrize("radius", [0, 3])
    def test_image_decoded_once_per_graph(self, radius):
        graph = _graph(
            ("img", Image(solid_i420((4, 4), GREEN), (4, 4))),
            ("t", Texture(input="img", transformations=(
                PluginSpec("corners_rounding", {"border_radius": radius}),
            ))),
            output="t",
        )
        renderer = SoftwareRenderer(default_registry())
        renderer.render(graph, {}, OUT)
        cached = dict(renderer._images)
        renderer.render(graph, {}, OUT)
        assert renderer._images.keys() == cached.keys()
        assert all(renderer._images[k] is cached[k] for k in cached)
