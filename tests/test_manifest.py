"""Tests for streamcompose manifest loader."""

import tempfile

import numpy as np
import pytest
import yaml
from PIL import Image as PILImage

from streamcompose.errors import BadResolution, CycleDetected, UnknownPlugin, UnusedObject
from streamcompose.geometry import Placement, RawVideo, Resolution
from streamcompose.manifest import (
    check_scene,
    load_manifest,
    parse_framerate,
    scene_from_manifest,
    validate_paths,
)
from streamcompose.scene import (
    TRANSFORMED_INPUT,
    Image,
    Layout,
    PluginSpec,
    SizeOf,
    Texture,
    Video,
)


def _write_manifest(content: dict) -> str:
    """Write a manifest dict to a temp YAML file, return path."""
    f = tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False)
    yaml.dump(content, f)
    f.close()
    return f.name


def _minimal_manifest(**overrides):
    """Return a minimal valid manifest dict with one stream and no scene."""
    m = {
        "video": {
            "resolution": [640, 360],
            "framerate": 30,
            "background": "#1A1A1A",
        },
        "streams": [_stream()],
    }
    m.update(overrides)
    return m


def _stream(**overrides):
    """Return a minimal valid stream entry."""
    s = {
        "id": "cam",
        "path": "/tmp/fake.mp4",
        "resolution": [320, 240],
    }
    s.update(overrides)
    return s


def _grid_scene():
    return {
        "output": "main",
        "objects": [
            {"name": "cam", "type": "video", "input_pad": "cam"},
            {
                "name": "rounded",
                "type": "texture",
                "input": "cam",
                "transformations": [{"type": "corners_rounding", "border_radius": 12}],
            },
            {
                "name": "main",
                "type": "layout",
                "inputs": {"left": "rounded"},
                "resolution": [640, 360],
                "layout": {"type": "grid", "gap": 4},
            },
        ],
    }


class TestLoadManifest:
    def test_parses_output_format(self):
        config = load_manifest(_write_manifest(_minimal_manifest()))
        assert config["video"]["format"] == RawVideo(640, 360, "I420", (30, 1))

    def test_parses_background_color(self):
        config = load_manifest(_write_manifest(_minimal_manifest()))
        assert config["video"]["background"] == (26, 26, 26)

    def test_background_defaults_to_black(self):
        m = _minimal_manifest(video={"resolution": [640, 360]})
        config = load_manifest(_write_manifest(m))
        assert config["video"]["background"] == (0, 0, 0)
        assert config["video"]["format"].framerate == (30, 1)

    def test_stream_defaults(self):
        config = load_manifest(_write_manifest(_minimal_manifest()))
        stream = config["streams"][0]
        assert stream["id"] == "cam"
        assert stream["format"] == RawVideo(320, 240, "I420", (30, 1))
        assert stream["placement"] is None
        assert stream["offset"] == 0
        assert stream["transformations"] == ()

    def test_stream_fps_and_offset(self):
        m = _minimal_manifest(streams=[_stream(fps=[30000, 1001], offset=1.5)])
        stream = load_manifest(_write_manifest(m))["streams"][0]
        assert stream["format"].framerate == (30000, 1001)
        assert stream["offset"] == 1.5

    def test_stream_placement(self):
        m = _minimal_manifest(streams=[_stream(
            placement={"position": [10, 20], "size": [160, 120], "z": 2},
        )])
        stream = load_manifest(_write_manifest(m))["streams"][0]
        assert stream["placement"] == Placement(
            position=(10, 20), size=(160, 120), z=2, scale=1.0,
        )

    def test_stream_transformations(self):
        m = _minimal_manifest(streams=[_stream(transformations=[
            {"type": "cropping", "crop_size": [0.5, 1.0]},
            {"type": "corners_rounding", "border_radius": 4},
        ])])
        stream = load_manifest(_write_manifest(m))["streams"][0]
        assert stream["transformations"] == (
            PluginSpec("cropping", {"crop_size": [0.5, 1.0]}),
            PluginSpec("corners_rounding", {"border_radius": 4}),
        )

    def test_resolves_path_variables(self):
        m = _minimal_manifest(
            paths={"videos": "/data/vids"},
            streams=[_stream(path="${videos}/cam.mp4")],
        )
        config = load_manifest(_write_manifest(m))
        assert config["streams"][0]["path"] == "/data/vids/cam.mp4"

    def test_unknown_path_variable_raises(self):
        m = _minimal_manifest(streams=[_stream(path="${nowhere}/cam.mp4")])
        with pytest.raises(ValueError, match="Unknown path variable"):
            load_manifest(_write_manifest(m))

    def test_no_scene_section(self):
        config = load_manifest(_write_manifest(_minimal_manifest()))
        assert config["scene"] is None

    def test_scene_section_kept(self):
        config = load_manifest(_write_manifest(_minimal_manifest(scene=_grid_scene())))
        assert config["scene"]["output"] == "main"
        assert len(config["scene"]["objects"]) == 3

    def test_list_object_name_becomes_tuple(self):
        scene = _grid_scene()
        scene["output"] = ["main", 0]
        scene["objects"][2]["name"] = ["main", 0]
        config = load_manifest(_write_manifest(_minimal_manifest(scene=scene)))
        assert config["scene"]["output"] == ("main", 0)


class TestManifestErrors:
    def test_missing_video_section(self):
        m = _minimal_manifest()
        del m["video"]
        with pytest.raises(ValueError, match="video: missing"):
            load_manifest(_write_manifest(m))

    def test_missing_output_resolution(self):
        m = _minimal_manifest(video={"framerate": 30})
        with pytest.raises(ValueError, match="'resolution'"):
            load_manifest(_write_manifest(m))

    def test_odd_output_resolution(self):
        m = _minimal_manifest(video={"resolution": [641, 360]})
        with pytest.raises(BadResolution):
            load_manifest(_write_manifest(m))

    def test_not_a_mapping(self):
        path = _write_manifest(["just", "a", "list"])
        with pytest.raises(ValueError, match="must be a mapping"):
            load_manifest(path)

    def test_stream_missing_path(self):
        s = _stream()
        del s["path"]
        with pytest.raises(ValueError, match=r"Stream 0 \(cam\): missing required field 'path'"):
            load_manifest(_write_manifest(_minimal_manifest(streams=[s])))

    def test_stream_unknown_field(self):
        m = _minimal_manifest(streams=[_stream(volume=3)])
        with pytest.raises(ValueError, match="unknown fields"):
            load_manifest(_write_manifest(m))

    def test_duplicate_stream_ids(self):
        m = _minimal_manifest(streams=[_stream(), _stream(path="/tmp/other.mp4")])
        with pytest.raises(ValueError, match=r"Stream 1 \(cam\): duplicate id"):
            load_manifest(_write_manifest(m))

    def test_negative_offset(self):
        m = _minimal_manifest(streams=[_stream(offset=-1)])
        with pytest.raises(ValueError, match="offset"):
            load_manifest(_write_manifest(m))

    def test_bad_placement_prefixed(self):
        m = _minimal_manifest(streams=[_stream(placement={"scale": 0})])
        with pytest.raises(ValueError, match=r"Stream 0 \(cam\): placement scale"):
            load_manifest(_write_manifest(m))

    def test_stream_transformations_must_be_list(self):
        m = _minimal_manifest(streams=[_stream(transformations={"type": "cropping"})])
        with pytest.raises(ValueError, match=r"Stream 0 \(cam\): 'transformations' must be a list"):
            load_manifest(_write_manifest(m))

    def test_stream_transformation_missing_type(self):
        m = _minimal_manifest(streams=[_stream(transformations=[{"border_radius": 4}])])
        with pytest.raises(ValueError, match="transformation 0 missing 'type'"):
            load_manifest(_write_manifest(m))

    def test_unknown_object_type(self):
        scene = {"output": "x", "objects": [{"name": "x", "type": "hologram"}]}
        with pytest.raises(ValueError, match="Unknown type 'hologram'"):
            load_manifest(_write_manifest(_minimal_manifest(scene=scene)))

    def test_object_error_is_prefixed(self):
        scene = _grid_scene()
        del scene["objects"][2]["resolution"]
        with pytest.raises(ValueError, match=r"Scene object 2 \(layout\): missing required field 'resolution'"):
            load_manifest(_write_manifest(_minimal_manifest(scene=scene)))

    def test_video_without_pad(self):
        scene = _grid_scene()
        del scene["objects"][0]["input_pad"]
        with pytest.raises(ValueError, match="input_pad"):
            load_manifest(_write_manifest(_minimal_manifest(scene=scene)))

    def test_bad_object_name(self):
        scene = _grid_scene()
        scene["objects"][0]["name"] = ["cam", 1.5]
        with pytest.raises(ValueError, match="Bad object name"):
            load_manifest(_write_manifest(_minimal_manifest(scene=scene)))

    def test_transformation_without_type(self):
        scene = _grid_scene()
        scene["objects"][1]["transformations"] = [{"border_radius": 3}]
        with pytest.raises(ValueError, match="transformation 0 missing 'type'"):
            load_manifest(_write_manifest(_minimal_manifest(scene=scene)))


class TestParseFramerate:
    def test_integer(self):
        assert parse_framerate(25) == (25, 1)

    def test_ntsc_float(self):
        assert parse_framerate(29.97) == (30000, 1001)

    def test_pair(self):
        assert parse_framerate([60000, 1001]) == (60000, 1001)

    def test_rejects_bool_and_strings(self):
        with pytest.raises(ValueError, match="bad framerate"):
            parse_framerate(True)
        with pytest.raises(ValueError, match="bad framerate"):
            parse_framerate("fast")


class TestSceneFromManifest:
    def test_none_without_scene(self):
        config = load_manifest(_write_manifest(_minimal_manifest()))
        assert scene_from_manifest(config) is None

    def test_builds_objects_in_order(self):
        config = load_manifest(_write_manifest(_minimal_manifest(scene=_grid_scene())))
        scene = scene_from_manifest(config)
        assert scene.output == "main"
        names = [name for name, _ in scene.objects]
        assert names == ["cam", "rounded", "main"]

        video = scene.objects[0][1]
        texture = scene.objects[1][1]
        layout = scene.objects[2][1]
        assert video == Video("cam")
        assert isinstance(texture, Texture)
        assert texture.resolution == TRANSFORMED_INPUT
        assert texture.transformations[0].kind == "corners_rounding"
        assert dict(texture.transformations[0].params) == {"border_radius": 12}
        assert isinstance(layout, Layout)
        assert layout.resolution == Resolution(640, 360)
        assert layout.layout.kind == "grid"

    def test_layout_defaults_to_placement(self):
        scene = _grid_scene()
        del scene["objects"][2]["layout"]
        config = load_manifest(_write_manifest(_minimal_manifest(scene=scene)))
        layout = scene_from_manifest(config).objects[2][1]
        assert layout.layout.kind == "placement"

    def test_size_of_resolution(self):
        scene = _grid_scene()
        scene["objects"][1]["resolution"] = {"size_of": "cam"}
        config = load_manifest(_write_manifest(_minimal_manifest(scene=scene)))
        texture = scene_from_manifest(config).objects[1][1]
        assert texture.resolution == SizeOf("cam")

    def test_bad_size_of_mapping(self):
        scene = _grid_scene()
        scene["objects"][1]["resolution"] = {"size_of": "cam", "extra": 1}
        config = load_manifest(_write_manifest(_minimal_manifest(scene=scene)))
        with pytest.raises(ValueError, match="size_of"):
            scene_from_manifest(config)

    def test_layout_rejects_transformed_input(self):
        scene = _grid_scene()
        scene["objects"][2]["resolution"] = "transformed_input"
        config = load_manifest(_write_manifest(_minimal_manifest(scene=scene)))
        with pytest.raises(ValueError, match="fixed or size_of"):
            scene_from_manifest(config)

    def test_image_loaded_as_i420(self, tmp_path):
        logo = tmp_path / "logo.png"
        PILImage.fromarray(np.full((20, 40, 4), 255, dtype=np.uint8)).save(logo)

        scene = _grid_scene()
        scene["objects"].insert(0, {"name": "logo", "type": "image", "path": str(logo)})
        scene["objects"][-1]["inputs"]["right"] = "logo"
        config = load_manifest(_write_manifest(_minimal_manifest(scene=scene)))

        image = scene_from_manifest(config).objects[0][1]
        assert isinstance(image, Image)
        assert image.resolution == Resolution(40, 20)
        assert len(image.data) == 40 * 20 * 3 // 2

    def test_image_resized_to_resolution(self, tmp_path):
        logo = tmp_path / "logo.png"
        PILImage.fromarray(np.zeros((20, 40, 4), dtype=np.uint8)).save(logo)

        scene = _grid_scene()
        scene["objects"].insert(0, {
            "name": "logo", "type": "image", "path": str(logo), "resolution": [16, 8],
        })
        scene["objects"][-1]["inputs"]["right"] = "logo"
        config = load_manifest(_write_manifest(_minimal_manifest(scene=scene)))

        image = scene_from_manifest(config).objects[0][1]
        assert image.resolution == Resolution(16, 8)


class TestCheckScene:
    def test_valid_scene_passes(self):
        config = load_manifest(_write_manifest(_minimal_manifest(scene=_grid_scene())))
        assert check_scene(config).output == "main"

    def test_no_scene(self):
        config = load_manifest(_write_manifest(_minimal_manifest()))
        assert check_scene(config) is None

    def test_unused_object(self):
        scene = _grid_scene()
        scene["objects"].append({"name": "spare", "type": "video", "input_pad": "other"})
        config = load_manifest(_write_manifest(_minimal_manifest(scene=scene)))
        with pytest.raises(UnusedObject):
            check_scene(config)

    def test_cycle(self):
        scene = _grid_scene()
        scene["objects"][1]["input"] = "rounded"
        scene["objects"][2]["inputs"]["right"] = "cam"
        config = load_manifest(_write_manifest(_minimal_manifest(scene=scene)))
        with pytest.raises(CycleDetected):
            check_scene(config)

    def test_unknown_transformation(self):
        scene = _grid_scene()
        scene["objects"][1]["transformations"] = [{"type": "blur", "radius": 3}]
        config = load_manifest(_write_manifest(_minimal_manifest(scene=scene)))
        with pytest.raises(UnknownPlugin, match="blur"):
            check_scene(config)

    def test_unknown_layout(self):
        scene = _grid_scene()
        scene["objects"][2]["layout"] = {"type": "mosaic"}
        config = load_manifest(_write_manifest(_minimal_manifest(scene=scene)))
        with pytest.raises(UnknownPlugin, match="mosaic"):
            check_scene(config)

    def test_bad_plugin_params(self):
        scene = _grid_scene()
        scene["objects"][1]["transformations"] = [
            {"type": "cropping", "crop_size": [2.0, 2.0]},
        ]
        config = load_manifest(_write_manifest(_minimal_manifest(scene=scene)))
        with pytest.raises(ValueError, match="'rounded', transformation 'cropping'"):
            check_scene(config)

    def test_unknown_stream_transformation(self):
        m = _minimal_manifest(streams=[_stream(transformations=[{"type": "blur"}])])
        config = load_manifest(_write_manifest(m))
        with pytest.raises(UnknownPlugin, match="blur"):
            check_scene(config)

    def test_scene_returned_undecoded(self):
        config = load_manifest(_write_manifest(_minimal_manifest(scene=_grid_scene())))
        texture = dict(check_scene(config).objects)["rounded"]
        assert texture.transformations[0].params == {"border_radius": 12}


class TestValidatePaths:
    def test_all_present(self, tmp_path):
        video = tmp_path / "cam.mp4"
        video.touch()
        m = _minimal_manifest(streams=[_stream(path=str(video))])
        validate_paths(load_manifest(_write_manifest(m)))

    def test_reports_all_missing(self):
        m = _minimal_manifest(streams=[
            _stream(id="a", path="/nonexistent/a.mp4"),
            _stream(id="b", path="/nonexistent/b.mp4"),
        ])
        with pytest.raises(FileNotFoundError, match="Missing 2 file"):
            validate_paths(load_manifest(_write_manifest(m)))

    def test_checks_scene_images(self, tmp_path):
        video = tmp_path / "cam.mp4"
        video.touch()
        scene = _grid_scene()
        scene["objects"].insert(0, {"name": "logo", "type": "image", "path": "/nonexistent/logo.png"})
        m = _minimal_manifest(streams=[_stream(path=str(video))], scene=scene)
        with pytest.raises(FileNotFoundError, match="logo.png"):
            validate_paths(load_manifest(_write_manifest(m)))
