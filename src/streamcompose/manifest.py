"""Scene manifest loader.

Parses YAML manifests describing an output format, the input streams
feeding a session and, optionally, the scene graph composing them:

  video:   output resolution, framerate, pixel format, background
  paths:   ${name} variables usable in any string below
  streams: one entry per input file (id, path, resolution, fps,
           optional placement, transformations and start offset)
  scene:   output name + ordered object list (video / image / texture /
           layout), mirroring streamcompose.scene

Every problem is reported as ValueError with a prefix locating the
offending entry ("Stream 2 (cam2): ...", "Scene object 4 (texture): ...").
Graph-level rules (unique names, cycles, unused objects) are left to
validate_scene(); see check_scene().
"""

from fractions import Fraction
from pathlib import Path

import yaml

from .colour import rgba_to_i420
from .common import load_image, parse_hex_color, resolve_path_vars
from .geometry import RawVideo, Resolution, check_raw_video
from .layouts import parse_placement
from .plugins import PluginRegistry, default_registry
from .scene import (
    TRANSFORMED_INPUT,
    Image,
    Layout,
    PluginSpec,
    SceneDescription,
    SizeOf,
    Texture,
    Video,
    object_name,
)
from .validation import validate_scene


# ── Valid object types and their fields ───────────────────────────

VALID_OBJECT_TYPES = {"video", "image", "texture", "layout"}

OBJECT_FIELDS = {
    "video": {"name", "type", "input_pad"},
    "image": {"name", "type", "path", "resolution"},
    "texture": {"name", "type", "input", "transformations", "resolution"},
    "layout": {"name", "type", "inputs", "layout", "resolution"},
}

STREAM_FIELDS = {
    "id", "path", "resolution", "fps", "placement", "offset", "transformations",
}


# ── Manifest loading ──────────────────────────────────────────────


def load_manifest(manifest_path: str | Path) -> dict:
    """Load, validate, and normalize a scene manifest.

    Processing pipeline:
      1. Parse YAML.
      2. Parse video settings into an output RawVideo + background RGB.
      3. Resolve ${path} variables in every stream and scene string.
      4. Validate and normalize each stream entry.
      5. Validate the shape of each scene object.

    Args:
        manifest_path: Path to the YAML manifest file.

    Returns:
        Normalized config dict with keys "video", "streams", "scene".

    Raises:
        ValueError: Missing or malformed field.
        FileNotFoundError: Missing manifest file.
    """
    with open(manifest_path) as f:
        raw = yaml.safe_load(f)
    if not isinstance(raw, dict):
        raise ValueError(f"{manifest_path}: manifest must be a mapping")

    config = {"video": _parse_video(raw.get("video"))}
    paths = raw.get("paths") or {}

    streams = []
    ids_seen = {}
    for i, entry in enumerate(raw.get("streams") or []):
        stream = _parse_stream(_resolve_paths(entry, paths), i, config["video"]["format"])
        if stream["id"] in ids_seen:
            raise ValueError(
                f"Stream {i} ({stream['id']}): duplicate id "
                f"(also used by stream {ids_seen[stream['id']]})"
            )
        ids_seen[stream["id"]] = i
        streams.append(stream)
    config["streams"] = streams

    scene = raw.get("scene")
    config["scene"] = None if scene is None else _parse_scene(_resolve_paths(scene, paths))
    return config


def _resolve_paths(obj, paths: dict):
    """Recursively resolve ${var} in all string values."""
    if isinstance(obj, str):
        return resolve_path_vars(obj, paths)
    elif isinstance(obj, dict):
        return {k: _resolve_paths(v, paths) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_resolve_paths(item, paths) for item in obj]
    return obj


def _parse_resolution(value, prefix: str) -> Resolution:
    if (
        not isinstance(value, (list, tuple)) or len(value) != 2
        or not all(isinstance(v, int) and v > 0 for v in value)
    ):
        raise ValueError(f"{prefix}: resolution must be [width, height], got {value!r}")
    return Resolution(*value)


def parse_framerate(value, prefix: str = "video") -> tuple[int, int]:
    """Accept 30, 29.97 or [30000, 1001] and return (numerator, denominator)."""
    if isinstance(value, bool):
        raise ValueError(f"{prefix}: bad framerate {value!r}")
    if isinstance(value, int):
        return (value, 1)
    if isinstance(value, float) and value > 0:
        # 29.97, 23.976, 59.94 are the NTSC n*1000/1001 rates.
        ntsc = round(value * 1001)
        if ntsc % 1000 == 0 and abs(value * 1001 - ntsc) < 0.1:
            return (ntsc, 1001)
        frac = Fraction(str(value)).limit_denominator(1001)
        return (frac.numerator, frac.denominator)
    if isinstance(value, (list, tuple)) and len(value) == 2:
        return (value[0], value[1])
    raise ValueError(f"{prefix}: bad framerate {value!r}")


def _parse_video(video) -> dict:
    if not isinstance(video, dict):
        raise ValueError("video: missing required section")
    if "resolution" not in video:
        raise ValueError("video: missing required field 'resolution'")

    w, h = _parse_resolution(video["resolution"], "video")
    fmt = RawVideo(
        width=w,
        height=h,
        pixel_format=video.get("pixel_format", "I420"),
        framerate=parse_framerate(video.get("framerate", 30), "video"),
    )
    return {
        "format": check_raw_video(fmt),
        "background": parse_hex_color(video.get("background", "#000000")),
    }


def _parse_stream(entry, index: int, output_format: RawVideo) -> dict:
    if not isinstance(entry, dict):
        raise ValueError(f"Stream {index}: entry must be a mapping")
    prefix = f"Stream {index} ({entry.get('id', '?')})"

    for key in ("id", "path", "resolution"):
        if key not in entry:
            raise ValueError(f"{prefix}: missing required field '{key}'")
    unknown = set(entry) - STREAM_FIELDS
    if unknown:
        raise ValueError(f"{prefix}: unknown fields {sorted(unknown)}")

    w, h = _parse_resolution(entry["resolution"], prefix)
    framerate = output_format.framerate
    if "fps" in entry:
        framerate = parse_framerate(entry["fps"], prefix)
    fmt = check_raw_video(RawVideo(w, h, "I420", framerate))

    placement = None
    if entry.get("placement") is not None:
        try:
            placement = parse_placement(entry["placement"])
        except ValueError as exc:
            raise ValueError(f"{prefix}: {exc}") from None

    offset = entry.get("offset", 0)
    if not isinstance(offset, (int, float)) or offset < 0:
        raise ValueError(f"{prefix}: offset must be a number of seconds >= 0")

    transformations = _transformation_list(entry.get("transformations", []), prefix)

    return {
        "id": str(entry["id"]),
        "path": entry["path"],
        "format": fmt,
        "placement": placement,
        "offset": offset,
        "transformations": tuple(_plugin_spec(spec) for spec in transformations),
    }


# ── Scene section ─────────────────────────────────────────────────


def _parse_scene(scene) -> dict:
    if not isinstance(scene, dict):
        raise ValueError("scene: must be a mapping with 'output' and 'objects'")
    if "output" not in scene:
        raise ValueError("scene: missing required field 'output'")
    objects = scene.get("objects")
    if not isinstance(objects, list):
        raise ValueError("scene: 'objects' must be a list")

    for i, obj in enumerate(objects):
        _validate_object(obj, i)
    return {"output": object_name(scene["output"]), "objects": objects}


def _validate_object(obj, index: int) -> None:
    if not isinstance(obj, dict):
        raise ValueError(f"Scene object {index}: entry must be a mapping")
    kind = obj.get("type")
    if kind not in VALID_OBJECT_TYPES:
        raise ValueError(
            f"Scene object {index}: Unknown type '{kind}'. "
            f"Valid: {sorted(VALID_OBJECT_TYPES)}"
        )
    prefix = f"Scene object {index} ({kind})"

    if "name" not in obj:
        raise ValueError(f"{prefix}: missing required field 'name'")
    try:
        object_name(obj["name"])
    except ValueError as exc:
        raise ValueError(f"{prefix}: {exc}") from None

    unknown = set(obj) - OBJECT_FIELDS[kind]
    if unknown:
        raise ValueError(f"{prefix}: unknown fields {sorted(unknown)}")

    if kind == "video":
        if not isinstance(obj.get("input_pad"), str):
            raise ValueError(f"{prefix}: 'input_pad' must be a stream id")
    elif kind == "image":
        if "path" not in obj:
            raise ValueError(f"{prefix}: missing required field 'path'")
        if obj.get("resolution") is not None:
            _parse_resolution(obj["resolution"], prefix)
    elif kind == "texture":
        if "input" not in obj:
            raise ValueError(f"{prefix}: missing required field 'input'")
        _transformation_list(obj.get("transformations", []), prefix)
    elif kind == "layout":
        inputs = obj.get("inputs")
        if not isinstance(inputs, dict) or not inputs:
            raise ValueError(f"{prefix}: 'inputs' must map slot names to objects")
        if "resolution" not in obj:
            raise ValueError(f"{prefix}: missing required field 'resolution'")
        layout = obj.get("layout", {"type": "placement"})
        if not isinstance(layout, dict) or "type" not in layout:
            raise ValueError(f"{prefix}: 'layout' must be a mapping with a 'type'")


def _transformation_list(transformations, prefix: str) -> list:
    if not isinstance(transformations, list):
        raise ValueError(f"{prefix}: 'transformations' must be a list")
    for j, spec in enumerate(transformations):
        if not isinstance(spec, dict) or "type" not in spec:
            raise ValueError(f"{prefix}: transformation {j} missing 'type'")
    return transformations


def _resolution_field(value, prefix: str):
    """transformed_input, [w, h] or {size_of: name}."""
    if value == TRANSFORMED_INPUT:
        return value
    if isinstance(value, dict):
        if set(value) != {"size_of"}:
            raise ValueError(f"{prefix}: resolution mapping must be {{size_of: name}}")
        return SizeOf(value["size_of"])
    return _parse_resolution(value, prefix)


def _plugin_spec(raw: dict) -> PluginSpec:
    params = {k: v for k, v in raw.items() if k != "type"}
    return PluginSpec(raw["type"], params)


def scene_from_manifest(config: dict) -> SceneDescription | None:
    """Build the SceneDescription for a loaded manifest.

    Images are loaded from disk (Pillow) and converted to I420. Returns
    None when the manifest has no scene section.

    Raises:
        ValueError: Bad resolution field.
        FileNotFoundError: An image file is missing.
    """
    scene = config.get("scene")
    if scene is None:
        return None

    objects = []
    for i, obj in enumerate(scene["objects"]):
        kind = obj["type"]
        prefix = f"Scene object {i} ({kind})"
        name = object_name(obj["name"])

        if kind == "video":
            item = Video(obj["input_pad"])
        elif kind == "image":
            resolution = obj.get("resolution")
            pixels = load_image(obj["path"], resolution)
            h, w = pixels.shape[:2]
            item = Image(rgba_to_i420(pixels), Resolution(w, h))
        elif kind == "texture":
            item = Texture(
                input=obj["input"],
                transformations=tuple(
                    _plugin_spec(spec) for spec in obj.get("transformations", [])
                ),
                resolution=_resolution_field(
                    obj.get("resolution", TRANSFORMED_INPUT), prefix,
                ),
            )
        else:
            resolution = obj["resolution"]
            if resolution == TRANSFORMED_INPUT:
                raise ValueError(f"{prefix}: layouts need a fixed or size_of resolution")
            item = Layout(
                inputs=obj["inputs"],
                resolution=_resolution_field(resolution, prefix),
                layout=_plugin_spec(obj.get("layout", {"type": "placement"})),
            )
        objects.append((name, item))

    return SceneDescription(objects=tuple(objects), output=scene["output"])


def check_scene(
    config: dict, registry: PluginRegistry | None = None,
) -> SceneDescription | None:
    """Build the manifest's scene and check it the way a session would.

    Runs the structural validator, then decodes every plugin reference
    (scene transformations and layouts, per-stream transformations)
    against registry, so unknown effect types and bad params surface
    here rather than on the first compose.

    Raises:
        SceneError: structural problem, or an unregistered plugin key.
        ValueError: a plugin rejected its params.
    """
    registry = registry if registry is not None else default_registry()
    for stream in config["streams"]:
        registry.decode_transformations(stream["id"], stream["transformations"])

    description = scene_from_manifest(config)
    if description is not None:
        validate_scene(description)
        registry.decode_scene(description)
    return description


# ── Path validation ───────────────────────────────────────────────


def validate_paths(config: dict) -> None:
    """Check that all stream and image paths in the manifest exist on disk.

    Reports all missing paths at once.

    Raises:
        FileNotFoundError: Lists all missing files.
    """
    candidates = [stream["path"] for stream in config["streams"]]
    if config.get("scene") is not None:
        candidates += [
            obj["path"] for obj in config["scene"]["objects"]
            if obj.get("type") == "image"
        ]

    missing = [p for p in candidates if not Path(p).exists()]
    if missing:
        msg = f"Missing {len(missing)} file(s):\n"
        for p in missing:
            msg += f"  - {p}\n"
        raise FileNotFoundError(msg)
