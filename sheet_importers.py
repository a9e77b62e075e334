import io
import json
import pathlib
import zipfile
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from PIL import Image

from animation_sheet import (
    Animation,
    AnimationImportError,
    AnimationSheet,
    DegenerateFrameError,
    Frame,
    MalformedEntryError,
    MissingSectionError,
    PlaybackDirection,
)

ASEPRITE_EXTENSIONS = (".aseprite", ".ase")
PYXEL_DOCUMENT = "docData.json"
VERSION_HINT = "Please use official Aseprite 1.1.1 or newer."


@dataclass
class ImportedSource:
    sheet: AnimationSheet
    # packed sheet image, when the source provides one
    image: Optional[Image.Image] = None


def _section(container: Any, key: str, path: str, source: str) -> Any:
    if not isinstance(container, dict) or key not in container or container[key] is None:
        raise MissingSectionError(path, source)
    return container[key]


def _read_int(entry: Any, key: str, context: str) -> int:
    try:
        value = entry[key]
    except (KeyError, TypeError, IndexError) as exc:
        raise MalformedEntryError(f"Missing '{key}' in {context}.") from exc
    if isinstance(value, bool):
        raise MalformedEntryError(f"Invalid '{key}' in {context}: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise MalformedEntryError(f"Invalid '{key}' in {context}: {value!r}") from exc


def _read_str(entry: Any, key: str, context: str) -> str:
    try:
        value = entry[key]
    except (KeyError, TypeError, IndexError) as exc:
        raise MalformedEntryError(f"Missing '{key}' in {context}.") from exc
    if not isinstance(value, str):
        raise MalformedEntryError(f"Invalid '{key}' in {context}: {value!r}")
    return value


def strip_aseprite_extension(filename: str) -> str:
    for extension in ASEPRITE_EXTENSIONS:
        filename = filename.replace(extension, "")
    return filename


def _aseprite_frame_entries(frames_json: Any) -> List[Tuple[Optional[str], Any]]:
    # json-array exports carry the filename inside the entry, json-hash exports use it as key
    if isinstance(frames_json, dict):
        return [(str(filename), entry) for filename, entry in frames_json.items()]
    if isinstance(frames_json, list):
        return [(None, entry) for entry in frames_json]
    raise MalformedEntryError(f"'frames' must be an array or object, got {type(frames_json).__name__}.")


def _parse_aseprite_frame(filename: Optional[str], entry: Any, index: int, sheet_height: int) -> Frame:
    context = f"frame {index}"
    if filename is None:
        filename = _read_str(entry, "filename", context)
    if not isinstance(entry, dict) or not isinstance(entry.get("frame"), dict):
        raise MalformedEntryError(f"Missing 'frame' rect in {context}.")

    rect = entry["frame"]
    width = _read_int(rect, "w", context)
    height = _read_int(rect, "h", context)
    x = _read_int(rect, "x", context)
    # source is top-left based, sprites are bottom-left based
    y = sheet_height - _read_int(rect, "y", context) - height

    duration = _read_int(entry, "duration", context)
    if duration < 0:
        raise MalformedEntryError(f"Negative duration in {context}: {duration}")

    trimmed = bool(entry.get("trimmed", False))
    trim_offset = (0, 0)
    original_size = None
    if trimmed:
        source_rect = entry.get("spriteSourceSize")
        source_size = entry.get("sourceSize")
        if not isinstance(source_rect, dict) or not isinstance(source_size, dict):
            raise MalformedEntryError(f"Trimmed {context} lacks 'spriteSourceSize' or 'sourceSize'.")
        source_width = _read_int(source_size, "w", context)
        source_height = _read_int(source_size, "h", context)
        trim_offset = (
            _read_int(source_rect, "x", context),
            source_height - _read_int(source_rect, "y", context) - _read_int(source_rect, "h", context),
        )
        original_size = (source_width, source_height)

    return Frame(
        name=strip_aseprite_extension(filename),
        x=x,
        y=y,
        width=width,
        height=height,
        duration_ms=duration,
        trimmed=trimmed,
        trim_offset=trim_offset,
        original_size=original_size,
    )


def _parse_aseprite_tag(tag: Any, index: int) -> Animation:
    context = f"frame tag {index}"
    direction = tag.get("direction") if isinstance(tag, dict) else None
    return Animation(
        name=_read_str(tag, "name", context),
        first_frame_index=_read_int(tag, "from", context),
        last_frame_index=_read_int(tag, "to", context),
        direction=PlaybackDirection.from_tag(direction),
    )


def parse_aseprite_data(root: Any, name: str = "", source: str = "Aseprite data") -> AnimationSheet:
    """Animation sheet from the JSON written by `aseprite --data ... --list-tags`."""
    meta = _section(root, "meta", "meta", source)
    size = _section(meta, "size", "meta.size", source)
    tags_json = _section(meta, "frameTags", "meta.frameTags", source)
    frames_json = _section(root, "frames", "frames", source)

    if not isinstance(tags_json, list):
        raise MalformedEntryError(f"'meta.frameTags' must be an array. {VERSION_HINT}")

    width = _read_int(size, "w", "meta.size")
    height = _read_int(size, "h", "meta.size")

    animations = [_parse_aseprite_tag(tag, index) for index, tag in enumerate(tags_json)]
    frames = [
        _parse_aseprite_frame(filename, entry, index, height)
        for index, (filename, entry) in enumerate(_aseprite_frame_entries(frames_json))
    ]

    sheet = AnimationSheet(width=width, height=height, frames=frames, animations=animations, name=name)
    return sheet.validate()


def read_aseprite_data(path: pathlib.Path) -> ImportedSource:
    try:
        with path.open("r", encoding="utf-8") as handle:
            root = json.load(handle)
    except json.JSONDecodeError as exc:
        raise AnimationImportError(f"Problem with JSON file {path}: {exc}") from exc

    sheet = parse_aseprite_data(root, name=path.stem, source=str(path))
    if not sheet.has_animations:
        print("No animations found in Aseprite data. Use Aseprite tags to assign names to animations.")

    image = None
    image_name = root["meta"].get("image")
    image_path = path.parent / image_name if image_name else None
    if image_path is not None and image_path.is_file():
        with Image.open(image_path) as source_image:
            image = source_image.convert("RGBA")
    else:
        print(f"Sprite sheet image for {path} not found, exporting metadata only.")

    return ImportedSource(sheet, image)


def _ordered_entries(mapping: Any, context: str) -> List[Tuple[int, Any]]:
    if not isinstance(mapping, dict):
        raise MalformedEntryError(f"'{context}' must be an object.")
    try:
        return sorted((int(key), value) for key, value in mapping.items())
    except ValueError as exc:
        raise MalformedEntryError(f"Non-numeric key in '{context}'.") from exc


def _frame_duration(base_duration: int, multipliers: Sequence[Any], position: int, context: str) -> int:
    if position >= len(multipliers):
        return base_duration
    multiplier = multipliers[position]
    if isinstance(multiplier, bool) or not isinstance(multiplier, (int, float)):
        raise MalformedEntryError(f"Invalid frame duration multiplier in {context}: {multiplier!r}")
    if multiplier == 100:
        return base_duration
    return int(round(base_duration * multiplier / 100.0))


def parse_pyxel_document(doc: Any, name: str = "", source: str = PYXEL_DOCUMENT) -> AnimationSheet:
    """Animation sheet for a PyxelEdit tile grid, one run of frames per animation."""
    canvas = _section(doc, "canvas", "canvas", source)
    tileset = _section(doc, "tileset", "tileset", source)
    animations_json = _section(doc, "animations", "animations", source)

    width = _read_int(canvas, "width", "canvas")
    height = _read_int(canvas, "height", "canvas")
    tile_width = _read_int(tileset, "tileWidth", "tileset")
    tile_height = _read_int(tileset, "tileHeight", "tileset")
    if tile_width <= 0 or tile_height <= 0 or width < tile_width or height < tile_height:
        raise DegenerateFrameError(
            f"Tile size {tile_width}x{tile_height} does not fit the {width}x{height} canvas of {source}."
        )
    column_count = width // tile_width
    row_count = height // tile_height

    frames: List[Frame] = []
    animations: List[Animation] = []
    for key, entry in _ordered_entries(animations_json, "animations"):
        context = f"animation {key}"
        animation_name = _read_str(entry, "name", context)
        base_tile = _read_int(entry, "baseTile", context)
        length = _read_int(entry, "length", context)
        base_duration = _read_int(entry, "frameDuration", context)
        multipliers = entry.get("frameDurationMultipliers") or []
        if length <= 0:
            raise MalformedEntryError(f"Animation '{animation_name}' has no frames.")
        if not isinstance(multipliers, list):
            raise MalformedEntryError(f"'frameDurationMultipliers' in {context} must be an array.")
        if base_tile < 0 or base_tile + length > column_count * row_count:
            raise MalformedEntryError(
                f"Animation '{animation_name}' uses tiles {base_tile}-{base_tile + length - 1} "
                f"but the canvas only holds {column_count * row_count} tiles."
            )

        first_index = len(frames)
        for position in range(length):
            tile_index = base_tile + position
            column = tile_index % column_count
            row = tile_index // column_count
            frames.append(Frame(
                name=f"{animation_name} {position}",
                x=column * tile_width,
                y=height - row * tile_height - tile_height,
                width=tile_width,
                height=tile_height,
                duration_ms=_frame_duration(base_duration, multipliers, position, context),
            ))

        animations.append(Animation(animation_name, first_index, len(frames) - 1))

    sheet = AnimationSheet(width=width, height=height, frames=frames, animations=animations, name=name)
    return sheet.validate()


def composite_layers(size: Tuple[int, int], layers: Sequence[Tuple[Image.Image, float]]) -> Image.Image:
    """Blend (image, opacity) layers onto a transparent canvas, bottom layer first."""
    width, height = size
    canvas = np.zeros((height, width, 4), dtype=np.float32)

    for image, opacity in layers:
        layer = np.asarray(image.convert("RGBA"), dtype=np.float32) / 255.0
        if layer.shape != canvas.shape:
            raise MalformedEntryError(
                f"Layer of size {image.width}x{image.height} does not match the {width}x{height} canvas."
            )
        alpha = layer[..., 3:4] * opacity
        canvas[..., :3] += (layer[..., :3] - canvas[..., :3]) * alpha
        canvas[..., 3:4] += (1.0 - canvas[..., 3:4]) * alpha

    pixels = np.clip(np.round(canvas * 255.0), 0, 255).astype(np.uint8)
    return Image.fromarray(pixels)


def read_pyxel_file(path: pathlib.Path) -> ImportedSource:
    try:
        archive = zipfile.ZipFile(path)
    except zipfile.BadZipFile as exc:
        raise AnimationImportError(f"{path} is not a PyxelEdit document.") from exc

    with archive:
        names = set(archive.namelist())
        if PYXEL_DOCUMENT not in names:
            raise MissingSectionError(PYXEL_DOCUMENT, str(path))
        try:
            doc = json.loads(archive.read(PYXEL_DOCUMENT).decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise AnimationImportError(f"Problem with {PYXEL_DOCUMENT} in {path}: {exc}") from exc

        sheet = parse_pyxel_document(doc, name=path.stem, source=str(path))

        layers: List[Tuple[Image.Image, float]] = []
        layers_json = _section(doc["canvas"], "layers", "canvas.layers", str(path))
        # layer 0 is the top one
        for key, layer in reversed(_ordered_entries(layers_json, "canvas.layers")):
            if not isinstance(layer, dict):
                raise MalformedEntryError(f"Invalid entry for layer {key} in {path}.")
            if layer.get("hidden", False):
                continue
            layer_file = f"layer{key}.png"
            if layer_file not in names:
                raise MissingSectionError(layer_file, str(path))
            with Image.open(io.BytesIO(archive.read(layer_file))) as layer_image:
                layers.append((layer_image.convert("RGBA"), _read_int(layer, "alpha", f"layer {key}") / 255.0))

    image = composite_layers((sheet.width, sheet.height), layers)
    return ImportedSource(sheet, image)


IMPORTERS: Dict[str, Callable[[pathlib.Path], ImportedSource]] = {
    ".json": read_aseprite_data,
    ".pyxel": read_pyxel_file,
}


def is_valid_asset(path: pathlib.Path) -> bool:
    return path.suffix.lower() in IMPORTERS


def import_source(path: pathlib.Path) -> ImportedSource:
    importer = IMPORTERS.get(path.suffix.lower())
    if importer is None:
        supported = ", ".join(sorted(IMPORTERS))
        raise AnimationImportError(f"Unsupported source file {path}; expected one of: {supported}")
    if not path.is_file():
        raise AnimationImportError(f"Source file not found: {path}")
    return importer(path)
