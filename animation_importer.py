import json
import math
import pathlib
import sys
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from animation_sheet import AnimationClip, AnimationImportError, assemble_clips
from sheet_importers import import_source
from sprite_sheet import (
    PivotAlignmentType,
    SpriteAlignment,
    SpriteMetaData,
    SpriteNamingScheme,
    SpriteSheetDescriptor,
    apply_previous_pivot,
    build_sprite_sheet,
)

CONFIG_PATH = "config.json"
METADATA_SUFFIX = ".sprites.json"
METADATA_VERSION = "Animation Importer Data v1"

DEFAULT_IMPORTER_CONFIG: Dict[str, Any] = {
    "source": None,
    "output_dir": None,
    "frame_rate": 60,
    "pixels_per_unit": 100,
    "sprite_alignment": "BottomCenter",
    "pivot_alignment_type": "Normalized",
    "custom_pivot": {
        "x": 0,
        "y": 0
    },
    "non_looping_animations": ["death"],
    "sprite_naming_scheme": "Classic",
    "keep_previous_pivots": True
}


class ConfigError(AnimationImportError):
    pass


@dataclass(frozen=True)
class ImporterConfig:
    source: Optional[str]
    output_dir: Optional[str]
    frame_rate: float
    pixels_per_unit: float
    sprite_alignment: SpriteAlignment
    pivot_alignment_type: PivotAlignmentType
    custom_pivot: Tuple[float, float]
    non_looping_animations: Tuple[str, ...]
    sprite_naming_scheme: SpriteNamingScheme
    keep_previous_pivots: bool


def deep_merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def load_config(path: pathlib.Path) -> Dict[str, Any]:
    if not path.exists() or path.stat().st_size == 0:
        return {}
    try:
        with path.open("r", encoding="utf-8") as handle:
            overrides = json.load(handle)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Config file {path} is not valid JSON: {exc}") from exc
    if not isinstance(overrides, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object.")
    return overrides


def parse_importer_config(config_json: Dict[str, Any], origin: str = CONFIG_PATH) -> ImporterConfig:
    merged = deep_merge(json.loads(json.dumps(DEFAULT_IMPORTER_CONFIG)), config_json)

    def _positive_number(key: str) -> float:
        value = merged.get(key)
        try:
            number = float(value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid {key} in {origin}: {value!r}") from exc
        if not math.isfinite(number) or number <= 0:
            raise ConfigError(f"{key} in {origin} must be a finite number greater than zero.")
        return number

    def _choice(enum_type, key: str):
        value = merged.get(key)
        try:
            return enum_type(value)
        except ValueError as exc:
            choices = ", ".join(member.value for member in enum_type)
            raise ConfigError(f"Invalid {key} in {origin}: {value!r} (expected one of {choices})") from exc

    custom_json = merged.get("custom_pivot")
    if not isinstance(custom_json, dict):
        raise ConfigError(f"custom_pivot in {origin} must be an object with 'x' and 'y'.")
    try:
        custom_pivot = (float(custom_json.get("x") or 0), float(custom_json.get("y") or 0))
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid custom_pivot in {origin}: {custom_json!r}") from exc

    keep_previous_pivots = merged.get("keep_previous_pivots")
    if not isinstance(keep_previous_pivots, bool):
        raise ConfigError(f"keep_previous_pivots in {origin} must be true or false, got {keep_previous_pivots!r}.")

    non_looping = merged.get("non_looping_animations")
    if non_looping is None:
        non_looping = []
    if not isinstance(non_looping, list) or not all(isinstance(name, str) for name in non_looping):
        raise ConfigError(f"non_looping_animations in {origin} must be a list of names.")

    return ImporterConfig(
        source=merged.get("source"),
        output_dir=merged.get("output_dir"),
        frame_rate=_positive_number("frame_rate"),
        pixels_per_unit=_positive_number("pixels_per_unit"),
        sprite_alignment=_choice(SpriteAlignment, "sprite_alignment"),
        pivot_alignment_type=_choice(PivotAlignmentType, "pivot_alignment_type"),
        custom_pivot=custom_pivot,
        non_looping_animations=tuple(non_looping),
        sprite_naming_scheme=_choice(SpriteNamingScheme, "sprite_naming_scheme"),
        keep_previous_pivots=keep_previous_pivots,
    )


def load_importer_config(path: pathlib.Path) -> ImporterConfig:
    return parse_importer_config(load_config(path), str(path))


def load_previous_first_sprite(path: pathlib.Path) -> Optional[SpriteMetaData]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
    except (OSError, json.JSONDecodeError):
        print("Old sprite metadata not found!")
        return None

    sprites_json = payload.get("Sprites") if isinstance(payload, dict) else None
    if not isinstance(sprites_json, list) or not sprites_json:
        return None

    first = sprites_json[0]
    try:
        pivot_x, pivot_y = (float(value) for value in first["Pivot"].split())
        return SpriteMetaData(
            name=first["Name"],
            rect=tuple(int(value) for value in first["Rect"].split()),
            alignment=SpriteAlignment(first["Alignment"]),
            pivot=(pivot_x, pivot_y),
        )
    except (KeyError, TypeError, ValueError, AttributeError):
        print(f"Old sprite metadata in {path} is unreadable, ignoring it.")
        return None


def export_import_metadata(
    descriptor: SpriteSheetDescriptor,
    clips: Sequence[AnimationClip],
    master_name: str,
) -> Dict[str, Any]:
    sprites: List[Dict[str, Any]] = []
    for sprite in descriptor.sprites:
        x, y, width, height = sprite.rect
        pivot_x, pivot_y = sprite.pivot
        sprites.append({
            "Name": sprite.name,
            "Rect": f"{x} {y} {width} {height}",
            "Alignment": sprite.alignment.value,
            "Pivot": f"{pivot_x:g} {pivot_y:g}",
        })

    clips_json: List[Dict[str, Any]] = []
    for clip in clips:
        clips_json.append({
            "Name": f"{master_name}_{clip.name}",
            "Animation": clip.name,
            "WrapMode": clip.wrap_mode,
            "Loop": clip.loop,
            "Keyframes": [
                {"Time": round(time, 6), "Sprite": image}
                for time, image in zip(clip.keyframe_times, clip.frame_images)
            ],
        })

    return {
        "Sprites": sprites,
        "Clips": clips_json,
        "MaxTextureSize": descriptor.max_texture_size,
        "PixelsPerUnit": descriptor.pixels_per_unit,
        "Version": METADATA_VERSION,
    }


def run_import(source_path: pathlib.Path, output_dir: pathlib.Path, config: ImporterConfig) -> Dict[str, Any]:
    imported = import_source(source_path)
    sheet = imported.sheet.with_loop_settings(config.non_looping_animations)

    descriptor = build_sprite_sheet(
        sheet,
        alignment=config.sprite_alignment,
        custom_offset=config.custom_pivot,
        pivot_type=config.pivot_alignment_type,
        pixels_per_unit=config.pixels_per_unit,
        naming_scheme=config.sprite_naming_scheme,
    )

    metadata_path = output_dir / (sheet.name + METADATA_SUFFIX)
    if config.keep_previous_pivots and metadata_path.exists():
        previous = load_previous_first_sprite(metadata_path)
        if previous is not None:
            print(f"Reusing pivot of previous import for {sheet.name}.")
            descriptor = apply_previous_pivot(descriptor, previous)

    clips = assemble_clips(sheet, config.frame_rate, descriptor.frame_sprite_names())
    payload = export_import_metadata(descriptor, clips, sheet.name)

    output_dir.mkdir(parents=True, exist_ok=True)
    if imported.image is not None:
        image_path = output_dir / (sheet.name + ".png")
        imported.image.save(image_path, format="PNG")
        print(f"Sprite sheet saved to {image_path.resolve()} with size {imported.image.width}x{imported.image.height} pixels.")

    with metadata_path.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=2)

    print(f"Imported {len(descriptor.sprites)} sprites and {len(clips)} animations from {source_path}.")
    print(f"Animation metadata saved to {metadata_path.resolve()}.")
    return payload


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = list(sys.argv[1:] if argv is None else argv)
    config = load_importer_config(pathlib.Path(CONFIG_PATH))

    source = args[0] if args else config.source
    if not source:
        raise SystemExit("No source given. Pass a file or set 'source' in config.json.")

    source_path = pathlib.Path(source)
    output_dir = pathlib.Path(config.output_dir) if config.output_dir else source_path.parent
    run_import(source_path, output_dir, config)


if __name__ == "__main__":
    main()
