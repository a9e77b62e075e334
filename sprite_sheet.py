from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, List, Optional, Tuple

from animation_sheet import Animation, AnimationSheet, DegenerateFrameError, Frame


class SpriteAlignment(Enum):
    CENTER = "Center"
    TOP_LEFT = "TopLeft"
    TOP_CENTER = "TopCenter"
    TOP_RIGHT = "TopRight"
    LEFT_CENTER = "LeftCenter"
    RIGHT_CENTER = "RightCenter"
    BOTTOM_LEFT = "BottomLeft"
    BOTTOM_CENTER = "BottomCenter"
    BOTTOM_RIGHT = "BottomRight"
    CUSTOM = "Custom"


# bottom-left origin, like the target engine's sprite space
ALIGNMENT_PIVOTS: Dict[SpriteAlignment, Tuple[float, float]] = {
    SpriteAlignment.CENTER: (0.5, 0.5),
    SpriteAlignment.TOP_LEFT: (0.0, 1.0),
    SpriteAlignment.TOP_CENTER: (0.5, 1.0),
    SpriteAlignment.TOP_RIGHT: (1.0, 1.0),
    SpriteAlignment.LEFT_CENTER: (0.0, 0.5),
    SpriteAlignment.RIGHT_CENTER: (1.0, 0.5),
    SpriteAlignment.BOTTOM_LEFT: (0.0, 0.0),
    SpriteAlignment.BOTTOM_CENTER: (0.5, 0.0),
    SpriteAlignment.BOTTOM_RIGHT: (1.0, 0.0),
}


class PivotAlignmentType(Enum):
    NORMALIZED = "Normalized"
    PIXELS = "Pixels"


class SpriteNamingScheme(Enum):
    CLASSIC = "Classic"                         # hero 0
    FILE_ANIMATION_ZERO = "FileAnimationZero"   # hero_idle_0
    FILE_ANIMATION_ONE = "FileAnimationOne"     # hero_idle_1
    ANIMATION_ZERO = "AnimationZero"            # idle_0
    ANIMATION_ONE = "AnimationOne"              # idle_1


@dataclass
class SpriteMetaData:
    name: str
    rect: Tuple[int, int, int, int]
    alignment: SpriteAlignment
    pivot: Tuple[float, float]


@dataclass
class SpriteSheetDescriptor:
    sprites: List[SpriteMetaData]
    # sprite index for every frame of the source sheet
    frame_sprites: List[int]
    max_texture_size: int
    pixels_per_unit: float

    def sprite_for_frame(self, frame_index: int) -> SpriteMetaData:
        return self.sprites[self.frame_sprites[frame_index]]

    def frame_sprite_names(self) -> List[str]:
        return [self.sprites[index].name for index in self.frame_sprites]


def ensure_frame_area(frame: Frame, source_size: Tuple[int, int]) -> None:
    source_width, source_height = source_size
    if frame.width <= 0 or frame.height <= 0 or source_width <= 0 or source_height <= 0:
        raise DegenerateFrameError(
            f"Frame '{frame.name}' has no area ({frame.width}x{frame.height}, "
            f"source {source_width}x{source_height}); cannot compute its pivot."
        )


def alignment_pivot(
    alignment: SpriteAlignment,
    custom_offset: Tuple[float, float],
    size: Tuple[int, int],
    pivot_type: PivotAlignmentType,
) -> Tuple[float, float]:
    if alignment is not SpriteAlignment.CUSTOM:
        return ALIGNMENT_PIVOTS[alignment]

    custom_x, custom_y = custom_offset
    if pivot_type is PivotAlignmentType.PIXELS:
        width, height = size
        return (custom_x / width, custom_y / height)
    return (float(custom_x), float(custom_y))


def compute_pivot(
    alignment: SpriteAlignment,
    custom_offset: Tuple[float, float],
    frame: Frame,
    is_trimmed: Optional[bool] = None,
    source_size: Optional[Tuple[int, int]] = None,
    pivot_type: PivotAlignmentType = PivotAlignmentType.NORMALIZED,
) -> Tuple[float, float]:
    """Normalized pivot; trimmed frames keep the anchor of their untrimmed canvas."""
    if is_trimmed is None:
        is_trimmed = frame.trimmed
    if source_size is None:
        source_size = frame.source_size
    ensure_frame_area(frame, source_size)

    if not is_trimmed:
        return alignment_pivot(alignment, custom_offset, (frame.width, frame.height), pivot_type)

    source_width, source_height = source_size
    pivot_x, pivot_y = alignment_pivot(alignment, custom_offset, source_size, pivot_type)
    trim_x, trim_y = frame.trim_offset
    return (
        (pivot_x - trim_x / source_width) * source_width / frame.width,
        (pivot_y - trim_y / source_height) * source_height / frame.height,
    )


def sprite_name(
    scheme: SpriteNamingScheme,
    file_name: str,
    frame_index: int,
    animation: Optional[Animation] = None,
) -> str:
    if animation is None or scheme is SpriteNamingScheme.CLASSIC:
        return f"{file_name} {frame_index}"

    position = frame_index - animation.first_frame_index
    if scheme is SpriteNamingScheme.FILE_ANIMATION_ZERO:
        return f"{file_name}_{animation.name}_{position}"
    if scheme is SpriteNamingScheme.FILE_ANIMATION_ONE:
        return f"{file_name}_{animation.name}_{position + 1}"
    if scheme is SpriteNamingScheme.ANIMATION_ZERO:
        return f"{animation.name}_{position}"
    return f"{animation.name}_{position + 1}"


def _owning_animations(sheet: AnimationSheet) -> List[Optional[Animation]]:
    owners: List[Optional[Animation]] = [None] * len(sheet.frames)
    for animation in sheet.animations:
        for index in range(animation.first_frame_index, animation.last_frame_index + 1):
            if owners[index] is None:
                owners[index] = animation
    return owners


def build_sprite_sheet(
    sheet: AnimationSheet,
    alignment: SpriteAlignment = SpriteAlignment.BOTTOM_CENTER,
    custom_offset: Tuple[float, float] = (0.0, 0.0),
    pivot_type: PivotAlignmentType = PivotAlignmentType.NORMALIZED,
    pixels_per_unit: float = 100.0,
    naming_scheme: SpriteNamingScheme = SpriteNamingScheme.CLASSIC,
    file_name: Optional[str] = None,
) -> SpriteSheetDescriptor:
    """Sprite metadata per distinct packed image; merged duplicate frames share one sprite."""
    sheet.validate()
    base_name = sheet.name if file_name is None else file_name
    owners = _owning_animations(sheet)

    sprites: List[SpriteMetaData] = []
    frame_sprites: List[int] = []
    seen: Dict[Tuple, int] = {}

    for index, frame in enumerate(sheet.frames):
        key = (frame.rect, frame.trimmed, frame.trim_offset, frame.source_size)
        if key in seen:
            frame_sprites.append(seen[key])
            continue

        pivot = compute_pivot(alignment, custom_offset, frame, pivot_type=pivot_type)
        sprite_alignment = alignment
        if alignment is not SpriteAlignment.CUSTOM and pivot != ALIGNMENT_PIVOTS[alignment]:
            sprite_alignment = SpriteAlignment.CUSTOM

        seen[key] = len(sprites)
        frame_sprites.append(len(sprites))
        sprites.append(SpriteMetaData(
            name=sprite_name(naming_scheme, base_name, index, owners[index]),
            rect=frame.rect,
            alignment=sprite_alignment,
            pivot=pivot,
        ))

    return SpriteSheetDescriptor(sprites, frame_sprites, sheet.max_texture_size, pixels_per_unit)


def apply_previous_pivot(descriptor: SpriteSheetDescriptor, previous: SpriteMetaData) -> SpriteSheetDescriptor:
    # every sprite is assumed to share the pivot of the first one imported before
    sprites = [replace(sprite, alignment=previous.alignment, pivot=previous.pivot) for sprite in descriptor.sprites]
    return replace(descriptor, sprites=sprites)
