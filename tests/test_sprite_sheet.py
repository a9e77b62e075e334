"""Tests for pivot computation and sprite sheet descriptors"""

import pytest

from animation_sheet import Animation, AnimationSheet, DegenerateFrameError, Frame
from sprite_sheet import (
    ALIGNMENT_PIVOTS,
    PivotAlignmentType,
    SpriteAlignment,
    SpriteMetaData,
    SpriteNamingScheme,
    apply_previous_pivot,
    build_sprite_sheet,
    compute_pivot,
    sprite_name,
)


def test_center_pivot_ignores_frame_size():
    """Center alignment is always the middle of the sprite"""
    for width, height in [(1, 1), (16, 32), (7, 300)]:
        frame = Frame("f", 0, 0, width, height, 100)
        assert compute_pivot(SpriteAlignment.CENTER, (0, 0), frame) == (0.5, 0.5)


def test_standard_alignments():
    """Corners and edges map to fixed coordinates with a bottom-left origin"""
    frame = Frame("f", 0, 0, 20, 10, 100)
    assert compute_pivot(SpriteAlignment.TOP_LEFT, (0, 0), frame) == (0.0, 1.0)
    assert compute_pivot(SpriteAlignment.BOTTOM_CENTER, (0, 0), frame) == (0.5, 0.0)
    assert compute_pivot(SpriteAlignment.RIGHT_CENTER, (0, 0), frame) == (1.0, 0.5)
    assert len(ALIGNMENT_PIVOTS) == 9


def test_custom_pivot_normalized_and_pixels():
    """Custom offsets are used as fractions or divided by the frame size"""
    frame = Frame("f", 0, 0, 16, 16, 100)
    assert compute_pivot(SpriteAlignment.CUSTOM, (0.25, 0.75), frame) == (0.25, 0.75)
    pixels = compute_pivot(SpriteAlignment.CUSTOM, (8, 4), frame, pivot_type=PivotAlignmentType.PIXELS)
    assert pixels == pytest.approx((0.5, 0.25))


def test_untouched_trim_matches_untrimmed_pivot():
    """A trim without offset or size change keeps the plain pivot"""
    frame = Frame("f", 0, 0, 24, 12, 100, trimmed=True, trim_offset=(0, 0), original_size=(24, 12))
    for alignment in ALIGNMENT_PIVOTS:
        trimmed = compute_pivot(alignment, (0, 0), frame)
        plain = compute_pivot(alignment, (0, 0), frame, is_trimmed=False)
        assert trimmed == pytest.approx(plain)


def test_trimmed_pivot_keeps_source_anchor():
    """Trimmed frames keep the anchor of the original canvas"""
    frame = Frame("f", 0, 0, 16, 20, 100, trimmed=True, trim_offset=(4, 2), original_size=(32, 32))
    pivot = compute_pivot(SpriteAlignment.BOTTOM_CENTER, (0, 0), frame)

    assert pivot == pytest.approx((0.75, -0.1))
    # back in source pixels the anchor is still the bottom center
    assert 4 + pivot[0] * 16 == pytest.approx(16)
    assert 2 + pivot[1] * 20 == pytest.approx(0)


def test_trimmed_custom_pixel_pivot():
    """Pixel offsets on trimmed frames are measured on the source canvas"""
    frame = Frame("f", 0, 0, 10, 10, 100, trimmed=True, trim_offset=(5, 5), original_size=(20, 20))
    pivot = compute_pivot(SpriteAlignment.CUSTOM, (10, 10), frame, pivot_type=PivotAlignmentType.PIXELS)
    assert pivot == pytest.approx((0.5, 0.5))


def test_zero_sized_frames_rejected():
    """Degenerate frames fail before any division"""
    with pytest.raises(DegenerateFrameError):
        compute_pivot(SpriteAlignment.CENTER, (0, 0), Frame("f", 0, 0, 0, 8, 100))
    frame = Frame("f", 0, 0, 8, 8, 100)
    with pytest.raises(DegenerateFrameError):
        compute_pivot(SpriteAlignment.CENTER, (0, 0), frame, is_trimmed=True, source_size=(0, 8))


def test_sprite_naming_schemes():
    """Each naming scheme formats file, animation and position"""
    idle = Animation("idle", 2, 5)
    assert sprite_name(SpriteNamingScheme.CLASSIC, "hero", 3, idle) == "hero 3"
    assert sprite_name(SpriteNamingScheme.FILE_ANIMATION_ZERO, "hero", 3, idle) == "hero_idle_1"
    assert sprite_name(SpriteNamingScheme.FILE_ANIMATION_ONE, "hero", 3, idle) == "hero_idle_2"
    assert sprite_name(SpriteNamingScheme.ANIMATION_ZERO, "hero", 2, idle) == "idle_0"
    assert sprite_name(SpriteNamingScheme.ANIMATION_ONE, "hero", 2, idle) == "idle_1"
    assert sprite_name(SpriteNamingScheme.ANIMATION_ONE, "hero", 9) == "hero 9"


def test_build_sprite_sheet_deduplicates_merged_frames():
    """Frames sharing a packed rect share one sprite"""
    frames = [
        Frame("a", 0, 0, 16, 16, 100),
        Frame("b", 16, 0, 16, 16, 100),
        Frame("c", 0, 0, 16, 16, 100),
    ]
    sheet = AnimationSheet(32, 16, frames, [Animation("idle", 0, 2)], name="hero")

    descriptor = build_sprite_sheet(sheet, SpriteAlignment.CENTER, pixels_per_unit=32)

    assert len(descriptor.sprites) == 2
    assert descriptor.frame_sprites == [0, 1, 0]
    assert descriptor.frame_sprite_names() == ["hero 0", "hero 1", "hero 0"]
    assert descriptor.sprite_for_frame(2).rect == (0, 0, 16, 16)
    assert descriptor.max_texture_size == 32
    assert descriptor.pixels_per_unit == 32


def test_build_sprite_sheet_names_by_animation():
    """Naming schemes use the animation owning each frame"""
    frames = [Frame(f"f{i}", i * 8, 0, 8, 8, 100) for i in range(5)]
    sheet = AnimationSheet(40, 8, frames, [Animation("idle", 0, 1), Animation("run", 2, 3)], name="hero")

    descriptor = build_sprite_sheet(sheet, naming_scheme=SpriteNamingScheme.FILE_ANIMATION_ZERO)

    assert [sprite.name for sprite in descriptor.sprites] == [
        "hero_idle_0", "hero_idle_1", "hero_run_0", "hero_run_1", "hero 4",
    ]


def test_trimmed_sprites_switch_to_custom_alignment():
    """Shifted pivots are stored as custom alignment"""
    frames = [
        Frame("a", 0, 0, 16, 16, 100),
        Frame("b", 16, 0, 8, 16, 100, trimmed=True, trim_offset=(8, 0), original_size=(16, 16)),
    ]
    sheet = AnimationSheet(24, 16, frames, [Animation("idle", 0, 1)], name="hero")

    descriptor = build_sprite_sheet(sheet, SpriteAlignment.BOTTOM_CENTER)

    assert descriptor.sprites[0].alignment is SpriteAlignment.BOTTOM_CENTER
    assert descriptor.sprites[0].pivot == (0.5, 0.0)
    assert descriptor.sprites[1].alignment is SpriteAlignment.CUSTOM
    assert descriptor.sprites[1].pivot == pytest.approx((0.0, 0.0))


def test_apply_previous_pivot():
    """A previous import's pivot is reused for every sprite"""
    frames = [Frame(f"f{i}", i * 8, 0, 8, 8, 100) for i in range(2)]
    sheet = AnimationSheet(16, 8, frames, [], name="hero")
    descriptor = build_sprite_sheet(sheet)
    previous = SpriteMetaData("old", (0, 0, 8, 8), SpriteAlignment.CUSTOM, (0.3, 0.1))

    updated = apply_previous_pivot(descriptor, previous)

    assert all(sprite.pivot == (0.3, 0.1) for sprite in updated.sprites)
    assert all(sprite.alignment is SpriteAlignment.CUSTOM for sprite in updated.sprites)
    assert descriptor.sprites[0].pivot == (0.5, 0.0)
