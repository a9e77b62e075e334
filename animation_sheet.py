import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple


class AnimationImportError(SystemExit):
    """Base of every import failure; ends a command-line run with its message."""


class MissingSectionError(AnimationImportError):
    def __init__(self, section: str, source: str = "animation data") -> None:
        super().__init__(f"No '{section}' found in {source}.")
        self.section = section


class MalformedEntryError(AnimationImportError):
    pass


class FrameRangeError(AnimationImportError):
    pass


class DegenerateFrameError(AnimationImportError):
    pass


class PatternError(AnimationImportError):
    pass


class PlaybackDirection(Enum):
    FORWARD = "forward"
    REVERSE = "reverse"
    PINGPONG = "pingpong"

    @classmethod
    def from_tag(cls, value: Optional[str]) -> "PlaybackDirection":
        if value == "reverse":
            return cls.REVERSE
        if value == "pingpong":
            return cls.PINGPONG
        return cls.FORWARD


@dataclass(frozen=True)
class Frame:
    name: str
    x: int
    y: int
    width: int
    height: int
    duration_ms: int
    trimmed: bool = False
    # origin of the packed rect inside the untrimmed canvas, bottom-left based
    trim_offset: Tuple[int, int] = (0, 0)
    original_size: Optional[Tuple[int, int]] = None

    @property
    def rect(self) -> Tuple[int, int, int, int]:
        return (self.x, self.y, self.width, self.height)

    @property
    def source_size(self) -> Tuple[int, int]:
        if self.original_size is None:
            return (self.width, self.height)
        return self.original_size

    @property
    def duration(self) -> float:
        return self.duration_ms / 1000.0


@dataclass(frozen=True)
class Animation:
    name: str
    first_frame_index: int
    last_frame_index: int
    direction: PlaybackDirection = PlaybackDirection.FORWARD
    is_looping: bool = True

    @property
    def frame_count(self) -> int:
        return self.last_frame_index - self.first_frame_index + 1

    def frame_sequence(self) -> List[int]:
        """Frame indices in play order; ping-pong repeats only the interior frames."""
        forward = list(range(self.first_frame_index, self.last_frame_index + 1))
        if self.direction is PlaybackDirection.REVERSE:
            return forward[::-1]
        if self.direction is PlaybackDirection.PINGPONG:
            return forward + forward[-2:0:-1]
        return forward

    def __str__(self) -> str:
        return f"{self.name} ({self.first_frame_index}-{self.last_frame_index})"


def check_frame_range(animation: Animation, frame_total: int) -> None:
    first = animation.first_frame_index
    last = animation.last_frame_index
    if first < 0 or first > last or last >= frame_total:
        raise FrameRangeError(
            f"Animation '{animation.name}' uses frames {first}-{last} "
            f"but the sheet only has {frame_total} frames."
        )


@dataclass(frozen=True)
class Keyframe:
    time: float
    frame_index: int


@dataclass(frozen=True)
class Timeline:
    keyframes: List[Keyframe]
    # summed frame durations, i.e. the clip length
    duration: float

    @property
    def times(self) -> List[float]:
        return [keyframe.time for keyframe in self.keyframes]

    @property
    def frame_indices(self) -> List[int]:
        return [keyframe.frame_index for keyframe in self.keyframes]

    def __len__(self) -> int:
        return len(self.keyframes)

    def __iter__(self) -> Iterator[Keyframe]:
        return iter(self.keyframes)

    def __getitem__(self, index: int) -> Keyframe:
        return self.keyframes[index]


def build_timeline(animation: Animation, frames: Sequence[Frame], frame_rate: float) -> Timeline:
    """Keyframes at running frame-duration sums, plus the last frame held one tick before the end."""
    check_frame_range(animation, len(frames))
    if frame_rate <= 0:
        raise AnimationImportError("frame_rate must be greater than zero.")

    sequence = animation.frame_sequence()
    keyframes: List[Keyframe] = []
    time_count = 0.0
    for frame_index in sequence:
        keyframes.append(Keyframe(time_count, frame_index))
        time_count += frames[frame_index].duration

    keyframes.append(Keyframe(time_count - 1.0 / frame_rate, sequence[-1]))
    return Timeline(keyframes, time_count)


def build_non_looping_pattern(patterns: Sequence[str]) -> Optional[re.Pattern]:
    fragments = [pattern for pattern in patterns if pattern]
    if not fragments:
        return None
    # word boundaries make plain names match as whole words only
    combined = "|".join(rf"\b(?:{fragment})\b" for fragment in fragments)
    try:
        return re.compile(combined)
    except re.error as exc:
        raise PatternError(f"Invalid non-looping animation pattern in {fragments!r}: {exc}") from exc


def classify_looping(animation_names: Sequence[str], non_looping_patterns: Sequence[str]) -> Dict[str, bool]:
    regex = build_non_looping_pattern(non_looping_patterns)
    return {
        name: regex is None or regex.search(name) is None
        for name in animation_names
    }


@dataclass
class AnimationSheet:
    width: int
    height: int
    frames: List[Frame] = field(default_factory=list)
    animations: List[Animation] = field(default_factory=list)
    name: str = ""

    @property
    def max_texture_size(self) -> int:
        return max(self.width, self.height)

    @property
    def has_animations(self) -> bool:
        return len(self.animations) > 0

    def validate(self) -> "AnimationSheet":
        for animation in self.animations:
            check_frame_range(animation, len(self.frames))
        return self

    def get_animation(self, name: str) -> Optional[Animation]:
        for animation in self.animations:
            if animation.name == name:
                return animation
        return None

    def get_animation_or_similar(self, name: str) -> Optional[Animation]:
        """Exact match first, then the longest animation name contained in `name`."""
        animation = self.get_animation(name)
        if animation is not None:
            return animation

        similar = [candidate for candidate in self.animations if candidate.name in name]
        if not similar:
            return None
        return max(similar, key=lambda candidate: len(candidate.name))

    def with_loop_settings(self, non_looping_patterns: Sequence[str]) -> "AnimationSheet":
        looping = classify_looping([animation.name for animation in self.animations], non_looping_patterns)
        animations = [replace(animation, is_looping=looping[animation.name]) for animation in self.animations]
        return replace(self, animations=animations)


@dataclass(frozen=True)
class AnimationClip:
    name: str
    frame_images: List[Any]
    keyframe_times: List[float]
    loop: bool

    @property
    def wrap_mode(self) -> str:
        return "Loop" if self.loop else "Clamp"


def assemble_clips(
    sheet: AnimationSheet,
    frame_rate: float,
    images: Optional[Sequence[Any]] = None,
) -> List[AnimationClip]:
    handles = list(images) if images is not None else [frame.name for frame in sheet.frames]
    if len(handles) != len(sheet.frames):
        raise AnimationImportError(
            f"Got {len(handles)} frame images for {len(sheet.frames)} frames in '{sheet.name}'."
        )

    clips: List[AnimationClip] = []
    for animation in sheet.animations:
        timeline = build_timeline(animation, sheet.frames, frame_rate)
        clips.append(AnimationClip(
            name=animation.name,
            frame_images=[handles[keyframe.frame_index] for keyframe in timeline],
            keyframe_times=timeline.times,
            loop=animation.is_looping,
        ))
    return clips
