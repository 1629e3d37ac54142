"""Data models for story compilation."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from footageflow.exceptions import PlanError

__all__ = [
    "AssetStage",
    "ClipFile",
    "CompiledStory",
    "MediaInfo",
    "Segment",
    "StoryPlan",
    "TempAsset",
    "TransitionType",
]


class TransitionType(str, Enum):
    """How a segment blends into the segment that follows it."""

    NONE = "none"
    FADE = "fade"
    CROSSFADE = "crossfade"

    @classmethod
    def parse(cls, value: str | TransitionType | None) -> TransitionType:
        """Parse a transition name, accepting the aliases older plans used."""
        if isinstance(value, TransitionType):
            return value
        if value is None:
            return cls.NONE
        normalized = str(value).strip().lower()
        aliases = {
            "": cls.NONE,
            "cut": cls.NONE,
            "fade-in": cls.FADE,
            "fade-out": cls.FADE,
            "dissolve": cls.CROSSFADE,
        }
        if normalized in aliases:
            return aliases[normalized]
        try:
            return cls(normalized)
        except ValueError:
            allowed = ", ".join(t.value for t in cls)
            raise PlanError(f"Unknown transition '{value}'. Allowed transitions are: {allowed}") from None


class AssetStage(str, Enum):
    """Pipeline stage a temporary file belongs to."""

    DOWNLOADED_SOURCE = "downloaded-source"
    EXTRACTED_CLIP = "extracted-clip"
    COMPILED_OUTPUT = "compiled-output"
    SCRATCH = "scratch"


def _pick(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


@dataclass
class Segment:
    """A time range from one source video.

    Attributes:
        source_video_id: Reference to the externally resolved source video.
        source_url: Remote location of the source media.
        start_time: Start of the range in seconds.
        duration: Length of the range in seconds.
        transition_to_next: How this segment blends into the following one.
            Ignored on the last segment.
        transition_duration: Transition length in seconds. Falls back to the
            configured default when None.
    """

    source_video_id: str
    source_url: str
    start_time: float
    duration: float
    transition_to_next: TransitionType = TransitionType.NONE
    transition_duration: float | None = None

    def __post_init__(self) -> None:
        self.transition_to_next = TransitionType.parse(self.transition_to_next)

    @property
    def end_time(self) -> float:
        return self.start_time + self.duration

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Segment:
        start = float(_pick(data, "start_time", "startTime", default=0.0))
        duration = _pick(data, "duration")
        if duration is None:
            end = _pick(data, "end_time", "endTime")
            if end is None:
                raise PlanError("Segment needs either 'duration' or 'endTime'")
            duration = float(end) - start
        transition_duration = _pick(data, "transition_duration", "transitionDuration")
        return cls(
            source_video_id=str(_pick(data, "source_video_id", "sourceVideoId", "videoId", default="")),
            source_url=str(_pick(data, "source_url", "sourceUrl", "videoUrl", default="")),
            start_time=start,
            duration=float(duration),
            transition_to_next=TransitionType.parse(_pick(data, "transition_to_next", "transitionToNext", "transition")),
            transition_duration=float(transition_duration) if transition_duration is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "sourceVideoId": self.source_video_id,
            "sourceUrl": self.source_url,
            "startTime": self.start_time,
            "duration": self.duration,
            "transitionToNext": self.transition_to_next.value,
        }
        if self.transition_duration is not None:
            data["transitionDuration"] = self.transition_duration
        return data


@dataclass
class StoryPlan:
    """Ordered list of segments describing one compiled video.

    Segment order is significant: it is the order of the final video.
    """

    title: str
    segments: list[Segment]
    description: str = ""
    style: str = ""
    total_duration: float | None = None

    def __post_init__(self) -> None:
        if self.total_duration is None:
            self.total_duration = round(sum(s.duration for s in self.segments), 4)

    @property
    def transitions(self) -> list[TransitionType]:
        """Transitions between adjacent segments (one fewer than segments)."""
        return [s.transition_to_next for s in self.segments[:-1]]

    @property
    def has_transitions(self) -> bool:
        return any(t is not TransitionType.NONE for t in self.transitions)

    def validate(self) -> None:
        """Raise PlanError if the plan can't be compiled."""
        if not self.segments:
            raise PlanError("StoryPlan requires at least one segment")

        for i, segment in enumerate(self.segments):
            ctx = f"Segment {i}"
            if not segment.source_video_id:
                raise PlanError(f"{ctx}: missing source video id", segment_index=i)
            if not segment.source_url:
                raise PlanError(
                    f"{ctx}: source video could not be resolved to a URL",
                    segment_index=i,
                    source_video_id=segment.source_video_id,
                )
            if segment.start_time < 0:
                raise PlanError(
                    f"{ctx}: start_time ({segment.start_time}) must be >= 0",
                    segment_index=i,
                    source_video_id=segment.source_video_id,
                )
            if segment.duration <= 0:
                raise PlanError(
                    f"{ctx}: duration ({segment.duration}) must be > 0",
                    segment_index=i,
                    source_video_id=segment.source_video_id,
                )
            if segment.transition_duration is not None and segment.transition_duration <= 0:
                raise PlanError(
                    f"{ctx}: transition_duration ({segment.transition_duration}) must be > 0",
                    segment_index=i,
                    source_video_id=segment.source_video_id,
                )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StoryPlan:
        raw_segments = data.get("segments")
        if not isinstance(raw_segments, list):
            raise PlanError("StoryPlan 'segments' must be a list")
        segments = []
        for i, raw in enumerate(raw_segments):
            if not isinstance(raw, dict):
                raise PlanError(f"Segment {i}: expected an object, got {type(raw).__name__}", segment_index=i)
            try:
                segments.append(Segment.from_dict(raw))
            except (TypeError, ValueError) as e:
                raise PlanError(f"Segment {i}: {e}", segment_index=i) from e
            except PlanError as e:
                raise e.with_context(segment_index=i)
        total = _pick(data, "total_duration", "totalDuration")
        return cls(
            title=str(data.get("title", "")),
            description=str(data.get("description", "")),
            style=str(data.get("style", "")),
            segments=segments,
            total_duration=float(total) if total is not None else None,
        )

    @classmethod
    def from_json(cls, text: str) -> StoryPlan:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise PlanError(f"StoryPlan is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise PlanError("StoryPlan JSON must be an object")
        return cls.from_dict(data)

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "style": self.style,
            "segments": [s.to_dict() for s in self.segments],
            "totalDuration": self.total_duration,
        }


@dataclass(frozen=True)
class TempAsset:
    """A file created during one job, deleted by the end of it."""

    path: Path
    stage: AssetStage
    owner_job_id: str


@dataclass(frozen=True)
class MediaInfo:
    """Probed properties of a media file."""

    duration: float
    has_video: bool = True
    has_audio: bool = True
    width: int | None = None
    height: int | None = None


@dataclass(frozen=True)
class ClipFile:
    """A trimmed clip ready for composition.

    `duration` is the probed duration of the encoded clip, which can differ
    slightly from the requested one because of keyframe alignment.
    """

    path: Path
    duration: float
    segment_index: int
    source_video_id: str
    requested_duration: float | None = None


@dataclass
class CompiledStory:
    """The published result of a compilation job."""

    output_url: str
    duration_seconds: float
    segment_count: int
    story_id: str
    published_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "outputUrl": self.output_url,
            "durationSeconds": self.duration_seconds,
            "segmentCount": self.segment_count,
            "storyId": self.story_id,
            "publishedAt": self.published_at.isoformat(),
        }
