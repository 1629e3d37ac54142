"""ffmpeg filter graphs joining clips with fade/crossfade transitions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from footageflow.models import TransitionType

__all__ = ["TransitionGraph", "TransitionSpec", "build_transition_graph", "expected_duration"]

# xfade transition used for each transition type
XFADE_NAMES: dict[TransitionType, str] = {
    TransitionType.FADE: "fadeblack",
    TransitionType.CROSSFADE: "fade",
}

# share of a clip's duration its transitions may cover together
MAX_OVERLAP_SHARE = 0.5


@dataclass(frozen=True)
class TransitionSpec:
    """Transition between clip `i` and clip `i + 1`."""

    type: TransitionType
    duration: float | None = None


@dataclass(frozen=True)
class TransitionGraph:
    """A ready-to-run `-filter_complex` with its output labels."""

    filter_complex: str
    video_label: str
    audio_label: str
    overlaps: tuple[float, ...]
    offsets: tuple[float, ...]
    expected_duration: float

    @property
    def transition_count(self) -> int:
        return sum(1 for overlap in self.overlaps if overlap > 0)


def resolve_overlaps(
    durations: Sequence[float], transitions: Sequence[TransitionSpec], default_duration: float
) -> np.ndarray:
    """Overlap in seconds introduced at each join.

    The transitions touching a clip (its incoming and outgoing one) may use
    at most `MAX_OVERLAP_SHARE` of its duration together; when they'd take
    more, both are scaled down to fit. Every clip keeps a stretch where it
    is shown on its own and every xfade offset stays positive.
    """
    if len(transitions) != len(durations) - 1:
        raise ValueError(f"Expected {len(durations) - 1} transitions for {len(durations)} clips, got {len(transitions)}")
    clip_durations = np.asarray(durations, dtype=float)
    overlaps = np.zeros(len(transitions), dtype=float)
    for i, spec in enumerate(transitions):
        if spec.type is TransitionType.NONE:
            continue
        requested = spec.duration if spec.duration is not None else default_duration
        overlaps[i] = max(0.0, min(requested, clip_durations[i], clip_durations[i + 1]))

    # scaling only shrinks overlaps, so clips already checked stay within budget
    for i, duration in enumerate(clip_durations):
        joins = [j for j in (i - 1, i) if 0 <= j < len(overlaps)]
        used = overlaps[joins].sum()
        budget = MAX_OVERLAP_SHARE * duration
        if used > budget:
            overlaps[joins] *= budget / used
    return np.round(overlaps, 4)


def expected_duration(
    durations: Sequence[float], transitions: Sequence[TransitionSpec], default_duration: float = 0.5
) -> float:
    """Duration of the joined video: sum of clip durations minus transition overlaps."""
    overlaps = resolve_overlaps(durations, transitions, default_duration)
    return round(float(np.sum(durations) - np.sum(overlaps)), 4)


def build_transition_graph(
    durations: Sequence[float],
    transitions: Sequence[TransitionSpec],
    default_duration: float = 0.5,
) -> TransitionGraph:
    """Build the filter graph joining `len(durations)` inputs in order.

    Offsets are computed from the actual clip durations: the join into clip
    `i + 1` starts at the running length of everything before it minus its
    own overlap.

    Args:
        durations: Probed duration of each input, in input order.
        transitions: One TransitionSpec per adjacent pair.
        default_duration: Transition length used when a TransitionSpec doesn't set one.

    Returns:
        TransitionGraph with `filter_complex` mapping to `[vout]` and `[aout]`.
    """
    if len(durations) < 2:
        raise ValueError("At least two clips are required to build a transition graph")

    clip_durations = np.asarray(durations, dtype=float)
    overlaps = resolve_overlaps(durations, transitions, default_duration)
    # running length after joining clip i + 1, before subtracting that join's overlap
    offsets = np.cumsum(clip_durations[:-1]) - np.cumsum(overlaps)

    filters = []
    for i in range(len(durations)):
        filters.append(f"[{i}:v]settb=AVTB,setpts=PTS-STARTPTS[v{i}]")
        filters.append(f"[{i}:a]asetpts=PTS-STARTPTS[a{i}]")

    video, audio = "v0", "a0"
    for i, spec in enumerate(transitions):
        nxt = i + 1
        last = nxt == len(durations) - 1
        video_out = "vout" if last else f"vx{nxt}"
        audio_out = "aout" if last else f"ax{nxt}"
        overlap = float(overlaps[i])
        if overlap > 0:
            offset = round(float(offsets[i]), 4)
            filters.append(
                f"[{video}][v{nxt}]xfade=transition={XFADE_NAMES[spec.type]}:"
                f"duration={overlap:.4f}:offset={offset:.4f}[{video_out}]"
            )
            filters.append(f"[{audio}][a{nxt}]acrossfade=d={overlap:.4f}:c1=tri:c2=tri[{audio_out}]")
        else:
            filters.append(f"[{video}][v{nxt}]concat=n=2:v=1:a=0[{video_out}]")
            filters.append(f"[{audio}][a{nxt}]concat=n=2:v=0:a=1[{audio_out}]")
        video, audio = video_out, audio_out

    return TransitionGraph(
        filter_complex=";".join(filters),
        video_label="[vout]",
        audio_label="[aout]",
        overlaps=tuple(float(o) for o in overlaps),
        offsets=tuple(round(float(o), 4) for o in offsets),
        expected_duration=round(float(clip_durations.sum() - overlaps.sum()), 4),
    )
