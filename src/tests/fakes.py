"""Test doubles and media helpers shared by the pipeline tests."""

import shutil
import subprocess
from pathlib import Path

import pytest

from footageflow.config import PipelineConfig
from footageflow.exceptions import TranscodeError
from footageflow.models import MediaInfo, Segment, TransitionType
from footageflow.transcoder import Transcoder
from footageflow.transitions import build_transition_graph

FFMPEG_AVAILABLE = shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None

requires_ffmpeg = pytest.mark.skipif(not FFMPEG_AVAILABLE, reason="ffmpeg/ffprobe not installed")


def write_fake_media(path: Path, duration: float, order: str, has_audio: bool = True) -> Path:
    """Write a text file standing in for a video, understood by FakeTranscoder."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"duration={duration}\norder={order}\naudio={int(has_audio)}\n")
    return path


def read_fake_media(path: Path) -> dict[str, str]:
    lines = Path(path).read_text().splitlines()
    return dict(line.split("=", 1) for line in lines if "=" in line)


class FakeTranscoder(Transcoder):
    """Transcoder that 'encodes' small text files instead of running ffmpeg.

    Every file records its duration and the ordered source ids it contains,
    so tests can check timing and ordering without real media.
    """

    def __init__(self, config: PipelineConfig, keyframe_drift: float = 0.0, fail_on: str | None = None):
        super().__init__(config)
        self.keyframe_drift = keyframe_drift
        self.fail_on = fail_on
        self.calls: list[tuple[str, tuple]] = []

    def _maybe_fail(self, stage: str) -> None:
        if self.fail_on == stage:
            raise TranscodeError("simulated ffmpeg failure", stage=stage)

    def probe(self, path, stage="probe"):
        self.calls.append(("probe", (Path(path),)))
        path = Path(path)
        if not path.exists():
            raise TranscodeError(f"Media file not found: {path}", stage=stage)
        data = read_fake_media(path)
        return MediaInfo(duration=float(data["duration"]), has_audio=data.get("audio", "1") == "1")

    def trim(self, input_path, output_path, start, duration, has_audio=True):
        self.calls.append(("trim", (Path(input_path), Path(output_path), start, duration)))
        self._maybe_fail("trim")
        source = read_fake_media(Path(input_path))
        write_fake_media(Path(output_path), round(duration + self.keyframe_drift, 4), source["order"])
        return self._check_output(Path(output_path), "trim")

    def concatenate(self, inputs, output_path, list_path):
        self.calls.append(("concatenate", (tuple(Path(p) for p in inputs), Path(output_path))))
        self._maybe_fail("concat")
        Path(list_path).write_text("\n".join(f"file '{p}'" for p in inputs))
        clips = [read_fake_media(Path(p)) for p in inputs]
        total = round(sum(float(c["duration"]) for c in clips), 4)
        write_fake_media(Path(output_path), total, ",".join(c["order"] for c in clips))
        return self._check_output(Path(output_path), "concat")

    def concatenate_with_transitions(self, inputs, durations, transitions, output_path):
        self.calls.append(("concatenate_with_transitions", (tuple(Path(p) for p in inputs), tuple(transitions))))
        self._maybe_fail("concat-transitions")
        graph = build_transition_graph(durations, transitions, self.config.default_transition_duration)
        clips = [read_fake_media(Path(p)) for p in inputs]
        write_fake_media(Path(output_path), graph.expected_duration, ",".join(c["order"] for c in clips))
        self._check_output(Path(output_path), "concat-transitions")
        return graph

    def copy(self, input_path, output_path):
        self.calls.append(("copy", (Path(input_path), Path(output_path))))
        return super().copy(input_path, output_path)

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]


def make_segment(source: Path, video_id: str, start: float, duration: float, transition: str = "none") -> Segment:
    return Segment(
        source_video_id=video_id,
        source_url=source.resolve().as_uri(),
        start_time=start,
        duration=duration,
        transition_to_next=TransitionType.parse(transition),
    )


def make_real_video(path: Path, seconds: float, with_audio: bool = True) -> Path:
    """Render a small synthetic video with ffmpeg's lavfi sources."""
    cmd = ["ffmpeg", "-y", "-f", "lavfi", "-i", f"testsrc=duration={seconds}:size=160x120:rate=15"]
    if with_audio:
        cmd.extend(["-f", "lavfi", "-i", f"sine=frequency=440:duration={seconds}"])
    cmd.extend(["-c:v", "libx264", "-preset", "ultrafast", "-pix_fmt", "yuv420p"])
    if with_audio:
        cmd.extend(["-c:a", "aac", "-shortest"])
    cmd.append(str(path))
    subprocess.run(cmd, check=True, capture_output=True)
    return path
