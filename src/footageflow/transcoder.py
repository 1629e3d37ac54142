"""Blocking ffmpeg/ffprobe invocations used by the compilation pipeline."""

from __future__ import annotations

import json
import logging
import shlex
import shutil
import subprocess
from pathlib import Path
from typing import Sequence

from footageflow.config import PipelineConfig
from footageflow.exceptions import TranscodeError
from footageflow.models import MediaInfo
from footageflow.transitions import TransitionGraph, TransitionSpec, build_transition_graph

logger = logging.getLogger(__name__)

__all__ = ["Transcoder"]

STDERR_TAIL_CHARS = 2000


def _stderr_tail(stderr: str | bytes | None) -> str:
    if not stderr:
        return ""
    if isinstance(stderr, bytes):
        stderr = stderr.decode(errors="replace")
    return stderr.strip()[-STDERR_TAIL_CHARS:]


class Transcoder:
    """Wraps ffmpeg to trim, concatenate and cross-fade clips.

    Every call blocks with a timeout. A failed call, a timeout or a missing
    or zero-byte output file raises TranscodeError naming the stage, so an
    output file existing on disk is never taken as success on its own.
    """

    def __init__(self, config: PipelineConfig | None = None):
        self.config = config or PipelineConfig()

    def _run(self, cmd: list[str], stage: str, timeout: float) -> subprocess.CompletedProcess:
        logger.debug("[%s] %s", stage, shlex.join(cmd))
        try:
            return subprocess.run(cmd, capture_output=True, text=True, check=True, timeout=timeout)
        except subprocess.CalledProcessError as e:
            raise TranscodeError(
                f"{cmd[0]} exited with code {e.returncode}: {_stderr_tail(e.stderr)}", stage=stage
            ) from e
        except subprocess.TimeoutExpired as e:
            raise TranscodeError(f"{cmd[0]} timed out after {timeout}s", stage=stage) from e
        except FileNotFoundError as e:
            raise TranscodeError(f"Executable not found: {cmd[0]}", stage=stage) from e

    @staticmethod
    def _check_output(path: Path, stage: str) -> Path:
        if not path.exists():
            raise TranscodeError(f"Expected output {path} was not created", stage=stage)
        if path.stat().st_size == 0:
            raise TranscodeError(f"Output {path} is empty (zero bytes)", stage=stage)
        return path

    def probe(self, path: str | Path, stage: str = "probe") -> MediaInfo:
        """Read duration and stream layout of a media file with ffprobe."""
        path = Path(path)
        if not path.exists():
            raise TranscodeError(f"Media file not found: {path}", stage=stage)

        cmd = [
            self.config.ffprobe_binary,
            "-v",
            "error",
            "-show_entries",
            "stream=codec_type,width,height",
            "-show_entries",
            "format=duration",
            "-print_format",
            "json",
            str(path),
        ]
        result = self._run(cmd, stage, self.config.probe_timeout)

        try:
            probe_data = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise TranscodeError(f"Error parsing ffprobe output for {path}: {e}", stage=stage) from e

        streams = probe_data.get("streams", [])
        video_streams = [s for s in streams if s.get("codec_type") == "video"]
        has_audio = any(s.get("codec_type") == "audio" for s in streams)

        try:
            duration = float(probe_data["format"]["duration"])
        except (KeyError, TypeError, ValueError) as e:
            raise TranscodeError(f"No duration reported for {path}, file is likely corrupt", stage=stage) from e
        if duration <= 0:
            raise TranscodeError(f"Non-positive duration ({duration}) for {path}", stage=stage)

        width = height = None
        if video_streams:
            width = video_streams[0].get("width")
            height = video_streams[0].get("height")

        return MediaInfo(
            duration=round(duration, 4),
            has_video=bool(video_streams),
            has_audio=has_audio,
            width=int(width) if width is not None else None,
            height=int(height) if height is not None else None,
        )

    def _video_filter(self) -> str:
        width, height = self.config.output_width, self.config.output_height
        return (
            f"scale={width}:{height}:force_original_aspect_ratio=decrease,"
            f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2,"
            f"setsar=1,fps={self.config.output_fps},format=yuv420p"
        )

    def _encode_args(self) -> list[str]:
        return [
            # Video encoding settings
            "-c:v",
            "libx264",
            "-preset",
            self.config.video_preset,
            "-crf",
            str(self.config.video_crf),
            # Audio settings
            "-c:a",
            "aac",
            "-b:a",
            self.config.audio_bitrate,
            "-ar",
            str(self.config.audio_sample_rate),
            "-ac",
            "2",
            # Output settings
            "-movflags",
            "+faststart",
        ]

    def trim(
        self,
        input_path: str | Path,
        output_path: str | Path,
        start: float,
        duration: float,
        has_audio: bool = True,
    ) -> Path:
        """Cut `duration` seconds starting at `start` and normalize the encoding.

        Every clip is scaled and padded to the configured frame size and frame
        rate with a stereo AAC track, so clips from different sources can be
        joined. Sources without audio get a silent track.
        """
        stage = "trim"
        output_path = Path(output_path)
        if duration <= 0:
            raise TranscodeError(f"Cannot trim a non-positive duration ({duration})", stage=stage)

        # Seek before input for fast seeking, limit duration on the output
        cmd = [self.config.ffmpeg_binary, "-y", "-ss", f"{start:.3f}", "-i", str(input_path)]
        if not has_audio:
            cmd.extend(
                [
                    "-f",
                    "lavfi",
                    "-i",
                    f"anullsrc=channel_layout=stereo:sample_rate={self.config.audio_sample_rate}",
                ]
            )
        cmd.extend(
            [
                "-t",
                f"{duration:.3f}",
                "-map",
                "0:v:0",
                "-map",
                "0:a:0" if has_audio else "1:a:0",
                "-vf",
                self._video_filter(),
                *self._encode_args(),
                "-avoid_negative_ts",
                "make_zero",
                str(output_path),
            ]
        )
        self._run(cmd, stage, self.config.transcode_timeout)
        return self._check_output(output_path, stage)

    def concatenate(self, inputs: Sequence[str | Path], output_path: str | Path, list_path: str | Path) -> Path:
        """Join clips back to back with the concat demuxer (stream copy).

        Inputs must share an encoding, which `trim` guarantees. `list_path`
        is the scratch file the demuxer reads; the caller owns it.
        """
        stage = "concat"
        if len(inputs) < 2:
            raise TranscodeError(f"Concatenation needs at least two inputs, got {len(inputs)}", stage=stage)
        output_path = Path(output_path)
        list_path = Path(list_path)

        lines = []
        for path in inputs:
            escaped = str(Path(path).resolve()).replace("'", "'\\''")
            lines.append(f"file '{escaped}'")
        list_path.write_text("\n".join(lines) + "\n")

        cmd = [
            self.config.ffmpeg_binary,
            "-y",
            "-f",
            "concat",
            "-safe",
            "0",
            "-i",
            str(list_path),
            "-c",
            "copy",
            "-movflags",
            "+faststart",
            str(output_path),
        ]
        self._run(cmd, stage, self.config.transcode_timeout)
        return self._check_output(output_path, stage)

    def build_graph(
        self,
        durations: Sequence[float],
        transitions: Sequence[TransitionSpec],
    ) -> TransitionGraph:
        return build_transition_graph(durations, transitions, self.config.default_transition_duration)

    def concatenate_with_transitions(
        self,
        inputs: Sequence[str | Path],
        durations: Sequence[float],
        transitions: Sequence[TransitionSpec],
        output_path: str | Path,
    ) -> TransitionGraph:
        """Join clips with xfade/acrossfade at every fade or crossfade join.

        Args:
            inputs: Clip files in final order.
            durations: Probed duration of every clip, used for fade offsets.
            transitions: One TransitionSpec per adjacent pair.
            output_path: Where the joined video is written.

        Returns:
            The TransitionGraph that was rendered, including its expected duration.
        """
        stage = "concat-transitions"
        if len(inputs) != len(durations):
            raise TranscodeError(f"Got {len(inputs)} inputs but {len(durations)} durations", stage=stage)
        try:
            graph = self.build_graph(durations, transitions)
        except ValueError as e:
            raise TranscodeError(str(e), stage=stage) from e

        output_path = Path(output_path)
        cmd = [self.config.ffmpeg_binary, "-y"]
        for path in inputs:
            cmd.extend(["-i", str(path)])
        cmd.extend(
            [
                "-filter_complex",
                graph.filter_complex,
                "-map",
                graph.video_label,
                "-map",
                graph.audio_label,
                *self._encode_args(),
                str(output_path),
            ]
        )
        self._run(cmd, stage, self.config.transcode_timeout)
        self._check_output(output_path, stage)
        return graph

    def copy(self, input_path: str | Path, output_path: str | Path) -> Path:
        """Copy a single clip to the output path without re-encoding."""
        stage = "copy"
        output_path = Path(output_path)
        try:
            shutil.copyfile(input_path, output_path)
        except OSError as e:
            raise TranscodeError(f"Copying {input_path} to {output_path} failed: {e}", stage=stage) from e
        return self._check_output(output_path, stage)

    def verify_duration(self, path: str | Path, expected: float, stage: str) -> MediaInfo:
        """Probe `path` and check its duration is within the configured tolerance of `expected`."""
        info = self.probe(path, stage=stage)
        drift = abs(info.duration - expected)
        if drift > self.config.duration_tolerance:
            raise TranscodeError(
                f"Output duration {info.duration:.2f}s differs from expected {expected:.2f}s by {drift:.2f}s",
                stage=stage,
            )
        return info
