"""Configuration loader for the footageflow pipeline."""

from __future__ import annotations

import os
import tempfile
import warnings
from dataclasses import dataclass, field, fields, replace
from functools import lru_cache
from pathlib import Path
from typing import Any

import tomllib

from footageflow.exceptions import ConfigError

ENV_PREFIX = "FOOTAGEFLOW_"


@dataclass(frozen=True)
class PipelineConfig:
    """Settings shared by every stage of a compilation job.

    Attributes:
        work_dir: Root directory for per-job temporary files.
        ffmpeg_binary: ffmpeg executable name or path.
        ffprobe_binary: ffprobe executable name or path.
        transcode_timeout: Seconds allowed for a single ffmpeg invocation.
        probe_timeout: Seconds allowed for a single ffprobe invocation.
        transfer_timeout: Seconds allowed for a blob download or upload.
        default_transition_duration: Fade/crossfade length when a segment doesn't set one.
        output_width: Width every clip is scaled (and padded) to.
        output_height: Height every clip is scaled (and padded) to.
        output_fps: Frame rate every clip is resampled to.
        video_crf: x264 constant rate factor.
        video_preset: x264 preset.
        audio_bitrate: AAC bitrate.
        audio_sample_rate: Output audio sample rate.
        key_prefix: Storage key prefix for published stories.
        duration_tolerance: Allowed drift in seconds between expected and probed compose duration.
    """

    work_dir: Path = field(default_factory=lambda: Path(tempfile.gettempdir()) / "footageflow")
    ffmpeg_binary: str = "ffmpeg"
    ffprobe_binary: str = "ffprobe"
    transcode_timeout: float = 600.0
    probe_timeout: float = 30.0
    transfer_timeout: float = 300.0
    default_transition_duration: float = 0.5
    output_width: int = 1280
    output_height: int = 720
    output_fps: int = 30
    video_crf: int = 23
    video_preset: str = "veryfast"
    audio_bitrate: str = "192k"
    audio_sample_rate: int = 44100
    key_prefix: str = "generated-stories"
    duration_tolerance: float = 1.0

    def __post_init__(self):
        object.__setattr__(self, "work_dir", Path(self.work_dir))
        if self.default_transition_duration <= 0:
            raise ConfigError(
                f"default_transition_duration must be positive, got {self.default_transition_duration}"
            )
        for name in ("transcode_timeout", "probe_timeout", "transfer_timeout"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive, got {getattr(self, name)}")

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> PipelineConfig:
        """Build a config from a mapping, coercing values to the field types.

        Unknown keys are ignored with a warning.
        """
        defaults = cls()
        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            if key not in known:
                warnings.warn(f"Unknown footageflow config key '{key}' ignored", RuntimeWarning)
                continue
            kwargs[key] = _coerce(key, value, type(getattr(defaults, key)))
        return cls(**kwargs)

    def with_overrides(self, **overrides: Any) -> PipelineConfig:
        return replace(self, **overrides)


def _coerce(name: str, value: Any, target: type) -> Any:
    if isinstance(value, target):
        return value
    try:
        if issubclass(target, Path):
            return Path(value)
        return target(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value for '{name}': {value!r} ({e})") from e


# Searched in order in the working directory; the first file that exists wins.
# Each entry names the table holding the settings, () meaning the whole file.
CONFIG_SOURCES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("footageflow.toml", ()),
    ("pyproject.toml", ("tool", "footageflow")),
)


def _env_overrides() -> dict[str, str]:
    overrides = {}
    for f in fields(PipelineConfig):
        value = os.environ.get(f"{ENV_PREFIX}{f.name.upper()}")
        if value is not None:
            overrides[f.name] = value
    return overrides


@lru_cache(maxsize=1)
def _file_settings() -> dict[str, Any]:
    """Settings from the first config source found, read once per process."""
    cwd = Path.cwd()
    for filename, table in CONFIG_SOURCES:
        path = cwd / filename
        if not path.exists():
            continue
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except (tomllib.TOMLDecodeError, OSError) as e:
            warnings.warn(f"Ignoring config file {path}: {e}", RuntimeWarning)
            return {}
        for name in table:
            data = data.get(name, {})
        return dict(data)
    return {}


def get_config(**overrides: Any) -> PipelineConfig:
    """Resolve the pipeline configuration.

    Keyword overrides beat `FOOTAGEFLOW_*` environment variables, which beat
    the config file, which beats the PipelineConfig defaults.
    """
    merged: dict[str, Any] = dict(_file_settings())
    merged.update(_env_overrides())
    merged.update(overrides)
    return PipelineConfig.from_mapping(merged)


def clear_config_cache() -> None:
    """Forget the cached config file so the next `get_config` reads it again."""
    _file_settings.cache_clear()
