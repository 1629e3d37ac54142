from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, TypeVar

from tqdm import tqdm

__all__ = ["configure", "set_progress", "get_progress_config", "progress_iter"]

T = TypeVar("T")


@dataclass
class _ProgressConfig:
    progress: bool = False


_CONFIG = _ProgressConfig()


def configure(*, progress: bool | None = None) -> None:
    """Configure progress bar behavior."""
    if progress is not None:
        _CONFIG.progress = bool(progress)


def set_progress(value: bool) -> None:
    """Enable or disable progress bars over segment materialization."""
    _CONFIG.progress = bool(value)


def get_progress_config() -> _ProgressConfig:
    return _CONFIG


def progress_iter(
    iterable: Iterable[T],
    *,
    desc: str | None = None,
    total: int | None = None,
) -> Iterable[T]:
    """Return an iterator with an optional progress bar."""
    if _CONFIG.progress:
        return tqdm(iterable, desc=desc, total=total)
    return iterable
