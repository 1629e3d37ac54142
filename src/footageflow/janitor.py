"""Per-job temporary file ownership and cleanup."""

from __future__ import annotations

import logging
import re
import shutil
import threading
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from footageflow.models import AssetStage, TempAsset

logger = logging.getLogger(__name__)

__all__ = ["JobContext", "ResourceJanitor", "generate_job_id"]

_JOB_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]{0,127}$")


def generate_job_id() -> str:
    """Generates a random job id."""
    return f"job_{uuid.uuid4().hex}"


class JobContext:
    """Owns every temporary file of one job.

    All paths live under `<work_dir>/<job_id>/`, so concurrent jobs never
    collide. A path is registered before the operation that writes it runs.
    """

    def __init__(self, job_id: str, work_dir: Path, janitor: ResourceJanitor):
        self.job_id = job_id
        self.job_dir = Path(work_dir) / job_id
        self._janitor = janitor

    def register(self, path: str | Path, stage: AssetStage) -> TempAsset:
        asset = TempAsset(path=Path(path), stage=stage, owner_job_id=self.job_id)
        self._janitor.track(asset)
        return asset

    def new_path(self, stage: AssetStage, prefix: str, suffix: str = ".mp4") -> Path:
        """Reserve a unique path inside the job directory and register it."""
        self.job_dir.mkdir(parents=True, exist_ok=True)
        path = self.job_dir / f"{prefix}_{uuid.uuid4().hex[:12]}{suffix}"
        self.register(path, stage)
        return path

    @property
    def assets(self) -> list[TempAsset]:
        return self._janitor.assets(self.job_id)


class ResourceJanitor:
    """Tracks TempAssets per job and deletes them on demand.

    `cleanup` never raises: deletion problems are logged so they can't mask
    the job's own result.
    """

    def __init__(self, work_dir: str | Path):
        self.work_dir = Path(work_dir)
        self._assets: dict[str, list[TempAsset]] = {}
        self._lock = threading.Lock()

    def open_job(self, job_id: str) -> JobContext:
        if not _JOB_ID_RE.match(job_id):
            raise ValueError(f"Invalid job id: {job_id!r}")
        with self._lock:
            self._assets.setdefault(job_id, [])
        context = JobContext(job_id, self.work_dir, self)
        context.job_dir.mkdir(parents=True, exist_ok=True)
        return context

    @contextmanager
    def job(self, job_id: str) -> Iterator[JobContext]:
        """Context manager yielding a JobContext that's cleaned up on exit."""
        context = self.open_job(job_id)
        try:
            yield context
        finally:
            self.cleanup(job_id)

    def track(self, asset: TempAsset) -> None:
        with self._lock:
            self._assets.setdefault(asset.owner_job_id, []).append(asset)

    def assets(self, job_id: str) -> list[TempAsset]:
        with self._lock:
            return list(self._assets.get(job_id, []))

    def residual(self, job_id: str) -> list[Path]:
        """Registered paths of the job that still exist on disk."""
        paths = [asset.path for asset in self.assets(job_id) if asset.path.exists()]
        job_dir = self.work_dir / job_id
        if job_dir.exists():
            paths.extend(p for p in job_dir.rglob("*") if p.is_file() and p not in paths)
        return paths

    def cleanup(self, job_id: str) -> int:
        """Delete every file registered under job_id.

        Idempotent: missing files are skipped and unknown job ids are a no-op.

        Returns:
            Number of files removed.
        """
        with self._lock:
            assets = self._assets.pop(job_id, [])

        removed = 0
        for asset in assets:
            try:
                asset.path.unlink()
                removed += 1
                logger.debug("Removed %s (%s) for job %s", asset.path, asset.stage.value, job_id)
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.error("Failed to remove %s for job %s: %s", asset.path, job_id, e)

        job_dir = self.work_dir / job_id
        if _JOB_ID_RE.match(job_id) and job_dir.is_dir():
            try:
                shutil.rmtree(job_dir)
            except OSError as e:
                logger.error("Failed to remove job directory %s: %s", job_dir, e)

        if assets:
            logger.info("Cleaned up %d/%d temp files for job %s", removed, len(assets), job_id)
        return removed
