"""Turns one plan segment into a trimmed clip file."""

from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath
from urllib.parse import urlparse

from footageflow.exceptions import FetchError, StoryPipelineError, TranscodeError
from footageflow.janitor import JobContext
from footageflow.models import AssetStage, ClipFile, Segment
from footageflow.storage import BlobStore
from footageflow.transcoder import Transcoder

logger = logging.getLogger(__name__)

__all__ = ["ClipMaterializer", "clamp_duration"]

KNOWN_SUFFIXES = {".mp4", ".mov", ".mkv", ".webm", ".avi", ".m4v"}


def clamp_duration(start: float, duration: float, source_duration: float) -> float:
    """Clamp a requested range to what the source actually contains.

    Raises:
        ValueError: If `start` lies at or beyond the end of the source.
    """
    if start >= source_duration:
        raise ValueError(f"start_time {start:.2f}s is beyond the source duration {source_duration:.2f}s")
    return round(min(duration, source_duration - start), 4)


def _source_suffix(url: str) -> str:
    suffix = PurePosixPath(urlparse(url).path).suffix.lower()
    return suffix if suffix in KNOWN_SUFFIXES else ".mp4"


class ClipMaterializer:
    """Downloads a segment's source video and trims the requested range.

    Both the downloaded source and the trimmed clip are registered with the
    job context before they are written, so they're cleaned up whatever
    happens next. The source is released as soon as the clip is encoded.
    """

    def __init__(self, blob_store: BlobStore, transcoder: Transcoder):
        self.blob_store = blob_store
        self.transcoder = transcoder

    def materialize(self, segment: Segment, index: int, context: JobContext) -> ClipFile:
        """Produce the clip for `segment`.

        Args:
            segment: Plan segment to extract.
            index: Position of the segment in the plan.
            context: Job context owning the temporary files.

        Returns:
            ClipFile whose duration is the probed duration of the encoded clip.

        Raises:
            FetchError: The source couldn't be downloaded.
            TranscodeError: The source couldn't be probed or trimmed.
        """
        error_context = {
            "job_id": context.job_id,
            "segment_index": index,
            "source_video_id": segment.source_video_id,
        }
        try:
            return self._materialize(segment, index, context)
        except StoryPipelineError as e:
            raise e.with_context(**error_context)
        except OSError as e:
            raise FetchError(f"Filesystem error while fetching source: {e}", stage="download", **error_context) from e

    def _materialize(self, segment: Segment, index: int, context: JobContext) -> ClipFile:
        source_path = context.new_path(
            AssetStage.DOWNLOADED_SOURCE, prefix=f"source_{index:03d}", suffix=_source_suffix(segment.source_url)
        )
        clip_path = context.new_path(AssetStage.EXTRACTED_CLIP, prefix=f"clip_{index:03d}")

        logger.info("Job %s: fetching segment %d from video %s", context.job_id, index, segment.source_video_id)
        try:
            self.blob_store.download(segment.source_url, source_path)
        except FetchError as e:
            raise e.with_context(stage="download")

        source = self.transcoder.probe(source_path, stage="probe-source")
        if not source.has_video:
            raise TranscodeError(f"Source {segment.source_url} has no video stream", stage="probe-source")

        try:
            duration = clamp_duration(segment.start_time, segment.duration, source.duration)
        except ValueError as e:
            raise TranscodeError(str(e), stage="trim") from e
        if duration < segment.duration:
            logger.warning(
                "Job %s: segment %d requested %.2fs from %.2fs but source %s is %.2fs long; clamped to %.2fs",
                context.job_id,
                index,
                segment.duration,
                segment.start_time,
                segment.source_video_id,
                source.duration,
                duration,
            )

        self.transcoder.trim(source_path, clip_path, segment.start_time, duration, has_audio=source.has_audio)
        clip = self.transcoder.probe(clip_path, stage="probe-clip")
        self._release(source_path)

        logger.info(
            "Job %s: segment %d ready, requested %.2fs, encoded %.2fs",
            context.job_id,
            index,
            segment.duration,
            clip.duration,
        )
        return ClipFile(
            path=clip_path,
            duration=clip.duration,
            segment_index=index,
            source_video_id=segment.source_video_id,
            requested_duration=duration,
        )

    @staticmethod
    def _release(path: Path) -> None:
        # still registered, so the janitor skips it if it's already gone
        try:
            path.unlink()
        except OSError as e:
            logger.debug("Could not release %s early: %s", path, e)
