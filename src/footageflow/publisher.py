"""Uploads a compiled story and describes the published result."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

from footageflow.exceptions import PublishError, StoryPipelineError
from footageflow.models import CompiledStory
from footageflow.storage import BlobStore
from footageflow.transcoder import Transcoder

logger = logging.getLogger(__name__)

__all__ = ["Publisher", "story_key"]


def story_key(job_id: str, prefix: str = "generated-stories") -> str:
    """Deterministic storage key of the story produced by `job_id`."""
    name = f"story_{job_id}.mp4"
    return f"{prefix.strip('/')}/{name}" if prefix.strip("/") else name


class Publisher:
    def __init__(self, blob_store: BlobStore, transcoder: Transcoder, key_prefix: str = "generated-stories"):
        self.blob_store = blob_store
        self.transcoder = transcoder
        self.key_prefix = key_prefix

    def publish(self, local_path: str | Path, job_id: str, segment_count: int) -> CompiledStory:
        """Upload the compiled file and return the published story.

        The duration is probed from the file itself before upload, never
        taken from the plan.

        Raises:
            TranscodeError: The compiled file can't be probed.
            PublishError: The upload failed. Not retried.
        """
        local_path = Path(local_path)
        info = self.transcoder.probe(local_path, stage="probe-output")
        key = story_key(job_id, self.key_prefix)

        logger.info("Job %s: publishing %s (%.2fs) as %s", job_id, local_path.name, info.duration, key)
        try:
            url = self.blob_store.upload(local_path, key)
        except StoryPipelineError as e:
            if not isinstance(e, PublishError):
                raise PublishError(e.message, job_id=job_id, stage="upload") from e
            raise e.with_context(job_id=job_id, stage="upload")
        except OSError as e:
            raise PublishError(f"Upload of {local_path} failed: {e}", job_id=job_id, stage="upload") from e

        if not url:
            raise PublishError("Blob store returned an empty URL", job_id=job_id, stage="upload")

        logger.info("Job %s: published %s", job_id, url)
        return CompiledStory(
            output_url=url,
            duration_seconds=info.duration,
            segment_count=segment_count,
            story_id=key,
            published_at=datetime.now(timezone.utc),
        )
