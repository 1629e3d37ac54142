"""Story compilation job: materialize, compose, publish, clean up."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Sequence

from footageflow.config import PipelineConfig, get_config
from footageflow.exceptions import JobCancelledError, StoryPipelineError
from footageflow.janitor import JobContext, ResourceJanitor, generate_job_id
from footageflow.materializer import ClipMaterializer
from footageflow.models import AssetStage, ClipFile, CompiledStory, StoryPlan
from footageflow.progress import progress_iter
from footageflow.publisher import Publisher
from footageflow.storage import BlobStore
from footageflow.transcoder import Transcoder
from footageflow.transitions import TransitionSpec

logger = logging.getLogger(__name__)

__all__ = ["JobState", "StoryAssembler", "StoryJob"]


class JobState(str, Enum):
    PENDING = "pending"
    MATERIALIZING = "materializing"
    COMPOSING = "composing"
    PUBLISHING = "publishing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED)


_ALLOWED_TRANSITIONS: dict[JobState, set[JobState]] = {
    JobState.PENDING: {JobState.MATERIALIZING, JobState.FAILED},
    JobState.MATERIALIZING: {JobState.COMPOSING, JobState.FAILED},
    JobState.COMPOSING: {JobState.PUBLISHING, JobState.FAILED},
    JobState.PUBLISHING: {JobState.COMPLETED, JobState.FAILED},
    JobState.COMPLETED: set(),
    JobState.FAILED: set(),
}

StateCallback = Callable[[str, JobState, JobState], None]


@dataclass
class StoryJob:
    """State of one compilation job."""

    job_id: str
    state: JobState = JobState.PENDING
    history: list[JobState] = field(default_factory=lambda: [JobState.PENDING])
    on_state_change: StateCallback | None = None

    def advance(self, new_state: JobState) -> None:
        if new_state not in _ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(f"Job {self.job_id}: illegal transition {self.state.value} -> {new_state.value}")
        old_state, self.state = self.state, new_state
        self.history.append(new_state)
        logger.debug("Job %s: %s -> %s", self.job_id, old_state.value, new_state.value)
        if self.on_state_change is not None:
            try:
                self.on_state_change(self.job_id, old_state, new_state)
            except Exception:
                logger.exception("Job %s: state change callback failed", self.job_id)


class StoryAssembler:
    """Compiles a StoryPlan into one published video.

    States: pending -> materializing -> composing -> publishing -> completed,
    with failed reachable from any non-terminal state. Segments are processed
    one at a time in plan order and the first failure aborts the job; there
    is no partial story. Every temporary file of the job is removed once it
    reaches a terminal state, including the compiled output after upload.

    Example:
        >>> assembler = StoryAssembler(HttpBlobStore("https://blobs.example.com"))
        >>> story = assembler.compile(StoryPlan.from_json(payload))
        >>> story.output_url
    """

    def __init__(
        self,
        blob_store: BlobStore,
        config: PipelineConfig | None = None,
        transcoder: Transcoder | None = None,
        janitor: ResourceJanitor | None = None,
        on_state_change: StateCallback | None = None,
    ):
        self.config = config or get_config()
        self.transcoder = transcoder or Transcoder(self.config)
        self.janitor = janitor or ResourceJanitor(self.config.work_dir)
        self.materializer = ClipMaterializer(blob_store, self.transcoder)
        self.publisher = Publisher(blob_store, self.transcoder, key_prefix=self.config.key_prefix)
        self.on_state_change = on_state_change

    def compile(
        self,
        plan: StoryPlan,
        job_id: str | None = None,
        cancel_event: threading.Event | None = None,
    ) -> CompiledStory:
        """Run one compilation job to completion or failure.

        Args:
            plan: Plan to compile. Consumed once.
            job_id: Unique job id. A fresh one is generated when omitted; a
                retry must always use a new id.
            cancel_event: Checked between segments; when set the job fails
                with JobCancelledError.

        Returns:
            The published CompiledStory.

        Raises:
            StoryPipelineError: Any failure, with job id and stage attached.
        """
        job = StoryJob(job_id=job_id or generate_job_id(), on_state_change=self.on_state_change)
        logger.info("Job %s: compiling '%s' with %d segments", job.job_id, plan.title, len(plan.segments))

        try:
            plan.validate()
            context = self.janitor.open_job(job.job_id)

            job.advance(JobState.MATERIALIZING)
            clips = self._materialize_all(plan, context, cancel_event)

            job.advance(JobState.COMPOSING)
            output_path = self._compose(plan, clips, context)

            job.advance(JobState.PUBLISHING)
            story = self.publisher.publish(output_path, job.job_id, segment_count=len(clips))

            job.advance(JobState.COMPLETED)
            logger.info(
                "Job %s: completed, %d segments, %.2fs at %s",
                job.job_id,
                story.segment_count,
                story.duration_seconds,
                story.output_url,
            )
            return story
        except StoryPipelineError as e:
            e.with_context(job_id=job.job_id, stage=job.state.value)
            self._fail(job, e)
            raise
        except Exception as e:
            error = StoryPipelineError(f"Unexpected error: {e}", job_id=job.job_id, stage=job.state.value)
            self._fail(job, error)
            raise error from e
        finally:
            self.janitor.cleanup(job.job_id)

    def compile_many(self, plans: Sequence[StoryPlan], max_workers: int = 2) -> list[CompiledStory | StoryPipelineError]:
        """Compile independent plans concurrently, one job per plan.

        Segments stay sequential inside each job, so at most `max_workers`
        ffmpeg processes run at once. Results keep the order of `plans`; a
        failed job yields its error instead of a story.
        """
        results: list[CompiledStory | StoryPipelineError] = []
        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="story-job") as executor:
            futures = [executor.submit(self.compile, plan) for plan in plans]
            for future in futures:
                try:
                    results.append(future.result())
                except StoryPipelineError as e:
                    results.append(e)
        return results

    def _fail(self, job: StoryJob, error: StoryPipelineError) -> None:
        if not job.state.is_terminal:
            job.advance(JobState.FAILED)
        logger.error("Job %s: failed: %s", job.job_id, error)

    def _materialize_all(
        self, plan: StoryPlan, context: JobContext, cancel_event: threading.Event | None
    ) -> list[ClipFile]:
        clips: list[ClipFile] = []
        segments = progress_iter(enumerate(plan.segments), desc=f"Materializing {context.job_id}", total=len(plan.segments))
        for index, segment in segments:
            if cancel_event is not None and cancel_event.is_set():
                raise JobCancelledError(
                    f"Job cancelled before segment {index}", job_id=context.job_id, segment_index=index
                )
            clips.append(self.materializer.materialize(segment, index, context))

        order = [clip.segment_index for clip in clips]
        if order != list(range(len(plan.segments))):
            raise StoryPipelineError(f"Clips materialized out of plan order: {order}", job_id=context.job_id)
        return clips

    def _compose(self, plan: StoryPlan, clips: list[ClipFile], context: JobContext) -> Path:
        output_path = context.job_dir / f"story_{context.job_id}.mp4"
        context.register(output_path, AssetStage.COMPILED_OUTPUT)

        if len(clips) == 1:
            logger.info("Job %s: single segment, copying clip as output", context.job_id)
            self.transcoder.copy(clips[0].path, output_path)
            return output_path

        inputs = [clip.path for clip in clips]
        durations = [clip.duration for clip in clips]
        if not plan.has_transitions:
            logger.info("Job %s: concatenating %d clips", context.job_id, len(clips))
            list_path = context.new_path(AssetStage.SCRATCH, prefix="concat", suffix=".txt")
            self.transcoder.concatenate(inputs, output_path, list_path)
            expected = round(sum(durations), 4)
            stage = "concat"
        else:
            specs = [TransitionSpec(s.transition_to_next, s.transition_duration) for s in plan.segments[:-1]]
            graph = self.transcoder.concatenate_with_transitions(inputs, durations, specs, output_path)
            logger.info(
                "Job %s: joined %d clips with %d transitions", context.job_id, len(clips), graph.transition_count
            )
            expected = graph.expected_duration
            stage = "concat-transitions"

        self.transcoder.verify_duration(output_path, expected, stage=stage)
        return output_path
