"""Exception hierarchy for the story compilation pipeline."""

from __future__ import annotations

# Environment variable names per storage provider
CREDENTIAL_ENV_VARS: dict[str, tuple[str, ...]] = {
    "cloudinary": ("CLOUDINARY_CLOUD_NAME", "CLOUDINARY_API_KEY", "CLOUDINARY_API_SECRET"),
    "http": ("FOOTAGEFLOW_BLOB_TOKEN",),
}


class StoryPipelineError(Exception):
    """Base exception for all pipeline errors.

    Carries enough context for the caller to report a meaningful message:
    the job id, the stage that failed and, for segment-level failures, the
    segment index and the source video it came from.
    """

    def __init__(
        self,
        message: str,
        *,
        job_id: str | None = None,
        stage: str | None = None,
        segment_index: int | None = None,
        source_video_id: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.job_id = job_id
        self.stage = stage
        self.segment_index = segment_index
        self.source_video_id = source_video_id

    def with_context(self, **context) -> StoryPipelineError:
        """Fill in context fields that are still unset and return self."""
        for name, value in context.items():
            if getattr(self, name, None) is None:
                setattr(self, name, value)
        return self

    @property
    def context(self) -> dict[str, str | int]:
        fields = {
            "job_id": self.job_id,
            "stage": self.stage,
            "segment_index": self.segment_index,
            "source_video_id": self.source_video_id,
        }
        return {k: v for k, v in fields.items() if v is not None}

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{k}={v}" for k, v in self.context.items())
        return f"{self.message} [{details}]"


class PlanError(StoryPipelineError):
    """Raised when a StoryPlan is malformed."""

    pass


class FetchError(StoryPipelineError):
    """Raised when a remote source cannot be downloaded."""

    pass


class TranscodeError(StoryPipelineError):
    """Raised when ffmpeg/ffprobe fails or produces an invalid output."""

    pass


class PublishError(StoryPipelineError):
    """Raised when the compiled story cannot be uploaded."""

    pass


class JobCancelledError(StoryPipelineError):
    """Raised when a job is cancelled between segments."""

    pass


class ConfigError(StoryPipelineError):
    """Raised when there's an error loading or parsing configuration."""

    pass


class MissingCredentialsError(ConfigError):
    """Raised when credentials for a storage provider are not found."""

    def __init__(self, provider: str):
        env_vars = CREDENTIAL_ENV_VARS.get(provider, (f"{provider.upper()}_API_KEY",))
        super().__init__(
            f"Credentials for '{provider}' not found. Set {', '.join(env_vars)} or pass them explicitly."
        )
        self.provider = provider
