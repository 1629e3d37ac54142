from .assembler import JobState, StoryAssembler, StoryJob
from .config import PipelineConfig, clear_config_cache, get_config
from .exceptions import (
    ConfigError,
    FetchError,
    JobCancelledError,
    MissingCredentialsError,
    PlanError,
    PublishError,
    StoryPipelineError,
    TranscodeError,
)
from .janitor import JobContext, ResourceJanitor, generate_job_id
from .materializer import ClipMaterializer
from .models import AssetStage, ClipFile, CompiledStory, MediaInfo, Segment, StoryPlan, TempAsset, TransitionType
from .progress import configure, set_progress
from .publisher import Publisher
from .storage import BlobStore, CloudinaryBlobStore, HttpBlobStore, LocalBlobStore
from .transcoder import Transcoder
from .transitions import TransitionGraph, TransitionSpec, build_transition_graph, expected_duration

__all__ = [
    # Pipeline
    "StoryAssembler",
    "StoryJob",
    "JobState",
    "ClipMaterializer",
    "Publisher",
    "Transcoder",
    # Models
    "StoryPlan",
    "Segment",
    "TransitionType",
    "AssetStage",
    "TempAsset",
    "ClipFile",
    "MediaInfo",
    "CompiledStory",
    # Transitions
    "TransitionSpec",
    "TransitionGraph",
    "build_transition_graph",
    "expected_duration",
    # Storage
    "BlobStore",
    "HttpBlobStore",
    "CloudinaryBlobStore",
    "LocalBlobStore",
    # Cleanup
    "JobContext",
    "ResourceJanitor",
    "generate_job_id",
    # Configuration
    "PipelineConfig",
    "get_config",
    "clear_config_cache",
    "configure",
    "set_progress",
    # Exceptions
    "StoryPipelineError",
    "PlanError",
    "FetchError",
    "TranscodeError",
    "PublishError",
    "JobCancelledError",
    "ConfigError",
    "MissingCredentialsError",
]
