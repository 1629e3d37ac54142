import pytest

from footageflow.config import PipelineConfig
from footageflow.janitor import ResourceJanitor
from footageflow.models import StoryPlan
from footageflow.storage import LocalBlobStore
from tests.fakes import FakeTranscoder, make_segment, write_fake_media


@pytest.fixture
def pipeline_config(tmp_path):
    return PipelineConfig(work_dir=tmp_path / "work")


@pytest.fixture
def janitor(pipeline_config):
    return ResourceJanitor(pipeline_config.work_dir)


@pytest.fixture
def fake_transcoder(pipeline_config):
    return FakeTranscoder(pipeline_config)


@pytest.fixture
def published_dir(tmp_path):
    return tmp_path / "published"


@pytest.fixture
def local_store(published_dir):
    return LocalBlobStore(published_dir)


@pytest.fixture
def fake_sources(tmp_path):
    """Three fake source videos: A (30s), B (20s), C (12s)."""
    sources = tmp_path / "sources"
    return {
        "A": write_fake_media(sources / "a.mp4", 30.0, "A"),
        "B": write_fake_media(sources / "b.mp4", 20.0, "B"),
        "C": write_fake_media(sources / "c.mp4", 12.0, "C"),
    }


@pytest.fixture
def two_segment_fade_plan(fake_sources):
    return StoryPlan(
        title="Weekend trip",
        description="Highlights",
        style="travel",
        segments=[
            make_segment(fake_sources["A"], "A", 0.0, 10.0, "fade"),
            make_segment(fake_sources["B"], "B", 5.0, 10.0, "none"),
        ],
    )

