import pytest

from footageflow.exceptions import FetchError, TranscodeError
from footageflow.materializer import ClipMaterializer, clamp_duration
from footageflow.models import AssetStage
from tests.fakes import FakeTranscoder, make_segment, read_fake_media


@pytest.fixture
def materializer(local_store, fake_transcoder):
    return ClipMaterializer(local_store, fake_transcoder)


@pytest.mark.parametrize(
    "start, duration, source, expected",
    [
        (0.0, 10.0, 30.0, 10.0),
        (25.0, 10.0, 30.0, 5.0),
        (0.0, 40.0, 30.0, 30.0),
    ],
)
def test_clamp_duration(start, duration, source, expected):
    assert clamp_duration(start, duration, source) == expected


def test_clamp_duration_start_beyond_source():
    with pytest.raises(ValueError, match="beyond the source duration"):
        clamp_duration(30.0, 5.0, 30.0)


def test_materialize_trims_requested_range(materializer, janitor, fake_sources, fake_transcoder):
    context = janitor.open_job("job-1")
    segment = make_segment(fake_sources["B"], "B", 5.0, 10.0)

    clip = materializer.materialize(segment, 1, context)

    assert clip.segment_index == 1
    assert clip.source_video_id == "B"
    assert clip.duration == 10.0
    assert read_fake_media(clip.path)["order"] == "B"
    trim = next(args for name, args in fake_transcoder.calls if name == "trim")
    assert trim[2:] == (5.0, 10.0)


def test_materialize_registers_files_before_writing(materializer, janitor, fake_sources):
    context = janitor.open_job("job-1")
    clip = materializer.materialize(make_segment(fake_sources["A"], "A", 0.0, 5.0), 0, context)

    stages = {asset.stage: asset.path for asset in context.assets}
    assert stages[AssetStage.EXTRACTED_CLIP] == clip.path
    # source released early but still owned by the job
    assert not stages[AssetStage.DOWNLOADED_SOURCE].exists()


def test_clip_duration_is_probed_not_requested(local_store, pipeline_config, janitor, fake_sources):
    transcoder = FakeTranscoder(pipeline_config, keyframe_drift=0.04)
    materializer = ClipMaterializer(local_store, transcoder)

    clip = materializer.materialize(make_segment(fake_sources["A"], "A", 0.0, 10.0), 0, janitor.open_job("job-1"))

    assert clip.duration == 10.04
    assert clip.requested_duration == 10.0


def test_range_past_end_is_clamped(materializer, janitor, fake_sources, caplog):
    context = janitor.open_job("job-1")
    with caplog.at_level("WARNING", logger="footageflow.materializer"):
        clip = materializer.materialize(make_segment(fake_sources["C"], "C", 8.0, 10.0), 2, context)

    assert clip.duration == 4.0
    assert "clamped to 4.00s" in caplog.text


def test_start_beyond_source_fails(materializer, janitor, fake_sources):
    context = janitor.open_job("job-1")
    with pytest.raises(TranscodeError, match="beyond the source") as exc_info:
        materializer.materialize(make_segment(fake_sources["C"], "C", 15.0, 5.0), 2, context)

    assert exc_info.value.segment_index == 2
    assert exc_info.value.source_video_id == "C"
    assert exc_info.value.job_id == "job-1"


def test_missing_source_is_fetch_error(materializer, janitor, tmp_path):
    context = janitor.open_job("job-1")
    segment = make_segment(tmp_path / "missing.mp4", "X", 0.0, 5.0)

    with pytest.raises(FetchError) as exc_info:
        materializer.materialize(segment, 0, context)

    assert exc_info.value.stage == "download"
    assert exc_info.value.segment_index == 0
    assert exc_info.value.source_video_id == "X"


def test_trim_failure_carries_segment_context(local_store, pipeline_config, janitor, fake_sources):
    materializer = ClipMaterializer(local_store, FakeTranscoder(pipeline_config, fail_on="trim"))

    with pytest.raises(TranscodeError) as exc_info:
        materializer.materialize(make_segment(fake_sources["A"], "A", 0.0, 5.0), 3, janitor.open_job("job-1"))

    assert exc_info.value.stage == "trim"
    assert exc_info.value.segment_index == 3
    assert "segment_index=3" in str(exc_info.value)
