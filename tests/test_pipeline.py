import asyncio
import io

import pytest

from around_service.application.pipeline import PipelineState, PostIngestionPipeline
from around_service.domain.models import Attachment, MediaKind, PostSubmission
from around_service.errors import AdapterErrorKind, ErrorKind
from around_service.infrastructure.identifiers import UUIDGenerator

JPEG_BYTES = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00\xff\xd9"


def _submission(message="hello world", lat=37.7749, lon=-122.4194, filename="photo.jpg", content=JPEG_BYTES):
    attachment = None
    if filename is not None:
        attachment = Attachment(filename=filename, content=io.BytesIO(content), content_type="image/jpeg")
    return PostSubmission(author="alice", message=message, lat=lat, lon=lon, attachment=attachment)


async def test_successful_run_visits_every_state_in_order(pipeline, attachment_store, search_index, durable_store, settings):
    run = await pipeline.run(_submission())

    assert run.history == [
        PipelineState.RECEIVED,
        PipelineState.IDENTIFIER_ASSIGNED,
        PipelineState.ATTACHMENT_STORED,
        PipelineState.ANALYZED,
        PipelineState.INDEXED,
        PipelineState.PERSISTED,
        PipelineState.COMPLETE,
    ]
    post = run.result().value
    assert post.id == "post-1"
    assert post.user == "alice"
    assert post.media_kind is MediaKind.IMAGE
    assert post.url == "https://storage.test/test-bucket/post-1"
    assert post.has_face is True

    assert attachment_store.objects[("test-bucket", "post-1")] == JPEG_BYTES
    assert search_index.documents[settings.ELASTICSEARCH_INDEX]["post-1"] == post.to_document()
    row = durable_store.rows["post-1"]
    assert row["table"] == settings.BIGTABLE_TABLE_ID
    assert row["columns"][("location", "lat")] == b"37.7749"
    assert row["columns"][("location", "lon")] == b"-122.4194"
    assert row["columns"][("post", "message")] == b"hello world"


async def test_face_detection_receives_stored_link(pipeline, face_detector):
    await pipeline.submit(_submission())

    assert face_detector.links == ["https://storage.test/test-bucket/post-1"]


@pytest.mark.parametrize("filename,kind", [
    ("clip.mp4", MediaKind.VIDEO),
    ("notes.xyz", MediaKind.UNKNOWN),
    ("photo.png", MediaKind.IMAGE),
])
async def test_media_kind_follows_extension(pipeline, filename, kind):
    created = await pipeline.submit(_submission(filename=filename))

    assert created.value.media_kind is kind


async def test_missing_attachment_fails_before_any_write(pipeline, attachment_store, search_index, durable_store, settings):
    run = await pipeline.run(_submission(filename=None))

    assert run.state is PipelineState.FAILED
    assert run.error.kind is ErrorKind.ATTACHMENT_ERROR
    assert run.error.state == PipelineState.IDENTIFIER_ASSIGNED.value
    assert attachment_store.calls == 0
    assert search_index.documents[settings.ELASTICSEARCH_INDEX] == {}
    assert durable_store.rows == {}


@pytest.mark.parametrize("kind", [AdapterErrorKind.STORAGE_UNAVAILABLE, AdapterErrorKind.WRITE_FAILED])
async def test_storage_failure_is_fatal(pipeline, attachment_store, face_detector, kind):
    attachment_store.failure = kind

    created = await pipeline.submit(_submission())

    assert created.is_err
    assert created.error.kind is ErrorKind.ATTACHMENT_ERROR
    assert created.error.cause.kind is kind
    assert created.error.status_code == 500
    assert face_detector.links == []


async def test_analysis_failure_is_fatal_by_default(pipeline, face_detector, search_index, settings):
    face_detector.failure = AdapterErrorKind.ANALYSIS_UNAVAILABLE

    run = await pipeline.run(_submission())

    assert run.error.kind is ErrorKind.ANALYSIS_ERROR
    assert run.error.state == PipelineState.ATTACHMENT_STORED.value
    assert search_index.documents[settings.ELASTICSEARCH_INDEX] == {}


async def test_analysis_failure_can_downgrade_face_flag(settings, ids, attachment_store, face_detector, search_index, durable_store):
    lenient = settings.model_copy(update={"ANALYSIS_FAILURE_FATAL": False})
    pipeline = PostIngestionPipeline(
        lenient, ids, attachment_store, face_detector, search_index, durable_store
    )
    face_detector.failure = AdapterErrorKind.ANALYSIS_UNAVAILABLE

    created = await pipeline.submit(_submission())

    assert created.is_ok
    assert created.value.has_face is False
    assert "post-1" in durable_store.rows


async def test_analysis_timeout_fails_run(pipeline, face_detector):
    face_detector.delay = 5

    created = await pipeline.submit(_submission())

    assert created.error.kind is ErrorKind.ANALYSIS_ERROR
    assert created.error.cause.kind is AdapterErrorKind.ANALYSIS_UNAVAILABLE


async def test_index_failure_skips_durable_store(pipeline, search_index, durable_store):
    search_index.failure = AdapterErrorKind.INDEX_UNAVAILABLE

    run = await pipeline.run(_submission())

    assert run.error.kind is ErrorKind.INDEX_ERROR
    assert PipelineState.INDEXED not in run.history
    assert durable_store.rows == {}


async def test_durable_store_failure_leaves_post_searchable(pipeline, search_service, durable_store):
    durable_store.failure = AdapterErrorKind.STORE_UNAVAILABLE

    run = await pipeline.run(_submission())

    assert run.error.kind is ErrorKind.DURABLE_STORE_ERROR
    assert run.error.state == PipelineState.INDEXED.value
    assert run.history[-2:] == [PipelineState.INDEXED, PipelineState.FAILED]

    # The index write is not rolled back
    by_radius = await search_service.search_by_radius(37.7749, -122.4194, 1)
    by_face = await search_service.search_by_face()
    assert [post.id for post in by_radius.value] == ["post-1"]
    assert [post.id for post in by_face.value] == ["post-1"]


@pytest.mark.parametrize("lat,lon", [
    (90.5, 0.0),
    (0.0, -180.01),
    (float("nan"), 0.0),
    (0.0, float("inf")),
])
async def test_invalid_coordinates_are_rejected(pipeline, attachment_store, lat, lon):
    run = await pipeline.run(_submission(lat=lat, lon=lon))

    assert run.error.kind is ErrorKind.VALIDATION_ERROR
    assert run.error.status_code == 400
    assert run.history == [PipelineState.RECEIVED, PipelineState.FAILED]
    assert attachment_store.calls == 0


async def test_overlong_message_is_rejected(pipeline, settings):
    run = await pipeline.run(_submission(message="x" * (settings.MAX_MESSAGE_LENGTH + 1)))

    assert run.error.kind is ErrorKind.VALIDATION_ERROR


async def test_concurrent_submissions_are_independent(settings, attachment_store, face_detector, search_index, durable_store):
    pipeline = PostIngestionPipeline(
        settings, UUIDGenerator(), attachment_store, face_detector, search_index, durable_store
    )

    results = await asyncio.gather(*[
        pipeline.submit(_submission(message=f"post {i}", lat=i, lon=-i)) for i in range(20)
    ])

    ids = {result.value.id for result in results}
    assert len(ids) == 20
    assert set(durable_store.rows) == ids
    assert set(search_index.documents[settings.ELASTICSEARCH_INDEX]) == ids
