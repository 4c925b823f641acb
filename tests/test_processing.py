"""Tests for the processing handler state machine."""
from unittest.mock import MagicMock

import httpx
import pytest

from toonify.errors import (
    GenerationFailed,
    InvalidTransition,
    NoImageInResponse,
    NotFound,
    StorageFailed,
    ToonifyError,
    UpstreamUnreachable,
)
from toonify.handlers import processing
from toonify.handlers.processing import process_image
from toonify.models.image_job import ImageJob
from toonify.services import job_store


class FakeGenerator:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def generate(self, source_bytes, mime_type, style_hint):
        self.calls.append((source_bytes, mime_type, style_hint))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _fetch(data=b"original-bytes", mime_type="image/jpeg"):
    return MagicMock(return_value=(data, mime_type))


def test_success_completes_job(make_job, fake_storage, jpeg_bytes):
    job = make_job(status=ImageJob.IN_QUEUE)
    generator = FakeGenerator((jpeg_bytes, "image/jpeg"))
    fetch = _fetch()

    result = process_image(job.id, generator=generator, fetch=fetch)

    expected_key = f"toonified/toonified-{job.id}.jpg"
    assert result == {
        "success": True,
        "imageUrl": f"https://cdn.example.test/{expected_key}",
    }
    fetch.assert_called_once_with("https://cdn.example.test/user-1/source.jpg")
    assert generator.calls[0][:2] == (b"original-bytes", "image/jpeg")
    assert fake_storage.objects[expected_key] == (jpeg_bytes, "image/jpeg")

    fetched = job_store.get(job.id)
    assert fetched.status == ImageJob.COMPLETE
    assert fetched.toonified_image_url == result["imageUrl"]
    assert fetched.toonified_storage_key == expected_key


def test_output_extension_follows_mime(make_job, fake_storage, png_bytes):
    job = make_job(status=ImageJob.IN_QUEUE)

    result = process_image(
        job.id, generator=FakeGenerator((png_bytes, "image/png")), fetch=_fetch()
    )

    assert result["imageUrl"].endswith(f"toonified/toonified-{job.id}.png")


def test_job_passes_through_processing(make_job, fake_storage, jpeg_bytes):
    job = make_job(status=ImageJob.IN_QUEUE)
    seen = []

    def fetch(url):
        seen.append(job_store.get(job.id).status)
        return b"original-bytes", "image/jpeg"

    process_image(job.id, generator=FakeGenerator((jpeg_bytes, "image/jpeg")), fetch=fetch)

    assert seen == [ImageJob.PROCESSING]


def test_missing_job_is_not_found(db, fake_storage):
    generator = FakeGenerator()
    with pytest.raises(NotFound):
        process_image("nope", generator=generator, fetch=_fetch())
    assert generator.calls == []
    assert job_store.count_by_status() == {}


def test_missing_image_id_is_bad_request(db):
    with pytest.raises(ToonifyError) as excinfo:
        process_image(None)
    assert excinfo.value.status_code == 400


@pytest.mark.parametrize(
    "status", [ImageJob.NOT_TOONIFIED, ImageJob.PROCESSING, ImageJob.ERROR]
)
def test_unqueued_job_is_not_processed(make_job, fake_storage, status):
    job = make_job(status=status)
    generator = FakeGenerator()

    with pytest.raises(InvalidTransition):
        process_image(job.id, generator=generator, fetch=_fetch())

    assert generator.calls == []
    assert job_store.get(job.id).status == status


def test_complete_job_is_not_reprocessed(make_job, fake_storage):
    job = make_job(status=ImageJob.COMPLETE, toonified_image_url="https://cdn/t.jpg")

    with pytest.raises(InvalidTransition):
        process_image(job.id, generator=FakeGenerator(), fetch=_fetch())

    fetched = job_store.get(job.id)
    assert fetched.status == ImageJob.COMPLETE
    assert fetched.toonified_image_url == "https://cdn/t.jpg"


def test_owner_mismatch_is_not_found(make_job, fake_storage):
    job = make_job(owner_id="owner-a", status=ImageJob.IN_QUEUE)

    with pytest.raises(NotFound):
        process_image(job.id, owner_id="owner-b", generator=FakeGenerator(), fetch=_fetch())
    assert job_store.get(job.id).status == ImageJob.IN_QUEUE


def test_fetch_failure_sets_error(make_job, fake_storage):
    job = make_job(status=ImageJob.IN_QUEUE)
    fetch = MagicMock(side_effect=UpstreamUnreachable("Failed to fetch original image"))

    with pytest.raises(UpstreamUnreachable):
        process_image(job.id, generator=FakeGenerator(), fetch=fetch)

    fetched = job_store.get(job.id)
    assert fetched.status == ImageJob.ERROR
    assert fetched.toonified_image_url is None
    assert "fetch" in fetched.error_message


def test_generation_failure_sets_error(make_job, fake_storage):
    job = make_job(status=ImageJob.IN_QUEUE)
    generator = FakeGenerator(NoImageInResponse())

    with pytest.raises(GenerationFailed):
        process_image(job.id, generator=generator, fetch=_fetch())

    fetched = job_store.get(job.id)
    assert fetched.status == ImageJob.ERROR
    assert fetched.toonified_image_url is None
    assert fake_storage.objects == {}


def test_storage_failure_sets_error(make_job, fake_storage, jpeg_bytes):
    job = make_job(status=ImageJob.IN_QUEUE)
    fake_storage.fail_uploads = True

    with pytest.raises(StorageFailed):
        process_image(job.id, generator=FakeGenerator((jpeg_bytes, "image/jpeg")), fetch=_fetch())

    fetched = job_store.get(job.id)
    assert fetched.status == ImageJob.ERROR
    assert fetched.toonified_image_url is None


def test_unexpected_error_is_wrapped(make_job, fake_storage):
    job = make_job(status=ImageJob.IN_QUEUE)
    generator = FakeGenerator(KeyError("inline_data"))

    with pytest.raises(ToonifyError) as excinfo:
        process_image(job.id, generator=generator, fetch=_fetch())

    assert excinfo.value.status_code == 500
    assert job_store.get(job.id).status == ImageJob.ERROR


def test_failed_error_flip_is_swallowed(make_job, fake_storage):
    job = make_job(status=ImageJob.IN_QUEUE)

    class BrokenStore:
        get = staticmethod(job_store.get)
        claim = staticmethod(job_store.claim)

        @staticmethod
        def mark_failed(image_id, message):
            raise RuntimeError("database went away")

    with pytest.raises(GenerationFailed):
        process_image(
            job.id,
            store=BrokenStore,
            generator=FakeGenerator(GenerationFailed("boom")),
            fetch=_fetch(),
        )

    # The original failure surfaces, not the secondary one
    assert job_store.get(job.id).status == ImageJob.PROCESSING


def test_retry_after_error_overwrites_same_path(make_job, fake_storage, jpeg_bytes):
    job = make_job(status=ImageJob.IN_QUEUE)
    expected_key = f"toonified/toonified-{job.id}.jpg"
    # Left behind by an earlier partial attempt
    fake_storage.objects[expected_key] = (b"partial", "image/jpeg")

    for _ in range(2):
        with pytest.raises(GenerationFailed):
            process_image(job.id, generator=FakeGenerator(GenerationFailed()), fetch=_fetch())
        assert job_store.get(job.id).status == ImageJob.ERROR
        job_store.retry(job.id)

    result = process_image(
        job.id, generator=FakeGenerator((jpeg_bytes, "image/jpeg")), fetch=_fetch()
    )

    assert result["imageUrl"] == f"https://cdn.example.test/{expected_key}"
    assert list(fake_storage.objects) == [expected_key]
    assert fake_storage.objects[expected_key][0] == jpeg_bytes
    assert job_store.get(job.id).status == ImageJob.COMPLETE


# ---------------------------------------------------------------------------
# fetch_source
# ---------------------------------------------------------------------------

def test_fetch_source_returns_bytes_and_mime(app, monkeypatch):
    request = httpx.Request("GET", "https://cdn.example.test/a.png")
    response = httpx.Response(
        200, content=b"png-bytes", headers={"content-type": "image/png; charset=binary"}, request=request
    )
    monkeypatch.setattr(processing.httpx, "get", MagicMock(return_value=response))

    with app.app_context():
        assert processing.fetch_source("https://cdn.example.test/a.png") == (b"png-bytes", "image/png")


def test_fetch_source_http_error(app, monkeypatch):
    request = httpx.Request("GET", "https://cdn.example.test/a.png")
    response = httpx.Response(404, request=request)
    monkeypatch.setattr(processing.httpx, "get", MagicMock(return_value=response))

    with app.app_context(), pytest.raises(UpstreamUnreachable):
        processing.fetch_source("https://cdn.example.test/a.png")


def test_fetch_source_transport_error(app, monkeypatch):
    monkeypatch.setattr(
        processing.httpx, "get", MagicMock(side_effect=httpx.ConnectError("refused"))
    )

    with app.app_context(), pytest.raises(UpstreamUnreachable):
        processing.fetch_source("https://cdn.example.test/a.png")
