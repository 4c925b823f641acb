import io
from datetime import datetime, timedelta, timezone

import jwt
import pytest
from PIL import Image as PILImage

from toonify import create_app
from toonify.extensions import db as _db
from toonify.models.image_job import ImageJob
from toonify.services import job_store, storage_service


@pytest.fixture(scope="session")
def app():
    """Create application for testing."""
    app = create_app("testing")
    with app.app_context():
        _db.create_all()
        yield app
        _db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db(app):
    """Per-test database session; rows are wiped afterwards."""
    with app.app_context():
        yield _db
        _db.session.rollback()
        for table in reversed(_db.metadata.sorted_tables):
            _db.session.execute(table.delete())
        _db.session.commit()


@pytest.fixture
def make_token(app):
    def _make(user_id="user-1", email="user1@example.com", expires_in=3600, secret=None):
        now = datetime.now(timezone.utc)
        claims = {
            "sub": user_id,
            "email": email,
            "aud": "authenticated",
            "iat": now,
            "exp": now + timedelta(seconds=expires_in),
        }
        return jwt.encode(
            claims, secret or app.config["AUTH_JWT_SECRET"], algorithm="HS256"
        )

    return _make


@pytest.fixture
def auth_headers(make_token):
    def _headers(user_id="user-1", **kwargs):
        return {"Authorization": f"Bearer {make_token(user_id, **kwargs)}"}

    return _headers


class FakeStorage:
    """Records uploads/deletes instead of talking to S3."""

    def __init__(self):
        self.objects = {}
        self.deleted = []
        self.fail_uploads = False

    def upload(self, storage_key, data, content_type="image/jpeg", private=False):
        if self.fail_uploads:
            from toonify.errors import StorageFailed

            raise StorageFailed(f"Failed to upload {storage_key}")
        self.objects[storage_key] = (data, content_type)

    def delete_many(self, storage_keys):
        keys = [k for k in storage_keys if k]
        self.deleted.extend(keys)
        for key in keys:
            self.objects.pop(key, None)


@pytest.fixture
def fake_storage(monkeypatch):
    fake = FakeStorage()
    monkeypatch.setattr(storage_service, "upload", fake.upload)
    monkeypatch.setattr(storage_service, "delete_many", fake.delete_many)
    return fake


def _image_bytes(fmt, color):
    buffer = io.BytesIO()
    PILImage.new("RGB", (8, 8), color=color).save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def jpeg_bytes():
    return _image_bytes("JPEG", (200, 80, 40))


@pytest.fixture
def png_bytes():
    return _image_bytes("PNG", (40, 80, 200))


@pytest.fixture
def make_job(db):
    """Create a job and push it straight to ``status``."""

    def _make(owner_id="user-1", status=ImageJob.NOT_TOONIFIED, **fields):
        job = job_store.create(
            owner_id,
            f"https://cdn.example.test/{owner_id}/source.jpg",
            f"{owner_id}/source.jpg",
        )
        job.status = status
        for name, value in fields.items():
            setattr(job, name, value)
        db.session.commit()
        return job

    return _make
