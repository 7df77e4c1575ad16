import mongomock
import pytest
from fastapi.testclient import TestClient

from config import Settings
from main import create_app
from storage import StoredAsset, file_extension


class FakeAssetStore:
    """Records saves and deletes instead of touching disk or Cloudinary."""

    def __init__(self):
        self.saved = []
        self.deleted = []

    def save(self, upload, fieldname):
        file_extension(upload.filename)
        handle = f"{fieldname}_{len(self.saved) + 1}"
        self.saved.append((fieldname, upload.filename, upload.file.read()))
        return StoredAsset(url=f"https://assets.test/{handle}.png", handle=handle)

    def delete(self, handle):
        self.deleted.append(handle)


class FakeMailer:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def send(self, to, subject, html):
        if self.fail:
            raise RuntimeError("smtp down")
        self.sent.append({"to": list(to), "subject": subject, "html": html})


@pytest.fixture
def db():
    return mongomock.MongoClient()["cloud9pastries_test"]


@pytest.fixture
def assets():
    return FakeAssetStore()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def settings():
    return Settings(admin_email="owner@cloud9.test", sender_email="orders@cloud9.test")


@pytest.fixture
def app(settings, db, assets, mailer):
    return create_app(settings, db=db, assets=assets, mailer=mailer)


@pytest.fixture
def client(app):
    return TestClient(app)
