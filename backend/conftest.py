import os
import shutil
import sys
import tempfile

# Point the app at a throwaway database before anything imports config.
_TMP_DIR = tempfile.mkdtemp(prefix="portfolio-tests-")
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(_TMP_DIR, "test.db")
os.environ["UPLOAD_DIR"] = os.path.join(_TMP_DIR, "uploads")
os.environ["ENVIRONMENT"] = "development"
os.environ["ADMIN_USERNAME"] = "admin"
os.environ["ADMIN_PASSWORD"] = "admin123"

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import pytest
from fastapi.testclient import TestClient

import main
from database import Base, engine, init_db
from media import MediaHostError, RemoteFile, UploadedMedia
from sessions import MemorySessionStore


class FakeMediaHost:
    """Stands in for Cloudinary: keeps uploaded bytes in memory."""

    def __init__(self):
        self.uploads = []
        self.files = {}
        self.fail = False

    def upload(self, data, folder, filename, resource_type, **options):
        if self.fail:
            raise MediaHostError("media host unavailable")
        url = f"https://media.test/{resource_type}/{folder}/{len(self.uploads)}-{filename}"
        self.uploads.append({
            "folder": folder,
            "filename": filename,
            "resource_type": resource_type,
            "size": len(data),
            "options": options,
        })
        self.files[url] = data
        return UploadedMedia(url=url, public_id=f"{folder}/{filename}", resource_type=resource_type)

    async def fetch(self, url):
        if url not in self.files:
            raise MediaHostError(f"no such object {url}")
        data = self.files[url]

        async def chunks():
            yield data

        return RemoteFile(content_type="application/octet-stream", chunks=chunks())


@pytest.fixture(autouse=True)
def fresh_state():
    Base.metadata.drop_all(bind=engine)
    init_db()
    main.app.state.session_store = MemorySessionStore()
    yield


@pytest.fixture
def media():
    fake = FakeMediaHost()
    main.app.dependency_overrides[main.get_media_host] = lambda: fake
    yield fake
    main.app.dependency_overrides.pop(main.get_media_host, None)


@pytest.fixture
def client(media):
    with TestClient(main.app) as c:
        yield c


@pytest.fixture
def admin_client(client):
    response = client.post("/api/login", json={"username": "admin", "password": "admin123"})
    assert response.status_code == 200
    return client


@pytest.fixture
def upload_dir():
    return main.settings.upload_dir


@pytest.fixture
def course(admin_client):
    response = admin_client.post("/api/courses", json={
        "title": "Calc I",
        "code": "MTH101",
        "description": "Limits, derivatives and integrals.",
        "semester": "Fall",
        "session": "2024/2025",
    })
    assert response.status_code == 201
    return response.json()


def pytest_sessionfinish(session, exitstatus):
    engine.dispose()
    shutil.rmtree(_TMP_DIR, ignore_errors=True)
