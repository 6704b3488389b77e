import mongomock
import pytest
from fastapi.testclient import TestClient

from app.core.config import settings
from app.db import mongo
from app.main import app
from app.utils import storage
from tests.helpers import bearer, register

# keep bcrypt fast in tests
settings.BCRYPT_ROUNDS = 4
# limiter behaviour has its own tests in test_rate_limit.py
settings.RATE_LIMIT_ENABLED = False


@pytest.fixture(autouse=True)
def db():
    database = mongomock.MongoClient()["expense_tracker_test"]
    mongo.use_database(database)
    mongo.ensure_indexes()
    yield database
    mongo.use_database(None)


@pytest.fixture
def client():
    # no context manager: the lifespan (indexes on a real server, scheduler) stays off
    return TestClient(app)


@pytest.fixture
def uploads(monkeypatch):
    """Capture S3 uploads instead of talking to AWS."""
    stored = {}

    def fake_upload(key, data, content_type):
        stored[key] = (data, content_type)
        return storage.object_url(key)

    monkeypatch.setattr(storage, "upload_bytes", fake_upload)
    monkeypatch.setattr(storage, "delete_object", lambda key: bool(key))
    return stored


@pytest.fixture
def session(client):
    return register(client)


@pytest.fixture
def auth_headers(session):
    return bearer(session)
