"""
Pytest configuration and shared fixtures for testing.
"""
import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import base64
from datetime import date

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from healthtrack import models  # noqa: F401
from healthtrack.api import dependencies
from healthtrack.config import settings
from healthtrack.database import Base
from healthtrack.main import app
from healthtrack.schemas.documents import MediaAsset
from healthtrack.services.adherence_service import AdherenceService
from healthtrack.services.classifier import DocumentClassifier
from healthtrack.services.extraction import ExtractionPipeline
from healthtrack.services.message_cache import RecentMessageCache
from healthtrack.services.normalizer import FormatNormalizer
from healthtrack.services.pipeline import DocumentPipeline
from healthtrack.services.records_service import RecordsService
from healthtrack.services.reminder_service import ReminderService
from healthtrack.services.result_store import ResultStore

PATIENT = "919800000001"

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# ==================== FAKE COLLABORATORS ====================

class FakeClaude:
    """
    Stands in for ClaudeService

    ``responses`` maps a tool name to either a callable taking the content
    blocks and returning the list of tool inputs, or an exception to raise.
    """

    def __init__(self, responses=None):
        self.responses = responses or {}
        self.calls = []

    async def call_tool(self, content, tool, max_tokens=None):
        self.calls.append({"tool": tool["name"], "content": content})
        response = self.responses.get(tool["name"])
        if isinstance(response, Exception):
            raise response
        if response is None:
            return []
        return response(content)

    def calls_for(self, tool_name):
        return [call for call in self.calls if call["tool"] == tool_name]


def image_count(content):
    return len([block for block in content if block["type"] == "image"])


class FakeRasterizer:
    def __init__(self, pages=None, error=None):
        self.pages = pages if pages is not None else []
        self.error = error
        self.calls = []

    async def rasterize(self, data=None, public_url=None, filename="document.pdf"):
        self.calls.append({"data": data, "public_url": public_url})
        if self.error:
            raise self.error
        return list(self.pages)


class FakeStorage:
    def __init__(self):
        self.uploads = []

    async def intake(self, data, filename, content_type):
        self.uploads.append({"filename": filename, "content_type": content_type, "size": len(data)})
        return MediaAsset(
            data=data,
            mime_type=content_type,
            public_url=f"https://storage.test/all_file/{filename}",
            filename=filename
        )


class FakeMessaging:
    def __init__(self, media=None, error=None):
        self.media = media or {}
        self.error = error
        self.texts = []
        self.buttons = []

    async def send_text(self, to, body):
        if self.error:
            raise self.error
        self.texts.append((to, body))
        return {"messages": [{"id": "wamid.sent"}]}

    async def send_buttons(self, to, body, buttons):
        if self.error:
            raise self.error
        self.buttons.append((to, body, buttons))
        return {"messages": [{"id": "wamid.sent"}]}

    async def download_media(self, media_id):
        return self.media[media_id]


# ==================== FIXTURES ====================

@pytest.fixture
def db():
    """Fresh in-memory database per test"""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def fake_claude():
    return FakeClaude()


@pytest.fixture
def fake_rasterizer():
    return FakeRasterizer()


@pytest.fixture
def fake_storage():
    return FakeStorage()


@pytest.fixture
def fake_messaging():
    return FakeMessaging()


@pytest.fixture
def pipeline(fake_claude, fake_rasterizer, fake_storage, fake_messaging):
    return DocumentPipeline(
        storage=fake_storage,
        normalizer=FormatNormalizer(rasterizer=fake_rasterizer),
        classifier=DocumentClassifier(claude=fake_claude),
        extractor=ExtractionPipeline(claude=fake_claude, batch_size=3),
        store=ResultStore(),
        messaging=fake_messaging
    )


@pytest.fixture
def adherence(fake_messaging):
    return AdherenceService(messaging=fake_messaging)


@pytest.fixture
def client(db, pipeline, fake_claude, adherence, fake_messaging):
    """TestClient wired to the in-memory database and fake collaborators"""

    def override_get_db():
        yield db

    cache = RecentMessageCache(capacity=10)
    app.dependency_overrides[dependencies.get_db] = override_get_db
    app.dependency_overrides[dependencies.get_pipeline] = lambda: pipeline
    app.dependency_overrides[dependencies.get_classifier] = lambda: DocumentClassifier(claude=fake_claude)
    app.dependency_overrides[dependencies.get_adherence_service] = lambda: adherence
    app.dependency_overrides[dependencies.get_reminder_service] = lambda: ReminderService(messaging=fake_messaging)
    app.dependency_overrides[dependencies.get_records_service] = lambda: RecordsService()
    app.dependency_overrides[dependencies.get_message_cache] = lambda: cache

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    token = jwt.encode({"patient_number": PATIENT}, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def jpeg_bytes():
    return b"\xff\xd8\xff\xe0" + b"fake-jpeg-body" * 8


@pytest.fixture
def jpeg_b64(jpeg_bytes):
    return base64.b64encode(jpeg_bytes).decode("utf-8")


@pytest.fixture
def today():
    return date(2024, 6, 1)
