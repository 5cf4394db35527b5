"""Pytest configuration and fixtures."""

import io
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import get_settings
from app.database import Base, get_db
from app.models.conversation_note import ConversationNote  # noqa: F401
from app.models.group import Group, GroupMember, GroupMessage  # noqa: F401
from app.models.recording import Recording  # noqa: F401
from app.models.transcript import Transcript, TranscriptSegment  # noqa: F401
from app.models.transcription_job import TranscriptionJob  # noqa: F401
from app.models.user import User  # noqa: F401
from app.services.auth import AuthService

TEST_API_KEY = "sk-test-server-key"


def make_user(db_session: Session, email: str, display_name: str) -> dict:
    """Register a user; returns its id, profile, token and ready-made auth headers."""
    from app.services.jwt import get_jwt_service

    user = AuthService().register(db_session, email, "password123", display_name)
    token = get_jwt_service().create_token(user.id, user.email, user.display_name)
    return {
        "user_id": user.id,
        "email": user.email,
        "display_name": user.display_name,
        "token": token,
        "headers": {"Authorization": f"Bearer {token}"},
    }


@pytest.fixture(autouse=True)
def settings_fixture(tmp_path, monkeypatch):
    """Isolated storage directory and a configured server API key for every test."""
    settings = get_settings()
    monkeypatch.setattr(settings, "STORAGE_DIR", str(tmp_path / "storage"))
    monkeypatch.setattr(settings, "OPENAI_API_KEY", TEST_API_KEY)
    monkeypatch.setattr(settings, "TRANSCRIPTION_INLINE_WORKER", True)
    return settings


@pytest.fixture(name="db_session")
def db_session_fixture():
    """Create an in-memory SQLite database for tests."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    testing_session_local = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(name="client")
def client_fixture(db_session: Session):
    """Create a test client with overridden DB dependency and disabled rate limiting."""
    from app import worker
    from app.rate_limit import limiter
    from main import app

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    # Point the inline transcription worker at the test DB session
    worker._session_factory = lambda: db_session

    app.dependency_overrides[get_db] = override_get_db
    limiter.enabled = False
    with TestClient(app) as c:
        yield c
    limiter.enabled = True
    app.dependency_overrides.clear()
    worker._session_factory = None


@pytest.fixture(name="test_user")
def test_user_fixture(db_session: Session):
    return make_user(db_session, "test@example.com", "Test User")


@pytest.fixture(name="other_user")
def other_user_fixture(db_session: Session):
    return make_user(db_session, "other@example.com", "Other User")


def upload_audio(client: TestClient, user: dict, name: str = "call.mp3") -> dict:
    """Upload a small dummy file and return the created recording."""
    resp = client.post(
        "/api/v1/upload-audio",
        files={"audio": (name, io.BytesIO(b"\x00" * 512), "audio/mpeg")},
        headers=user["headers"],
    )
    assert resp.status_code == 200
    return resp.json()["recording"]


@pytest.fixture(name="transcribed_recording")
def transcribed_recording_fixture(client: TestClient, test_user: dict):
    """A completed recording with a two-segment transcript."""
    openai_client = MagicMock()
    openai_client.audio.transcriptions.create.return_value = {
        "text": "Thanks for joining. The price is too high for us.",
        "duration": 75.2,
        "segments": [
            {"start": 0.0, "end": 3.0, "text": "Thanks for joining."},
            {"start": 75.0, "end": 78.0, "text": "The price is too high for us."},
        ],
    }
    recording = upload_audio(client, test_user)
    with patch("app.services.transcription.TranscriptionService._get_client", return_value=openai_client):
        resp = client.post(
            "/api/v1/transcribe-audio", json={"recordingId": recording["id"]}, headers=test_user["headers"]
        )
    assert resp.status_code == 200
    return recording


@pytest.fixture(name="uploaded_recording")
def uploaded_recording_fixture(client: TestClient, test_user: dict):
    """A freshly uploaded recording owned by ``test_user``."""
    return upload_audio(client, test_user)
