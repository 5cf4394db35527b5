"""Tests for the transcription trigger, job queue and worker with a mocked OpenAI client."""

import io
from datetime import timedelta
from pathlib import Path
from unittest.mock import MagicMock, patch

import httpx
import openai
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app import worker
from app.database import utcnow
from app.events import TABLE_RECORDINGS, TABLE_TRANSCRIPTS, get_change_feed
from app.models.recording import Recording
from app.models.transcript import Transcript
from app.models.transcription_job import TranscriptionJob
from app.services.recording import RecordingService
from app.services.transcription import (
    TranscriptionService,
    build_segments,
    naive_placeholder_speaker_assignment,
    round_half_up,
)

OPENAI_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/audio/transcriptions")

SAMPLE_RESULT = {
    "text": "Hi, thanks for taking the call. Happy to chat. What does pricing look like?",
    "duration": 30.5,
    "segments": [
        {"start": 0.0, "end": 4.2, "text": " Hi, thanks for taking the call. "},
        {"start": 4.2, "end": 6.0, "text": "Happy to chat."},
        {"start": 6.0, "end": 5.0, "text": "What does pricing look like?"},
    ],
}


def mock_openai(result=None, error: Exception | None = None) -> MagicMock:
    client = MagicMock()
    if error is not None:
        client.audio.transcriptions.create.side_effect = error
    else:
        client.audio.transcriptions.create.return_value = result or SAMPLE_RESULT
    return client


def upload(client: TestClient, user: dict, name: str = "call.mp3") -> dict:
    resp = client.post(
        "/api/v1/upload-audio",
        files={"audio": (name, io.BytesIO(b"\x00" * 512), "audio/mpeg")},
        headers=user["headers"],
    )
    assert resp.status_code == 200
    return resp.json()["recording"]


def trigger(client: TestClient, user: dict, recording_id: str | None):
    return client.post(
        "/api/v1/transcribe-audio",
        json={"recordingId": recording_id},
        headers=user["headers"],
    )


def get_recording(client: TestClient, user: dict, recording_id: str) -> dict:
    return client.get(f"/api/v1/recordings/{recording_id}", headers=user["headers"]).json()


class TestSegmentMapping:
    def test_placeholder_speakers_alternate(self):
        assert [naive_placeholder_speaker_assignment(i) for i in range(4)] == [
            "Speaker 1",
            "Speaker 2",
            "Speaker 1",
            "Speaker 2",
        ]

    def test_round_half_up(self):
        assert round_half_up(12.5) == 13
        assert round_half_up(12.49) == 12
        assert round_half_up(0.5) == 1
        assert round_half_up(0) == 0

    def test_build_segments_strips_and_clamps(self):
        segments = build_segments(SAMPLE_RESULT["segments"])
        assert segments[0].text == "Hi, thanks for taking the call."
        assert segments[2].start_time == 6.0
        assert segments[2].end_time == 6.0
        assert [s.speaker for s in segments] == ["Speaker 1", "Speaker 2", "Speaker 1"]

    def test_build_segments_reads_sdk_objects(self):
        seg = MagicMock(start=1.0, end=2.0, text=" hello ")
        assert build_segments([seg])[0].text == "hello"
        assert build_segments(None) == []


class TestTranscribeEndpoint:
    """Tests for POST /api/v1/transcribe-audio."""

    @patch("app.services.transcription.TranscriptionService._get_client")
    def test_transcribe_success(self, mock_get_client, client: TestClient, test_user: dict):
        mock_get_client.return_value = mock_openai()
        recording = upload(client, test_user)

        resp = trigger(client, test_user, recording["id"])
        assert resp.status_code == 200
        assert resp.json() == {
            "success": True,
            "message": "Transcription started successfully",
            "recordingId": recording["id"],
        }

        # The inline worker has run by the time the test client returns
        updated = get_recording(client, test_user, recording["id"])
        assert updated["status"] == "completed"
        assert updated["duration_seconds"] == 31
        assert updated["has_transcript"] is True
        assert updated["error_message"] is None

        tx = client.get(f"/api/v1/recordings/{recording['id']}/transcript", headers=test_user["headers"]).json()
        assert tx["text"] == SAMPLE_RESULT["text"]
        assert tx["speaker_count"] == 2
        assert [s["speaker"] for s in tx["segments"]] == ["Speaker 1", "Speaker 2", "Speaker 1"]
        assert tx["segments"][0]["text"] == "Hi, thanks for taking the call."
        assert tx["segments"][2]["end_time"] >= tx["segments"][2]["start_time"]

        kwargs = mock_get_client.return_value.audio.transcriptions.create.call_args.kwargs
        assert kwargs["response_format"] == "verbose_json"
        assert kwargs["timestamp_granularities"] == ["segment"]
        assert mock_get_client.return_value.audio.transcriptions.create.call_count == 1

    @patch("app.services.transcription.TranscriptionService._get_client")
    def test_silent_recording_completes_empty(self, mock_get_client, client: TestClient, test_user: dict):
        mock_get_client.return_value = mock_openai({"text": "", "segments": [], "duration": 10})
        recording = upload(client, test_user, name="silence.mp3")

        assert trigger(client, test_user, recording["id"]).status_code == 200

        updated = get_recording(client, test_user, recording["id"])
        assert updated["status"] == "completed"
        assert updated["duration_seconds"] == 10
        assert updated["has_transcript"] is True
        tx = client.get(f"/api/v1/recordings/{recording['id']}/transcript", headers=test_user["headers"]).json()
        assert tx["text"] == ""
        assert tx["segments"] == []
        assert tx["speaker_count"] == 0

    def test_requires_auth_before_validation(self, client: TestClient):
        resp = client.post("/api/v1/transcribe-audio", json={})
        assert resp.status_code == 401
        assert resp.json()["code"] == "UNAUTHORIZED"

    @pytest.mark.parametrize("body", [{}, {"recordingId": ""}, {"recordingId": "   "}])
    def test_missing_recording_id(self, client: TestClient, test_user: dict, body: dict):
        resp = client.post("/api/v1/transcribe-audio", json=body, headers=test_user["headers"])
        assert resp.status_code == 400
        assert resp.json() == {"error": "Recording ID required", "code": "MISSING_RECORDING_ID"}

    def test_server_key_missing(self, client: TestClient, test_user: dict, settings_fixture, db_session: Session):
        recording = upload(client, test_user)
        settings_fixture.OPENAI_API_KEY = ""
        resp = trigger(client, test_user, recording["id"])
        assert resp.status_code == 500
        assert resp.json()["code"] == "SERVER_API_KEY_MISSING"
        assert db_session.query(TranscriptionJob).count() == 0

    def test_other_users_recording_not_found(
        self, client: TestClient, test_user: dict, other_user: dict, db_session: Session
    ):
        recording = upload(client, test_user)
        resp = trigger(client, other_user, recording["id"])
        assert resp.status_code == 404
        assert resp.json()["code"] == "RECORDING_NOT_FOUND"
        assert get_recording(client, test_user, recording["id"])["status"] == "uploaded"
        assert db_session.query(TranscriptionJob).count() == 0

    def test_unknown_recording_not_found(self, client: TestClient, test_user: dict):
        resp = trigger(client, test_user, "00000000-0000-0000-0000-000000000000")
        assert resp.status_code == 404

    @patch("app.services.transcription.TranscriptionService._get_client")
    def test_second_trigger_rejected_after_completion(self, mock_get_client, client: TestClient, test_user: dict):
        mock_get_client.return_value = mock_openai()
        recording = upload(client, test_user)
        assert trigger(client, test_user, recording["id"]).status_code == 200

        resp = trigger(client, test_user, recording["id"])
        assert resp.status_code == 409
        assert resp.json()["code"] == "TRANSCRIPTION_ALREADY_STARTED"
        assert mock_get_client.return_value.audio.transcriptions.create.call_count == 1

    def test_second_trigger_rejected_while_queued(
        self, client: TestClient, test_user: dict, settings_fixture, db_session: Session
    ):
        settings_fixture.TRANSCRIPTION_INLINE_WORKER = False
        recording = upload(client, test_user)
        assert trigger(client, test_user, recording["id"]).status_code == 200
        assert trigger(client, test_user, recording["id"]).status_code == 409
        assert db_session.query(TranscriptionJob).count() == 1
        assert get_recording(client, test_user, recording["id"])["status"] == "uploaded"


class TestTranscriptionFailures:
    """Every failure ends in status ``error`` with a specific message."""

    def _run(self, client: TestClient, user: dict, openai_client: MagicMock) -> dict:
        with patch("app.services.transcription.TranscriptionService._get_client", return_value=openai_client):
            recording = upload(client, user)
            assert trigger(client, user, recording["id"]).status_code == 200
        return get_recording(client, user, recording["id"])

    def test_api_status_error(self, client: TestClient, test_user: dict, db_session: Session):
        error = openai.APIStatusError(
            "Server error", response=httpx.Response(500, request=OPENAI_REQUEST), body=None
        )
        result = self._run(client, test_user, mock_openai(error=error))
        assert result["status"] == "error"
        assert result["error_message"] == "Transcription API error: 500"
        assert result["has_transcript"] is False
        job = db_session.query(TranscriptionJob).one()
        assert job.status == "failed"

    def test_api_timeout(self, client: TestClient, test_user: dict):
        result = self._run(client, test_user, mock_openai(error=openai.APITimeoutError(request=OPENAI_REQUEST)))
        assert result["status"] == "error"
        assert result["error_message"] == "Transcription API timed out"

    def test_missing_audio(self, client: TestClient, test_user: dict, settings_fixture):
        recording = upload(client, test_user)
        (Path(settings_fixture.STORAGE_DIR) / recording["audio_filename"]).unlink()
        openai_client = mock_openai()
        with patch("app.services.transcription.TranscriptionService._get_client", return_value=openai_client):
            trigger(client, test_user, recording["id"])
        result = get_recording(client, test_user, recording["id"])
        assert result["status"] == "error"
        assert result["error_message"] == "Failed to download audio file"
        openai_client.audio.transcriptions.create.assert_not_called()

    def test_transcript_persistence_failure(self, client: TestClient, test_user: dict, db_session: Session):
        original = RecordingService.transition

        def failing_completion(self, db, recording, status, **kwargs):
            if status == "completed":
                raise SQLAlchemyError("database is locked")
            return original(self, db, recording, status, **kwargs)

        with patch.object(RecordingService, "transition", failing_completion):
            result = self._run(client, test_user, mock_openai())
        assert result["status"] == "error"
        assert result["error_message"] == "Failed to save transcript"
        assert db_session.query(Transcript).count() == 0

    def test_error_is_terminal(self, client: TestClient, test_user: dict):
        error = openai.APIStatusError("Bad", response=httpx.Response(400, request=OPENAI_REQUEST), body=None)
        result = self._run(client, test_user, mock_openai(error=error))
        assert result["status"] == "error"
        assert trigger(client, test_user, result["id"]).status_code == 409


class TestWorker:
    """Tests for the durable job queue."""

    def test_standalone_worker_processes_queue(self, client: TestClient, test_user: dict, settings_fixture):
        settings_fixture.TRANSCRIPTION_INLINE_WORKER = False
        recording = upload(client, test_user)
        trigger(client, test_user, recording["id"])
        assert get_recording(client, test_user, recording["id"])["status"] == "uploaded"

        with patch("app.services.transcription.TranscriptionService._get_client", return_value=mock_openai()):
            assert worker.process_pending_jobs() == 1
            assert worker.process_pending_jobs() == 0
        assert get_recording(client, test_user, recording["id"])["status"] == "completed"

    def test_claim_is_exclusive(self, client: TestClient, test_user: dict, settings_fixture, db_session: Session):
        settings_fixture.TRANSCRIPTION_INLINE_WORKER = False
        recording = upload(client, test_user)
        trigger(client, test_user, recording["id"])
        job = db_session.query(TranscriptionJob).one()

        service = TranscriptionService()
        assert service.claim_job(db_session, job.id) is True
        assert service.claim_job(db_session, job.id) is False
        db_session.refresh(job)
        assert job.status == "running"
        assert job.attempts == 1

    def test_stale_running_job_is_recovered(
        self, client: TestClient, test_user: dict, settings_fixture, db_session: Session
    ):
        settings_fixture.TRANSCRIPTION_INLINE_WORKER = False
        recording = upload(client, test_user)
        trigger(client, test_user, recording["id"])
        job = db_session.query(TranscriptionJob).one()
        TranscriptionService().claim_job(db_session, job.id)

        # Simulate a crash after the recording moved to transcribing
        rec = db_session.get(Recording, recording["id"])
        rec.status = "transcribing"
        job.started_at = utcnow() - timedelta(hours=1)
        db_session.commit()

        assert worker.recover_stale_jobs() == 1
        with patch("app.services.transcription.TranscriptionService._get_client", return_value=mock_openai()):
            assert worker.process_pending_jobs() == 1
        assert get_recording(client, test_user, recording["id"])["status"] == "completed"

    def test_recently_started_job_is_left_running(
        self, client: TestClient, test_user: dict, settings_fixture, db_session: Session
    ):
        settings_fixture.TRANSCRIPTION_INLINE_WORKER = False
        recording = upload(client, test_user)
        trigger(client, test_user, recording["id"])
        job = db_session.query(TranscriptionJob).one()
        TranscriptionService().claim_job(db_session, job.id)

        assert worker.recover_stale_jobs() == 0
        db_session.refresh(job)
        assert job.status == "running"
        assert worker.process_pending_jobs() == 0


class TestStatusEvents:
    @patch("app.services.transcription.TranscriptionService._get_client")
    def test_transitions_are_published(self, mock_get_client, client: TestClient, test_user: dict):
        mock_get_client.return_value = mock_openai()
        events = []
        subscription = get_change_feed().subscribe(
            (TABLE_RECORDINGS, TABLE_TRANSCRIPTS), events.append, user_id=test_user["user_id"]
        )
        try:
            recording = upload(client, test_user)
            trigger(client, test_user, recording["id"])
        finally:
            subscription.unsubscribe()

        recording_statuses = [e.payload.get("status") for e in events if e.table == TABLE_RECORDINGS]
        assert recording_statuses == ["uploaded", "transcribing", "completed"]
        transcript_events = [e for e in events if e.table == TABLE_TRANSCRIPTS]
        assert len(transcript_events) == 1
        assert transcript_events[0].payload["recording_id"] == recording["id"]
