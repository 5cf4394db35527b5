"""Tests for recording listing, rename, delete, audio and transcript access."""

import json
from pathlib import Path
from unittest.mock import MagicMock, patch

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app.events import TABLE_RECORDINGS, get_change_feed
from app.models.conversation_note import ConversationNote
from app.models.group import GroupMessage
from app.models.recording import Recording
from app.models.transcript import Transcript, TranscriptSegment
from app.models.transcription_job import TranscriptionJob


class TestRecordingList:
    def test_list_empty(self, client: TestClient, test_user: dict):
        response = client.get("/api/v1/recordings", headers=test_user["headers"])
        assert response.status_code == 200
        assert response.json() == {"items": [], "total": 0}

    def test_list_newest_first_with_transcript_flag(
        self, client: TestClient, test_user: dict, transcribed_recording: dict, uploaded_recording: dict
    ):
        data = client.get("/api/v1/recordings", headers=test_user["headers"]).json()
        assert data["total"] == 2
        assert [r["id"] for r in data["items"]] == [uploaded_recording["id"], transcribed_recording["id"]]
        assert [r["has_transcript"] for r in data["items"]] == [False, True]

    def test_list_is_scoped_to_owner(self, client: TestClient, other_user: dict, uploaded_recording: dict):
        data = client.get("/api/v1/recordings", headers=other_user["headers"]).json()
        assert data["total"] == 0


class TestRecordingAccess:
    def test_get_other_users_recording(self, client: TestClient, other_user: dict, uploaded_recording: dict):
        response = client.get(f"/api/v1/recordings/{uploaded_recording['id']}", headers=other_user["headers"])
        assert response.status_code == 404
        assert response.json()["code"] == "RECORDING_NOT_FOUND"

    def test_rename(self, client: TestClient, test_user: dict, uploaded_recording: dict):
        response = client.patch(
            f"/api/v1/recordings/{uploaded_recording['id']}",
            json={"title": "  Acme discovery call  "},
            headers=test_user["headers"],
        )
        assert response.status_code == 200
        assert response.json()["title"] == "Acme discovery call"

    def test_rename_blank_title(self, client: TestClient, test_user: dict, uploaded_recording: dict):
        response = client.patch(
            f"/api/v1/recordings/{uploaded_recording['id']}", json={"title": "   "}, headers=test_user["headers"]
        )
        assert response.status_code == 400

    def test_rename_length_counts_trimmed_title(self, client: TestClient, test_user: dict, uploaded_recording: dict):
        url = f"/api/v1/recordings/{uploaded_recording['id']}"
        response = client.patch(url, json={"title": "  " + "a" * 255 + "  "}, headers=test_user["headers"])
        assert response.status_code == 200
        assert response.json()["title"] == "a" * 255

        too_long = client.patch(url, json={"title": "a" * 256}, headers=test_user["headers"])
        assert too_long.status_code == 400

    def test_download_audio(self, client: TestClient, test_user: dict, uploaded_recording: dict):
        response = client.get(f"/api/v1/recordings/{uploaded_recording['id']}/audio", headers=test_user["headers"])
        assert response.status_code == 200
        assert response.content == b"\x00" * 512
        assert response.headers["content-type"].startswith("audio/mpeg")

    def test_transcript_not_found(self, client: TestClient, test_user: dict, uploaded_recording: dict):
        response = client.get(
            f"/api/v1/recordings/{uploaded_recording['id']}/transcript", headers=test_user["headers"]
        )
        assert response.status_code == 404

    def test_transcript_download(self, client: TestClient, test_user: dict, transcribed_recording: dict):
        response = client.get(
            f"/api/v1/recordings/{transcribed_recording['id']}/transcript/download", headers=test_user["headers"]
        )
        assert response.status_code == 200
        assert "[00:01:15] Speaker 2: The price is too high for us." in response.text
        assert response.text.startswith("call\n")
        assert "Duration: 00:01:15" in response.text
        assert 'filename="call.txt"' in response.headers["content-disposition"]


class TestRecordingDelete:
    def _add_note_and_share(self, client: TestClient, user: dict, recording_id: str) -> str:
        chat = MagicMock()
        reply = MagicMock(content=json.dumps({"answer": "ok"}))
        chat.chat.completions.create.return_value.choices = [MagicMock(message=reply)]
        with patch("app.services.analysis.AnalysisService._get_client", return_value=chat):
            resp = client.post(
                "/api/v1/analyze-conversation",
                json={"recordingId": recording_id, "question": "How did it go?"},
                headers=user["headers"],
            )
        assert resp.status_code == 200

        group = client.post("/api/v1/groups", json={"name": "Sales team"}, headers=user["headers"]).json()
        resp = client.post(
            f"/api/v1/recordings/{recording_id}/share", json={"groupId": group["id"]}, headers=user["headers"]
        )
        assert resp.status_code == 200
        return resp.json()["id"]

    def test_delete_cascades(
        self,
        client: TestClient,
        test_user: dict,
        transcribed_recording: dict,
        db_session: Session,
        settings_fixture,
    ):
        recording_id = transcribed_recording["id"]
        message_id = self._add_note_and_share(client, test_user, recording_id)
        audio_path = Path(settings_fixture.STORAGE_DIR) / transcribed_recording["audio_filename"]
        assert audio_path.exists()

        events = []
        subscription = get_change_feed().subscribe((TABLE_RECORDINGS,), events.append)
        try:
            response = client.delete(f"/api/v1/recordings/{recording_id}", headers=test_user["headers"])
        finally:
            subscription.unsubscribe()
        assert response.status_code == 200

        assert db_session.get(Recording, recording_id) is None
        assert db_session.query(Transcript).count() == 0
        assert db_session.query(TranscriptSegment).count() == 0
        assert db_session.query(ConversationNote).count() == 0
        assert db_session.query(TranscriptionJob).count() == 0
        message = db_session.get(GroupMessage, message_id)
        assert message is not None
        assert message.recording_id is None
        assert not audio_path.exists()
        assert [(e.event_type, e.record_id) for e in events] == [("DELETE", recording_id)]

    def test_delete_survives_missing_audio(
        self, client: TestClient, test_user: dict, uploaded_recording: dict, settings_fixture
    ):
        (Path(settings_fixture.STORAGE_DIR) / uploaded_recording["audio_filename"]).unlink()
        response = client.delete(f"/api/v1/recordings/{uploaded_recording['id']}", headers=test_user["headers"])
        assert response.status_code == 200

    def test_delete_other_users_recording(
        self, client: TestClient, other_user: dict, test_user: dict, uploaded_recording: dict
    ):
        response = client.delete(f"/api/v1/recordings/{uploaded_recording['id']}", headers=other_user["headers"])
        assert response.status_code == 404
        response = client.get(f"/api/v1/recordings/{uploaded_recording['id']}", headers=test_user["headers"])
        assert response.status_code == 200
