"""Recording service: upload validation, CRUD, status transitions and cascade delete."""

import logging
from pathlib import Path

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.errors import FileTooLarge, InvalidFileType, InvalidStatusTransition, PersistenceFailed
from app.events import (
    EVENT_DELETE,
    EVENT_INSERT,
    EVENT_UPDATE,
    TABLE_RECORDINGS,
    TABLE_TRANSCRIPTS,
    ChangeEvent,
    get_change_feed,
)
from app.models.conversation_note import ConversationNote
from app.models.group import GroupMessage
from app.models.recording import MAX_TITLE_LENGTH, STATUS_COMPLETED, STATUS_TRANSITIONS, STATUS_UPLOADED, Recording
from app.models.transcript import Transcript, TranscriptSegment
from app.models.transcription_job import TranscriptionJob
from app.services.storage import get_storage_service

logger = logging.getLogger("callcoach")

ALLOWED_MIME_TYPES = frozenset({"audio/mpeg", "audio/wav", "audio/mp4", "audio/m4a"})


def normalize_mime_type(content_type: str | None) -> str:
    """Strip parameters (``audio/wav; codecs=1``) and lowercase."""
    return (content_type or "").split(";", 1)[0].strip().lower()


def validate_audio(content_type: str | None, size_bytes: int | None) -> None:
    """Validate a candidate audio file. Raises InvalidFileType or FileTooLarge.

    ``size_bytes`` may be None when the size is not known up front; storage
    enforces the limit while streaming in that case.
    """
    if normalize_mime_type(content_type) not in ALLOWED_MIME_TYPES:
        raise InvalidFileType("Invalid file type. Only audio files are allowed.")
    settings = get_settings()
    if size_bytes is not None and size_bytes > settings.max_upload_bytes:
        raise FileTooLarge(f"File size exceeds maximum allowed size ({settings.MAX_UPLOAD_SIZE_MB}MB)")


def title_from_filename(filename: str) -> str:
    return Path(filename).stem.strip()[:MAX_TITLE_LENGTH].rstrip() or "Untitled recording"


def publish_recording(recording: Recording, event_type: str) -> None:
    get_change_feed().publish(
        ChangeEvent(
            table=TABLE_RECORDINGS,
            event_type=event_type,
            record_id=recording.id,
            user_id=recording.user_id,
            payload={"status": recording.status},
        )
    )


class RecordingService:
    """Handles recording rows and their lifecycle."""

    def create_recording(
        self,
        db: Session,
        user_id: int,
        original_filename: str,
        audio_filename: str,
        file_size_bytes: int,
        mime_type: str | None,
    ) -> Recording:
        """Create a recording in ``uploaded`` state. Raises PersistenceFailed."""
        storage = get_storage_service()
        recording = Recording(
            user_id=user_id,
            title=title_from_filename(original_filename),
            original_filename=original_filename,
            audio_filename=audio_filename,
            file_size_bytes=file_size_bytes,
            mime_type=normalize_mime_type(mime_type) or None,
            status=STATUS_UPLOADED,
        )
        try:
            db.add(recording)
            db.flush()
            recording.audio_url = storage.public_url(recording.id)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Failed to create recording for user %s: %s", user_id, e)
            raise PersistenceFailed("Failed to save recording data") from e
        db.refresh(recording)
        publish_recording(recording, EVENT_INSERT)
        return recording

    def get_user_recordings(self, db: Session, user_id: int) -> list[Recording]:
        """Get all recordings for a user, newest first."""
        return db.query(Recording).filter(Recording.user_id == user_id).order_by(Recording.created_at.desc()).all()

    def get_recording(self, db: Session, recording_id: str, user_id: int) -> Recording | None:
        """Get a single recording by ID, scoped to its owner."""
        return db.query(Recording).filter(Recording.id == recording_id, Recording.user_id == user_id).first()

    def transcribed_ids(self, db: Session, recording_ids: list[str]) -> set[str]:
        if not recording_ids:
            return set()
        rows = db.query(Transcript.recording_id).filter(Transcript.recording_id.in_(recording_ids)).all()
        return {r[0] for r in rows}

    def rename(self, db: Session, recording: Recording, title: str) -> Recording:
        recording.title = title
        db.commit()
        db.refresh(recording)
        publish_recording(recording, EVENT_UPDATE)
        return recording

    def transition(
        self,
        db: Session,
        recording: Recording,
        status: str,
        error_message: str | None = None,
        duration_seconds: int | None = None,
    ) -> Recording:
        """Move a recording forward in its lifecycle and commit.

        ``duration_seconds`` is only written on the ``completed`` transition.
        Raises InvalidStatusTransition for regressions or moves out of a terminal state.
        """
        if status not in STATUS_TRANSITIONS.get(recording.status, frozenset()):
            raise InvalidStatusTransition(recording.status, status)

        recording.status = status
        if error_message is not None:
            recording.error_message = error_message
        if status == STATUS_COMPLETED:
            recording.duration_seconds = duration_seconds
        db.commit()
        logger.info("Recording %s -> %s", recording.id, status)
        publish_recording(recording, EVENT_UPDATE)
        return recording

    def delete_recording(self, db: Session, recording: Recording) -> None:
        """Delete a recording and everything that references it in one transaction.

        The audio object is removed after the commit; failure to remove it is logged only.
        """
        recording_id = recording.id
        user_id = recording.user_id
        audio_filename = recording.audio_filename
        transcript_ids = [t[0] for t in db.query(Transcript.id).filter(Transcript.recording_id == recording_id)]

        try:
            if transcript_ids:
                db.query(TranscriptSegment).filter(TranscriptSegment.transcript_id.in_(transcript_ids)).delete(
                    synchronize_session=False
                )
            db.query(Transcript).filter(Transcript.recording_id == recording_id).delete(synchronize_session=False)
            db.query(ConversationNote).filter(ConversationNote.recording_id == recording_id).delete(
                synchronize_session=False
            )
            db.query(TranscriptionJob).filter(TranscriptionJob.recording_id == recording_id).delete(
                synchronize_session=False
            )
            db.execute(
                update(GroupMessage).where(GroupMessage.recording_id == recording_id).values(recording_id=None)
            )
            db.delete(recording)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Failed to delete recording %s: %s", recording_id, e)
            raise PersistenceFailed("Failed to delete recording") from e

        try:
            get_storage_service().delete(audio_filename)
        except (OSError, ValueError) as e:
            logger.warning("Could not remove audio %s for deleted recording %s: %s", audio_filename, recording_id, e)

        feed = get_change_feed()
        for transcript_id in transcript_ids:
            feed.publish(ChangeEvent(TABLE_TRANSCRIPTS, EVENT_DELETE, transcript_id, user_id))
        feed.publish(ChangeEvent(TABLE_RECORDINGS, EVENT_DELETE, recording_id, user_id))


_recording_service: RecordingService | None = None


def get_recording_service() -> RecordingService:
    """Get singleton recording service instance."""
    global _recording_service
    if _recording_service is None:
        _recording_service = RecordingService()
    return _recording_service
