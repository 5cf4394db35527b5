"""Recording API endpoints: upload, listing, rename, delete, audio and transcript access."""

import logging

from fastapi import APIRouter, Depends, File, Request, UploadFile
from fastapi.responses import FileResponse, PlainTextResponse
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import CurrentUser, get_current_user
from app.errors import ApiError, FileTooLarge, InvalidFileType, PersistenceFailed, UploadFailed
from app.models.recording import MAX_TITLE_LENGTH, Recording
from app.rate_limit import limiter
from app.schemas.recording import (
    RecordingListResponse,
    RecordingResponse,
    RenameRecordingRequest,
    UploadResponse,
)
from app.schemas.transcript import TranscriptResponse, TranscriptSegmentResponse
from app.services.recording import get_recording_service, validate_audio
from app.services.storage import get_storage_service
from app.services.transcript import TranscriptDocument, get_transcript_service

logger = logging.getLogger("callcoach")

router = APIRouter(prefix="/api/v1", tags=["Recordings"])


def to_response(recording: Recording, has_transcript: bool = False) -> RecordingResponse:
    return RecordingResponse.model_validate(recording).model_copy(update={"has_transcript": has_transcript})


def get_owned_recording(db: Session, recording_id: str, user: CurrentUser) -> Recording:
    recording = get_recording_service().get_recording(db, recording_id, user.user_id)
    if not recording:
        raise ApiError(404, "Recording not found", "RECORDING_NOT_FOUND")
    return recording


@router.post("/upload-audio", response_model=UploadResponse)
@limiter.limit("20/minute")
async def upload_audio(
    request: Request,
    audio: UploadFile | None = File(None),
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UploadResponse:
    """Upload an audio file and create its recording in ``uploaded`` state."""
    if audio is None:
        raise ApiError(400, "No audio file provided", "MISSING_FILE")

    # Type and declared size are checked before anything is written
    try:
        validate_audio(audio.content_type, audio.size)
    except InvalidFileType as e:
        raise ApiError(400, str(e), "INVALID_FILE_TYPE") from None
    except FileTooLarge as e:
        raise ApiError(413, str(e), "FILE_TOO_LARGE") from None

    storage = get_storage_service()
    try:
        stored = await storage.save_upload(user.user_id, audio)
    except FileTooLarge as e:
        raise ApiError(413, str(e), "FILE_TOO_LARGE") from None
    except UploadFailed as e:
        raise ApiError(500, str(e), "UPLOAD_FAILED") from None

    try:
        recording = get_recording_service().create_recording(
            db=db,
            user_id=user.user_id,
            original_filename=audio.filename or "recording",
            audio_filename=stored.key,
            file_size_bytes=stored.size,
            mime_type=audio.content_type,
        )
    except PersistenceFailed as e:
        try:
            storage.delete(stored.key)
        except OSError:
            logger.warning("Could not remove orphaned upload %s", stored.key)
        raise ApiError(500, str(e), "PERSISTENCE_FAILED") from None

    logger.info("User %s uploaded recording %s (%d bytes)", user.user_id, recording.id, stored.size)
    return UploadResponse(recording=to_response(recording))


@router.get("/recordings", response_model=RecordingListResponse)
def list_recordings(
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> RecordingListResponse:
    """List the caller's recordings, newest first."""
    service = get_recording_service()
    recordings = service.get_user_recordings(db, user.user_id)
    transcribed = service.transcribed_ids(db, [r.id for r in recordings])
    return RecordingListResponse(
        items=[to_response(r, r.id in transcribed) for r in recordings],
        total=len(recordings),
    )


@router.get("/recordings/{recording_id}", response_model=RecordingResponse)
def get_recording(
    recording_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> RecordingResponse:
    """Get a single recording."""
    recording = get_owned_recording(db, recording_id, user)
    has_transcript = bool(get_recording_service().transcribed_ids(db, [recording.id]))
    return to_response(recording, has_transcript)


@router.patch("/recordings/{recording_id}", response_model=RecordingResponse)
def rename_recording(
    recording_id: str,
    body: RenameRecordingRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> RecordingResponse:
    """Rename a recording."""
    title = body.title.strip()
    if not title:
        raise ApiError(400, "Title must not be blank")
    if len(title) > MAX_TITLE_LENGTH:
        raise ApiError(400, f"Title must be at most {MAX_TITLE_LENGTH} characters")
    recording = get_owned_recording(db, recording_id, user)
    recording = get_recording_service().rename(db, recording, title)
    return to_response(recording)


@router.delete("/recordings/{recording_id}")
def delete_recording(
    recording_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict:
    """Delete a recording with its transcript, notes and queued job."""
    recording = get_owned_recording(db, recording_id, user)
    try:
        get_recording_service().delete_recording(db, recording)
    except PersistenceFailed as e:
        raise ApiError(500, str(e)) from None
    return {"success": True, "message": "Recording deleted"}


@router.get("/recordings/{recording_id}/audio")
def download_audio(
    recording_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> FileResponse:
    """Stream the stored audio for a recording."""
    recording = get_owned_recording(db, recording_id, user)
    path = get_storage_service().path_for(recording.audio_filename)
    if not path.exists():
        raise ApiError(404, "Audio file not found")
    return FileResponse(path, media_type=recording.mime_type or "application/octet-stream")


def _owned_transcript(db: Session, recording_id: str, user: CurrentUser) -> TranscriptDocument:
    doc = get_transcript_service().load_document(db, recording_id, user.user_id)
    if doc is None:
        raise ApiError(404, "Transcript not found", "TRANSCRIPT_NOT_FOUND")
    return doc


@router.get("/recordings/{recording_id}/transcript", response_model=TranscriptResponse)
def get_transcript(
    recording_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> TranscriptResponse:
    """Get a recording's transcript with segments."""
    doc = _owned_transcript(db, recording_id, user)
    transcript = doc.transcript
    return TranscriptResponse(
        id=transcript.id,
        recording_id=transcript.recording_id,
        title=doc.recording.title,
        text=transcript.text,
        speaker_count=transcript.speaker_count,
        created_at=transcript.created_at,
        segments=[TranscriptSegmentResponse.model_validate(s) for s in doc.segments],
    )


@router.get("/recordings/{recording_id}/transcript/download")
def download_transcript(
    recording_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> PlainTextResponse:
    """Download a transcript as plain text."""
    doc = _owned_transcript(db, recording_id, user)
    filename = "".join(c if c.isalnum() or c in "-_ " else "_" for c in doc.recording.title).strip() or "transcript"
    return PlainTextResponse(
        content=get_transcript_service().export_text(doc),
        headers={"Content-Disposition": f'attachment; filename="{filename}.txt"'},
    )
