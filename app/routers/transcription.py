"""Transcription trigger endpoint."""

import logging

from fastapi import APIRouter, BackgroundTasks, Body, Depends
from sqlalchemy.orm import Session

from app.config import get_settings
from app.database import get_db
from app.dependencies import CurrentUser, get_current_user
from app.errors import ApiError, TranscriptionAlreadyStarted
from app.schemas.transcript import TranscribeRequest, TranscribeResponse
from app.services.recording import get_recording_service
from app.services.transcription import get_transcription_service
from app.worker import process_pending_jobs

logger = logging.getLogger("callcoach")

router = APIRouter(prefix="/api/v1", tags=["Transcription"])


@router.post("/transcribe-audio", response_model=TranscribeResponse)
def transcribe_audio(
    background_tasks: BackgroundTasks,
    body: TranscribeRequest | None = Body(None),
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> TranscribeResponse:
    """Queue transcription for a recording and return immediately."""
    recording_id = (body.recording_id or "").strip() if body else ""
    if not recording_id:
        raise ApiError(400, "Recording ID required", "MISSING_RECORDING_ID")

    settings = get_settings()
    if not settings.OPENAI_API_KEY:
        logger.error("Transcription requested but OPENAI_API_KEY is not configured")
        raise ApiError(500, "Transcription API key not configured on server", "SERVER_API_KEY_MISSING")

    recording = get_recording_service().get_recording(db, recording_id, user.user_id)
    if not recording:
        raise ApiError(404, "Recording not found", "RECORDING_NOT_FOUND")

    try:
        get_transcription_service().enqueue(db, recording)
    except TranscriptionAlreadyStarted as e:
        raise ApiError(409, str(e), "TRANSCRIPTION_ALREADY_STARTED") from None

    if settings.TRANSCRIPTION_INLINE_WORKER:
        background_tasks.add_task(process_pending_jobs)

    return TranscribeResponse(message="Transcription started successfully", recording_id=recording_id)
