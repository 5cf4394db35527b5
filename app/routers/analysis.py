"""Conversation analysis endpoints."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import CurrentUser, get_current_user
from app.errors import AnalysisFailed, ApiError, PersistenceFailed, TranscriptNotFound
from app.rate_limit import limiter
from app.routers.recordings import get_owned_recording
from app.schemas.analysis import (
    AnalyzeRequest,
    AnalyzeResponse,
    ConversationNoteListResponse,
    ConversationNoteResponse,
)
from app.services.analysis import MAX_QUESTION_LENGTH, get_analysis_service, note_to_dict, validate_api_key

router = APIRouter(prefix="/api/v1", tags=["Analysis"])


@router.post("/analyze-conversation", response_model=AnalyzeResponse)
@limiter.limit("10/minute")
def analyze_conversation(
    request: Request,
    body: AnalyzeRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> AnalyzeResponse:
    """Ask a coaching question about a transcribed recording."""
    question = (body.question or "").strip()
    if not body.recording_id or not question:
        raise ApiError(400, "Recording ID and question are required")
    if len(question) > MAX_QUESTION_LENGTH:
        raise ApiError(400, f"Question must be at most {MAX_QUESTION_LENGTH} characters")
    if body.api_key is not None and not validate_api_key(body.api_key):
        raise ApiError(400, "Invalid API key format", "INVALID_API_KEY")

    recording = get_owned_recording(db, body.recording_id, user)
    try:
        analysis = get_analysis_service().analyze(
            db, recording, question, api_key=body.api_key.strip() if body.api_key else None
        )
    except TranscriptNotFound as e:
        raise ApiError(404, str(e), "TRANSCRIPT_NOT_FOUND") from None
    except AnalysisFailed as e:
        raise ApiError(502, str(e), "ANALYSIS_FAILED") from None
    except PersistenceFailed as e:
        raise ApiError(500, str(e), "PERSISTENCE_FAILED") from None

    return AnalyzeResponse(analysis=analysis)


@router.get("/recordings/{recording_id}/notes", response_model=ConversationNoteListResponse)
def list_notes(
    recording_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ConversationNoteListResponse:
    """List stored analyses for a recording, most recent first."""
    get_owned_recording(db, recording_id, user)
    notes = get_analysis_service().list_notes(db, recording_id, user.user_id)
    return ConversationNoteListResponse(
        items=[ConversationNoteResponse(**note_to_dict(n)) for n in notes],
        total=len(notes),
    )
