"""Coaching analysis via OpenAI chat completions, with notes persisted per recording."""

import json
import logging
import re

import openai
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.errors import AnalysisFailed, PersistenceFailed, TranscriptNotFound
from app.models.conversation_note import ConversationNote
from app.models.recording import Recording
from app.schemas.analysis import CoachingAnalysis
from app.services.transcript import get_transcript_service

logger = logging.getLogger("callcoach")

MAX_QUESTION_LENGTH = 1000

SYSTEM_PROMPT = """You are an experienced sales coach reviewing a recorded sales call. \
The transcript is given with timestamps and speaker labels. Answer the user's question \
with concise, practical feedback the seller can act on. When relevant, include:

- a one-sentence summary of the call;
- the customer's key objections;
- three concrete improvements for the next call;
- up to five timestamped quotes from the transcript that support your points;
- if a follow-up message is requested, two short ready-to-send templates.

Reply with a single JSON object and nothing else:
{
  "summary": "One sentence summary",
  "objections": ["objection"],
  "improvements": ["suggestion 1", "suggestion 2", "suggestion 3"],
  "timestamps": [{"time": "00:01:15", "text": "quoted line", "context": "why it matters"}],
  "followUpTemplates": ["template"],
  "answer": "Direct answer to the user's question"
}"""

_ANALYSIS_KEYS = {"summary", "objections", "improvements", "timestamps", "followUpTemplates", "answer"}
_CODE_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


def validate_api_key(api_key: str | None) -> bool:
    """Client-supplied keys must be non-empty and carry the ``sk-`` prefix."""
    return bool(api_key and api_key.strip() and api_key.strip().startswith("sk-"))


def parse_analysis(raw: str) -> CoachingAnalysis:
    """Parse model output into a CoachingAnalysis.

    Output that is not a JSON object with at least one known key (or that fails
    validation) is wrapped as ``answer`` with every other field empty.
    """
    text = raw.strip()
    fenced = _CODE_FENCE.match(text)
    if fenced:
        text = fenced.group(1)
    try:
        data = json.loads(text)
        if not isinstance(data, dict) or not _ANALYSIS_KEYS.intersection(data):
            raise ValueError("not an analysis object")
        return CoachingAnalysis.model_validate(data)
    except (ValueError, ValidationError):
        return CoachingAnalysis(answer=raw)


def note_to_dict(note: ConversationNote) -> dict:
    try:
        analysis = CoachingAnalysis.model_validate(json.loads(note.answer))
    except (ValueError, ValidationError):
        analysis = CoachingAnalysis(answer=note.answer)
    return {
        "id": note.id,
        "recording_id": note.recording_id,
        "question": note.question,
        "analysis": analysis,
        "created_at": note.created_at,
    }


class AnalysisService:
    """Runs coaching analyses and keeps the per-recording note log."""

    def __init__(self) -> None:
        self._client = None

    def _get_client(self, api_key: str | None = None):
        """Return the server client, or a one-off client for a caller-supplied key."""
        settings = get_settings()
        if api_key:
            return openai.OpenAI(api_key=api_key, timeout=settings.OPENAI_TIMEOUT_SECONDS, max_retries=0)
        if self._client is None:
            self._client = openai.OpenAI(
                api_key=settings.OPENAI_API_KEY,
                timeout=settings.OPENAI_TIMEOUT_SECONDS,
                max_retries=0,
            )
        return self._client

    def analyze(
        self, db: Session, recording: Recording, question: str, api_key: str | None = None
    ) -> CoachingAnalysis:
        """Analyze a recording's transcript and persist the result as a ConversationNote.

        Raises TranscriptNotFound, AnalysisFailed or PersistenceFailed.
        """
        settings = get_settings()
        tx_service = get_transcript_service()
        transcript = tx_service.get_transcript(db, recording.id, recording.user_id)
        if transcript is None:
            raise TranscriptNotFound("Transcript not found for this recording")

        if not api_key and not settings.OPENAI_API_KEY:
            raise AnalysisFailed("Chat completion API key not configured")

        prompt_transcript = tx_service.format_for_prompt(transcript, tx_service.get_segments(db, transcript.id))
        try:
            response = self._get_client(api_key).chat.completions.create(
                model=settings.OPENAI_CHAT_MODEL,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": f"Transcript:\n{prompt_transcript}\n\nQuestion: {question}"},
                ],
                temperature=0.7,
                max_tokens=1000,
            )
        except openai.APITimeoutError as e:
            logger.warning("Analysis timed out for recording %s", recording.id)
            raise AnalysisFailed("Analysis API timed out") from e
        except openai.APIStatusError as e:
            logger.warning("Analysis API returned %s for recording %s: %s", e.status_code, recording.id, e.message)
            raise AnalysisFailed(f"Analysis API error: {e.status_code} {e.message}") from e
        except openai.OpenAIError as e:
            logger.warning("Analysis API failed for recording %s: %s", recording.id, e)
            raise AnalysisFailed(f"Analysis API error: {e}") from e

        content = (response.choices[0].message.content or "") if response.choices else ""
        analysis = parse_analysis(content)

        note = ConversationNote(
            recording_id=recording.id,
            user_id=recording.user_id,
            question=question,
            answer=analysis.model_dump_json(by_alias=True),
            timestamps=[t.model_dump() for t in analysis.timestamps],
        )
        try:
            db.add(note)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Failed to save conversation note for recording %s: %s", recording.id, e)
            raise PersistenceFailed("Failed to save analysis") from e

        logger.info("Analysis stored for recording %s", recording.id)
        return analysis

    def list_notes(self, db: Session, recording_id: str, user_id: int) -> list[ConversationNote]:
        """Notes for a recording, most recent first."""
        return (
            db.query(ConversationNote)
            .filter(ConversationNote.recording_id == recording_id, ConversationNote.user_id == user_id)
            .order_by(ConversationNote.created_at.desc())
            .all()
        )


_analysis_service: AnalysisService | None = None


def get_analysis_service() -> AnalysisService:
    """Get singleton analysis service instance."""
    global _analysis_service
    if _analysis_service is None:
        _analysis_service = AnalysisService()
    return _analysis_service
