"""Transcription service: job queueing and the background transcription state machine."""

import logging
import math
from dataclasses import dataclass
from datetime import timedelta
from pathlib import PurePosixPath
from typing import Any

import openai
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.database import utcnow
from app.errors import InvalidStatusTransition, TranscriptionAlreadyStarted
from app.events import EVENT_INSERT, TABLE_TRANSCRIPTS, ChangeEvent, get_change_feed
from app.models.recording import STATUS_COMPLETED, STATUS_ERROR, STATUS_TRANSCRIBING, STATUS_UPLOADED, Recording
from app.models.transcript import Transcript, TranscriptSegment
from app.models.transcription_job import JOB_DONE, JOB_FAILED, JOB_QUEUED, JOB_RUNNING, TranscriptionJob
from app.services.recording import get_recording_service
from app.services.storage import get_storage_service

logger = logging.getLogger("callcoach")


@dataclass
class SegmentData:
    start_time: float
    end_time: float
    text: str
    speaker: str


def naive_placeholder_speaker_assignment(index: int) -> str:
    """Label segments alternately "Speaker 1" / "Speaker 2" by position.

    This is a stand-in, not speaker identification: it knows nothing about who
    is actually talking.
    """
    return f"Speaker {(index % 2) + 1}"


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _field(obj: Any, name: str, default: Any = None) -> Any:
    """Read ``name`` from an SDK object or a plain dict."""
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def build_segments(raw_segments: list | None) -> list[SegmentData]:
    """Map collaborator segments to stored segments with placeholder speaker labels."""
    segments = []
    for idx, seg in enumerate(raw_segments or []):
        start = float(_field(seg, "start", 0.0) or 0.0)
        end = float(_field(seg, "end", start) or start)
        segments.append(
            SegmentData(
                start_time=start,
                end_time=max(end, start),
                text=(_field(seg, "text", "") or "").strip(),
                speaker=naive_placeholder_speaker_assignment(idx),
            )
        )
    return segments


def describe_api_error(exc: openai.OpenAIError) -> str:
    if isinstance(exc, openai.APITimeoutError):
        return "Transcription API timed out"
    if isinstance(exc, openai.APIStatusError):
        return f"Transcription API error: {exc.status_code}"
    return f"Transcription API error: {exc}"


class TranscriptionService:
    """Queues transcription jobs and runs them against the OpenAI speech API."""

    def __init__(self) -> None:
        self._client = None

    def _get_client(self):
        """Lazy-create the OpenAI client. Single attempt per call: retries are disabled."""
        if self._client is None:
            settings = get_settings()
            self._client = openai.OpenAI(
                api_key=settings.OPENAI_API_KEY,
                timeout=settings.OPENAI_TIMEOUT_SECONDS,
                max_retries=0,
            )
        return self._client

    # --- Queue ---

    def enqueue(self, db: Session, recording: Recording) -> TranscriptionJob:
        """Queue a transcription for ``recording``.

        Only ``uploaded`` recordings without an existing job are accepted; the unique
        recording_id on the job table rejects concurrent duplicates.
        """
        if recording.status != STATUS_UPLOADED:
            raise TranscriptionAlreadyStarted(f"Cannot transcribe recording with status '{recording.status}'")
        if db.query(TranscriptionJob).filter(TranscriptionJob.recording_id == recording.id).first():
            raise TranscriptionAlreadyStarted("Transcription already queued for this recording")

        job = TranscriptionJob(recording_id=recording.id, user_id=recording.user_id, status=JOB_QUEUED)
        db.add(job)
        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            raise TranscriptionAlreadyStarted("Transcription already queued for this recording") from e
        db.refresh(job)
        logger.info("Queued transcription job %s for recording %s", job.id, recording.id)
        return job

    def claim_job(self, db: Session, job_id: int) -> bool:
        """Atomically move a job from queued to running. Returns False if another worker won."""
        result = db.execute(
            update(TranscriptionJob)
            .where(TranscriptionJob.id == job_id, TranscriptionJob.status == JOB_QUEUED)
            .values(status=JOB_RUNNING, started_at=utcnow(), attempts=TranscriptionJob.attempts + 1)
        )
        db.commit()
        return result.rowcount == 1

    def requeue_stale_jobs(self, db: Session, stale_after: float | None = None) -> int:
        """Put jobs left running by a dead worker back in the queue.

        Only jobs started more than ``stale_after`` seconds ago are touched, so a job another
        live process is still running is never claimed twice.
        """
        if stale_after is None:
            stale_after = get_settings().JOB_STALE_AFTER_SECONDS
        cutoff = utcnow() - timedelta(seconds=stale_after)
        result = db.execute(
            update(TranscriptionJob)
            .where(TranscriptionJob.status == JOB_RUNNING, TranscriptionJob.started_at < cutoff)
            .values(status=JOB_QUEUED)
        )
        db.commit()
        return result.rowcount

    def pending_job_ids(self, db: Session) -> list[int]:
        rows = (
            db.query(TranscriptionJob.id)
            .filter(TranscriptionJob.status == JOB_QUEUED)
            .order_by(TranscriptionJob.created_at, TranscriptionJob.id)
            .all()
        )
        return [r[0] for r in rows]

    # --- Worker ---

    def run_job(self, db: Session, job_id: int) -> bool:
        """Claim and run one job. Returns True if the job was processed by this call."""
        if not self.claim_job(db, job_id):
            return False

        job = db.get(TranscriptionJob, job_id)
        recording = get_recording_service().get_recording(db, job.recording_id, job.user_id)
        if recording is None:
            logger.warning("Job %s: recording %s not found for user %s", job_id, job.recording_id, job.user_id)
            self._finish_job(db, job, JOB_FAILED, "Recording not found")
            return True

        try:
            transcript = self.transcribe(db, recording)
        except Exception as e:
            logger.exception("Job %s: unexpected transcription failure", job_id)
            db.rollback()
            self._fail(db, recording, f"Transcription failed: {e}")
            self._finish_job(db, job, JOB_FAILED, str(e))
            return True

        if transcript is None:
            self._finish_job(db, job, JOB_FAILED, recording.error_message)
        else:
            self._finish_job(db, job, JOB_DONE)
        return True

    def transcribe(self, db: Session, recording: Recording) -> Transcript | None:
        """Run the transcription state machine for one recording.

        Failures are recorded on the recording (status ``error`` + message) and
        None is returned; nothing is raised for upstream or storage failures.
        """
        settings = get_settings()
        rec_service = get_recording_service()

        if recording.status != STATUS_TRANSCRIBING:
            rec_service.transition(db, recording, STATUS_TRANSCRIBING)

        try:
            audio = get_storage_service().read(recording.audio_filename)
        except (OSError, ValueError) as e:
            logger.warning("Recording %s: audio download failed: %s", recording.id, e)
            return self._fail(db, recording, "Failed to download audio file")

        if not settings.OPENAI_API_KEY:
            return self._fail(db, recording, "Transcription API key not configured")

        try:
            result = self._get_client().audio.transcriptions.create(
                model=settings.OPENAI_TRANSCRIBE_MODEL,
                file=(PurePosixPath(recording.audio_filename).name, audio, recording.mime_type or "audio/mpeg"),
                response_format="verbose_json",
                timestamp_granularities=["segment"],
            )
        except openai.OpenAIError as e:
            logger.warning("Recording %s: transcription API failed: %s", recording.id, e)
            return self._fail(db, recording, describe_api_error(e))

        segments = build_segments(_field(result, "segments"))
        duration = round_half_up(float(_field(result, "duration", 0) or 0))

        try:
            transcript = Transcript(
                recording_id=recording.id,
                user_id=recording.user_id,
                text=_field(result, "text", "") or "",
                speaker_count=len({s.speaker for s in segments}),
            )
            db.add(transcript)
            db.flush()
            for idx, seg in enumerate(segments):
                db.add(
                    TranscriptSegment(
                        transcript_id=transcript.id,
                        segment_index=idx,
                        start_time=seg.start_time,
                        end_time=seg.end_time,
                        text=seg.text,
                        speaker=seg.speaker,
                    )
                )
            rec_service.transition(db, recording, STATUS_COMPLETED, duration_seconds=duration)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Recording %s: failed to save transcript: %s", recording.id, e)
            return self._fail(db, recording, "Failed to save transcript")

        db.refresh(transcript)
        get_change_feed().publish(
            ChangeEvent(
                TABLE_TRANSCRIPTS, EVENT_INSERT, transcript.id, transcript.user_id, {"recording_id": recording.id}
            )
        )
        logger.info("Recording %s transcribed: %d segments, %ss", recording.id, len(segments), duration)
        return transcript

    def _fail(self, db: Session, recording: Recording, message: str) -> None:
        try:
            get_recording_service().transition(db, recording, STATUS_ERROR, error_message=message)
        except InvalidStatusTransition:
            logger.warning("Recording %s already %s; not recording error '%s'", recording.id, recording.status, message)
        return None

    def _finish_job(self, db: Session, job: TranscriptionJob, status: str, error: str | None = None) -> None:
        job.status = status
        job.error = error
        job.finished_at = utcnow()
        db.commit()


_transcription_service: TranscriptionService | None = None


def get_transcription_service() -> TranscriptionService:
    """Get singleton transcription service instance."""
    global _transcription_service
    if _transcription_service is None:
        _transcription_service = TranscriptionService()
    return _transcription_service
