"""Reading transcripts back out: API payloads, analysis prompts and text exports."""

from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from app.models.recording import Recording
from app.models.transcript import Transcript, TranscriptSegment


def format_timestamp(seconds: float) -> str:
    """HH:MM:SS, clamped at zero."""
    hours, rem = divmod(int(max(seconds, 0)), 3600)
    minutes, secs = divmod(rem, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def segment_lines(segments: list[TranscriptSegment], template: str) -> list[str]:
    return [template.format(ts=format_timestamp(s.start_time), speaker=s.speaker, text=s.text) for s in segments]


@dataclass
class TranscriptDocument:
    transcript: Transcript
    recording: Recording
    segments: list[TranscriptSegment] = field(default_factory=list)


class TranscriptService:
    def get_transcript(self, db: Session, recording_id: str, user_id: int) -> Transcript | None:
        return (
            db.query(Transcript)
            .filter(Transcript.recording_id == recording_id, Transcript.user_id == user_id)
            .one_or_none()
        )

    def get_segments(self, db: Session, transcript_id: str) -> list[TranscriptSegment]:
        return (
            db.query(TranscriptSegment)
            .filter(TranscriptSegment.transcript_id == transcript_id)
            .order_by(TranscriptSegment.segment_index)
            .all()
        )

    def load_document(self, db: Session, recording_id: str, user_id: int) -> TranscriptDocument | None:
        """The owner's transcript for a recording, with its recording and ordered segments."""
        row = (
            db.query(Transcript, Recording)
            .join(Recording, Transcript.recording_id == Recording.id)
            .filter(Recording.id == recording_id, Recording.user_id == user_id)
            .one_or_none()
        )
        if row is None:
            return None
        transcript, recording = row
        return TranscriptDocument(transcript, recording, self.get_segments(db, transcript.id))

    def format_for_prompt(self, transcript: Transcript, segments: list[TranscriptSegment]) -> str:
        """``HH:MM:SS - Speaker N: text`` per segment; the plain text when there are none."""
        if not segments:
            return transcript.text
        return "\n".join(segment_lines(segments, "{ts} - {speaker}: {text}"))

    def export_text(self, doc: TranscriptDocument) -> str:
        recording = doc.recording
        header = [
            recording.title,
            f"Recorded: {recording.created_at:%Y-%m-%d %H:%M} UTC",
            f"Duration: {format_timestamp(recording.duration_seconds or 0)}",
            f"Speakers: {doc.transcript.speaker_count}",
            "",
        ]
        body = segment_lines(doc.segments, "[{ts}] {speaker}: {text}") or [doc.transcript.text]
        return "\n".join(header + body) + "\n"


_transcript_service: TranscriptService | None = None


def get_transcript_service() -> TranscriptService:
    global _transcript_service
    if _transcript_service is None:
        _transcript_service = TranscriptService()
    return _transcript_service
