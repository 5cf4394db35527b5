"""Transcript and segment models."""

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, Text

from app.database import Base, utcnow
from app.models.recording import new_id


class Transcript(Base):
    """Transcription result for a recording. Created once, never edited."""

    __tablename__ = "transcript"

    id = Column(String(36), primary_key=True, default=new_id)
    recording_id = Column(String(36), ForeignKey("recording.id"), nullable=False, unique=True, index=True)
    user_id = Column(Integer, ForeignKey("user.id"), nullable=False, index=True)
    text = Column(Text, nullable=False)
    speaker_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class TranscriptSegment(Base):
    """Timestamped, speaker-labelled span within a transcript."""

    __tablename__ = "transcript_segment"

    id = Column(Integer, primary_key=True, autoincrement=True)
    transcript_id = Column(String(36), ForeignKey("transcript.id"), nullable=False, index=True)
    segment_index = Column(Integer, nullable=False)
    start_time = Column(Float, nullable=False)
    end_time = Column(Float, nullable=False)
    text = Column(Text, nullable=False)
    speaker = Column(String(64), nullable=False)
