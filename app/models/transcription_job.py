"""Durable transcription queue entry."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text

from app.database import Base, utcnow

JOB_QUEUED = "queued"
JOB_RUNNING = "running"
JOB_DONE = "done"
JOB_FAILED = "failed"


class TranscriptionJob(Base):
    """One queued transcription per recording (unique recording_id)."""

    __tablename__ = "transcription_job"

    id = Column(Integer, primary_key=True, autoincrement=True)
    recording_id = Column(String(36), ForeignKey("recording.id"), nullable=False, unique=True, index=True)
    user_id = Column(Integer, ForeignKey("user.id"), nullable=False, index=True)
    status = Column(String(16), nullable=False, default=JOB_QUEUED, index=True)
    attempts = Column(Integer, nullable=False, default=0)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    started_at = Column(DateTime, nullable=True)
    finished_at = Column(DateTime, nullable=True)
