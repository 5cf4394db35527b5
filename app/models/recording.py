"""Recording model and its status lifecycle."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text

from app.database import Base, utcnow

STATUS_UPLOADED = "uploaded"
STATUS_TRANSCRIBING = "transcribing"
STATUS_COMPLETED = "completed"
STATUS_ERROR = "error"

# Forward-only; completed and error are terminal.
STATUS_TRANSITIONS: dict[str, frozenset[str]] = {
    STATUS_UPLOADED: frozenset({STATUS_TRANSCRIBING, STATUS_ERROR}),
    STATUS_TRANSCRIBING: frozenset({STATUS_COMPLETED, STATUS_ERROR}),
    STATUS_COMPLETED: frozenset(),
    STATUS_ERROR: frozenset(),
}


MAX_TITLE_LENGTH = 255


def new_id() -> str:
    return str(uuid.uuid4())


class Recording(Base):
    """One captured or uploaded sales call and its processing status."""

    __tablename__ = "recording"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(Integer, ForeignKey("user.id"), nullable=False, index=True)
    title = Column(String(MAX_TITLE_LENGTH), nullable=False)
    audio_url = Column(String(1024), nullable=True)
    audio_filename = Column(String(512), nullable=False, unique=True)
    original_filename = Column(String(512), nullable=False)
    mime_type = Column(String(128), nullable=True)
    file_size_bytes = Column(Integer, nullable=False)
    duration_seconds = Column(Integer, nullable=True)
    status = Column(String(32), nullable=False, default=STATUS_UPLOADED)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
