"""Conversation note model: cached question/answer analyses."""

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text

from app.database import Base, utcnow
from app.models.recording import new_id


class ConversationNote(Base):
    """Append-only log of coaching analyses for a recording."""

    __tablename__ = "conversation_note"

    id = Column(String(36), primary_key=True, default=new_id)
    recording_id = Column(String(36), ForeignKey("recording.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("user.id"), nullable=False, index=True)
    question = Column(Text, nullable=False)
    answer = Column(Text, nullable=False)  # JSON-serialized analysis
    timestamps = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
