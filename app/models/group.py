"""Group chat models. Recordings can be shared into a group as messages."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint

from app.database import Base, utcnow
from app.models.recording import new_id

MESSAGE_TEXT = "text"
MESSAGE_RECORDING = "recording"
MAX_GROUP_NAME_LENGTH = 255


class Group(Base):
    __tablename__ = "chat_group"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(MAX_GROUP_NAME_LENGTH), nullable=False)
    creator_id = Column(Integer, ForeignKey("user.id"), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class GroupMember(Base):
    __tablename__ = "group_member"
    __table_args__ = (UniqueConstraint("group_id", "user_id", name="uq_group_member"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    group_id = Column(String(36), ForeignKey("chat_group.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("user.id"), nullable=False, index=True)
    role = Column(String(16), nullable=False, default="member")  # owner, member
    joined_at = Column(DateTime, nullable=False, default=utcnow)


class GroupMessage(Base):
    __tablename__ = "group_message"

    id = Column(String(36), primary_key=True, default=new_id)
    group_id = Column(String(36), ForeignKey("chat_group.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("user.id"), nullable=False)
    message_type = Column(String(16), nullable=False, default=MESSAGE_TEXT)
    content = Column(Text, nullable=True)
    recording_id = Column(String(36), ForeignKey("recording.id"), nullable=True, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
