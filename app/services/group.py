"""Group service: membership, messages and sharing recordings into groups."""

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.group import MESSAGE_RECORDING, MESSAGE_TEXT, Group, GroupMember, GroupMessage
from app.models.recording import Recording

logger = logging.getLogger("callcoach")


class GroupService:
    """Minimal group chat: just enough to receive shared recordings."""

    def create_group(self, db: Session, user_id: int, name: str) -> Group:
        group = Group(name=name.strip(), creator_id=user_id)
        db.add(group)
        db.flush()
        db.add(GroupMember(group_id=group.id, user_id=user_id, role="owner"))
        db.commit()
        db.refresh(group)
        return group

    def get_user_groups(self, db: Session, user_id: int) -> list[Group]:
        return (
            db.query(Group)
            .join(GroupMember, GroupMember.group_id == Group.id)
            .filter(GroupMember.user_id == user_id)
            .order_by(Group.created_at.desc())
            .all()
        )

    def get_member_group(self, db: Session, group_id: str, user_id: int) -> Group | None:
        """Get a group only if ``user_id`` belongs to it."""
        return (
            db.query(Group)
            .join(GroupMember, GroupMember.group_id == Group.id)
            .filter(Group.id == group_id, GroupMember.user_id == user_id)
            .first()
        )

    def add_member(self, db: Session, group: Group, user_id: int) -> bool:
        """Add a member. Returns False if already a member."""
        db.add(GroupMember(group_id=group.id, user_id=user_id, role="member"))
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            return False
        return True

    def get_messages(self, db: Session, group_id: str, limit: int = 100) -> list[GroupMessage]:
        """The latest ``limit`` messages, oldest first."""
        newest = (
            db.query(GroupMessage)
            .filter(GroupMessage.group_id == group_id)
            .order_by(GroupMessage.created_at.desc())
            .limit(limit)
            .all()
        )
        return list(reversed(newest))

    def post_message(self, db: Session, group: Group, user_id: int, content: str) -> GroupMessage:
        message = GroupMessage(group_id=group.id, user_id=user_id, message_type=MESSAGE_TEXT, content=content)
        db.add(message)
        db.commit()
        db.refresh(message)
        return message

    def share_recording(self, db: Session, group: Group, user_id: int, recording: Recording) -> GroupMessage:
        message = GroupMessage(
            group_id=group.id,
            user_id=user_id,
            message_type=MESSAGE_RECORDING,
            recording_id=recording.id,
            content=f"Shared recording: {recording.title}",
        )
        db.add(message)
        db.commit()
        db.refresh(message)
        logger.info("Recording %s shared to group %s", recording.id, group.id)
        return message


_group_service: GroupService | None = None


def get_group_service() -> GroupService:
    """Get singleton group service instance."""
    global _group_service
    if _group_service is None:
        _group_service = GroupService()
    return _group_service
