"""Group sharing endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import CurrentUser, get_current_user
from app.errors import ApiError
from app.models.group import MAX_GROUP_NAME_LENGTH, Group
from app.routers.recordings import get_owned_recording
from app.schemas.group import (
    AddMemberRequest,
    CreateGroupRequest,
    GroupListResponse,
    GroupMessageListResponse,
    GroupMessageResponse,
    GroupResponse,
    PostMessageRequest,
)
from app.schemas.recording import ShareRecordingRequest
from app.services.auth import get_auth_service
from app.services.group import get_group_service

router = APIRouter(prefix="/api/v1", tags=["Groups"])


def get_member_group(db: Session, group_id: str, user: CurrentUser) -> Group:
    group = get_group_service().get_member_group(db, group_id, user.user_id)
    if not group:
        raise ApiError(404, "Group not found", "GROUP_NOT_FOUND")
    return group


@router.post("/groups", response_model=GroupResponse)
def create_group(
    body: CreateGroupRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> GroupResponse:
    """Create a group; the caller becomes its owner."""
    name = body.name.strip()
    if not name:
        raise ApiError(400, "Group name must not be blank")
    if len(name) > MAX_GROUP_NAME_LENGTH:
        raise ApiError(400, f"Group name must be at most {MAX_GROUP_NAME_LENGTH} characters")
    group = get_group_service().create_group(db, user.user_id, name)
    return GroupResponse.model_validate(group)


@router.get("/groups", response_model=GroupListResponse)
def list_groups(
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> GroupListResponse:
    groups = get_group_service().get_user_groups(db, user.user_id)
    return GroupListResponse(items=[GroupResponse.model_validate(g) for g in groups], total=len(groups))


@router.post("/groups/{group_id}/members")
def add_member(
    group_id: str,
    body: AddMemberRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict:
    """Add an existing user to a group. Only the creator may add members."""
    group = get_member_group(db, group_id, user)
    if group.creator_id != user.user_id:
        raise ApiError(403, "Only the group creator can add members")

    member = get_auth_service().get_user_by_email(db, body.email)
    if not member:
        raise ApiError(404, "User not found")
    if not get_group_service().add_member(db, group, member.id):
        raise ApiError(409, "User is already a member of this group")
    return {"success": True, "user_id": member.id}


@router.get("/groups/{group_id}/messages", response_model=GroupMessageListResponse)
def list_messages(
    group_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> GroupMessageListResponse:
    group = get_member_group(db, group_id, user)
    messages = get_group_service().get_messages(db, group.id)
    return GroupMessageListResponse(
        items=[GroupMessageResponse.model_validate(m) for m in messages],
        total=len(messages),
    )


@router.post("/groups/{group_id}/messages", response_model=GroupMessageResponse)
def post_message(
    group_id: str,
    body: PostMessageRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> GroupMessageResponse:
    group = get_member_group(db, group_id, user)
    message = get_group_service().post_message(db, group, user.user_id, body.content.strip())
    return GroupMessageResponse.model_validate(message)


@router.post("/recordings/{recording_id}/share", response_model=GroupMessageResponse)
def share_recording(
    recording_id: str,
    body: ShareRecordingRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> GroupMessageResponse:
    """Share one of the caller's recordings into a group they belong to."""
    recording = get_owned_recording(db, recording_id, user)
    group = get_member_group(db, body.group_id, user)
    message = get_group_service().share_recording(db, group, user.user_id, recording)
    return GroupMessageResponse.model_validate(message)
