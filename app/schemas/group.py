"""Pydantic schemas for group sharing endpoints."""

from datetime import datetime

from pydantic import BaseModel, Field


class CreateGroupRequest(BaseModel):
    name: str


class AddMemberRequest(BaseModel):
    email: str


class PostMessageRequest(BaseModel):
    content: str = Field(min_length=1, max_length=4000)


class GroupResponse(BaseModel):
    id: str
    name: str
    creator_id: int
    created_at: datetime

    model_config = {"from_attributes": True}


class GroupListResponse(BaseModel):
    items: list[GroupResponse]
    total: int


class GroupMessageResponse(BaseModel):
    id: str
    group_id: str
    user_id: int
    message_type: str
    content: str | None
    recording_id: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class GroupMessageListResponse(BaseModel):
    items: list[GroupMessageResponse]
    total: int
