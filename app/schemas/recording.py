"""Pydantic schemas for recording endpoints."""

from datetime import datetime

from pydantic import BaseModel, Field


class RecordingResponse(BaseModel):
    id: str
    title: str
    audio_url: str | None
    audio_filename: str
    original_filename: str
    mime_type: str | None
    file_size_bytes: int
    duration_seconds: int | None
    status: str
    error_message: str | None
    created_at: datetime
    has_transcript: bool = False

    model_config = {"from_attributes": True}


class RecordingListResponse(BaseModel):
    items: list[RecordingResponse]
    total: int


class UploadResponse(BaseModel):
    success: bool = True
    recording: RecordingResponse
    message: str = "Audio uploaded successfully"


class RenameRecordingRequest(BaseModel):
    title: str


class ShareRecordingRequest(BaseModel):
    group_id: str = Field(alias="groupId")

    model_config = {"populate_by_name": True}
