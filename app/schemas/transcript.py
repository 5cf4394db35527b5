"""Pydantic schemas for transcript and transcription endpoints."""

from datetime import datetime

from pydantic import BaseModel, Field


class TranscriptSegmentResponse(BaseModel):
    segment_index: int
    start_time: float
    end_time: float
    text: str
    speaker: str

    model_config = {"from_attributes": True}


class TranscriptResponse(BaseModel):
    id: str
    recording_id: str
    title: str | None = None
    text: str
    speaker_count: int
    created_at: datetime
    segments: list[TranscriptSegmentResponse] = []

    model_config = {"from_attributes": True}


class TranscribeRequest(BaseModel):
    recording_id: str | None = Field(default=None, alias="recordingId")

    model_config = {"populate_by_name": True}


class TranscribeResponse(BaseModel):
    success: bool = True
    message: str
    recording_id: str = Field(serialization_alias="recordingId")
