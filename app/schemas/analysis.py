"""Pydantic schemas for coaching analysis endpoints."""

from datetime import datetime

from pydantic import BaseModel, Field


class TimestampReference(BaseModel):
    time: str = ""
    text: str = ""
    context: str = ""


class CoachingAnalysis(BaseModel):
    """Structured chat-completion output; JSON keys are camelCase."""

    summary: str = ""
    objections: list[str] = Field(default_factory=list)
    improvements: list[str] = Field(default_factory=list)
    timestamps: list[TimestampReference] = Field(default_factory=list)
    follow_up_templates: list[str] = Field(default_factory=list, alias="followUpTemplates")
    answer: str = ""

    model_config = {"populate_by_name": True}


class AnalyzeRequest(BaseModel):
    recording_id: str | None = Field(default=None, alias="recordingId")
    question: str | None = None
    api_key: str | None = Field(default=None, alias="apiKey")

    model_config = {"populate_by_name": True}


class AnalyzeResponse(BaseModel):
    success: bool = True
    analysis: CoachingAnalysis


class ConversationNoteResponse(BaseModel):
    id: str
    recording_id: str
    question: str
    analysis: CoachingAnalysis
    created_at: datetime


class ConversationNoteListResponse(BaseModel):
    items: list[ConversationNoteResponse]
    total: int
