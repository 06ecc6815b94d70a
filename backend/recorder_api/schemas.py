from __future__ import annotations

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

MeetingStatus = Literal["recording", "processing", "completed", "failed"]
ProviderName = Literal["google", "zoom"]


class AttendeeInput(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    email: EmailStr


class CreateMeetingInput(BaseModel):
    title: str = Field(min_length=1, max_length=300)
    description: str = Field(default="", max_length=5000)
    attendees: list[AttendeeInput] = Field(default_factory=list, max_length=100)

    @field_validator("title")
    @classmethod
    def strip_title(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("title must not be blank")
        return stripped


class MeetingResponse(BaseModel):
    id: UUID
    title: str
    description: str | None = ""
    start_time: datetime | None = None
    end_time: datetime | None = None
    duration_seconds: int | None = 0
    recording_url: str | None = None
    status: MeetingStatus


class AttendeeResponse(BaseModel):
    id: UUID
    name: str
    email: str
    notification_sent: bool = False


class TranscriptionInput(BaseModel):
    original_text: str = Field(min_length=1, max_length=10_000)
    speaker: str = Field(default="Unknown", max_length=100)
    timestamp_start: int = Field(ge=0)
    timestamp_end: int = Field(ge=0)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)

    @field_validator("original_text")
    @classmethod
    def strip_original_text(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("original_text must not be blank")
        return stripped

    @model_validator(mode="after")
    def _check_order(self) -> TranscriptionInput:
        if self.timestamp_end < self.timestamp_start:
            raise ValueError("timestamp_end must not precede timestamp_start")
        return self


class TranscriptionResponse(BaseModel):
    id: UUID
    speaker: str | None = "Unknown"
    original_text: str
    original_language: str | None = "en"
    translated_text: str | None = None
    timestamp_start: int
    timestamp_end: int
    confidence: float = 0.0


class AudioChunkResponse(BaseModel):
    transcription: TranscriptionResponse | None = None


class SummaryPayload(BaseModel):
    summary: str
    key_points: list[str] = Field(default_factory=list)
    action_items: list[str] = Field(default_factory=list)


class MeetingDetailResponse(MeetingResponse):
    attendees: list[AttendeeResponse] = Field(default_factory=list)
    transcriptions: list[TranscriptionResponse] = Field(default_factory=list)
    summary: SummaryPayload | None = None


class SummaryRequestResponse(BaseModel):
    meeting_id: UUID
    status: MeetingStatus


class IntegrationResponse(BaseModel):
    provider: ProviderName
    email: str | None = None
    token_expires_at: datetime | None = None
    updated_at: datetime | None = None


class AuthorizeResponse(BaseModel):
    authorization_url: str
    state: str


class OAuthCallbackInput(BaseModel):
    code: str = Field(min_length=1)
    state: str = Field(min_length=1)


class UpcomingMeetingResponse(BaseModel):
    provider: Literal["google_meet", "zoom"]
    provider_meeting_id: str
    title: str
    start: datetime
    end: datetime
    meeting_link: str


class RecordingStartResponse(BaseModel):
    meeting_id: str
    started: bool


class RecordingFilesResponse(BaseModel):
    meeting_id: str
    recording_files: list[dict[str, Any]]


class ErrorDetail(BaseModel):
    code: str
    message: str
    request_id: str


class ErrorEnvelope(BaseModel):
    error: ErrorDetail
