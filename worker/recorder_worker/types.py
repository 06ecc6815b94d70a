from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True, slots=True)
class TranscriptFragment:
    original_text: str
    timestamp_start: int
    timestamp_end: int
    translated_text: str | None = None
    speaker: str = "Unknown"
    confidence: float = 0.0

    @property
    def preferred_text(self) -> str:
        return self.translated_text or self.original_text or ""


@dataclass(frozen=True, slots=True)
class SummaryResult:
    summary: str
    key_points: list[str] = field(default_factory=list)
    action_items: list[str] = field(default_factory=list)

    def as_row(self) -> dict[str, object]:
        return {
            "summary": self.summary,
            "key_points": list(self.key_points),
            "action_items": list(self.action_items),
        }


@dataclass(slots=True)
class ClaimedMeeting:
    id: UUID
    title: str
    created_by: UUID | None
    lock_token: UUID
    attempts: int


@dataclass(slots=True)
class Attendee:
    id: UUID
    name: str
    email: str


@dataclass(slots=True)
class ScheduledMeeting:
    id: UUID
    user_id: UUID
    provider: str
    provider_meeting_id: str
    title: str
    scheduled_start: datetime
    scheduled_end: datetime
    meeting_link: str
