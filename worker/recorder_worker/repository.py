from __future__ import annotations

from datetime import datetime, timedelta, timezone
from functools import partial
import time
from typing import Any
from uuid import UUID

import anyio
import httpx
import structlog
from supabase import Client, create_client

from recorder_worker.config import WorkerSettings
from recorder_worker.types import (
    Attendee,
    ClaimedMeeting,
    ScheduledMeeting,
    SummaryResult,
    TranscriptFragment,
)

logger = structlog.get_logger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _first_row(data: Any) -> dict[str, Any] | None:
    if not data:
        return None
    return data[0] if isinstance(data, list) else data


class SupabaseWorkerRepository:
    def __init__(self, settings: WorkerSettings, client: Client | None = None) -> None:
        self._settings = settings
        self._client: Client = client or create_client(settings.supabase_url, settings.supabase_service_role_key)

    async def _run(self, fn, *args, **kwargs):  # type: ignore[no-untyped-def]
        call = partial(fn, *args, **kwargs)
        return await anyio.to_thread.run_sync(call)

    async def claim_processing_meetings(self, batch_size: int) -> list[ClaimedMeeting]:
        return await self._run(self._claim_processing_meetings_sync, batch_size)

    def _claim_processing_meetings_sync(self, batch_size: int) -> list[ClaimedMeeting]:
        max_retries = max(1, self._settings.supabase_claim_retries)
        base_delay = max(0.1, self._settings.supabase_claim_retry_base_seconds)

        for attempt in range(1, max_retries + 1):
            try:
                result = self._client.rpc("claim_processing_meetings", {"batch_size": batch_size}).execute()
                return [
                    ClaimedMeeting(
                        id=UUID(row["id"]),
                        title=row.get("title") or "Untitled meeting",
                        created_by=UUID(row["created_by"]) if row.get("created_by") else None,
                        lock_token=UUID(row["lock_token"]),
                        attempts=int(row["attempts"]),
                    )
                    for row in result.data or []
                ]
            except (httpx.TransportError, httpx.TimeoutException) as exc:
                if attempt >= max_retries:
                    logger.warning(
                        "claim_processing_meetings_transport_unavailable",
                        attempt=attempt,
                        max_retries=max_retries,
                        error=str(exc),
                    )
                    return []

                # A dropped keep-alive connection poisons the old client.
                self._client = create_client(
                    self._settings.supabase_url,
                    self._settings.supabase_service_role_key,
                )
                time.sleep(base_delay * (2 ** (attempt - 1)))

        return []

    async def get_transcriptions(self, meeting_id: UUID) -> list[TranscriptFragment]:
        return await self._run(self._get_transcriptions_sync, meeting_id)

    def _get_transcriptions_sync(self, meeting_id: UUID) -> list[TranscriptFragment]:
        result = (
            self._client.table("transcriptions")
            .select("speaker,original_text,translated_text,timestamp_start,timestamp_end,confidence")
            .eq("meeting_id", str(meeting_id))
            .order("timestamp_start")
            .execute()
        )
        return [
            TranscriptFragment(
                original_text=row.get("original_text") or "",
                translated_text=row.get("translated_text"),
                timestamp_start=int(row.get("timestamp_start") or 0),
                timestamp_end=int(row.get("timestamp_end") or 0),
                speaker=row.get("speaker") or "Unknown",
                confidence=float(row.get("confidence") or 0.0),
            )
            for row in result.data or []
        ]

    async def upsert_summary(self, *, meeting_id: UUID, result: SummaryResult) -> None:
        await self._run(self._upsert_summary_sync, meeting_id, result)

    def _upsert_summary_sync(self, meeting_id: UUID, result: SummaryResult) -> None:
        payload = {"meeting_id": str(meeting_id), **result.as_row()}
        self._client.table("meeting_summaries").upsert(payload, on_conflict="meeting_id").execute()

    async def get_pending_attendees(self, meeting_id: UUID) -> list[Attendee]:
        return await self._run(self._get_pending_attendees_sync, meeting_id)

    def _get_pending_attendees_sync(self, meeting_id: UUID) -> list[Attendee]:
        result = (
            self._client.table("attendees")
            .select("id,name,email")
            .eq("meeting_id", str(meeting_id))
            .eq("notification_sent", False)
            .execute()
        )
        return [
            Attendee(id=UUID(row["id"]), name=row.get("name") or row["email"], email=row["email"])
            for row in result.data or []
        ]

    async def mark_attendee_notified(self, attendee_id: UUID) -> None:
        await self._run(self._mark_attendee_notified_sync, attendee_id)

    def _mark_attendee_notified_sync(self, attendee_id: UUID) -> None:
        (
            self._client.table("attendees")
            .update({"notification_sent": True})
            .eq("id", str(attendee_id))
            .execute()
        )

    async def mark_completed(self, *, meeting_id: UUID, lock_token: UUID) -> None:
        await self._run(self._mark_completed_sync, meeting_id, lock_token)

    def _mark_completed_sync(self, meeting_id: UUID, lock_token: UUID) -> None:
        payload = {
            "status": "completed",
            "last_error": None,
            "locked_at": None,
            "lock_token": None,
            "updated_at": _now_iso(),
        }
        (
            self._client.table("meetings")
            .update(payload)
            .eq("id", str(meeting_id))
            .eq("lock_token", str(lock_token))
            .execute()
        )

    async def handle_failure(
        self,
        *,
        meeting_id: UUID,
        lock_token: UUID,
        attempts: int,
        error_message: str,
        max_attempts: int,
    ) -> None:
        await self._run(
            self._handle_failure_sync,
            meeting_id,
            lock_token,
            attempts,
            error_message,
            max_attempts,
        )

    def _handle_failure_sync(
        self,
        meeting_id: UUID,
        lock_token: UUID,
        attempts: int,
        error_message: str,
        max_attempts: int,
    ) -> None:
        payload: dict[str, Any] = {
            "last_error": error_message[:2000],
            "locked_at": None,
            "lock_token": None,
            "updated_at": _now_iso(),
        }
        if attempts < max_attempts:
            retry_time = datetime.now(timezone.utc) + timedelta(minutes=(2**attempts))
            payload.update(status="processing", summarize_after=retry_time.isoformat())
        else:
            payload.update(status="failed")

        (
            self._client.table("meetings")
            .update(payload)
            .eq("id", str(meeting_id))
            .eq("lock_token", str(lock_token))
            .execute()
        )

    async def get_due_scheduled_meetings(
        self,
        *,
        window_start: datetime,
        window_end: datetime,
    ) -> list[ScheduledMeeting]:
        return await self._run(self._get_due_scheduled_meetings_sync, window_start, window_end)

    def _get_due_scheduled_meetings_sync(
        self,
        window_start: datetime,
        window_end: datetime,
    ) -> list[ScheduledMeeting]:
        result = (
            self._client.table("scheduled_meetings")
            .select("id,user_id,provider,provider_meeting_id,title,scheduled_start,scheduled_end,meeting_link")
            .eq("recording_status", "pending")
            .gte("scheduled_start", window_start.isoformat())
            .lte("scheduled_start", window_end.isoformat())
            .execute()
        )
        return [
            ScheduledMeeting(
                id=UUID(row["id"]),
                user_id=UUID(row["user_id"]),
                provider=row["provider"],
                provider_meeting_id=row["provider_meeting_id"],
                title=row.get("title") or "Untitled meeting",
                scheduled_start=datetime.fromisoformat(row["scheduled_start"]),
                scheduled_end=datetime.fromisoformat(row["scheduled_end"]),
                meeting_link=row.get("meeting_link") or "",
            )
            for row in result.data or []
        ]

    async def set_scheduled_status(self, scheduled_id: UUID, recording_status: str) -> None:
        await self._run(self._set_scheduled_status_sync, scheduled_id, recording_status)

    def _set_scheduled_status_sync(self, scheduled_id: UUID, recording_status: str) -> None:
        (
            self._client.table("scheduled_meetings")
            .update({"recording_status": recording_status, "updated_at": _now_iso()})
            .eq("id", str(scheduled_id))
            .execute()
        )

    async def create_meeting_from_schedule(self, scheduled: ScheduledMeeting) -> UUID:
        return await self._run(self._create_meeting_from_schedule_sync, scheduled)

    def _create_meeting_from_schedule_sync(self, scheduled: ScheduledMeeting) -> UUID:
        payload = {
            "title": scheduled.title,
            "description": f"Recorded from {scheduled.provider}",
            "start_time": scheduled.scheduled_start.isoformat(),
            "end_time": scheduled.scheduled_end.isoformat(),
            "status": "recording",
            "created_by": str(scheduled.user_id),
            "recording_url": scheduled.meeting_link,
        }
        result = self._client.table("meetings").insert(payload).execute()
        row = _first_row(result.data)
        if row is None:
            raise RuntimeError(f"Failed to create internal meeting for scheduled meeting {scheduled.id}")
        return UUID(row["id"])

    async def link_scheduled_meeting(self, scheduled_id: UUID, meeting_id: UUID) -> None:
        await self._run(self._link_scheduled_meeting_sync, scheduled_id, meeting_id)

    def _link_scheduled_meeting_sync(self, scheduled_id: UUID, meeting_id: UUID) -> None:
        (
            self._client.table("scheduled_meetings")
            .update({"internal_meeting_id": str(meeting_id), "updated_at": _now_iso()})
            .eq("id", str(scheduled_id))
            .execute()
        )
