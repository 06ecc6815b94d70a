from __future__ import annotations

from datetime import datetime, timezone
from functools import partial
from typing import Any, Protocol
from uuid import UUID

import anyio
import structlog
from supabase import AuthError, Client, create_client

from recorder_api.config import Settings

logger = structlog.get_logger(__name__)

MEETING_COLUMNS = "id,title,description,start_time,end_time,duration_seconds,recording_url,status,created_at"
INTEGRATION_COLUMNS = "id,provider,access_token,refresh_token,token_expires_at,provider_user_id,email,updated_at"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _first_row(data: Any) -> dict[str, Any] | None:
    if not data:
        return None
    return data[0] if isinstance(data, list) else data


class MeetingRepository(Protocol):
    async def check_ready(self) -> None: ...

    async def get_user_id(self, access_token: str) -> UUID | None: ...

    async def create_meeting(
        self,
        *,
        owner_id: UUID,
        title: str,
        description: str,
        attendees: list[dict[str, str]],
    ) -> dict[str, Any]: ...

    async def list_meetings(self, owner_id: UUID) -> list[dict[str, Any]]: ...

    async def get_meeting(self, owner_id: UUID, meeting_id: UUID) -> dict[str, Any] | None: ...

    async def update_meeting(self, owner_id: UUID, meeting_id: UUID, fields: dict[str, Any]) -> dict[str, Any] | None: ...

    async def list_attendees(self, meeting_id: UUID) -> list[dict[str, Any]]: ...

    async def list_transcriptions(self, meeting_id: UUID) -> list[dict[str, Any]]: ...

    async def get_summary(self, meeting_id: UUID) -> dict[str, Any] | None: ...

    async def insert_transcription(self, meeting_id: UUID, fields: dict[str, Any]) -> dict[str, Any]: ...

    async def list_integrations(self, user_id: UUID) -> list[dict[str, Any]]: ...

    async def get_integration(self, user_id: UUID, provider: str) -> dict[str, Any] | None: ...

    async def upsert_integration(self, user_id: UUID, provider: str, fields: dict[str, Any]) -> dict[str, Any]: ...

    async def update_integration_tokens(self, integration_id: str, fields: dict[str, Any]) -> None: ...

    async def delete_integration(self, user_id: UUID, provider: str) -> bool: ...

    async def upsert_scheduled_meetings(self, user_id: UUID, rows: list[dict[str, Any]]) -> None: ...


class SupabaseRepository:
    def __init__(self, settings: Settings, client: Client | None = None) -> None:
        self._settings = settings
        self._client: Client = client or create_client(settings.supabase_url, settings.supabase_service_role_key)

    async def _run(self, fn, *args, **kwargs):  # type: ignore[no-untyped-def]
        call = partial(fn, *args, **kwargs)
        return await anyio.to_thread.run_sync(call)

    async def check_ready(self) -> None:
        await self._run(self._check_ready_sync)

    def _check_ready_sync(self) -> None:
        self._client.table("meetings").select("id").limit(1).execute()

    async def get_user_id(self, access_token: str) -> UUID | None:
        return await self._run(self._get_user_id_sync, access_token)

    def _get_user_id_sync(self, access_token: str) -> UUID | None:
        try:
            response = self._client.auth.get_user(access_token)
        except AuthError as exc:
            logger.info("access_token_rejected", error=str(exc))
            return None
        if response is None or response.user is None:
            return None
        return UUID(str(response.user.id))

    async def create_meeting(
        self,
        *,
        owner_id: UUID,
        title: str,
        description: str,
        attendees: list[dict[str, str]],
    ) -> dict[str, Any]:
        return await self._run(self._create_meeting_sync, owner_id, title, description, attendees)

    def _create_meeting_sync(
        self,
        owner_id: UUID,
        title: str,
        description: str,
        attendees: list[dict[str, str]],
    ) -> dict[str, Any]:
        payload = {
            "title": title,
            "description": description,
            "start_time": _now_iso(),
            "status": "recording",
            "created_by": str(owner_id),
        }
        row = _first_row(self._client.table("meetings").insert(payload).execute().data)
        if row is None:
            raise RuntimeError("meetings insert failed")

        if attendees:
            self._client.table("attendees").insert(
                [{"meeting_id": row["id"], "name": item["name"], "email": item["email"]} for item in attendees]
            ).execute()
        return row

    async def list_meetings(self, owner_id: UUID) -> list[dict[str, Any]]:
        return await self._run(self._list_meetings_sync, owner_id)

    def _list_meetings_sync(self, owner_id: UUID) -> list[dict[str, Any]]:
        result = (
            self._client.table("meetings")
            .select(MEETING_COLUMNS)
            .eq("created_by", str(owner_id))
            .order("start_time", desc=True)
            .execute()
        )
        return list(result.data or [])

    async def get_meeting(self, owner_id: UUID, meeting_id: UUID) -> dict[str, Any] | None:
        return await self._run(self._get_meeting_sync, owner_id, meeting_id)

    def _get_meeting_sync(self, owner_id: UUID, meeting_id: UUID) -> dict[str, Any] | None:
        result = (
            self._client.table("meetings")
            .select(MEETING_COLUMNS)
            .eq("id", str(meeting_id))
            .eq("created_by", str(owner_id))
            .limit(1)
            .execute()
        )
        return _first_row(result.data)

    async def update_meeting(self, owner_id: UUID, meeting_id: UUID, fields: dict[str, Any]) -> dict[str, Any] | None:
        return await self._run(self._update_meeting_sync, owner_id, meeting_id, fields)

    def _update_meeting_sync(self, owner_id: UUID, meeting_id: UUID, fields: dict[str, Any]) -> dict[str, Any] | None:
        result = (
            self._client.table("meetings")
            .update({**fields, "updated_at": _now_iso()})
            .eq("id", str(meeting_id))
            .eq("created_by", str(owner_id))
            .execute()
        )
        return _first_row(result.data)

    async def list_attendees(self, meeting_id: UUID) -> list[dict[str, Any]]:
        return await self._run(self._list_child_rows_sync, "attendees", "id,name,email,notification_sent", meeting_id)

    async def list_transcriptions(self, meeting_id: UUID) -> list[dict[str, Any]]:
        return await self._run(
            self._list_child_rows_sync,
            "transcriptions",
            "id,speaker,original_text,original_language,translated_text,timestamp_start,timestamp_end,confidence",
            meeting_id,
            "timestamp_start",
        )

    def _list_child_rows_sync(
        self,
        table: str,
        columns: str,
        meeting_id: UUID,
        order_by: str | None = None,
    ) -> list[dict[str, Any]]:
        query = self._client.table(table).select(columns).eq("meeting_id", str(meeting_id))
        if order_by:
            query = query.order(order_by)
        return list(query.execute().data or [])

    async def get_summary(self, meeting_id: UUID) -> dict[str, Any] | None:
        return await self._run(self._get_summary_sync, meeting_id)

    def _get_summary_sync(self, meeting_id: UUID) -> dict[str, Any] | None:
        result = (
            self._client.table("meeting_summaries")
            .select("summary,key_points,action_items,created_at")
            .eq("meeting_id", str(meeting_id))
            .limit(1)
            .execute()
        )
        return _first_row(result.data)

    async def insert_transcription(self, meeting_id: UUID, fields: dict[str, Any]) -> dict[str, Any]:
        return await self._run(self._insert_transcription_sync, meeting_id, fields)

    def _insert_transcription_sync(self, meeting_id: UUID, fields: dict[str, Any]) -> dict[str, Any]:
        result = self._client.table("transcriptions").insert({"meeting_id": str(meeting_id), **fields}).execute()
        row = _first_row(result.data)
        if row is None:
            raise RuntimeError("transcriptions insert failed")
        return row

    async def list_integrations(self, user_id: UUID) -> list[dict[str, Any]]:
        return await self._run(self._list_integrations_sync, user_id)

    def _list_integrations_sync(self, user_id: UUID) -> list[dict[str, Any]]:
        result = (
            self._client.table("oauth_integrations")
            .select("provider,email,token_expires_at,updated_at")
            .eq("user_id", str(user_id))
            .execute()
        )
        return list(result.data or [])

    async def get_integration(self, user_id: UUID, provider: str) -> dict[str, Any] | None:
        return await self._run(self._get_integration_sync, user_id, provider)

    def _get_integration_sync(self, user_id: UUID, provider: str) -> dict[str, Any] | None:
        result = (
            self._client.table("oauth_integrations")
            .select(INTEGRATION_COLUMNS)
            .eq("user_id", str(user_id))
            .eq("provider", provider)
            .limit(1)
            .execute()
        )
        return _first_row(result.data)

    async def upsert_integration(self, user_id: UUID, provider: str, fields: dict[str, Any]) -> dict[str, Any]:
        return await self._run(self._upsert_integration_sync, user_id, provider, fields)

    def _upsert_integration_sync(self, user_id: UUID, provider: str, fields: dict[str, Any]) -> dict[str, Any]:
        payload = {"user_id": str(user_id), "provider": provider, **fields, "updated_at": _now_iso()}
        result = self._client.table("oauth_integrations").upsert(payload, on_conflict="user_id,provider").execute()
        row = _first_row(result.data)
        if row is None:
            raise RuntimeError("oauth_integrations upsert failed")
        return row

    async def update_integration_tokens(self, integration_id: str, fields: dict[str, Any]) -> None:
        await self._run(self._update_integration_tokens_sync, integration_id, fields)

    def _update_integration_tokens_sync(self, integration_id: str, fields: dict[str, Any]) -> None:
        (
            self._client.table("oauth_integrations")
            .update({**fields, "updated_at": _now_iso()})
            .eq("id", integration_id)
            .execute()
        )

    async def delete_integration(self, user_id: UUID, provider: str) -> bool:
        return await self._run(self._delete_integration_sync, user_id, provider)

    def _delete_integration_sync(self, user_id: UUID, provider: str) -> bool:
        result = (
            self._client.table("oauth_integrations")
            .delete()
            .eq("user_id", str(user_id))
            .eq("provider", provider)
            .execute()
        )
        return bool(result.data)

    async def upsert_scheduled_meetings(self, user_id: UUID, rows: list[dict[str, Any]]) -> None:
        if rows:
            await self._run(self._upsert_scheduled_meetings_sync, user_id, rows)

    def _upsert_scheduled_meetings_sync(self, user_id: UUID, rows: list[dict[str, Any]]) -> None:
        now = _now_iso()
        payload = [{**row, "user_id": str(user_id), "updated_at": now} for row in rows]
        # recording_status is left out so existing rows keep their state and new
        # rows take the column default
        (
            self._client.table("scheduled_meetings")
            .upsert(payload, on_conflict="user_id,provider_meeting_id", default_to_null=False)
            .execute()
        )
