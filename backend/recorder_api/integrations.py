from __future__ import annotations

from datetime import datetime, timezone
from time import perf_counter
from typing import Any, Callable, TypeVar
from uuid import UUID

import anyio
import structlog

from recorder_api.oauth import (
    OAuthError,
    OAuthProvider,
    ProviderUnauthorizedError,
    TokenSet,
    UpcomingMeeting,
    ZoomProvider,
)
from recorder_api.repository import MeetingRepository

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class IntegrationNotFoundError(LookupError):
    def __init__(self, provider: str) -> None:
        self.provider = provider
        super().__init__(f"No {provider} integration connected")


def _parse_timestamp(value: Any) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _token_fields(tokens: TokenSet) -> dict[str, Any]:
    return {
        "access_token": tokens.access_token,
        "refresh_token": tokens.refresh_token,
        "token_expires_at": tokens.expires_at.isoformat() if tokens.expires_at else None,
    }


class IntegrationService:
    """Stores provider connections and keeps their access tokens usable."""

    def __init__(
        self,
        *,
        repository: MeetingRepository,
        providers: dict[str, OAuthProvider],
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._repository = repository
        self._providers = providers
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def provider_names(self) -> list[str]:
        return list(self._providers)

    def get_provider(self, name: str) -> OAuthProvider | None:
        return self._providers.get(name)

    def zoom(self) -> ZoomProvider:
        provider = self._providers.get("zoom")
        if not isinstance(provider, ZoomProvider):
            raise IntegrationNotFoundError("zoom")
        return provider

    async def connect(self, user_id: UUID, provider: OAuthProvider, code: str) -> dict[str, Any]:
        started = perf_counter()
        tokens = await anyio.to_thread.run_sync(provider.exchange_code, code)
        profile = await anyio.to_thread.run_sync(provider.fetch_profile, tokens.access_token)
        row = await self._repository.upsert_integration(
            user_id,
            provider.name,
            {
                **_token_fields(tokens),
                "provider_user_id": profile.provider_user_id,
                "email": profile.email,
            },
        )
        logger.info(
            "integration_connected",
            provider=provider.name,
            duration_ms=round((perf_counter() - started) * 1000, 2),
        )
        return row

    async def disconnect(self, user_id: UUID, provider: OAuthProvider) -> None:
        removed = await self._repository.delete_integration(user_id, provider.name)
        if not removed:
            raise IntegrationNotFoundError(provider.name)
        logger.info("integration_disconnected", provider=provider.name)

    async def call_with_refresh(
        self,
        user_id: UUID,
        provider: OAuthProvider,
        fn: Callable[[str], T],
    ) -> T:
        integration = await self._repository.get_integration(user_id, provider.name)
        if integration is None:
            raise IntegrationNotFoundError(provider.name)

        access_token = integration["access_token"]
        refreshed = False
        expires_at = _parse_timestamp(integration.get("token_expires_at"))
        if expires_at is not None and expires_at <= self._clock() and integration.get("refresh_token"):
            access_token = await self._refresh(integration, provider)
            refreshed = True

        try:
            return await anyio.to_thread.run_sync(fn, access_token)
        except ProviderUnauthorizedError:
            # at most one refresh per call
            if refreshed or not integration.get("refresh_token"):
                raise
            logger.info("provider_token_rejected", provider=provider.name)
            access_token = await self._refresh(integration, provider)
            return await anyio.to_thread.run_sync(fn, access_token)

    async def upcoming_meetings(self, user_id: UUID) -> list[UpcomingMeeting]:
        now = self._clock()
        meetings: list[UpcomingMeeting] = []
        for provider in self._providers.values():
            try:
                found = await self.call_with_refresh(
                    user_id,
                    provider,
                    lambda token, provider=provider: provider.list_upcoming(token, now),
                )
            except IntegrationNotFoundError:
                continue
            except OAuthError as exc:
                logger.warning("upcoming_meetings_fetch_failed", provider=provider.name, error=str(exc))
                continue
            meetings.extend(found)

        meetings.sort(key=lambda meeting: meeting.start)
        await self._repository.upsert_scheduled_meetings(
            user_id,
            [
                {
                    "provider": meeting.provider,
                    "provider_meeting_id": meeting.provider_meeting_id,
                    "title": meeting.title,
                    "scheduled_start": meeting.start.isoformat(),
                    "scheduled_end": meeting.end.isoformat(),
                    "meeting_link": meeting.meeting_link,
                }
                for meeting in meetings
            ],
        )
        logger.info("upcoming_meetings_synced", count=len(meetings))
        return meetings

    async def _refresh(self, integration: dict[str, Any], provider: OAuthProvider) -> str:
        started = perf_counter()
        tokens = await anyio.to_thread.run_sync(provider.refresh, integration["refresh_token"])
        fields = _token_fields(tokens)
        await self._repository.update_integration_tokens(str(integration["id"]), fields)
        integration.update(fields)
        logger.info(
            "provider_token_refreshed",
            provider=provider.name,
            duration_ms=round((perf_counter() - started) * 1000, 2),
        )
        return tokens.access_token
