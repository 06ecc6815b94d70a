from __future__ import annotations

from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Response, status

from recorder_api.config import Settings
from recorder_api.dependencies import get_app_settings, get_current_user, get_integration_service, get_repository
from recorder_api.errors import APIError
from recorder_api.integrations import IntegrationService
from recorder_api.oauth import OAuthProvider, make_state, verify_state
from recorder_api.repository import MeetingRepository
from recorder_api.schemas import (
    AuthorizeResponse,
    ErrorEnvelope,
    IntegrationResponse,
    OAuthCallbackInput,
    RecordingFilesResponse,
    RecordingStartResponse,
    UpcomingMeetingResponse,
)

logger = structlog.get_logger(__name__)

router = APIRouter()

_ERRORS = {
    401: {"model": ErrorEnvelope},
    404: {"model": ErrorEnvelope},
    502: {"model": ErrorEnvelope},
}


def _resolve_provider(service: IntegrationService, name: str) -> OAuthProvider:
    provider = service.get_provider(name)
    if provider is None:
        raise APIError(
            code="UNKNOWN_PROVIDER",
            message=f"Unknown provider: {name}",
            status_code=status.HTTP_404_NOT_FOUND,
        )
    return provider


@router.get("", response_model=list[IntegrationResponse], responses=_ERRORS)
async def list_integrations(
    user_id: UUID = Depends(get_current_user),
    repo: MeetingRepository = Depends(get_repository),
) -> list[IntegrationResponse]:
    rows = await repo.list_integrations(user_id)
    return [IntegrationResponse.model_validate(row) for row in rows]


@router.get("/upcoming-meetings", response_model=list[UpcomingMeetingResponse], responses=_ERRORS)
async def upcoming_meetings(
    user_id: UUID = Depends(get_current_user),
    service: IntegrationService = Depends(get_integration_service),
) -> list[UpcomingMeetingResponse]:
    meetings = await service.upcoming_meetings(user_id)
    return [
        UpcomingMeetingResponse(
            provider=meeting.provider,
            provider_meeting_id=meeting.provider_meeting_id,
            title=meeting.title,
            start=meeting.start,
            end=meeting.end,
            meeting_link=meeting.meeting_link,
        )
        for meeting in meetings
    ]


@router.get("/{provider}/authorize", response_model=AuthorizeResponse, responses=_ERRORS)
async def authorize(
    provider: str,
    user_id: UUID = Depends(get_current_user),
    service: IntegrationService = Depends(get_integration_service),
    settings: Settings = Depends(get_app_settings),
) -> AuthorizeResponse:
    oauth_provider = _resolve_provider(service, provider)
    if not oauth_provider.configured:
        raise APIError(
            code="PROVIDER_NOT_CONFIGURED",
            message=f"{provider} OAuth client is not configured",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    state = make_state(settings.state_secret, str(user_id), oauth_provider.name)
    return AuthorizeResponse(authorization_url=oauth_provider.authorization_url(state), state=state)


@router.post("/{provider}/callback", response_model=IntegrationResponse, responses=_ERRORS)
async def oauth_callback(
    provider: str,
    payload: OAuthCallbackInput,
    user_id: UUID = Depends(get_current_user),
    service: IntegrationService = Depends(get_integration_service),
    settings: Settings = Depends(get_app_settings),
) -> IntegrationResponse:
    oauth_provider = _resolve_provider(service, provider)
    if not verify_state(settings.state_secret, payload.state, str(user_id), oauth_provider.name):
        logger.warning("oauth_state_rejected", provider=oauth_provider.name)
        raise APIError(code="INVALID_STATE", message="OAuth state did not match this user")

    row = await service.connect(user_id, oauth_provider, payload.code)
    return IntegrationResponse.model_validate(row)


@router.delete("/{provider}", status_code=status.HTTP_204_NO_CONTENT, responses=_ERRORS)
async def disconnect(
    provider: str,
    user_id: UUID = Depends(get_current_user),
    service: IntegrationService = Depends(get_integration_service),
) -> Response:
    await service.disconnect(user_id, _resolve_provider(service, provider))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/zoom/meetings/{meeting_id}/recording",
    response_model=RecordingStartResponse,
    responses=_ERRORS,
)
async def start_zoom_recording(
    meeting_id: str,
    user_id: UUID = Depends(get_current_user),
    service: IntegrationService = Depends(get_integration_service),
) -> RecordingStartResponse:
    zoom = service.zoom()
    started = await service.call_with_refresh(
        user_id,
        zoom,
        lambda token: zoom.start_recording(token, meeting_id),
    )
    logger.info("zoom_recording_started", zoom_meeting_id=meeting_id)
    return RecordingStartResponse(meeting_id=meeting_id, started=started)


@router.get(
    "/zoom/meetings/{meeting_id}/recordings",
    response_model=RecordingFilesResponse,
    responses=_ERRORS,
)
async def zoom_recordings(
    meeting_id: str,
    user_id: UUID = Depends(get_current_user),
    service: IntegrationService = Depends(get_integration_service),
) -> RecordingFilesResponse:
    zoom = service.zoom()
    files = await service.call_with_refresh(
        user_id,
        zoom,
        lambda token: zoom.list_recordings(token, meeting_id),
    )
    return RecordingFilesResponse(meeting_id=meeting_id, recording_files=files)
