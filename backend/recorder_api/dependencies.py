from __future__ import annotations

from uuid import UUID

import structlog
from fastapi import Depends, Request, status

from recorder_api.config import Settings
from recorder_api.errors import APIError
from recorder_api.integrations import IntegrationService
from recorder_api.repository import MeetingRepository
from recorder_api.transcriber import MockTranscriber
from recorder_api.translation import TranslationService


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_repository(request: Request) -> MeetingRepository:
    return request.app.state.repository


def get_translator(request: Request) -> TranslationService:
    return request.app.state.translator


def get_transcriber(request: Request) -> MockTranscriber:
    return request.app.state.transcriber


def get_integration_service(request: Request) -> IntegrationService:
    return request.app.state.integrations


async def get_current_user(
    request: Request,
    repo: MeetingRepository = Depends(get_repository),
) -> UUID:
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise APIError(
            code="UNAUTHORIZED",
            message="Missing bearer token",
            status_code=status.HTTP_401_UNAUTHORIZED,
        )

    user_id = await repo.get_user_id(token)
    if user_id is None:
        raise APIError(
            code="UNAUTHORIZED",
            message="Invalid or expired access token",
            status_code=status.HTTP_401_UNAUTHORIZED,
        )

    structlog.contextvars.bind_contextvars(user_id=str(user_id))
    return user_id
