from __future__ import annotations

from datetime import datetime, timezone
from time import perf_counter
from typing import Any
from uuid import UUID

import anyio
import structlog
from fastapi import Depends, FastAPI, Form, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from recorder_api.config import Settings, get_settings
from recorder_api.dependencies import (
    get_app_settings,
    get_current_user,
    get_repository,
    get_transcriber,
    get_translator,
)
from recorder_api.errors import APIError, register_exception_handlers
from recorder_api.integrations import IntegrationService
from recorder_api.integrations_api import router as integrations_router
from recorder_api.logging_setup import configure_logging
from recorder_api.middleware import RequestIDMiddleware
from recorder_api.oauth import GoogleProvider, ZoomProvider
from recorder_api.repository import MeetingRepository, SupabaseRepository
from recorder_api.schemas import (
    AttendeeResponse,
    AudioChunkResponse,
    CreateMeetingInput,
    MeetingDetailResponse,
    MeetingResponse,
    SummaryPayload,
    SummaryRequestResponse,
    TranscriptionInput,
    TranscriptionResponse,
)
from recorder_api.transcriber import MockTranscriber
from recorder_api.translation import TranslationService

logger = structlog.get_logger(__name__)

ALLOWED_AUDIO_TYPES = {
    "audio/webm",
    "audio/ogg",
    "audio/wav",
    "audio/mpeg",
    "audio/pcm",
    "application/octet-stream",
}


def _build_integrations(settings: Settings, repository: MeetingRepository) -> IntegrationService:
    timeout = settings.provider_timeout_seconds
    return IntegrationService(
        repository=repository,
        providers={
            "google": GoogleProvider(
                client_id=settings.google_client_id,
                client_secret=settings.google_client_secret,
                redirect_uri=settings.google_redirect_uri,
                timeout_seconds=timeout,
            ),
            "zoom": ZoomProvider(
                client_id=settings.zoom_client_id,
                client_secret=settings.zoom_client_secret,
                redirect_uri=settings.zoom_redirect_uri,
                timeout_seconds=timeout,
            ),
        },
    )


async def _owned_meeting(repo: MeetingRepository, user_id: UUID, meeting_id: UUID) -> dict[str, Any]:
    meeting = await repo.get_meeting(user_id, meeting_id)
    if meeting is None:
        raise APIError(code="NOT_FOUND", message="Meeting not found", status_code=status.HTTP_404_NOT_FOUND)
    return meeting


def _require_recording(meeting: dict[str, Any]) -> None:
    if meeting["status"] != "recording":
        raise APIError(
            code="MEETING_NOT_RECORDING",
            message=f"Meeting is {meeting['status']}, not recording",
            status_code=status.HTTP_409_CONFLICT,
        )


async def _store_fragment(
    *,
    repo: MeetingRepository,
    translator: TranslationService,
    settings: Settings,
    meeting_id: UUID,
    text: str,
    speaker: str,
    timestamp_start: int,
    timestamp_end: int,
    confidence: float,
) -> TranscriptionResponse:
    translate_started = perf_counter()
    translation = await anyio.to_thread.run_sync(
        translator.translate,
        text,
        settings.translation_target_language,
    )
    translate_duration = round((perf_counter() - translate_started) * 1000, 2)

    row = await repo.insert_transcription(
        meeting_id,
        {
            "speaker": speaker,
            "original_text": text,
            "original_language": translation.detected_language,
            "translated_text": translation.translated_text,
            "timestamp_start": timestamp_start,
            "timestamp_end": timestamp_end,
            "confidence": confidence,
        },
    )
    logger.info(
        "transcription_stored",
        meeting_id=str(meeting_id),
        detected_language=translation.detected_language,
        translate_duration_ms=translate_duration,
    )
    return TranscriptionResponse.model_validate(row)


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)

    app = FastAPI(title=settings.app_name)
    repository = SupabaseRepository(settings)
    app.state.settings = settings
    app.state.repository = repository
    app.state.translator = TranslationService(
        base_url=settings.translation_base_url,
        timeout_seconds=settings.translation_timeout_seconds,
    )
    app.state.transcriber = MockTranscriber(
        seed=settings.mock_transcriber_seed,
        emit_probability=settings.mock_transcriber_emit_probability,
    )
    app.state.integrations = _build_integrations(settings, repository)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(RequestIDMiddleware, service="backend")
    register_exception_handlers(app)
    app.include_router(integrations_router, prefix="/v1/integrations", tags=["integrations"])

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/readyz")
    async def readyz(repo: MeetingRepository = Depends(get_repository)) -> JSONResponse:
        started = perf_counter()
        try:
            await repo.check_ready()
        except Exception as exc:
            logger.exception("readyz_failed", error=str(exc))
            raise APIError(
                code="DEPENDENCY_UNAVAILABLE",
                message="Supabase check failed",
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            ) from exc

        logger.info("readyz_ok", duration_ms=round((perf_counter() - started) * 1000, 2))
        return JSONResponse(status_code=status.HTTP_200_OK, content={"status": "ready"})

    @app.post("/v1/meetings", response_model=MeetingResponse, status_code=status.HTTP_201_CREATED)
    async def create_meeting(
        payload: CreateMeetingInput,
        user_id: UUID = Depends(get_current_user),
        repo: MeetingRepository = Depends(get_repository),
    ) -> MeetingResponse:
        started = perf_counter()
        row = await repo.create_meeting(
            owner_id=user_id,
            title=payload.title,
            description=payload.description,
            attendees=[{"name": item.name, "email": str(item.email)} for item in payload.attendees],
        )
        logger.info(
            "meeting_created",
            meeting_id=str(row["id"]),
            attendee_count=len(payload.attendees),
            duration_ms=round((perf_counter() - started) * 1000, 2),
        )
        return MeetingResponse.model_validate(row)

    @app.get("/v1/meetings", response_model=list[MeetingResponse])
    async def list_meetings(
        user_id: UUID = Depends(get_current_user),
        repo: MeetingRepository = Depends(get_repository),
    ) -> list[MeetingResponse]:
        rows = await repo.list_meetings(user_id)
        return [MeetingResponse.model_validate(row) for row in rows]

    @app.get("/v1/meetings/{meeting_id}", response_model=MeetingDetailResponse)
    async def get_meeting(
        meeting_id: UUID,
        user_id: UUID = Depends(get_current_user),
        repo: MeetingRepository = Depends(get_repository),
    ) -> MeetingDetailResponse:
        started = perf_counter()
        meeting = await _owned_meeting(repo, user_id, meeting_id)
        attendees = await repo.list_attendees(meeting_id)
        transcriptions = await repo.list_transcriptions(meeting_id)
        summary_row = await repo.get_summary(meeting_id)

        logger.info(
            "meeting_fetched",
            meeting_id=str(meeting_id),
            status=meeting["status"],
            transcription_count=len(transcriptions),
            duration_ms=round((perf_counter() - started) * 1000, 2),
        )
        return MeetingDetailResponse(
            **MeetingResponse.model_validate(meeting).model_dump(),
            attendees=[AttendeeResponse.model_validate(row) for row in attendees],
            transcriptions=[TranscriptionResponse.model_validate(row) for row in transcriptions],
            summary=SummaryPayload.model_validate(summary_row) if summary_row else None,
        )

    @app.post(
        "/v1/meetings/{meeting_id}/transcriptions",
        response_model=TranscriptionResponse,
        status_code=status.HTTP_201_CREATED,
    )
    async def add_transcription(
        meeting_id: UUID,
        payload: TranscriptionInput,
        user_id: UUID = Depends(get_current_user),
        repo: MeetingRepository = Depends(get_repository),
        translator: TranslationService = Depends(get_translator),
        settings: Settings = Depends(get_app_settings),
    ) -> TranscriptionResponse:
        _require_recording(await _owned_meeting(repo, user_id, meeting_id))
        return await _store_fragment(
            repo=repo,
            translator=translator,
            settings=settings,
            meeting_id=meeting_id,
            text=payload.original_text,
            speaker=payload.speaker or "Unknown",
            timestamp_start=payload.timestamp_start,
            timestamp_end=payload.timestamp_end,
            confidence=payload.confidence,
        )

    @app.post("/v1/meetings/{meeting_id}/audio", response_model=AudioChunkResponse)
    async def add_audio_chunk(
        meeting_id: UUID,
        file: UploadFile,
        timestamp_ms: int = Form(ge=0),
        user_id: UUID = Depends(get_current_user),
        repo: MeetingRepository = Depends(get_repository),
        translator: TranslationService = Depends(get_translator),
        transcriber: MockTranscriber = Depends(get_transcriber),
        settings: Settings = Depends(get_app_settings),
    ) -> AudioChunkResponse:
        raw_content_type = (file.content_type or "").lower().strip()
        content_type = raw_content_type.split(";", 1)[0].strip()
        if content_type not in ALLOWED_AUDIO_TYPES:
            raise APIError(
                code="UNSUPPORTED_MEDIA_TYPE",
                message=f"Unsupported content type: {raw_content_type or 'unknown'}",
                status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            )

        max_bytes = settings.max_audio_chunk_kb * 1024
        data = await file.read(max_bytes + 1)
        if len(data) > max_bytes:
            raise APIError(
                code="PAYLOAD_TOO_LARGE",
                message=f"Audio chunk exceeds {settings.max_audio_chunk_kb} KB limit",
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            )

        _require_recording(await _owned_meeting(repo, user_id, meeting_id))

        chunk = transcriber.transcribe_chunk(data, timestamp_ms)
        if chunk is None:
            return AudioChunkResponse(transcription=None)

        stored = await _store_fragment(
            repo=repo,
            translator=translator,
            settings=settings,
            meeting_id=meeting_id,
            text=chunk.text,
            speaker="Unknown",
            timestamp_start=chunk.timestamp_start,
            timestamp_end=chunk.timestamp_end,
            confidence=chunk.confidence,
        )
        return AudioChunkResponse(transcription=stored)

    @app.post("/v1/meetings/{meeting_id}/stop", response_model=MeetingResponse)
    async def stop_meeting(
        meeting_id: UUID,
        user_id: UUID = Depends(get_current_user),
        repo: MeetingRepository = Depends(get_repository),
    ) -> MeetingResponse:
        meeting = await _owned_meeting(repo, user_id, meeting_id)
        _require_recording(meeting)

        ended = datetime.now(timezone.utc)
        duration_seconds = 0
        if meeting.get("start_time"):
            started_at = datetime.fromisoformat(str(meeting["start_time"]).replace("Z", "+00:00"))
            duration_seconds = max(0, int((ended - started_at).total_seconds()))

        updated = await repo.update_meeting(
            user_id,
            meeting_id,
            {
                "status": "processing",
                "end_time": ended.isoformat(),
                "duration_seconds": duration_seconds,
                "attempts": 0,
                "last_error": None,
                "summarize_after": ended.isoformat(),
            },
        )
        if updated is None:
            raise APIError(code="NOT_FOUND", message="Meeting not found", status_code=status.HTTP_404_NOT_FOUND)

        logger.info("meeting_stopped", meeting_id=str(meeting_id), duration_seconds=duration_seconds)
        return MeetingResponse.model_validate(updated)

    @app.post(
        "/v1/meetings/{meeting_id}/summary",
        response_model=SummaryRequestResponse,
        status_code=status.HTTP_202_ACCEPTED,
    )
    async def request_summary(
        meeting_id: UUID,
        user_id: UUID = Depends(get_current_user),
        repo: MeetingRepository = Depends(get_repository),
    ) -> SummaryRequestResponse:
        meeting = await _owned_meeting(repo, user_id, meeting_id)
        if meeting["status"] == "recording":
            raise APIError(
                code="MEETING_STILL_RECORDING",
                message="Stop the recording before requesting a summary",
                status_code=status.HTTP_409_CONFLICT,
            )

        await repo.update_meeting(
            user_id,
            meeting_id,
            {
                "status": "processing",
                "attempts": 0,
                "last_error": None,
                "summarize_after": datetime.now(timezone.utc).isoformat(),
            },
        )
        logger.info("summary_requested", meeting_id=str(meeting_id), previous_status=meeting["status"])
        return SummaryRequestResponse(meeting_id=meeting_id, status="processing")

    return app


app = create_app()
