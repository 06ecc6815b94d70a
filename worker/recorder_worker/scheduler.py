from __future__ import annotations

from datetime import datetime, timedelta, timezone
from time import perf_counter
from typing import Callable

import structlog

from recorder_worker.repository import SupabaseWorkerRepository
from recorder_worker.types import ScheduledMeeting

logger = structlog.get_logger(__name__)


class ScheduledMeetingPromoter:
    """Turns calendar meetings starting around now into recording sessions."""

    def __init__(
        self,
        *,
        repository: SupabaseWorkerRepository,
        window_minutes: int = 5,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._repository = repository
        self._window = timedelta(minutes=window_minutes)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def promote_due(self) -> list[ScheduledMeeting]:
        now = self._clock()
        started = perf_counter()
        due = await self._repository.get_due_scheduled_meetings(
            window_start=now - self._window,
            window_end=now + self._window,
        )
        logger.info(
            "scheduled_meetings_loaded",
            count=len(due),
            duration_ms=round((perf_counter() - started) * 1000, 2),
        )

        promoted: list[ScheduledMeeting] = []
        for scheduled in due:
            try:
                await self._promote(scheduled)
            except Exception as exc:
                logger.exception(
                    "scheduled_meeting_promotion_failed",
                    scheduled_meeting_id=str(scheduled.id),
                    error=str(exc),
                )
                try:
                    await self._repository.set_scheduled_status(scheduled.id, "failed")
                except Exception as status_exc:
                    logger.exception(
                        "scheduled_meeting_status_update_failed",
                        scheduled_meeting_id=str(scheduled.id),
                        error=str(status_exc),
                    )
                continue
            promoted.append(scheduled)

        return promoted

    async def _promote(self, scheduled: ScheduledMeeting) -> None:
        await self._repository.set_scheduled_status(scheduled.id, "recording")
        meeting_id = await self._repository.create_meeting_from_schedule(scheduled)
        await self._repository.link_scheduled_meeting(scheduled.id, meeting_id)
        logger.info(
            "scheduled_meeting_promoted",
            scheduled_meeting_id=str(scheduled.id),
            meeting_id=str(meeting_id),
            provider=scheduled.provider,
        )
